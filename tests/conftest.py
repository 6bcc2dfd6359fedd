import io
import struct

import pycdlib
import pytest
import requests

from udfremote.udf.constants import ANCHOR_SECTOR, SECTOR_SIZE
from udfremote.udf.volume import Volume
from udfremote.utils.files import BufferSource

INSTALL_WIM = bytes((i * 7 + i // 251) & 0xFF for i in range(5 * SECTOR_SIZE + 777))
README = b"Read me first.\n"
NOTE = b"nested note\n" * 300

IMAGE_URL = "http://example.com/images/disc.iso"


def build_image():
    iso = pycdlib.PyCdlib()
    iso.new(udf="2.60")

    iso.add_directory("/SOURCES", udf_path="/sources")
    iso.add_directory("/NESTED", udf_path="/nested")
    iso.add_directory("/NESTED/DEEP", udf_path="/nested/deep")

    contents = [
        (INSTALL_WIM, "/SOURCES/INSTALL.WIM;1", "/sources/install.wim"),
        (README, "/README.TXT;1", "/readme.txt"),
        (b"", "/EMPTY.TXT;1", "/empty.txt"),
        (NOTE, "/NESTED/DEEP/NOTE.TXT;1", "/nested/deep/note.txt"),
    ]
    fps = []
    for data, iso_path, udf_path in contents:
        fp = io.BytesIO(data)
        fps.append(fp)
        iso.add_fp(fp, len(data), iso_path, udf_path=udf_path)

    out = io.BytesIO()
    iso.write_fp(out)
    iso.close()
    return out.getvalue()


@pytest.fixture(scope="session")
def image_bytes():
    return build_image()


@pytest.fixture
def image(image_bytes):
    return bytearray(image_bytes)


@pytest.fixture
def volume(image_bytes):
    return Volume(BufferSource(image_bytes))


@pytest.fixture
def image_file(tmp_path, image_bytes):
    path = tmp_path / "disc.iso"
    path.write_bytes(image_bytes)
    return path


def sector(image, number):
    return bytes(image[number * SECTOR_SIZE:(number + 1) * SECTOR_SIZE])


def tag_ident(image, number):
    return struct.unpack_from("<H", image, number * SECTOR_SIZE)[0]


def main_sequence_sectors(image):
    """Sectors of the main Volume Descriptor Sequence, as recorded in the anchor."""
    length, location = struct.unpack_from("<II", image, ANCHOR_SECTOR * SECTOR_SIZE + 16)
    return range(location, location + length // SECTOR_SIZE)


def find_descriptor(image, ident):
    for number in main_sequence_sectors(image):
        if tag_ident(image, number) == ident:
            return number
    raise AssertionError(f"no descriptor with tag {ident} in the main sequence")


class CountingSource(BufferSource):
    """In memory source remembering every read it served."""

    def __init__(self, buffer):
        super().__init__(buffer)
        self.reads = []

    def readinto_at(self, buffer, offset):
        self.reads.append((offset, len(buffer)))
        return super().readinto_at(buffer, offset)


class FakeSession:
    """
    Stand-in for requests.Session serving ``content`` with range support.

    Every GET is recorded in ``requests`` as its Range header.
    """

    def __init__(self, content, accept_ranges="bytes", content_length=True, head_status=200,
                 get_status=206, truncate=0, error=None):
        self.content = content
        self.accept_ranges = accept_ranges
        self.content_length = content_length
        self.head_status = head_status
        self.get_status = get_status
        self.truncate = truncate
        self.error = error
        self.requests = []
        self.closed = False

    def _response(self, status, body=b"", headers=None):
        response = requests.Response()
        response.status_code = status
        response.url = IMAGE_URL
        response.headers.update(headers or {})
        response.raw = io.BytesIO(body)
        return response

    def head(self, url, allow_redirects=True, timeout=None):
        headers = {}
        if self.accept_ranges is not None:
            headers["Accept-Ranges"] = self.accept_ranges
        if self.content_length:
            headers["Content-Length"] = str(len(self.content))
        return self._response(self.head_status, headers=headers)

    def get(self, url, headers=None, stream=False, timeout=None):
        range_header = headers["Range"]
        self.requests.append(range_header)
        if self.error is not None:
            raise self.error

        start, end = (int(x) for x in range_header[len("bytes="):].split("-"))
        body = self.content[start:end + 1]
        if self.truncate:
            body = body[:-self.truncate]
        return self._response(self.get_status, body, {"Content-Length": str(len(body))})

    def close(self):
        self.closed = True
