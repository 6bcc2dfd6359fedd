import logging

import requests

from udfremote.exceptions import CapabilityError, TransportError
from udfremote.udf.constants import CACHE_SIZE, DEFAULT_TIMEOUT
from udfremote.utils.files import BaseFile

LOGGER = logging.getLogger(__name__)

STREAM_CHUNK_SIZE = 1024 * 1024


class HttpRangeReader(BaseFile):
    """
    Byte source that reads a remote resource with HTTP range requests.

    A single window of ``cache_size`` bytes is kept. Reads that fit in the
    window are served from memory, reads larger than the window go straight
    to the network, and anything else replaces the window with the
    ``cache_size`` bytes starting at the requested offset. This suits the
    mostly sequential access of descriptor parsing and file streaming; it is
    not meant to be a general purpose cache.

    Instances are not thread safe.
    """

    def __init__(self, url, session=None, cache_size=CACHE_SIZE, timeout=DEFAULT_TIMEOUT):
        super().__init__()
        self.url = url
        self.timeout = timeout
        self._owns_session = session is None
        self.session = session if session is not None else requests.Session()

        self.total_length = self._probe()

        self.cache_size = cache_size
        self.cache = bytearray(cache_size)
        self.cache_offset = self.total_length
        self.cache_length = 0
        self.fetch_count = 0

    @property
    def name(self):
        return self.url

    def _probe(self):
        try:
            response = self.session.head(self.url, allow_redirects=True, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(f"HEAD {self.url} failed: {e}") from e

        if not response.ok:
            raise TransportError(f"HEAD {self.url} returned status {response.status_code}")

        if response.headers.get("Accept-Ranges", "").strip().lower() != "bytes":
            raise CapabilityError(f"Server does not accept range requests for {self.url}")

        try:
            content_length = int(response.headers["Content-Length"])
        except (KeyError, ValueError):
            raise CapabilityError(f"Server did not report a content length for {self.url}")

        LOGGER.debug("%s: %d bytes, range requests supported", self.url, content_length)
        return content_length

    def _fetch(self, buffer, offset):
        """Fill ``buffer`` completely with the bytes starting at ``offset``."""
        end = offset + len(buffer) - 1
        LOGGER.debug("GET %s bytes=%d-%d", self.url, offset, end)
        self.fetch_count += 1

        view = memoryview(buffer)
        received = 0
        try:
            with self.session.get(self.url, headers={"Range": f"bytes={offset}-{end}"},
                                  stream=True, timeout=self.timeout) as response:
                if response.status_code != 206:
                    raise TransportError(f"Range request for bytes {offset}-{end} "
                                         f"returned status {response.status_code}")
                for chunk in response.iter_content(STREAM_CHUNK_SIZE):
                    take = min(len(chunk), len(view) - received)
                    view[received:received + take] = chunk[:take]
                    received += take
                    if received == len(view):
                        break
        except requests.RequestException as e:
            raise TransportError(f"Range request for bytes {offset}-{end} failed: {e}") from e

        if received != len(view):
            raise TransportError(f"Short read for bytes {offset}-{end}: got {received} "
                                 f"of {len(view)} bytes")

    def readinto_at(self, buffer, offset):
        if offset < 0:
            raise ValueError(f"Negative read offset {offset}")

        n = min(len(buffer), self.total_length - offset)
        if n <= 0:
            return 0
        view = memoryview(buffer)[:n]

        if self.cache_offset <= offset and offset + n <= self.cache_offset + self.cache_length:
            start = offset - self.cache_offset
            view[:] = self.cache[start:start + n]
            return n

        if n > self.cache_size:
            self._fetch(view, offset)
            return n

        window = min(self.cache_size, self.total_length - offset)
        # The window is empty until a fetch completes
        self.cache_length = 0
        self._fetch(memoryview(self.cache)[:window], offset)
        self.cache_offset = offset
        self.cache_length = window

        view[:] = self.cache[:n]
        return n

    def close(self):
        if self._owns_session:
            self.session.close()

    def __len__(self):
        return self.total_length
