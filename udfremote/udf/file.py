import logging
import os

from udfremote.exceptions import FormatError
from udfremote.udf.constants import COPY_CHUNK_SIZE, FILE_TYPE_REGULAR
from udfremote.udf.directory_entry import DirectoryEntry
from udfremote.utils.files import OffsetFile

LOGGER = logging.getLogger(__name__)


class File(DirectoryEntry):
    """
    A regular file. Reads go through a window over the volume's byte source
    covering exactly the file's extent; the window is created on first use and
    dropped by ``close``.
    """

    FILE_TYPE = FILE_TYPE_REGULAR

    def __init__(self, volume, icb, fid=None, name="", parent_path=""):
        super().__init__(volume, icb, fid, name, parent_path)
        self._reader = None

    @property
    def reader(self):
        if self._reader is None:
            self._reader = self._open_reader()
        return self._reader

    def _open_reader(self):
        size = self.size()
        offset = self.extent_offset()
        if offset is None:
            if size:
                raise FormatError(f"/{self.path} has {size} bytes but no allocated extent")
            return OffsetFile(self.volume.fp, 0, 0)

        if size > self.extent_length():
            raise FormatError(f"/{self.path} has {size} bytes but its extent only holds {self.extent_length()}")

        LOGGER.debug("Opening /%s, %d bytes at offset %d", self.path, size, offset)
        return OffsetFile(self.volume.fp, offset, size)

    def read(self, n=-1):
        return self.reader.read(n)

    def readinto(self, buffer):
        return self.reader.readinto(buffer)

    def read_at(self, offset, n):
        return self.reader.read_at(offset, n)

    def readinto_at(self, buffer, offset):
        return self.reader.readinto_at(buffer, offset)

    def seek(self, pos, whence=os.SEEK_SET):
        return self.reader.seek(pos, whence)

    def tell(self):
        return self.reader.tell()

    def readable(self):
        return True

    def seekable(self):
        return True

    def close(self):
        self._reader = None

    def copy_to(self, fp, chunk_size=COPY_CHUNK_SIZE, callback=None):
        """
        Write the rest of the file to ``fp``, ``chunk_size`` bytes at a time.

        Parameters:
         fp - A writable file object.
         chunk_size - How much to read per call.
         callback - Called with the size of every chunk written.
        Returns:
         The number of bytes written.
        """
        buffer = bytearray(chunk_size)
        view = memoryview(buffer)
        total = 0
        while True:
            read = self.readinto(buffer)
            if not read:
                break
            fp.write(view[:read])
            total += read
            if callback:
                callback(read)
        return total

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
