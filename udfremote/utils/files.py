import logging
import mmap
import os

from udfremote.exceptions import TransportError

LOGGER = logging.getLogger(__name__)


class BaseFile:
    """
    A random access byte source.

    Subclasses implement ``readinto_at`` and ``__len__``. ``readinto_at`` fills
    as much of the buffer as possible starting at an absolute offset and returns
    the number of bytes written; anything less than ``len(buffer)`` means the end
    of the data was reached. Failures to fetch the data raise instead.

    A cursor is kept on top of that so instances can also be handed to code
    expecting a regular read-only file object.
    """

    def __init__(self):
        self.pos = 0

    def seek(self, pos, whence=os.SEEK_SET):
        LOGGER.debug("seek %d %d", pos, whence)
        if whence == os.SEEK_SET:
            new_pos = pos
        elif whence == os.SEEK_CUR:
            new_pos = self.pos + pos
        elif whence == os.SEEK_END:
            new_pos = len(self) + pos
        else:
            raise ValueError(f"Invalid whence {whence}")
        if new_pos < 0:
            raise ValueError(f"Negative seek position {new_pos}")
        self.pos = new_pos
        return self.pos

    def tell(self):
        return self.pos

    def peek(self, n):
        return self.read_at(self.pos, n)

    def read(self, n=-1):
        if n is None or n < 0:
            n = max(0, len(self) - self.pos)
        ret = self.read_at(self.pos, n)
        self.pos += len(ret)
        return ret

    def readinto(self, buffer):
        read = self.readinto_at(buffer, self.pos)
        self.pos += read
        return read

    def read_at(self, offset, n):
        buffer = bytearray(n)
        read = self.readinto_at(buffer, offset)
        return bytes(memoryview(buffer)[:read])

    def readinto_at(self, buffer, offset):
        raise NotImplementedError

    def readable(self):
        return True

    def seekable(self):
        return True

    def close(self):
        pass

    def length(self):
        return len(self)

    def __len__(self):
        raise NotImplementedError

    def __getitem__(self, key):
        if isinstance(key, slice):
            start, stop, step = key.indices(len(self))
            if stop <= start:
                return b""
            return self.read_at(start, stop - start)[::step]
        if key < 0:
            key += len(self)
        data = self.read_at(key, 1)
        if not data:
            raise IndexError("read position out of range")
        return data[0]

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class BufferSource(BaseFile):
    """Byte source backed by anything supporting the buffer protocol (bytes, bytearray, mmap)."""

    def __init__(self, buffer):
        super().__init__()
        self.buffer = buffer

    @property
    def name(self):
        return getattr(self.buffer, "name", None)

    def readinto_at(self, buffer, offset):
        if offset < 0:
            raise ValueError(f"Negative read offset {offset}")
        end = min(offset + len(buffer), len(self.buffer))
        if offset >= end:
            return 0
        n = end - offset
        memoryview(buffer)[:n] = self.buffer[offset:end]
        return n

    def __len__(self):
        return len(self.buffer)


class MmappedFile(BufferSource):
    def __init__(self, fp):
        if isinstance(fp, mmap.mmap):
            _mmap = fp
            self._name = None
        else:
            _mmap = mmap.mmap(fp.fileno(), 0, access=mmap.ACCESS_READ)
            self._name = fp.name
        super().__init__(_mmap)

    @property
    def name(self):
        return self._name

    def close(self):
        self.buffer.close()


class OffsetFile(BaseFile):
    """
    A window of ``size`` bytes starting at ``offset`` in another source.

    Reads are clamped to the window, so nothing past ``offset + size`` is ever
    requested from the underlying source. The window is expected to be fully
    backed: a source ending inside it raises TransportError.
    """

    def __init__(self, source, offset, size):
        super().__init__()
        self.source = source
        self.offset = offset
        self.size = size

    def readinto_at(self, buffer, offset):
        if offset < 0:
            raise ValueError(f"Negative read offset {offset}")
        if offset >= self.size:
            return 0
        n = min(len(buffer), self.size - offset)
        read = self.source.readinto_at(memoryview(buffer)[:n], self.offset + offset)
        if read != n:
            raise TransportError(f"Short read at offset {self.offset + offset}: got {read} of {n} bytes")
        return n

    def __len__(self):
        return self.size
