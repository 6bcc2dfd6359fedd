import logging

from udfremote.udf.constants import FID_DELETED, FILE_TYPE_DIRECTORY, SECTOR_SIZE
from udfremote.udf.descriptors import decode_identifier, parse_file_identifiers
from udfremote.udf.directory_entry import DirectoryEntry
from udfremote.udf.file import File

LOGGER = logging.getLogger(__name__)


class Directory(DirectoryEntry):
    FILE_TYPE = FILE_TYPE_DIRECTORY

    def __init__(self, volume, icb, fid=None, name="", parent_path=""):
        super().__init__(volume, icb, fid, name, parent_path)
        self._entries = None

    def list(self):
        if self._entries is None:
            self._entries = list(self._read_entries())
        return list(self._entries)

    def _read_entries(self):
        offset = self.extent_offset()
        if offset is None:
            return

        length = self.extent_length()
        sector, skip = divmod(offset, SECTOR_SIZE)
        count = (skip + length + SECTOR_SIZE - 1) // SECTOR_SIZE
        LOGGER.debug("Reading directory /%s, %d bytes at sector %d", self.path, length, sector)
        data = self.volume.read_sectors(sector, count)[skip:skip + length]

        for fid in parse_file_identifiers(data, sector, length):
            if fid.isparent or not fid.len_fi:
                continue
            if fid.file_characteristics & FID_DELETED:
                continue

            cls = Directory if fid.isdir else File
            yield cls(self.volume, fid.icb, fid, decode_identifier(fid), self.path)
