import logging

from pycdlib import udf as udfmod

from udfremote.dates import datetime_from_udf_timestamp
from udfremote.exceptions import CapabilityError, FormatError, UnsupportedStructureError
from udfremote.udf.constants import FILE_TYPE_DIRECTORY, SECTOR_SIZE
from udfremote.udf.descriptors import parse_file_entry

LOGGER = logging.getLogger(__name__)

EXTENT_LENGTH_MASK = 0x3FFFFFFF


class DirectoryEntry:
    """
    A node of the UDF tree, either a ``File`` or a ``Directory``.

    Only the name and ICB location are known up front. The File Entry is read
    the first time metadata is asked for and kept for the lifetime of the node.
    """

    FILE_TYPE = None

    def __init__(self, volume, icb, fid=None, name="", parent_path=""):
        self.volume = volume
        self.icb = icb
        self.fid = fid
        self.name = name
        self.path = "/".join(filter(None, [parent_path, name]))
        self._file_entry = None

    @property
    def file_entry(self):
        if self._file_entry is None:
            sector = self.volume.partition_sector(self.icb.log_block_num)
            LOGGER.debug("Reading File Entry of /%s at sector %d", self.path, sector)
            file_entry = parse_file_entry(self.volume.read_sector(sector), sector)
            if file_entry.icb_tag.file_type != self.FILE_TYPE:
                raise FormatError(f"File Entry of /{self.path} has file type {file_entry.icb_tag.file_type}, "
                                  f"expected {self.FILE_TYPE}")
            self._file_entry = file_entry
        return self._file_entry

    def is_directory(self):
        return self.file_entry.icb_tag.file_type == FILE_TYPE_DIRECTORY

    def size(self):
        return self.file_entry.info_len

    def modified_time(self):
        return datetime_from_udf_timestamp(self.file_entry.mod_time)

    def allocation_descriptor(self):
        alloc_descs = self.file_entry.alloc_descs
        if len(alloc_descs) > 1:
            raise UnsupportedStructureError(f"/{self.path} is recorded in {len(alloc_descs)} extents, "
                                            f"only single extent entries are supported")
        if not alloc_descs:
            return None
        return alloc_descs[0]

    def extent_offset(self):
        """Absolute byte offset of the entry's data, or None if nothing is allocated."""
        alloc_desc = self.allocation_descriptor()
        if alloc_desc is None:
            return None
        if isinstance(alloc_desc, udfmod.UDFInlineAD):
            # Embedded data lives in the File Entry itself
            return alloc_desc.log_block_num * SECTOR_SIZE + alloc_desc.offset
        return self.volume.partition_sector(alloc_desc.log_block_num) * SECTOR_SIZE

    def extent_length(self):
        alloc_desc = self.allocation_descriptor()
        if alloc_desc is None:
            return 0
        return alloc_desc.extent_length & EXTENT_LENGTH_MASK

    def start_sector(self):
        offset = self.extent_offset()
        if offset is None:
            return None
        return offset // SECTOR_SIZE

    def list(self):
        raise CapabilityError(f"/{self.path} is not a directory")

    def _not_a_file(self, *args, **kwargs):
        raise CapabilityError(f"/{self.path} is not a regular file")

    read = readinto = read_at = readinto_at = seek = tell = copy_to = _not_a_file

    def close(self):
        pass

    def __repr__(self):
        return f"<{type(self).__name__} /{self.path}>"
