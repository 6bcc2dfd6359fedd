import logging

from pycdlib import udf as udfmod

from udfremote.dates import datetime_from_udf_timestamp
from udfremote.exceptions import FormatError, TransportError
from udfremote.udf.constants import (
    ANCHOR_SECTOR,
    MAX_DESCRIPTOR_SECTORS,
    MIN_DESCRIPTOR_SECTORS,
    SECTOR_SIZE,
    TAG_ANCHOR_VOLUME_POINTER,
    TAG_FILE_SET,
    TAG_LOGICAL_VOLUME,
    TAG_PARTITION,
    TAG_PRIMARY_VOLUME,
    TAG_TERMINATING,
    TAG_VOLUME_POINTER,
)
from udfremote.udf.descriptors import UDFFileSetDescriptor, parse_descriptor, parse_tag
from udfremote.udf.directory import Directory
from udfremote.udf.path_reader import resolve

LOGGER = logging.getLogger(__name__)


def _decode_dstring(value):
    # OSTA dstring: compression id, characters, used length in the last byte
    length = value[-1]
    if not length:
        return ""
    encoding = "utf-16_be" if value[0] == 16 else "latin-1"
    return value[1:length].decode(encoding, errors="replace").strip()


class Volume:
    """
    A UDF volume read from a random access byte source.

    Parsing happens on construction: the anchor at sector 256, the main Volume
    Descriptor Sequence it points to, then the File Set Descriptor and root
    File Entry inside the partition. Anything beyond that (directory contents,
    file entries of other nodes) is read on demand.
    """

    def __init__(self, fp):
        self.fp = fp
        self.sector_size = SECTOR_SIZE
        self.pvd = None
        self.partition = None
        self.logical_volume = None

        self.anchor = self._parse_anchor()
        self._parse_volume_descriptors(self.anchor.main_vd)

        if self.partition is None:
            raise FormatError("missing partition descriptor in the volume descriptor sequence")
        if self.logical_volume is None:
            raise FormatError("missing logical volume descriptor in the volume descriptor sequence")

        self.partition_start = self.partition.part_start_location
        self.file_set = self._parse_file_set()

        self.root = Directory(self, self.file_set.root_dir_icb)
        if not self.root.is_directory():
            raise FormatError("root File Entry is not a directory")
        LOGGER.info("Opened UDF volume %r, partition starts at sector %d",
                    self.get_pvd_info().get("volume_identifier", ""), self.partition_start)

    def read_sectors(self, sector, count=1):
        size = count * self.sector_size
        data = self.fp.read_at(sector * self.sector_size, size)
        if len(data) != size:
            raise TransportError(f"Short read at sector {sector}: got {len(data)} of {size} bytes")
        return data

    def read_sector(self, sector):
        return self.read_sectors(sector, 1)

    def partition_sector(self, block):
        return self.partition_start + block

    def _parse_anchor(self):
        data = self.read_sector(ANCHOR_SECTOR)
        try:
            desc_tag = parse_tag(data, ANCHOR_SECTOR)
        except FormatError as e:
            raise FormatError(f"missing anchor descriptor at sector {ANCHOR_SECTOR}") from e
        if desc_tag.tag_ident != TAG_ANCHOR_VOLUME_POINTER:
            raise FormatError(f"missing anchor descriptor at sector {ANCHOR_SECTOR} "
                              f"(found tag {desc_tag.tag_ident})")
        return parse_descriptor(udfmod.UDFAnchorVolumeStructure, data, ANCHOR_SECTOR, desc_tag)

    @staticmethod
    def _sequence_sectors(extent_ad):
        sectors = extent_ad.extent_length // SECTOR_SIZE
        return min(max(sectors, MIN_DESCRIPTOR_SECTORS), MAX_DESCRIPTOR_SECTORS)

    def _keep_prevailing(self, attr, desc):
        # ECMA-167, Part 3, 8.4.3: the highest sequence number prevails
        current = getattr(self, attr)
        if current is not None:
            LOGGER.warning("Duplicate %s, sequence numbers %d and %d", type(desc).__name__,
                           current.vol_desc_seqnum, desc.vol_desc_seqnum)
            if current.vol_desc_seqnum > desc.vol_desc_seqnum:
                return
        setattr(self, attr, desc)

    def _parse_volume_descriptors(self, extent_ad):
        sector = extent_ad.extent_location
        limit = self._sequence_sectors(extent_ad)
        index = 0
        scanned = 0

        while True:
            if index >= limit or scanned >= MAX_DESCRIPTOR_SECTORS:
                raise FormatError(f"unterminated volume descriptor sequence, "
                                  f"no terminating descriptor after {scanned} sectors")

            data = self.read_sector(sector)
            scanned += 1

            if not any(data):
                # An unrecorded sector also ends the sequence
                LOGGER.debug("Unrecorded sector %d ends the volume descriptor sequence", sector)
                return

            desc_tag = parse_tag(data, sector)
            LOGGER.debug("Volume descriptor with tag %d at sector %d", desc_tag.tag_ident, sector)

            if desc_tag.tag_ident == TAG_TERMINATING:
                return
            elif desc_tag.tag_ident == TAG_PRIMARY_VOLUME:
                self._keep_prevailing("pvd", parse_descriptor(
                    udfmod.UDFPrimaryVolumeDescriptor, data, sector, desc_tag))
            elif desc_tag.tag_ident == TAG_PARTITION:
                self._keep_prevailing("partition", parse_descriptor(
                    udfmod.UDFPartitionVolumeDescriptor, data, sector, desc_tag))
            elif desc_tag.tag_ident == TAG_LOGICAL_VOLUME:
                self._keep_prevailing("logical_volume", parse_descriptor(
                    udfmod.UDFLogicalVolumeDescriptor, data, sector, desc_tag))
            elif desc_tag.tag_ident == TAG_VOLUME_POINTER:
                pointer = parse_descriptor(udfmod.UDFVolumeDescriptorPointer, data, sector, desc_tag)
                next_extent = pointer.next_vol_desc_seq_extent
                LOGGER.debug("Volume descriptor sequence continues at sector %d", next_extent.extent_location)
                sector = next_extent.extent_location
                limit = self._sequence_sectors(next_extent)
                index = 0
                continue

            sector += 1
            index += 1

    def _parse_file_set(self):
        sector = self.partition_sector(self.logical_volume.logical_volume_contents_use.log_block_num)
        data = self.read_sector(sector)
        desc_tag = parse_tag(data, sector)
        if desc_tag.tag_ident != TAG_FILE_SET:
            raise FormatError(f"UDF File Set Descriptor tag identifier at sector {sector} "
                              f"not {TAG_FILE_SET} ({desc_tag.tag_ident})")
        return parse_descriptor(UDFFileSetDescriptor, data, sector, desc_tag)

    def open(self, path):
        return resolve(self, path)

    def get_pvd_info(self):
        info = {}
        if self.pvd is None:
            return info

        info["volume_identifier"] = _decode_dstring(self.pvd.vol_ident)
        info["volume_set_identifier"] = _decode_dstring(self.pvd.vol_set_ident)
        info["volume_creation_date"] = datetime_from_udf_timestamp(self.pvd.recording_date)

        return info

    def close(self):
        self.fp.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
