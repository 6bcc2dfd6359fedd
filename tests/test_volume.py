"""Tests for volume parsing: anchor, descriptor sequence, file set and root."""

import datetime

import pytest

from udfremote.exceptions import FormatError, TransportError
from udfremote.udf.constants import (
    ANCHOR_SECTOR,
    SECTOR_SIZE,
    TAG_PARTITION,
    TAG_PRIMARY_VOLUME,
    TAG_TERMINATING,
)
from udfremote.udf.directory import Directory
from udfremote.udf.volume import Volume
from udfremote.utils.files import BufferSource

from conftest import CountingSource, find_descriptor, sector


class OverlaySource(BufferSource):
    """Serves ``data`` in place of every sector between ``first`` and the anchor."""

    def __init__(self, buffer, first, data):
        super().__init__(buffer)
        self.first = first
        self.data = data

    def readinto_at(self, buffer, offset):
        if self.first <= offset // SECTOR_SIZE < ANCHOR_SECTOR and len(buffer) == SECTOR_SIZE:
            buffer[:] = self.data
            return SECTOR_SIZE
        return super().readinto_at(buffer, offset)


class TestVolume:

    def test_parses_well_formed_image(self, volume):
        assert volume.partition is not None
        assert volume.logical_volume is not None
        assert volume.pvd is not None
        assert volume.partition_start == volume.partition.part_start_location
        assert isinstance(volume.root, Directory)
        assert volume.root.is_directory()
        assert volume.root.name == ""
        assert volume.root.path == ""

    def test_partition_sector(self, volume):
        assert volume.partition_sector(0) == volume.partition_start
        assert volume.partition_sector(7) == volume.partition_start + 7

    def test_pvd_info(self, volume):
        info = volume.get_pvd_info()
        assert set(info) == {"volume_identifier", "volume_set_identifier", "volume_creation_date"}
        assert isinstance(info["volume_creation_date"], datetime.datetime)

    def test_open_root(self, volume):
        assert volume.open("/") is volume.root

    def test_close_closes_source(self, image_bytes):
        closed = []

        class ClosingSource(BufferSource):
            def close(self):
                closed.append(True)

        with Volume(ClosingSource(image_bytes)):
            pass
        assert closed == [True]


class TestMalformedVolume:

    def test_bad_anchor_stops_immediately(self, image):
        image[ANCHOR_SECTOR * SECTOR_SIZE:(ANCHOR_SECTOR + 1) * SECTOR_SIZE] = bytes(SECTOR_SIZE)
        source = CountingSource(bytes(image))

        with pytest.raises(FormatError, match="missing anchor descriptor"):
            Volume(source)
        assert source.reads == [(ANCHOR_SECTOR * SECTOR_SIZE, SECTOR_SIZE)]

    def test_wrong_tag_at_anchor(self, image):
        pvd = find_descriptor(image, TAG_PRIMARY_VOLUME)
        image[ANCHOR_SECTOR * SECTOR_SIZE:(ANCHOR_SECTOR + 1) * SECTOR_SIZE] = sector(image, pvd)
        source = CountingSource(bytes(image))

        with pytest.raises(FormatError, match="missing anchor descriptor"):
            Volume(source)
        assert len(source.reads) == 1

    def test_missing_partition_descriptor(self, image):
        pvd = find_descriptor(image, TAG_PRIMARY_VOLUME)
        partition = find_descriptor(image, TAG_PARTITION)
        image[partition * SECTOR_SIZE:(partition + 1) * SECTOR_SIZE] = sector(image, pvd)

        with pytest.raises(FormatError, match="missing partition descriptor"):
            Volume(BufferSource(bytes(image)))

    def test_unterminated_sequence(self, image_bytes):
        terminator = find_descriptor(image_bytes, TAG_TERMINATING)
        pvd = sector(image_bytes, find_descriptor(image_bytes, TAG_PRIMARY_VOLUME))
        source = OverlaySource(image_bytes, terminator, pvd)

        with pytest.raises(FormatError, match="unterminated volume descriptor sequence"):
            Volume(source)

    def test_truncated_image(self, image_bytes):
        with pytest.raises(TransportError):
            Volume(BufferSource(image_bytes[:ANCHOR_SECTOR * SECTOR_SIZE + 100]))

    def test_corrupt_descriptor(self, image):
        partition = find_descriptor(image, TAG_PARTITION)
        # Flip a byte covered by the descriptor CRC
        image[partition * SECTOR_SIZE + 40] ^= 0xFF

        with pytest.raises(FormatError):
            Volume(BufferSource(bytes(image)))
