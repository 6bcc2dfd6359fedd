import struct

from pycdlib import pycdlibexception
from pycdlib import udf as udfmod

from udfremote.dates import UNSPECIFIED_TZ
from udfremote.exceptions import FormatError, UnsupportedStructureError
from udfremote.udf.constants import (
    AD_TYPE_EXTENDED,
    FID_DIRECTORY,
    FID_PARENT,
    TAG_EXTENDED_FILE_ENTRY,
    TAG_FILE_ENTRY,
    TAG_FILE_IDENTIFIER,
)

# Fixed part of a File Identifier Descriptor (ECMA-167, Part 4, 14.4)
FID_HEADER_SIZE = 38

# Valid range of every calendar field of a timestamp
TIMESTAMP_RANGES = (
    ("year", 1, 9999),
    ("month", 1, 12),
    ("day", 1, 31),
    ("hour", 0, 23),
    ("minute", 0, 59),
    ("second", 0, 59),
)


class UDFTimestamp(udfmod.UDFTimestamp):
    def parse(self, data):
        """Like pycdlib's, but a field out of range is set to None instead of rejecting the descriptor."""
        if self._initialized:
            raise pycdlibexception.PyCdlibInternalError('UDF Timestamp already initialized')

        (tz, type_and_tz, self.year, self.month, self.day, self.hour, self.minute,
         self.second, self.centiseconds, self.hundreds_microseconds,
         self.microseconds) = struct.unpack_from(self.FMT, data, 0)

        self.timetype = type_and_tz >> 4
        offset = ((type_and_tz & 0xf) << 8) | tz
        if offset & 0x800:
            offset -= 0x1000
        self.tz = offset if -1440 <= offset <= 1440 else UNSPECIFIED_TZ

        for field, low, high in TIMESTAMP_RANGES:
            if not low <= getattr(self, field) <= high:
                setattr(self, field, None)

        self._initialized = True
udfmod.UDFTimestamp = UDFTimestamp


class UDFFileSetDescriptor(udfmod.UDFFileSetDescriptor):
    def parse(self, data, extent, desc_tag):
        """
        Parse only what locating the root needs. pycdlib also insists on the
        interchange levels and character sets of DVD video discs, which other
        images do not use.
        """
        if self._initialized:
            raise pycdlibexception.PyCdlibInternalError('UDF File Set Descriptor already initialized')

        fields = struct.unpack_from(self.FMT, data, 0)
        recording_date, self.log_vol_ident, self.file_set_ident = fields[1], fields[9], fields[11]
        root_dir_icb, domain_ident = fields[14], fields[15]

        self.domain_ident = udfmod.UDFEntityID()
        self.domain_ident.parse(domain_ident)
        if not self.domain_ident.identifier.startswith(b'*OSTA UDF Compliant'):
            raise pycdlibexception.PyCdlibInvalidISO("File Set Descriptor domain is not '*OSTA UDF Compliant'")

        self.desc_tag = desc_tag
        self.recording_date = udfmod.UDFTimestamp()
        self.recording_date.parse(recording_date)
        self.root_dir_icb = udfmod.UDFLongAD()
        self.root_dir_icb.parse(root_dir_icb)
        self.orig_extent_loc = extent

        self._initialized = True


class UDFFileIdentifierDescriptor(udfmod.UDFFileIdentifierDescriptor):
    def parse(self, data, extent, desc_tag, parent):
        """
        Like pycdlib's, but records without a name carry no compression ID, and
        an unknown compression ID is read as 8 bit.

        Returns:
         The length of the record, padding included.
        """
        if self._initialized:
            raise pycdlibexception.PyCdlibInternalError('UDF File Identifier Descriptor already initialized')

        (tag_unused, file_version_num, self.file_characteristics,
         self.len_fi, icb, self.len_impl_use) = struct.unpack_from(self.FMT, data, 0)

        if file_version_num != 1:
            raise pycdlibexception.PyCdlibInvalidISO('File Identifier Descriptor file version number not 1')

        self.desc_tag = desc_tag
        self.isdir = bool(self.file_characteristics & FID_DIRECTORY)
        self.isparent = bool(self.file_characteristics & FID_PARENT)

        self.icb = udfmod.UDFLongAD()
        self.icb.parse(icb)

        start = FID_HEADER_SIZE + self.len_impl_use
        end = start + self.len_fi
        self.impl_use = data[FID_HEADER_SIZE:start]

        self.encoding = 'latin-1'
        self.fi = b''
        if self.len_fi and not self.isparent:
            if data[start] == 16:
                self.encoding = 'utf-16_be'
            self.fi = data[start + 1:end]

        self.orig_extent_loc = extent
        self.parent = parent
        self._initialized = True

        return end + self.pad(end)


def parse_tag(data, extent):
    desc_tag = udfmod.UDFTag()
    try:
        desc_tag.parse(data, extent)
    except (pycdlibexception.PyCdlibException, struct.error) as e:
        raise FormatError(f"Invalid descriptor tag at sector {extent}: {e}") from e
    return desc_tag


def parse_descriptor(cls, data, extent, desc_tag):
    """Parse ``data`` as a pycdlib descriptor class, whose tag has already been checked."""
    desc = cls()
    try:
        desc.parse(data, extent, desc_tag)
    except (pycdlibexception.PyCdlibException, struct.error) as e:
        raise FormatError(f"Invalid {cls.__name__} at sector {extent}: {e}") from e
    return desc


def parse_file_entry(data, extent):
    if not any(data):
        # We have seen ISOs in the wild where a File Identifier points to an
        # all zero File Entry; there is nothing to read behind it.
        raise FormatError(f"Blank UDF File Entry at sector {extent}")

    desc_tag = parse_tag(data, extent)

    # Extended allocation descriptors are refused by pycdlib with an internal
    # error, so check for them before handing the data over.
    icb_flags, = struct.unpack_from("<H", data, 34)
    if icb_flags & 0x7 == AD_TYPE_EXTENDED:
        raise UnsupportedStructureError(f"Extended allocation descriptors at sector {extent} are not supported")

    try:
        if desc_tag.tag_ident == TAG_FILE_ENTRY:
            file_entry = udfmod.UDFFileEntry()
            file_entry.parse(data, extent, None, desc_tag)
        elif desc_tag.tag_ident == TAG_EXTENDED_FILE_ENTRY:
            file_entry = udfmod.UDFExtendedFileEntry()
            file_entry.parse(data, extent, desc_tag)
        else:
            raise FormatError(f"UDF File Entry tag identifier at sector {extent} "
                              f"not {TAG_FILE_ENTRY} or {TAG_EXTENDED_FILE_ENTRY} ({desc_tag.tag_ident})")
    except (pycdlibexception.PyCdlibException, struct.error) as e:
        raise FormatError(f"Invalid UDF File Entry at sector {extent}: {e}") from e

    return file_entry


def parse_file_identifiers(data, extent, length):
    """
    Yield every File Identifier Descriptor packed in the first ``length`` bytes
    of a directory extent.

    Parameters:
     data - The directory extent, read in whole sectors.
     extent - The absolute sector the extent starts at.
     length - The recorded length of the extent.
    """
    offset = 0
    while offset < length:
        if length - offset < FID_HEADER_SIZE:
            raise FormatError(f"Truncated File Identifier Descriptor in directory at sector {extent}")

        len_fi, = struct.unpack_from("<B", data, offset + 19)
        len_impl_use, = struct.unpack_from("<H", data, offset + 36)
        unpadded = FID_HEADER_SIZE + len_impl_use + len_fi
        if unpadded > length - offset:
            raise FormatError(f"File Identifier Descriptor of {unpadded} bytes overruns directory at sector {extent}")
        record = data[offset:offset + unpadded + UDFFileIdentifierDescriptor.pad(unpadded)]

        desc_tag = parse_tag(record, extent)
        if desc_tag.tag_ident != TAG_FILE_IDENTIFIER:
            raise FormatError(f"UDF File Identifier tag identifier in directory at sector {extent} "
                              f"not {TAG_FILE_IDENTIFIER} ({desc_tag.tag_ident})")

        fid = UDFFileIdentifierDescriptor()
        try:
            consumed = fid.parse(record, extent, desc_tag, None)
        except (pycdlibexception.PyCdlibException, struct.error, IndexError) as e:
            raise FormatError(f"Invalid UDF File Identifier in directory at sector {extent}: {e}") from e

        yield fid
        offset += consumed


def decode_identifier(fid):
    if fid.isparent or not fid.len_fi:
        return ""
    return fid.fi.decode(fid.encoding, errors="replace")
