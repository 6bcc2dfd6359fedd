SECTOR_SIZE = 2048

# ECMA-167, Part 3, 8.4.2.1
ANCHOR_SECTOR = 256

# Descriptor tag identifiers (ECMA-167, Part 3, 7.2.1 and Part 4, 7.2.1)
TAG_PRIMARY_VOLUME = 1
TAG_ANCHOR_VOLUME_POINTER = 2
TAG_VOLUME_POINTER = 3
TAG_PARTITION = 5
TAG_LOGICAL_VOLUME = 6
TAG_TERMINATING = 8
TAG_FILE_SET = 256
TAG_FILE_IDENTIFIER = 257
TAG_FILE_ENTRY = 261
TAG_EXTENDED_FILE_ENTRY = 266

# ICB tag file types (ECMA-167, Part 4, 14.6.6)
FILE_TYPE_DIRECTORY = 4
FILE_TYPE_REGULAR = 5

# ICB tag flags, bits 0-2
AD_TYPE_SHORT = 0
AD_TYPE_LONG = 1
AD_TYPE_EXTENDED = 2
AD_TYPE_INLINE = 3

# File characteristics of a File Identifier Descriptor
FID_DIRECTORY = 0x02
FID_DELETED = 0x04
FID_PARENT = 0x08

MIN_DESCRIPTOR_SECTORS = 16
MAX_DESCRIPTOR_SECTORS = 512

CACHE_SIZE = 4 * 1024 * 1024
DEFAULT_TIMEOUT = 60
COPY_CHUNK_SIZE = 16 * 1024 * 1024
