# Record geometry
BLOCK_SIZE = 512
END_MARKER_BLOCKS = 2

# Field widths (bytes)
NAME_SIZE = 100
PREFIX_SIZE = 155
LINKNAME_SIZE = 100
UNAME_SIZE = 32
GNAME_SIZE = 32

# Magic and version
USTAR_MAGIC = b"ustar\x00"   # 6 bytes: "ustar\0"
USTAR_VERSION = b"00"

# Checksum field is summed as eight ASCII spaces
CHECKSUM_OFFSET = 148
CHECKSUM_SIZE = 8

# Type flags
TYPE_REGULAR = b"0"
TYPE_HARDLINK = b"1"
TYPE_SYMLINK = b"2"
TYPE_CHARDEV = b"3"
TYPE_BLOCKDEV = b"4"
TYPE_DIRECTORY = b"5"
TYPE_FIFO = b"6"

KNOWN_TYPES = (
    TYPE_REGULAR,
    TYPE_HARDLINK,
    TYPE_SYMLINK,
    TYPE_CHARDEV,
    TYPE_BLOCKDEV,
    TYPE_DIRECTORY,
    TYPE_FIFO,
)

TYPE_NAMES = {
    TYPE_REGULAR: "file",
    TYPE_HARDLINK: "hardlink",
    TYPE_SYMLINK: "symlink",
    TYPE_CHARDEV: "chardev",
    TYPE_BLOCKDEV: "blockdev",
    TYPE_DIRECTORY: "dir",
    TYPE_FIFO: "fifo",
}

# Permission bits carried in the mode field
MODE_MASK = 0o777

# Device numbers: major in the high bits, minor in the low byte
DEVMINOR_MASK = 0xFF
DEVMAJOR_SHIFT = 8

# Codec IDs (0=plain, 1=gzip)
CODEC_NONE = 0
CODEC_GZIP = 1
DEFAULT_GZIP_LEVEL = 6

TAR_SUFFIX = ".tar"
GZIP_SUFFIX = ".gz"

DEFAULT_ARCHIVE_NAME = "archive"
