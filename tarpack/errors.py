class TarError(Exception):
    """Base class for tarpack-specific errors."""


# Build side
class UnsupportedFileType(TarError):
    """Filesystem entry kind that has no USTAR header representation."""

    def __init__(self, path: str, mode: int):
        super().__init__(f"Unsupported file type for {path} (mode {oct(mode)})")
        self.path = path
        self.mode = mode


class HeaderFieldOverflow(TarError):
    """A value does not fit the fixed width of its header field."""

    def __init__(self, field: str, value, width: int):
        super().__init__(f"Value {value!r} does not fit header field '{field}' ({width} bytes)")
        self.field = field
        self.value = value
        self.width = width


class NameTooLongError(TarError):
    def __init__(self, path: str):
        super().__init__(f"Path is too long or cannot be split into prefix/name: {path}")
        self.path = path


# Decode side
class MalformedHeader(TarError):
    """A numeric header field could not be parsed; the decoder uses zero instead."""

    def __init__(self, field: str, raw: bytes):
        super().__init__(f"Malformed '{field}' field {raw!r}; using 0")
        self.field = field
        self.raw = raw


# Extract side (recoverable, reported as warnings)
class PrivilegeError(TarError):
    def __init__(self, path: str, cause: OSError):
        super().__init__(f"Could not create {path}: {cause.strerror or cause} (elevated privileges may be required)")
        self.path = path
        self.cause = cause


class UnknownTypeFlag(TarError):
    def __init__(self, path: str, flag: bytes):
        super().__init__(f"Unknown type flag {flag!r} for {path}; entry skipped")
        self.path = path
        self.flag = flag


class MetadataError(TarError):
    """Best-effort chmod/utime failed after an entry was created."""

    def __init__(self, path: str, what: str, cause: OSError):
        super().__init__(f"Failed to set {what} on {path}: {cause}")
        self.path = path
        self.cause = cause


# Extract side (fatal)
class TruncatedArchiveError(TarError):
    def __init__(self, path: str, expected: int, got: int):
        super().__init__(f"Archive truncated in content of {path}: expected {expected} bytes, got {got}")
        self.path = path


class UnsafePathError(TarError):
    pass


class DirectoryExistsError(TarError):
    def __init__(self, path: str):
        super().__init__(f"Directory already exists: {path}")
        self.path = path


class UnsupportedArchiveError(TarError):
    pass
