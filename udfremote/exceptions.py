class UdfException(Exception):
    pass


class FormatError(UdfException):
    """The image does not follow the UDF structure we expect."""


class UnsupportedStructureError(FormatError):
    """Valid UDF, but uses a feature this reader does not handle (e.g. fragmented files)."""


class TransportError(UdfException, IOError):
    """The byte source failed to deliver the requested data."""


class CapabilityError(UdfException):
    """Operation not available on this node or on this server."""


class PathNotFoundError(UdfException, FileNotFoundError):
    pass


class PathNotADirectoryError(UdfException, NotADirectoryError):
    pass
