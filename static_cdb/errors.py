"""Exceptions raised while building or reading a constant database."""


class CDBError(Exception):
    """Base class for every error raised by static_cdb."""


class CDBIOError(CDBError, OSError):
    """The underlying sink or source failed."""


class BuilderFinished(CDBError):
    """A builder was used after ``finish()``."""


class RecordTooLarge(CDBError, ValueError):
    pass


class KeyTooLarge(RecordTooLarge):
    pass


class ValueTooLarge(RecordTooLarge):
    pass


class FileTooLarge(RecordTooLarge):
    """Positions would no longer fit the 32-bit offset fields."""


class CorruptFile(CDBError):
    """The file contents are structurally inconsistent."""


class MalformedHeader(CorruptFile):
    pass


class MalformedRecord(CorruptFile):
    pass
