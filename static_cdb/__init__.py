from .builder import CDBBuilder, CDBWriter
from .errors import (BuilderFinished, CDBError, CDBIOError, CorruptFile,
                     FileTooLarge, KeyTooLarge, MalformedHeader,
                     MalformedRecord, RecordTooLarge, ValueTooLarge)
from .hashing import cdb_hash
from .reader import CDBReader

__all__ = [
    "CDBBuilder", "CDBWriter", "CDBReader", "cdb_hash",
    "CDBError", "CDBIOError", "BuilderFinished", "RecordTooLarge",
    "KeyTooLarge", "ValueTooLarge", "FileTooLarge",
    "CorruptFile", "MalformedHeader", "MalformedRecord",
]
