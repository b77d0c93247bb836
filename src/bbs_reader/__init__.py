"""Legacy BBS thread decoding and client-side NG filtering."""

from bbs_reader.core.ng.store import NGRuleStore
from bbs_reader.core.parser.dat_reader import DatFormatError, parse_thread
from bbs_reader.core.parser.subject_reader import parse_thread_index
from bbs_reader.protocols import SchedulerProtocol, StorageProtocol

__all__ = [
    "DatFormatError",
    "NGRuleStore",
    "SchedulerProtocol",
    "StorageProtocol",
    "parse_thread",
    "parse_thread_index",
]
