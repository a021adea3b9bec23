from .attendance import AttendancePolicy, classify, effective_status, summarize
from .conflicts import find_overlap, overlaps, validate
from .recurrence import align_anchor, expand, parse_rule
from .session_gate import JoinWindow, can_join_now

__all__ = [
    "AttendancePolicy",
    "JoinWindow",
    "align_anchor",
    "can_join_now",
    "classify",
    "effective_status",
    "expand",
    "find_overlap",
    "overlaps",
    "parse_rule",
    "summarize",
    "validate",
]
