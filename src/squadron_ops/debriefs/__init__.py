"""Mission debrief lifecycle and access checks."""

from .access import DebriefAccess
from .status import (
    ALLOWED_TRANSITIONS,
    DebriefRecord,
    DebriefStatus,
    InvalidStatusTransition,
    transition,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "DebriefAccess",
    "DebriefRecord",
    "DebriefStatus",
    "InvalidStatusTransition",
    "transition",
]
