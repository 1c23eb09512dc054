"""Compare a loaded repository against a remote snapshot.

Pure and synchronous: no I/O, no exceptions for well-typed input, and
output ordering that depends only on the inputs.
"""

from fleetplan.diff.engine import UNGROUPED_TEAM, DiffEngine, diff
from fleetplan.diff.models import (
    GLOBAL_SCOPE_NAME,
    ChangeKind,
    ConfigChange,
    DiffResult,
    FieldDiff,
    LabelRef,
    LabelValidation,
    Message,
    ResourceChange,
    ResourceDiff,
    Severity,
)

__all__ = [
    "GLOBAL_SCOPE_NAME",
    "UNGROUPED_TEAM",
    "ChangeKind",
    "ConfigChange",
    "DiffEngine",
    "DiffResult",
    "FieldDiff",
    "LabelRef",
    "LabelValidation",
    "Message",
    "ResourceChange",
    "ResourceDiff",
    "Severity",
    "diff",
]
