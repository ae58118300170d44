"""Reading progress records and their change events."""

from .dispatcher import DispatchResult, ProgressEventDispatcher
from .events import ChangeKind, ProgressChange
from .tracker import ProgressTracker

__all__ = [
    "ChangeKind",
    "DispatchResult",
    "ProgressChange",
    "ProgressEventDispatcher",
    "ProgressTracker",
]
