"""
Local change capture: filter, dedup window, pending change set and the
capture component that ties them to host notifications.
"""

from .capture import ChangeCapture, MutationKind
from .dedup import DedupWindow
from .filter import CategoryFilter
from .pending import PendingChangeSet, PendingEntry

__all__ = [
    "CategoryFilter",
    "ChangeCapture",
    "DedupWindow",
    "MutationKind",
    "PendingChangeSet",
    "PendingEntry",
]
