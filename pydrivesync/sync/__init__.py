"""Reconciliation of a local directory with a remote drive."""

from .comparator import ResourceComparator, SyncAction, SyncDecision
from .engine import SyncEngine
from .ignore import BUILTIN_IGNORE_PATTERN, IgnorePattern
from .operations import SyncOperations
from .resource import Resource, ResourceKind, ResourceState
from .state import (
    MergeOutcome,
    SyncState,
    Watermarks,
    load_watermarks,
    save_watermarks,
)
from .tree import ResourceTree

__all__ = [
    "SyncEngine",
    "SyncOperations",
    "SyncState",
    "SyncAction",
    "SyncDecision",
    "ResourceComparator",
    "Resource",
    "ResourceKind",
    "ResourceState",
    "ResourceTree",
    "IgnorePattern",
    "BUILTIN_IGNORE_PATTERN",
    "MergeOutcome",
    "Watermarks",
    "load_watermarks",
    "save_watermarks",
]
