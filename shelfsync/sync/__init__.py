"""Field reconciliation and incremental sync."""

from .bindings import FieldBindingStore
from .changes import ChangeSet, classify_changes
from .field_mapper import ContentRecord
from .matchers import ExactNameMatcher, ScoredMatcher, build_matcher
from .reconciler import FieldReconciler
from .sync_engine import SyncEngine, SyncRunRegistry

__all__ = [
    "FieldBindingStore",
    "ChangeSet",
    "classify_changes",
    "ContentRecord",
    "ExactNameMatcher",
    "ScoredMatcher",
    "build_matcher",
    "FieldReconciler",
    "SyncEngine",
    "SyncRunRegistry",
]
