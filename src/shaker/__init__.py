"""Ordered content tree over SQLite, with stable sortable ordinals."""

from .cli import cli
from .errors import (
    CapacityExceeded,
    ConcurrentModification,
    CycleDetected,
    DanglingParent,
    DuplicateOrdinal,
    DuplicateSlug,
    HasChildren,
    InvalidIndex,
    InvalidOrdinal,
    NotFound,
    ShakerError,
    SourceError,
)
from .ordinal import OrdinalCodec
from .rebalance import RebalanceManager
from .store import Entry, EntryStore
from .tree import EntryDraft, TreeOperations

__all__ = [
    "cli",
    "main",
    # Core classes
    "Entry",
    "EntryDraft",
    "EntryStore",
    "OrdinalCodec",
    "RebalanceManager",
    "TreeOperations",
    # Exceptions
    "ShakerError",
    "NotFound",
    "DuplicateOrdinal",
    "DuplicateSlug",
    "DanglingParent",
    "CycleDetected",
    "HasChildren",
    "InvalidIndex",
    "InvalidOrdinal",
    "CapacityExceeded",
    "ConcurrentModification",
    "SourceError",
]


def main() -> None:
    """Entry point for the shaker CLI."""
    cli()
