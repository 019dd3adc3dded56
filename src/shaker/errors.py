"""Exception taxonomy for the entry tree.

Structural errors (duplicate keys, dangling parents, cycles, ...) are caller
errors and are never retried. ``OrdinalExhausted`` stays inside the package:
tree operations recover from it by rebalancing.
"""


class ShakerError(Exception):
    """Base exception for all entry tree errors."""


class NotFound(ShakerError):
    """Raised when no entry has the requested ordinal."""

    def __init__(self, ordinal: str):
        super().__init__(f"Entry not found: {ordinal}")
        self.ordinal = ordinal


class DuplicateOrdinal(ShakerError):
    """Raised when an ordinal is live or was issued before."""

    def __init__(self, ordinal: str):
        super().__init__(f"Ordinal already issued: {ordinal}")
        self.ordinal = ordinal


class DuplicateSlug(ShakerError):
    """Raised when a slug already exists among the target siblings."""

    def __init__(self, slug: str, parent: str | None):
        where = f"under {parent}" if parent else "at the root level"
        super().__init__(f"Slug '{slug}' already exists {where}")
        self.slug = slug
        self.parent = parent


class DanglingParent(ShakerError):
    """Raised when a parent reference does not resolve to an entry."""

    def __init__(self, parent: str):
        super().__init__(f"Parent does not exist: {parent}")
        self.parent = parent


class CycleDetected(ShakerError):
    """Raised when an entry would become its own ancestor."""

    def __init__(self, ordinal: str, new_parent: str):
        super().__init__(f"Cannot move {ordinal} under its own subtree ({new_parent})")
        self.ordinal = ordinal
        self.new_parent = new_parent


class HasChildren(ShakerError):
    """Raised when a non-cascading delete targets a branch entry."""

    def __init__(self, ordinal: str):
        super().__init__(f"Entry has children: {ordinal} (use cascade to delete the subtree)")
        self.ordinal = ordinal


class InvalidIndex(ShakerError):
    """Raised for a negative or non-integer sibling index."""

    def __init__(self, index):
        super().__init__(f"Invalid sibling index: {index!r}")
        self.index = index


class InvalidOrdinal(ShakerError):
    """Raised when an ordinal is malformed or does not extend its parent's."""


class OrdinalExhausted(ShakerError):
    """Raised by the codec when no key fits between two neighbours."""

    def __init__(self, low: str | None, high: str | None):
        super().__init__(f"No key left between {low!r} and {high!r}")
        self.low = low
        self.high = high


class CapacityExceeded(ShakerError):
    """Raised when a whole sibling group cannot hold one more key."""


class ConcurrentModification(ShakerError):
    """Raised when siblings changed underneath an operation twice in a row."""


class ConfigError(ShakerError):
    """Raised for an unreadable or invalid configuration."""


class SourceError(ShakerError):
    """Raised when a mana source directory cannot be read."""

    def __init__(self, path, reason: str):
        super().__init__(f"Cannot read {path}: {reason}")
        self.path = path
        self.reason = reason
