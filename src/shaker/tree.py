"""Tree-shaped operations in terms of sibling positions.

Callers say "insert as the third child of X" or "move Y to the front of Z";
TreeOperations turns positions into ordinals with the codec, writes through
the store, and rebalances when the codec runs out of keys.

Writes are optimistic. The sibling list is read first, keys are computed
from it, and inside the write transaction the sibling ordinals are read
again, along with the entry being moved. If another writer changed them
in between, the attempt is dropped and retried once before
``ConcurrentModification`` is raised.
"""

import logging
from dataclasses import dataclass
from typing import Callable, TypeVar

from .errors import ConcurrentModification, CycleDetected, InvalidIndex, OrdinalExhausted
from .ordinal import OrdinalCodec, child_ordinal, is_within, local_key
from .rebalance import RebalanceManager
from .store import Entry, EntryStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Attempts per operation: the first try plus one retry
ATTEMPTS = 2


@dataclass
class EntryDraft:
    """Fields of an entry that the caller chooses; the ordinal is assigned."""
    slug: str
    title: str
    content: str = ""
    difficulty: int | float | None = None


class _Stale(Exception):
    """A read taken before the write transaction no longer matches the store."""


class TreeOperations:
    """Insert, move, reorder and delete entries by sibling position."""

    def __init__(
        self,
        store: EntryStore,
        codec: OrdinalCodec | None = None,
        rebalancer: RebalanceManager | None = None,
    ):
        self.store = store
        self.codec = codec or OrdinalCodec()
        self.rebalancer = rebalancer or RebalanceManager(store, self.codec)

    def insert_child(self, parent: str | None, at_index: int, draft: EntryDraft) -> Entry:
        """Create an entry at position ``at_index`` among the children of ``parent``.

        ``parent`` None inserts a root entry. An index past the last child
        appends.

        Raises:
            InvalidIndex: ``at_index`` is negative or not an integer.
            DanglingParent: ``parent`` does not exist.
            DuplicateSlug: A sibling already uses ``draft.slug``.
            ConcurrentModification: Siblings changed during two attempts.
        """
        _check_index(at_index)

        def attempt() -> Entry:
            snapshot = [child.ordinal for child in self.store.children_of(parent)]
            with self.store.transaction():
                self._verify(parent, snapshot)
                index = min(at_index, len(snapshot))
                key, _ = self._slot(parent, [local_key(o) for o in snapshot], index)
                return self.store.create(Entry(
                    ordinal=child_ordinal(parent, key),
                    parent=parent,
                    slug=draft.slug,
                    title=draft.title,
                    content=draft.content,
                    difficulty=draft.difficulty,
                ))

        return self._optimistic(attempt)

    def move(self, ordinal: str, new_parent: str | None, at_index: int) -> Entry:
        """Move an entry and its subtree to position ``at_index`` under ``new_parent``.

        The index counts siblings without the moved entry. Moving an entry
        onto its current position changes nothing.

        Raises:
            InvalidIndex: ``at_index`` is negative or not an integer.
            NotFound: No such entry.
            CycleDetected: ``new_parent`` lies inside the moved subtree.
            DanglingParent: ``new_parent`` does not exist.
            DuplicateSlug: A sibling under ``new_parent`` uses the same slug.
            ConcurrentModification: Siblings changed during two attempts.
        """
        _check_index(at_index)
        if new_parent is not None and is_within(new_parent, ordinal):
            self.store.get(ordinal)
            raise CycleDetected(ordinal, new_parent)

        def attempt() -> Entry:
            entry = self.store.get(ordinal)
            snapshot = [child.ordinal for child in self.store.children_of(new_parent)]
            with self.store.transaction():
                if self.store.get(ordinal) != entry:
                    raise _Stale(entry.parent)
                self._verify(new_parent, snapshot)
                others = [o for o in snapshot if o != ordinal]
                index = min(at_index, len(others))
                if entry.parent == new_parent and snapshot[index] == ordinal:
                    return entry

                key, room = self._slot(new_parent, [local_key(o) for o in others], index)
                current = room.remap(ordinal) if room else ordinal
                return self.store.reparent_and_rekey(current, new_parent, child_ordinal(new_parent, key))

        return self._optimistic(attempt)

    def reorder(self, ordinal: str, at_index: int) -> Entry:
        """Move an entry to position ``at_index`` among its own siblings."""
        entry = self.store.get(ordinal)
        return self.move(ordinal, entry.parent, at_index)

    def delete_subtree(self, ordinal: str, cascade: bool = False) -> int:
        """Delete an entry; with ``cascade`` its descendants go too.

        Returns:
            Number of entries removed.
        """
        return self.store.delete(ordinal, cascade=cascade)

    def update(self, ordinal: str, **fields) -> Entry:
        """Edit ``title``, ``difficulty`` or ``content`` of an entry."""
        return self.store.update_fields(ordinal, **fields)

    # ==================== Internals ====================

    def _slot(self, parent: str | None, keys: list[str], index: int):
        """Free local key at ``index`` among ``keys``, rebalancing when needed.

        Returns:
            The key and the rebalance that made room for it, or None.
        """
        low = keys[index - 1] if index > 0 else None
        high = keys[index] if index < len(keys) else None
        try:
            key = self.codec.key_between(low, high, self._taken(parent))
            return key, None
        except OrdinalExhausted:
            logger.debug("keys exhausted between %s and %s under %s", low, high, parent)
        room = self.rebalancer.make_room(parent, keys, index)
        return room.key, room

    def _taken(self, parent: str | None) -> Callable[[str], bool]:
        def taken(key: str) -> bool:
            return self.store.is_issued(child_ordinal(parent, key))
        return taken

    def _verify(self, parent: str | None, snapshot: list[str]) -> None:
        if self.store.sibling_ordinals(parent) != snapshot:
            raise _Stale(parent)

    def _optimistic(self, attempt: Callable[[], T]) -> T:
        for number in range(1, ATTEMPTS + 1):
            try:
                return attempt()
            except _Stale as e:
                logger.info("siblings under %s changed during attempt %d", e.args[0], number)
        raise ConcurrentModification("Siblings changed underneath the operation; retry failed")


def _check_index(index) -> None:
    if isinstance(index, bool) or not isinstance(index, int) or index < 0:
        raise InvalidIndex(index)
