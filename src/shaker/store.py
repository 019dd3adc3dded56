"""SQLite-backed storage for content entries.

EntryStore is the only writer of ``entry`` rows. It enforces the structural
invariants (unique ordinals, resolvable parents, sibling-unique slugs, no
cycles) and keeps each parent's ``ancestor`` flag in step with its children.
Every mutation runs in one transaction together with its flag updates.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Iterator

from .errors import (
    CycleDetected,
    DanglingParent,
    DuplicateOrdinal,
    DuplicateSlug,
    HasChildren,
    InvalidOrdinal,
    NotFound,
)
from .ordinal import is_valid_key, is_within, local_key, parent_ordinal, subtree_range
from .schema import COLUMNS, SCHEMA

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset({"title", "difficulty", "content"})

_SELECT = f"SELECT {', '.join(COLUMNS)} FROM entry"


@dataclass
class Entry:
    """A content entry, matching one ``entry`` row."""
    ordinal: str
    parent: str | None
    slug: str
    title: str
    content: str = ""
    difficulty: int | float | None = None
    ancestor: bool = False

    @property
    def depth(self) -> int:
        """Number of ancestors above this entry."""
        return self.ordinal.count(".")

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Entry":
        return cls(
            ordinal=row["ordinal"],
            parent=row["parent"],
            slug=row["slug"],
            title=row["title"],
            content=row["content"],
            difficulty=row["difficulty"],
            ancestor=bool(row["ancestor"]),
        )


class EntryStore:
    """Entry table over a single SQLite connection.

    The connection is shared between threads and guarded by a re-entrant
    lock: reads and whole transactions run one at a time, so a reader sees
    either the state before or after a write, never a partial one.

    Args:
        path: Database file, or ":memory:" for a private in-memory database.
    """

    def __init__(self, path: str | Path = ":memory:"):
        self.path = path
        self._lock = threading.RLock()
        self._depth = 0
        self._conn = sqlite3.connect(str(path), check_same_thread=False, isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(SCHEMA)

    def __repr__(self) -> str:
        return f"EntryStore({str(self.path)!r})"

    def __enter__(self) -> "EntryStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ==================== Transactions ====================

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block atomically.

        Nested blocks join the outermost transaction; only the outermost one
        commits. Any exception rolls the whole transaction back.
        """
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self._conn
                finally:
                    self._depth -= 1
                return

            self._conn.execute("BEGIN IMMEDIATE")
            self._depth = 1
            try:
                yield self._conn
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            else:
                self._conn.execute("COMMIT")
            finally:
                self._depth = 0

    def _query(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    # ==================== Reads ====================

    def find(self, ordinal: str) -> Entry | None:
        """Return the entry with the given ordinal, or None."""
        rows = self._query(f"{_SELECT} WHERE ordinal = ?", (ordinal,))
        return Entry.from_row(rows[0]) if rows else None

    def get(self, ordinal: str) -> Entry:
        """Return the entry with the given ordinal.

        Raises:
            NotFound: No such entry.
        """
        entry = self.find(ordinal)
        if entry is None:
            raise NotFound(ordinal)
        return entry

    def children_of(self, parent: str | None) -> list[Entry]:
        """Children of ``parent`` in sibling order; root entries for None."""
        rows = self._query(f"{_SELECT} WHERE parent IS ? ORDER BY ordinal", (parent,))
        return [Entry.from_row(row) for row in rows]

    def sibling_ordinals(self, parent: str | None) -> list[str]:
        """Ordinals of the children of ``parent`` in sibling order."""
        rows = self._query("SELECT ordinal FROM entry WHERE parent IS ? ORDER BY ordinal", (parent,))
        return [row["ordinal"] for row in rows]

    def subtree(self, ordinal: str) -> list[Entry]:
        """The entry and all its descendants in depth-first order.

        Raises:
            NotFound: No such entry.
        """
        start, end = subtree_range(ordinal)
        rows = self._query(
            f"{_SELECT} WHERE ordinal = ? OR (ordinal > ? AND ordinal < ?) ORDER BY ordinal",
            (ordinal, start, end),
        )
        if not rows:
            raise NotFound(ordinal)
        return [Entry.from_row(row) for row in rows]

    def walk(self) -> list[Entry]:
        """Every entry in depth-first order."""
        return [Entry.from_row(row) for row in self._query(f"{_SELECT} ORDER BY ordinal")]

    def siblings(self, ordinal: str) -> tuple[Entry | None, Entry | None]:
        """Previous and next sibling of an entry, None where there is none.

        Raises:
            NotFound: No such entry.
        """
        entry = self.get(ordinal)
        prev_rows = self._query(
            f"{_SELECT} WHERE parent IS ? AND ordinal < ? ORDER BY ordinal DESC LIMIT 1",
            (entry.parent, ordinal),
        )
        next_rows = self._query(
            f"{_SELECT} WHERE parent IS ? AND ordinal > ? ORDER BY ordinal LIMIT 1",
            (entry.parent, ordinal),
        )
        prev = Entry.from_row(prev_rows[0]) if prev_rows else None
        nxt = Entry.from_row(next_rows[0]) if next_rows else None
        return prev, nxt

    def is_issued(self, ordinal: str) -> bool:
        """True if the ordinal is live or was retired."""
        rows = self._query(
            "SELECT EXISTS(SELECT 1 FROM entry WHERE ordinal = ?)"
            " OR EXISTS(SELECT 1 FROM retired WHERE ordinal = ?)",
            (ordinal, ordinal),
        )
        return bool(rows[0][0])

    def stats(self) -> dict[str, int]:
        """Row counts: entries, roots, branches, leaves, retired ordinals."""
        row = self._query("""
            SELECT
                COUNT(*),
                SUM(CASE WHEN parent IS NULL THEN 1 ELSE 0 END),
                SUM(CASE WHEN ancestor = 1 THEN 1 ELSE 0 END)
            FROM entry
        """)[0]
        total, roots, branches = row[0], row[1] or 0, row[2] or 0
        retired = self._query("SELECT COUNT(*) FROM retired")[0][0]
        return {
            "entries": total,
            "roots": roots,
            "branches": branches,
            "leaves": total - branches,
            "retired": retired,
        }

    # ==================== Writes ====================

    def create(self, entry: Entry) -> Entry:
        """Insert a new entry and flag its parent as an ancestor.

        The ``ancestor`` value of the given entry is ignored: a new entry has
        no children.

        Raises:
            InvalidOrdinal: The ordinal is malformed or does not extend the
                parent's ordinal.
            DuplicateOrdinal: The ordinal is live or was issued before.
            DanglingParent: The parent does not exist.
            DuplicateSlug: A sibling already uses the slug.
        """
        self._check_ordinal(entry.ordinal, entry.parent)
        with self.transaction() as conn:
            if self.is_issued(entry.ordinal):
                raise DuplicateOrdinal(entry.ordinal)
            if entry.parent is not None and self.find(entry.parent) is None:
                raise DanglingParent(entry.parent)
            self._check_slug(entry.slug, entry.parent)

            conn.execute(
                """
                INSERT INTO entry
                (ordinal, parent, ancestor, slug, title, difficulty, content)
                VALUES (?, ?, 0, ?, ?, ?, ?)
                """,
                (entry.ordinal, entry.parent, entry.slug, entry.title, entry.difficulty, entry.content),
            )
            if entry.parent is not None:
                conn.execute("UPDATE entry SET ancestor = 1 WHERE ordinal = ?", (entry.parent,))

        logger.debug("created %s under %s", entry.ordinal, entry.parent)
        return replace(entry, ancestor=False)

    def update_fields(self, ordinal: str, **fields) -> Entry:
        """Update ``title``, ``difficulty`` and/or ``content`` in place.

        Raises:
            TypeError: A field other than the editable ones was given.
            NotFound: No such entry.
        """
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise TypeError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

        with self.transaction() as conn:
            self.get(ordinal)
            if fields:
                assignments = ", ".join(f"{name} = ?" for name in sorted(fields))
                values = tuple(fields[name] for name in sorted(fields))
                conn.execute(f"UPDATE entry SET {assignments} WHERE ordinal = ?", values + (ordinal,))
            return self.get(ordinal)

    def reparent_and_rekey(self, ordinal: str, new_parent: str | None, new_ordinal: str) -> Entry:
        """Move an entry, with its subtree, to a new parent and ordinal.

        Descendant ordinals follow the new prefix. Every replaced ordinal is
        retired.

        Raises:
            NotFound: No such entry.
            CycleDetected: ``new_parent`` is the entry or one of its descendants.
            DanglingParent: ``new_parent`` does not exist.
            InvalidOrdinal: ``new_ordinal`` does not extend ``new_parent``.
            DuplicateOrdinal: ``new_ordinal`` was already issued.
            DuplicateSlug: A sibling under ``new_parent`` uses the entry's slug.
        """
        with self.transaction() as conn:
            entry = self.get(ordinal)
            if new_parent is not None and is_within(new_parent, ordinal):
                raise CycleDetected(ordinal, new_parent)
            if new_ordinal == ordinal:
                return entry
            self._check_ordinal(new_ordinal, new_parent)
            if new_parent is not None and self.find(new_parent) is None:
                raise DanglingParent(new_parent)
            if self.is_issued(new_ordinal):
                raise DuplicateOrdinal(new_ordinal)
            if new_parent != entry.parent:
                self._check_slug(entry.slug, new_parent)

            start, end = subtree_range(ordinal)
            in_subtree = "ordinal = ? OR (ordinal > ? AND ordinal < ?)"
            conn.execute(
                f"INSERT INTO retired (ordinal) SELECT ordinal FROM entry WHERE {in_subtree}",
                (ordinal, start, end),
            )
            tail = len(ordinal) + 1
            conn.execute(
                f"""
                UPDATE entry SET
                    ordinal = ? || substr(ordinal, ?),
                    parent = CASE WHEN ordinal = ? THEN ? ELSE ? || substr(parent, ?) END
                WHERE {in_subtree}
                """,
                (new_ordinal, tail, ordinal, new_parent, new_ordinal, tail, ordinal, start, end),
            )

            if new_parent != entry.parent:
                self._refresh_ancestor(entry.parent)
                if new_parent is not None:
                    conn.execute("UPDATE entry SET ancestor = 1 WHERE ordinal = ?", (new_parent,))

            logger.debug("moved %s to %s under %s", ordinal, new_ordinal, new_parent)
            return self.get(new_ordinal)

    def delete(self, ordinal: str, cascade: bool = False) -> int:
        """Delete an entry, or its whole subtree when ``cascade`` is set.

        Returns:
            Number of rows removed.

        Raises:
            NotFound: No such entry.
            HasChildren: The entry has children and ``cascade`` is False.
        """
        with self.transaction() as conn:
            entry = self.get(ordinal)
            if entry.ancestor and not cascade:
                raise HasChildren(ordinal)

            start, end = subtree_range(ordinal)
            in_subtree = "ordinal = ? OR (ordinal > ? AND ordinal < ?)"
            conn.execute(
                f"INSERT INTO retired (ordinal) SELECT ordinal FROM entry WHERE {in_subtree}",
                (ordinal, start, end),
            )
            removed = conn.execute(f"DELETE FROM entry WHERE {in_subtree}", (ordinal, start, end)).rowcount
            self._refresh_ancestor(entry.parent)

        logger.debug("deleted %s (%d rows)", ordinal, removed)
        return removed

    # ==================== Invariant helpers ====================

    def _refresh_ancestor(self, ordinal: str | None) -> None:
        """Recompute one entry's ancestor flag after it may have lost a child."""
        if ordinal is None:
            return
        self._conn.execute(
            """
            UPDATE entry
            SET ancestor = EXISTS(SELECT 1 FROM entry AS child WHERE child.parent = ?)
            WHERE ordinal = ?
            """,
            (ordinal, ordinal),
        )

    def _check_slug(self, slug: str, parent: str | None) -> None:
        rows = self._query("SELECT 1 FROM entry WHERE parent IS ? AND slug = ? LIMIT 1", (parent, slug))
        if rows:
            raise DuplicateSlug(slug, parent)

    @staticmethod
    def _check_ordinal(ordinal: str, parent: str | None) -> None:
        if parent_ordinal(ordinal) != parent:
            raise InvalidOrdinal(f"Ordinal {ordinal!r} does not extend parent {parent!r}")
        if not is_valid_key(local_key(ordinal)):
            raise InvalidOrdinal(f"Malformed ordinal: {ordinal!r}")
