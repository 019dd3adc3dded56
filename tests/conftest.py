"""Pytest fixtures for the entry tree tests.

Every test gets a private in-memory store; tests that need a file-backed
database use ``tmp_path``.
"""

from typing import Generator

import pytest

from shaker.ordinal import OrdinalCodec
from shaker.store import Entry, EntryStore
from shaker.tree import EntryDraft, TreeOperations


def draft(slug: str, **fields) -> EntryDraft:
    """Build a draft whose title is derived from the slug."""
    return EntryDraft(slug=slug, title=fields.pop("title", slug.title()), **fields)


def root(ordinal: str, slug: str | None = None) -> Entry:
    """Build a root entry with an explicit ordinal."""
    slug = slug or f"root-{ordinal.lower()}"
    return Entry(ordinal=ordinal, parent=None, slug=slug, title=slug.title())


def slugs(entries: list[Entry]) -> list[str]:
    return [entry.slug for entry in entries]


def assert_ancestor_flags(store: EntryStore) -> None:
    """Every entry is flagged as an ancestor exactly when it has children."""
    for entry in store.walk():
        has_children = bool(store.children_of(entry.ordinal))
        assert entry.ancestor == has_children, f"{entry.ordinal}: ancestor={entry.ancestor}"


@pytest.fixture
def store() -> Generator[EntryStore, None, None]:
    """In-memory entry store."""
    with EntryStore(":memory:") as s:
        yield s


@pytest.fixture
def codec() -> OrdinalCodec:
    return OrdinalCodec()


@pytest.fixture
def tree(store: EntryStore, codec: OrdinalCodec) -> TreeOperations:
    return TreeOperations(store, codec)
