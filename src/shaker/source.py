"""Import entries from a mana source directory.

The expected directory structure is::

    src
    ├── 1
    │   └── metadata.json
    ├── 1.1
    │   └── metadata.json
    ├── 1.1.2
    │   ├── metadata.json
    │   └── theory
    │       ├── ca.md
    │       ├── en.md
    │       └── es.md
    └── assets

Each ``metadata.json`` looks like::

    {
      "number": "1.1.2",
      "parent": "1.1",
      "difficulty": 3,
      "data": [{"lang": "en", "name": "Pythagoras", "desc": null}]
    }

Mana numbers only fix the order; entries get fresh ordinals laid out with
``OrdinalCodec.initial_key_at``.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from .errors import OrdinalExhausted, SourceError
from .ordinal import OrdinalCodec, child_ordinal, local_key
from .rebalance import RebalanceManager
from .store import Entry, EntryStore

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDED = ("assets", "temario.md")

MANA_NUMBER = re.compile(r"[0-9]+(\.[0-9]+)*")


@dataclass
class SourceItem:
    """One entry read from a mana directory, before it has an ordinal."""
    number: str
    parent: str | None
    slug: str
    title: str
    content: str
    difficulty: int | float | None = None

    @property
    def trail(self) -> tuple[int, ...]:
        """Numeric sort key of the mana number ("1.10" after "1.9")."""
        return tuple(int(part) for part in self.number.split("."))


@dataclass
class ImportReport:
    """Outcome of an import: mana number -> ordinal, plus skipped numbers."""
    created: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)


def slugify(text: str) -> str:
    """Lower-case ASCII letters and ``-``; spaces become ``-``, the rest is dropped."""
    out = []
    for ch in text.lower():
        if "a" <= ch <= "z" or ch == "-":
            out.append(ch)
        elif ch == " ":
            out.append("-")
    return "".join(out)


def read_metadata(path: Path) -> dict:
    """Load and check ``metadata.json`` of one mana directory.

    Raises:
        SourceError: The file is missing, is not JSON, or has no valid
            ``number``.
    """
    try:
        with open(path / "metadata.json", encoding="utf-8") as f:
            meta = json.load(f)
    except FileNotFoundError as e:
        raise SourceError(path, "metadata.json is missing") from e
    except json.JSONDecodeError as e:
        raise SourceError(path, f"metadata.json is not valid JSON ({e})") from e

    if not isinstance(meta, dict):
        raise SourceError(path, "metadata.json does not hold an object")
    number = meta.get("number")
    if not isinstance(number, str) or not MANA_NUMBER.fullmatch(number):
        raise SourceError(path, f"invalid mana number {number!r}")
    return meta


def read_item(path: Path, lang: str) -> SourceItem | None:
    """Read one mana directory; None when it has no content for ``lang``.

    Raises:
        SourceError: The directory cannot be read as a mana entry.
    """
    return _item_from(path, read_metadata(path), lang)


def _item_from(path: Path, meta: dict, lang: str) -> SourceItem | None:
    number = meta["number"]
    item = next((item for item in meta.get("data") or [] if item.get("lang") == lang), None)
    if item is None:
        logger.info("Skipping %s. No content for %s.", number, lang)
        return None

    name = item.get("name")
    if not isinstance(name, str):
        raise SourceError(path, f"no name for {lang}")
    content = item.get("desc")
    if content is None:
        theory = path / "theory" / f"{lang}.md"
        try:
            with open(theory, encoding="utf-8") as f:
                content = f.read()
        except FileNotFoundError as e:
            raise SourceError(path, f"no description and no {theory.name}") from e

    return SourceItem(
        number=number,
        parent=meta.get("parent"),
        slug=slugify(name),
        title=name,
        content=content,
        difficulty=meta.get("difficulty"),
    )


def read_entries(
    store: EntryStore,
    codec: OrdinalCodec,
    source: Path,
    excluded_names: tuple[str, ...] = DEFAULT_EXCLUDED,
    lang: str = "en",
) -> ImportReport:
    """Read every mana directory under ``source`` into the store.

    New root entries are placed after the existing ones, re-spacing the
    existing roots when no key is left above the last one. Directories
    without content for ``lang`` are skipped, and so are entries whose
    parent was skipped or is missing. The import is a single transaction.

    Raises:
        SourceError: A directory cannot be read as a mana entry.
    """
    items: list[SourceItem] = []
    report = ImportReport()
    for path in sorted(Path(source).iterdir()):
        if path.name in excluded_names or not path.is_dir():
            continue
        meta = read_metadata(path)
        item = _item_from(path, meta, lang)
        if item is None:
            report.skipped.append(meta["number"])
        else:
            items.append(item)

    groups: dict[str | None, list[SourceItem]] = {}
    for item in items:
        groups.setdefault(item.parent, []).append(item)
    for siblings in groups.values():
        siblings.sort(key=lambda item: item.trail)

    importer = _Importer(store, codec, groups, report)
    with store.transaction():
        roots = store.sibling_ordinals(None)
        importer.create_group(None, None, local_key(roots[-1]) if roots else None)

    orphans = sorted(
        item.number for item in items if item.number not in report.created
    )
    for number in orphans:
        logger.warning("Skipping %s. Parent is missing.", number)
    report.skipped.extend(orphans)

    logger.info("imported %d entries from %s", len(report.created), source)
    return report


class _Importer:
    """Creates grouped source items depth-first under their parents."""

    def __init__(
        self,
        store: EntryStore,
        codec: OrdinalCodec,
        groups: dict[str | None, list[SourceItem]],
        report: ImportReport,
    ):
        self.store = store
        self.codec = codec
        self.groups = groups
        self.report = report
        self.rebalancer = RebalanceManager(store, codec)

    def create_group(self, number: str | None, parent: str | None, after: str | None) -> None:
        siblings = self.groups.get(number, [])
        try:
            planned = [self.codec.initial_key_at(i, len(siblings), low=after) for i in range(len(siblings))]
        except OrdinalExhausted:
            logger.info("no room for %d entries after %s; appending one by one", len(siblings), after)
            planned = [None] * len(siblings)

        previous = after
        for index, item in enumerate(siblings):
            key = planned[index]
            if key is None:
                key = self._append_key(parent, previous)
            elif self._taken(parent, key):
                # Retired root ordinals can sit above the last live root
                following = planned[index + 1] if index + 1 < len(planned) else None
                key = self.codec.key_between(previous, following, lambda k: self._taken(parent, k))
            previous = key
            entry = self.store.create(Entry(
                ordinal=child_ordinal(parent, key),
                parent=parent,
                slug=item.slug,
                title=item.title,
                content=item.content,
                difficulty=item.difficulty,
            ))
            self.report.created[item.number] = entry.ordinal
            self.create_group(item.number, entry.ordinal, None)

    def _append_key(self, parent: str | None, previous: str | None) -> str:
        """Free key after the last child of ``parent``, rebalancing if needed."""
        try:
            return self.codec.key_between(previous, None, lambda k: self._taken(parent, k))
        except OrdinalExhausted:
            pass
        keys = [local_key(o) for o in self.store.sibling_ordinals(parent)]
        room = self.rebalancer.make_room(parent, keys, len(keys))
        self.report.created = {number: room.remap(o) for number, o in self.report.created.items()}
        return room.key

    def _taken(self, parent: str | None, key: str) -> bool:
        return self.store.is_issued(child_ordinal(parent, key))
