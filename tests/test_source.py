"""Tests for importing mana source directories."""

import json
import logging

import pytest

from shaker.errors import DuplicateSlug, SourceError
from shaker.ordinal import OrdinalCodec
from shaker.source import read_entries, read_item, slugify

from conftest import draft, root, slugs


def write_item(source, number, parent=None, data=None, difficulty=None, theory=None):
    """Create one mana directory with metadata.json and optional theory files."""
    path = source / number
    path.mkdir()
    meta = {"number": number, "parent": parent, "difficulty": difficulty, "data": data or []}
    (path / "metadata.json").write_text(json.dumps(meta), encoding="utf-8")
    for lang, text in (theory or {}).items():
        (path / "theory").mkdir(exist_ok=True)
        (path / "theory" / f"{lang}.md").write_text(text, encoding="utf-8")
    return path


def en(name, desc=None):
    return [{"lang": "en", "name": name, "desc": desc}]


@pytest.fixture
def source(tmp_path):
    """A small mana tree: geometry with three lessons, one Catalan-only root."""
    src = tmp_path / "src"
    src.mkdir()
    write_item(src, "1", data=en("Geometry", "Shapes"), difficulty=1)
    write_item(src, "1.1", parent="1", data=en("Triangles"), theory={"en": "Three sides"})
    write_item(src, "1.2", parent="1", data=en("Circles", "Round"))
    write_item(src, "1.10", parent="1", data=en("Polygons", "Many sides"), difficulty=4)
    write_item(src, "2", data=[{"lang": "ca", "name": "Algebra", "desc": "x"}])
    write_item(src, "2.1", parent="2", data=en("Equations", "x = 1"))
    (src / "assets").mkdir()
    (src / "assets" / "logo.png").write_bytes(b"")
    return src


class TestSlugify:
    def test_spaces_and_case(self):
        assert slugify("Hello World") == "hello-world"

    def test_drops_other_characters(self):
        assert slugify("Pythagoras' theorem, part 2") == "pythagoras-theorem-part-"
        assert slugify("pre-algebra") == "pre-algebra"


class TestReadItem:
    """Tests for reading a single mana directory."""

    def test_inline_description(self, source):
        item = read_item(source / "1", "en")
        assert (item.number, item.parent, item.title) == ("1", None, "Geometry")
        assert item.content == "Shapes"
        assert item.difficulty == 1

    def test_content_from_theory_file(self, source):
        item = read_item(source / "1.1", "en")
        assert item.content == "Three sides"
        assert item.slug == "triangles"

    def test_missing_language(self, source, caplog):
        caplog.set_level(logging.INFO, logger="shaker.source")
        assert read_item(source / "2", "en") is None
        assert "Skipping 2. No content for en." in caplog.text

    def test_numeric_trail(self, source):
        assert read_item(source / "1.10", "en").trail == (1, 10)

    def test_missing_metadata(self, tmp_path):
        (tmp_path / "7").mkdir()
        with pytest.raises(SourceError, match="metadata.json is missing") as info:
            read_item(tmp_path / "7", "en")
        assert info.value.path == tmp_path / "7"

    @pytest.mark.parametrize(
        "text, reason",
        [
            ('{"number": ', "not valid JSON"),
            ("[1, 2]", "does not hold an object"),
            ('{"data": []}', "invalid mana number None"),
            ('{"number": "1.a", "data": []}', "invalid mana number '1.a'"),
            ('{"number": 3, "data": []}', "invalid mana number 3"),
        ],
    )
    def test_malformed_metadata(self, tmp_path, text, reason):
        (tmp_path / "7").mkdir()
        (tmp_path / "7" / "metadata.json").write_text(text, encoding="utf-8")
        with pytest.raises(SourceError) as info:
            read_item(tmp_path / "7", "en")
        assert reason in str(info.value)
        assert str(tmp_path / "7") in str(info.value)

    def test_missing_theory_file(self, source):
        write_item(source, "3", data=en("Logic"))
        with pytest.raises(SourceError, match="no description and no en.md"):
            read_item(source / "3", "en")


class TestReadEntries:
    """Tests for importing a whole source directory."""

    def test_import(self, store, codec, source):
        report = read_entries(store, codec, source)
        assert report.created == {"1": "V", "1.1": "V.FV", "1.2": "V.V", "1.10": "V.kV"}
        assert report.skipped == ["2", "2.1"]

    def test_numeric_order_and_fields(self, store, codec, source):
        read_entries(store, codec, source)
        assert slugs(store.children_of(None)) == ["geometry"]
        children = store.children_of("V")
        assert slugs(children) == ["triangles", "circles", "polygons"]
        assert children[0].content == "Three sides"
        assert children[2].difficulty == 4
        assert store.get("V").ancestor is True

    def test_orphans_are_logged(self, store, codec, source, caplog):
        caplog.set_level(logging.WARNING, logger="shaker.source")
        read_entries(store, codec, source)
        assert "Skipping 2.1. Parent is missing." in caplog.text

    def test_custom_exclusions(self, store, codec, source):
        report = read_entries(store, codec, source, excluded_names=("assets", "1.2"))
        assert "1.2" not in report.created
        assert slugs(store.children_of("V")) == ["triangles", "polygons"]

    def test_roots_go_after_existing_entries(self, store, codec, source, tree):
        tree.insert_child(None, 0, draft("intro"))
        report = read_entries(store, codec, source)
        assert slugs(store.children_of(None)) == ["intro", "geometry"]
        assert report.created["1"] > "V"

    def test_second_import_is_atomic(self, store, codec, source):
        read_entries(store, codec, source)
        before = store.stats()
        with pytest.raises(DuplicateSlug):
            read_entries(store, codec, source)
        assert store.stats() == before

    def test_skipped_entries_are_named_by_number(self, store, codec, source):
        (source / "2").rename(source / "algebra")
        report = read_entries(store, codec, source)
        assert report.skipped == ["2", "2.1"]

    def test_unreadable_directory_aborts_import(self, store, codec, source):
        (source / "broken").mkdir()
        with pytest.raises(SourceError, match="broken"):
            read_entries(store, codec, source)
        assert store.stats()["entries"] == 0


class TestRootPlacement:
    """Tests for placing imported roots when no key is left after the last root."""

    GREEK = ["alpha", "beta", "gamma", "delta", "epsilon", "zeta", "eta", "theta"]

    def test_existing_roots_are_respaced(self, store, source):
        codec = OrdinalCodec(max_length=2)
        store.create(root("zz"))
        report = read_entries(store, codec, source)
        assert slugs(store.children_of(None)) == ["root-zz", "geometry"]
        assert report.created["1"] == "fK"
        assert slugs(store.children_of("fK")) == ["triangles", "circles", "polygons"]
        assert store.is_issued("zz")

    def test_created_ordinals_follow_rebalances(self, store, tmp_path):
        codec = OrdinalCodec(max_length=1, headroom=1)
        store.create(root("z"))
        src = tmp_path / "many"
        src.mkdir()
        for number, name in enumerate(self.GREEK, start=1):
            write_item(src, str(number), data=en(name.title(), name))

        report = read_entries(store, codec, src)
        assert slugs(store.children_of(None)) == ["root-z", *self.GREEK]
        assert report.created == {
            "1": "E", "2": "L", "3": "S", "4": "Z", "5": "g", "6": "n", "7": "t", "8": "w",
        }
        for number, ordinal in report.created.items():
            assert store.get(ordinal).slug == self.GREEK[int(number) - 1]
