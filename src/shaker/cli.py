"""Command-line interface for the content entry tree."""

import logging
import sqlite3
from datetime import datetime
from functools import wraps
from pathlib import Path

import click

from .config import Settings, load_settings, write_database_path
from .errors import ShakerError
from .ordinal import OrdinalCodec
from .source import DEFAULT_EXCLUDED, read_entries, slugify
from .store import Entry, EntryStore
from .tree import EntryDraft, TreeOperations


class Context:
    """Settings plus a lazily opened store for the current command."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._tree: TreeOperations | None = None

    @property
    def tree(self) -> TreeOperations:
        if self._tree is None:
            database = self.settings.database
            database.parent.mkdir(parents=True, exist_ok=True)
            codec = OrdinalCodec(self.settings.max_key_length, self.settings.headroom)
            self._tree = TreeOperations(EntryStore(database), codec)
        return self._tree

    @property
    def store(self) -> EntryStore:
        return self.tree.store

    def close(self) -> None:
        if self._tree is not None:
            self._tree.store.close()


pass_shaker = click.make_pass_decorator(Context)


def reports_errors(func):
    """Turn library errors into a clean CLI failure."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except ShakerError as e:
            raise click.ClickException(str(e)) from e
    return wrapper


def format_entry(entry: Entry) -> str:
    marker = "+" if entry.ancestor else "-"
    difficulty = f" [{entry.difficulty}]" if entry.difficulty is not None else ""
    return f"{marker} {entry.title}{difficulty} ({entry.slug}, {entry.ordinal})"


@click.group()
@click.version_option()
@click.option(
    "--database",
    "-d",
    type=click.Path(path_type=Path),
    default=None,
    help="Database file (default: from shaker.toml, .env or data/shaker.db).",
)
@click.option("--verbose", "-v", count=True, help="Log more (-v info, -vv debug).")
@click.pass_context
def cli(ctx: click.Context, database: Path | None, verbose: int) -> None:
    """Ordered content tree management.

    Keeps a tree of lessons, problems or documentation sections in a
    SQLite database, with stable sortable ordinals for every entry.
    """
    level = logging.WARNING - 10 * min(verbose, 2)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    try:
        settings = load_settings()
    except ShakerError as e:
        raise click.ClickException(str(e)) from e
    if database is not None:
        settings.database = database

    obj = Context(settings)
    ctx.obj = obj
    ctx.call_on_close(obj.close)


@cli.command()
@pass_shaker
def init(obj: Context) -> None:
    """Create the database and its schema if missing."""
    obj.store  # opens the database and creates the schema
    click.echo(click.style(f"Database ready: {obj.settings.database}", fg="green"))


@cli.command("import")
@click.argument("source", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--lang", default="en", type=click.Choice(["en", "ca", "es"]), help="Content language.")
@click.option(
    "--exclude",
    "-x",
    multiple=True,
    help=f"Directory names to ignore (default: {', '.join(DEFAULT_EXCLUDED)}).",
)
@pass_shaker
@reports_errors
def import_source(obj: Context, source: Path, lang: str, exclude: tuple[str, ...]) -> None:
    """Import a mana source directory.

    Examples:

        shaker import ../manasource/src --lang ca
    """
    excluded = exclude or DEFAULT_EXCLUDED
    report = read_entries(obj.store, obj.tree.codec, source, excluded, lang)
    click.echo(click.style(f"Imported {len(report.created)} entries.", fg="green"))
    if report.skipped:
        click.echo(f"Skipped: {', '.join(report.skipped)}")


@cli.command()
@click.argument("title")
@click.option("--parent", "-p", default=None, help="Parent ordinal (default: root level).")
@click.option("--index", "-i", type=int, default=None, help="Sibling position (default: last).")
@click.option("--slug", "-s", default=None, help="Slug (default: derived from the title).")
@click.option("--difficulty", type=float, default=None, help="Difficulty rating.")
@click.option("--content", "-c", default="", help="Content body.")
@pass_shaker
@reports_errors
def add(
    obj: Context,
    title: str,
    parent: str | None,
    index: int | None,
    slug: str | None,
    difficulty: float | None,
    content: str,
) -> None:
    """Add an entry.

    Examples:

        shaker add "Geometry"
        shaker add "Triangles" --parent V --index 0
    """
    draft = EntryDraft(slug=slug or slugify(title), title=title, content=content, difficulty=difficulty)
    position = index if index is not None else len(obj.store.children_of(parent))
    entry = obj.tree.insert_child(parent, position, draft)
    click.echo(click.style(f"Added: {entry.ordinal}", fg="green"))


@cli.command()
@click.argument("ordinal")
@click.option("--parent", "-p", default=None, help="New parent ordinal (default: root level).")
@click.option("--index", "-i", type=int, default=None, help="Sibling position (default: last).")
@pass_shaker
@reports_errors
def move(obj: Context, ordinal: str, parent: str | None, index: int | None) -> None:
    """Move an entry and its subtree under another parent."""
    position = index if index is not None else len(obj.store.children_of(parent))
    entry = obj.tree.move(ordinal, parent, position)
    click.echo(click.style(f"Moved: {ordinal} -> {entry.ordinal}", fg="green"))


@cli.command()
@click.argument("ordinal")
@click.argument("index", type=int)
@pass_shaker
@reports_errors
def reorder(obj: Context, ordinal: str, index: int) -> None:
    """Move an entry to another position among its siblings."""
    entry = obj.tree.reorder(ordinal, index)
    click.echo(click.style(f"Reordered: {ordinal} -> {entry.ordinal}", fg="green"))


@cli.command()
@click.argument("ordinal")
@click.option("--title", default=None, help="New title.")
@click.option("--difficulty", type=float, default=None, help="New difficulty rating.")
@click.option("--content", default=None, help="New content body.")
@pass_shaker
@reports_errors
def edit(obj: Context, ordinal: str, title: str | None, difficulty: float | None, content: str | None) -> None:
    """Edit the title, difficulty or content of an entry."""
    fields = {"title": title, "difficulty": difficulty, "content": content}
    entry = obj.tree.update(ordinal, **{k: v for k, v in fields.items() if v is not None})
    click.echo(format_entry(entry))


@cli.command()
@click.argument("ordinal")
@click.option("--cascade", is_flag=True, help="Delete the whole subtree.")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt.")
@pass_shaker
@reports_errors
def delete(obj: Context, ordinal: str, cascade: bool, yes: bool) -> None:
    """Delete an entry (with --cascade, its descendants too)."""
    entry = obj.store.get(ordinal)
    if cascade and not yes:
        count = len(obj.store.subtree(ordinal))
        click.echo(f"This will delete '{entry.title}' and {count - 1} descendants.")
        if not click.confirm("Continue?"):
            click.echo("Aborted.")
            return

    removed = obj.tree.delete_subtree(ordinal, cascade=cascade)
    click.echo(click.style(f"Deleted {removed} entries.", fg="green"))


@cli.command()
@click.argument("ordinal")
@pass_shaker
@reports_errors
def show(obj: Context, ordinal: str) -> None:
    """Show an entry with its neighbours and children."""
    entry = obj.store.get(ordinal)
    prev, nxt = obj.store.siblings(ordinal)

    click.echo(click.style(f"# {entry.title}", bold=True))
    click.echo(f"Ordinal: {entry.ordinal}")
    click.echo(f"Parent: {entry.parent or '(root)'}")
    click.echo(f"Slug: {entry.slug}")
    if entry.difficulty is not None:
        click.echo(f"Difficulty: {entry.difficulty}")
    if prev:
        click.echo(f"Previous: {prev.title} ({prev.ordinal})")
    if nxt:
        click.echo(f"Next: {nxt.title} ({nxt.ordinal})")

    children = obj.store.children_of(ordinal)
    if children:
        click.echo()
        click.echo(click.style("Children:", bold=True))
        for child in children:
            click.echo(f"  {format_entry(child)}")

    if entry.content:
        click.echo()
        click.echo(entry.content)


@cli.command()
@click.argument("ordinal", required=False)
@pass_shaker
@reports_errors
def tree(obj: Context, ordinal: str | None) -> None:
    """Print the tree, or the subtree under ORDINAL."""
    entries = obj.store.subtree(ordinal) if ordinal else obj.store.walk()
    if not entries:
        click.echo("(empty)")
        return
    base = entries[0].depth
    for entry in entries:
        click.echo("  " * (entry.depth - base) + format_entry(entry))


@cli.command()
@pass_shaker
def info(obj: Context) -> None:
    """Show database statistics."""
    database = obj.settings.database
    click.echo(click.style("=== Database Info ===", bold=True))
    click.echo()
    click.echo(f"Database: {database}")
    if database.exists():
        size_mb = database.stat().st_size / (1024 * 1024)
        click.echo(f"Size: {size_mb:.2f} MB")
    click.echo(f"Key length limit: {obj.settings.max_key_length}")
    click.echo()

    stats = obj.store.stats()
    click.echo(click.style("Entries:", bold=True))
    click.echo(f"  Total: {stats['entries']}")
    click.echo(f"  Roots: {stats['roots']}")
    click.echo(f"  Branches: {stats['branches']}")
    click.echo(f"  Leaves: {stats['leaves']}")
    click.echo(f"  Retired ordinals: {stats['retired']}")


@cli.command()
@click.option(
    "--name",
    "-n",
    type=str,
    default=None,
    help="Custom backup name (default: timestamp).",
)
@pass_shaker
def backup(obj: Context, name: str | None) -> None:
    """Create a backup of the current database.

    Uses SQLite VACUUM INTO for a clean, compact copy in backups/ next to
    the database.
    """
    active_db = obj.settings.database
    if not active_db.exists():
        raise click.ClickException(f"Database not found: {active_db}")

    if name:
        backup_name = f"{name}.db"
    else:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        backup_name = f"{timestamp}_{active_db.stem}.db"

    backups_dir = obj.settings.backups_dir
    backups_dir.mkdir(parents=True, exist_ok=True)
    backup_path = backups_dir / backup_name
    if backup_path.exists():
        raise click.ClickException(f"Backup already exists: {backup_path}")

    click.echo(f"Backing up: {active_db}")
    click.echo(f"       To: {backup_path}")

    conn = sqlite3.connect(active_db)
    try:
        conn.execute("VACUUM INTO ?", (str(backup_path),))
        click.echo(click.style("Backup created successfully!", fg="green"))
    finally:
        conn.close()


@cli.command()
@click.argument("path", required=False)
@click.option("--default", "reset", is_flag=True, help="Drop the override and use the default database.")
@pass_shaker
def use(obj: Context, path: str | None, reset: bool) -> None:
    """Switch the database recorded in shaker.toml.

    Examples:

        shaker use data/draft.db
        shaker use --default
    """
    if reset:
        write_database_path(obj.settings.config_path, None)
        click.echo(click.style("Switched to the default database", fg="green"))
        return
    if path is None:
        raise click.ClickException("PATH is required (or use --default)")

    write_database_path(obj.settings.config_path, path)
    click.echo(click.style(f"Switched to: {path}", fg="green"))
    click.echo(f"Config: {obj.settings.config_path}")
