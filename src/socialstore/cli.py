"""socialstore CLI: inspect and maintain the agent's JSON documents.

Commands:
    socialstore init                   create socialstore.toml + data dir
    socialstore path NAME              print the file backing a document
    socialstore show NAME              dump a document (recovers corrupt files)
    socialstore dedup check TEXT       is TEXT a duplicate of posted content?
    socialstore dedup add TEXT         record TEXT as posted
    socialstore dedup similar TEXT     list similar posted content
    socialstore dedup threshold [X]    show or set the similarity threshold
    socialstore dedup remove ID        forget a content node
    socialstore queue list             list queued posts
"""

from __future__ import annotations

import contextlib
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from socialstore.config import init_config, load_config
from socialstore.durable import DurableStore
from socialstore.errors import StorageError
from socialstore.models import QUEUE_ITEM_STATUSES
from socialstore.stores import Stores, open_stores

if TYPE_CHECKING:
    from collections.abc import Iterator

    from socialstore.models import ContentNode

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _stores(ctx: click.Context) -> Stores:
    obj = ctx.ensure_object(dict)
    if "stores" not in obj:
        try:
            cfg = load_config(obj.get("root"))
        except (OSError, ValueError) as exc:
            raise click.ClickException(str(exc)) from exc
        verbose = obj.get("verbose", 0)
        level = {0: cfg.logging.level, 1: "INFO"}.get(verbose, "DEBUG")
        logging.basicConfig(level=level, format="%(asctime)s %(name)s %(message)s")
        try:
            obj["stores"] = open_stores(cfg)
        except OSError as exc:
            raise click.ClickException(f"Cannot open data dir {cfg.data_dir}: {exc}") from exc
    return obj["stores"]  # type: ignore[no-any-return]


@contextlib.contextmanager
def _storage_errors() -> Iterator[None]:
    """Turn expected storage failures into a one-line message."""
    try:
        yield
    except StorageError as exc:
        raise click.ClickException(f"{exc.user_message} ({exc})") from exc


def _snippet(node: ContentNode, width: int = 60) -> str:
    text = (node.content or "").replace("\n", " ")
    return text if len(text) <= width else text[: width - 1] + "…"


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="social-agent-store")
@click.option("--root", default=None, help="Directory holding socialstore.toml (default: search upward from cwd)")
@click.option("-v", "--verbose", count=True, help="-v for INFO logging, -vv for DEBUG")
@click.pass_context
def cli(ctx: click.Context, root: str | None, verbose: int) -> None:
    """socialstore: durable JSON documents for the social agent."""
    obj = ctx.ensure_object(dict)
    obj["root"] = root
    obj["verbose"] = verbose


# ---------------------------------------------------------------------------
# socialstore init / path / show
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--dir", "root", default=".", show_default=True, help="Project root")
@click.option("--data-dir", default=None, help="Data directory to record in socialstore.toml")
def init(root: str, data_dir: str | None) -> None:
    """Create socialstore.toml and the data directory."""
    root_path = Path(root).resolve()
    try:
        config_path = init_config(root_path, data_dir=data_dir)
        click.echo(f"Created {config_path}")
    except FileExistsError:
        click.echo("socialstore.toml already exists, skipping init")

    try:
        cfg = load_config(root_path)
        DurableStore(cfg.data_dir)
    except (OSError, ValueError) as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Data dir : {cfg.data_dir}")


@cli.command("path")
@click.argument("name")
@click.pass_context
def path_cmd(ctx: click.Context, name: str) -> None:
    """Print the file that backs document NAME."""
    stores = _stores(ctx)
    try:
        click.echo(str(stores.durable.resolve_path(name)))
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="NAME") from exc


@cli.command()
@click.argument("name")
@click.pass_context
def show(ctx: click.Context, name: str) -> None:
    """Print document NAME as JSON. A corrupt file is backed up and reset."""
    stores = _stores(ctx)
    try:
        path = stores.durable.resolve_path(name)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="NAME") from exc

    def _recovered(_path: Path, error: StorageError, backup: Path) -> None:
        click.echo(f"{error.user_message} Backup: {backup}", err=True)

    typed = {s.document_name: s for s in (stores.queue, stores.content_graph)}
    value: Any
    with _storage_errors():
        if path.name in typed:
            store = typed[path.name]
            stores.durable.read_with_recovery(path, store.dump(store.default()), _recovered)
            value = store.dump(store.reload())
        else:
            if not path.exists():
                raise click.ClickException(f"No document named {name!r} in {stores.durable.data_dir}")
            value = stores.durable.read_with_recovery(path, {}, _recovered)
    click.echo(json.dumps(value, indent=2, ensure_ascii=False))


# ---------------------------------------------------------------------------
# socialstore dedup
# ---------------------------------------------------------------------------


@cli.group()
def dedup() -> None:
    """Duplicate detection over posted content."""


@dedup.command()
@click.argument("text")
@click.pass_context
def check(ctx: click.Context, text: str) -> None:
    """Check TEXT against posted content. Exits 1 on a duplicate."""
    stores = _stores(ctx)
    with _storage_errors():
        result = stores.content_graph.check_duplicate(text)
    node = result.matched_node
    if not result.is_duplicate or node is None:
        click.echo("unique")
        return
    if result.similarity is None:
        click.echo(f"duplicate ({result.reason}) of {node.id}")
    else:
        click.echo(f"duplicate ({result.reason}, {result.similarity:.3f}) of {node.id}")
    ctx.exit(1)


@dedup.command("add")
@click.argument("text")
@click.option("--topic", "topics", multiple=True, help="Topic tag (repeatable)")
@click.pass_context
def dedup_add(ctx: click.Context, text: str, topics: tuple[str, ...]) -> None:
    """Record TEXT as posted content."""
    stores = _stores(ctx)
    with _storage_errors():
        node = stores.content_graph.add_node(text, topics)
    click.echo(node.id)


@dedup.command()
@click.argument("text")
@click.option("--threshold", type=click.FloatRange(-1.0, 1.0), default=None,
              help="Minimum cosine similarity (default: stored threshold)")
@click.pass_context
def similar(ctx: click.Context, text: str, threshold: float | None) -> None:
    """List posted content similar to TEXT, most similar first."""
    stores = _stores(ctx)
    graph = stores.content_graph
    with _storage_errors():
        results = graph.find_similar(graph.vectorize(text), threshold)
    if not results:
        click.echo("No similar content.")
        return
    for r in results:
        click.echo(f"{r.similarity:.3f}  {r.node.id}  {_snippet(r.node)}")


@dedup.command()
@click.argument("value", type=float, required=False)
@click.pass_context
def threshold(ctx: click.Context, value: float | None) -> None:
    """Show the similarity threshold, or set it to VALUE (0..1)."""
    stores = _stores(ctx)
    graph = stores.content_graph
    with _storage_errors():
        if value is None:
            click.echo(f"{graph.similarity_threshold:g}")
            return
        try:
            graph.set_similarity_threshold(value)
        except ValueError as exc:
            raise click.BadParameter(str(exc), param_hint="VALUE") from exc
    click.echo(f"Similarity threshold set to {value:g}")


@dedup.command("remove")
@click.argument("node_id")
@click.pass_context
def dedup_remove(ctx: click.Context, node_id: str) -> None:
    """Forget content node NODE_ID."""
    stores = _stores(ctx)
    with _storage_errors():
        removed = stores.content_graph.remove_node(node_id)
    if not removed:
        raise click.ClickException(f"No content node {node_id}")
    click.echo(f"Removed {node_id}")


# ---------------------------------------------------------------------------
# socialstore queue
# ---------------------------------------------------------------------------


@cli.group()
def queue() -> None:
    """The posting queue."""


@queue.command("list")
@click.option("--status", type=click.Choice(QUEUE_ITEM_STATUSES), default=None, help="Only items with this status")
@click.pass_context
def queue_list(ctx: click.Context, status: str | None) -> None:
    """List queued posts."""
    stores = _stores(ctx)
    with _storage_errors():
        items = stores.queue.by_status(status) if status else stores.queue.items()
    if not items:
        click.echo("Queue is empty.")
        return
    for item in items:
        text = item.content if isinstance(item.content, str) else " / ".join(item.content)
        when = item.scheduled_at or "-"
        click.echo(f"{item.id}  {item.status:<14}  {when}  {text}")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
