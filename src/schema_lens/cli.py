"""
Command-line interface for schema_lens.

Provides introspect, graph, related, stats, ddl and build commands.
Everything except ``introspect`` works from the schema cache or from
files, without a database connection.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from schema_lens import __version__
from schema_lens.cache import CacheEntry, SchemaCache
from schema_lens.config import ConnectionConfig, default_cache_dir, get_connection, load_connections
from schema_lens.ddl import render_ddl
from schema_lens.discovery import build_graph
from schema_lens.errors import SchemaLensError
from schema_lens.introspection import introspect_and_cache
from schema_lens.models import DatabaseType, GraphData, SchemaInfo

console = Console()

DEFAULT_CONNECTIONS_FILE = Path("connections.yaml")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with Rich handler."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


@click.group()
@click.version_option(version=__version__, prog_name="schema-lens")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option(
    "--connections",
    type=click.Path(path_type=Path),
    default=DEFAULT_CONNECTIONS_FILE,
    show_default=True,
    help="YAML file with connection definitions",
)
@click.option(
    "--cache-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Schema cache directory (default: $SCHEMA_LENS_CACHE_DIR or ./data/schema-cache)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, connections: Path, cache_dir: Optional[Path]) -> None:
    """
    Schema Lens - Schema introspection and relationship discovery

    Reads MySQL and SQL Server catalogs and infers table relationships
    from declared foreign keys and view definitions.
    """
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["connections"] = connections
    ctx.obj["cache"] = SchemaCache(cache_dir or default_cache_dir())


def _fail(message: str) -> None:
    console.print(f"[red]Error: {message}[/red]")
    sys.exit(1)


def _connection(ctx: click.Context, conn_id: str) -> ConnectionConfig:
    try:
        return get_connection(load_connections(ctx.obj["connections"]), conn_id)
    except SchemaLensError as e:
        _fail(str(e))


def _cached(ctx: click.Context, conn_id: str) -> CacheEntry:
    cache: SchemaCache = ctx.obj["cache"]
    try:
        entry = cache.get(conn_id)
    except SchemaLensError as e:
        _fail(str(e))
    if entry is None:
        _fail(f"No cached schema for '{conn_id}'. Run: schema-lens introspect {conn_id}")
    return entry


def _edges_table(edges, title: str) -> Table:
    table = Table(title=title)
    table.add_column("From", style="cyan")
    table.add_column("Column", style="green")
    table.add_column("To", style="yellow")
    table.add_column("Column", style="green")
    table.add_column("Label", style="magenta")
    table.add_column("Confidence", style="blue")

    for edge in edges:
        table.add_row(
            edge.from_node,
            edge.from_column,
            edge.to_node,
            edge.to_column,
            edge.label.value,
            edge.confidence.value,
        )
    return table


def _print_graph_summary(schema: SchemaInfo, graph: GraphData) -> None:
    summary = Table(title="Schema Summary")
    summary.add_column("Object", style="cyan")
    summary.add_column("Count", style="green", justify="right")

    summary.add_row("Tables", str(len(schema.tables)))
    summary.add_row("Views", str(len(schema.views)))
    summary.add_row("Triggers", str(len(schema.triggers)))
    summary.add_row("Foreign keys", str(len(schema.foreign_keys)))
    summary.add_row("Graph nodes", str(len(graph.nodes)))
    summary.add_row("Graph edges", str(len(graph.edges)))

    console.print(summary)


@cli.command()
@click.argument("conn_id")
@click.pass_context
def introspect(ctx: click.Context, conn_id: str) -> None:
    """
    Read a database catalog, infer relationships and refresh the cache.

    Example:

        schema-lens --connections connections.yaml introspect shop
    """
    config = _connection(ctx, conn_id)
    cache: SchemaCache = ctx.obj["cache"]

    console.print(f"[bold blue]Schema Lens - Introspecting {config.name}[/bold blue]")
    console.print(f"Database: {config.database} ({config.type.value} at {config.host}:{config.port})")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task("Reading catalog and inferring relationships...", total=None)
        try:
            schema, graph_data = introspect_and_cache(config, cache)
        except SchemaLensError as e:
            progress.stop()
            _fail(str(e))
        progress.update(task, completed=True)

    console.print("\n[green]Introspection complete![/green]")
    _print_graph_summary(schema, graph_data)
    console.print(f"Cache: {cache.path_for(conn_id)}")


@cli.command()
@click.argument("conn_id")
@click.option("--json", "as_json", is_flag=True, help="Print the graph as JSON")
@click.pass_context
def graph(ctx: click.Context, conn_id: str, as_json: bool) -> None:
    """Show the cached relationship graph of a connection."""
    entry = _cached(ctx, conn_id)

    if as_json:
        click.echo(json.dumps(entry.graph.to_dict(), indent=2))
        return

    nodes_table = Table(title=f"Nodes ({len(entry.graph.nodes)})")
    nodes_table.add_column("Id", style="cyan")
    nodes_table.add_column("Kind", style="yellow")
    nodes_table.add_column("Columns", style="green", justify="right")
    for node in entry.graph.nodes:
        nodes_table.add_row(node.id, node.kind.value, str(len(node.columns)))
    console.print(nodes_table)

    if entry.graph.edges:
        console.print(_edges_table(entry.graph.edges, f"Edges ({len(entry.graph.edges)})"))
    else:
        console.print("\n[yellow]No relationships found.[/yellow]")


@cli.command()
@click.argument("conn_id")
@click.argument("node_id")
@click.pass_context
def related(ctx: click.Context, conn_id: str, node_id: str) -> None:
    """
    List the tables and views directly related to NODE_ID.

    Example:

        schema-lens related shop dbo.Orders
    """
    entry = _cached(ctx, conn_id)
    if entry.graph.node(node_id) is None:
        _fail(f"'{node_id}' is not a table or view of '{conn_id}'")

    neighbours = entry.graph.related_nodes(node_id)
    if not neighbours:
        console.print(f"[yellow]{node_id} has no known relationships.[/yellow]")
        return

    console.print(f"[bold]{node_id}[/bold] is related to:")
    for neighbour in neighbours:
        console.print(f"  {neighbour}")
    console.print(_edges_table(entry.graph.edges_for(node_id), "Relationships"))


@cli.command()
@click.argument("conn_id")
@click.pass_context
def stats(ctx: click.Context, conn_id: str) -> None:
    """Show cache statistics for a connection."""
    cache: SchemaCache = ctx.obj["cache"]
    try:
        cache_stats = cache.stats(conn_id)
    except SchemaLensError as e:
        _fail(str(e))

    if not cache_stats["has_cache"]:
        _fail(f"No cached schema for '{conn_id}'. Run: schema-lens introspect {conn_id}")

    stats_table = Table(title=f"Cache: {conn_id}")
    stats_table.add_column("Property", style="cyan")
    stats_table.add_column("Value", style="green")
    for key, value in cache_stats.items():
        stats_table.add_row(key.replace("_", " ").capitalize(), str(value))
    console.print(stats_table)


@cli.command()
@click.argument("conn_id")
@click.option(
    "--dialect",
    type=click.Choice([t.value for t in DatabaseType]),
    default=None,
    help="DDL dialect (default: the connection's database type)",
)
@click.option(
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write DDL to this file instead of stdout",
)
@click.pass_context
def ddl(ctx: click.Context, conn_id: str, dialect: Optional[str], output: Optional[Path]) -> None:
    """Render DDL for the cached schema of a connection."""
    entry = _cached(ctx, conn_id)
    target = DatabaseType(dialect) if dialect else _connection(ctx, conn_id).type

    text = render_ddl(entry.schema, target)
    if output:
        output.write_text(text)
        console.print(f"[green]Saved DDL to: {output}[/green]")
    else:
        click.echo(text)


@cli.command()
@click.argument("schema_json", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the graph JSON to this file instead of stdout",
)
def build(schema_json: Path, output: Optional[Path]) -> None:
    """
    Infer the relationship graph of a SchemaInfo JSON document (offline).

    Example:

        schema-lens build schema.json --output graph.json
    """
    try:
        with open(schema_json, "r") as f:
            schema = SchemaInfo.from_dict(json.load(f))
    except (ValueError, KeyError, TypeError) as e:
        _fail(f"Invalid schema document {schema_json}: {e}")

    result = build_graph(schema)

    if output:
        with open(output, "w") as f:
            json.dump(result.to_dict(), f, indent=2)
        _print_graph_summary(schema, result)
        console.print(f"[green]Saved graph to: {output}[/green]")
    else:
        click.echo(json.dumps(result.to_dict(), indent=2))


if __name__ == "__main__":
    cli()
