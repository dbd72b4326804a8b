"""Archlens CLI entry point."""

from __future__ import annotations

import functools
import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from archlens import __version__

if TYPE_CHECKING:
    from collections.abc import Callable

    from archlens.config import Config
    from archlens.service import QueryOptions
    from archlens.violations.base import GraphWithViolations

_LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


@click.group()
@click.version_option(version=__version__, prog_name="archlens")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output (debug logging).")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output (errors only).")
@click.pass_context
def main(ctx: click.Context, *, verbose: bool, quiet: bool) -> None:
    """Archlens - dependency graphs and architecture violations."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet

    level = logging.WARNING
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    logging.basicConfig(level=level, format=_LOG_FORMAT, force=True)


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _load_config_or_exit(config_path: Path | None) -> Config:
    from archlens.config import load_config

    try:
        return load_config(config_path)
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)


def _query_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Attach the options that shape a dependency graph query."""
    options = [
        click.option(
            "--config",
            "config_path",
            type=click.Path(exists=False, dir_okay=False, path_type=Path),
            default=None,
            help="Config file (default: .archlens/config.yml if present).",
        ),
        click.option("--layer-depth", type=int, default=1, show_default=True,
                     help="Levels below the selected node to show."),
        click.option("--dependency-depth", type=int, default=1, show_default=True,
                     help="Maximum dependency hops from the selected node."),
        click.option("--outgoing/--no-outgoing", default=True, show_default=True,
                     help="Show outgoing dependencies."),
        click.option("--incoming/--no-incoming", default=False, show_default=True,
                     help="Show incoming dependencies."),
        click.option("--selected-internal/--no-selected-internal", default=False,
                     show_default=True,
                     help="Dependencies inside the selected node."),
        click.option("--domain-internal/--no-domain-internal", default=True,
                     show_default=True,
                     help="Dependencies inside the selected node's domain."),
        click.option("--external/--no-external", default=True, show_default=True,
                     help="Dependencies leaving the selected node's domain."),
        click.option(
            "--category",
            "categories",
            multiple=True,
            type=click.Choice(["weak", "strong", "entity"], case_sensitive=False),
            help="Dependency categories to keep (repeatable, default: all).",
        ),
        click.option("--outgoing-min", type=int, default=None,
                     help="Minimum outgoing neighbours of a node."),
        click.option("--outgoing-max", type=int, default=None,
                     help="Maximum outgoing neighbours of a node."),
        click.option("--incoming-min", type=int, default=None,
                     help="Minimum incoming neighbours of a node."),
        click.option("--incoming-max", type=int, default=None,
                     help="Maximum incoming neighbours of a node."),
        click.option("--self-edges/--no-self-edges", default=None,
                     help="Keep edges whose endpoints coincide (default: from config)."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _build_query(node_id: str, config: Config, params: dict[str, Any]) -> QueryOptions:
    from archlens.graph.processor import Range
    from archlens.service import QueryOptions

    processing = config.processing

    def _range(low: int | None, high: int | None, fallback: Range) -> Range:
        if low is None and high is None:
            return fallback
        return Range(low, high)

    categories = {c.lower() for c in params["categories"]} or {"weak", "strong", "entity"}
    self_edges = params["self_edges"]
    return QueryOptions(
        id=node_id,
        layer_depth=params["layer_depth"],
        dependency_depth=params["dependency_depth"],
        show_selected_internal_relations=params["selected_internal"],
        show_domain_internal_relations=params["domain_internal"],
        show_external_relations=params["external"],
        show_outgoing=params["outgoing"],
        show_incoming=params["incoming"],
        outgoing_range=_range(
            params["outgoing_min"], params["outgoing_max"], processing.outgoing_range
        ),
        incoming_range=_range(
            params["incoming_min"], params["incoming_max"], processing.incoming_range
        ),
        self_edges=processing.self_edges if self_edges is None else self_edges,
        show_weak_dependencies="weak" in categories,
        show_strong_dependencies="strong" in categories,
        show_entity_dependencies="entity" in categories,
    )


def _run_query(snapshot: Path, node_id: str, params: dict[str, Any]) -> GraphWithViolations:
    """Load config and snapshot, then build the graph; exit 2 on bad input."""
    import anyio

    from archlens.service import VisualizationService
    from archlens.store import SnapshotGraphSource, StoreError

    config = _load_config_or_exit(params.pop("config_path"))
    try:
        query = _build_query(node_id, config, params)
        source = SnapshotGraphSource.from_file(
            snapshot,
            cycle_max_depth=config.cycles.max_depth,
            cycle_max_cycles=config.cycles.max_cycles,
            cycle_max_steps=config.cycles.max_steps,
        )
        service = VisualizationService(source, config)
        return anyio.run(service.get_graph_from_selected_node, query)
    except (StoreError, ValueError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@main.command()
@click.argument("snapshot", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("node_id")
@_query_options
def graph(snapshot: Path, node_id: str, **params: Any) -> None:
    """Print the dependency graph around NODE_ID as JSON."""
    from archlens.formatter import to_payload

    result = _run_query(snapshot, node_id, params)
    click.echo(json.dumps(to_payload(result, node_id), ensure_ascii=False, indent=2))


@main.command()
@click.argument("snapshot", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("node_id")
@_query_options
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["rich", "json", "porcelain"]),
    default=None,
    help="Output format (default: rich if TTY, porcelain if piped).",
)
@click.option(
    "--strict",
    is_flag=True,
    default=False,
    help="Exit 1 if violations found.",
)
def violations(
    snapshot: Path,
    node_id: str,
    *,
    fmt: str | None,
    strict: bool,
    **params: Any,
) -> None:
    """Report dependency cycles and layer violations around NODE_ID.

    Exit codes: 0 = clean or violations without --strict,
    1 = violations with --strict, 2 = configuration or snapshot error.
    """
    from archlens.formatter import format_json, format_porcelain, format_rich

    # Resolve output format: explicit flag > TTY detection.
    if fmt is None:
        fmt = "rich" if sys.stdout.isatty() else "porcelain"

    result = _run_query(snapshot, node_id, params)

    formatters = {
        "rich": format_rich,
        "json": format_json,
        "porcelain": format_porcelain,
    }
    output = formatters[fmt](result)
    if output:
        click.echo(output)

    if strict and result.violations.count:
        sys.exit(1)


@main.command()
@click.argument("snapshot", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--max-depth", type=int, default=None,
              help="Longest cycle (in nodes) to search for (default: from config).")
@click.option("--max-cycles", type=int, default=None,
              help="Stop after this many cycles (default: from config).")
@click.option("--max-steps", type=int, default=None,
              help="Stop after expanding this many edges (default: from config).")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=False, dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: .archlens/config.yml if present).",
)
def cycles(
    snapshot: Path,
    *,
    max_depth: int | None,
    max_cycles: int | None,
    max_steps: int | None,
    config_path: Path | None,
) -> None:
    """List every dependency cycle in SNAPSHOT."""
    import anyio
    from rich.console import Console
    from rich.table import Table

    from archlens.store import SnapshotGraphSource, StoreError

    config = _load_config_or_exit(config_path)
    try:
        source = SnapshotGraphSource.from_file(
            snapshot,
            cycle_max_depth=max_depth if max_depth is not None else config.cycles.max_depth,
            cycle_max_cycles=max_cycles if max_cycles is not None else config.cycles.max_cycles,
            cycle_max_steps=max_steps if max_steps is not None else config.cycles.max_steps,
        )
    except StoreError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)

    result = anyio.run(source.fetch_dependency_cycles)
    found = result.cycles if result is not None else []

    console = Console()
    if not found:
        console.print("[green]✓[/] No dependency cycles found")
        return

    table = Table(title="Dependency cycles", box=None, padding=(0, 1))
    table.add_column("#", justify="right", style="dim")
    table.add_column("nodes", style="cyan")
    table.add_column("edges")
    for idx, cycle in enumerate(found, 1):
        names = []
        for node_id in cycle.node_ids:
            node = source.nodes.get(node_id)
            names.append(str(node.properties.get("simpleName", node_id)) if node else node_id)
        table.add_row(
            str(idx),
            " → ".join([*names, names[0]]),
            ", ".join(cycle.edge_ids),
        )
    console.print(table)
    if result is not None and result.truncated:
        console.print("[yellow]Search truncated; raise the search bounds (see --help).[/]")
