#!/usr/bin/env python3
"""
phx: CLI for phylactery connection discovery

Usage:
    phx analyze nodes.jsonl                 # Discover connections for every node
    phx similar nodes.jsonl NODE_ID         # Lexical similarity scores
    phx temporal nodes.jsonl NODE_ID        # Temporal proximity scores
    phx confidence nodes.jsonl A B          # Pairwise confidence
    phx clusters nodes.jsonl                # Group nodes created close together
    phx graph nodes.jsonl --root NODE_ID    # Connection graph around a node
"""

from __future__ import annotations

import asyncio
import difflib
import json
import sys
from collections.abc import Sequence
from typing import Any, NoReturn

import click
from click.exceptions import ClickException, UsageError

from . import __version__ as PHYLACTERY_VERSION


def run_async(coro):
    """Run async function synchronously."""
    return asyncio.run(coro)


def format_table(rows: list[dict], columns: list[str], max_widths: dict | None = None) -> str:
    """Format rows as a simple table."""
    if not rows:
        return ""

    max_widths = max_widths or {}
    widths = {col: len(col) for col in columns}

    def _cell(row: dict, col: str) -> str:
        val = str(row.get(col, ""))
        limit = max_widths.get(col, 50)
        if len(val) > limit:
            val = val[: limit - 3] + "..."
        return val

    for row in rows:
        for col in columns:
            widths[col] = max(widths[col], len(_cell(row, col)))

    header = "  ".join(col.upper().ljust(widths[col]) for col in columns)
    separator = "  ".join("-" * widths[col] for col in columns)

    lines = [header, separator]
    for row in rows:
        lines.append("  ".join(_cell(row, col).ljust(widths[col]) for col in columns))

    return "\n".join(lines)


def output(data, as_json: bool = False):
    """Output data as JSON or formatted text."""
    if as_json:
        click.echo(json.dumps(data, indent=2, default=str))
    else:
        click.echo(data)


def format_json_error(code: str, message: str, details: dict | None = None) -> str:
    """Format an error as JSON for --json-errors output."""
    error: dict[str, dict[str, object]] = {"error": {"code": code, "message": message}}
    if details:
        error["error"]["details"] = details
    return json.dumps(error)


def _handle_error(ctx: click.Context, error: Exception, exit_code: int = 1) -> NoReturn:
    """Report an error (as JSON with --json-errors) and exit."""
    from .config import ConfigurationError
    from .errors import DiscoveryError, ErrorCode

    json_errors = ctx.obj.get("json_errors", False) if ctx.obj else False

    if isinstance(error, DiscoveryError):
        if json_errors:
            click.echo(error.to_json(), err=True)
        else:
            click.echo(f"Error: {error.message}", err=True)
    else:
        code = ErrorCode.CONFIGURATION_ERROR.value if isinstance(error, ConfigurationError) else "INTERNAL_ERROR"
        if json_errors:
            click.echo(format_json_error(code, str(error)), err=True)
        else:
            click.echo(f"Error: {error}", err=True)

    sys.exit(exit_code)


def get_error_code_for_exception(exc: Exception) -> str:
    """Map Click exceptions to error codes."""
    # MissingParameter subclasses BadParameter
    if isinstance(exc, click.MissingParameter):
        return "MISSING_ARGUMENT"
    elif isinstance(exc, click.BadParameter):
        return "INVALID_ARGUMENT"
    elif isinstance(exc, click.NoSuchOption):
        return "UNKNOWN_OPTION"
    elif isinstance(exc, UsageError):
        return "USAGE_ERROR"
    elif isinstance(exc, ClickException):
        return "CLI_ERROR"
    return "UNKNOWN_ERROR"


# ─────────────────────────────────────────────────────────────────────────────
# JSON Error Handling
# ─────────────────────────────────────────────────────────────────────────────


class JsonErrorGroup(click.Group):
    """Click group that formats errors as JSON when --json-errors is set.

    Also suggests the closest command name for typos.
    """

    def resolve_command(self, ctx, args):
        try:
            return super().resolve_command(ctx, args)
        except UsageError as e:
            cmd_name = args[0] if args else ""
            if cmd_name and "No such command" in str(e):
                matches = difflib.get_close_matches(
                    cmd_name, self.list_commands(ctx), n=1, cutoff=0.6
                )
                if matches:
                    raise UsageError(f"No such command '{cmd_name}'. Did you mean '{matches[0]}'?")
            raise

    def main(
        self,
        args: Sequence[str] | None = None,
        prog_name: str | None = None,
        complete_var: str | None = None,
        standalone_mode: bool = True,
        **extra: Any,
    ) -> Any:
        """Catch argument parsing errors so they can be emitted as JSON."""
        argv = list(args) if args is not None else list(sys.argv[1:])
        if "--json-errors" not in argv:
            return super().main(args, prog_name, complete_var, standalone_mode, **extra)

        # Treat a misplaced --json-errors as the global flag
        argv = ["--json-errors", *[a for a in argv if a != "--json-errors"]]

        try:
            return super().main(argv, prog_name, complete_var, standalone_mode=False, **extra)
        except ClickException as e:
            click.echo(format_json_error(get_error_code_for_exception(e), e.format_message()), err=True)
            raise SystemExit(1)
        except SystemExit:
            raise
        except Exception as e:
            click.echo(format_json_error("INTERNAL_ERROR", str(e)), err=True)
            raise SystemExit(1)


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────


def _load_system(ctx: click.Context, nodes_file: str):
    """Load nodes into in-memory stores and wire up a discovery system."""
    from .discovery import ConnectionDiscoverySystem
    from .storage import InMemoryConnectionStore, InMemoryNodeStore
    from .storage.files import load_nodes

    nodes = load_nodes(nodes_file)
    settings = ctx.obj["settings"]
    return ConnectionDiscoverySystem(InMemoryNodeStore(nodes), InMemoryConnectionStore(), settings=settings)


def _percent(score: float) -> str:
    return f"{score * 100:.1f}%"


nodes_argument = click.argument("nodes_file", metavar="NODES", type=click.Path(exists=True, dir_okay=False))


# ─────────────────────────────────────────────────────────────────────────────
# Main CLI Group
# ─────────────────────────────────────────────────────────────────────────────


@click.group(cls=JsonErrorGroup)
@click.version_option(version=PHYLACTERY_VERSION, prog_name="phx")
@click.option(
    "--json-errors",
    "json_errors",
    is_flag=True,
    help="Output errors as JSON (for programmatic use)",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    envvar="PHYLACTERY_QUIET",
    help="Suppress warnings, show only errors and essential output",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    help="Settings file (default: $PHYLACTERY_CONFIG or .phylactery.yaml)",
)
@click.pass_context
def cli(ctx: click.Context, json_errors: bool, quiet: bool, config_path: str | None):
    """phx: discover connections between knowledge nodes.

    NODES is a JSON array or JSONL file of nodes with id, type
    (note/image/webpage), searchable_text, created_at and modified_at.

    \b
    Examples:
      phx analyze nodes.jsonl --json
      phx similar nodes.jsonl n1 --threshold 0
      phx clusters nodes.jsonl --window-minutes 30
    """
    from ._logging import configure_logging, set_quiet_mode
    from .config import ConfigurationError, load_settings

    ctx.ensure_object(dict)
    ctx.obj["json_errors"] = json_errors

    configure_logging()
    if quiet:
        set_quiet_mode(True)

    try:
        ctx.obj["settings"] = load_settings(config_path)
    except ConfigurationError as e:
        _handle_error(ctx, e)


@cli.command()
@nodes_argument
@click.option("--node", "node_ids", multiple=True, help="Node id to analyze (repeatable; default: all)")
@click.option("--timeout", type=click.FloatRange(min=0, min_open=True), help="Per-node timeout in seconds")
@click.option("--strong-only", is_flag=True, help="Only list strong connections")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def analyze(
    ctx: click.Context,
    nodes_file: str,
    node_ids: tuple[str, ...],
    timeout: float | None,
    strong_only: bool,
    as_json: bool,
):
    """Discover and store connections for nodes."""
    from .errors import DiscoveryError

    try:
        system = _load_system(ctx, nodes_file)
    except DiscoveryError as e:
        _handle_error(ctx, e)

    if timeout is not None:
        system.worker.analysis_timeout_seconds = timeout

    targets = list(node_ids) or [node.id for node in system.node_store.find_all()]
    results = run_async(system.batch_analyze(targets))

    if strong_only:
        connections = system.get_strong_connections()
    else:
        connections = system.connection_store.find_all()

    if as_json:
        output(
            {
                "results": [r.model_dump(mode="json") for r in results],
                "connections": [c.model_dump(mode="json") for c in connections],
                "failed": sorted(set(targets) - {r.node_id for r in results}),
            },
            as_json=True,
        )
        return

    click.echo(f"Analyzed {len(results)}/{len(targets)} node(s), {len(connections)} connection(s) stored")
    rows = [
        {
            "source": c.source_node_id,
            "target": c.target_node_id,
            "type": c.type,
            "confidence": _percent(c.confidence),
            "reason": c.metadata.reason,
        }
        for c in connections
    ]
    if rows:
        click.echo()
        click.echo(format_table(rows, ["source", "target", "type", "confidence", "reason"]))


@cli.command()
@nodes_argument
@click.argument("node_id")
@click.option("--threshold", type=click.FloatRange(0, 1), help="Minimum similarity (default from settings)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def similar(ctx: click.Context, nodes_file: str, node_id: str, threshold: float | None, as_json: bool):
    """Show lexical (TF-IDF) similarity to a node."""
    from .errors import DiscoveryError

    try:
        system = _load_system(ctx, nodes_file)
        target = system.get_node(node_id)
    except DiscoveryError as e:
        _handle_error(ctx, e)

    if threshold is None:
        threshold = system.scorer.semantic_threshold
    similarities = system.semantic_analyzer.find_similar_nodes(target, system.node_store.find_all(), threshold)

    if as_json:
        output([s.model_dump() for s in similarities], as_json=True)
        return
    if not similarities:
        click.echo("No similar nodes found.")
        return
    rows = [{"node": s.node_id, "similarity": f"{s.similarity:.3f}"} for s in similarities]
    click.echo(format_table(rows, ["node", "similarity"]))


@cli.command()
@nodes_argument
@click.argument("node_id")
@click.option("--window-minutes", type=click.FloatRange(min=0, min_open=True), help="Time window in minutes")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def temporal(ctx: click.Context, nodes_file: str, node_id: str, window_minutes: float | None, as_json: bool):
    """Show nodes created or modified close in time to a node."""
    from .errors import DiscoveryError

    try:
        system = _load_system(ctx, nodes_file)
        target = system.get_node(node_id)
    except DiscoveryError as e:
        _handle_error(ctx, e)

    window = window_minutes * 60 if window_minutes is not None else None
    connections = system.temporal_analyzer.find_temporal_connections(
        target, system.node_store.find_all(), time_window_seconds=window
    )

    if as_json:
        output([c.model_dump() for c in connections], as_json=True)
        return
    if not connections:
        click.echo("No temporally related nodes found.")
        return
    rows = [
        {
            "node": c.node_id,
            "confidence": f"{c.confidence:.3f}",
            "gap": f"{c.time_difference_seconds / 60:.1f}m",
        }
        for c in connections
    ]
    click.echo(format_table(rows, ["node", "confidence", "gap"]))


@cli.command()
@nodes_argument
@click.argument("node_a")
@click.argument("node_b")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def confidence(ctx: click.Context, nodes_file: str, node_a: str, node_b: str, as_json: bool):
    """Show the fused confidence between two nodes."""
    from .errors import DiscoveryError

    try:
        system = _load_system(ctx, nodes_file)
        first = system.get_node(node_a)
        second = system.get_node(node_b)
    except DiscoveryError as e:
        _handle_error(ctx, e)

    score = system.calculate_confidence(first, second)
    strong = system.is_strong_connection(score)

    if as_json:
        output({"source": node_a, "target": node_b, "confidence": score, "strong": strong}, as_json=True)
        return
    label = "strong" if strong else "weak"
    click.echo(f"{node_a} <-> {node_b}: {_percent(score)} ({label})")


@cli.command()
@nodes_argument
@click.option("--window-minutes", type=click.FloatRange(min=0, min_open=True), help="Time window in minutes")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def clusters(ctx: click.Context, nodes_file: str, window_minutes: float | None, as_json: bool):
    """Group nodes created close together in time."""
    from .errors import DiscoveryError

    try:
        system = _load_system(ctx, nodes_file)
    except DiscoveryError as e:
        _handle_error(ctx, e)

    window = window_minutes * 60 if window_minutes is not None else None
    groups = system.temporal_analyzer.cluster_by_time(system.node_store.find_all(), time_window_seconds=window)

    if as_json:
        output([[node.id for node in group] for group in groups], as_json=True)
        return
    for index, group in enumerate(groups, start=1):
        start = group[0].created_at.isoformat()
        click.echo(f"Cluster {index} ({len(group)} node(s), from {start}): {', '.join(n.id for n in group)}")


@cli.command()
@nodes_argument
@click.option("--root", help="Limit to the neighborhood of this node")
@click.option("--depth", default=1, type=click.IntRange(min=1), help="Hops from --root")
@click.option("--min-confidence", default=0.0, type=click.FloatRange(0, 1), help="Drop weaker edges")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def graph(
    ctx: click.Context,
    nodes_file: str,
    root: str | None,
    depth: int,
    min_confidence: float,
    as_json: bool,
):
    """Analyze every node and print the resulting connection graph."""
    from .errors import DiscoveryError

    try:
        system = _load_system(ctx, nodes_file)
        run_async(system.batch_analyze([node.id for node in system.node_store.find_all()]))
        result = system.get_connection_graph(root=root, depth=depth, min_confidence=min_confidence)
    except DiscoveryError as e:
        _handle_error(ctx, e)

    if as_json:
        output(result.model_dump(mode="json"), as_json=True)
        return

    click.echo(f"{len(result.nodes)} node(s), {len(result.edges)} edge(s)")
    rows = [
        {
            "source": e.source,
            "target": e.target,
            "type": e.type,
            "confidence": _percent(e.confidence),
        }
        for e in result.edges
    ]
    if rows:
        click.echo()
        click.echo(format_table(rows, ["source", "target", "type", "confidence"]))


def main():
    """Entry point for the phx console script."""
    cli()


if __name__ == "__main__":
    main()
