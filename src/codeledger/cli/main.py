"""
CodeLedger CLI

Command-line access to the knowledge base and the MCP server.

Usage::

    codeledger create-project shop ./shop "Storefront API"   # Track a project
    codeledger scan <project-id> -p "*.ts"                  # Scan its sources
    codeledger query function --name-pattern "^get"         # Search
    codeledger stats                                        # Row counts
    codeledger mcp                                          # Start the MCP server
"""

import json
import logging
import os
import sys

import click

from codeledger.core.config import LedgerConfig
from codeledger.core.query import QUERY_TYPES
from codeledger.exceptions import CodeLedgerError


# ---------------------------------------------------------------------------
# Logging helpers
# ---------------------------------------------------------------------------

def _configure_logging(config: LedgerConfig, verbose: bool) -> None:
    """Set up logging for the CLI session (stderr, so stdio MCP stays clean)."""
    level = logging.DEBUG if verbose else config.get_log_level()
    logging.basicConfig(level=level, format=config.log_format, stream=sys.stderr)


def _open_ledger(ctx: click.Context):
    """Open the ledger for the configured database, exiting with status 1 on failure."""
    from codeledger.client import CodeLedger

    config: LedgerConfig = ctx.obj["config"]
    try:
        return CodeLedger(config)
    except CodeLedgerError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1)


def _emit(result: dict) -> None:
    """Print a tool result as JSON; exit 1 when it reports failure."""
    click.echo(json.dumps(result, indent=2))
    if not result.get("success", False):
        raise SystemExit(1)


# ---------------------------------------------------------------------------
# Top-level group
# ---------------------------------------------------------------------------

@click.group()
@click.version_option(package_name="codeledger")
@click.option(
    "--db",
    "db_path",
    type=click.Path(dir_okay=False),
    default=None,
    envvar="CODELEDGER_DB",
    help="SQLite database path (default: $CODELEDGER_DB or ./data/codeledger.sqlite).",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, db_path: str | None, verbose: bool):
    """CodeLedger: a knowledge base of projects, API endpoints and functions."""
    config = LedgerConfig.from_env()
    if db_path:
        config.db_path = db_path
    try:
        config.validate()
    except CodeLedgerError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1)
    _configure_logging(config, verbose)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


# ---------------------------------------------------------------------------
# codeledger create-project
# ---------------------------------------------------------------------------

@cli.command("create-project")
@click.argument("name")
@click.argument("path", type=click.Path(exists=True, file_okay=False))
@click.argument("description", default="")
@click.pass_context
def create_project(ctx: click.Context, name: str, path: str, description: str):
    """Track the project NAME rooted at directory PATH."""
    with _open_ledger(ctx) as ledger:
        _emit(ledger.execute_tool("create_project", {
            "name": name,
            "path": os.path.abspath(path),
            "description": description,
        }))


# ---------------------------------------------------------------------------
# codeledger scan
# ---------------------------------------------------------------------------

@cli.command()
@click.argument("project_id")
@click.option("-p", "--pattern", "patterns", multiple=True,
              help="Filename glob to scan (repeatable; default: *.ts and *.js).")
@click.option("--no-progress", is_flag=True, help="Hide the progress bar.")
@click.pass_context
def scan(ctx: click.Context, project_id: str, patterns: tuple, no_progress: bool):
    """Scan every matching file of PROJECT_ID for endpoints and functions."""
    with _open_ledger(ctx) as ledger:
        try:
            result = ledger.scan_project(
                project_id, list(patterns) or None, show_progress=not no_progress,
            )
        except CodeLedgerError as exc:
            click.echo(f"Error: {exc}", err=True)
            raise SystemExit(1)

    click.echo("─" * 50)
    click.echo("  CODELEDGER — Scan Results")
    click.echo("─" * 50)
    click.echo(f"  Files scanned   {result.scanned_files:>8,}")
    click.echo(f"  API endpoints   {len(result.api_endpoint_ids):>8,}")
    click.echo(f"  Functions       {len(result.function_ids):>8,}")
    if result.errors:
        click.echo(f"  Unreadable      {result.errors:>8,}")
    click.echo("─" * 50)


# ---------------------------------------------------------------------------
# codeledger query
# ---------------------------------------------------------------------------

@cli.command()
@click.argument("entity_type", type=click.Choice(QUERY_TYPES))
@click.option("--project", "project_id", default=None, help="Restrict to one project ID.")
@click.option("-q", "--query", "text", default=None, help="Case-insensitive text filter.")
@click.option("-t", "--tag", "tags", multiple=True, help="Match any of these tags (repeatable).")
@click.option("--path-pattern", default=None, help="Regex searched in endpoint paths.")
@click.option("--method", default=None, help="HTTP method of endpoints.")
@click.option("--name-pattern", default=None, help="Regex searched in function names.")
@click.option("--implementation-path", default=None, help="Substring of the implementation path.")
@click.pass_context
def query(ctx: click.Context, entity_type: str, project_id: str | None, text: str | None,
          tags: tuple, path_pattern: str | None, method: str | None,
          name_pattern: str | None, implementation_path: str | None):
    """Search tracked entities of ENTITY_TYPE and print them as JSON."""
    arguments = {
        "type": entity_type,
        "projectId": project_id,
        "query": text,
        "tags": list(tags) or None,
        "pathPattern": path_pattern,
        "method": method,
        "namePattern": name_pattern,
        "implementationPath": implementation_path,
    }
    with _open_ledger(ctx) as ledger:
        _emit(ledger.execute_tool("query", {k: v for k, v in arguments.items() if v is not None}))


# ---------------------------------------------------------------------------
# codeledger stats
# ---------------------------------------------------------------------------

@cli.command()
@click.pass_context
def stats(ctx: click.Context):
    """Show row counts of the knowledge base."""
    with _open_ledger(ctx) as ledger:
        s = ledger.stats()
        location = ledger.store.db_path
    click.echo("─" * 50)
    click.echo("  CODELEDGER — Store Statistics")
    click.echo("─" * 50)
    click.echo(f"  Database : {location}")
    click.echo()
    click.echo(f"  Projects          {s['projects']:>8,}")
    click.echo(f"  API endpoints     {s['api_endpoints']:>8,}")
    click.echo(f"  Functions         {s['functions']:>8,}")
    click.echo(f"  Endpoint links    {s['endpoint_function_links']:>8,}")
    click.echo("─" * 50)


# ---------------------------------------------------------------------------
# codeledger mcp
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--transport", type=click.Choice(["stdio", "sse"]),
              default="stdio", help="MCP transport (default: stdio).")
@click.pass_context
def mcp(ctx: click.Context, transport: str):
    """Start the CodeLedger MCP server for Cursor / Claude integration."""
    from codeledger.mcp.server import create_server

    with _open_ledger(ctx) as ledger:
        server = create_server(ctx.obj["config"], ledger=ledger)
        server.run(transport=transport)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    cli()
