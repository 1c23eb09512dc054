"""fleet-plan CLI — terraform plan, but for your device fleet."""

from __future__ import annotations

import json
import logging
import sys
import time
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from fleetplan import __version__
from fleetplan.config import ConfigError, resolve_auth
from fleetplan.diff import diff
from fleetplan.loader import load_repo
from fleetplan.models.repo import RepoModel
from fleetplan.models.snapshot import RemoteSnapshot
from fleetplan.output import render_json, render_markdown, render_terminal
from fleetplan.remote import RemoteError, fetch_snapshot

console = Console()
err_console = Console(stderr=True)

FORMATS = ("terminal", "json", "markdown")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _fail(message: str) -> None:
    err_console.print(f"[red]Error:[/] {escape(message)}")
    sys.exit(1)


@click.group(invoke_without_command=True)
@click.option("--url", default=None, help="Fleet server URL (or $FLEET_PLAN_URL)")
@click.option("--token", default=None, help="API token (or $FLEET_PLAN_TOKEN)")
@click.option("--repo", "repo_path", default=".", show_default=True, help="Path to the fleet-gitops repo")
@click.option("--format", "-f", "output_format", default="terminal", type=click.Choice(FORMATS), help="Output format")
@click.option("--no-color", is_flag=True, help="Disable color output")
@click.option("--verbose", "-v", is_flag=True, help="Show full old/new values and debug logging")
@click.option("--team", default=None, help="Diff only this team (default: all)")
@click.option("--default", "global_file", default=None, help="Path to default.yml (overrides auto-detection)")
@click.option(
    "--snapshot",
    "snapshot_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="Diff against a saved JSON snapshot instead of querying the server",
)
@click.version_option(version=__version__, prog_name="fleet-plan")
@click.pass_context
def main(
    ctx: click.Context,
    url: str | None,
    token: str | None,
    repo_path: str,
    output_format: str,
    no_color: bool,
    verbose: bool,
    team: str | None,
    global_file: str | None,
    snapshot_path: str | None,
):
    """Diff proposed Fleet GitOps YAML against the current Fleet state.

    Strictly read-only: only GET requests are ever sent to the server.
    """
    if ctx.invoked_subcommand is not None:
        return

    _configure_logging(verbose)
    start = time.monotonic()

    root = Path(repo_path)
    if not root.is_dir():
        _fail(f'repo path "{repo_path}" is not a directory')

    repo = load_repo(root, group_filter=team, global_file=global_file)
    _report_parse_errors(repo)
    if repo.fatal:
        sys.exit(1)
    if not repo.groups and not repo.errors:
        if team:
            _fail(f'no team matching "{team}" found in {repo_path}/teams/')
        _fail(f"no teams found in {repo_path}/teams/ (try --repo /path/to/repo)")

    try:
        if snapshot_path:
            snapshot = _read_snapshot(snapshot_path)
        else:
            auth = resolve_auth(url, token, root)
            err_console.print(f"Fetching Fleet state from {escape(auth.url)}...")
            snapshot = fetch_snapshot(auth.url, auth.token, fetch_global=repo.global_scope is not None)
    except (ConfigError, RemoteError) as e:
        _fail(str(e))

    results = diff(snapshot, repo, group_filter=team)

    if output_format == "json":
        click.echo(render_json(results))
    elif output_format == "markdown":
        click.echo(render_markdown(results))
    else:
        out = Console(no_color=no_color, highlight=False) if no_color else console
        render_terminal(results, out, verbose=verbose)

    logging.getLogger(__name__).debug("completed in %.3fs", time.monotonic() - start)


@main.command()
def version():
    """Print the fleet-plan version."""
    click.echo(f"fleet-plan {__version__}")


def _report_parse_errors(repo: RepoModel) -> None:
    for error in repo.errors:
        err_console.print(f"[yellow]![/] {escape(str(error))}")


def _read_snapshot(path: str) -> RemoteSnapshot:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise RemoteError(f"could not read snapshot {path}: {e}") from e
    if not isinstance(data, dict):
        raise RemoteError(f"snapshot {path} must contain a JSON object")
    return RemoteSnapshot.from_dict(data)


if __name__ == "__main__":
    main()
