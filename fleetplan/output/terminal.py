"""Colored terminal output (rich).

Default mode lists changed field names with values clipped to fit an 80
column line; verbose mode prints full old and new values.
"""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.rule import Rule

from fleetplan.diff.models import ChangeKind, ConfigChange, DiffResult, FieldDiff, ResourceChange, Severity
from fleetplan.output.summary import Summary, collect_labels, summarize

MAX_LINE_WIDTH = 80
MAX_FIELDS = 3  # Fields shown per change before "... and N more fields"
FIELD_INDENT = " " * 8

_MARKERS = {
    "added": ("+", "green"),
    "modified": ("~", "yellow"),
    "deleted": ("-", "red"),
}


def render_terminal(results: list[DiffResult], console: Console, verbose: bool = False) -> None:
    """Print the plan for every result followed by a one-line summary."""
    for result in results:
        lines = _render_result(result, verbose)
        if not lines:
            continue
        header = "Global (default.yml)" if result.is_global else f"Team: {escape(result.team)}"
        console.print(f"[bold]{header}[/]")
        for line in lines:
            console.print(line, highlight=False)
        console.print()

    labels = _render_labels(results)
    if labels:
        console.print("[bold]Labels referenced:[/]")
        for line in labels:
            console.print(line, highlight=False)
        console.print()

    console.print(Rule(style="dim"))
    console.print(summary_line(summarize(results)), highlight=False)


def summary_line(summary: Summary) -> str:
    parts = []
    if summary.added:
        parts.append(f"[green]{summary.added} added[/]")
    if summary.modified:
        parts.append(f"[yellow]{summary.modified} modified[/]")
    if summary.deleted:
        parts.append(f"[red]{summary.deleted} deleted[/]")
    if summary.missing_labels:
        parts.append(f"[red]{summary.missing_labels} label errors[/]")
    if summary.warnings:
        parts.append(f"[yellow]{summary.warnings} warnings[/]")
    if summary.errors:
        parts.append(f"[red]{summary.errors} errors[/]")
    return "Summary: " + (", ".join(parts) if parts else "[dim]no changes[/]")


def _render_result(result: DiffResult, verbose: bool) -> list[str]:
    lines: list[str] = []
    if result.config:
        lines.append("  [bold]Config:[/]")
        for change in result.config:
            lines.extend(_render_config_change(change, verbose))

    for name, rd in result.resources:
        if rd.is_empty:
            continue
        lines.append(f"  [bold]{name.capitalize()}:[/]")
        for change in rd.added:
            lines.extend(_render_change(change, "added", verbose))
        for change in rd.modified:
            lines.extend(_render_change(change, "modified", verbose))
        for change in rd.deleted:
            lines.extend(_render_change(change, "deleted", verbose))

    for message in result.messages:
        color = "red" if message.severity == Severity.ERROR else "yellow"
        lines.append(f"  [{color}]*[/] {escape(message.text)}")
    return lines


def _render_config_change(change: ConfigChange, verbose: bool) -> list[str]:
    key = escape(f"{change.section}.{change.key}")
    if change.change == ChangeKind.ADDED:
        value = f"= {_quote(change.new)}"
        if not verbose:
            value = truncate(value, MAX_LINE_WIDTH - len(FIELD_INDENT))
        return [f"    [green]+[/] {key}", f"{FIELD_INDENT}[dim]{escape(value)}[/]"]

    if verbose:
        old, new = _quote(change.old), _quote(change.new)
    else:
        old, new = truncate(_quote(change.old), 30), truncate(_quote(change.new), 30)
    return [f"    [yellow]~[/] {key}", f"{FIELD_INDENT}[dim]{escape(old)}[/] [yellow]→[/] [dim]{escape(new)}[/]"]


def _render_change(change: ResourceChange, bucket: str, verbose: bool) -> list[str]:
    marker, color = _MARKERS[bucket]
    name = escape(f"{change.name} [{change.kind}]" if change.kind else change.name)
    line = f"    [{color}]{marker} {name}[/]"
    if bucket != "added" and change.host_count:
        line += f" [dim](~{change.host_count} hosts)[/]"
    lines = [line]

    if bucket == "modified":
        lines.extend(_render_fields(change.fields, verbose, show_old=True))
    elif bucket == "added" and verbose:
        lines.extend(_render_fields(change.fields, verbose, show_old=False))
    elif bucket == "deleted" and change.warning:
        lines.append(f"      [red]! {escape(change.warning)}[/]")
    return lines


def _render_fields(fields: dict[str, FieldDiff], verbose: bool, show_old: bool) -> list[str]:
    names = sorted(fields)
    shown = names if verbose else names[:MAX_FIELDS]
    lines = []
    for name in shown:
        fd = fields[name]
        if show_old:
            if verbose:
                old, new = fd.old, fd.new
            else:
                avail = MAX_LINE_WIDTH - len(FIELD_INDENT) - len(name) - len(": ") - len(" → ")
                old, new = diff_context(fd.old, fd.new, max(avail // 2, 8))
            lines.append(
                f"{FIELD_INDENT}[dim]{escape(name)}: {escape(_quote(old))}[/] [yellow]→[/] [dim]{escape(_quote(new))}[/]"
            )
        else:
            value = _quote(fd.new)
            if not verbose:
                value = truncate(value, MAX_LINE_WIDTH - len(FIELD_INDENT) - len(name) - len(": "))
            lines.append(f"{FIELD_INDENT}[dim]{escape(name)}: {escape(value)}[/]")

    if len(names) > len(shown):
        lines.append(f"{FIELD_INDENT}[dim]... and {len(names) - len(shown)} more fields[/]")
    return lines


def _render_labels(results: list[DiffResult]) -> list[str]:
    valid, missing = collect_labels(results)
    lines = [
        f"  [red]- {escape(_quote(ref.name))} (NOT FOUND) referenced by {escape(ref.referenced_by)}[/]"
        for ref in missing
    ]
    lines += [f"  [dim]* {escape(_quote(ref.name))} ({ref.host_count} hosts)[/]" for ref in valid]
    return lines


def _quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def truncate(value: str, max_len: int) -> str:
    """Clip ``value`` to ``max_len`` characters, ending in "..." when clipped."""
    max_len = max(max_len, 4)
    if len(value) <= max_len:
        return value
    return value[: max_len - 3] + "..."


def diff_context(old: str, new: str, max_len: int) -> tuple[str, str]:
    """Return windows of ``old`` and ``new`` around their first difference.

    Both strings are returned unchanged when they already fit.
    """
    max_len = max(max_len, 8)
    if len(old) <= max_len and len(new) <= max_len:
        return old, new

    diff_at = 0
    for a, b in zip(old, new):
        if a != b:
            break
        diff_at += 1
    start = max(diff_at - max(max_len // 4, 4), 0)

    def window(value: str) -> str:
        if len(value) <= max_len:
            return value
        end = min(start + max_len, len(value))
        prefix = "..." if start > 0 else ""
        suffix = "..." if end < len(value) else ""
        avail = max(max_len - len(prefix) - len(suffix), 4)
        return prefix + value[start:end][:avail] + suffix

    return window(old), window(new)
