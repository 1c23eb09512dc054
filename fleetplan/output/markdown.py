"""Markdown output, meant to be posted as a merge request comment."""

from __future__ import annotations

from fleetplan.diff.models import ChangeKind, DiffResult, FieldDiff, ResourceDiff, Severity
from fleetplan.output.summary import collect_labels, count_result, scope_title, summarize

_MESSAGE_ICONS = {
    Severity.INFO: "ℹ️",
    Severity.WARNING: "⚠️",
    Severity.ERROR: "❌",
}


def render_markdown(results: list[DiffResult]) -> str:
    lines = ["## fleet-plan", ""]

    if results:
        lines += [
            "| Scope | Added | Modified | Deleted |",
            "|---|---:|---:|---:|",
        ]
        for result in results:
            counts = count_result(result)
            lines.append(f"| {scope_title(result)} | {counts.added} | {counts.modified} | {counts.deleted} |")
        lines.append("")

    for result in results:
        body = _render_result(result)
        if not body:
            continue
        lines.append(f"### {scope_title(result)}")
        lines.append("")
        lines.extend(body)
        lines.append("")

    labels = _render_labels(results)
    if labels:
        lines += ["### Labels", ""] + labels + [""]

    total = summarize(results)
    lines.append("---")
    lines.append(f"**Summary:** {total.added} added, {total.modified} modified, {total.deleted} deleted")
    return "\n".join(lines) + "\n"


def _render_result(result: DiffResult) -> list[str]:
    lines: list[str] = []
    if result.config:
        lines.append("**Config:**")
        for change in result.config:
            key = f"{change.section}.{change.key}"
            if change.change == ChangeKind.ADDED:
                lines.append(f"- ➕ `{key}` = `{change.new}`")
            else:
                lines.append(f"- ✏️ `{key}`: `{change.old}` → `{change.new}`")

    for name, rd in result.resources:
        lines.extend(_render_resource(name.capitalize(), rd))

    for message in result.messages:
        lines.append(f"- {_MESSAGE_ICONS[message.severity]} {message.text}")
    return lines


def _render_resource(title: str, rd: ResourceDiff) -> list[str]:
    if rd.is_empty:
        return []
    lines = [f"**{title}:**"]
    for change in rd.added:
        lines.append(f"- ➕ `{_label(change.name, change.kind)}`")
    for change in rd.modified:
        line = f"- ✏️ `{_label(change.name, change.kind)}`"
        if change.fields:
            line += f" ({_render_fields(change.fields)})"
        lines.append(line)
    for change in rd.deleted:
        line = f"- ❌ `{_label(change.name, change.kind)}`"
        if change.warning:
            line += f" ⚠️ {change.warning}"
        lines.append(line)
    return lines


def _render_fields(fields: dict[str, FieldDiff]) -> str:
    return ", ".join(f"`{name}`: `{fd.old}` → `{fd.new}`" for name, fd in sorted(fields.items()))


def _render_labels(results: list[DiffResult]) -> list[str]:
    valid, missing = collect_labels(results)
    lines = [f"- ❌ `{ref.name}` **NOT FOUND** (referenced by {ref.referenced_by})" for ref in missing]
    lines += [f"- ✅ `{ref.name}` ({ref.host_count} hosts)" for ref in valid]
    return lines


def _label(name: str, kind: str) -> str:
    return f"{name} [{kind}]" if kind else name
