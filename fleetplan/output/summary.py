"""Counts and label roll-ups shared by the renderers."""

from __future__ import annotations

from dataclasses import dataclass

from fleetplan.diff.models import ChangeKind, DiffResult, LabelRef, Severity


@dataclass
class Summary:
    added: int = 0
    modified: int = 0
    deleted: int = 0
    warnings: int = 0
    errors: int = 0
    missing_labels: int = 0

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.modified or self.deleted)


def count_result(result: DiffResult) -> Summary:
    summary = Summary()
    for change in result.config:
        if change.change == ChangeKind.ADDED:
            summary.added += 1
        else:
            summary.modified += 1
    for _, rd in result.resources:
        summary.added += len(rd.added)
        summary.modified += len(rd.modified)
        summary.deleted += len(rd.deleted)
    for message in result.messages:
        if message.severity == Severity.WARNING:
            summary.warnings += 1
        elif message.severity == Severity.ERROR:
            summary.errors += 1
    return summary


def summarize(results: list[DiffResult]) -> Summary:
    total = Summary()
    for result in results:
        part = count_result(result)
        total.added += part.added
        total.modified += part.modified
        total.deleted += part.deleted
        total.warnings += part.warnings
        total.errors += part.errors
    total.missing_labels = len(collect_labels(results)[1])
    return total


def collect_labels(results: list[DiffResult]) -> tuple[list[LabelRef], list[LabelRef]]:
    """Deduplicate label references across all results.

    Valid labels come back ordered by host count (largest first), missing
    ones by name.
    """
    valid: dict[str, LabelRef] = {}
    missing: dict[str, LabelRef] = {}
    for result in results:
        for ref in result.labels.valid:
            valid.setdefault(ref.name, ref)
        for ref in result.labels.missing:
            missing.setdefault(ref.name, ref)
    return (
        sorted(valid.values(), key=lambda r: (-r.host_count, r.name)),
        sorted(missing.values(), key=lambda r: r.name),
    )


def scope_title(result: DiffResult) -> str:
    return "Global (default.yml)" if result.is_global else result.team
