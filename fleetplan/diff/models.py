"""Diff result types.

One ``DiffResult`` per team (plus one for the global scope). Every value
stored in a ``FieldDiff`` is already normalized, so renderers never see
raw declaration text.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

GLOBAL_SCOPE_NAME = "(global)"


class Severity(Enum):
    INFO = "info"  # Context for the reader, nothing to fix
    WARNING = "warning"  # Plan is still valid but probably not what was meant
    ERROR = "error"  # Something in the repository needs fixing


class ChangeKind(Enum):
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass
class FieldDiff:
    old: str = ""
    new: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"old": self.old, "new": self.new}


@dataclass
class ResourceChange:
    """A single added, modified or deleted resource."""

    name: str
    fields: dict[str, FieldDiff] = field(default_factory=dict)
    host_count: int = 0
    warning: str = ""
    kind: str = ""  # Software only: package | fleet_app | app_store_app

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name}
        if self.kind:
            data["kind"] = self.kind
        if self.fields:
            data["fields"] = {k: v.to_dict() for k, v in sorted(self.fields.items())}
        if self.host_count:
            data["host_count"] = self.host_count
        if self.warning:
            data["warning"] = self.warning
        return data


@dataclass
class ResourceDiff:
    """The Added / Modified / Deleted partition for one resource type."""

    added: list[ResourceChange] = field(default_factory=list)
    modified: list[ResourceChange] = field(default_factory=list)
    deleted: list[ResourceChange] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.modified or self.deleted)

    @property
    def total(self) -> int:
        return len(self.added) + len(self.modified) + len(self.deleted)

    def extend(self, other: ResourceDiff) -> None:
        self.added.extend(other.added)
        self.modified.extend(other.modified)
        self.deleted.extend(other.deleted)

    def sort(self) -> None:
        """Order every bucket by identity so output never depends on dict order."""
        for bucket in (self.added, self.modified, self.deleted):
            bucket.sort(key=lambda c: (c.name, c.kind))

    def to_dict(self) -> dict[str, list[dict]]:
        return {
            "added": [c.to_dict() for c in self.added],
            "modified": [c.to_dict() for c in self.modified],
            "deleted": [c.to_dict() for c in self.deleted],
        }


@dataclass
class LabelRef:
    name: str
    host_count: int = 0  # Only known for labels that exist on the server
    referenced_by: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name}
        if self.host_count:
            data["host_count"] = self.host_count
        if self.referenced_by:
            data["referenced_by"] = self.referenced_by
        return data


@dataclass
class LabelValidation:
    valid: list[LabelRef] = field(default_factory=list)
    missing: list[LabelRef] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.valid or self.missing)

    def to_dict(self) -> dict[str, list[dict]]:
        return {
            "valid": [lbl.to_dict() for lbl in self.valid],
            "missing": [lbl.to_dict() for lbl in self.missing],
        }


@dataclass
class ConfigChange:
    """One changed leaf of org_settings, agent_options or controls."""

    section: str
    key: str  # Dot-separated path, e.g. "server_settings.server_url"
    change: ChangeKind
    old: str = ""
    new: str = ""

    def to_dict(self) -> dict[str, str]:
        data = {"section": self.section, "key": self.key, "change": self.change.value}
        if self.old:
            data["old"] = self.old
        data["new"] = self.new
        return data


@dataclass
class Message:
    severity: Severity
    text: str

    def __str__(self) -> str:
        return f"{self.severity.value}: {self.text}"

    def to_dict(self) -> dict[str, str]:
        return {"severity": self.severity.value, "text": self.text}


@dataclass
class DiffResult:
    """Everything that would change for one team or for the global scope."""

    team: str
    policies: ResourceDiff = field(default_factory=ResourceDiff)
    queries: ResourceDiff = field(default_factory=ResourceDiff)
    software: ResourceDiff = field(default_factory=ResourceDiff)
    profiles: ResourceDiff = field(default_factory=ResourceDiff)
    labels: LabelValidation = field(default_factory=LabelValidation)
    config: list[ConfigChange] = field(default_factory=list)
    messages: list[Message] = field(default_factory=list)

    @property
    def is_global(self) -> bool:
        return self.team == GLOBAL_SCOPE_NAME

    @property
    def resources(self) -> list[tuple[str, ResourceDiff]]:
        return [
            ("policies", self.policies),
            ("queries", self.queries),
            ("software", self.software),
            ("profiles", self.profiles),
        ]

    @property
    def has_changes(self) -> bool:
        return bool(self.config) or any(not rd.is_empty for _, rd in self.resources)

    @property
    def errors(self) -> list[Message]:
        return [m for m in self.messages if m.severity == Severity.ERROR]

    @property
    def notes(self) -> list[Message]:
        return [m for m in self.messages if m.severity != Severity.ERROR]

    def add_message(self, severity: Severity, text: str) -> None:
        self.messages.append(Message(severity=severity, text=text))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"team": self.team}
        for name, rd in self.resources:
            data[name] = rd.to_dict()
        data["labels"] = self.labels.to_dict()
        if self.config:
            data["config"] = [c.to_dict() for c in self.config]
        data["messages"] = [m.to_dict() for m in self.messages]
        return data
