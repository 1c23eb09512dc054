"""Proposed-state model: what the fleet-gitops repository declares.

Produced by ``fleetplan.loader.RepoLoader`` and consumed by the diff
engine. Every resource carries the file it was declared in so errors and
renderers can point back at the source.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from fleetplan.models.values import ConfigValue


class LoggingMode(Enum):
    """How osquery reports results for a scheduled query."""

    SNAPSHOT = "snapshot"
    DIFFERENTIAL = "differential"
    DIFFERENTIAL_IGNORE_REMOVALS = "differential_ignore_removals"


class LabelMembershipType(Enum):
    DYNAMIC = "dynamic"  # Membership computed from a query
    MANUAL = "manual"  # Hosts assigned by hand
    HOST_VITALS = "host_vitals"  # Membership computed from host attributes


class ErrorKind(Enum):
    """Where a load problem came from and how much it cost."""

    STRUCTURAL = "structural"  # Repository layout is wrong; nothing was loaded
    FILE = "file"  # One file could not be read or parsed; it was skipped
    VALIDATION = "validation"  # Unknown key, duplicate, missing or invalid field
    PATH_ESCAPE = "path_escape"  # A reference pointed outside the repository


@dataclass
class ParseError:
    """A non-fatal problem found while loading the repository."""

    file: str
    message: str
    line: int | None = None
    kind: ErrorKind = ErrorKind.VALIDATION

    def __str__(self) -> str:
        if self.line:
            return f"{self.file}:{self.line}: {self.message}"
        return f"{self.file}: {self.message}"


# --- Resources ---


@dataclass
class Policy:
    name: str
    query: str = ""
    description: str = ""
    resolution: str = ""
    platform: str = ""
    critical: bool = False
    labels_include_any: list[str] = field(default_factory=list)
    labels_exclude_any: list[str] = field(default_factory=list)
    source_file: str = ""

    @property
    def label_names(self) -> list[str]:
        return self.labels_include_any + self.labels_exclude_any


@dataclass
class Query:
    name: str
    query: str = ""
    interval: int = 0
    platform: str = ""
    logging: LoggingMode | None = None
    source_file: str = ""


@dataclass
class SoftwarePackage:
    """A custom installer package declared through a ``path:`` reference."""

    ref_path: str  # Canonical path relative to the repository root
    url: str = ""
    hash_sha256: str = ""
    self_service: bool = False
    source_file: str = ""


@dataclass
class VendorApp:
    """A Fleet-maintained app, identified by its catalog slug."""

    slug: str
    self_service: bool = False


@dataclass
class StoreApp:
    """An App Store (VPP) app, identified by its store id."""

    app_store_id: str
    self_service: bool = False


@dataclass
class Software:
    packages: list[SoftwarePackage] = field(default_factory=list)
    vendor_apps: list[VendorApp] = field(default_factory=list)
    store_apps: list[StoreApp] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.packages) + len(self.vendor_apps) + len(self.store_apps)


@dataclass
class Profile:
    """An MDM configuration profile.

    ``name`` is what the server identifies the profile by: the top-level
    PayloadDisplayName for .mobileconfig files, the bare filename otherwise.
    """

    name: str
    platform: str
    path: str
    source_file: str = ""


@dataclass
class Label:
    name: str
    description: str = ""
    query: str = ""
    platform: str = ""
    membership_type: LabelMembershipType = LabelMembershipType.DYNAMIC
    source_file: str = ""


# --- Containers ---


@dataclass
class Group:
    """A team declared in ``teams/<name>.yml``."""

    name: str
    policies: list[Policy] = field(default_factory=list)
    queries: list[Query] = field(default_factory=list)
    software: Software = field(default_factory=Software)
    profiles: list[Profile] = field(default_factory=list)
    source_file: str = ""


@dataclass
class GlobalScope:
    """Repository-wide configuration from ``default.yml``."""

    org_settings: ConfigValue | None = None
    agent_options: ConfigValue | None = None
    controls: ConfigValue | None = None
    policies: list[Policy] = field(default_factory=list)
    queries: list[Query] = field(default_factory=list)
    source_file: str = ""


@dataclass
class RepoModel:
    """Everything the loader produced for one repository."""

    root: str
    groups: list[Group] = field(default_factory=list)
    labels: list[Label] = field(default_factory=list)
    global_scope: GlobalScope | None = None
    errors: list[ParseError] = field(default_factory=list)

    @property
    def fatal(self) -> bool:
        """True when the repository layout itself was unusable."""
        return any(e.kind == ErrorKind.STRUCTURAL for e in self.errors)

    def group(self, name: str) -> Group | None:
        for group in self.groups:
            if group.name.lower() == name.lower():
                return group
        return None
