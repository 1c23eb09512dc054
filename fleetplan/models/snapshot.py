"""Current-state model: what the Fleet server reports.

The remote client fills these from live API responses; ``from_dict`` also
accepts a saved snapshot so a plan can be computed offline. Field names
follow the Fleet REST API so saved snapshots read like API output.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from fleetplan.models.values import ConfigValue


def _label_names(raw: Any) -> list[str]:
    """Fleet returns label references as ``{"id", "name"}`` objects; accept bare names too."""
    names = []
    for item in raw or []:
        if isinstance(item, dict):
            name = item.get("name") or item.get("label_name") or ""
        else:
            name = str(item)
        if name:
            names.append(name)
    return names


def _uint(raw: Any) -> int:
    try:
        return max(int(raw or 0), 0)
    except (TypeError, ValueError):
        return 0


@dataclass
class RemotePolicy:
    name: str
    query: str = ""
    description: str = ""
    resolution: str = ""
    platform: str = ""
    critical: bool = False
    passing_host_count: int = 0
    failing_host_count: int = 0
    labels_include_any: list[str] = field(default_factory=list)
    labels_exclude_any: list[str] = field(default_factory=list)
    id: int = 0

    @property
    def host_count(self) -> int:
        return self.passing_host_count + self.failing_host_count

    @property
    def label_names(self) -> list[str]:
        return self.labels_include_any + self.labels_exclude_any

    @classmethod
    def from_dict(cls, data: dict) -> RemotePolicy:
        return cls(
            name=data.get("name") or "",
            query=data.get("query") or "",
            description=data.get("description") or "",
            resolution=data.get("resolution") or "",
            platform=data.get("platform") or "",
            critical=bool(data.get("critical", False)),
            passing_host_count=_uint(data.get("passing_host_count")),
            failing_host_count=_uint(data.get("failing_host_count")),
            labels_include_any=_label_names(data.get("labels_include_any")),
            labels_exclude_any=_label_names(data.get("labels_exclude_any")),
            id=_uint(data.get("id")),
        )


@dataclass
class RemoteQuery:
    name: str
    query: str = ""
    interval: int = 0
    platform: str = ""
    logging: str = ""
    id: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> RemoteQuery:
        return cls(
            name=data.get("name") or "",
            query=data.get("query") or "",
            interval=_uint(data.get("interval")),
            platform=data.get("platform") or "",
            logging=data.get("logging") or "",
            id=_uint(data.get("id")),
        )


@dataclass
class RemoteProfile:
    name: str
    platform: str = ""
    profile_uuid: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> RemoteProfile:
        return cls(
            name=data.get("name") or "",
            platform=data.get("platform") or "",
            profile_uuid=data.get("profile_uuid") or "",
        )


@dataclass
class RemotePackage:
    url: str = ""
    hash_sha256: str = ""
    self_service: bool = False
    referenced_yaml_path: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> RemotePackage:
        return cls(
            url=data.get("url") or "",
            hash_sha256=data.get("hash_sha256") or "",
            self_service=bool(data.get("self_service", False)),
            referenced_yaml_path=data.get("referenced_yaml_path") or "",
        )


@dataclass
class RemoteVendorApp:
    slug: str
    self_service: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> RemoteVendorApp:
        return cls(slug=data.get("slug") or "", self_service=bool(data.get("self_service", False)))


@dataclass
class RemoteStoreApp:
    app_store_id: str
    self_service: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> RemoteStoreApp:
        return cls(
            app_store_id=str(data.get("app_store_id") or ""),
            self_service=bool(data.get("self_service", False)),
        )


@dataclass
class RemoteSoftware:
    """Managed software definitions from ``/teams[].software``.

    ``vendor_apps`` is None when the server sent ``null`` (or nothing),
    which is not the same as an empty list: Fleet is known to report null
    for teams that do have Fleet-maintained apps configured.
    """

    packages: list[RemotePackage] = field(default_factory=list)
    vendor_apps: list[RemoteVendorApp] | None = None
    store_apps: list[RemoteStoreApp] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict | None) -> RemoteSoftware:
        data = data or {}
        vendor_raw = data.get("fleet_maintained_apps")
        return cls(
            packages=[RemotePackage.from_dict(p) for p in data.get("packages") or []],
            vendor_apps=None if vendor_raw is None else [RemoteVendorApp.from_dict(a) for a in vendor_raw],
            store_apps=[RemoteStoreApp.from_dict(a) for a in data.get("app_store_apps") or []],
        )


@dataclass
class TitlePackage:
    name: str = ""
    package_url: str = ""
    self_service: bool = False
    platform: str = ""


@dataclass
class TitleStoreApp:
    app_store_id: str = ""
    self_service: bool = False
    platform: str = ""


@dataclass
class SoftwareTitle:
    """An entry of a team's installable software inventory."""

    name: str
    source: str = ""
    hosts_count: int = 0
    software_package: TitlePackage | None = None
    app_store_app: TitleStoreApp | None = None
    id: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> SoftwareTitle:
        pkg = data.get("software_package")
        app = data.get("app_store_app")
        return cls(
            name=data.get("name") or "",
            source=data.get("source") or "",
            hosts_count=_uint(data.get("hosts_count")),
            software_package=TitlePackage(
                name=pkg.get("name") or "",
                package_url=pkg.get("package_url") or "",
                self_service=bool(pkg.get("self_service", False)),
                platform=pkg.get("platform") or "",
            ) if isinstance(pkg, dict) else None,
            app_store_app=TitleStoreApp(
                app_store_id=str(app.get("app_store_id") or ""),
                self_service=bool(app.get("self_service", False)),
                platform=app.get("platform") or "",
            ) if isinstance(app, dict) else None,
            id=_uint(data.get("id")),
        )


@dataclass
class RemoteGroup:
    id: int
    name: str
    software: RemoteSoftware = field(default_factory=RemoteSoftware)
    policies: list[RemotePolicy] = field(default_factory=list)
    queries: list[RemoteQuery] = field(default_factory=list)
    profiles: list[RemoteProfile] = field(default_factory=list)
    software_titles: list[SoftwareTitle] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> RemoteGroup:
        return cls(
            id=_uint(data.get("id")),
            name=data.get("name") or "",
            software=RemoteSoftware.from_dict(data.get("software")),
            policies=[RemotePolicy.from_dict(p) for p in data.get("policies") or []],
            queries=[RemoteQuery.from_dict(q) for q in data.get("queries") or []],
            profiles=[RemoteProfile.from_dict(p) for p in data.get("profiles") or []],
            software_titles=[SoftwareTitle.from_dict(t) for t in data.get("software_titles") or []],
        )


@dataclass
class RemoteLabel:
    name: str
    host_count: int = 0
    query: str = ""
    platform: str = ""
    id: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> RemoteLabel:
        return cls(
            name=data.get("name") or "",
            host_count=_uint(data.get("host_count")),
            query=data.get("query") or "",
            platform=data.get("platform") or "",
            id=_uint(data.get("id")),
        )


@dataclass
class CatalogApp:
    """An entry of the Fleet-maintained app catalog."""

    slug: str
    name: str = ""
    platform: str = ""
    id: int = 0
    software_title_id: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> CatalogApp:
        return cls(
            slug=data.get("slug") or "",
            name=data.get("name") or "",
            platform=data.get("platform") or "",
            id=_uint(data.get("id")),
            software_title_id=_uint(data.get("software_title_id")),
        )


@dataclass
class RemoteSnapshot:
    """The complete current state the diff engine compares against.

    The optional parts are None when they were not fetched: ``config`` and
    the global lists are only fetched when the repository has a global
    declaration, and ``vendor_catalog`` is None on servers that do not
    expose the catalog endpoint.
    """

    groups: list[RemoteGroup] = field(default_factory=list)
    labels: list[RemoteLabel] = field(default_factory=list)
    vendor_catalog: list[CatalogApp] | None = None
    config: ConfigValue | None = None
    global_policies: list[RemotePolicy] | None = None
    global_queries: list[RemoteQuery] | None = None

    def group(self, name: str) -> RemoteGroup | None:
        for group in self.groups:
            if group.name == name:
                return group
        return None

    @classmethod
    def from_dict(cls, data: dict) -> RemoteSnapshot:
        """Decode a saved snapshot (the shape written by ``to_dict``)."""
        catalog = data.get("fleet_maintained_catalog")
        config = data.get("config")
        global_policies = data.get("global_policies")
        global_queries = data.get("global_queries")
        return cls(
            groups=[RemoteGroup.from_dict(t) for t in data.get("teams") or []],
            labels=[RemoteLabel.from_dict(lbl) for lbl in data.get("labels") or []],
            vendor_catalog=None if catalog is None else [CatalogApp.from_dict(a) for a in catalog],
            config=ConfigValue.from_raw(config) if isinstance(config, dict) else None,
            global_policies=(
                None if global_policies is None else [RemotePolicy.from_dict(p) for p in global_policies]
            ),
            global_queries=(
                None if global_queries is None else [RemoteQuery.from_dict(q) for q in global_queries]
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        teams = []
        for group in self.groups:
            team = asdict(group)
            team["software"] = {
                "packages": team["software"]["packages"],
                "fleet_maintained_apps": team["software"]["vendor_apps"],
                "app_store_apps": team["software"]["store_apps"],
            }
            teams.append(team)
        return {
            "teams": teams,
            "labels": [asdict(lbl) for lbl in self.labels],
            "fleet_maintained_catalog": (
                None if self.vendor_catalog is None else [asdict(a) for a in self.vendor_catalog]
            ),
            "config": None if self.config is None else self.config.to_plain(),
            "global_policies": (
                None if self.global_policies is None else [asdict(p) for p in self.global_policies]
            ),
            "global_queries": (
                None if self.global_queries is None else [asdict(q) for q in self.global_queries]
            ),
        }
