"""RepoLoader — parse a fleet-gitops repository into a ``RepoModel``.

Layout understood by the loader:

    <root>/teams/*.yml      one file per team (group)
    <root>/default.yml      optional global declaration (org_settings,
                            agent_options, controls, policies, queries, labels)

Policies, queries, software packages, labels and profiles are usually
pulled in through ``path:`` references relative to the declaring file.
Every reference is resolved through ``resolve()`` so nothing outside the
repository root is ever read.

Problems never abort the load except a missing ``teams/`` directory; they
are collected in ``RepoModel.errors``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, TypeVar

import yaml

from fleetplan.loader.exceptions import FileError, LoaderError, StructuralError, ValidationError
from fleetplan.loader.paths import relative_to_root, resolve
from fleetplan.loader.profiles import profile_name
from fleetplan.models.repo import (
    GlobalScope,
    Group,
    Label,
    LabelMembershipType,
    LoggingMode,
    ParseError,
    Policy,
    Profile,
    Query,
    RepoModel,
    SoftwarePackage,
    StoreApp,
    VendorApp,
)
from fleetplan.models.values import ConfigValue
from fleetplan.utils.text import canonical_software_path

logger = logging.getLogger(__name__)

T = TypeVar("T")

GROUPS_DIR = "teams"
GLOBAL_FILE = "default.yml"
DECLARATION_SUFFIXES = (".yml", ".yaml")

# Top-level keys accepted by fleetctl gitops
VALID_TOP_LEVEL_KEYS = {
    "name",
    "team_settings",
    "org_settings",
    "agent_options",
    "controls",
    "policies",
    "queries",
    "software",
    "labels",
}

# controls.<section>.custom_settings -> platform of the profiles listed there
PROFILE_SECTIONS = (
    ("macos_settings", "darwin"),
    ("windows_settings", "windows"),
)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _names(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v is not None and str(v)]


def _flag(item: dict, key: str, owner: str, file: str, errors: list[ParseError]) -> bool | None:
    """Boolean field ``key`` of ``item``; None when unset or not a real boolean.

    A quoted "false" is a string, so it is reported rather than coerced.
    """
    value = item.get(key)
    if value is None or isinstance(value, bool):
        return value
    errors.append(ValidationError(f"{owner}: {key} must be true or false, got {value!r}", file=file).to_parse_error())
    return None


class RepoLoader:
    """Loads one repository. Holds no state between ``load`` calls."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def load(self, group_filter: str | None = None, global_file: str | Path | None = None) -> RepoModel:
        """Load every team file and the global declaration.

        Args:
            group_filter: Keep only the team with this name (case-insensitive).
                Files of other teams are still parsed so their errors surface.
            global_file: Explicit path to the global declaration. When None,
                ``<root>/default.yml`` is used if it exists.
        """
        repo = RepoModel(root=str(self.root))

        try:
            group_files = self._group_files()
        except StructuralError as e:
            repo.errors.append(e.to_parse_error())
            return repo

        seen_groups: set[str] = set()
        for path in group_files:
            group, errors = self.load_group_file(path)
            repo.errors.extend(errors)
            if group is None:
                continue
            if group.name in seen_groups:
                repo.errors.append(
                    ValidationError(
                        f'duplicate team name "{group.name}"', file=group.source_file
                    ).to_parse_error()
                )
                continue
            seen_groups.add(group.name)
            if group_filter and group.name.lower() != group_filter.lower():
                continue
            repo.groups.append(group)

        if global_file is not None:
            global_path = Path(global_file)
            if not global_path.is_file():
                repo.errors.append(
                    FileError(f"global declaration not found: {global_path}", file=str(global_path)).to_parse_error()
                )
                return repo
        else:
            global_path = self.root / GLOBAL_FILE
            if not global_path.is_file():
                return repo

        global_scope, labels, errors = self.load_global_file(global_path)
        repo.errors.extend(errors)
        repo.global_scope = global_scope
        repo.labels = labels
        return repo

    def _group_files(self) -> list[Path]:
        groups_dir = self.root / GROUPS_DIR
        if not groups_dir.is_dir():
            raise StructuralError(
                f"{GROUPS_DIR}/ directory not found. Are you in a fleet-gitops repo?",
                file=str(groups_dir),
            )
        try:
            entries = sorted(groups_dir.iterdir(), key=lambda p: p.name)
        except OSError as e:
            raise StructuralError(f"could not list {GROUPS_DIR}/: {e}", file=str(groups_dir)) from e
        return [p for p in entries if p.is_file() and p.suffix in DECLARATION_SUFFIXES]

    # ------------------------------------------------------------------
    # Team files
    # ------------------------------------------------------------------

    def load_group_file(self, path: Path) -> tuple[Group | None, list[ParseError]]:
        """Parse one ``teams/*.yml`` file.

        Returns the team (None when the file is unusable or has no name)
        and every problem found, including those of referenced files.
        """
        errors: list[ParseError] = []
        display = self._display(path)

        try:
            data = self._read_mapping(path)
        except LoaderError as e:
            return None, [e.to_parse_error(display)]

        self._check_top_level_keys(data, display, errors)

        name = _text(data.get("name")).strip()
        if not name:
            errors.append(ValidationError("missing required 'name' field", file=display).to_parse_error())
            logger.debug("skipping %s: no team name", display)
            return None, errors

        group = Group(name=name, source_file=display)
        base_dir = path.parent

        group.policies = self._load_policies(data.get("policies"), base_dir, display, errors)
        group.queries = self._load_queries(data.get("queries"), base_dir, display, errors)

        software = data.get("software")
        if software is not None and not isinstance(software, dict):
            errors.append(ValidationError("'software' must be a mapping", file=display).to_parse_error())
            software = None
        software = software or {}
        group.software.packages = self._load_packages(software.get("packages"), base_dir, display, errors)
        group.software.vendor_apps = self._load_vendor_apps(software.get("fleet_maintained_apps"), display, errors)
        group.software.store_apps = self._load_store_apps(software.get("app_store_apps"), display, errors)

        group.profiles = self._load_profiles(data.get("controls"), base_dir, display, errors)
        return group, errors

    # ------------------------------------------------------------------
    # Global file
    # ------------------------------------------------------------------

    def load_global_file(self, path: Path) -> tuple[GlobalScope | None, list[Label], list[ParseError]]:
        """Parse ``default.yml``: config sections, global policies/queries, labels."""
        errors: list[ParseError] = []
        display = self._display(path)

        try:
            data = self._read_mapping(path)
        except LoaderError as e:
            return None, [], [e.to_parse_error(display)]

        self._check_top_level_keys(data, display, errors)

        scope = GlobalScope(source_file=display)
        for section in ("org_settings", "agent_options", "controls"):
            raw = data.get(section)
            if raw is None:
                continue
            if not isinstance(raw, dict):
                errors.append(ValidationError(f"'{section}' must be a mapping", file=display).to_parse_error())
                continue
            setattr(scope, section, ConfigValue.from_raw(raw))

        base_dir = path.parent
        scope.policies = self._load_policies(data.get("policies"), base_dir, display, errors)
        scope.queries = self._load_queries(data.get("queries"), base_dir, display, errors)
        labels = self._load_labels(data.get("labels"), base_dir, display, errors)
        return scope, labels, errors

    # ------------------------------------------------------------------
    # Resource collections
    # ------------------------------------------------------------------

    def _load_policies(self, entries: Any, base_dir: Path, parent: str, errors: list[ParseError]) -> list[Policy]:
        items = self._collect_items(entries, "policies", base_dir, parent, errors)
        policies = [p for p in (self._build_policy(item, source, errors) for item, source in items) if p]
        return self._dedupe(policies, lambda p: p.name, "policy name", parent, errors)

    def _load_queries(self, entries: Any, base_dir: Path, parent: str, errors: list[ParseError]) -> list[Query]:
        items = self._collect_items(entries, "queries", base_dir, parent, errors)
        queries = [q for q in (self._build_query(item, source, errors) for item, source in items) if q]
        return self._dedupe(queries, lambda q: q.name, "query name", parent, errors)

    def _load_labels(self, entries: Any, base_dir: Path, parent: str, errors: list[ParseError]) -> list[Label]:
        items = self._collect_items(entries, "labels", base_dir, parent, errors)
        labels = [lbl for lbl in (self._build_label(item, source, errors) for item, source in items) if lbl]
        return self._dedupe(labels, lambda lbl: lbl.name, "label name", parent, errors)

    def _collect_items(
        self, entries: Any, key: str, base_dir: Path, parent: str, errors: list[ParseError]
    ) -> list[tuple[dict, str]]:
        """Expand a list of ``path:`` references and inline items.

        Returns (item mapping, display path of the file it came from) pairs.
        A referenced file may hold a list of items or a single mapping.
        """
        if entries is None:
            return []
        if not isinstance(entries, list):
            errors.append(ValidationError(f"'{key}' must be a list", file=parent).to_parse_error())
            return []

        items: list[tuple[dict, str]] = []
        for entry in entries:
            if not isinstance(entry, dict):
                errors.append(ValidationError(f"invalid {key} entry: {entry!r}", file=parent).to_parse_error())
                continue
            if "path" not in entry:
                if entry.get("name"):
                    items.append((entry, parent))
                else:
                    errors.append(ValidationError("empty path: reference", file=parent).to_parse_error())
                continue

            try:
                resolved = resolve(self.root, base_dir, _text(entry.get("path")))
            except LoaderError as e:
                errors.append(e.to_parse_error(parent))
                logger.debug("skipping %s reference in %s: %s", key, parent, e)
                continue

            source = self._display(resolved)
            try:
                data = self._read_yaml(resolved, ref=_text(entry.get("path")), parent=parent)
            except LoaderError as e:
                errors.append(e.to_parse_error(source))
                continue

            if isinstance(data, dict):
                items.append((data, source))
            elif isinstance(data, list):
                for item in data:
                    if isinstance(item, dict):
                        items.append((item, source))
                    else:
                        errors.append(ValidationError(f"invalid item: {item!r}", file=source).to_parse_error())
            elif data is not None:
                errors.append(FileError("expected a list or a mapping", file=source).to_parse_error())
        return items

    def _build_policy(self, item: dict, source: str, errors: list[ParseError]) -> Policy | None:
        name = _text(item.get("name")).strip()
        if not name:
            errors.append(ValidationError("policy missing required 'name' field", file=source).to_parse_error())
            return None
        return Policy(
            name=name,
            query=_text(item.get("query")),
            description=_text(item.get("description")),
            resolution=_text(item.get("resolution")),
            platform=_text(item.get("platform")),
            critical=_flag(item, "critical", f'policy "{name}"', source, errors) or False,
            labels_include_any=_names(item.get("labels_include_any")),
            labels_exclude_any=_names(item.get("labels_exclude_any")),
            source_file=source,
        )

    def _build_query(self, item: dict, source: str, errors: list[ParseError]) -> Query | None:
        name = _text(item.get("name")).strip()
        if not name:
            errors.append(ValidationError("query missing required 'name' field", file=source).to_parse_error())
            return None

        interval = item.get("interval", 0)
        if interval is None:
            interval = 0
        if isinstance(interval, bool) or not isinstance(interval, int) or interval < 0:
            errors.append(
                ValidationError(
                    f'query "{name}": interval must be a non-negative integer, got {interval!r}', file=source
                ).to_parse_error()
            )
            interval = 0

        logging_mode = None
        raw_logging = item.get("logging")
        if raw_logging:
            try:
                logging_mode = LoggingMode(str(raw_logging))
            except ValueError:
                errors.append(
                    ValidationError(f'query "{name}": invalid logging "{raw_logging}"', file=source).to_parse_error()
                )

        return Query(
            name=name,
            query=_text(item.get("query")),
            interval=interval,
            platform=_text(item.get("platform")),
            logging=logging_mode,
            source_file=source,
        )

    def _build_label(self, item: dict, source: str, errors: list[ParseError]) -> Label | None:
        name = _text(item.get("name")).strip()
        if not name:
            errors.append(ValidationError("label missing required 'name' field", file=source).to_parse_error())
            return None

        membership = LabelMembershipType.DYNAMIC
        raw_membership = item.get("label_membership_type")
        if raw_membership:
            try:
                membership = LabelMembershipType(str(raw_membership))
            except ValueError:
                errors.append(
                    ValidationError(
                        f'label "{name}": invalid label_membership_type "{raw_membership}"', file=source
                    ).to_parse_error()
                )

        return Label(
            name=name,
            description=_text(item.get("description")),
            query=_text(item.get("query")),
            platform=_text(item.get("platform")),
            membership_type=membership,
            source_file=source,
        )

    # ------------------------------------------------------------------
    # Software
    # ------------------------------------------------------------------

    def _load_packages(
        self, entries: Any, base_dir: Path, parent: str, errors: list[ParseError]
    ) -> list[SoftwarePackage]:
        if entries is None:
            return []
        if not isinstance(entries, list):
            errors.append(ValidationError("'software.packages' must be a list", file=parent).to_parse_error())
            return []

        packages: list[SoftwarePackage] = []
        seen: set[str] = set()
        for entry in entries:
            if not isinstance(entry, dict):
                errors.append(ValidationError(f"invalid package entry: {entry!r}", file=parent).to_parse_error())
                continue

            ref = _text(entry.get("path") or entry.get("url"))
            self_service = _flag(entry, "self_service", f'package "{ref}"', parent, errors)
            if "path" in entry:
                package = self._load_package_ref(entry, base_dir, parent, errors)
            elif entry.get("url"):
                package = SoftwarePackage(
                    ref_path="",
                    url=_text(entry.get("url")),
                    hash_sha256=_text(entry.get("hash_sha256")),
                    self_service=bool(self_service),
                    source_file=parent,
                )
            else:
                errors.append(ValidationError("empty software path: reference", file=parent).to_parse_error())
                continue
            if package is None:
                continue

            # the team file's self_service wins over the package file's
            if self_service is not None:
                package.self_service = self_service

            key = package.ref_path or canonical_software_path(package.url)
            if key in seen:
                errors.append(
                    ValidationError(f'duplicate software package reference: "{key}"', file=parent).to_parse_error()
                )
                logger.debug("dropping duplicate package %s in %s", key, parent)
                continue
            seen.add(key)
            packages.append(package)
        return packages

    def _load_package_ref(
        self, entry: dict, base_dir: Path, parent: str, errors: list[ParseError]
    ) -> SoftwarePackage | None:
        ref = _text(entry.get("path"))
        try:
            resolved = resolve(self.root, base_dir, ref)
        except LoaderError as e:
            errors.append(e.to_parse_error(parent))
            return None

        source = self._display(resolved)
        try:
            data = self._read_mapping(resolved, ref=ref, parent=parent)
        except LoaderError as e:
            errors.append(e.to_parse_error(source))
            return None

        return SoftwarePackage(
            ref_path=canonical_software_path(relative_to_root(self.root, resolved)),
            url=_text(data.get("url")),
            hash_sha256=_text(data.get("hash_sha256")),
            self_service=_flag(data, "self_service", f'package "{ref}"', source, errors) or False,
            source_file=source,
        )

    def _load_vendor_apps(self, entries: Any, parent: str, errors: list[ParseError]) -> list[VendorApp]:
        apps = []
        for entry in self._mapping_list(entries, "software.fleet_maintained_apps", parent, errors):
            slug = _text(entry.get("slug")).strip()
            if not slug:
                errors.append(ValidationError("fleet-maintained app missing 'slug'", file=parent).to_parse_error())
                continue
            owner = f'fleet-maintained app "{slug}"'
            self_service = _flag(entry, "self_service", owner, parent, errors) or False
            apps.append(VendorApp(slug=slug, self_service=self_service))
        return self._dedupe(
            apps, lambda a: canonical_software_path(a.slug), "fleet-maintained app slug", parent, errors
        )

    def _load_store_apps(self, entries: Any, parent: str, errors: list[ParseError]) -> list[StoreApp]:
        apps = []
        for entry in self._mapping_list(entries, "software.app_store_apps", parent, errors):
            app_id = _text(entry.get("app_store_id")).strip()
            if not app_id:
                errors.append(ValidationError("app store app missing 'app_store_id'", file=parent).to_parse_error())
                continue
            owner = f'app store app "{app_id}"'
            self_service = _flag(entry, "self_service", owner, parent, errors) or False
            apps.append(StoreApp(app_store_id=app_id, self_service=self_service))
        return self._dedupe(apps, lambda a: a.app_store_id, "app_store_id", parent, errors)

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def _load_profiles(self, controls: Any, base_dir: Path, parent: str, errors: list[ParseError]) -> list[Profile]:
        if controls is None:
            return []
        if not isinstance(controls, dict):
            errors.append(ValidationError("'controls' must be a mapping", file=parent).to_parse_error())
            return []

        profiles: list[Profile] = []
        for section, platform in PROFILE_SECTIONS:
            settings = controls.get(section) or {}
            if not isinstance(settings, dict):
                errors.append(ValidationError(f"'controls.{section}' must be a mapping", file=parent).to_parse_error())
                continue
            key = f"controls.{section}.custom_settings"
            for entry in self._mapping_list(settings.get("custom_settings"), key, parent, errors):
                ref = _text(entry.get("path"))
                try:
                    resolved = resolve(self.root, base_dir, ref)
                except LoaderError as e:
                    errors.append(e.to_parse_error(parent))
                    continue
                if not resolved.is_file():
                    errors.append(FileError(f'profile path reference "{ref}": file not found', file=parent).to_parse_error())
                    continue
                profiles.append(
                    Profile(
                        name=profile_name(resolved),
                        platform=platform,
                        path=self._display(resolved),
                        source_file=parent,
                    )
                )
        return profiles

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _display(self, path: Path) -> str:
        return relative_to_root(self.root, path)

    def _read_yaml(self, path: Path, ref: str = "", parent: str = "") -> Any:
        """Read and parse one YAML file.

        A missing referenced file is reported against the referencing file
        (``parent``); every other problem against the file itself.
        """
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            if ref:
                raise FileError(f'path reference "{ref}": file not found', file=parent) from e
            raise FileError("file not found") from e
        except (OSError, ValueError) as e:
            raise FileError(f"could not read: {e}") from e

        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as e:
            mark = getattr(e, "problem_mark", None)
            line = mark.line + 1 if mark is not None else None
            problem = getattr(e, "problem", None) or str(e)
            raise FileError(f"invalid YAML: {problem}", line=line) from e

    def _read_mapping(self, path: Path, ref: str = "", parent: str = "") -> dict:
        data = self._read_yaml(path, ref=ref, parent=parent)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise FileError(f"expected a mapping at the top level, got {type(data).__name__}")
        return data

    def _check_top_level_keys(self, data: dict, display: str, errors: list[ParseError]) -> None:
        for key in sorted(str(k) for k in data):
            if key not in VALID_TOP_LEVEL_KEYS:
                errors.append(ValidationError(f'unknown top-level key: "{key}"', file=display).to_parse_error())

    def _mapping_list(self, entries: Any, key: str, parent: str, errors: list[ParseError]) -> list[dict]:
        if entries is None:
            return []
        if not isinstance(entries, list):
            errors.append(ValidationError(f"'{key}' must be a list", file=parent).to_parse_error())
            return []
        mappings = []
        for entry in entries:
            if isinstance(entry, dict):
                mappings.append(entry)
            else:
                errors.append(ValidationError(f"invalid {key} entry: {entry!r}", file=parent).to_parse_error())
        return mappings

    def _dedupe(
        self, items: list[T], key: Callable[[T], str], what: str, parent: str, errors: list[ParseError]
    ) -> list[T]:
        """Keep the first item per identity; report and drop the rest."""
        seen: set[str] = set()
        kept = []
        for item in items:
            identity = key(item)
            if identity in seen:
                errors.append(ValidationError(f'duplicate {what}: "{identity}"', file=parent).to_parse_error())
                logger.debug("dropping duplicate %s %s in %s", what, identity, parent)
                continue
            seen.add(identity)
            kept.append(item)
        return kept


def load_repo(root: str | Path, group_filter: str | None = None, global_file: str | Path | None = None) -> RepoModel:
    """Convenience wrapper around ``RepoLoader(root).load(...)``."""
    return RepoLoader(root).load(group_filter=group_filter, global_file=global_file)
