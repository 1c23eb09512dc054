"""Per-resource matching for policies, queries and profiles.

Every collection goes through the same hash join: index the current
items by identity, walk the proposed items, and whatever is left over on
the current side is deleted. The three buckets are disjoint by
construction and together cover every identity seen on either side.
"""

from __future__ import annotations

from typing import Callable, Iterable, TypeVar

from fleetplan.diff.models import FieldDiff, ResourceChange, ResourceDiff
from fleetplan.models.repo import Policy, Profile, Query
from fleetplan.models.snapshot import RemotePolicy, RemoteProfile, RemoteQuery
from fleetplan.utils.text import normalize_platform, normalize_platforms, normalize_ws

P = TypeVar("P")
C = TypeVar("C")


def fmt_bool(value: bool) -> str:
    return "true" if value else "false"


def fmt_names(names: Iterable[str]) -> str:
    return ", ".join(sorted(set(names)))


def join(
    current: list[C],
    proposed: list[P],
    current_key: Callable[[C], str],
    proposed_key: Callable[[P], str],
) -> tuple[list[tuple[str, P]], list[tuple[str, C, P]], list[tuple[str, C]], list[tuple[str, P]]]:
    """Match two collections by identity key.

    Returns (added, matched, deleted, duplicates). Items with an empty key
    are ignored. The first proposed item wins a key; later ones are
    returned as duplicates and take no further part in the match.
    """
    current_by_key: dict[str, C] = {}
    for item in current:
        key = current_key(item)
        if key:
            current_by_key[key] = item

    added: list[tuple[str, P]] = []
    matched: list[tuple[str, C, P]] = []
    duplicates: list[tuple[str, P]] = []
    proposed_keys: set[str] = set()
    for item in proposed:
        key = proposed_key(item)
        if not key:
            continue
        if key in proposed_keys:
            duplicates.append((key, item))
            continue
        proposed_keys.add(key)
        if key in current_by_key:
            matched.append((key, current_by_key[key], item))
        else:
            added.append((key, item))

    deleted = [(key, item) for key, item in current_by_key.items() if key not in proposed_keys]
    return added, matched, deleted, duplicates


def compare_text(fields: dict[str, FieldDiff], name: str, old: str, new: str) -> None:
    """Record a free-text field only when it differs after whitespace normalization."""
    old, new = normalize_ws(old), normalize_ws(new)
    if old != new:
        fields[name] = FieldDiff(old=old, new=new)


def compare_exact(fields: dict[str, FieldDiff], name: str, old: str, new: str) -> None:
    if old != new:
        fields[name] = FieldDiff(old=old, new=new)


# --- Policies ---


def diff_policies(current: list[RemotePolicy], proposed: list[Policy]) -> ResourceDiff:
    rd = ResourceDiff()
    added, matched, deleted, _ = join(current, proposed, lambda c: c.name, lambda p: p.name)

    for name, policy in added:
        fields = {
            "query": FieldDiff(new=normalize_ws(policy.query)),
            "platform": FieldDiff(new=normalize_platforms(policy.platform)),
            "critical": FieldDiff(new=fmt_bool(policy.critical)),
        }
        if normalize_ws(policy.description):
            fields["description"] = FieldDiff(new=normalize_ws(policy.description))
        if normalize_ws(policy.resolution):
            fields["resolution"] = FieldDiff(new=normalize_ws(policy.resolution))
        if policy.labels_include_any:
            fields["labels_include_any"] = FieldDiff(new=fmt_names(policy.labels_include_any))
        if policy.labels_exclude_any:
            fields["labels_exclude_any"] = FieldDiff(new=fmt_names(policy.labels_exclude_any))
        rd.added.append(ResourceChange(name=name, fields=fields))

    for name, cur, policy in matched:
        fields: dict[str, FieldDiff] = {}
        compare_text(fields, "query", cur.query, policy.query)
        compare_text(fields, "description", cur.description, policy.description)
        compare_text(fields, "resolution", cur.resolution, policy.resolution)
        compare_exact(fields, "platform", normalize_platforms(cur.platform), normalize_platforms(policy.platform))
        compare_exact(fields, "critical", fmt_bool(cur.critical), fmt_bool(policy.critical))
        compare_exact(
            fields, "labels_include_any", fmt_names(cur.labels_include_any), fmt_names(policy.labels_include_any)
        )
        compare_exact(
            fields, "labels_exclude_any", fmt_names(cur.labels_exclude_any), fmt_names(policy.labels_exclude_any)
        )
        if fields:
            rd.modified.append(ResourceChange(name=name, fields=fields, host_count=cur.host_count))

    for name, cur in deleted:
        warning = ""
        if cur.host_count > 0:
            warning = f"will delete policy affecting {cur.host_count} hosts"
        rd.deleted.append(ResourceChange(name=name, host_count=cur.host_count, warning=warning))

    rd.sort()
    return rd


# --- Queries ---


def diff_queries(current: list[RemoteQuery], proposed: list[Query]) -> ResourceDiff:
    rd = ResourceDiff()
    added, matched, deleted, _ = join(current, proposed, lambda c: c.name, lambda q: q.name)

    for name, query in added:
        fields = {
            "query": FieldDiff(new=normalize_ws(query.query)),
            "interval": FieldDiff(new=str(query.interval)),
            "platform": FieldDiff(new=normalize_platforms(query.platform)),
        }
        if query.logging is not None:
            fields["logging"] = FieldDiff(new=query.logging.value)
        rd.added.append(ResourceChange(name=name, fields=fields))

    for name, cur, query in matched:
        fields: dict[str, FieldDiff] = {}
        compare_text(fields, "query", cur.query, query.query)
        compare_exact(fields, "interval", str(cur.interval), str(query.interval))
        compare_exact(fields, "platform", normalize_platforms(cur.platform), normalize_platforms(query.platform))
        # an omitted logging key leaves the server's value alone
        if query.logging is not None:
            compare_exact(fields, "logging", cur.logging, query.logging.value)
        if fields:
            rd.modified.append(ResourceChange(name=name, fields=fields))

    for name, _cur in deleted:
        rd.deleted.append(ResourceChange(name=name))

    rd.sort()
    return rd


# --- Profiles ---


def diff_profiles(current: list[RemoteProfile], proposed: list[Profile]) -> tuple[ResourceDiff, list[str]]:
    """Match profiles by their content-derived name.

    Two declared profiles resolving to the same name are not fatal: the
    first one is matched and a warning is returned for each later one.
    """
    rd = ResourceDiff()
    warnings: list[str] = []
    added, matched, deleted, duplicates = join(current, proposed, lambda c: c.name, lambda p: p.name)

    first_path = {p.name: p.path for p in reversed(proposed)}
    for name, profile in duplicates:
        warnings.append(
            f'duplicate profile name "{name}" derived from "{profile.path}" '
            f'(conflicts with "{first_path.get(name, "")}")'
        )

    for name, profile in added:
        fields = {"platform": FieldDiff(new=profile.platform)}
        if profile.path:
            fields["path"] = FieldDiff(new=profile.path)
        rd.added.append(ResourceChange(name=name, fields=fields))

    for name, cur, profile in matched:
        fields: dict[str, FieldDiff] = {}
        # profile contents are not fetched; only the platform is comparable
        if cur.platform:
            compare_exact(fields, "platform", normalize_platform(cur.platform), normalize_platform(profile.platform))
        if fields:
            rd.modified.append(ResourceChange(name=name, fields=fields))

    for name, _cur in deleted:
        rd.deleted.append(ResourceChange(name=name))

    rd.sort()
    return rd, warnings
