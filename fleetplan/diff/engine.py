"""DiffEngine — compare a ``RepoModel`` against a ``RemoteSnapshot``.

For every declared team the engine picks one of three paths:

- the team exists on the server: full per-resource diff;
- the team is "No team": Fleet never lists it, so only a resource count
  can be reported;
- any other missing team: everything it declares is added.

The global scope (default.yml) is diffed first when it was loaded and no
team filter is active. Inputs are never mutated.
"""

from __future__ import annotations

import dataclasses
import logging

from fleetplan.diff.config import diff_config
from fleetplan.diff.labels import validate_labels
from fleetplan.diff.models import GLOBAL_SCOPE_NAME, DiffResult, Severity
from fleetplan.diff.resources import diff_policies, diff_profiles, diff_queries
from fleetplan.diff.software import diff_software, infer_vendor_apps
from fleetplan.models.repo import GlobalScope, Group, RepoModel
from fleetplan.models.snapshot import RemoteGroup, RemoteSnapshot, RemoteSoftware

logger = logging.getLogger(__name__)

# Fleet's pseudo-team for hosts without a team; not returned by GET /teams.
UNGROUPED_TEAM = "No team"


def is_ungrouped(name: str) -> bool:
    return name.strip().lower() == UNGROUPED_TEAM.lower()


class DiffEngine:
    """Computes plan results against one snapshot."""

    def __init__(self, snapshot: RemoteSnapshot):
        self.snapshot = snapshot
        self._labels = {label.name: label for label in snapshot.labels}
        self._groups = {group.name: group for group in snapshot.groups}

    def diff(self, repo: RepoModel, group_filter: str | None = None) -> list[DiffResult]:
        """Diff every declared team, global scope first.

        Args:
            repo: The loaded repository.
            group_filter: Only diff the team with this name (case-insensitive);
                also suppresses the global scope.
        """
        results: list[DiffResult] = []
        if repo.global_scope is not None and not group_filter:
            results.append(self.diff_global(repo.global_scope))

        for group in repo.groups:
            if group_filter and group.name.lower() != group_filter.lower():
                continue
            results.append(self.diff_group(group))
        return results

    # ------------------------------------------------------------------
    # Global scope
    # ------------------------------------------------------------------

    def diff_global(self, scope: GlobalScope) -> DiffResult:
        result = DiffResult(team=GLOBAL_SCOPE_NAME)
        snapshot = self.snapshot

        if snapshot.config is not None:
            result.config = diff_config(snapshot.config, scope)

        current_policies = snapshot.global_policies or []
        current_queries = snapshot.global_queries or []
        if snapshot.global_policies is None and scope.policies:
            result.add_message(Severity.INFO, "global policies were not fetched; all declared ones are shown as added")
        if snapshot.global_queries is None and scope.queries:
            result.add_message(Severity.INFO, "global queries were not fetched; all declared ones are shown as added")

        result.policies = diff_policies(current_policies, scope.policies)
        result.queries = diff_queries(current_queries, scope.queries)
        result.labels = validate_labels(scope.policies, current_policies, result.policies, self._labels)
        return result

    # ------------------------------------------------------------------
    # Teams
    # ------------------------------------------------------------------

    def diff_group(self, group: Group) -> DiffResult:
        current = self._groups.get(group.name)
        if current is None:
            if is_ungrouped(group.name):
                return self._diff_ungrouped(group)
            return self._diff_new_group(group)
        return self._diff_existing_group(group, current)

    def _diff_existing_group(self, group: Group, current: RemoteGroup) -> DiffResult:
        result = DiffResult(team=group.name)
        result.policies = diff_policies(current.policies, group.policies)
        result.queries = diff_queries(current.queries, group.queries)

        software = current.software
        if software.vendor_apps is None and group.software.vendor_apps:
            inferred = infer_vendor_apps(current, self.snapshot.vendor_catalog, group.software.packages)
            software = dataclasses.replace(software, vendor_apps=inferred)
        result.software = diff_software(software, group.software)

        result.profiles, warnings = diff_profiles(current.profiles, group.profiles)
        for warning in warnings:
            result.add_message(Severity.WARNING, warning)

        result.labels = validate_labels(group.policies, current.policies, result.policies, self._labels)
        return result

    def _diff_new_group(self, group: Group) -> DiffResult:
        logger.debug("team %s not found on server, diffing against empty state", group.name)
        result = DiffResult(team=group.name)
        result.policies = diff_policies([], group.policies)
        result.queries = diff_queries([], group.queries)
        result.software = diff_software(RemoteSoftware(vendor_apps=[]), group.software)
        result.profiles, warnings = diff_profiles([], group.profiles)
        result.add_message(Severity.INFO, f'team "{group.name}" does not exist in Fleet yet (will be created)')
        for warning in warnings:
            result.add_message(Severity.WARNING, warning)
        result.labels = validate_labels(group.policies, [], result.policies, self._labels)
        return result

    def _diff_ungrouped(self, group: Group) -> DiffResult:
        result = DiffResult(team=group.name)
        result.add_message(
            Severity.INFO,
            f"{len(group.policies)} policies, {len(group.queries)} queries, "
            f"{len(group.software)} software, {len(group.profiles)} profiles configured "
            f'(no API diff available for "{UNGROUPED_TEAM}")',
        )
        return result


def diff(snapshot: RemoteSnapshot, repo: RepoModel, group_filter: str | None = None) -> list[DiffResult]:
    """Convenience wrapper around ``DiffEngine(snapshot).diff(...)``."""
    return DiffEngine(snapshot).diff(repo, group_filter=group_filter)
