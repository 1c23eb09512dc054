"""Label cross-reference validation.

Only policies that actually change are checked, so a team with no policy
changes reports no labels at all.
"""

from __future__ import annotations

from fleetplan.diff.models import LabelRef, LabelValidation, ResourceDiff
from fleetplan.models.repo import Policy
from fleetplan.models.snapshot import RemoteLabel, RemotePolicy


def validate_labels(
    proposed: list[Policy],
    current: list[RemotePolicy],
    policy_diff: ResourceDiff,
    labels: dict[str, RemoteLabel],
) -> LabelValidation:
    """Classify labels referenced by added, modified or deleted policies.

    Added and modified policies are checked in declaration order, then
    deleted ones (using the server's label lists) in name order. The first
    policy to reference a label is reported as its referrer.
    """
    validation = LabelValidation()
    seen: set[str] = set()

    def check(label_name: str, referenced_by: str) -> None:
        if label_name in seen:
            return
        seen.add(label_name)
        label = labels.get(label_name)
        if label is not None:
            validation.valid.append(
                LabelRef(name=label_name, host_count=label.host_count, referenced_by=referenced_by)
            )
        else:
            validation.missing.append(LabelRef(name=label_name, referenced_by=referenced_by))

    changed = {c.name for c in policy_diff.added + policy_diff.modified}
    for policy in proposed:
        if policy.name in changed:
            for label_name in policy.label_names:
                check(label_name, policy.name)

    deleted = {c.name for c in policy_diff.deleted}
    for policy in sorted(current, key=lambda p: p.name):
        if policy.name in deleted:
            for label_name in policy.label_names:
                check(label_name, policy.name)

    validation.valid.sort(key=lambda lbl: lbl.name)
    validation.missing.sort(key=lambda lbl: lbl.name)
    return validation
