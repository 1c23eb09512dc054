"""Tests for label cross-reference validation."""

from fleetplan.diff.labels import validate_labels
from fleetplan.diff.resources import diff_policies
from fleetplan.models.repo import Policy
from fleetplan.models.snapshot import RemoteLabel, RemotePolicy

LABELS = {
    "Laptops": RemoteLabel(name="Laptops", host_count=120),
    "Servers": RemoteLabel(name="Servers", host_count=8),
}


def _validate(current, proposed):
    return validate_labels(proposed, current, diff_policies(current, proposed), LABELS)


def test_unchanged_policies_report_no_labels():
    current = [RemotePolicy(name="P", query="SELECT 1;", labels_include_any=["Laptops", "Ghost"])]
    proposed = [Policy(name="P", query="SELECT 1;", labels_include_any=["Laptops", "Ghost"])]
    assert _validate(current, proposed).is_empty


def test_valid_and_missing():
    proposed = [Policy(name="P", labels_include_any=["Laptops"], labels_exclude_any=["Ghost"])]
    result = _validate([], proposed)
    assert [(lbl.name, lbl.host_count, lbl.referenced_by) for lbl in result.valid] == [("Laptops", 120, "P")]
    assert [(lbl.name, lbl.referenced_by) for lbl in result.missing] == [("Ghost", "P")]


def test_first_reference_wins():
    proposed = [
        Policy(name="Second", labels_include_any=["Ghost"]),
        Policy(name="First", labels_include_any=["Ghost"]),
    ]
    result = _validate([], proposed)
    # declaration order, not name order
    assert [lbl.referenced_by for lbl in result.missing] == ["Second"]
    assert len(result.missing) == 1


def test_deleted_policies_use_remote_labels():
    current = [
        RemotePolicy(name="Zulu", labels_include_any=["Servers"]),
        RemotePolicy(name="Alpha", labels_exclude_any=["Servers", "Retired"]),
    ]
    result = _validate(current, [])
    assert [(lbl.name, lbl.referenced_by) for lbl in result.valid] == [("Servers", "Alpha")]
    assert [(lbl.name, lbl.referenced_by) for lbl in result.missing] == [("Retired", "Alpha")]


def test_changed_policies_checked_before_deleted():
    current = [RemotePolicy(name="Old", labels_include_any=["Ghost"])]
    proposed = [Policy(name="New", labels_include_any=["Ghost"])]
    result = _validate(current, proposed)
    assert [lbl.referenced_by for lbl in result.missing] == ["New"]


def test_results_sorted_by_name():
    proposed = [Policy(name="P", labels_include_any=["Servers", "Laptops", "zz", "aa"])]
    result = _validate([], proposed)
    assert [lbl.name for lbl in result.valid] == ["Laptops", "Servers"]
    assert [lbl.name for lbl in result.missing] == ["aa", "zz"]
