"""Tests for the diff engine: matching, group states, global scope, ordering."""

import copy

from fleetplan.diff import GLOBAL_SCOPE_NAME, DiffEngine, Severity, diff
from fleetplan.models.repo import (
    GlobalScope,
    Group,
    Policy,
    Profile,
    Query,
    RepoModel,
    Software,
    SoftwarePackage,
    StoreApp,
    VendorApp,
)
from fleetplan.models.snapshot import (
    RemoteGroup,
    RemoteLabel,
    RemotePackage,
    RemotePolicy,
    RemoteProfile,
    RemoteQuery,
    RemoteSnapshot,
    RemoteSoftware,
    RemoteStoreApp,
    RemoteVendorApp,
)
from fleetplan.models.values import ConfigValue


def _repo(*groups, global_scope=None) -> RepoModel:
    return RepoModel(root="/repo", groups=list(groups), global_scope=global_scope)


def _snapshot(*groups, **kwargs) -> RemoteSnapshot:
    return RemoteSnapshot(groups=list(groups), **kwargs)


def _names(changes) -> list[str]:
    return [c.name for c in changes]


# --- Scenarios ---


def test_whitespace_only_query_difference_is_not_modified():
    remote = RemoteGroup(id=1, name="T", policies=[RemotePolicy(name="X", query="SELECT 1;")])
    proposed = Group(name="T", policies=[Policy(name="X", query="SELECT   1;\n")])
    [result] = diff(_snapshot(remote), _repo(proposed))
    assert result.policies.is_empty
    assert not result.has_changes


def test_deleted_policy_carries_host_count_and_warning():
    remote = RemoteGroup(
        id=1,
        name="T",
        policies=[RemotePolicy(name="Legacy", passing_host_count=60, failing_host_count=40)],
    )
    [result] = diff(_snapshot(remote), _repo(Group(name="T")))
    [deleted] = result.policies.deleted
    assert deleted.name == "Legacy"
    assert deleted.host_count == 100
    assert deleted.warning
    assert result.policies.added == [] and result.policies.modified == []


def test_null_vendor_apps_without_catalog_are_added():
    remote = RemoteGroup(id=1, name="T", software=RemoteSoftware(vendor_apps=None))
    proposed = Group(name="T", software=Software(vendor_apps=[VendorApp(slug="zoom/darwin")]))
    [result] = diff(_snapshot(remote), _repo(proposed))
    assert _names(result.software.added) == ["zoom/darwin"]
    assert result.software.modified == [] and result.software.deleted == []
    assert result.messages == []


def test_new_group_adds_everything():
    proposed = Group(
        name="Servers",
        policies=[Policy(name="P1", query="SELECT 1;")],
        queries=[Query(name="Q1", query="SELECT 2;")],
        software=Software(
            packages=[SoftwarePackage(ref_path="lib/agent.yml", url="https://x/agent.deb")],
            vendor_apps=[VendorApp(slug="zoom/darwin")],
        ),
        profiles=[Profile(name="Wi-Fi", platform="darwin", path="lib/wifi.mobileconfig")],
    )
    [result] = diff(_snapshot(), _repo(proposed))
    assert _names(result.policies.added) == ["P1"]
    assert _names(result.queries.added) == ["Q1"]
    assert _names(result.software.added) == ["lib/agent.yml", "zoom/darwin"]
    assert _names(result.profiles.added) == ["Wi-Fi"]
    for _, rd in result.resources:
        assert rd.modified == [] and rd.deleted == []
    assert len(result.messages) == 1
    assert result.messages[0].severity == Severity.INFO
    assert "does not exist in Fleet yet" in result.messages[0].text
    assert result.errors == []


# --- Group states ---


def test_ungrouped_sentinel_only_counts_resources():
    proposed = Group(
        name="no TEAM",
        policies=[Policy(name="P1"), Policy(name="P2")],
        queries=[Query(name="Q1")],
    )
    [result] = diff(_snapshot(), _repo(proposed))
    assert not result.has_changes
    [message] = result.messages
    assert message.severity == Severity.INFO
    assert message.text.startswith("2 policies, 1 queries, 0 software, 0 profiles")


def test_remote_group_names_match_exactly():
    remote = RemoteGroup(id=1, name="Workstations", policies=[RemotePolicy(name="P")])
    [result] = diff(_snapshot(remote), _repo(Group(name="workstations", policies=[Policy(name="P")])))
    assert _names(result.policies.added) == ["P"]


def test_group_filter():
    a, b = Group(name="Alpha"), Group(name="Beta")
    results = diff(_snapshot(), _repo(a, b, global_scope=GlobalScope()), group_filter="BETA")
    assert [r.team for r in results] == ["Beta"]


# --- Field predicates ---


def test_policy_fields():
    remote = RemoteGroup(
        id=1,
        name="T",
        policies=[
            RemotePolicy(
                name="P",
                query="SELECT 1;",
                description="Old  description",
                platform="linux,darwin",
                critical=False,
                labels_include_any=["B", "A"],
                passing_host_count=5,
            )
        ],
    )
    proposed = Group(
        name="T",
        policies=[
            Policy(
                name="P",
                query="SELECT 1;",
                description="New description",
                platform="macos, linux",
                critical=True,
                labels_include_any=["A", "B"],
            )
        ],
    )
    [result] = diff(_snapshot(remote), _repo(proposed))
    [modified] = result.policies.modified
    assert set(modified.fields) == {"description", "critical"}
    assert modified.fields["description"].old == "Old description"
    assert modified.fields["critical"].new == "true"
    assert modified.host_count == 5


def test_query_logging_compared_only_when_declared():
    remote = RemoteGroup(
        id=1, name="T", queries=[RemoteQuery(name="Q", query="SELECT 1;", interval=60, logging="snapshot")]
    )
    proposed = Group(name="T", queries=[Query(name="Q", query="SELECT 1;", interval=300)])
    [result] = diff(_snapshot(remote), _repo(proposed))
    [modified] = result.queries.modified
    assert set(modified.fields) == {"interval"}
    assert modified.fields["interval"].old == "60"
    assert modified.fields["interval"].new == "300"


def test_profile_platform_compared_only_when_reported():
    remote = RemoteGroup(
        id=1,
        name="T",
        profiles=[RemoteProfile(name="Wi-Fi"), RemoteProfile(name="Defender", platform="windows")],
    )
    proposed = Group(
        name="T",
        profiles=[
            Profile(name="Wi-Fi", platform="darwin", path="a.mobileconfig"),
            Profile(name="Defender", platform="darwin", path="defender.xml"),
        ],
    )
    [result] = diff(_snapshot(remote), _repo(proposed))
    assert _names(result.profiles.modified) == ["Defender"]


def test_duplicate_profile_names_warn():
    proposed = Group(
        name="T",
        profiles=[
            Profile(name="Wi-Fi", platform="darwin", path="lib/a.mobileconfig"),
            Profile(name="Wi-Fi", platform="darwin", path="lib/b.mobileconfig"),
        ],
    )
    [result] = diff(_snapshot(RemoteGroup(id=1, name="T")), _repo(proposed))
    assert _names(result.profiles.added) == ["Wi-Fi"]
    [warning] = result.messages
    assert warning.severity == Severity.WARNING
    assert "lib/b.mobileconfig" in warning.text
    assert "lib/a.mobileconfig" in warning.text


# --- Properties ---


def _mixed_inputs():
    remote = RemoteGroup(
        id=1,
        name="T",
        policies=[
            RemotePolicy(name="keep", query="SELECT 1;"),
            RemotePolicy(name="change", query="SELECT 1;"),
            RemotePolicy(name="drop", query="SELECT 1;"),
        ],
        software=RemoteSoftware(
            packages=[RemotePackage(url="https://x/a.pkg", referenced_yaml_path="./lib/A.yml")],
            vendor_apps=[],
        ),
    )
    proposed = Group(
        name="T",
        policies=[
            Policy(name="new", query="SELECT 1;"),
            Policy(name="change", query="SELECT 2;"),
            Policy(name="keep", query=" SELECT  1; "),
        ],
        software=Software(packages=[SoftwarePackage(ref_path="lib/a.yml", url="https://x/a.pkg")]),
    )
    return _snapshot(remote), _repo(proposed)


def test_partition_covers_union_and_is_disjoint():
    snapshot, repo = _mixed_inputs()
    [result] = diff(snapshot, repo)
    added = set(_names(result.policies.added))
    modified = set(_names(result.policies.modified))
    deleted = set(_names(result.policies.deleted))
    assert added == {"new"}
    assert modified == {"change"}
    assert deleted == {"drop"}
    assert not (added & modified or added & deleted or modified & deleted)
    remote_keys = {"keep", "change", "drop"}
    proposed_keys = {"new", "change", "keep"}
    changed_or_equal = added | modified | deleted | {"keep"}
    assert changed_or_equal == remote_keys | proposed_keys


def _partition(rd, key):
    added = {key(c) for c in rd.added}
    modified = {key(c) for c in rd.modified}
    deleted = {key(c) for c in rd.deleted}
    assert not (added & modified or added & deleted or modified & deleted)
    return added, modified, deleted


def test_software_and_profile_partitions_cover_union():
    remote = RemoteGroup(
        id=1,
        name="T",
        software=RemoteSoftware(
            packages=[
                RemotePackage(url="https://x/keep.pkg", referenced_yaml_path="lib/keep.yml"),
                RemotePackage(url="https://x/old.pkg", referenced_yaml_path="lib/change.yml"),
                RemotePackage(url="https://x/drop.pkg", referenced_yaml_path="lib/drop.yml"),
            ],
            vendor_apps=[RemoteVendorApp(slug="zoom/darwin"), RemoteVendorApp(slug="slack/darwin")],
            store_apps=[RemoteStoreApp(app_store_id="1", self_service=True), RemoteStoreApp(app_store_id="2")],
        ),
        profiles=[
            RemoteProfile(name="Keep", platform="darwin"),
            RemoteProfile(name="Moved", platform="darwin"),
            RemoteProfile(name="Gone"),
        ],
    )
    proposed = Group(
        name="T",
        software=Software(
            packages=[
                SoftwarePackage(ref_path="lib/keep.yml", url="https://x/keep.pkg"),
                SoftwarePackage(ref_path="lib/change.yml", url="https://x/new.pkg"),
                SoftwarePackage(ref_path="lib/new.yml", url="https://x/new.pkg"),
            ],
            vendor_apps=[VendorApp(slug="zoom/darwin", self_service=True), VendorApp(slug="chrome/darwin")],
            store_apps=[StoreApp(app_store_id="1", self_service=True), StoreApp(app_store_id="3")],
        ),
        profiles=[
            Profile(name="Keep", platform="darwin", path="lib/keep.mobileconfig"),
            Profile(name="Moved", platform="windows", path="lib/moved.xml"),
            Profile(name="Fresh", platform="darwin", path="lib/fresh.mobileconfig"),
        ],
    )
    [result] = diff(_snapshot(remote), _repo(proposed))

    added, modified, deleted = _partition(result.software, lambda c: (c.kind, c.name))
    remote_keys = {
        ("package", "lib/keep.yml"), ("package", "lib/change.yml"), ("package", "lib/drop.yml"),
        ("fleet_app", "zoom/darwin"), ("fleet_app", "slack/darwin"),
        ("app_store_app", "1"), ("app_store_app", "2"),
    }
    proposed_keys = {
        ("package", "lib/keep.yml"), ("package", "lib/change.yml"), ("package", "lib/new.yml"),
        ("fleet_app", "zoom/darwin"), ("fleet_app", "chrome/darwin"),
        ("app_store_app", "1"), ("app_store_app", "3"),
    }
    unchanged = {("package", "lib/keep.yml"), ("app_store_app", "1")}
    assert added == proposed_keys - remote_keys
    assert deleted == remote_keys - proposed_keys
    assert modified == {("package", "lib/change.yml"), ("fleet_app", "zoom/darwin")}
    assert added | modified | deleted | unchanged == remote_keys | proposed_keys

    added, modified, deleted = _partition(result.profiles, lambda c: c.name)
    assert (added, modified, deleted) == ({"Fresh"}, {"Moved"}, {"Gone"})
    assert added | modified | deleted | {"Keep"} == {"Keep", "Moved", "Gone", "Fresh"}


def test_equivalent_software_paths_match():
    snapshot, repo = _mixed_inputs()
    [result] = diff(snapshot, repo)
    assert result.software.is_empty


def test_identical_inputs_produce_empty_result():
    remote = RemoteGroup(
        id=1,
        name="T",
        policies=[RemotePolicy(name="P", query="SELECT 1;", platform="darwin", labels_include_any=["Laptops"])],
        queries=[RemoteQuery(name="Q", query="SELECT 2;", interval=60)],
        profiles=[RemoteProfile(name="Wi-Fi", platform="darwin")],
    )
    proposed = Group(
        name="T",
        policies=[Policy(name="P", query="SELECT 1;", platform="darwin", labels_include_any=["Laptops"])],
        queries=[Query(name="Q", query="SELECT 2;", interval=60)],
        profiles=[Profile(name="Wi-Fi", platform="darwin", path="wifi.mobileconfig")],
    )
    snapshot = _snapshot(remote, labels=[RemoteLabel(name="Laptops", host_count=10)])
    [result] = diff(snapshot, _repo(proposed))
    assert not result.has_changes
    assert result.labels.is_empty
    assert result.config == []
    assert result.messages == []


def test_diff_is_deterministic_and_pure():
    snapshot, repo = _mixed_inputs()
    before = (copy.deepcopy(snapshot), copy.deepcopy(repo))
    first = [r.to_dict() for r in diff(snapshot, repo)]
    second = [r.to_dict() for r in diff(snapshot, repo)]
    assert first == second
    assert (snapshot, repo) == before


def test_buckets_sorted_by_name():
    remote = RemoteGroup(id=1, name="T", policies=[RemotePolicy(name=n) for n in ("zeta", "alpha", "mid")])
    [result] = diff(_snapshot(remote), _repo(Group(name="T")))
    assert _names(result.policies.deleted) == ["alpha", "mid", "zeta"]


# --- Global scope ---


def test_global_result_comes_first():
    scope = GlobalScope(policies=[Policy(name="G", query="SELECT 1;")])
    snapshot = _snapshot(RemoteGroup(id=1, name="A"), global_policies=[], global_queries=[])
    results = diff(snapshot, _repo(Group(name="A"), global_scope=scope))
    assert [r.team for r in results] == [GLOBAL_SCOPE_NAME, "A"]
    assert results[0].is_global
    assert _names(results[0].policies.added) == ["G"]


def test_global_config_diff():
    scope = GlobalScope(
        org_settings=ConfigValue.from_raw(
            {"server_settings": {"server_url": "https://new.example.com", "enroll_secret": "$SECRET"}}
        )
    )
    config = ConfigValue.from_raw({"server_settings": {"server_url": "https://old.example.com"}})
    engine = DiffEngine(_snapshot(config=config, global_policies=[], global_queries=[]))
    [result] = engine.diff(_repo(global_scope=scope))
    [change] = result.config
    assert change.key == "server_settings.server_url"
    assert change.old == "https://old.example.com"


def test_global_without_fetched_config_has_no_config_changes():
    scope = GlobalScope(org_settings=ConfigValue.from_raw({"org_info": {"org_name": "Acme"}}))
    [result] = diff(_snapshot(global_policies=[], global_queries=[]), _repo(global_scope=scope))
    assert result.config == []


def test_global_deletes_unlisted_policies():
    snapshot = _snapshot(global_policies=[RemotePolicy(name="Old", failing_host_count=3)], global_queries=[])
    [result] = diff(snapshot, _repo(global_scope=GlobalScope()))
    [deleted] = result.policies.deleted
    assert deleted.warning == "will delete policy affecting 3 hosts"


def test_labels_validated_for_changed_policies():
    remote = RemoteGroup(id=1, name="T", policies=[RemotePolicy(name="Unchanged", labels_include_any=["Old"])])
    proposed = Group(
        name="T",
        policies=[
            Policy(name="Unchanged", labels_include_any=["Old"]),
            Policy(name="New", labels_include_any=["Laptops", "Ghost"]),
        ],
    )
    snapshot = _snapshot(remote, labels=[RemoteLabel(name="Laptops", host_count=42), RemoteLabel(name="Old")])
    [result] = diff(snapshot, _repo(proposed))
    assert [(lbl.name, lbl.host_count) for lbl in result.labels.valid] == [("Laptops", 42)]
    assert [(lbl.name, lbl.referenced_by) for lbl in result.labels.missing] == [("Ghost", "New")]
