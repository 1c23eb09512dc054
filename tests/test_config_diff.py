"""Tests for global configuration diffing."""

from fleetplan.diff.config import diff_config, has_placeholder
from fleetplan.diff.models import ChangeKind
from fleetplan.models.repo import GlobalScope
from fleetplan.models.values import ConfigValue

REMOTE = ConfigValue.from_raw(
    {
        "org_info": {"org_name": "Acme"},
        "server_settings": {"server_url": "https://fleet.example.com", "enable_analytics": True},
        "agent_options": {"config": {"options": {"distributed_interval": 10.0}}},
        "mdm": {"macos_updates": {"minimum_version": "14.0"}},
    }
)


def _scope(**sections) -> GlobalScope:
    return GlobalScope(**{name: ConfigValue.from_raw(raw) for name, raw in sections.items()})


def test_changes_are_ordered_by_dotted_key():
    scope = _scope(org_settings={"b": {"y": 1, "x": [1, 2]}, "a": "v"})
    changes = diff_config(ConfigValue.from_raw({}), scope)
    assert [(c.key, c.new) for c in changes] == [("a", "v"), ("b.x", "[1,2]"), ("b.y", "1")]
    assert all(c.change == ChangeKind.ADDED for c in changes)


def test_unchanged_config_produces_nothing():
    scope = _scope(
        org_settings={"org_info": {"org_name": "Acme"}, "server_settings": {"enable_analytics": True}},
        agent_options={"config": {"options": {"distributed_interval": 10}}},
    )
    assert diff_config(REMOTE, scope) == []


def test_modified_and_added_leaves():
    scope = _scope(
        org_settings={
            "org_info": {"org_name": "Acme Corp", "contact_url": "https://acme.example.com/help"},
            "server_settings": {"enable_analytics": False},
        }
    )
    changes = diff_config(REMOTE, scope)
    summary = [(c.section, c.key, c.change, c.old, c.new) for c in changes]
    assert summary == [
        ("org_settings", "org_info.contact_url", ChangeKind.ADDED, "", "https://acme.example.com/help"),
        ("org_settings", "org_info.org_name", ChangeKind.MODIFIED, "Acme", "Acme Corp"),
        ("org_settings", "server_settings.enable_analytics", ChangeKind.MODIFIED, "true", "false"),
    ]


def test_agent_options_live_under_their_own_key():
    scope = _scope(agent_options={"config": {"options": {"distributed_interval": 30}}})
    [change] = diff_config(REMOTE, scope)
    assert change.section == "agent_options"
    assert change.key == "config.options.distributed_interval"
    assert (change.old, change.new) == ("10", "30")


def test_controls_at_top_level():
    scope = _scope(controls={"mdm": {"macos_updates": {"minimum_version": "15.1"}}})
    [change] = diff_config(REMOTE, scope)
    assert change.section == "controls"
    assert change.old == "14.0"


def test_placeholders_always_skipped():
    scope = _scope(
        org_settings={
            "server_settings": {"server_url": "$FLEET_URL"},
            "integrations": {"jira": [{"api_token": "${JIRA_TOKEN}"}]},
            "org_info": {"org_logo_url": "https://cdn/$logo.png"},
        }
    )
    assert diff_config(REMOTE, scope) == []
    assert has_placeholder("${X}")
    assert not has_placeholder("plain")


def test_sections_follow_table_order():
    scope = _scope(
        controls={"mdm": {"enable_disk_encryption": True}},
        org_settings={"org_info": {"org_name": "Other"}},
        agent_options={"overrides": {"platforms": {}}},
    )
    sections = [c.section for c in diff_config(REMOTE, scope)]
    assert sections == ["org_settings", "controls"]


def test_missing_remote_section_marks_everything_added():
    remote = ConfigValue.from_raw({"agent_options": "not-a-map"})
    scope = _scope(agent_options={"config": {"decorators": {"load": ["SELECT 1;"]}}})
    [change] = diff_config(remote, scope)
    assert change.change == ChangeKind.ADDED
    assert change.new == '["SELECT 1;"]'
