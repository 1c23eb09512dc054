"""Global configuration diffing (org_settings, agent_options, controls).

The server's /config response does not mirror default.yml: org_settings
and controls keys sit at the top level of the response while
agent_options is nested under its own key. The mapping is spelled out in
``SECTION_LOCATIONS`` rather than guessed.
"""

from __future__ import annotations

from fleetplan.diff.models import ChangeKind, ConfigChange
from fleetplan.models.repo import GlobalScope
from fleetplan.models.values import ConfigValue

# section name -> key path of that section inside the server config
SECTION_LOCATIONS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("org_settings", ()),
    ("agent_options", ("agent_options",)),
    ("controls", ()),
)

# Fleet substitutes $VAR / ${VAR} at apply time
PLACEHOLDER_MARKER = "$"


def has_placeholder(value: str) -> bool:
    return PLACEHOLDER_MARKER in value


def diff_config(remote: ConfigValue, scope: GlobalScope) -> list[ConfigChange]:
    changes: list[ConfigChange] = []
    for section, location in SECTION_LOCATIONS:
        proposed = getattr(scope, section)
        if proposed is None:
            continue
        remote_section = remote.lookup(location)
        if remote_section is not None and not remote_section.is_map:
            remote_section = None
        changes.extend(_diff_section(section, remote_section, proposed))
    return changes


def _diff_section(section: str, remote: ConfigValue | None, proposed: ConfigValue) -> list[ConfigChange]:
    changes = []
    for path, leaf in sorted(proposed.leaves(), key=lambda item: item[0]):
        new = leaf.render()
        if has_placeholder(new):
            continue
        key = ".".join(path)
        current = remote.lookup(path) if remote is not None else None
        if current is None:
            changes.append(ConfigChange(section=section, key=key, change=ChangeKind.ADDED, new=new))
            continue
        old = current.render()
        if old != new:
            changes.append(ConfigChange(section=section, key=key, change=ChangeKind.MODIFIED, old=old, new=new))
    return changes
