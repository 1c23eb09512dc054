"""Text normalization shared by the loader and the diff engine."""

from __future__ import annotations

import re

_WS_RE = re.compile(r"\s+")


def normalize_ws(value: str | None) -> str:
    """Collapse whitespace runs to a single space and trim both ends."""
    if not value:
        return ""
    return _WS_RE.sub(" ", value).strip()


def canonical_software_path(value: str | None) -> str:
    """Canonicalize a software reference so both sides agree on identity.

    "../Software/Mac/Slack.yml", "./software/mac/slack.yml" and
    "/software/mac/slack.yml" all become "software/mac/slack.yml".
    """
    value = (value or "").strip().lower()
    if not value:
        return ""
    value = value.replace("\\", "/")
    while value.startswith("./"):
        value = value[2:]
    while value.startswith("../"):
        value = value[3:]
    return value.lstrip("/")


def normalize_platform(value: str | None) -> str:
    """Map a single platform name onto Fleet's vocabulary ("macos" -> "darwin")."""
    platform = (value or "").strip().lower()
    if platform == "macos":
        return "darwin"
    return platform


def normalize_platforms(value: str | None) -> str:
    """Normalize a comma-separated platform tag-set ("linux, darwin" -> "darwin,linux")."""
    if not value:
        return ""
    tags = {normalize_platform(tag) for tag in value.split(",")}
    tags.discard("")
    return ",".join(sorted(tags))
