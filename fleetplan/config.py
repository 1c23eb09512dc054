"""Endpoint credential resolution.

Priority: command-line flags > environment > ``.config/fleet-plan.json``
(repository root first, then the home directory). The config file holds
either ``{"url": ..., "token": ...}`` or named contexts::

    {"contexts": {"prod": {"url": ..., "token": ...}}, "default_context": "prod"}
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

logger = logging.getLogger(__name__)

ENV_URL = "FLEET_PLAN_URL"
ENV_TOKEN = "FLEET_PLAN_TOKEN"
ENV_INSECURE = "FLEET_PLAN_INSECURE"
CONFIG_REL_PATH = Path(".config") / "fleet-plan.json"


class ConfigError(Exception):
    """Credentials are missing or unusable."""


@dataclass
class ResolvedAuth:
    url: str
    token: str

    def __repr__(self) -> str:
        return f"ResolvedAuth(url={self.url!r}, token='***')"


def load_config_file(root: str | Path) -> tuple[str, str]:
    """Return (url, token) from ``root/.config/fleet-plan.json``.

    A missing or unreadable file yields empty strings.
    """
    path = Path(root) / CONFIG_REL_PATH
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return "", ""
    except (OSError, ValueError) as exc:
        logger.debug("ignoring config file %s: %s", path, exc)
        return "", ""
    if not isinstance(data, dict):
        return "", ""

    url, token = data.get("url") or "", data.get("token") or ""
    if url or token:
        return str(url), str(token)

    contexts = data.get("contexts") or {}
    context = contexts.get(data.get("default_context") or "") if isinstance(contexts, dict) else None
    if isinstance(context, dict):
        return str(context.get("url") or ""), str(context.get("token") or "")
    return "", ""


def find_config_auth(repo_root: str | Path | None = None, home: str | Path | None = None) -> tuple[str, str]:
    if repo_root:
        url, token = load_config_file(repo_root)
        if url or token:
            return url, token
    home = home if home is not None else Path.home()
    return load_config_file(home)


def check_url(url: str, env: Mapping[str, str] | None = None) -> None:
    """Refuse to send the token over plain HTTP unless explicitly allowed."""
    env = os.environ if env is None else env
    if url.lower().startswith("http://") and env.get(ENV_INSECURE) != "1":
        raise ConfigError(
            f"refusing to send API token over plain HTTP ({url}); "
            f"use https:// or set {ENV_INSECURE}=1 to override"
        )


def resolve_auth(
    flag_url: str | None = None,
    flag_token: str | None = None,
    repo_root: str | Path | None = None,
    *,
    env: Mapping[str, str] | None = None,
    home: str | Path | None = None,
) -> ResolvedAuth:
    """Resolve the server URL and API token.

    Raises:
        ConfigError: When either value is still missing, or the URL is
            plain HTTP without the insecure override.
    """
    env = os.environ if env is None else env
    url = flag_url or env.get(ENV_URL, "")
    token = flag_token or env.get(ENV_TOKEN, "")

    if not url or not token:
        file_url, file_token = find_config_auth(repo_root, home)
        url = url or file_url
        token = token or file_token

    if not url:
        raise ConfigError(f"Fleet server URL required (--url or ${ENV_URL})")
    if not token:
        raise ConfigError(f"API token required (--token or ${ENV_TOKEN})")

    url = url.rstrip("/")
    check_url(url, env)
    return ResolvedAuth(url=url, token=token)
