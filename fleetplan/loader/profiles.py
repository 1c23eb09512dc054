"""Profile identity derivation.

Fleet identifies a .mobileconfig profile by the PayloadDisplayName of the
top-level payload dict, and every other profile (.json declarations,
.xml Windows profiles) by its filename without the extension. The
filename is never the identity of a .mobileconfig unless the content
yields nothing usable.
"""

from __future__ import annotations

import logging
import plistlib
import re
from pathlib import Path
from xml.parsers.expat import ExpatError

logger = logging.getLogger(__name__)

MAX_PROFILE_SIZE = 10 * 1024 * 1024
PROFILE_EXTENSIONS = (".mobileconfig", ".json", ".xml")

_DISPLAY_NAME_RE = re.compile(
    r"<key>\s*PayloadDisplayName\s*</key>\s*<string>(.*?)</string>", re.DOTALL
)


def profile_name(path: str | Path) -> str:
    """Return the identity the server will use for the profile at ``path``."""
    return extract_profile_name(path) or profile_name_from_filename(path)


def extract_profile_name(path: str | Path) -> str:
    """Content-derived name, or "" when the format has none or extraction fails."""
    path = Path(path)
    if path.suffix.lower() != ".mobileconfig":
        return ""
    try:
        if path.stat().st_size > MAX_PROFILE_SIZE:
            logger.debug("profile %s exceeds %d bytes, using filename", path, MAX_PROFILE_SIZE)
            return ""
        data = path.read_bytes()
    except OSError as e:
        logger.debug("could not read profile %s: %s", path, e)
        return ""
    return extract_mobileconfig_name(data)


def extract_mobileconfig_name(data: bytes) -> str:
    """Top-level PayloadDisplayName of a .mobileconfig document.

    The plist is parsed structurally and the key is read from the root
    dict, which ignores the PayloadDisplayName of nested payloads inside
    PayloadContent. Signed profiles are wrapped in CMS and do not parse as
    a plist; for those the embedded XML is scanned and the last occurrence
    wins, since the top-level key follows the PayloadContent array.
    """
    try:
        document = plistlib.loads(data)
    except (ValueError, TypeError, ExpatError, AttributeError, KeyError, IndexError, OverflowError):
        # plistlib surfaces malformed values (e.g. a bad <date>) as assorted errors
        return _scan_last_display_name(data)

    if not isinstance(document, dict):
        return ""
    name = document.get("PayloadDisplayName")
    if isinstance(name, str):
        return name.strip()
    return ""


def _scan_last_display_name(data: bytes) -> str:
    text = data.decode("utf-8", errors="replace")
    matches = _DISPLAY_NAME_RE.findall(text)
    if not matches:
        return ""
    return matches[-1].strip()


def profile_name_from_filename(path: str | Path) -> str:
    name = Path(path).name
    for ext in PROFILE_EXTENSIONS:
        if name.endswith(ext):
            return name[: -len(ext)]
    return name
