"""Tests for profile identity derivation."""

import plistlib
import tempfile
from pathlib import Path

from fleetplan.loader import profiles
from fleetplan.loader.profiles import (
    extract_mobileconfig_name,
    profile_name,
    profile_name_from_filename,
)

TOP_LEVEL_FIRST = b"""<?xml version="1.0" encoding="UTF-8"?>
<plist version="1.0">
<dict>
  <key>PayloadDisplayName</key>
  <string>Corporate Wi-Fi</string>
  <key>PayloadContent</key>
  <array>
    <dict>
      <key>PayloadDisplayName</key>
      <string>Wi-Fi Payload</string>
    </dict>
  </array>
</dict>
</plist>
"""


BAD_DATE = b"""<?xml version="1.0" encoding="UTF-8"?>
<plist version="1.0">
<dict>
  <key>PayloadContent</key>
  <array>
    <dict>
      <key>PayloadDisplayName</key>
      <string>Nested</string>
    </dict>
  </array>
  <key>PayloadExpirationDate</key>
  <date>not-a-date</date>
  <key>PayloadDisplayName</key>
  <string>Expiring Wi-Fi</string>
</dict>
</plist>
"""


def _mobileconfig(top: str, nested: str = "Nested Payload") -> bytes:
    # plistlib sorts keys, so PayloadContent lands before the top-level name
    return plistlib.dumps(
        {
            "PayloadContent": [{"PayloadDisplayName": nested, "PayloadType": "com.apple.wifi.managed"}],
            "PayloadDisplayName": top,
            "PayloadType": "Configuration",
        }
    )


# --- Content-derived names ---


def test_top_level_name_wins_over_nested():
    assert extract_mobileconfig_name(_mobileconfig("FileVault")) == "FileVault"


def test_structural_parse_ignores_key_order():
    assert extract_mobileconfig_name(TOP_LEVEL_FIRST) == "Corporate Wi-Fi"


def test_signed_profile_falls_back_to_last_occurrence():
    inner = _mobileconfig("Signed Profile", nested="Inner")
    signed = b"\x30\x82\x10\x00CMS-envelope" + inner + b"\x00\x01signature"
    assert extract_mobileconfig_name(signed) == "Signed Profile"


def test_missing_display_name():
    assert extract_mobileconfig_name(plistlib.dumps({"PayloadType": "Configuration"})) == ""


def test_broken_xml_yields_no_name():
    broken = b"<?xml version='1.0'?><plist><dict><key>PayloadDisplayName</key><string>Half"
    assert extract_mobileconfig_name(broken) == ""


def test_malformed_value_falls_back_to_scan():
    assert extract_mobileconfig_name(BAD_DATE) == "Expiring Wi-Fi"


def test_profile_with_malformed_value_keeps_loading():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "wifi.mobileconfig"
        path.write_bytes(BAD_DATE)
        assert profile_name(path) == "Expiring Wi-Fi"
        path.write_bytes(BAD_DATE.replace(b"PayloadDisplayName", b"Name"))
        assert profile_name(path) == "wifi"


# --- Filename fallback ---


def test_profile_name_prefers_content():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "filevault.mobileconfig"
        path.write_bytes(_mobileconfig("Disk Encryption"))
        assert profile_name(path) == "Disk Encryption"


def test_profile_name_falls_back_to_filename():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "no-name.mobileconfig"
        path.write_bytes(plistlib.dumps({"PayloadType": "Configuration"}))
        assert profile_name(path) == "no-name"


def test_non_plist_formats_use_filename():
    with tempfile.TemporaryDirectory() as tmp:
        ddm = Path(tmp) / "passcode.json"
        ddm.write_text('{"PayloadDisplayName": "ignored"}')
        windows = Path(tmp) / "firewall.xml"
        windows.write_text("<SyncML></SyncML>")
        assert profile_name(ddm) == "passcode"
        assert profile_name(windows) == "firewall"


def test_oversized_profile_uses_filename(monkeypatch):
    monkeypatch.setattr(profiles, "MAX_PROFILE_SIZE", 16)
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "large.mobileconfig"
        path.write_bytes(_mobileconfig("Too Big"))
        assert profile_name(path) == "large"


def test_profile_name_from_filename():
    assert profile_name_from_filename("lib/macos/wifi.mobileconfig") == "wifi"
    assert profile_name_from_filename("lib/windows/defender.xml") == "defender"
    assert profile_name_from_filename("lib/README") == "README"
