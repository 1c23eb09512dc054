"""Tests for reference resolution and repository containment."""

import os
import tempfile
from pathlib import Path

import pytest

from fleetplan.loader.exceptions import FileError, PathEscapeError, ValidationError
from fleetplan.loader.paths import relative_to_root, resolve


def _make_repo(tmp: str) -> Path:
    root = Path(tmp)
    (root / "teams").mkdir()
    (root / "lib").mkdir()
    (root / "lib" / "policies.yml").write_text("[]\n")
    return root


def test_resolve_inside_root():
    with tempfile.TemporaryDirectory() as tmp:
        root = _make_repo(tmp)
        resolved = resolve(root, root / "teams", "../lib/policies.yml")
        assert resolved == (root / "lib" / "policies.yml").resolve()


def test_resolve_rejects_parent_escape():
    with tempfile.TemporaryDirectory() as tmp:
        root = _make_repo(tmp)
        with pytest.raises(PathEscapeError) as exc:
            resolve(root, root / "teams", "../../etc/passwd")
        assert "escapes repository root" in str(exc.value)


def test_resolve_rejects_absolute_path_outside_root():
    with tempfile.TemporaryDirectory() as tmp:
        root = _make_repo(tmp)
        with pytest.raises(PathEscapeError):
            resolve(root, root / "teams", "/etc/passwd")


def test_resolve_rejects_symlink_pointing_outside():
    with tempfile.TemporaryDirectory() as tmp, tempfile.TemporaryDirectory() as outside:
        root = _make_repo(tmp)
        secret = Path(outside) / "secret.yml"
        secret.write_text("token: hunter2\n")
        os.symlink(secret, root / "lib" / "innocent.yml")

        # lexically inside the repository, really outside it
        with pytest.raises(PathEscapeError):
            resolve(root, root / "teams", "../lib/innocent.yml")


def test_resolve_follows_symlink_within_root():
    with tempfile.TemporaryDirectory() as tmp:
        root = _make_repo(tmp)
        os.symlink(root / "lib" / "policies.yml", root / "teams" / "alias.yml")
        resolved = resolve(root, root / "teams", "alias.yml")
        assert resolved == (root / "lib" / "policies.yml").resolve()


def test_resolve_rejects_escape_through_symlinked_directory():
    with tempfile.TemporaryDirectory() as tmp, tempfile.TemporaryDirectory() as outside:
        root = _make_repo(tmp)
        (Path(outside) / "p.yml").write_text("[]\n")
        os.symlink(outside, root / "lib" / "shared")
        with pytest.raises(PathEscapeError):
            resolve(root, root / "lib", "shared/p.yml")


def test_resolve_empty_path():
    with tempfile.TemporaryDirectory() as tmp:
        root = _make_repo(tmp)
        with pytest.raises(ValidationError):
            resolve(root, root / "teams", "")
        with pytest.raises(ValidationError):
            resolve(root, root / "teams", "   ")


def test_resolve_nul_byte_is_a_file_error():
    with tempfile.TemporaryDirectory() as tmp:
        root = _make_repo(tmp)
        with pytest.raises(FileError) as exc:
            resolve(root, root / "teams", "../lib/a\x00.yml")
        assert "path reference" in str(exc.value)
        assert "\x00" not in str(exc.value)


def test_resolve_symlink_loop():
    with tempfile.TemporaryDirectory() as tmp:
        root = _make_repo(tmp)
        os.symlink("loop.yml", root / "lib" / "loop.yml")
        # Python 3.13+ resolves loops leniently; older versions fail
        try:
            resolved = resolve(root, root / "teams", "../lib/loop.yml")
        except FileError as e:
            assert "loop.yml" in str(e)
        else:
            assert resolved.parent == (root / "lib").resolve()


def test_relative_to_root():
    with tempfile.TemporaryDirectory() as tmp:
        root = _make_repo(tmp)
        assert relative_to_root(root, root / "lib" / "policies.yml") == "lib/policies.yml"
        assert relative_to_root(root, "/elsewhere/file.yml") == "/elsewhere/file.yml"


def test_relative_to_root_unresolvable_path():
    with tempfile.TemporaryDirectory() as tmp:
        root = _make_repo(tmp)
        assert relative_to_root(root, "lib/a\x00.yml") == "lib/a\x00.yml"
