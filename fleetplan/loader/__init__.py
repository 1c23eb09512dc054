"""Turn a fleet-gitops tree into a ``RepoModel``.

The loader resolves ``path:`` references, keeps every resolved file inside
the repository root, derives profile identities from file content and
reports every problem as data instead of raising.
"""

from fleetplan.loader.paths import resolve
from fleetplan.loader.repo_loader import GLOBAL_FILE, GROUPS_DIR, RepoLoader, load_repo

__all__ = ["GLOBAL_FILE", "GROUPS_DIR", "RepoLoader", "load_repo", "resolve"]
