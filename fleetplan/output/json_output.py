"""Machine-readable output for CI jobs and agents."""

from __future__ import annotations

import json

from fleetplan.diff.models import DiffResult


def render_json(results: list[DiffResult]) -> str:
    return json.dumps({"teams": [r.to_dict() for r in results]}, indent=2)
