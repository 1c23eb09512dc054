"""Renderers for plan results."""

from fleetplan.output.json_output import render_json
from fleetplan.output.markdown import render_markdown
from fleetplan.output.terminal import render_terminal

__all__ = ["render_json", "render_markdown", "render_terminal"]
