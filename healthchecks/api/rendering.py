"""HTML rendering of health-check results."""

from __future__ import annotations

from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from healthchecks.health.engine import AggregateResult

TEMPLATE_DIR = Path(__file__).parent / "templates"


class Renderer:
    """Compiled results template, built once and shared by all requests."""

    def __init__(self, template_dir: Path | None = None, template_name: str = "results.html") -> None:
        self._env = Environment(
            loader=FileSystemLoader(str(template_dir or TEMPLATE_DIR)),
            autoescape=select_autoescape(["html"]),
        )
        self._template = self._env.get_template(template_name)

    def render(self, result: AggregateResult) -> str:
        return self._template.render(passed=result.passed, failed=result.failed)
