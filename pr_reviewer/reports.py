"""Markdown report rendering and lookup."""

from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from pathlib import Path

from jinja2 import Environment, PackageLoader, StrictUndefined, select_autoescape

from pr_reviewer.models import CommandResult, OpenPr, utc_now
from pr_reviewer.utils import report_timestamp


@dataclass(frozen=True)
class ReportStep:
    """One executed step (review or fix) shown in a PR report."""

    name: str
    command: str
    exit_code: int
    stdout: str
    stderr: str
    time: str

    @classmethod
    def from_result(cls, name: str, command: str, result: CommandResult) -> "ReportStep":
        """Build a step from a finished command."""
        return cls(
            name=name,
            command=command,
            exit_code=result.exit_code,
            stdout=result.stdout.rstrip("\n"),
            stderr=result.stderr.rstrip("\n"),
            time=utc_now().isoformat(),
        )


TemplateContextValue = str | int | bool | list[ReportStep] | None


@lru_cache(maxsize=1)
def _report_environment() -> Environment:
    """Build and cache the Jinja environment for report templates.

    Reports are Markdown, so autoescaping is limited to HTML templates.
    """
    return Environment(
        loader=PackageLoader("pr_reviewer", "templates"),
        autoescape=select_autoescape(enabled_extensions=("html", "htm")),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        undefined=StrictUndefined,
    )


def render_template(template_name: str, **context: TemplateContextValue) -> str:
    """Render a report template.

    Args:
        template_name: Template filename (e.g., "report.md.j2")
        **context: Template variables

    Returns:
        Rendered text

    """
    template = _report_environment().get_template(template_name)
    return template.render(**context).strip() + "\n"


def report_path_for(reports_dir: Path, pr_number: int, moment: datetime | None = None) -> Path:
    """Return the report file path for a PR processed at ``moment``.

    Args:
        reports_dir: Reports directory
        pr_number: PR number
        moment: Processing time (defaults to now, UTC)

    Returns:
        ``reports_dir/pr-<number>-<timestamp>.md``

    """
    stamp = report_timestamp((moment or utc_now()).isoformat())
    return reports_dir / f"pr-{pr_number}-{stamp}.md"


def write_report(report_path: Path, pr: OpenPr, steps: list[ReportStep]) -> None:
    """Render and write the Markdown report of a PR.

    Args:
        report_path: Destination file
        pr: PR the report is about
        steps: Steps executed so far, in order

    """
    content = render_template(
        "report.md.j2",
        pr_number=pr.number,
        pr_title=pr.title,
        pr_url=pr.url,
        steps=steps,
    )
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(content, encoding="utf-8")


def latest_report(reports_dir: Path) -> Path | None:
    """Return the most recently modified regular file in ``reports_dir``.

    Args:
        reports_dir: Reports directory

    Returns:
        Path of the newest report, or None when there is none

    """
    if not reports_dir.is_dir():
        return None

    latest: tuple[float, Path] | None = None
    for path in reports_dir.iterdir():
        if not path.is_file():
            continue
        modified = path.stat().st_mtime
        if latest is None or modified > latest[0]:
            latest = (modified, path)

    return latest[1] if latest else None
