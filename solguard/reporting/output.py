# Report rendering by output format (text via Rich, json via pydantic) and destination.

from __future__ import annotations

import io
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console

from solguard.errors import FormatError
from solguard.findings.models import AnalysisReport
from solguard.reporting.console import print_report

SUPPORTED_FORMATS: tuple[str, ...] = ("text", "json")


def check_format(fmt: str) -> str:
    normalized = fmt.strip().lower()
    if normalized not in SUPPORTED_FORMATS:
        raise FormatError(fmt, SUPPORTED_FORMATS)
    return normalized


def render_json(report: AnalysisReport) -> str:
    return report.model_dump_json(indent=2)


def render_text(report: AnalysisReport, verbose: bool = False, width: int = 120) -> str:
    """Render the Rich text report without colour, e.g. for writing to a file."""
    buffer = io.StringIO()
    console = Console(file=buffer, width=width, no_color=True, color_system=None, highlight=False)
    print_report(report, console=console, verbose=verbose)
    return buffer.getvalue()


def write_report(
    report: AnalysisReport,
    fmt: str = "text",
    output: Optional[Path] = None,
    verbose: bool = False,
    console: Optional[Console] = None,
) -> None:
    """
    Write report in fmt to output, or to standard output when output is None.

    Raises FormatError for unsupported formats before anything is written.
    """
    fmt = check_format(fmt)
    if fmt == "json":
        rendered = render_json(report)
        if output is None:
            sys.stdout.write(rendered + "\n")
        else:
            output.write_text(rendered + "\n", encoding="utf-8")
        return

    if output is None:
        print_report(report, console=console or Console(), verbose=verbose)
    else:
        output.write_text(render_text(report, verbose=verbose), encoding="utf-8")
