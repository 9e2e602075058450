# Rich console output: format analysis reports for terminal display.

from __future__ import annotations

from typing import Sequence

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from solguard.findings.models import (
    AnalysisReport,
    AnalysisWarning,
    Severity,
    Suggestion,
    Vulnerability,
)

# Severity → Rich style
SEVERITY_STYLE = {
    Severity.CRITICAL: "bold white on red",
    Severity.HIGH: "bold red",
    Severity.MEDIUM: "bold yellow",
    Severity.LOW: "bold dim",
    Severity.INFO: "bold blue",
}

DEFAULT_SEVERITY_STYLE = "bold white"


def _severity_style(severity: Severity) -> str:
    return SEVERITY_STYLE.get(severity, DEFAULT_SEVERITY_STYLE)


def print_report(
    report: AnalysisReport,
    console: Console | None = None,
    verbose: bool = False,
) -> None:
    """
    Print a report using Rich: findings grouped by file and colored by
    severity, then warnings and suggestions, then a summary panel.
    If verbose, each finding's recommendation is shown under the table.
    """
    console = console or Console()

    if report.is_clean:
        console.print(
            Panel(
                "[green]No issues found.[/green]",
                title="Solguard Analysis",
                border_style="green",
                box=box.ROUNDED,
            )
        )
        return

    by_file: dict[str, list[Vulnerability]] = {}
    for v in report.vulnerabilities:
        by_file.setdefault(v.location.file, []).append(v)

    for path in sorted(by_file):
        file_findings = sorted(
            by_file[path], key=lambda x: (x.location.line, x.location.column, -x.severity.rank)
        )

        console.print()
        console.print(Panel(
            f"[bold cyan]{escape(path)}[/bold cyan]",
            box=box.SIMPLE_HEAD,
            border_style="blue",
            padding=(0, 1),
        ))

        table = Table(
            show_header=True,
            header_style="bold magenta",
            box=box.SIMPLE,
            padding=(0, 1),
            expand=False,
        )
        table.add_column("Line", justify="right", style="dim", width=5)
        table.add_column("Col", justify="right", style="dim", width=4)
        table.add_column("Severity", width=10)
        table.add_column("Rule", width=24)
        table.add_column("Description", style="white")

        for v in file_findings:
            loc = v.location
            table.add_row(
                str(loc.line),
                str(loc.column),
                Text(v.severity.value.upper(), style=_severity_style(v.severity)),
                Text(f"[{v.rule_id}]", style="dim"),
                Text(v.description),
            )

        console.print(table)

        for v in file_findings:
            if v.location.snippet:
                first_line = v.location.snippet.strip().splitlines()[0]
                console.print(f"  [dim]{v.location.line:>4} |[/dim] {escape(first_line)}", highlight=False)

        if verbose:
            seen_rules: set[str] = set()
            for v in file_findings:
                if v.rule_id not in seen_rules:
                    seen_rules.add(v.rule_id)
                    console.print(f"  [dim]\\[Fix][/dim] {escape(v.title)}: {escape(v.recommendation)}", highlight=False)
        console.print()

    if report.warnings:
        _print_notices("Warnings", report.warnings, "yellow", console)
    if report.suggestions:
        _print_notices("Suggestions", report.suggestions, "cyan", console)

    _print_summary(report, console)


def _print_notices(title: str, notices: Sequence[AnalysisWarning | Suggestion], style: str, console: Console) -> None:
    table = Table(title=title, show_header=True, header_style=f"bold {style}", box=box.SIMPLE)
    table.add_column("Location", style="white")
    table.add_column("Title", style=style)
    table.add_column("Description", style="dim")
    for n in notices:
        table.add_row(f"{n.location.file}:{n.location.line}", Text(n.title), Text(n.description))
    console.print(table)


def _print_summary(report: AnalysisReport, console: Console) -> None:
    """Print a compact summary of findings by severity."""
    counts = report.count_by_severity()
    total = len(report.vulnerabilities)
    summary_parts = [f"[bold]{total} finding{'s' if total != 1 else ''}[/bold]"]
    for severity in Severity:
        if counts[severity]:
            summary_parts.append(
                f"[{_severity_style(severity)}]{counts[severity]} {severity.value}[/]"
            )
    if report.warnings:
        summary_parts.append(f"[yellow]{len(report.warnings)} warning(s)[/yellow]")

    console.print()
    console.print(
        Panel(
            " | ".join(summary_parts),
            title="Summary",
            border_style="yellow" if total > 0 else "green",
            box=box.ROUNDED,
        )
    )
