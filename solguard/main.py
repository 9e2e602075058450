from __future__ import annotations

"""
Typer CLI entry point and orchestration of the analysis pipeline.

- Accepts a Rust file or a program directory
- Runs the built-in catalog (optionally plus custom regex rules from JSON)
- Prints the report as Rich text or JSON, to stdout or a file
- Exits non-zero when findings reach the --fail-on severity, and on errors
"""

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from solguard.analyzer import PARSE_ERROR_TITLE, UNREADABLE_TITLE, Analyzer
from solguard.config import Config, get_default_config, get_enabled_rules
from solguard.errors import SolguardError
from solguard.findings.models import Severity
from solguard.reporting.output import SUPPORTED_FORMATS, check_format, write_report
from solguard.rules.custom import CustomRuleEngine, load_rules

logger = logging.getLogger(__name__)

app = typer.Typer(help="Solguard - static security analysis for Solana on-chain programs.")

EXIT_FINDINGS = 1
EXIT_ERROR = 2

FAIL_ON_CHOICES = tuple(s.value for s in Severity) + ("none",)


def _configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        force=True,
    )


def _parse_fail_on(value: str) -> Optional[Severity]:
    normalized = value.strip().lower()
    if normalized == "none":
        return None
    try:
        return Severity(normalized)
    except ValueError:
        raise typer.BadParameter(
            f"expected one of: {', '.join(FAIL_ON_CHOICES)}", param_hint="--fail-on"
        ) from None


def _error(message: str) -> typer.Exit:
    typer.echo(f"error: {message}", err=True)
    return typer.Exit(code=EXIT_ERROR)


@app.command()
def analyze(
    target: Path = typer.Argument(
        ...,
        help="Rust file or program directory to analyze.",
    ),
    output_format: str = typer.Option(
        "text", "--format", "-f", help=f"Output format: {' | '.join(SUPPORTED_FORMATS)}."
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write the report to this file instead of stdout."
    ),
    fail_on: str = typer.Option(
        "high",
        "--fail-on",
        help=f"Exit with code 1 when a finding is at or above this severity ({', '.join(FAIL_ON_CHOICES)}).",
    ),
    rules_file: Optional[Path] = typer.Option(
        None, "--rules", help="JSON file with custom regex rules to run alongside the catalog."
    ),
    only: Optional[List[str]] = typer.Option(
        None, "--rule", help="Run only this built-in rule id (repeatable)."
    ),
    workers: Optional[int] = typer.Option(
        None, "--workers", min=1, help="Worker threads for directory scans."
    ),
    verbose: int = typer.Option(
        0, "--verbose", "-v", count=True, help="-v for progress logs, -vv for debug logs."
    ),
) -> None:
    """
    Analyze a single Rust file or every .rs file under a directory.
    """
    _configure_logging(verbose)
    threshold = _parse_fail_on(fail_on)

    try:
        fmt = check_format(output_format)
        config: Config = get_default_config()
        config.rules = list(get_enabled_rules(config, only=only or None))
        if workers is not None:
            config.workers = workers
        engine = CustomRuleEngine(load_rules(rules_file)) if rules_file is not None else None
        report = Analyzer(config=config, custom_rules=engine).analyze_path(target)
        write_report(report, fmt=fmt, output=output, verbose=verbose > 0)
    except SolguardError as e:
        raise _error(str(e)) from e
    except OSError as e:
        raise _error(f"cannot write report: {e}") from e

    skipped = [w for w in report.warnings if w.title in (PARSE_ERROR_TITLE, UNREADABLE_TITLE)]
    if skipped:
        raise _error(f"{len(skipped)} file(s) skipped; see warnings in the report")
    if threshold is not None and report.has_findings_at_or_above(threshold):
        raise typer.Exit(code=EXIT_FINDINGS)


@app.command("rules")
def list_rules() -> None:
    """List the built-in rule catalog."""
    table = Table(title="Built-in rules", box=box.ROUNDED, header_style="bold magenta")
    table.add_column("Id", style="cyan", no_wrap=True)
    table.add_column("Severity")
    table.add_column("Title", style="bold")
    table.add_column("Description")
    for rule in get_default_config().rules:
        table.add_row(rule.id, rule.severity.value.upper(), rule.name, rule.description)
    Console().print(table)


def main() -> None:
    """Entry point for `python -m solguard.main` and the `solguard` script."""
    app()


if __name__ == "__main__":
    main()
