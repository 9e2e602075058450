# CI integration helpers: per-severity summary and pass/fail verdict over a change set.

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

from pydantic import BaseModel, computed_field

from solguard.analyzer import PARSE_ERROR_TITLE, UNREADABLE_TITLE, Analyzer
from solguard.errors import LocatorError, ParseError
from solguard.findings.models import AnalysisReport, AnalysisWarning, Location, Severity

logger = logging.getLogger(__name__)


class CiSummary(BaseModel):
    total_issues: int = 0
    critical_issues: int = 0
    high_issues: int = 0
    medium_issues: int = 0
    low_issues: int = 0
    info_issues: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success(self) -> bool:
        """A change set passes when it has no critical and no high findings."""
        return self.critical_issues == 0 and self.high_issues == 0


class CiResult(BaseModel):
    success: bool
    message: str
    report: Optional[AnalysisReport] = None
    summary: Optional[CiSummary] = None


def summarize(report: AnalysisReport) -> CiSummary:
    counts = report.count_by_severity()
    return CiSummary(
        total_issues=len(report.vulnerabilities),
        critical_issues=counts[Severity.CRITICAL],
        high_issues=counts[Severity.HIGH],
        medium_issues=counts[Severity.MEDIUM],
        low_issues=counts[Severity.LOW],
        info_issues=counts[Severity.INFO],
    )


def _verdict(summary: CiSummary) -> str:
    if summary.success:
        return "Security analysis passed"
    return (
        f"Security analysis failed: {summary.critical_issues} critical, "
        f"{summary.high_issues} high, {summary.medium_issues} medium, "
        f"{summary.low_issues} low, {summary.info_issues} info issues found"
    )


def run_ci_analysis(analyzer: Analyzer, files: Iterable[Path]) -> CiResult:
    """
    Analyze each changed file and merge the reports into one CI verdict.

    Files that cannot be read or parsed are recorded as warnings; publishing
    the result to a CI provider is left to the caller.
    """
    reports: list[AnalysisReport] = []
    for file_path in files:
        file_path = Path(file_path)
        try:
            reports.append(analyzer.analyze_file(file_path))
        except ParseError as e:
            logger.warning("CI: skipping %s: %s", file_path, e.diagnostic)
            reports.append(_skipped(PARSE_ERROR_TITLE, file_path, e.diagnostic))
        except LocatorError as e:
            logger.warning("CI: skipping %s: %s", file_path, e.reason)
            reports.append(_skipped(UNREADABLE_TITLE, file_path, e.reason))

    report = AnalysisReport.merge(reports).sorted()
    summary = summarize(report)
    return CiResult(
        success=summary.success,
        message=_verdict(summary),
        report=report,
        summary=summary,
    )


def _skipped(title: str, path: Path, description: str) -> AnalysisReport:
    return AnalysisReport(
        warnings=[
            AnalysisWarning(
                title=title,
                description=description,
                location=Location(file=str(path), line=1, column=1),
            )
        ]
    )
