# Pydantic data models for analysis results: Severity, Location, findings, report.

from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field


class Severity(str, Enum):
    """Ordered severity levels; CRITICAL gates CI failure."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"

    @property
    def rank(self) -> int:
        """Higher is more severe."""
        return _SEVERITY_RANK[self]

    def at_least(self, other: "Severity") -> bool:
        return self.rank >= other.rank


_SEVERITY_RANK = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
    Severity.INFO: 0,
}


class Location(BaseModel):
    """Where in the source a finding was reported (file, line, column)."""

    model_config = ConfigDict(frozen=True)

    file: str
    line: int = Field(..., ge=1, description="1-based line number")
    column: int = Field(..., ge=1, description="1-based column number")
    end_line: Optional[int] = Field(None, ge=1)
    end_column: Optional[int] = Field(None, ge=1)
    snippet: Optional[str] = None


class Vulnerability(BaseModel):
    """A security issue reported by a rule (e.g. missing owner check at line 42)."""

    model_config = ConfigDict(frozen=True)

    rule_id: str
    severity: Severity
    title: str
    description: str
    location: Location
    recommendation: str


class AnalysisWarning(BaseModel):
    """A non-security notice, e.g. a file skipped because it failed to parse."""

    model_config = ConfigDict(frozen=True)

    title: str
    description: str
    location: Location


class Suggestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    description: str
    location: Location


class AnalysisReport(BaseModel):
    """Result of one scan; the only artifact handed to collaborators."""

    model_config = ConfigDict(frozen=True)

    vulnerabilities: list[Vulnerability] = Field(default_factory=list)
    warnings: list[AnalysisWarning] = Field(default_factory=list)
    suggestions: list[Suggestion] = Field(default_factory=list)

    @classmethod
    def merge(cls, reports: Iterable["AnalysisReport"]) -> "AnalysisReport":
        vulnerabilities: list[Vulnerability] = []
        warnings: list[AnalysisWarning] = []
        suggestions: list[Suggestion] = []
        for report in reports:
            vulnerabilities.extend(report.vulnerabilities)
            warnings.extend(report.warnings)
            suggestions.extend(report.suggestions)
        return cls(
            vulnerabilities=vulnerabilities,
            warnings=warnings,
            suggestions=suggestions,
        )

    def sorted(self) -> "AnalysisReport":
        """Return a copy with every list ordered by (file, line, column)."""

        def key(item: Vulnerability | AnalysisWarning | Suggestion) -> tuple[str, int, int]:
            loc = item.location
            return loc.file, loc.line, loc.column

        return AnalysisReport(
            vulnerabilities=sorted(self.vulnerabilities, key=key),
            warnings=sorted(self.warnings, key=key),
            suggestions=sorted(self.suggestions, key=key),
        )

    def count_by_severity(self) -> dict[Severity, int]:
        counts = {severity: 0 for severity in Severity}
        for vuln in self.vulnerabilities:
            counts[vuln.severity] += 1
        return counts

    def has_findings_at_or_above(self, threshold: Severity) -> bool:
        return any(v.severity.at_least(threshold) for v in self.vulnerabilities)

    @property
    def is_clean(self) -> bool:
        return not (self.vulnerabilities or self.warnings or self.suggestions)
