# Rule interface (abstract base class): defines the contract all built-in rules implement.
# Concrete rules (ownership, pda, sysvar, etc.) subclass Rule and implement analyze().

from __future__ import annotations

from abc import ABC, abstractmethod

from tree_sitter import Node as TSNode

from solguard.context import FileContext, get_end_line_col, get_line_col, get_source_span
from solguard.findings.models import Location, Severity, Vulnerability

_SNIPPET_LIMIT = 200


class Rule(ABC):
    """
    Abstract base class for all built-in security rules.

    Subclasses must define:
    - id (str): unique rule identifier (e.g. "missing-owner-check")
    - name (str): human-readable title (e.g. "Missing Owner Check")
    - description (str): what the rule looks for
    - severity (Severity): fixed severity of every finding
    - recommendation (str): remediation attached to every finding
    - analyze(context) -> list[Vulnerability]

    Rules are stateless; a single instance is shared across files and threads.
    analyze() must not raise for a syntactically valid tree and returns an
    empty list when nothing matches.
    """

    id: str
    name: str
    description: str
    severity: Severity
    recommendation: str

    @abstractmethod
    def analyze(self, context: FileContext) -> list[Vulnerability]:
        """
        Analyze one file and return any findings.

        Args:
            context: Per-file state (path, source bytes, AST tree).

        Returns:
            One Vulnerability per issue, located at the offending node.
        """
        ...

    def finding(self, context: FileContext, node: TSNode, description: str) -> Vulnerability:
        """Build a Vulnerability for node carrying its real file position."""
        line, col = get_line_col(node)
        end_line, end_col = get_end_line_col(node)
        snippet = get_source_span(context, node).strip()
        if len(snippet) > _SNIPPET_LIMIT:
            snippet = snippet[: _SNIPPET_LIMIT - 3] + "..."
        return Vulnerability(
            rule_id=self.id,
            severity=self.severity,
            title=self.name,
            description=description,
            location=Location(
                file=context.file,
                line=line,
                column=col,
                end_line=end_line,
                end_column=end_col,
                snippet=snippet,
            ),
            recommendation=self.recommendation,
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id!r} severity={self.severity.value}>"
