"""Solguard exception hierarchy.

All public exceptions inherit from SolguardError so callers (CLI, API layer,
CI glue) can handle any analysis failure without swallowing unrelated errors.
"""

from __future__ import annotations


class SolguardError(Exception):
    """Base exception for all solguard errors."""


class LocatorError(SolguardError):
    """Raised when a path to analyze does not exist or cannot be read."""

    def __init__(self, path: object, reason: str = "path not found") -> None:
        self.path = str(path)
        self.reason = reason
        super().__init__(f"{reason}: {self.path}")


class ParseError(SolguardError):
    """Raised when a source file cannot be parsed into a syntax tree.

    Carries the offending file path and a human-readable diagnostic
    (e.g. "syntax error at line 4, column 12 near 'fn'").
    """

    def __init__(self, path: object, diagnostic: str) -> None:
        self.path = str(path)
        self.diagnostic = diagnostic
        super().__init__(f"{self.path}: {diagnostic}")


class InvalidPatternError(SolguardError):
    """Raised when a custom rule's regular expression does not compile."""

    def __init__(self, rule_id: str, pattern: str, reason: str) -> None:
        self.rule_id = rule_id
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"Invalid regex pattern for rule {rule_id!r}: {reason}")


class CustomRuleError(SolguardError):
    """Raised when a custom rules file is missing or malformed."""


class FormatError(SolguardError):
    """Raised when an unsupported output format is requested."""

    def __init__(self, fmt: str, supported: tuple[str, ...] = ()) -> None:
        self.format = fmt
        self.supported = supported
        hint = f" (expected one of: {', '.join(supported)})" if supported else ""
        super().__init__(f"Unsupported output format: {fmt!r}{hint}")


class ConfigError(SolguardError):
    """Raised for invalid scanner configuration (e.g. unknown rule ids)."""
