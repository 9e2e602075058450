"""
Custom rule engine: operator-defined regex rules registered at runtime.

Rules live in a single registry mapping rule id to the rule plus its compiled
pattern, guarded by one lock, so a reader never sees a rule without its
pattern. The engine persists nothing; loading and saving rule definitions is
left to callers (``load_rules`` reads a JSON list for the CLI).
"""

from __future__ import annotations

import json
import logging
import re
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from pydantic import BaseModel, Field, ValidationError

from solguard.context import (
    FileContext,
    function_attributes,
    function_signature,
    get_line_col,
    get_source_span,
)
from solguard.errors import CustomRuleError, InvalidPatternError
from solguard.findings.models import Location, Severity, Vulnerability

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CustomRule(BaseModel):
    """A user-defined rule; `pattern` is a Python regular expression."""

    id: str = Field(..., min_length=1)
    name: str
    description: str = ""
    severity: Severity = Severity.MEDIUM
    pattern: str
    message: str
    enabled: bool = True
    created_by: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class RuleMatch(BaseModel):
    """One hit of a custom rule; `context` is the matched line or declaration text."""

    rule_id: str
    file_path: str
    line: int = Field(..., ge=1)
    column: int = Field(..., ge=1)
    message: str
    severity: Severity
    context: str

    def to_vulnerability(self, rule: Optional[CustomRule] = None) -> Vulnerability:
        """Convert to the report's Vulnerability shape."""
        return Vulnerability(
            rule_id=self.rule_id,
            severity=self.severity,
            title=rule.name if rule is not None else self.rule_id,
            description=self.message,
            location=Location(
                file=self.file_path,
                line=self.line,
                column=self.column,
                snippet=self.context.strip(),
            ),
            recommendation=rule.description if rule is not None and rule.description else self.message,
        )


@dataclass(frozen=True)
class RegisteredRule:
    rule: CustomRule
    compiled: re.Pattern[str]


def compile_pattern(rule: CustomRule) -> re.Pattern[str]:
    try:
        return re.compile(rule.pattern)
    except re.error as e:
        raise InvalidPatternError(rule.id, rule.pattern, str(e)) from e


def _source_lines(content: str) -> list[str]:
    # str.splitlines also breaks on form feeds and unicode separators
    lines = [line.rstrip("\r") for line in content.split("\n")]
    if lines and lines[-1] == "":
        lines.pop()
    return lines


class CustomRuleEngine:
    """
    Mutable registry of custom rules with line-based and tree-based matching.

    Administrative calls (add/update/remove/enable/disable) may run
    concurrently with analyze_text/analyze_tree; every operation takes the
    registry lock, and analysis works on a snapshot taken under it.
    """

    def __init__(self, rules: Iterable[CustomRule] = ()) -> None:
        self._lock = threading.RLock()
        self._registry: dict[str, RegisteredRule] = {}
        for rule in rules:
            self.add(rule)

    # -- registry -----------------------------------------------------------

    def add(self, rule: CustomRule) -> None:
        """Compile and register rule, replacing any rule with the same id.

        Raises InvalidPatternError, leaving the registry unchanged, if the
        pattern does not compile.
        """
        entry = RegisteredRule(rule=rule, compiled=compile_pattern(rule))
        with self._lock:
            self._registry[rule.id] = entry
        logger.info("Registered custom rule %s (%s)", rule.id, rule.severity.value)

    def remove(self, rule_id: str) -> None:
        """Unregister rule_id; absent ids are ignored."""
        with self._lock:
            removed = self._registry.pop(rule_id, None)
        if removed is not None:
            logger.info("Removed custom rule %s", rule_id)

    def update(self, rule: CustomRule) -> CustomRule:
        """
        Replace the rule with the same id (or register it if absent).

        The new pattern is compiled before the registry is touched, so an
        invalid pattern keeps the previous rule in place. Returns the stored
        rule with updated_at refreshed.
        """
        stored = rule.model_copy(update={"updated_at": _utcnow()})
        entry = RegisteredRule(rule=stored, compiled=compile_pattern(stored))
        with self._lock:
            self._registry[stored.id] = entry
        logger.info("Updated custom rule %s", stored.id)
        return stored

    def set_enabled(self, rule_id: str, enabled: bool) -> CustomRule:
        with self._lock:
            entry = self._registry.get(rule_id)
            if entry is None:
                raise KeyError(rule_id)
            rule = entry.rule.model_copy(update={"enabled": enabled, "updated_at": _utcnow()})
            self._registry[rule_id] = RegisteredRule(rule=rule, compiled=entry.compiled)
        return rule

    def enable(self, rule_id: str) -> CustomRule:
        return self.set_enabled(rule_id, True)

    def disable(self, rule_id: str) -> CustomRule:
        """Exclude rule_id from analysis while keeping its definition."""
        return self.set_enabled(rule_id, False)

    def get(self, rule_id: str) -> Optional[CustomRule]:
        with self._lock:
            entry = self._registry.get(rule_id)
        return entry.rule if entry is not None else None

    def rules(self) -> list[CustomRule]:
        with self._lock:
            entries = list(self._registry.values())
        return sorted((e.rule for e in entries), key=lambda r: r.id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._registry)

    def __contains__(self, rule_id: object) -> bool:
        with self._lock:
            return rule_id in self._registry

    def _enabled_entries(self) -> list[RegisteredRule]:
        with self._lock:
            entries = [e for e in self._registry.values() if e.rule.enabled]
        entries.sort(key=lambda e: e.rule.id)
        return entries

    # -- analysis -----------------------------------------------------------

    def analyze_text(self, file_path: str, content: str) -> list[RuleMatch]:
        """
        Scan content line by line with every enabled rule.

        Each rule reports at most one match per line: the first, with its
        1-based column and the whole line as context. Lines are numbered the
        way the parser numbers them: only a line feed ends a line.
        """
        matches: list[RuleMatch] = []
        lines = _source_lines(content)
        for entry in self._enabled_entries():
            rule = entry.rule
            for line_no, line in enumerate(lines, start=1):
                found = entry.compiled.search(line)
                if found is None:
                    continue
                matches.append(
                    RuleMatch(
                        rule_id=rule.id,
                        file_path=file_path,
                        line=line_no,
                        column=found.start() + 1,
                        message=rule.message,
                        severity=rule.severity,
                        context=line,
                    )
                )
        return matches

    def analyze_tree(self, context: FileContext) -> list[RuleMatch]:
        """
        Match every enabled rule against each function's attributes, then
        its signature.

        The first matching attribute produces the function's match for that
        rule and the signature is not checked; otherwise a signature match
        is reported.
        """
        matches: list[RuleMatch] = []
        entries = self._enabled_entries()
        if not entries:
            return matches
        for func in context.functions():
            attrs = [(attr, get_source_span(context, attr)) for attr in function_attributes(func)]
            signature = function_signature(context, func)
            for entry in entries:
                hit = next(
                    ((node, text) for node, text in attrs if entry.compiled.search(text)),
                    None,
                )
                if hit is None and entry.compiled.search(signature):
                    hit = (func, signature)
                if hit is None:
                    continue
                node, text = hit
                line, col = get_line_col(node)
                matches.append(
                    RuleMatch(
                        rule_id=entry.rule.id,
                        file_path=context.file,
                        line=line,
                        column=col,
                        message=entry.rule.message,
                        severity=entry.rule.severity,
                        context=text,
                    )
                )
        return matches

    def to_vulnerabilities(self, matches: Iterable[RuleMatch]) -> list[Vulnerability]:
        return [m.to_vulnerability(self.get(m.rule_id)) for m in matches]


_REQUIRED_KEYS = ("id", "name", "pattern", "message")


def load_rules(path: str | Path) -> list[CustomRule]:
    """
    Read custom rules from a JSON file holding a non-empty list of objects.

    Raises CustomRuleError for a missing file, bad JSON or missing keys.
    """
    rules_path = Path(path)
    if not rules_path.exists():
        raise CustomRuleError(f"Rules file not found: {rules_path}")

    try:
        raw = json.loads(rules_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise CustomRuleError(f"Rules file is not valid JSON: {e}") from e
    if not isinstance(raw, list) or not raw:
        raise CustomRuleError("Rules file must contain a non-empty JSON list")

    rules: list[CustomRule] = []
    for item in raw:
        if not isinstance(item, dict):
            raise CustomRuleError("Each rule must be an object")
        for key in _REQUIRED_KEYS:
            if key not in item:
                raise CustomRuleError(f"Rule missing key: {key}")
        data = dict(item)
        if isinstance(data.get("severity"), str):
            data["severity"] = data["severity"].lower()
        try:
            rules.append(CustomRule.model_validate(data))
        except ValidationError as e:
            raise CustomRuleError(f"Invalid rule {item.get('id')!r}: {e}") from e
    return rules
