# Rule dispatcher: runs every built-in rule over a syntax tree and aggregates findings.

from __future__ import annotations

import logging
from typing import Iterable, Iterator, Sequence

from solguard.context import FileContext
from solguard.findings.models import Vulnerability
from solguard.rules.arithmetic import UncheckedArithmetic
from solguard.rules.base import Rule
from solguard.rules.cpi import ArbitraryCpi
from solguard.rules.initialization import Reinitialization
from solguard.rules.ownership import MissingOwnerCheck, MissingSignerCheck
from solguard.rules.pda import PdaValidationError
from solguard.rules.sysvar import SysvarSpoofing

logger = logging.getLogger(__name__)


def builtin_rules() -> list[Rule]:
    """Fresh instances of the full built-in catalog, in reporting order."""
    return [
        MissingOwnerCheck(),
        MissingSignerCheck(),
        PdaValidationError(),
        SysvarSpoofing(),
        UncheckedArithmetic(),
        ArbitraryCpi(),
        Reinitialization(),
    ]


class RuleSet:
    """
    Holds the built-in catalog and runs it over syntax trees.

    The output is the union of every rule's findings; two rules may flag the
    same line for different reasons, so nothing is deduplicated. A rule that
    raises loses its contribution for that file only.
    """

    def __init__(self, rules: Iterable[Rule] | None = None) -> None:
        self._rules: tuple[Rule, ...] = tuple(builtin_rules() if rules is None else rules)

    @property
    def rules(self) -> Sequence[Rule]:
        return self._rules

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def get(self, rule_id: str) -> Rule | None:
        for rule in self._rules:
            if rule.id == rule_id:
                return rule
        return None

    def analyze(self, context: FileContext) -> list[Vulnerability]:
        vulnerabilities: list[Vulnerability] = []
        for rule in self._rules:
            try:
                rule_findings = rule.analyze(context)
            except Exception as exc:
                logger.exception("Rule %s failed on %s: %s", rule.id, context.path, exc)
                continue
            logger.debug("Rule %s: %d finding(s) in %s", rule.id, len(rule_findings), context.path)
            vulnerabilities.extend(rule_findings)
        return vulnerabilities
