# Unchecked arithmetic: balance-like values combined with plain +, - or * operators.

from __future__ import annotations

import re

from tree_sitter import Node as TSNode

from solguard.context import FileContext, function_body, function_name, walk_body
from solguard.findings.models import Severity, Vulnerability
from solguard.rules.accounts import is_ancestor
from solguard.rules.base import Rule

ARITHMETIC_OPERATORS = frozenset({"+", "-", "*"})
COMPOUND_OPERATORS = frozenset({"+=", "-=", "*="})

# Identifiers that usually hold token amounts or lamports.
BALANCE_NAME_RE = re.compile(
    r"lamports|amount|balance|supply|fee|reward|deposit|withdraw|stake|share|"
    r"collateral|debt|liquidity|reserve|price|quantity|tokens?\b|total",
    re.IGNORECASE,
)
_IDENT_RE = re.compile(r"[A-Za-z_]\w*")

_LITERAL_TYPES = frozenset({"integer_literal", "float_literal"})


def _is_balance_like(text: str) -> bool:
    return any(BALANCE_NAME_RE.search(ident) for ident in _IDENT_RE.findall(text))


def _operator(node: TSNode) -> str:
    op = node.child_by_field_name("operator")
    return op.type if op is not None else ""


class UncheckedArithmetic(Rule):
    """
    Flags `+`, `-`, `*` and their compound assignments on balance-like values.

    Only the outermost arithmetic node of an expression is reported, so
    `a.lamports -= fee + amount` yields one finding, not two.
    """

    id = "unchecked-arithmetic"
    name = "Unchecked Arithmetic"
    description = "Arithmetic on balances without overflow checks"
    severity = Severity.MEDIUM
    recommendation = (
        "Use checked or saturating operations on balances, e.g. "
        "`balance.checked_sub(amount).ok_or(ProgramError::InsufficientFunds)?` "
        "or `checked_add`/`checked_mul`, and handle the overflow case explicitly."
    )

    def analyze(self, context: FileContext) -> list[Vulnerability]:
        findings: list[Vulnerability] = []
        for func in context.functions():
            body = function_body(func)
            if body is None:
                continue
            fn_name = function_name(context, func)
            reported: list[TSNode] = []
            for node in walk_body(body):
                if node.type == "compound_assignment_expr":
                    if _operator(node) not in COMPOUND_OPERATORS:
                        continue
                elif node.type == "binary_expression":
                    if _operator(node) not in ARITHMETIC_OPERATORS:
                        continue
                    left = node.child_by_field_name("left")
                    right = node.child_by_field_name("right")
                    if left is not None and right is not None and (
                        left.type in _LITERAL_TYPES and right.type in _LITERAL_TYPES
                    ):
                        continue
                else:
                    continue
                if any(is_ancestor(outer, node) for outer in reported):
                    continue
                if not _is_balance_like(context.text(node)):
                    continue
                reported.append(node)
                findings.append(
                    self.finding(
                        context,
                        node,
                        f"Unchecked '{_operator(node)}' on balance-like value in function "
                        f"{fn_name} may overflow or underflow",
                    )
                )
        return findings
