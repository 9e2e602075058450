# PDA validation: program-derived addresses derived or used without comparing to the supplied key.

from __future__ import annotations

import re
from typing import Optional

from tree_sitter import Node as TSNode

from solguard.context import FileContext, enclosing_statement, function_body, function_name
from solguard.findings.models import Severity, Vulnerability
from solguard.rules.accounts import callee_name, check_nodes, is_ancestor, iter_calls, mentions
from solguard.rules.base import Rule

DERIVATION_FUNCTIONS = frozenset(
    {"find_program_address", "create_program_address", "try_find_program_address"}
)
SIGNED_CPI_FUNCTIONS = frozenset({"invoke_signed", "invoke_signed_unchecked"})

_KEY_RE = re.compile(r"\.\s*key\b|\bkey\s*\(")
_IDENT_RE = re.compile(r"[A-Za-z_]\w*")


def _derived_name(context: FileContext, call: TSNode) -> Optional[str]:
    """
    Name bound to the derived address: `pda` in `let (pda, bump) = ...` or
    `let pda = ...`. None when the result is not bound by a let.
    """
    node = call.parent
    while node is not None and node.type != "let_declaration":
        if node.type in ("block", "function_item", "expression_statement"):
            return None
        node = node.parent
    if node is None:
        return None
    pattern = context.text(node.child_by_field_name("pattern"))
    for ident in _IDENT_RE.findall(pattern):
        if ident not in ("mut", "ref") and ident != "_":
            return ident
    return None


def _is_validated(context: FileContext, checks: list[TSNode], call: TSNode) -> bool:
    if any(is_ancestor(check, call) for check in checks):
        return True
    name = _derived_name(context, call)
    if name is None:
        return False
    for check in checks:
        text = context.text(check)
        if mentions(text, name) and _KEY_RE.search(text):
            return True
    return False


class PdaValidationError(Rule):
    """
    Flags PDA derivations whose result is never compared to an account key,
    and `invoke_signed` in functions that never re-derive the PDA at all.
    """

    id = "pda-validation"
    name = "PDA Validation Error"
    description = "Program-derived address is not re-derived and compared to the supplied account"
    severity = Severity.HIGH
    recommendation = (
        "Re-derive the PDA from its seeds with `Pubkey::create_program_address` or "
        "`Pubkey::find_program_address` and compare it to the supplied account key "
        "(`if pda != *pda_account.key { return Err(...) }`), or use Anchor `seeds`/`bump` constraints."
    )

    def analyze(self, context: FileContext) -> list[Vulnerability]:
        findings: list[Vulnerability] = []
        for func in context.functions():
            body = function_body(func)
            if body is None:
                continue
            fn_name = function_name(context, func)
            checks = check_nodes(context, body)
            derivations: list[TSNode] = []
            signed_calls: list[TSNode] = []
            for call in iter_calls(body):
                callee = callee_name(context, call)
                if callee in DERIVATION_FUNCTIONS:
                    derivations.append(call)
                elif callee in SIGNED_CPI_FUNCTIONS:
                    signed_calls.append(call)

            for call in derivations:
                if _is_validated(context, checks, call):
                    continue
                findings.append(
                    self.finding(
                        context,
                        enclosing_statement(call, stop=func),
                        f"PDA derived with {callee_name(context, call)} in function {fn_name} "
                        "is never compared to the supplied account key",
                    )
                )

            if not derivations:
                for call in signed_calls:
                    findings.append(
                        self.finding(
                            context,
                            enclosing_statement(call, stop=func),
                            f"Function {fn_name} signs a CPI with PDA seeds but never "
                            "re-derives the PDA to validate the supplied account",
                        )
                    )
        return findings
