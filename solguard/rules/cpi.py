# Arbitrary CPI: cross-program invocations whose target program account is never validated.

from __future__ import annotations

import re

from tree_sitter import Node as TSNode

from solguard.context import FileContext, enclosing_statement, function_body, function_name, walk_body
from solguard.findings.models import Severity, Vulnerability
from solguard.rules.accounts import (
    CPI_FUNCTIONS,
    account_references,
    call_arguments,
    callee_name,
    callee_path,
    check_nodes,
    iter_calls,
    mentions,
    mentions_field,
)
from solguard.rules.base import Rule

_PROGRAM_NAME_RE = re.compile(r"program", re.IGNORECASE)
_KEY_OWNER_RE = re.compile(r"(?<!\w)([A-Za-z_]\w*)\s*\.\s*key\b")


def _program_targets(context: FileContext, body: TSNode, names: set[str]) -> set[str]:
    """
    Account references used as the invoked program: named like a program,
    set as `program_id:` of an Instruction, or passed first to an
    `instruction::` builder.
    """
    targets = {n for n in names if _PROGRAM_NAME_RE.search(n)}
    for node in walk_body(body):
        if node.type == "field_initializer":
            if context.text(node.child_by_field_name("field")).strip() != "program_id":
                continue
            value = context.text(node.child_by_field_name("value"))
            targets.update(m for m in _KEY_OWNER_RE.findall(value) if m in names)
        elif node.type == "call_expression" and "instruction::" in callee_path(context, node):
            args = call_arguments(node)
            if args:
                first = context.text(args[0])
                targets.update(m for m in _KEY_OWNER_RE.findall(first) if m in names)
    return targets


def _is_validated(context: FileContext, body: TSNode, target: str, before: TSNode) -> bool:
    """True if target's key is checked somewhere ahead of the `before` call."""
    for check in check_nodes(context, body):
        if check.start_byte >= before.start_byte:
            break
        if mentions_field(context.text(check), target, "key"):
            return True
    for call in iter_calls(body):
        if call.start_byte >= before.start_byte:
            break
        callee = callee_name(context, call)
        if callee in ("check_program_account", "check_id") and mentions(context.text(call), target):
            return True
    return False


class ArbitraryCpi(Rule):
    """Flags invoke/invoke_signed when the target program account has no key check before the call."""

    id = "arbitrary-cpi"
    name = "Arbitrary CPI"
    description = "Cross-program invocation target is not validated"
    severity = Severity.HIGH
    recommendation = (
        "Compare the invoked program's key against the expected id before the call, e.g. "
        "`if token_program.key != &spl_token::id() { return Err(ProgramError::IncorrectProgramId); }`, "
        "or use Anchor's `Program<'info, T>` account type."
    )

    def analyze(self, context: FileContext) -> list[Vulnerability]:
        findings: list[Vulnerability] = []
        for func in context.functions():
            body = function_body(func)
            if body is None:
                continue
            cpi_calls = [c for c in iter_calls(body) if callee_name(context, c) in CPI_FUNCTIONS]
            if not cpi_calls:
                continue
            names = {r.name for r in account_references(context, func)}
            targets = _program_targets(context, body, names)
            if not targets:
                continue
            fn_name = function_name(context, func)
            for call in cpi_calls:
                unchecked = sorted(t for t in targets if not _is_validated(context, body, t, call))
                if not unchecked:
                    continue
                findings.append(
                    self.finding(
                        context,
                        enclosing_statement(call, stop=func),
                        f"{callee_name(context, call)} in function {fn_name} targets program "
                        f"account(s) {', '.join(repr(t) for t in unchecked)} without validating "
                        "the program id",
                    )
                )
        return findings
