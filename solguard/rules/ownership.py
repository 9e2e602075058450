# Ownership and signer checks: raw accounts used without verifying owner or signer status.

from __future__ import annotations

import logging
import re
from typing import Optional

from tree_sitter import Node as TSNode

from solguard.context import (
    FileContext,
    enclosing_statement,
    function_body,
    function_name,
    walk_body,
)
from solguard.findings.models import Severity, Vulnerability
from solguard.rules.accounts import (
    AccountRef,
    account_references,
    callee_name,
    check_nodes,
    iter_calls,
    mentions,
    mentions_field,
    state_changes,
)
from solguard.rules.base import Rule

logger = logging.getLogger(__name__)

# Helpers like `assert_owned_by(acc, program_id)` or `check_owner(acc)`.
_OWNER_HELPER_RE = re.compile(r"owner|owned", re.IGNORECASE)


def _has_owner_check(context: FileContext, body: TSNode, name: str) -> bool:
    """
    True if body compares `name.owner` anywhere, or hands the account to an
    owner-checking helper such as `assert_owned_by(name, program_id)`.
    """
    for check in check_nodes(context, body):
        if mentions_field(context.text(check), name, "owner"):
            return True
    for call in iter_calls(body):
        if _OWNER_HELPER_RE.search(callee_name(context, call)) and mentions(context.text(call), name):
            return True
    return False


def _use_site(context: FileContext, body: TSNode, ref: AccountRef) -> TSNode:
    """Statement of the first use of ref in body, falling back to its declaration."""
    start = ref.node.end_byte if ref.kind == "binding" else body.start_byte
    for node in walk_body(body):
        if node.start_byte < start:
            continue
        if node.type == "identifier" and context.text(node) == ref.name:
            return enclosing_statement(node, stop=body.parent)
    return ref.node


class MissingOwnerCheck(Rule):
    """
    Flags raw account references whose owner is never compared to a program id.

    Absence of the comparison is the signal, so accounts whose owner is
    validated indirectly (e.g. by a typed deserializer) are still reported.
    """

    id = "missing-owner-check"
    name = "Missing Owner Check"
    description = "Account ownership is not verified before use"
    severity = Severity.HIGH
    recommendation = (
        "Verify account ownership before reading or writing it, e.g. "
        "`if account.owner != program_id { return Err(ProgramError::IncorrectProgramId); }`, "
        "or use a typed Anchor `Account<'info, T>` which checks the owner."
    )

    def analyze(self, context: FileContext) -> list[Vulnerability]:
        findings: list[Vulnerability] = []
        for func in context.functions():
            body = function_body(func)
            if body is None:
                continue
            fn_name = function_name(context, func)
            for ref in account_references(context, func):
                if _has_owner_check(context, body, ref.name):
                    continue
                logger.debug("%s: no owner check for %s in %s", context.path, ref.name, fn_name)
                findings.append(
                    self.finding(
                        context,
                        _use_site(context, body, ref),
                        f"Ownership of account '{ref.name}' is not verified in function {fn_name}",
                    )
                )
        return findings


def _first_signer_check(context: FileContext, body: TSNode, names: list[str]) -> Optional[TSNode]:
    for check in check_nodes(context, body):
        text = context.text(check)
        if any(mentions_field(text, n, "is_signer") for n in names):
            return check
    return None


class MissingSignerCheck(Rule):
    """
    Flags functions that change state through raw accounts without any
    `is_signer` check placed before the first state change.
    """

    id = "missing-signer-check"
    name = "Missing Signer Check"
    description = "Account signer status is not verified before use"
    severity = Severity.HIGH
    recommendation = (
        "Require the authorizing account to sign, e.g. "
        "`if !authority.is_signer { return Err(ProgramError::MissingRequiredSignature); }`, "
        "or use Anchor's `Signer<'info>` type."
    )

    def analyze(self, context: FileContext) -> list[Vulnerability]:
        findings: list[Vulnerability] = []
        for func in context.functions():
            body = function_body(func)
            if body is None:
                continue
            refs = account_references(context, func)
            if not refs:
                continue
            names = [r.name for r in refs]
            changes = state_changes(context, body, names)
            if not changes:
                continue
            first_change = changes[0]
            check = _first_signer_check(context, body, names)
            if check is not None and check.start_byte < first_change.start_byte:
                continue
            fn_name = function_name(context, func)
            findings.append(
                self.finding(
                    context,
                    enclosing_statement(first_change, stop=body.parent),
                    f"Function {fn_name} changes state through "
                    f"{', '.join(repr(n) for n in names)} without verifying a signer first",
                )
            )
        return findings
