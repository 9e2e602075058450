# Reinitialization: initializer functions that write state without checking an initialized flag.

from __future__ import annotations

import re
from typing import Optional

from tree_sitter import Node as TSNode

from solguard.context import FileContext, enclosing_statement, function_body, function_name, walk_body
from solguard.findings.models import Severity, Vulnerability
from solguard.rules.accounts import callee_name, check_nodes, iter_calls
from solguard.rules.base import Rule

_INITIALIZER_NAME_RE = re.compile(r"(?:^|_)(?:init|initialize|initialise)(?:_|$)", re.IGNORECASE)
_INIT_FLAG_RE = re.compile(r"initiali[sz]ed|discriminator", re.IGNORECASE)

# Calls that write serialized state into an account buffer.
STATE_WRITERS = frozenset(
    {"serialize", "try_serialize", "pack", "pack_into_slice", "copy_from_slice", "write_all"}
)


def is_initializer_name(name: str) -> bool:
    return _INITIALIZER_NAME_RE.search(name) is not None


def _first_write(context: FileContext, body: TSNode) -> Optional[TSNode]:
    for node in walk_body(body):
        if node.type == "call_expression" and callee_name(context, node) in STATE_WRITERS:
            return node
        if node.type == "assignment_expression":
            left = context.text(node.child_by_field_name("left"))
            if _INIT_FLAG_RE.search(left) or "borrow_mut" in left:
                return node
    return None


def _has_prior_check(context: FileContext, body: TSNode, write: TSNode) -> bool:
    for check in check_nodes(context, body):
        if check.start_byte < write.start_byte and _INIT_FLAG_RE.search(context.text(check)):
            return True
    for call in iter_calls(body):
        if call.start_byte < write.start_byte and callee_name(context, call) == "is_initialized":
            return True
    return False


class Reinitialization(Rule):
    """
    Flags initializer functions (`initialize`, `init_*`, `*_init`) that write
    account state without first checking an initialized flag or discriminator.
    """

    id = "reinitialization"
    name = "Reinitialization"
    description = "Account can be re-initialized because its initialized state is not checked"
    severity = Severity.HIGH
    recommendation = (
        "Check the account's initialized flag or discriminator before writing initial state, e.g. "
        "`if state.is_initialized { return Err(ProgramError::AccountAlreadyInitialized); }`, "
        "or use Anchor's `#[account(init)]` constraint."
    )

    def analyze(self, context: FileContext) -> list[Vulnerability]:
        findings: list[Vulnerability] = []
        for func in context.functions():
            fn_name = function_name(context, func)
            if not is_initializer_name(fn_name):
                continue
            body = function_body(func)
            if body is None:
                continue
            write = _first_write(context, body)
            if write is None or _has_prior_check(context, body, write):
                continue
            findings.append(
                self.finding(
                    context,
                    enclosing_statement(write, stop=func),
                    f"Initializer {fn_name} writes account state without checking whether "
                    "the account is already initialized",
                )
            )
        return findings
