# Sysvar spoofing: system variables read from caller-supplied accounts without checking their id.

from __future__ import annotations

import re
from typing import Optional

from tree_sitter import Node as TSNode

from solguard.context import FileContext, enclosing_statement, function_body, function_name
from solguard.findings.models import Severity, Vulnerability
from solguard.rules.accounts import (
    call_arguments,
    callee_name,
    check_nodes,
    iter_calls,
    mentions,
)
from solguard.rules.base import Rule

SYSVAR_TYPES = (
    "Clock",
    "Rent",
    "EpochSchedule",
    "EpochRewards",
    "Fees",
    "RecentBlockhashes",
    "SlotHashes",
    "SlotHistory",
    "StakeHistory",
    "LastRestartSlot",
    "Instructions",
)
_SYSVAR_RE = re.compile(rf"\b(?:{'|'.join(SYSVAR_TYPES)})\b")
_SYSVAR_ID_RE = re.compile(r"sysvar|check_id|\bid\s*\(\s*\)|::ID\b")
_IDENT_RE = re.compile(r"[A-Za-z_]\w*")

# Constructors that read a sysvar out of whatever account the caller passed.
ACCOUNT_READERS = frozenset({"from_account_info"})
# Raw decoders fed with an account's data buffer.
RAW_DECODERS = frozenset({"deserialize", "try_from_slice", "from_bytes", "unpack"})
# Instruction-introspection helpers that skip the sysvar id check.
UNCHECKED_INTROSPECTION = frozenset({"load_instruction_at", "load_current_index"})


def _source_account(context: FileContext, call: TSNode) -> Optional[str]:
    args = call_arguments(call)
    if not args:
        return None
    for ident in _IDENT_RE.findall(context.text(args[0])):
        if ident not in ("mut", "data", "borrow", "try_borrow_data"):
            return ident
    return None


def _sysvar_name(context: FileContext, call: TSNode) -> Optional[str]:
    match = _SYSVAR_RE.search(context.text(call.child_by_field_name("function")))
    return match.group(0) if match else None


def _id_checked(context: FileContext, body: TSNode, account: str) -> bool:
    for check in check_nodes(context, body):
        text = context.text(check)
        if mentions(text, account) and _SYSVAR_ID_RE.search(text):
            return True
    for call in iter_calls(body):
        if callee_name(context, call) == "check_id" and mentions(context.text(call), account):
            return True
    return False


class SysvarSpoofing(Rule):
    """
    Flags sysvars deserialized from caller-supplied accounts without an id
    check, and the unchecked instruction-introspection helpers.
    """

    id = "sysvar-spoofing"
    name = "Sysvar Spoofing"
    description = "System variable is read from an unverified caller-supplied account"
    severity = Severity.HIGH
    recommendation = (
        "Read sysvars through the runtime accessor (`Clock::get()?`, `Rent::get()?`), "
        "or verify the account key with `solana_program::sysvar::clock::check_id(account.key)` "
        "before deserializing. Use `load_instruction_at_checked` for instruction introspection."
    )

    def analyze(self, context: FileContext) -> list[Vulnerability]:
        findings: list[Vulnerability] = []
        for func in context.functions():
            body = function_body(func)
            if body is None:
                continue
            fn_name = function_name(context, func)
            for call in iter_calls(body):
                callee = callee_name(context, call)
                if callee in UNCHECKED_INTROSPECTION:
                    findings.append(
                        self.finding(
                            context,
                            enclosing_statement(call, stop=func),
                            f"Function {fn_name} calls {callee}, which does not verify the "
                            "instructions sysvar account id",
                        )
                    )
                    continue
                if callee not in ACCOUNT_READERS and callee not in RAW_DECODERS:
                    continue
                sysvar = _sysvar_name(context, call)
                if sysvar is None:
                    continue
                if callee in RAW_DECODERS and "data" not in context.text(call):
                    continue
                account = _source_account(context, call)
                if account is not None and _id_checked(context, body, account):
                    continue
                source = f"account '{account}'" if account else "a caller-supplied account"
                findings.append(
                    self.finding(
                        context,
                        enclosing_statement(call, stop=func),
                        f"{sysvar} sysvar is read from {source} in function {fn_name} "
                        "without verifying the sysvar id",
                    )
                )
        return findings
