# Shared AST helpers for account-model rules: account references, checks and state changes.

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

from tree_sitter import Node as TSNode

from solguard.context import FileContext, function_body, function_parameters, walk_body

# Parameter types that hand the program a raw, unvalidated account.
_ACCOUNT_TYPE_RE = re.compile(
    r"^&?\s*(?:'\w+\s+)?(?:mut\s+)?(?:[A-Za-z_]\w*::)*(?:AccountInfo|UncheckedAccount)\b"
)
_BINDING_RE = re.compile(r"^(?:ref\s+)?(?:mut\s+)?([A-Za-z_]\w*)$")
_NEXT_ACCOUNT_RE = re.compile(r"\bnext_account_info\s*\(")
_LAST_SEGMENT_RE = re.compile(r"([A-Za-z_]\w*)\s*$")
_TURBOFISH_RE = re.compile(r"::\s*<[^>]*>")

# Macros whose arguments act as a guard.
CHECK_MACROS = frozenset(
    {
        "assert",
        "assert_eq",
        "assert_ne",
        "debug_assert",
        "debug_assert_eq",
        "debug_assert_ne",
        "require",
        "require_eq",
        "require_neq",
        "require_keys_eq",
        "require_keys_neq",
        "require_gt",
        "require_gte",
        "check",
    }
)

COMPARISON_OPERATORS = frozenset({"==", "!="})

CPI_FUNCTIONS = frozenset({"invoke", "invoke_signed", "invoke_unchecked", "invoke_signed_unchecked"})

# Methods that write account data or lamports when called on an account.
MUTATING_METHODS = frozenset(
    {
        "borrow_mut",
        "try_borrow_mut_data",
        "try_borrow_mut_lamports",
        "serialize",
        "try_serialize",
        "pack",
        "pack_into_slice",
        "realloc",
        "assign",
    }
)


@dataclass(frozen=True)
class AccountRef:
    """A raw account handle visible inside a function body."""

    name: str
    node: TSNode
    kind: str  # "parameter" or "binding"


def _binding_name(context: FileContext, pattern: Optional[TSNode]) -> Optional[str]:
    match = _BINDING_RE.match(context.text(pattern).strip())
    if match is None or match.group(1) == "_":
        return None
    return match.group(1)


def is_account_type(type_text: str) -> bool:
    return _ACCOUNT_TYPE_RE.match(" ".join(type_text.split())) is not None


def account_references(context: FileContext, func: TSNode) -> list[AccountRef]:
    """
    Return the account references of func, parameters first, then bindings.

    Parameters typed `AccountInfo`/`UncheckedAccount` (behind any reference or
    lifetime) and locals bound from `next_account_info(...)` both count.
    """
    refs: list[AccountRef] = []
    seen: set[str] = set()
    for param in function_parameters(func):
        if not is_account_type(context.text(param.child_by_field_name("type"))):
            continue
        name = _binding_name(context, param.child_by_field_name("pattern"))
        if name and name not in seen:
            seen.add(name)
            refs.append(AccountRef(name=name, node=param, kind="parameter"))

    body = function_body(func)
    if body is None:
        return refs
    for node in walk_body(body):
        if node.type != "let_declaration":
            continue
        value = node.child_by_field_name("value")
        if value is None or not _NEXT_ACCOUNT_RE.search(context.text(value)):
            continue
        name = _binding_name(context, node.child_by_field_name("pattern"))
        if name and name not in seen:
            seen.add(name)
            refs.append(AccountRef(name=name, node=node, kind="binding"))
    return refs


def mentions(text: str, name: str) -> bool:
    """True if identifier name occurs in text as a whole word."""
    return re.search(rf"(?<!\w){re.escape(name)}(?!\w)", text) is not None


def mentions_field(text: str, name: str, field: str) -> bool:
    """True if text contains `name.field` (spacing tolerated, `name.field()` included)."""
    pattern = rf"(?<!\w){re.escape(name)}\s*\.\s*{re.escape(field)}(?!\w)"
    return re.search(pattern, text) is not None


def callee_name(context: FileContext, call: TSNode) -> str:
    """
    Last path segment of the called function or method.

    `invoke(..)` -> "invoke", `Pubkey::find_program_address(..)` ->
    "find_program_address", `acc.try_borrow_mut_data()` -> "try_borrow_mut_data".
    """
    func = call.child_by_field_name("function")
    if func is None:
        return ""
    if func.type == "field_expression":
        return context.text(func.child_by_field_name("field")).strip()
    text = _TURBOFISH_RE.sub("", context.text(func))
    match = _LAST_SEGMENT_RE.search(text)
    return match.group(1) if match else ""


def callee_path(context: FileContext, call: TSNode) -> str:
    """Full text of the called expression with whitespace removed."""
    return "".join(context.text(call.child_by_field_name("function")).split())


def call_receiver(call: TSNode) -> Optional[TSNode]:
    """Receiver of a method call (`acc` in `acc.method()`), else None."""
    func = call.child_by_field_name("function")
    if func is None or func.type != "field_expression":
        return None
    return func.child_by_field_name("value")


def call_arguments(call: TSNode) -> list[TSNode]:
    args = call.child_by_field_name("arguments")
    if args is None:
        return []
    return [c for c in args.named_children if c.type not in ("line_comment", "block_comment")]


def macro_name(context: FileContext, node: TSNode) -> str:
    text = context.text(node.child_by_field_name("macro"))
    match = _LAST_SEGMENT_RE.search(text)
    return match.group(1) if match else ""


def iter_calls(scope: TSNode) -> Iterator[TSNode]:
    for node in walk_body(scope):
        if node.type == "call_expression":
            yield node


def check_nodes(context: FileContext, scope: TSNode) -> list[TSNode]:
    """
    Return guard-like nodes under scope in document order.

    Equality comparisons, `.eq()`/`.ne()` calls, `if` conditions, `!`
    negations and check macros (`require!`, `assert_eq!`, ...). Macro
    bodies are not parsed by tree-sitter, so callers match their text.
    """
    found: list[TSNode] = []
    for node in walk_body(scope):
        kind = node.type
        if kind == "binary_expression":
            op = node.child_by_field_name("operator")
            if op is not None and op.type in COMPARISON_OPERATORS:
                found.append(node)
        elif kind == "call_expression":
            if call_receiver(node) is not None and callee_name(context, node) in ("eq", "ne"):
                found.append(node)
        elif kind == "macro_invocation":
            if macro_name(context, node) in CHECK_MACROS:
                found.append(node)
        elif kind in ("if_expression", "while_expression"):
            cond = node.child_by_field_name("condition")
            if cond is not None:
                found.append(cond)
        elif kind == "unary_expression":
            if context.text(node).lstrip().startswith("!"):
                found.append(node)
    return found


def is_state_change(context: FileContext, node: TSNode, account_names: Iterable[str]) -> bool:
    """
    True if node writes on-chain state through one of account_names.

    Assignments into an account (`**acc.lamports.borrow_mut() -= x`,
    `acc.data = ..`), CPI calls, and mutating data/lamport methods on an
    account all count.
    """
    names = tuple(account_names)
    if node.type in ("assignment_expression", "compound_assignment_expr"):
        left = context.text(node.child_by_field_name("left"))
        return "borrow_mut" in left or any(mentions(left, n) for n in names)
    if node.type == "call_expression":
        callee = callee_name(context, node)
        if callee in CPI_FUNCTIONS:
            return True
        if callee in MUTATING_METHODS:
            return any(mentions(context.text(node), n) for n in names)
    return False


def state_changes(context: FileContext, scope: TSNode, account_names: Iterable[str]) -> list[TSNode]:
    names = tuple(account_names)
    return [node for node in walk_body(scope) if is_state_change(context, node, names)]


def is_ancestor(ancestor: TSNode, node: TSNode) -> bool:
    current = node.parent
    while current is not None:
        if current == ancestor:
            return True
        current = current.parent
    return False
