# Per-file analysis context: store file path, source code, AST, and helper methods.
# Handles reading/parsing Rust files, error reporting for unreadable/malformed files,
# and logging of node/function counts so ASTs are ready for rules.

import logging
from pathlib import Path
from typing import Iterator, Optional

from tree_sitter import Node as TSNode
from tree_sitter import Parser, Tree

from solguard.errors import LocatorError
from solguard.parser import create_parser, parse_source

logger = logging.getLogger(__name__)

# Nodes that may sit between a function and the attributes written above it.
_COMMENT_TYPES = frozenset({"line_comment", "block_comment"})


def walk(node: TSNode) -> Iterator[TSNode]:
    """Yield every descendant of node in document order (DFS), node included."""
    yield node
    for child in node.children:
        yield from walk(child)


def walk_body(node: TSNode) -> Iterator[TSNode]:
    """
    Like walk(), but does not descend into nested function items.

    A `fn` declared inside another function is analyzed as its own function,
    so rules walking the outer body must not see its statements.
    """
    yield node
    for child in node.children:
        if child.type == "function_item":
            continue
        yield from walk_body(child)


def _count_nodes(node: TSNode) -> int:
    """Count all descendants of node (including node itself)."""
    count = 1
    for child in node.children:
        count += _count_nodes(child)
    return count


def iter_functions(root: TSNode) -> Iterator[TSNode]:
    """
    Yield every function_item under root in document order.

    Covers free functions, functions inside `mod` blocks (Anchor's
    `#[program]` module) and methods inside `impl` blocks.
    """
    for node in walk(root):
        if node.type == "function_item":
            yield node


def count_tree_stats(root: TSNode) -> tuple[int, int]:
    """
    Return (total node count, function definition count) for the tree.

    Useful for logging how much was parsed (nodes and functions).
    """
    return _count_nodes(root), sum(1 for _ in iter_functions(root))


class FileContext:
    """
    Per-file state for static analysis: path, raw source bytes, and AST.

    This is the syntax tree every rule receives. Rules use context.path,
    context.source and context.tree; helpers below turn nodes into text and
    1-based positions. A context is built once per file and never mutated.
    """

    __slots__ = ("_path", "_source", "_tree")

    def __init__(self, path: Path | str, source: bytes, tree: Tree) -> None:
        self._path = Path(path)
        self._source = source
        self._tree = tree

    @property
    def path(self) -> Path:
        return self._path

    @property
    def source(self) -> bytes:
        return self._source

    @property
    def tree(self) -> Tree:
        return self._tree

    @property
    def root_node(self) -> TSNode:
        """Convenience access to the AST root."""
        return self._tree.root_node

    @property
    def file(self) -> str:
        """Path as reported in finding locations."""
        return str(self._path)

    def text(self, node: Optional[TSNode]) -> str:
        """Source text of node, or "" for None."""
        if node is None:
            return ""
        return get_source_span(self, node)

    def functions(self) -> Iterator[TSNode]:
        return iter_functions(self.root_node)


def get_source_span(context: FileContext, node: TSNode) -> str:
    """
    Return the substring of context.source for the given node's byte range.

    Decodes with errors="replace" so bad UTF-8 does not crash.
    """
    return context.source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")


def get_line_col(node: TSNode, one_based: bool = True) -> tuple[int, int]:
    """
    Return (line, column) for the node's start position.

    Tree-sitter uses 0-based (row, col). If one_based=True (default),
    returns 1-based line and column for display/SARIF.
    """
    row, col = node.start_point
    if one_based:
        return row + 1, col + 1
    return row, col


def get_end_line_col(node: TSNode) -> tuple[int, int]:
    """1-based (line, column) of the node's end position."""
    row, col = node.end_point
    return row + 1, col + 1


def function_name(context: FileContext, func: TSNode) -> str:
    return context.text(func.child_by_field_name("name"))


def function_body(func: TSNode) -> Optional[TSNode]:
    return func.child_by_field_name("body")


def function_parameters(func: TSNode) -> list[TSNode]:
    """Named `parameter` nodes of a function (self parameters excluded)."""
    params = func.child_by_field_name("parameters")
    if params is None:
        return []
    return [c for c in params.named_children if c.type == "parameter"]


def function_attributes(func: TSNode) -> list[TSNode]:
    """
    Return the attribute_item nodes written directly above func, in source order.

    Tree-sitter-rust attaches outer attributes as preceding siblings, not
    children, so walk backwards over siblings skipping comments.
    """
    attrs: list[TSNode] = []
    sibling = func.prev_sibling
    while sibling is not None and (
        sibling.type == "attribute_item" or sibling.type in _COMMENT_TYPES
    ):
        if sibling.type == "attribute_item":
            attrs.append(sibling)
        sibling = sibling.prev_sibling
    attrs.reverse()
    return attrs


def function_signature(context: FileContext, func: TSNode) -> str:
    """Function text from its start up to (not including) the body block."""
    body = function_body(func)
    end = body.start_byte if body is not None else func.end_byte
    raw = context.source[func.start_byte : end].decode("utf-8", errors="replace")
    return " ".join(raw.split())


def enclosing_statement(node: TSNode, stop: Optional[TSNode] = None) -> TSNode:
    """
    Return the statement-level ancestor of node: the child of the nearest
    enclosing block. Falls back to node itself when there is none.
    """
    current = node
    while current.parent is not None and current.parent != stop:
        if current.parent.type == "block":
            return current
        current = current.parent
    return node


def create_context(
    path: Path,
    parser: Optional[Parser] = None,
) -> FileContext:
    """
    Read a Rust file and parse it into a FileContext (path, source, AST).

    - Unreadable file (permission, missing): raises LocatorError.
    - Malformed Rust (syntax errors): raises ParseError with a diagnostic.
    - Success: returns FileContext and logs node count and function count.
    """
    if parser is None:
        parser = create_parser()

    try:
        source = path.read_bytes()
    except OSError as e:
        logger.error("Failed to read file %s: %s", path, e)
        raise LocatorError(path, f"unreadable ({e.strerror or e})") from e

    tree = parse_source(source, path=path, parser=parser)

    node_count, func_count = count_tree_stats(tree.root_node)
    logger.info("Parsed %s: %d nodes, %d function(s)", path, node_count, func_count)

    return FileContext(path=path, source=source, tree=tree)
