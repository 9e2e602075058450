# Tree-sitter setup and AST parsing: parse Rust program source into AST trees.

import logging
from pathlib import Path
from typing import Optional

import tree_sitter
from tree_sitter import Language
from tree_sitter import Node as TSNode
from tree_sitter_rust import language as _rust_language_capsule

from solguard.errors import LocatorError, ParseError

logger = logging.getLogger(__name__)

# Rust language grammar: wrap tree-sitter-rust capsule for use with tree_sitter.Parser
_RUST_LANGUAGE = Language(_rust_language_capsule())


def get_rust_language() -> Language:
    """Return the Tree-sitter Language object for Rust."""
    return _RUST_LANGUAGE


def create_parser() -> tree_sitter.Parser:
    """Create and return a Tree-sitter Parser configured for Rust."""
    parser = tree_sitter.Parser(_RUST_LANGUAGE)
    return parser


def _first_error_node(node: TSNode) -> Optional[TSNode]:
    """Return the first ERROR or MISSING node in document order, or None."""
    if node.type == "ERROR" or node.is_missing:
        return node
    if not node.has_error:
        return None
    for child in node.children:
        found = _first_error_node(child)
        if found is not None:
            return found
    return None


def describe_syntax_error(tree: tree_sitter.Tree, source: bytes) -> str:
    """
    Build a human-readable diagnostic for a tree whose root has errors.

    Points at the first ERROR node (unexpected input) or MISSING node
    (token the parser had to invent), using 1-based line/column.
    """
    node = _first_error_node(tree.root_node)
    if node is None:
        return "syntax error"
    row, col = node.start_point
    if node.is_missing:
        return f"missing '{node.type}' at line {row + 1}, column {col + 1}"
    text = source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")
    text = text.strip().splitlines()[0] if text.strip() else ""
    if len(text) > 40:
        text = text[:37] + "..."
    near = f" near '{text}'" if text else ""
    return f"syntax error at line {row + 1}, column {col + 1}{near}"


def parse_bytes(
    source: bytes,
    parser: Optional[tree_sitter.Parser] = None,
) -> tree_sitter.Tree:
    """
    Parse Rust source bytes into an AST.

    Args:
        source: UTF-8 encoded Rust source code.
        parser: Optional parser instance; if None, a new one is created.

    Returns:
        The parse tree. Check tree.root_node.has_error for syntax errors;
        parse_source() turns those into ParseError.
    """
    if parser is None:
        parser = create_parser()
    tree = parser.parse(source)
    if tree.root_node.has_error:
        logger.warning(
            "Parse completed with errors: root=%s",
            tree.root_node.type,
        )
    else:
        logger.debug(
            "Parse succeeded: root=%s",
            tree.root_node.type,
        )
    return tree


def parse_source(
    source: bytes,
    path: Path | str = "<memory>",
    parser: Optional[tree_sitter.Parser] = None,
) -> tree_sitter.Tree:
    """
    Parse Rust source strictly: return the tree or raise ParseError.

    Tree-sitter always produces a tree, recovering around bad input with
    ERROR nodes; a tree containing any of those is rejected here so rules
    only ever see syntactically valid programs.
    """
    tree = parse_bytes(source, parser=parser)
    if tree.root_node.has_error:
        raise ParseError(path, describe_syntax_error(tree, source))
    return tree


def parse_file(path: Path, parser: Optional[tree_sitter.Parser] = None) -> tree_sitter.Tree:
    """
    Parse a Rust source file into an AST.

    Args:
        path: Path to the .rs file.
        parser: Optional parser instance; if None, a new one is created.

    Returns:
        The parse tree.

    Raises:
        LocatorError: the file could not be read.
        ParseError: the file contains syntax errors.
    """
    try:
        source = path.read_bytes()
    except OSError as e:
        logger.error("Failed to read file %s: %s", path, e)
        raise LocatorError(path, f"unreadable ({e.strerror or e})") from e
    tree = parse_source(source, path=path, parser=parser)
    logger.info("Parsed file %s", path)
    return tree
