"""Tests for tree-sitter Rust parser wrapper."""

import logging
from pathlib import Path

import pytest

from solguard.errors import LocatorError, ParseError
from solguard.parser import (
    create_parser,
    describe_syntax_error,
    get_rust_language,
    parse_bytes,
    parse_file,
    parse_source,
)


def test_get_rust_language_returns_language():
    """get_rust_language() returns a tree-sitter Language object."""
    lang = get_rust_language()
    assert lang is not None


def test_create_parser_returns_parser():
    """create_parser() returns a configured Parser."""
    parser = create_parser()
    assert parser is not None
    assert parser.language is not None


def test_parse_bytes_success(caplog):
    """Parsing valid Rust source succeeds and logs."""
    source = b"fn main() { let x = 1; }"
    parser = create_parser()
    with caplog.at_level(logging.DEBUG):
        tree = parse_bytes(source, parser=parser)
    assert tree.root_node is not None
    assert not tree.root_node.has_error
    assert tree.root_node.type == "source_file"
    assert "parse" in caplog.text.lower()


def test_parse_bytes_invalid_rust_logs_failure(caplog):
    """parse_bytes() keeps the recovered tree but logs the parse errors."""
    source = b"fn main( { let = ; "
    with caplog.at_level(logging.WARNING):
        tree = parse_bytes(source)
    assert tree.root_node.has_error
    assert "errors" in caplog.text


def test_parse_source_raises_parse_error_with_diagnostic():
    """parse_source() rejects broken source with file path and position."""
    with pytest.raises(ParseError) as excinfo:
        parse_source(b"fn main() {\n    let x = ;\n}\n", path="broken.rs")
    err = excinfo.value
    assert err.path == "broken.rs"
    assert "line" in err.diagnostic
    assert "broken.rs" in str(err)


def test_describe_syntax_error_points_at_line():
    source = b"fn ok() {}\nfn bad( {\n"
    tree = parse_bytes(source)
    message = describe_syntax_error(tree, source)
    assert "line" in message


def test_parse_file_sample_rs():
    """Parser parses the small Rust sample file successfully."""
    sample_path = Path(__file__).parent / "sample.rs"
    assert sample_path.exists(), "tests/sample.rs must exist"
    tree = parse_file(sample_path)
    assert not tree.root_node.has_error
    assert tree.root_node.type == "source_file"


def test_parse_file_nonexistent(caplog):
    """parse_file() on nonexistent path raises LocatorError and logs error."""
    with caplog.at_level(logging.ERROR):
        with pytest.raises(LocatorError):
            parse_file(Path("/nonexistent/lib.rs"))
    assert "Failed to read" in caplog.text
