"""Tests for the custom rule engine."""

import json
import threading
from pathlib import Path

import pytest

from solguard.context import FileContext
from solguard.errors import CustomRuleError, InvalidPatternError
from solguard.findings.models import Severity
from solguard.parser import create_parser, parse_bytes
from solguard.rules.custom import CustomRule, CustomRuleEngine, RuleMatch, load_rules


def _rule(rule_id: str = "no-unsafe", pattern: str = r"unsafe\s*\{", **kwargs) -> CustomRule:
    data = {
        "id": rule_id,
        "name": "No unsafe blocks",
        "pattern": pattern,
        "message": "unsafe block in on-chain code",
        "severity": Severity.HIGH,
    }
    data.update(kwargs)
    return CustomRule(**data)


def _context(source: bytes, path: str = "lib.rs") -> FileContext:
    tree = parse_bytes(source, parser=create_parser())
    return FileContext(path=Path(path), source=source, tree=tree)


def test_unsafe_block_matched_on_second_line():
    engine = CustomRuleEngine([_rule()])
    content = "let p = data.as_ptr();\nlet v = unsafe { *p };\n"
    matches = engine.analyze_text("lib.rs", content)
    assert len(matches) == 1
    m = matches[0]
    assert m.line == 2
    assert m.column == content.splitlines()[1].index("unsafe") + 1
    assert m.severity == Severity.HIGH
    assert m.context == "let v = unsafe { *p };"
    assert m.file_path == "lib.rs"


def test_one_match_per_line_per_rule():
    engine = CustomRuleEngine([_rule()])
    matches = engine.analyze_text("lib.rs", "unsafe { a } unsafe { b }\n")
    assert len(matches) == 1
    assert matches[0].column == 1


def test_invalid_pattern_rejected_without_insert():
    engine = CustomRuleEngine()
    with pytest.raises(InvalidPatternError) as excinfo:
        engine.add(_rule(pattern="(unclosed"))
    assert excinfo.value.rule_id == "no-unsafe"
    assert len(engine) == 0
    assert "no-unsafe" not in engine


def test_add_remove_readd():
    engine = CustomRuleEngine()
    engine.add(_rule())
    assert "no-unsafe" in engine
    engine.remove("no-unsafe")
    assert "no-unsafe" not in engine
    assert engine.get("no-unsafe") is None
    assert engine.analyze_text("lib.rs", "unsafe {}") == []
    engine.add(_rule())
    assert len(engine) == 1


def test_remove_absent_is_noop():
    engine = CustomRuleEngine([_rule()])
    engine.remove("missing")
    assert len(engine) == 1


def test_add_same_id_overwrites():
    engine = CustomRuleEngine([_rule()])
    engine.add(_rule(pattern="transmute"))
    assert len(engine) == 1
    assert engine.get("no-unsafe").pattern == "transmute"


def test_update_with_invalid_pattern_keeps_previous_rule():
    engine = CustomRuleEngine([_rule()])
    with pytest.raises(InvalidPatternError):
        engine.update(_rule(pattern="[bad"))
    assert engine.get("no-unsafe").pattern == r"unsafe\s*\{"
    assert len(engine.analyze_text("lib.rs", "unsafe {}")) == 1


def test_update_refreshes_timestamp():
    original = _rule()
    engine = CustomRuleEngine([original])
    stored = engine.update(_rule(pattern="transmute", created_at=original.created_at))
    assert stored.updated_at >= original.updated_at
    assert engine.get("no-unsafe").pattern == "transmute"


def test_disabled_rule_kept_but_not_run():
    engine = CustomRuleEngine([_rule()])
    engine.disable("no-unsafe")
    assert "no-unsafe" in engine
    assert engine.analyze_text("lib.rs", "unsafe {}") == []
    assert engine.analyze_tree(_context(b"unsafe fn f() {}\n")) == []
    engine.enable("no-unsafe")
    assert engine.get("no-unsafe").pattern == r"unsafe\s*\{"
    assert len(engine.analyze_text("lib.rs", "unsafe {}")) == 1


def test_disable_unknown_rule_raises():
    with pytest.raises(KeyError):
        CustomRuleEngine().disable("missing")


def test_rules_sorted_by_id():
    engine = CustomRuleEngine([_rule("b"), _rule("a")])
    assert [r.id for r in engine.rules()] == ["a", "b"]


ADMIN_FN = b"""#[access_control(admin_only(&ctx))]
pub fn set_fee(ctx: Context<Admin>, fee: u64) -> Result<()> {
    Ok(())
}
"""


def test_tree_attribute_match():
    engine = CustomRuleEngine([_rule("access", pattern="access_control")])
    matches = engine.analyze_tree(_context(ADMIN_FN, "admin.rs"))
    assert len(matches) == 1
    m = matches[0]
    assert (m.line, m.column) == (1, 1)
    assert m.context == "#[access_control(admin_only(&ctx))]"
    assert m.file_path == "admin.rs"


def test_tree_attribute_match_short_circuits_signature():
    engine = CustomRuleEngine([_rule("both", pattern="access_control|set_fee")])
    matches = engine.analyze_tree(_context(ADMIN_FN))
    assert len(matches) == 1
    assert matches[0].line == 1


def test_tree_signature_match():
    engine = CustomRuleEngine([_rule("fee-param", pattern=r"fee:\s*u64")])
    matches = engine.analyze_tree(_context(ADMIN_FN))
    assert len(matches) == 1
    assert matches[0].line == 2
    assert matches[0].context.startswith("pub fn set_fee")


def test_match_to_vulnerability():
    rule = _rule(description="Avoid unsafe")
    match = RuleMatch(
        rule_id=rule.id,
        file_path="lib.rs",
        line=3,
        column=9,
        message=rule.message,
        severity=rule.severity,
        context="    let v = unsafe { x };",
    )
    vuln = match.to_vulnerability(rule)
    assert vuln.rule_id == "no-unsafe"
    assert vuln.title == "No unsafe blocks"
    assert vuln.location.line == 3
    assert vuln.location.snippet == "let v = unsafe { x };"
    assert vuln.recommendation == "Avoid unsafe"


def test_load_rules(tmp_path):
    path = tmp_path / "rules.json"
    path.write_text(
        json.dumps(
            [
                {
                    "id": "no-unwrap",
                    "name": "No unwrap",
                    "pattern": r"\.unwrap\(\)",
                    "message": "unwrap can panic",
                    "severity": "Low",
                }
            ]
        )
    )
    rules = load_rules(path)
    assert len(rules) == 1
    assert rules[0].severity == Severity.LOW
    assert rules[0].enabled is True


def test_load_rules_missing_key(tmp_path):
    path = tmp_path / "rules.json"
    path.write_text(json.dumps([{"id": "x", "name": "x", "message": "m"}]))
    with pytest.raises(CustomRuleError, match="pattern"):
        load_rules(path)


def test_load_rules_missing_file(tmp_path):
    with pytest.raises(CustomRuleError):
        load_rules(tmp_path / "nope.json")


def test_concurrent_updates_and_reads():
    engine = CustomRuleEngine()
    errors: list[Exception] = []
    stop = threading.Event()

    def writer():
        i = 0
        while not stop.is_set():
            engine.add(_rule(f"r{i % 5}"))
            engine.remove(f"r{(i + 2) % 5}")
            i += 1

    def reader():
        try:
            for _ in range(200):
                for m in engine.analyze_text("lib.rs", "unsafe {}\n"):
                    assert m.rule_id.startswith("r")
        except Exception as e:  # pragma: no cover - surfaced below
            errors.append(e)

    t = threading.Thread(target=writer)
    t.start()
    readers = [threading.Thread(target=reader) for _ in range(3)]
    for r in readers:
        r.start()
    for r in readers:
        r.join()
    stop.set()
    t.join()
    assert errors == []


def test_line_numbers_count_only_line_feeds():
    engine = CustomRuleEngine([_rule()])
    matches = engine.analyze_text("lib.rs", "fn a() {}\x0c\r\nunsafe { }\r\n")
    assert [m.line for m in matches] == [2]
    assert matches[0].context == "unsafe { }"
