"""Tests for the file and directory analyzer."""

import shutil
import threading
from pathlib import Path

import pytest

from solguard.analyzer import PARSE_ERROR_TITLE, Analyzer
from solguard.config import Config
from solguard.errors import LocatorError, ParseError
from solguard.findings.models import Severity
from solguard.rules.custom import CustomRule, CustomRuleEngine

SAMPLE = Path(__file__).parent / "sample.rs"
WITHDRAW = "fn withdraw(account: AccountInfo) { account.lamports -= amount; }\n"
BROKEN = "fn broken( {\n"


def _program_dir(tmp_path: Path) -> Path:
    root = tmp_path / "program"
    (root / "src" / "instructions").mkdir(parents=True)
    shutil.copy(SAMPLE, root / "src" / "lib.rs")
    (root / "src" / "instructions" / "withdraw.rs").write_text(WITHDRAW)
    (root / "src" / "instructions" / "broken.rs").write_text(BROKEN)
    (root / "target" / "debug").mkdir(parents=True)
    (root / "target" / "debug" / "generated.rs").write_text(WITHDRAW)
    (root / "README.md").write_text("# program\n")
    return root


def test_analyze_file_withdraw(tmp_path):
    path = tmp_path / "withdraw.rs"
    path.write_text(WITHDRAW)
    report = Analyzer().analyze_file(path)
    ids = {v.rule_id for v in report.vulnerabilities}
    assert {"missing-owner-check", "missing-signer-check", "unchecked-arithmetic"} <= ids
    assert all(v.location.file == str(path) for v in report.vulnerabilities)
    assert report.warnings == []


def test_analyze_file_clean_sample():
    report = Analyzer().analyze_file(SAMPLE)
    assert report.vulnerabilities == []


def test_analyze_file_missing(tmp_path):
    with pytest.raises(LocatorError):
        Analyzer().analyze_file(tmp_path / "nope.rs")


def test_analyze_file_syntax_error(tmp_path):
    path = tmp_path / "broken.rs"
    path.write_text(BROKEN)
    with pytest.raises(ParseError) as excinfo:
        Analyzer().analyze_file(path)
    assert excinfo.value.path == str(path)


def test_analyze_source_in_memory():
    report = Analyzer().analyze_source(WITHDRAW.encode(), path="withdraw.rs")
    assert report.vulnerabilities
    assert report.vulnerabilities[0].location.file == "withdraw.rs"


def test_analyze_directory_skips_broken_file(tmp_path):
    root = _program_dir(tmp_path)
    report = Analyzer(Config(workers=1)).analyze_directory(root)

    assert len(report.warnings) == 1
    warning = report.warnings[0]
    assert warning.title == PARSE_ERROR_TITLE
    assert warning.location.file.endswith("broken.rs")
    assert (warning.location.line, warning.location.column) == (1, 1)

    files = {v.location.file for v in report.vulnerabilities}
    assert files == {str(root / "src" / "instructions" / "withdraw.rs")}


def test_analyze_directory_parallel_matches_serial(tmp_path):
    root = _program_dir(tmp_path)
    serial = Analyzer(Config(workers=1)).analyze_directory(root)
    parallel = Analyzer(Config(workers=4)).analyze_directory(root)
    assert serial == parallel


def test_analyze_directory_report_is_sorted(tmp_path):
    root = tmp_path / "src"
    root.mkdir()
    (root / "b.rs").write_text(WITHDRAW)
    (root / "a.rs").write_text(WITHDRAW)
    report = Analyzer(Config(workers=2)).analyze_directory(root)
    keys = [(v.location.file, v.location.line, v.location.column) for v in report.vulnerabilities]
    assert keys == sorted(keys)
    assert keys[0][0].endswith("a.rs")


def test_analyze_directory_cancelled_before_start(tmp_path):
    root = _program_dir(tmp_path)
    cancel = threading.Event()
    cancel.set()
    for workers in (1, 4):
        report = Analyzer(Config(workers=workers)).analyze_directory(root, cancel=cancel)
        assert report.is_clean


def test_analyze_directory_on_file(tmp_path):
    path = tmp_path / "withdraw.rs"
    path.write_text(WITHDRAW)
    with pytest.raises(LocatorError):
        Analyzer().analyze_directory(path)


def test_analyze_directory_missing(tmp_path):
    with pytest.raises(LocatorError):
        Analyzer().analyze_directory(tmp_path / "missing")


def test_analyze_path_dispatch(tmp_path):
    root = _program_dir(tmp_path)
    analyzer = Analyzer(Config(workers=1))
    assert analyzer.analyze_path(root).warnings
    single = analyzer.analyze_path(root / "src" / "instructions" / "withdraw.rs")
    assert single.vulnerabilities and not single.warnings


def test_custom_rules_included(tmp_path):
    path = tmp_path / "withdraw.rs"
    path.write_text(WITHDRAW)
    engine = CustomRuleEngine(
        [
            CustomRule(
                id="raw-lamports",
                name="Raw lamports access",
                pattern=r"\.lamports\s*-=",
                message="lamports modified directly",
                severity=Severity.LOW,
            )
        ]
    )
    report = Analyzer(custom_rules=engine).analyze_file(path)
    custom = [v for v in report.vulnerabilities if v.rule_id == "raw-lamports"]
    assert len(custom) == 1
    assert custom[0].severity == Severity.LOW
    assert custom[0].location.line == 1
    assert custom[0].title == "Raw lamports access"
