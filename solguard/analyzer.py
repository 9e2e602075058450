"""
Analysis orchestration: locate sources, build syntax trees, run rules, build reports.

Each file is analyzed independently; a directory scan fans the files out to
a thread pool and merges the per-file results. Syntax errors and unreadable
files inside a directory become Warnings instead of aborting the scan.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from tree_sitter import Parser

from solguard.config import Config, get_default_config
from solguard.context import FileContext, create_context
from solguard.errors import LocatorError, ParseError
from solguard.findings.models import AnalysisReport, AnalysisWarning, Location, Vulnerability
from solguard.parser import create_parser, parse_source
from solguard.rules.custom import CustomRuleEngine
from solguard.rules.ruleset import RuleSet
from solguard.traversal import locate_sources

logger = logging.getLogger(__name__)

PARSE_ERROR_TITLE = "file skipped: parse error"
UNREADABLE_TITLE = "file skipped: unreadable"


@dataclass
class _FileResult:
    vulnerabilities: list[Vulnerability] = field(default_factory=list)
    warnings: list[AnalysisWarning] = field(default_factory=list)


def _skip_warning(title: str, path: Path, description: str, line: int = 1, column: int = 1) -> AnalysisWarning:
    return AnalysisWarning(
        title=title,
        description=description,
        location=Location(file=str(path), line=line, column=column),
    )


class Analyzer:
    """
    Runs the built-in catalog (and optionally a CustomRuleEngine) over files.

    The analyzer holds no per-scan state, so one instance can serve
    concurrent scans. Parsers are not thread-safe and are kept per thread.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        custom_rules: Optional[CustomRuleEngine] = None,
    ) -> None:
        self.config = config if config is not None else get_default_config()
        self.rule_set = RuleSet(self.config.rules)
        self.custom_rules = custom_rules
        self._local = threading.local()

    def _parser(self) -> Parser:
        parser = getattr(self._local, "parser", None)
        if parser is None:
            parser = create_parser()
            self._local.parser = parser
        return parser

    def _run_rules(self, context: FileContext) -> list[Vulnerability]:
        vulnerabilities = self.rule_set.analyze(context)
        if self.custom_rules is not None and len(self.custom_rules):
            content = context.source.decode("utf-8", errors="replace")
            matches = self.custom_rules.analyze_text(context.file, content)
            matches.extend(self.custom_rules.analyze_tree(context))
            vulnerabilities.extend(self.custom_rules.to_vulnerabilities(matches))
        return vulnerabilities

    def _scan_file(self, path: Path) -> _FileResult:
        """Analyze one file of a directory scan, turning failures into warnings."""
        try:
            context = create_context(path, parser=self._parser())
        except ParseError as e:
            logger.warning("Skipping %s: %s", path, e.diagnostic)
            return _FileResult(warnings=[_skip_warning(PARSE_ERROR_TITLE, path, e.diagnostic)])
        except LocatorError as e:
            logger.warning("Skipping %s: %s", path, e.reason)
            return _FileResult(warnings=[_skip_warning(UNREADABLE_TITLE, path, e.reason)])
        vulnerabilities = self._run_rules(context)
        logger.info("Analyzed %s: %d finding(s)", path, len(vulnerabilities))
        return _FileResult(vulnerabilities=vulnerabilities)

    def analyze_source(self, source: bytes, path: Path | str = "<memory>") -> AnalysisReport:
        """Analyze in-memory source; raises ParseError on syntax errors."""
        tree = parse_source(source, path=path, parser=self._parser())
        context = FileContext(path=path, source=source, tree=tree)
        return AnalysisReport(vulnerabilities=self._run_rules(context)).sorted()

    def analyze_file(self, path: Path) -> AnalysisReport:
        """
        Analyze a single file.

        Raises:
            LocatorError: path is missing, unreadable or a directory.
            ParseError: the file has syntax errors.
        """
        path = Path(path)
        if not path.exists():
            raise LocatorError(path)
        if not path.is_file():
            raise LocatorError(path, "not a file")
        context = create_context(path, parser=self._parser())
        vulnerabilities = self._run_rules(context)
        logger.info("Analyzed %s: %d finding(s)", path, len(vulnerabilities))
        return AnalysisReport(vulnerabilities=vulnerabilities).sorted()

    def analyze_directory(
        self,
        path: Path,
        cancel: Optional[threading.Event] = None,
    ) -> AnalysisReport:
        """
        Analyze every source file under path.

        Files that fail to parse or cannot be read yield one warning each and
        the scan continues. If cancel is set mid-scan, files not yet started
        are skipped and the partial report is returned.

        Raises:
            LocatorError: path does not exist or is not a directory.
        """
        path = Path(path)
        if path.exists() and not path.is_dir():
            raise LocatorError(path, "not a directory")
        files = locate_sources(
            path,
            extensions=self.config.extensions,
            ignore_dirs=self.config.ignore_dirs,
            follow_symlinks=self.config.follow_symlinks,
        )

        def scan(file_path: Path) -> Optional[_FileResult]:
            if cancel is not None and cancel.is_set():
                return None
            return self._scan_file(file_path)

        results: list[_FileResult] = []
        if self.config.workers <= 1 or len(files) <= 1:
            for file_path in files:
                result = scan(file_path)
                if result is None:
                    logger.info("Scan cancelled; %d file(s) analyzed", len(results))
                    break
                results.append(result)
        else:
            with ThreadPoolExecutor(max_workers=min(self.config.workers, len(files))) as executor:
                futures = [executor.submit(scan, file_path) for file_path in files]
                for future in as_completed(futures):
                    result = future.result()
                    if result is not None:
                        results.append(result)
            if cancel is not None and cancel.is_set():
                logger.info("Scan cancelled; %d of %d file(s) analyzed", len(results), len(files))

        vulnerabilities: list[Vulnerability] = []
        warnings: list[AnalysisWarning] = []
        for result in results:
            vulnerabilities.extend(result.vulnerabilities)
            warnings.extend(result.warnings)
        return AnalysisReport(vulnerabilities=vulnerabilities, warnings=warnings).sorted()

    def analyze_path(self, path: Path, cancel: Optional[threading.Event] = None) -> AnalysisReport:
        """Dispatch to analyze_directory or analyze_file based on what path is."""
        path = Path(path)
        if not path.exists():
            raise LocatorError(path)
        if path.is_dir():
            return self.analyze_directory(path, cancel=cancel)
        return self.analyze_file(path)
