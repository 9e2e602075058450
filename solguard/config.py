from __future__ import annotations

"""
Scanner configuration: which rules are enabled and how a scan walks the tree.

This module is the single place that registers the built-in catalog and the
knobs the CLI and CI helpers can tune (worker count, extensions and
ignored directories).
"""

import os
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Set

from solguard.errors import ConfigError
from solguard.rules.base import Rule
from solguard.rules.ruleset import builtin_rules
from solguard.traversal import DEFAULT_IGNORE_DIRS, RUST_EXTENSIONS


def default_workers() -> int:
    return max(1, min(8, os.cpu_count() or 1))


@dataclass
class Config:
    """
    Scanner configuration.

    rules: built-in rules to run on every file.
    workers: thread pool size for directory scans (1 runs serially).
    extensions / ignore_dirs / follow_symlinks: directory walk settings.
    """

    rules: Sequence[Rule] = field(default_factory=builtin_rules)
    workers: int = field(default_factory=default_workers)
    extensions: tuple[str, ...] = RUST_EXTENSIONS
    ignore_dirs: Set[str] = field(default_factory=lambda: set(DEFAULT_IGNORE_DIRS))
    follow_symlinks: bool = False

    def __post_init__(self) -> None:
        if self.workers < 1:
            raise ConfigError(f"workers must be >= 1, got {self.workers}")


def get_default_config() -> Config:
    """
    Return the default configuration with the full built-in catalog.

    This is what the CLI uses unless flags narrow it down.
    """
    rules: List[Rule] = builtin_rules()
    return Config(rules=rules)


def get_enabled_rules(
    config: Config | None = None,
    only: Optional[Iterable[str]] = None,
) -> Sequence[Rule]:
    """
    Return the enabled rules from the given config (or default config).

    If only is given, keep just those rule ids; unknown ids raise ConfigError.
    """
    if config is None:
        config = get_default_config()
    if only is None:
        return config.rules
    wanted = list(dict.fromkeys(only))
    known = {rule.id: rule for rule in config.rules}
    unknown = [rule_id for rule_id in wanted if rule_id not in known]
    if unknown:
        raise ConfigError(
            f"Unknown rule id(s): {', '.join(unknown)} (known: {', '.join(sorted(known))})"
        )
    return [known[rule_id] for rule_id in wanted]
