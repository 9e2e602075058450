"""
File system traversal: locate Rust program sources for static analysis.

A target is either a single file (analyzed as-is) or a directory, which is
walked recursively collecting files with an analyzed extension (``.rs`` by
default) while skipping build output and VCS directories.

Typical usage:
    from pathlib import Path
    from solguard.traversal import find_source_files, locate_sources

    # Everything under a program workspace
    sources = find_source_files(Path("./programs"))

    # File or directory, whichever the user passed
    sources = locate_sources(Path(target))
"""

import logging
from pathlib import Path
from typing import Iterable, Optional, Set

from solguard.errors import LocatorError

logger = logging.getLogger(__name__)

RUST_EXTENSIONS: tuple[str, ...] = (".rs",)

# Default directories to ignore during traversal
DEFAULT_IGNORE_DIRS: Set[str] = {
    # Cargo / Anchor build output
    "target",
    ".anchor",
    # Version control
    ".git",
    ".svn",
    ".hg",
    # JS tooling that ships alongside Anchor workspaces
    "node_modules",
}


def is_source_file(path: Path, extensions: Iterable[str] = RUST_EXTENSIONS) -> bool:
    """
    Check if a file has one of the analyzed extensions (case-insensitive).

    Examples:
        >>> is_source_file(Path("lib.rs"))
        True
        >>> is_source_file(Path("Cargo.toml"))
        False
    """
    suffix = path.suffix.lower()
    return any(suffix == ext.lower() for ext in extensions)


def should_ignore_directory(dir_path: Path, ignore_dirs: Set[str]) -> bool:
    """
    Check if a directory should be ignored during traversal.

    Only the directory name is compared (case-sensitive), not the full path.
    """
    return dir_path.name in ignore_dirs


def find_source_files(
    root: Path,
    extensions: Iterable[str] = RUST_EXTENSIONS,
    ignore_dirs: Optional[Set[str]] = None,
    follow_symlinks: bool = False,
) -> list[Path]:
    """
    Recursively find all source files in a directory tree.

    Args:
        root: Root directory to start traversal from.
        extensions: File extensions to collect.
        ignore_dirs: Directory names to skip. If None, uses DEFAULT_IGNORE_DIRS.
        follow_symlinks: If True, follow symbolic links during traversal.
                         If False (default), symlinks are skipped.

    Returns:
        Matching files, sorted by path for deterministic ordering.

    Raises:
        LocatorError: If the root does not exist or is not a directory.

    Notes:
        Permission errors on subdirectories are logged and skipped; they do
        not stop traversal.
    """
    if ignore_dirs is None:
        ignore_dirs = DEFAULT_IGNORE_DIRS
    extensions = tuple(extensions)

    if not root.exists():
        logger.error("Root directory does not exist: %s", root)
        raise LocatorError(root)

    if not root.is_dir():
        logger.error("Root path is not a directory: %s", root)
        raise LocatorError(root, "not a directory")

    logger.info("Starting traversal from: %s", root)
    logger.debug(
        "Traversal config: extensions=%s, follow_symlinks=%s, ignore_dirs=%s",
        extensions,
        follow_symlinks,
        ignore_dirs,
    )

    collected_files: list[Path] = []

    def _walk_directory(current_dir: Path) -> None:
        """Recursive helper to walk directory tree."""
        try:
            entries = list(current_dir.iterdir())
        except PermissionError as e:
            logger.warning("Permission denied accessing directory %s: %s", current_dir, e)
            return
        except OSError as e:
            logger.warning("Error accessing directory %s: %s", current_dir, e)
            return

        for entry in entries:
            if entry.is_symlink() and not follow_symlinks:
                logger.debug("Skipping symlink: %s", entry)
                continue

            try:
                is_dir = entry.is_dir()
                is_file = not is_dir and entry.is_file()
            except OSError as e:
                logger.warning("Cannot stat %s: %s", entry, e)
                continue

            if is_dir:
                if should_ignore_directory(entry, ignore_dirs):
                    logger.debug("Ignoring directory: %s", entry)
                    continue
                _walk_directory(entry)
            elif is_file and is_source_file(entry, extensions):
                logger.debug("Found source file: %s", entry)
                collected_files.append(entry)

    _walk_directory(root)

    collected_files.sort()

    logger.info(
        "Traversal complete: found %d source file(s) in %s",
        len(collected_files),
        root,
    )

    return collected_files


def locate_sources(
    target: Path,
    extensions: Iterable[str] = RUST_EXTENSIONS,
    ignore_dirs: Optional[Set[str]] = None,
    follow_symlinks: bool = False,
) -> list[Path]:
    """
    Resolve a target path into the files to analyze.

    A single file is returned as-is, whatever its extension; a directory is
    walked with find_source_files().

    Raises:
        LocatorError: If target does not exist or is neither file nor directory.
    """
    if not target.exists():
        logger.error("Target path does not exist: %s", target)
        raise LocatorError(target)
    if target.is_file():
        return [target]
    if target.is_dir():
        files = find_source_files(
            target,
            extensions=extensions,
            ignore_dirs=ignore_dirs,
            follow_symlinks=follow_symlinks,
        )
        if not files:
            logger.warning("No source files found under %s", target)
        return files
    raise LocatorError(target, "neither a file nor a directory")
