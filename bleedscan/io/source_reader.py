"""Candidate file discovery and snapshot reading."""

from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path, PurePosixPath
from typing import List, Optional
import os
import logging

logger = logging.getLogger(__name__)


class TargetNotFoundError(Exception):
    """The scan target path does not exist."""
    pass


class FileReadError(Exception):
    """A candidate file could not be read."""
    pass


@dataclass(frozen=True)
class SourceFile:
    """Snapshot of a file's content used by every stage of one run."""
    path: str
    rel_path: str
    content: str
    size: int

    @property
    def name(self) -> str:
        return PurePosixPath(self.rel_path).name

    @property
    def directory(self) -> str:
        return str(PurePosixPath(self.rel_path).parent)

    @property
    def suffix(self) -> str:
        return PurePosixPath(self.rel_path).suffix.lower()


def resolve_target(target: str) -> Path:
    """Resolve the scan target to an absolute path.

    Raises:
        TargetNotFoundError: If the path does not exist
    """
    resolved = Path(target).expanduser().resolve()
    if not resolved.exists():
        raise TargetNotFoundError(f"Path not found: {resolved}")
    return resolved


def glob_match(rel_path: str, pattern: str) -> bool:
    """Match a root-relative POSIX path against a glob.

    A leading ``**/`` also matches files at the root, so ``**/*.js`` matches
    ``a.js`` as well as ``lib/a.js``.
    """
    if fnmatchcase(rel_path, pattern):
        return True
    while pattern.startswith("**/"):
        pattern = pattern[3:]
        if fnmatchcase(rel_path, pattern):
            return True
    return False


def discover_files(
    root: Path,
    include_patterns: List[str],
    exclude_patterns: List[str]
) -> List[Path]:
    """Find candidate files under the scan root.

    Args:
        root: Resolved scan target (file or directory)
        include_patterns: Globs a file must match at least one of
        exclude_patterns: Globs that remove a file

    Returns:
        Sorted list of file paths
    """
    if root.is_file():
        return [root]

    files = []
    for path in root.rglob("*"):
        if not path.is_file():
            continue
        rel_path = path.relative_to(root).as_posix()
        if not any(glob_match(rel_path, p) for p in include_patterns):
            continue
        if any(glob_match(rel_path, p) for p in exclude_patterns):
            continue
        files.append(path)

    files = sorted(set(files))
    logger.debug(f"Found {len(files)} candidate files under {root}")
    return files


def relative_path(path: Path, root: Path) -> str:
    """Root-relative POSIX path; a file target is relative to its parent."""
    base = root.parent if root.is_file() else root
    return path.relative_to(base).as_posix()


def read_source(path: Path, root: Path, max_size: int) -> Optional[SourceFile]:
    """Read a file snapshot.

    Args:
        path: File to read
        root: Scan root the relative path is computed against
        max_size: Size ceiling in bytes

    Returns:
        SourceFile, or None when the file exceeds the size ceiling

    Raises:
        FileReadError: If the file cannot be read
    """
    try:
        size = path.stat().st_size
        if size > max_size:
            logger.debug(f"Skipping {path}: {size} bytes exceeds {max_size}")
            return None

        with open(path, "r", encoding="utf-8", errors="replace") as f:
            content = f.read()
    except OSError as e:
        raise FileReadError(f"Failed to read {path}: {e}")

    return SourceFile(
        path=str(path),
        rel_path=relative_path(path, root),
        content=content,
        size=size
    )


def find_installed_plugins_dir() -> Optional[Path]:
    """Locate the installed agent plugins directory, if any."""
    home = Path(os.path.expanduser("~"))
    candidates = [
        home / ".claude" / "plugins",
        home / ".claude-plugins",
        home / ".config" / "claude" / "plugins",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None
