"""Small pure classifiers over file paths and contents.

Every keyword list is passed in from configuration; nothing here holds its
own allow or deny list.
"""

from functools import lru_cache
from pathlib import PurePosixPath
from typing import Iterable, Pattern, Tuple
import re

FENCED_BLOCK = re.compile(r"```[\s\S]*?```")


@lru_cache(maxsize=32)
def _word_pattern(keywords: Tuple[str, ...]) -> Pattern:
    alternatives = "|".join(re.escape(k) for k in keywords)
    return re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)


@lru_cache(maxsize=32)
def _any_pattern(patterns: Tuple[str, ...]) -> Tuple[Pattern, ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


def is_fixture_path(rel_path: str, fixture_directories: Iterable[str]) -> bool:
    """Whether the path is under a reserved malicious-fixture directory."""
    lower = rel_path.lower()
    return any(d.lower() in lower for d in fixture_directories)


def is_test_or_example(
    rel_path: str,
    content: str,
    fixture_directories: Iterable[str],
    path_keywords: Iterable[str],
    content_keywords: Iterable[str]
) -> bool:
    """Classify a file as test, example or demo content.

    Files under a fixture directory are never classified as such.
    """
    if is_fixture_path(rel_path, fixture_directories):
        return False

    lower = rel_path.lower()
    if any(k.lower() in lower for k in path_keywords):
        return True

    keywords = tuple(content_keywords)
    if keywords and _word_pattern(keywords).search(content):
        return True
    return False


def is_config_file(rel_path: str, config_patterns: Iterable[str]) -> bool:
    """Whether the path looks like a configuration file."""
    path = "/" + rel_path
    return any(p.search(path) for p in _any_pattern(tuple(config_patterns)))


def is_documentation(rel_path: str, documentation_extensions: Iterable[str]) -> bool:
    suffix = PurePosixPath(rel_path).suffix.lower()
    return suffix in {e.lower() for e in documentation_extensions}


def is_mostly_documentation(
    content: str,
    min_length: int = 1000,
    threshold: float = 0.2
) -> bool:
    """Long text whose fenced code blocks make up little of the content."""
    if len(content) <= min_length:
        return False
    code_length = sum(len(b) for b in FENCED_BLOCK.findall(content))
    return code_length / len(content) < threshold
