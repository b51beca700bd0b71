"""Linting and compilation of externally supplied matching expressions.

Catalog expressions are untrusted input. Before compiling one with ``re`` the
linter rejects the shapes that make a backtracking engine run in exponential
time: an unbounded quantifier applied to a group that itself contains an
unbounded quantifier (``(a+)+``, ``(\\w*x)*``) and back-references. Together
with the per-file size ceiling this bounds matching time per file.
"""

from typing import List, Optional, Tuple
import re
import logging

logger = logging.getLogger(__name__)

_BRACE_QUANTIFIER = re.compile(r"\{(\d*)(,(\d*))?\}")


class MatcherCompileError(Exception):
    """A catalog matcher could not be linted or compiled."""
    pass


def _read_quantifier(expression: str, index: int) -> Tuple[Optional[bool], int]:
    """Read a quantifier starting at ``index``.

    Returns:
        Tuple of (unbounded flag or None when there is no quantifier, the
        index just past the quantifier)
    """
    if index >= len(expression):
        return None, index

    char = expression[index]
    if char in "*+":
        unbounded, end = True, index + 1
    elif char == "?":
        unbounded, end = False, index + 1
    elif char == "{":
        match = _BRACE_QUANTIFIER.match(expression, index)
        if not match or (not match.group(1) and not match.group(2)):
            return None, index
        unbounded = bool(match.group(2)) and not match.group(3)
        end = match.end()
    else:
        return None, index

    # Lazy or possessive suffix
    if end < len(expression) and expression[end] in "?+":
        end += 1
    return unbounded, end


def _skip_class(expression: str, index: int) -> int:
    """Return the index just past the character class opened at ``index``."""
    i = index + 1
    if i < len(expression) and expression[i] == "^":
        i += 1
    if i < len(expression) and expression[i] == "]":
        i += 1
    while i < len(expression):
        if expression[i] == "\\":
            i += 2
            continue
        if expression[i] == "]":
            return i + 1
        i += 1
    raise MatcherCompileError("unterminated character class")


def lint_expression(expression: str, max_length: int = 2000) -> None:
    """Reject expressions with catastrophic-backtracking shapes.

    Args:
        expression: Matching expression text
        max_length: Longest accepted expression

    Raises:
        MatcherCompileError: If the expression is rejected
    """
    if len(expression) > max_length:
        raise MatcherCompileError(
            f"expression longer than {max_length} characters"
        )

    # One frame per open group: does the group contain an unbounded repeat
    frames: List[bool] = [False]
    i = 0
    while i < len(expression):
        char = expression[i]

        if char == "\\":
            nxt = expression[i + 1:i + 2]
            if nxt.isdigit() and nxt != "0":
                raise MatcherCompileError("back-references are not allowed")
            if nxt == "g" and expression[i + 2:i + 3] == "<":
                raise MatcherCompileError("back-references are not allowed")
            i += 2
        elif char == "[":
            i = _skip_class(expression, i)
        elif char == "(":
            frames.append(False)
            i += 1
            if expression[i:i + 1] == "?":
                if expression[i:i + 3] == "?P=":
                    raise MatcherCompileError("back-references are not allowed")
                while i < len(expression) and expression[i] not in ":=!>)":
                    i += 1
                if i < len(expression) and expression[i] != ")":
                    i += 1
            continue
        elif char == ")":
            if len(frames) == 1:
                raise MatcherCompileError("unbalanced parenthesis")
            inner_unbounded = frames.pop()
            unbounded, end = _read_quantifier(expression, i + 1)
            if unbounded and inner_unbounded:
                raise MatcherCompileError(
                    "nested unbounded quantifier (catastrophic backtracking)"
                )
            frames[-1] = frames[-1] or inner_unbounded or bool(unbounded)
            i = end
            continue
        else:
            i += 1

        unbounded, end = _read_quantifier(expression, i)
        if unbounded:
            frames[-1] = True
        i = end

    if len(frames) != 1:
        raise MatcherCompileError("unbalanced parenthesis")


def compile_expression(
    expression: Optional[str],
    max_length: int = 2000
) -> "re.Pattern":
    """Lint and compile a catalog expression (case-insensitive).

    Raises:
        MatcherCompileError: If the expression is missing, rejected by the
            linter, or invalid
    """
    if not expression or not isinstance(expression, str):
        raise MatcherCompileError("missing matching expression")

    lint_expression(expression, max_length=max_length)

    try:
        return re.compile(expression, re.IGNORECASE)
    except re.error as e:
        raise MatcherCompileError(f"invalid expression: {e}")
