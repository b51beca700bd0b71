"""Lexical regions where a match is never reportable.

A single pass over the file records comment spans (and, for documentation
files, code excerpt spans). String and JavaScript regex literals are skipped
during the pass so that ``"https://host"``, ``"src/**/*.js"`` or ``/\\/*/g``
never open a comment.
"""

from bisect import bisect_left, bisect_right
from typing import List, Tuple

SLASH_COMMENT_SUFFIXES = {
    ".js", ".jsx", ".mjs", ".cjs", ".ts", ".tsx", ".java", ".c", ".cc", ".cpp",
    ".h", ".hpp", ".cs", ".go", ".rs", ".swift", ".kt", ".php", ".css", ".scss",
}
HASH_COMMENT_SUFFIXES = {
    ".py", ".sh", ".bash", ".zsh", ".rb", ".pl", ".yml", ".yaml", ".toml",
    ".ini", ".conf", ".ps1", ".r",
}
TRIPLE_QUOTE_SUFFIXES = {".py"}
REGEX_LITERAL_SUFFIXES = {".js", ".jsx", ".mjs", ".cjs", ".ts", ".tsx"}

# A slash after one of these starts a regex literal rather than a division
REGEX_PRECEDING_CHARS = set("(,=:[!&|?{};+-*%~^<>")
REGEX_PRECEDING_KEYWORDS = {
    "return", "typeof", "case", "do", "else", "in", "of", "void", "yield",
    "await", "delete", "instanceof", "new", "throw",
}


class LineIndex:
    """Maps character offsets to 1-indexed line and column numbers."""

    def __init__(self, content: str):
        self.content = content
        self._newlines = [i for i, c in enumerate(content) if c == "\n"]

    def line_of(self, offset: int) -> int:
        """1 + number of newline characters before ``offset``."""
        return bisect_left(self._newlines, offset) + 1

    def line_start(self, line: int) -> int:
        return 0 if line <= 1 else self._newlines[line - 2] + 1

    def column_of(self, offset: int) -> int:
        return offset - self.line_start(self.line_of(offset)) + 1

    def line_text(self, line: int) -> str:
        start = self.line_start(line)
        end = self._newlines[line - 1] if line - 1 < len(self._newlines) else len(self.content)
        return self.content[start:end]


def _regex_allowed(content: str, offset: int) -> bool:
    """Whether a slash at ``offset`` can open a regex literal."""
    j = offset - 1
    while j >= 0 and content[j] in " \t\r\n":
        j -= 1
    if j < 0 or content[j] in REGEX_PRECEDING_CHARS:
        return True

    k = j
    while k >= 0 and (content[k].isalnum() or content[k] in "_$"):
        k -= 1
    return content[k + 1:j + 1] in REGEX_PRECEDING_KEYWORDS


def _regex_literal_end(content: str, offset: int) -> int:
    """Offset just past the regex literal opened at ``offset``, or -1."""
    n = len(content)
    j = offset + 1
    in_class = False
    while j < n:
        char = content[j]
        if char == "\n":
            return -1
        if char == "\\":
            j += 2
            continue
        if char == "[":
            in_class = True
        elif char == "]":
            in_class = False
        elif char == "/" and not in_class:
            return j + 1
        j += 1
    return -1


def _scan_code_spans(
    content: str,
    slash_comments: bool,
    hash_comments: bool,
    triple_quotes: bool,
    regex_literals: bool = False
) -> List[Tuple[int, int]]:
    """Return comment spans of a source file in order."""
    spans: List[Tuple[int, int]] = []
    n = len(content)
    i = 0

    while i < n:
        char = content[i]

        if slash_comments and content.startswith("//", i):
            end = content.find("\n", i)
            end = n if end == -1 else end
            spans.append((i, end))
            i = end
            continue

        if slash_comments and content.startswith("/*", i):
            end = content.find("*/", i + 2)
            if end == -1:
                # Unterminated block comment runs to the end of the file
                spans.append((i, n))
                break
            spans.append((i, end + 2))
            i = end + 2
            continue

        if regex_literals and char == "/" and _regex_allowed(content, i):
            end = _regex_literal_end(content, i)
            if end != -1:
                i = end
                continue

        if hash_comments and char == "#" and (i == 0 or content[i - 1] not in "${"):
            end = content.find("\n", i)
            end = n if end == -1 else end
            spans.append((i, end))
            i = end
            continue

        if triple_quotes and content.startswith(('"""', "'''"), i):
            end = content.find(content[i:i + 3], i + 3)
            i = n if end == -1 else end + 3
            continue

        if char in "'\"`":
            j = i + 1
            while j < n:
                if content[j] == "\\":
                    j += 2
                    continue
                if content[j] == char:
                    break
                if content[j] == "\n" and char != "`":
                    break
                j += 1
            i = j + 1
            continue

        i += 1

    return spans


def _scan_document_spans(content: str) -> List[Tuple[int, int]]:
    """Return fenced/inline code excerpt and HTML comment spans."""
    spans: List[Tuple[int, int]] = []
    n = len(content)
    i = 0

    while i < n:
        if content.startswith("```", i):
            end = content.find("```", i + 3)
            end = n if end == -1 else end + 3
            spans.append((i, end))
            i = end
            continue

        if content.startswith("<!--", i):
            end = content.find("-->", i + 4)
            end = n if end == -1 else end + 3
            spans.append((i, end))
            i = end
            continue

        if content[i] == "`":
            end = content.find("`", i + 1)
            newline = content.find("\n", i + 1)
            if end != -1 and (newline == -1 or end < newline):
                spans.append((i, end + 1))
                i = end + 1
                continue

        i += 1

    return spans


class SafeContextIndex:
    """Answers whether an offset falls inside a safe context."""

    def __init__(
        self,
        content: str,
        spans: List[Tuple[int, int]],
        prefix_markers: Tuple[str, ...]
    ):
        self.content = content
        self._starts = [s for s, _ in spans]
        self._ends = [e for _, e in spans]
        self.prefix_markers = prefix_markers

    @classmethod
    def for_file(cls, content: str, suffix: str, documentation: bool) -> "SafeContextIndex":
        """Build the index for a file.

        Args:
            content: File snapshot
            suffix: Lower-cased file extension
            documentation: Whether the file is a documentation file

        Returns:
            SafeContextIndex
        """
        if documentation:
            return cls(content, _scan_document_spans(content), ())

        hash_comments = suffix in HASH_COMMENT_SUFFIXES
        slash_comments = suffix in SLASH_COMMENT_SUFFIXES or not hash_comments
        spans = _scan_code_spans(
            content,
            slash_comments=slash_comments,
            hash_comments=hash_comments,
            triple_quotes=suffix in TRIPLE_QUOTE_SUFFIXES,
            regex_literals=suffix in REGEX_LITERAL_SUFFIXES
        )
        markers = ("//", "*", "#") if slash_comments else ("#",)
        return cls(content, spans, markers)

    def in_span(self, offset: int) -> bool:
        idx = bisect_right(self._starts, offset) - 1
        return idx >= 0 and offset < self._ends[idx]

    def in_commented_line(self, offset: int) -> bool:
        """Whether the text before ``offset`` on its line starts a comment."""
        line_start = self.content.rfind("\n", 0, offset) + 1
        prefix = self.content[line_start:offset].strip()
        return bool(prefix) and prefix.startswith(self.prefix_markers)

    def is_safe(self, offset: int) -> bool:
        return self.in_span(offset) or self.in_commented_line(offset)
