"""File-to-file dependency graph built from raw import/export text."""

from pathlib import PurePosixPath
from typing import Dict, List, Sequence, Set, Tuple
import posixpath
import re
import logging

from ..detection.safe_context import LineIndex
from ..io.source_reader import SourceFile
from ..models.analysis import ExportInfo, ImportInfo

logger = logging.getLogger(__name__)

ES_IMPORT = re.compile(
    r"""\bimport\s+(?:type\s+)?(?P<clause>[\w$*{}\s,]+?)\s+from\s*['"](?P<source>[^'"\n]+)['"]"""
)
SIDE_EFFECT_IMPORT = re.compile(r"""\bimport\s*['"](?P<source>[^'"\n]+)['"]""")
REEXPORT = re.compile(
    r"""\bexport\s*(?:\*(?:\s+as\s+[\w$]+)?|\{[^}]*\})\s*from\s*['"](?P<source>[^'"\n]+)['"]"""
)
REQUIRE = re.compile(r"""\brequire\s*\(\s*['"](?P<source>[^'"\n]+)['"]\s*\)""")
INDIRECT_REQUIRE = re.compile(r"""\brequire\s*\(\s*(?P<expr>[^'"`)\s][^)\n]*?)\s*\)""")
DYNAMIC_IMPORT = re.compile(r"""\bimport\s*\(\s*(?P<expr>[^)\n]*?)\s*\)""")
QUOTED = re.compile(r"""^['"`](?P<value>[^'"`]*)['"`]$""")

PY_IMPORT = re.compile(r"^[ \t]*import[ \t]+(?P<modules>[^\n#;]+)", re.MULTILINE)
PY_FROM_IMPORT = re.compile(
    r"^[ \t]*from[ \t]+(?P<source>\.*[\w.]*)[ \t]+import[ \t]+(?P<names>[^\n#;]+)",
    re.MULTILINE
)
PY_DYNAMIC_IMPORT = re.compile(r"""\b(?:__import__|import_module)\s*\(\s*(?P<expr>[^,)\n]*?)\s*[,)]""")

ES_EXPORT_CLAUSE = re.compile(r"\bexport\s*\{(?P<names>[^}]*)\}")
ES_EXPORT_DECL = re.compile(
    r"\bexport\s+(?:default\s+)?(?:(?:async\s+)?(?:class|function\*?|const|let|var)\s+)?(?P<name>[\w$]+)"
)
ES_EXPORT_ALL = re.compile(r"\bexport\s*\*")
MODULE_EXPORTS = re.compile(r"\bmodule\.exports\s*=\s*(?P<value>\{[^}]*\}|[\w$]+)")
EXPORTS_PROPERTY = re.compile(r"\b(?:module\.)?exports\.(?P<name>[\w$]+)\s*=")

PY_ALL = re.compile(r"^__all__\s*=\s*[\[(](?P<names>[^\])]*)[\])]", re.MULTILINE)
PY_TOP_LEVEL_DEF = re.compile(r"^(?:async[ \t]+)?(?:def|class)[ \t]+(?P<name>[A-Za-z]\w*)", re.MULTILINE)

DECLARATION_KEYWORDS = {"class", "function", "async", "const", "let", "var"}
INDEX_STEMS = ("index", "__init__")
SOURCE_EXTENSIONS = re.compile(r"\.(?:js|jsx|mjs|cjs|ts|tsx|py)$")


def strip_extension(path: str) -> str:
    return SOURCE_EXTENSIONS.sub("", path)


def extract_imports(content: str, suffix: str) -> List[ImportInfo]:
    """Extract import records from raw file text.

    Args:
        content: File snapshot
        suffix: Lower-case file extension

    Returns:
        Imports in order of appearance
    """
    lines = LineIndex(content)
    imports: List[Tuple[int, ImportInfo]] = []

    def add(match, source: str, kind: str, specifiers=None) -> None:
        imports.append((match.start(), ImportInfo(
            source=source,
            line=lines.line_of(match.start()),
            kind=kind,
            specifiers=specifiers or []
        )))

    if suffix == ".py":
        for match in PY_IMPORT.finditer(content):
            for module in match.group("modules").split(","):
                parts = module.split()
                if parts:
                    add(match, parts[0], "static", [parts[-1]])
        for match in PY_FROM_IMPORT.finditer(content):
            names = [n.split()[0] for n in match.group("names").strip("() \t").split(",") if n.split()]
            add(match, match.group("source"), "static", names)
        for match in PY_DYNAMIC_IMPORT.finditer(content):
            expr = match.group("expr")
            if expr:
                literal = QUOTED.match(expr)
                add(match, literal.group("value") if literal else expr, "dynamic")
    else:
        for match in ES_IMPORT.finditer(content):
            specifiers = re.findall(r"[\w$]+", match.group("clause"))
            add(match, match.group("source"), "static", [s for s in specifiers if s != "as"])
        for match in SIDE_EFFECT_IMPORT.finditer(content):
            add(match, match.group("source"), "static")
        for match in REEXPORT.finditer(content):
            add(match, match.group("source"), "static")
        for match in REQUIRE.finditer(content):
            add(match, match.group("source"), "require")
        for match in INDIRECT_REQUIRE.finditer(content):
            add(match, match.group("expr"), "indirect_require")
        for match in DYNAMIC_IMPORT.finditer(content):
            expr = match.group("expr")
            literal = QUOTED.match(expr)
            add(match, literal.group("value") if literal else expr, "dynamic")

    imports.sort(key=lambda item: item[0])
    return [info for _, info in imports]


def extract_exports(content: str, suffix: str) -> List[ExportInfo]:
    """Extract exported names from raw file text.

    Python modules export ``__all__`` when present, otherwise every public
    top-level function and class.
    """
    lines = LineIndex(content)
    exports: List[ExportInfo] = []

    if suffix == ".py":
        declared = PY_ALL.search(content)
        if declared:
            line = lines.line_of(declared.start())
            for name in re.findall(r"""['"]([\w.]+)['"]""", declared.group("names")):
                exports.append(ExportInfo(name=name, line=line, kind="all"))
        else:
            for match in PY_TOP_LEVEL_DEF.finditer(content):
                exports.append(ExportInfo(
                    name=match.group("name"), line=lines.line_of(match.start()), kind="named"
                ))
        return exports

    for match in ES_EXPORT_CLAUSE.finditer(content):
        line = lines.line_of(match.start())
        for entry in match.group("names").split(","):
            parts = entry.split()
            if parts:
                exports.append(ExportInfo(name=parts[-1], line=line, kind="named"))

    for match in ES_EXPORT_DECL.finditer(content):
        name = match.group("name")
        is_default = "default" in match.group(0).split()
        if name in DECLARATION_KEYWORDS or name == "default":
            name = "default"
        exports.append(ExportInfo(
            name=name,
            line=lines.line_of(match.start()),
            kind="default" if is_default else "named"
        ))

    for match in ES_EXPORT_ALL.finditer(content):
        exports.append(ExportInfo(name="*", line=lines.line_of(match.start()), kind="named"))

    for match in MODULE_EXPORTS.finditer(content):
        line = lines.line_of(match.start())
        value = match.group("value")
        if value.startswith("{"):
            for entry in value.strip("{} \t\n").split(","):
                key = entry.split(":")[0].strip().strip("'\"")
                if re.fullmatch(r"[\w$]+", key):
                    exports.append(ExportInfo(name=key, line=line, kind="commonjs"))
        else:
            exports.append(ExportInfo(name=value, line=line, kind="commonjs"))

    for match in EXPORTS_PROPERTY.finditer(content):
        exports.append(ExportInfo(
            name=match.group("name"), line=lines.line_of(match.start()), kind="commonjs"
        ))

    exports.sort(key=lambda e: e.line)
    return exports


def resolve_relative(importer: str, source: str, suffix: str) -> str:
    """Resolve a relative import source to a root-relative path without extension.

    Returns an empty string for non-relative sources.
    """
    base = posixpath.dirname(importer)

    if suffix == ".py":
        if not source.startswith("."):
            return ""
        level = len(source) - len(source.lstrip("."))
        for _ in range(level - 1):
            base = posixpath.dirname(base)
        module = source[level:].replace(".", "/")
        joined = posixpath.join(base, module) if module else posixpath.join(base, "__init__")
        return posixpath.normpath(joined)

    if not (source.startswith("./") or source.startswith("../")):
        return ""
    return strip_extension(posixpath.normpath(posixpath.join(base, source)))


class DependencyGraph:
    """Directed import edges between scanned files."""

    def __init__(self):
        self.imports: Dict[str, List[ImportInfo]] = {}
        self.exports: Dict[str, List[ExportInfo]] = {}
        self._edges: Dict[str, List[str]] = {}

    @classmethod
    def build(cls, sources: Sequence[SourceFile]) -> "DependencyGraph":
        """Extract imports and exports from every file and resolve edges.

        Args:
            sources: File snapshots of the run

        Returns:
            Populated DependencyGraph
        """
        graph = cls()
        suffixes = {}
        for source in sources:
            graph.imports[source.rel_path] = extract_imports(source.content, source.suffix)
            graph.exports[source.rel_path] = extract_exports(source.content, source.suffix)
            suffixes[source.rel_path] = source.suffix

        files = sorted(graph.imports)
        for importer in files:
            targets: Set[str] = set()
            for imported in graph.imports[importer]:
                for candidate in files:
                    if candidate != importer and graph._resolves_to(
                        importer, suffixes[importer], imported, candidate
                    ):
                        targets.add(candidate)
            if targets:
                graph._edges[importer] = sorted(targets)

        logger.info(f"Dependency graph built: {len(files)} files, {len(graph.edges())} edges")
        return graph

    def _resolves_to(self, importer: str, suffix: str, imported: ImportInfo, candidate: str) -> bool:
        source = imported.source.strip()
        if not source:
            return False

        candidate_base = strip_extension(candidate)
        resolved = resolve_relative(importer, source, suffix)
        if resolved:
            if candidate_base == resolved or any(
                candidate_base == f"{resolved}/{stem}" for stem in INDEX_STEMS
            ):
                return True
            if suffix != ".py":
                return False
            # from .pkg import module names a submodule of the package
            package = posixpath.dirname(resolved) if posixpath.basename(resolved) == "__init__" else resolved
            return any(
                candidate_base == posixpath.join(package, name) for name in imported.specifiers
            )

        if imported.kind == "indirect_require" or source.startswith(("/", "http:", "https:")):
            return False

        bare = strip_extension(source)
        if suffix == ".py":
            bare = bare.split(".")[-1]
        if PurePosixPath(candidate).stem == bare:
            return True

        exported_names = {
            e.name for e in self.exports.get(candidate, []) if e.name not in ("*", "default")
        }
        return bare in exported_names

    def targets(self, file_path: str) -> List[str]:
        """Files imported by ``file_path`` (sorted)."""
        return list(self._edges.get(file_path, []))

    def has_edge(self, source: str, target: str) -> bool:
        return target in self._edges.get(source, [])

    def connected(self, a: str, b: str) -> bool:
        """Whether an edge exists in either direction."""
        return self.has_edge(a, b) or self.has_edge(b, a)

    def edges(self) -> List[Tuple[str, str]]:
        """All edges as sorted (source, target) pairs."""
        return [(s, t) for s in sorted(self._edges) for t in self._edges[s]]
