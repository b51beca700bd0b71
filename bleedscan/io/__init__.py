"""Catalog loading and source file input."""

from .catalog_loader import CatalogLoader, CatalogError
from .matcher_compiler import MatcherCompileError, compile_expression, lint_expression
from .source_reader import (
    SourceFile,
    FileReadError,
    TargetNotFoundError,
    discover_files,
    read_source,
    resolve_target,
)

__all__ = [
    "CatalogLoader",
    "CatalogError",
    "MatcherCompileError",
    "compile_expression",
    "lint_expression",
    "SourceFile",
    "FileReadError",
    "TargetNotFoundError",
    "discover_files",
    "read_source",
    "resolve_target",
]
