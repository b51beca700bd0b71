"""Cross-file dependency graph and correlation."""

from .dependency_graph import DependencyGraph, extract_exports, extract_imports
from .correlator import Correlator

__all__ = [
    "DependencyGraph",
    "extract_exports",
    "extract_imports",
    "Correlator",
]
