"""tree-sitterとastを使用したソースコード構文解析モジュール。"""

from .syntax_parser import SyntaxParser, ParseError, UnsupportedLanguageError, AnalysisSettings
from .js_visitor import JsAnalysisVisitor
from .py_visitor import PyAnalysisVisitor
from .semantic_enhancer import SemanticEnhancer

__all__ = [
    "SyntaxParser",
    "ParseError",
    "UnsupportedLanguageError",
    "AnalysisSettings",
    "JsAnalysisVisitor",
    "PyAnalysisVisitor",
    "SemanticEnhancer",
]
