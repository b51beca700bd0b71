"""tree-sitterとastを使用したソースコード構文解析のラッパー。"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional
import ast
import logging
import threading

import tree_sitter_javascript
import tree_sitter_typescript
from tree_sitter import Language, Parser

from ..models.analysis import FileAnalysis
from .js_visitor import JsAnalysisVisitor
from .py_visitor import PyAnalysisVisitor

logger = logging.getLogger(__name__)

# 拡張子と文法の対応
LANGUAGE_BY_SUFFIX: Dict[str, str] = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".tsx": "tsx",
    ".py": "python",
}


class ParseError(Exception):
    """構文解析時のエラー。"""
    pass


class UnsupportedLanguageError(ParseError):
    """解析対象外の言語。"""
    pass


@dataclass
class AnalysisSettings:
    """データフロー概要の抽出に使う識別子リスト。"""
    request_identifiers: List[str] = field(default_factory=lambda: ["req", "request"])
    network_functions: List[str] = field(default_factory=list)
    sensitive_functions: List[str] = field(default_factory=list)


class SyntaxParser:
    """ファイルを解析してFileAnalysisを構築するメインクラス。

    tree-sitterのParserはスレッド間で共有できないため、
    スレッドごとにParserを保持する。
    """

    def __init__(self, settings: Optional[AnalysisSettings] = None):
        """構文解析器を初期化する。

        Args:
            settings: データフロー抽出設定
        """
        self.settings = settings or AnalysisSettings()
        self._languages: Dict[str, Language] = {
            "javascript": Language(tree_sitter_javascript.language()),
            "typescript": Language(tree_sitter_typescript.language_typescript()),
            "tsx": Language(tree_sitter_typescript.language_tsx()),
        }
        self._local = threading.local()

        logger.debug(f"SyntaxParser initialized with {len(self._languages)} grammars")

    @staticmethod
    def language_for(suffix: str) -> Optional[str]:
        """拡張子から言語名を取得する。"""
        return LANGUAGE_BY_SUFFIX.get(suffix.lower())

    def _get_parser(self, language: str) -> Parser:
        """現在のスレッド用のParserを取得する。"""
        parsers = getattr(self._local, "parsers", None)
        if parsers is None:
            parsers = {}
            self._local.parsers = parsers

        if language not in parsers:
            parsers[language] = Parser(self._languages[language])
        return parsers[language]

    def parse_tree(self, content: str, language: str):
        """tree-sitterで構文木を取得する。

        Args:
            content: ソースコード
            language: 文法名（javascript, typescript, tsx）

        Returns:
            tree_sitter.Tree

        Raises:
            ParseError: 構文エラーを含む場合
        """
        tree = self._get_parser(language).parse(content.encode("utf-8"))
        if tree.root_node.has_error:
            raise ParseError(f"Syntax error in {language} source")
        return tree

    def parse_python(self, content: str) -> ast.Module:
        """Pythonソースをastでパースする。

        Raises:
            ParseError: パースに失敗した場合
        """
        try:
            return ast.parse(content)
        except (SyntaxError, ValueError, RecursionError) as e:
            raise ParseError(f"Failed to parse python source: {e}")

    def analyze(self, file_path: str, content: str, suffix: str) -> FileAnalysis:
        """ファイルの構造サマリーを構築する。

        Args:
            file_path: ファイルの相対パス
            content: ファイル内容
            suffix: 拡張子

        Returns:
            FileAnalysis

        Raises:
            ParseError: 非対応言語、またはパースに失敗した場合
        """
        language = self.language_for(suffix)
        if language is None:
            raise UnsupportedLanguageError(f"No parser for {suffix or 'extensionless'} files")

        if language == "python":
            module = self.parse_python(content)
            visitor = PyAnalysisVisitor(file_path, self.settings)
            return visitor.analyze(module)

        tree = self.parse_tree(content, language)
        visitor = JsAnalysisVisitor(file_path, self.settings)
        return visitor.analyze(tree.root_node)
