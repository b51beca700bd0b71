"""構文解析から得られるファイル構造サマリーのモデル。"""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class ImportInfo:
    """インポート情報。"""
    source: str
    line: int
    kind: str = "static"  # static, dynamic, require, indirect_require
    specifiers: List[str] = field(default_factory=list)

    @property
    def is_dynamic(self) -> bool:
        return self.kind in ("dynamic", "indirect_require")


@dataclass
class ExportInfo:
    """エクスポート情報。"""
    name: str
    line: int
    kind: str = "named"  # named, default, commonjs, all


@dataclass
class FunctionInfo:
    """ソースコードから抽出した関数情報。"""
    name: str
    start_line: int
    end_line: int
    parameters: List[str] = field(default_factory=list)

    def contains(self, line: int) -> bool:
        """指定行が関数本体の範囲内かを確認する。"""
        return self.start_line <= line <= self.end_line

    def line_count(self) -> int:
        """関数の行数を取得する。"""
        return self.end_line - self.start_line + 1

    def __str__(self) -> str:
        return f"{self.name} ({self.start_line}-{self.end_line})"


@dataclass
class VariableInfo:
    """変数宣言情報。"""
    name: str
    line: int
    kind: str = "var"


@dataclass
class CallSite:
    """関数呼び出し情報。"""
    name: str
    line: int
    root: Optional[str] = None  # メンバー呼び出しのルートオブジェクト名
    arg_tokens: List[str] = field(default_factory=list)

    def tokens(self) -> List[str]:
        """呼び出し名と引数トークンを合わせて取得する。"""
        return [self.name] + list(self.arg_tokens)


@dataclass
class DataFlowSite:
    """データフロー上の注目箇所。"""
    name: str
    line: int


@dataclass
class DataFlowSketch:
    """ヒューリスティックなデータフロー概要。"""
    user_input_sources: List[DataFlowSite] = field(default_factory=list)
    external_calls: List[DataFlowSite] = field(default_factory=list)
    sensitive_operations: List[DataFlowSite] = field(default_factory=list)

    def has_outbound_flow(self) -> bool:
        """外部呼び出しまたは危険な操作が存在するかを確認する。"""
        return bool(self.external_calls or self.sensitive_operations)


@dataclass
class FileAnalysis:
    """1ファイル分の構造サマリー。

    1回の実行でファイルごとに1度だけ計算され、強化処理の後に破棄される。
    """
    file_path: str
    imports: List[ImportInfo] = field(default_factory=list)
    exports: List[ExportInfo] = field(default_factory=list)
    functions: List[FunctionInfo] = field(default_factory=list)
    variables: List[VariableInfo] = field(default_factory=list)
    calls: List[CallSite] = field(default_factory=list)
    data_flow: DataFlowSketch = field(default_factory=DataFlowSketch)

    def functions_containing(self, line: int) -> List[FunctionInfo]:
        """指定行を本体に含む関数を取得する（外側から順）。"""
        return [fn for fn in self.functions if fn.contains(line)]

    def calls_near(self, line: int, distance: int) -> List[CallSite]:
        """指定行から一定距離内の呼び出しを取得する。"""
        return [c for c in self.calls if abs(c.line - line) <= distance]
