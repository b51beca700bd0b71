"""検出結果（指摘）と相関レコードのモデル。"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Tuple
from enum import Enum


class Severity(Enum):
    """指摘の重大度レベル（low < medium < high < critical）。"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """順序比較用の序数。"""
        return _SEVERITY_RANKS[self]

    def __lt__(self, other: "Severity") -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: "Severity") -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    @classmethod
    def parse(cls, value: Any) -> "Severity":
        """文字列から重大度をパースする。

        Args:
            value: 重大度の値（文字列、Severity、またはNone）

        Returns:
            Severity列挙値（不明な値はMEDIUM）
        """
        if isinstance(value, Severity):
            return value
        if value is None:
            return cls.MEDIUM

        mapping = {
            "critical": cls.CRITICAL,
            "high": cls.HIGH,
            "medium": cls.MEDIUM,
            "low": cls.LOW,
        }
        return mapping.get(str(value).lower().strip(), cls.MEDIUM)


_SEVERITY_RANKS = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}

# リスクスコアに加算するポイント
SEVERITY_POINTS = {
    Severity.CRITICAL: 100,
    Severity.HIGH: 50,
    Severity.MEDIUM: 20,
    Severity.LOW: 0,
}


@dataclass(frozen=True)
class CorrelationRecord:
    """ファイル横断の相関レコード。"""
    type: str
    severity: Severity
    files: Tuple[str, ...]
    details: Dict[str, Any]

    # detailsが辞書のためハッシュ不可（等価比較のみ）
    __hash__ = None

    def implicates(self, file_path: str) -> bool:
        """指定ファイルがこのレコードに関与するかを確認する。"""
        return file_path in self.files

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "severity": self.severity.value,
            "files": list(self.files),
            "details": self.details,
        }


@dataclass(frozen=True)
class Finding:
    """パターン検出による指摘情報。

    各ステージは既存のFindingを変更せず、新しいバージョンを返す。
    """
    file_path: str
    line: int
    category: str
    matcher_id: str
    severity: Severity
    evidence: str
    snippet: str = ""
    pattern: str = ""
    column: int = 1
    id: str = ""

    # 検出器のスコア
    context_score: float = 1.0
    threat_score: float = 0.0

    # セマンティック解析で置き換えられる情報
    semantic_score: Optional[float] = None
    adjusted_severity: Optional[Severity] = None
    is_test_code: bool = False
    involves_user_input: bool = False
    is_exported: bool = False
    has_external_data_flow: bool = False

    # 相関解析で追加される情報（追記のみ）
    correlations: Tuple[CorrelationRecord, ...] = field(default_factory=tuple)

    @property
    def effective_severity(self) -> Severity:
        """調整後の重大度（未調整の場合は暫定重大度）を取得する。"""
        return self.adjusted_severity or self.severity

    @property
    def sort_key(self) -> tuple:
        """決定的なマージ用のソートキー。"""
        return (self.file_path, self.line, self.column, self.category, self.matcher_id)

    def with_id(self, finding_id: str) -> "Finding":
        return replace(self, id=finding_id)

    def with_correlations(self, records: Tuple[CorrelationRecord, ...]) -> "Finding":
        """相関レコードを追記した新しいFindingを返す。

        Args:
            records: 追加する相関レコード

        Returns:
            同一レコードを重複させずに追記したFinding
        """
        merged = list(self.correlations)
        for record in records:
            if record not in merged:
                merged.append(record)
        return replace(self, correlations=tuple(merged))

    def to_dict(self) -> dict:
        """JSONレポート用の辞書に変換する。

        Returns:
            camelCaseキーの辞書
        """
        return {
            "id": self.id,
            "file": self.file_path,
            "line": self.line,
            "column": self.column,
            "category": self.category,
            "matcher": self.matcher_id,
            "pattern": self.pattern,
            "severity": self.severity.value,
            "adjustedSeverity": (
                self.adjusted_severity.value if self.adjusted_severity else None
            ),
            "evidence": self.evidence,
            "snippet": self.snippet,
            "contextScore": round(self.context_score, 4),
            "threatScore": round(self.threat_score, 4),
            "semanticScore": (
                round(self.semantic_score, 4)
                if self.semantic_score is not None else None
            ),
            "isTestCode": self.is_test_code,
            "involvesUserInput": self.involves_user_input,
            "isExported": self.is_exported,
            "hasExternalDataFlow": self.has_external_data_flow,
            "correlations": [c.to_dict() for c in self.correlations],
        }

    def __str__(self) -> str:
        return (
            f"[{self.id}] {self.category} at {self.file_path}:{self.line} "
            f"({self.effective_severity.value}): {self.evidence[:50]}"
        )
