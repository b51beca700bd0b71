"""スキャン結果レポートのモデル。"""

from dataclasses import dataclass, field
from typing import Dict, List

from .finding import Finding, Severity, SEVERITY_POINTS

VERDICT_SAFE = "SAFE"
VERDICT_REVIEW = "REVIEW"
VERDICT_BLOCK = "DO NOT INSTALL"


def calculate_risk_score(findings: List[Finding]) -> int:
    """指摘の暫定重大度からリスクスコア（0-100）を算出する。

    Args:
        findings: 指摘のリスト

    Returns:
        ポイントの合計（上限100）
    """
    score = sum(SEVERITY_POINTS[f.severity] for f in findings)
    return min(score, 100)


def verdict_for(risk_score: int) -> str:
    """リスクスコアから判定を取得する。"""
    if risk_score <= 40:
        return VERDICT_SAFE
    if risk_score <= 80:
        return VERDICT_REVIEW
    return VERDICT_BLOCK


@dataclass
class ScanReport:
    """スキャン全体の結果。"""
    target: str
    duration: float
    files_scanned: int
    findings: List[Finding] = field(default_factory=list)

    @property
    def risk_score(self) -> int:
        return calculate_risk_score(self.findings)

    @property
    def verdict(self) -> str:
        return verdict_for(self.risk_score)

    def severity_counts(self) -> Dict[str, int]:
        """重大度ごとの件数を取得する。"""
        counts = {severity.value: 0 for severity in Severity}
        for finding in self.findings:
            counts[finding.severity.value] += 1
        return counts

    def exit_code(self) -> int:
        """CIゲート用の終了コードを取得する。

        Returns:
            criticalがあれば2、highがあれば1、それ以外は0
        """
        severities = {f.severity for f in self.findings}
        if Severity.CRITICAL in severities:
            return 2
        if Severity.HIGH in severities:
            return 1
        return 0

    def to_dict(self) -> dict:
        """JSON出力用の辞書に変換する。"""
        counts = self.severity_counts()
        return {
            "scanInfo": {
                "duration": f"{self.duration:.2f}s",
                "filesScanned": self.files_scanned,
                "target": self.target,
            },
            "summary": {
                "riskScore": self.risk_score,
                "verdict": self.verdict,
                "critical": counts["critical"],
                "high": counts["high"],
                "medium": counts["medium"],
                "low": counts["low"],
            },
            "findings": [f.to_dict() for f in self.findings],
        }
