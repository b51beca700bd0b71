"""Contextual scoring of raw matches and whole-file threat heuristics."""

from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Dict, List
import re
import logging

from ..models.catalog import Matcher, PatternCatalog, PatternCategory
from ..models.finding import Severity

logger = logging.getLogger(__name__)

MAX_THREAT_SCORE = 2.0
SAFE_PATTERN_FACTOR = 0.5

INSTRUCTION_OVERRIDE = re.compile(r"ignore.*?instruction", re.IGNORECASE)
ENCODING_CALL = re.compile(r"(atob|Buffer\.from|fromCharCode)", re.IGNORECASE)
ESCALATION_KEYWORDS = ("escalate", "elevate", "privilege", "admin", "root")


@dataclass(frozen=True)
class SyntheticThreat:
    """A whole-file indicator independent of single matches."""
    type: str
    severity: Severity
    evidence: str
    score: float


class ThreatScorer:
    """Scores matches from file context and catalog weighting tables."""

    def __init__(self, catalog: PatternCatalog, context_keywords: Dict[str, Dict[str, Any]]):
        """Initialize the scorer.

        Args:
            catalog: Loaded pattern catalog
            context_keywords: Modifier name -> {scope, keywords, default}
        """
        self.catalog = catalog
        self.context_keywords = context_keywords

    def analyze_context(self, rel_path: str, content: str) -> float:
        """Compute the multiplicative context score of a file.

        Args:
            rel_path: Root-relative path of the file
            content: File snapshot

        Returns:
            Context score (>= 0)
        """
        path = PurePosixPath(rel_path)
        file_name = path.name.lower()
        dir_name = str(path.parent).lower() if str(path.parent) != "." else ""

        context_score = 1.0
        for name, rule in self.context_keywords.items():
            subject = file_name if rule.get("scope") == "filename" else dir_name
            if any(k in subject for k in rule.get("keywords", [])):
                context_score *= self.catalog.modifier(name, rule.get("default", 1.0))

        lower = content.lower()
        for phrase in self.catalog.safe_patterns:
            if phrase.lower() in lower:
                context_score *= SAFE_PATTERN_FACTOR
                break

        return context_score

    def calculate_threat_score(
        self,
        category: PatternCategory,
        matcher: Matcher,
        context_score: float
    ) -> float:
        score = matcher.weight * self.catalog.threat_weight(category) * context_score
        return min(score, MAX_THREAT_SCORE)

    @staticmethod
    def adjust_severity(base_severity: Severity, threat_score: float) -> Severity:
        """Provisional severity from the threat score."""
        if threat_score >= 1.8:
            return Severity.CRITICAL
        if threat_score >= 1.3:
            return Severity.HIGH
        if threat_score >= 0.8:
            return Severity.MEDIUM
        return base_severity

    def detect_multi_threat_patterns(self, content: str) -> List[SyntheticThreat]:
        """Run whole-file indicator counts."""
        threats = []

        overrides = len(INSTRUCTION_OVERRIDE.findall(content))
        if overrides > 2:
            threats.append(SyntheticThreat(
                type="repeated_instruction_override",
                severity=Severity.CRITICAL,
                evidence=f"Found {overrides} instruction override attempts",
                score=1.8
            ))

        encodings = len(ENCODING_CALL.findall(content))
        if encodings > 3:
            threats.append(SyntheticThreat(
                type="complex_encoding_chain",
                severity=Severity.HIGH,
                evidence=f"Found {encodings} encoding/decoding operations",
                score=1.5
            ))

        lower = content.lower()
        escalation = sum(1 for k in ESCALATION_KEYWORDS if k in lower)
        if escalation >= 2:
            threats.append(SyntheticThreat(
                type="privilege_escalation_indicators",
                severity=Severity.CRITICAL,
                evidence=f"Found {escalation} privilege escalation keywords",
                score=1.7
            ))

        return threats
