"""Pattern-based detection stage."""

from .detector import Detector, MULTI_THREAT_CATEGORY
from .safe_context import LineIndex, SafeContextIndex
from .threat_scorer import ThreatScorer, SyntheticThreat

__all__ = [
    "Detector",
    "MULTI_THREAT_CATEGORY",
    "LineIndex",
    "SafeContextIndex",
    "ThreatScorer",
    "SyntheticThreat",
]
