"""Data models for the bleed scan pipeline."""

from .finding import Finding, Severity, CorrelationRecord, SEVERITY_POINTS
from .catalog import Matcher, PatternCategory, PatternCatalog
from .analysis import (
    FileAnalysis,
    FunctionInfo,
    ImportInfo,
    ExportInfo,
    VariableInfo,
    CallSite,
    DataFlowSite,
    DataFlowSketch,
)
from .report import ScanReport, calculate_risk_score, verdict_for

__all__ = [
    "Finding",
    "Severity",
    "CorrelationRecord",
    "SEVERITY_POINTS",
    "Matcher",
    "PatternCategory",
    "PatternCatalog",
    "FileAnalysis",
    "FunctionInfo",
    "ImportInfo",
    "ExportInfo",
    "VariableInfo",
    "CallSite",
    "DataFlowSite",
    "DataFlowSketch",
    "ScanReport",
    "calculate_risk_score",
    "verdict_for",
]
