"""Semantic enhancement of findings from a per-file structural summary."""

from dataclasses import replace
from typing import List, Optional, Sequence
import re
import logging

from ..config import Config
from ..io.source_reader import SourceFile
from ..models.analysis import FileAnalysis
from ..models.finding import Finding, Severity
from .syntax_parser import AnalysisSettings, ParseError, SyntaxParser, UnsupportedLanguageError

logger = logging.getLogger(__name__)

USER_INPUT_DISTANCE = 3
EXPORT_DISTANCE = 1

TEST_CODE_FACTOR = 0.3
USER_INPUT_FACTOR = 1.5
NOT_EXPORTED_FACTOR = 0.7
EXTERNAL_FLOW_FACTOR = 1.3
MAX_SEMANTIC_SCORE = 2.0


class SemanticEnhancer:
    """Refines findings with syntax-derived context flags."""

    def __init__(self, config: Config, parser: Optional[SyntaxParser] = None):
        """Initialize the enhancer.

        Args:
            config: Application configuration
            parser: Syntax parser to reuse (created from config when omitted)
        """
        self.parser = parser or SyntaxParser(AnalysisSettings(
            request_identifiers=list(config.request_identifiers),
            network_functions=list(config.network_functions),
            sensitive_functions=list(config.sensitive_functions),
        ))
        self.test_name = re.compile(config.test_name_pattern, re.IGNORECASE)
        self.test_frameworks = list(config.test_frameworks)

    def enhance_file(self, source: SourceFile, findings: Sequence[Finding]) -> List[Finding]:
        """Enhance all findings of one file.

        Files that cannot be parsed keep their findings unchanged.

        Args:
            source: File snapshot the findings were detected in
            findings: Findings of that file

        Returns:
            New list of findings in the same order
        """
        if not findings:
            return []

        try:
            analysis = self.parser.analyze(source.rel_path, source.content, source.suffix)
        except UnsupportedLanguageError:
            return list(findings)
        except ParseError as e:
            logger.debug(f"Semantic analysis skipped for {source.rel_path}: {e}")
            return list(findings)

        return [self.enhance_finding(finding, analysis) for finding in findings]

    def enhance_finding(self, finding: Finding, analysis: FileAnalysis) -> Finding:
        """Return a new finding carrying semantic flags, score and adjusted severity."""
        is_test = self.is_in_test_code(analysis, finding.line)
        user_input = self.involves_user_input(analysis, finding.line)
        exported = self.is_in_exported_function(analysis, finding.line)
        external = analysis.data_flow.has_outbound_flow()

        score = finding.threat_score
        if is_test:
            score *= TEST_CODE_FACTOR
        if user_input:
            score *= USER_INPUT_FACTOR
        if not exported:
            score *= NOT_EXPORTED_FACTOR
        if external:
            score *= EXTERNAL_FLOW_FACTOR
        score = min(score, MAX_SEMANTIC_SCORE)

        return replace(
            finding,
            semantic_score=score,
            adjusted_severity=self.adjusted_severity(score, is_test),
            is_test_code=is_test,
            involves_user_input=user_input,
            is_exported=exported,
            has_external_data_flow=external,
        )

    @staticmethod
    def adjusted_severity(score: float, is_test: bool) -> Severity:
        if is_test and score < 0.8:
            return Severity.LOW
        if score >= 1.5:
            return Severity.CRITICAL
        if score >= 1.0:
            return Severity.HIGH
        if score >= 0.6:
            return Severity.MEDIUM
        return Severity.LOW

    def is_in_test_code(self, analysis: FileAnalysis, line: int) -> bool:
        for function in analysis.functions_containing(line):
            if self.test_name.search(function.name):
                return True

        for imported in analysis.imports:
            for framework in self.test_frameworks:
                if (imported.source == framework
                        or imported.source.startswith(framework + "/")
                        or imported.source.startswith(framework + ".")):
                    return True
        return False

    @staticmethod
    def involves_user_input(analysis: FileAnalysis, line: int) -> bool:
        sources = analysis.data_flow.user_input_sources
        if not sources:
            return False

        components = set()
        for site in sources:
            components.update(part for part in site.name.split(".") if part)

        for call in analysis.calls_near(line, USER_INPUT_DISTANCE):
            for token in call.tokens():
                if token and any(component in token for component in components):
                    return True
        return False

    @staticmethod
    def is_in_exported_function(analysis: FileAnalysis, line: int) -> bool:
        exported_names = {export.name for export in analysis.exports}
        for function in analysis.functions_containing(line):
            if function.name in exported_names:
                return True
            if any(abs(export.line - function.start_line) <= EXPORT_DISTANCE
                   for export in analysis.exports):
                return True
        return False
