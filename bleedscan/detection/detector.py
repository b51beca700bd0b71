"""Pattern-based detection over file snapshots."""

from typing import List, Set
import logging

from ..config import Config
from ..io.source_reader import SourceFile
from ..models.catalog import PatternCatalog
from ..models.finding import Finding
from .path_classifier import is_documentation, is_mostly_documentation, is_test_or_example
from .safe_context import LineIndex, SafeContextIndex
from .threat_scorer import ThreatScorer

logger = logging.getLogger(__name__)

MULTI_THREAT_CATEGORY = "Multi-Threat Pattern"
EVIDENCE_LIMIT = 100
SNIPPET_LIMIT = 200


class Detector:
    """Applies the pattern catalog to one file at a time.

    ``detect_file`` has no side effects on shared state, so files can be
    processed concurrently.
    """

    def __init__(self, catalog: PatternCatalog, config: Config):
        """Initialize the detector.

        Args:
            catalog: Loaded pattern catalog
            config: Application configuration
        """
        self.catalog = catalog
        self.config = config
        self.scorer = ThreatScorer(catalog, config.context_keywords)

    def is_suppressed(self, source: SourceFile) -> bool:
        """Whether matches in this file are suppressed as test/example content."""
        return is_test_or_example(
            source.rel_path,
            source.content,
            self.config.fixture_directories,
            self.config.test_path_keywords,
            self.config.test_content_keywords
        )

    def detect_file(self, source: SourceFile) -> List[Finding]:
        """Detect findings in a single file.

        Args:
            source: File snapshot

        Returns:
            Findings in match order (ids are assigned by the pipeline)
        """
        documentation = is_documentation(
            source.rel_path, self.config.documentation_extensions
        )
        if documentation and is_mostly_documentation(source.content):
            logger.debug(f"Skipping documentation file {source.rel_path}")
            return []

        findings = []
        if self.is_suppressed(source):
            logger.debug(f"Suppressing pattern matches in {source.rel_path}")
        else:
            findings.extend(self._match_patterns(source, documentation))

        findings.extend(self._multi_threat_findings(source))
        return findings

    def _match_patterns(self, source: SourceFile, documentation: bool) -> List[Finding]:
        content = source.content
        lines = LineIndex(content)
        safe = SafeContextIndex.for_file(content, source.suffix, documentation)
        context_score = self.scorer.analyze_context(source.rel_path, content)

        findings = []
        for category in self.catalog.categories:
            for matcher in category.matchers:
                seen_lines: Set[int] = set()

                for match in matcher.regex.finditer(content):
                    start = match.start()
                    if match.end() == start:
                        continue
                    if safe.is_safe(start):
                        continue

                    line = lines.line_of(start)
                    # Repeated hits of one matcher on one line collapse
                    if line in seen_lines:
                        continue
                    seen_lines.add(line)

                    threat_score = self.scorer.calculate_threat_score(
                        category, matcher, context_score
                    )
                    findings.append(Finding(
                        file_path=source.rel_path,
                        line=line,
                        column=lines.column_of(start),
                        category=category.name,
                        matcher_id=matcher.id,
                        severity=self.scorer.adjust_severity(category.severity, threat_score),
                        evidence=match.group(0)[:EVIDENCE_LIMIT],
                        snippet=lines.line_text(line).strip()[:SNIPPET_LIMIT],
                        pattern=matcher.display_pattern(),
                        context_score=context_score,
                        threat_score=threat_score
                    ))

        return findings

    def _multi_threat_findings(self, source: SourceFile) -> List[Finding]:
        findings = []
        for threat in self.scorer.detect_multi_threat_patterns(source.content):
            findings.append(Finding(
                file_path=source.rel_path,
                line=1,
                category=MULTI_THREAT_CATEGORY,
                matcher_id=threat.type,
                severity=threat.severity,
                evidence=threat.evidence,
                pattern=threat.type,
                context_score=1.0,
                threat_score=threat.score
            ))
        return findings
