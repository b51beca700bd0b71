"""Cross-file correlation of the complete finding set."""

from collections import defaultdict
from pathlib import PurePosixPath
from typing import Dict, List, Optional, Sequence
import re
import threading
import logging

from ..config import Config
from ..detection.path_classifier import is_config_file
from ..models.finding import CorrelationRecord, Finding, Severity
from .dependency_graph import DependencyGraph

logger = logging.getLogger(__name__)

REMOTE_SOURCE = re.compile(r"(?:https?|ftp)://|data:text", re.IGNORECASE)
TEMP_DIRECTORY = re.compile(r"/tmp/|/temp/|/var/tmp/", re.IGNORECASE)
HEX_RUN = re.compile(r"[a-fA-F0-9]{20,}")
UNICODE_ESCAPE = re.compile(r"\\u[0-9a-fA-F]{4}")
USER_DATA_NAME = re.compile(r"user|input|data|req", re.IGNORECASE)

EXFILTRATION_CATEGORY = re.compile(r"exfiltration|credential", re.IGNORECASE)
EXFILTRATION_EVIDENCE = ("fetch", "process.env")
DESTINATION_HOST = re.compile(r"https?://([^/\s'\"`]+)", re.IGNORECASE)

USER_INPUT_EVIDENCE = ("req.", "request.", "user", "input")
EXTERNAL_CALL_EVIDENCE = ("fetch", "http", "axios", "webhook")
MIN_DATA_FLOW_STEPS = 3

PERSISTENCE_CATEGORY = re.compile(r"persistence|backdoor", re.IGNORECASE)
PERSISTENCE_EVIDENCE = ("startup", "boot", "install")

CONFIG_EVIDENCE = ("config", ".env", "settings")
CONFIG_TARGET = re.compile(
    r"""['"]([^'"]*\.(?:env|config|settings|json|ya?ml|ini|conf))['"]""", re.IGNORECASE
)
NAME_SUFFIX = re.compile(r"[\d_]+$")


def name_pattern(file_path: str) -> str:
    """Basename stem with trailing digits and underscores removed."""
    return NAME_SUFFIX.sub("", PurePosixPath(file_path).stem)


def persistence_technique(evidence: str) -> str:
    lower = evidence.lower()
    if "startup" in lower or "boot" in lower:
        return "startup_persistence"
    if "install" in lower or "deploy" in lower:
        return "installation_persistence"
    if "registry" in lower or "cron" in lower:
        return "system_persistence"
    if "service" in lower or "daemon" in lower:
        return "service_persistence"
    return "unknown_persistence"


def import_suspicion(source: str, kind: str) -> Optional[str]:
    """Reason an import source is suspicious, or None."""
    if kind in ("dynamic", "indirect_require") and USER_DATA_NAME.search(source):
        return "Dynamic import with user input"
    if REMOTE_SOURCE.search(source):
        return "Import from remote URL"
    if TEMP_DIRECTORY.search(source):
        return "Import from temporary directory"
    if HEX_RUN.search(source) or UNICODE_ESCAPE.search(source):
        return "Obfuscated import source"
    return None


class Correlator:
    """Runs every cross-file detector once over a snapshot of all findings.

    The run is serialized by a lock; detectors only read the snapshot and
    the dependency graph.
    """

    def __init__(self, config: Config):
        """Initialize the correlator.

        Args:
            config: Application configuration (config file patterns)
        """
        self.config_file_patterns = list(config.config_file_patterns)
        self._lock = threading.Lock()

    def correlate(self, findings: Sequence[Finding], graph: DependencyGraph) -> List[Finding]:
        """Attach correlation records to every finding of each implicated file.

        Args:
            findings: Complete, enhanced finding set
            graph: Dependency graph of the run

        Returns:
            New list of findings in the same order
        """
        with self._lock:
            by_file = self.group_by_file(findings)

            records: List[CorrelationRecord] = []
            records.extend(self.find_suspicious_imports(by_file, graph))
            records.extend(self.find_attack_chains(by_file, graph))
            records.extend(self.find_distributed_exfiltration(by_file))
            records.extend(self.find_data_flow_chains(by_file, graph))
            records.extend(self.find_persistence_chains(by_file))
            records.extend(self.find_config_manipulation(by_file))
            records.extend(self.find_config_code_injection(by_file))

            logger.info(f"Correlation produced {len(records)} records")

            result = []
            for finding in findings:
                implicated = tuple(r for r in records if r.implicates(finding.file_path))
                result.append(finding.with_correlations(implicated) if implicated else finding)
            return result

    @staticmethod
    def group_by_file(findings: Sequence[Finding]) -> Dict[str, List[Finding]]:
        grouped: Dict[str, List[Finding]] = defaultdict(list)
        for finding in sorted(findings, key=lambda f: f.sort_key):
            grouped[finding.file_path].append(finding)
        return {path: grouped[path] for path in sorted(grouped)}

    def find_suspicious_imports(
        self,
        by_file: Dict[str, List[Finding]],
        graph: DependencyGraph
    ) -> List[CorrelationRecord]:
        records = []
        for file_path in by_file:
            for imported in graph.imports.get(file_path, []):
                reason = import_suspicion(imported.source, imported.kind)
                if reason is None:
                    continue
                records.append(CorrelationRecord(
                    type="suspicious_import",
                    severity=Severity.HIGH,
                    files=(file_path,),
                    details={
                        "file": file_path,
                        "source": imported.source,
                        "line": imported.line,
                        "kind": imported.kind,
                        "reason": reason,
                    }
                ))
        return records

    def files_related(self, files: List[str], graph: DependencyGraph) -> bool:
        """Whether files in one category group are related.

        Related means an edge between any pair, all files in one directory,
        or two basenames sharing a stem after trailing digits and
        underscores are removed.
        """
        if len(files) < 2:
            return False

        for i, first in enumerate(files):
            for second in files[i + 1:]:
                if graph.connected(first, second):
                    return True

        if len({str(PurePosixPath(f).parent) for f in files}) == 1:
            return True

        patterns = [name_pattern(f) for f in files]
        seen = set()
        for pattern in patterns:
            if pattern and pattern in seen:
                return True
            seen.add(pattern)
        return False

    def find_attack_chains(
        self,
        by_file: Dict[str, List[Finding]],
        graph: DependencyGraph
    ) -> List[CorrelationRecord]:
        by_category: Dict[str, List[Finding]] = defaultdict(list)
        for file_findings in by_file.values():
            for finding in file_findings:
                by_category[finding.category].append(finding)

        records = []
        for category in sorted(by_category):
            members = by_category[category]
            files = sorted({f.file_path for f in members})
            if len(files) < 2 or not self.files_related(files, graph):
                continue

            records.append(CorrelationRecord(
                type="attack_chain",
                severity=Severity.CRITICAL,
                files=tuple(files),
                details={
                    "category": category,
                    "description": "Multiple files implementing coordinated attack",
                    "files": [{"path": f.file_path, "line": f.line} for f in members],
                }
            ))
        return records

    def find_distributed_exfiltration(
        self,
        by_file: Dict[str, List[Finding]]
    ) -> List[CorrelationRecord]:
        contributing: Dict[str, int] = {}
        destinations = set()

        for file_path, file_findings in by_file.items():
            matched = [
                f for f in file_findings
                if EXFILTRATION_CATEGORY.search(f.category)
                or any(k in f.evidence for k in EXFILTRATION_EVIDENCE)
            ]
            if not matched:
                continue
            contributing[file_path] = len(matched)
            for finding in matched:
                host = DESTINATION_HOST.search(finding.evidence)
                if host:
                    destinations.add(host.group(1).lower())

        if len(destinations) < 2:
            return []

        return [CorrelationRecord(
            type="distributed_exfiltration",
            severity=Severity.CRITICAL,
            files=tuple(contributing),
            details={
                "description": "Data exfiltration distributed across multiple files",
                "files": [{"path": p, "count": c} for p, c in contributing.items()],
                "destinations": sorted(destinations),
            }
        )]

    def find_data_flow_chains(
        self,
        by_file: Dict[str, List[Finding]],
        graph: DependencyGraph
    ) -> List[CorrelationRecord]:
        records = []
        for file_path, file_findings in by_file.items():
            inputs = [f for f in file_findings if any(k in f.evidence for k in USER_INPUT_EVIDENCE)]
            outputs = [f for f in file_findings if any(k in f.evidence for k in EXTERNAL_CALL_EVIDENCE)]
            if not inputs or not outputs:
                continue

            path = [{"file": file_path, "role": "input", "lines": sorted({f.line for f in inputs})}]
            path.extend({"file": t, "role": "processing"} for t in graph.targets(file_path))
            path.append({"file": file_path, "role": "output", "lines": sorted({f.line for f in outputs})})

            if len(path) < MIN_DATA_FLOW_STEPS:
                continue

            files = sorted({step["file"] for step in path})
            records.append(CorrelationRecord(
                type="data_flow_chain",
                severity=Severity.HIGH,
                files=tuple(files),
                details={"origin": file_path, "path": path}
            ))
        return records

    def find_persistence_chains(
        self,
        by_file: Dict[str, List[Finding]]
    ) -> List[CorrelationRecord]:
        strategies = []
        for file_path, file_findings in by_file.items():
            matched = [
                f for f in file_findings
                if PERSISTENCE_CATEGORY.search(f.category)
                or any(k in f.evidence.lower() for k in PERSISTENCE_EVIDENCE)
            ]
            if matched:
                techniques = sorted({persistence_technique(f.evidence) for f in matched})
                strategies.append({"file": file_path, "techniques": techniques})

        if len(strategies) < 2:
            return []

        return [CorrelationRecord(
            type="multi_file_persistence",
            severity=Severity.CRITICAL,
            files=tuple(s["file"] for s in strategies),
            details={"strategies": strategies}
        )]

    def find_config_manipulation(
        self,
        by_file: Dict[str, List[Finding]]
    ) -> List[CorrelationRecord]:
        records = []
        for file_path, file_findings in by_file.items():
            if is_config_file(file_path, self.config_file_patterns):
                continue

            for finding in file_findings:
                if not any(k in finding.evidence.lower() for k in CONFIG_EVIDENCE):
                    continue
                target = CONFIG_TARGET.search(finding.evidence)
                records.append(CorrelationRecord(
                    type="config_manipulation",
                    severity=Severity.CRITICAL,
                    files=(file_path,),
                    details={
                        "sourceFile": file_path,
                        "targetConfig": target.group(1) if target else None,
                        "line": finding.line,
                        "evidence": finding.evidence,
                    }
                ))
                break
        return records

    def find_config_code_injection(
        self,
        by_file: Dict[str, List[Finding]]
    ) -> List[CorrelationRecord]:
        records = []
        for file_path, file_findings in by_file.items():
            if file_findings and is_config_file(file_path, self.config_file_patterns):
                records.append(CorrelationRecord(
                    type="config_code_injection",
                    severity=Severity.HIGH,
                    files=(file_path,),
                    details={
                        "configFile": file_path,
                        "findingCount": len(file_findings),
                        "lines": sorted({f.line for f in file_findings}),
                    }
                ))
        return records
