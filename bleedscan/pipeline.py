"""検出・強化・相関の3段階スキャンパイプライン。"""

from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional
import time
import logging

from .config import Config
from .io.catalog_loader import CatalogLoader
from .io.source_reader import (
    FileReadError,
    SourceFile,
    discover_files,
    read_source,
    resolve_target,
)
from .detection.detector import Detector
from .analyzer.semantic_enhancer import SemanticEnhancer
from .correlation.dependency_graph import DependencyGraph
from .correlation.correlator import Correlator
from .models.catalog import PatternCatalog
from .models.finding import Finding
from .models.report import ScanReport
from .utils.logger import ProgressLogger

logger = logging.getLogger(__name__)


@dataclass
class ProcessingStats:
    """処理統計情報。"""
    discovered: int = 0
    scanned: int = 0
    skipped: int = 0
    read_errors: int = 0
    findings: int = 0
    enhanced_files: int = 0
    correlated: int = 0


class ScanPipeline:
    """スキャンのメインクラス。

    各ステージはすべてのファイルの処理が完了してから次に進む。
    相関解析は強化済みの全指摘に対して1度だけ実行される。
    """

    def __init__(self, config: Config, catalog: Optional[PatternCatalog] = None):
        """パイプラインを初期化する。

        Args:
            config: アプリケーション設定
            catalog: 読み込み済みのパターンカタログ（省略時は設定から読み込む）
        """
        self.config = config
        self.stats = ProcessingStats()

        self._init_components(catalog)

    def _init_components(self, catalog: Optional[PatternCatalog]) -> None:
        """すべてのコンポーネントを初期化する。"""
        if catalog is None:
            loader = CatalogLoader(max_expression_length=self.config.max_expression_length)
            catalog = loader.load(self.config.catalog_source)
        self.catalog = catalog

        self.detector = Detector(self.catalog, self.config)

        self.enhancer = None
        if self.config.semantic_analysis:
            self.enhancer = SemanticEnhancer(self.config)

        self.correlator = Correlator(self.config)

        logger.info("All components initialized")

    def scan(self, target: str) -> ScanReport:
        """対象パスをスキャンする。

        Args:
            target: スキャン対象のファイルまたはディレクトリ

        Returns:
            スキャンレポート

        Raises:
            TargetNotFoundError: 対象パスが存在しない場合
        """
        started = time.perf_counter()
        self.stats = ProcessingStats()

        root = resolve_target(target)
        logger.info(f"Scan started: {root}")

        sources = self.read_sources(root)

        findings = self.detect(sources)

        if self.enhancer is not None:
            findings = self.enhance(sources, findings)

        if self.config.cross_file_analysis:
            graph = DependencyGraph.build(sources)
            findings = self.correlator.correlate(findings, graph)
            self.stats.correlated = sum(1 for f in findings if f.correlations)

        duration = time.perf_counter() - started
        self._log_statistics()

        return ScanReport(
            target=str(root),
            duration=duration,
            files_scanned=len(sources),
            findings=findings
        )

    def read_sources(self, root: Path) -> List[SourceFile]:
        """候補ファイルのスナップショットを読み込む。

        Args:
            root: 解決済みのスキャン対象

        Returns:
            読み込めたファイルのリスト（パス順）
        """
        paths = discover_files(root, self.config.include_patterns, self.config.exclude_patterns)
        self.stats.discovered = len(paths)

        sources = []
        for path in paths:
            try:
                source = read_source(path, root, self.config.max_file_size)
            except FileReadError as e:
                logger.debug(str(e))
                self.stats.read_errors += 1
                continue

            if source is None:
                self.stats.skipped += 1
                continue
            sources.append(source)

        self.stats.scanned = len(sources)
        logger.info(f"Loaded {len(sources)} files")
        return sources

    def detect(self, sources: List[SourceFile]) -> List[Finding]:
        """全ファイルに対してパターン検出を実行する。

        全ファイルの結果が揃ってからソートし、IDを割り当てる。

        Args:
            sources: ファイルスナップショット

        Returns:
            IDが割り当てられた指摘のリスト
        """
        findings: List[Finding] = []
        progress = ProgressLogger(len(sources), logger, log_interval=50, stage="Detection")

        with ThreadPoolExecutor(max_workers=self.config.workers) as executor:
            futures = {
                executor.submit(self.detector.detect_file, source): source
                for source in sources
            }
            for future in as_completed(futures):
                findings.extend(future.result())
                progress.update(futures[future].rel_path)

        findings.sort(key=lambda f: f.sort_key)
        findings = [f.with_id(f"F{i:05d}") for i, f in enumerate(findings, start=1)]

        self.stats.findings = len(findings)
        progress.complete()
        return findings

    def enhance(self, sources: List[SourceFile], findings: List[Finding]) -> List[Finding]:
        """指摘を含むファイルごとにセマンティック強化を実行する。

        Args:
            sources: ファイルスナップショット
            findings: 検出済みの指摘

        Returns:
            強化済みの指摘のリスト（ソート済み）
        """
        by_file: Dict[str, List[Finding]] = defaultdict(list)
        for finding in findings:
            by_file[finding.file_path].append(finding)
        source_map = {source.rel_path: source for source in sources}

        enhanced: List[Finding] = []
        progress = ProgressLogger(len(by_file), logger, log_interval=50, stage="Enhancement")
        with ThreadPoolExecutor(max_workers=self.config.workers) as executor:
            futures = {
                executor.submit(self.enhancer.enhance_file, source_map[path], file_findings): path
                for path, file_findings in by_file.items()
            }
            for future in as_completed(futures):
                enhanced.extend(future.result())
                progress.update(futures[future])

        self.stats.enhanced_files = len(by_file)
        enhanced.sort(key=lambda f: f.sort_key)
        progress.complete()
        return enhanced

    def _log_statistics(self) -> None:
        """処理統計をログ出力する。"""
        logger.info("=" * 50)
        logger.info("Scan Statistics")
        logger.info("=" * 50)
        logger.info(f"  Files discovered: {self.stats.discovered}")
        logger.info(f"  Files scanned: {self.stats.scanned}")
        logger.info(f"  Skipped (size): {self.stats.skipped}")
        logger.info(f"  Read errors: {self.stats.read_errors}")
        logger.info(f"  Findings: {self.stats.findings}")
        logger.info(f"  Enhanced files: {self.stats.enhanced_files}")
        logger.info(f"  Correlated findings: {self.stats.correlated}")
        logger.info("=" * 50)
