"""設定管理モジュール。"""

from dataclasses import dataclass, field
from typing import List, Dict, Optional, Any
from pathlib import Path
import os
import logging

import yaml

logger = logging.getLogger(__name__)

DEFAULT_INCLUDE_PATTERNS = [
    "**/*.js", "**/*.ts", "**/*.jsx", "**/*.tsx", "**/*.mjs", "**/*.cjs",
    "**/*.py", "**/*.sh", "**/*.md",
]

DEFAULT_EXCLUDE_PATTERNS = [
    "**/node_modules/**", "**/.git/**", "**/dist/**", "**/build/**",
]

# ファイル名/ディレクトリ名のキーワードと文脈修飾子の対応
DEFAULT_CONTEXT_KEYWORDS: Dict[str, Dict[str, Any]] = {
    "system_file": {"scope": "filename", "keywords": ["system", "kernel"], "default": 1.5},
    "configuration": {"scope": "filename", "keywords": ["config", "settings"], "default": 1.3},
    "startup_script": {"scope": "filename", "keywords": ["init", "startup", "boot"], "default": 1.8},
    "core_module": {"scope": "directory", "keywords": ["core", "lib"], "default": 1.6},
    "network_handler": {"scope": "filename", "keywords": ["network", "http", "api"], "default": 1.4},
}

DEFAULT_CONFIG_FILE_PATTERNS = [
    r"config\.", r"\.env", r"settings\.", r"\.config\.", r"/etc/",
    r"\.json$", r"\.ya?ml$", r"\.ini$", r"\.conf$",
]

DEFAULT_TEST_NAME_PATTERN = (
    r"^(?:test|spec)|(?:test|spec)$"
    r"|^(?:it|describe|context|before|after)(?:each|all)?$"
)


@dataclass
class Config:
    """アプリケーション設定。"""

    # パターンカタログ設定
    catalog_source: Dict[str, Any] = field(
        default_factory=lambda: {"type": "json", "path": "config/signatures.json"}
    )
    max_expression_length: int = 2000

    # ファイル探索設定
    include_patterns: List[str] = field(
        default_factory=lambda: list(DEFAULT_INCLUDE_PATTERNS)
    )
    exclude_patterns: List[str] = field(
        default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS)
    )
    max_file_size: int = 1024 * 1024  # 1 MiB

    # 処理設定
    workers: int = 4
    semantic_analysis: bool = True
    cross_file_analysis: bool = True

    # パス分類設定
    fixture_directories: List[str] = field(
        default_factory=lambda: [
            "test-evil", "test-malicious", "fixtures-evil", "fixtures-malicious",
        ]
    )
    test_path_keywords: List[str] = field(
        default_factory=lambda: [
            "test", "spec", "example", "demo", "sample", "mock", ".test.", ".spec.",
        ]
    )
    test_content_keywords: List[str] = field(
        default_factory=lambda: [
            "example", "demo", "sample", "mock", "placeholder", "test case",
        ]
    )
    documentation_extensions: List[str] = field(
        default_factory=lambda: [".md", ".markdown", ".rst", ".txt"]
    )
    config_file_patterns: List[str] = field(
        default_factory=lambda: list(DEFAULT_CONFIG_FILE_PATTERNS)
    )
    context_keywords: Dict[str, Dict[str, Any]] = field(
        default_factory=lambda: {k: dict(v) for k, v in DEFAULT_CONTEXT_KEYWORDS.items()}
    )

    # セマンティック解析設定
    request_identifiers: List[str] = field(
        default_factory=lambda: ["req", "request"]
    )
    network_functions: List[str] = field(
        default_factory=lambda: [
            "fetch", "axios", "request", "http", "https", "ws", "websocket",
            "WebSocket", "XMLHttpRequest", "requests", "urlopen",
        ]
    )
    sensitive_functions: List[str] = field(
        default_factory=lambda: [
            "eval", "Function", "exec", "execSync", "execFile", "spawn",
            "child_process", "system", "Popen",
        ]
    )
    test_frameworks: List[str] = field(
        default_factory=lambda: [
            "jest", "mocha", "chai", "vitest", "@testing-library", "pytest", "unittest",
        ]
    )
    test_name_pattern: str = DEFAULT_TEST_NAME_PATTERN

    # ロギング設定
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_yaml(cls, file_path: str) -> "Config":
        """YAMLファイルから設定を読み込む。

        Args:
            file_path: YAML設定ファイルのパス

        Returns:
            Configインスタンス
        """
        with open(file_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        config = cls.from_dict(data)

        # カタログの相対パスは設定ファイルの位置を基準に解決
        catalog_path = config.catalog_source.get("path")
        if catalog_path and not Path(catalog_path).is_absolute():
            candidate = Path(file_path).parent / catalog_path
            if candidate.exists():
                config.catalog_source = dict(config.catalog_source, path=str(candidate))

        config.apply_environment()

        logger.info(f"Configuration loaded from {file_path}")
        return config

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        """辞書から設定を作成する。

        Args:
            data: 設定辞書

        Returns:
            Configインスタンス
        """
        config = cls()

        for key, value in data.items():
            if hasattr(config, key):
                setattr(config, key, value)
            else:
                logger.warning(f"Unknown configuration key ignored: {key}")

        return config

    def apply_environment(self) -> None:
        """環境変数による上書きを適用する。"""
        self.log_level = os.getenv("BLEED_LOG_LEVEL", self.log_level)

        workers = os.getenv("BLEED_WORKERS")
        if workers:
            try:
                self.workers = int(workers)
            except ValueError:
                logger.warning(f"Ignoring invalid BLEED_WORKERS value: {workers}")

    def validate(self) -> List[str]:
        """設定を検証する。

        Returns:
            検証エラーのリスト（有効な場合は空）
        """
        errors = []

        if not self.catalog_source.get("path"):
            errors.append("catalog_source.pathは必須です")
        elif not Path(self.catalog_source["path"]).exists():
            errors.append(
                f"パターンカタログが存在しません: {self.catalog_source['path']}"
            )

        if self.workers < 1:
            errors.append("workersは1以上である必要があります")
        if self.max_file_size <= 0:
            errors.append("max_file_sizeは正の値である必要があります")
        if not self.include_patterns:
            errors.append("include_patternsが空です")

        for name, rule in self.context_keywords.items():
            if rule.get("scope") not in ("filename", "directory"):
                errors.append(f"context_keywords.{name}.scopeが不正です")

        return errors

    def to_dict(self) -> dict:
        """設定を辞書に変換する。

        Returns:
            辞書形式の設定
        """
        return {
            "catalog_source": self.catalog_source,
            "max_expression_length": self.max_expression_length,
            "include_patterns": self.include_patterns,
            "exclude_patterns": self.exclude_patterns,
            "max_file_size": self.max_file_size,
            "workers": self.workers,
            "semantic_analysis": self.semantic_analysis,
            "cross_file_analysis": self.cross_file_analysis,
            "fixture_directories": self.fixture_directories,
            "test_path_keywords": self.test_path_keywords,
            "test_content_keywords": self.test_content_keywords,
            "documentation_extensions": self.documentation_extensions,
            "config_file_patterns": self.config_file_patterns,
            "context_keywords": self.context_keywords,
            "request_identifiers": self.request_identifiers,
            "network_functions": self.network_functions,
            "sensitive_functions": self.sensitive_functions,
            "test_frameworks": self.test_frameworks,
            "test_name_pattern": self.test_name_pattern,
            "log_level": self.log_level,
            "log_file": self.log_file,
        }
