"""ロギング設定モジュール。"""

import logging
import sys
import threading
import time
from pathlib import Path
from typing import Optional, TextIO

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    format_string: Optional[str] = None,
    stream: Optional[TextIO] = None
) -> logging.Logger:
    """ルートロガーを設定する。

    JSONレポートを標準出力に書くエントリーポイントでは、
    streamに標準エラーを渡す。

    Args:
        level: ログレベル（DEBUG, INFO, WARNING, ERROR, CRITICAL）
        log_file: ログファイルへのパス（省略可）
        format_string: カスタムフォーマット文字列（省略可）
        stream: コンソール出力先（省略時は標準出力）

    Returns:
        ルートロガー
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    formatter = logging.Formatter(format_string or DEFAULT_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    return root_logger


class ProgressLogger:
    """ステージ単位の進捗ログ出力ヘルパー。

    ワーカースレッドの完了順にupdateが呼ばれるため、カウンタはロックで保護する。
    """

    def __init__(
        self,
        total: int,
        logger: Optional[logging.Logger] = None,
        log_interval: int = 10,
        stage: str = "Progress"
    ):
        """進捗ロガーを初期化する。

        Args:
            total: ファイルの総数
            logger: 使用するロガー
            log_interval: 進捗を出力する間隔（件数）
            stage: ログに付けるステージ名
        """
        self.total = total
        self.current = 0
        self.logger = logger or logging.getLogger(__name__)
        self.log_interval = max(1, log_interval)
        self.stage = stage
        self._started = time.perf_counter()
        self._lock = threading.Lock()

    def update(self, item: Optional[str] = None) -> None:
        """1件の完了を記録する。

        Args:
            item: 完了したファイルのパス（省略可）
        """
        with self._lock:
            self.current += 1
            current = self.current

        if current % self.log_interval == 0 or current == self.total:
            percent = current / self.total * 100 if self.total else 100.0
            msg = f"{self.stage}: {current}/{self.total} ({percent:.1f}%)"
            if item:
                msg += f" - {item}"
            self.logger.info(msg)

    @property
    def elapsed(self) -> float:
        return time.perf_counter() - self._started

    def complete(self, message: Optional[str] = None) -> None:
        """ステージの完了をログ出力する。

        Args:
            message: 完了メッセージ（省略時はステージ名）
        """
        self.logger.info(
            f"{message or self.stage + ' complete'}: "
            f"{self.current}/{self.total} files in {self.elapsed:.2f}s"
        )
