"""プラグイン/スキル向け悪性コードスキャナーのメインエントリーポイント。"""

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional
import logging

from .config import Config
from .io.catalog_loader import CatalogError
from .io.source_reader import TargetNotFoundError, find_installed_plugins_dir
from .pipeline import ScanPipeline
from .utils.logger import setup_logging

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/default_config.yaml"


def main(argv: Optional[List[str]] = None) -> int:
    """メインエントリーポイント。

    Args:
        argv: コマンドライン引数（省略時はsys.argv）

    Returns:
        終了コード（critical: 2, high: 1, それ以外: 0、致命的エラー: 1）
    """
    parser = argparse.ArgumentParser(
        description="Scan plugins and skills for malicious or risky code"
    )
    parser.add_argument(
        "target",
        nargs="?",
        help="スキャン対象のファイルまたはディレクトリ"
    )
    parser.add_argument(
        "-c", "--config",
        help=f"設定ファイルパス（デフォルト: {DEFAULT_CONFIG_PATH}）"
    )
    parser.add_argument(
        "-o", "--output",
        help="JSONレポートの出力先（省略時は標準出力）"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="詳細ログを有効にする"
    )
    parser.add_argument(
        "--installed",
        action="store_true",
        help="インストール済みプラグインディレクトリをスキャンする"
    )

    args = parser.parse_args(argv)

    # 設定を読み込み
    if args.config:
        if not Path(args.config).exists():
            print(f"Error: 設定ファイルが見つかりません: {args.config}", file=sys.stderr)
            return 1
        config = Config.from_yaml(args.config)
    elif Path(DEFAULT_CONFIG_PATH).exists():
        config = Config.from_yaml(DEFAULT_CONFIG_PATH)
    else:
        config = Config()
        config.apply_environment()

    if args.verbose:
        config.log_level = "DEBUG"

    # 標準出力はレポート用のため、ログは標準エラーに出力
    setup_logging(level=config.log_level, log_file=config.log_file, stream=sys.stderr)

    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        return 1

    # スキャン対象を決定
    if args.installed:
        plugins_dir = find_installed_plugins_dir()
        if plugins_dir is None:
            logger.error("インストール済みプラグインディレクトリが見つかりません")
            return 1
        target = str(plugins_dir)
    elif args.target:
        target = args.target
    else:
        parser.error("スキャン対象または--installedが必要です")

    try:
        pipeline = ScanPipeline(config)
        report = pipeline.scan(target)
    except TargetNotFoundError as e:
        logger.error(str(e))
        return 1
    except CatalogError as e:
        logger.error(f"Pattern catalog error: {e}")
        return 1

    output = json.dumps(report.to_dict(), indent=2, ensure_ascii=False)
    if args.output:
        Path(args.output).write_text(output + "\n", encoding="utf-8")
        logger.info(f"Report written: {args.output}")
    else:
        print(output)

    logger.info(
        f"Risk score {report.risk_score} ({report.verdict}), "
        f"{len(report.findings)} findings in {report.files_scanned} files"
    )
    return report.exit_code()


if __name__ == "__main__":
    sys.exit(main())
