"""設定管理のテスト。"""

from pathlib import Path
from tempfile import TemporaryDirectory

from bleedscan.config import Config


class TestConfigDefaults:
    """デフォルト設定のテスト。"""

    def test_defaults(self):
        """既定値が設定されている。"""
        config = Config()

        assert config.catalog_source["path"] == "config/signatures.json"
        assert config.max_file_size == 1024 * 1024
        assert config.workers == 4
        assert config.semantic_analysis is True
        assert config.cross_file_analysis is True
        assert "**/node_modules/**" in config.exclude_patterns

    def test_instances_do_not_share_lists(self):
        """インスタンス間でリストを共有しない。"""
        first = Config()
        second = Config()
        first.include_patterns.append("**/*.rb")
        first.context_keywords["core_module"]["default"] = 9.0

        assert "**/*.rb" not in second.include_patterns
        assert second.context_keywords["core_module"]["default"] == 1.6


class TestConfigLoading:
    """YAML読み込みのテスト。"""

    def test_from_yaml_resolves_catalog_relative_to_file(self):
        """カタログの相対パスは設定ファイルの位置から解決される。"""
        with TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "signatures.json").write_text("{}", encoding="utf-8")
            config_path = Path(tmpdir) / "scan.yaml"
            config_path.write_text(
                "catalog_source:\n"
                "  type: json\n"
                "  path: signatures.json\n"
                "workers: 2\n",
                encoding="utf-8"
            )

            config = Config.from_yaml(str(config_path))

            assert config.catalog_source["path"] == str(Path(tmpdir) / "signatures.json")
            assert config.workers == 2
            assert config.validate() == []

    def test_unknown_key_ignored(self):
        """未知のキーは無視される。"""
        config = Config.from_dict({"unknown_option": 1, "max_file_size": 10})

        assert config.max_file_size == 10
        assert not hasattr(config, "unknown_option")

    def test_empty_yaml(self):
        """空のYAMLはデフォルト設定になる。"""
        with TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "empty.yaml"
            config_path.write_text("", encoding="utf-8")

            config = Config.from_yaml(str(config_path))

        assert config.workers == 4


class TestEnvironment:
    """環境変数による上書きのテスト。"""

    def test_overrides(self, monkeypatch):
        """BLEED_WORKERSとBLEED_LOG_LEVELで上書きされる。"""
        monkeypatch.setenv("BLEED_WORKERS", "8")
        monkeypatch.setenv("BLEED_LOG_LEVEL", "DEBUG")
        config = Config()

        config.apply_environment()

        assert config.workers == 8
        assert config.log_level == "DEBUG"

    def test_invalid_workers_ignored(self, monkeypatch):
        """整数でないBLEED_WORKERSは無視される。"""
        monkeypatch.setenv("BLEED_WORKERS", "many")
        monkeypatch.delenv("BLEED_LOG_LEVEL", raising=False)
        config = Config()

        config.apply_environment()

        assert config.workers == 4
        assert config.log_level == "INFO"


class TestValidation:
    """設定検証のテスト。"""

    def test_errors(self):
        """不正な値はエラーとして報告される。"""
        config = Config.from_dict({
            "catalog_source": {"path": "/nonexistent/signatures.json"},
            "workers": 0,
            "max_file_size": 0,
            "include_patterns": [],
            "context_keywords": {"bad": {"scope": "anywhere", "keywords": ["x"]}},
        })

        errors = config.validate()

        assert len(errors) == 5

    def test_missing_catalog_path(self):
        """カタログパスがない場合はエラー。"""
        config = Config.from_dict({"catalog_source": {"type": "json"}})

        assert len(config.validate()) == 1

    def test_to_dict(self):
        """辞書変換で主要な設定が含まれる。"""
        data = Config().to_dict()

        assert data["workers"] == 4
        assert data["test_name_pattern"] == Config().test_name_pattern
        assert set(data["documentation_extensions"]) == {".md", ".markdown", ".rst", ".txt"}
