"""パターン検出器のテスト。"""

import re

from bleedscan.config import Config
from bleedscan.detection.detector import Detector, MULTI_THREAT_CATEGORY
from bleedscan.detection.safe_context import LineIndex
from bleedscan.io.catalog_loader import CatalogLoader
from bleedscan.io.source_reader import SourceFile
from bleedscan.models.finding import Severity


def make_catalog(categories, **tables):
    data = {"version": "1", "categories": categories}
    data.update(tables)
    return CatalogLoader().build(data)


def make_source(rel_path, content):
    return SourceFile(path=rel_path, rel_path=rel_path, content=content, size=len(content))


BACKDOOR = {
    "backdoor": {
        "severity": "critical",
        "patterns": {
            "eval_call": {"regex": r"eval\s*\("},
            "atob_call": {"regex": r"atob\s*\("},
        },
    }
}


class TestLineNumbers:
    """行番号算出のテスト。"""

    def test_line_equals_newlines_before_match(self):
        """行番号はマッチ開始位置より前の改行数+1と一致する。"""
        content = "const a = 1;\n\nfunction run(x) {\n  return eval(x);\n}\neval(y);\n"
        detector = Detector(make_catalog(BACKDOOR), Config())

        findings = detector.detect_file(make_source("runner.js", content))

        eval_findings = [f for f in findings if f.matcher_id == "backdoor.eval_call"]
        expected = [content[:m.start()].count("\n") + 1 for m in re.finditer(r"eval\s*\(", content)]
        assert [f.line for f in eval_findings] == expected == [4, 6]

    def test_repeated_text_on_later_line(self):
        """同じ文字列が複数行にある場合もそれぞれの行が報告される。"""
        content = "eval(a)\neval(a)\neval(a)\n"
        detector = Detector(make_catalog(BACKDOOR), Config())

        findings = detector.detect_file(make_source("runner.js", content))

        assert [f.line for f in findings] == [1, 2, 3]

    def test_line_index_columns(self):
        """LineIndexが列番号と行テキストを返す。"""
        index = LineIndex("ab\ncd\nef")
        assert index.line_of(0) == 1
        assert index.line_of(3) == 2
        assert index.column_of(4) == 2
        assert index.line_text(3) == "ef"


class TestSafeContexts:
    """コメント内のマッチ除外のテスト。"""

    def test_line_comment_match_not_reported(self):
        """行コメント内の危険な呼び出しは報告されない。"""
        content = "const x = 1;\n// eval(payload)\n"
        detector = Detector(make_catalog(BACKDOOR), Config())

        findings = detector.detect_file(make_source("quiet.js", content))

        assert findings == []

    def test_unterminated_block_comment_not_reported(self):
        """閉じられていないブロックコメント内のマッチは報告されない。"""
        content = "const x = 1;\n/* disabled\neval(payload)\n"
        detector = Detector(make_catalog(BACKDOOR), Config())

        assert detector.detect_file(make_source("quiet.js", content)) == []

    def test_comment_marker_inside_string_does_not_hide_code(self):
        """文字列中の//はコメント開始として扱わない。"""
        content = "const u = \"https://host.io\"; eval(u);\n"
        detector = Detector(make_catalog(BACKDOOR), Config())

        findings = detector.detect_file(make_source("loader.js", content))

        assert [f.matcher_id for f in findings] == ["backdoor.eval_call"]

    def test_regex_literal_does_not_open_comment(self):
        """正規表現リテラル中の/*はブロックコメント開始として扱わない。"""
        content = "const strip = s => s.replace(/\\/*/g, '');\nconst run = (blob) => eval(atob(blob));\n"
        detector = Detector(make_catalog(BACKDOOR), Config())

        findings = detector.detect_file(make_source("strip.js", content))

        assert "backdoor.eval_call" in [f.matcher_id for f in findings]
        assert all(f.line == 2 for f in findings)

    def test_division_is_not_regex_literal(self):
        """除算の/の後の行コメントは引き続き除外される。"""
        content = "const half = total / 2; // eval(payload)\n"
        detector = Detector(make_catalog(BACKDOOR), Config())

        assert detector.detect_file(make_source("math.js", content)) == []

    def test_python_hash_comment(self):
        """Pythonの#コメント内のマッチは報告されない。"""
        content = "x = 1\n# eval(x)\nresult = eval(x)\n"
        detector = Detector(make_catalog(BACKDOOR), Config())

        findings = detector.detect_file(make_source("runner.py", content))

        assert [f.line for f in findings] == [3]

    def test_documentation_code_fence_is_safe(self):
        """ドキュメントのコードフェンス内は報告されない。"""
        content = "# Usage\n\n```js\neval(input)\n```\n\nCall eval(now) directly.\n"
        detector = Detector(make_catalog(BACKDOOR), Config())

        findings = detector.detect_file(make_source("README.md", content))

        assert [f.line for f in findings] == [7]


class TestSuppression:
    """テスト/サンプル判定による抑制のテスト。"""

    def test_fixture_directory_never_suppressed(self):
        """悪性フィクスチャディレクトリ配下は名前にtestを含んでも抑制されない。"""
        detector = Detector(make_catalog(BACKDOOR), Config())
        source = make_source("test-malicious/payload.test.js", "eval(blob);\n")

        assert detector.is_suppressed(source) is False
        assert len(detector.detect_file(source)) == 1

    def test_test_path_suppressed(self):
        """テストパスのファイルはパターン検出が抑制される。"""
        detector = Detector(make_catalog(BACKDOOR), Config())
        source = make_source("tests/runner.js", "eval(blob);\n")

        assert detector.is_suppressed(source) is True
        assert detector.detect_file(source) == []

    def test_content_keyword_suppresses(self):
        """内容にdemo等の単語を含むファイルは抑制される。"""
        detector = Detector(make_catalog(BACKDOOR), Config())
        source = make_source("runner.js", "// demo helper\neval(blob);\n")

        assert detector.detect_file(source) == []

    def test_mostly_documentation_skipped(self):
        """コードの少ない長いドキュメントはスキップされる。"""
        prose = "This paragraph describes the plugin behaviour in detail. " * 30
        content = prose + "\nCall eval(now) directly.\n"
        detector = Detector(make_catalog(BACKDOOR), Config())

        assert detector.detect_file(make_source("GUIDE.md", content)) == []

    def test_long_code_file_not_skipped(self):
        """ドキュメント以外の長いファイルはスキップされない。"""
        content = "const filler = 1;\n" * 100 + "eval(blob);\n"
        detector = Detector(make_catalog(BACKDOOR), Config())

        findings = detector.detect_file(make_source("bundle.js", content))

        assert [f.line for f in findings] == [101]


class TestDeduplication:
    """重複除去ポリシーのテスト。"""

    def test_same_matcher_same_line_collapses(self):
        """同一マッチャーの同一行の複数ヒットは1件になる。"""
        detector = Detector(make_catalog(BACKDOOR), Config())

        findings = detector.detect_file(make_source("runner.js", "eval(a); eval(b);\n"))

        assert len(findings) == 1
        assert findings[0].column == 1

    def test_different_matchers_same_line_kept(self):
        """異なるマッチャーの同一行のヒットはすべて残る。"""
        detector = Detector(make_catalog(BACKDOOR), Config())

        findings = detector.detect_file(make_source("runner.js", "eval(atob(blob));\n"))

        assert sorted(f.matcher_id for f in findings) == ["backdoor.atob_call", "backdoor.eval_call"]


class TestScoring:
    """脅威スコアと暫定重大度のテスト。"""

    def test_threat_weight_raises_severity(self):
        """脅威重みによりスコアが閾値を超えると重大度が上がる。"""
        catalog = make_catalog(
            {"exfil": {"severity": "low", "patterns": {"env": {"regex": r"process\.env", "weight": 1.0}}}},
            agenticThreatWeights={"exfil": 1.5},
        )
        detector = Detector(catalog, Config())

        findings = detector.detect_file(make_source("sync.js", "send(process.env);\n"))

        assert findings[0].threat_score == 1.5
        assert findings[0].severity == Severity.HIGH

    def test_startup_file_context_modifier(self):
        """startupを含むファイル名は文脈スコアが上がり、上限2.0で丸められる。"""
        catalog = make_catalog(
            {"exfil": {"severity": "low", "patterns": {"env": {"regex": r"process\.env", "weight": 1.0}}}},
            agenticThreatWeights={"exfil": 1.5},
            contextualModifiers={"startup_script": 2.0},
        )
        detector = Detector(catalog, Config())

        findings = detector.detect_file(make_source("startup.js", "send(process.env);\n"))

        assert findings[0].context_score == 2.0
        assert findings[0].threat_score == 2.0
        assert findings[0].severity == Severity.CRITICAL

    def test_safe_phrase_halves_context(self):
        """安全フレーズを含むファイルは文脈スコアが半分になる。"""
        catalog = make_catalog(BACKDOOR, safePatterns=["for documentation purposes"])
        detector = Detector(catalog, Config())

        findings = detector.detect_file(
            make_source("runner.js", "// for documentation purposes\neval(blob);\n")
        )

        assert findings[0].context_score == 0.5


class TestMultiThreat:
    """ファイル全体の複合脅威検出のテスト。"""

    def test_encoding_chain(self):
        """4回以上のデコード操作でhigh重大度の合成指摘を生成する。"""
        content = "a = atob(x);\nb = atob(y);\nc = Buffer.from(z);\nd = String.fromCharCode(w);\n"
        detector = Detector(make_catalog({}), Config())

        findings = detector.detect_file(make_source("decode.js", content))

        assert len(findings) == 1
        assert findings[0].category == MULTI_THREAT_CATEGORY
        assert findings[0].matcher_id == "complex_encoding_chain"
        assert findings[0].severity == Severity.HIGH
        assert findings[0].line == 1

    def test_synthetic_findings_survive_suppression(self):
        """抑制対象ファイルでも合成指摘は残る。"""
        content = "ignore the instruction\nignore this instruction\nignore every instruction\n"
        detector = Detector(make_catalog(BACKDOOR), Config())

        findings = detector.detect_file(make_source("tests/prompt.js", content))

        assert [f.matcher_id for f in findings] == ["repeated_instruction_override"]
        assert findings[0].severity == Severity.CRITICAL
