"""
Reporter — 再生結果レポートの生成

ExecutionReport を受け取り、テキストサマリー / JSON / HTML / JUnit XML 形式の
レポートを生成する。

主な機能:
  - format_summary(): MCP ツールと CLI 向けのテキストサマリー
  - generate_json(): JSON レポート（report.json）の生成
  - generate_html(): Jinja2 テンプレートを使用した HTML レポート（report.html）の生成
  - generate_junit_xml(): JUnit XML レポート（junit.xml）の生成（CI 統合用）
"""

from __future__ import annotations

import json
import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader

from .replay import ExecutionReport, ExecutionResult

logger = logging.getLogger(__name__)

# テンプレートディレクトリのパス
_TEMPLATES_DIR = Path(__file__).parent.parent / "templates"

_STATUS_MARKS = {
    "passed": "PASS",
    "failed": "FAIL",
    "skipped": "SKIP",
    "info": "INFO",
}


class Reporter:
    """再生結果レポートの生成クラス。"""

    # -------------------------------------------------------------------
    # テキストサマリー
    # -------------------------------------------------------------------

    def format_summary(self, report: ExecutionReport) -> str:
        """再生結果を人が読むテキストにまとめる。

        1行目に全体の件数、続けて各行の結果を1行ずつ並べる。
        失敗行はエラーメッセージ、スキップ行は理由を添える。

        Args:
            report: 再生結果

        Returns:
            複数行のテキスト
        """
        lines = [
            f"Replay {report.status.upper()}: {report.artifact_path.name}",
            (
                f"Total: {report.total}, Passed: {report.passed}, "
                f"Failed: {report.failed}, Skipped: {report.skipped}, "
                f"Info: {report.info}"
            ),
            f"Pass rate: {report.pass_rate * 100:.1f}% ({report.passed}/{report.executable})",
            f"Duration: {report.duration_ms / 1000:.2f}s",
            "",
        ]
        for result in report.results:
            lines.append(self._format_result_line(result))
        return "\n".join(lines).rstrip()

    # -------------------------------------------------------------------
    # JSON レポート
    # -------------------------------------------------------------------

    def generate_json(self, report: ExecutionReport, output_dir: Path) -> Path:
        """JSON レポートを生成する。

        Args:
            report: 再生結果
            output_dir: 出力先ディレクトリ

        Returns:
            生成された report.json のパス
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        report_data = self._build_report_dict(report)

        output_path = output_dir / "report.json"
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(report_data, f, ensure_ascii=False, indent=2)

        logger.info("JSON レポートを生成しました: %s", output_path)
        return output_path

    # -------------------------------------------------------------------
    # HTML レポート
    # -------------------------------------------------------------------

    def generate_html(self, report: ExecutionReport, output_dir: Path) -> Path:
        """HTML レポートを生成する。

        Jinja2 テンプレート（templates/report.html.j2）を使用して
        スタンドアロン HTML レポートを生成する。

        Args:
            report: 再生結果
            output_dir: 出力先ディレクトリ

        Returns:
            生成された report.html のパス
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        report_data = self._build_report_dict(report)

        env = Environment(
            loader=FileSystemLoader(str(_TEMPLATES_DIR)),
            autoescape=True,
        )
        template = env.get_template("report.html.j2")
        html_content = template.render(report=report_data)

        output_path = output_dir / "report.html"
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(html_content)

        logger.info("HTML レポートを生成しました: %s", output_path)
        return output_path

    # -------------------------------------------------------------------
    # JUnit XML レポート
    # -------------------------------------------------------------------

    def generate_junit_xml(self, report: ExecutionReport, output_dir: Path) -> Path:
        """JUnit XML レポートを生成する。

        情報行（Launch / Note）は testcase に含めない。

        Args:
            report: 再生結果
            output_dir: 出力先ディレクトリ

        Returns:
            生成された junit.xml のパス
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        suite_name = report.artifact_path.stem

        testsuites = ET.Element("testsuites")
        testsuite = ET.SubElement(testsuites, "testsuite")
        testsuite.set("name", suite_name)
        testsuite.set("tests", str(report.executable))
        testsuite.set("failures", str(report.failed))
        testsuite.set("skipped", str(report.skipped))
        testsuite.set("time", f"{report.duration_ms / 1000:.3f}")

        for result in report.results:
            if result.status == "info":
                continue
            testcase = ET.SubElement(testsuite, "testcase")
            testcase.set("name", f"{result.step_number}: {result.description}")
            testcase.set("classname", suite_name)
            testcase.set("time", f"{result.duration_ms / 1000:.3f}")

            if result.status == "failed":
                failure = ET.SubElement(testcase, "failure")
                failure.set("message", result.error)
                failure.text = result.error

            if result.status == "skipped":
                skipped = ET.SubElement(testcase, "skipped")
                skipped.set("message", result.reason)

        tree = ET.ElementTree(testsuites)
        output_path = output_dir / "junit.xml"
        ET.indent(tree, space="  ")
        tree.write(
            str(output_path),
            encoding="unicode",
            xml_declaration=True,
        )

        logger.info("JUnit XML レポートを生成しました: %s", output_path)
        return output_path

    # -------------------------------------------------------------------
    # 内部ヘルパー
    # -------------------------------------------------------------------

    def _format_result_line(self, result: ExecutionResult) -> str:
        line = (
            f"[{_STATUS_MARKS[result.status]}] Step {result.step_number}: "
            f"{result.description} ({result.duration_ms:.0f} ms)"
        )
        if result.status == "failed" and result.error:
            line += f" - {result.error}"
        elif result.status == "skipped" and result.reason:
            line += f" - {result.reason}"
        return line

    def _build_report_dict(self, report: ExecutionReport) -> dict[str, Any]:
        """ExecutionReport をレポート用辞書に変換する。"""
        steps_data = [
            {
                "step_number": r.step_number,
                "description": r.description,
                "locator": r.locator,
                "action": r.action,
                "status": r.status,
                "error": r.error,
                "reason": r.reason,
                "duration_ms": r.duration_ms,
            }
            for r in report.results
        ]

        return {
            "artifact": str(report.artifact_path),
            "title": report.artifact_path.name,
            "status": report.status,
            "duration_ms": report.duration_ms,
            "started_at": (
                report.started_at.isoformat() if report.started_at else None
            ),
            "finished_at": (
                report.finished_at.isoformat() if report.finished_at else None
            ),
            "steps": steps_data,
            "summary": {
                "total": report.total,
                "passed": report.passed,
                "failed": report.failed,
                "skipped": report.skipped,
                "info": report.info,
                "pass_rate": round(report.pass_rate, 4),
            },
        }
