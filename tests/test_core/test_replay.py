"""
ReplayEngine のユニットテスト

ステップファイルは StepPersister で実際に書き出し、ブラウザ操作は
AsyncMock の Page / BrowserContext で代替する。

テスト対象:
  - 行ごとの分類（passed / failed / skipped / info）
  - 失敗しても後続の行を実行すること
  - 中断条件（セッションなし、ファイルなし、シートなし）
  - 自前で起動したセッションのみ閉じること
  - 新規タブへの切り替え
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import make_fake_page, make_fake_session
from srec.core.persister import ArtifactNotFoundError, StepPersister, WorksheetNotFoundError
from srec.core.replay import (
    REASON_NO_LOCATOR,
    REASON_UNSUPPORTED,
    ExecutionReport,
    ExecutionResult,
    ReplayConfig,
    ReplayEngine,
    SessionUnavailableError,
)
from srec.core.steps import Click, Fill, Launch, Navigate, NewTab, Note, RecordedStep

FAST = ReplayConfig(action_timeout=200, navigation_timeout=200, pacing=0)


def _write(path: Path, actions: list) -> Path:
    StepPersister.write(path, [
        RecordedStep(step_number=i, timestamp=datetime(2025, 1, 1), action=a)
        for i, a in enumerate(actions, start=1)
    ])
    return path


def _write_rows(path: Path, rows: list[tuple]) -> Path:
    from openpyxl import Workbook

    wb = Workbook()
    ws = wb.active
    ws.title = "Test Steps"
    ws.append(["Step No", "Actual Step", "Locator", "Expected Results"])
    for row in rows:
        ws.append(list(row))
    wb.save(path)
    return path


def _statuses(report: ExecutionReport) -> list[str]:
    return [r.status for r in report.results]


# ---------------------------------------------------------------------------
# 行ごとの実行
# ---------------------------------------------------------------------------

class TestRowExecution:
    """行の分類と実行のテスト。"""

    @pytest.mark.asyncio
    async def test_missing_element_fails_only_that_row(self, tmp_path: Path):
        """2 行目の要素が見つからなくても 3 行目まで実行されること。"""
        path = _write(tmp_path / "steps.xlsx", [
            Navigate(url="https://example.com/login"),
            Click(target='//button[text()="Missing"]', label="Missing"),
            Fill(target='//input[@name="email"]', field="email", value="alice@example.com"),
        ])
        page = make_fake_page()

        def locate(selector: str) -> MagicMock:
            located = MagicMock()
            located.first.fill = AsyncMock()
            if "Missing" in selector:
                located.first.click = AsyncMock(
                    side_effect=RuntimeError("Timeout 200ms exceeded waiting for locator"),
                )
            else:
                located.first.click = AsyncMock()
            return located

        page.locator.side_effect = locate
        session = make_fake_session(page)

        report = await ReplayEngine(FAST).execute(path, session=session)

        assert _statuses(report) == ["passed", "failed", "passed"]
        failed = report.results[1]
        assert "Timeout 200ms exceeded" in failed.error
        assert failed.action == "click"
        page.goto.assert_awaited_once_with(
            "https://example.com/login", timeout=200, wait_until="domcontentloaded",
        )
        page.locator.assert_any_call('xpath=//input[@name="email"]')
        assert report.status == "failed"
        session.close.assert_not_called()

    @pytest.mark.asyncio
    async def test_info_and_skipped_rows(self, tmp_path: Path):
        path = _write_rows(tmp_path / "steps.xlsx", [
            (1, "Browser launched successfully", None, "Browser should open"),
            (2, "Note: logged in as admin", None, None),
            (3, 'Clicked on "Submit"', None, "Element should be clickable"),
            (4, 'Entered "x" into name', "", None),
            (5, "Scrolled down 300px", None, None),
        ])
        page = make_fake_page()

        report = await ReplayEngine(FAST).execute(path, session=make_fake_session(page))

        assert _statuses(report) == ["info", "info", "skipped", "skipped", "skipped"]
        assert [r.reason for r in report.results[2:]] == [
            REASON_NO_LOCATOR, REASON_NO_LOCATOR, REASON_UNSUPPORTED,
        ]
        page.locator.assert_not_called()
        assert report.status == "passed"
        assert report.executable == 3
        assert report.pass_rate == 0.0

    @pytest.mark.asyncio
    async def test_fill_uses_recorded_value(self, tmp_path: Path):
        path = _write(tmp_path / "steps.xlsx", [
            Fill(target='//*[@id="q"]', field="q", value="playwright"),
        ])
        page = make_fake_page()

        report = await ReplayEngine(FAST).execute(path, session=make_fake_session(page))

        assert _statuses(report) == ["passed"]
        page.locator.assert_called_once_with('xpath=//*[@id="q"]')
        page.locator.return_value.first.fill.assert_awaited_once_with("playwright", timeout=200)

    @pytest.mark.asyncio
    async def test_hung_action_times_out(self, tmp_path: Path):
        """Playwright のタイムアウトが効かない場合も行単位の上限で失敗になること。"""
        path = _write(tmp_path / "steps.xlsx", [
            Click(target="//button", label="Hang"),
            Note(text="after"),
        ])
        page = make_fake_page()

        async def hang(*args, **kwargs):
            await asyncio.sleep(10)

        page.locator.return_value.first.click = AsyncMock(side_effect=hang)
        config = ReplayConfig(action_timeout=50, navigation_timeout=50, pacing=0)

        report = await ReplayEngine(config).execute(path, session=make_fake_session(page))

        assert _statuses(report) == ["failed", "info"]
        assert "did not finish" in report.results[0].error

    @pytest.mark.asyncio
    async def test_results_carry_timing(self, tmp_path: Path):
        path = _write(tmp_path / "steps.xlsx", [Navigate(url="https://example.com")])
        report = await ReplayEngine(FAST).execute(path, session=make_fake_session())

        result = report.results[0]
        assert isinstance(result, ExecutionResult)
        assert result.started_at is not None
        assert result.finished_at is not None
        assert result.started_at <= result.finished_at
        assert result.duration_ms >= 0
        assert report.duration_ms >= result.duration_ms

    @pytest.mark.asyncio
    async def test_pacing_only_after_executed_rows(self, tmp_path: Path, monkeypatch):
        path = _write(tmp_path / "steps.xlsx", [
            Launch(),
            Navigate(url="https://example.com"),
            Note(text="n"),
        ])
        sleeps: list[float] = []
        real_sleep = asyncio.sleep

        async def fake_sleep(delay: float, *args, **kwargs):
            sleeps.append(delay)
            await real_sleep(0)

        monkeypatch.setattr("srec.core.replay.asyncio.sleep", fake_sleep)
        config = ReplayConfig(action_timeout=200, navigation_timeout=200, pacing=500)

        await ReplayEngine(config).execute(path, session=make_fake_session())

        assert sleeps == [0.5]


# ---------------------------------------------------------------------------
# 新規タブ
# ---------------------------------------------------------------------------

class TestNewTab:
    """新規タブへの切り替えテスト。"""

    @pytest.mark.asyncio
    async def test_switches_to_already_open_page(self, tmp_path: Path):
        """クリックで開いた新しいページに後続の操作が向くこと。"""
        path = _write(tmp_path / "steps.xlsx", [
            Click(target='//a[text()="Help"]', label="Help"),
            NewTab(url="https://example.com/help"),
            Click(target='//button[text()="Close"]', label="Close"),
        ])
        first = make_fake_page()
        popup = make_fake_page("https://example.com/help")
        session = make_fake_session(first)

        async def open_popup(*args, **kwargs):
            session.context.pages.append(popup)

        first.locator.return_value.first.click = AsyncMock(side_effect=open_popup)

        report = await ReplayEngine(FAST).execute(path, session=session)

        assert _statuses(report) == ["passed", "passed", "passed"]
        popup.wait_for_load_state.assert_awaited_once()
        popup.locator.assert_called_once_with('xpath=//button[text()="Close"]')
        session.context.wait_for_event.assert_not_called()

    @pytest.mark.asyncio
    async def test_waits_for_page_event(self, tmp_path: Path):
        path = _write(tmp_path / "steps.xlsx", [NewTab()])
        popup = make_fake_page()
        session = make_fake_session()
        session.context.wait_for_event = AsyncMock(return_value=popup)

        report = await ReplayEngine(FAST).execute(path, session=session)

        assert _statuses(report) == ["passed"]
        session.context.wait_for_event.assert_awaited_once_with("page", timeout=200)

    @pytest.mark.asyncio
    async def test_no_new_page_fails(self, tmp_path: Path):
        path = _write(tmp_path / "steps.xlsx", [NewTab()])
        session = make_fake_session()
        session.context.wait_for_event = AsyncMock(side_effect=RuntimeError("Timeout waiting for event \"page\""))

        report = await ReplayEngine(FAST).execute(path, session=session)

        assert _statuses(report) == ["failed"]
        assert "page" in report.results[0].error


# ---------------------------------------------------------------------------
# 中断条件とセッション所有
# ---------------------------------------------------------------------------

class TestAbort:
    """再生全体の中断テスト。"""

    @pytest.mark.asyncio
    async def test_inactive_session_aborts(self, tmp_path: Path):
        path = _write(tmp_path / "steps.xlsx", [Navigate(url="https://example.com")])
        session = make_fake_session()
        session.is_active = False

        with pytest.raises(SessionUnavailableError):
            await ReplayEngine(FAST).execute(path, session=session)
        session.page.goto.assert_not_called()

    @pytest.mark.asyncio
    async def test_closed_page_aborts(self, tmp_path: Path):
        """ページが閉じられたセッションではどの行も実行しないこと。"""
        path = _write(tmp_path / "steps.xlsx", [Navigate(url="https://example.com")])
        session = make_fake_session()
        session.page.is_closed.return_value = True

        with pytest.raises(SessionUnavailableError):
            await ReplayEngine(FAST).execute(path, session=session)
        session.page.goto.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_file_aborts(self, tmp_path: Path):
        with pytest.raises(ArtifactNotFoundError):
            await ReplayEngine(FAST).execute(tmp_path / "none.xlsx", session=make_fake_session())

    @pytest.mark.asyncio
    async def test_missing_sheet_aborts_before_launch(self, tmp_path: Path):
        from openpyxl import Workbook

        path = tmp_path / "steps.xlsx"
        Workbook().save(path)
        factory = MagicMock()

        with pytest.raises(WorksheetNotFoundError):
            await ReplayEngine(FAST, session_factory=factory).execute(path)
        factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_launch_failure_aborts(self, tmp_path: Path):
        path = _write(tmp_path / "steps.xlsx", [Navigate(url="https://example.com")])
        session = make_fake_session()
        session.launch = AsyncMock(side_effect=RuntimeError("Executable doesn't exist"))

        with pytest.raises(SessionUnavailableError, match="Executable"):
            await ReplayEngine(FAST, session_factory=lambda: session).execute(path)


class TestSessionOwnership:
    """セッション所有のテスト。"""

    @pytest.mark.asyncio
    async def test_owned_session_is_launched_and_closed(self, tmp_path: Path):
        path = _write(tmp_path / "steps.xlsx", [Navigate(url="https://example.com")])
        session = make_fake_session()
        config = ReplayConfig(headed=True, action_timeout=200, navigation_timeout=200, pacing=0)

        report = await ReplayEngine(config, session_factory=lambda: session).execute(path)

        assert report.passed == 1
        session.launch.assert_awaited_once_with(headed=True, viewport_width=1280, viewport_height=720)
        session.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_owned_session_closed_even_on_error(self, tmp_path: Path, monkeypatch):
        path = _write(tmp_path / "steps.xlsx", [Navigate(url="https://example.com")])
        session = make_fake_session()
        engine = ReplayEngine(FAST, session_factory=lambda: session)

        async def boom(*args, **kwargs):
            raise RuntimeError("interrupted")

        monkeypatch.setattr(engine, "_execute_row", boom)
        with pytest.raises(RuntimeError, match="interrupted"):
            await engine.execute(path)
        session.close.assert_awaited_once()


# ---------------------------------------------------------------------------
# ExecutionReport
# ---------------------------------------------------------------------------

class TestExecutionReport:
    """集計プロパティのテスト。"""

    def _result(self, status: str) -> ExecutionResult:
        return ExecutionResult(step_number=1, description="d", locator="", action="click", status=status)

    def test_counts_and_rate(self):
        report = ExecutionReport(
            artifact_path=Path("x.xlsx"),
            results=tuple(self._result(s) for s in ["passed", "passed", "failed", "skipped", "info"]),
        )
        assert (report.total, report.passed, report.failed, report.skipped, report.info) == (5, 2, 1, 1, 1)
        assert report.executable == 4
        assert report.pass_rate == 0.5
        assert report.status == "failed"

    def test_empty_report(self):
        report = ExecutionReport(artifact_path=Path("x.xlsx"))
        assert report.pass_rate == 0.0
        assert report.status == "passed"
