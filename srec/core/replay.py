"""
ReplayEngine — 記録済みステップファイルの再生エンジン

xlsx のステップファイルを読み込み、各行を操作種別に分類して
Playwright でブラウザ操作を順番に実行する。行ごとの結果（passed / failed /
skipped / info）と所要時間を ExecutionReport に集約する。

主な機能:
  - ReplayConfig: 再生設定（タイムアウト、行間の待機、ブラウザ表示）
  - ExecutionResult / ExecutionReport: 実行結果データクラス
  - ReplayEngine: 再生エンジン本体

1行の失敗で再生全体を中断することはない。中断するのは、
セッションが使えない場合とステップファイルを読めない場合のみ。
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Literal, Optional

from .locator import build_locator
from .persister import ArtifactRow, ReplayAbortedError, StepPersister
from .session import BrowserSession
from .steps import Click, Fill, Launch, Navigate, NewTab, Note, StepAction, parse_description

if TYPE_CHECKING:
    from playwright.async_api import BrowserContext, Page

logger = logging.getLogger(__name__)

StepStatus = Literal["passed", "failed", "skipped", "info"]

REASON_NO_LOCATOR = "no locator"
REASON_UNSUPPORTED = "unsupported step type"


# ---------------------------------------------------------------------------
# エラー定義
# ---------------------------------------------------------------------------

class SessionUnavailableError(ReplayAbortedError):
    """再生に使えるブラウザセッションがない。"""


# ---------------------------------------------------------------------------
# 設定・結果データクラス
# ---------------------------------------------------------------------------

@dataclass
class ReplayConfig:
    """ReplayEngine の実行設定。

    Attributes:
        headed: 自前で起動するブラウザを表示するか
        action_timeout: click / fill / 新規タブ待機のタイムアウト（ミリ秒）
        navigation_timeout: ページ遷移のタイムアウト（ミリ秒）
        pacing: 実行した行の後に入れる待機（ミリ秒）。ページの状態を落ち着かせる
        viewport_width: 自前で起動するブラウザのビューポート幅
        viewport_height: 自前で起動するブラウザのビューポート高さ
    """

    headed: bool = False
    action_timeout: int = 5_000
    navigation_timeout: int = 15_000
    pacing: int = 1_000
    viewport_width: int = 1280
    viewport_height: int = 720


@dataclass(frozen=True)
class ExecutionResult:
    """1行分の実行結果。

    Attributes:
        step_number: ステップファイルの Step No
        description: ステップの説明文
        locator: ロケーター（空文字可）
        action: 分類結果（navigate / click / fill / new_tab / launch / note / unsupported）
        status: 実行結果
        error: 失敗時の例外メッセージ（失敗以外は空）
        reason: スキップ理由（スキップ以外は空）
        started_at: 開始日時
        finished_at: 終了日時
        duration_ms: 実行時間（ミリ秒）
    """

    step_number: int
    description: str
    locator: str
    action: str
    status: StepStatus
    error: str = ""
    reason: str = ""
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    duration_ms: float = 0.0


@dataclass(frozen=True)
class ExecutionReport:
    """1回の再生全体の結果。生成後は変更しない。

    Attributes:
        artifact_path: 再生したステップファイル
        results: 行ごとの実行結果（ファイルの行順）
        started_at: 実行開始日時
        finished_at: 実行終了日時
        duration_ms: 全体実行時間（ミリ秒）
    """

    artifact_path: Path
    results: tuple[ExecutionResult, ...] = ()
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    duration_ms: float = 0.0

    def _count(self, status: StepStatus) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def passed(self) -> int:
        return self._count("passed")

    @property
    def failed(self) -> int:
        return self._count("failed")

    @property
    def skipped(self) -> int:
        return self._count("skipped")

    @property
    def info(self) -> int:
        return self._count("info")

    @property
    def executable(self) -> int:
        """情報行を除いた行数。"""
        return self.total - self.info

    @property
    def pass_rate(self) -> float:
        """passed / executable（実行対象がなければ 0.0）。"""
        if self.executable == 0:
            return 0.0
        return self.passed / self.executable

    @property
    def status(self) -> Literal["passed", "failed"]:
        return "failed" if self.failed else "passed"


# ---------------------------------------------------------------------------
# 再生中の可変状態
# ---------------------------------------------------------------------------

@dataclass
class _ReplayTarget:
    """再生中の操作対象。新規タブで page が切り替わる。"""

    page: Page
    context: BrowserContext
    known_pages: list[Page] = field(default_factory=list)


# ---------------------------------------------------------------------------
# ReplayEngine 本体
# ---------------------------------------------------------------------------

class ReplayEngine:
    """記録済みステップファイルの再生エンジン。

    使用例::

        engine = ReplayEngine(ReplayConfig(headed=True))
        report = await engine.execute(Path("StepRecorder/TestSteps_....xlsx"))
    """

    def __init__(
        self,
        config: Optional[ReplayConfig] = None,
        session_factory: Callable[[], BrowserSession] = lambda: BrowserSession(owner="replay"),
    ) -> None:
        """ReplayEngine を初期化する。

        Args:
            config: 再生設定（None でデフォルト）
            session_factory: セッションを渡されなかった場合に使うセッション生成関数
        """
        self.config = config or ReplayConfig()
        self._session_factory = session_factory

    # -------------------------------------------------------------------
    # パブリック API
    # -------------------------------------------------------------------

    async def execute(
        self,
        artifact_path: Path,
        session: Optional[BrowserSession] = None,
    ) -> ExecutionReport:
        """ステップファイルを再生し、結果を返す。

        session を渡さない場合は自前でブラウザを起動し、終了時に閉じる。
        渡されたセッション（記録中のもの等）は閉じない。

        Args:
            artifact_path: 再生する xlsx ファイル
            session: 操作に使うブラウザセッション（None で自前起動）

        Returns:
            再生全体の結果

        Raises:
            SessionUnavailableError: セッションが使えない場合（どの行も実行しない）
            ArtifactNotFoundError: ステップファイルが存在しない場合
            WorksheetNotFoundError: Test Steps シートが存在しない場合
        """
        artifact_path = Path(artifact_path)

        if session is not None and (
            not session.is_active or session.page is None or session.page.is_closed()
        ):
            raise SessionUnavailableError(
                "ブラウザセッションがありません。先に記録を開始するか、"
                "セッションを指定せずに実行してください。"
            )

        rows = StepPersister.read(artifact_path)

        owned = session is None
        if owned:
            session = self._session_factory()
            try:
                await session.launch(
                    headed=self.config.headed,
                    viewport_width=self.config.viewport_width,
                    viewport_height=self.config.viewport_height,
                )
            except Exception as exc:
                raise SessionUnavailableError(f"ブラウザを起動できません: {exc}") from exc

        started_at = datetime.now()
        start_time = time.perf_counter()
        results: list[ExecutionResult] = []

        logger.info("再生を開始します: %s (%d 行)", artifact_path, len(rows))
        try:
            if session is None or session.page is None or session.context is None:
                raise SessionUnavailableError("ブラウザセッションにページがありません")
            target = _ReplayTarget(
                page=session.page,
                context=session.context,
                known_pages=list(session.context.pages),
            )
            for row in rows:
                result = await self._execute_row(target, row)
                results.append(result)
                if result.status in ("passed", "failed") and self.config.pacing > 0:
                    await asyncio.sleep(self.config.pacing / 1000.0)
        finally:
            if owned and session is not None:
                await session.close()

        report = ExecutionReport(
            artifact_path=artifact_path,
            results=tuple(results),
            started_at=started_at,
            finished_at=datetime.now(),
            duration_ms=(time.perf_counter() - start_time) * 1000,
        )
        logger.info(
            "再生が完了しました: %s (passed=%d, failed=%d, skipped=%d, info=%d)",
            report.status, report.passed, report.failed, report.skipped, report.info,
        )
        return report

    # -------------------------------------------------------------------
    # 行の実行
    # -------------------------------------------------------------------

    async def _execute_row(self, target: _ReplayTarget, row: ArtifactRow) -> ExecutionResult:
        """1行を分類して実行し、結果を返す。例外は送出しない。"""
        action = parse_description(row.description, row.locator)
        kind = action.kind if action is not None else "unsupported"
        started_at = datetime.now()
        start_time = time.perf_counter()

        def _result(status: StepStatus, error: str = "", reason: str = "") -> ExecutionResult:
            return ExecutionResult(
                step_number=row.step_number,
                description=row.description,
                locator=row.locator,
                action=kind,
                status=status,
                error=error,
                reason=reason,
                started_at=started_at,
                finished_at=datetime.now(),
                duration_ms=(time.perf_counter() - start_time) * 1000,
            )

        if action is None:
            logger.warning("ステップ %d: 未対応のステップです: %s", row.step_number, row.description)
            return _result("skipped", reason=REASON_UNSUPPORTED)

        if isinstance(action, (Launch, Note)):
            return _result("info")

        if isinstance(action, (Click, Fill)) and not action.locator:
            logger.warning("ステップ %d: ロケーターがないためスキップします", row.step_number)
            return _result("skipped", reason=REASON_NO_LOCATOR)

        try:
            await asyncio.wait_for(
                self._dispatch(target, action),
                timeout=self._hard_timeout(),
            )
        except asyncio.TimeoutError:
            message = (
                f"Step {row.step_number} did not finish within {self._hard_timeout():.0f}s"
            )
            logger.error("ステップ %d でタイムアウト: %s", row.step_number, message)
            return _result("failed", error=message)
        except Exception as exc:
            logger.error("ステップ %d でエラー: %s", row.step_number, exc)
            return _result("failed", error=str(exc) or type(exc).__name__)

        logger.info("ステップ %d: passed (%s)", row.step_number, row.description)
        return _result("passed")

    def _hard_timeout(self) -> float:
        """1行全体の上限（秒）。Playwright 側のタイムアウトより長くとる。"""
        return (self.config.navigation_timeout + self.config.action_timeout) / 1000.0

    async def _dispatch(self, target: _ReplayTarget, action: StepAction) -> None:
        """操作種別に応じてブラウザを操作する。"""
        if isinstance(action, Navigate):
            logger.info("goto: %s", action.url)
            await target.page.goto(
                action.url,
                timeout=self.config.navigation_timeout,
                wait_until="domcontentloaded",
            )
            return

        if isinstance(action, Click):
            await build_locator(target.page, action.locator).click(
                timeout=self.config.action_timeout,
            )
            return

        if isinstance(action, Fill):
            await build_locator(target.page, action.locator).fill(
                action.value,
                timeout=self.config.action_timeout,
            )
            return

        if isinstance(action, NewTab):
            await self._switch_to_new_page(target)
            return

        raise ValueError(f"実行できない操作です: {action.kind}")

    async def _switch_to_new_page(self, target: _ReplayTarget) -> None:
        """まだ操作していない新しいページを待ち、操作対象を切り替える。

        直前のクリックで既に開いている場合はそれを採用し、
        開いていなければ context の page イベントを待つ。
        """
        new_page: Optional[Page] = None
        for page in target.context.pages:
            if page not in target.known_pages:
                new_page = page
                break

        if new_page is None:
            new_page = await target.context.wait_for_event(
                "page", timeout=self.config.action_timeout,
            )

        await new_page.wait_for_load_state(
            "domcontentloaded", timeout=self.config.navigation_timeout,
        )
        target.known_pages.append(new_page)
        target.page = new_page
        logger.info("新しいページに切り替えました: %s", new_page.url)
