"""
RecordingSession — ブラウザ操作の記録セッション

記録用ブラウザを起動し、全ページにキャプチャスクリプトを注入して
ユーザー操作を EventClassifier → StepLedger → StepPersister へ流す。
ブラウザセッション・台帳・分類器はすべてこのオブジェクトが所有し、
MCP サーバーと CLI はこのオブジェクト経由でのみ操作する。

主な機能:
  - start(): ブラウザ起動、スクリプト注入、開始 URL への遷移
  - stop(): 保留入力の確定、ステップファイルの保存、ブラウザ終了
  - replay(): 分類を一時停止して同じブラウザでステップファイルを再生
  - add_note() / clear(): 手動メモの追加と台帳のクリア
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Optional

from ..core.classifier import EventClassifier, RawEvent
from ..core.ledger import StepLedger
from ..core.persister import StepPersister, artifact_filename
from ..core.replay import ExecutionReport, ReplayEngine
from ..core.session import BrowserSession
from ..core.steps import Launch, Navigate, Note, RecordedStep
from .config import ServerConfig

if TYPE_CHECKING:
    from playwright.async_api import Frame, Page

logger = logging.getLogger(__name__)

# キャプチャスクリプトのパス
_CAPTURE_JS_PATH = Path(__file__).parent / "capture.js"

# ページ側から呼び出すバインディング名（capture.js と一致させる）
BINDING_NAME = "__srecEmit"

_ARTIFACT_GLOB = "TestSteps_*.xlsx"


def latest_artifact(output_dir: Path) -> Optional[Path]:
    """出力ディレクトリ内で最も新しいステップファイルを返す。

    Args:
        output_dir: ステップファイルの出力ディレクトリ

    Returns:
        最終更新が最も新しいファイル。見つからない場合は None
    """
    output_dir = Path(output_dir)
    if not output_dir.is_dir():
        return None
    candidates = sorted(
        output_dir.glob(_ARTIFACT_GLOB),
        key=lambda p: p.stat().st_mtime,
    )
    return candidates[-1] if candidates else None


class RecordingSession:
    """記録セッションのオーケストレーター。

    使用例::

        recording = RecordingSession(load_config_from_env())
        await recording.start("https://example.com")
        ...
        path = await recording.stop()
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        session_factory: Callable[[], BrowserSession] = lambda: BrowserSession(owner="recording"),
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """RecordingSession を初期化する。

        Args:
            config: サーバー設定（None でデフォルト）
            session_factory: ブラウザセッション生成関数
            clock: セッション開始時刻とステップのタイムスタンプに使う時計
        """
        self.config = config or ServerConfig()
        self._session_factory = session_factory
        self._clock = clock

        self._session: Optional[BrowserSession] = None
        self._ledger = StepLedger(clock=clock)
        self._classifier: Optional[EventClassifier] = None
        self._closed = asyncio.Event()
        self._stopping = False
        self._teardown: Optional[asyncio.Task[None]] = None

    # -------------------------------------------------------------------
    # 状態
    # -------------------------------------------------------------------

    @property
    def is_recording(self) -> bool:
        """記録用ブラウザが起動中かどうか。"""
        return self._session is not None and self._session.is_active

    @property
    def ledger(self) -> StepLedger:
        return self._ledger

    @property
    def session(self) -> Optional[BrowserSession]:
        return self._session

    @property
    def artifact_path(self) -> Optional[Path]:
        """現在（または直前）の記録のステップファイル。"""
        persister = self._ledger.persister
        return persister.path if persister is not None else None

    def steps(self) -> list[RecordedStep]:
        """記録済みステップのスナップショットを返す。"""
        return self._ledger.all()

    # -------------------------------------------------------------------
    # ライフサイクル
    # -------------------------------------------------------------------

    async def start(self, url: Optional[str] = None, headed: Optional[bool] = None) -> Path:
        """記録用ブラウザを起動し、開始 URL へ遷移する。

        新しい台帳とステップファイルを用意し、Launch と Navigate の
        2ステップを記録してからユーザー操作の捕捉を始める。

        Args:
            url: 開始 URL（None で設定値）
            headed: ブラウザ表示（None で設定値）

        Returns:
            このセッションのステップファイルのパス

        Raises:
            RuntimeError: 既に記録中の場合
        """
        if self.is_recording:
            raise RuntimeError("既に記録中です。先に stop() を呼んでください。")

        url = url or self.config.start_url
        headed = self.config.headed if headed is None else headed

        started_at = self._clock()
        artifact = Path(self.config.output_dir) / artifact_filename(started_at)
        self._ledger = StepLedger(StepPersister(artifact), clock=self._clock)
        self._classifier = EventClassifier(
            self._ledger,
            start_url=url,
            quiet_period=self.config.quiet_period_ms / 1000.0,
        )
        self._closed = asyncio.Event()
        self._teardown = None

        session = self._session_factory()
        await session.launch(
            headed=headed,
            viewport_width=self.config.viewport_width,
            viewport_height=self.config.viewport_height,
            user_data_dir=self.config.profile_dir or None,
        )
        self._session = session

        try:
            context = session.context
            page = session.page
            if context is None or page is None:
                raise RuntimeError("ブラウザセッションにページがありません")

            await context.add_init_script(path=str(_CAPTURE_JS_PATH))
            await context.expose_binding(BINDING_NAME, self._on_binding)
            page.on("close", self._on_main_page_close)

            self._ledger.append(Launch())

            await page.goto(
                url,
                timeout=self.config.navigation_timeout_ms,
                wait_until="domcontentloaded",
            )
            self._ledger.append(Navigate(url=url))
            # リダイレクト後の URL も開始 URL として扱う
            self._classifier.add_start_url(page.url)

            self._watch_page(page)
            context.on("page", self._on_new_page)
            await self._classifier.start()
        except Exception:
            logger.exception("記録の開始に失敗しました")
            await self._shutdown()
            raise

        logger.info("記録を開始しました: %s -> %s", url, artifact)
        return artifact

    async def stop(self) -> Optional[Path]:
        """保留中の入力を確定し、ステップファイルを保存してブラウザを閉じる。

        Returns:
            ステップファイルのパス。記録していなかった場合は None
        """
        teardown, self._teardown = self._teardown, None
        if teardown is not None:
            # ページが閉じられて終了処理が走っている
            await teardown
            return self.artifact_path

        if self._session is None or self._stopping:
            return None

        await self._shutdown()
        path = self.artifact_path
        logger.info("記録を終了しました: %s (%d ステップ)", path, self._ledger.count)
        return path

    async def wait_until_closed(self) -> None:
        """記録が終了する（ページが閉じられる）まで待つ。"""
        await self._closed.wait()

    async def _shutdown(self) -> None:
        self._stopping = True
        try:
            if self._classifier is not None:
                await self._classifier.stop()
            self._ledger.flush()
            if self._session is not None:
                await self._session.close()
        finally:
            self._session = None
            self._stopping = False
            self._closed.set()

    async def _shutdown_after_page_close(self) -> None:
        try:
            await self._shutdown()
        except Exception:
            logger.exception("ページを閉じた後の記録終了処理に失敗しました")
            return
        logger.info(
            "記録を終了しました: %s (%d ステップ)", self.artifact_path, self._ledger.count,
        )

    # -------------------------------------------------------------------
    # 台帳操作
    # -------------------------------------------------------------------

    def add_note(self, text: str) -> RecordedStep:
        """手動メモを1ステップとして追加する。"""
        return self._ledger.append(Note(text=text))

    def clear(self) -> int:
        """台帳を空にする。

        Returns:
            クリア前のステップ数
        """
        count = self._ledger.clear()
        if self._classifier is not None:
            self._classifier.reset()
        return count

    # -------------------------------------------------------------------
    # 再生
    # -------------------------------------------------------------------

    async def replay(
        self,
        artifact_path: Path,
        headed: Optional[bool] = None,
    ) -> ExecutionReport:
        """ステップファイルを再生する。

        記録中は同じブラウザで再生し、その間の操作は記録しない。
        記録していない場合は再生専用のブラウザを起動する。

        Args:
            artifact_path: 再生するステップファイル
            headed: 再生専用ブラウザの表示（None で設定値）

        Returns:
            再生結果
        """
        engine = ReplayEngine(self.config.replay_config(headed))

        if not self.is_recording or self._classifier is None:
            return await engine.execute(Path(artifact_path))

        await self._classifier.flush()
        self._classifier.suspend()
        try:
            return await engine.execute(Path(artifact_path), session=self._session)
        finally:
            self._classifier.resume()

    # -------------------------------------------------------------------
    # ブラウザイベント
    # -------------------------------------------------------------------

    def _on_binding(self, source: Any, payload: Any) -> None:
        """キャプチャスクリプトからのイベントを分類器へ渡す。"""
        if self._classifier is None or not isinstance(payload, dict):
            return
        self._classifier.submit(payload)

    def _watch_page(self, page: Page) -> None:
        def on_navigated(frame: Frame) -> None:
            if frame != page.main_frame or self._classifier is None:
                return
            self._classifier.submit(RawEvent(kind="navigate", url=frame.url))

        page.on("framenavigated", on_navigated)

    def _on_new_page(self, page: Page) -> None:
        if self._classifier is None:
            return
        self._classifier.submit(RawEvent(kind="new_tab", url=page.url))
        self._watch_page(page)

    def _on_main_page_close(self, page: Page) -> None:
        """記録用ページが閉じられたら記録を終了する。

        stop() によるブラウザ終了で発火した場合は何もしない。
        """
        if self._session is None or self._stopping or self._teardown is not None:
            return
        logger.info("記録用ページが閉じられました。記録を終了します")
        self._teardown = asyncio.get_running_loop().create_task(
            self._shutdown_after_page_close(), name="srec-recording-close",
        )
