"""
Session — ブラウザセッション管理

Playwright ブラウザの起動・終了・状態管理を担当する。
記録（RecordingSession）と再生（ReplayEngine）の両方が同じクラスを使い、
どちらがセッションを所有しているかを owner で区別する。

主な機能:
  - ブラウザの起動（headed/headless、永続プロファイル切り替え）
  - Context / Page の生成と管理
  - セッション状態の追跡
  - リソースの安全なクリーンアップ
"""

from __future__ import annotations

import enum
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Page, Playwright

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# セッション状態
# ---------------------------------------------------------------------------

class SessionState(enum.Enum):
    """ブラウザセッションの状態。"""

    IDLE = "idle"
    LAUNCHING = "launching"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


# ---------------------------------------------------------------------------
# BrowserSession 本体
# ---------------------------------------------------------------------------

class BrowserSession:
    """Playwright ブラウザセッションの管理クラス。

    ブラウザの起動から終了までのライフサイクルを管理し、
    BrowserContext / Page オブジェクトへのアクセスを提供する。
    """

    def __init__(self, owner: str = "") -> None:
        """BrowserSession を初期化する。

        Args:
            owner: セッションの所有者名（"recording" / "replay" 等、ログ用）
        """
        self.owner = owner
        self._state: SessionState = SessionState.IDLE
        self._pw_instance: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    @property
    def state(self) -> SessionState:
        """現在のセッション状態を返す。"""
        return self._state

    @property
    def is_active(self) -> bool:
        """セッションがアクティブかどうかを返す。"""
        return self._state == SessionState.ACTIVE

    @property
    def context(self) -> Optional[BrowserContext]:
        """現在の BrowserContext を返す。非アクティブ時は None。"""
        if not self.is_active:
            return None
        return self._context

    @property
    def page(self) -> Optional[Page]:
        """現在の Page オブジェクトを返す。非アクティブ時は None。"""
        if not self.is_active:
            return None
        return self._page

    async def launch(
        self,
        headed: bool = True,
        viewport_width: int = 1280,
        viewport_height: int = 720,
        user_data_dir: Optional[str] = None,
    ) -> None:
        """ブラウザを起動し、Page を用意する。

        user_data_dir を指定した場合は永続プロファイルで起動し、
        Cookie やキャッシュをセッション間で引き継ぐ。

        Args:
            headed: True でブラウザウィンドウを表示
            viewport_width: ビューポート幅
            viewport_height: ビューポート高さ
            user_data_dir: 永続プロファイルのディレクトリ（None で使い捨て）

        Raises:
            RuntimeError: 既にアクティブなセッションがある場合
        """
        if self._state == SessionState.ACTIVE:
            raise RuntimeError(
                "既にアクティブなセッションがあります。"
                "先に close() を呼んでください。"
            )

        self._state = SessionState.LAUNCHING
        logger.info("ブラウザを起動しています... (owner=%s, headed=%s)", self.owner, headed)

        try:
            from playwright.async_api import async_playwright

            pw = await async_playwright().start()
            self._pw_instance = pw

            viewport = {"width": viewport_width, "height": viewport_height}

            if user_data_dir:
                Path(user_data_dir).mkdir(parents=True, exist_ok=True)
                self._context = await pw.chromium.launch_persistent_context(
                    user_data_dir,
                    headless=not headed,
                    viewport=viewport,
                )
                pages = self._context.pages
                self._page = pages[0] if pages else await self._context.new_page()
            else:
                self._browser = await pw.chromium.launch(headless=not headed)
                self._context = await self._browser.new_context(viewport=viewport)
                self._page = await self._context.new_page()

            self._state = SessionState.ACTIVE
            logger.info("ブラウザを起動しました")

        except Exception:
            self._state = SessionState.IDLE
            logger.exception("ブラウザの起動に失敗しました")
            await self._release()
            raise

    async def close(self) -> None:
        """ブラウザを終了し、リソースをクリーンアップする。"""
        if self._state in (SessionState.CLOSED, SessionState.CLOSING):
            return

        self._state = SessionState.CLOSING
        logger.info("ブラウザを終了しています... (owner=%s)", self.owner)

        try:
            await self._release()
        finally:
            self._state = SessionState.CLOSED
            logger.info("ブラウザを終了しました")

    async def _release(self) -> None:
        try:
            if self._context is not None:
                await self._context.close()
            if self._browser is not None:
                await self._browser.close()
            if self._pw_instance is not None:
                await self._pw_instance.stop()
        except Exception:
            logger.exception("ブラウザの終了中にエラーが発生しました")
        finally:
            self._browser = None
            self._context = None
            self._page = None
            self._pw_instance = None
