"""
Session テスト — ブラウザセッション管理の単体テスト

Playwright ブラウザの起動・終了・状態管理を検証する。
実際のブラウザ起動はモックで代替し、ロジックのみテストする。
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from srec.core.session import BrowserSession, SessionState


def _mock_playwright() -> tuple[AsyncMock, AsyncMock, AsyncMock, AsyncMock]:
    mock_pw = AsyncMock()
    mock_browser = AsyncMock()
    mock_context = AsyncMock()
    mock_page = AsyncMock()

    mock_pw.chromium.launch.return_value = mock_browser
    mock_pw.chromium.launch_persistent_context.return_value = mock_context
    mock_browser.new_context.return_value = mock_context
    mock_context.new_page.return_value = mock_page
    mock_context.pages = []

    # async_playwright() は session.launch() 内でローカルインポートされる
    mock_async_pw_cm = MagicMock()
    mock_async_pw_cm.start = AsyncMock(return_value=mock_pw)
    return mock_async_pw_cm, mock_pw, mock_context, mock_page


class TestSessionState:
    """SessionState 列挙型のテスト。"""

    def test_all_states_exist(self):
        states = {s.value for s in SessionState}
        assert states == {"idle", "launching", "active", "closing", "closed"}


class TestBrowserSession:
    """BrowserSession のライフサイクル管理テスト。"""

    def test_initial_state_is_idle(self):
        session = BrowserSession()
        assert session.state == SessionState.IDLE
        assert session.is_active is False
        assert session.page is None
        assert session.context is None

    @pytest.mark.asyncio
    async def test_launch_changes_state(self):
        """launch() で状態が ACTIVE になり、page / context が取得できること。"""
        session = BrowserSession(owner="replay")
        cm, mock_pw, mock_context, mock_page = _mock_playwright()

        with patch("playwright.async_api.async_playwright", return_value=cm):
            await session.launch(headed=False, viewport_width=800, viewport_height=600)

        assert session.state == SessionState.ACTIVE
        assert session.page is mock_page
        assert session.context is mock_context
        mock_pw.chromium.launch.assert_awaited_once_with(headless=True)
        mock_pw.chromium.launch.return_value.new_context.assert_awaited_once_with(
            viewport={"width": 800, "height": 600},
        )

    @pytest.mark.asyncio
    async def test_launch_with_profile_uses_persistent_context(self, tmp_path: Path):
        """user_data_dir 指定時は永続コンテキストの既存ページを使うこと。"""
        session = BrowserSession()
        cm, mock_pw, mock_context, _ = _mock_playwright()
        existing_page = AsyncMock()
        mock_context.pages = [existing_page]
        profile = tmp_path / "profile"

        with patch("playwright.async_api.async_playwright", return_value=cm):
            await session.launch(user_data_dir=str(profile))

        assert profile.is_dir()
        assert session.page is existing_page
        mock_pw.chromium.launch.assert_not_called()
        mock_pw.chromium.launch_persistent_context.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_double_launch_raises(self):
        session = BrowserSession()
        session._state = SessionState.ACTIVE
        with pytest.raises(RuntimeError):
            await session.launch()

    @pytest.mark.asyncio
    async def test_launch_failure_releases_resources(self):
        """起動失敗時は IDLE に戻り、Playwright を停止して例外を再送出すること。"""
        session = BrowserSession()
        cm, mock_pw, _, _ = _mock_playwright()
        mock_pw.chromium.launch.side_effect = RuntimeError("browser missing")

        with patch("playwright.async_api.async_playwright", return_value=cm):
            with pytest.raises(RuntimeError, match="browser missing"):
                await session.launch()

        assert session.state == SessionState.IDLE
        mock_pw.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_changes_state(self):
        session = BrowserSession()
        session._state = SessionState.ACTIVE
        mock_context = AsyncMock()
        mock_browser = AsyncMock()
        mock_pw_instance = AsyncMock()
        session._context = mock_context
        session._browser = mock_browser
        session._pw_instance = mock_pw_instance

        await session.close()

        assert session.state == SessionState.CLOSED
        mock_context.close.assert_awaited_once()
        mock_browser.close.assert_awaited_once()
        mock_pw_instance.stop.assert_awaited_once()
        assert session.page is None

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        session = BrowserSession()
        await session.close()
        await session.close()
        assert session.state == SessionState.CLOSED

    @pytest.mark.asyncio
    async def test_close_error_is_logged_not_raised(self):
        session = BrowserSession()
        session._state = SessionState.ACTIVE
        mock_context = AsyncMock()
        mock_context.close.side_effect = RuntimeError("already closed")
        session._context = mock_context

        await session.close()
        assert session.state == SessionState.CLOSED
