"""
テスト共通フィクスチャ・Hypothesis ストラテジー定義

全テストモジュールで共有するフィクスチャとデータ生成器を提供する。
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Iterator
from unittest.mock import AsyncMock, MagicMock

import pytest
from hypothesis import strategies as st

from srec.core.locator import ElementInfo
from srec.core.steps import Click, Fill, Navigate, NewTab, Note


# ---------------------------------------------------------------------------
# pytest フィクスチャ
# ---------------------------------------------------------------------------

@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    """呼び出すたびに 1 秒ずつ進む時計。"""
    base = datetime(2025, 3, 15, 10, 30, 45)
    ticks: Iterator[int] = iter(range(10_000))

    def _clock() -> datetime:
        return base + timedelta(seconds=next(ticks))

    return _clock


def make_fake_page(url: str = "https://example.com/") -> MagicMock:
    """Playwright Page の代替。

    locator(sel).first.click / fill と goto を AsyncMock にしておき、
    呼び出された XPath を page.locator の call_args で検証できるようにする。
    """
    page = MagicMock()
    page.url = url
    page.is_closed = MagicMock(return_value=False)
    page.goto = AsyncMock()
    page.wait_for_load_state = AsyncMock()
    page.locator.return_value.first.click = AsyncMock()
    page.locator.return_value.first.fill = AsyncMock()
    return page


def make_fake_session(page: MagicMock | None = None) -> MagicMock:
    """アクティブな BrowserSession の代替。"""
    page = page or make_fake_page()
    context = MagicMock()
    context.pages = [page]
    context.wait_for_event = AsyncMock()
    context.add_init_script = AsyncMock()
    context.expose_binding = AsyncMock()

    session = MagicMock()
    session.is_active = True
    session.page = page
    session.context = context
    session.launch = AsyncMock()
    session.close = AsyncMock()
    return session


# ---------------------------------------------------------------------------
# Hypothesis ストラテジー
# ---------------------------------------------------------------------------

# xlsx に書き込めて前後空白を持たない文字列
_SAFE_ALPHABET = st.characters(
    whitelist_categories=("Lu", "Ll", "Nd"),
    whitelist_characters=" -_.@/:",
)


def safe_text(min_size: int = 1, max_size: int = 30) -> st.SearchStrategy[str]:
    """前後空白なし・1 文字以上の文字列。"""
    return (
        st.text(alphabet=_SAFE_ALPHABET, min_size=min_size, max_size=max_size)
        .map(str.strip)
        .filter(bool)
    )


def element_infos() -> st.SearchStrategy[ElementInfo]:
    """任意の属性の組み合わせを持つ要素スナップショット。"""
    attr = st.one_of(st.just(""), st.text(max_size=20))
    return st.builds(
        ElementInfo,
        tag=st.sampled_from(["input", "textarea", "button", "a", "span", "div", "label", "", "svg"]),
        id=attr,
        name=attr,
        type=attr,
        placeholder=attr,
        aria_label=attr,
        title=attr,
        class_name=attr,
        text=st.text(max_size=60),
        sibling_index=st.one_of(st.none(), st.integers(min_value=1, max_value=20)),
    )


def step_actions() -> st.SearchStrategy:
    """永続化・逆変換できる操作バリアント。"""
    locator = safe_text().map(lambda s: f'//*[@id="{s}"]')
    return st.one_of(
        st.builds(Navigate, url=safe_text().map(lambda s: f"https://example.com/{s}")),
        st.builds(Click, target=locator, label=safe_text()),
        st.builds(Fill, target=locator, field=safe_text(), value=safe_text()),
        st.builds(NewTab, url=safe_text().map(lambda s: f"https://example.com/{s}")),
        st.builds(Note, text=safe_text()),
    )
