"""
ステップモデル — 記録・再生の最小単位

記録された操作をタグ付きバリアント（Launch, Navigate, Click, Fill, NewTab, Note）
として表現する。人間向けの説明文と期待結果はバリアントから描画し、
永続化された説明文からバリアントへの逆変換は parse_description() に集約する。

主な構成:
  - StepAction: 操作バリアントの Union 型（kind で判別）
  - RecordedStep: 採番・タイムスタンプ付きの不変ステップ
  - parse_description(): 説明文 → 操作バリアント
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# 説明文のプレフィックス（再生時のディスパッチキー）
# ---------------------------------------------------------------------------

LAUNCH_PREFIX = "Browser launched"
NAVIGATE_PREFIX = "Navigated to "
CLICK_PREFIX = "Clicked on "
FILL_PREFIX = "Entered "
NEW_TAB_PREFIX = "New tab/window opened: "
NOTE_PREFIX = "Note: "

BLANK_PAGE = "about:blank"

_FILL_PATTERN = re.compile(r'^Entered "(?P<value>.*)" into (?P<field>.*)$', re.DOTALL)


# ---------------------------------------------------------------------------
# 操作バリアント
# ---------------------------------------------------------------------------

class _ActionBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    @property
    def locator(self) -> str:
        """対象要素のロケーター。要素を持たない操作は空文字。"""
        return ""

    def describe(self) -> str:
        raise NotImplementedError

    def expected_result(self) -> str:
        return ""


class Launch(_ActionBase):
    """記録用ブラウザの起動。再生時は情報行として扱う。"""

    kind: Literal["launch"] = "launch"

    def describe(self) -> str:
        return "Browser launched successfully"

    def expected_result(self) -> str:
        return "Browser should open"


class Navigate(_ActionBase):
    """メインフレームの URL 遷移。"""

    kind: Literal["navigate"] = "navigate"
    url: str

    def describe(self) -> str:
        return f"{NAVIGATE_PREFIX}{self.url}"

    def expected_result(self) -> str:
        return "Page should load successfully"


class Click(_ActionBase):
    """要素のクリック。label は説明文に使う短いテキスト。"""

    kind: Literal["click"] = "click"
    target: str = Field(default="", description="XPath ロケーター")
    label: str = "element"

    @property
    def locator(self) -> str:
        return self.target

    def describe(self) -> str:
        return f'{CLICK_PREFIX}"{self.label}"'

    def expected_result(self) -> str:
        return "Element should be clickable"


class Fill(_ActionBase):
    """テキスト入力の確定値。field は説明文に使うフィールド名。"""

    kind: Literal["fill"] = "fill"
    target: str = Field(default="", description="XPath ロケーター")
    field: str = "input field"
    value: str

    @property
    def locator(self) -> str:
        return self.target

    def describe(self) -> str:
        return f'{FILL_PREFIX}"{self.value}" into {self.field}'

    def expected_result(self) -> str:
        return f'Field should contain "{self.value}"'


class NewTab(_ActionBase):
    """新しいタブ／ウィンドウのオープン。"""

    kind: Literal["new_tab"] = "new_tab"
    url: str = BLANK_PAGE

    def describe(self) -> str:
        return f"{NEW_TAB_PREFIX}{self.url or BLANK_PAGE}"

    def expected_result(self) -> str:
        return "New page should open"


class Note(_ActionBase):
    """オペレーターが手動で追加したメモ。"""

    kind: Literal["note"] = "note"
    text: str

    def describe(self) -> str:
        return f"{NOTE_PREFIX}{self.text}"


StepAction = Annotated[
    Union[Launch, Navigate, Click, Fill, NewTab, Note],
    Field(discriminator="kind"),
]
"""全操作バリアントの Union 型。kind フィールドで判別する。"""


# ---------------------------------------------------------------------------
# 記録済みステップ
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RecordedStep:
    """台帳に追加された1ステップ。追加後は変更されない。

    Attributes:
        step_number: 1 始まりの連番
        timestamp: 記録日時
        action: 操作バリアント
    """

    step_number: int
    timestamp: datetime
    action: StepAction

    @property
    def description(self) -> str:
        return self.action.describe()

    @property
    def locator(self) -> str:
        return self.action.locator

    @property
    def expected_result(self) -> str:
        return self.action.expected_result()


# ---------------------------------------------------------------------------
# 説明文の逆変換
# ---------------------------------------------------------------------------

def parse_description(description: str, locator: str = "") -> Optional[StepAction]:
    """永続化された説明文を操作バリアントに戻す。

    Click / Fill はロケーター列の値を target に設定する（空でも生成する）。
    どのパターンにも一致しない場合は None を返す。

    Args:
        description: 「Actual Step」列の説明文
        locator: 「Locator」列の値

    Returns:
        操作バリアント。未対応の説明文は None
    """
    text = description.strip()
    target = locator.strip()

    if text.startswith(LAUNCH_PREFIX):
        return Launch()

    if text.startswith(NOTE_PREFIX):
        return Note(text=text[len(NOTE_PREFIX):])

    if text.startswith(NAVIGATE_PREFIX):
        url = text[len(NAVIGATE_PREFIX):].strip()
        return Navigate(url=url) if url else None

    if text.startswith(CLICK_PREFIX):
        label = text[len(CLICK_PREFIX):].strip()
        if len(label) >= 2 and label.startswith('"') and label.endswith('"'):
            label = label[1:-1]
        return Click(target=target, label=label or "element")

    match = _FILL_PATTERN.match(text)
    if match:
        return Fill(
            target=target,
            field=match.group("field").strip() or "input field",
            value=match.group("value"),
        )

    if text.startswith(NEW_TAB_PREFIX):
        return NewTab(url=text[len(NEW_TAB_PREFIX):].strip() or BLANK_PAGE)

    return None
