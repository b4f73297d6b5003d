"""
Locator — 要素スナップショットから XPath ロケーターを合成する

ページ側スクリプトが捕捉した要素属性（ElementInfo）を受け取り、
次回セッションでも要素を再特定できる XPath 文字列を1つ生成する。
また、記録済みロケーター文字列を Playwright Locator に変換する。

主な機能:
  - ElementInfo: ページから送られる要素属性のスナップショット
  - synthesize_locator(): 優先順位付きルールによる XPath 合成
  - xpath_literal(): 引用符を含む値の XPath リテラル化
  - build_locator(): ロケーター文字列 → Playwright Locator 変換
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from playwright.async_api import Locator, Page

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# 合成ルール用の定数
# ---------------------------------------------------------------------------

# テキスト入力系のタグ
TEXT_FIELD_TAGS = ("input", "textarea")

# テキスト内容をロケーターに使うタグ
_TEXT_BEARING_TAGS = ("button", "a", "label", "span")

# テキストロケーターとして採用する最大文字数（超えると不安定とみなす）
_MAX_TEXT_LENGTH = 30


# ---------------------------------------------------------------------------
# 要素スナップショット
# ---------------------------------------------------------------------------

class ElementInfo(BaseModel):
    """ページ側で捕捉した要素属性のスナップショット。

    キャプチャスクリプトは camelCase（ariaLabel, className 等）で送信するため、
    エイリアスで受け取り、Python 側では snake_case で扱う。
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    tag: str = Field(default="", description="タグ名（小文字）")
    id: str = Field(default="", description="id 属性")
    name: str = Field(default="", description="name 属性")
    type: str = Field(default="", description="type 属性")
    placeholder: str = Field(default="", description="placeholder 属性")
    aria_label: str = Field(default="", alias="ariaLabel", description="aria-label 属性")
    title: str = Field(default="", description="title 属性")
    class_name: str = Field(default="", alias="className", description="class 属性")
    text: str = Field(default="", description="前後空白を除いたテキスト内容")
    sibling_index: Optional[int] = Field(
        default=None,
        alias="siblingIndex",
        description="親要素内の同一タグ兄弟における 1 始まりの位置（親なしは None）",
    )

    @property
    def tag_name(self) -> str:
        """小文字化したタグ名。空の場合はワイルドカード。"""
        return self.tag.lower() or "*"

    @property
    def is_text_field(self) -> bool:
        """input / textarea 要素かどうか。"""
        return self.tag_name in TEXT_FIELD_TAGS

    @property
    def first_class(self) -> str:
        """class 属性の最初のトークン。"""
        tokens = self.class_name.split()
        return tokens[0] if tokens else ""


# ---------------------------------------------------------------------------
# パブリック API
# ---------------------------------------------------------------------------

def xpath_literal(value: str) -> str:
    """任意の文字列を XPath の文字列リテラルに変換する。

    ダブルクォートを含まない場合は "..."、シングルクォートのみ含まない場合は
    '...'、両方を含む場合は concat() で連結する。

    Args:
        value: リテラル化する文字列

    Returns:
        XPath 式として埋め込める文字列リテラル
    """
    if '"' not in value:
        return f'"{value}"'
    if "'" not in value:
        return f"'{value}'"

    parts = value.split('"')
    pieces: list[str] = []
    for i, part in enumerate(parts):
        if part:
            pieces.append(f'"{part}"')
        if i < len(parts) - 1:
            pieces.append("'\"'")
    return f"concat({', '.join(pieces)})"


def synthesize_locator(element: ElementInfo) -> str:
    """要素スナップショットから XPath ロケーターを合成する。

    ルールは以下の優先順位で評価し、最初に一致したものを採用する。
    後のルールほどページ再読み込みに対して不安定になる。

      1. id 属性 → //*[@id="..."]
      2. name 属性 → //tag[@name="..."]
      3. input / textarea: type+placeholder → placeholder → aria-label → type
      4. button / a / label / span: 30 文字以内のテキスト → //tag[text()="..."]
      5. aria-label → title → type
      6. 最初の class トークン
      7. 同一タグ兄弟内の位置 → //tag[n]
      8. タグ名のみ

    副作用はなく、例外も送出しない。

    Args:
        element: 要素スナップショット

    Returns:
        XPath ロケーター文字列
    """
    tag = element.tag_name

    if element.id:
        return f"//*[@id={xpath_literal(element.id)}]"

    if element.name:
        return f"//{tag}[@name={xpath_literal(element.name)}]"

    if element.is_text_field:
        if element.type and element.placeholder:
            return (
                f"//{tag}[@type={xpath_literal(element.type)}"
                f" and @placeholder={xpath_literal(element.placeholder)}]"
            )
        if element.placeholder:
            return f"//{tag}[@placeholder={xpath_literal(element.placeholder)}]"
        if element.aria_label:
            return f"//{tag}[@aria-label={xpath_literal(element.aria_label)}]"
        if element.type:
            return f"//{tag}[@type={xpath_literal(element.type)}]"

    if tag in _TEXT_BEARING_TAGS:
        text = element.text.strip()
        if text and len(text) <= _MAX_TEXT_LENGTH:
            return f"//{tag}[text()={xpath_literal(text)}]"

    if element.aria_label:
        return f"//{tag}[@aria-label={xpath_literal(element.aria_label)}]"
    if element.title:
        return f"//{tag}[@title={xpath_literal(element.title)}]"
    if element.type:
        return f"//{tag}[@type={xpath_literal(element.type)}]"

    first_class = element.first_class
    if first_class:
        return (
            f'//{tag}[contains(concat(" ", normalize-space(@class), " "),'
            f" {xpath_literal(f' {first_class} ')})]"
        )

    if element.sibling_index is not None and element.sibling_index > 0:
        return f"//{tag}[{element.sibling_index}]"

    return f"//{tag}"


def build_locator(page: Page, locator: str) -> Locator:
    """記録済みロケーター文字列から Playwright Locator を構築する。

    "//" または "(" で始まる文字列は XPath として扱い、
    それ以外は Playwright のセレクタエンジンにそのまま渡す。
    複数要素に一致した場合は最初の要素を対象とする。

    Args:
        page: Playwright Page オブジェクト
        locator: ロケーター文字列

    Returns:
        Playwright Locator オブジェクト

    Raises:
        ValueError: ロケーターが空の場合
    """
    selector = locator.strip()
    if not selector:
        raise ValueError("ロケーターが空です")

    if selector.startswith(("//", "(")):
        selector = f"xpath={selector}"

    logger.debug("ロケーターを構築します: %s", selector)
    return page.locator(selector).first
