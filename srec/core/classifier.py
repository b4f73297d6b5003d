"""
EventClassifier — ブラウザの生イベントを意味的なステップに変換する

ページ側スクリプトとブラウザセッションから届く生イベント（click, focus, input,
blur, change, Enter, 値の代入, URL 遷移, 新規タブ）を単一コンシューマのキューに
積み、1つの分類ループで順番に処理する。1イベントにつき 0 または 1 ステップを
台帳に追加する。

主な方針:
  - 入力デバウンス: input イベントごとに静止タイマー（既定 1.5 秒）を張り直し、
    タイマー満了・blur・change・Enter・値の代入のいずれかで確定値を1ステップにまとめる
  - クリック: 即座に1ステップ。直前と同一のクリックのみ抑止
  - 遷移: about: ページと開始 URL への遷移は記録しない
  - 入力欄の状態は合成ロケーターをキーに保持する
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from .ledger import StepLedger
from .locator import ElementInfo, synthesize_locator
from .steps import BLANK_PAGE, Click, Fill, Navigate, NewTab, RecordedStep, StepAction

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# 定数
# ---------------------------------------------------------------------------

DEFAULT_QUIET_PERIOD = 1.5

# テキスト入力として扱わない input type
SKIP_INPUT_TYPES = frozenset({
    "checkbox", "radio", "file", "submit", "button", "reset", "image",
    "hidden", "range", "color", "date", "datetime-local", "month", "time", "week",
})

# クリックラベルの最大文字数
_MAX_LABEL_LENGTH = 50

RawEventKind = Literal[
    "focus", "input", "value_set", "blur", "change", "keydown",
    "click", "navigate", "new_tab",
    # 内部イベント
    "quiet", "flush",
]


# ---------------------------------------------------------------------------
# 生イベント
# ---------------------------------------------------------------------------

class RawEvent(BaseModel):
    """分類器に投入される生イベント。

    ページ側スクリプトからは JSON 辞書として届き、ナビゲーションと新規タブは
    ブラウザセッションのイベントハンドラから生成される。
    """

    kind: RawEventKind
    element: Optional[ElementInfo] = None
    value: str = ""
    key: str = ""
    url: str = ""
    # quiet イベント用（対象ロケーターとタイマー世代）
    locator: str = ""
    generation: int = Field(default=0, ge=0)


# ---------------------------------------------------------------------------
# 入力欄ごとの状態
# ---------------------------------------------------------------------------

@dataclass
class FieldState:
    """デバウンス対象の入力欄1つ分の状態。

    Attributes:
        locator: 入力欄の合成ロケーター（状態テーブルのキー）
        field_name: 説明文に使うフィールド名
        baseline: 最後に確定した値（フォーカス時の値で初期化）
        current: 最新の入力値
        timer: 静止タイマーのハンドル（未予約なら None）
        generation: タイマーの世代番号。古い quiet イベントの判別に使う
    """

    locator: str
    field_name: str
    baseline: str = ""
    current: str = ""
    timer: Optional[asyncio.TimerHandle] = None
    generation: int = 0

    @property
    def pending(self) -> bool:
        return self.timer is not None

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


def field_name_of(element: ElementInfo) -> str:
    """説明文用のフィールド名を決める（name → id → placeholder → aria-label）。"""
    return (
        element.name
        or element.id
        or element.placeholder
        or element.aria_label
        or "input field"
    )


def click_label_of(element: ElementInfo) -> str:
    """クリック説明文用の短いラベルを決める。"""
    text = " ".join(element.text.split())[:_MAX_LABEL_LENGTH]
    return text or element.aria_label or element.title or "element"


def _normalize_url(url: str) -> str:
    return url.strip().rstrip("/")


# ---------------------------------------------------------------------------
# EventClassifier 本体
# ---------------------------------------------------------------------------

class EventClassifier:
    """生イベントを分類し、ステップを台帳へ追加する。

    submit() はイベントループ上のコールバックから同期的に呼べる。
    実際の分類は start() で起動する単一の分類ループが行うため、
    台帳への追加が並行することはない。

    使用例::

        classifier = EventClassifier(ledger, start_url="https://example.com")
        await classifier.start()
        classifier.submit({"kind": "click", "element": {...}})
        await classifier.stop()
    """

    def __init__(
        self,
        ledger: StepLedger,
        start_url: str = "",
        quiet_period: float = DEFAULT_QUIET_PERIOD,
    ) -> None:
        """EventClassifier を初期化する。

        Args:
            ledger: ステップの追加先
            start_url: セッション開始 URL（この URL への遷移は記録しない）
            quiet_period: 入力確定までの静止時間（秒）
        """
        self._ledger = ledger
        self._quiet_period = quiet_period
        self._start_urls: set[str] = set()
        if start_url:
            self.add_start_url(start_url)

        self._queue: asyncio.Queue[Optional[RawEvent]] = asyncio.Queue()
        self._task: Optional[asyncio.Task[None]] = None
        self._paused = False

        self._fields: dict[str, FieldState] = {}
        self._last_fill: dict[str, str] = {}
        self._last_click: Optional[tuple[str, str]] = None
        self._last_url = ""

    # -------------------------------------------------------------------
    # 状態
    # -------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def pending_fields(self) -> list[str]:
        """静止タイマーが予約中の入力欄ロケーター。"""
        return [loc for loc, state in self._fields.items() if state.pending]

    def add_start_url(self, url: str) -> None:
        """記録対象外とする開始 URL を追加する（リダイレクト後の URL 等）。"""
        if url:
            self._start_urls.add(_normalize_url(url))

    # -------------------------------------------------------------------
    # ライフサイクル
    # -------------------------------------------------------------------

    async def start(self) -> None:
        """分類ループを起動する。"""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name="srec-classifier")
        logger.info("イベント分類を開始しました")

    async def stop(self) -> None:
        """保留中の入力を確定させてから分類ループを終了する。"""
        task = self._task
        if task is None or task.done():
            return
        self._queue.put_nowait(RawEvent(kind="flush"))
        self._queue.put_nowait(None)
        await task
        self._task = None
        logger.info("イベント分類を終了しました")

    async def drain(self) -> None:
        """投入済みイベントの処理完了を待つ。"""
        await self._queue.join()

    async def flush(self) -> None:
        """保留中の全入力欄を直ちに確定させ、処理完了を待つ。"""
        self._queue.put_nowait(RawEvent(kind="flush"))
        await self.drain()

    def suspend(self) -> None:
        """イベントの受け付けを一時停止する（再生中など）。

        保留中のタイマーは破棄する。
        """
        self._paused = True
        for state in self._fields.values():
            state.cancel_timer()
        logger.info("イベント分類を一時停止しました")

    def resume(self) -> None:
        """イベントの受け付けを再開する。"""
        self._paused = False
        self._fields.clear()
        logger.info("イベント分類を再開しました")

    def reset(self) -> None:
        """入力欄の追跡状態と重複判定の履歴を破棄する（台帳クリア時）。"""
        for state in self._fields.values():
            state.cancel_timer()
        self._fields.clear()
        self._last_fill.clear()
        self._last_click = None
        self._last_url = ""
        logger.debug("イベント分類の状態をリセットしました")

    # -------------------------------------------------------------------
    # イベント投入
    # -------------------------------------------------------------------

    def submit(self, event: Union[RawEvent, dict[str, Any]]) -> bool:
        """生イベントをキューに積む。

        不正なペイロードや一時停止中のイベントは破棄する。

        Args:
            event: RawEvent またはページ側スクリプトからの辞書

        Returns:
            キューに積んだ場合 True
        """
        if self._paused:
            return False

        if not isinstance(event, RawEvent):
            try:
                event = RawEvent.model_validate(event)
            except ValidationError as exc:
                logger.warning("不正なイベントを破棄しました: %s", exc)
                return False

        self._queue.put_nowait(event)
        return True

    # -------------------------------------------------------------------
    # 分類ループ
    # -------------------------------------------------------------------

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                if event is None:
                    return
                self.handle(event)
            except Exception:
                logger.exception("イベント処理中にエラーが発生しました: %s", event)
            finally:
                self._queue.task_done()

    def handle(self, event: RawEvent) -> Optional[RecordedStep]:
        """1イベントを分類し、必要ならステップを追加する。

        分類ループからのみ呼び出す（テストでは直接呼び出してよい）。

        Args:
            event: 生イベント

        Returns:
            追加したステップ。追加しなかった場合は None
        """
        kind = event.kind

        if kind == "click":
            return self._on_click(event)
        if kind == "navigate":
            return self._on_navigate(event)
        if kind == "new_tab":
            self._flush_pending()
            return self._emit(NewTab(url=event.url or BLANK_PAGE))
        if kind == "quiet":
            return self._on_quiet(event)
        if kind == "flush":
            self._flush_pending()
            return None

        # 以降は入力欄イベント
        element = event.element
        if element is None or not _is_text_field(element):
            return None

        if kind == "focus":
            self._on_focus(element, event.value)
            return None
        if kind == "input":
            self._on_input(element, event.value)
            return None
        if kind == "keydown" and event.key != "Enter":
            return None

        # blur / change / Enter / value_set は即時確定
        state = self._state_for(element, baseline="")
        state.current = event.value
        return self._commit(state)

    # -------------------------------------------------------------------
    # 入力欄
    # -------------------------------------------------------------------

    def _state_for(self, element: ElementInfo, baseline: str) -> FieldState:
        locator = synthesize_locator(element)
        state = self._fields.get(locator)
        if state is None:
            state = FieldState(
                locator=locator,
                field_name=field_name_of(element),
                baseline=baseline,
                current=baseline,
            )
            self._fields[locator] = state
        return state

    def _on_focus(self, element: ElementInfo, value: str) -> None:
        # 既に追跡中の入力欄はベースラインを維持する
        self._state_for(element, baseline=value.strip())

    def _on_input(self, element: ElementInfo, value: str) -> None:
        state = self._state_for(element, baseline="")
        state.current = value
        state.cancel_timer()

        if not value.strip() or value.strip() == state.baseline:
            return

        state.generation += 1
        loop = asyncio.get_running_loop()
        state.timer = loop.call_later(
            self._quiet_period,
            self.submit,
            RawEvent(kind="quiet", locator=state.locator, generation=state.generation),
        )

    def _on_quiet(self, event: RawEvent) -> Optional[RecordedStep]:
        state = self._fields.get(event.locator)
        # 再スケジュール済み・確定済みのタイマーは無視
        if state is None or state.timer is None or state.generation != event.generation:
            return None
        return self._commit(state)

    def _commit(self, state: FieldState) -> Optional[RecordedStep]:
        """入力欄の現在値をベースラインと比較し、変化していれば Fill を追加する。"""
        state.cancel_timer()
        value = state.current.strip()
        if not value or value == state.baseline:
            return None

        state.baseline = value
        if self._last_fill.get(state.locator) == value:
            logger.debug("同一値の入力を抑止しました: %s", state.locator)
            return None

        self._last_fill[state.locator] = value
        return self._emit(Fill(target=state.locator, field=state.field_name, value=value))

    def _flush_pending(self) -> None:
        for state in list(self._fields.values()):
            if state.pending:
                self._commit(state)

    # -------------------------------------------------------------------
    # クリック・遷移
    # -------------------------------------------------------------------

    def _on_click(self, event: RawEvent) -> Optional[RecordedStep]:
        if event.element is None:
            return None

        self._flush_pending()

        locator = synthesize_locator(event.element)
        label = click_label_of(event.element)
        if self._last_click == (locator, label):
            logger.debug("連続した同一クリックを抑止しました: %s", locator)
            return None

        step = self._emit(Click(target=locator, label=label))
        self._last_click = (locator, label)
        return step

    def _on_navigate(self, event: RawEvent) -> Optional[RecordedStep]:
        self._flush_pending()
        # 新しいドキュメントでは入力欄の状態を引き継がない
        self._fields.clear()
        self._last_fill.clear()

        url = event.url.strip()
        normalized = _normalize_url(url)
        if not url or url.startswith("about:") or normalized in self._start_urls:
            return None
        if normalized == self._last_url:
            return None
        return self._emit(Navigate(url=url))

    # -------------------------------------------------------------------
    # 台帳への追加
    # -------------------------------------------------------------------

    def _emit(self, action: StepAction) -> RecordedStep:
        step = self._ledger.append(action)
        # 連続判定は直前のステップのみを対象とする
        self._last_click = None
        self._last_url = _normalize_url(action.url) if isinstance(action, Navigate) else ""
        return step


def _is_text_field(element: ElementInfo) -> bool:
    """デバウンス対象のテキスト入力欄かどうか。"""
    return element.is_text_field and element.type.lower() not in SKIP_INPUT_TYPES
