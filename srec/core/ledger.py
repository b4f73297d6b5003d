"""
StepLedger — 記録セッションのステップ台帳

記録中のステップを追加順に保持する唯一の情報源。
追加時に連番とタイムスタンプを付与し、戻る前に永続化まで完了させる。
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from .persister import StepPersister
from .steps import RecordedStep, StepAction

logger = logging.getLogger(__name__)


class StepLedger:
    """追加専用・採番付きのステップ台帳。

    変更は append() と clear() のみ。どちらもロック内で台帳を更新し、
    同じロック内で永続化するため、追加とクリアが交錯することはない。

    使用例::

        ledger = StepLedger(StepPersister(path))
        step = ledger.append(Navigate(url="https://example.com"))
    """

    def __init__(
        self,
        persister: Optional[StepPersister] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """StepLedger を初期化する。

        Args:
            persister: 変更のたびに呼び出す永続化先（None で永続化しない）
            clock: タイムスタンプ取得関数
        """
        self._persister = persister
        self._clock = clock
        self._steps: list[RecordedStep] = []
        self._counter = 0
        self._lock = threading.RLock()

    @property
    def persister(self) -> Optional[StepPersister]:
        return self._persister

    @property
    def count(self) -> int:
        """記録済みステップ数を返す。"""
        return len(self._steps)

    def append(self, action: StepAction) -> RecordedStep:
        """操作を台帳に追加し、永続化してから返す。

        タイムスタンプは直前のステップより前にならないよう補正する。

        Args:
            action: 追加する操作バリアント

        Returns:
            採番済みの RecordedStep
        """
        with self._lock:
            timestamp = self._clock()
            if self._steps and timestamp < self._steps[-1].timestamp:
                timestamp = self._steps[-1].timestamp

            self._counter += 1
            step = RecordedStep(
                step_number=self._counter,
                timestamp=timestamp,
                action=action,
            )
            self._steps.append(step)
            self._persist()

        logger.info("ステップ %d: %s", step.step_number, step.description)
        return step

    def clear(self) -> int:
        """台帳を空にし、採番をリセットする。

        Returns:
            クリア前のステップ数
        """
        with self._lock:
            count = len(self._steps)
            self._steps = []
            self._counter = 0
            self._persist()

        logger.info("%d 件のステップをクリアしました", count)
        return count

    def all(self) -> list[RecordedStep]:
        """追加順のスナップショットを返す。"""
        with self._lock:
            return list(self._steps)

    def flush(self) -> bool:
        """現在の台帳を永続化し直す（終了時用）。"""
        with self._lock:
            return self._persist()

    def _persist(self) -> bool:
        if self._persister is None:
            return True
        return self._persister.persist(list(self._steps))
