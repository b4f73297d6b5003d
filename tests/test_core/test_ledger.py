"""
StepLedger のユニットテスト

永続化先は MagicMock で代替し、呼び出しタイミングとスナップショットを検証する。
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock

from srec.core.ledger import StepLedger
from srec.core.persister import StepPersister
from srec.core.steps import Click, Launch, Navigate, Note


def _mock_persister() -> MagicMock:
    persister = MagicMock(spec=StepPersister)
    persister.persist.return_value = True
    return persister


class TestAppend:
    """append() のテスト。"""

    def test_numbers_are_sequential(self, fixed_clock):
        ledger = StepLedger(clock=fixed_clock)
        steps = [ledger.append(Note(text=str(i))) for i in range(3)]
        assert [s.step_number for s in steps] == [1, 2, 3]
        assert ledger.count == 3

    def test_persists_before_returning(self, fixed_clock):
        """追加のたびに、追加後の全体スナップショットで永続化されること。"""
        persister = _mock_persister()
        ledger = StepLedger(persister, clock=fixed_clock)

        ledger.append(Launch())
        ledger.append(Navigate(url="https://example.com"))

        assert persister.persist.call_count == 2
        snapshot = persister.persist.call_args.args[0]
        assert [s.step_number for s in snapshot] == [1, 2]

    def test_persist_failure_keeps_step(self, fixed_clock):
        """永続化に失敗してもメモリ上の台帳には残ること。"""
        persister = _mock_persister()
        persister.persist.return_value = False
        ledger = StepLedger(persister, clock=fixed_clock)

        ledger.append(Note(text="a"))
        assert ledger.count == 1

    def test_timestamps_never_go_backwards(self):
        times = iter([
            datetime(2025, 1, 1, 12, 0, 5),
            datetime(2025, 1, 1, 12, 0, 1),
            datetime(2025, 1, 1, 12, 0, 9),
        ])
        ledger = StepLedger(clock=lambda: next(times))
        stamps = [ledger.append(Note(text="x")).timestamp for _ in range(3)]
        assert stamps == sorted(stamps)
        assert stamps[1] == datetime(2025, 1, 1, 12, 0, 5)

    def test_all_returns_copy(self, fixed_clock):
        ledger = StepLedger(clock=fixed_clock)
        ledger.append(Note(text="a"))
        snapshot = ledger.all()
        snapshot.clear()
        assert ledger.count == 1


class TestClear:
    """clear() のテスト。"""

    def test_clear_empty_returns_zero(self):
        persister = _mock_persister()
        ledger = StepLedger(persister)
        assert ledger.clear() == 0
        persister.persist.assert_called_once_with([])

    def test_clear_resets_counter(self, tmp_path: Path, fixed_clock):
        """5 件をクリアした後の追加は 1 番から始まり、ファイルも 1 行だけになること。"""
        path = tmp_path / "steps.xlsx"
        ledger = StepLedger(StepPersister(path), clock=fixed_clock)
        for i in range(5):
            ledger.append(Note(text=str(i)))

        assert ledger.clear() == 5
        step = ledger.append(Note(text="again"))

        assert step.step_number == 1
        rows = StepPersister.read(path)
        assert len(rows) == 1
        assert rows[0].step_number == 1
        assert rows[0].description == "Note: again"

    def test_flush_rewrites_current_state(self, fixed_clock):
        persister = _mock_persister()
        ledger = StepLedger(persister, clock=fixed_clock)
        ledger.append(Note(text="a"))
        persister.persist.reset_mock()

        assert ledger.flush() is True
        persister.persist.assert_called_once()


class TestControlCharacters:
    """xlsx に書けない制御文字を含むステップのテスト。"""

    def test_later_steps_still_reach_file(self, tmp_path: Path, fixed_clock):
        """制御文字を含むステップの後に追加したステップもファイルに保存されること。"""
        path = tmp_path / "steps.xlsx"
        ledger = StepLedger(StepPersister(path), clock=fixed_clock)

        ledger.append(Note(text="ok"))
        ledger.append(Note(text="bad\x1bchar"))
        ledger.append(Click(target='//*[@id="go"]', label="Go"))

        rows = StepPersister.read(path)
        assert [r.step_number for r in rows] == [1, 2, 3]
        assert rows[1].description == "Note: badchar"
        assert rows[2].locator == '//*[@id="go"]'
