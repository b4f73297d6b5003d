"""
StepPersister — ステップ台帳の xlsx 永続化

台帳のスナップショットを openpyxl で xlsx ファイルに書き出し、
再生時には同じ形式のファイルを行データとして読み戻す。

主な機能:
  - artifact_filename(): セッション開始時刻からのファイル名生成
  - StepPersister.persist(): 台帳全体の上書き保存（失敗してもログのみ）
  - StepPersister.read(): xlsx → ArtifactRow リスト
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from openpyxl import Workbook, load_workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from .steps import RecordedStep

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# シート定義
# ---------------------------------------------------------------------------

SHEET_NAME = "Test Steps"

# (ヘッダー, 列幅)
COLUMNS: tuple[tuple[str, int], ...] = (
    ("Step No", 10),
    ("Actual Step", 50),
    ("Locator", 60),
    ("Expected Results", 40),
)

_HEADER_FONT = Font(bold=True, size=12, color="FFFFFFFF")
_HEADER_FILL = PatternFill(fill_type="solid", fgColor="FF4472C4")
_THIN = Side(style="thin")
_BORDER = Border(top=_THIN, left=_THIN, bottom=_THIN, right=_THIN)


# ---------------------------------------------------------------------------
# エラー定義
# ---------------------------------------------------------------------------

class ReplayAbortedError(Exception):
    """再生全体を開始前に中断すべきエラーの基底クラス。"""


class ArtifactNotFoundError(ReplayAbortedError):
    """ステップファイルが存在しない。"""


class WorksheetNotFoundError(ReplayAbortedError):
    """ステップファイルに Test Steps シートが存在しない。"""


class ArtifactUnreadableError(ReplayAbortedError):
    """ステップファイルを xlsx として読み込めない。"""


# ---------------------------------------------------------------------------
# 行データ
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ArtifactRow:
    """ステップファイルの1データ行。

    Attributes:
        step_number: Step No 列
        description: Actual Step 列
        locator: Locator 列（空文字可）
        expected_result: Expected Results 列（空文字可）
    """

    step_number: int
    description: str
    locator: str = ""
    expected_result: str = ""


def artifact_filename(started_at: Optional[datetime] = None) -> str:
    """セッション開始時刻からステップファイル名を生成する。

    形式: TestSteps_dd-mm-yy_HH-MM-SS.xlsx

    Args:
        started_at: セッション開始時刻。None の場合は現在時刻

    Returns:
        ファイル名
    """
    if started_at is None:
        started_at = datetime.now()
    return f"TestSteps_{started_at.strftime('%d-%m-%y_%H-%M-%S')}.xlsx"


# ---------------------------------------------------------------------------
# StepPersister 本体
# ---------------------------------------------------------------------------

class StepPersister:
    """ステップ台帳を xlsx ファイルに保存・読み込みする。

    保存は毎回ファイル全体を作り直す（追記はしない）。
    ステップ数は人手の操作規模（数十〜数百）なので性能上の問題はない。
    """

    def __init__(self, path: Path) -> None:
        """StepPersister を初期化する。

        Args:
            path: 書き込み先の xlsx ファイルパス
        """
        self.path = Path(path)

    # ----- 書き込み -----

    def persist(self, steps: Iterable[RecordedStep]) -> bool:
        """台帳スナップショットでステップファイルを上書きする。

        書き込みに失敗しても例外は送出しない。メモリ上の台帳が正であり、
        次回の追加時に再度全体を書き込む。

        Args:
            steps: 台帳のスナップショット

        Returns:
            書き込みに成功した場合 True
        """
        try:
            self.write(self.path, steps)
        except Exception:
            logger.exception("ステップファイルの保存に失敗しました: %s", self.path)
            return False
        return True

    @staticmethod
    def write(path: Path, steps: Iterable[RecordedStep]) -> Path:
        """ステップを xlsx ファイルとして書き出す。

        Args:
            path: 出力先ファイルパス
            steps: 書き出すステップ

        Returns:
            書き出したファイルのパス
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        wb = Workbook()
        ws = wb.active
        ws.title = SHEET_NAME

        ws.append([header for header, _ in COLUMNS])
        for step in steps:
            ws.append([
                step.step_number,
                _cell_text(step.description),
                _cell_text(step.locator) or None,
                _cell_text(step.expected_result) or None,
            ])

        for idx, (_, width) in enumerate(COLUMNS):
            ws.column_dimensions[get_column_letter(idx + 1)].width = width

        for cell in ws[1]:
            cell.font = _HEADER_FONT
            cell.fill = _HEADER_FILL

        for row in ws.iter_rows():
            for cell in row:
                cell.border = _BORDER

        wb.save(path)
        logger.debug("ステップファイルを書き出しました: %s (%d 行)", path, ws.max_row - 1)
        return path

    # ----- 読み込み -----

    @staticmethod
    def read(path: Path) -> list[ArtifactRow]:
        """ステップファイルを読み込み、シート順の行リストを返す。

        空行は読み飛ばす。Step No が数値でない行は出現順の番号を振る。

        Args:
            path: 読み込む xlsx ファイルパス

        Returns:
            ArtifactRow のリスト

        Raises:
            ArtifactNotFoundError: ファイルが存在しない場合
            WorksheetNotFoundError: Test Steps シートが存在しない場合
            ArtifactUnreadableError: xlsx として読み込めない場合
        """
        path = Path(path)
        if not path.is_file():
            raise ArtifactNotFoundError(f"ステップファイルが見つかりません: {path}")

        try:
            wb = load_workbook(path, read_only=True, data_only=True)
        except Exception as exc:
            raise ArtifactUnreadableError(
                f"ステップファイルを読み込めません: {path} ({exc})"
            ) from exc

        try:
            if SHEET_NAME not in wb.sheetnames:
                raise WorksheetNotFoundError(
                    f"シート '{SHEET_NAME}' が見つかりません: {path}"
                    f" (存在するシート: {', '.join(wb.sheetnames) or '(なし)'})"
                )
            ws = wb[SHEET_NAME]

            rows: list[ArtifactRow] = []
            for values in ws.iter_rows(min_row=2, values_only=True):
                cells = list(values or ()) + [None] * len(COLUMNS)
                number, description, locator, expected = cells[: len(COLUMNS)]
                if description is None or str(description).strip() == "":
                    continue
                rows.append(ArtifactRow(
                    step_number=_to_step_number(number, len(rows) + 1),
                    description=str(description),
                    locator=_to_text(locator),
                    expected_result=_to_text(expected),
                ))
        finally:
            wb.close()

        logger.info("ステップファイルを読み込みました: %s (%d 行)", path, len(rows))
        return rows


# ---------------------------------------------------------------------------
# ヘルパー関数
# ---------------------------------------------------------------------------

def _cell_text(value: str) -> str:
    """xlsx に書き込めない制御文字を取り除く。"""
    return ILLEGAL_CHARACTERS_RE.sub("", value)


def _to_text(value: object) -> str:
    """セル値を文字列に変換する。None は空文字。"""
    return "" if value is None else str(value)


def _to_step_number(value: object, fallback: int) -> int:
    """Step No セルを整数に変換する。変換できない場合は fallback。"""
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return fallback
