"""
ステップ操作ツール — 記録済みステップの参照・クリア・手動メモ

MCP サーバーに登録する台帳操作ツールとライブリソースを定義する。

主なツール:
  - get_steps: 記録済みステップの一覧
  - clear_steps: 台帳のクリア
  - record_manual_note: 手動メモの追加
  - interactions://live: 記録済みステップのライブ表示（リソース）
"""

from __future__ import annotations

import logging

from fastmcp import FastMCP

from ..core.steps import RecordedStep
from .recorder import RecordingSession

logger = logging.getLogger(__name__)

LIVE_RESOURCE_URI = "interactions://live"


def format_steps(steps: list[RecordedStep]) -> str:
    """get_steps 用のテキストを組み立てる。"""
    lines = [f"Captured {len(steps)} browser interactions:", ""]
    lines.extend(
        f"Step {s.step_number}: {s.description} [{s.timestamp.isoformat()}]"
        for s in steps
    )
    return "\n".join(lines).rstrip()


def format_live(steps: list[RecordedStep]) -> str:
    """ライブリソース用のテキストを組み立てる。"""
    lines = ["Live Browser Interactions:", ""]
    lines.extend(
        f"Step {s.step_number}: [{s.timestamp.isoformat()}] {s.description}"
        for s in steps
    )
    return "\n".join(lines).rstrip()


def register_step_tools(mcp: FastMCP, recording: RecordingSession) -> None:
    """台帳操作ツールを MCP サーバーに登録する。

    Args:
        mcp: FastMCP サーバーインスタンス
        recording: 記録セッション
    """

    @mcp.tool
    async def get_steps() -> str:
        """Get all captured browser interactions.

        Returns:
            Numbered list of recorded steps with timestamps
        """
        return format_steps(recording.steps())

    @mcp.tool
    async def clear_steps() -> str:
        """Clear all captured interactions and reset step numbering.

        Returns:
            Number of cleared steps
        """
        count = recording.clear()
        return f"Cleared {count} captured interactions"

    @mcp.tool
    async def record_manual_note(note: str) -> str:
        """Manually add a note to the recording.

        Args:
            note: Note text to add as a step

        Returns:
            Status message
        """
        if not note.strip():
            return "Error: note must not be empty."
        step = recording.add_note(note.strip())
        return f"Note recorded as step {step.step_number}"

    @mcp.resource(
        LIVE_RESOURCE_URI,
        name="Live Browser Interactions",
        description="View all captured browser interactions",
        mime_type="text/plain",
    )
    def live_interactions() -> str:
        return format_live(recording.steps())
