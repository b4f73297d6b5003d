"""
srec MCP Server — ブラウザ操作のステップ記録・再生サーバー

FastMCP を使用して、記録ブラウザで人が行った操作をステップとして
記録し、xlsx のステップファイルとして保存・再生する MCP サーバーを提供する。

ツール定義は以下のモジュールに分離:
  - tools_steps: 台帳操作ツール（get_steps, clear_steps, record_manual_note）

本モジュールはサーバー生成とライフサイクル管理（記録の開始・終了、再生）を担当する。
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from fastmcp import FastMCP

from ..core.persister import ReplayAbortedError
from ..core.reporting import Reporter
from .config import ServerConfig, load_config_from_env
from .recorder import RecordingSession, latest_artifact
from .tools_steps import register_step_tools

logger = logging.getLogger(__name__)


def create_server(
    config: Optional[ServerConfig] = None,
    recording: Optional[RecordingSession] = None,
) -> FastMCP:
    """srec MCP サーバーを生成する。

    auto_start が有効な場合、サーバー起動時に記録ブラウザを起動する。
    サーバー終了時は記録中のステップを保存してブラウザを閉じる。

    Args:
        config: サーバー設定。None の場合は環境変数から読み込む。
        recording: 記録セッション。None の場合は config から生成する。

    Returns:
        設定済みの FastMCP サーバーインスタンス
    """
    if config is None:
        config = load_config_from_env()
    if recording is None:
        recording = RecordingSession(config)

    reporter = Reporter()

    @asynccontextmanager
    async def lifespan(server: FastMCP) -> AsyncIterator[dict]:
        if config.auto_start:
            try:
                await recording.start()
            except Exception:
                logger.exception("記録ブラウザの起動に失敗しました（start_recording で再試行できます）")
        try:
            yield {}
        finally:
            path = await recording.stop()
            if path is not None:
                logger.info("ステップファイルを保存しました: %s", path)

    mcp = FastMCP("srec-step-recorder", lifespan=lifespan)

    # -------------------------------------------------------------------
    # ライフサイクルツール（start / stop）
    # -------------------------------------------------------------------

    @mcp.tool
    async def start_recording(
        url: Optional[str] = None,
        headed: Optional[bool] = None,
    ) -> str:
        """Launch the recording browser and start capturing interactions.

        Args:
            url: Initial URL to open. None uses the server's start URL.
            headed: Show browser window. None uses server config.

        Returns:
            Status message with the step file path
        """
        if recording.is_recording:
            return "Error: Recording already in progress. Call stop_recording first."

        try:
            path = await recording.start(url=url, headed=headed)
        except Exception as exc:
            logger.exception("記録の開始に失敗しました")
            return f"Error: Failed to start recording: {exc}"

        return (
            f"Recording started at {url or config.start_url}.\n"
            f"Steps will be saved to: {path}"
        )

    @mcp.tool
    async def stop_recording() -> str:
        """Stop capturing, save the step file and close the recording browser.

        Returns:
            Status message with the saved file path
        """
        if not recording.is_recording:
            return "Error: No recording in progress."

        path = await recording.stop()
        return f"Recording stopped. {recording.ledger.count} steps saved to: {path}"

    # -------------------------------------------------------------------
    # 再生ツール
    # -------------------------------------------------------------------

    @mcp.tool
    async def execute_steps(
        file_path: Optional[str] = None,
        headed: Optional[bool] = None,
    ) -> str:
        """Replay a recorded step file (.xlsx) in the browser.

        While recording, the steps run in the recording browser and are not
        recorded again. Otherwise a dedicated browser is launched.

        Args:
            file_path: Step file to replay. None uses the current recording's
                file, or the newest file in the output directory.
            headed: Show the dedicated replay browser. None uses server config.

        Returns:
            Execution summary with per-step results
        """
        path = _resolve_artifact(file_path)
        if path is None:
            return f"Error: No step file found in {config.output_dir}."

        try:
            report = await recording.replay(path, headed=headed)
        except ReplayAbortedError as exc:
            logger.error("再生を中断しました: %s", exc)
            return f"Error: {exc}"

        return reporter.format_summary(report)

    def _resolve_artifact(file_path: Optional[str]) -> Optional[Path]:
        if file_path:
            return Path(file_path)
        current = recording.artifact_path
        if current is not None and current.is_file():
            return current
        return latest_artifact(Path(config.output_dir))

    # -------------------------------------------------------------------
    # 台帳操作ツール（別ファイルから登録）
    # -------------------------------------------------------------------
    register_step_tools(mcp, recording)

    return mcp


# ---------------------------------------------------------------------------
# エントリポイント（直接実行用）
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    from .config import apply_cli_args, build_cli_parser

    parser = build_cli_parser()
    args = parser.parse_args()

    srv_config = load_config_from_env()
    srv_config = apply_cli_args(srv_config, args)

    server = create_server(config=srv_config)
    server.run()
