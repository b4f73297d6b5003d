"""
srec MCP Server パッケージ

人がブラウザで行った操作をステップとして記録し、xlsx のステップファイルとして
保存・再生する MCP (Model Context Protocol) サーバーを提供する。

主な構成:
  - server: FastMCP サーバー本体（ライフサイクル管理・再生ツール）
  - tools_steps: 台帳操作ツール（get_steps, clear_steps, record_manual_note）
  - recorder: 記録セッション（ブラウザ・台帳・分類器の所有者）
  - config: 環境変数・CLI 引数からの設定読み込み
  - capture.js: ページに注入するキャプチャスクリプト
"""

from __future__ import annotations


def create_server(config=None, recording=None):  # type: ignore[no-untyped-def]
    """srec MCP サーバーを生成する（遅延インポート）。

    `python -m srec.mcp.server` 実行時の RuntimeWarning を回避するため、
    server モジュールの import をここで遅延させる。

    Args:
        config: ServerConfig インスタンス（None で環境変数から読み込み）
        recording: RecordingSession インスタンス（None で config から生成）

    Returns:
        設定済みの FastMCP サーバーインスタンス
    """
    from .server import create_server as _create
    return _create(config=config, recording=recording)


__all__ = [
    "create_server",
]
