"""
srec MCP Server CLI エントリポイント

python -m srec.mcp で MCP サーバーを起動する。
CLI 引数と環境変数でサーバー設定を制御できる。

使用例:
  python -m srec.mcp                              # デフォルト設定で起動
  python -m srec.mcp --headless                   # ヘッドレスモード
  python -m srec.mcp --start-url https://example.com
  python -m srec.mcp --no-auto-start              # start_recording で記録開始
  python -m srec.mcp --viewport 1920x1080         # ビューポートサイズ指定

環境変数:
  SREC_HEADED=false                               # ヘッドレスモード
  SREC_OUTPUT_DIR=output                          # ステップファイルの出力先変更
  SREC_PROFILE_DIR=Output/browser-profile         # 永続プロファイルで起動
"""

from __future__ import annotations

import logging
import sys

from .config import apply_cli_args, build_cli_parser, load_config_from_env
from .server import create_server

# stdout は MCP の stdio トランスポートが使うため、ログは stderr に出す
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    stream=sys.stderr,
)

# 環境変数 → CLI 引数の順で設定を構築
_config = load_config_from_env()
_parser = build_cli_parser()
_args = _parser.parse_args()
_config = apply_cli_args(_config, _args)

# サーバー生成・起動
server = create_server(config=_config)
server.run()
