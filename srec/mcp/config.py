"""
MCP サーバー設定 — 環境変数・CLI 引数からの設定読み込み

環境変数または CLI 引数でステップ記録サーバーの動作を制御する。
CLI 引数 > 環境変数 > デフォルト値 の優先順位で適用される。

環境変数一覧:
  SREC_HEADED               : ブラウザ表示モード（true/false, デフォルト: true）
  SREC_OUTPUT_DIR           : ステップファイルの出力先（デフォルト: StepRecorder）
  SREC_PROFILE_DIR          : 永続プロファイルのディレクトリ（デフォルト: 空 = 使い捨て）
  SREC_START_URL            : 記録開始 URL（デフォルト: http://google.com）
  SREC_AUTO_START           : サーバー起動時に記録を開始するか（デフォルト: true）
  SREC_QUIET_PERIOD_MS      : 入力確定までの静止時間（デフォルト: 1500）
  SREC_ACTION_TIMEOUT_MS    : 再生時の click / fill タイムアウト（デフォルト: 5000）
  SREC_NAVIGATION_TIMEOUT_MS: 再生時の遷移タイムアウト（デフォルト: 15000）
  SREC_PACING_MS            : 再生時の行間待機（デフォルト: 1000）
  SREC_VIEWPORT_WIDTH       : ビューポート幅（デフォルト: 1280）
  SREC_VIEWPORT_HEIGHT      : ビューポート高さ（デフォルト: 720）
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Optional

from ..core.replay import ReplayConfig

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# 環境変数キー定数
# ---------------------------------------------------------------------------

_ENV_HEADED = "SREC_HEADED"
_ENV_OUTPUT_DIR = "SREC_OUTPUT_DIR"
_ENV_PROFILE_DIR = "SREC_PROFILE_DIR"
_ENV_START_URL = "SREC_START_URL"
_ENV_AUTO_START = "SREC_AUTO_START"

# 整数設定（環境変数キー → ServerConfig 属性名）
_INT_ENV_KEYS: dict[str, str] = {
    "SREC_QUIET_PERIOD_MS": "quiet_period_ms",
    "SREC_ACTION_TIMEOUT_MS": "action_timeout_ms",
    "SREC_NAVIGATION_TIMEOUT_MS": "navigation_timeout_ms",
    "SREC_PACING_MS": "pacing_ms",
    "SREC_VIEWPORT_WIDTH": "viewport_width",
    "SREC_VIEWPORT_HEIGHT": "viewport_height",
}


# ---------------------------------------------------------------------------
# 設定データクラス
# ---------------------------------------------------------------------------

@dataclass
class ServerConfig:
    """ステップ記録サーバーの実行時設定。

    Attributes:
        headed: ブラウザ表示モード（True=表示, False=ヘッドレス）
        output_dir: ステップファイルの出力ディレクトリ
        profile_dir: 永続プロファイルのディレクトリ（空文字で使い捨て）
        start_url: 記録開始 URL
        auto_start: サーバー起動時に記録ブラウザを起動するか
        quiet_period_ms: 入力確定までの静止時間（ミリ秒）
        action_timeout_ms: 再生時の操作タイムアウト（ミリ秒）
        navigation_timeout_ms: 再生時の遷移タイムアウト（ミリ秒）
        pacing_ms: 再生時の行間待機（ミリ秒）
        viewport_width: ビューポート幅
        viewport_height: ビューポート高さ
    """

    headed: bool = True
    output_dir: str = "StepRecorder"
    profile_dir: str = ""
    start_url: str = "http://google.com"
    auto_start: bool = True
    quiet_period_ms: int = 1_500
    action_timeout_ms: int = 5_000
    navigation_timeout_ms: int = 15_000
    pacing_ms: int = 1_000
    viewport_width: int = 1280
    viewport_height: int = 720

    def replay_config(self, headed: Optional[bool] = None) -> ReplayConfig:
        """再生エンジン用の設定に変換する。

        Args:
            headed: ブラウザ表示の上書き（None で headed 設定を使用）
        """
        return ReplayConfig(
            headed=self.headed if headed is None else headed,
            action_timeout=self.action_timeout_ms,
            navigation_timeout=self.navigation_timeout_ms,
            pacing=self.pacing_ms,
            viewport_width=self.viewport_width,
            viewport_height=self.viewport_height,
        )


# ---------------------------------------------------------------------------
# 環境変数からの読み込み
# ---------------------------------------------------------------------------

def _parse_bool(value: str) -> bool:
    """文字列を bool に変換する。

    Args:
        value: "true", "1", "yes" → True、それ以外 → False

    Returns:
        変換結果
    """
    return value.lower() in ("true", "1", "yes")


def load_config_from_env() -> ServerConfig:
    """環境変数から ServerConfig を生成する。

    設定されていない環境変数はデフォルト値を使用する。
    数値として解釈できない値は警告を出してデフォルト値のままにする。

    Returns:
        環境変数から読み込んだ設定
    """
    config = ServerConfig()

    if _ENV_HEADED in os.environ:
        config.headed = _parse_bool(os.environ[_ENV_HEADED])

    if _ENV_OUTPUT_DIR in os.environ:
        config.output_dir = os.environ[_ENV_OUTPUT_DIR]

    if _ENV_PROFILE_DIR in os.environ:
        config.profile_dir = os.environ[_ENV_PROFILE_DIR]

    if _ENV_START_URL in os.environ:
        config.start_url = os.environ[_ENV_START_URL]

    if _ENV_AUTO_START in os.environ:
        config.auto_start = _parse_bool(os.environ[_ENV_AUTO_START])

    for env_key, attr in _INT_ENV_KEYS.items():
        if env_key not in os.environ:
            continue
        try:
            value = int(os.environ[env_key])
        except ValueError:
            logger.warning("%s の値が不正です: %s", env_key, os.environ[env_key])
            continue
        if value < 0:
            logger.warning("%s に負の値は指定できません: %s", env_key, value)
            continue
        setattr(config, attr, value)

    logger.info("設定を読み込みました: %s", config)
    return config


def build_cli_parser():
    """CLI 引数パーサーを構築する。

    Returns:
        argparse.ArgumentParser インスタンス
    """
    import argparse

    parser = argparse.ArgumentParser(
        description="srec MCP Server - browser step recorder and replayer",
    )
    parser.add_argument(
        "--headless", action="store_true", default=None,
        help="Run browser in headless mode (default: headed)",
    )
    parser.add_argument(
        "--headed", action="store_true", default=None,
        help="Run browser in headed mode (default)",
    )
    parser.add_argument(
        "--output-dir", type=str, default=None,
        help="Directory for recorded step files (default: StepRecorder)",
    )
    parser.add_argument(
        "--profile-dir", type=str, default=None,
        help="Persistent browser profile directory (default: none)",
    )
    parser.add_argument(
        "--start-url", type=str, default=None,
        help="URL opened when recording starts (default: http://google.com)",
    )
    parser.add_argument(
        "--no-auto-start", action="store_true", default=None,
        help="Do not launch the recording browser when the server starts",
    )
    parser.add_argument(
        "--quiet-period", type=int, default=None,
        help="Milliseconds of typing inactivity before an input is recorded (default: 1500)",
    )
    parser.add_argument(
        "--viewport", type=str, default=None,
        help="Viewport size as WIDTHxHEIGHT (e.g. 1920x1080)",
    )
    return parser


def apply_cli_args(config: ServerConfig, args: Any) -> ServerConfig:
    """CLI 引数を ServerConfig に適用する。

    CLI 引数が指定されている場合のみ上書きする。

    Args:
        config: ベースとなる設定（環境変数から読み込み済み）
        args: argparse の解析結果

    Returns:
        CLI 引数が適用された設定
    """
    if getattr(args, "headless", None):
        config.headed = False
    elif getattr(args, "headed", None):
        config.headed = True

    output_dir = getattr(args, "output_dir", None)
    if output_dir is not None:
        config.output_dir = output_dir

    profile_dir = getattr(args, "profile_dir", None)
    if profile_dir is not None:
        config.profile_dir = profile_dir

    start_url = getattr(args, "start_url", None)
    if start_url is not None:
        config.start_url = start_url

    if getattr(args, "no_auto_start", None):
        config.auto_start = False

    quiet_period = getattr(args, "quiet_period", None)
    if quiet_period is not None:
        if quiet_period < 0:
            logger.warning("--quiet-period に負の値は指定できません: %s", quiet_period)
        else:
            config.quiet_period_ms = quiet_period

    viewport_str = getattr(args, "viewport", None)
    if viewport_str is not None:
        try:
            w, h = str(viewport_str).split("x")
            config.viewport_width = int(w)
            config.viewport_height = int(h)
        except (ValueError, AttributeError):
            logger.warning("--viewport の形式が不正です: %s (WIDTHxHEIGHT)", viewport_str)

    return config
