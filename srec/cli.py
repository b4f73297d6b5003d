"""
CLI エントリポイント — Typer ベースのコマンドラインインターフェース

srec コマンドとして以下のサブコマンドを提供する:
  - record: ブラウザを開いて操作を記録
  - replay: ステップファイルを再生
  - show: ステップファイルの内容を表示
  - serve: MCP サーバーを起動
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

import typer

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Typer アプリ定義
# ---------------------------------------------------------------------------

app = typer.Typer(
    help=(
        "srec — ブラウザ操作のステップ記録・再生ツール\n\n"
        "基本の流れ:\n"
        "  1. srec record URL                操作を記録（ブラウザが開きます）\n"
        "  2. srec replay StepRecorder/xxx.xlsx  記録した操作を再実行\n\n"
        "詳しくは各コマンドに --help を付けてください。"
    ),
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="デバッグログを表示"),
) -> None:
    """ログ出力を設定する。"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


# ---------------------------------------------------------------------------
# record コマンド
# ---------------------------------------------------------------------------

@app.command()
def record(
    url: Optional[str] = typer.Argument(
        None, help="記録開始 URL（省略時は SREC_START_URL）",
    ),
    output_dir: Optional[Path] = typer.Option(
        None, "--output-dir", "-o", help="ステップファイルの出力先",
    ),
    profile_dir: Optional[Path] = typer.Option(
        None, "--profile-dir", help="永続プロファイルのディレクトリ",
    ),
    quiet_period: Optional[int] = typer.Option(
        None, "--quiet-period", help="入力確定までの静止時間（ミリ秒）",
    ),
) -> None:
    """ブラウザを開いて操作を記録する。ページを閉じるか Ctrl+C で終了します。"""
    import asyncio

    from .mcp.config import load_config_from_env
    from .mcp.recorder import RecordingSession

    config = load_config_from_env()
    config.headed = True
    if output_dir is not None:
        config.output_dir = str(output_dir)
    if profile_dir is not None:
        config.profile_dir = str(profile_dir)
    if quiet_period is not None:
        config.quiet_period_ms = quiet_period

    recording = RecordingSession(config)

    async def _record() -> Optional[Path]:
        path = await recording.start(url=url)
        typer.echo(f"記録中: {url or config.start_url}")
        typer.echo(f"ステップファイル: {path}")
        typer.echo("ページを閉じると記録が終了します。\n")
        try:
            await recording.wait_until_closed()
        finally:
            # Ctrl+C でキャンセルされた場合も保存してから終了する
            path = await recording.stop() or path
        return path

    try:
        path = asyncio.run(_record())
    except KeyboardInterrupt:
        typer.echo("記録を中断しました。")
        path = recording.artifact_path
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"記録完了: {path} ({recording.ledger.count} ステップ)")


# ---------------------------------------------------------------------------
# replay コマンド
# ---------------------------------------------------------------------------

@app.command()
def replay(
    step_file: Path = typer.Argument(..., help="再生するステップファイル（.xlsx）"),
    headed: bool = typer.Option(True, "--headed/--headless", help="ブラウザ表示モード（デフォルト: 表示）"),
    report_dir: Optional[Path] = typer.Option(
        None, "--report-dir", help="レポート（JSON / HTML / JUnit XML）の出力先",
    ),
    action_timeout: Optional[int] = typer.Option(
        None, "--action-timeout", help="click / fill のタイムアウト（ミリ秒）",
    ),
    pacing: Optional[int] = typer.Option(
        None, "--pacing", help="各行の後の待機（ミリ秒）",
    ),
) -> None:
    """ステップファイルを再生する。失敗した行があれば終了コード 1 を返します。"""
    import asyncio

    from .core.persister import ReplayAbortedError
    from .core.replay import ReplayEngine
    from .core.reporting import Reporter
    from .mcp.config import load_config_from_env

    replay_config = load_config_from_env().replay_config(headed)
    if action_timeout is not None:
        replay_config.action_timeout = action_timeout
    if pacing is not None:
        replay_config.pacing = pacing

    try:
        report = asyncio.run(ReplayEngine(replay_config).execute(step_file))
    except ReplayAbortedError as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)

    reporter = Reporter()
    typer.echo(reporter.format_summary(report))

    if report_dir is not None:
        reporter.generate_json(report, report_dir)
        reporter.generate_junit_xml(report, report_dir)
        html_report = reporter.generate_html(report, report_dir)
        typer.echo(f"\nレポート: {html_report}")

    if report.status == "failed":
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# show コマンド
# ---------------------------------------------------------------------------

@app.command()
def show(
    step_file: Path = typer.Argument(..., help="表示するステップファイル（.xlsx）"),
) -> None:
    """ステップファイルの内容と各行の再生時の扱いを表示する。"""
    from .core.persister import ReplayAbortedError, StepPersister
    from .core.steps import parse_description

    try:
        rows = StepPersister.read(step_file)
    except ReplayAbortedError as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"{step_file.name}: {len(rows)} ステップ\n")
    for row in rows:
        action = parse_description(row.description, row.locator)
        kind = action.kind if action is not None else "unsupported"
        typer.echo(f"{row.step_number:>4}  [{kind}] {row.description}")
        if row.locator:
            typer.echo(f"      {row.locator}")


# ---------------------------------------------------------------------------
# serve コマンド
# ---------------------------------------------------------------------------

@app.command()
def serve(
    headed: Optional[bool] = typer.Option(None, "--headed/--headless", help="ブラウザ表示モード（省略時は SREC_HEADED）"),
    start_url: Optional[str] = typer.Option(None, "--start-url", help="記録開始 URL"),
    auto_start: Optional[bool] = typer.Option(
        None, "--auto-start/--no-auto-start", help="起動時に記録ブラウザを開く（省略時は SREC_AUTO_START）",
    ),
) -> None:
    """MCP サーバーを stdio で起動する。"""
    from .mcp.config import load_config_from_env
    from .mcp.server import create_server

    config = load_config_from_env()
    if headed is not None:
        config.headed = headed
    if auto_start is not None:
        config.auto_start = auto_start
    if start_url is not None:
        config.start_url = start_url

    create_server(config=config).run()
