# startup.py
# =============================================================================
# ChronoNTP - Startup orchestration
#
# 【目的 / Why】
# - 起動の入口を統一する。
#   1) 引数解析（--server, --timeout-ms, --once, --debug, --config）
#   2) 起動モード決定（既定は gui、--once で 1 回だけ問い合わせる cli）
#   3) 設定ファイルの読み込みと、引数による上書き
#
# 【設計の要点】
# - 引数は設定ファイルより優先する。設定ファイルは書き換えない。
# - 不正な --timeout-ms は無視して設定値を使う（起動を止めない）。
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional
import argparse
import logging

from config import DEFAULT_CONFIG_FILE, Config

logger = logging.getLogger(__name__)

Mode = Literal["gui", "cli"]


@dataclass(frozen=True)
class StartupContext:
    """
    startup.py の出力（main/guiへ渡す“起動の事実”）

    mode:
      - "gui": tkinter ウィンドウを起動
      - "cli": 1回だけ問い合わせて結果を表示し終了
    """
    mode: Mode
    server: str
    timeout_ms: int
    debug: bool
    config_path: str
    config: Config = field(compare=False, repr=False)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="chrono-ntp", description="Minimal NTP time client")
    p.add_argument("--server", default=None, help="NTP server (host name or IP)")
    p.add_argument("--timeout-ms", type=int, default=None, help="receive timeout in milliseconds")
    p.add_argument("--once", action="store_true", help="query once, print the result and exit")
    p.add_argument("--debug", action="store_true")
    p.add_argument("--config", default=DEFAULT_CONFIG_FILE)
    # 未知引数は残す（呼び出し側で必要に応じて処理できる）
    ns, _unknown = p.parse_known_args(argv)
    return ns


def decide_mode(ns: argparse.Namespace) -> Mode:
    return "cli" if ns.once else "gui"


def init_startup(argv: Optional[list[str]] = None) -> StartupContext:
    """起動時に最初に呼ぶ。引数 > 設定ファイル > 既定値 の順で値を決める"""
    ns = parse_args(argv)
    config = Config(ns.config)

    server = (ns.server or config.get('ntp', 'server') or "pool.ntp.org").strip()

    timeout_ms = int(config.timeout_seconds() * 1000)
    if ns.timeout_ms is not None:
        if ns.timeout_ms > 0:
            timeout_ms = ns.timeout_ms
        else:
            logger.warning("Ignoring invalid --timeout-ms=%s (using %d)", ns.timeout_ms, timeout_ms)

    ctx = StartupContext(
        mode=decide_mode(ns),
        server=server,
        timeout_ms=timeout_ms,
        debug=bool(ns.debug or config.get('debug')),
        config_path=ns.config,
        config=config,
    )
    logger.debug("Startup init ok: mode=%s server=%s timeout_ms=%d", ctx.mode, ctx.server, ctx.timeout_ms)
    return ctx
