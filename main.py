"""
ChronoNTP — NTP 時刻取得クライアント
メインアプリケーション

使い方:
  python main.py                      # GUI
  python main.py --once --server time.google.com
"""
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler

import startup
from ntp_client import NTPClient, ResultCode, NTP_PORT


def _setup_logging(debug: bool = False, log_file: str | None = None, max_mb: int = 10) -> None:
    """コンソール（と設定があればファイル）へログを出す"""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    file_error = None
    if log_file:
        try:
            handlers.append(
                RotatingFileHandler(log_file, maxBytes=max(1, max_mb) * 1024 * 1024,
                                    backupCount=1, encoding="utf-8")
            )
        except OSError as e:
            file_error = e
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=handlers,
        force=True,
    )
    if file_error is not None:
        # ログファイルが開けなくても起動は続ける（コンソールのみ）
        logging.getLogger("chrono_ntp.main").warning("Cannot open log file %s: %s", log_file, file_error)


def format_result(server: str, result) -> str:
    """CLI 表示用の1行"""
    if not result.ok:
        return f"{server}: {result.result_code.value}"
    dt = result.to_datetime()
    return (
        f"{server}: {dt.strftime('%Y-%m-%d')} {result.clock_text()} UTC "
        f"unix={result.unix_seconds} unix_ms={result.unix_millis} offset_ms={result.offset_ms:+d}"
    )


def run_once(ctx: startup.StartupContext, out=None) -> int:
    """1回だけ問い合わせて結果を表示。成功なら 0"""
    out = out or sys.stdout
    port = ctx.config.get('ntp', 'port') or NTP_PORT
    client = NTPClient(port=port, timeout=ctx.timeout_ms / 1000.0)
    try:
        if client.create_socket() is not ResultCode.SUCCESS:
            print(f"{ctx.server}: {ResultCode.SOCKET_CREATION_FAILED.value}", file=out)
            return 1
        client.set_server_address(ctx.server)
        result = client.get_timestamp()
    finally:
        client.close_socket()

    print(format_result(ctx.server, result), file=out)
    return 0 if result.ok else 1


def main(argv: list[str]) -> int:
    ctx = startup.init_startup(argv)

    log_file = None
    if ctx.config.get('logging', 'save_to_file'):
        log_file = ctx.config.get('logging', 'log_file')
    _setup_logging(ctx.debug, log_file, ctx.config.get('logging', 'max_log_size_mb') or 10)
    log = logging.getLogger("chrono_ntp.main")
    log.info("startup: mode=%s server=%s timeout_ms=%d config=%s",
             ctx.mode, ctx.server, ctx.timeout_ms, ctx.config_path)

    if ctx.mode == "cli":
        return run_once(ctx)

    import tkinter as tk
    from gui import NTPClientGUI

    root = tk.Tk()
    _app = NTPClientGUI(root, startup_ctx=ctx)
    root.mainloop()
    return 0


def _console_main() -> int:
    return main(sys.argv[1:])


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
