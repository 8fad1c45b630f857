"""
NTP 時刻取得クライアント GUI
- Start/Stop: UDPソケット作成 + サーバー名解決 / ソケットクローズ
- Get time:   1回問い合わせ（ワーカースレッド → ui_queue → メインスレッド）
- 自動取得:   指定間隔で Get time を繰り返す
- システムトレイ: 直近の結果をアイコン色で表示
"""
import logging
import queue
import threading
import tkinter as tk
from tkinter import ttk, scrolledtext
from datetime import datetime

from config import QUERY_INTERVALS_SEC
from locales import Localization
from ntp_client import NTPClient, ResultCode, NTP_PORT
from shutdown_manager import ShutdownManager
from tray_icon import TrayIcon

logger = logging.getLogger(__name__)

UI_QUEUE_POLL_MS = 100
DEFAULT_SERVER = "pool.ntp.org"


class NTPClientGUI:
    def __init__(self, root, *, startup_ctx):
        self.root = root
        self.startup_ctx = startup_ctx
        self.config = startup_ctx.config

        # 多言語対応
        self.loc = Localization()
        self.loc.set_language(self.config.get('language') or 'auto')

        self.root.title(self.loc.get('app_title'))

        # ウィンドウサイズと位置を復元
        width = self.config.get('window', 'width') or 560
        height = self.config.get('window', 'height') or 480
        x = self.config.get('window', 'x')
        y = self.config.get('window', 'y')
        if x is not None and y is not None:
            self.root.geometry(f"{width}x{height}+{x}+{y}")
        else:
            self.root.geometry(f"{width}x{height}")

        port = self.config.get('ntp', 'port') or NTP_PORT
        self.ntp_client = NTPClient(port=port, timeout=startup_ctx.timeout_ms / 1000.0)

        self.shutdown_manager = ShutdownManager()
        self.shutdown_manager.register_closeable(self.ntp_client)

        # UIキュー（workerスレッド / trayスレッド → メインスレッド）
        self.ui_queue = queue.Queue()
        self._ui_queue_timer = None
        self._auto_query_timer = None
        self._query_running = False

        self.widgets = {}
        self._build_ui()

        self.tray = None
        if self.config.get('tray', 'enabled'):
            self._start_tray()

        self.root.protocol("WM_DELETE_WINDOW", self._on_close)
        self._schedule('_ui_queue_timer', UI_QUEUE_POLL_MS, self._process_ui_queue)

    # --- UI -----------------------------------------------------------------

    def _build_ui(self):
        main_frame = ttk.Frame(self.root, padding=10)
        main_frame.pack(fill=tk.BOTH, expand=True)

        # NTP設定
        ntp_frame = ttk.LabelFrame(main_frame, text=self.loc.get('ntp_settings'), padding="10")
        ntp_frame.pack(fill=tk.X, pady=5)

        ttk.Label(ntp_frame, text=self.loc.get('ntp_server')).grid(row=0, column=0, sticky=tk.W)
        self.ntp_entry = ttk.Entry(ntp_frame, width=30)
        self.ntp_entry.insert(0, self.startup_ctx.server or DEFAULT_SERVER)
        self.ntp_entry.grid(row=0, column=1, columnspan=2, padx=5, sticky=tk.W)

        self.start_btn = ttk.Button(ntp_frame, text=self.loc.get('start'), command=self._toggle_client)
        self.start_btn.grid(row=0, column=3, padx=5)

        self.query_btn = ttk.Button(ntp_frame, text=self.loc.get('get_time'), command=self._query,
                                    state=tk.DISABLED)
        self.query_btn.grid(row=0, column=4, padx=5)

        self.auto_query_var = tk.BooleanVar(value=bool(self.config.get('ntp', 'auto_query')))
        ttk.Checkbutton(ntp_frame, text=self.loc.get('auto_query'), variable=self.auto_query_var,
                        command=self._toggle_auto_query).grid(row=1, column=0, sticky=tk.W, pady=5)

        ttk.Label(ntp_frame, text=self.loc.get('query_interval')).grid(row=1, column=1, sticky=tk.E)
        self.interval_combo = ttk.Combobox(ntp_frame, width=8, state='readonly',
                                           values=[f"{s} s" for s in QUERY_INTERVALS_SEC])
        self.interval_combo.current(QUERY_INTERVALS_SEC.index(self.config.query_interval_sec()))
        self.interval_combo.grid(row=1, column=2, padx=5, sticky=tk.W)

        # 状態表示
        status_frame = ttk.LabelFrame(main_frame, text=self.loc.get('status'), padding="10")
        status_frame.pack(fill=tk.X, pady=5)

        rows = (
            ('result', self.loc.get('result')),
            ('ntp_time', self.loc.get('ntp_time')),
            ('unix_time', self.loc.get('unix_time')),
            ('unix_time_ms', self.loc.get('unix_time_ms')),
            ('offset', self.loc.get('offset')),
        )
        for i, (key, label) in enumerate(rows):
            ttk.Label(status_frame, text=label).grid(row=i, column=0, sticky=tk.W)
            value = ttk.Label(status_frame, text="-", font=('Courier', 10))
            value.grid(row=i, column=1, sticky=tk.W, padx=10)
            self.widgets[key] = value

        # ログ
        log_frame = ttk.LabelFrame(main_frame, text=self.loc.get('log'), padding="5")
        log_frame.pack(fill=tk.BOTH, expand=True, pady=5)
        self.log_text = scrolledtext.ScrolledText(log_frame, height=8, state=tk.DISABLED)
        self.log_text.pack(fill=tk.BOTH, expand=True)

    def _log(self, message):
        stamp = datetime.now().strftime("%H:%M:%S")
        self.log_text.config(state=tk.NORMAL)
        self.log_text.insert(tk.END, f"[{stamp}] {message}\n")
        self.log_text.see(tk.END)
        self.log_text.config(state=tk.DISABLED)

    def _start_tray(self):
        self.tray = TrayIcon(
            app_title=self.loc.get('app_title'),
            on_show=lambda: self.ui_queue.put(('show',)),
            on_query=lambda: self.ui_queue.put(('query',)),
            on_quit=lambda: self.ui_queue.put(('quit',)),
            labels={
                'show': self.loc.get('tray_show'),
                'get_time': self.loc.get('get_time'),
                'quit': self.loc.get('tray_quit'),
            },
        )
        try:
            self.tray.start()
        except Exception:
            # ディスプレイ/トレイが無い環境ではトレイなしで続行
            logger.warning("System tray is not available", exc_info=True)
            self.tray = None
            return
        self.shutdown_manager.register_callback(self.tray.stop)

    # --- timers -------------------------------------------------------------

    def _schedule(self, attr, delay_ms, fn):
        """attr に保持している予約を取り消してから張り直す（タイマーは常に1本）"""
        old = getattr(self, attr)
        setattr(self, attr, self.shutdown_manager.replace_after(self.root, old, delay_ms, fn))

    def _cancel(self, attr):
        self.shutdown_manager.cancel_after(self.root, getattr(self, attr))
        setattr(self, attr, None)

    # --- client lifecycle ---------------------------------------------------

    def _toggle_client(self):
        if self.ntp_client.get_client_started():
            self._stop_client()
        else:
            self._start_client()

    def _start_client(self):
        server = (self.ntp_entry.get() or "").strip() or DEFAULT_SERVER
        self.start_btn.config(state=tk.DISABLED)
        th = threading.Thread(target=self._start_worker, args=(server,), daemon=True)
        self.shutdown_manager.register_thread(th)
        th.start()

    def _start_worker(self, server):
        """Worker: ソケット作成と名前解決（DNS待ちでUIを止めない）"""
        if self.ntp_client.create_socket() is not ResultCode.SUCCESS:
            self.ui_queue.put(('start_failed', self.loc.get('socket_failed')))
            return
        address = self.ntp_client.set_server_address(server)
        self.ntp_client.set_client_started(True)
        self.ui_queue.put(('started', server, address))

    def _stop_client(self):
        self.ntp_client.set_client_started(False)
        self._cancel('_auto_query_timer')
        threading.Thread(target=self.ntp_client.close_socket, daemon=True).start()
        self.start_btn.config(text=self.loc.get('start'))
        self.query_btn.config(state=tk.DISABLED)
        self._log(self.loc.get('client_stopped'))
        if self.tray:
            self.tray.show_result(None)

    # --- queries ------------------------------------------------------------

    def _query(self):
        """UIスレッドからのエントリーポイント: workerを起動"""
        if self._query_running or not self.ntp_client.get_client_started():
            return
        self._query_running = True
        th = threading.Thread(target=self._query_worker, daemon=True)
        self.shutdown_manager.register_thread(th)
        th.start()

    def _query_worker(self):
        """Worker: NTP問い合わせのみ行い結果をqueueへ（UIに直接触らない）"""
        result = self.ntp_client.get_timestamp()
        self.ui_queue.put(('ntp_result', result))

    def _toggle_auto_query(self):
        if self.auto_query_var.get():
            self._auto_query_callback()
        else:
            self._cancel('_auto_query_timer')

    def _auto_query_callback(self):
        if not self.auto_query_var.get():
            return
        self._query()
        interval_sec = QUERY_INTERVALS_SEC[max(0, self.interval_combo.current())]
        self._schedule('_auto_query_timer', interval_sec * 1000, self._auto_query_callback)

    def _show_result(self, result):
        self.widgets['result'].config(text=self.loc.result_text(result.result_code))
        if result.ok:
            dt = result.to_datetime()
            self.widgets['ntp_time'].config(text=f"{dt:%Y-%m-%d} {result.clock_text()}")
            self.widgets['unix_time'].config(text=str(result.unix_seconds))
            self.widgets['unix_time_ms'].config(text=str(result.unix_millis))
            self.widgets['offset'].config(text=f"{result.offset_ms / 1000.0:+.3f}s")
            self._log(f"✓ {result.clock_text()} UTC (offset {result.offset_ms:+d}ms)")
        else:
            for key in ('ntp_time', 'unix_time', 'unix_time_ms', 'offset'):
                self.widgets[key].config(text="-")
            self._log(f"✗ {self.loc.result_text(result.result_code)}")

        if self.tray:
            self.tray.show_result(result.result_code, self.loc.result_text(result.result_code))

    # --- queue / shutdown ---------------------------------------------------

    def _process_ui_queue(self):
        """メインスレッド: workerの結果を受け取りUIを更新"""
        try:
            if not self.root.winfo_exists():
                return

            while True:
                try:
                    item = self.ui_queue.get_nowait()
                except queue.Empty:
                    break

                tag = item[0]
                if tag == 'ntp_result':
                    self._query_running = False
                    self._show_result(item[1])

                elif tag == 'started':
                    _, server, address = item
                    self.start_btn.config(text=self.loc.get('stop'), state=tk.NORMAL)
                    self.query_btn.config(state=tk.NORMAL)
                    self.config.set('ntp', 'server', value=server)
                    if address:
                        self._log(f"{self.loc.get('client_started')}: {server} ({address})")
                    else:
                        self._log(f"⚠ {self.loc.get('address_failed')}: {server}")
                    if self.auto_query_var.get():
                        self._auto_query_callback()

                elif tag == 'start_failed':
                    self.start_btn.config(state=tk.NORMAL)
                    self._log(f"✗ {item[1]}")
                    if self.tray:
                        self.tray.show_result(ResultCode.SOCKET_CREATION_FAILED, item[1])

                elif tag == 'show':
                    self.root.deiconify()
                    self.root.lift()

                elif tag == 'query':
                    self._query()

                elif tag == 'quit':
                    self._on_close()
                    return

            self._schedule('_ui_queue_timer', UI_QUEUE_POLL_MS, self._process_ui_queue)

        except (tk.TclError, RuntimeError):
            # アプリ終了時のアクセスエラーは無視
            return

    def _save_settings(self):
        self.config.set('ntp', 'auto_query', value=bool(self.auto_query_var.get()))
        self.config.set('ntp', 'query_interval_index', value=max(0, self.interval_combo.current()))
        self.config.set('window', 'width', value=self.root.winfo_width())
        self.config.set('window', 'height', value=self.root.winfo_height())
        self.config.set('window', 'x', value=self.root.winfo_x())
        self.config.set('window', 'y', value=self.root.winfo_y())
        self.config.save()

    def _on_close(self):
        if self.shutdown_manager.started:
            return
        try:
            self._save_settings()
        except tk.TclError:
            logger.debug("could not read window geometry", exc_info=True)
        self.ntp_client.set_client_started(False)
        self.shutdown_manager.shutdown(self.root, reason="window_closed")
