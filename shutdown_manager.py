# shutdown_manager.py
# =============================================================================
# ChronoNTP - Shutdown Manager
#
# 【目的 / Why】
# - GUI は after() タイマー、ワーカースレッド、トレイアイコン、UDPソケットを持つ。
#   root.destroy() だけではソケットやトレイのスレッドが残る。
#
# 【使い方】
# - アプリ起動時に ShutdownManager を1つ生成し、各所で以下を登録:
#   - after() の戻りID      → register_after(root, after_id)
#   - thread               → register_thread(thread)
#   - NTPClient 等          → register_closeable(obj)  (close_socket()/close()/stop())
#   - tray icon等          → register_callback(func)
# - 終了時: shutdown_manager.shutdown(root, reason="window_closed")
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional, Any, List
import logging
import threading
import time

logger = logging.getLogger(__name__)

_CLOSE_METHODS = ("close_socket", "close", "stop")


@dataclass
class ShutdownManager:
    """停止処理の集約点。登録だけ受け付け、shutdown() でまとめて止める"""

    _after_tasks: List[tuple[Any, str]] = field(default_factory=list)
    _threads: List[threading.Thread] = field(default_factory=list)
    _closeables: List[Any] = field(default_factory=list)
    _callbacks: List[Callable[[], None]] = field(default_factory=list)

    # shutdown が二重に走らないためのガード
    _lock: threading.Lock = field(default_factory=threading.Lock)
    _started: bool = False

    @property
    def started(self) -> bool:
        return self._started

    def register_after(self, root: Any, after_id: Optional[str]) -> None:
        if root is None or not after_id:
            return
        self._after_tasks.append((root, after_id))

    def unregister_after(self, root: Any, after_id: Optional[str]) -> None:
        try:
            self._after_tasks.remove((root, after_id))
        except ValueError:
            pass

    def cancel_after(self, root: Any, after_id: Optional[str]) -> None:
        """after() を取り消して登録からも外す（取り消し済みでも例外は出さない）"""
        if root is None or not after_id:
            return
        try:
            root.after_cancel(after_id)
        except Exception:
            logger.debug("after_cancel failed (ignored): %s", after_id, exc_info=True)
        self.unregister_after(root, after_id)

    def replace_after(self, root: Any, old_id: Optional[str], delay_ms: int, fn: Callable[[], None]) -> str:
        """old_id を取り消してから after() を張り直し、新しい ID を返す"""
        self.cancel_after(root, old_id)
        after_id = root.after(delay_ms, fn)
        self.register_after(root, after_id)
        return after_id

    def register_thread(self, th: Optional[threading.Thread]) -> None:
        if th is None:
            return
        # 終了済みのワーカーは捨てる（自動取得で増え続けないように）
        self._threads = [t for t in self._threads if t.is_alive()]
        self._threads.append(th)

    def register_closeable(self, obj: Any) -> None:
        """close_socket() / close() / stop() のうち最初に見つかったものを呼ぶ"""
        if obj is None:
            return
        self._closeables.append(obj)

    def register_callback(self, fn: Optional[Callable[[], None]]) -> None:
        if fn is None:
            return
        self._callbacks.append(fn)

    def shutdown(self, root: Any, *, reason: str = "", join_timeout_sec: float = 1.0) -> bool:
        """
        登録済みのリソースを順番に停止し、GUI を終了させる。
        2回目以降の呼び出しは何もしない（False を返す）。
        """
        with self._lock:
            if self._started:
                logger.warning("Shutdown already started; ignore duplicate call. reason=%s", reason)
                return False
            self._started = True

        logger.info("Shutdown sequence started. reason=%s", reason)

        # 1) after() を止める
        for r, task_id in list(self._after_tasks):
            try:
                r.after_cancel(task_id)
            except Exception:
                logger.debug("after_cancel failed (ignored): %s", task_id, exc_info=True)

        # 2) 明示停止コールバック（tray停止など）
        for fn in list(self._callbacks):
            try:
                fn()
            except Exception:
                logger.debug("shutdown callback failed (ignored)", exc_info=True)

        # 3) closeable を閉じる（NTPClient のソケットなど）
        for obj in list(self._closeables):
            for name in _CLOSE_METHODS:
                method = getattr(obj, name, None)
                if callable(method):
                    try:
                        method()
                    except Exception:
                        logger.debug("%s.%s failed (ignored)", type(obj).__name__, name, exc_info=True)
                    break

        # 4) thread を join（短時間だけ待つ）
        deadline = time.monotonic() + max(0.1, join_timeout_sec)
        for th in list(self._threads):
            if th.is_alive():
                th.join(timeout=max(0.0, deadline - time.monotonic()))

        # 5) Tk 終了（quit→destroy）
        if root is not None:
            for name in ("quit", "destroy"):
                try:
                    getattr(root, name)()
                except Exception:
                    logger.debug("root.%s failed (ignored)", name, exc_info=True)

        logger.info("Shutdown sequence finished. reason=%s", reason)
        return True
