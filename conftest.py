# conftest.py
# ローカル UDP で動く最小の偽 NTP サーバー（127.0.0.1 のエフェメラルポート）
import socket
import struct
import threading

import pytest


def frac_for_ms(ms):
    """fraction * 1000 // 2**32 == ms となる最小の 32bit fraction"""
    return -(-ms * 2**32 // 1000)


def build_reply(t2_sec, t2_ms, t3_sec, t3_ms):
    buf = bytearray(48)
    buf[0] = 0x24  # LI=0, VN=4, Mode=4 (server)
    struct.pack_into('!IIII', buf, 32, t2_sec, frac_for_ms(t2_ms), t3_sec, frac_for_ms(t3_ms))
    return bytes(buf)


class FakeNTPServer:
    def __init__(self, reply=None):
        # reply: bytes / callable(request) -> bytes / None（応答しない）
        self.reply = reply
        self.requests = []
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.settimeout(0.05)
        self.port = self.sock.getsockname()[1]
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._serve, daemon=True)

    def _serve(self):
        while not self._stop.is_set():
            try:
                data, addr = self.sock.recvfrom(512)
            except socket.timeout:
                continue
            except OSError:
                return
            self.requests.append(data)
            if self.reply is None:
                continue
            payload = self.reply(data) if callable(self.reply) else self.reply
            self.sock.sendto(payload, addr)

    def start(self):
        self._thread.start()
        return self

    def stop(self):
        self._stop.set()
        self._thread.join(timeout=1.0)
        self.sock.close()


@pytest.fixture
def ntp_server():
    servers = []

    def start(reply=None):
        server = FakeNTPServer(reply).start()
        servers.append(server)
        return server

    yield start
    for s in servers:
        s.stop()


class FakeClock:
    """呼ばれるたびに次の値（ms since 1970）を返す"""

    def __init__(self, *values):
        self.values = list(values)
        self.calls = 0

    def __call__(self):
        value = self.values[self.calls]
        self.calls += 1
        return value


class FakeTkRoot:
    """after()/after_cancel() だけを真似る。pending に未実行の予約が残る"""

    def __init__(self):
        self.pending = {}
        self._next_id = 0

    def after(self, delay_ms, fn):
        self._next_id += 1
        after_id = f"after#{self._next_id}"
        self.pending[after_id] = fn
        return after_id

    def after_cancel(self, after_id):
        self.pending.pop(after_id, None)

    def fire(self, after_id):
        self.pending.pop(after_id)()
