"""
NTP クライアントモジュール（UDP 1往復 + ミリ秒精度 offset 算出版）

get_timestamp() -> TimestampResult
- result_code  : ResultCode（成功/アドレス未設定/送信失敗/受信失敗）
- unix_seconds : 補正後の Unix 時刻（秒）。0 は「有効な時刻なし」
- unix_millis  : 補正後の Unix 時刻（ミリ秒）
- hour/minute/second/millisecond : UTC の時分秒へ分解した値

公開操作は例外を送出しない。失敗はすべて ResultCode で返す。
"""
from __future__ import annotations

import logging
import socket
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional
from urllib.parse import urlsplit

from clock_offset import compute_timestamp
from ntp_packet import NTPDecodeError, decode_reply, encode_request

logger = logging.getLogger(__name__)

NTP_PORT = 123
DEFAULT_TIMEOUT = 0.5  # 受信タイムアウト既定値（秒）
_RECV_BUFSIZE = 512


class ResultCode(Enum):
    SUCCESS = "success"
    SERVER_ADDRESS_NOT_SET = "server_address_not_set"
    SEND_FAILED = "send_failed"
    RECEIVE_FAILED = "receive_failed"
    SOCKET_CREATION_FAILED = "socket_creation_failed"  # create_socket() のみ


class ClientState(Enum):
    UNINITIALIZED = "uninitialized"
    SOCKET_READY = "socket_ready"
    ADDRESS_SET = "address_set"
    REQUEST_SENT = "request_sent"
    COMPLETED = "completed"


@dataclass
class TimestampResult:
    result_code: ResultCode = ResultCode.SERVER_ADDRESS_NOT_SET
    unix_seconds: int = 0
    unix_millis: int = 0
    hour: int = 0
    minute: int = 0
    second: int = 0
    millisecond: int = 0
    offset_ms: int = 0  # サーバー時計 - ローカル時計（ms）

    @property
    def ok(self) -> bool:
        return self.result_code is ResultCode.SUCCESS

    def clock_text(self) -> str:
        """HH:MM:SS.mmm（UTC）"""
        return f"{self.hour:02d}:{self.minute:02d}:{self.second:02d}.{self.millisecond:03d}"

    def to_datetime(self) -> Optional[datetime]:
        """tz-aware UTC datetime。有効な時刻がなければ None"""
        if self.unix_seconds == 0:
            return None
        return datetime.fromtimestamp(self.unix_millis / 1000.0, tz=timezone.utc)


@dataclass
class RequestContext:
    """1回の問い合わせ専用の T1/T4（ms since 1970）"""
    t1: int = 0
    t4: int = 0


def current_millis() -> int:
    return time.time_ns() // 1_000_000


def _extract_host(server: str) -> str:
    """'pool.ntp.org' / 'host:123/path' / 'ntp://host' からホスト部だけを取り出す"""
    text = (server or "").strip()
    if not text:
        raise ValueError("empty server address")
    if "://" not in text:
        text = "https://" + text
    host = urlsplit(text).hostname
    if not host:
        raise ValueError(f"no host in server address: {server!r}")
    return host


class NTPClient:
    def __init__(
        self,
        port: int = NTP_PORT,
        timeout: float = DEFAULT_TIMEOUT,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.port = port
        self.timeout = timeout
        self._clock = clock or current_millis

        self._sock: Optional[socket.socket] = None
        self._server: Optional[str] = None
        self._sockaddr: Optional[tuple] = None
        self._client_started = False
        self._state = ClientState.UNINITIALIZED

        # 1ソケットにつき同時に1リクエストのみ
        self._lock = threading.Lock()

    # --- properties ---------------------------------------------------------

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def server(self) -> Optional[str]:
        return self._server

    @property
    def server_address(self) -> Optional[str]:
        """解決済み IP アドレス（未設定なら None）"""
        return self._sockaddr[0] if self._sockaddr else None

    @property
    def client_started(self) -> bool:
        return self._client_started

    @client_started.setter
    def client_started(self, value: bool) -> None:
        self._client_started = bool(value)

    def get_client_started(self) -> bool:
        return self._client_started

    def set_client_started(self, value: bool) -> None:
        self.client_started = value

    # --- lifecycle ----------------------------------------------------------

    def create_socket(self) -> ResultCode:
        """
        UDPソケットを作成（エフェメラルポート）し、受信タイムアウトを設定する。
        既にソケットがある場合は閉じてから作り直す。
        """
        with self._lock:
            if self._sock is not None:
                self._close_locked()

            sock = None
            try:
                sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
                sock.bind(("", 0))
                sock.settimeout(self.timeout)
            except OSError as e:
                logger.error("UDP socket creation failed: %s", e)
                if sock is not None:
                    sock.close()
                self._state = ClientState.UNINITIALIZED
                return ResultCode.SOCKET_CREATION_FAILED

            self._sock = sock
            self._state = ClientState.ADDRESS_SET if self._sockaddr else ClientState.SOCKET_READY
            logger.debug("UDP socket ready: local=%s timeout=%.3fs", sock.getsockname(), self.timeout)
            return ResultCode.SUCCESS

    def set_server_address(self, server: str) -> Optional[str]:
        """
        サーバー名（DNS名またはIPリテラル）を解決して保存する。
        成功時は解決した IP 文字列、失敗時は None（アドレスは未設定に戻る）。
        """
        with self._lock:
            try:
                host = _extract_host(server)
                infos = socket.getaddrinfo(host, self.port, socket.AF_INET, socket.SOCK_DGRAM)
                if not infos:
                    raise OSError(f"no address for {host}")
            except (OSError, ValueError) as e:
                logger.warning("NTP server resolution failed (%s): %s", server, e)
                self._server = None
                self._sockaddr = None
                if self._state is ClientState.ADDRESS_SET:
                    self._state = ClientState.SOCKET_READY
                return None

            self._server = host
            self._sockaddr = infos[0][4]
            if self._sock is not None:
                self._state = ClientState.ADDRESS_SET
            logger.info("NTP server: %s -> %s:%d", host, self._sockaddr[0], self._sockaddr[1])
            return self._sockaddr[0]

    def reset_server_address(self) -> None:
        with self._lock:
            self._server = None
            self._sockaddr = None
            self._state = ClientState.SOCKET_READY if self._sock else ClientState.UNINITIALIZED

    def close_socket(self) -> None:
        """何度呼んでもよい。未作成・クローズ済みでも例外は出さない"""
        with self._lock:
            self._close_locked()

    def _close_locked(self) -> None:
        sock, self._sock = self._sock, None
        self._state = ClientState.UNINITIALIZED
        if sock is None:
            logger.debug("close_socket: socket was not created")
            return
        try:
            sock.close()
        except OSError:
            logger.debug("error while closing socket (ignored)", exc_info=True)

    # --- exchange -----------------------------------------------------------

    def get_timestamp(self) -> TimestampResult:
        """
        NTPサーバーへ1回だけ問い合わせる（ブロッキング、リトライなし）。
        アドレス未設定 → 送信 → 受信 の順に判定し、失敗した段階の ResultCode を返す。
        """
        with self._lock:
            if self._sockaddr is None:
                logger.info("NTP server address is not set")
                return TimestampResult(ResultCode.SERVER_ADDRESS_NOT_SET)

            ctx = RequestContext()
            if self._send_request(ctx) is not ResultCode.SUCCESS:
                self._state = ClientState.COMPLETED
                return TimestampResult(ResultCode.SEND_FAILED)

            result = self._receive(ctx)
            self._state = ClientState.COMPLETED
            if result.unix_seconds == 0:
                return TimestampResult(ResultCode.RECEIVE_FAILED)
            return result

    def _send_request(self, ctx: RequestContext) -> ResultCode:
        if self._sock is None:
            logger.warning("Send failed: socket is not created")
            return ResultCode.SEND_FAILED

        self._discard_stale_replies()
        packet = encode_request()
        ctx.t1 = self._clock()
        try:
            self._sock.sendto(packet, self._sockaddr)
        except socket.timeout:
            logger.warning("Send timed out: %s", self._sockaddr)
            return ResultCode.SEND_FAILED
        except OSError as e:
            logger.warning("Send failed: %s", e)
            return ResultCode.SEND_FAILED

        self._state = ClientState.REQUEST_SENT
        return ResultCode.SUCCESS

    def _discard_stale_replies(self) -> None:
        """前回タイムアウト後に遅れて届いた応答を捨てる（今回の T1 と組にしない）"""
        dropped = 0
        self._sock.setblocking(False)
        try:
            while True:
                self._sock.recvfrom(_RECV_BUFSIZE)
                dropped += 1
        except OSError:
            pass
        finally:
            self._sock.settimeout(self.timeout)
        if dropped:
            logger.debug("Discarded %d stale NTP reply(s)", dropped)

    def _receive(self, ctx: RequestContext) -> TimestampResult:
        """応答を待ち、T4 を記録して時刻を算出。失敗時は unix_seconds=0 の結果を返す"""
        try:
            data, addr = self._sock.recvfrom(_RECV_BUFSIZE)
            ctx.t4 = self._clock()
        except socket.timeout:
            logger.info("No NTP reply within %.3fs", self.timeout)
            return TimestampResult(ResultCode.RECEIVE_FAILED)
        except OSError as e:
            logger.warning("Receive failed: %s", e)
            return TimestampResult(ResultCode.RECEIVE_FAILED)

        try:
            reply = decode_reply(data)
        except NTPDecodeError as e:
            logger.warning("Invalid NTP reply from %s: %s", addr, e)
            return TimestampResult(ResultCode.RECEIVE_FAILED)

        now = self._clock()
        reading = compute_timestamp(ctx.t1, reply.t2, reply.t3, ctx.t4, now)
        logger.debug(
            "t1=%d t2=%d t3=%d t4=%d now=%d offset=%dms",
            ctx.t1, reply.t2, reply.t3, ctx.t4, now, reading.offset_ms,
        )

        return TimestampResult(
            result_code=ResultCode.SUCCESS,
            unix_seconds=reading.unix_seconds,
            unix_millis=reading.unix_millis,
            hour=reading.hour,
            minute=reading.minute,
            second=reading.second,
            millisecond=reading.millisecond,
            offset_ms=reading.local_offset_ms,
        )
