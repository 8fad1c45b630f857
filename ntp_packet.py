# ntp_packet.py
"""
NTP パケットのエンコード/デコード

- encode_request(): 48バイトのクライアント要求（LI=3, VN=4, Mode=3 → 0xE3）
- decode_reply():   応答から Receive(T2) / Transmit(T3) タイムスタンプを取り出す
                    （1900年起点のミリ秒）
"""
from __future__ import annotations

import struct
from dataclasses import dataclass

NTP_PACKET_SIZE = 48
REQUEST_HEADER = 0xE3  # 0b11_100_011

# 32-39: Receive Timestamp, 40-47: Transmit Timestamp
_RECEIVE_OFFSET = 32
_TRANSMIT_OFFSET = 40
_TIMESTAMP = struct.Struct('!II')


class NTPDecodeError(ValueError):
    """応答パケットからタイムスタンプを取り出せなかった"""


@dataclass(frozen=True)
class NTPTimestamp:
    seconds: int       # seconds since 1900
    milliseconds: int  # fraction scaled to ms (0-999)

    @property
    def total_ms(self) -> int:
        return self.seconds * 1000 + self.milliseconds


@dataclass(frozen=True)
class ReplyTimestamps:
    receive: NTPTimestamp   # T2
    transmit: NTPTimestamp  # T3

    @property
    def t2(self) -> int:
        return self.receive.total_ms

    @property
    def t3(self) -> int:
        return self.transmit.total_ms


def encode_request() -> bytes:
    """クライアント要求パケットを作る（先頭1バイト以外はゼロ）"""
    buf = bytearray(NTP_PACKET_SIZE)
    buf[0] = REQUEST_HEADER
    return bytes(buf)


def _read_timestamp(data: bytes, offset: int) -> NTPTimestamp:
    seconds, fraction = _TIMESTAMP.unpack_from(data, offset)
    return NTPTimestamp(seconds, fraction * 1000 // 0x100000000)


def decode_reply(data: bytes) -> ReplyTimestamps:
    """
    応答パケットを解析する。
    48バイト未満（受信長0を含む）は NTPDecodeError。49バイト目以降は無視。
    """
    if not data:
        raise NTPDecodeError("empty NTP response")
    if len(data) < NTP_PACKET_SIZE:
        raise NTPDecodeError(f"NTP response too short ({len(data)} bytes)")

    return ReplyTimestamps(
        receive=_read_timestamp(data, _RECEIVE_OFFSET),
        transmit=_read_timestamp(data, _TRANSMIT_OFFSET),
    )
