# test_ntp_client.py
import socket

import pytest

import ntp_client
from conftest import FakeClock, build_reply
from ntp_client import ClientState, NTPClient, ResultCode, TimestampResult, _extract_host
from ntp_packet import encode_request

# T2 = 3208988801.500s, T3 = 3208988801.600s (since 1900)
REFERENCE_REPLY = build_reply(3208988801, 500, 3208988801, 600)


def _ready_client(port, clock=None, timeout=1.0):
    client = NTPClient(port=port, timeout=timeout, clock=clock)
    assert client.create_socket() is ResultCode.SUCCESS
    assert client.set_server_address("127.0.0.1") == "127.0.0.1"
    return client


def test_default_result_is_address_not_set():
    r = TimestampResult()
    assert r.result_code is ResultCode.SERVER_ADDRESS_NOT_SET
    assert r.unix_seconds == 0
    assert r.to_datetime() is None


def test_get_timestamp_without_address_does_no_io():
    client = NTPClient()

    def _fail(ctx):
        raise AssertionError("no network I/O expected")

    client._send_request = _fail
    r = client.get_timestamp()
    assert r.result_code is ResultCode.SERVER_ADDRESS_NOT_SET
    assert r.unix_seconds == 0
    assert r.unix_millis == 0
    assert (r.hour, r.minute, r.second, r.millisecond) == (0, 0, 0, 0)


def test_successful_exchange(ntp_server):
    server = ntp_server(REFERENCE_REPLY)
    clock = FakeClock(1000, 1100, 1200)  # t1, t4, now
    client = _ready_client(server.port, clock)
    try:
        r = client.get_timestamp()
        assert client.state is ClientState.COMPLETED
    finally:
        client.close_socket()

    assert server.requests == [encode_request()]
    assert r.result_code is ResultCode.SUCCESS
    assert r.ok
    assert r.unix_seconds == 1000000001
    assert r.unix_millis == 1000000001700
    assert (r.hour, r.minute, r.second, r.millisecond) == (1, 46, 41, 700)
    assert r.clock_text() == "01:46:41.700"
    assert r.to_datetime().isoformat() == "2001-09-09T01:46:41.700000+00:00"


def test_repeated_calls_use_their_own_t1_t4(ntp_server):
    replies = iter([
        build_reply(3208988801, 500, 3208988801, 600),
        build_reply(3208988901, 500, 3208988901, 600),
    ])
    server = ntp_server(lambda req: next(replies))
    clock = FakeClock(1000, 1100, 1200, 5000, 5100, 5200)
    client = _ready_client(server.port, clock)
    try:
        r1 = client.get_timestamp()
        r2 = client.get_timestamp()
    finally:
        client.close_socket()

    assert r1.ok and r2.ok
    assert r1 is not r2
    assert r1.unix_millis == 1000000001700
    # offset = ((T2-5000) + (T3-5100)) / 2, adjusted = 5200 + offset
    assert r2.unix_millis == 1000000101700
    assert r2.offset_ms == r1.offset_ms + 100000 - 4000


def test_receive_timeout_is_receive_failed(ntp_server):
    server = ntp_server(None)
    client = _ready_client(server.port, timeout=0.2)
    try:
        r = client.get_timestamp()
    finally:
        client.close_socket()

    assert len(server.requests) == 1
    assert r.result_code is ResultCode.RECEIVE_FAILED
    assert r.unix_seconds == 0


def test_empty_reply_is_receive_failed(ntp_server):
    server = ntp_server(b'')
    client = _ready_client(server.port)
    try:
        r = client.get_timestamp()
    finally:
        client.close_socket()
    assert r.result_code is ResultCode.RECEIVE_FAILED
    assert r.unix_seconds == 0


def test_short_reply_is_receive_failed(ntp_server):
    server = ntp_server(b'\x24' * 20)
    client = _ready_client(server.port)
    try:
        r = client.get_timestamp()
    finally:
        client.close_socket()
    assert r.result_code is ResultCode.RECEIVE_FAILED


def test_zero_unix_time_is_receive_failed(ntp_server):
    # T2 = T3 = NTP epoch delta, t1 = t4 = now = 0  → unix_seconds == 0
    server = ntp_server(build_reply(2208988800, 0, 2208988800, 0))
    client = _ready_client(server.port, FakeClock(0, 0, 0))
    try:
        r = client.get_timestamp()
    finally:
        client.close_socket()
    assert r.result_code is ResultCode.RECEIVE_FAILED
    assert r.unix_seconds == 0


def test_send_without_socket_is_send_failed():
    client = NTPClient()
    assert client.set_server_address("127.0.0.1") == "127.0.0.1"
    r = client.get_timestamp()
    assert r.result_code is ResultCode.SEND_FAILED
    assert r.unix_seconds == 0


class _BrokenSocket:
    def setblocking(self, flag):
        pass

    def settimeout(self, value):
        pass

    def recvfrom(self, size):
        raise BlockingIOError()

    def sendto(self, data, addr):
        raise OSError("network unreachable")

    def close(self):
        pass


def test_send_error_is_send_failed():
    client = NTPClient()
    client.set_server_address("127.0.0.1")
    client._sock = _BrokenSocket()
    r = client.get_timestamp()
    assert r.result_code is ResultCode.SEND_FAILED


def test_socket_creation_failure(monkeypatch):
    def _no_socket(*args, **kwargs):
        raise OSError("too many open files")

    monkeypatch.setattr(ntp_client.socket, "socket", _no_socket)
    client = NTPClient()
    assert client.create_socket() is ResultCode.SOCKET_CREATION_FAILED
    assert client.state is ClientState.UNINITIALIZED


def test_resolution_failure_clears_address(monkeypatch):
    client = NTPClient()
    assert client.set_server_address("127.0.0.1") == "127.0.0.1"

    def _gaierror(*args, **kwargs):
        raise socket.gaierror(-2, "Name or service not known")

    monkeypatch.setattr(ntp_client.socket, "getaddrinfo", _gaierror)
    assert client.set_server_address("no.such.host.invalid") is None
    assert client.server_address is None
    assert client.get_timestamp().result_code is ResultCode.SERVER_ADDRESS_NOT_SET


@pytest.mark.parametrize("bad", ["", "   ", "https://", None])
def test_empty_server_address_fails(bad):
    client = NTPClient()
    assert client.set_server_address(bad) is None


@pytest.mark.parametrize("text, host", [
    ("pool.ntp.org", "pool.ntp.org"),
    ("time.google.com:123/path", "time.google.com"),
    ("ntp://192.0.2.1", "192.0.2.1"),
    ("  10.0.0.1  ", "10.0.0.1"),
])
def test_extract_host(text, host):
    assert _extract_host(text) == host


def test_reset_server_address():
    client = NTPClient()
    client.set_server_address("127.0.0.1")
    client.reset_server_address()
    assert client.server is None
    assert client.get_timestamp().result_code is ResultCode.SERVER_ADDRESS_NOT_SET


def test_state_transitions(ntp_server):
    server = ntp_server(REFERENCE_REPLY)
    client = NTPClient(port=server.port, timeout=1.0)
    assert client.state is ClientState.UNINITIALIZED
    assert client.create_socket() is ResultCode.SUCCESS
    assert client.state is ClientState.SOCKET_READY
    client.set_server_address("127.0.0.1")
    assert client.state is ClientState.ADDRESS_SET
    client.get_timestamp()
    assert client.state is ClientState.COMPLETED
    client.close_socket()
    assert client.state is ClientState.UNINITIALIZED


def test_address_before_socket_keeps_uninitialized():
    client = NTPClient()
    assert client.set_server_address("127.0.0.1") == "127.0.0.1"
    assert client.state is ClientState.UNINITIALIZED
    assert client.create_socket() is ResultCode.SUCCESS
    try:
        assert client.state is ClientState.ADDRESS_SET
    finally:
        client.close_socket()


def test_close_socket_without_create_does_not_raise():
    client = NTPClient()
    client.close_socket()
    client.close_socket()
    assert client.state is ClientState.UNINITIALIZED


def test_close_socket_twice_after_create():
    client = NTPClient()
    assert client.create_socket() is ResultCode.SUCCESS
    client.close_socket()
    client.close_socket()


def test_create_socket_applies_timeout():
    client = NTPClient(timeout=0.25)
    client.create_socket()
    try:
        assert client._sock.gettimeout() == 0.25
    finally:
        client.close_socket()


def test_client_started_flag_is_caller_owned():
    client = NTPClient()
    assert client.get_client_started() is False
    client.set_client_started(True)
    assert client.client_started is True
    client.client_started = False
    assert client.get_client_started() is False
