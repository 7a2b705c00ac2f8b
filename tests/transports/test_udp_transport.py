"""
Brief: Unit tests for the UDP transport using a local UDP stub server.

Inputs:
  - None

Outputs:
  - None
"""

import socket
import threading
import time

import pytest

from dnskeyage.transports.udp import UDPError, udp_query


class _UDPStub:
    def __init__(self, reply=None):
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.bind(("127.0.0.1", 0))
        self.addr = self.sock.getsockname()
        self.reply = reply
        self._stop = False
        self.thread = threading.Thread(target=self._loop, daemon=True)

    def start(self):
        self.thread.start()
        time.sleep(0.02)

    def _loop(self):
        while not self._stop:
            try:
                self.sock.settimeout(0.2)
                data, peer = self.sock.recvfrom(65535)
            except Exception:
                continue
            try:
                self.sock.sendto(self.reply if self.reply is not None else data, peer)
            except Exception:
                pass

    def close(self):
        self._stop = True
        try:
            self.sock.close()
        except Exception:
            pass


@pytest.fixture(scope="module")
def udp_stub():
    s = _UDPStub()
    s.start()
    try:
        yield s
    finally:
        s.close()


def test_udp_query_roundtrip(udp_stub):
    q = b"\x12\x34hello"
    resp = udp_query(udp_stub.addr[0], udp_stub.addr[1], q, timeout_ms=500)
    assert resp == q


def test_udp_query_receives_datagrams_larger_than_4096():
    """
    Brief: Answers up to the EDNS0 payload and beyond are read completely.

    Inputs:
      - None

    Outputs:
      - None: Asserts a 5000-byte reply is returned intact
    """
    big = b"\xab" * 5000
    stub = _UDPStub(reply=big)
    stub.start()
    try:
        resp = udp_query(stub.addr[0], stub.addr[1], b"\x00\x01", timeout_ms=500)
    finally:
        stub.close()
    assert resp == big


def test_udp_query_timeout_raises_udp_error():
    """
    Brief: A silent peer produces UDPError after the timeout.

    Inputs:
      - None

    Outputs:
      - None: Asserts UDPError is raised
    """
    silent = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    silent.bind(("127.0.0.1", 0))
    host, port = silent.getsockname()
    try:
        with pytest.raises(UDPError):
            udp_query(host, port, b"\x00\x01", timeout_ms=100)
    finally:
        silent.close()


def test_udp_query_wraps_oserror(monkeypatch):
    def boom(*a, **k):
        raise OSError("no route")

    monkeypatch.setattr(socket, "getaddrinfo", boom)
    with pytest.raises(UDPError, match="no route"):
        udp_query("192.0.2.1", 53, b"\x00")
