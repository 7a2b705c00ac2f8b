import socket

# Large enough for any EDNS0 payload size a resolver may honour.
_MAX_DATAGRAM = 65535


class UDPError(Exception):
    """
    Brief: DNS-over-UDP transport error.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


def udp_query(
    host: str,
    port: int,
    query: bytes,
    *,
    timeout_ms: int = 5000,
) -> bytes:
    """
    Brief: Perform a single UDP DNS query.

    Inputs:
    - host: resolver host name or IP (v4 or v6)
    - port: resolver UDP port
    - query: wire-format DNS query bytes
    - timeout_ms: socket timeout in milliseconds

    Outputs:
    - bytes: wire-format DNS response

    Example:
        >>> try:
        ...     udp_query('127.0.0.1', 53, b'\x00\x01')
        ... except UDPError:
        ...     pass
    """
    try:
        family, socktype, proto, _, addr = socket.getaddrinfo(
            host, int(port), type=socket.SOCK_DGRAM
        )[0]
        s = socket.socket(family, socktype, proto)
        try:
            s.settimeout(timeout_ms / 1000.0)
            s.sendto(query, addr)
            data, _ = s.recvfrom(_MAX_DATAGRAM)
            return data
        finally:
            s.close()
    except OSError as e:
        raise UDPError(f"UDP error talking to {host}:{port}: {e}") from e
