"""Ordered DNSKEY lookups against a list of resolvers.

Brief:
  A zone's DNSKEY RRset is fetched from the first resolver that answers
  successfully. Each resolver is asked over UDP with EDNS(0) (4096 byte
  payload, DO=1); a truncated UDP answer is re-asked once over TCP against the
  same resolver before moving on. Resolvers are probed strictly one after the
  other.

  The probe is written as a small state machine so the fallback order can be
  exercised with fake transports:

    TRYING(i) --ok--------> SUCCEEDED
    TRYING(i) --truncated-> ESCALATED(i)
    TRYING(i) --failure---> TRYING(i+1)
    ESCALATED(i) --ok-----> SUCCEEDED
    ESCALATED(i) --other--> TRYING(i+1)
    TRYING(n) ------------> EXHAUSTED

Inputs:
  - Zone FQDN, ordered resolver hosts, a shared port.

Outputs:
  - KeyLookup describing the keys found (possibly none) or that no resolver
    could answer.
"""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

import dns.exception
import dns.flags
import dns.message
import dns.rcode
from dnslib import EDNS0, DNSRecord

from .keys import LiveKey, live_keys_from_message
from .transports.tcp import TCPError, tcp_query
from .transports.udp import UDPError, udp_query

logger = logging.getLogger(__name__)

EDNS0_PAYLOAD = 4096
DEFAULT_TIMEOUT_MS = 5000
_HEADER_LEN = 12

LOOKUP_OK = "ok"
LOOKUP_EXHAUSTED = "exhausted"
LOOKUP_CANCELLED = "cancelled"

UdpTransport = Callable[..., bytes]
TcpTransport = Callable[..., bytes]


class ResolverState(enum.Enum):
    TRYING = "trying"
    ESCALATED = "escalated"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"


class Outcome(str, enum.Enum):
    """Classification of a single exchange with one resolver."""

    OK = "ok"
    TRUNCATED = "truncated"
    TRANSPORT_ERROR = "transport_error"
    BAD_RESPONSE = "bad_response"
    RCODE = "rcode"


@dataclass
class Attempt:
    """One exchange made while probing resolvers.

    Inputs/fields:
      - resolver: Resolver host the query was sent to.
      - transport: "udp" or "tcp".
      - outcome: Outcome of the exchange.
      - detail: Free-form text (error message or rcode name).
    """

    resolver: str
    transport: str
    outcome: Outcome
    detail: str = ""


@dataclass
class KeyLookup:
    """Result of probing the resolver list for one zone.

    Inputs/fields:
      - zone: Zone FQDN.
      - status: LOOKUP_OK when a resolver answered (keys may be empty),
        LOOKUP_EXHAUSTED when every resolver failed, LOOKUP_CANCELLED when a
        stop was requested before an answer was obtained.
      - keys: Live DNSKEYs in answer order.
      - resolver: Host that produced the answer, if any.
      - attempts: Every exchange made, in order.
    """

    zone: str
    status: str
    keys: List[LiveKey] = field(default_factory=list)
    resolver: Optional[str] = None
    attempts: List[Attempt] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == LOOKUP_OK


def build_dnskey_query(zone: str, payload: int = EDNS0_PAYLOAD) -> DNSRecord:
    """Brief: Build a recursive DNSKEY query with EDNS(0) and the DO bit.

    Inputs:
      - zone: Zone FQDN.
      - payload: Advertised EDNS(0) UDP payload size.

    Outputs:
      - DNSRecord ready to be packed.
    """

    q = DNSRecord.question(zone, "DNSKEY")
    q.header.rd = 1
    q.add_ar(EDNS0(flags="do", udp_len=int(payload)))
    return q


class DnskeyResolver:
    """Fetch a zone's DNSKEY RRset from an ordered list of resolvers.

    Inputs (constructor):
      - resolvers: Resolver hosts in priority order.
      - port: Port shared by all resolvers (default 53).
      - timeout_ms: Per-exchange timeout (default 5000).
      - udp: Callable with udp_query's signature; injectable for tests.
      - tcp: Callable with tcp_query's signature; injectable for tests.

    Example:
      >>> lookup = DnskeyResolver(["9.9.9.9"]).lookup("example.com.")
      >>> lookup.ok, len(lookup.keys)
    """

    def __init__(
        self,
        resolvers: Sequence[str],
        port: int = 53,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        udp: Optional[UdpTransport] = None,
        tcp: Optional[TcpTransport] = None,
    ) -> None:
        self.resolvers = [str(r) for r in resolvers]
        self.port = int(port)
        self.timeout_ms = int(timeout_ms)
        self._udp = udp or udp_query
        self._tcp = tcp or tcp_query

    def lookup(
        self, zone: str, stop_event: Optional[threading.Event] = None
    ) -> KeyLookup:
        """Brief: Probe resolvers in order until one yields a DNSKEY answer.

        Inputs:
          - zone: Zone FQDN.
          - stop_event: Optional event; when set, no further resolver is tried.

        Outputs:
          - KeyLookup; never raises for resolver failures.
        """

        query = build_dnskey_query(zone)
        wire = bytes(query.pack())
        query_id = query.header.id
        result = KeyLookup(zone=zone, status=LOOKUP_EXHAUSTED)

        state = ResolverState.TRYING
        index = 0
        answer: Optional[dns.message.Message] = None
        while True:
            if state is ResolverState.TRYING:
                if stop_event is not None and stop_event.is_set():
                    state = ResolverState.CANCELLED
                    continue
                if index >= len(self.resolvers):
                    state = ResolverState.EXHAUSTED
                    continue
                attempt, answer = self._exchange(
                    self.resolvers[index], "udp", wire, query_id, zone
                )
                result.attempts.append(attempt)
                if attempt.outcome is Outcome.OK:
                    state = ResolverState.SUCCEEDED
                elif attempt.outcome is Outcome.TRUNCATED:
                    state = ResolverState.ESCALATED
                else:
                    index += 1
            elif state is ResolverState.ESCALATED:
                attempt, answer = self._exchange(
                    self.resolvers[index], "tcp", wire, query_id, zone
                )
                result.attempts.append(attempt)
                if attempt.outcome is Outcome.OK:
                    state = ResolverState.SUCCEEDED
                else:
                    index += 1
                    state = ResolverState.TRYING
            elif state is ResolverState.SUCCEEDED:
                result.status = LOOKUP_OK
                result.resolver = self.resolvers[index]
                result.keys = live_keys_from_message(zone, answer)
                logger.debug(
                    "%d DNSKEY records for %s from %s",
                    len(result.keys),
                    zone,
                    result.resolver,
                )
                return result
            elif state is ResolverState.CANCELLED:
                result.status = LOOKUP_CANCELLED
                return result
            else:
                logger.warning(
                    "No resolver answered the DNSKEY query for %s (%d attempts)",
                    zone,
                    len(result.attempts),
                )
                result.status = LOOKUP_EXHAUSTED
                return result

    def _exchange(
        self, resolver: str, transport: str, wire: bytes, query_id: int, zone: str
    ) -> Tuple[Attempt, Optional[dns.message.Message]]:
        """Brief: Send the query once and classify the answer.

        Inputs:
          - resolver: Resolver host.
          - transport: "udp" or "tcp".
          - wire: Packed query.
          - query_id: DNS message id of the query.
          - zone: Zone FQDN (for logging).

        Outputs:
          - (Attempt, message): message is only set for OK outcomes.
        """

        logger.debug(
            "Querying DNSKEY %s via %s to %s:%d", zone, transport, resolver, self.port
        )
        try:
            if transport == "tcp":
                response_wire = self._tcp(
                    resolver,
                    self.port,
                    wire,
                    connect_timeout_ms=self.timeout_ms,
                    read_timeout_ms=self.timeout_ms,
                )
            else:
                response_wire = self._udp(
                    resolver, self.port, wire, timeout_ms=self.timeout_ms
                )
        except (UDPError, TCPError, OSError) as e:
            logger.warning(
                "Error resolving %s via %s (server %s): %s", zone, transport, resolver, e
            )
            return Attempt(resolver, transport, Outcome.TRANSPORT_ERROR, str(e)), None

        if not response_wire or len(response_wire) < _HEADER_LEN:
            logger.warning("No answer resolving %s (server %s)", zone, resolver)
            return Attempt(resolver, transport, Outcome.BAD_RESPONSE, "empty"), None

        # Header checks run on the raw bytes: a truncated answer may not parse.
        if int.from_bytes(response_wire[0:2], "big") != query_id:
            logger.warning(
                "Mismatched answer id resolving %s (server %s)", zone, resolver
            )
            return Attempt(resolver, transport, Outcome.BAD_RESPONSE, "id"), None

        if int.from_bytes(response_wire[2:4], "big") & dns.flags.TC:
            logger.debug("Truncated %s answer for %s from %s", transport, zone, resolver)
            return Attempt(resolver, transport, Outcome.TRUNCATED), None

        try:
            msg = dns.message.from_wire(bytes(response_wire))
        except dns.exception.DNSException as e:
            logger.warning(
                "Unparseable answer resolving %s (server %s): %s", zone, resolver, e
            )
            return Attempt(resolver, transport, Outcome.BAD_RESPONSE, str(e)), None

        rcode = msg.rcode()
        if rcode != dns.rcode.NOERROR:
            rcode_text = dns.rcode.to_text(rcode)
            logger.warning(
                "Could not resolve %s rcode %s (server %s)", zone, rcode_text, resolver
            )
            return Attempt(resolver, transport, Outcome.RCODE, rcode_text), None

        return Attempt(resolver, transport, Outcome.OK), msg
