"""Live DNSKEY model and the classification helpers used for tagging.

Inputs:
  - Parsed dnspython messages carrying DNSKEY answers.

Outputs:
  - LiveKey instances with the algorithm, flags and key tag the age
    pipeline joins on.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional

import dns.dnssec
import dns.message
import dns.name
import dns.rdatatype

KSK_FLAGS = 257
ZSK_FLAGS = 256

# Tag values already used in the DnskeyAge series where they differ from dnspython.
_ALGORITHM_TEXT_OVERRIDES = {
    4: "4",
    6: "DSA-NSEC3-SHA1",
    7: "RSASHA1-NSEC3-SHA1",
    12: "ECC-GOST",
}


def fqdn(name: str) -> str:
    """Brief: Return the absolute (trailing dot) form of a zone name.

    Inputs:
      - name: Zone name with or without trailing dot.

    Outputs:
      - str: Zone name ending in a single dot; the root stays ".".

    Example:
      >>> fqdn("example.com")
      'example.com.'
    """

    return dns.name.from_text(str(name).strip()).to_text()


def algorithm_to_text(algorithm: int) -> str:
    """Brief: Map a DNSSEC algorithm number to its mnemonic.

    Inputs:
      - algorithm: Numeric algorithm identifier from the DNSKEY record.

    Outputs:
      - str: Mnemonic such as "RSASHA256" when the number is known, else the
        decimal number as a string.
    """

    algorithm = int(algorithm)
    if algorithm in _ALGORITHM_TEXT_OVERRIDES:
        return _ALGORITHM_TEXT_OVERRIDES[algorithm]
    try:
        return dns.dnssec.Algorithm(algorithm).name
    except ValueError:
        return str(algorithm)


def classify_keytype(flags: int) -> str:
    """Brief: Classify a DNSKEY by its flags field.

    Inputs:
      - flags: DNSKEY flags value.

    Outputs:
      - str: "KSK" for 257, "ZSK" for 256, otherwise the decimal flags value.
    """

    flags = int(flags)
    if flags == KSK_FLAGS:
        return "KSK"
    if flags == ZSK_FLAGS:
        return "ZSK"
    return str(flags)


@dataclass
class LiveKey:
    """One DNSKEY currently published by a zone.

    Inputs/fields:
      - domain: Zone FQDN the key was queried for.
      - algorithm: Numeric DNSSEC algorithm.
      - flags: DNSKEY flags field.
      - keytag: 16-bit key tag (dns.dnssec.key_id of the rdata).
      - rdata: dnspython DNSKEY rdata the key was built from; only kept
        while the zone is processed.
    """

    domain: str
    algorithm: int
    flags: int
    keytag: int
    rdata: Optional[Any] = field(default=None, repr=False, compare=False)

    @property
    def algorithm_text(self) -> str:
        return algorithm_to_text(self.algorithm)

    @property
    def keytype(self) -> str:
        return classify_keytype(self.flags)

    @classmethod
    def from_rdata(cls, domain: str, rdata: Any) -> "LiveKey":
        """Brief: Build a LiveKey from a dnspython DNSKEY rdata."""

        return cls(
            domain=domain,
            algorithm=int(rdata.algorithm),
            flags=int(rdata.flags),
            keytag=int(dns.dnssec.key_id(rdata)),
            rdata=rdata,
        )


def live_keys_from_message(zone: str, msg: dns.message.Message) -> List[LiveKey]:
    """Brief: Extract every DNSKEY record from a response's answer section.

    Inputs:
      - zone: Zone FQDN the query was issued for; used as the key domain.
      - msg: Parsed dnspython response message.

    Outputs:
      - list[LiveKey]: Keys in answer order; empty when the answer carries no
        DNSKEY records (for example an unsigned zone).
    """

    keys: List[LiveKey] = []
    for rrset in msg.answer:
        if rrset.rdtype != dns.rdatatype.DNSKEY:
            continue
        for rdata in rrset:
            keys.append(LiveKey.from_rdata(zone, rdata))
    return keys
