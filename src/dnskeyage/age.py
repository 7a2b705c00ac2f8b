from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Sequence

from .history import HistoryRecord
from .keys import LiveKey


def same_domain(a: str, b: str) -> bool:
    """Compare zone names ignoring case and a trailing dot."""

    return a.rstrip(".").lower() == b.rstrip(".").lower()


@dataclass(frozen=True)
class AgeObservation:
    """One age measurement of a live key.

    Inputs/fields:
      - domain, algorithm, keytag, keytype: Tag values identifying the key.
      - age: Seconds since the key was first observed; 0 for a new key.
      - timestamp: Epoch seconds of this observation.
    """

    domain: str
    algorithm: str
    keytag: int
    keytype: str
    age: int
    timestamp: int


def compute_ages(
    live_keys: Iterable[LiveKey], history: Sequence[HistoryRecord], now: int
) -> List[AgeObservation]:
    """Brief: Join live keys with their first-seen history.

    Inputs:
      - live_keys: Keys currently published by the zone.
      - history: First-seen records for the zone.
      - now: Current time in epoch seconds.

    Outputs:
      - list[AgeObservation], one per live key in input order. A key without
        a matching (domain, algorithm, keytag) record gets age 0; otherwise
        age is now - first_seen of the first matching record. Domains
        match with or without the trailing dot.
    """

    now = int(now)
    observations: List[AgeObservation] = []
    for key in live_keys:
        algorithm = key.algorithm_text
        age = 0
        for record in history:
            if (
                same_domain(record.domain, key.domain)
                and record.algorithm == algorithm
                and record.keytag == key.keytag
            ):
                age = now - record.first_seen
                break
        observations.append(
            AgeObservation(
                domain=key.domain,
                algorithm=algorithm,
                keytag=key.keytag,
                keytype=key.keytype,
                age=age,
                timestamp=now,
            )
        )
    return observations
