"""Reconstruct first-seen history per key from the history store.

Inputs:
  - A BaseHistoryStore and a zone FQDN.

Outputs:
  - HistoryRecord list, one per (domain, algorithm, keytag) ever observed for
    the zone.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, List

from .stores.base import BaseHistoryStore, HistoryRow

logger = logging.getLogger(__name__)

_FRACTION = re.compile(r"\.(\d+)")


class HistoryRowError(ValueError):
    """Brief: A stored first-seen row could not be parsed.

    Inputs:
      - field: Name of the offending cell.
      - value: Raw cell value.
      - reason: Short description of the problem.

    Outputs:
      - ValueError subclass; aborts reconstruction for the zone.
    """

    def __init__(self, field: str, value: Any, reason: str) -> None:
        super().__init__(f"invalid {field} {value!r} in stored row: {reason}")
        self.field = field
        self.value = value
        self.reason = reason


@dataclass(frozen=True)
class HistoryRecord:
    """Earliest stored observation of one key.

    Inputs/fields:
      - domain: Zone FQDN as stored.
      - algorithm: Algorithm tag as stored (mnemonic or decimal text).
      - keytag: Key tag (0..65535).
      - first_seen: Unix epoch seconds of the first observation.
      - age: Age recorded with that first observation.
    """

    domain: str
    algorithm: str
    keytag: int
    first_seen: int
    age: int


def parse_rfc3339(text: str) -> int:
    """Brief: Parse an RFC 3339 date-time into Unix epoch seconds.

    Inputs:
      - text: Timestamp such as "2024-05-01T12:00:00Z" or
        "2024-05-01T12:00:00.123456789+02:00".

    Outputs:
      - int: Epoch seconds (fractions are dropped).

    Raises:
      - ValueError: when the text is not a valid RFC 3339 date-time.
    """

    value = text.strip()
    if value[-1:] in ("Z", "z"):
        value = value[:-1] + "+00:00"
    # fromisoformat accepts at most microseconds
    value = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value, count=1)
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        raise ValueError(f"timestamp {text!r} has no UTC offset")
    return int(parsed.astimezone(timezone.utc).timestamp())


def _parse_keytag(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise HistoryRowError("keytag", value, "expected decimal text")
    text = str(value).strip()
    if not re.fullmatch(r"[0-9]+", text):
        raise HistoryRowError("keytag", value, "not an unsigned integer")
    tag = int(text)
    if tag > 0xFFFF:
        raise HistoryRowError("keytag", value, "out of 16-bit range")
    return tag


def _parse_age(value: Any) -> int:
    if isinstance(value, bool):
        raise HistoryRowError("first", value, "expected integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and re.fullmatch(r"-?[0-9]+", value.strip()):
        return int(value)
    raise HistoryRowError("first", value, "expected integer")


def _parse_text(field: str, value: Any) -> str:
    if not isinstance(value, str) or not value:
        raise HistoryRowError(field, value, "expected non-empty text")
    return value


def parse_history_row(row: HistoryRow) -> HistoryRecord:
    """Brief: Convert a raw store row into a typed HistoryRecord.

    Inputs:
      - row: HistoryRow as returned by BaseHistoryStore.query_first_seen.

    Outputs:
      - HistoryRecord.

    Raises:
      - HistoryRowError: naming the first cell that does not have the
        expected wire shape.
    """

    if not isinstance(row.time, str):
        raise HistoryRowError("time", row.time, "expected RFC 3339 text")
    try:
        first_seen = parse_rfc3339(row.time)
    except ValueError as exc:
        raise HistoryRowError("time", row.time, str(exc)) from exc

    return HistoryRecord(
        domain=_parse_text("domain", row.domain),
        algorithm=_parse_text("algorithm", row.algorithm),
        keytag=_parse_keytag(row.keytag),
        first_seen=first_seen,
        age=_parse_age(row.first),
    )


def reconstruct_history(store: BaseHistoryStore, zone: str) -> List[HistoryRecord]:
    """Brief: Load the first-seen record of every key stored for a zone.

    Inputs:
      - store: History store to query.
      - zone: Zone FQDN.

    Outputs:
      - list[HistoryRecord] in store order; empty when the zone has no history.

    Raises:
      - HistoryStoreError: when the query fails.
      - HistoryRowError: when any returned row is malformed; no partial
        history is returned in that case.
    """

    rows = store.query_first_seen(zone)
    records: List[HistoryRecord] = []
    for row in rows:
        try:
            records.append(parse_history_row(row))
        except HistoryRowError:
            logger.error("Malformed history row for %s: %r", zone, row)
            raise
    logger.debug("%d history records for %s", len(records), zone)
    return records
