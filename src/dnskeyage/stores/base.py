"""History store interface used by the age pipeline.

This module defines:

- HistoryRow: one untyped row as returned by the first-seen query.
- Point: one time-series point ready to be written.
- HistoryStoreError: raised for transport or server-side store failures.
- BaseHistoryStore: the query + write capability the pipeline needs.

Concrete stores subclass BaseHistoryStore. The pipeline never talks to a
database client directly, so tests can substitute an in-memory fake.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

MEASUREMENT = "DnskeyAge"


class HistoryStoreError(Exception):
    """Brief: Query or write against the history store failed.

    Inputs:
      - message: Description including the store's error text when available.

    Outputs:
      - Exception instance.
    """

    pass


@dataclass
class HistoryRow:
    """Brief: Raw first-seen row exactly as the store returned it.

    Inputs/fields:
      - time: Timestamp cell (RFC 3339 text on the wire).
      - domain: Domain cell.
      - algorithm: Algorithm cell.
      - keytag: Key tag cell (decimal text on the wire).
      - first: first(age) cell (integer on the wire).

    Outputs:
      - Untyped holder; cell types are checked by history.parse_history_row.
    """

    time: Any
    domain: Any
    algorithm: Any
    keytag: Any
    first: Any

    @classmethod
    def from_values(cls, values: Sequence[Any]) -> "HistoryRow":
        """Brief: Build a row from a positional value list.

        Inputs:
          - values: Sequence ordered as (time, domain, algorithm, keytag, first).

        Outputs:
          - HistoryRow; missing trailing cells are None.
        """

        cells = list(values) + [None] * (5 - len(values))
        return cls(*cells[:5])


@dataclass
class Point:
    """Brief: One time-series point.

    Inputs/fields:
      - measurement: Measurement name.
      - tags: Tag key -> string value.
      - fields: Field key -> value (ints are written as integers).
      - ts: Unix timestamp in whole seconds.
    """

    measurement: str
    tags: Dict[str, str] = field(default_factory=dict)
    fields: Dict[str, Any] = field(default_factory=dict)
    ts: int = 0


class BaseHistoryStore:
    """Brief: Base class for DnskeyAge history stores.

    Implementations are responsible for:
      - Returning the first-seen row per (domain, algorithm, keytag) for a zone.
      - Writing one batch of points in a single call.
      - Releasing any connection state on close().

    Notes:
      - Methods raise NotImplementedError in the base class so a partially
        implemented store fails loudly.
      - Implementations must be safe for concurrent use from worker threads
        when zones are processed in parallel.
    """

    def query_first_seen(self, zone: str) -> List[HistoryRow]:
        """Brief: Return the earliest observation per key of a zone.

        Inputs:
          - zone: Zone FQDN used as the domain filter.

        Outputs:
          - list[HistoryRow]; empty when the zone has no history.

        Raises:
          - HistoryStoreError: when the query cannot be completed.
        """

        raise NotImplementedError("BaseHistoryStore.query_first_seen must be implemented")

    def write_points(self, points: Sequence[Point]) -> None:
        """Brief: Write a batch of points in one request.

        Inputs:
          - points: Points belonging to one zone.

        Outputs:
          - None.

        Raises:
          - HistoryStoreError: when the batch was not accepted.
        """

        raise NotImplementedError("BaseHistoryStore.write_points must be implemented")

    def close(self) -> None:
        """Brief: Release resources held by the store (default: nothing)."""

        return None
