"""InfluxDB 1.x HTTP implementation of the BaseHistoryStore interface.

Inputs:
  - Constructed from the ``influx`` configuration block (server URL, database,
    optional user/password, request timeout).

Outputs:
  - Store that reads first-seen rows through ``/query`` and writes batches of
    line-protocol points through ``/write`` using a shared requests.Session.

Notes:
  - The zone is passed as bound query parameters and is never spliced into
    the InfluxQL text. Both the FQDN and the spelling without trailing dot are
    matched, since older series were written with the zone as configured.
  - Writes use second precision; one POST carries the whole zone batch.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import requests

from .base import MEASUREMENT, BaseHistoryStore, HistoryRow, HistoryStoreError, Point

logger = logging.getLogger(__name__)

FIRST_SEEN_QUERY = (
    f"SELECT domain, algorithm, keytag, first(age) FROM {MEASUREMENT} "
    "WHERE domain = $domain OR domain = $bare_domain "
    "GROUP BY domain, algorithm, keytag"
)


def _escape_tag(value: str) -> str:
    """Escape a tag key/value or measurement for InfluxDB line protocol.

    Inputs:
        value: Raw tag value string.

    Outputs:
        Escaped tag value with commas, spaces, and equals signs backslash-escaped.
    """

    return (
        value.replace("\\", "\\\\")
        .replace(",", "\\,")
        .replace(" ", "\\ ")
        .replace("=", "\\=")
    )


def _escape_field_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def format_line_protocol(point: Point) -> str:
    """Format a single point as an InfluxDB line-protocol entry.

    Inputs:
        point: Point with measurement, tags, fields and a timestamp in seconds.

    Outputs:
        Single line-protocol string; tags are sorted by key, integers carry the
        ``i`` suffix and the timestamp is left in seconds (precision=s).

    Example:
        >>> format_line_protocol(Point("DnskeyAge", {"keytag": "1"}, {"age": 5}, 10))
        'DnskeyAge,keytag=1 age=5i 10'
    """

    tag_parts = []
    for k in sorted(point.tags):
        v = point.tags[k]
        if v is None or v == "":
            continue
        tag_parts.append(f"{_escape_tag(str(k))}={_escape_tag(str(v))}")
    tag_section = "" if not tag_parts else "," + ",".join(tag_parts)

    field_parts = []
    for k, v in point.fields.items():
        key = _escape_tag(str(k))
        if isinstance(v, bool):
            field_parts.append(f"{key}={'true' if v else 'false'}")
        elif isinstance(v, int):
            field_parts.append(f"{key}={v}i")
        elif isinstance(v, float):
            field_parts.append(f"{key}={v}")
        elif v is None:
            continue
        else:
            field_parts.append(f"{key}={_escape_field_string(str(v))}")

    if not field_parts:
        raise ValueError(f"point for {point.measurement} has no fields")

    return (
        f"{_escape_tag(point.measurement)}{tag_section} "
        f"{','.join(field_parts)} {int(point.ts)}"
    )


def _error_text(resp: Any) -> str:
    try:
        body = resp.json()
    except ValueError:
        return str(getattr(resp, "text", "") or "").strip()
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return str(getattr(resp, "text", "") or "").strip()


def _series_rows(series: Mapping[str, Any]) -> List[HistoryRow]:
    """Brief: Convert one result series into first-seen rows.

    Inputs:
      - series: Mapping with ``columns``, ``values`` and optional ``tags``.

    Outputs:
      - list[HistoryRow]: one row per value list. Cells missing from the
        columns (tags grouped on but not returned as columns) are taken from
        the series tags.
    """

    columns = list(series.get("columns") or [])
    tags = series.get("tags") or {}
    rows: List[HistoryRow] = []
    for values in series.get("values") or []:
        if columns and all(c in columns for c in ("time", "first")):
            cells = dict(zip(columns, values))
            rows.append(
                HistoryRow(
                    time=cells.get("time"),
                    domain=cells.get("domain", tags.get("domain")),
                    algorithm=cells.get("algorithm", tags.get("algorithm")),
                    keytag=cells.get("keytag", tags.get("keytag")),
                    first=cells.get("first"),
                )
            )
        else:
            rows.append(HistoryRow.from_values(values))
    return rows


class InfluxHistoryStore(BaseHistoryStore):
    """InfluxDB-backed DnskeyAge history store.

    Inputs (constructor):
        server: Base URL of the InfluxDB HTTP API
            (for example, "http://127.0.0.1:8086").
        database: Database name used for both reads and writes.
        user: Optional user name; sent as HTTP basic auth with password.
        password: Optional password.
        timeout: Request timeout in seconds (default 10.0).
        session: Optional pre-built requests.Session (tests inject fakes).

    Outputs:
        Initialized InfluxHistoryStore ready to query and write.
    """

    def __init__(
        self,
        server: str,
        database: str,
        user: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[Any] = None,
    ) -> None:
        self._server = str(server).rstrip("/")
        self._database = str(database)
        self._timeout = float(timeout)
        self._session = session if session is not None else requests.Session()
        if user:
            self._session.auth = (str(user), str(password or ""))

    @classmethod
    def from_config(cls, cfg: Any) -> "InfluxHistoryStore":
        """Brief: Build a store from an InfluxConfig model."""

        return cls(
            server=cfg.server,
            database=cfg.database,
            user=cfg.user,
            password=cfg.password,
            timeout=cfg.timeout,
        )

    @property
    def query_url(self) -> str:
        return f"{self._server}/query"

    @property
    def write_url(self) -> str:
        return f"{self._server}/write"

    def close(self) -> None:  # type: ignore[override]
        """Close the underlying HTTP session."""

        self._session.close()

    def query_first_seen(self, zone: str) -> List[HistoryRow]:  # type: ignore[override]
        """Query the earliest DnskeyAge observation per key of a zone.

        Inputs:
            zone: Zone FQDN.

        Outputs:
            list[HistoryRow] in series order; empty when nothing is stored.

        Raises:
            HistoryStoreError: on HTTP/transport failures or when InfluxDB
                reports a statement error.
        """

        params: Dict[str, str] = {
            "db": self._database,
            "q": FIRST_SEEN_QUERY,
            "params": json.dumps(
                {"domain": zone, "bare_domain": zone.rstrip(".") or zone}
            ),
        }
        try:
            resp = self._session.get(
                self.query_url, params=params, timeout=self._timeout
            )
        except requests.RequestException as exc:
            raise HistoryStoreError(f"InfluxDB query for {zone} failed: {exc}") from exc

        if resp.status_code >= 400:
            raise HistoryStoreError(
                f"InfluxDB query for {zone} failed with status "
                f"{resp.status_code}: {_error_text(resp)}"
            )

        try:
            body = resp.json()
        except ValueError as exc:
            raise HistoryStoreError(
                f"InfluxDB query for {zone} returned invalid JSON: {exc}"
            ) from exc
        if not isinstance(body, dict):
            raise HistoryStoreError(f"InfluxDB query for {zone} returned {body!r}")
        if body.get("error"):
            raise HistoryStoreError(f"InfluxDB query error: {body['error']}")

        rows: List[HistoryRow] = []
        for result in body.get("results") or []:
            if result.get("error"):
                raise HistoryStoreError(f"InfluxDB result error: {result['error']}")
            for msg in result.get("messages") or []:
                logger.debug(
                    "InfluxDB result message: %s %s", msg.get("level"), msg.get("text")
                )
            for series in result.get("series") or []:
                rows.extend(_series_rows(series))
        return rows

    def write_points(self, points: Sequence[Point]) -> None:  # type: ignore[override]
        """Write a batch of points with a single POST.

        Inputs:
            points: Points to write; an empty batch is a no-op.

        Outputs:
            None.

        Raises:
            HistoryStoreError: when the request fails or InfluxDB rejects it.
        """

        if not points:
            return
        body = "\n".join(format_line_protocol(p) for p in points)
        params = {"db": self._database, "precision": "s"}
        try:
            resp = self._session.post(
                self.write_url,
                params=params,
                data=body.encode("utf-8"),
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise HistoryStoreError(f"InfluxDB write failed: {exc}") from exc

        if resp.status_code >= 400:
            raise HistoryStoreError(
                f"InfluxDB write failed with status {resp.status_code}: "
                f"{_error_text(resp)}"
            )
        logger.debug("Wrote %d points to %s", len(points), self._database)
