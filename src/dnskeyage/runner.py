"""Per-zone DNSKEY age pipeline.

Brief:
  For each zone: resolve the live DNSKEY set, reconstruct first-seen history,
  compute ages and write one batch of points. Every failure inside a zone is
  turned into a ZoneResult so the remaining zones still run; only
  configuration problems (handled by the CLI before any zone starts) stop a
  run.

Inputs:
  - RunConfig, a DnskeyResolver and a BaseHistoryStore.

Outputs:
  - One ZoneResult per configured zone, in configured order.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .age import AgeObservation, compute_ages
from .config.config_parser import RunConfig
from .history import HistoryRowError, reconstruct_history
from .resolver import LOOKUP_CANCELLED, LOOKUP_OK, DnskeyResolver
from .stores.base import BaseHistoryStore, HistoryStoreError
from .writer import write_observations

logger = logging.getLogger(__name__)

STATUS_WRITTEN = "written"
STATUS_DRY_RUN = "dry_run"
STATUS_UNSIGNED = "unsigned"
STATUS_UNREACHABLE = "unreachable"
STATUS_HISTORY_FAILED = "history_failed"
STATUS_WRITE_FAILED = "write_failed"
STATUS_CANCELLED = "cancelled"
STATUS_FAILED = "failed"

SUCCESS_STATUSES = frozenset({STATUS_WRITTEN, STATUS_DRY_RUN, STATUS_UNSIGNED})


@dataclass
class ZoneResult:
    """Outcome of one zone's pipeline.

    Inputs/fields:
      - zone: Zone FQDN.
      - status: One of the STATUS_* values.
      - key_count: Number of live DNSKEYs found.
      - observations: Age observations computed (empty if the zone stopped
        before the age step).
      - error: Error text for failure statuses.
    """

    zone: str
    status: str
    key_count: int = 0
    observations: List[AgeObservation] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in SUCCESS_STATUSES


def process_zone(
    zone: str,
    resolver: DnskeyResolver,
    store: BaseHistoryStore,
    dry_run: bool = False,
    *,
    clock: Callable[[], float] = time.time,
    stop_event: Optional[threading.Event] = None,
) -> ZoneResult:
    """Brief: Run resolve -> history -> age -> write for a single zone.

    Inputs:
      - zone: Zone FQDN.
      - resolver: DnskeyResolver used for the live key set.
      - store: History store used for both the history query and the write.
      - dry_run: Skip the final write.
      - clock: Time source returning epoch seconds.
      - stop_event: Optional cancellation event.

    Outputs:
      - ZoneResult; never raises for resolver, history or write failures.
    """

    logger.info("Run for zone %s", zone)
    lookup = resolver.lookup(zone, stop_event=stop_event)
    if lookup.status == LOOKUP_CANCELLED:
        return ZoneResult(zone=zone, status=STATUS_CANCELLED)
    if lookup.status != LOOKUP_OK:
        logger.warning("No resolver could provide DNSKEYs for %s", zone)
        return ZoneResult(
            zone=zone,
            status=STATUS_UNREACHABLE,
            error=f"all {len(resolver.resolvers)} resolvers failed",
        )
    if not lookup.keys:
        logger.info("No keys found for %s (zone is not signed)", zone)
        return ZoneResult(zone=zone, status=STATUS_UNSIGNED)
    logger.debug("%d keys found for zone %s", len(lookup.keys), zone)

    try:
        history = reconstruct_history(store, zone)
    except (HistoryStoreError, HistoryRowError) as exc:
        logger.error("Could not load key history for %s: %s", zone, exc)
        return ZoneResult(
            zone=zone,
            status=STATUS_HISTORY_FAILED,
            key_count=len(lookup.keys),
            error=str(exc),
        )

    observations = compute_ages(lookup.keys, history, int(clock()))
    for obs in observations:
        logger.debug(
            "%s %s keytag %d (%s) age %ds",
            obs.domain,
            obs.algorithm,
            obs.keytag,
            obs.keytype,
            obs.age,
        )

    result = ZoneResult(
        zone=zone,
        status=STATUS_DRY_RUN if dry_run else STATUS_WRITTEN,
        key_count=len(lookup.keys),
        observations=observations,
    )
    try:
        write_observations(store, observations, dry_run=dry_run)
    except HistoryStoreError as exc:
        logger.error("Could not write DNSKEY ages for %s: %s", zone, exc)
        result.status = STATUS_WRITE_FAILED
        result.error = str(exc)
    return result


def run_zones(
    config: RunConfig,
    resolver: DnskeyResolver,
    store: BaseHistoryStore,
    stop_event: Optional[threading.Event] = None,
    *,
    clock: Callable[[], float] = time.time,
) -> List[ZoneResult]:
    """Brief: Process every configured zone.

    Inputs:
      - config: RunConfig (zones, dry-run flag, worker count).
      - resolver: Shared DnskeyResolver (read-only).
      - store: Shared history store.
      - stop_event: Optional event; zones not yet started when it is set are
        reported as cancelled.
      - clock: Time source returning epoch seconds.

    Outputs:
      - list[ZoneResult] in configured zone order.

    Notes:
      - workers == 1 processes zones one after the other. Larger values use a
        bounded thread pool; each zone still writes its own single batch and
        probes its resolvers sequentially.
    """

    def _one(zone: str) -> ZoneResult:
        if stop_event is not None and stop_event.is_set():
            return ZoneResult(zone=zone, status=STATUS_CANCELLED)
        try:
            return process_zone(
                zone,
                resolver,
                store,
                config.dryrun,
                clock=clock,
                stop_event=stop_event,
            )
        except Exception as exc:
            logger.exception("Unexpected error while processing %s", zone)
            return ZoneResult(zone=zone, status=STATUS_FAILED, error=str(exc))

    zones = list(config.zones)
    if config.workers <= 1 or len(zones) <= 1:
        return [_one(zone) for zone in zones]

    with ThreadPoolExecutor(
        max_workers=min(config.workers, len(zones)), thread_name_prefix="dnskeyage"
    ) as pool:
        return list(pool.map(_one, zones))
