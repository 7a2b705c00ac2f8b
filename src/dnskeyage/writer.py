"""Turn age observations into DnskeyAge points and hand them to the store.

Inputs:
  - AgeObservation list for one zone, a BaseHistoryStore and the dry-run flag.

Outputs:
  - WriteResult listing the points that were built and whether they were sent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Sequence

from .age import AgeObservation
from .stores.base import MEASUREMENT, BaseHistoryStore, Point
from .stores.influxdb import format_line_protocol

logger = logging.getLogger(__name__)


@dataclass
class WriteResult:
    points: List[Point] = field(default_factory=list)
    written: bool = False


def observation_to_point(obs: AgeObservation) -> Point:
    """Brief: Build the DnskeyAge point for one observation.

    Inputs:
      - obs: AgeObservation.

    Outputs:
      - Point tagged by domain/algorithm/keytag/keytype with the integer
        field ``age`` at the observation's timestamp.
    """

    return Point(
        measurement=MEASUREMENT,
        tags={
            "domain": obs.domain,
            "algorithm": obs.algorithm,
            "keytag": str(obs.keytag),
            "keytype": obs.keytype,
        },
        fields={"age": int(obs.age)},
        ts=int(obs.timestamp),
    )


def write_observations(
    store: BaseHistoryStore,
    observations: Sequence[AgeObservation],
    dry_run: bool = False,
) -> WriteResult:
    """Brief: Persist one zone's observations as a single batch.

    Inputs:
      - store: Destination store; never called in dry-run mode.
      - observations: Observations of one zone.
      - dry_run: When True, points are built and logged but not written.

    Outputs:
      - WriteResult; ``written`` is True only after the store accepted the batch.

    Raises:
      - HistoryStoreError: propagated from the store when the write fails.
    """

    result = WriteResult(points=[observation_to_point(o) for o in observations])
    for point in result.points:
        logger.debug("Point: %s", format_line_protocol(point))

    if not result.points:
        return result

    if dry_run:
        logger.info(
            "DRYRUN! %d points not written to the history store", len(result.points)
        )
        return result

    store.write_points(result.points)
    result.written = True
    logger.debug("Successfully written %d points", len(result.points))
    return result
