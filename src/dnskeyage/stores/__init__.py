"""History store abstraction for DnskeyAge observations.

Inputs:
  - None directly; the CLI builds a concrete store from the influx config.

Outputs:
  - Exposes the base interface, row/point holders and the InfluxDB store.
"""

from .base import (
    MEASUREMENT,
    BaseHistoryStore,
    HistoryRow,
    HistoryStoreError,
    Point,
)
from .influxdb import InfluxHistoryStore

__all__ = [
    "MEASUREMENT",
    "BaseHistoryStore",
    "HistoryRow",
    "HistoryStoreError",
    "InfluxHistoryStore",
    "Point",
]
