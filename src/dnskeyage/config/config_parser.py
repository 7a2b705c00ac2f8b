"""Configuration reading, merging and normalization for dnskeyage.

Brief:
  Configuration comes from up to four sources, applied in this order:
    - ``~/.dnskeyage`` (YAML, optional)
    - ``./.dnskeyage`` (YAML, optional)
    - the file named by ``--conf`` (YAML, must exist)
    - command-line flags
  Later sources override earlier ones when they carry a non-empty value;
  boolean switches are OR-ed so a dry-run requested anywhere stays a dry-run.
  The merged mapping is turned into an immutable RunConfig, which is the
  only configuration object the pipeline sees.

Inputs:
  - YAML file paths and a mapping of command-line overrides.

Outputs:
  - RunConfig instance, or ConfigError describing why the run cannot start.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import dns.exception
import dns.resolver
import yaml
from pydantic import BaseModel, Field

from ..keys import fqdn
from .config_schema import validate_config

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".dnskeyage"
DEFAULT_PORT = 53

_FLAT_INFLUX_KEYS = {
    "influxserver": "server",
    "influxdb": "database",
    "influxuser": "user",
    "influxpasswd": "password",
}
_BOOL_KEYS = ("dryrun", "verbose")


class ConfigError(ValueError):
    """Brief: The configuration is unusable; the run must not start."""

    pass


class InfluxConfig(BaseModel):
    """Brief: Connection parameters for the InfluxDB history store.

    Inputs:
      - server: Base URL of the InfluxDB HTTP API.
      - database: Database holding the DnskeyAge measurement.
      - user/password: Optional credentials; both or neither.
      - timeout: HTTP request timeout in seconds.

    Outputs:
      - Frozen InfluxConfig instance.
    """

    server: str = ""
    database: str = ""
    user: str = ""
    password: str = Field(default="", repr=False)
    timeout: float = Field(default=10.0, gt=0)

    class Config:
        frozen = True


class RunConfig(BaseModel):
    """Brief: Immutable configuration of one dnskeyage run.

    Inputs:
      - zones: Zone FQDNs in processing order.
      - resolvers: Resolver hosts in priority order.
      - port: Port shared by all resolvers.
      - dryrun: Build points but never write them.
      - verbose: Log key counts, ages and points.
      - workers: Number of zones processed concurrently (1 = sequential).
      - timeout_ms: Per-exchange DNS timeout.
      - influx: InfluxConfig.
      - log_config: Mapping passed to init_logging.

    Outputs:
      - Frozen RunConfig instance.
    """

    zones: Tuple[str, ...]
    resolvers: Tuple[str, ...]
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)
    dryrun: bool = False
    verbose: bool = False
    workers: int = Field(default=1, ge=1)
    timeout_ms: int = Field(default=5000, ge=1)
    influx: InfluxConfig = Field(default_factory=InfluxConfig)
    log_config: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        frozen = True


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def normalize_config(cfg: Mapping[str, Any]) -> Dict[str, Any]:
    """Brief: Normalize one configuration source to the canonical shape.

    Inputs:
      - cfg: Mapping from YAML or command-line overrides. Flat Influx keys
        (influxserver, influxdb, influxuser, influxpasswd) are folded into the
        ``influx`` block; single strings for zones/resolvers become lists.

    Outputs:
      - dict: New mapping; None values are dropped.
    """

    out: Dict[str, Any] = {k: v for k, v in cfg.items() if v is not None}
    influx = dict(out.pop("influx", None) or {})
    for flat, key in _FLAT_INFLUX_KEYS.items():
        value = out.pop(flat, None)
        if value is not None and not influx.get(key):
            influx[key] = value
    if influx:
        out["influx"] = influx
    for key in ("zones", "resolvers"):
        if key in out:
            out[key] = _as_list(out[key])
    return out


def read_config_file(path: str, *, missing_ok: bool = False) -> Optional[Dict[str, Any]]:
    """Brief: Read and schema-validate one YAML configuration file.

    Inputs:
      - path: File path.
      - missing_ok: Return None instead of raising when the file is absent.

    Outputs:
      - dict: Normalized configuration mapping, or None for a missing
        optional file.

    Raises:
      - ConfigError: when the file is unreadable, not a mapping or invalid.
    """

    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    except FileNotFoundError:
        if missing_ok:
            return None
        raise ConfigError(f"Configuration file {path} not found")
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Could not read configuration file {path}: {exc}") from exc

    if not isinstance(cfg, dict):
        raise ConfigError(f"Configuration root in {path} must be a mapping")
    try:
        validate_config(cfg, config_path=path)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc
    logger.debug("Loaded configuration from %s", path)
    return normalize_config(cfg)


def merge_config(
    old: Optional[Mapping[str, Any]], new: Optional[Mapping[str, Any]]
) -> Dict[str, Any]:
    """Brief: Merge two normalized configuration mappings.

    Inputs:
      - old: Earlier (lower priority) source.
      - new: Later (higher priority) source.

    Outputs:
      - dict: Booleans OR-ed; every other key taken from ``new`` when it is
        non-empty, otherwise from ``old``. The influx block merges per key.

    Example:
      >>> merge_config({"zones": ["a."], "dryrun": True}, {"zones": [], "dryrun": False})
      {'zones': ['a.'], 'dryrun': True}
    """

    merged: Dict[str, Any] = dict(old or {})
    for key, value in (new or {}).items():
        if key in _BOOL_KEYS:
            merged[key] = bool(value) or bool(merged.get(key, False))
        elif key == "influx":
            influx = dict(merged.get("influx") or {})
            for ikey, ivalue in (value or {}).items():
                if ivalue not in (None, ""):
                    influx[ikey] = ivalue
            merged["influx"] = influx
        elif value not in (None, "", [], {}):
            merged[key] = value
    return merged


def system_resolvers() -> List[str]:
    """Brief: Return the nameservers of the host's resolver configuration.

    Outputs:
      - list[str]: Nameserver addresses; empty when none can be determined.
    """

    try:
        return [str(ns) for ns in dns.resolver.Resolver(configure=True).nameservers]
    except (dns.resolver.NoResolverConfiguration, OSError) as exc:
        logger.warning("Could not read system resolver configuration: %s", exc)
        return []


def build_run_config(
    cfg: Mapping[str, Any],
    *,
    default_resolvers: Optional[Iterable[str]] = None,
) -> RunConfig:
    """Brief: Apply defaults and startup checks to a merged configuration.

    Inputs:
      - cfg: Merged, normalized configuration mapping.
      - default_resolvers: Resolvers used when none were configured; defaults
        to system_resolvers().

    Outputs:
      - RunConfig.

    Raises:
      - ConfigError: no zones, no resolvers, or (unless dry-run) an
        incomplete Influx configuration.
    """

    raw_zones = _as_list(cfg.get("zones"))
    if any(not z.strip() for z in raw_zones):
        raise ConfigError("Zone names must not be empty.")
    try:
        zones = [fqdn(z) for z in raw_zones]
    except dns.exception.DNSException as exc:
        raise ConfigError(f"Invalid zone name: {exc}") from exc
    if not zones:
        raise ConfigError("No zones given.")

    resolvers = _as_list(cfg.get("resolvers"))
    if not resolvers:
        resolvers = list(
            default_resolvers if default_resolvers is not None else system_resolvers()
        )
    if not resolvers:
        raise ConfigError("No resolver(s) found.")

    dryrun = bool(cfg.get("dryrun", False))
    influx = dict(cfg.get("influx") or {})
    if not dryrun:
        if not influx.get("server"):
            raise ConfigError("Influx server address must be given.")
        if not influx.get("database"):
            raise ConfigError("Influx database name must be given.")
        if bool(influx.get("user")) != bool(influx.get("password")):
            raise ConfigError(
                "Influx user and password must be given (not only one)."
            )

    try:
        return RunConfig(
            zones=tuple(zones),
            resolvers=tuple(resolvers),
            port=int(cfg.get("port") or DEFAULT_PORT),
            dryrun=dryrun,
            verbose=bool(cfg.get("verbose", False)),
            workers=int(cfg.get("workers") or 1),
            timeout_ms=int(cfg.get("timeout_ms") or 5000),
            influx=InfluxConfig(**influx),
            log_config=dict(cfg.get("logging") or {}),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def default_config_paths(
    home: Optional[str] = None, cwd: Optional[str] = None
) -> List[str]:
    """Brief: Return the optional configuration files, lowest priority first."""

    home = home if home is not None else os.path.expanduser("~")
    cwd = cwd if cwd is not None else os.getcwd()
    return [os.path.join(home, CONFIG_FILENAME), os.path.join(cwd, CONFIG_FILENAME)]


def load_run_config(
    conf_path: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    *,
    search_paths: Optional[Iterable[str]] = None,
    default_resolvers: Optional[Iterable[str]] = None,
) -> RunConfig:
    """Brief: Read every configuration source and build the RunConfig.

    Inputs:
      - conf_path: Optional explicit configuration file (--conf).
      - overrides: Command-line values (unset options as None/False/[]).
      - search_paths: Optional default files; defaults to default_config_paths().
      - default_resolvers: Passed through to build_run_config.

    Outputs:
      - RunConfig.

    Raises:
      - ConfigError: for unreadable/invalid files or failed startup checks.
    """

    merged: Dict[str, Any] = {}
    paths = list(search_paths) if search_paths is not None else default_config_paths()
    for path in paths:
        merged = merge_config(merged, read_config_file(path, missing_ok=True))
    if conf_path:
        merged = merge_config(merged, read_config_file(conf_path))
    merged = merge_config(merged, normalize_config(dict(overrides or {})))
    return build_run_config(merged, default_resolvers=default_resolvers)
