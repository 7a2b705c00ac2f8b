"""JSON Schema-based validation for dnskeyage YAML configuration files.

The schema lives in this module (CONFIG_SCHEMA) so it ships with the package.
Each configuration file is validated on its own before the sources are
merged; completeness checks (zones present, Influx credentials) happen later
on the merged result in config_parser.build_run_config.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from jsonschema import Draft202012Validator, ValidationError

logger = logging.getLogger(__name__)

_STRING_LIST = {
    "oneOf": [
        {"type": "string", "minLength": 1},
        {"type": "array", "items": {"type": "string", "minLength": 1}},
    ]
}

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "dnskeyage configuration",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "zones": _STRING_LIST,
        "resolvers": _STRING_LIST,
        "port": {"type": "integer", "minimum": 1, "maximum": 65535},
        "dryrun": {"type": "boolean"},
        "verbose": {"type": "boolean"},
        "workers": {"type": "integer", "minimum": 1},
        "timeout_ms": {"type": "integer", "minimum": 1},
        "influx": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "server": {"type": "string"},
                "database": {"type": "string"},
                "user": {"type": "string"},
                "password": {"type": "string"},
                "timeout": {"type": "number", "exclusiveMinimum": 0},
            },
        },
        # Flat spellings accepted for older configuration files.
        "influxserver": {"type": "string"},
        "influxdb": {"type": "string"},
        "influxuser": {"type": "string"},
        "influxpasswd": {"type": "string"},
        "logging": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "level": {
                    "type": "string",
                    "enum": [
                        "debug",
                        "info",
                        "warn",
                        "warning",
                        "error",
                        "crit",
                        "critical",
                    ],
                },
                "stderr": {"type": "boolean"},
                "file": {"type": "string"},
                "syslog": {
                    "oneOf": [
                        {"type": "boolean"},
                        {
                            "type": "object",
                            "properties": {
                                "address": {"type": "string"},
                                "facility": {"type": "string"},
                            },
                        },
                    ]
                },
            },
        },
    },
}


def _format_errors(errors: List[ValidationError], *, config_path: Optional[str]) -> str:
    """Brief: Format jsonschema validation errors into a human-readable string.

    Inputs:
      - errors: List of jsonschema.ValidationError instances.
      - config_path: Optional path to the YAML config being validated.

    Outputs:
      - String suitable for display in logs or CLI output.
    """

    lines: List[str] = [f"Invalid configuration in {config_path or '<config dict>'}:"]
    for err in errors:
        instance_path = "/".join(str(p) for p in err.path) or "<root>"
        schema_path = "/".join(str(p) for p in err.schema_path)
        lines.append(f"- {instance_path}: {err.message} (schema: {schema_path})")
    return "\n".join(lines)


def _split_extra_property_errors(
    errors: List[ValidationError],
) -> tuple[List[ValidationError], List[ValidationError]]:
    """Brief: Partition validation errors into extra-property vs other errors."""

    extra: List[ValidationError] = []
    other: List[ValidationError] = []
    for err in errors:
        if getattr(err, "validator", None) == "additionalProperties":
            extra.append(err)
        else:
            other.append(err)
    return extra, other


def validate_config(
    cfg: Dict[str, Any],
    *,
    config_path: Optional[str] = None,
) -> None:
    """Brief: Validate one parsed YAML configuration mapping.

    Inputs:
      - cfg: Dict loaded from YAML.
      - config_path: Optional path of the file, used only in messages.

    Outputs:
      - None on success. Keys the schema does not describe are logged as a
        warning and otherwise ignored.

    Raises:
      - ValueError: when a described key has an invalid value.

    Example:
      >>> validate_config({"zones": ["example.com"], "port": 53})
    """

    validator = Draft202012Validator(CONFIG_SCHEMA)
    all_errors = sorted(validator.iter_errors(cfg), key=lambda e: list(e.path))
    if not all_errors:
        return None

    extra_errors, other_errors = _split_extra_property_errors(all_errors)
    if other_errors:
        raise ValueError(
            _format_errors(other_errors + extra_errors, config_path=config_path)
        )

    logger.warning(_format_errors(extra_errors, config_path=config_path))
    return None
