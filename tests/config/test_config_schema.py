"""
Brief: Tests for JSON Schema validation of configuration files.

Inputs:
  - None

Outputs:
  - None
"""

import logging

import pytest

from dnskeyage.config.config_schema import validate_config


def test_valid_full_config_passes():
    validate_config(
        {
            "zones": ["example.com", "se"],
            "resolvers": "9.9.9.9",
            "port": 53,
            "dryrun": False,
            "verbose": True,
            "workers": 2,
            "timeout_ms": 2000,
            "influx": {
                "server": "http://influx:8086",
                "database": "dnssec",
                "user": "u",
                "password": "p",
                "timeout": 5,
            },
            "logging": {"level": "debug", "stderr": True, "syslog": {"facility": "daemon"}},
        }
    )


def test_flat_influx_keys_are_accepted():
    validate_config({"influxserver": "http://x", "influxdb": "d"})


@pytest.mark.parametrize(
    "cfg",
    [
        {"port": 0},
        {"port": "53"},
        {"workers": 0},
        {"zones": [1, 2]},
        {"dryrun": "yes"},
        {"logging": {"level": "loud"}},
    ],
)
def test_invalid_values_raise(cfg):
    with pytest.raises(ValueError, match="Invalid configuration"):
        validate_config(cfg, config_path="test.yaml")


def test_unknown_keys_only_warn(caplog):
    """
    Brief: Keys the schema does not describe are logged, not rejected.

    Inputs:
      - caplog: pytest log capture

    Outputs:
      - None: Asserts warning text
    """
    caplog.set_level(logging.WARNING)
    validate_config({"zones": ["a"], "sources": "x"}, config_path="old.yaml")
    assert "sources" in caplog.text
    assert "old.yaml" in caplog.text


def test_unknown_keys_reported_with_real_errors():
    with pytest.raises(ValueError, match="sources"):
        validate_config({"port": 0, "sources": "x"})

