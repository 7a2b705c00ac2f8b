"""Brief: Unit tests for dnskeyage.config.config_parser helpers.

Inputs:
  - None

Outputs:
  - None
"""

from __future__ import annotations

from typing import Any, Dict

import pytest

from dnskeyage.config import config_parser as cp


def _write(path, text: str) -> str:
    path.write_text(text)
    return str(path)


def _complete(**extra: Any) -> Dict[str, Any]:
    cfg: Dict[str, Any] = {
        "zones": ["example.com"],
        "resolvers": ["192.0.2.53"],
        "influx": {"server": "http://influx:8086", "database": "dnssec"},
    }
    cfg.update(extra)
    return cfg


def test_normalize_config_folds_flat_influx_keys() -> None:
    """Brief: Flat influx* keys move into the influx block; strings become lists.

    Inputs:
      - None.

    Outputs:
      - None; asserts the normalized mapping.
    """

    out = cp.normalize_config(
        {
            "zones": "example.com",
            "influxserver": "http://influx:8086",
            "influxdb": "dnssec",
            "influxuser": "u",
            "influxpasswd": "p",
            "port": None,
        }
    )
    assert out == {
        "zones": ["example.com"],
        "influx": {
            "server": "http://influx:8086",
            "database": "dnssec",
            "user": "u",
            "password": "p",
        },
    }


def test_normalize_config_nested_block_wins_over_flat_key() -> None:
    out = cp.normalize_config(
        {"influx": {"server": "http://a"}, "influxserver": "http://b"}
    )
    assert out["influx"]["server"] == "http://a"


def test_merge_config_later_non_empty_values_win() -> None:
    merged = cp.merge_config(
        {"zones": ["a."], "resolvers": ["r1"], "port": 53, "influx": {"server": "x"}},
        {"zones": ["b."], "resolvers": [], "port": None, "influx": {"database": "d"}},
    )
    assert merged == {
        "zones": ["b."],
        "resolvers": ["r1"],
        "port": 53,
        "influx": {"server": "x", "database": "d"},
    }


def test_merge_config_booleans_are_ored() -> None:
    merged = cp.merge_config({"dryrun": True, "verbose": False}, {"dryrun": False, "verbose": True})
    assert merged == {"dryrun": True, "verbose": True}


def test_build_run_config_applies_defaults_and_fqdn() -> None:
    config = cp.build_run_config(_complete())

    assert config.zones == ("example.com.",)
    assert config.resolvers == ("192.0.2.53",)
    assert config.port == 53
    assert config.workers == 1
    assert config.timeout_ms == 5000
    assert config.dryrun is False
    assert config.influx.database == "dnssec"


def test_run_config_is_immutable() -> None:
    config = cp.build_run_config(_complete())
    with pytest.raises(Exception):
        config.port = 5353  # type: ignore[misc]


def test_build_run_config_uses_default_resolvers_when_none_given() -> None:
    cfg = _complete()
    cfg.pop("resolvers")
    config = cp.build_run_config(cfg, default_resolvers=["127.0.0.53"])
    assert config.resolvers == ("127.0.0.53",)


@pytest.mark.parametrize(
    "cfg,message",
    [
        ({"resolvers": ["r"]}, "No zones given"),
        ({"zones": ["example.com"]}, "No resolver"),
        ({"zones": ["example.com"], "resolvers": ["r"]}, "Influx server"),
        (
            {"zones": ["example.com"], "resolvers": ["r"], "influx": {"server": "http://x"}},
            "Influx database",
        ),
        (
            {
                "zones": ["example.com"],
                "resolvers": ["r"],
                "influx": {"server": "http://x", "database": "d", "user": "u"},
            },
            "user and password",
        ),
        (
            {
                "zones": ["example.com"],
                "resolvers": ["r"],
                "influx": {"server": "http://x", "database": "d", "password": "p"},
            },
            "user and password",
        ),
        ({"zones": ["a..b"], "resolvers": ["r"], "dryrun": True}, "Invalid zone"),
        ({"zones": [""], "resolvers": ["r"], "dryrun": True}, "must not be empty"),
        ({"zones": ["example.com", "  "], "resolvers": ["r"], "dryrun": True}, "must not be empty"),
    ],
)
def test_build_run_config_startup_errors(cfg: Dict[str, Any], message: str) -> None:
    """Brief: Incomplete configurations raise ConfigError before any zone runs.

    Inputs:
      - cfg, message: parametrized configuration and expected message part.

    Outputs:
      - None; asserts ConfigError text.
    """

    with pytest.raises(cp.ConfigError, match=message):
        cp.build_run_config(cfg, default_resolvers=[])


def test_build_run_config_dryrun_does_not_need_influx() -> None:
    config = cp.build_run_config(
        {"zones": ["example.com"], "resolvers": ["r"], "dryrun": True}
    )
    assert config.dryrun is True
    assert config.influx.server == ""


def test_read_config_file_missing_optional_returns_none(tmp_path) -> None:
    assert cp.read_config_file(str(tmp_path / "absent"), missing_ok=True) is None


def test_read_config_file_missing_explicit_raises(tmp_path) -> None:
    with pytest.raises(cp.ConfigError, match="not found"):
        cp.read_config_file(str(tmp_path / "absent"))


def test_read_config_file_rejects_non_mapping_and_bad_types(tmp_path) -> None:
    with pytest.raises(cp.ConfigError, match="mapping"):
        cp.read_config_file(_write(tmp_path / "list.yaml", "- a\n- b\n"))
    with pytest.raises(cp.ConfigError, match="port"):
        cp.read_config_file(_write(tmp_path / "port.yaml", "port: fifty\n"))


def test_load_run_config_precedence(tmp_path) -> None:
    """Brief: home < cwd < --conf < CLI, with booleans OR-ed.

    Inputs:
      - tmp_path: pytest temporary directory.

    Outputs:
      - None; asserts the resulting RunConfig.
    """

    home = _write(
        tmp_path / "home.yaml",
        "zones: [home.example]\nresolvers: [10.0.0.1]\ndryrun: true\n"
        "influxserver: http://home:8086\ninfluxdb: homedb\n",
    )
    cwd = _write(tmp_path / "cwd.yaml", "zones: [cwd.example]\nport: 5353\n")
    conf = _write(
        tmp_path / "conf.yaml",
        "resolvers: [10.0.0.2, 10.0.0.3]\ninflux:\n  database: confdb\n",
    )

    config = cp.load_run_config(
        conf,
        {"zones": [], "resolvers": [], "dryrun": False, "verbose": True, "workers": 4},
        search_paths=[home, cwd, str(tmp_path / "missing")],
    )

    assert config.zones == ("cwd.example.",)
    assert config.resolvers == ("10.0.0.2", "10.0.0.3")
    assert config.port == 5353
    assert config.dryrun is True
    assert config.verbose is True
    assert config.workers == 4
    assert config.influx.server == "http://home:8086"
    assert config.influx.database == "confdb"


def test_load_run_config_cli_only() -> None:
    config = cp.load_run_config(
        None,
        {"zones": ["se"], "resolvers": ["9.9.9.9"], "dryrun": True},
        search_paths=[],
    )
    assert config.zones == ("se.",)


def test_system_resolvers_handles_missing_configuration(monkeypatch) -> None:
    import dns.resolver

    def boom(*a, **k):
        raise dns.resolver.NoResolverConfiguration("no nameservers")

    monkeypatch.setattr(dns.resolver, "Resolver", boom)
    assert cp.system_resolvers() == []
