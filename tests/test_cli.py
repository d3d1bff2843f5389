import json

import pytest

import run as run_module
from placefinder import config
from placefinder.errors import GeocodeError
from placefinder.pipeline import PipelineResult


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    for name in config.API_KEY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(run_module, "load_env", lambda *a, **k: None)
    monkeypatch.setattr(config, "SEARCH_SETTINGS", config.SearchSettings())
    monkeypatch.chdir(tmp_path)


def test_missing_api_key_exits_nonzero(capsys):
    assert run_module.main(["Main St 1"]) == 1
    assert "GOOGLE_MAPS_API_KEY" in capsys.readouterr().err


def test_missing_address_exits_nonzero(monkeypatch, capsys):
    monkeypatch.setenv("GOOGLE_MAPS_API_KEY", "k")
    assert run_module.main([]) == 1
    assert "Usage" in capsys.readouterr().err


def test_preflight_reports_key_and_settings(monkeypatch, capsys):
    assert run_module.main(["--preflight"]) == 1
    assert "API key: MISSING" in capsys.readouterr().out

    monkeypatch.setenv("GOOGLE_API_KEY", "k")
    assert run_module.main(["--preflight", "--radius-m", "2000"]) == 0
    out = capsys.readouterr().out
    assert "radius_m=2000.0" in out
    assert "Preflight: PASS" in out


def test_invalid_settings_exit_nonzero(monkeypatch, capsys):
    monkeypatch.setenv("GOOGLE_MAPS_API_KEY", "k")
    assert run_module.main(["--preflight", "--overlap", "3"]) == 1
    assert "Preflight: FAIL" in capsys.readouterr().out


def test_fatal_error_exits_nonzero_with_message(monkeypatch, capsys):
    monkeypatch.setenv("GOOGLE_MAPS_API_KEY", "k")

    def failing_run(**kwargs):
        raise GeocodeError("Geocoding failed: ZERO_RESULTS - No results")

    monkeypatch.setattr(run_module, "run", failing_run)
    assert run_module.main(["Nowhere"]) == 1
    assert "Error: Geocoding failed" in capsys.readouterr().err


def test_args_are_passed_to_pipeline(monkeypatch, capsys):
    monkeypatch.setenv("GOOGLE_MAPS_API_KEY", "k")
    captured = {}

    def fake_run(**kwargs):
        captured.update(kwargs)
        return PipelineResult(places=[], visits=[], summary={})

    monkeypatch.setattr(run_module, "run", fake_run)
    code = run_module.main(
        [
            "Main St 1",
            "--radius-m",
            "1500",
            "--min-radius-m",
            "250",
            "--types",
            "cafe, bakery",
            "--exclude",
            "ex.json",
            "--no-cache",
            "--out",
            "results",
        ]
    )

    assert code == 0
    assert captured["address"] == "Main St 1"
    assert captured["api_key"] == "k"
    assert captured["settings"].radius_m == 1500
    assert captured["settings"].min_radius_m == 250
    assert captured["settings"].place_types == ("cafe", "bakery")
    assert captured["exclude_path"] == "ex.json"
    assert captured["no_cache"] is True
    assert captured["output_dir"] == "results"
    assert "Saved 0 places to results/places.json" in capsys.readouterr().out


def test_search_config_file_overrides_defaults(tmp_path, monkeypatch):
    path = tmp_path / "search_config.json"
    path.write_text(
        json.dumps({"radius_m": 2500, "min_radius_m": 300, "place_types": ["bar"], "exclude_path": "x.json"}),
        encoding="utf-8",
    )
    monkeypatch.setattr(config, "EXCLUDE_LIST_PATH", config.EXCLUDE_LIST_PATH)

    assert config.load_search_config(str(path)) is True
    assert config.SEARCH_SETTINGS.radius_m == 2500
    assert config.SEARCH_SETTINGS.min_radius_m == 300
    assert config.SEARCH_SETTINGS.cap == 20
    assert config.SEARCH_SETTINGS.place_types == ("bar",)
    assert config.EXCLUDE_LIST_PATH == "x.json"
    assert config.load_search_config(str(tmp_path / "missing.json")) is False
