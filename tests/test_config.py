"""Tests for configuration loading and validation."""

import json

import pytest
from pydantic import ValidationError

from analytics.config import EngineConfig, build_config, load_config
from analytics.lib.errors import ConfigError


class TestBuildConfig:
    def test_defaults(self):
        cfg = build_config()
        assert cfg.lookback_days == 7
        assert cfg.overdue_minutes == 30
        assert cfg.nc_sla_hours.nc1_to_nc2 == 4
        assert cfg.nc_sla_hours.nc2_to_nc3 == 24
        assert cfg.reference_timezone == "Asia/Kolkata"
        assert "Lead_Source" in cfg.category_fields

    def test_camel_and_snake_case(self):
        cfg = build_config({"lookbackDays": 3, "ncSlaHours": {"nc1ToNc2": 2}, "overdue_minutes": 10})
        assert cfg.lookback_days == 3
        assert cfg.nc_sla_hours.nc1_to_nc2 == 2
        assert cfg.nc_sla_hours.nc2_to_nc3 == 24
        assert cfg.overdue_minutes == 10

    def test_passes_engine_config_through(self):
        cfg = EngineConfig(lookback_days=2)
        assert build_config(cfg) is cfg

    def test_frozen(self):
        with pytest.raises(ValidationError):
            build_config().lookback_days = 1

    def test_invalid_value(self):
        with pytest.raises(ConfigError) as exc:
            build_config({"lookbackDays": "soon"})
        assert exc.value.code == "CONFIG_ERROR"
        assert exc.value.details["errors"]


class TestLoadConfig:
    def test_file_with_dashboard_section(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"dashboard": {"lookbackDays": 14, "ownerExclusionList": ["Ops"]}}))
        cfg = load_config(path)
        assert cfg.lookback_days == 14
        assert cfg.owner_exclusion_list == ["Ops"]

    def test_file_at_top_level(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"overdue_minutes": 45}))
        assert load_config(path).overdue_minutes == 45

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"lookbackDays": 14, "ncSlaHours": {"nc1ToNc2": 2}}))
        monkeypatch.setenv("LOOKBACK_DAYS", "3")
        monkeypatch.setenv("NC2_TO_NC3_SLA_HOURS", "12")
        monkeypatch.setenv("CATEGORY_FIELDS", "Lead_Source, Product")
        cfg = load_config(path)
        assert cfg.lookback_days == 3
        assert cfg.nc_sla_hours.nc1_to_nc2 == 2
        assert cfg.nc_sla_hours.nc2_to_nc3 == 12
        assert cfg.category_fields == ["Lead_Source", "Product"]

    def test_env_replaces_same_sla_key_from_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"ncSlaHours": {"nc1ToNc2": 2, "nc2ToNc3": 30}}))
        monkeypatch.setenv("NC1_TO_NC2_SLA_HOURS", "6")
        cfg = load_config(path)
        assert cfg.nc_sla_hours.nc1_to_nc2 == 6
        assert cfg.nc_sla_hours.nc2_to_nc3 == 30

    def test_snake_case_sla_override_beats_camel_case_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"ncSlaHours": {"nc1ToNc2": 2}}))
        cfg = load_config(path, overrides={"nc_sla_hours": {"nc1_to_nc2": 9}})
        assert cfg.nc_sla_hours.nc1_to_nc2 == 9
        assert cfg.nc_sla_hours.nc2_to_nc3 == 24

    def test_camel_case_sla_override_beats_env(self, monkeypatch):
        monkeypatch.setenv("NC2_TO_NC3_SLA_HOURS", "12")
        cfg = load_config(overrides={"ncSlaHours": {"nc2ToNc3": 48}})
        assert cfg.nc_sla_hours.nc2_to_nc3 == 48

    def test_overrides_win(self, monkeypatch):
        monkeypatch.setenv("LOOKBACK_DAYS", "3")
        assert load_config(overrides={"lookbackDays": 5}).lookback_days == 5

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError) as exc:
            load_config(tmp_path / "absent.json")
        assert exc.value.details["config_path"].endswith("absent.json")

    def test_non_object_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[1, 2]")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_invalid_env_value(self, monkeypatch):
        monkeypatch.setenv("OVERDUE_MINUTES", "-5")
        with pytest.raises(ConfigError):
            load_config()
