import pytest

import config
from scenarios import SCENARIO_PRESETS, load_and_apply_scenario, scenario_config


def test_presets_become_sim_configs():
    assert scenario_config("rush_hour").spawn_interval == 1.0
    assert scenario_config("normal").spawn_interval == config.SPAWN_INTERVAL
    assert set(SCENARIO_PRESETS) == {"normal", "rush_hour", "quiet", "browsing"}


def test_overrides_win_and_none_is_ignored():
    cfg = scenario_config("quiet", max_customers=3, spawn_interval=None)
    assert cfg.max_customers == 3
    assert cfg.spawn_interval == 15.0


def test_config_module_overrides_are_read_late(monkeypatch):
    monkeypatch.setattr(config, "VISION_RANGE", 80.0)
    assert scenario_config("normal").vision_range == 80.0


def test_unknown_scenario():
    with pytest.raises(ValueError):
        scenario_config("black_friday")


def test_load_and_apply_scenario():
    layout, cfg = load_and_apply_scenario("browsing")
    assert layout.name == "corner_store"
    assert cfg.shopping_list_max == 2
