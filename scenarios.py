# scenarios.py
"""
Scenario presets for store runs.

Provides:
 - SCENARIO_PRESETS: mapping of names -> SimulationConfig overrides
 - scenario_config(name, **overrides): SimulationConfig for a preset
 - load_and_apply_scenario(name, layout_path=None): (layout, sim_config)
"""

from typing import Any, Dict, Optional, Tuple

import config
from maps.layout import Layout
from maps.layout_loader import load_layout_from_config
from simulation import SimulationConfig

# Each entry only lists what differs from config.py.
SCENARIO_PRESETS: Dict[str, Dict[str, Any]] = {
    "normal": {},
    # doors open at 17:00: arrivals every second, bigger store population
    "rush_hour": {"spawn_interval": 1.0, "max_customers": 120},
    "quiet": {"spawn_interval": 15.0, "max_customers": 15},
    # short lists, slow walkers who look around more often
    "browsing": {
        "shopping_list_min": 1,
        "shopping_list_max": 2,
        "speed_min": 20.0,
        "speed_max": 35.0,
        "decision_interval": 1.0,
    },
}


def scenario_config(name: str, **overrides) -> SimulationConfig:
    """
    Build the SimulationConfig of scenario `name`; keyword overrides win over
    the preset (None values are ignored so CLI defaults can pass through).
    """
    preset = SCENARIO_PRESETS.get(name)
    if preset is None:
        raise ValueError(f"Unknown scenario '{name}' (choose from {', '.join(sorted(SCENARIO_PRESETS))})")

    cfg = dict(preset)
    cfg.update({k: v for k, v in overrides.items() if v is not None})
    return SimulationConfig().with_overrides(**cfg)


def load_and_apply_scenario(name: str, layout_path: Optional[str] = None,
                            verbose: bool = False, **overrides) -> Tuple[Layout, SimulationConfig]:
    """
    Loads the layout (config.LAYOUT_FILE unless given) and the scenario's
    simulation settings.
    Returns: (layout, sim_config)
    """
    sim_config = scenario_config(name, **overrides)
    layout = load_layout_from_config(layout_path or config.LAYOUT_FILE, verbose=verbose)
    return layout, sim_config
