# maps/layout_loader.py
"""
Load / save store layouts as JSON in the layout exchange shape.

Usage:
    from maps.layout_loader import load_layout_from_config
    layout = load_layout_from_config()
    sim = StoreSimulation()
    sim.start(layout)
"""

import json
from pathlib import Path
from typing import Optional, Union

import config
from maps.layout import Layout, layout_problems

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _resolve(path: Union[str, Path]) -> Path:
    """Relative paths are tried against the working directory, then the project root."""
    p = Path(path)
    if p.is_absolute() or p.exists():
        return p
    candidate = PROJECT_ROOT / p
    if candidate.exists():
        return candidate
    return p


def load_layout(path: Union[str, Path]) -> Layout:
    p = _resolve(path)
    if not p.exists():
        raise FileNotFoundError(f"Layout file not found: {path}")

    with open(p, "r", encoding="utf-8") as fh:
        data = json.load(fh)

    layout = Layout.from_dict(data)
    if not layout.name:
        layout = Layout.from_dict({**data, "name": p.stem})
    return layout


def save_layout(layout: Layout, path: Union[str, Path]) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w", encoding="utf-8") as fh:
        json.dump(layout.to_dict(), fh, indent=2)
    return p


def load_layout_from_config(path: Optional[Union[str, Path]] = None, verbose: bool = False) -> Layout:
    """
    Load the layout named by `path` (or config.LAYOUT_FILE).
    Problems are only reported here; the simulator validates before starting.
    """
    layout = load_layout(path or config.LAYOUT_FILE)
    if verbose:
        print(f"[layout] loaded '{layout.name}': {len(layout.walls)} walls, "
              f"{len(layout.entrances)} entrances, {len(layout.exits)} exits, "
              f"{len(layout.products)} sections, {len(layout.checkouts)} checkouts")
        for problem in layout_problems(layout):
            print(f"[layout] warning: {problem}")
    return layout
