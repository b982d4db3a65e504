import matplotlib

matplotlib.use("Agg")

from pathlib import Path

import pytest

from decision import clear_decision_cache
from maps.layout import Checkout, Layout, Opening, Point, ProductSection, Wall
from maps.layout_loader import load_layout

CORNER_STORE = str(Path(__file__).resolve().parent.parent / "maps" / "examples" / "corner_store.json")


def rectangle_walls(width, height):
    return (
        Wall(Point(0, 0), Point(width, 0)),
        Wall(Point(width, 0), Point(width, height)),
        Wall(Point(width, height), Point(0, height)),
        Wall(Point(0, height), Point(0, 0)),
    )


@pytest.fixture(autouse=True)
def _fresh_decision_cache():
    clear_decision_cache()
    yield
    clear_decision_cache()


@pytest.fixture
def dairy_layout():
    """One entrance, one exit, one 'Dairy' section and one checkout."""
    return Layout(
        walls=rectangle_walls(400, 300),
        entrances=(Opening("entrance", 0, offset=100, length=40),),
        exits=(Opening("exit", 0, offset=300, length=40),),
        products=(ProductSection(100, 100, 80, 60, "Dairy"),),
        checkouts=(Checkout(300, 100),),
        name="dairy",
    )


@pytest.fixture
def corner_store():
    return load_layout(CORNER_STORE)
