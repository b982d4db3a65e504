import json

import pytest

from maps.layout import Layout, LayoutValidationError, Opening, layout_problems, validate_layout
from maps.layout_loader import load_layout, save_layout


def test_example_layout_is_valid(corner_store):
    assert validate_layout(corner_store) is corner_store
    assert corner_store.name == "corner_store"
    assert len(corner_store.products) == 8


def test_wall_index_zero_is_a_real_wall(dairy_layout):
    assert dairy_layout.entrances[0].wall_index == 0
    assert layout_problems(dairy_layout) == []
    assert dairy_layout.opening_position(dairy_layout.entrances[0]) == pytest.approx((120, 0))
    assert dairy_layout.exit_positions() == [pytest.approx((320, 0))]


def test_unattached_opening_is_rejected(dairy_layout):
    layout = Layout(
        walls=dairy_layout.walls,
        entrances=(Opening("entrance", None, offset=10, length=40),),
        exits=dairy_layout.exits,
        products=dairy_layout.products,
        checkouts=dairy_layout.checkouts,
    )
    with pytest.raises(LayoutValidationError) as exc:
        validate_layout(layout)
    assert any("not attached" in p for p in exc.value.problems)
    assert layout.entrance_positions() == []


def test_dangling_wall_index_and_overlong_opening(dairy_layout):
    layout = Layout(
        walls=dairy_layout.walls,
        entrances=(Opening("entrance", 7, offset=0, length=40),),
        exits=(Opening("exit", 1, offset=280, length=40),),  # wall 1 is 300 long
        products=dairy_layout.products,
    )
    problems = layout_problems(layout)
    assert any("missing wall 7" in p for p in problems)
    assert any("past the end of wall 1" in p for p in problems)


def test_missing_entrance_exit_and_products():
    problems = layout_problems(Layout())
    assert "layout has no entrance" in problems
    assert "layout has no exit" in problems
    assert "layout has no product section" in problems


def test_exchange_shape(dairy_layout):
    data = dairy_layout.to_dict()
    assert data["entrances"] == [{"wallIndex": 0, "offset": 100, "length": 40}]
    assert data["walls"][0] == {"start": {"x": 0, "y": 0}, "end": {"x": 400, "y": 0}}
    assert data["products"][0]["label"] == "Dairy"
    assert Layout.from_dict(data) == dairy_layout


def test_from_dict_rejects_malformed_data():
    with pytest.raises(ValueError):
        Layout.from_dict({"walls": [{"start": {"x": 0}}]})


def test_save_and_load(tmp_path, dairy_layout):
    path = save_layout(dairy_layout, tmp_path / "store.json")
    assert json.loads(path.read_text())["checkouts"] == [{"x": 300, "y": 100}]
    assert load_layout(path) == dairy_layout


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_layout(tmp_path / "nope.json")
