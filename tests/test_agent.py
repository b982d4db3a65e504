import random

import config
from agent import CHECKOUT, EXITED, EXITING, SHOPPING, Customer, generate_shopping_list


def _customer(shopping_list=("Dairy", "Bakery")):
    return Customer(agent_id=0, position=(10, 0), shopping_list=list(shopping_list), spawn_time=0.0, speed=40)


def test_status_only_moves_forward():
    c = _customer()
    assert c.status == SHOPPING
    assert c.advance_status(CHECKOUT)
    assert c.advance_status(EXITING)
    assert not c.advance_status(SHOPPING)
    assert not c.advance_status(CHECKOUT)
    assert c.status == EXITING
    assert c.advance_status(EXITED)
    assert not c.is_active


def test_collect_only_list_items_once():
    c = _customer()
    assert not c.collect("Snacks")
    assert c.collect("Dairy")
    assert not c.collect("Dairy")
    assert c.collected == ["Dairy"]
    assert c.remaining_items() == ["Bakery"]
    assert not c.has_everything()
    c.collect("Bakery")
    assert c.has_everything()


def test_shopping_list_is_a_subset_without_repeats():
    labels = ["Produce", "Bakery", "Dairy", "Meat", "Frozen", "Snacks"]
    rng = random.Random(1)
    for _ in range(50):
        items = generate_shopping_list(labels, rng, 3, 5)
        assert 3 <= len(items) <= 5
        assert len(set(items)) == len(items)
        assert set(items) <= set(labels)


def test_shopping_list_capped_by_available_labels():
    assert generate_shopping_list(["Dairy"], random.Random(0), 3, 5) == ["Dairy"]


def test_view_is_a_copy():
    c = _customer()
    c.set_target((100, 50), "product", "Dairy")
    v = c.view()
    c.collect("Dairy")
    assert v.collected == ()
    assert (v.target_x, v.target_y, v.target_label) == (100, 50, "Dairy")


def test_vision_range_default_read_at_construction(monkeypatch):
    monkeypatch.setattr(config, "VISION_RANGE", 55.0)
    assert _customer().vision_range == 55.0
    c = Customer(agent_id=1, position=(0, 0), shopping_list=[], spawn_time=0.0, speed=40, vision_range=120)
    assert c.vision_range == 120.0
