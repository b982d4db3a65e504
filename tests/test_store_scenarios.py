import pytest

from agent import CHECKOUT, EXITED, EXITING, SHOPPING, TARGET_CHECKOUT, TARGET_EXIT
from simulation import SimulationConfig, StoreSimulation


def test_single_dairy_shopper_walkthrough(dairy_layout):
    cfg = SimulationConfig().with_overrides(max_customers=1, seed=3)
    sim = StoreSimulation()
    sim.start(dairy_layout, sim_config=cfg)

    customer = None
    statuses = []
    collected_at = checkout_at = None
    position_after_collect = None

    while sim.metrics.completed_customers == 0 and sim.time < 300:
        sim.step(0.1)
        if customer is None and sim.agents:
            customer = sim.agents[0]
            assert customer.shopping_list == ["Dairy"]
            assert customer.get_position() == pytest.approx((120, 0), abs=10)
        if customer is None:
            continue

        if not statuses or statuses[-1] != customer.status:
            statuses.append(customer.status)

        if collected_at is None and customer.collected:
            collected_at = sim.time
            position_after_collect = customer.get_position()
            assert customer.wait_time == pytest.approx(3.0)
            assert customer.get_position() == pytest.approx((140, 130), abs=15)
        elif collected_at is not None and sim.time < collected_at + 2.95:
            # standing still while picking the item
            assert customer.get_position() == position_after_collect
            assert customer.status == SHOPPING

        if checkout_at is None and customer.status == EXITING:
            checkout_at = sim.time
            assert customer.wait_time == pytest.approx(5.0)
            assert customer.get_position() == pytest.approx((300, 100), abs=15)
            assert customer.target_kind == TARGET_EXIT

    assert sim.metrics.completed_customers == 1
    assert statuses == [SHOPPING, CHECKOUT, EXITING, EXITED]
    assert customer.collected == ["Dairy"]
    assert customer.exit_time is not None
    assert customer.exit_time >= checkout_at + 5.0
    assert sim.get_metrics().avg_shopping_time == pytest.approx(customer.exit_time - customer.spawn_time)
    assert sim.agents == []


def test_checkout_decision_without_checkouts_goes_to_exit(dairy_layout):
    layout = dairy_layout.with_checkouts([])
    cfg = SimulationConfig().with_overrides(max_customers=1, seed=3)
    sim = StoreSimulation()
    sim.start(layout, sim_config=cfg)
    report = sim.run(max_time=300, target_completed=1, dt=0.1)

    assert report.completed_customers == 1
    assert report.avg_shopping_time > 0


def test_first_spawn_after_one_interval(dairy_layout):
    cfg = SimulationConfig().with_overrides(spawn_interval=5.0, seed=3)
    sim = StoreSimulation()
    sim.start(dairy_layout, sim_config=cfg)
    sim.step(4.0)
    assert sim.metrics.total_customers == 0
    sim.step(1.0)
    assert sim.metrics.total_customers == 1
    assert sim.agents[0].spawn_time == pytest.approx(5.0)
