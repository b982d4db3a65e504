import math

import pytest

import optimizer
from maps.layout import Layout, ProductSection
from optimizer import (
    WORST_FITNESS,
    FitnessReport,
    GeneticOptimizer,
    OptimizerConfig,
    evaluate_layout,
    fitness_from_metrics,
)
from simulation import SimulationConfig


def _small_config(**overrides):
    cfg = OptimizerConfig(population_size=6, seed=11)
    for k, v in overrides.items():
        setattr(cfg, k, v)
    return cfg


def _checkout_score(layout, **kwargs):
    # cheap stand-in for a simulation: checkouts closer to x=700 score higher
    x = layout.checkouts[0].x
    return FitnessReport(fitness=1000 - abs(700 - x))


def test_fitness_formula():
    assert fitness_from_metrics(0, 0, 0) == 1000
    assert fitness_from_metrics(2.0, 1.0, 30.0) == pytest.approx(1000 - 10 - 10 - 60)


def test_initial_population_keeps_original_first(corner_store):
    opt = GeneticOptimizer(corner_store, opt_config=_small_config())
    population = opt.initialize_population()
    assert len(population) == 6
    assert population[0] is corner_store


def test_variation_only_touches_products_and_checkouts(corner_store):
    opt = GeneticOptimizer(corner_store, opt_config=_small_config())
    variant = opt.create_variation(corner_store)

    assert variant.walls == corner_store.walls
    assert variant.entrances == corner_store.entrances
    assert variant.exits == corner_store.exits
    assert [p.label for p in variant.products] == [p.label for p in corner_store.products]
    assert sorted((p.x, p.y) for p in variant.products) == sorted((p.x, p.y) for p in corner_store.products)
    for before, after in zip(corner_store.checkouts, variant.checkouts):
        assert abs(after.x - before.x) <= 50 and abs(after.y - before.y) <= 50


def test_resize_respects_minimum_footprint(dairy_layout):
    tiny = dairy_layout.with_products([ProductSection(100, 100, 60, 40, "Dairy")])
    opt = GeneticOptimizer(tiny, opt_config=_small_config(init_resize_prob=1.0))
    for _ in range(30):
        p = opt.create_variation(tiny).products[0]
        assert p.width >= 60 and p.height >= 40
        assert p.width <= 80 and p.height <= 55


def test_crossover_of_a_layout_with_itself_is_identity(corner_store):
    opt = GeneticOptimizer(corner_store, opt_config=_small_config())
    for _ in range(10):
        assert opt.cross(corner_store, corner_store) == corner_store
    children = opt.crossover([corner_store], 4)
    assert all(child == corner_store for child in children)


def test_crossover_takes_tail_positions_from_other_parent(corner_store):
    opt = GeneticOptimizer(corner_store, opt_config=_small_config())
    other = opt.create_variation(corner_store)
    child = opt.cross(corner_store, other)
    n = len(child.products)
    split = next((i for i in range(n) if child.products[i] != corner_store.products[i]), n)
    for i in range(split, n):
        assert (child.products[i].x, child.products[i].y) == (other.products[i].x, other.products[i].y)
        assert child.products[i].label == corner_store.products[i].label
    for c in child.checkouts:
        assert c in corner_store.checkouts or c in other.checkouts


def test_mutation_rate_zero_and_one(corner_store):
    opt = GeneticOptimizer(corner_store, opt_config=_small_config(mutation_rate=0.0))
    assert opt.mutate(corner_store) is corner_store

    opt = GeneticOptimizer(corner_store, opt_config=_small_config(mutation_rate=1.0))
    mutated = opt.mutate(corner_store)
    assert mutated != corner_store
    assert sorted(p.label for p in mutated.products) == sorted(p.label for p in corner_store.products)
    for p in mutated.products:
        assert p.width >= 60 and p.height >= 40


def test_single_generation_best_is_initial_member(monkeypatch, corner_store):
    seen = []

    def fake_evaluate(layout, **kwargs):
        seen.append(layout)
        return _checkout_score(layout)

    monkeypatch.setattr(optimizer, "evaluate_layout", fake_evaluate)
    opt = GeneticOptimizer(corner_store, opt_config=_small_config())
    result = opt.optimize(1)

    assert result.generations_run == 1
    assert len(seen) == 6
    assert any(result.best_layout is layout for layout in seen)
    assert result.best_fitness == max(_checkout_score(layout).fitness for layout in seen)
    assert result.original_layout is corner_store


def test_best_fitness_never_decreases(monkeypatch, corner_store):
    monkeypatch.setattr(optimizer, "evaluate_layout", _checkout_score)
    events = []
    opt = GeneticOptimizer(corner_store, on_progress=events.append, opt_config=_small_config(mutation_rate=1.0))
    result = opt.optimize(8)

    assert [e.generation for e in events] == list(range(8))
    best = [e.best_fitness for e in events]
    assert all(b2 >= b1 for b1, b2 in zip(best, best[1:]))
    assert result.best_fitness == best[-1]
    assert result.history == events
    assert events[0].to_dict()["bestLayout"] == events[0].best_layout.to_dict()


def test_failing_evaluation_gets_worst_fitness(monkeypatch, corner_store):
    def flaky(layout, **kwargs):
        if layout is corner_store:
            raise RuntimeError("simulation blew up")
        return _checkout_score(layout)

    monkeypatch.setattr(optimizer, "evaluate_layout", flaky)
    opt = GeneticOptimizer(corner_store, opt_config=_small_config())
    reports = opt.evaluate_population(opt.initialize_population())

    assert reports[0].fitness == WORST_FITNESS
    assert reports[0].failed
    assert all(math.isfinite(r.fitness) for r in reports[1:])


def test_all_evaluations_failing_still_returns(monkeypatch, corner_store):
    def broken(layout, **kwargs):
        raise ValueError("nope")

    monkeypatch.setattr(optimizer, "evaluate_layout", broken)
    result = GeneticOptimizer(corner_store, opt_config=_small_config()).optimize(2)
    assert result.best_fitness == WORST_FITNESS
    assert result.best_layout is corner_store
    assert result.generations_run == 2


def test_stop_is_observed_at_generation_boundary(monkeypatch, corner_store):
    monkeypatch.setattr(optimizer, "evaluate_layout", _checkout_score)
    opt = GeneticOptimizer(corner_store, opt_config=_small_config())
    opt.on_progress = lambda event: opt.stop()
    result = opt.optimize(10)

    assert result.generations_run == 1
    assert result.stopped
    assert result.best_layout is not None


def test_same_seed_same_search(monkeypatch, corner_store):
    monkeypatch.setattr(optimizer, "evaluate_layout", _checkout_score)
    a = GeneticOptimizer(corner_store, opt_config=_small_config()).optimize(4)
    b = GeneticOptimizer(corner_store, opt_config=_small_config()).optimize(4)
    assert a.best_layout == b.best_layout
    assert a.best_fitness == b.best_fitness


def test_evaluate_layout_runs_a_real_simulation(corner_store):
    cfg = SimulationConfig().with_overrides(spawn_interval=2.0, seed=5)
    first = evaluate_layout(corner_store, sim_config=cfg, target_completed=3, max_time=120, dt=0.5)
    second = evaluate_layout(corner_store, sim_config=cfg, target_completed=3, max_time=120, dt=0.5)

    assert first == second
    assert first.spawned > 0
    assert first.fitness <= 1000
    assert first.fitness == pytest.approx(
        fitness_from_metrics(first.avg_congestion, first.bottleneck_count, first.avg_shopping_time))


def test_evaluate_layout_rejects_invalid_layout():
    with pytest.raises(ValueError):
        evaluate_layout(Layout())


def test_process_pool_matches_serial_evaluation(corner_store):
    sim_cfg = SimulationConfig().with_overrides(spawn_interval=2.0, seed=5)
    settings = dict(population_size=4, eval_max_time=30.0, eval_dt=0.5, eval_target_completed=3)

    serial = GeneticOptimizer(corner_store, opt_config=_small_config(workers=1, **settings),
                              sim_config=sim_cfg).optimize(2)
    pooled = GeneticOptimizer(corner_store, opt_config=_small_config(workers=2, **settings),
                              sim_config=sim_cfg).optimize(2)

    assert serial.generations_run == pooled.generations_run == 2
    assert pooled.best_layout == serial.best_layout
    assert pooled.best_fitness == serial.best_fitness
    assert [e.avg_fitness for e in pooled.history] == [e.avg_fitness for e in serial.history]
