import os

from analysis import (
    compute_store_metrics,
    plot_congestion_heatmap,
    plot_fitness_history,
    plot_shopping_time_histogram,
    print_metrics_report,
)
from optimizer import WORST_FITNESS, ProgressEvent
from simulation import SimulationConfig, StoreSimulation


def _finished_sim(layout):
    sim = StoreSimulation()
    sim.start(layout, sim_config=SimulationConfig().with_overrides(spawn_interval=1.0, seed=2))
    sim.run(max_time=200, target_completed=3, dt=0.5)
    return sim


def test_compute_store_metrics(corner_store):
    sim = _finished_sim(corner_store)
    m = compute_store_metrics(sim, top_k_bottlenecks=3)

    assert m["completed_customers"] == sim.metrics.completed_customers
    assert 0.0 <= m["completion_rate"] <= 1.0
    assert len(m["bottlenecks"]) <= 3
    counts = [count for _, count in m["bottlenecks"]]
    assert counts == sorted(counts, reverse=True)
    if sim.shopping_times:
        assert m["shopping_time_percentiles"][0.5] <= max(sim.shopping_times)


def test_print_metrics_report(capsys, corner_store):
    print_metrics_report(_finished_sim(corner_store))
    out = capsys.readouterr().out
    assert "Store KPIs" in out
    assert "Avg shopping time" in out


def test_plots_are_saved(tmp_path, corner_store):
    sim = _finished_sim(corner_store)
    heat = tmp_path / "heat.png"
    hist = tmp_path / "hist.png"
    plot_congestion_heatmap(sim, out_path=str(heat))
    plot_shopping_time_histogram(sim.shopping_times, out_path=str(hist))
    assert os.path.exists(heat) and os.path.exists(hist)


def test_fitness_history_plot_skips_failed_generations(tmp_path):
    history = [
        ProgressEvent(0, WORST_FITNESS, None, WORST_FITNESS),
        ProgressEvent(1, 900.0, None, 850.0),
        ProgressEvent(2, 910.0, None, 870.0),
    ]
    out = tmp_path / "fitness.png"
    plot_fitness_history(history, out_path=str(out))
    assert os.path.exists(out)
