import os

import numpy as np
import pytest

from experiments_runner import aggregate_trials, find_topk_bottleneck_cells, run_multiple_trials, run_single_trial
from simulation import SimulationConfig


def _fast():
    return SimulationConfig().with_overrides(spawn_interval=2.0)


def test_run_single_trial_shape(corner_store):
    tr = run_single_trial(corner_store, seed=3, sim_config=_fast(), max_time=60, dt=0.5)
    assert tr["seed"] == 3
    assert tr["density"].shape == (17, 25)
    assert tr["sim_time"] == pytest.approx(60)
    assert tr["total_customers"] > 0
    assert 0.0 <= tr["completed_fraction"] <= 1.0


def test_aggregate_trials_mean_and_std():
    trials = [
        {"seed": s, "density": np.full((2, 3), v), "shopping_times": times, "sim_time": 10.0,
         "ticks": 20, "total_customers": 4, "completed_customers": len(times), "completed_fraction": len(times) / 4,
         "mean_congestion": 1.0, "mean_bottlenecks": 0.0, "elapsed_sec": 0.1}
        for s, v, times in ((1, 2.0, [30.0]), (2, 4.0, [50.0, 70.0]))
    ]
    agg = aggregate_trials(trials)
    assert np.allclose(agg["avg_density"], 3.0)
    assert np.allclose(agg["std_density"], 1.0)
    assert agg["aggregated_shopping_times"] == [30.0, 50.0, 70.0]
    assert agg["per_trial_summary"][1]["avg_shopping_time"] == pytest.approx(60.0)


def test_aggregate_rejects_mixed_shapes():
    base = {"seed": 0, "shopping_times": [], "sim_time": 0, "ticks": 0, "total_customers": 0,
            "completed_customers": 0, "completed_fraction": 0, "mean_congestion": 0,
            "mean_bottlenecks": 0, "elapsed_sec": 0}
    with pytest.raises(ValueError):
        aggregate_trials([{**base, "density": np.zeros((2, 2))}, {**base, "density": np.zeros((3, 2))}])


def test_find_topk_bottleneck_cells():
    dens = np.array([[0.0, 5.0, 1.0], [2.0, 0.0, 9.0]])
    assert find_topk_bottleneck_cells(dens, k=3) == [(1, 2, 9.0), (0, 1, 5.0), (1, 0, 2.0)]
    assert len(find_topk_bottleneck_cells(dens, k=10)) == 4


def test_run_multiple_trials_writes_outputs(tmp_path, corner_store):
    res = run_multiple_trials(corner_store, trials=2, workers=1, base_seed=10, sim_config=_fast(),
                              max_time=40, dt=0.5, out_dir=str(tmp_path), top_k_bottlenecks=3, verbose=False)

    assert [tr["seed"] for tr in res["trial_results"]] == [10, 11]
    assert len(res["top_cells"]) <= 3
    for name in ("avg_density.npy", "std_density.npy", "trial_summary.csv", "report.txt",
                 "trial_0_density.npy", "trial_1_density.npy", "avg_heatmap_bottlenecks.png"):
        assert os.path.exists(tmp_path / name)
