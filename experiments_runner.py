# experiments_runner.py
"""
Run repeated simulation trials on the same store layout and
aggregate congestion / shopping-time metrics.

Usage: call `run_multiple_trials(...)` from main.py or a REPL after you
load a `Layout`. Trials differ only by seed.
"""

import csv
import multiprocessing as mp
import time
from functools import partial
from itertools import chain
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np
import matplotlib.pyplot as plt

import config
from decision import DecisionProvider
from maps.layout import Layout
from simulation import SimulationConfig, StoreSimulation


def run_single_trial(layout: Layout, seed: Optional[int] = None,
                     sim_config: Optional[SimulationConfig] = None,
                     decision_provider: Optional[DecisionProvider] = None,
                     target_completed: Optional[int] = None,
                     max_time: Optional[float] = None,
                     dt: Optional[float] = None,
                     verbose: bool = False) -> Dict:
    """
    Run one trial of the simulation.

    Returns a dict:
        {
            "seed": seed used,
            "density": 2D numpy array (cumulative customer-ticks per cell),
            "shopping_times": list of shopping times (s) of customers who left,
            "sim_time": simulated seconds,
            "ticks": number of steps run,
            "total_customers": int,
            "completed_customers": int,
            "completed_fraction": float,
            "mean_congestion": float,
            "mean_bottlenecks": float,
            "elapsed_sec": wall-clock seconds
        }

    Stopping conditions:
      - target_completed customers left the store, or
      - max_time simulated seconds passed (config.MAX_SIM_TIME by default).
    """
    sim_config = sim_config or SimulationConfig()
    if seed is not None:
        sim_config = sim_config.with_overrides(seed=seed)
    max_time = config.MAX_SIM_TIME if max_time is None else max_time

    if verbose:
        print(f"[trial] starting: seed={sim_config.seed}, target={target_completed}, max_time={max_time}s")

    sim = StoreSimulation()
    sim.start(layout, decision_provider, sim_config)

    start = time.time()
    try:
        sim.run(max_time=max_time, target_completed=target_completed, dt=dt)
        summary = sim.get_metrics_summary()
        density = sim.get_density_matrix()
        shopping_times = list(sim.shopping_times)
    finally:
        sim.stop()
    elapsed = time.time() - start

    if verbose:
        print(f"[trial] seed={sim_config.seed} finished at t={summary['time']:.1f}s; "
              f"completed={summary['completed_customers']}/{summary['total_customers']}")

    return {
        "seed": sim_config.seed,
        "density": density,
        "shopping_times": shopping_times,
        "sim_time": summary["time"],
        "ticks": summary["ticks"],
        "total_customers": summary["total_customers"],
        "completed_customers": summary["completed_customers"],
        "completed_fraction": summary["completion_rate"],
        "mean_congestion": summary["mean_congestion"],
        "mean_bottlenecks": summary["mean_bottlenecks"],
        "elapsed_sec": elapsed,
    }


# columns of trial_summary.csv, in order
SUMMARY_FIELDS = (
    "trial", "seed", "sim_time", "total_customers", "completed_customers", "completed_fraction",
    "avg_shopping_time", "mean_congestion", "mean_bottlenecks", "elapsed_sec", "sum_visits",
)


def _trial_row(index: int, trial: Dict) -> Dict:
    times = trial["shopping_times"]
    row = {key: trial.get(key) for key in SUMMARY_FIELDS}
    row["trial"] = index
    row["avg_shopping_time"] = float(np.mean(times)) if times else 0.0
    row["sum_visits"] = int(trial["density"].sum())
    return row


def aggregate_trials(trial_results: List[dict]) -> dict:
    """
    Combine trials into mean/std density matrices, the pooled shopping times
    and one summary row per trial (keys: SUMMARY_FIELDS).
    """
    if not trial_results:
        raise ValueError("No trial results to aggregate")

    shapes = sorted({tr["density"].shape for tr in trial_results})
    if len(shapes) > 1:
        raise ValueError(f"Trials disagree on the congestion grid shape: {shapes}")
    stack = np.array([tr["density"] for tr in trial_results], dtype=float)

    return {
        "avg_density": stack.mean(axis=0),
        "std_density": stack.std(axis=0),
        "aggregated_shopping_times": list(chain.from_iterable(tr["shopping_times"] for tr in trial_results)),
        "per_trial_summary": [_trial_row(i, tr) for i, tr in enumerate(trial_results)],
    }


def find_topk_bottleneck_cells(avg_density: np.ndarray, k: int = 10) -> List[Tuple[int, int, float]]:
    """(row, col, value) of the k busiest non-empty cells, busiest first."""
    rows, cols = np.nonzero(avg_density > 0)
    values = avg_density[rows, cols]
    # ties keep row-major order
    order = np.lexsort((cols, rows, -values))[:k]
    return [(int(rows[i]), int(cols[i]), float(values[i])) for i in order]


def save_aggregated_results(out_dir: str, aggregated: dict, trial_results: List[dict]) -> List[Path]:
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)

    matrices = {"avg_density.npy": aggregated["avg_density"], "std_density.npy": aggregated["std_density"]}
    matrices.update({f"trial_{i}_density.npy": tr["density"] for i, tr in enumerate(trial_results)})
    written = []
    for name, matrix in matrices.items():
        np.save(out / name, matrix)
        written.append(out / name)

    csv_path = out / "trial_summary.csv"
    with open(csv_path, "w", newline="") as fh:
        writer = csv.writer(fh)
        writer.writerow(SUMMARY_FIELDS)
        writer.writerows([row[key] for key in SUMMARY_FIELDS] for row in aggregated["per_trial_summary"])
    written.append(csv_path)
    return written


def plot_avg_heatmap_on_axes(ax, avg_density: np.ndarray, cell_size: float, alpha=0.6, cmap="Reds"):
    """
    Draw the density heatmap in world coordinates: cell (r, c) covers
    [c * cell_size, (c + 1) * cell_size] x [r * cell_size, (r + 1) * cell_size].
    """
    h, w = avg_density.shape
    extent = (0, w * cell_size, h * cell_size, 0)  # y grows downwards, like the floor plan
    return ax.imshow(avg_density, extent=extent, interpolation="nearest", cmap=cmap, alpha=alpha)


def _format_report(layout: Layout, seeds: List[int], aggregated: dict, top_cells) -> str:
    times = aggregated["aggregated_shopping_times"]
    lines = [
        f"Layout: {layout.name or '-'}",
        f"Trials: {len(seeds)} (seeds {seeds[0]}..{seeds[-1]})",
        f"Customers completed: {len(times)}",
        f"Mean shopping time: {np.mean(times):.1f}s" if times else "Mean shopping time: -",
        f"Busiest cells (row, col, avg customer-ticks): {len(top_cells)}",
    ]
    lines += [f"  ({r}, {c}) -> {v:.2f}" for r, c, v in top_cells]
    return "\n".join(lines)


def _save_bottleneck_heatmap(out_path: Path, avg_density: np.ndarray, cell: float, top_cells):
    fig, ax = plt.subplots(figsize=(8, 6))
    ax.set_title("Mean occupancy across trials")
    im = plot_avg_heatmap_on_axes(ax, avg_density, cell)
    if top_cells:
        xs = [(c + 0.5) * cell for _, c, _ in top_cells]
        ys = [(r + 0.5) * cell for r, _, _ in top_cells]
        ax.scatter(xs, ys, s=80, facecolors="none", edgecolors="cyan", linewidths=1.6, zorder=5)
        for rank, (x, y) in enumerate(zip(xs, ys), start=1):
            ax.annotate(f"B{rank}", (x, y), xytext=(4, 4), textcoords="offset points", fontsize=9, zorder=6)
    fig.colorbar(im, ax=ax, fraction=0.046, pad=0.04, label="Avg customer-ticks")
    fig.tight_layout()
    fig.savefig(out_path, dpi=150)
    plt.close(fig)


def run_multiple_trials(layout: Layout,
                        trials: int = 5,
                        workers: int = 1,
                        base_seed: Optional[int] = None,
                        sim_config: Optional[SimulationConfig] = None,
                        decision_provider: Optional[DecisionProvider] = None,
                        target_completed: Optional[int] = None,
                        max_time: Optional[float] = None,
                        dt: Optional[float] = None,
                        out_dir: Optional[str] = "experiments/output",
                        top_k_bottlenecks: int = 10,
                        verbose: bool = True):
    """
    Run `trials` independent runs on the same `layout` (seeds base_seed,
    base_seed + 1, ...) over `workers` processes and aggregate them.

    Returns {"trial_results", "aggregated", "top_cells", "out_dir", "report"}.
    When out_dir is given the matrices, trial_summary.csv, report.txt and
    avg_heatmap_bottlenecks.png are saved there.
    """
    sim_config = sim_config or SimulationConfig()
    if base_seed is None:
        base_seed = config.SEED if sim_config.seed is None else sim_config.seed
    seeds = [base_seed + t for t in range(trials)]

    runner = partial(_trial_for_seed, layout,
                     sim_config=sim_config, decision_provider=decision_provider,
                     target_completed=target_completed, max_time=max_time, dt=dt, verbose=verbose)

    if workers > 1:
        pool = mp.Pool(processes=workers)
        try:
            all_results = pool.map(runner, seeds)
        finally:
            pool.close()
            pool.join()
    else:
        all_results = [runner(seed) for seed in seeds]

    aggregated = aggregate_trials(all_results)
    top_cells = find_topk_bottleneck_cells(aggregated["avg_density"], k=top_k_bottlenecks)
    report = _format_report(layout, seeds, aggregated, top_cells)
    if verbose:
        print(report)

    if out_dir:
        out = Path(out_dir)
        written = save_aggregated_results(out_dir, aggregated, all_results)
        (out / "report.txt").write_text(report)
        _save_bottleneck_heatmap(out / "avg_heatmap_bottlenecks.png", aggregated["avg_density"],
                                 sim_config.cell_size, top_cells)
        if verbose:
            for path in written + [out / "report.txt", out / "avg_heatmap_bottlenecks.png"]:
                print(f"[saved] {path}")

    return {
        "trial_results": all_results,
        "aggregated": aggregated,
        "top_cells": top_cells,
        "out_dir": out_dir,
        "report": report,
    }


def _trial_for_seed(layout: Layout, seed: int, **kwargs) -> Dict:
    return run_single_trial(layout, seed=seed, **kwargs)
