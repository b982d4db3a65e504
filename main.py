# main.py
"""
Run orchestration for the store sim. Supports:
 - single run of <scenario> (metrics JSON, bottleneck CSV, optional plots)
 - batch of trials of <scenario> over a process pool (aggregated heatmaps)
 - layout optimization (best layout JSON, fitness history CSV)
 - layout validation

The command line lives in tools/cli.py; `python main.py ...` forwards to it.
"""

import csv
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import config
from decision import make_decision_provider
from experiments_runner import run_multiple_trials
from maps.layout import layout_problems
from maps.layout_loader import load_layout, save_layout
from optimizer import GeneticOptimizer, OptimizerConfig, fitness_table
from scenarios import load_and_apply_scenario
from simulation import StoreSimulation


def _save_metrics_and_csv(sim: StoreSimulation, out_dir: Path, tag: str, top_k: int = 10) -> Dict[str, Path]:
    """
    Save the run metrics (JSON) and the busiest congestion cells (CSV) with
    their world coordinates.
    """
    out_dir.mkdir(parents=True, exist_ok=True)

    data = {
        "metrics": sim.get_metrics().to_dict(),
        "summary": sim.get_metrics_summary(),
        "layout": sim.layout.name if sim.layout is not None else None,
        "seed": sim.sim_config.seed,
    }
    json_path = out_dir / f"{tag}_metrics.json"
    json_path.write_text(json.dumps(data, indent=2))

    tracker = sim.metrics.congestion
    ranked = sorted(sim.cell_visit_counts.items(), key=lambda kv: (-kv[1], kv[0]))[:top_k]

    csv_path = out_dir / f"{tag}_bottlenecks.csv"
    with open(csv_path, "w", newline="") as fh:
        writer = csv.writer(fh)
        writer.writerow(["rank", "gx", "gy", "x", "y", "customer_ticks"])
        for i, ((gx, gy), count) in enumerate(ranked, start=1):
            x, y = tracker.cell_center((gx, gy))
            writer.writerow([i, gx, gy, f"{x:.1f}", f"{y:.1f}", count])

    print(f"[saved] {json_path}")
    print(f"[saved] {csv_path}")
    return {"metrics": json_path, "bottlenecks": csv_path}


def _run_single_trial(
    scenario_name: str,
    layout_path: Optional[str],
    max_time: Optional[float],
    target_completed: Optional[int],
    trial_index: int,
    out_dir: Path = Path("."),
    provider_name: Optional[str] = None,
    seed: Optional[int] = None,
    plots: bool = False,
    verbose: bool = False,
) -> Dict[str, Any]:
    print(f"[trial {trial_index}] building store for scenario '{scenario_name}'")

    layout, sim_config = load_and_apply_scenario(scenario_name, layout_path)
    base_seed = sim_config.seed if seed is None else seed
    if base_seed is not None:
        sim_config = sim_config.with_overrides(seed=base_seed + trial_index - 1)

    sim = StoreSimulation(verbose=verbose)
    sim.start(layout, make_decision_provider(provider_name), sim_config)
    try:
        sim.run(max_time=config.MAX_SIM_TIME if max_time is None else max_time,
                target_completed=target_completed)

        tag = f"{scenario_name}_trial{trial_index}"
        _save_metrics_and_csv(sim, out_dir, tag)
        if plots:
            from analysis import plot_congestion_heatmap, plot_shopping_time_histogram
            plot_congestion_heatmap(sim, out_path=str(out_dir / f"{tag}_heatmap.png"))
            plot_shopping_time_histogram(sim.shopping_times, out_path=str(out_dir / f"{tag}_shopping_times.png"))

        summary = sim.get_metrics_summary()
    finally:
        sim.stop()

    return {
        "scenario": scenario_name,
        "trial": trial_index,
        "seed": sim_config.seed,
        "sim_time": summary["time"],
        "total_customers": summary["total_customers"],
        "completed_customers": summary["completed_customers"],
        "avg_shopping_time": summary["avg_shopping_time"],
        "mean_congestion": summary["mean_congestion"],
        "peak_density": summary["peak_density"],
    }


def run_single(
    scenario_name: str,
    layout_path: Optional[str] = None,
    max_time: Optional[float] = None,
    target_completed: Optional[int] = None,
    out_dir: str = "out_run",
    provider_name: Optional[str] = None,
    seed: Optional[int] = None,
    plots: bool = False,
    verbose: bool = False,
) -> Dict[str, Any]:
    res = _run_single_trial(
        scenario_name, layout_path, max_time, target_completed,
        trial_index=1, out_dir=Path(out_dir), provider_name=provider_name,
        seed=seed, plots=plots, verbose=verbose,
    )
    print("Run complete:", res)
    return res


def run_batch(
    scenario_name: str,
    trials: int = 5,
    workers: int = 2,
    layout_path: Optional[str] = None,
    max_time: Optional[float] = None,
    target_completed: Optional[int] = None,
    out_dir: str = "out_batch",
    provider_name: Optional[str] = None,
    seed: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Repeated trials of one scenario; see experiments_runner.run_multiple_trials."""
    layout, sim_config = load_and_apply_scenario(scenario_name, layout_path)
    print(f"[batch] {trials} trial(s) of '{scenario_name}' on {max(1, workers)} worker(s)")

    result = run_multiple_trials(
        layout,
        trials=trials,
        workers=workers,
        base_seed=seed,
        sim_config=sim_config,
        decision_provider=make_decision_provider(provider_name),
        target_completed=target_completed,
        max_time=max_time,
        out_dir=out_dir,
        verbose=False,
    )

    print(result["report"])
    print("Batch finished. Summary written to", Path(out_dir) / "trial_summary.csv")
    return result["aggregated"]["per_trial_summary"]


def run_optimization(
    layout_path: Optional[str] = None,
    generations: Optional[int] = None,
    population: Optional[int] = None,
    workers: Optional[int] = None,
    scenario_name: str = "normal",
    out_dir: str = "out_optimize",
    provider_name: Optional[str] = None,
    seed: Optional[int] = None,
    plots: bool = False,
    verbose: bool = True,
):
    layout, sim_config = load_and_apply_scenario(scenario_name, layout_path)

    overrides = {"population_size": population, "workers": workers, "seed": seed}
    opt_config = OptimizerConfig()
    for key, value in overrides.items():
        if value is not None:
            setattr(opt_config, key, value)

    optimizer = GeneticOptimizer(
        layout,
        opt_config=opt_config,
        sim_config=sim_config,
        decision_provider=make_decision_provider(provider_name),
        verbose=verbose,
    )
    result = optimizer.optimize(generations)

    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)

    history_csv = out / "fitness_history.csv"
    with open(history_csv, "w", newline="") as fh:
        writer = csv.writer(fh)
        writer.writerow(["generation", "best_fitness", "avg_fitness"])
        for gen, best, avg in fitness_table(result.history):
            writer.writerow([gen, f"{best:.3f}", f"{avg:.3f}"])
    print(f"[saved] {history_csv}")

    if result.best_layout is not None:
        best_path = save_layout(result.best_layout, out / "best_layout.json")
        print(f"[saved] {best_path}")

    if plots and result.history:
        from analysis import plot_fitness_history
        plot_fitness_history(result.history, out_path=str(out / "fitness_history.png"))

    print(f"Optimization finished: {result.generations_run} generations, "
          f"best fitness {result.best_fitness:.2f} (improvement {result.improvement:+.2f})"
          + (" [stopped]" if result.stopped else ""))
    return result


def validate_layout_file(path: str) -> List[str]:
    """Problems that would stop `path` from being simulated (empty = valid)."""
    return layout_problems(load_layout(path))


if __name__ == "__main__":
    from tools.cli import cli
    cli()
