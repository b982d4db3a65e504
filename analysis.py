# analysis.py

from typing import List, Optional

import numpy as np
import matplotlib.pyplot as plt

from optimizer import ProgressEvent
from simulation import StoreSimulation


def _finish(fig, out_path: Optional[str]):
    """Save to out_path (and close) or show interactively."""
    fig.tight_layout()
    if out_path:
        fig.savefig(out_path, dpi=150)
        plt.close(fig)
        print(f"[saved] {out_path}")
    else:
        plt.show()


# =========================================================
# 1. Store KPIs
# =========================================================

def compute_store_metrics(sim: StoreSimulation, percentiles=(0.5, 0.9), top_k_bottlenecks: int = 5) -> dict:
    """
    Compute KPIs for a finished (or paused) store run.

    Returns a dict with:
        - total_customers / completed_customers / completion_rate
        - avg_shopping_time           : mean over customers who left (0 if none)
        - shopping_time_percentiles   : {p -> seconds or None}
        - peak_density                : max customers in one cell over the run
        - mean_congestion             : per-tick mean (ticks with customers inside)
        - bottlenecks                 : [((gx, gy), customer_ticks)] busiest cells
    """
    summary = sim.get_metrics_summary()

    times = np.array(sim.shopping_times, dtype=float)
    time_percentiles = {p: None for p in percentiles}
    if len(times) > 0:
        for p in percentiles:
            time_percentiles[p] = float(np.percentile(times, p * 100))

    bottlenecks = sorted(
        sim.cell_visit_counts.items(),
        key=lambda kv: kv[1],
        reverse=True,
    )[:top_k_bottlenecks]

    return {
        "total_customers": summary["total_customers"],
        "completed_customers": summary["completed_customers"],
        "completion_rate": summary["completion_rate"],
        "avg_shopping_time": summary["avg_shopping_time"],
        "shopping_time_percentiles": time_percentiles,
        "peak_density": summary["peak_density"],
        "mean_congestion": summary["mean_congestion"],
        "bottlenecks": bottlenecks,
    }


def print_metrics_report(sim: StoreSimulation):
    """Pretty-print the store KPIs to the console."""
    metrics = compute_store_metrics(sim)

    def fmt(v):
        return "N/A" if v is None else f"{v:.1f}s"

    print("\n=== Store KPIs ===")
    print(f"Customers completed    : {metrics['completed_customers']}/{metrics['total_customers']} "
          f"({metrics['completion_rate'] * 100:.2f}%)")
    print(f"Avg shopping time      : {metrics['avg_shopping_time']:.1f}s")
    for p, v in metrics["shopping_time_percentiles"].items():
        print(f"Shopping time p{int(p * 100):<3d}    : {fmt(v)}")
    print(f"Mean congestion        : {metrics['mean_congestion']:.2f} customers/cell")
    print(f"Peak cell density      : {metrics['peak_density']}")
    print("Busiest cells          :")
    for (cell, count) in metrics["bottlenecks"]:
        print(f"  Cell {cell} -> customer-ticks = {count}")
    print("==================\n")


# =========================================================
# 2. Plots
# =========================================================

def plot_congestion_heatmap(sim: StoreSimulation, out_path: Optional[str] = None, cmap: str = "Reds"):
    """
    Cumulative occupancy over the run, drawn under the store walls,
    sections and checkouts.
    """
    density = sim.get_density_matrix()
    cell = sim.metrics.congestion.cell_size
    h, w = density.shape

    fig, ax = plt.subplots(figsize=(8, 6))
    im = ax.imshow(density, extent=(0, w * cell, h * cell, 0), interpolation="nearest", cmap=cmap, alpha=0.7)

    layout = sim.layout
    if layout is not None:
        for wall in layout.walls:
            ax.plot([wall.start.x, wall.end.x], [wall.start.y, wall.end.y], color="black", linewidth=2)
        for p in layout.products:
            ax.add_patch(plt.Rectangle((p.x, p.y), p.width, p.height, fill=False, edgecolor="tab:blue"))
            cx, cy = p.centroid
            ax.text(cx, cy, p.label, ha="center", va="center", fontsize=7, color="tab:blue")
        if layout.checkouts:
            ax.scatter([c.x for c in layout.checkouts], [c.y for c in layout.checkouts],
                       marker="s", color="tab:green", label="Checkout", zorder=5)
        for pos in layout.entrance_positions():
            ax.scatter([pos[0]], [pos[1]], marker="^", color="tab:orange", zorder=5)
        for pos in layout.exit_positions():
            ax.scatter([pos[0]], [pos[1]], marker="v", color="tab:purple", zorder=5)
        xmin, xmax, ymin, ymax = layout.bounds()
        if xmax > xmin and ymax > ymin:
            ax.set_xlim(xmin - cell / 2, xmax + cell / 2)
            ax.set_ylim(ymax + cell / 2, ymin - cell / 2)

    fig.colorbar(im, ax=ax, fraction=0.046, pad=0.04, label="Customer-ticks")
    ax.set_title("Store Congestion Heatmap")
    ax.set_aspect("equal")
    _finish(fig, out_path)
    return fig


def plot_shopping_time_histogram(shopping_times: List[float], out_path: Optional[str] = None):
    """Distribution of shopping times (seconds) of customers who left."""
    fig, ax = plt.subplots(figsize=(6, 4))
    ax.hist(shopping_times, bins=10, edgecolor="black")
    ax.set_xlabel("Shopping time (s)")
    ax.set_ylabel("Number of customers")
    ax.set_title("Distribution of Shopping Time")
    _finish(fig, out_path)
    return fig


def plot_fitness_history(history: List[ProgressEvent], out_path: Optional[str] = None):
    """
    Best-so-far and mean fitness per generation. Generations where every
    evaluation failed have no finite mean and are left out of that line.
    """
    gens = np.array([e.generation for e in history])
    best = np.array([e.best_fitness for e in history], dtype=float)
    avg = np.array([e.avg_fitness for e in history], dtype=float)

    fig, ax = plt.subplots(figsize=(6, 4))
    ok = np.isfinite(best)
    ax.plot(gens[ok], best[ok], marker="o", linewidth=1.5, label="Best so far")
    ok = np.isfinite(avg)
    ax.plot(gens[ok], avg[ok], marker=".", linewidth=1, alpha=0.7, label="Generation mean")
    ax.set_xlabel("Generation")
    ax.set_ylabel("Fitness")
    ax.set_title("Layout Optimization Progress")
    ax.grid(True, alpha=0.3)
    ax.legend()
    _finish(fig, out_path)
    return fig
