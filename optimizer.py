# optimizer.py
"""
Genetic search over store layouts.

Walls, entrances and exits never change. A layout variant only moves
product sections around (and resizes them) and moves checkouts. Each
variant is scored by a full StoreSimulation run.
"""

import math
import multiprocessing as mp
import random
from dataclasses import dataclass, field, replace
from functools import partial
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

import config
from decision import DecisionProvider
from maps.layout import Checkout, Layout, ProductSection
from simulation import SimulationConfig, StoreSimulation

WORST_FITNESS = float("-inf")


def _from_config(name: str):
    return lambda: getattr(config, name)


@dataclass
class OptimizerConfig:
    population_size: int = field(default_factory=_from_config("POPULATION_SIZE"))
    survivor_fraction: float = field(default_factory=_from_config("SURVIVOR_FRACTION"))
    mutation_rate: float = field(default_factory=_from_config("MUTATION_RATE"))
    init_checkout_jitter: float = field(default_factory=_from_config("INIT_CHECKOUT_JITTER"))
    init_resize_prob: float = field(default_factory=_from_config("INIT_RESIZE_PROB"))
    init_resize_dw: float = field(default_factory=_from_config("INIT_RESIZE_DW"))
    init_resize_dh: float = field(default_factory=_from_config("INIT_RESIZE_DH"))
    mutation_checkout_jitter: float = field(default_factory=_from_config("MUTATION_CHECKOUT_JITTER"))
    mutation_resize_dw: float = field(default_factory=_from_config("MUTATION_RESIZE_DW"))
    mutation_resize_dh: float = field(default_factory=_from_config("MUTATION_RESIZE_DH"))
    min_section_width: float = field(default_factory=_from_config("MIN_SECTION_WIDTH"))
    min_section_height: float = field(default_factory=_from_config("MIN_SECTION_HEIGHT"))
    eval_target_completed: int = field(default_factory=_from_config("EVAL_TARGET_COMPLETED"))
    eval_max_time: float = field(default_factory=_from_config("EVAL_MAX_SIM_TIME"))
    eval_dt: float = field(default_factory=_from_config("EVAL_TICK_SECONDS"))
    workers: int = field(default_factory=_from_config("OPTIMIZER_WORKERS"))
    seed: Optional[int] = field(default_factory=_from_config("SEED"))


# ---------------------------
# Fitness
# ---------------------------
@dataclass(frozen=True)
class FitnessReport:
    """
    Score of one layout.

    Fields:
    --------
    fitness : float
        Higher is better. WORST_FITNESS when the evaluation failed.
    avg_congestion / bottleneck_count / avg_shopping_time : float
        The terms the score was computed from (congestion and bottlenecks are
        per-tick means over the run).
    completed / spawned : int
        Customer counts at the end of the evaluation run.
    sim_time : float
        Simulated seconds the evaluation ran for.
    error : str or None
        Why the evaluation failed, if it did.
    """
    fitness: float
    avg_congestion: float = 0.0
    bottleneck_count: float = 0.0
    avg_shopping_time: float = 0.0
    completed: int = 0
    spawned: int = 0
    sim_time: float = 0.0
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


def fitness_from_metrics(avg_congestion: float, bottleneck_count: float, avg_shopping_time: float) -> float:
    return (
        config.FITNESS_BASE
        - config.FITNESS_CONGESTION_WEIGHT * avg_congestion
        - config.FITNESS_BOTTLENECK_WEIGHT * bottleneck_count
        - config.FITNESS_TIME_WEIGHT * avg_shopping_time
    )


def evaluate_layout(
    layout: Layout,
    sim_config: Optional[SimulationConfig] = None,
    decision_provider: Optional[DecisionProvider] = None,
    target_completed: Optional[int] = None,
    max_time: Optional[float] = None,
    dt: Optional[float] = None,
) -> FitnessReport:
    """
    Run one full simulation on `layout` and score it.
    Raises whatever the simulation raises (e.g. LayoutValidationError).
    """
    target = config.EVAL_TARGET_COMPLETED if target_completed is None else target_completed
    limit = config.EVAL_MAX_SIM_TIME if max_time is None else max_time
    step = config.EVAL_TICK_SECONDS if dt is None else dt

    sim = StoreSimulation()
    sim.start(layout, decision_provider, sim_config)
    try:
        sim.run(max_time=limit, target_completed=target, dt=step)
        s = sim.get_metrics_summary()
    finally:
        sim.stop()

    return FitnessReport(
        fitness=fitness_from_metrics(s["mean_congestion"], s["mean_bottlenecks"], s["avg_shopping_time"]),
        avg_congestion=s["mean_congestion"],
        bottleneck_count=s["mean_bottlenecks"],
        avg_shopping_time=s["avg_shopping_time"],
        completed=s["completed_customers"],
        spawned=s["total_customers"],
        sim_time=s["time"],
    )


def _safe_evaluate(layout: Layout, **kwargs) -> FitnessReport:
    # pool workers: a failing member must not take down the generation
    try:
        return evaluate_layout(layout, **kwargs)
    except Exception as e:
        return FitnessReport(fitness=WORST_FITNESS, error=f"{type(e).__name__}: {e}")


# ---------------------------
# Progress / result
# ---------------------------
@dataclass(frozen=True)
class ProgressEvent:
    generation: int
    best_fitness: float
    best_layout: Optional[Layout]
    avg_fitness: float
    generation_best: float = WORST_FITNESS
    failed_evaluations: int = 0

    def to_dict(self) -> Dict:
        return {
            "generation": self.generation,
            "bestFitness": self.best_fitness,
            "bestLayout": self.best_layout.to_dict() if self.best_layout is not None else None,
            "avgFitness": self.avg_fitness,
        }


@dataclass
class OptimizationResult:
    best_layout: Optional[Layout]
    best_fitness: float
    generations_run: int
    original_layout: Layout
    history: List[ProgressEvent] = field(default_factory=list)
    stopped: bool = False

    @property
    def improvement(self) -> float:
        """Best fitness minus the first generation's best (0 when undefined)."""
        if not self.history:
            return 0.0
        first = self.history[0].best_fitness
        if math.isinf(first) or math.isinf(self.best_fitness):
            return 0.0
        return self.best_fitness - first


# ---------------------------
# Optimizer
# ---------------------------
class GeneticOptimizer:
    """
    Evolves variants of `original_layout`.

    optimize() keeps the all-time best (elitism), so the reported best
    fitness never decreases. stop() may be called from another thread or
    from on_progress; it takes effect at the next generation boundary and
    optimize() then returns the best found so far.
    """

    def __init__(
        self,
        original_layout: Layout,
        on_progress: Optional[Callable[[ProgressEvent], None]] = None,
        opt_config: Optional[OptimizerConfig] = None,
        sim_config: Optional[SimulationConfig] = None,
        decision_provider: Optional[DecisionProvider] = None,
        verbose: bool = False,
    ):
        self.original_layout = original_layout
        self.on_progress = on_progress
        self.opt_config = opt_config or OptimizerConfig()
        self.sim_config = sim_config or SimulationConfig()
        self.decision_provider = decision_provider
        self.verbose = verbose

        self.population_size = max(1, int(self.opt_config.population_size))
        self.rng = random.Random(self.opt_config.seed)

        self.generation = 0
        self.best_layout: Optional[Layout] = None
        self.best_fitness = WORST_FITNESS
        self.history: List[ProgressEvent] = []
        self.is_running = False

    # ---------- public API ----------
    def optimize(self, max_generations: Optional[int] = None) -> OptimizationResult:
        max_generations = config.MAX_GENERATIONS if max_generations is None else max_generations

        self.is_running = True
        self.generation = 0
        population = self.initialize_population()

        pool = mp.Pool(processes=self.opt_config.workers) if self.opt_config.workers > 1 else None
        try:
            while self.generation < max_generations and self.is_running:
                reports = self.evaluate_population(population, pool)
                ranked = sorted(zip(population, reports), key=lambda pr: pr[1].fitness, reverse=True)

                top_layout, top_report = ranked[0]
                if top_report.fitness > self.best_fitness or self.best_layout is None:
                    self.best_fitness = top_report.fitness
                    self.best_layout = top_layout

                event = self._progress_event(reports, top_report.fitness)
                self.history.append(event)
                if self.verbose:
                    print(f"[ga] gen {event.generation:3d}  best={event.best_fitness:9.2f}  "
                          f"gen_best={event.generation_best:9.2f}  avg={event.avg_fitness:9.2f}"
                          + (f"  failed={event.failed_evaluations}" if event.failed_evaluations else ""))
                if self.on_progress is not None:
                    self.on_progress(event)

                self.generation += 1
                if self.generation >= max_generations or not self.is_running:
                    break

                survivors = [layout for layout, _ in ranked[:self._survivor_count()]]
                children = self.crossover(survivors, self.population_size - len(survivors))
                children = [self.mutate(child) for child in children]
                population = survivors + children
        finally:
            if pool is not None:
                pool.close()
                pool.join()

        stopped = not self.is_running
        self.is_running = False
        return OptimizationResult(
            best_layout=self.best_layout,
            best_fitness=self.best_fitness,
            generations_run=self.generation,
            original_layout=self.original_layout,
            history=list(self.history),
            stopped=stopped,
        )

    def stop(self):
        self.is_running = False

    # ---------- population ----------
    def initialize_population(self) -> List[Layout]:
        population = [self.original_layout]
        for _ in range(self.population_size - 1):
            population.append(self.create_variation(self.original_layout))
        return population

    def create_variation(self, layout: Layout) -> Layout:
        cfg = self.opt_config

        # permute positions among sections; labels and sizes stay with the section
        positions = [(p.x, p.y) for p in layout.products]
        self.rng.shuffle(positions)
        products = [replace(p, x=x, y=y) for p, (x, y) in zip(layout.products, positions)]

        products = [
            self._resized(p, cfg.init_resize_dw, cfg.init_resize_dh)
            if self.rng.random() < cfg.init_resize_prob else p
            for p in products
        ]
        checkouts = [self._jittered(c, cfg.init_checkout_jitter) for c in layout.checkouts]
        return replace(layout, products=tuple(products), checkouts=tuple(checkouts))

    def crossover(self, parents: List[Layout], n_children: int) -> List[Layout]:
        """
        Each child copies a random parent and takes the other parent's
        product positions from a random split index on. Checkouts come from
        either parent, 50 / 50 per checkout. Layouts with a different number
        of sections / checkouts are not mixed.
        """
        children = []
        for _ in range(n_children):
            base = parents[self.rng.randrange(len(parents))]
            other = parents[self.rng.randrange(len(parents))]
            children.append(self.cross(base, other))
        return children

    def cross(self, base: Layout, other: Layout) -> Layout:
        products = list(base.products)
        if products and len(other.products) == len(products):
            split = self.rng.randrange(len(products))
            for j in range(split, len(products)):
                products[j] = replace(products[j], x=other.products[j].x, y=other.products[j].y)

        checkouts = list(base.checkouts)
        if len(other.checkouts) == len(checkouts):
            checkouts = [
                other.checkouts[i] if self.rng.random() < 0.5 else c
                for i, c in enumerate(checkouts)
            ]
        return replace(base, products=tuple(products), checkouts=tuple(checkouts))

    def mutate(self, layout: Layout) -> Layout:
        cfg = self.opt_config
        if self.rng.random() >= cfg.mutation_rate:
            return layout

        products = list(layout.products)
        checkouts = list(layout.checkouts)

        # swap two sections' positions
        if len(products) > 1:
            i, j = self.rng.sample(range(len(products)), 2)
            a, b = products[i], products[j]
            products[i] = replace(a, x=b.x, y=b.y)
            products[j] = replace(b, x=a.x, y=a.y)

        if checkouts and self.rng.random() < 0.5:
            k = self.rng.randrange(len(checkouts))
            checkouts[k] = self._jittered(checkouts[k], cfg.mutation_checkout_jitter)

        if products and self.rng.random() < 0.5:
            k = self.rng.randrange(len(products))
            products[k] = self._resized(products[k], cfg.mutation_resize_dw, cfg.mutation_resize_dh)

        return replace(layout, products=tuple(products), checkouts=tuple(checkouts))

    # ---------- evaluation ----------
    def evaluate_population(self, population: List[Layout], pool=None) -> List[FitnessReport]:
        if pool is None:
            return [self._evaluate_member(layout) for layout in population]

        runner = partial(_safe_evaluate, **self._eval_kwargs())
        return pool.map(runner, population)

    def _evaluate_member(self, layout: Layout) -> FitnessReport:
        try:
            return evaluate_layout(layout, **self._eval_kwargs())
        except Exception as e:
            if self.verbose:
                print(f"[ga] evaluation failed ({type(e).__name__}: {e}); scoring as worst")
            return FitnessReport(fitness=WORST_FITNESS, error=f"{type(e).__name__}: {e}")

    def _eval_kwargs(self) -> Dict:
        cfg = self.opt_config
        return {
            "sim_config": self.sim_config,
            "decision_provider": self.decision_provider,
            "target_completed": cfg.eval_target_completed,
            "max_time": cfg.eval_max_time,
            "dt": cfg.eval_dt,
        }

    # ---------- helpers ----------
    def _survivor_count(self) -> int:
        return max(1, int(self.population_size * self.opt_config.survivor_fraction))

    def _progress_event(self, reports: List[FitnessReport], generation_best: float) -> ProgressEvent:
        finite = [r.fitness for r in reports if not math.isinf(r.fitness)]
        avg = float(np.mean(finite)) if finite else WORST_FITNESS
        return ProgressEvent(
            generation=self.generation,
            best_fitness=self.best_fitness,
            best_layout=self.best_layout,
            avg_fitness=avg,
            generation_best=generation_best,
            failed_evaluations=sum(1 for r in reports if r.failed),
        )

    def _jittered(self, checkout: Checkout, amplitude: float) -> Checkout:
        return Checkout(
            x=checkout.x + self.rng.uniform(-amplitude, amplitude),
            y=checkout.y + self.rng.uniform(-amplitude, amplitude),
        )

    def _resized(self, product: ProductSection, dw: float, dh: float) -> ProductSection:
        cfg = self.opt_config
        return replace(
            product,
            width=max(cfg.min_section_width, product.width + self.rng.uniform(-dw, dw)),
            height=max(cfg.min_section_height, product.height + self.rng.uniform(-dh, dh)),
        )


def fitness_table(history: List[ProgressEvent]) -> List[Tuple[int, float, float]]:
    """(generation, best, avg) rows for reports and CSV output."""
    return [(e.generation, e.best_fitness, e.avg_fitness) for e in history]
