# simulation.py

import random
from collections import defaultdict
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple

import numpy as np

import config
import geometry
from agent import (
    CHECKOUT,
    EXITED,
    EXITING,
    TARGET_CHECKOUT,
    TARGET_EXIT,
    TARGET_PRODUCT,
    AgentView,
    Customer,
    generate_shopping_list,
)
from congestion import Bottleneck, CongestionTracker
from decision import (
    CHECKOUT as DECIDE_CHECKOUT,
    EXIT as DECIDE_EXIT,
    PRODUCT as DECIDE_PRODUCT,
    Decision,
    DecisionDispatcher,
    DecisionProvider,
    VisibleSection,
)
from maps.layout import Layout, validate_layout

Vec = Tuple[float, float]


def _from_config(name: str):
    return lambda: getattr(config, name)


@dataclass
class SimulationConfig:
    """
    Per-run knobs. Defaults are read from config.py when the object is
    created, so module overrides made beforehand are honoured.
    """
    spawn_interval: float = field(default_factory=_from_config("SPAWN_INTERVAL"))
    max_customers: int = field(default_factory=_from_config("MAX_CUSTOMERS"))
    shopping_list_min: int = field(default_factory=_from_config("SHOPPING_LIST_MIN"))
    shopping_list_max: int = field(default_factory=_from_config("SHOPPING_LIST_MAX"))
    speed_min: float = field(default_factory=_from_config("CUSTOMER_SPEED_MIN"))
    speed_max: float = field(default_factory=_from_config("CUSTOMER_SPEED_MAX"))
    vision_range: float = field(default_factory=_from_config("VISION_RANGE"))
    decision_interval: float = field(default_factory=_from_config("DECISION_INTERVAL"))
    crowd_radius: float = field(default_factory=_from_config("CROWD_RADIUS"))
    product_wait: float = field(default_factory=_from_config("PRODUCT_WAIT"))
    checkout_wait: float = field(default_factory=_from_config("CHECKOUT_WAIT"))
    stationary_radius: float = field(default_factory=_from_config("STATIONARY_RADIUS"))
    arrival_radius: float = field(default_factory=_from_config("ARRIVAL_RADIUS"))
    avoidance_radius: float = field(default_factory=_from_config("AVOIDANCE_RADIUS"))
    avoidance_slowdown: float = field(default_factory=_from_config("AVOIDANCE_SLOWDOWN"))
    avoidance_jitter: float = field(default_factory=_from_config("AVOIDANCE_JITTER"))
    cell_size: float = field(default_factory=_from_config("CONGESTION_CELL_SIZE"))
    bottleneck_threshold: int = field(default_factory=_from_config("BOTTLENECK_THRESHOLD"))
    world_width: float = field(default_factory=_from_config("WORLD_WIDTH"))
    world_height: float = field(default_factory=_from_config("WORLD_HEIGHT"))
    decision_timeout: float = field(default_factory=_from_config("DECISION_TIMEOUT"))
    seed: Optional[int] = field(default_factory=_from_config("SEED"))

    def with_overrides(self, **overrides) -> "SimulationConfig":
        return replace(self, **overrides)


@dataclass(frozen=True)
class MetricsReport:
    total_customers: int
    completed_customers: int
    current_customers: int
    avg_congestion: float
    bottleneck_count: int
    avg_shopping_time: float
    congestion_map: Dict[str, int]
    bottlenecks: Tuple[Bottleneck, ...] = ()

    def to_dict(self) -> Dict:
        return {
            "totalCustomers": self.total_customers,
            "completedCustomers": self.completed_customers,
            "avgCongestion": self.avg_congestion,
            "bottleneckCount": self.bottleneck_count,
            "avgShoppingTime": self.avg_shopping_time,
            "congestionMap": dict(self.congestion_map),
        }


@dataclass(frozen=True)
class SimulationSnapshot:
    time: float
    tick: int
    is_running: bool
    agents: Tuple[AgentView, ...]
    metrics: MetricsReport


class SimulationMetrics:
    """Counters owned by one simulation run."""

    def __init__(self, tracker: CongestionTracker):
        self.total_customers = 0
        self.completed_customers = 0
        self.avg_shopping_time = 0.0
        self.congestion = tracker

    def record_completion(self, shopping_time: float):
        self.completed_customers += 1
        # running mean, no re-summing over all completed customers
        self.avg_shopping_time += (shopping_time - self.avg_shopping_time) / self.completed_customers

    def report(self, current_customers: int) -> MetricsReport:
        return MetricsReport(
            total_customers=self.total_customers,
            completed_customers=self.completed_customers,
            current_customers=current_customers,
            avg_congestion=self.congestion.average_congestion,
            bottleneck_count=self.congestion.bottleneck_count,
            avg_shopping_time=self.avg_shopping_time,
            congestion_map=self.congestion.as_key_map(),
            bottlenecks=tuple(self.congestion.bottlenecks),
        )


class StoreSimulation:
    """
    Moves customers through one store layout, one tick at a time.

    Every run owns its customers, metrics and random stream, so separate
    StoreSimulation objects can run side by side (threads or processes)
    without sharing anything but the decision cache.
    """

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.layout: Optional[Layout] = None
        self.sim_config = SimulationConfig()
        self.rng = random.Random(self.sim_config.seed)
        self.dispatcher: Optional[DecisionDispatcher] = None

        self.is_running = False
        self.speed_multiplier = 1.0
        self._reset_state()

    def _reset_state(self):
        self.agents: List[Customer] = []
        self.time = 0.0
        self.tick = 0
        self.last_spawn_time = 0.0
        self._next_id = 0

        self.metrics = SimulationMetrics(
            CongestionTracker(self.sim_config.cell_size, self.sim_config.bottleneck_threshold)
        )

        # run history
        self.shopping_times: List[float] = []
        self.congestion_per_step: List[float] = []
        self.bottlenecks_per_step: List[int] = []
        self.max_density_per_step: List[int] = []
        self.cell_visit_counts: Dict[Tuple[int, int], int] = defaultdict(int)

    # ---------- lifecycle ----------
    def start(
        self,
        layout: Layout,
        decision_provider: Optional[DecisionProvider] = None,
        sim_config: Optional[SimulationConfig] = None,
        validate: bool = True,
    ):
        """
        Reset everything and begin a run on `layout`.
        Raises LayoutValidationError before any state changes when the layout
        cannot be simulated.
        """
        if validate:
            validate_layout(layout)

        if self.dispatcher is not None:
            self.dispatcher.close()

        self.layout = layout
        self.sim_config = sim_config or SimulationConfig()
        self.rng = random.Random(self.sim_config.seed)
        self.dispatcher = DecisionDispatcher(
            decision_provider, timeout=self.sim_config.decision_timeout, verbose=self.verbose
        )
        self._walls = layout.wall_segments()
        self._labels = list(dict.fromkeys(layout.product_labels()))
        self._reset_state()
        self.is_running = True

        if self.verbose:
            print(f"[sim] started on '{layout.name or 'layout'}' (seed={self.sim_config.seed})")

    def pause(self):
        self.is_running = False

    def resume(self):
        if self.layout is not None:
            self.is_running = True

    def stop(self):
        self.pause()
        if self.dispatcher is not None:
            self.dispatcher.close()
        self.agents = []
        self.time = 0.0
        self.metrics.congestion.clear()

    def set_speed(self, multiplier: float):
        if multiplier <= 0:
            raise ValueError("speed multiplier must be positive")
        self.speed_multiplier = float(multiplier)

    # ---------- core step ----------
    def step(self, delta_time: Optional[float] = None) -> bool:
        """
        Single sim tick: spawn check, customer updates, removal of customers
        who left, congestion rebuild. Returns False (and does nothing) while
        the simulation is not running.
        """
        if not self.is_running or self.layout is None:
            return False

        dt = (config.TICK_SECONDS if delta_time is None else delta_time) * self.speed_multiplier
        self.time += dt
        self.tick += 1

        # 1) spawning
        if (self.time - self.last_spawn_time >= self.sim_config.spawn_interval
                and len(self.agents) < self.sim_config.max_customers):
            self._spawn_customer()
            self.last_spawn_time = self.time

        # 2) customers, in creation order
        for customer in self.agents:
            self._update_customer(customer, dt)

        # 3) drop customers who left
        self.agents = [c for c in self.agents if c.status != EXITED]

        # 4) congestion
        self._rebuild_congestion()
        return True

    def run(self, max_time: Optional[float] = None, target_completed: Optional[int] = None,
            dt: Optional[float] = None) -> MetricsReport:
        """
        Step until `target_completed` customers left, `max_time` simulated
        seconds passed, or someone pauses / stops the simulation.
        """
        dt = config.TICK_SECONDS if dt is None else dt
        while self.is_running:
            if target_completed is not None and self.metrics.completed_customers >= target_completed:
                break
            if max_time is not None and self.time >= max_time:
                break
            self.step(dt)

        if self.verbose:
            m = self.metrics
            print(f"[sim] t={self.time:.1f}s  spawned={m.total_customers}  completed={m.completed_customers}")
        return self.get_metrics()

    # ---------- spawning ----------
    def _spawn_customer(self) -> Optional[Customer]:
        if not self.layout.entrances:
            return None

        entrance = self.rng.choice(self.layout.entrances)
        position = self.layout.opening_position(entrance)
        if position is None:
            return None

        cfg = self.sim_config
        shopping_list = generate_shopping_list(self._labels, self.rng, cfg.shopping_list_min, cfg.shopping_list_max)
        customer = Customer(
            agent_id=self._next_id,
            position=position,
            shopping_list=shopping_list,
            spawn_time=self.time,
            speed=self.rng.uniform(cfg.speed_min, cfg.speed_max),
            vision_range=cfg.vision_range,
        )
        self._next_id += 1
        self.agents.append(customer)
        self.metrics.total_customers += 1
        return customer

    # ---------- per-customer update ----------
    def _update_customer(self, customer: Customer, dt: float):
        if customer.wait_time > 0:
            customer.wait_time = max(0.0, customer.wait_time - dt)
            return

        # heading out: the exit is the target, nothing left to decide
        if customer.status != EXITING and (
            customer.last_decision_time is None
            or self.time - customer.last_decision_time >= self.sim_config.decision_interval
        ):
            self._make_decision(customer)
            customer.last_decision_time = self.time

        self._move_customer(customer, dt)
        self._check_target_reached(customer)

    # ---------- perception & decisions ----------
    def get_visible_sections(self, customer: Customer) -> List[VisibleSection]:
        origin = customer.get_position()
        visible = []
        for product in self.layout.products:
            if product.label in customer.browsed and product.label not in customer.remaining_items():
                continue
            center = product.centroid
            dist = geometry.distance(origin, center)
            if dist > customer.vision_range:
                continue
            if not geometry.has_line_of_sight(origin, center, self._walls):
                continue
            visible.append(VisibleSection(
                label=product.label,
                distance=dist,
                crowd_count=self.count_customers_near(center, self.sim_config.crowd_radius),
            ))
        return visible

    def count_customers_near(self, point: Vec, radius: float) -> int:
        return sum(
            1 for c in self.agents
            if c.status != EXITED and geometry.distance(c.get_position(), point) <= radius
        )

    def _make_decision(self, customer: Customer):
        visible = self.get_visible_sections(customer)
        decision = self.dispatcher.decide(visible, list(customer.shopping_list), list(customer.collected))
        customer.decisions_made += 1
        self._apply_decision(customer, decision)

    def _apply_decision(self, customer: Customer, decision: Decision):
        if decision.kind == DECIDE_PRODUCT:
            product = self.layout.find_product(decision.target)
            if product is not None:
                customer.set_target(product.centroid, TARGET_PRODUCT, product.label)
        elif decision.kind == DECIDE_CHECKOUT:
            if self.layout.checkouts:
                customer.set_target(self.layout.checkouts[0].as_tuple(), TARGET_CHECKOUT)
                customer.advance_status(CHECKOUT)
            else:
                # no till in this layout: paying is skipped
                self._head_to_exit(customer)
        elif decision.kind == DECIDE_EXIT:
            self._head_to_exit(customer)

    def nearest_exit(self, position: Vec) -> Optional[Vec]:
        exits = self.layout.exit_positions()
        if not exits:
            return None
        return min(exits, key=lambda p: geometry.distance(position, p))

    def _head_to_exit(self, customer: Customer) -> bool:
        exit_pos = self.nearest_exit(customer.get_position())
        if exit_pos is None:
            return False
        customer.set_target(exit_pos, TARGET_EXIT)
        customer.advance_status(EXITING)
        return True

    # ---------- movement ----------
    def _has_neighbor(self, customer: Customer) -> bool:
        radius = self.sim_config.avoidance_radius
        pos = customer.get_position()
        for other in self.agents:
            if other is customer or other.status == EXITED:
                continue
            if geometry.distance(pos, other.get_position()) < radius:
                return True
        return False

    def _move_customer(self, customer: Customer, dt: float):
        to_target = customer.vector_to_target()
        dist = geometry.length(to_target)
        if dist < self.sim_config.stationary_radius:
            return

        speed = customer.speed
        angle = geometry.heading(to_target)
        if self._has_neighbor(customer):
            speed *= self.sim_config.avoidance_slowdown
            angle += (self.rng.random() - 0.5) * self.sim_config.avoidance_jitter

        step_len = min(speed * dt, dist)
        moved = geometry.add(customer.get_position(), geometry.from_heading(angle, step_len))
        new_pos = geometry.clamp_point(moved, self.sim_config.world_width, self.sim_config.world_height)

        customer.distance_walked += geometry.distance(customer.get_position(), new_pos)
        customer.x, customer.y = new_pos

    # ---------- arrival ----------
    def _check_target_reached(self, customer: Customer):
        if geometry.length(customer.vector_to_target()) >= self.sim_config.arrival_radius:
            return

        if customer.target_kind == TARGET_PRODUCT and customer.target_label is not None:
            if customer.collect(customer.target_label):
                customer.wait_time = self.sim_config.product_wait
            customer.browsed.add(customer.target_label)

        elif customer.target_kind == TARGET_CHECKOUT:
            if customer.has_everything():
                customer.wait_time = self.sim_config.checkout_wait
                self._head_to_exit(customer)
            else:
                # still missing items: look around the store again
                customer.browsed.clear()

        elif customer.target_kind == TARGET_EXIT:
            customer.advance_status(EXITED)
            customer.exit_time = self.time
            shopping_time = self.time - customer.spawn_time
            self.shopping_times.append(shopping_time)
            self.metrics.record_completion(shopping_time)

    # ---------- congestion & metrics ----------
    def _rebuild_congestion(self):
        tracker = self.metrics.congestion
        grid = tracker.rebuild(c.get_position() for c in self.agents)

        for cell, count in grid.items():
            self.cell_visit_counts[cell] += count
        self.max_density_per_step.append(tracker.peak)
        if grid:
            self.congestion_per_step.append(tracker.average_congestion)
            self.bottlenecks_per_step.append(tracker.bottleneck_count)

    def get_metrics(self) -> MetricsReport:
        return self.metrics.report(current_customers=len(self.agents))

    def get_snapshot(self) -> SimulationSnapshot:
        return SimulationSnapshot(
            time=self.time,
            tick=self.tick,
            is_running=self.is_running,
            agents=tuple(c.view() for c in self.agents),
            metrics=self.get_metrics(),
        )

    def get_metrics_summary(self) -> Dict[str, float]:
        """Run-level statistics (averaged over ticks with customers inside)."""
        times = np.array(self.shopping_times) if self.shopping_times else np.array([])
        congestion = np.array(self.congestion_per_step) if self.congestion_per_step else np.array([])
        bottlenecks = np.array(self.bottlenecks_per_step) if self.bottlenecks_per_step else np.array([])
        total = self.metrics.total_customers

        return {
            "time": self.time,
            "ticks": self.tick,
            "total_customers": total,
            "completed_customers": self.metrics.completed_customers,
            "completion_rate": self.metrics.completed_customers / total if total > 0 else 0.0,
            "avg_shopping_time": self.metrics.avg_shopping_time,
            "max_shopping_time": float(times.max()) if len(times) > 0 else 0.0,
            "mean_congestion": float(congestion.mean()) if len(congestion) > 0 else 0.0,
            "mean_bottlenecks": float(bottlenecks.mean()) if len(bottlenecks) > 0 else 0.0,
            "peak_bottlenecks": int(bottlenecks.max()) if len(bottlenecks) > 0 else 0,
            "peak_density": max(self.max_density_per_step) if self.max_density_per_step else 0,
            "decision_remote_calls": self.dispatcher.remote_calls if self.dispatcher else 0,
            "decision_cache_hits": self.dispatcher.cache_hits if self.dispatcher else 0,
            "decision_fallbacks": self.dispatcher.fallbacks if self.dispatcher else 0,
        }

    def get_density_matrix(self) -> np.ndarray:
        """Cumulative customer-ticks per congestion cell (rows = y, cols = x)."""
        cell = self.metrics.congestion.cell_size
        cols = int(self.sim_config.world_width // cell) + 1
        rows = int(self.sim_config.world_height // cell) + 1
        mat = np.zeros((rows, cols))
        for (gx, gy), count in self.cell_visit_counts.items():
            if 0 <= gx < cols and 0 <= gy < rows:
                mat[gy, gx] = count
        return mat

    def summary(self):
        s = self.get_metrics_summary()
        print("\n=== Simulation Summary ===")
        print(f"Simulated time: {s['time']:.1f}s ({s['ticks']} ticks)")
        print(f"Customers: {s['completed_customers']}/{s['total_customers']} completed "
              f"({s['completion_rate'] * 100:.1f}%)")
        print(f"Average shopping time: {s['avg_shopping_time']:.1f}s (max {s['max_shopping_time']:.1f}s)")
        print(f"Mean congestion: {s['mean_congestion']:.2f} customers/cell")
        print(f"Mean bottlenecks: {s['mean_bottlenecks']:.2f} (peak {s['peak_bottlenecks']})")
        print(f"Peak cell density: {s['peak_density']}")
        if s["decision_remote_calls"] or s["decision_fallbacks"]:
            print(f"Decisions: {s['decision_remote_calls']} remote, {s['decision_cache_hits']} cached, "
                  f"{s['decision_fallbacks']} fallbacks")
