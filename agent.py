# agent.py

import random
from dataclasses import dataclass
from typing import List, Optional, Set, Tuple

import config

Vec = Tuple[float, float]

# Customer status, in the only order it may advance.
SHOPPING = "shopping"
CHECKOUT = "checkout"
EXITING = "exiting"
EXITED = "exited"
STATUS_ORDER = (SHOPPING, CHECKOUT, EXITING, EXITED)

# What the current target point is.
TARGET_NONE = "none"
TARGET_PRODUCT = "product"
TARGET_CHECKOUT = "checkout"
TARGET_EXIT = "exit"


def generate_shopping_list(labels: List[str], rng: random.Random,
                           min_items: Optional[int] = None, max_items: Optional[int] = None) -> List[str]:
    """
    Draw min_items..max_items labels without replacement.
    Layouts with fewer distinct sections give shorter lists.
    """
    lo = config.SHOPPING_LIST_MIN if min_items is None else min_items
    hi = config.SHOPPING_LIST_MAX if max_items is None else max_items
    count = rng.randint(lo, hi)
    return rng.sample(list(labels), min(count, len(labels)))


@dataclass(frozen=True)
class AgentView:
    """Read-only copy of a customer, as handed out by snapshots."""
    id: int
    x: float
    y: float
    target_x: float
    target_y: float
    target_kind: str
    target_label: Optional[str]
    speed: float
    shopping_list: Tuple[str, ...]
    collected: Tuple[str, ...]
    status: str
    wait_time: float
    spawn_time: float


class Customer:
    """
    A shopper moving through the store.

    Holds per-customer state only; the simulation decides when to perceive,
    decide and move, and owns the metrics.
    """

    def __init__(
        self,
        agent_id: int,
        position: Vec,
        shopping_list: List[str],
        spawn_time: float,
        speed: float,
        vision_range: Optional[float] = None,
    ):
        # identity
        self.id = agent_id

        # position / target
        self.x, self.y = float(position[0]), float(position[1])
        self.target_x, self.target_y = self.x, self.y
        self.target_kind = TARGET_NONE
        self.target_label: Optional[str] = None

        self.speed = float(speed)
        self.vision_range = float(config.VISION_RANGE if vision_range is None else vision_range)

        # shopping state
        self.shopping_list: List[str] = list(shopping_list)
        self.collected: List[str] = []
        self.status = SHOPPING
        # sections already walked to; hidden from browsing while not needed
        self.browsed: Set[str] = set()

        # timers (simulated seconds)
        self.wait_time = 0.0
        self.last_decision_time: Optional[float] = None
        self.spawn_time = float(spawn_time)
        self.exit_time: Optional[float] = None

        # --- metrics ---
        self.decisions_made = 0
        self.distance_walked = 0.0

    # ---------- status ----------
    def advance_status(self, status: str) -> bool:
        """
        Move status forward to `status`. Returns False (and changes nothing)
        when that would go back to an earlier stage.
        """
        if STATUS_ORDER.index(status) < STATUS_ORDER.index(self.status):
            return False
        self.status = status
        return True

    @property
    def is_active(self) -> bool:
        return self.status != EXITED

    # ---------- shopping list ----------
    def remaining_items(self) -> List[str]:
        return [item for item in self.shopping_list if item not in self.collected]

    def has_everything(self) -> bool:
        return all(item in self.collected for item in self.shopping_list)

    def collect(self, label: str) -> bool:
        if label in self.shopping_list and label not in self.collected:
            self.collected.append(label)
            return True
        return False

    # ---------- movement & position ----------
    def get_position(self) -> Vec:
        return self.x, self.y

    def set_target(self, position: Vec, kind: str, label: Optional[str] = None):
        self.target_x, self.target_y = float(position[0]), float(position[1])
        self.target_kind = kind
        self.target_label = label

    def vector_to_target(self) -> Vec:
        return self.target_x - self.x, self.target_y - self.y

    def view(self) -> AgentView:
        return AgentView(
            id=self.id,
            x=self.x,
            y=self.y,
            target_x=self.target_x,
            target_y=self.target_y,
            target_kind=self.target_kind,
            target_label=self.target_label,
            speed=self.speed,
            shopping_list=tuple(self.shopping_list),
            collected=tuple(self.collected),
            status=self.status,
            wait_time=self.wait_time,
            spawn_time=self.spawn_time,
        )

    def __repr__(self):
        return (f"Customer(id={self.id}, pos=({self.x:.1f}, {self.y:.1f}), status={self.status}, "
                f"collected={len(self.collected)}/{len(self.shopping_list)})")
