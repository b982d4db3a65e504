# congestion.py

import math
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np

import config

Cell = Tuple[int, int]


@dataclass(frozen=True)
class Bottleneck:
    """A congestion cell at or above the bottleneck threshold."""
    cell: Cell
    x: float  # cell centre, world coordinates
    y: float
    intensity: int


class CongestionTracker:
    """
    Occupancy grid over the store floor.

    The grid is rebuilt from scratch on every tick (no incremental updates),
    so it only ever describes the current positions. Cells that hold nobody
    are absent from the mapping.
    """

    def __init__(self, cell_size: Optional[float] = None, bottleneck_threshold: Optional[int] = None):
        self.cell_size = float(cell_size if cell_size is not None else config.CONGESTION_CELL_SIZE)
        self.bottleneck_threshold = int(
            bottleneck_threshold if bottleneck_threshold is not None else config.BOTTLENECK_THRESHOLD
        )
        self.grid: Dict[Cell, int] = {}
        self.bottlenecks: List[Bottleneck] = []
        self.average_congestion: float = 0.0

    def cell_of(self, x: float, y: float) -> Cell:
        return (int(math.floor(x / self.cell_size)), int(math.floor(y / self.cell_size)))

    def cell_center(self, cell: Cell) -> Tuple[float, float]:
        gx, gy = cell
        return (gx * self.cell_size + self.cell_size / 2.0, gy * self.cell_size + self.cell_size / 2.0)

    def rebuild(self, positions: Iterable[Tuple[float, float]]) -> Dict[Cell, int]:
        grid: Dict[Cell, int] = defaultdict(int)
        for x, y in positions:
            grid[self.cell_of(x, y)] += 1
        self.grid = dict(grid)

        self.bottlenecks = []
        for cell, count in sorted(self.grid.items()):
            if count >= self.bottleneck_threshold:
                cx, cy = self.cell_center(cell)
                self.bottlenecks.append(Bottleneck(cell=cell, x=cx, y=cy, intensity=count))

        counts = list(self.grid.values())
        self.average_congestion = float(sum(counts)) / len(counts) if counts else 0.0
        return self.grid

    def clear(self):
        self.grid = {}
        self.bottlenecks = []
        self.average_congestion = 0.0

    @property
    def bottleneck_count(self) -> int:
        return len(self.bottlenecks)

    @property
    def total(self) -> int:
        return sum(self.grid.values())

    @property
    def peak(self) -> int:
        return max(self.grid.values()) if self.grid else 0

    def as_key_map(self) -> Dict[str, int]:
        """Grid keyed by "gx,gy" strings, as reported in the metrics shape."""
        return {f"{gx},{gy}": count for (gx, gy), count in sorted(self.grid.items())}

    def to_matrix(self, width: float, height: float) -> np.ndarray:
        """
        Dense (rows = y cells, cols = x cells) array covering [0, width] x [0, height].
        Cells outside that area are dropped.
        """
        cols = int(width // self.cell_size) + 1
        rows = int(height // self.cell_size) + 1
        mat = np.zeros((rows, cols))
        for (gx, gy), count in self.grid.items():
            if 0 <= gx < cols and 0 <= gy < rows:
                mat[gy, gx] = count
        return mat
