# maps/layout.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

import geometry

ENTRANCE = "entrance"
EXIT = "exit"
DEFAULT_OPENING_LENGTH = 40.0


class LayoutValidationError(ValueError):
    """
    Raised when a layout cannot be simulated.

    `problems` lists every issue found, so an editor can show them all at once.
    """

    def __init__(self, problems: List[str]):
        self.problems = list(problems)
        super().__init__("Invalid layout: " + "; ".join(self.problems))


@dataclass(frozen=True)
class Point:
    x: float
    y: float

    def as_tuple(self) -> Tuple[float, float]:
        return (self.x, self.y)


@dataclass(frozen=True)
class Wall:
    start: Point
    end: Point

    @property
    def length(self) -> float:
        return geometry.distance(self.start.as_tuple(), self.end.as_tuple())

    def as_segment(self) -> Tuple[Tuple[float, float], Tuple[float, float]]:
        return (self.start.as_tuple(), self.end.as_tuple())


@dataclass(frozen=True)
class Opening:
    """
    An entrance or exit: a sub-span [offset, offset + length] of one wall.

    wall_index is Optional on purpose: None means "not attached to a wall yet"
    and is reported by validation. Index 0 is an ordinary first wall.
    """

    role: str
    wall_index: Optional[int]
    offset: float = 0.0
    length: float = DEFAULT_OPENING_LENGTH


@dataclass(frozen=True)
class ProductSection:
    x: float
    y: float
    width: float
    height: float
    label: str

    @property
    def centroid(self) -> Tuple[float, float]:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)


@dataclass(frozen=True)
class Checkout:
    x: float
    y: float

    def as_tuple(self) -> Tuple[float, float]:
        return (self.x, self.y)


@dataclass(frozen=True)
class Layout:
    """
    Store floor plan.

    Fields:
    --------
    walls : tuple of Wall
        Ordered; openings refer to walls by index.

    entrances / exits : tuple of Opening
        Spans along a wall. Customers spawn at an entrance midpoint and leave
        through the nearest exit midpoint.

    products : tuple of ProductSection
        Rectangles; the label is what shopping lists contain. Labels need not
        be unique, but duplicates make shopping lists ambiguous.

    checkouts : tuple of Checkout
        Points. Customers pay at the first one.

    Layouts are immutable; variants are built with `dataclasses.replace`.
    """

    walls: Tuple[Wall, ...] = ()
    entrances: Tuple[Opening, ...] = ()
    exits: Tuple[Opening, ...] = ()
    products: Tuple[ProductSection, ...] = ()
    checkouts: Tuple[Checkout, ...] = ()
    name: str = field(default="", compare=False)

    # ---------- queries ----------
    def wall_segments(self) -> List[Tuple[Tuple[float, float], Tuple[float, float]]]:
        return [w.as_segment() for w in self.walls]

    def product_labels(self) -> List[str]:
        return [p.label for p in self.products]

    def find_product(self, label: str) -> Optional[ProductSection]:
        for p in self.products:
            if p.label == label:
                return p
        return None

    def opening_position(self, opening: Opening) -> Optional[Tuple[float, float]]:
        """
        Midpoint of an opening in world coordinates, or None when the opening
        is not attached to an existing wall.
        """
        if opening.wall_index is None:
            return None
        if not 0 <= opening.wall_index < len(self.walls):
            return None
        wall = self.walls[opening.wall_index]
        center_offset = opening.offset + opening.length / 2.0
        return geometry.point_along(wall.start.as_tuple(), wall.end.as_tuple(), center_offset)

    def entrance_positions(self) -> List[Tuple[float, float]]:
        return [p for p in (self.opening_position(o) for o in self.entrances) if p is not None]

    def exit_positions(self) -> List[Tuple[float, float]]:
        return [p for p in (self.opening_position(o) for o in self.exits) if p is not None]

    def bounds(self) -> Tuple[float, float, float, float]:
        """(min_x, max_x, min_y, max_y) over walls, products and checkouts."""
        xs: List[float] = []
        ys: List[float] = []
        for w in self.walls:
            xs += [w.start.x, w.end.x]
            ys += [w.start.y, w.end.y]
        for p in self.products:
            xs += [p.x, p.x + p.width]
            ys += [p.y, p.y + p.height]
        for c in self.checkouts:
            xs.append(c.x)
            ys.append(c.y)
        if not xs:
            return (0.0, 0.0, 0.0, 0.0)
        return (min(xs), max(xs), min(ys), max(ys))

    # ---------- variants ----------
    def with_products(self, products) -> "Layout":
        return replace(self, products=tuple(products))

    def with_checkouts(self, checkouts) -> "Layout":
        return replace(self, checkouts=tuple(checkouts))

    # ---------- exchange shape ----------
    def to_dict(self) -> Dict[str, Any]:
        def opening(o: Opening) -> Dict[str, Any]:
            return {"wallIndex": o.wall_index, "offset": o.offset, "length": o.length}

        data: Dict[str, Any] = {
            "walls": [
                {"start": {"x": w.start.x, "y": w.start.y}, "end": {"x": w.end.x, "y": w.end.y}}
                for w in self.walls
            ],
            "entrances": [opening(o) for o in self.entrances],
            "exits": [opening(o) for o in self.exits],
            "products": [
                {"x": p.x, "y": p.y, "width": p.width, "height": p.height, "label": p.label}
                for p in self.products
            ],
            "checkouts": [{"x": c.x, "y": c.y} for c in self.checkouts],
        }
        if self.name:
            data["name"] = self.name
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Layout":
        def opening(role: str, raw: Dict[str, Any]) -> Opening:
            wall_index = raw.get("wallIndex")
            return Opening(
                role=role,
                wall_index=None if wall_index is None else int(wall_index),
                offset=float(raw.get("offset", 0.0)),
                length=float(raw.get("length") or DEFAULT_OPENING_LENGTH),
            )

        try:
            walls = tuple(
                Wall(
                    Point(float(w["start"]["x"]), float(w["start"]["y"])),
                    Point(float(w["end"]["x"]), float(w["end"]["y"])),
                )
                for w in data.get("walls", [])
            )
            products = tuple(
                ProductSection(
                    float(p["x"]), float(p["y"]), float(p["width"]), float(p["height"]), str(p["label"])
                )
                for p in data.get("products", [])
            )
            checkouts = tuple(Checkout(float(c["x"]), float(c["y"])) for c in data.get("checkouts", []))
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed layout data: missing or invalid field {e}") from e

        return cls(
            walls=walls,
            entrances=tuple(opening(ENTRANCE, o) for o in data.get("entrances", [])),
            exits=tuple(opening(EXIT, o) for o in data.get("exits", [])),
            products=products,
            checkouts=checkouts,
            name=str(data.get("name", "")),
        )


def layout_problems(layout: Layout) -> List[str]:
    """All reasons why `layout` cannot be simulated (empty list when valid)."""
    problems: List[str] = []

    if not layout.entrances:
        problems.append("layout has no entrance")
    if not layout.exits:
        problems.append("layout has no exit")
    if not layout.products:
        problems.append("layout has no product section")

    for i, wall in enumerate(layout.walls):
        if wall.length <= geometry.EPS:
            problems.append(f"wall {i} has zero length")

    for role, openings in ((ENTRANCE, layout.entrances), (EXIT, layout.exits)):
        for i, o in enumerate(openings):
            if o.wall_index is None:
                problems.append(f"{role} {i} is not attached to a wall")
                continue
            if not 0 <= o.wall_index < len(layout.walls):
                problems.append(f"{role} {i} references missing wall {o.wall_index}")
                continue
            if o.offset < 0 or o.length <= 0:
                problems.append(f"{role} {i} has a negative offset or non-positive length")
            elif o.offset + o.length > layout.walls[o.wall_index].length + 1e-6:
                problems.append(f"{role} {i} extends past the end of wall {o.wall_index}")

    for i, p in enumerate(layout.products):
        if p.width <= 0 or p.height <= 0:
            problems.append(f"product section {i} ({p.label!r}) has a non-positive size")

    return problems


def validate_layout(layout: Layout) -> Layout:
    """Raise LayoutValidationError unless `layout` can be simulated."""
    problems = layout_problems(layout)
    if problems:
        raise LayoutValidationError(problems)
    return layout
