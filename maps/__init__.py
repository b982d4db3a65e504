# maps/__init__.py

from .layout import (
    Checkout,
    Layout,
    LayoutValidationError,
    Opening,
    Point,
    ProductSection,
    Wall,
    validate_layout,
)
from .layout_loader import load_layout, load_layout_from_config, save_layout

__all__ = [
    "Checkout",
    "Layout",
    "LayoutValidationError",
    "Opening",
    "Point",
    "ProductSection",
    "Wall",
    "validate_layout",
    "load_layout",
    "load_layout_from_config",
    "save_layout",
]
