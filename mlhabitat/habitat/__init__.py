"""
Habitat categories, point overlay and most-likely-habitat sampling.
"""
from .categories import (
    CATEGORY_ORDER,
    HABITAT_CATEGORIES,
    SENTINELS,
    UNASSIGNED,
    NONE,
)

__all__ = [
    "CATEGORY_ORDER",
    "HABITAT_CATEGORIES",
    "SENTINELS",
    "UNASSIGNED",
    "NONE",
]
