"""Habitat categories and overlay sentinels, in their fixed order."""

from typing import Tuple

HIGH_CHANGE = "high_change"
INTERMEDIATE = "intermediate"
LOW_CHANGE = "low_change"

# Inside the tolerance buffer but outside every polygon
UNASSIGNED = "unassigned"
# Outside the tolerance buffer
NONE = "none"

HABITAT_CATEGORIES: Tuple[str, ...] = (HIGH_CHANGE, INTERMEDIATE, LOW_CHANGE)
SENTINELS: Tuple[str, ...] = (UNASSIGNED, NONE)

# Used for majority-vote tie-breaking and for output column order
CATEGORY_ORDER: Tuple[str, ...] = HABITAT_CATEGORIES + SENTINELS
