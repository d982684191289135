"""
Shared pytest fixtures for the habitat sampling tests.

Provides a small habitat layer, synthetic tracks and scripted stand-ins
for the movement model.
"""

import pytest
import numpy as np
import pandas as pd
import geopandas as gpd
from shapely.geometry import box

from mlhabitat.data.synthetic import make_habitat_grid, simulate_argos_track


# ============================================================================
# Habitat Fixtures
# ============================================================================

CRS = "EPSG:32633"
X0, Y0 = 500000.0, 5000000.0
CELL = 1000.0


@pytest.fixture
def habitat_polygons():
    """Three adjacent 1 km cells: high_change | intermediate | low_change."""
    cells = [
        box(X0, Y0, X0 + CELL, Y0 + CELL),
        box(X0 + CELL, Y0, X0 + 2 * CELL, Y0 + CELL),
        box(X0 + 2 * CELL, Y0, X0 + 3 * CELL, Y0 + CELL),
    ]
    return gpd.GeoDataFrame(
        {"habitat": ["high_change", "intermediate", "low_change"]},
        geometry=cells,
        crs=CRS,
    )


@pytest.fixture
def probe_points():
    """One point per expected label, in (x, y)."""
    return np.array([
        [X0 + 500, Y0 + 500],    # high_change
        [X0 + 1500, Y0 + 500],   # intermediate
        [X0 + 2500, Y0 + 500],   # low_change
        [X0 + 500, Y0 + 1200],   # 200 m north of the layer: unassigned
        [X0 + 500, Y0 + 9000],   # far outside: none
    ])


@pytest.fixture
def grid_polygons():
    """Random 10x10 habitat grid with gaps."""
    return make_habitat_grid(n_cells=10, cell_size=5000.0, seed=3)


# ============================================================================
# Track Fixtures
# ============================================================================

@pytest.fixture
def raw_track():
    """Synthetic Argos export (Movebank column names)."""
    return simulate_argos_track(n_fixes=60, seed=11)


@pytest.fixture
def track_csv(tmp_path, raw_track):
    """Synthetic Argos export written to disk."""
    path = tmp_path / "argos_track.csv"
    raw_track.to_csv(path, index=False)
    return path


@pytest.fixture
def fix_table():
    """Minimal fix table with five hourly fixes."""
    times = pd.date_range("2023-06-01", periods=5, freq="1h", tz="UTC")
    return pd.DataFrame({
        "timestamp": times,
        "x": X0 + np.arange(5) * 100.0,
        "y": Y0 + np.arange(5) * 100.0,
    })


# ============================================================================
# Movement Model Stand-ins
# ============================================================================

class ScriptedModel:
    """Returns pre-scripted draws in order; each draw is one repetition."""

    def __init__(self, times, draws):
        self.times = pd.Index(times)
        self._draws = list(draws)
        self.calls = 0

    def simulate(self, times, rng=None):
        draw = self._draws[self.calls]
        self.calls += 1
        return list(draw)


class RandomLabelModel:
    """Draws labels from ``rng`` so results depend only on the seed stream."""

    def __init__(self, times, labels=("high_change", "intermediate", "low_change", "unassigned")):
        self.times = pd.Index(times)
        self.labels = list(labels)

    def simulate(self, times, rng=None):
        picks = rng.integers(len(self.labels), size=len(times))
        return [self.labels[k] for k in picks]


def identity_overlay(points):
    """Overlay for stand-in models whose 'locations' already are labels."""
    return list(points)


@pytest.fixture
def scripted_model_factory():
    return ScriptedModel


@pytest.fixture
def random_label_model_factory():
    return RandomLabelModel
