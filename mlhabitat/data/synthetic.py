"""
Synthetic habitat layer and Argos track for demos and tests.

The habitat layer is a grid of square cells with random categories and a
few empty cells, so the overlay produces every label. The track is a
correlated random walk observed at irregular times through Argos-like
error ellipses.
"""

import logging
from typing import Optional, Tuple

import geopandas as gpd
import numpy as np
import pandas as pd
from shapely.geometry import box

from ..habitat.categories import HABITAT_CATEGORIES

logger = logging.getLogger(__name__)

# UTM zone 33N, roughly 15E 45N
DEFAULT_CRS = "EPSG:32633"
DEFAULT_ORIGIN: Tuple[float, float] = (500000.0, 5000000.0)

# Typical semi-major / semi-minor axis scales (m) per Argos location class
ARGOS_ERROR_SCALES = {
    "3": (250.0, 60.0),
    "2": (500.0, 120.0),
    "1": (1500.0, 300.0),
    "0": (3000.0, 600.0),
    "A": (2500.0, 500.0),
    "B": (5000.0, 900.0),
}
ARGOS_CLASS_WEIGHTS = [0.15, 0.2, 0.2, 0.1, 0.2, 0.15]


def make_habitat_grid(n_cells: int = 10, cell_size: float = 5000.0,
                      origin: Tuple[float, float] = DEFAULT_ORIGIN,
                      gap_fraction: float = 0.1, seed: Optional[int] = None,
                      crs: str = DEFAULT_CRS) -> gpd.GeoDataFrame:
    """
    Square grid of habitat cells centred on ``origin``.

    Args:
        n_cells: Cells per side
        cell_size: Cell edge length (m)
        origin: Grid centre in ``crs``
        gap_fraction: Share of cells left out of the layer
        seed: Random seed

    Returns:
        GeoDataFrame with ``habitat`` and ``geometry`` columns
    """
    rng = np.random.default_rng(seed)
    x0 = origin[0] - n_cells * cell_size / 2.0
    y0 = origin[1] - n_cells * cell_size / 2.0

    cells, habitats = [], []
    for i in range(n_cells):
        for j in range(n_cells):
            if rng.random() < gap_fraction:
                continue
            xmin = x0 + i * cell_size
            ymin = y0 + j * cell_size
            cells.append(box(xmin, ymin, xmin + cell_size, ymin + cell_size))
            habitats.append(HABITAT_CATEGORIES[rng.integers(len(HABITAT_CATEGORIES))])

    return gpd.GeoDataFrame({"habitat": habitats}, geometry=cells, crs=crs)


def simulate_argos_track(n_fixes: int = 200, start: str = "2023-06-01T00:00:00Z",
                         mean_interval_hours: float = 3.0, speed: float = 0.4,
                         persistence: float = 0.9,
                         origin: Tuple[float, float] = DEFAULT_ORIGIN,
                         seed: Optional[int] = None,
                         crs: str = DEFAULT_CRS,
                         individual: str = "sim-01") -> pd.DataFrame:
    """
    Correlated random walk observed through Argos error ellipses.

    Args:
        n_fixes: Number of fixes
        start: First fix time
        mean_interval_hours: Mean gap between fixes (exponential)
        speed: Mean travel speed (m/s)
        persistence: Heading autocorrelation, 0-1
        origin: Start position in ``crs``
        seed: Random seed

    Returns:
        DataFrame with Movebank Argos column names (lon/lat in WGS84) plus
        the true projected positions (``true_x``, ``true_y``)
    """
    rng = np.random.default_rng(seed)

    gaps = rng.exponential(mean_interval_hours * 3600.0, size=n_fixes - 1) + 600.0
    seconds = np.concatenate([[0.0], np.cumsum(gaps)])
    timestamps = pd.Timestamp(start) + pd.to_timedelta(seconds, unit="s")

    heading = rng.uniform(0, 2 * np.pi)
    true_xy = np.zeros((n_fixes, 2))
    true_xy[0] = origin
    for k in range(1, n_fixes):
        heading = persistence * heading + (1 - persistence) * rng.uniform(0, 2 * np.pi) \
            + rng.normal(0, 0.3)
        step = speed * (seconds[k] - seconds[k - 1]) * rng.uniform(0.2, 1.0)
        true_xy[k] = true_xy[k - 1] + step * np.array([np.sin(heading), np.cos(heading)])

    classes = rng.choice(list(ARGOS_ERROR_SCALES), size=n_fixes, p=ARGOS_CLASS_WEIGHTS)
    smaj = np.array([ARGOS_ERROR_SCALES[c][0] for c in classes]) * rng.uniform(0.5, 1.5, n_fixes)
    smin = np.array([ARGOS_ERROR_SCALES[c][1] for c in classes]) * rng.uniform(0.5, 1.5, n_fixes)
    eor = rng.uniform(0, 180, n_fixes)

    # Draw errors along the ellipse axes, same scaling as the movement model
    c = np.radians(eor)
    major = rng.normal(0, smaj / np.sqrt(2.0))
    minor = rng.normal(0, smin / np.sqrt(2.0))
    obs_x = true_xy[:, 0] + major * np.sin(c) + minor * np.cos(c)
    obs_y = true_xy[:, 1] + major * np.cos(c) - minor * np.sin(c)

    lonlat = gpd.GeoSeries(gpd.points_from_xy(obs_x, obs_y), crs=crs).to_crs("EPSG:4326")

    return pd.DataFrame({
        "timestamp": timestamps.strftime("%Y-%m-%d %H:%M:%S"),
        "location-long": lonlat.x.round(6),
        "location-lat": lonlat.y.round(6),
        "argos:semi-major": smaj.round(0),
        "argos:semi-minor": smin.round(0),
        "argos:orientation": eor.round(0),
        "argos:lc": classes,
        "individual-local-identifier": individual,
        "true_x": true_xy[:, 0],
        "true_y": true_xy[:, 1],
    })
