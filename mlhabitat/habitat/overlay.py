"""
Point-on-polygon habitat labelling.

Each point gets the category of the habitat polygon containing it,
``unassigned`` when it misses every polygon but lies inside the tolerance
buffer around the layer, and ``none`` when it lies outside the buffer.
"""

import logging
from typing import List, Optional, Sequence, Union

import geopandas as gpd
import numpy as np
import pandas as pd
import shapely
from shapely.geometry.base import BaseGeometry

from ..data.habitat_layers import study_area_buffer
from .categories import NONE, UNASSIGNED

logger = logging.getLogger(__name__)

PointsLike = Union[np.ndarray, Sequence, gpd.GeoSeries, gpd.GeoDataFrame]


def _as_geoseries(points: PointsLike, crs) -> gpd.GeoSeries:
    """Coerce an (n, 2) coordinate array or geometry container to a GeoSeries in ``crs``"""
    if isinstance(points, gpd.GeoDataFrame):
        geoms = points.geometry
    elif isinstance(points, gpd.GeoSeries):
        geoms = points
    else:
        coords = np.asarray(points, dtype=float)
        if coords.size == 0:
            coords = coords.reshape(0, 2)
        if coords.ndim != 2 or coords.shape[1] != 2:
            raise ValueError(f"Points must be an (n, 2) coordinate array, got shape {coords.shape}")
        return gpd.GeoSeries(gpd.points_from_xy(coords[:, 0], coords[:, 1]), crs=crs)

    if geoms.crs is not None and crs is not None and geoms.crs != crs:
        geoms = geoms.to_crs(crs)
    return geoms.reset_index(drop=True)


def _join_categories(
    geoms: gpd.GeoSeries,
    polygons: gpd.GeoDataFrame,
    category_column: str,
) -> np.ndarray:
    """Category of the first polygon (by layer order) touching each point, or None"""
    pts = gpd.GeoDataFrame({"point_id": np.arange(len(geoms))}, geometry=geoms.values, crs=polygons.crs)
    right = polygons[[category_column, "geometry"]].reset_index(drop=True)

    joined = gpd.sjoin(pts, right, how="left", predicate="intersects")
    joined = joined.sort_values(["point_id", "index_right"], na_position="last")
    joined = joined.drop_duplicates("point_id", keep="first").set_index("point_id")

    cats = joined[category_column].reindex(np.arange(len(geoms)))
    return np.array([c if pd.notna(c) else None for c in cats], dtype=object)


def label_points(
    points: PointsLike,
    polygons: gpd.GeoDataFrame,
    buffer_distance: float,
    category_column: str = "habitat",
    buffer_geometry: Optional[BaseGeometry] = None,
) -> List[str]:
    """
    Label each point with the habitat category it falls in.

    Args:
        points: (n, 2) coordinates in the polygons' CRS, or a GeoSeries /
                GeoDataFrame (reprojected to the polygons' CRS if needed)
        polygons: Habitat polygons
        buffer_distance: Tolerance buffer in CRS units
        category_column: Column of ``polygons`` holding the category
        buffer_geometry: Precomputed buffer, skips the union/buffer step

    Returns:
        One label per point, in input order
    """
    geoms = _as_geoseries(points, polygons.crs)
    if len(geoms) == 0:
        return []

    labels = _join_categories(geoms, polygons, category_column)

    unmatched = np.array([label is None for label in labels])
    if unmatched.any():
        if buffer_geometry is None:
            buffer_geometry = study_area_buffer(polygons, buffer_distance)
        xs = geoms.x.to_numpy()[unmatched]
        ys = geoms.y.to_numpy()[unmatched]
        in_buffer = shapely.contains_xy(buffer_geometry, xs, ys)
        labels[unmatched] = np.where(in_buffer, UNASSIGNED, NONE)

    return [str(label) for label in labels]


class HabitatOverlay:
    """
    Reusable overlay function bound to one habitat layer.

    The buffered union of the layer is computed once, so repeated calls
    (one per simulation repetition) only pay for the spatial join.
    """

    def __init__(self, polygons: gpd.GeoDataFrame, buffer_distance: float,
                 category_column: str = "habitat"):
        self.polygons = polygons
        self.buffer_distance = buffer_distance
        self.category_column = category_column
        self.buffer_geometry = study_area_buffer(polygons, buffer_distance)
        # Build the spatial index up front; sjoin reuses it
        _ = polygons.sindex

    def __call__(self, points: PointsLike) -> List[str]:
        return label_points(
            points,
            self.polygons,
            self.buffer_distance,
            category_column=self.category_column,
            buffer_geometry=self.buffer_geometry,
        )


def make_overlay_fn(polygons: gpd.GeoDataFrame, buffer_distance: float,
                    category_column: str = "habitat") -> HabitatOverlay:
    """Build the ``(points) -> labels`` callable used by the sampling pipeline"""
    logger.info(f"Preparing overlay for {len(polygons)} polygons, buffer {buffer_distance}")
    return HabitatOverlay(polygons, buffer_distance, category_column=category_column)
