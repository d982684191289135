"""
Habitat change polygon layer.

This module loads the labelled habitat polygons used by the overlay and
maps the layer's raw category values onto the fixed habitat categories.
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Union

import geopandas as gpd
from shapely.geometry.base import BaseGeometry

from ..errors import HabitatLayerError
from ..habitat.categories import HABITAT_CATEGORIES

logger = logging.getLogger(__name__)


def load_habitat_polygons(
    path: Union[str, Path],
    category_column: str = "habitat",
    crs: Optional[str] = None,
    category_map: Optional[Dict[str, str]] = None,
) -> gpd.GeoDataFrame:
    """
    Load habitat polygons from a shapefile, GeoPackage or any format
    geopandas can read.

    Args:
        path: Vector file path
        category_column: Column holding each polygon's habitat category
        crs: Target CRS. If None, the layer's own CRS is kept.
        category_map: Optional raw value -> category translation

    Returns:
        GeoDataFrame with ``habitat`` and ``geometry`` columns. Polygons whose
        category is not one of HABITAT_CATEGORIES are dropped.
    """
    path = Path(path)
    if not path.exists():
        raise HabitatLayerError(f"Habitat layer not found: {path}")

    gdf = gpd.read_file(path)
    logger.info(f"Loaded {len(gdf):,} habitat polygons from {path}")

    if category_column not in gdf.columns:
        raise HabitatLayerError(
            f"Column '{category_column}' not in habitat layer "
            f"(available: {list(gdf.columns)})"
        )

    categories = gdf[category_column].astype(str).str.strip()
    if category_map:
        categories = categories.map(lambda v: category_map.get(v, v))

    known = categories.isin(HABITAT_CATEGORIES)
    if not known.all():
        dropped = sorted(categories[~known].unique())
        logger.warning(f"Dropping {int((~known).sum())} polygons with unknown categories: {dropped}")

    out = gpd.GeoDataFrame(
        {"habitat": categories[known].values},
        geometry=gdf.geometry[known].values,
        crs=gdf.crs,
    )

    if out.empty:
        raise HabitatLayerError("Habitat layer has no polygons with a known category")

    if crs is not None:
        if out.crs is None:
            logger.warning("Habitat layer has no CRS defined. Assuming WGS84.")
            out = out.set_crs("EPSG:4326")
        if out.crs != crs:
            logger.info(f"Transforming habitat layer from {out.crs} to {crs}")
            out = out.to_crs(crs)

    return out


def study_area_buffer(polygons: gpd.GeoDataFrame, distance: float) -> BaseGeometry:
    """
    Tolerance buffer around the whole habitat layer.

    Args:
        polygons: Habitat polygons
        distance: Buffer distance in CRS units

    Returns:
        Single geometry: the union of all polygons grown by ``distance``
    """
    if distance < 0:
        raise ValueError(f"Buffer distance must be non-negative, got {distance}")
    return polygons.geometry.union_all().buffer(distance)
