"""
Argos track ingestion.

Reads an Argos Doppler tracking export (CSV), keeps the columns the
movement model needs and projects fixes into the analysis CRS.
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Union

import geopandas as gpd
import numpy as np
import pandas as pd

from ..errors import TrackDataError

logger = logging.getLogger(__name__)

# Internal column names. Error-ellipse axes are metres, orientation is
# degrees clockwise from north.
REQUIRED_COLUMNS = ["timestamp", "longitude", "latitude", "smaj", "smin", "eor"]

# Movebank Argos export names
DEFAULT_COLUMN_MAP: Dict[str, str] = {
    "timestamp": "timestamp",
    "longitude": "location-long",
    "latitude": "location-lat",
    "smaj": "argos:semi-major",
    "smin": "argos:semi-minor",
    "eor": "argos:orientation",
    "quality": "argos:lc",
    "individual": "individual-local-identifier",
}


def as_time_index(times) -> pd.Index:
    """
    Fix timestamps as a pandas Index.

    Numeric times (seconds) and datetimes are kept as they are; anything
    else, such as timestamp strings, is parsed to a UTC DatetimeIndex.
    """
    index = pd.Index(times)
    if isinstance(index, pd.DatetimeIndex) or pd.api.types.is_numeric_dtype(index.dtype):
        return index
    return pd.DatetimeIndex(pd.to_datetime(index, utc=True))


def clean_fixes(df: pd.DataFrame) -> pd.DataFrame:
    """
    Drop fixes the movement model cannot use.

    Removes rows with missing coordinates or error ellipses, rows whose
    ellipse axes are not strictly positive, then sorts by time and keeps the
    first fix of any duplicated timestamp.

    Args:
        df: DataFrame with the internal column names

    Returns:
        Cleaned copy with a fresh RangeIndex
    """
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise TrackDataError(f"Track is missing required columns: {missing}")

    out = df.copy()
    n_start = len(out)

    out = out.dropna(subset=REQUIRED_COLUMNS)
    n_missing = n_start - len(out)

    bad_axes = (out["smaj"] <= 0) | (out["smin"] <= 0)
    out = out[~bad_axes]

    out = out.sort_values("timestamp", kind="mergesort")
    duplicated = out["timestamp"].duplicated(keep="first")
    out = out[~duplicated].reset_index(drop=True)

    logger.info(
        f"Cleaned track: {n_start} fixes -> {len(out)} "
        f"(missing={n_missing}, zero-axis={int(bad_axes.sum())}, "
        f"duplicate times={int(duplicated.sum())})"
    )

    if out.empty:
        raise TrackDataError("No usable fixes left after cleaning")

    return out


def project_fixes(df: pd.DataFrame, crs: str) -> gpd.GeoDataFrame:
    """Attach WGS84 point geometry and reproject to ``crs``, adding x/y columns"""
    gdf = gpd.GeoDataFrame(
        df.copy(),
        geometry=gpd.points_from_xy(df["longitude"], df["latitude"]),
        crs="EPSG:4326",
    )
    gdf = gdf.to_crs(crs)
    gdf["x"] = gdf.geometry.x
    gdf["y"] = gdf.geometry.y
    return gdf


def load_argos_track(
    path: Union[str, Path],
    crs: str,
    column_map: Optional[Dict[str, str]] = None,
    individual: Optional[str] = None,
) -> gpd.GeoDataFrame:
    """
    Load one animal's Argos track.

    Args:
        path: CSV file
        crs: Projected CRS for the analysis (axes in metres)
        column_map: Internal column name -> CSV column name. Defaults to
                    Movebank Argos export names.
        individual: Individual identifier to keep. If None and the file
                    holds several individuals, the first one is used.

    Returns:
        GeoDataFrame of cleaned, time-ordered fixes with x/y columns in ``crs``
    """
    path = Path(path)
    if not path.exists():
        raise TrackDataError(f"Track file not found: {path}")

    mapping = dict(DEFAULT_COLUMN_MAP)
    if column_map:
        mapping.update(column_map)

    raw = pd.read_csv(path)
    logger.info(f"Loaded {len(raw):,} rows from {path}")

    rename = {src: dst for dst, src in mapping.items() if src in raw.columns}
    df = raw.rename(columns=rename)

    if "individual" in df.columns:
        ids = df["individual"].dropna().unique()
        if individual is None and len(ids) > 1:
            individual = ids[0]
            logger.warning(f"Track holds {len(ids)} individuals, using {individual}")
        if individual is not None:
            df = df[df["individual"].astype(str) == str(individual)].copy()

    if "timestamp" in df.columns:
        df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    if "quality" not in df.columns:
        df["quality"] = np.nan

    df = clean_fixes(df)
    return project_fixes(df, crs)
