"""
Case-study figures: track map and method comparison.
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Union

import geopandas as gpd
import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import matplotlib.patches as mpatches  # noqa: E402
import pandas as pd  # noqa: E402

from ..habitat.categories import HABITAT_CATEGORIES  # noqa: E402

logger = logging.getLogger(__name__)

HABITAT_COLORS: Dict[str, str] = {
    "high_change": "#d7301f",
    "intermediate": "#fdae61",
    "low_change": "#1a9850",
    "unassigned": "#bdbdbd",
    "none": "#636363",
}

METHOD_LABELS: Dict[str, str] = {
    "raw": "Raw Argos fixes",
    "predicted": "Most likely location",
    "most_likely": "Most likely habitat",
}


def plot_track_map(polygons: gpd.GeoDataFrame,
                   fixes: pd.DataFrame,
                   predicted: Optional[pd.DataFrame] = None,
                   output_path: Optional[Union[str, Path]] = None,
                   title: str = "Argos fixes and predicted track"):
    """
    Habitat polygons with the raw fixes and the smoothed track on top.

    Args:
        polygons: Habitat polygons (``habitat`` column)
        fixes: Fixes with projected x/y
        predicted: Optional predicted track with x/y
        output_path: PNG path; the figure is closed after saving

    Returns:
        The matplotlib Figure (None when saved to ``output_path``)
    """
    fig, ax = plt.subplots(figsize=(10, 10))

    colors = polygons["habitat"].map(HABITAT_COLORS).fillna("#ffffff")
    polygons.plot(ax=ax, color=list(colors), edgecolor="black", linewidth=0.3, alpha=0.6)

    ax.scatter(fixes["x"], fixes["y"], s=8, c="black", marker="x",
               linewidths=0.6, label="Raw fixes", zorder=3)
    if predicted is not None:
        ax.plot(predicted["x"], predicted["y"], color="#2166ac", linewidth=1.2,
                label="Predicted track", zorder=4)

    handles = [mpatches.Patch(color=HABITAT_COLORS[c], label=c.replace("_", " "), alpha=0.6)
               for c in HABITAT_CATEGORIES]
    handles.extend(ax.get_legend_handles_labels()[0])
    ax.legend(handles=handles, loc="upper right", fontsize=9)

    xmin, ymin = fixes["x"].min(), fixes["y"].min()
    xmax, ymax = fixes["x"].max(), fixes["y"].max()
    pad = 0.05 * max(xmax - xmin, ymax - ymin, 1.0)
    ax.set_xlim(xmin - pad, xmax + pad)
    ax.set_ylim(ymin - pad, ymax + pad)
    ax.set_xlabel("Easting (m)")
    ax.set_ylabel("Northing (m)")
    ax.set_title(title, fontsize=13, fontweight="bold")
    ax.set_aspect("equal")

    return _finish(fig, output_path)


def plot_method_comparison(comparison: pd.DataFrame,
                           output_path: Optional[Union[str, Path]] = None,
                           title: str = "Habitat use by classification method"):
    """
    Grouped bar chart of habitat-use proportions.

    Args:
        comparison: Categories x methods table from ``compare_methods``
        output_path: PNG path; the figure is closed after saving
    """
    fig, ax = plt.subplots(figsize=(10, 6))

    table = comparison.rename(columns=lambda m: METHOD_LABELS.get(m, m))
    table.index = [c.replace("_", " ") for c in table.index]
    table.plot(kind="bar", ax=ax, width=0.8, edgecolor="black", linewidth=0.5)

    ax.set_ylabel("Proportion of fixes")
    ax.set_xlabel("Habitat")
    ax.set_ylim(0, 1)
    ax.set_title(title, fontsize=13, fontweight="bold")
    ax.tick_params(axis="x", rotation=0)
    ax.grid(axis="y", alpha=0.3)
    ax.legend(title="Method")

    return _finish(fig, output_path)


def _finish(fig, output_path: Optional[Union[str, Path]]):
    fig.tight_layout()
    if output_path is None:
        return fig
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=300, bbox_inches="tight")
    plt.close(fig)
    logger.info(f"  ✓ Saved figure: {output_path}")
    return None
