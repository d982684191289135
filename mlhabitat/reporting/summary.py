"""
Habitat-use frequency tables for the three classification methods.
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Union

import pandas as pd

from ..habitat.categories import CATEGORY_ORDER
from ..habitat.sampling import HabitatAssignment

logger = logging.getLogger(__name__)

METHOD_RAW = "raw"
METHOD_PREDICTED = "predicted"
METHOD_MOST_LIKELY = "most_likely"


def habitat_frequencies(labels: Sequence[Optional[str]],
                        category_order: Sequence[str] = CATEGORY_ORDER) -> pd.Series:
    """
    Proportion of fixes in each category.

    Labels outside ``category_order`` (including None from degenerate votes)
    are left out of the denominator.
    """
    counts = pd.Series(list(labels), dtype=object).value_counts()
    counts = counts.reindex(list(category_order), fill_value=0)
    total = counts.sum()
    if total == 0:
        return counts.astype(float)
    return counts / total


def compare_methods(labels_by_method: Mapping[str, Sequence[Optional[str]]],
                    category_order: Sequence[str] = CATEGORY_ORDER) -> pd.DataFrame:
    """Categories x methods table of habitat-use proportions"""
    table = pd.DataFrame({
        method: habitat_frequencies(labels, category_order)
        for method, labels in labels_by_method.items()
    })
    table.index.name = "habitat"
    return table


def assignments_to_frame(assignments: List[HabitatAssignment],
                         category_order: Sequence[str] = CATEGORY_ORDER) -> pd.DataFrame:
    """One row per fix: majority category, vote count, warning and per-category frequency"""
    rows = []
    for a in assignments:
        row = {
            "fix_index": a.fix_index,
            "timestamp": a.timestamp,
            "majority": a.majority,
            "votes": a.votes,
            "warning": a.warning,
        }
        for category in category_order:
            row[f"freq_{category}"] = a.distribution.get(category) if a.distribution else None
        rows.append(row)
    return pd.DataFrame(rows)


def fix_labels_frame(fixes: pd.DataFrame, labels_by_method: Mapping[str, Sequence]) -> pd.DataFrame:
    """Per-fix labels from every method alongside the fix's time and coordinates"""
    cols = [c for c in ["timestamp", "longitude", "latitude", "quality", "x", "y"] if c in fixes.columns]
    out = pd.DataFrame(fixes[cols]).reset_index(drop=True)
    for method, labels in labels_by_method.items():
        out[method] = list(labels)
    return out


def write_outputs(output_dir: Union[str, Path],
                  comparison: pd.DataFrame,
                  assignments: pd.DataFrame,
                  fix_labels: pd.DataFrame,
                  model_summary: Optional[Dict] = None) -> Dict[str, Path]:
    """
    Write the case-study tables.

    Returns:
        {name: path} for every file written
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    paths = {
        "comparison": output_dir / "habitat_comparison.csv",
        "assignments": output_dir / "most_likely_habitat.csv",
        "fix_labels": output_dir / "fix_labels.csv",
    }
    comparison.to_csv(paths["comparison"])
    assignments.to_csv(paths["assignments"], index=False)
    fix_labels.to_csv(paths["fix_labels"], index=False)

    if model_summary is not None:
        paths["model_summary"] = output_dir / "model_summary.json"
        with open(paths["model_summary"], "w") as f:
            json.dump(model_summary, f, indent=2, default=str)

    for name, path in paths.items():
        logger.info(f"  ✓ Wrote {name}: {path}")
    return paths
