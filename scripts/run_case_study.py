#!/usr/bin/env python3
"""
Run the most-likely-habitat case study.

Compares habitat use derived from:
1. raw Argos fixes
2. the CTCRW model's smoothed (most likely) locations
3. the most likely habitat: majority vote over posterior simulations

Usage:
    python scripts/run_case_study.py
    python scripts/run_case_study.py --track data/argos_track.csv --habitat data/habitat_change.gpkg
    python scripts/run_case_study.py --repetitions 500 --workers 4 --seed 1
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, Optional

import pandas as pd

sys.path.insert(0, str(Path(__file__).parent.parent))

from mlhabitat.config import load_config  # noqa: E402
from mlhabitat.data.habitat_layers import load_habitat_polygons  # noqa: E402
from mlhabitat.data.tracks import load_argos_track  # noqa: E402
from mlhabitat.habitat import sampling  # noqa: E402
from mlhabitat.habitat.overlay import make_overlay_fn  # noqa: E402
from mlhabitat.movement.ctcrw import fit_ctcrw  # noqa: E402
from mlhabitat.reporting import plots, summary  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def run_case_study(config: Dict, output_dir: Optional[Path] = None,
                   make_plots: bool = True, progress: bool = True) -> Dict:
    """
    Run all three classification methods and write the outputs.

    Args:
        config: Configuration from ``load_config`` (with CLI overrides applied)
        output_dir: Overrides ``config["output"]["dir"]``
        make_plots: Render the two figures
        progress: Show a progress bar for the simulations

    Returns:
        Dictionary with the comparison table, assignments, labels and the
        paths written
    """
    crs = config["projection"]["crs"]
    track_cfg = config["track"]
    habitat_cfg = config["habitat"]
    model_cfg = config["model"]
    sampling_cfg = config["sampling"]
    output_dir = Path(output_dir or config["output"]["dir"])

    logger.info("=" * 60)
    logger.info("MOST LIKELY HABITAT CASE STUDY")
    logger.info("=" * 60)

    polygons = load_habitat_polygons(
        habitat_cfg["path"],
        category_column=habitat_cfg["category_column"],
        crs=crs,
        category_map=habitat_cfg.get("category_map"),
    )
    fixes = load_argos_track(
        track_cfg["path"], crs,
        column_map=track_cfg.get("columns"),
        individual=track_cfg.get("individual"),
    )
    overlay_fn = make_overlay_fn(polygons, habitat_cfg["buffer_distance"])

    model = fit_ctcrw(
        fixes,
        error_scale=model_cfg["error_scale"],
        estimate_error_scale=model_cfg["estimate_error_scale"],
        initial_params=model_cfg.get("initial_params"),
        max_iter=model_cfg["max_iter"],
    )

    logger.info("Method 1: raw fixes")
    raw_labels = sampling.classify_raw(fixes, overlay_fn)

    logger.info("Method 2: most likely location")
    predicted = model.predict()
    predicted_labels = sampling.classify_single_point(predicted, overlay_fn)

    logger.info("Method 3: most likely habitat")
    assignments = sampling.run(
        model, fixes, overlay_fn,
        repetitions=sampling_cfg["repetitions"],
        seed=sampling_cfg.get("seed"),
        workers=sampling_cfg.get("workers", 1),
        progress=progress,
    )
    most_likely_labels = [a.majority for a in assignments]

    labels_by_method = {
        summary.METHOD_RAW: raw_labels,
        summary.METHOD_PREDICTED: predicted_labels,
        summary.METHOD_MOST_LIKELY: most_likely_labels,
    }
    comparison = summary.compare_methods(labels_by_method)
    logger.info("Habitat-use proportions:\n" + comparison.round(3).to_string())

    degenerate = sum(1 for a in assignments if a.warning)
    if degenerate:
        logger.warning(f"{degenerate} fixes had no counted votes")

    model_summary = model.summary()
    model_summary["repetitions"] = sampling_cfg["repetitions"]
    model_summary["seed"] = sampling_cfg.get("seed")

    paths = summary.write_outputs(
        output_dir,
        comparison=comparison,
        assignments=summary.assignments_to_frame(assignments),
        fix_labels=summary.fix_labels_frame(fixes, labels_by_method),
        model_summary=model_summary,
    )

    if make_plots:
        # Hourly track for the map, bounded by the first and last fix
        hourly = pd.date_range(fixes["timestamp"].iloc[0], fixes["timestamp"].iloc[-1], freq="1h")
        track = model.predict_track(hourly)
        paths["track_map"] = output_dir / "track_map.png"
        plots.plot_track_map(polygons, fixes, track, output_path=paths["track_map"])
        paths["method_comparison"] = output_dir / "method_comparison.png"
        plots.plot_method_comparison(comparison, output_path=paths["method_comparison"])

    logger.info("=" * 60)
    logger.info(f"Case study complete! Outputs in {output_dir}")
    logger.info("=" * 60)

    return {
        "comparison": comparison,
        "assignments": assignments,
        "labels": labels_by_method,
        "model": model,
        "paths": paths,
    }


def main():
    parser = argparse.ArgumentParser(description="Run the most-likely-habitat case study")
    parser.add_argument("--config", type=Path, default=None,
                        help="YAML config (default: config.yaml at the repository root)")
    parser.add_argument("--track", type=Path, help="Argos track CSV")
    parser.add_argument("--habitat", type=Path, help="Habitat polygon layer")
    parser.add_argument("--output-dir", type=Path, help="Output directory")
    parser.add_argument("--repetitions", type=int, help="Posterior simulations (default: 100)")
    parser.add_argument("--seed", type=int, help="Random seed")
    parser.add_argument("--workers", type=int, help="Threads used for simulations")
    parser.add_argument("--no-plots", action="store_true", help="Skip the figures")
    args = parser.parse_args()

    config = load_config(args.config)
    if args.track:
        config["track"]["path"] = str(args.track)
    if args.habitat:
        config["habitat"]["path"] = str(args.habitat)
    if args.output_dir:
        config["output"]["dir"] = str(args.output_dir)
    if args.repetitions is not None:
        config["sampling"]["repetitions"] = args.repetitions
    if args.seed is not None:
        config["sampling"]["seed"] = args.seed
    if args.workers is not None:
        config["sampling"]["workers"] = args.workers

    make_plots = config["output"].get("plots", True) and not args.no_plots
    run_case_study(config, make_plots=make_plots)
    return 0


if __name__ == "__main__":
    sys.exit(main())
