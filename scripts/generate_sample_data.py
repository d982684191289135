#!/usr/bin/env python3
"""
Generate a synthetic habitat layer and Argos track for the case study.

Usage:
    python scripts/generate_sample_data.py
    python scripts/generate_sample_data.py --out-dir data --fixes 300 --seed 7
"""

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from mlhabitat.data.synthetic import make_habitat_grid, simulate_argos_track  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Generate synthetic case-study data")
    parser.add_argument("--out-dir", type=Path, default=Path("data"), help="Output directory")
    parser.add_argument("--fixes", type=int, default=200, help="Number of Argos fixes")
    parser.add_argument("--cells", type=int, default=10, help="Habitat grid cells per side")
    parser.add_argument("--cell-size", type=float, default=5000.0, help="Cell edge length (m)")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    args = parser.parse_args()

    args.out_dir.mkdir(parents=True, exist_ok=True)

    habitat = make_habitat_grid(n_cells=args.cells, cell_size=args.cell_size, seed=args.seed)
    habitat_path = args.out_dir / "habitat_change.gpkg"
    habitat.to_file(habitat_path, driver="GPKG")
    logger.info(f"✓ Wrote {len(habitat)} habitat cells to {habitat_path}")

    track = simulate_argos_track(n_fixes=args.fixes, seed=args.seed)
    track_path = args.out_dir / "argos_track.csv"
    track.to_csv(track_path, index=False)
    logger.info(f"✓ Wrote {len(track)} fixes to {track_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
