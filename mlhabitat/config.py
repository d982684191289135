"""
Configuration loading for the case study.

Settings live in ``config.yaml`` at the repository root. Anything the file
leaves out falls back to ``DEFAULT_CONFIG``.
"""

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    "projection": {
        "crs": "EPSG:32633",
    },
    "track": {
        "path": "data/argos_track.csv",
        "individual": None,
        "columns": {
            "timestamp": "timestamp",
            "longitude": "location-long",
            "latitude": "location-lat",
            "smaj": "argos:semi-major",
            "smin": "argos:semi-minor",
            "eor": "argos:orientation",
            "quality": "argos:lc",
            "individual": "individual-local-identifier",
        },
    },
    "habitat": {
        "path": "data/habitat_change.gpkg",
        "category_column": "habitat",
        "category_map": {},
        "buffer_distance": 5000.0,
    },
    "model": {
        "error_scale": 1.0,
        "estimate_error_scale": False,
        "initial_params": {"sigma": 0.01, "beta": 1e-4},
        "max_iter": 500,
    },
    "sampling": {
        "repetitions": 100,
        "seed": None,
        "workers": 1,
    },
    "output": {
        "dir": "output",
        "plots": True,
    },
}


def _deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge ``override`` into a copy of ``base``"""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Load the case-study configuration.

    Args:
        path: YAML file to read. If None, uses config.yaml at the repository
              root when it exists.

    Returns:
        Configuration dictionary with defaults filled in
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH

    if not config_path.exists():
        if path is not None:
            raise FileNotFoundError(f"Config file not found: {config_path}")
        logger.info("No config.yaml found, using defaults")
        return copy.deepcopy(DEFAULT_CONFIG)

    with open(config_path) as f:
        loaded = yaml.safe_load(f) or {}

    if not isinstance(loaded, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping")

    logger.info(f"Loaded configuration from {config_path}")
    return _deep_merge(DEFAULT_CONFIG, loaded)
