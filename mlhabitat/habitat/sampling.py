"""
Most-likely-habitat sampling.

Classifies the habitat of each Argos fix by repeatedly drawing the fix's
true location from the movement model's posterior, overlaying each draw on
the habitat layer and taking a per-fix majority vote. Two single-overlay
baselines (raw fixes, smoothed predictions) are provided for comparison.

Votes are kept in an explicit per-fix tally. Tallies from separate batches
of repetitions merge by addition, so repetitions can run in any order or
in parallel without changing the result.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from tqdm import tqdm

from ..data.tracks import as_time_index
from ..errors import InvalidInputError, ModelMismatchError
from .categories import CATEGORY_ORDER

logger = logging.getLogger(__name__)

DEFAULT_REPETITIONS = 100

DEGENERATE_VOTE = "degenerate_vote"

OverlayFn = Callable[[Any], Sequence[str]]


@dataclass(frozen=True)
class HabitatAssignment:
    """Final habitat classification of one fix"""
    fix_index: int
    timestamp: Any
    majority: Optional[str]  # None when the fix has no counted votes
    distribution: Optional[Dict[str, float]]  # category -> frequency, sums to 1
    votes: int  # counted votes
    warning: Optional[str] = None  # DEGENERATE_VOTE or None


class HabitatTally:
    """
    Vote counts for every fix across simulation repetitions.

    Rows are fixes in observation order, columns follow ``category_order``.
    """

    def __init__(self, n_fixes: int, category_order: Sequence[str] = CATEGORY_ORDER):
        if len(set(category_order)) != len(category_order):
            raise InvalidInputError(f"Category order has duplicates: {list(category_order)}")
        self.category_order = tuple(category_order)
        self._column = {c: j for j, c in enumerate(self.category_order)}
        self.counts = np.zeros((n_fixes, len(self.category_order)), dtype=np.int64)
        self.repetitions = 0
        self.skipped = 0

    @property
    def n_fixes(self) -> int:
        return self.counts.shape[0]

    def record(self, labels: Sequence[str]) -> None:
        """Add one repetition's labels, one per fix"""
        labels = list(labels)
        if len(labels) != self.n_fixes:
            raise InvalidInputError(
                f"Overlay returned {len(labels)} labels for {self.n_fixes} points"
            )
        for i, label in enumerate(labels):
            j = self._column.get(label)
            if j is None:
                self.skipped += 1
                continue
            self.counts[i, j] += 1
        self.repetitions += 1

    def merge(self, other: "HabitatTally") -> "HabitatTally":
        """Combine two tallies over the same fixes and categories"""
        if other.category_order != self.category_order or other.n_fixes != self.n_fixes:
            raise InvalidInputError("Cannot merge tallies over different fixes or categories")
        merged = HabitatTally(self.n_fixes, self.category_order)
        merged.counts = self.counts + other.counts
        merged.repetitions = self.repetitions + other.repetitions
        merged.skipped = self.skipped + other.skipped
        return merged

    __add__ = merge

    def vote(self, fix_index: int) -> Dict[str, int]:
        """Counts for one fix as {category: count}"""
        return {c: int(n) for c, n in zip(self.category_order, self.counts[fix_index])}


def observation_times(observations) -> pd.Index:
    """Timestamps of a fix table (``timestamp`` column) or a plain sequence of times"""
    if isinstance(observations, pd.DataFrame):
        if "timestamp" not in observations.columns:
            raise InvalidInputError("Observations need a 'timestamp' column")
        return as_time_index(observations["timestamp"])
    return as_time_index(list(observations))


def _check_repetitions(repetitions) -> None:
    if isinstance(repetitions, bool) or not isinstance(repetitions, (int, np.integer)):
        raise InvalidInputError(f"Repetitions must be an integer, got {repetitions!r}")
    if repetitions <= 0:
        raise InvalidInputError(f"Repetitions must be positive, got {repetitions}")


def _check_model(fitted_model, times: pd.Index) -> None:
    """The model must have been fit on exactly these timestamps"""
    model_times = getattr(fitted_model, "times", None)
    if model_times is None:
        return
    model_times = as_time_index(model_times)
    if len(model_times) != len(times):
        raise ModelMismatchError(
            f"Model was fit on {len(model_times)} fixes, got {len(times)} observations"
        )
    if not model_times.equals(times):
        raise ModelMismatchError("Model timestamps do not match the observations")


def _simulate_and_label(fitted_model, times: pd.Index, overlay_fn: OverlayFn,
                        rng: np.random.Generator) -> List[str]:
    points = fitted_model.simulate(times, rng=rng)
    if len(points) != len(times):
        raise ModelMismatchError(
            f"Model simulated {len(points)} locations for {len(times)} fixes"
        )
    return list(overlay_fn(points))


def tally_repetitions(fitted_model, observations, overlay_fn: OverlayFn,
                      repetitions: int = DEFAULT_REPETITIONS,
                      category_order: Sequence[str] = CATEGORY_ORDER,
                      seed=None, workers: int = 1,
                      progress: bool = False) -> HabitatTally:
    """
    Run the simulate-and-overlay repetitions and count the votes.

    Args:
        fitted_model: Model fit on ``observations``; needs ``simulate(times, rng)``
        observations: Fix table or sequence of fix timestamps
        overlay_fn: (points) -> one label per point
        repetitions: Number of posterior draws
        category_order: Categories counted, in tie-break order
        seed: Seed for the per-repetition random streams
        workers: Thread count; 1 runs sequentially
        progress: Show a progress bar

    Returns:
        HabitatTally over all repetitions
    """
    _check_repetitions(repetitions)
    times = observation_times(observations)
    if len(times) == 0:
        raise InvalidInputError("No observations to classify")
    _check_model(fitted_model, times)

    # One independent stream per repetition keeps results independent of scheduling
    streams = np.random.SeedSequence(seed).spawn(repetitions)
    n = len(times)

    def one_repetition(stream) -> HabitatTally:
        partial = HabitatTally(n, category_order)
        rng = np.random.default_rng(stream)
        partial.record(_simulate_and_label(fitted_model, times, overlay_fn, rng))
        return partial

    tally = HabitatTally(n, category_order)

    with tqdm(total=repetitions, desc="Simulating", disable=not progress) as bar:
        if workers <= 1:
            for stream in streams:
                tally.record(_simulate_and_label(
                    fitted_model, times, overlay_fn, np.random.default_rng(stream)
                ))
                bar.update(1)
        else:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = [executor.submit(one_repetition, s) for s in streams]
                for future in as_completed(futures):
                    tally = tally.merge(future.result())
                    bar.update(1)

    if tally.skipped:
        logger.warning(f"Ignored {tally.skipped} out-of-domain overlay labels")

    return tally


def assign(tally: HabitatTally, timestamps: Optional[Sequence] = None) -> List[HabitatAssignment]:
    """
    Reduce a tally to one majority-vote assignment per fix.

    Frequencies are counts over the fix's counted votes. Ties go to the
    category that comes first in the tally's category order.
    """
    totals = tally.counts.sum(axis=1)
    if timestamps is None:
        timestamps = [None] * tally.n_fixes

    assignments = []
    for i, (counts, total, ts) in enumerate(zip(tally.counts, totals, timestamps)):
        if total == 0:
            logger.warning(f"Fix {i} has no counted votes after {tally.repetitions} repetitions")
            assignments.append(HabitatAssignment(
                fix_index=i, timestamp=ts, majority=None, distribution=None,
                votes=0, warning=DEGENERATE_VOTE,
            ))
            continue

        # argmax returns the first maximum, i.e. the earliest category in the order
        majority = tally.category_order[int(np.argmax(counts))]
        distribution = {c: float(n) / float(total) for c, n in zip(tally.category_order, counts)}
        assignments.append(HabitatAssignment(
            fix_index=i, timestamp=ts, majority=majority,
            distribution=distribution, votes=int(total),
        ))

    return assignments


def run(fitted_model, observations, overlay_fn: OverlayFn,
        repetitions: int = DEFAULT_REPETITIONS,
        category_order: Sequence[str] = CATEGORY_ORDER,
        seed=None, workers: int = 1,
        progress: bool = False) -> List[HabitatAssignment]:
    """
    Most-likely-habitat classification of every fix.

    Args:
        fitted_model: Movement model fit on ``observations``
        observations: Fix table or sequence of fix timestamps
        overlay_fn: (points) -> one label per point
        repetitions: Number of posterior draws (positive)
        category_order: Categories counted, in tie-break order
        seed: Seed for reproducible draws
        workers: Threads used for repetitions
        progress: Show a progress bar

    Returns:
        One HabitatAssignment per fix, in observation order
    """
    logger.info(f"Running {repetitions} habitat sampling repetitions")
    tally = tally_repetitions(
        fitted_model, observations, overlay_fn,
        repetitions=repetitions, category_order=category_order,
        seed=seed, workers=workers, progress=progress,
    )
    return assign(tally, timestamps=list(observation_times(observations)))


def _check_labels(labels: Sequence[str], n_points: int) -> List[str]:
    labels = list(labels)
    if len(labels) != n_points:
        raise InvalidInputError(f"Overlay returned {len(labels)} labels for {n_points} points")
    return labels


def classify_single_point(predicted_locations, overlay_fn: OverlayFn) -> List[str]:
    """Baseline: one overlay of the model's smoothed positions"""
    return _check_labels(overlay_fn(predicted_locations), len(predicted_locations))


def classify_raw(raw_observations, overlay_fn: OverlayFn) -> List[str]:
    """Baseline: one overlay of the unfiltered fix coordinates"""
    points = raw_observations
    if isinstance(raw_observations, pd.DataFrame) and {"x", "y"} <= set(raw_observations.columns):
        points = raw_observations[["x", "y"]].to_numpy(dtype=float)
    return _check_labels(overlay_fn(points), len(raw_observations))
