"""Fit continuous parameters to the discrete values a device can produce.

Hardware platforms only support durations that are whole multiples of a clock
step, and periods built from a fixed-size buffer repeated a whole number of
times. The functions in this module pick, from such a grid, the value that best
approximates what the user asked for.
"""
from typing import NamedTuple, Sequence, Union

from numpy import ndarray
import numpy as np

from pulse_pattern_synthesizer.errors import ConfigurationError

# Residuals closer than this are considered equal, the lowest index wins.
_TIE_TOLERANCE = 1e-9


class Fit(NamedTuple):
    """Best achievable value and the index of the candidate it was derived from."""

    value: float
    index: int


class MultipleFit(NamedTuple):
    """Best achievable value built as `candidates[index] * multiplier`."""

    value: float
    index: int
    multiplier: int


def round_half_up(values: Union[float, ndarray]) -> ndarray:
    """Round to the nearest integer, halves away from zero for positive values.

    :func:`numpy.round` rounds halves to even, which would make a duration of
    exactly 2.5 steps round down.
    """
    return np.floor(np.asarray(values, dtype=float) + 0.5)


def to_steps(value: float, step: float) -> int:
    """Convert a duration to the nearest whole number of steps."""
    if step <= 0:
        raise ConfigurationError(f"Step must be positive, got {step}.")
    return int(round_half_up(value / step))


def round_to_step(value: float, step: float) -> float:
    """Round a value to the nearest multiple of `step`."""
    return to_steps(value, step) * step


def _as_candidate_grid(candidates: Union[Sequence[float], ndarray]) -> ndarray:
    grid = np.asarray(candidates, dtype=float)
    if grid.ndim != 1 or grid.size == 0:
        raise ConfigurationError(
            "The candidate grid is empty, the platform can not produce any value "
            "for this configuration."
        )
    if not np.all(np.isfinite(grid)) or np.any(grid <= 0):
        raise ConfigurationError("Candidate values must be finite and positive.")
    if np.any(np.diff(grid) <= 0):
        raise ConfigurationError("Candidate values must be strictly increasing.")
    return grid


def _first_minimum(residuals: ndarray, tolerance: float) -> int:
    return int(np.flatnonzero(residuals <= residuals.min() + tolerance)[0])


def best_multiple(
    target: float, candidates: Union[Sequence[float], ndarray]
) -> MultipleFit:
    """Find the candidate whose integer multiple best approximates `target`.

    For every candidate the ratio `target / candidate` is rounded to the
    nearest integer (at least 1) and the candidate with the smallest rounding
    residual is selected. This fits a buffer size and a repeat count at the
    same time, so that `multiplier * candidate ~= target`.

    Args:
        target: The requested value, e.g. a period in microseconds.
        candidates: Strictly increasing achievable unit values.

    Returns:
        The achievable value, the index of the selected candidate and the
        integer multiplier.

    Raises:
        ConfigurationError: If the candidate grid is empty or malformed.
    """
    grid = _as_candidate_grid(candidates)
    if not np.isfinite(target) or target <= 0:
        raise ConfigurationError(f"Target must be finite and positive, got {target}.")

    ratios = target / grid
    multipliers = np.maximum(round_half_up(ratios), 1.0)
    residuals = np.abs(ratios - multipliers)
    index = _first_minimum(residuals, _TIE_TOLERANCE)
    multiplier = int(multipliers[index])
    return MultipleFit(float(grid[index] * multiplier), index, multiplier)


def solve(target: float, candidates: Union[Sequence[float], ndarray]) -> Fit:
    """Return the closest achievable value to `target` and its candidate index.

    See :func:`best_multiple` for the selection rule.
    """
    value, index, _ = best_multiple(target, candidates)
    return Fit(value, index)


def nearest(target: float, candidates: Union[Sequence[float], ndarray]) -> Fit:
    """Return the candidate closest to `target`, the lowest index on ties."""
    grid = np.asarray(candidates, dtype=float)
    if grid.ndim != 1 or grid.size == 0:
        raise ConfigurationError("The candidate grid is empty.")
    differences = np.abs(grid - target)
    index = _first_minimum(differences, _TIE_TOLERANCE * max(1.0, abs(target)))
    return Fit(float(grid[index]), index)
