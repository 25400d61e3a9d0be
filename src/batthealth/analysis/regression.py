"""Least-squares helpers shared by the analysis modules."""

from collections.abc import Sequence

import numpy as np


def linear_slope(x: Sequence[float], y: Sequence[float], min_variance: float = 1e-9) -> float | None:
    """Ordinary least-squares slope of ``y`` against ``x``.

    Args:
        x: Independent values
        y: Dependent values, same length as ``x``
        min_variance: Smallest variance of ``x`` treated as informative

    Returns:
        The fitted slope, or None for fewer than two points or a degenerate ``x``
    """
    if len(x) != len(y):
        raise ValueError("x and y must have the same length")
    if len(x) < 2:
        return None

    xs = np.asarray(x, dtype=float)
    ys = np.asarray(y, dtype=float)
    if float(np.var(xs)) <= min_variance:
        return None

    slope = np.polyfit(xs, ys, 1)[0]
    if not np.isfinite(slope):
        return None
    return float(slope)
