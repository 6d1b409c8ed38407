"""Summary statistics for trial timings.

Percentiles use linear interpolation between the two order statistics
bracketing position ``(n - 1) * q`` of the sorted samples (Hyndman &
Fan type 7, the default of ``numpy.percentile`` and R's ``quantile``).
Nearest-rank is not used anywhere; with the small trial counts of
uncached cases the two rules give noticeably different p90 values.

References:
    Hyndman, R. J. & Fan, Y. (1996). "Sample quantiles in statistical
        packages." The American Statistician 50(4): 361-365.
"""

from __future__ import annotations

import math
import statistics
from dataclasses import dataclass
from typing import Sequence


@dataclass
class Summary:
    """Summary of a case's successful trial durations (milliseconds).

    All statistics are None when there were no successful trials.
    """

    n: int
    p50: float | None = None
    p90: float | None = None
    mean: float | None = None
    min: float | None = None
    max: float | None = None

    @property
    def empty(self) -> bool:
        return self.n == 0

    def to_dict(self) -> dict[str, float | int | None]:
        """Serialize with values rounded to microseconds."""
        return {
            "n": self.n,
            "p50": _round(self.p50),
            "p90": _round(self.p90),
            "mean": _round(self.mean),
            "min": _round(self.min),
            "max": _round(self.max),
        }


def _round(value: float | None) -> float | None:
    return None if value is None else round(value, 3)


def summarize(samples: Sequence[float]) -> Summary:
    """Compute p50, p90, mean, min and max of *samples*.

    Never raises for an empty sequence; every statistic is None instead.
    """
    if not samples:
        return Summary(n=0)

    sorted_v = sorted(float(s) for s in samples)
    mean = statistics.fmean(sorted_v)
    # fmean can land a rounding error outside [min, max] for
    # near-identical samples.
    mean = min(max(mean, sorted_v[0]), sorted_v[-1])
    return Summary(
        n=len(sorted_v),
        p50=percentile(sorted_v, 0.5),
        p90=percentile(sorted_v, 0.9),
        mean=mean,
        min=sorted_v[0],
        max=sorted_v[-1],
    )


def percentile(sorted_values: Sequence[float], q: float) -> float:
    """Return the *q*-quantile (0 <= q <= 1) of ascending *sorted_values*.

    Linear interpolation at position ``(n - 1) * q``: for samples
    ``[100, 200, 300, 400]`` the p90 position is 2.7, which gives
    ``300 + 0.7 * (400 - 300) = 370``.

    Raises:
        ValueError: If *sorted_values* is empty or *q* is out of range.
    """
    if not 0.0 <= q <= 1.0:
        raise ValueError(f"Quantile must be within [0, 1], got {q}")
    n = len(sorted_values)
    if n == 0:
        raise ValueError("Cannot take a percentile of no samples")
    if n == 1:
        return float(sorted_values[0])

    k = (n - 1) * q
    f = math.floor(k)
    c = math.ceil(k)
    if f == c:
        return float(sorted_values[int(k)])
    lo = float(sorted_values[f])
    hi = float(sorted_values[c])
    value = lo + (hi - lo) * (k - f)
    return min(max(value, lo), hi)
