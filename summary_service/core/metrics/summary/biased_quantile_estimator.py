# pylint: disable=line-too-long
"""
Biased quantile estimator for streaming summary metrics.

Implementation of the targeted-quantile variant of the Greenwald–Khanna summary from:
G. Cormode, F. Korn, S. Muthukrishnan and D. Srivastava. Effective computation of biased
quantiles over data streams. In ICDE, pages 20–31, 2005.

The estimator keeps a sorted list of items (v, g, Δ) whose size depends on the configured
error targets rather than on the number of observations. Instead of a single ε shared by
every rank, each configured quantile (φ, ε) contributes an error envelope that is tight
around its critical rank φn and loose far away from it, so several quantiles can be tracked
at once with little memory.

Ranks are 1-based, consistent with the GK paper.
"""

import bisect
import copy
import logging
import math
from typing import Any, Dict, Iterable, List, NamedTuple, Tuple

from summary_service.exceptions import InvariantViolationError

logger: logging.Logger = logging.getLogger(__name__)


class Quantile(NamedTuple):
    """A target quantile φ and the rank error ε accepted for it."""

    quantile: float
    error: float


class Item(NamedTuple):
    """
    One entry of the summary.

    - value: observed value represented by this entry
    - g: r_min(v_i) - r_min(v_{i-1}), at least 1
    - delta: r_max(v_i) - r_min(v_i)
    """

    value: float
    g: int
    delta: float


DEFAULT_QUANTILES: Tuple[Quantile, ...] = (
    Quantile(0.5, 0.05),
    Quantile(0.9, 0.01),
    Quantile(0.99, 0.001),
)


def validate_quantiles(quantiles: Iterable[Tuple[float, float]]) -> Tuple[Quantile, ...]:
    """
    Check and normalize a quantile configuration.

    :param quantiles: Iterable of (quantile, error) pairs
    :return: The configuration as a tuple of Quantile
    :raises ValueError: If the configuration is empty, contains a duplicated quantile,
                        a quantile outside (0, 1) or a non-positive error
    """
    if quantiles is None:
        raise ValueError("quantiles must be a non-empty sequence of (quantile, error) pairs")

    validated: List[Quantile] = []
    for entry in quantiles:
        try:
            phi, epsilon = entry
            phi, epsilon = float(phi), float(epsilon)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid quantile definition {entry!r}, expected a (quantile, error) pair") from e

        if not 0 < phi < 1:
            raise ValueError(f"quantile must be in the range (0, 1), got {phi}")
        if not (epsilon > 0 and math.isfinite(epsilon)):
            raise ValueError(f"error must be a positive number, got {epsilon}")
        if any(existing.quantile == phi for existing in validated):
            raise ValueError(f"quantile {phi} is configured more than once")

        validated.append(Quantile(phi, epsilon))

    if not validated:
        raise ValueError("quantiles must not be empty")

    return tuple(validated)


class BiasedQuantileEstimator:
    """
    Streaming estimator for a fixed set of targeted quantiles.

    Observations are folded in with insert(), which never merges entries. compress() bounds
    the memory by merging adjacent entries whose combined uncertainty stays inside the error
    envelope, and is meant to run right before reads. query() returns a value whose rank is
    within invariant(φn) of φn for every configured φ.

    Invariants, after every operation:
    - items are sorted by value
    - the g values sum up to count
    - the first and last items have Δ = 0, so the minimum and maximum are exact
    """

    def __init__(self, quantiles: Iterable[Tuple[float, float]] = DEFAULT_QUANTILES):
        """
        Create an empty estimator.

        :param quantiles: (quantile, error) pairs to track, e.g. DEFAULT_QUANTILES
        :raises ValueError: If the quantile configuration is invalid
        """
        self.quantiles: Tuple[Quantile, ...] = validate_quantiles(quantiles)
        self.count: int = 0
        self.sum: float = 0.0
        self.items: List[Item] = []

    def invariant(self, r: float) -> float:
        """
        Maximum allowed rank error at rank r, given the current count n.

        For each configured (φ, ε):
            2εr / φ             if φn ≤ r ≤ n
            2ε(n - r) / (1 - φ) otherwise
        and the smallest of these is returned.

        :param r: Rank position, 0 ≤ r ≤ n
        :return: The error envelope at r
        """
        n = float(self.count)
        bounds = []
        for phi, epsilon in self.quantiles:
            if phi * n <= r <= n:
                bounds.append(2 * epsilon * r / phi)
            else:
                bounds.append(2 * epsilon * (n - r) / (1 - phi))
        return min(bounds)

    def insert(self, value: float) -> None:
        """
        Fold one observation into the summary.

        :param value: The observed value
        :raises ValueError: If value is NaN or infinite
        """
        value = float(value)
        if not math.isfinite(value):
            raise ValueError(f"Cannot insert non-finite value {value}")

        # Items before `smaller` hold values < value, items from `pos` on hold values > value
        smaller = bisect.bisect_left(self.items, value, key=lambda item: item.value)
        pos = bisect.bisect_right(self.items, value, key=lambda item: item.value)

        if smaller == 0 or pos == len(self.items):
            # New minimum or maximum: its rank is known exactly
            delta = 0.0
        else:
            r = sum(item.g for item in self.items[:smaller])
            delta = self.invariant(r)

        self.items.insert(pos, Item(value, 1, delta))
        self.count += 1
        self.sum += value

    def compress(self) -> None:
        """
        Merge adjacent items while the merged uncertainty stays inside the error envelope.

        A pair (i1, i2) is replaced by (v2, g1 + g2, Δ2) when g1 + g2 + Δ2 < invariant(r1),
        r1 being the sum of g over the items already kept. The first item is never absorbed
        and the last item keeps its value, so both extremes stay exact. Passes are repeated
        until one of them merges nothing, which makes compress() idempotent.
        """
        while self._compress_pass():
            pass

    def _compress_pass(self) -> bool:
        """Run a single left-to-right merge pass. Returns whether anything was merged."""
        if len(self.items) <= 2:
            return False

        compressed: List[Item] = [self.items[0]]
        r1 = self.items[0].g
        current = self.items[1]
        merged = False

        for following in self.items[2:]:
            if current.g + following.g + following.delta < self.invariant(r1):
                current = Item(following.value, current.g + following.g, following.delta)
                merged = True
            else:
                compressed.append(current)
                r1 += current.g
                current = following

        compressed.append(current)
        self.items = compressed
        return merged

    def query(self, phi: float) -> float:
        """
        Query for the φ-quantile (approximate).

        Only the configured quantiles carry an error guarantee; any other φ is answered on a
        best-effort basis with the same envelope.

        :param phi: Quantile to query, must be in [0, 1]
        :return: Approximate φ-quantile value, 0.0 if nothing was observed yet
        :raises ValueError: If phi is not in [0, 1]
        :raises InvariantViolationError: If the summary no longer accounts for every observation
        """
        if not 0 <= phi <= 1:
            raise ValueError("phi must be in the range [0, 1]")

        if not self.items:
            return 0.0

        total_rank = sum(item.g for item in self.items)
        if total_rank != self.count:
            logger.error(f"Summary accounts for {total_rank} ranks but {self.count} values were observed")
            raise InvariantViolationError(
                "Summary ranks do not match the number of observations",
                count=self.count,
                total_rank=total_rank,
            )

        if len(self.items) == 1 or phi == 0:
            return self.items[0].value
        if phi == 1:
            return self.items[-1].value

        target = phi * self.count
        threshold = target + self.invariant(target)

        rank = 0
        for current, following in zip(self.items, self.items[1:]):
            rank += current.g
            if rank + following.g + following.delta > threshold:
                return current.value

        # The threshold lies beyond the last item's maximum rank
        return self.items[-1].value

    def snapshot(self) -> List[Tuple[float, float]]:
        """Query every configured quantile, in configuration order. Does not compress."""
        return [(phi, self.query(phi)) for phi, _ in self.quantiles]

    def min(self) -> float:
        """Return the minimum value observed."""
        if not self.items:
            raise ValueError("Cannot get min from empty estimator")
        return self.items[0].value

    def max(self) -> float:
        """Return the maximum value observed."""
        if not self.items:
            raise ValueError("Cannot get max from empty estimator")
        return self.items[-1].value

    def mean(self) -> float:
        """Return the arithmetic mean of the observations, 0.0 if there are none."""
        if self.count == 0:
            return 0.0
        return self.sum / self.count

    def size(self) -> int:
        """Return the number of items in the summary."""
        return len(self.items)

    def __len__(self) -> int:
        """Return the number of observations."""
        return self.count

    def copy(self) -> "BiasedQuantileEstimator":
        """Return a deep copy that shares no state with this estimator."""
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        """Full state of the estimator, for introspection."""
        return {
            "count": self.count,
            "sum": self.sum,
            "quantiles": [{"quantile": q.quantile, "error": q.error} for q in self.quantiles],
            "items": [{"value": item.value, "g": item.g, "delta": item.delta} for item in self.items],
        }

    def __repr__(self) -> str:
        return (
            f"BiasedQuantileEstimator(count={self.count}, sum={self.sum}, "
            f"quantiles={list(self.quantiles)}, size={len(self.items)})"
        )
