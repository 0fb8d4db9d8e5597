import logging
import math
import re
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from prometheus_client import CollectorRegistry
from prometheus_client.metrics_core import Metric
from prometheus_client.utils import floatToGoString

from summary_service.core.metrics.summary.biased_quantile_estimator import (
    DEFAULT_QUANTILES,
    BiasedQuantileEstimator,
    Quantile,
)
from summary_service.service.constants import (
    COUNT_SUFFIX,
    LABEL_NAME_PATTERN,
    METRIC_NAME_PATTERN,
    QUANTILE_LABEL,
    SUM_SUFFIX,
)
from summary_service.service.utils.exceptions import IllegalArgumentError

logger: logging.Logger = logging.getLogger(__name__)


@dataclass
class SummarySnapshot:
    count: int
    sum: float
    quantiles: List[Tuple[float, float]] = field(default_factory=list)


class Summary:
    """
    A summary metric: a biased quantile estimator shared between producers and readers.

    Every operation runs under one lock, so observations never interleave with each other
    or with a read. Reads compress the estimator before querying it, which keeps inserts
    cheap and pays the compression cost once per read.

    Summary implements the prometheus_client collector protocol and can be registered
    into a CollectorRegistry.
    """

    def __init__(
        self,
        name: str,
        documentation: str = "",
        quantiles: Iterable[Tuple[float, float]] = DEFAULT_QUANTILES,
        labels: Optional[Dict[str, str]] = None,
        registry: Optional[CollectorRegistry] = None,
    ) -> None:
        if not re.match(METRIC_NAME_PATTERN, name):
            raise IllegalArgumentError(f"Invalid metric name: {name}")

        labels = dict(labels or {})
        for label_name in labels:
            if not re.match(LABEL_NAME_PATTERN, label_name) or label_name.startswith("__"):
                raise IllegalArgumentError(f"Invalid label name: {label_name}")
            if label_name == QUANTILE_LABEL:
                raise IllegalArgumentError(f"Label '{QUANTILE_LABEL}' is reserved for summary quantiles")

        self.name: str = name
        self.documentation: str = documentation
        self.labels: Dict[str, str] = {key: str(value) for key, value in labels.items()}
        self._estimator: BiasedQuantileEstimator = BiasedQuantileEstimator(quantiles)
        self._lock: threading.RLock = threading.RLock()

        if registry is not None:
            registry.register(self)

    @property
    def quantiles(self) -> Tuple[Quantile, ...]:
        return self._estimator.quantiles

    def observe(self, value: float) -> None:
        with self._lock:
            self._estimator.insert(value)

    def observe_many(self, values: Iterable[float]) -> None:
        """Observe several values at once. Nothing is recorded if any of them is not finite."""
        values = [float(value) for value in values]
        invalid = [value for value in values if not math.isfinite(value)]
        if invalid:
            logger.warning(f"Rejected {len(invalid)} non-finite observation(s) for {self.name}")
            raise ValueError(f"Cannot observe non-finite values {invalid}")

        with self._lock:
            for value in values:
                self._estimator.insert(value)

    def snapshot(self) -> SummarySnapshot:
        """Compress, then query every configured quantile together with the running count and sum."""
        with self._lock:
            self._estimator.compress()
            return SummarySnapshot(
                count=self._estimator.count,
                sum=self._estimator.sum,
                quantiles=self._estimator.snapshot(),
            )

    def get_summary(self) -> List[Tuple[float, float]]:
        """Return (quantile, value) pairs in the configured order."""
        return self.snapshot().quantiles

    def dump_estimator(self) -> BiasedQuantileEstimator:
        """Return a copy of the full, uncompressed estimator state."""
        with self._lock:
            return self._estimator.copy()

    def describe(self) -> List[Metric]:
        return [Metric(self.name, self.documentation, "summary")]

    def collect(self) -> List[Metric]:
        snapshot = self.snapshot()

        metric = Metric(self.name, self.documentation, "summary")
        for phi, value in snapshot.quantiles:
            metric.add_sample(
                self.name,
                {**self.labels, QUANTILE_LABEL: floatToGoString(phi)},
                value,
            )
        metric.add_sample(f"{self.name}{SUM_SUFFIX}", dict(self.labels), snapshot.sum)
        metric.add_sample(f"{self.name}{COUNT_SUFFIX}", dict(self.labels), float(snapshot.count))
        return [metric]

    def __repr__(self) -> str:
        return f"Summary(name={self.name!r}, quantiles={list(self.quantiles)})"
