import logging
import os
import threading
from typing import Dict, Iterable, List, Optional, Tuple

from prometheus_client import CollectorRegistry, REGISTRY

from summary_service.core.metrics.summary.biased_quantile_estimator import (
    DEFAULT_QUANTILES,
    Quantile,
    validate_quantiles,
)
from summary_service.service.constants import DEFAULT_QUANTILES_ENV, PROMETHEUS_METRIC_PREFIX
from summary_service.service.prometheus.summary_metric import Summary
from summary_service.service.utils.exceptions import SummaryConflictError
from summary_service.service.utils.quantile_utils import format_quantiles, parse_quantiles

logger: logging.Logger = logging.getLogger(__name__)


class SummaryRegistry:
    def __init__(
        self,
        registry: CollectorRegistry = REGISTRY,
        default_quantiles: Optional[Iterable[Tuple[float, float]]] = None,
    ) -> None:
        self.registry: CollectorRegistry = registry
        if default_quantiles is None:
            self.default_quantiles: Tuple[Quantile, ...] = self.get_service_config()["default_quantiles"]
        else:
            self.default_quantiles = validate_quantiles(default_quantiles)
        # Track summaries by full metric name, prometheus_client doesn't expose
        # public methods to retrieve a collector by name. Names are case-insensitive.
        self._summaries: Dict[str, Summary] = {}
        self._summaries_lock: threading.RLock = threading.RLock()

    @staticmethod
    def get_service_config() -> Dict:
        """Get service configuration from environment variables."""
        quantiles = os.getenv(DEFAULT_QUANTILES_ENV)

        if quantiles is None or not quantiles.strip():
            default_quantiles = DEFAULT_QUANTILES
        else:
            default_quantiles = parse_quantiles(quantiles)

        return {"default_quantiles": default_quantiles}

    def declare(
        self,
        name: str,
        documentation: Optional[str] = None,
        quantiles: Optional[Iterable[Tuple[float, float]]] = None,
        labels: Optional[Dict[str, str]] = None,
    ) -> Summary:
        """
        Return the summary registered under `name`, creating and registering it if needed.

        :raises ValueError: If the quantile configuration is invalid
        :raises SummaryConflictError: If `name` exists with a different quantile configuration
        """
        requested = (
            self.default_quantiles if quantiles is None else validate_quantiles(quantiles)
        )

        full_name = self._get_full_metric_name(name)
        with self._summaries_lock:
            existing = self._summaries.get(full_name)
            if existing is not None:
                if quantiles is not None and existing.quantiles != requested:
                    raise SummaryConflictError(name, existing.quantiles, requested)
                return existing

            summary = Summary(
                name=full_name,
                documentation=documentation or f"Summary metric: {name}",
                quantiles=requested,
                labels=labels,
                registry=self.registry,
            )
            self._summaries[full_name] = summary

        logger.debug(f"Registered summary {full_name} with quantiles {format_quantiles(requested)}")
        return summary

    def get(self, name: str) -> Optional[Summary]:
        with self._summaries_lock:
            return self._summaries.get(self._get_full_metric_name(name))

    def names(self) -> List[str]:
        with self._summaries_lock:
            return sorted(full_name[len(PROMETHEUS_METRIC_PREFIX):] for full_name in self._summaries)

    def observe(self, name: str, value: float) -> None:
        """Observe a value, declaring the summary with the default quantiles if it doesn't exist yet."""
        self.declare(name).observe(value)

    def remove(self, name: str) -> bool:
        with self._summaries_lock:
            summary = self._summaries.pop(self._get_full_metric_name(name), None)
            if summary is None:
                return False
            self.registry.unregister(summary)

        logger.debug(f"Removed summary {summary.name}")
        return True

    def clear(self) -> None:
        for name in self.names():
            self.remove(name)

    def _get_full_metric_name(self, metric_name: str) -> str:
        return f"{PROMETHEUS_METRIC_PREFIX}{metric_name.lower()}"
