from typing import List, Sequence, Tuple

from summary_service.core.metrics.summary.biased_quantile_estimator import (
    Quantile,
    validate_quantiles,
)


def parse_quantiles(text: str) -> Tuple[Quantile, ...]:
    """Parse a "<quantile>:<error>,..." string, e.g. "0.5:0.05,0.9:0.01", into a validated configuration"""
    pairs: List[Tuple[float, float]] = []
    for chunk in text.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        phi, separator, error = chunk.partition(":")
        if not separator:
            raise ValueError(f"Malformed quantile definition '{chunk}', expected '<quantile>:<error>'")
        try:
            pairs.append((float(phi), float(error)))
        except ValueError as e:
            raise ValueError(f"Malformed quantile definition '{chunk}': {e}") from e
    return validate_quantiles(pairs)


def format_quantiles(quantiles: Sequence[Tuple[float, float]]) -> str:
    """Inverse of `parse_quantiles`"""
    return ",".join(f"{phi}:{error}" for phi, error in quantiles)
