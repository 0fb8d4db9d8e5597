from typing import Sequence, Tuple

from summary_service.service.utils.quantile_utils import format_quantiles


class IllegalArgumentError(Exception):
    """Exception raised for illegal metric names or labels"""
    pass


class SummaryConflictError(IllegalArgumentError):
    """Exception raised when a summary is declared again with a different quantile configuration"""

    def __init__(
        self,
        name: str,
        existing: Sequence[Tuple[float, float]],
        requested: Sequence[Tuple[float, float]],
    ) -> None:
        self.name = name
        self.existing = list(existing)
        self.requested = list(requested)
        super().__init__(
            f"Summary '{name}' is already declared with quantiles '{format_quantiles(self.existing)}', "
            f"cannot redeclare it with '{format_quantiles(self.requested)}'"
        )
