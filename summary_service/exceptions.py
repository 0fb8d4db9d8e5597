"""Custom exceptions for the summary service."""


class InvariantViolationError(Exception):
    """
    Raised when a quantile summary is found in an inconsistent state.

    This is a defect, not a recoverable condition: as long as every insert and
    compress keeps the summary invariants, it is never raised. Callers should not
    retry the operation that raised it.
    """

    def __init__(self, message: str, count: int = None, total_rank: int = None):
        """
        Initialize InvariantViolationError.

        Args:
            message: Detailed error message
            count: Optional number of observations recorded by the summary
            total_rank: Optional number of ranks accounted for by the summary items
        """
        self.message = message
        self.count = count
        self.total_rank = total_rank
        super().__init__(self.message)

    def __str__(self):
        parts = [self.message]
        if self.count is not None:
            parts.append(f"(count: {self.count})")
        if self.total_rank is not None:
            parts.append(f"(total_rank: {self.total_rank})")
        return " ".join(parts)
