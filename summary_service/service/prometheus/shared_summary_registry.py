"""
Shared SummaryRegistry singleton to ensure endpoints and the /q/metrics exposition use the same instance.
"""

import threading
from typing import Optional

from summary_service.service.prometheus.summary_registry import SummaryRegistry

# Global shared SummaryRegistry instance
_shared_summary_registry: Optional[SummaryRegistry] = None
_shared_summary_registry_lock = threading.Lock()


def get_shared_summary_registry() -> SummaryRegistry:
    """
    Get the shared SummaryRegistry instance used by the summary endpoints.

    Returns:
        The singleton SummaryRegistry instance, registered into the default prometheus_client registry
    """
    global _shared_summary_registry
    with _shared_summary_registry_lock:
        if _shared_summary_registry is None:
            _shared_summary_registry = SummaryRegistry()
        return _shared_summary_registry
