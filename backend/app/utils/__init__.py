"""
Utility modules for the call prep backend.
"""

from .errors import (
    ExternalServiceUnavailable,
    MeetingUnavailable,
    GenerationCancelled,
    AccountNotFound,
)
from .timeout import (
    with_timeout,
    run_blocking,
    generation_with_timeout,
    service_with_timeout,
    AITimeoutError,
    DEFAULT_AI_TIMEOUT,
    DEFAULT_SERVICE_TIMEOUT,
)

__all__ = [
    "ExternalServiceUnavailable",
    "MeetingUnavailable",
    "GenerationCancelled",
    "AccountNotFound",
    "with_timeout",
    "run_blocking",
    "generation_with_timeout",
    "service_with_timeout",
    "AITimeoutError",
    "DEFAULT_AI_TIMEOUT",
    "DEFAULT_SERVICE_TIMEOUT",
]
