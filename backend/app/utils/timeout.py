"""
Timeout utilities for external calls.

Every calendar, CRM, mail, storage and generation call made by the prep
pipeline is bounded so a slow provider degrades the document tier instead
of hanging the request.
"""

import asyncio
import os
import logging
from typing import TypeVar, Callable, Any

from .errors import ExternalServiceUnavailable

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Default timeouts (in seconds)
DEFAULT_AI_TIMEOUT = int(os.getenv("PREP_GENERATION_TIMEOUT", "60"))
DEFAULT_SERVICE_TIMEOUT = int(os.getenv("PREP_SERVICE_TIMEOUT", "15"))


class AITimeoutError(ExternalServiceUnavailable):
    """Raised when an external operation times out."""
    
    def __init__(self, operation: str, timeout: int):
        self.operation = operation
        self.timeout = timeout
        super().__init__(operation, f"timed out after {timeout}s")


async def with_timeout(
    coro,
    timeout_seconds: int = DEFAULT_AI_TIMEOUT,
    operation_name: str = "AI operation"
) -> Any:
    """
    Execute an async coroutine with a timeout.
    
    Args:
        coro: The coroutine to execute
        timeout_seconds: Maximum time to wait
        operation_name: Name of the operation for logging
        
    Returns:
        The result of the coroutine
        
    Raises:
        AITimeoutError: If the operation times out
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout_seconds)
    except asyncio.TimeoutError:
        logger.error(f"Timeout: {operation_name} exceeded {timeout_seconds}s limit")
        raise AITimeoutError(operation_name, timeout_seconds)


async def run_blocking(func: Callable[..., T], *args, **kwargs) -> T:
    """Run a blocking client call (supabase, googleapiclient) off the event loop."""
    return await asyncio.to_thread(func, *args, **kwargs)


async def generation_with_timeout(coro, timeout: int = DEFAULT_AI_TIMEOUT):
    """Execute a text-generation call with timeout."""
    return await with_timeout(coro, timeout, "Generation call")


async def service_with_timeout(coro, service: str, timeout: int = DEFAULT_SERVICE_TIMEOUT):
    """Execute a calendar/CRM/mail/storage call with timeout."""
    return await with_timeout(coro, timeout, service)
