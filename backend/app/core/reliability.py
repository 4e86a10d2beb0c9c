"""
Reliability utilities for the ledger write path.

Includes bounded retry with exponential backoff for conflicting writes.
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from backend.app.core.config import settings
from backend.app.core.exceptions import ConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """
    Retries an operation that failed with ConflictError.

    Only ConflictError is retried; every other exception propagates on the
    first occurrence. After `max_attempts` conflicts the last one is raised.
    """
    def __init__(
        self,
        max_attempts: int = None,
        base_delay: float = None,
        max_delay: float = None,
    ):
        self.max_attempts = max_attempts if max_attempts is not None else settings.ledger_retry_attempts
        self.base_delay = base_delay if base_delay is not None else settings.ledger_retry_base_delay
        self.max_delay = max_delay if max_delay is not None else settings.ledger_retry_max_delay
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    async def run(self, func: Callable[[], Awaitable[T]], operation: str = "operation") -> T:
        attempt = 1
        while True:
            try:
                return await func()
            except ConflictError as exc:
                if attempt >= self.max_attempts:
                    logger.error(
                        "%s failed after %d conflicting attempts: %s",
                        operation, attempt, exc.message,
                    )
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "%s conflicted (attempt %d/%d), retrying in %.3fs",
                    operation, attempt, self.max_attempts, delay,
                )
                await asyncio.sleep(delay)
                attempt += 1
