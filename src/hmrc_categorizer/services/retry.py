import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from hmrc_categorizer.errors import AIClassifierError, ClassificationError
from hmrc_categorizer.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    AIClassifierError,
    asyncio.TimeoutError,
    TimeoutError,
    ConnectionError,
)


@dataclass
class RetryPolicy:
    """
    Retry an async call on retryable errors, sleeping ``backoff_seconds * attempt``
    between attempts. The last error is re-raised as ``ClassificationError``.
    """

    max_attempts: int = 3
    backoff_seconds: float = 1.0
    retry_on: tuple[type[BaseException], ...] = RETRYABLE_ERRORS
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def delay_for(self, attempt: int) -> float:
        return self.backoff_seconds * attempt

    async def run(self, operation: Callable[[], Awaitable[T]], label: str = "call") -> T:
        last_error: BaseException | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except self.retry_on as e:
                last_error = e
                if attempt >= self.max_attempts:
                    break
                delay = self.delay_for(attempt)
                logger.warning(
                    "[RETRY] %s failed (attempt %s/%s): %s; retrying in %.1fs",
                    label,
                    attempt,
                    self.max_attempts,
                    e or type(e).__name__,
                    delay,
                )
                await self.sleep(delay)

        logger.error("[RETRY] %s failed after %s attempts: %s", label, self.max_attempts, last_error)
        raise ClassificationError(
            f"{label} failed after {self.max_attempts} attempts: "
            f"{last_error or type(last_error).__name__}"
        ) from last_error
