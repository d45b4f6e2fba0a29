import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Type, TypeVar

from sitecraft.platform.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with exponential backoff: delay * factor ** (attempt - 1)."""

    max_attempts: int = 3
    delay_seconds: float = 0.3
    factor: float = 2.0
    max_delay_seconds: float = 60.0

    def delay_for(self, attempt: int) -> float:
        return min(self.delay_seconds * (self.factor ** (attempt - 1)), self.max_delay_seconds)


def run_with_retry(
    func: Callable[[], T],
    policy: RetryPolicy,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    description: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
    on_retry: Optional[Callable[[int, BaseException], None]] = None,
) -> T:
    """
    Call `func` until it succeeds or `policy.max_attempts` is exhausted.

    Only exceptions listed in `retry_on` are retried; the last one is re-raised
    once the attempts run out.
    """
    attempt = 1
    while True:
        try:
            return func()
        except retry_on as e:
            if attempt >= policy.max_attempts:
                logger.error(f"{description} failed after {attempt} attempts: {e}")
                raise
            wait = policy.delay_for(attempt)
            logger.warning(
                f"{description} failed (attempt {attempt}/{policy.max_attempts}), retrying in {wait:.1f}s: {e}"
            )
            if on_retry is not None:
                on_retry(attempt, e)
            sleep(wait)
            attempt += 1
