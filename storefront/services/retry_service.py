"""Bounded exponential-backoff retry for order creation."""
import logging
import time
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRY_DELAY_BASE = 1.0  # seconds


def backoff_delay(attempt: int, delay_base: float = RETRY_DELAY_BASE) -> float:
    """Wait before attempt + 1: delay_base * 2 ** (attempt - 1)."""
    return delay_base * (2 ** (attempt - 1))


def retry_create_order(
    create_order: Callable[[Any], Any],
    order_details: Any,
    attempt: int = 1,
    *,
    max_retries: int = MAX_RETRIES,
    delay_base: float = RETRY_DELAY_BASE,
    sleep: Optional[Callable[[float], None]] = None,
) -> Any:
    """
    Call create_order(order_details) until it succeeds or max_retries is hit.

    Every exception is retried the same way, without jitter. After the last
    attempt the original exception propagates unchanged.

    Args:
        create_order: the order-creation call
        order_details: its single argument
        attempt: number of the first attempt (1-based)
        max_retries: total attempts allowed
        delay_base: first backoff delay in seconds
        sleep: injectable sleep, defaults to time.sleep
    """
    sleep = sleep or time.sleep

    while True:
        try:
            return create_order(order_details)
        except Exception as e:
            if attempt >= max_retries:
                logger.error(f"[CHECKOUT] Order creation failed after {attempt} attempts: {e}")
                raise
            delay = backoff_delay(attempt, delay_base)
            logger.warning(
                f"[CHECKOUT] Retrying order creation (attempt {attempt + 1}/{max_retries}) "
                f"after {delay:.1f}s: {e}"
            )
            sleep(delay)
            attempt += 1
