import logging
import threading
import time
from typing import Any, Callable, Optional

from tenacity import (
    RetryError,
    Retrying,
    retry_if_result,
    stop_after_delay,
    stop_never,
    wait_fixed,
)
from tenacity.stop import stop_base

from .errors import PollCancelledError, PollTimeoutError

logger = logging.getLogger(__name__)


class stop_when_set(stop_base):
    """Stop once the given threading.Event is set."""

    def __init__(self, event: threading.Event):
        self.event = event

    def __call__(self, retry_state: Any) -> bool:
        return self.event.is_set()


def _not_done(result: Any) -> bool:
    return not result


def poll_until(
    predicate: Callable[[], Any],
    interval: float,
    deadline: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
    description: str = "",
) -> Any:
    """
    Calls `predicate` until it returns a truthy value, sleeping a fixed
    `interval` between attempts.

    Args:
        predicate: Zero-argument callable. Exceptions it raises propagate unchanged.
        interval: Seconds between attempts (no backoff).
        deadline: Optional overall limit in seconds; PollTimeoutError when exceeded.
        cancel: Optional event; once set, polling stops with PollCancelledError.
        description: Used in log and error messages.

    Returns:
        The first truthy value returned by `predicate`.
    """
    if cancel is not None and cancel.is_set():
        raise PollCancelledError(f"Cancelled before polling: {description}")

    stop = stop_never if deadline is None else stop_after_delay(deadline)
    sleep = time.sleep
    if cancel is not None:
        stop = stop | stop_when_set(cancel)
        sleep = cancel.wait  # Wakes up as soon as cancellation is requested

    logger.debug("Polling every %ss until %s", interval, description or "done")
    retrying = Retrying(
        retry=retry_if_result(_not_done),
        wait=wait_fixed(interval),
        stop=stop,
        sleep=sleep,
    )
    try:
        return retrying(predicate)
    except RetryError:
        if cancel is not None and cancel.is_set():
            raise PollCancelledError(f"Cancelled while waiting for {description}")
        raise PollTimeoutError(
            f"Timed out after {deadline}s waiting for {description}"
        )
