import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from skidscan.logging.logger import Log

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_INITIAL_DELAY_SECONDS = 5.0


async def retry_async(
    op: Callable[[], Awaitable[T]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    initial_delay: float = DEFAULT_INITIAL_DELAY_SECONDS,
    *,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> T:
    """Run ``op`` up to ``max_attempts`` times with doubling delays.

    The wait between attempt i and i+1 is ``initial_delay * 2 ** (i - 1)``.
    When every attempt fails, the error from the last attempt is raised.
    """
    max_attempts = max(1, max_attempts)
    delay = max(0.0, initial_delay)
    attempt = 1
    while True:
        try:
            return await op()
        except Exception as exc:
            if attempt >= max_attempts:
                Log.error(f"All {max_attempts} attempts failed: {exc}")
                raise
            Log.warning(
                f"Attempt {attempt}/{max_attempts} failed: {exc}. Retrying in {delay:g}s"
            )
        await sleep(delay)
        delay *= 2
        attempt += 1
