# src/core/utils.py
import asyncio
import logging
import discord
from typing import Coroutine, Any, Optional, TypeVar, Callable

logger = logging.getLogger(__name__)

T = TypeVar('T')

async def retry_on_discord_error(
    coro_func: Callable[[], Coroutine[Any, Any, T]],
    operation_name: str,
    max_retries: int = 3,
    initial_delay: float = 2.0,
    backoff_factor: float = 2.0,
    max_delay: float = 30.0,
    log_context: Optional[dict] = None,
) -> T:
    """
    Await `coro_func()`, trying again when Discord answers with a 5xx.

    Only `DiscordServerError` is retried. NotFound, Forbidden and the other
    4xx errors mean the request itself is wrong, so they reach the caller on
    the first attempt. `coro_func` is called once per attempt because a
    coroutine object can only be awaited once.

    The wait between attempts starts at `initial_delay`, grows by
    `backoff_factor` and never exceeds `max_delay`. `log_context` is merged
    into the `extra` of every retry log line.
    """
    if max_retries < 1:
        raise ValueError(f"max_retries must be at least 1, got {max_retries}")

    extra = {'operation': operation_name, **(log_context or {})}
    delay = min(initial_delay, max_delay)

    attempt = 1
    while True:
        try:
            return await coro_func()
        except discord.errors.DiscordServerError as e:
            extra.update(attempt=attempt, max_retries=max_retries, status=e.status)
            if attempt >= max_retries:
                logger.error(f"Giving up on '{operation_name}' after {attempt} attempts", extra=extra)
                raise
            logger.warning(f"Discord {e.status} on '{operation_name}', next try in {delay:.1f}s", extra=extra)

        await asyncio.sleep(delay)
        delay = min(delay * backoff_factor, max_delay)
        attempt += 1
