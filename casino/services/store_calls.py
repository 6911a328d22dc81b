import asyncio
import logging
from typing import Awaitable, TypeVar

from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from casino.errors import SettlementFailure

T = TypeVar("T")


async def bounded(awaitable: Awaitable[T], timeout: float, what: str) -> T:
    """Await a store call with a deadline and fail closed.

    Timeouts and storage errors become SettlementFailure; the detail is
    logged, never returned to the client. Business errors pass through.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError:
        logging.error(f"{what} timed out after {timeout}s")
        raise SettlementFailure()
    except (SQLAlchemyError, RedisError) as e:
        logging.error(f"{what} failed: {e!r}")
        raise SettlementFailure() from e
