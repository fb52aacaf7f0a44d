"""
Reliability Utilities.

Store boundary for billing actions: one transaction per action, bounded
by a timeout, with a single retry when an advance-balance write loses a race.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dues_backend.app.core.config import settings
from dues_backend.app.core.exceptions import AppException, ConcurrencyConflict, PersistenceError

logger = logging.getLogger("dues.reliability")

T = TypeVar("T")


async def _rollback_quietly(db: AsyncSession) -> None:
    try:
        await db.rollback()
    except SQLAlchemyError:
        logger.exception("Rollback failed after aborted transaction")


async def run_in_transaction(
    db: AsyncSession,
    operation: Callable[..., Awaitable[T]],
    *args,
    retries_on_conflict: int = 1,
    timeout: Optional[float] = None,
    **kwargs
) -> T:
    """
    Run `operation(db, *args, **kwargs)` and commit, or roll everything back.

    - ConcurrencyConflict / IntegrityError: rolled back and retried
      `retries_on_conflict` times, then surfaced.
    - Timeout or any other SQLAlchemyError: rolled back, raised as PersistenceError.
    - Domain errors (AppException): rolled back and re-raised unchanged.

    Returns:
        Whatever the operation returned.
    """
    timeout = settings.store_timeout_seconds if timeout is None else timeout
    attempts = retries_on_conflict + 1

    async def _attempt() -> T:
        result = await operation(db, *args, **kwargs)
        await db.commit()
        return result

    for attempt in range(1, attempts + 1):
        try:
            return await asyncio.wait_for(_attempt(), timeout=timeout)
        except (ConcurrencyConflict, IntegrityError) as e:
            await _rollback_quietly(db)
            if attempt < attempts:
                logger.warning(
                    "Conflict in %s, retrying (%d/%d)", operation.__name__, attempt, attempts - 1
                )
                continue
            if isinstance(e, ConcurrencyConflict):
                raise
            raise ConcurrencyConflict(details={"operation": operation.__name__}) from e
        except asyncio.TimeoutError as e:
            await _rollback_quietly(db)
            logger.error("Store call timed out in %s after %ss", operation.__name__, timeout)
            raise PersistenceError(
                "Storage call timed out, please retry",
                details={"operation": operation.__name__}
            ) from e
        except SQLAlchemyError as e:
            await _rollback_quietly(db)
            logger.error("Store failure in %s: %s", operation.__name__, e)
            raise PersistenceError(details={"operation": operation.__name__}) from e
        except AppException:
            await _rollback_quietly(db)
            raise
