"""Transaction boundary for mutating service operations."""

import functools
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

R = TypeVar("R")


def transactional(
    func: Callable[..., Awaitable[R]],
) -> Callable[..., Awaitable[R]]:
    """
    Run a service method as one atomic unit of work.

    The method's own writes and every StatusEvent, history and audit row it
    appends are committed together on success. Any exception, including an
    audit write failure, rolls all of them back and propagates unchanged.

    The decorated method must belong to an object exposing ``self.db``.
    Decorated methods must not call each other, since the inner commit
    would end the outer unit early.
    """

    @functools.wraps(func)
    async def wrapper(self: Any, *args: Any, **kwargs: Any) -> R:
        db: AsyncSession = self.db
        try:
            result = await func(self, *args, **kwargs)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return result

    return wrapper
