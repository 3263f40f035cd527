"""Explicit transaction boundary shared by the services of one request."""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

AfterCommitHook = Callable[[], Awaitable[None]]


class UnitOfWork:
    """Wraps an ``AsyncSession`` with atomic blocks, timeouts and commit hooks.

    Services never call ``session.commit()`` themselves. They group writes
    that must land together in ``atomic()`` and leave the final ``commit()``
    to whoever owns the request (the HTTP dependency or a test).

    Store work inside ``atomic()`` is bounded by ``timeout`` seconds. A
    timeout or any exception rolls the session back and propagates; nothing
    is retried here.
    """

    def __init__(self, session: AsyncSession, timeout: float | None = None) -> None:
        self.session = session
        self._timeout = timeout
        self._after_commit: list[AfterCommitHook] = []

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[AsyncSession]:
        """Run a block whose writes are flushed together or rolled back together."""
        try:
            async with asyncio.timeout(self._timeout):
                yield self.session
                await self.session.flush()
        except Exception:
            await self.rollback()
            raise

    def after_commit(self, hook: AfterCommitHook) -> None:
        """Schedule ``hook`` to run once the current transaction commits."""
        self._after_commit.append(hook)

    async def commit(self) -> None:
        """Commit the session, then run after-commit hooks."""
        await self.session.commit()
        hooks, self._after_commit = self._after_commit, []
        for hook in hooks:
            try:
                await hook()
            except Exception:
                logger.exception("After-commit hook %r failed", hook)

    async def rollback(self) -> None:
        """Roll back the session and drop pending after-commit hooks."""
        self._after_commit.clear()
        await self.session.rollback()
