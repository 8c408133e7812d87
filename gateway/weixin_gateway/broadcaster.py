"""Single-owner credential broadcaster.

One background task owns the current :class:`AccessToken`.  Consumers never
touch it directly: every ``read()`` enqueues a future and the owner answers
it, refreshing first when the credential is expired or an invalidation is
pending.  A refresh failure keeps the old (possibly stale) value in service
and is retried on the next request, so the task never dies on a bad fetch.

Lifecycle::

    start -> serve seed to the first reader (no refresh)
          -> loop: take request -> refresh if stale/invalidated -> answer
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from .cachestore import CacheStore
from .errors import WeixinError
from .models import AccessToken

logger = logging.getLogger(__name__)

Refresher = Callable[[], Awaitable[AccessToken]]


class TokenBroadcaster:
    """Keeps one credential fresh and serves it to concurrent readers."""

    def __init__(
        self,
        name: str,
        refresher: Refresher,
        *,
        store: CacheStore | None = None,
        store_key: str | None = None,
    ) -> None:
        self.name = name
        self._refresher = refresher
        self._store = store
        self._store_key = store_key or f"weixin:{name}"
        self._current = AccessToken.expired()
        self._invalidate = False
        self._requests: asyncio.Queue[asyncio.Future[AccessToken]] = asyncio.Queue()
        self._inflight: asyncio.Future[AccessToken] | None = None
        self._task: asyncio.Task[None] | None = None

    # ---- lifecycle ----

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._run(), name=f"broadcaster-{self.name}")
        logger.info("TokenBroadcaster '%s' started", self.name)

    async def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        self._inflight = None
        while not self._requests.empty():
            pending = self._requests.get_nowait()
            if not pending.done():
                pending.cancel()
        logger.info("TokenBroadcaster '%s' stopped", self.name)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ---- consumer API ----

    async def read(self) -> AccessToken:
        """Return the published credential.

        The value may be stale if the last refresh failed; callers check
        :meth:`AccessToken.is_fresh` themselves.
        """
        if not self.is_running:
            raise WeixinError(f"broadcaster '{self.name}' is not running")
        future: asyncio.Future[AccessToken] = asyncio.get_running_loop().create_future()
        await self._requests.put(future)
        return await future

    async def invalidate(self) -> AccessToken:
        """Force a refresh and wait for the value published after it."""
        self._invalidate = True
        return await self.read()

    # ---- owner loop ----

    async def _run(self) -> None:
        self._current = await self._seed()

        # The first reader gets the seed as-is so nobody blocks on startup.
        self._inflight = await self._requests.get()
        if self._invalidate:
            await self._refresh()
        self._publish(self._inflight)

        while True:
            self._inflight = await self._requests.get()
            if self._inflight.done():
                continue
            if self._invalidate or not self._current.is_fresh():
                await self._refresh()
            self._publish(self._inflight)

    def _publish(self, future: asyncio.Future[AccessToken]) -> None:
        if not future.done():
            future.set_result(self._current)

    async def _seed(self) -> AccessToken:
        if self._store is not None:
            stored = await self._store.get(self._store_key)
            if stored is not None:
                return stored
        return AccessToken.expired()

    async def _refresh(self) -> None:
        invalidating = self._invalidate
        # Cleared up front so an invalidate issued mid-refresh forces another cycle.
        self._invalidate = False

        if self._store is not None and not invalidating:
            stored = await self._store.get(self._store_key)
            if stored is not None and stored.is_fresh():
                logger.debug("TokenBroadcaster '%s' adopted stored credential", self.name)
                self._current = stored
                return

        try:
            token = await self._refresher()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("TokenBroadcaster '%s' refresh failed: %s", self.name, exc)
            self._invalidate = self._invalidate or invalidating
            return

        self._current = token
        logger.debug(
            "TokenBroadcaster '%s' refreshed (invalidated=%s)", self.name, invalidating
        )
        if self._store is not None:
            await self._store.set(self._store_key, token)
