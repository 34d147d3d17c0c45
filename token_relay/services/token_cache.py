import asyncio
import logging
import time
from typing import Awaitable, Callable

from token_relay.services.credential import DEFAULT_SAFETY_MARGIN_MS, Credential
from token_relay.services.mutex import Mutex

logger = logging.getLogger("token_relay.token_cache")

Fetcher = Callable[[], Awaitable[Credential]]


def _now_ms() -> float:
    return time.time() * 1000


def _release_after(task: asyncio.Future, release: Callable[[], None]) -> None:
    if not task.cancelled():
        # Outcome already recorded for queued callers.
        task.exception()
    release()


class TokenCache:
    """Serves the cached credential and single-flights refreshes.

    One instance is meant to live for the whole process. The cache slot is
    only written while holding ``_mutex``; the unlocked read on the fast path
    can at worst cause one extra refresh, which the re-check under the lock
    absorbs.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        safety_margin_ms: int = DEFAULT_SAFETY_MARGIN_MS,
        clock: Callable[[], float] = _now_ms,
    ) -> None:
        self._fetcher = fetcher
        self._safety_margin_ms = safety_margin_ms
        self._clock = clock
        self._mutex = Mutex()
        self._credential: Credential | None = None
        # Number of refreshes that have settled, and how the last one ended.
        self._generation = 0
        self._last_outcome: Credential | BaseException | None = None

    @property
    def cached(self) -> Credential | None:
        return self._credential

    @property
    def refresh_count(self) -> int:
        return self._generation

    def _valid(self, now: float) -> bool:
        return self._credential is not None and self._credential.is_valid(now, self._safety_margin_ms)

    async def get(self, force_refresh: bool = False) -> Credential:
        now = self._clock()
        if not force_refresh and self._valid(now):
            logger.debug(
                "token_cache_hit",
                extra={"extra": {"ttl_ms": self._credential.ttl_ms(now)}},
            )
            return self._credential

        seen_generation = self._generation
        logger.info(
            "token_cache_miss_acquiring_lock",
            extra={"extra": {"force": force_refresh, "waiters": self._mutex.waiters}},
        )
        release = await self._mutex.acquire()
        refresh: asyncio.Future | None = None
        try:
            if self._generation != seen_generation:
                # A refresh settled while we were queued; share its outcome.
                logger.info(
                    "token_cache_shared_refresh",
                    extra={"extra": {"generation": self._generation, "force": force_refresh}},
                )
                if isinstance(self._last_outcome, BaseException):
                    raise self._last_outcome
                return self._last_outcome

            # Double-check after acquiring lock
            now = self._clock()
            if not force_refresh and self._valid(now):
                logger.debug(
                    "token_cache_hit_after_lock",
                    extra={"extra": {"ttl_ms": self._credential.ttl_ms(now)}},
                )
                return self._credential

            refresh = asyncio.ensure_future(self._refresh(force_refresh))
            return await asyncio.shield(refresh)
        finally:
            if refresh is not None and not refresh.done():
                # The caller was cancelled mid-refresh. The refresh runs to
                # settlement and keeps the lock until then.
                refresh.add_done_callback(lambda task: _release_after(task, release))
            else:
                release()

    async def _refresh(self, force_refresh: bool) -> Credential:
        logger.info("token_cache_refreshing", extra={"extra": {"force": force_refresh}})
        start = time.time()
        try:
            credential = await self._fetcher()
        except Exception as exc:
            duration_ms = round((time.time() - start) * 1000, 1)
            self._settle(exc)
            logger.error(
                "token_cache_refresh_failed",
                extra={"extra": {"duration_ms": duration_ms, "error": type(exc).__name__}},
                exc_info=True,
            )
            raise

        self._credential = credential
        self._settle(credential)
        duration_ms = round((time.time() - start) * 1000, 1)
        logger.info(
            "token_cache_refreshed",
            extra={
                "extra": {
                    "ttl_ms": credential.ttl_ms(self._clock()),
                    "duration_ms": duration_ms,
                    "generation": self._generation,
                }
            },
        )
        return credential

    def _settle(self, outcome: Credential | BaseException) -> None:
        self._generation += 1
        self._last_outcome = outcome
