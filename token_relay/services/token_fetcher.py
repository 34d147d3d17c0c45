import asyncio
import logging
import time
from urllib.parse import urlparse

from token_relay.services.browser import FinishedRequest, HeadlessSession, SessionFactory
from token_relay.services.credential import Credential
from token_relay.services.errors import DeadlineExceeded, InteractionFailed, UpstreamInvalidResponse

logger = logging.getLogger("token_relay.token_fetcher")

DEFAULT_SOURCE_URL = "https://open.spotify.com/"
DEFAULT_PATH_SUFFIX = "/api/token"
DEFAULT_DEADLINE_SECONDS = 15.0


class TokenFetcher:
    """Loads the source page in a headless browser and captures its token request.

    Each ``fetch()`` owns a fresh session and settles exactly once: on the
    token response, on a navigation failure, or when the deadline fires,
    whichever comes first. The session is closed once settled, whatever the
    outcome. No retries here.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        source_url: str = DEFAULT_SOURCE_URL,
        path_suffix: str = DEFAULT_PATH_SUFFIX,
        deadline_seconds: float = DEFAULT_DEADLINE_SECONDS,
    ) -> None:
        self._session_factory = session_factory
        self.source_url = source_url
        self.path_suffix = path_suffix
        self.deadline_seconds = deadline_seconds

    def matches(self, url: str) -> bool:
        return urlparse(url).path.endswith(self.path_suffix)

    async def __call__(self) -> Credential:
        return await self.fetch()

    async def fetch(self) -> Credential:
        start = time.time()
        session = await self._session_factory()
        try:
            credential = await self._run(session)
        finally:
            await self._close(session)

        logger.info(
            "token_fetch_succeeded",
            extra={"extra": {"duration_ms": round((time.time() - start) * 1000, 1)}},
        )
        return credential

    async def _run(self, session: HeadlessSession) -> Credential:
        loop = asyncio.get_running_loop()
        outcome: asyncio.Future[Credential] = loop.create_future()
        processed = False

        def settle(result: Credential | None = None, error: BaseException | None = None) -> None:
            if outcome.done():
                logger.debug(
                    "token_fetch_late_outcome_ignored",
                    extra={"extra": {"error": type(error).__name__ if error else None}},
                )
                return
            if error is not None:
                outcome.set_exception(error)
            else:
                outcome.set_result(result)

        async def on_request_finished(request: FinishedRequest) -> None:
            nonlocal processed
            if outcome.done() or not self.matches(request.url):
                return
            processed = True
            logger.info("token_fetch_target_request_seen", extra={"extra": {"url": request.url}})
            try:
                settle(result=await self._parse(request))
            except UpstreamInvalidResponse as exc:
                settle(error=exc)

        def on_deadline() -> None:
            if not processed:
                logger.warning(
                    "token_fetch_deadline_without_target_request",
                    extra={
                        "extra": {
                            "path_suffix": self.path_suffix,
                            "hint": "did the endpoint change?",
                        }
                    },
                )
            settle(error=DeadlineExceeded(f"Token fetch exceeded deadline of {self.deadline_seconds}s"))

        async def navigate() -> None:
            try:
                await session.goto(self.source_url)
            except Exception as exc:
                if not processed:
                    logger.error(
                        "token_fetch_navigation_failed",
                        extra={"extra": {"url": self.source_url}},
                        exc_info=True,
                    )
                    failure = InteractionFailed(f"Failed to goto URL: {exc}")
                    failure.__cause__ = exc
                    settle(error=failure)

        session.on_request_finished(on_request_finished)
        timer = loop.call_later(self.deadline_seconds, on_deadline)
        navigation = asyncio.ensure_future(navigate())
        try:
            return await outcome
        finally:
            timer.cancel()
            session.remove_listeners()
            if not navigation.done():
                navigation.cancel()

    async def _parse(self, request: FinishedRequest) -> Credential:
        try:
            response = await request.response()
        except Exception:
            logger.warning("token_fetch_response_unavailable", exc_info=True)
            response = None

        if response is None or not response.ok:
            logger.error(
                "token_fetch_bad_response",
                extra={"extra": {"status": getattr(response, "status", None)}},
            )
            raise UpstreamInvalidResponse("Invalid response from source")

        try:
            payload = await response.json()
        except Exception as exc:
            logger.error("token_fetch_unparseable_response", extra={"extra": {"status": response.status}})
            raise UpstreamInvalidResponse("Invalid response from source") from exc

        if not isinstance(payload, dict):
            raise UpstreamInvalidResponse("Invalid response from source")

        payload.pop("_notes", None)
        return Credential.from_payload(payload)

    async def _close(self, session: HeadlessSession) -> None:
        try:
            await session.close()
        except Exception:
            logger.warning("token_fetch_session_close_failed", exc_info=True)
