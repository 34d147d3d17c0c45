import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from token_relay.config import Settings, settings
from token_relay.logging_config import configure_logging

configure_logging(settings.LOG_LEVEL)

logger = logging.getLogger("token_relay")

# Log loaded config
settings.log_summary()

from token_relay.routers import token  # noqa: E402
from token_relay.services.browser import PlaywrightSessionFactory  # noqa: E402
from token_relay.services.token_cache import TokenCache  # noqa: E402
from token_relay.services.token_fetcher import TokenFetcher  # noqa: E402


def build_coordinator(config: Settings) -> TokenCache:
    """Wire the process-wide token cache to a Playwright-backed fetcher."""
    fetcher = TokenFetcher(
        PlaywrightSessionFactory(headless=config.BROWSER_HEADLESS),
        source_url=config.TOKEN_SOURCE_URL,
        path_suffix=config.TOKEN_PATH_SUFFIX,
        deadline_seconds=config.TOKEN_FETCH_DEADLINE_SECONDS,
    )
    return TokenCache(fetcher, safety_margin_ms=config.TOKEN_SAFETY_MARGIN_MS)


app = FastAPI(title="Spotify Token Relay")
app.state.token_coordinator = build_coordinator(settings)

app.include_router(token.router)

logger.info(
    "app_started",
    extra={
        "extra": {
            "source_url": settings.TOKEN_SOURCE_URL,
            "deadline_seconds": settings.TOKEN_FETCH_DEADLINE_SECONDS,
        }
    },
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    start = time.time()

    method = request.method
    path = request.url.path

    logger.info(
        "request_started",
        extra={
            "extra": {
                "request_id": request_id,
                "method": method,
                "path": path,
                "client": request.client.host if request.client else "unknown",
            }
        },
    )

    try:
        response = await call_next(request)
        duration_ms = round((time.time() - start) * 1000, 1)
        response.headers["X-Request-Id"] = request_id

        logger.info(
            "request_completed",
            extra={
                "extra": {
                    "request_id": request_id,
                    "method": method,
                    "path": path,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                }
            },
        )
        return response
    except Exception:
        duration_ms = round((time.time() - start) * 1000, 1)
        logger.error(
            "request_failed",
            extra={
                "extra": {
                    "request_id": request_id,
                    "method": method,
                    "path": path,
                    "duration_ms": duration_ms,
                }
            },
            exc_info=True,
        )
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


@app.get("/health")
async def health(request: Request):
    coordinator: TokenCache = request.app.state.token_coordinator
    return {"status": "ok", "token_cached": coordinator.cached is not None}
