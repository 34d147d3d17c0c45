import logging
import time

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from token_relay.services.token_cache import TokenCache
from token_relay.utils.flags import parse_force_flag

router = APIRouter()
logger = logging.getLogger("token_relay.token_route")


def get_token_coordinator(request: Request) -> TokenCache:
    return request.app.state.token_coordinator


@router.get("/spotifytoken")
async def spotify_token(
    request: Request,
    force: str | None = Query(default=None),
    coordinator: TokenCache = Depends(get_token_coordinator),
):
    is_force = parse_force_flag(force)
    user_agent = request.headers.get("user-agent") or "no ua"
    start = time.time()

    try:
        credential = await coordinator.get(force_refresh=is_force)
        response = JSONResponse(content=credential.payload)
    except Exception:
        # The cause stays in the logs; callers only ever see an empty body.
        logger.error(
            "token_request_failed",
            extra={"extra": {"request_id": getattr(request.state, "request_id", None), "force": is_force}},
            exc_info=True,
        )
        response = JSONResponse(status_code=500, content={})

    elapsed_ms = round((time.time() - start) * 1000, 1)
    logger.info(
        "token_request_handled",
        extra={
            "extra": {
                "user_agent": user_agent,
                "force": is_force,
                "status_code": response.status_code,
                "elapsed_ms": elapsed_ms,
            }
        },
    )
    return response
