from __future__ import annotations

import logging
import time
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from api.ratelimit import limiter, rate_limit_exceeded_handler
from api.routes import router
from uplift.config import get_settings
from uplift.errors import GamificationError
from uplift.logging_config import (
    new_request_id,
    request_log_fields,
    reset_request_id,
    set_request_id,
    setup_logging,
)

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def gamification_error_handler(request: Request, exc: GamificationError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("gamification_error", extra={"code": exc.code.value, "path": request.url.path})
    else:
        logger.info("gamification_rejected", extra={"code": exc.code.value, "path": request.url.path})
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level)

    app = FastAPI(title="UPLift Gamification API", version="1.0.0")
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(GamificationError, gamification_error_handler)
    app.include_router(router)

    @app.middleware("http")
    async def request_context_and_logging(request: Request, call_next: Callable) -> Response:
        request_id = (request.headers.get(REQUEST_ID_HEADER) or "").strip() or new_request_id()
        token = set_request_id(request_id)
        started = time.perf_counter()
        client_ip = getattr(request.client, "host", None)
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "http_request_error",
                extra=request_log_fields(
                    method=request.method,
                    path=request.url.path,
                    status_code=500,
                    duration_ms=(time.perf_counter() - started) * 1000.0,
                    client_ip=client_ip,
                ),
            )
            raise
        else:
            response.headers[REQUEST_ID_HEADER] = request_id
            logger.info(
                "http_request",
                extra=request_log_fields(
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=(time.perf_counter() - started) * 1000.0,
                    client_ip=client_ip,
                ),
            )
            return response
        finally:
            reset_request_id(token)

    return app


app = create_app()
