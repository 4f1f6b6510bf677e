import sys
import asyncio
import logging
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from slowapi.errors import RateLimitExceeded
from insight_weaver.api.routes import router, limiter
from insight_weaver.api.metrics import router as metrics_router
from insight_weaver.core.cache import SimpleCache
from insight_weaver.core.config import Settings, get_settings
from insight_weaver.core.errors import ErrorCodes, get_error_response
from insight_weaver.core.logging import configure_logging
from insight_weaver.core.middleware import CORRELATION_HEADER, CorrelationIDMiddleware
from insight_weaver.services.pipeline import AnalysisService

logger = logging.getLogger(__name__)


def _error_json(status_code: int, error_code: str, request: Request, headers=None) -> JSONResponse:
    correlation_id = getattr(request.state, 'correlation_id', 'unknown')
    content = get_error_response(error_code)
    content['correlation_id'] = correlation_id
    return JSONResponse(
        status_code=status_code,
        content=content,
        headers={CORRELATION_HEADER: correlation_id, **(headers or {})},
    )


def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """429 with the standard error body instead of slowapi's plain text."""
    retry_after = getattr(exc, 'retry_after', None) or 60
    logger.warning(f"Rate limit exceeded on {request.url.path}")
    return _error_json(429, ErrorCodes.RATE_LIMIT_EXCEEDED, request, {"Retry-After": str(retry_after)})


class TimeoutMiddleware(BaseHTTPMiddleware):
    """Abort requests that run past the configured timeout with a 504."""

    def __init__(self, app, timeout_seconds: int):
        super().__init__(app)
        self.timeout_seconds = timeout_seconds

    async def dispatch(self, request: Request, call_next):
        try:
            return await asyncio.wait_for(call_next(request), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.error(f"Request exceeded {self.timeout_seconds}s: {request.url.path}")
            return _error_json(504, ErrorCodes.TIMEOUT, request)


def create_app(settings: Settings) -> FastAPI:
    app = FastAPI(
        title="Insight Weaver API",
        description="Turns suggested charts into validated, aggregated chart datasets",
        version="1.0.0"
    )

    # slowapi looks the limiter up on app.state
    app.state.limiter = limiter
    app.state.settings = settings

    # One analysis cache per process; the service never reaches for a global
    app.state.analysis_cache = SimpleCache(default_ttl=settings.cache_ttl_seconds)
    app.state.analysis_service = AnalysisService(app.state.analysis_cache, settings)

    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)

    # Registered innermost first: the correlation id is assigned before
    # compression, CORS and the timeout wrap the route.
    app.add_middleware(TimeoutMiddleware, timeout_seconds=settings.request_timeout_seconds)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", CORRELATION_HEADER],
        expose_headers=[CORRELATION_HEADER]
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(CorrelationIDMiddleware)

    app.include_router(router, prefix="/api")
    app.include_router(metrics_router, prefix="/api")

    @app.get("/")
    async def root():
        return {"message": "Insight Weaver API is running"}

    logger.info(f"CORS allowed origins: {settings.allowed_origins_list}")
    return app


load_dotenv()

try:
    settings = get_settings()
except Exception as e:
    # Logging is not configured yet
    logging.basicConfig(level=logging.ERROR)
    logger.error(f"Invalid configuration: {e}")
    sys.exit(1)

configure_logging(settings.log_level, settings.log_format)
app = create_app(settings)
logger.info("Insight Weaver API ready")
