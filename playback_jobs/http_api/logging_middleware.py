import logging
import time
import traceback

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger(__name__)

JOBS_PREFIX = "/api/v1/jobs/"


def describe_request(request: Request) -> str:
    path = request.url.path
    if path.startswith(JOBS_PREFIX):
        return f"job trigger [{path[len(JOBS_PREFIX):]}]"
    return f"{request.method} {path}"


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request with its duration and exposes it as X-Process-Time-Ms"""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        label = describe_request(request)

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.error(
                f"💥 {label} crashed after {elapsed_ms:.2f}ms: {e}\n{traceback.format_exc()}"
            )
            raise

        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Process-Time-Ms"] = f"{elapsed_ms:.2f}"

        if response.status_code >= 400:
            logger.warning(f"⚠️  {label} -> {response.status_code} in {elapsed_ms:.2f}ms")
        else:
            logger.info(f"✅ {label} -> {response.status_code} in {elapsed_ms:.2f}ms")

        return response
