import logging
import time
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

log = logging.getLogger("marketplace.request")

"""
    Custom middle ware to log meta data and response time of the server for specific api
"""
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        process_ms = round((time.perf_counter() - start) * 1000, 2)
        log.info(
            "%s %s status=%s ip=%s ua=%s time_ms=%s",
            request.method,
            request.url.path,
            response.status_code,
            request.client.host if request.client else None,
            request.headers.get("user-agent"),
            process_ms,
        )
        return response
