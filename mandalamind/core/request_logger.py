import logging
import time
import uuid
from contextvars import ContextVar
from starlette.types import ASGIApp, Receive, Scope, Send

logger = logging.getLogger("mandalamind.request")

request_id_ctx = ContextVar("request_id", default=None)


class ContextLoggingMiddleware:
    """Assigns a unique request ID and echoes it back as x-request-id."""

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        # Honour an upstream id so proxies can correlate
        headers = dict(scope.get("headers", []))
        request_id = headers.get(b"x-request-id", b"").decode("utf-8") or str(uuid.uuid4())
        request_id_ctx.set(request_id)

        async def send_wrapper(message):
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                headers.append((b"x-request-id", request_id.encode()))
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_wrapper)


class RequestLoggingMiddleware:
    """Logs every request with timing and request_id."""

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.time()
        status_code = None

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        await self.app(scope, receive, send_wrapper)

        process_time = (time.time() - start_time) * 1000

        logger.info("", extra={
            "event": "HTTP Request",
            "method": scope["method"],
            "path": scope["path"],
            "status_code": status_code,
            "duration_ms": round(process_time, 2),
            "request_id": request_id_ctx.get(),
        })
