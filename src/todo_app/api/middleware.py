"""Request id assignment and request/response logging."""

import json
import logging
import time
from uuid import uuid4

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"


class ResponseCapture:
    """Wraps an ASGI ``send`` to record the outgoing status and JSON payload."""

    def __init__(self, send: Send, request_id: str, max_body_bytes: int) -> None:
        self._send = send
        self._request_id = request_id
        self._max_body_bytes = max_body_bytes
        self._body = bytearray()
        self._is_json = False
        self.truncated = False
        self.status: int | None = None
        self.content_length = 0

    async def __call__(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            self.status = message["status"]
            headers = MutableHeaders(scope=message)
            headers.append(REQUEST_ID_HEADER, self._request_id)
            self._is_json = headers.get("content-type", "").startswith(
                "application/json"
            )
        elif message["type"] == "http.response.body":
            chunk = message.get("body", b"")
            self.content_length += len(chunk)
            if self._is_json and not self.truncated:
                if len(self._body) + len(chunk) > self._max_body_bytes:
                    self.truncated = True
                else:
                    self._body.extend(chunk)
        await self._send(message)

    def payload(self) -> object | None:
        """Return the decoded JSON body, or None when not captured."""
        if not self._is_json or self.truncated or not self._body:
            return None
        try:
            return json.loads(self._body)
        except ValueError:
            return None


class RequestContextMiddleware:
    """Assigns a request id and logs each HTTP exchange."""

    def __init__(self, app: ASGIApp, max_body_bytes: int = 4096) -> None:
        self.app = app
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        request_id = str(uuid4())
        scope.setdefault("state", {})["request_id"] = request_id
        method, path = scope["method"], scope["path"]
        logger.info(
            "http.request: request_id=%s method=%s path=%s", request_id, method, path
        )
        capture = ResponseCapture(send, request_id, self.max_body_bytes)
        started = time.perf_counter()
        try:
            await self.app(scope, receive, capture)
        finally:
            logger.info(
                "http.response: request_id=%s method=%s path=%s status=%s "
                "content_length=%s response_time_ms=%.3f response_body=%s",
                request_id,
                method,
                path,
                capture.status,
                capture.content_length,
                (time.perf_counter() - started) * 1000,
                capture.payload(),
            )
