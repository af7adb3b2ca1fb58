"""
API Server — Request Logging Middleware
=========================================

What:  One short log line per API request: method, path, status, latency and
       the JSON body that was sent back.
Why:   On a serverless host the platform log viewer is the only debugging tool.
       Seeing the response payload next to the status makes most bug reports
       reproducible without attaching a debugger.
How:   Pure ASGI middleware. The downstream `send` is wrapped in a
       ResponseCapture object that records the status code and captures the
       JSON body as it streams out. The line is logged after the last body
       chunk has been handed to the server.
When:  Inside CORS, outside the error middleware, so error responses are
       logged with the status and message the client actually received.

Log Format:
    GET /api/status 200 in 3ms :: {"status":"ready","environment":"producti…

    - Only paths under the API prefix (/api) are logged
    - " :: <json>" is appended only when a JSON body was sent
    - Lines longer than 80 characters are cut to 79 characters plus "…"

Why truncate:
    Platform log viewers show one line per entry and bill by volume. The
    first 80 characters are enough to recognise the payload; full bodies can
    contain user data that should not sit in logs.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, List, Optional

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger("apiserver.access")

LOG_LINE_MAX_LENGTH = 80
ELLIPSIS = "…"

# Bodies larger than this are not buffered for logging
MAX_CAPTURE_BYTES = 1024 * 1024


def truncate_log_line(line: str, max_length: int = LOG_LINE_MAX_LENGTH) -> str:
    """
    Cut `line` to at most `max_length` characters.

    A line over the limit keeps its first `max_length - 1` characters and
    gets a single ellipsis character, so the result is exactly `max_length`
    long and everything before the ellipsis is a prefix of the original.
    """
    if len(line) > max_length:
        return line[: max_length - 1] + ELLIPSIS
    return line


def serialize_body(body: Any) -> str:
    """Compact JSON, no spaces after separators, non-ASCII kept as-is."""
    return json.dumps(body, separators=(",", ":"), ensure_ascii=False, default=str)


def _is_json_media_type(content_type: str) -> bool:
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


@dataclass
class RequestLogEntry:
    """
    What:  Everything that goes into one access log line.
    When:  Built when the response finishes, formatted, logged, discarded.

    `body` is None when no JSON body was captured.
    """
    method: str
    path: str
    status_code: int
    elapsed_ms: int
    body: Any = None

    def format(self) -> str:
        line = f"{self.method} {self.path} {self.status_code} in {self.elapsed_ms}ms"
        if self.body is not None:
            line += f" :: {serialize_body(self.body)}"
        return truncate_log_line(line)


class ResponseCapture:
    """
    Wraps an ASGI `send` callable and records what the response contained.

    Attributes:
        status_code: Status from http.response.start (None until sent)
        body:        Last captured JSON body (None if nothing captured)
        finished:    True once the final body chunk has been sent

    Capture hook:
        capture(body) stores a body explicitly; last write wins. The wrapper
        calls it itself with the decoded JSON of the outgoing response, and
        handlers can reach it as `request.state.response_capture`.
    """

    def __init__(self, send: Send):
        self._send = send
        self.status_code: Optional[int] = None
        self.body: Any = None
        self.finished = False
        self._is_json = False
        self._chunks: List[bytes] = []
        self._size = 0

    def capture(self, body: Any) -> None:
        self.body = body

    async def __call__(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            self.status_code = message["status"]
            headers = Headers(raw=message.get("headers", []))
            self._is_json = _is_json_media_type(headers.get("content-type", ""))
        elif message["type"] == "http.response.body":
            if self._is_json:
                self._buffer(message.get("body", b""))
            if not message.get("more_body", False):
                # The client gets the last chunk before any decoding work
                await self._send(message)
                self.finished = True
                self._decode_buffered()
                return

        await self._send(message)

    def _buffer(self, chunk: bytes) -> None:
        self._size += len(chunk)
        if self._size > MAX_CAPTURE_BYTES:
            self._is_json = False
            self._chunks = []
            return
        self._chunks.append(chunk)

    def _decode_buffered(self) -> None:
        if not self._is_json or not self._chunks:
            return
        raw = b"".join(self._chunks)
        self._chunks = []
        try:
            self.capture(json.loads(raw))
        except Exception:
            # Invalid or pathologically nested JSON; log the line without a body
            logger.debug("Response body could not be decoded; not captured", exc_info=True)


class RequestLoggingMiddleware:
    """
    Logs method, path, status, latency and response body for API requests.

    Log level follows the status code, so platform alerts can key on it:
        5xx → ERROR, 4xx → WARNING, everything else → INFO
    """

    def __init__(self, app: ASGIApp, api_prefix: str = "/api"):
        self.app = app
        self.api_prefix = api_prefix

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        # Latency is measured from the moment this middleware sees the request
        start_time = time.perf_counter()
        capture = ResponseCapture(send)

        # Fresh dict: scope["state"] may be shared with the server's lifespan state
        scope["state"] = {**scope.get("state", {}), "response_capture": capture}

        try:
            await self.app(scope, receive, capture)
        finally:
            if capture.status_code is not None:
                self._log(scope, capture, start_time)

    def _log(self, scope: Scope, capture: ResponseCapture, start_time: float) -> None:
        # Logging must never turn a served response into a failure
        try:
            path = scope["path"]
            if not path.startswith(self.api_prefix):
                return

            entry = RequestLogEntry(
                method=scope["method"],
                path=path,
                status_code=capture.status_code,
                elapsed_ms=int((time.perf_counter() - start_time) * 1000),
                body=capture.body,
            )

            status = entry.status_code
            if status >= 500:
                log_level = logging.ERROR
            elif status >= 400:
                log_level = logging.WARNING
            else:
                log_level = logging.INFO

            logger.log(
                log_level,
                "%s",
                entry.format(),
                extra={
                    "method": entry.method,
                    "path": entry.path,
                    "status": status,
                    "duration_ms": entry.elapsed_ms,
                },
            )
        except Exception:
            logger.debug("Failed to build request log line", exc_info=True)
