"""
API Server — Cache-Disabling Headers Middleware
=================================================

What:  Marks every response as uncacheable.
Why:   API responses depend on cookies and live data. CDNs in front of the
       serverless host, and browsers, must never replay a stored copy.
How:   Pure ASGI middleware rewriting the headers of http.response.start.
When:  Outermost middleware, so it also covers CORS preflight answers and
       error responses.
"""

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


class NoCacheHeadersMiddleware:
    """Unconditionally overwrites Cache-Control, Pragma and Expires."""

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_without_cache(message: Message) -> None:
            if message["type"] == "http.response.start":
                message.setdefault("headers", [])
                headers = MutableHeaders(scope=message)
                for name, value in NO_CACHE_HEADERS.items():
                    headers[name] = value
            await send(message)

        await self.app(scope, receive, send_without_cache)
