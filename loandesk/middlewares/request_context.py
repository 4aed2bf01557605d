from uuid import uuid4

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from loandesk.core import context


_MAX_REQUEST_ID_LENGTH = 128


class RequestContextMiddleware:
    """Bind a request id to the logging context and echo it back as X-Request-ID."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        incoming = headers.get(b"x-request-id", b"").decode("latin-1").strip()
        request_id = incoming[:_MAX_REQUEST_ID_LENGTH] or str(uuid4())

        context.clear_context()
        context.set_request_id(request_id)

        async def send_with_request_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers_list = list(message.get("headers", []))
                headers_list.append((b"x-request-id", request_id.encode("latin-1")))
                message["headers"] = headers_list
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            context.clear_context()
