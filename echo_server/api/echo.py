from __future__ import annotations

import json
from typing import Any

import structlog
from starlette.requests import Request
from starlette.responses import JSONResponse

from echo_server.echo.encoder import encode
from echo_server.echo.request import read_incoming_request
from echo_server.observability.middleware import is_unlogged


class EchoResponse(JSONResponse):
    def render(self, content: Any) -> bytes:
        try:
            return json.dumps(content, ensure_ascii=False, allow_nan=False, separators=(",", ":")).encode("utf-8")
        except UnicodeEncodeError:
            # Lone surrogates from "\udXXX" escapes only survive as escapes.
            return json.dumps(content, ensure_ascii=True, allow_nan=False, separators=(",", ":")).encode("ascii")


async def echo_request(request: Request) -> EchoResponse:
    """Answer any method on any path with a description of the request."""
    incoming = await read_incoming_request(request)
    document = encode(incoming)

    if not is_unlogged(document.path, getattr(request.app.state, "unlogged_patterns", ())):
        structlog.get_logger("echo").info(
            "echo",
            client=incoming.client,
            params=document.params,
            header_names=sorted(document.headers),
            body_type=type(document.body).__name__,
        )

    return EchoResponse(document.to_content())


class EchoEndpoint:
    """ASGI endpoint around `echo_request`.

    Starlette pins plain function endpoints to GET; an ASGI callable keeps the route
    open to every method, non-standard ones included.
    """

    async def __call__(self, scope: dict[str, Any], receive: Any, send: Any) -> None:
        response = await echo_request(Request(scope, receive))
        await response(scope, receive, send)
