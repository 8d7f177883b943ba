from __future__ import annotations

from starlette.requests import Request

from echo_server.models.schemas import IncomingRequest


def client_address(request: Request) -> str | None:
    client = request.client
    if client is None:
        return None
    host, port = client.host, client.port
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


async def read_incoming_request(request: Request) -> IncomingRequest:
    """Snapshot a starlette request into the transport-independent model.

    ``scope["path"]`` is already percent-decoded by the ASGI server; query pairs are
    decoded by starlette and kept in arrival order with duplicates.
    """
    return IncomingRequest(
        method=request.method,
        path=request.scope.get("path") or "/",
        query=list(request.query_params.multi_items()),
        headers=list(request.headers.raw),
        body=await request.body(),
        client=client_address(request),
    )
