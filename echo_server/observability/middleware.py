from __future__ import annotations

import re
import uuid
from time import perf_counter
from typing import Any, Callable, Iterable

import structlog
from starlette.datastructures import MutableHeaders

from echo_server.observability.metrics import MetricsRecorder


def is_unlogged(path: str, patterns: Iterable[re.Pattern[str]]) -> bool:
    return any(pattern.search(path) for pattern in patterns)


class RequestContextMiddleware:
    """Adds request_id context, access logs, and HTTP metrics for echoed requests."""

    def __init__(
        self,
        app: Callable[..., Any],
        recorder: MetricsRecorder | None = None,
        unlogged_patterns: Iterable[re.Pattern[str]] = (),
    ) -> None:
        self.app = app
        self.recorder = recorder
        self.unlogged_patterns = list(unlogged_patterns)

    async def __call__(self, scope: dict[str, Any], receive: Callable[..., Any], send: Callable[..., Any]) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        request_id = str(uuid.uuid4())
        path = scope.get("path") or "/"
        method = scope.get("method", "")

        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            path=path,
            method=method,
        )

        start = perf_counter()
        status_code: int = 500

        async def send_wrapper(message: dict[str, Any]) -> None:
            nonlocal status_code

            if message.get("type") == "http.response.start":
                status_code = int(message.get("status", 500))
                headers = MutableHeaders(scope=message)
                headers["X-Request-ID"] = request_id

            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            elapsed = perf_counter() - start

            # Update metrics first so they update even if logging misbehaves.
            if self.recorder is not None:
                self.recorder.record(method, path, status_code, elapsed)

            if not is_unlogged(path, self.unlogged_patterns):
                client = scope.get("client")
                structlog.get_logger("access").debug(
                    "http_request",
                    status_code=status_code,
                    elapsed_ms=round(elapsed * 1000.0, 2),
                    client=f"{client[0]}:{client[1]}" if client else None,
                )

            structlog.contextvars.clear_contextvars()
