from __future__ import annotations

import asyncio
import contextlib
import signal
from collections.abc import Iterator
from typing import Any

import structlog
import uvicorn

from echo_server.config import Settings
from echo_server.main import create_echo_app, create_metrics_app
from echo_server.observability.logging import resolve_level
from echo_server.observability.metrics import MetricsRecorder


class StartupError(RuntimeError):
    """A listener failed to start."""


class _Server(uvicorn.Server):
    """uvicorn server whose signals are handled by `serve()` for all listeners at once."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


def listen_url(host: str, port: int, tls: bool) -> str:
    proto = "https" if tls else "http"
    if ":" in host and not host.startswith("["):
        host = f"[{host}]"
    return f"{proto}://{host}:{port}"


def _uvicorn_config(app: Any, settings: Settings, port: int, tls: bool) -> uvicorn.Config:
    options: dict[str, Any] = {
        "host": settings.host,
        "port": port,
        "log_config": None,
        "log_level": resolve_level(settings.log_level),
        "access_log": False,
        "server_header": False,
    }
    if tls:
        options["ssl_keyfile"] = str(settings.tls_key_path)
        options["ssl_certfile"] = str(settings.tls_cert_path)
    return uvicorn.Config(app, **options)


def build_servers(settings: Settings, recorder: MetricsRecorder | None = None) -> list[tuple[str, uvicorn.Server]]:
    """Build the echo listener and, when enabled, the metrics listener.

    Returns ``(log event, server)`` pairs; nothing is bound until served.
    """
    if settings.metrics and recorder is None:
        recorder = MetricsRecorder()

    echo_app = create_echo_app(settings, recorder if settings.metrics else None)
    servers = [
        (
            "echo_server_listening",
            _Server(_uvicorn_config(echo_app, settings, settings.port, settings.tls_enabled)),
        )
    ]

    if settings.metrics and recorder is not None:
        metrics_tls = settings.metrics_use_tls and settings.tls_enabled
        servers.append(
            (
                "metrics_server_listening",
                _Server(_uvicorn_config(create_metrics_app(recorder), settings, settings.metrics_port, metrics_tls)),
            )
        )

    return servers


async def _run(event: str, server: uvicorn.Server) -> None:
    try:
        await server.serve()
    except SystemExit as exc:
        # uvicorn calls sys.exit(1) when it cannot bind.
        raise StartupError(f"{event}: listener exited with status {exc.code}") from exc


async def serve(settings: Settings, recorder: MetricsRecorder | None = None) -> None:
    """Run every listener until SIGINT/SIGTERM, then drain them gracefully."""
    log = structlog.get_logger("server")
    servers = build_servers(settings, recorder)

    def _shutdown(sig: signal.Signals) -> None:
        log.info("shutdown_requested", signal=sig.name)
        for _, server in servers:
            server.should_exit = True

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, _shutdown, sig)

    for event, server in servers:
        config = server.config
        tls = config.ssl_keyfile is not None
        log.info(event, url=listen_url(config.host, config.port, tls))

    tasks = [asyncio.create_task(_run(event, server)) for event, server in servers]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        # One listener stopping (or failing to start) stops the rest.
        for _, server in servers:
            server.should_exit = True
        await asyncio.gather(*tasks, return_exceptions=True)
        for task in done:
            task.result()
    finally:
        for sig in (signal.SIGTERM, signal.SIGINT):
            with contextlib.suppress(NotImplementedError):
                loop.remove_signal_handler(sig)
