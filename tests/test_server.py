import asyncio
import logging
import sys
from types import SimpleNamespace

import pytest
from structlog.testing import capture_logs

from echo_server import __main__ as cli
from echo_server import server as server_module
from echo_server.config import Settings
from echo_server.observability.logging import TRACE, resolve_level
from echo_server.observability.metrics import MetricsRecorder
from echo_server.server import StartupError, build_servers, listen_url, serve


def test_echo_and_metrics_listen_on_separate_ports() -> None:
    recorder = MetricsRecorder()
    servers = build_servers(Settings(host="127.0.0.1", port=8081, metrics_port=9091), recorder)

    assert [event for event, _ in servers] == ["echo_server_listening", "metrics_server_listening"]
    echo, metrics = (server.config for _, server in servers)
    assert (echo.host, echo.port) == ("127.0.0.1", 8081)
    assert (metrics.host, metrics.port) == ("127.0.0.1", 9091)
    assert echo.app.state.recorder is recorder
    assert metrics.app.state.recorder is recorder


def test_metrics_disabled_serves_echo_only() -> None:
    servers = build_servers(Settings(metrics=False))
    assert [event for event, _ in servers] == ["echo_server_listening"]
    assert servers[0][1].config.app.state.recorder is None


def test_tls_applies_to_echo_and_to_metrics_only_when_asked() -> None:
    settings = Settings(tls_key="key.pem", tls_cert="cert.pem")
    echo, metrics = (server.config for _, server in build_servers(settings))
    assert (echo.ssl_keyfile, echo.ssl_certfile) == ("key.pem", "cert.pem")
    assert metrics.ssl_keyfile is None

    settings = Settings(tls_key="key.pem", tls_cert="cert.pem", metrics_use_tls=True)
    _, metrics = (server.config for _, server in build_servers(settings))
    assert metrics.ssl_certfile == "cert.pem"


def test_metrics_use_tls_without_material_stays_plain() -> None:
    _, metrics = (server.config for _, server in build_servers(Settings(metrics_use_tls=True)))
    assert metrics.ssl_keyfile is None


@pytest.mark.parametrize(
    "host, port, tls, expected",
    [
        ("0.0.0.0", 8080, False, "http://0.0.0.0:8080"),
        ("::", 8080, True, "https://[::]:8080"),
        ("[::1]", 9090, False, "http://[::1]:9090"),
    ],
)
def test_listen_url(host: str, port: int, tls: bool, expected: str) -> None:
    assert listen_url(host, port, tls) == expected


@pytest.mark.parametrize(
    "name, level",
    [("trace", TRACE), ("debug", logging.DEBUG), ("INFO", logging.INFO), ("warn", logging.WARNING), ("error", logging.ERROR)],
)
def test_resolve_level(name: str, level: int) -> None:
    assert resolve_level(name) == level


def test_resolve_level_rejects_unknown() -> None:
    with pytest.raises(ValueError):
        resolve_level("chatty")


def test_invalid_configuration_exits_non_zero(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)
    assert cli.main(["--tls-key", "only-a-key.pem"]) == 1


def test_startup_failure_exits_non_zero(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _fail(settings: Settings) -> None:
        raise OSError("address already in use")

    monkeypatch.setattr(cli, "configure_logging", lambda level: None)
    monkeypatch.setattr(cli, "serve", _fail)
    assert cli.main(["--port", "8080"]) == 1


def test_clean_shutdown_exits_zero(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[Settings] = []

    async def _serve(settings: Settings) -> None:
        seen.append(settings)

    monkeypatch.setattr(cli, "configure_logging", lambda level: None)
    monkeypatch.setattr(cli, "serve", _serve)
    assert cli.main(["--port", "8082", "--skip-logging-for", "^/healthz"]) == 0
    assert seen[0].port == 8082


class _FakeServer:
    def __init__(self, port: int, fail: bool = False) -> None:
        self.fail = fail
        self.should_exit = False
        self.config = SimpleNamespace(host="127.0.0.1", port=port, ssl_keyfile=None)

    async def serve(self) -> None:
        if self.fail:
            sys.exit(1)
        while not self.should_exit:
            await asyncio.sleep(0.01)


async def test_listener_that_cannot_bind_stops_the_others(monkeypatch: pytest.MonkeyPatch) -> None:
    healthy, broken = _FakeServer(8080), _FakeServer(9090, fail=True)
    monkeypatch.setattr(
        server_module,
        "build_servers",
        lambda settings, recorder=None: [("echo_server_listening", healthy), ("metrics_server_listening", broken)],
    )

    with pytest.raises(StartupError, match="metrics_server_listening"):
        await serve(Settings())
    assert healthy.should_exit


def test_bind_failure_is_logged_as_startup_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _serve(settings: Settings) -> None:
        raise StartupError("echo_server_listening: listener exited with status 1")

    monkeypatch.setattr(cli, "configure_logging", lambda level: None)
    monkeypatch.setattr(cli, "serve", _serve)
    with capture_logs() as logs:
        assert cli.main([]) == 1
    assert any(entry["event"] == "startup_failed" for entry in logs)
