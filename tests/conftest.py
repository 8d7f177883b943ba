from __future__ import annotations

from collections.abc import AsyncIterator, Callable

import pytest
from httpx import ASGITransport, AsyncClient

from echo_server.config import Settings, get_settings
from echo_server.main import create_echo_app, create_metrics_app
from echo_server.observability.metrics import MetricsRecorder


@pytest.fixture(autouse=True)
def test_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    # Keep a developer's .env or ECHO_* exports out of the tests.
    monkeypatch.chdir(tmp_path)
    for name in (
        "ECHO_HOST",
        "ECHO_PORT",
        "ECHO_METRICS",
        "ECHO_METRICS_PORT",
        "ECHO_METRICS_USE_TLS",
        "ECHO_LOG_LEVEL",
        "ECHO_TLS_KEY",
        "ECHO_TLS_CERT",
        "ECHO_SKIP_LOGGING_FOR",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()

    yield

    get_settings.cache_clear()


@pytest.fixture
def recorder() -> MetricsRecorder:
    return MetricsRecorder()


@pytest.fixture
def sample(recorder: MetricsRecorder) -> Callable[..., float]:
    """Current value of one exposed sample, 0.0 when it was never touched."""

    def _sample(name: str, labels: dict[str, str] | None = None) -> float:
        return recorder.registry.get_sample_value(name, labels or {}) or 0.0

    return _sample


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
async def api_client(settings: Settings, recorder: MetricsRecorder) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=create_echo_app(settings, recorder))
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
async def metrics_client(recorder: MetricsRecorder) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=create_metrics_app(recorder))
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
