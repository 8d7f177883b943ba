from __future__ import annotations

from fastapi import FastAPI
from starlette.routing import Route

from echo_server.api.echo import EchoEndpoint
from echo_server.api.metrics import router as metrics_router
from echo_server.config import Settings, get_settings
from echo_server.observability.metrics import MetricsRecorder
from echo_server.observability.middleware import RequestContextMiddleware


VERSION = "0.3.0"


def create_echo_app(settings: Settings | None = None, recorder: MetricsRecorder | None = None) -> FastAPI:
    """Echo app: a single route answering every method on every path.

    The framework's own docs/openapi routes are disabled so that no path is shadowed.
    """
    settings = settings or get_settings()
    unlogged = settings.unlogged_patterns

    app = FastAPI(title="echo-server", version=VERSION, docs_url=None, redoc_url=None, openapi_url=None)
    app.state.recorder = recorder
    app.state.unlogged_patterns = unlogged
    app.router.routes.append(Route("/{path:path}", EchoEndpoint(), include_in_schema=False))
    app.add_middleware(RequestContextMiddleware, recorder=recorder, unlogged_patterns=unlogged)
    return app


def create_metrics_app(recorder: MetricsRecorder) -> FastAPI:
    app = FastAPI(title="echo-server metrics", version=VERSION, docs_url=None, redoc_url=None, openapi_url=None)
    app.state.recorder = recorder
    app.include_router(metrics_router)
    return app
