from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Sequence
from typing import Any

import structlog
from pydantic import ValidationError

from echo_server.config import LOG_LEVELS, Settings
from echo_server.main import VERSION
from echo_server.observability.logging import configure_logging
from echo_server.server import serve


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="echo-server",
        description="A simple HTTP echo server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument("--host", default=None, help="Listen host [env: ECHO_HOST] (default: ::)")
    parser.add_argument("--port", type=int, default=None, help="Echo listen port [env: ECHO_PORT] (default: 8080)")
    parser.add_argument(
        "--metrics",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Serve Prometheus metrics [env: ECHO_METRICS] (default: enabled)",
    )
    parser.add_argument(
        "--metrics-port", type=int, default=None, help="Metrics listen port [env: ECHO_METRICS_PORT] (default: 9090)"
    )
    parser.add_argument(
        "--metrics-use-tls",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Serve metrics over TLS too [env: ECHO_METRICS_USE_TLS] (default: disabled)",
    )
    parser.add_argument(
        "--log-level",
        type=str.lower,
        choices=LOG_LEVELS,
        default=None,
        help="Log verbosity [env: ECHO_LOG_LEVEL] (default: info)",
    )
    parser.add_argument("--tls-key", default=None, help="PEM private key [env: ECHO_TLS_KEY]")
    parser.add_argument("--tls-cert", default=None, help="PEM certificate chain [env: ECHO_TLS_CERT]")
    parser.add_argument(
        "--skip-logging-for",
        default=None,
        help=(
            "Comma or semi-colon separated list of URL patterns that should not be logged "
            "[env: ECHO_SKIP_LOGGING_FOR]\n"
            "Example: --skip-logging-for='some/endpoint; another/endpoint\\?with=some-param'"
        ),
    )
    return parser


def settings_from_args(args: argparse.Namespace) -> Settings:
    """Environment (and .env) first, then any flag given on the command line."""
    # Keyed by alias so a flag always beats the matching ECHO_* variable.
    fields = Settings.model_fields
    overrides: dict[str, Any] = {
        fields[key].alias or key: value
        for key, value in vars(args).items()
        if value is not None and key in fields
    }
    return Settings(**overrides)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = settings_from_args(args)
    except ValidationError as exc:
        configure_logging("info")
        structlog.get_logger("config").error("invalid_configuration", errors=str(exc))
        return 1

    configure_logging(settings.log_level)
    log = structlog.get_logger("server")

    try:
        asyncio.run(serve(settings))
    except KeyboardInterrupt:
        pass
    except Exception:  # noqa: BLE001
        log.exception("startup_failed")
        return 1

    log.info("shutdown_complete")
    return 0


if __name__ == "__main__":
    sys.exit(main())
