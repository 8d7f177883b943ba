from __future__ import annotations

import json
import math
from typing import Any

from echo_server.models.schemas import EchoDocument, IncomingRequest


HEADER_SEPARATOR = ", "


class _NotJson(ValueError):
    pass


def _reject_constant(name: str) -> Any:
    # NaN / Infinity are accepted by the stdlib parser but are not JSON.
    raise _NotJson(name)


def _parse_float(raw: str) -> float:
    value = float(raw)
    if not math.isfinite(value):
        raise _NotJson(raw)
    return value


def decode_text(raw: bytes) -> str:
    """Decode a header value: UTF-8 when valid, otherwise ISO-8859-1 (total)."""
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


def decode_body(body: bytes) -> Any:
    """
    Turn raw body bytes into the echoed JSON value.

    Empty bodies become ``None``. Anything that is valid UTF-8 *and* strict JSON is
    embedded structurally, whatever the declared content type. Everything else is
    echoed as a string with U+FFFD substituted for invalid UTF-8 sequences.
    """
    if not body:
        return None

    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError:
        return body.decode("utf-8", errors="replace")

    try:
        return json.loads(text, parse_constant=_reject_constant, parse_float=_parse_float)
    except (ValueError, RecursionError):
        return text


def merge_headers(raw_headers: list[tuple[bytes, bytes]]) -> dict[str, str]:
    """Lower-case header names and comma-join repeated ones in arrival order."""
    merged: dict[str, list[str]] = {}
    for raw_name, raw_value in raw_headers:
        name = decode_text(raw_name).lower()
        merged.setdefault(name, []).append(decode_text(raw_value))
    return {name: HEADER_SEPARATOR.join(values) for name, values in merged.items()}


def merge_params(query: list[tuple[str, str]]) -> dict[str, str]:
    """Last value wins for a repeated key; the key keeps its first position."""
    params: dict[str, str] = {}
    for key, value in query:
        params[key] = value
    return params


def normalize_path(path: str) -> str:
    if not path.startswith("/"):
        return "/" + path
    return path


def encode(request: IncomingRequest) -> EchoDocument:
    return EchoDocument(
        method=request.method.upper(),
        path=normalize_path(request.path),
        headers=merge_headers(request.headers),
        params=merge_params(request.query),
        body=decode_body(request.body),
    )
