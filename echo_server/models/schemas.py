from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class IncomingRequest(BaseModel):
    method: str
    path: str = "/"
    query: list[tuple[str, str]] = Field(default_factory=list)
    headers: list[tuple[bytes, bytes]] = Field(default_factory=list)
    body: bytes = b""
    client: str | None = None


class EchoDocument(BaseModel):
    method: str
    path: str
    headers: dict[str, str]
    params: dict[str, str]
    body: Any = None

    def to_content(self) -> dict[str, Any]:
        # The body is arbitrary parsed JSON; hand it over untouched.
        content = self.model_dump(exclude={"body"})
        content["body"] = self.body
        return content
