from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import Response


router = APIRouter(tags=["metrics"])


@router.get("/metrics")
async def metrics(request: Request) -> Response:
    recorder = request.app.state.recorder
    content, media_type = recorder.render()
    return Response(content=content, media_type=media_type)
