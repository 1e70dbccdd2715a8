"""Ingestion endpoints called by workers and import tools."""

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request

from collecthub.dependencies.services import get_receive_article, get_receive_vod
from collecthub.schemas.receive import ReceiveResult
from collecthub.services.receive_article import ReceiveArticleService
from collecthub.services.receive_vod import ReceiveVodService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/receive", tags=["receive"])


async def read_body(request: Request) -> dict[str, Any]:
    """Accept JSON or form bodies; a form ``playList`` may carry a JSON string."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid JSON body")
        if not isinstance(body, dict):
            raise HTTPException(status_code=400, detail="JSON object expected")
        return body

    form = await request.form()
    body = {key: value for key, value in form.items() if isinstance(value, str)}
    play_list = body.get("playList")
    if play_list:
        try:
            body["playList"] = json.loads(play_list)
        except ValueError:
            logger.warning("Ignoring malformed playList in form body")
            body["playList"] = []
    return body


@router.post("/vod", response_model=ReceiveResult, response_model_exclude_none=True)
async def receive_vod(
    request: Request,
    service: ReceiveVodService = Depends(get_receive_vod),
):
    body = await read_body(request)
    return await service.receive(body)


@router.post("/art", response_model=ReceiveResult, response_model_exclude_none=True)
async def receive_article(
    request: Request,
    service: ReceiveArticleService = Depends(get_receive_article),
):
    body = await read_body(request)
    return await service.receive(body)
