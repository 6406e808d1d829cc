from __future__ import annotations

from fastapi import APIRouter, Query

from chat_relay.api.deps import RelayDep
from chat_relay.api.v1.schemas.message import MessageResponse
from chat_relay.application.dto.payloads import message_payload

router = APIRouter(prefix="/api/v1", tags=["messages"])


@router.get("/messages", response_model=list[MessageResponse])
async def list_messages(
    relay: RelayDep,
    limit: int | None = Query(None, ge=0),
    skip: int = Query(0, ge=0),
) -> list[MessageResponse]:
    messages = await relay.pipeline.history(limit, skip)
    return [MessageResponse.model_validate(message_payload(m)) for m in messages]
