from __future__ import annotations

from fastapi import APIRouter

from chat_relay.api.deps import RelayDep
from chat_relay.api.v1.schemas.presence import PresenceResponse

router = APIRouter(prefix="/api/v1", tags=["presence"])


@router.get("/presence", response_model=PresenceResponse)
async def get_presence(relay: RelayDep) -> PresenceResponse:
    return PresenceResponse(
        online_users=relay.presence.snapshot(),
        typing_users=relay.typing.snapshot(),
    )
