from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from matchchat.auth import get_current_user_id
from matchchat.dependencies import get_gateway, get_history_service
from matchchat.schemas.message import SendMessageRequest, SendMessageResponse, HistoryResponse, MessageResponse
from matchchat.services.history import HistoryService
from matchchat.websocket_manager import DeliveryGateway

router = APIRouter()


@router.get("/history/{peer_id}", response_model=HistoryResponse)
async def get_chat_history(
    peer_id: str,
    since: Optional[datetime] = Query(None, description="Only messages created after this point"),
    history: HistoryService = Depends(get_history_service),
    current_user_id: str = Depends(get_current_user_id),
):
    """Both directions of the conversation with ``peer_id``, oldest first."""
    messages = await history.get_history(current_user_id, peer_id, since)
    return {"messages": [MessageResponse.model_validate(m) for m in messages]}


@router.post("/send", response_model=SendMessageResponse)
async def send_message(
    message_data: SendMessageRequest,
    gateway: DeliveryGateway = Depends(get_gateway),
    current_user_id: str = Depends(get_current_user_id),
):
    """Persist a message even if the recipient is offline, then push it if they are online."""
    message = await gateway.send(current_user_id, message_data.to, message_data.text)
    return {"ok": True, "message": MessageResponse.model_validate(message)}
