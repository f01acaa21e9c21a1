from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field


class SendMessageRequest(BaseModel):
    # emptiness is checked by MessageStore.append so it surfaces as ValidationError
    to: Optional[str] = None
    text: Optional[str] = None


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    from_user_id: str = Field(alias="from")
    to_user_id: str = Field(alias="to")
    text: str
    created_at: datetime = Field(alias="createdAt")


class SendMessageResponse(BaseModel):
    ok: bool = True
    message: MessageResponse


class HistoryResponse(BaseModel):
    messages: List[MessageResponse]


class WebSocketMessageData(BaseModel):
    action: str
    data: dict = Field(default_factory=dict)


class SendMessageWebSocket(BaseModel):
    to: Optional[str] = None
    text: Optional[str] = None
    client_message_id: Optional[str] = None


def serialize_message(message) -> dict:
    """Wire form of a persisted message: ``{id, from, to, text, createdAt}``."""
    return MessageResponse.model_validate(message).model_dump(by_alias=True, mode="json")
