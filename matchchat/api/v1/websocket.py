import json
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError

from matchchat.auth import get_user_id_from_token
from matchchat.dependencies import get_gateway
from matchchat.errors import AuthenticationMissing, ChatError, DeliveryMiss
from matchchat.schemas.message import SendMessageWebSocket, WebSocketMessageData, serialize_message
from matchchat.websocket_manager import DeliveryGateway, LiveChannel

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/chat")
async def websocket_chat(websocket: WebSocket, token: str = None):
    try:
        user_id = get_user_id_from_token(token)
    except AuthenticationMissing as e:
        await websocket.close(code=1008, reason=e.detail)
        return

    gateway: DeliveryGateway = websocket.app.state.gateway

    await websocket.accept()
    channel = LiveChannel(websocket, user_id)
    gateway.register(user_id, channel)

    try:
        while True:
            data = await websocket.receive_text()

            try:
                frame = WebSocketMessageData.model_validate(json.loads(data))
            except (json.JSONDecodeError, PydanticValidationError):
                await channel.send_json({"type": "error", "message": "Invalid JSON format"})
                continue

            await handle_websocket_message(frame.action, frame.data, channel, gateway)

    except WebSocketDisconnect:
        pass
    except DeliveryMiss:
        logger.info("Channel closed while replying", extra={"user_id": user_id})
    finally:
        channel.close()


async def handle_websocket_message(action: str, payload: dict, channel: LiveChannel, gateway: DeliveryGateway):

    if action == "send_message":
        await handle_send_message(payload, channel, gateway)

    elif action == "ping":
        await channel.send_json({"type": "pong"})

    else:
        await channel.send_json({"type": "error", "message": f"Unknown action: {action}"})


async def handle_send_message(payload: dict, channel: LiveChannel, gateway: DeliveryGateway):
    """Persist, push to the recipient, then acknowledge on the sender's own channel."""
    try:
        message_data = SendMessageWebSocket.model_validate(payload)
    except PydanticValidationError:
        await channel.send_json({"type": "error", "message": "Invalid send_message payload"})
        return

    try:
        message = await gateway.send(channel.user_id, message_data.to, message_data.text)
    except ChatError as e:
        logger.info("Live send rejected", extra={"user_id": channel.user_id, "kind": e.kind})
        await channel.send_json({
            "type": "message_failed",
            "client_message_id": message_data.client_message_id,
            "error": e.to_dict(),
        })
        return

    await channel.send_json({
        "type": "message_sent",
        "client_message_id": message_data.client_message_id,
        "data": serialize_message(message),
    })


@router.get("/online-users")
async def get_online_users(gateway: DeliveryGateway = Depends(get_gateway)):
    connected_users = gateway.get_connected_users()
    return {"online_users": connected_users, "count": len(connected_users)}
