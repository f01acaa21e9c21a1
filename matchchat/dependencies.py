from fastapi import Request

from matchchat.services.history import HistoryService
from matchchat.websocket_manager import DeliveryGateway


def get_gateway(request: Request) -> DeliveryGateway:
    return request.app.state.gateway


def get_history_service(request: Request) -> HistoryService:
    return request.app.state.history
