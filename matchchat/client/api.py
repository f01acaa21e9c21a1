import asyncio
import logging
from datetime import datetime
from typing import List, Optional

import requests

from matchchat.config import settings
from matchchat.errors import TransportError, error_from_kind
from matchchat.schemas.message import MessageResponse

logger = logging.getLogger(__name__)


class ChatApiClient:
    """
    REST transport: send and history fetch.

    ``requests`` is blocking, so each call runs in a worker thread and is
    bounded by ``timeout``.
    """

    def __init__(self, base_url: str, token: str, timeout: Optional[float] = None, session=None):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout or settings.REQUEST_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            response = self.session.request(
                method,
                f"{self.base_url}{path}",
                headers={"Authorization": f"Bearer {self.token}"},
                timeout=self.timeout,
                **kwargs
            )
        except requests.RequestException as e:
            raise TransportError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            detail = body.get("detail") if isinstance(body, dict) else None
            kind = body.get("error") if isinstance(body, dict) else None
            raise error_from_kind(kind, detail if isinstance(detail, str) else response.text)

        try:
            return response.json()
        except ValueError as e:
            raise TransportError("malformed response body") from e

    async def send_message(self, to: str, text: str) -> MessageResponse:
        body = await asyncio.to_thread(self._request, "POST", "/api/v1/chat/send", json={"to": to, "text": text})
        return MessageResponse.model_validate(body["message"])

    async def fetch_history(self, peer_id: str, since: Optional[datetime] = None) -> List[MessageResponse]:
        params = {"since": since.isoformat()} if since is not None else None
        body = await asyncio.to_thread(self._request, "GET", f"/api/v1/chat/history/{peer_id}", params=params)
        return [MessageResponse.model_validate(m) for m in body.get("messages", [])]

    def close(self):
        self.session.close()
