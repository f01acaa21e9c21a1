"""
Error taxonomy shared by the server and the client.

Every error carries a ``kind`` string which travels over the wire (REST
error bodies and ``message_failed`` frames) so a client can map a failure
back onto the same class.
"""

from typing import Optional


class ChatError(Exception):
    kind = "chat_error"
    status_code = 500

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.__class__.__doc__ or self.kind
        super().__init__(self.detail)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "detail": self.detail}


class AuthenticationMissing(ChatError):
    """No caller identity available"""
    kind = "authentication_missing"
    status_code = 401


class ValidationError(ChatError):
    """Missing or empty recipient or text"""
    kind = "validation_error"
    status_code = 400


class StorageError(ChatError):
    """Message store unavailable"""
    kind = "storage_error"
    status_code = 503


class DeliveryMiss(ChatError):
    """Recipient has no live channel or the push attempt failed"""
    kind = "delivery_miss"


class TransportError(ChatError):
    """Client could not reach the server or got no acknowledgement in time"""
    kind = "transport_error"
    status_code = 502


ERRORS_BY_KIND = {
    cls.kind: cls
    for cls in (AuthenticationMissing, ValidationError, StorageError, DeliveryMiss, TransportError)
}


def error_from_kind(kind: Optional[str], detail: Optional[str] = None) -> ChatError:
    """Rebuild an error received over the wire, falling back to ``ChatError``."""
    cls = ERRORS_BY_KIND.get(kind or "", ChatError)
    return cls(detail)
