"""Per-session transport: what the router writes to."""
import logging
from abc import ABC, abstractmethod

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from schemas.ws_messages import WSEnvelope, WSMessageType

logger = logging.getLogger(__name__)


def make_envelope(msg_type: WSMessageType, payload: dict) -> str:
    """Create a JSON string envelope for sending."""
    envelope = WSEnvelope(type=msg_type, payload=payload)
    return envelope.model_dump_json()


class ChannelTransport(ABC):
    """Bidirectional message channel for one session (outbound half)."""

    @abstractmethod
    async def send(self, msg_type: WSMessageType, payload: dict) -> None:
        ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None:
        ...


class WebSocketTransport(ChannelTransport):
    def __init__(self, websocket: WebSocket):
        self._ws = websocket

    async def send(self, msg_type: WSMessageType, payload: dict) -> None:
        await self._ws.send_text(make_envelope(msg_type, payload))

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self._ws.client_state == WebSocketState.DISCONNECTED:
            return
        try:
            await self._ws.close(code=code, reason=reason)
        except RuntimeError as e:
            # Already closed by the peer
            logger.debug("WS close ignored: %s", str(e))
