"""WebSocket server: channel relay gateway.

Protocol:
  1. Client connects to /ws?token=<jwt>&channelId=<id>
     (or `Authorization: Bearer <jwt>`; `projectId` is accepted for channelId)
  2. Server admits the session or sends ADMISSION_ERROR and closes
  3. On admission the joining client alone receives ADMITTED
  4. Client sends CHANNEL_MESSAGE frames; every other member receives them,
     and messages addressed to the assistant produce one AI CHANNEL_MESSAGE
     for the whole channel
"""
import json
import logging
from typing import Optional

from fastapi import WebSocket, WebSocketDisconnect

from core.exceptions import AdmissionError
from gateway.router import BroadcastRouter
from gateway.session_gateway import SessionGateway
from gateway.transport import WebSocketTransport
from schemas.ws_messages import (
    WSMessageType,
    AdmittedPayload,
    AdmissionErrorPayload,
    ErrorPayload,
)

logger = logging.getLogger(__name__)

# Admission failure → WS close code
_CLOSE_CODES = {
    AdmissionError.MISSING_CREDENTIAL: 4001,
    AdmissionError.INVALID_CREDENTIAL: 4001,
    AdmissionError.MISSING_CHANNEL_REFERENCE: 4004,
    AdmissionError.CHANNEL_NOT_FOUND: 4004,
    AdmissionError.ADMISSION_FAILED: 1011,
}


def extract_credential(websocket: WebSocket) -> Optional[str]:
    """Query `token` first, then `Authorization: Bearer`."""
    token = websocket.query_params.get("token")
    if token:
        return token
    auth_header = websocket.headers.get("authorization", "")
    if auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip() or None
    return None


def extract_channel_ref(websocket: WebSocket) -> Optional[str]:
    params = websocket.query_params
    return params.get("channelId") or params.get("projectId")


async def handle_ws_connection(
    websocket: WebSocket,
    gateway: SessionGateway,
    router: BroadcastRouter,
) -> None:
    """Main WebSocket handler. One call per connection."""
    await websocket.accept()
    transport = WebSocketTransport(websocket)

    # ---- Phase 1: Admission ----
    try:
        session = await gateway.admit(extract_credential(websocket), extract_channel_ref(websocket))
    except AdmissionError as e:
        await transport.send(
            WSMessageType.ADMISSION_ERROR,
            AdmissionErrorPayload(reason=e.reason, code=e.code).model_dump(),
        )
        await transport.close(code=_CLOSE_CODES.get(e.code, 1011), reason=e.reason)
        logger.warning("WS admission refused: code=%s detail=%s", e.code, e.detail)
        return

    session_id = session.session_id
    try:
        await router.join(session, transport)
        await transport.send(WSMessageType.ADMITTED, AdmittedPayload(
            session_id=session_id,
            channel_id=session.channel_id,
            user_id=session.identity.id,
        ).model_dump(mode="json"))

        logger.info(
            "WS joined: session=%s user=%s channel=%s",
            session_id, session.identity.id, session.channel_id,
        )

        # ---- Phase 2: Message Loop ----
        while True:
            raw = await websocket.receive_text()
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Invalid JSON received on WS: session=%s", session_id)
                await transport.send(WSMessageType.ERROR, ErrorPayload(
                    message="Invalid JSON",
                    code="INVALID_JSON",
                ).model_dump())
                continue

            msg_type = msg.get("type") if isinstance(msg, dict) else None
            if msg_type == WSMessageType.CHANNEL_MESSAGE.value:
                await router.submit(session_id, msg.get("payload"))
            else:
                await transport.send(WSMessageType.ERROR, ErrorPayload(
                    message=f"Unknown message type: {msg_type}",
                    code="UNKNOWN_MSG_TYPE",
                ).model_dump())

    except WebSocketDisconnect:
        logger.info("WS disconnected: session=%s", session_id)
    except Exception as e:
        logger.error("WS error: session=%s error=%s", session_id, str(e), exc_info=True)
    finally:
        await router.leave(session_id)
