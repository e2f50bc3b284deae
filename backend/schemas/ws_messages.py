"""WebSocket message schemas: canonical contract between participants and BE.

Version: v1
All WS communication flows through these typed envelopes.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
import uuid

AI_IDENTITY_ID = "ai"
AI_IDENTITY_LABEL = "AI"


# ---- Enums ----

class WSMessageType(str, Enum):
    # Client ⇄ Server
    CHANNEL_MESSAGE = "channel-message"

    # Server → Client
    ADMITTED = "admitted"
    ADMISSION_ERROR = "admission-error"
    ERROR = "error"


# ---- Base Envelope ----

class WSEnvelope(BaseModel):
    """Every WS message is wrapped in this envelope."""
    type: WSMessageType
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    payload: dict = Field(default_factory=dict)


# ---- Relay Envelope ----

class MessageEnvelope(BaseModel):
    """One channel message as relayed by the router. Immutable."""
    model_config = ConfigDict(frozen=True)

    sender_identity: str
    sender_label: str
    body: str
    is_synthetic_assistant: bool = False

    @classmethod
    def from_assistant(cls, body: str) -> "MessageEnvelope":
        return cls(
            sender_identity=AI_IDENTITY_ID,
            sender_label=AI_IDENTITY_LABEL,
            body=body,
            is_synthetic_assistant=True,
        )

    def to_payload(self) -> dict:
        """Wire form of the outbound `channel-message` payload."""
        return {
            "body": self.body,
            "sender": {"id": self.sender_identity, "label": self.sender_label},
        }


# =====================================================
#  Client → Server Payloads
# =====================================================

class ChannelMessagePayload(BaseModel):
    """Inbound `channel-message`. `sender` is advisory; the session identity wins."""
    model_config = ConfigDict(extra="ignore")

    body: str
    sender: Optional[dict] = None


# =====================================================
#  Server → Client Payloads
# =====================================================

class AdmittedPayload(BaseModel):
    session_id: str
    channel_id: str
    user_id: str
    server_ts: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class AdmissionErrorPayload(BaseModel):
    reason: str
    code: str


class ErrorPayload(BaseModel):
    message: str
    code: str
    recoverable: bool = True
