"""Session schemas: identity, channel and connection binding models."""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field
import uuid


class Identity(BaseModel):
    """Verified participant identity."""
    id: str
    label: str


class Channel(BaseModel):
    """A project-scoped real-time group, as resolved by the channel lookup."""
    channel_id: str
    name: Optional[str] = None


class SessionState(str, Enum):
    CONNECTING = "connecting"
    ADMITTED = "admitted"
    ACTIVE = "active"
    CLOSED = "closed"


class Session(BaseModel):
    """One live real-time connection bound to one identity and one channel."""
    session_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    identity: Identity
    channel_id: str
    state: SessionState = SessionState.ADMITTED
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def alive(self) -> bool:
        return self.state in (SessionState.ADMITTED, SessionState.ACTIVE)
