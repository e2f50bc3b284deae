"""Session gateway: admits a connection into exactly one channel.

Checks run in a fixed order and stop at the first failure:
credential present → credential valid → channel reference well-formed →
channel exists. No channel lookup happens for an unauthenticated caller.
Membership is not touched here; the broadcast router owns it.
"""
import logging
from typing import Optional

from auth.tokens import IdentityVerifier
from channels.lookup import ChannelLookup
from core.exceptions import AdmissionError, AuthError
from observability.event_sink import EventSink
from schemas.session import Session, SessionState

logger = logging.getLogger(__name__)


class SessionGateway:
    def __init__(self, verifier: IdentityVerifier, lookup: ChannelLookup, events: EventSink):
        self._verifier = verifier
        self._lookup = lookup
        self._events = events

    async def admit(self, credential: Optional[str], channel_ref: Optional[str]) -> Session:
        """Return an admitted Session or raise AdmissionError with a specific reason."""
        try:
            session = await self._admit(credential, channel_ref)
        except AdmissionError as e:
            self._events.warn("admission_refused", {
                "code": e.code,
                "reason": e.reason,
                "detail": e.detail,
                "channel_ref": channel_ref,
            })
            raise
        self._events.info("admission_granted", {
            "session_id": session.session_id,
            "user_id": session.identity.id,
            "channel_id": session.channel_id,
        })
        return session

    async def _admit(self, credential: Optional[str], channel_ref: Optional[str]) -> Session:
        credential = (credential or "").strip()
        if not credential:
            raise AdmissionError(AdmissionError.MISSING_CREDENTIAL)

        try:
            identity = await self._verifier.verify(credential)
        except AuthError as e:
            raise AdmissionError(AdmissionError.INVALID_CREDENTIAL, detail=e.message)

        channel_ref = (channel_ref or "").strip()
        if not channel_ref or not self._lookup.is_well_formed(channel_ref):
            raise AdmissionError(
                AdmissionError.MISSING_CHANNEL_REFERENCE,
                detail="Invalid or missing channel reference",
            )

        try:
            channel = await self._lookup.resolve(channel_ref)
        except Exception as e:
            logger.error("Channel lookup failed: channel=%s error=%s", channel_ref, str(e), exc_info=True)
            raise AdmissionError(AdmissionError.ADMISSION_FAILED, detail="Channel lookup unavailable")
        if channel is None:
            raise AdmissionError(AdmissionError.CHANNEL_NOT_FOUND)

        session = Session(
            identity=identity,
            channel_id=channel.channel_id,
            state=SessionState.ADMITTED,
        )
        logger.info(
            "Session admitted: session=%s user=%s channel=%s",
            session.session_id, identity.id, channel.channel_id,
        )
        return session
