"""Broadcast router: channel membership and message fan-out.

Per session: connecting → admitted → active ⇄ messages → closed.

Ordering and isolation:
  - each channel has one asyncio.Lock; relay and membership changes take it
  - while the lock is held the router only snapshots members and enqueues
    (put_nowait); it never awaits I/O under the lock
  - every member owns a bounded FIFO queue drained by its own writer task,
    so a slow transport delays only itself; overflow evicts that member
  - closing an evicted transport runs in its own task, never inline
  - assistant directives run as independent tasks off the relay path and
    always finish with exactly one synthetic message to the channel
"""
import asyncio
import logging
import re
from typing import Dict, List, Optional, Set

from pydantic import ValidationError

from config.settings import get_settings
from generation.orchestrator import InvocationOrchestrator
from gateway.transport import ChannelTransport
from observability.event_sink import EventSink
from schemas.ai_response import error_response
from schemas.session import Session, SessionState
from schemas.ws_messages import ChannelMessagePayload, MessageEnvelope, WSMessageType

logger = logging.getLogger(__name__)

ASSISTANT_FAILURE_TEXT = "Sorry, I encountered an error processing your request. Please try again."

CLOSE_SLOW_CONSUMER = 1013
CLOSE_GOING_AWAY = 1001


def compile_trigger(token: str) -> re.Pattern:
    """Case-insensitive trigger token anywhere in the body, with its surrounding whitespace."""
    return re.compile(r"\s*" + re.escape(token) + r"\s*", re.IGNORECASE)


def extract_directive(body: str, trigger: re.Pattern) -> Optional[str]:
    """Directive text with every trigger occurrence removed, or None if not assistant-directed."""
    if not trigger.search(body):
        return None
    return trigger.sub(" ", body).strip()


class _Member:
    def __init__(self, session: Session, transport: ChannelTransport, queue_max: int):
        self.session = session
        self.transport = transport
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_max)
        self.writer: Optional[asyncio.Task] = None


class _ChannelState:
    def __init__(self, channel_id: str):
        self.channel_id = channel_id
        self.lock = asyncio.Lock()
        self.members: Dict[str, _Member] = {}
        self.assistant_tasks: Set[asyncio.Task] = set()
        self.closed = False


class BroadcastRouter:
    """Owns every channel's member set. Nothing else mutates membership."""

    def __init__(
        self,
        orchestrator: InvocationOrchestrator,
        events: EventSink,
        trigger_token: Optional[str] = None,
        member_queue_max: Optional[int] = None,
    ):
        settings = get_settings()
        self._orchestrator = orchestrator
        self._events = events
        self._trigger = compile_trigger(trigger_token or settings.AI_TRIGGER_TOKEN)
        self._queue_max = member_queue_max if member_queue_max is not None else settings.MEMBER_QUEUE_MAX
        self._channels: Dict[str, _ChannelState] = {}
        self._sessions: Dict[str, str] = {}  # session_id -> channel_id
        self._background: Set[asyncio.Task] = set()
        self._closing: Set[asyncio.Task] = set()

    # ---- Introspection ----

    @property
    def orchestrator(self) -> InvocationOrchestrator:
        return self._orchestrator

    def active_session_count(self) -> int:
        return len(self._sessions)

    def channel_count(self) -> int:
        return len(self._channels)

    def member_count(self, channel_id: str) -> int:
        state = self._channels.get(channel_id)
        return len(state.members) if state else 0

    # ---- Membership ----

    async def join(self, session: Session, transport: ChannelTransport) -> None:
        """Register an admitted session. Silent to peers."""
        if session.state != SessionState.ADMITTED:
            raise ValueError(f"Session {session.session_id} is not admitted (state={session.state.value})")
        if session.session_id in self._sessions:
            raise ValueError(f"Session {session.session_id} already joined")

        member = _Member(session, transport, self._queue_max)
        channel_id = session.channel_id
        while True:
            state = self._channels.get(channel_id)
            if state is None:
                state = _ChannelState(channel_id)
                self._channels[channel_id] = state
            async with state.lock:
                if state.closed:
                    # Emptied and dropped while we waited; start a fresh one
                    continue
                state.members[session.session_id] = member
                self._sessions[session.session_id] = channel_id
                member_count = len(state.members)
                break

        member.writer = asyncio.create_task(
            self._writer(member), name=f"writer:{session.session_id[:12]}"
        )
        session.state = SessionState.ACTIVE
        self._events.info("member_joined", {
            "channel_id": channel_id,
            "session_id": session.session_id,
            "user_id": session.identity.id,
            "member_count": member_count,
        })

    async def leave(
        self,
        session_id: str,
        close_code: Optional[int] = None,
        reason: str = "",
    ) -> None:
        """Remove a session. Idempotent. Cancels assistant work when the channel empties."""
        channel_id = self._sessions.pop(session_id, None)
        if channel_id is None:
            return

        state = self._channels.get(channel_id)
        member: Optional[_Member] = None
        remaining = 0
        orphaned: List[asyncio.Task] = []
        if state is not None:
            async with state.lock:
                member = state.members.pop(session_id, None)
                remaining = len(state.members)
                if remaining == 0:
                    state.closed = True
                    if self._channels.get(channel_id) is state:
                        del self._channels[channel_id]
                    orphaned = list(state.assistant_tasks)

        if member is not None:
            member.session.state = SessionState.CLOSED
            if member.writer is not None and member.writer is not asyncio.current_task():
                member.writer.cancel()
            if close_code is not None:
                self._start_close(member, close_code, reason)

        for task in orphaned:
            task.cancel()

        self._events.info("member_left", {
            "channel_id": channel_id,
            "session_id": session_id,
            "member_count": remaining,
        })
        if remaining == 0:
            self._events.info("channel_emptied", {
                "channel_id": channel_id,
                "cancelled_assistant_tasks": len(orphaned),
            })

    # ---- Relay ----

    async def submit(self, session_id: str, payload: object) -> None:
        """Handle one inbound `channel-message` payload from a member."""
        channel_id = self._sessions.get(session_id)
        state = self._channels.get(channel_id) if channel_id else None
        member = state.members.get(session_id) if state else None
        if member is None:
            logger.warning("Submit from unknown session: session=%s", session_id)
            return

        try:
            message = ChannelMessagePayload.model_validate(payload)
        except ValidationError:
            self._events.warn("malformed_message_dropped", {
                "channel_id": channel_id,
                "session_id": session_id,
                "payload_type": type(payload).__name__,
            })
            return

        body = message.body
        identity = member.session.identity
        envelope = MessageEnvelope(
            sender_identity=identity.id,
            sender_label=identity.label,
            body=body,
        )
        await self._broadcast(channel_id, envelope, exclude=session_id)

        directive = extract_directive(body, self._trigger)
        if directive is not None:
            self._dispatch_assistant(state, member.session, directive)

    async def _broadcast(
        self,
        channel_id: str,
        envelope: MessageEnvelope,
        exclude: Optional[str] = None,
    ) -> int:
        """Enqueue to a snapshot of the channel's members. Returns recipients."""
        state = self._channels.get(channel_id)
        if state is None:
            return 0

        overflowed: List[str] = []
        async with state.lock:
            if state.closed:
                return 0
            targets = [m for sid, m in list(state.members.items()) if sid != exclude]
            for member in targets:
                try:
                    member.queue.put_nowait(envelope)
                except asyncio.QueueFull:
                    overflowed.append(member.session.session_id)

        for sid in overflowed:
            self._events.warn("member_evicted", {
                "channel_id": channel_id,
                "session_id": sid,
                "reason": "outbound queue full",
            })
            await self.leave(sid, close_code=CLOSE_SLOW_CONSUMER, reason="Slow consumer")

        return len(targets) - len(overflowed)

    async def _writer(self, member: _Member) -> None:
        """Drain one member's queue into its transport, in order."""
        session_id = member.session.session_id
        while True:
            envelope = await member.queue.get()
            try:
                await member.transport.send(WSMessageType.CHANNEL_MESSAGE, envelope.to_payload())
            except Exception as e:
                self._events.warn("delivery_failed", {
                    "channel_id": member.session.channel_id,
                    "session_id": session_id,
                    "error": str(e),
                })
                self._spawn(self.leave(session_id))
                return
            finally:
                member.queue.task_done()

    # ---- Assistant ----

    def _dispatch_assistant(self, state: _ChannelState, session: Session, directive: str) -> None:
        task = asyncio.create_task(
            self._run_assistant(state.channel_id, session, directive),
            name=f"assistant:{state.channel_id}",
        )
        state.assistant_tasks.add(task)
        task.add_done_callback(state.assistant_tasks.discard)

    async def _run_assistant(self, channel_id: str, session: Session, directive: str) -> None:
        self._events.info("assistant_request_received", {
            "channel_id": channel_id,
            "session_id": session.session_id,
            "user_id": session.identity.id,
            "prompt_length": len(directive),
        })
        try:
            response = await self._orchestrator.invoke(directive)
        except asyncio.CancelledError:
            logger.info("Assistant task cancelled: channel=%s session=%s", channel_id, session.session_id)
            raise
        except Exception as e:
            logger.error("Assistant invocation failed: channel=%s error=%s", channel_id, str(e), exc_info=True)
            self._events.error("assistant_invocation_failed", {
                "channel_id": channel_id,
                "error": str(e),
            })
            response = error_response(ASSISTANT_FAILURE_TEXT, str(e) or type(e).__name__)

        recipients = await self._broadcast(channel_id, MessageEnvelope.from_assistant(response.to_json()))
        self._events.info("assistant_response_sent", {
            "channel_id": channel_id,
            "recipients": recipients,
            "file_count": len(response.file_tree),
            "text_length": len(response.text),
            "has_error": response.error is not None,
        })

    # ---- Lifecycle ----

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _start_close(self, member: _Member, code: int, reason: str) -> None:
        """Close a departed member's transport off the caller's path."""
        task = asyncio.create_task(
            self._close_transport(member, code, reason),
            name=f"close:{member.session.session_id[:12]}",
        )
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    async def _close_transport(self, member: _Member, code: int, reason: str) -> None:
        try:
            await member.transport.close(code, reason)
        except Exception as e:
            logger.warning(
                "Transport close failed: session=%s code=%d error=%s",
                member.session.session_id, code, str(e),
            )

    async def wait_idle(self) -> None:
        """Wait until assistant tasks finish and every live member's queue is drained."""
        while True:
            pending = [t for s in list(self._channels.values()) for t in s.assistant_tasks]
            pending += list(self._background)
            if not pending:
                break
            await asyncio.gather(*pending, return_exceptions=True)

        joins = [
            m.queue.join()
            for s in list(self._channels.values())
            for m in list(s.members.values())
            if m.writer is not None and not m.writer.done()
        ]
        if joins:
            await asyncio.gather(*joins)

    async def shutdown(self, grace_s: float = 5.0) -> None:
        """Let in-flight work finish for up to `grace_s`, then cancel and close everything."""
        try:
            await asyncio.wait_for(self.wait_idle(), timeout=grace_s)
        except asyncio.TimeoutError:
            logger.warning("Router shutdown grace period elapsed; cancelling in-flight work")

        tasks = [t for s in list(self._channels.values()) for t in s.assistant_tasks]
        for task in tasks:
            task.cancel()
        for session_id in list(self._sessions):
            await self.leave(session_id, close_code=CLOSE_GOING_AWAY, reason="Server shutdown")
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        closing = list(self._closing)
        if closing:
            _, stuck = await asyncio.wait(closing, timeout=grace_s)
            for task in stuck:
                task.cancel()
            if stuck:
                logger.warning("Abandoned %d transport close(s) at shutdown", len(stuck))
                await asyncio.gather(*stuck, return_exceptions=True)
        logger.info("Router shut down")
