"""Devroom Backend: channel relay entry point.

Real-time project channels with an in-channel code-generation assistant.
"""
from contextlib import asynccontextmanager
from pathlib import Path
import logging
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, APIRouter, WebSocket, HTTPException, Request
from starlette.middleware.cors import CORSMiddleware
from pydantic import BaseModel

# Load env before anything else
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / ".env")

from config.settings import get_settings
from config.feature_flags import use_in_memory_channels
from config.validators import validate_startup_config
from core.logging_config import setup_logging
from core.database import close_db, ping_db
from auth.tokens import JWTIdentityVerifier, generate_token
from channels.lookup import ChannelLookup, InMemoryChannelLookup, MongoChannelLookup
from gateway.router import BroadcastRouter
from gateway.session_gateway import SessionGateway
from gateway.ws_server import handle_ws_connection
from generation.orchestrator import InvocationOrchestrator, get_invocation_orchestrator
from observability.event_sink import LoggingEventSink

VERSION = "0.1.0"

# ---- Setup logging ----
setup_logging()
logger = logging.getLogger(__name__)


def _build_lookup() -> ChannelLookup:
    if use_in_memory_channels():
        lookup = InMemoryChannelLookup.from_refs(get_settings().DEV_CHANNELS)
        logger.info("Channel lookup: in-memory (USE_IN_MEMORY_CHANNELS=true) channels=%s",
                    ",".join(lookup.channel_ids()) or "<none>")
        return lookup
    return MongoChannelLookup()


def create_app(
    lookup: Optional[ChannelLookup] = None,
    orchestrator: Optional[InvocationOrchestrator] = None,
) -> FastAPI:
    """Build the app. Collaborators may be injected; otherwise they come from settings."""

    # ---- Lifespan ----
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings = get_settings()
        logger.info("Devroom BE starting — env=%s", settings.ENV)
        validate_startup_config(settings)

        events = LoggingEventSink()
        channel_lookup = lookup or _build_lookup()
        router = BroadcastRouter(orchestrator or get_invocation_orchestrator(), events)
        app.state.lookup = channel_lookup
        app.state.router = router
        app.state.gateway = SessionGateway(JWTIdentityVerifier(), channel_lookup, events)
        logger.info("Devroom BE ready")
        yield
        await router.shutdown()
        if isinstance(channel_lookup, MongoChannelLookup):
            await close_db()
        logger.info("Devroom BE shutdown complete")

    # ---- App ----
    app = FastAPI(
        title="Devroom Channel Relay",
        version=VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_credentials=True,
        allow_origins=get_settings().CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(_build_api_router())

    # =====================================================
    #  WebSocket Endpoint
    # =====================================================

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """Main WebSocket endpoint for channel participants."""
        await handle_ws_connection(websocket, app.state.gateway, app.state.router)

    return app


# =====================================================
#  REST Endpoints
# =====================================================

class DevTokenRequest(BaseModel):
    user_id: str
    label: Optional[str] = None


class DevTokenResponse(BaseModel):
    token: str
    user_id: str
    env: str


def _build_api_router() -> APIRouter:
    api_router = APIRouter(prefix="/api")

    # ---- Health ----
    @api_router.get("/health")
    async def health(request: Request):
        settings = get_settings()
        router: BroadcastRouter = request.app.state.router
        provider = router.orchestrator.client.provider
        status = {
            "status": "ok",
            "env": settings.ENV,
            "version": VERSION,
            "active_sessions": router.active_session_count(),
            "channels": router.channel_count(),
            "generation_provider": type(provider).__name__,
            "generation_healthy": await provider.is_healthy(),
            "mock_llm": settings.MOCK_LLM,
        }
        if isinstance(request.app.state.lookup, MongoChannelLookup):
            status["mongo_healthy"] = await ping_db()
        return status

    # ---- Dev token issuance ----
    @api_router.post("/auth/dev-token", response_model=DevTokenResponse)
    async def dev_token(req: DevTokenRequest):
        """Issue a signed participant token. Dev only; real tokens come from the project service."""
        settings = get_settings()
        if settings.ENV != "dev":
            raise HTTPException(status_code=404, detail="Not found")
        token = generate_token(req.user_id, label=req.label)
        logger.info("Dev token issued: user=%s", req.user_id)
        return DevTokenResponse(token=token, user_id=req.user_id, env=settings.ENV)

    return api_router


app = create_app()
