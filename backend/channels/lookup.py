"""Channel lookup: resolves a channel reference to an existing project channel.

Projects live in the shared MongoDB owned by the project service; this
module only reads them. The in-memory variant serves local development.
"""
import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from bson import ObjectId
from bson.errors import InvalidId

from config.settings import get_settings
from core.database import get_db
from schemas.session import Channel

logger = logging.getLogger(__name__)


class ChannelLookup(ABC):
    """resolve(channel_ref) → Channel, or None when it does not exist."""

    def is_well_formed(self, channel_ref: str) -> bool:
        return bool(channel_ref and channel_ref.strip())

    @abstractmethod
    async def resolve(self, channel_ref: str) -> Optional[Channel]:
        ...


class MongoChannelLookup(ChannelLookup):
    """Channels are project documents keyed by ObjectId."""

    def __init__(self, collection: Optional[str] = None):
        self._collection = collection or get_settings().CHANNEL_COLLECTION

    def is_well_formed(self, channel_ref: str) -> bool:
        return bool(channel_ref) and ObjectId.is_valid(channel_ref)

    async def resolve(self, channel_ref: str) -> Optional[Channel]:
        try:
            oid = ObjectId(channel_ref)
        except (InvalidId, TypeError):
            return None
        doc = await get_db()[self._collection].find_one({"_id": oid}, {"name": 1})
        if doc is None:
            logger.info("Channel not found: channel=%s", channel_ref)
            return None
        return Channel(channel_id=str(doc["_id"]), name=doc.get("name"))


class InMemoryChannelLookup(ChannelLookup):
    """Fixed set of channels, for dev and tests."""

    def __init__(self, channels: Optional[Dict[str, Optional[str]]] = None):
        self._channels: Dict[str, Optional[str]] = dict(channels or {})

    @classmethod
    def from_refs(cls, refs: Iterable[str]) -> "InMemoryChannelLookup":
        """Build from `id` or `id=name` entries, as listed in DEV_CHANNELS."""
        lookup = cls()
        for ref in refs:
            channel_id, _, name = ref.partition("=")
            if channel_id.strip():
                lookup.add(channel_id.strip(), name.strip() or None)
        return lookup

    def add(self, channel_id: str, name: Optional[str] = None) -> None:
        self._channels[channel_id] = name

    def channel_ids(self) -> List[str]:
        return list(self._channels)

    async def resolve(self, channel_ref: str) -> Optional[Channel]:
        if channel_ref not in self._channels:
            return None
        return Channel(channel_id=channel_ref, name=self._channels[channel_ref])
