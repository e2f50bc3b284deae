"""Mock generation provider: deterministic payloads for development and testing.

Returns a minimal Express project and adds a stub for every artifact the
directive names, so the required-artifact policy passes locally.
"""
import asyncio
import json
import logging

from generation.policy import REQUIRED_ARTIFACT_TOKENS
from generation.provider.interface import GenerationProvider, ProviderReply

logger = logging.getLogger(__name__)

_SERVER_JS = """const express = require('express');
const app = express();
const port = process.env.PORT || 3000;

app.get('/', (req, res) => res.send('ok'));

app.listen(port, () => console.log(`listening on ${port}`));
"""

_PACKAGE_JSON = json.dumps(
    {
        "name": "devroom-mock",
        "version": "1.0.0",
        "main": "server.js",
        "dependencies": {"express": "^4.19.2"},
    },
    indent=2,
)

_STUBS = {
    "package.json": _PACKAGE_JSON,
    "server.js": _SERVER_JS,
    "index.html": "<!doctype html>\n<html><body><div id=\"root\"></div></body></html>\n",
    "tailwind.css": "@tailwind base;\n@tailwind components;\n@tailwind utilities;\n",
    "vite.config.js": "import { defineConfig } from 'vite';\n\nexport default defineConfig({});\n",
}


class MockGenerationProvider(GenerationProvider):
    """Deterministic mock generation for development and testing."""

    def __init__(self, latency_ms: float = 50.0):
        self._latency_ms = latency_ms

    async def generate(self, directive: str, system_contract: str) -> ProviderReply:
        await asyncio.sleep(self._latency_ms / 1000.0)

        lowered = directive.lower()
        names = ["package.json", "server.js"]
        names += [t for t in REQUIRED_ARTIFACT_TOKENS if t in lowered and t not in names]

        payload = {
            "text": f"Mock project for: {directive[:80]}",
            "fileTree": {name: {"contents": _STUBS[name]} for name in names},
            "buildCommand": {"mainItem": "npm", "commands": ["install"]},
            "startCommand": {"mainItem": "node", "commands": ["server.js"]},
        }
        logger.debug("[MockGeneration] files=%s", names)
        return ProviderReply(text=json.dumps(payload), finish_reason="STOP")

    async def is_healthy(self) -> bool:
        return True
