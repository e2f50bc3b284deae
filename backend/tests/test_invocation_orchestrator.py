"""Invocation orchestrator: retry budget, backoff, post-processing, error envelopes."""
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import asyncio
import json

from core.exceptions import TerminalGenerationError, TransientGenerationError
from gateway.router import compile_trigger, extract_directive
from generation.client import GenerationResult
from generation.orchestrator import (
    PROMPT_REQUIRED_ERROR,
    PROMPT_REQUIRED_TEXT,
    STRUCTURAL_DEFAULT_ERROR,
    STRUCTURAL_TEXT,
    InvocationOrchestrator,
    extract_diagnostic,
)
from schemas.ai_response import CanonicalAIResponse


class ScriptedClient:
    """Stands in for GenerationClient; plays back one outcome per call."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.prompts = []

    async def generate(self, directive):
        self.prompts.append(directive)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return GenerationResult(raw_text=outcome, finish_reason="STOP")


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def _orchestrator(client, max_attempts=3, backoff_base_s=1.0):
    sleeper = SleepRecorder()
    orch = InvocationOrchestrator(
        client, max_attempts=max_attempts, backoff_base_s=backoff_base_s, sleep=sleeper
    )
    return orch, sleeper


def _payload(files, text="Done"):
    return json.dumps({
        "text": text,
        "fileTree": {name: {"contents": "x"} for name in files},
    })


def _deadline():
    return TransientGenerationError(TransientGenerationError.DEADLINE, "Request timeout after 60s")


class TestDirectiveValidation:
    """Blank input never reaches the service."""

    def test_empty_directive_makes_no_call(self):
        client = ScriptedClient(_payload(["a.js"]))
        orch, _ = _orchestrator(client)

        response = asyncio.run(orch.invoke("   "))

        assert client.prompts == []
        assert response.text == PROMPT_REQUIRED_TEXT
        assert response.error == PROMPT_REQUIRED_ERROR
        assert response.file_tree == {}

    def test_directive_is_trimmed(self):
        client = ScriptedClient(_payload(["a.js"]))
        orch, _ = _orchestrator(client)
        asyncio.run(orch.invoke("  build a thing \n"))
        assert client.prompts == ["build a thing"]


class TestRetryBudget:
    """Transient failures retry with backoff; nothing else does."""

    def test_persistent_timeout_makes_exactly_three_calls(self):
        client = ScriptedClient(_deadline())
        orch, sleeper = _orchestrator(client)

        response = asyncio.run(orch.invoke("build an api"))

        assert len(client.prompts) == 3
        assert sleeper.delays == [1.0, 2.0]
        assert isinstance(response, CanonicalAIResponse)
        assert response.error.startswith("Request timed out")
        assert response.text == "The request took too long. Please try a simpler prompt."
        assert response.file_tree == {}

    def test_retry_rephrases_directive(self):
        client = ScriptedClient(_deadline(), _deadline(), _payload(["a.js"]))
        orch, _ = _orchestrator(client)

        response = asyncio.run(orch.invoke("build an api"))

        assert client.prompts == [
            "build an api",
            "build an api (Attempt 2: Please generate original code with unique variable names and structure)",
            "build an api (Attempt 3: Please generate original code with unique variable names and structure)",
        ]
        assert response.error is None
        assert list(response.file_tree) == ["a.js"]

    def test_recovers_after_content_policy_rejection(self):
        client = ScriptedClient(
            TransientGenerationError(TransientGenerationError.CONTENT_POLICY, "RECITATION"),
            _payload(["a.js"]),
        )
        orch, sleeper = _orchestrator(client)
        response = asyncio.run(orch.invoke("write a sort"))
        assert len(client.prompts) == 2
        assert sleeper.delays == [1.0]
        assert response.error is None

    def test_exhausted_safety_rejection_message(self):
        client = ScriptedClient(TransientGenerationError(TransientGenerationError.SAFETY, "blocked"))
        orch, _ = _orchestrator(client)
        response = asyncio.run(orch.invoke("x"))
        assert "safety filters" in response.text
        assert response.error == "AI response blocked due to safety filters: blocked"

    def test_exhausted_content_policy_message(self):
        client = ScriptedClient(TransientGenerationError(TransientGenerationError.CONTENT_POLICY, "RECITATION"))
        orch, _ = _orchestrator(client)
        response = asyncio.run(orch.invoke("x"))
        assert "content policies" in response.text
        assert "recitation" in response.error.lower()

    def test_single_attempt_budget_never_sleeps(self):
        client = ScriptedClient(_deadline())
        orch, sleeper = _orchestrator(client, max_attempts=1)
        asyncio.run(orch.invoke("x"))
        assert len(client.prompts) == 1
        assert sleeper.delays == []

    def test_terminal_failure_is_not_retried(self):
        client = ScriptedClient(TerminalGenerationError(TerminalGenerationError.QUOTA, "429"))
        orch, sleeper = _orchestrator(client)

        response = asyncio.run(orch.invoke("x"))

        assert len(client.prompts) == 1
        assert sleeper.delays == []
        assert response.error == "API quota exceeded: 429"
        assert "temporarily unavailable" in response.text

    def test_configuration_failure_message(self):
        client = ScriptedClient(TerminalGenerationError(TerminalGenerationError.CONFIGURATION, "no key"))
        orch, _ = _orchestrator(client)
        response = asyncio.run(orch.invoke("x"))
        assert response.error == "API key issue: no key"
        assert "configuration issue" in response.text

    def test_unclassified_failure_uses_message_as_error(self):
        client = ScriptedClient(TerminalGenerationError(TerminalGenerationError.UNCLASSIFIED, "API Error: 500"))
        orch, _ = _orchestrator(client)
        response = asyncio.run(orch.invoke("x"))
        assert response.error == "API Error: 500"
        assert response.text == "Sorry, I encountered an error. Please try again."

    def test_unexpected_client_exception_becomes_envelope(self):
        client = ScriptedClient(RuntimeError("boom"))
        orch, _ = _orchestrator(client)
        response = asyncio.run(orch.invoke("x"))
        assert len(client.prompts) == 1
        assert response.error == "boom"


class TestPostProcessing:
    """Decode, normalize and policy failures are final."""

    def test_structural_failure_is_not_retried(self):
        client = ScriptedClient("Sorry, I can't do that.")
        orch, sleeper = _orchestrator(client)

        response = asyncio.run(orch.invoke("x"))

        assert len(client.prompts) == 1
        assert sleeper.delays == []
        assert response.text == STRUCTURAL_TEXT
        assert response.error == STRUCTURAL_DEFAULT_ERROR

    def test_structural_failure_extracts_error_fragment(self):
        client = ScriptedClient('not json at all\nError: model overloaded\nmore')
        orch, _ = _orchestrator(client)
        response = asyncio.run(orch.invoke("x"))
        assert response.error == "model overloaded"

    def test_non_object_payload_is_structural(self):
        client = ScriptedClient('["a", "b"]')
        orch, _ = _orchestrator(client)
        response = asyncio.run(orch.invoke("x"))
        assert response.text == STRUCTURAL_TEXT
        assert len(client.prompts) == 1

    def test_control_characters_are_repaired(self):
        client = ScriptedClient('{"text": "multi\nline", "fileTree": {"a.js": {"contents": "1"}}}')
        orch, _ = _orchestrator(client)
        response = asyncio.run(orch.invoke("x"))
        assert response.error is None
        assert response.text == "multiline"

    def test_missing_required_file_fails_policy(self):
        client = ScriptedClient(_payload(["package.json", "index.html"]))
        orch, sleeper = _orchestrator(client)

        response = asyncio.run(orch.invoke("Create server.js for an express app"))

        assert len(client.prompts) == 1
        assert sleeper.delays == []
        assert response.file_tree == {}
        assert "server.js" in response.error
        assert response.text == response.error

    def test_minimal_http_server_directive_missing_server_js(self):
        trigger = compile_trigger("@ai")
        directive = extract_directive(
            "@ai create a package.json and server.js for a minimal HTTP server", trigger
        )
        client = ScriptedClient(_payload(["package.json"]))
        orch, _ = _orchestrator(client)

        response = asyncio.run(orch.invoke(directive))

        assert client.prompts == ["create a package.json and server.js for a minimal HTTP server"]
        assert response.error == "AI response did not include required file(s): server.js"
        assert response.file_tree == {}

    def test_policy_lists_every_missing_file(self):
        client = ScriptedClient(_payload(["package.json"]))
        orch, _ = _orchestrator(client)
        response = asyncio.run(orch.invoke("need index.html, tailwind.css and package.json"))
        assert "index.html" in response.error
        assert "tailwind.css" in response.error
        assert "package.json" not in response.error

    def test_policy_match_is_case_insensitive(self):
        client = ScriptedClient(_payload(["Server.JS"]))
        orch, _ = _orchestrator(client)
        response = asyncio.run(orch.invoke("write SERVER.js"))
        assert response.error is None

    def test_policy_ignores_retry_suffix(self):
        client = ScriptedClient(_deadline(), _payload(["package.json"]))
        orch, _ = _orchestrator(client)
        response = asyncio.run(orch.invoke("make package.json"))
        assert response.error is None

    def test_success_returns_normalized_response(self):
        client = ScriptedClient(json.dumps({
            "files": {"src/index.js": {"contents": "1"}, "index.js": "2"},
        }))
        orch, _ = _orchestrator(client)
        response = asyncio.run(orch.invoke("x"))
        assert list(response.file_tree) == ["index.js", "index-1.js"]
        assert response.text == "Generated 2 files for your request."


class TestExtractDiagnostic:
    def test_fallback_when_no_fragment(self):
        assert extract_diagnostic("garbage") == STRUCTURAL_DEFAULT_ERROR

    def test_case_insensitive_fragment(self):
        assert extract_diagnostic("ERROR - bad input") == "- bad input"

    def test_empty_text(self):
        assert extract_diagnostic("") == STRUCTURAL_DEFAULT_ERROR
