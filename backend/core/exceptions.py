"""Custom exception hierarchy for Devroom."""
from typing import List, Optional


class DevroomError(Exception):
    """Base error."""
    def __init__(self, message: str, code: str = "DEVROOM_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class AuthError(DevroomError):
    """Credential verification failures."""
    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, code="AUTH_ERROR")


class AdmissionError(DevroomError):
    """Connection refused by the session gateway. Fatal to the connection attempt."""

    MISSING_CREDENTIAL = "MISSING_CREDENTIAL"
    INVALID_CREDENTIAL = "INVALID_CREDENTIAL"
    MISSING_CHANNEL_REFERENCE = "MISSING_CHANNEL_REFERENCE"
    CHANNEL_NOT_FOUND = "CHANNEL_NOT_FOUND"
    ADMISSION_FAILED = "ADMISSION_FAILED"

    REASONS = {
        MISSING_CREDENTIAL: "missing credential",
        INVALID_CREDENTIAL: "invalid credential",
        MISSING_CHANNEL_REFERENCE: "missing channel reference",
        CHANNEL_NOT_FOUND: "channel not found",
        ADMISSION_FAILED: "admission failed",
    }

    def __init__(self, code: str, detail: Optional[str] = None):
        self.reason = self.REASONS.get(code, self.REASONS[self.ADMISSION_FAILED])
        self.detail = detail
        super().__init__(self.reason, code=code)


class GenerationError(DevroomError):
    """Base for every failure below the invocation orchestrator boundary."""


class TransientGenerationError(GenerationError):
    """Deadline, content-policy, safety or empty-output failure. Retried."""

    DEADLINE = "deadline"
    CONTENT_POLICY = "content_policy"
    SAFETY = "safety"
    EMPTY = "empty"

    def __init__(self, kind: str, message: str):
        self.kind = kind
        super().__init__(message, code="TRANSIENT_GENERATION_ERROR")


class TerminalGenerationError(GenerationError):
    """Configuration, quota or unclassified failure. Never retried."""

    CONFIGURATION = "configuration"
    QUOTA = "quota"
    UNCLASSIFIED = "unclassified"

    def __init__(self, category: str, message: str):
        self.category = category
        super().__init__(message, code="TERMINAL_GENERATION_ERROR")


class StructuralError(GenerationError):
    """Payload could not be parsed or repaired into an object."""
    def __init__(self, message: str = "Invalid response format"):
        super().__init__(message, code="STRUCTURAL_ERROR")


class PolicyViolationError(GenerationError):
    """Directive named files the generated tree does not contain."""
    def __init__(self, missing: List[str]):
        self.missing = list(missing)
        super().__init__(
            f"AI response did not include required file(s): {', '.join(self.missing)}",
            code="POLICY_VIOLATION",
        )
