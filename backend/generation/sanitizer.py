"""Sanitization filter: repairs encoded payloads broken by stray control characters.

Generation output sometimes carries literal newlines or tabs inside string
values, which strict JSON rejects. The filter strips C0/C1 control
characters and retries the parse exactly once. Escape sequences such as the
two-character `\\n` are ordinary printable text and survive untouched.
"""
import json
import logging
import re
from typing import Any

from core.exceptions import StructuralError

logger = logging.getLogger(__name__)

_CONTROL_CHARS = re.compile(r"[\u0000-\u001F\u007F-\u009F]")


def sanitize_json(text: str) -> str:
    """Return `text` if it parses, else a control-stripped copy that does.

    Raises the original json.JSONDecodeError when the stripped copy still
    fails to parse.
    """
    try:
        json.loads(text)
        return text
    except json.JSONDecodeError as original:
        logger.warning(
            "[Sanitizer] Malformed payload, stripping control characters: len=%d error=%s",
            len(text), original.msg,
        )
        sanitized = _CONTROL_CHARS.sub("", text)
        try:
            json.loads(sanitized)
        except json.JSONDecodeError as retry_error:
            logger.error(
                "[Sanitizer] Repair failed: original=%s retry=%s preview=%r",
                original.msg, retry_error.msg, text[:200],
            )
            raise original
        logger.info(
            "[Sanitizer] Payload repaired: removed=%d chars",
            len(text) - len(sanitized),
        )
        return sanitized


def decode_payload(text: str) -> Any:
    """Sanitize and decode. Raises StructuralError caused by the original decode error."""
    try:
        return json.loads(sanitize_json(text))
    except json.JSONDecodeError as e:
        raise StructuralError(str(e)) from e
