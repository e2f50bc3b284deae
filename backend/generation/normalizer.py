"""Response normalizer: coerces any decoded generation payload into CanonicalAIResponse.

Pure: no I/O beyond log lines. Handles the shapes models actually emit:
`fileTree` vs `files`, file entries at the top level, nested `file` wrappers,
path-style names, missing narrative text and malformed command blocks.
"""
import logging
import re
from typing import Any, Dict, List, Mapping, Optional

from core.exceptions import StructuralError
from schemas.ai_response import (
    DEFAULT_BUILD_COMMANDS,
    DEFAULT_BUILD_MAIN_ITEM,
    DEFAULT_START_COMMANDS,
    DEFAULT_START_MAIN_ITEM,
    CanonicalAIResponse,
    CommandSpec,
    FileContents,
)

logger = logging.getLogger(__name__)

RESERVED_RESPONSE_KEYS = frozenset({
    "text",
    "fileTree",
    "files",
    "buildCommand",
    "startCommand",
    "error",
    "summary",
    "description",
    "metadata",
})

_PATH_SEPARATORS = re.compile(r"[/\\]")


def _non_empty_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _entry_contents(value: Any) -> Optional[str]:
    """Extract file contents from any accepted entry shape, else None."""
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        if isinstance(value.get("contents"), str):
            return value["contents"]
        inner = value.get("file")
        if isinstance(inner, Mapping) and isinstance(inner.get("contents"), str):
            return inner["contents"]
        if isinstance(inner, str):
            return inner
    return None


def _is_promotable(value: Any) -> bool:
    if isinstance(value, str):
        return True
    if isinstance(value, Mapping):
        if isinstance(value.get("contents"), str):
            return True
        inner = value.get("file")
        return isinstance(inner, Mapping) and isinstance(inner.get("contents"), str)
    return False


def _file_tree_source(raw: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    if isinstance(raw.get("fileTree"), Mapping):
        return raw["fileTree"]

    if isinstance(raw.get("files"), Mapping):
        logger.warning("[Normalizer] Response used 'files' instead of 'fileTree'")
        return raw["files"]

    promoted = {
        key: value
        for key, value in raw.items()
        if key not in RESERVED_RESPONSE_KEYS and _is_promotable(value)
    }
    if promoted:
        logger.warning(
            "[Normalizer] Response lacked 'fileTree'; promoted %d top-level entries",
            len(promoted),
        )
        return promoted
    return None


def _with_suffix(name: str, counter: int) -> str:
    dot = name.rfind(".")
    if dot > 0:
        return f"{name[:dot]}-{counter}{name[dot:]}"
    return f"{name}-{counter}"


def flatten_file_tree(entries: Mapping[str, str]) -> Dict[str, str]:
    """Keep only the last path segment of every name; de-duplicate collisions.

    Names that are already flat keep their exact key. Flattened names are
    placed afterwards and receive `-N` before the extension on collision.
    """
    flat: Dict[str, str] = {}
    nested: List[tuple] = []

    for path, contents in entries.items():
        if _PATH_SEPARATORS.search(path):
            nested.append((path, contents))
        else:
            flat[path] = contents

    for path, contents in nested:
        leaf = _PATH_SEPARATORS.split(path)[-1]
        if not leaf.strip():
            logger.warning("[Normalizer] Dropped entry with empty file name: %r", path)
            continue
        unique = leaf
        counter = 1
        while unique in flat:
            unique = _with_suffix(leaf, counter)
            counter += 1
        logger.warning("[Normalizer] Flattened file path: %s -> %s", path, unique)
        flat[unique] = contents

    return flat


def normalize_file_tree(source: Optional[Mapping[str, Any]]) -> Dict[str, FileContents]:
    if not source:
        return {}
    extracted: Dict[str, str] = {}
    for name, value in source.items():
        if not isinstance(name, str) or not name.strip():
            continue
        contents = _entry_contents(value)
        if contents is not None:
            extracted[name] = contents
    return {name: FileContents(contents=c) for name, c in flatten_file_tree(extracted).items()}


def normalize_command(command: Any, main_item: str, commands: List[str]) -> CommandSpec:
    """Normalize one command block; any unusable block falls back to the defaults."""
    if not isinstance(command, Mapping):
        return CommandSpec(main_item=main_item, commands=list(commands))

    given_main = _non_empty_str(command.get("mainItem"))
    if given_main is None:
        return CommandSpec(main_item=main_item, commands=list(commands))

    given_commands = command.get("commands")
    if isinstance(given_commands, list):
        cleaned = [c for c in given_commands if isinstance(c, str) and c.strip()]
    else:
        cleaned = []

    return CommandSpec(main_item=given_main.strip(), commands=cleaned or list(commands))


def _narrative(raw: Mapping[str, Any], file_count: int) -> str:
    for key in ("text", "summary", "description"):
        value = _non_empty_str(raw.get(key))
        if value is not None:
            return value

    logger.warning("[Normalizer] Response missing 'text'; synthesizing summary (files=%d)", file_count)
    if file_count:
        return f"Generated {file_count} file{'' if file_count == 1 else 's'} for your request."
    return "Processed your request."


def normalize_response(raw: Any) -> CanonicalAIResponse:
    """Coerce an arbitrary decoded structure into the canonical response.

    Raises StructuralError when `raw` is not an object.
    """
    if not isinstance(raw, Mapping):
        raise StructuralError("Invalid response format: Expected an object")

    file_tree = normalize_file_tree(_file_tree_source(raw))
    error = _non_empty_str(raw.get("error"))

    return CanonicalAIResponse(
        text=_narrative(raw, len(file_tree)),
        file_tree=file_tree,
        build_command=normalize_command(
            raw.get("buildCommand"), DEFAULT_BUILD_MAIN_ITEM, DEFAULT_BUILD_COMMANDS
        ),
        start_command=normalize_command(
            raw.get("startCommand"), DEFAULT_START_MAIN_ITEM, DEFAULT_START_COMMANDS
        ),
        error=error.strip() if error is not None else None,
    )
