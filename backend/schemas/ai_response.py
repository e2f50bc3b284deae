"""Canonical AI response: the single shape every assistant result takes.

Serialized with camelCase keys for the wire; `error` is omitted when unset.
"""
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field

DEFAULT_BUILD_MAIN_ITEM = "npm"
DEFAULT_BUILD_COMMANDS = ["install"]
DEFAULT_START_MAIN_ITEM = "node"
DEFAULT_START_COMMANDS = ["server.js"]


class FileContents(BaseModel):
    contents: str


class CommandSpec(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    main_item: str = Field(alias="mainItem", min_length=1)
    commands: List[str] = Field(min_length=1)


def default_build_command() -> CommandSpec:
    return CommandSpec(main_item=DEFAULT_BUILD_MAIN_ITEM, commands=list(DEFAULT_BUILD_COMMANDS))


def default_start_command() -> CommandSpec:
    return CommandSpec(main_item=DEFAULT_START_MAIN_ITEM, commands=list(DEFAULT_START_COMMANDS))


class CanonicalAIResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(min_length=1)
    file_tree: Dict[str, FileContents] = Field(default_factory=dict, alias="fileTree")
    build_command: CommandSpec = Field(default_factory=default_build_command, alias="buildCommand")
    start_command: CommandSpec = Field(default_factory=default_start_command, alias="startCommand")
    error: Optional[str] = None

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


def error_response(text: str, error: str) -> CanonicalAIResponse:
    """Canonical error envelope: user-facing text, diagnostic, empty file tree."""
    return CanonicalAIResponse(text=text, error=error)
