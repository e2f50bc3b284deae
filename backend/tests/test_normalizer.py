"""Response normalizer: every accepted payload shape lands in the canonical form."""
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest

from core.exceptions import StructuralError
from generation.normalizer import flatten_file_tree, normalize_command, normalize_response
from schemas.ai_response import CanonicalAIResponse, CommandSpec, FileContents


def _canonical() -> CanonicalAIResponse:
    return CanonicalAIResponse(
        text="Here is an express server.",
        file_tree={
            "package.json": FileContents(contents='{"name": "app"}'),
            "server.js": FileContents(contents="const express = require('express');"),
        },
        build_command=CommandSpec(main_item="npm", commands=["ci"]),
        start_command=CommandSpec(main_item="node", commands=["server.js", "--port", "3000"]),
    )


class TestCanonicalInput:
    """Already-canonical payloads pass through unchanged."""

    def test_wire_form_round_trips(self):
        canonical = _canonical()
        assert normalize_response(canonical.to_wire()) == canonical

    def test_round_trip_with_error(self):
        canonical = CanonicalAIResponse(text="Failed", error="boom")
        assert normalize_response(canonical.to_wire()) == canonical

    def test_wire_form_uses_camel_case_and_omits_unset_error(self):
        wire = _canonical().to_wire()
        assert set(wire) == {"text", "fileTree", "buildCommand", "startCommand"}
        assert wire["buildCommand"] == {"mainItem": "npm", "commands": ["ci"]}
        assert wire["fileTree"]["server.js"] == {"contents": "const express = require('express');"}


class TestFileTreeShapes:
    """`fileTree`, `files`, top-level entries and nested wrappers."""

    def test_files_key_is_accepted(self):
        result = normalize_response({"text": "t", "files": {"a.js": {"contents": "1"}}})
        assert result.file_tree == {"a.js": FileContents(contents="1")}

    def test_file_tree_wins_over_files(self):
        result = normalize_response({
            "text": "t",
            "fileTree": {"a.js": {"contents": "1"}},
            "files": {"b.js": {"contents": "2"}},
        })
        assert list(result.file_tree) == ["a.js"]

    def test_top_level_entries_are_promoted(self):
        result = normalize_response({
            "text": "t",
            "package.json": {"contents": "{}"},
            "server.js": "console.log(1)",
            "index.html": {"file": {"contents": "<html></html>"}},
            "metadata": {"contents": "not a file"},
            "summary": "also not a file",
            "count": 3,
        })
        assert result.file_tree == {
            "package.json": FileContents(contents="{}"),
            "server.js": FileContents(contents="console.log(1)"),
            "index.html": FileContents(contents="<html></html>"),
        }

    def test_nested_file_wrappers_are_unwrapped(self):
        result = normalize_response({
            "text": "t",
            "fileTree": {
                "a.js": {"file": {"contents": "A"}},
                "b.js": {"file": "B"},
                "c.js": "C",
            },
        })
        assert {k: v.contents for k, v in result.file_tree.items()} == {"a.js": "A", "b.js": "B", "c.js": "C"}

    def test_unusable_entries_are_dropped(self):
        result = normalize_response({
            "text": "t",
            "fileTree": {"a.js": {"contents": 5}, "b.js": ["x"], "c.js": {"contents": ""}},
        })
        assert list(result.file_tree) == ["c.js"]

    def test_no_files_anywhere_gives_empty_tree(self):
        assert normalize_response({"text": "just chatting"}).file_tree == {}


class TestFlattening:
    """Path-style names keep only their last segment."""

    def test_flat_names_kept_and_placed_first(self):
        flat = flatten_file_tree({"src/a.js": "1", "b.js": "2"})
        assert list(flat) == ["b.js", "a.js"]

    def test_collision_with_flat_name_gets_suffix(self):
        result = normalize_response({
            "text": "t",
            "fileTree": {
                "src/app/index.js": {"contents": "nested"},
                "index.js": {"contents": "flat"},
            },
        })
        assert result.file_tree == {
            "index.js": FileContents(contents="flat"),
            "index-1.js": FileContents(contents="nested"),
        }

    def test_multiple_collisions_count_up(self):
        flat = flatten_file_tree({"a/x.js": "1", "b/x.js": "2", "c/x.js": "3"})
        assert flat == {"x.js": "1", "x-1.js": "2", "x-2.js": "3"}

    def test_collision_without_extension(self):
        flat = flatten_file_tree({"bin/run": "nested", "run": "flat"})
        assert flat == {"run": "flat", "run-1": "nested"}

    def test_backslash_paths_are_flattened(self):
        assert flatten_file_tree({"src\\util.js": "u"}) == {"util.js": "u"}

    def test_trailing_separator_is_dropped(self):
        assert flatten_file_tree({"src/": "x", "a.js": "1"}) == {"a.js": "1"}

    def test_all_names_flat_after_normalization(self):
        result = normalize_response({
            "text": "t",
            "fileTree": {"deep/er/path/one.js": "1", "two/one.js": "2", "one.js": "3"},
        })
        assert all("/" not in name for name in result.file_tree)
        assert len(result.file_tree) == 3


class TestNarrativeText:
    """Missing narrative is synthesized."""

    def test_summary_used_when_text_missing(self):
        assert normalize_response({"summary": "From summary"}).text == "From summary"

    def test_description_used_when_text_and_summary_missing(self):
        assert normalize_response({"description": "From description", "text": "  "}).text == "From description"

    def test_synthesized_from_file_count(self):
        result = normalize_response({"fileTree": {"a.js": "1", "b.js": "2"}})
        assert result.text == "Generated 2 files for your request."

    def test_synthesized_singular(self):
        assert normalize_response({"fileTree": {"a.js": "1"}}).text == "Generated 1 file for your request."

    def test_synthesized_without_files(self):
        assert normalize_response({}).text == "Processed your request."


class TestCommands:
    """Command blocks default to npm install / node server.js."""

    def test_missing_commands_get_defaults(self):
        result = normalize_response({"text": "t"})
        assert result.build_command == CommandSpec(main_item="npm", commands=["install"])
        assert result.start_command == CommandSpec(main_item="node", commands=["server.js"])

    def test_non_object_command_gets_default(self):
        result = normalize_response({"text": "t", "buildCommand": "npm install"})
        assert result.build_command == CommandSpec(main_item="npm", commands=["install"])

    def test_blank_main_item_gets_default(self):
        cmd = normalize_command({"mainItem": "  ", "commands": ["run"]}, "npm", ["install"])
        assert cmd == CommandSpec(main_item="npm", commands=["install"])

    def test_invalid_command_items_are_filtered(self):
        cmd = normalize_command({"mainItem": "yarn", "commands": ["add", 3, "", "react"]}, "npm", ["install"])
        assert cmd == CommandSpec(main_item="yarn", commands=["add", "react"])

    def test_no_valid_command_items_fall_back_to_default_list(self):
        cmd = normalize_command({"mainItem": "yarn", "commands": [None, " "]}, "npm", ["install"])
        assert cmd == CommandSpec(main_item="yarn", commands=["install"])

    def test_defaults_are_not_shared_between_responses(self):
        first = normalize_response({"text": "t"})
        first.build_command.commands.append("--force")
        assert normalize_response({"text": "t"}).build_command.commands == ["install"]


class TestErrorsAndRejection:
    """Error passthrough and non-object input."""

    def test_error_is_trimmed(self):
        assert normalize_response({"text": "t", "error": "  bad things \n"}).error == "bad things"

    def test_blank_error_is_dropped(self):
        assert normalize_response({"text": "t", "error": "   "}).error is None

    @pytest.mark.parametrize("raw", [[], ["a"], "text", 42, None, True])
    def test_non_object_raises_structural_error(self, raw):
        with pytest.raises(StructuralError):
            normalize_response(raw)
