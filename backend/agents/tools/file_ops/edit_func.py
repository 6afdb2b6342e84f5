from __future__ import annotations

from typing import Any, Dict

from utils.logger import get_logger
from ...tools.tool_registry import ToolExecutionContext, ToolResult, ToolSpec
from .file_utils import (
    is_likely_binary,
    read_text_file,
    resolve_safe_path,
    workspace_relative_path,
    write_text_file,
)

_logger = get_logger(__name__)

DIFF_CONTEXT_LINES = 3


def contextual_diff(content: str, old_text: str, new_text: str, context_lines: int = DIFF_CONTEXT_LINES) -> Dict[str, str]:
    """Lines around the first occurrence of old_text, before and after replacement."""
    match_index = content.find(old_text)
    if match_index == -1:
        return {"before": "", "after": ""}

    lines = content.split("\n")
    match_start = content[:match_index].count("\n")
    match_end = match_start + old_text.count("\n")
    start = max(0, match_start - context_lines)
    end = min(len(lines) - 1, match_end + context_lines)

    after_lines = content.replace(old_text, new_text, 1).split("\n")
    after_end = end + new_text.count("\n") - old_text.count("\n")

    return {
        "before": "\n".join(lines[start:end + 1]),
        "after": "\n".join(after_lines[start:after_end + 1]),
    }


def _tool_edit_file(params: Dict[str, Any], ctx: ToolExecutionContext) -> ToolResult:
    """
    Replace an exact piece of text in an existing file.

    The number of occurrences of oldText must equal expectedReplacements
    (default 1), otherwise nothing is written and a failure result is
    returned.
    """
    file_path = params.get("path")
    old_text = params.get("oldText")
    new_text = params.get("newText")
    expected = params.get("expectedReplacements", 1)

    if not old_text:
        raise ValueError("oldText cannot be empty. Specify the exact text to replace.")
    if not isinstance(new_text, str):
        raise ValueError("newText must be a string")
    if expected is None:
        expected = 1
    expected = int(expected)

    resolved_path = resolve_safe_path(file_path, ctx.workspace_path, ctx.allowed_paths)
    is_binary, reason = is_likely_binary(resolved_path) if resolved_path.is_file() else (False, "")
    if is_binary:
        raise ValueError(f"Cannot edit '{file_path}': {reason}. This tool is for textual files only.")

    content = read_text_file(resolved_path, file_path)
    occurrences = content.count(old_text)

    if occurrences == 0:
        return ToolResult(
            output={
                "success": False,
                "path": str(resolved_path),
                "replacementsCount": 0,
                "error": "Could not find the specified text to replace. "
                         "Make sure oldText matches exactly, including whitespace and indentation.",
            },
            metadata={"file_path": str(resolved_path)},
        )

    if occurrences != expected:
        return ToolResult(
            output={
                "success": False,
                "path": str(resolved_path),
                "replacementsCount": 0,
                "error": f"Found {occurrences} occurrence(s) of the text, but expected {expected}. "
                         "To prevent unintended changes, the edit was not applied. "
                         "Either make oldText more specific or update expectedReplacements.",
            },
            metadata={"file_path": str(resolved_path)},
        )

    diff = contextual_diff(content, old_text, new_text)
    write_text_file(resolved_path, content.replace(old_text, new_text))

    _logger.info(
        f"Successfully edited '{resolved_path}' "
        f"(find_replace, {occurrences} replacements)"
    )

    return ToolResult(
        output={
            "success": True,
            "path": str(resolved_path),
            "replacementsCount": occurrences,
            "message": f"Successfully replaced {occurrences} occurrence(s) in {resolved_path}",
            "diff": diff,
        },
        metadata={
            "file_path": str(resolved_path),
            "workspace_path": workspace_relative_path(resolved_path, ctx.workspace_path),
        },
    )


edit_file_spec = ToolSpec(
    name="edit",
    version="1.0",
    description=(
        "Make a single find-and-replace edit in a file. "
        "This tool modifies files and requires user approval. "
        "Provide the exact text to find (oldText) and its replacement (newText). "
        "The oldText must match exactly, including whitespace and indentation. "
        "For multiple edits in the same file, use 'multi_edit' instead. "
        "For creating new files or complete overwrites, use 'write' instead."
    ),
    effects=["disk"],
    in_schema={
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "The file path to edit. Must be an existing file."
            },
            "oldText": {
                "type": "string",
                "minLength": 1,
                "description": "The exact text to find and replace, including whitespace and indentation"
            },
            "newText": {
                "type": "string",
                "description": "The replacement text"
            },
            "expectedReplacements": {
                "type": "integer",
                "minimum": 1,
                "default": 1,
                "description": "Expected number of replacements. The edit fails if the actual count differs."
            }
        },
        "required": ["path", "oldText", "newText"],
        "additionalProperties": False
    },
    out_schema={
        "type": "object",
        "properties": {
            "success": {"type": "boolean"},
            "path": {"type": "string"},
            "replacementsCount": {"type": "integer"},
            "message": {"type": "string"},
            "diff": {"type": "object"},
            "error": {"type": "string"}
        }
    },
    fn=_tool_edit_file,
    requires_approval=True,
)
