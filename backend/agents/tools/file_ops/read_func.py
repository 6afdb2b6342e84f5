from __future__ import annotations

from typing import Any, Dict

from utils.logger import get_logger
from ...tools.tool_registry import ToolExecutionContext, ToolResult, ToolSpec
from .file_utils import format_file_size, is_likely_binary, read_text_file, resolve_safe_path

_logger = get_logger(__name__)

MAX_READ_BYTES = 10 * 1024 * 1024


def _tool_read_file(params: Dict[str, Any], ctx: ToolExecutionContext) -> ToolResult:
    """
    Read a textual file, optionally restricted to a line range.

    Lines are 1-indexed and endLine is inclusive. maxLines caps the number
    of returned lines; truncated is set when the file has more lines than
    were returned after the range end.
    """
    file_path = params.get("path")
    start_line = params.get("startLine")
    end_line = params.get("endLine")
    max_lines = params.get("maxLines")

    resolved_path = resolve_safe_path(file_path, ctx.workspace_path, ctx.allowed_paths)
    if resolved_path.exists() and not resolved_path.is_file():
        raise ValueError(f"Path is not a file: {resolved_path}. Use 'ls' for directories.")

    if resolved_path.is_file():
        is_binary, reason = is_likely_binary(resolved_path)
        if is_binary:
            raise ValueError(f"Cannot read '{file_path}': {reason}. This tool is for textual files only.")
        file_size = resolved_path.stat().st_size
        if file_size > MAX_READ_BYTES:
            raise ValueError(
                f"File '{file_path}' is too large ({format_file_size(file_size)}). "
                "Use startLine/endLine with bash tools such as head or sed for large files."
            )

    content = read_text_file(resolved_path, file_path)
    lines = content.split("\n")
    total_lines = len(lines)

    actual_start = max(1, int(start_line)) if start_line else 1
    actual_end = min(total_lines, int(end_line)) if end_line else total_lines
    if max_lines and actual_end - actual_start + 1 > max_lines:
        actual_end = actual_start + int(max_lines) - 1

    selected = lines[actual_start - 1:actual_end]
    truncated = actual_end < total_lines

    _logger.info(f"Read file '{resolved_path}' (lines {actual_start}-{actual_end} of {total_lines})")

    return ToolResult(
        output={
            "success": True,
            "path": str(resolved_path),
            "content": "\n".join(selected),
            "lineCount": total_lines,
            "truncated": truncated,
            "readRange": {"startLine": actual_start, "endLine": actual_end},
        },
        metadata={"file_path": str(resolved_path), "line_count": total_lines},
    )


read_file_spec = ToolSpec(
    name="read",
    version="1.0",
    description=(
        "Read the contents of a text file. "
        "Use startLine/endLine to read specific sections of large files, "
        "and maxLines to preview a file."
    ),
    effects=[],
    in_schema={
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "The absolute or workspace-relative file path to read"
            },
            "startLine": {
                "type": "integer",
                "minimum": 1,
                "description": "Starting line number (1-indexed)"
            },
            "endLine": {
                "type": "integer",
                "minimum": 1,
                "description": "Ending line number (1-indexed, inclusive)"
            },
            "maxLines": {
                "type": "integer",
                "minimum": 1,
                "description": "Maximum number of lines to return"
            }
        },
        "required": ["path"],
        "additionalProperties": False
    },
    out_schema={
        "type": "object",
        "properties": {
            "success": {"type": "boolean"},
            "path": {"type": "string"},
            "content": {"type": "string"},
            "lineCount": {"type": "integer"},
            "truncated": {"type": "boolean"},
            "readRange": {"type": "object"}
        }
    },
    fn=_tool_read_file,
)
