from __future__ import annotations

import codecs
from typing import Any, Dict

from utils.logger import get_logger
from ...tools.tool_registry import ToolExecutionContext, ToolResult, ToolSpec
from .file_utils import format_file_size, resolve_safe_path, write_text_file

_logger = get_logger(__name__)

MAX_CONTENT_SIZE = 50 * 1024 * 1024


def _tool_write_file(params: Dict[str, Any], ctx: ToolExecutionContext) -> ToolResult:
    """
    Create or overwrite a file with the given content.

    Parent directories are created unless createDirectories is false.
    """
    file_path = params.get("path")
    content = params.get("content")
    encoding = params.get("encoding") or "utf-8"
    create_dirs = params.get("createDirectories", True)

    if content is None:
        raise ValueError("content is required (use empty string for empty file)")
    if not isinstance(content, str):
        raise ValueError(f"content must be a string, got {type(content).__name__}")

    try:
        codecs.lookup(encoding)
    except LookupError:
        raise ValueError(f"Unknown encoding '{encoding}'")

    try:
        content_size = len(content.encode(encoding))
    except UnicodeEncodeError as e:
        raise ValueError(f"content cannot be encoded as {encoding}: {e}")
    if content_size > MAX_CONTENT_SIZE:
        raise ValueError(
            f"Content is too large ({format_file_size(content_size)}). "
            f"Maximum allowed size is {format_file_size(MAX_CONTENT_SIZE)}."
        )

    path = resolve_safe_path(file_path, ctx.workspace_path, ctx.allowed_paths)
    if path.is_dir():
        raise ValueError(f"Cannot write to '{file_path}': path is a directory. Specify a file path.")

    file_existed = path.exists()
    parent_dir = path.parent
    if not parent_dir.exists():
        if not create_dirs:
            raise ValueError(
                f"Cannot write to '{file_path}': parent directory '{parent_dir}' does not exist. "
                "Set createDirectories=true to create missing parent directories."
            )
        _logger.info(f"Creating parent directories for '{file_path}'")
        try:
            parent_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ValueError(f"Cannot create parent directories for '{file_path}': {e.strerror or e}")

    bytes_written = write_text_file(path, content, encoding)

    _logger.info(
        f"Successfully wrote file '{path}' ({format_file_size(bytes_written)}, "
        f"{'overwritten' if file_existed else 'created'})"
    )

    verb = "overwrote" if file_existed else "created"
    return ToolResult(
        output={
            "success": True,
            "path": str(path),
            "bytesWritten": bytes_written,
            "created": not file_existed,
            "message": f"Successfully {verb} {path} ({bytes_written} bytes)",
        },
        metadata={"file_path": str(path), "size_bytes": bytes_written},
    )


write_file_spec = ToolSpec(
    name="write",
    version="1.0",
    description=(
        "Create a new file or completely overwrite an existing one. "
        "This tool modifies files and requires user approval. "
        "For targeted changes to existing files, use 'edit' or 'multi_edit' instead."
    ),
    effects=["disk"],
    in_schema={
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Path where the file should be written"
            },
            "content": {
                "type": "string",
                "description": "Content to write to the file"
            },
            "encoding": {
                "type": "string",
                "default": "utf-8",
                "description": "Text encoding used for the file"
            },
            "createDirectories": {
                "type": "boolean",
                "default": True,
                "description": "Create parent directories if they don't exist"
            }
        },
        "required": ["path", "content"],
        "additionalProperties": False
    },
    out_schema={
        "type": "object",
        "properties": {
            "success": {"type": "boolean"},
            "path": {"type": "string"},
            "bytesWritten": {"type": "integer"},
            "created": {"type": "boolean"},
            "message": {"type": "string"},
            "error": {"type": "string"}
        }
    },
    fn=_tool_write_file,
    requires_approval=True,
)
