from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List

from utils.logger import get_logger
from ...tools.tool_registry import ToolExecutionContext, ToolResult, ToolSpec
from .file_utils import resolve_safe_path

_logger = get_logger(__name__)


def _entry_type(entry) -> str:
    if entry.is_symlink():
        return "symlink"
    if entry.is_dir():
        return "directory"
    if entry.is_file():
        return "file"
    return "unknown"


def _tool_list_dir(params: Dict[str, Any], ctx: ToolExecutionContext) -> ToolResult:
    """List a directory, directories first, then by name."""
    directory_path = params.get("path") or "."
    show_hidden = params.get("showHidden", False)
    include_details = params.get("includeDetails", True)

    resolved_path = resolve_safe_path(directory_path, ctx.workspace_path, ctx.allowed_paths)
    if not resolved_path.exists():
        raise ValueError(f"directory '{directory_path}' does not exist")
    if not resolved_path.is_dir():
        raise ValueError(f"Path is not a directory: {resolved_path}. Use 'read' tool for files.")

    entries: List[Dict[str, Any]] = []
    try:
        children = list(resolved_path.iterdir())
    except PermissionError:
        raise ValueError(f"Cannot list '{directory_path}': permission denied")

    for child in children:
        if not show_hidden and child.name.startswith('.'):
            continue
        item: Dict[str, Any] = {"name": child.name, "type": _entry_type(child)}
        if include_details and item["type"] == "file":
            try:
                stat_info = child.stat()
                item["size"] = stat_info.st_size
                item["modifiedAt"] = datetime.fromtimestamp(stat_info.st_mtime, tz=timezone.utc).isoformat()
            except OSError as e:
                _logger.debug(f"Error reading stats for {child}: {e}")
        entries.append(item)

    entries.sort(key=lambda e: (e["type"] != "directory", e["name"].lower()))

    return ToolResult(
        output={
            "success": True,
            "path": str(resolved_path),
            "totalItems": len(entries),
            "entries": entries,
        },
        metadata={"entry_count": len(entries)},
    )


list_dir_spec = ToolSpec(
    name="ls",
    version="1.0",
    description=(
        "List the contents of a directory. "
        "Returns names and types, plus size and modification time for files."
    ),
    effects=[],
    in_schema={
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "The directory to list. Use '.' for the workspace root."
            },
            "showHidden": {
                "type": "boolean",
                "default": False,
                "description": "Include entries whose name starts with '.'"
            },
            "includeDetails": {
                "type": "boolean",
                "default": True,
                "description": "Include file size and modification time"
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
            "totalItems": {"type": "integer"},
            "entries": {"type": "array"}
        }
    },
    fn=_tool_list_dir,
)
