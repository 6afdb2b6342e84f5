from __future__ import annotations

import fnmatch
import os
from pathlib import Path
from typing import Any, Dict, List

from utils.logger import get_logger
from ...tools.tool_registry import ToolExecutionContext, ToolResult, ToolSpec
from .file_utils import DEFAULT_EXCLUDED_DIRS, resolve_safe_path

_logger = get_logger(__name__)


def matches_glob(name: str, relative_path: str, pattern: str) -> bool:
    """Match a glob against the entry name or its path relative to the search root."""
    if fnmatch.fnmatch(name, pattern) or fnmatch.fnmatch(relative_path, pattern):
        return True
    if pattern.startswith("**/"):
        return matches_glob(name, relative_path, pattern[3:])
    return False


def _tool_glob(params: Dict[str, Any], ctx: ToolExecutionContext) -> ToolResult:
    """
    Find files and directories whose name or relative path matches a glob.

    Common build and dependency directories are skipped. Results are
    returned in walk order, sorted within each directory.
    """
    pattern = params.get("pattern")
    search_root = params.get("path") or "."
    max_results = params.get("maxResults", 50)

    if not pattern:
        raise ValueError("pattern is required. Examples: '*.py', '**/*.ts', 'test_*.py'")
    if '..' in pattern.split('/'):
        raise ValueError(
            f"Pattern '{pattern}' contains directory traversal (..). "
            "Use relative patterns like '*.py' or '**/*.js'."
        )

    root_resolved = resolve_safe_path(search_root, ctx.workspace_path, ctx.allowed_paths)
    if not root_resolved.is_dir():
        raise ValueError(f"Cannot search: directory '{search_root}' does not exist")

    results: List[Dict[str, Any]] = []
    total_found = 0

    for root, dirs, files in os.walk(root_resolved):
        dirs[:] = sorted(d for d in dirs if d not in DEFAULT_EXCLUDED_DIRS)
        root_path = Path(root)
        for name, entry_type in [(d, "directory") for d in dirs] + [(f, "file") for f in sorted(files)]:
            relative = (root_path / name).relative_to(root_resolved).as_posix()
            if not matches_glob(name, relative, pattern):
                continue
            total_found += 1
            if len(results) < max_results:
                results.append({"path": relative, "name": name, "type": entry_type})

    _logger.info(f"Glob '{pattern}' in '{root_resolved}' matched {total_found} entries")

    return ToolResult(
        output={
            "success": True,
            "pattern": pattern,
            "totalFound": total_found,
            "truncated": total_found > max_results,
            "results": results,
        },
        metadata={"match_count": total_found},
    )


glob_spec = ToolSpec(
    name="glob",
    version="1.0",
    description=(
        "Find files and directories by glob pattern, such as '*.py', 'test_*.py' or '**/package.json'. "
        "Use this when searching by filename; use 'grep' for content search."
    ),
    effects=[],
    in_schema={
        "type": "object",
        "properties": {
            "pattern": {
                "type": "string",
                "minLength": 1,
                "description": "Glob pattern matched against names and relative paths"
            },
            "path": {
                "type": "string",
                "default": ".",
                "description": "Directory to search recursively"
            },
            "maxResults": {
                "type": "integer",
                "minimum": 1,
                "default": 50,
                "description": "Maximum number of results to return"
            }
        },
        "required": ["pattern"],
        "additionalProperties": False
    },
    out_schema={
        "type": "object",
        "properties": {
            "success": {"type": "boolean"},
            "pattern": {"type": "string"},
            "totalFound": {"type": "integer"},
            "truncated": {"type": "boolean"},
            "results": {"type": "array"}
        }
    },
    fn=_tool_glob,
)
