from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Dict, List

from utils.logger import get_logger
from ...tools.tool_registry import ToolExecutionContext, ToolResult, ToolSpec
from .file_utils import DEFAULT_EXCLUDED_DIRS, is_likely_binary, resolve_safe_path

_logger = get_logger(__name__)

MAX_CONTEXT_LINES = 20


def _search_file(file_path: Path, relative: str, pattern, context_lines: int, matches: List[Dict[str, Any]],
                 max_results: int) -> int:
    """Append matches from one file; returns the number of matching lines."""
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            lines = f.read().split("\n")
    except (UnicodeDecodeError, OSError) as e:
        _logger.debug(f"Skipping unreadable file {file_path}: {e}")
        return 0

    found = 0
    for i, line in enumerate(lines):
        if not pattern.search(line):
            continue
        found += 1
        if len(matches) >= max_results:
            continue
        match: Dict[str, Any] = {"file": relative, "line": i + 1, "content": line.strip()}
        if context_lines > 0:
            match["context"] = {
                "before": [l.strip() for l in lines[max(0, i - context_lines):i]],
                "after": [l.strip() for l in lines[i + 1:i + 1 + context_lines]],
            }
        matches.append(match)
    return found


def _tool_grep_files(params: Dict[str, Any], ctx: ToolExecutionContext) -> ToolResult:
    """
    Search file contents line by line.

    Plain-text queries are escaped unless isRegex is set. Binary files and
    common dependency directories are skipped.
    """
    query = params.get("query")
    search_path = params.get("searchPath") or "."
    is_regex = params.get("isRegex", False)
    case_insensitive = params.get("caseInsensitive", False)
    max_results = params.get("maxResults", 50)
    context_lines = params.get("contextLines", 0)

    if not query:
        raise ValueError(
            "query is required. Provide a text pattern to search for. "
            "Examples: 'def calculate', 'import.*numpy'"
        )
    if context_lines > MAX_CONTEXT_LINES:
        raise ValueError(f"contextLines cannot exceed {MAX_CONTEXT_LINES} lines")

    try:
        flags = re.IGNORECASE if case_insensitive else 0
        pattern = re.compile(query if is_regex else re.escape(query), flags)
    except re.error as e:
        raise ValueError(f"Invalid regex pattern '{query}': {str(e)}")

    root_resolved = resolve_safe_path(search_path, ctx.workspace_path, ctx.allowed_paths)
    if not root_resolved.exists():
        raise ValueError(f"Cannot search: path '{search_path}' does not exist")

    if root_resolved.is_file():
        candidates = [(root_resolved, root_resolved.name)]
    else:
        candidates = []
        for root, dirs, files in os.walk(root_resolved):
            dirs[:] = sorted(d for d in dirs if d not in DEFAULT_EXCLUDED_DIRS)
            for name in sorted(files):
                file_path = Path(root) / name
                candidates.append((file_path, file_path.relative_to(root_resolved).as_posix()))

    matches: List[Dict[str, Any]] = []
    total_matches = 0
    files_searched = 0
    for file_path, relative in candidates:
        if is_likely_binary(file_path)[0]:
            continue
        files_searched += 1
        total_matches += _search_file(file_path, relative, pattern, context_lines, matches, max_results)

    _logger.info(
        f"Grep '{query[:100]}' in '{root_resolved}': {total_matches} matches in {files_searched} files"
    )

    return ToolResult(
        output={
            "success": True,
            "query": query,
            "totalMatches": total_matches,
            "truncated": total_matches > max_results,
            "matches": matches,
        },
        metadata={"match_count": total_matches, "files_searched": files_searched},
    )


grep_spec = ToolSpec(
    name="grep",
    version="1.0",
    description=(
        "Search for a text pattern inside files. "
        "Returns matching lines with file paths and line numbers. "
        "Use 'glob' to find files by name instead."
    ),
    effects=[],
    in_schema={
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "minLength": 1,
                "description": "Text or regex pattern to search for"
            },
            "searchPath": {
                "type": "string",
                "default": ".",
                "description": "File or directory to search"
            },
            "isRegex": {
                "type": "boolean",
                "default": False,
                "description": "Treat query as a regular expression"
            },
            "caseInsensitive": {
                "type": "boolean",
                "default": False,
                "description": "Ignore case when matching"
            },
            "maxResults": {
                "type": "integer",
                "minimum": 1,
                "default": 50,
                "description": "Maximum number of matches to return"
            },
            "contextLines": {
                "type": "integer",
                "minimum": 0,
                "default": 0,
                "description": "Lines of context before and after each match"
            }
        },
        "required": ["query"],
        "additionalProperties": False
    },
    out_schema={
        "type": "object",
        "properties": {
            "success": {"type": "boolean"},
            "query": {"type": "string"},
            "totalMatches": {"type": "integer"},
            "truncated": {"type": "boolean"},
            "matches": {"type": "array"}
        }
    },
    fn=_tool_grep_files,
)
