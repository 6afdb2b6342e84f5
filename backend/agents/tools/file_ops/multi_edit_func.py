from __future__ import annotations

from typing import Any, Dict, List

from utils.logger import get_logger
from ...tools.tool_registry import ToolExecutionContext, ToolResult, ToolSpec
from .file_utils import read_text_file, resolve_safe_path, write_text_file

_logger = get_logger(__name__)


def truncate_for_display(text: str, max_length: int = 50) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length - 3] + "..."


def _tool_multi_edit(params: Dict[str, Any], ctx: ToolExecutionContext) -> ToolResult:
    """
    Apply a batch of find-and-replace edits to one file, in order.

    Each edit sees the result of the previous ones and its oldText must
    occur exactly once. The first failing edit stops the batch; edits that
    were already applied are still written (unless dryRun), and the result
    reports appliedEdits/totalEdits.
    """
    file_path = params.get("path")
    edits = params.get("edits") or []
    dry_run = bool(params.get("dryRun", False))

    if not edits:
        raise ValueError("edits must contain at least one edit operation")

    resolved_path = resolve_safe_path(file_path, ctx.workspace_path, ctx.allowed_paths)
    content = read_text_file(resolved_path, file_path)
    original = content

    results: List[Dict[str, Any]] = []
    applied = 0
    error = None

    for index, edit in enumerate(edits):
        old_text = edit.get("oldText") or ""
        new_text = edit.get("newText", "")
        occurrences = content.count(old_text) if old_text else 0

        if occurrences == 0:
            results.append({
                "index": index,
                "success": False,
                "oldText": truncate_for_display(old_text),
                "message": "Could not find text to replace. Ensure it matches exactly, including whitespace.",
            })
            error = f"Edit {index + 1}/{len(edits)} failed: oldText not found."
            break

        if occurrences > 1:
            results.append({
                "index": index,
                "success": False,
                "oldText": truncate_for_display(old_text),
                "message": f"Found {occurrences} occurrences of oldText. "
                           "Each oldText must be unique to avoid ambiguous replacements.",
            })
            error = f"Edit {index + 1}/{len(edits)} failed: ambiguous match ({occurrences} occurrences)."
            break

        content = content.replace(old_text, new_text, 1)
        applied += 1
        results.append({
            "index": index,
            "success": True,
            "oldText": truncate_for_display(old_text),
            "message": "Successfully replaced",
        })

    written = not dry_run and applied > 0 and content != original
    if written:
        write_text_file(resolved_path, content)
        _logger.info(f"Successfully edited '{resolved_path}' (multi_edit, {applied}/{len(edits)} edits applied)")

    output: Dict[str, Any] = {
        "success": error is None,
        "path": str(resolved_path),
        "appliedEdits": applied,
        "totalEdits": len(edits),
        "dryRun": dry_run,
        "results": results,
    }
    if error is not None:
        if dry_run or applied == 0:
            output["error"] = f"{error} No changes were made to the file."
        else:
            output["error"] = f"{error} The {applied} preceding edit(s) were applied."
    elif dry_run:
        output["message"] = f"Dry run: {applied}/{len(edits)} edits would succeed"
    else:
        output["message"] = f"Successfully applied {applied}/{len(edits)} edits to {resolved_path}"

    return ToolResult(output=output, metadata={"file_path": str(resolved_path), "written": written})


multi_edit_spec = ToolSpec(
    name="multi_edit",
    version="1.0",
    description=(
        "Make multiple find-and-replace edits in a single file. "
        "This tool modifies files and requires user approval. "
        "Provide an array of edits, each with oldText and newText. "
        "Edits are applied in order (later edits see results of earlier ones). "
        "Processing stops at the first failing edit; earlier edits stay applied. "
        "Use dryRun=true to validate edits without modifying the file."
    ),
    effects=["disk"],
    in_schema={
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "The file path to edit. Must be an existing file."
            },
            "edits": {
                "type": "array",
                "minItems": 1,
                "items": {
                    "type": "object",
                    "properties": {
                        "oldText": {"type": "string", "minLength": 1},
                        "newText": {"type": "string"}
                    },
                    "required": ["oldText", "newText"]
                },
                "description": "Edit operations, applied in order"
            },
            "dryRun": {
                "type": "boolean",
                "default": False,
                "description": "Validate all edits without modifying the file"
            }
        },
        "required": ["path", "edits"],
        "additionalProperties": False
    },
    out_schema={
        "type": "object",
        "properties": {
            "success": {"type": "boolean"},
            "path": {"type": "string"},
            "appliedEdits": {"type": "integer"},
            "totalEdits": {"type": "integer"},
            "dryRun": {"type": "boolean"},
            "results": {"type": "array"},
            "message": {"type": "string"},
            "error": {"type": "string"}
        }
    },
    fn=_tool_multi_edit,
    requires_approval=True,
)
