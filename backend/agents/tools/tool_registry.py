from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from utils.config import Config
from utils.logger import get_logger


@dataclass
class ToolExecutionContext:
    """Execution context passed to tools."""

    thread_id: str
    workspace_path: Optional[str] = None
    allowed_paths: List[str] = field(default_factory=list)
    call_id: Optional[str] = None

    @classmethod
    def from_config(cls, thread_id: str, call_id: Optional[str] = None) -> "ToolExecutionContext":
        return cls(
            thread_id=thread_id,
            workspace_path=Config.get_workspace_root(),
            allowed_paths=Config.get_allowed_paths(),
            call_id=call_id,
        )


@dataclass
class ToolResult:
    """Standardised return type for tools."""

    output: Dict[str, Any]
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolSpec:
    """Specification and callable for a tool."""

    name: str
    version: str
    description: str
    effects: List[str]
    in_schema: Dict[str, Any]
    out_schema: Dict[str, Any]
    fn: Callable[[Dict[str, Any], ToolExecutionContext], ToolResult]
    requires_approval: bool = False

    def to_model_tool(self) -> Dict[str, Any]:
        """Function-calling definition sent to the model."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.in_schema,
            },
        }


class ToolRegistry:
    """Registry of available tools."""

    def __init__(self):
        self._tools: Dict[str, ToolSpec] = {}
        self._logger = get_logger(__name__)

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            self._logger.warning("Tool %s already registered, overwriting", spec.name)
        self._tools[spec.name] = spec
        self._logger.info("Registered tool %s v%s", spec.name, spec.version)

    def get(self, name: str) -> ToolSpec:
        if name not in self._tools:
            raise KeyError(f"Tool {name} is not registered")
        return self._tools[name]

    def has(self, name: str) -> bool:
        return name in self._tools

    def list(self) -> List[str]:
        return sorted(self._tools.keys())

    def get_all_tools(self) -> List[ToolSpec]:
        return list(self._tools.values())

    def model_tool_definitions(self) -> List[Dict[str, Any]]:
        return [self._tools[name].to_model_tool() for name in self.list()]


_TYPE_MAP = {
    "string": str,
    "integer": int,
    "number": (int, float),
    "boolean": bool,
    "array": list,
    "object": dict,
    "null": type(None),
}


def _matches_type(value: Any, expected: str) -> bool:
    python_type = _TYPE_MAP.get(expected)
    if python_type is None:
        return True
    if expected in ("integer", "number") and isinstance(value, bool):
        return False
    if expected == "integer" and isinstance(value, float):
        return value.is_integer()
    return isinstance(value, python_type)


def _validate_value(value: Any, schema: Dict[str, Any], path: str, errors: List[str]) -> None:
    expected = schema.get("type")
    if expected and not _matches_type(value, expected):
        errors.append(f"{path}: expected {expected}, got {type(value).__name__}")
        return

    if "enum" in schema and value not in schema["enum"]:
        errors.append(f"{path}: must be one of {schema['enum']}")

    if isinstance(value, str) and "minLength" in schema and len(value) < schema["minLength"]:
        errors.append(f"{path}: must be at least {schema['minLength']} character(s)")

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if "minimum" in schema and value < schema["minimum"]:
            errors.append(f"{path}: must be >= {schema['minimum']}")
        if "exclusiveMinimum" in schema and value <= schema["exclusiveMinimum"]:
            errors.append(f"{path}: must be > {schema['exclusiveMinimum']}")
        if "maximum" in schema and value > schema["maximum"]:
            errors.append(f"{path}: must be <= {schema['maximum']}")

    if isinstance(value, list):
        if "minItems" in schema and len(value) < schema["minItems"]:
            errors.append(f"{path}: must contain at least {schema['minItems']} item(s)")
        item_schema = schema.get("items")
        if isinstance(item_schema, dict):
            for index, item in enumerate(value):
                _validate_value(item, item_schema, f"{path}[{index}]", errors)

    if isinstance(value, dict) and "properties" in schema:
        _validate_object(value, schema, path, errors)


def _validate_object(value: Dict[str, Any], schema: Dict[str, Any], path: str, errors: List[str]) -> None:
    properties = schema.get("properties", {})
    for name in schema.get("required", []):
        if name not in value or value[name] is None:
            errors.append(f"{path}.{name}: required parameter missing")

    for name, item in value.items():
        if name not in properties:
            if schema.get("additionalProperties", True) is False:
                errors.append(f"{path}.{name}: unknown parameter")
            continue
        if item is None and name not in schema.get("required", []):
            continue
        _validate_value(item, properties[name], f"{path}.{name}", errors)


def validate_tool_input(spec: ToolSpec, params: Any) -> Dict[str, Any]:
    """Validate tool input against the tool's JSON schema."""
    errors: List[str] = []
    if not isinstance(params, dict):
        errors.append(f"input: expected object, got {type(params).__name__}")
    else:
        _validate_object(params, spec.in_schema, "input", errors)
    return {"valid": len(errors) == 0, "errors": errors}


tool_registry = ToolRegistry()
_logger = get_logger(__name__)


def register_builtin_tools(registry: ToolRegistry = tool_registry) -> None:
    from .file_ops.edit_func import edit_file_spec
    from .file_ops.multi_edit_func import multi_edit_spec
    from .file_ops.write_func import write_file_spec
    from .file_ops.read_func import read_file_spec
    from .file_ops.list_func import list_dir_spec
    from .file_ops.search_func import glob_spec
    from .file_ops.grep_func import grep_spec
    from .system_ops.bash_func import bash_spec
    from .web_ops.web_search_func import web_search_spec

    for spec in (
        edit_file_spec,
        multi_edit_spec,
        write_file_spec,
        bash_spec,
        read_file_spec,
        list_dir_spec,
        glob_spec,
        grep_spec,
        web_search_spec,
    ):
        registry.register(spec)
    _logger.info("Built-in tools registered: %s", ", ".join(registry.list()))


register_builtin_tools()
