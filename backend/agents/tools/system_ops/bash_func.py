from __future__ import annotations

import os
import signal
import subprocess
import threading
import time
from collections import deque
from typing import Any, Deque, Dict, List

from utils.config import Config
from utils.logger import get_logger
from ...tools.tool_registry import ToolExecutionContext, ToolResult, ToolSpec
from ..file_ops.file_utils import resolve_safe_path

_logger = get_logger(__name__)

TRUNCATION_MARKER = "\n...[output truncated]...\n"


def _validate_command(command: str) -> tuple[bool, str]:
    """
    Validate command for basic security checks.
    Returns (is_valid, error_message).
    """
    if not command or not command.strip():
        return False, "command cannot be empty"

    dangerous_patterns = [
        "rm -rf /",
        "rm -rf /*",
        "mkfs.",
        "dd if=/dev/zero",
        "> /dev/sda",
        ":(){ :|:& };:",
    ]

    command_lower = command.lower().strip()
    for pattern in dangerous_patterns:
        if command_lower == pattern or f"{pattern} " in f"{command_lower} ":
            return False, f"command contains potentially destructive pattern: '{pattern}'"

    return True, ""


def cap_output(text: str, limit: int) -> str:
    """Keep the first and last half of text when it exceeds limit characters."""
    if len(text) <= limit:
        return text
    half = limit // 2
    return text[:half] + TRUNCATION_MARKER + text[-half:]


class _StreamCollector(threading.Thread):
    """
    Drains one pipe, keeping at most limit characters (head and tail).

    The head is filled once; the tail is a rolling window of chunks, so
    memory stays bounded however much the command prints. text matches
    cap_output() applied to the whole stream.
    """

    def __init__(self, stream, limit: int):
        super().__init__(daemon=True)
        self._stream = stream
        self._limit = limit
        self._head_limit = limit // 2
        self._tail_limit = limit - self._head_limit
        self._head: List[str] = []
        self._head_size = 0
        self._tail: Deque[str] = deque()
        self._tail_size = 0
        self._total = 0

    def feed(self, chunk: str) -> None:
        self._total += len(chunk)
        if self._head_size < self._head_limit:
            taken = chunk[:self._head_limit - self._head_size]
            self._head.append(taken)
            self._head_size += len(taken)
            chunk = chunk[len(taken):]
        if not chunk:
            return
        self._tail.append(chunk)
        self._tail_size += len(chunk)
        while self._tail and self._tail_size - len(self._tail[0]) >= self._tail_limit:
            self._tail_size -= len(self._tail.popleft())

    def run(self):
        for chunk in iter(lambda: self._stream.read(8192), ""):
            self.feed(chunk)
        self._stream.close()

    @property
    def buffered_size(self) -> int:
        return self._head_size + self._tail_size

    @property
    def text(self) -> str:
        head = "".join(self._head)
        tail = "".join(self._tail)
        if self._total <= self._limit:
            return head + tail
        return head + TRUNCATION_MARKER + tail[len(tail) - self._head_limit:]


def _terminate_process_group(process: subprocess.Popen, grace_seconds: float) -> None:
    """SIGTERM the command's process group, then SIGKILL whatever is left."""
    try:
        pgid = os.getpgid(process.pid)
    except ProcessLookupError:
        return

    try:
        os.killpg(pgid, signal.SIGTERM)
    except ProcessLookupError:
        return

    try:
        process.wait(timeout=grace_seconds)
    except subprocess.TimeoutExpired:
        _logger.warning(f"Process group {pgid} ignored SIGTERM, sending SIGKILL")
    try:
        os.killpg(pgid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    process.wait()


def run_bash(command: str, cwd: str, timeout_ms: int) -> Dict[str, Any]:
    """
    Run a command with bash -c and collect its outcome.

    A timeout kills the whole process group and is reported through
    timedOut with exitCode None; it is never raised.
    """
    exec_env = os.environ.copy()
    exec_env["PAGER"] = "cat"
    exec_env["NO_COLOR"] = "1"

    start_time = time.monotonic()
    try:
        process = subprocess.Popen(
            ["bash", "-c", command],
            cwd=cwd,
            env=exec_env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            start_new_session=True,
        )
    except OSError as e:
        _logger.error(f"[TOOL] bash spawn failed: {e}")
        return {
            "success": False,
            "exitCode": None,
            "stdout": "",
            "stderr": f"Failed to execute command: {e}",
            "timedOut": False,
            "executionTime": int((time.monotonic() - start_time) * 1000),
        }

    stdout_reader = _StreamCollector(process.stdout, Config.BASH_MAX_STDOUT_CHARS)
    stderr_reader = _StreamCollector(process.stderr, Config.BASH_MAX_STDERR_CHARS)
    stdout_reader.start()
    stderr_reader.start()

    timed_out = False
    try:
        exit_code = process.wait(timeout=timeout_ms / 1000.0)
    except subprocess.TimeoutExpired:
        timed_out = True
        _logger.warning(f"[TOOL] bash timed out after {timeout_ms}ms (pid {process.pid}), terminating")
        _terminate_process_group(process, Config.get_bash_kill_grace_seconds())
        exit_code = None

    stdout_reader.join(timeout=5)
    stderr_reader.join(timeout=5)
    execution_time = int((time.monotonic() - start_time) * 1000)

    return {
        "success": exit_code == 0 and not timed_out,
        "exitCode": exit_code,
        "stdout": stdout_reader.text.strip(),
        "stderr": stderr_reader.text.strip(),
        "timedOut": timed_out,
        "executionTime": execution_time,
    }


def _tool_bash(params: Dict[str, Any], ctx: ToolExecutionContext) -> ToolResult:
    """Execute a shell command with an enforced timeout."""
    command = params.get("command")
    cwd = params.get("cwd")
    timeout_ms = params.get("timeout")

    if not isinstance(command, str):
        raise ValueError(f"command must be a string, got {type(command).__name__}")
    is_valid_cmd, error_msg = _validate_command(command)
    if not is_valid_cmd:
        raise ValueError(f"Invalid command: {error_msg}")

    if timeout_ms is None:
        timeout_ms = Config.get_bash_default_timeout_ms()
    max_timeout = Config.get_bash_max_timeout_ms()
    if timeout_ms <= 0:
        raise ValueError(f"timeout must be a positive number of milliseconds, got {timeout_ms}")
    if timeout_ms > max_timeout:
        raise ValueError(f"timeout cannot exceed {max_timeout}ms, got {timeout_ms}")

    working_dir = resolve_safe_path(cwd or ".", ctx.workspace_path, ctx.allowed_paths)
    if not working_dir.is_dir():
        raise ValueError(f"Invalid cwd: directory '{cwd}' does not exist")

    _logger.info(
        f"Executing command in {working_dir}: "
        f"{command[:100]}{'...' if len(command) > 100 else ''}"
    )

    output = run_bash(command, str(working_dir), int(timeout_ms))

    _logger.info(
        f"Command finished: exitCode={output['exitCode']} timedOut={output['timedOut']} "
        f"in {output['executionTime']}ms"
    )
    return ToolResult(
        output=output,
        metadata={"working_dir": str(working_dir), "timeout_ms": int(timeout_ms)},
    )


bash_spec = ToolSpec(
    name="bash",
    version="1.0",
    description=(
        "Execute a shell command on the local system with bash. "
        "Supports pipes, redirects and compound commands. "
        "Always requires user approval. Default timeout is 30 seconds; "
        "use 'cwd' to choose the working directory. "
        "Returns exit code, stdout, stderr and whether the command timed out."
    ),
    effects=["process", "disk"],
    in_schema={
        "type": "object",
        "properties": {
            "command": {
                "type": "string",
                "minLength": 1,
                "description": "The shell command to execute"
            },
            "cwd": {
                "type": "string",
                "description": "Working directory for the command. Defaults to the workspace root."
            },
            "timeout": {
                "type": "integer",
                "exclusiveMinimum": 0,
                "default": Config.BASH_DEFAULT_TIMEOUT_MS,
                "description": "Maximum execution time in milliseconds"
            }
        },
        "required": ["command"],
        "additionalProperties": False
    },
    out_schema={
        "type": "object",
        "properties": {
            "success": {"type": "boolean"},
            "exitCode": {"type": ["integer", "null"]},
            "stdout": {"type": "string"},
            "stderr": {"type": "string"},
            "timedOut": {"type": "boolean"},
            "executionTime": {"type": "integer"}
        }
    },
    fn=_tool_bash,
    requires_approval=True,
)
