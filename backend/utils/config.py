# status: complete

import os
from pathlib import Path
from typing import Any, List, Optional

from dotenv import load_dotenv

from utils.logger import get_logger

load_dotenv()

logger = get_logger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[2]


class Config:
    """Application configuration with RELAYCHAT_* environment overrides."""

    MAX_AGENT_ITERATIONS = 10

    BASH_DEFAULT_TIMEOUT_MS = 30000
    BASH_MAX_TIMEOUT_MS = 600000
    BASH_KILL_GRACE_SECONDS = 2.0
    BASH_MAX_STDOUT_CHARS = 1_000_000
    BASH_MAX_STDERR_CHARS = 100_000

    OLLAMA_BASE_URL = "http://localhost:11434"
    OLLAMA_MODEL = "qwen3:8b"
    MODEL_REQUEST_TIMEOUT = 300
    MODEL_CONNECT_TIMEOUT = 10

    DEFAULT_THREAD_TITLE = "New Chat"
    TITLE_GENERATION_ENABLED = True
    TITLE_MAX_LENGTH = 100

    DB_NAME = "relaychat.db"

    TOOL_EXECUTOR_MAX_WORKERS = 4
    SSE_KEEPALIVE_SECONDS = 15
    CORS_ORIGINS = "http://localhost:3000"

    TAVILY_API_URL = "https://api.tavily.com"
    WEB_SEARCH_TIMEOUT = 20

    AGENT_SYSTEM_PROMPT = """You are an agentic reasoning assistant with tool-calling capabilities for files, commands, and information retrieval. You follow instructions and tend to not second guess yourself.

## Tools
**Search/Discovery**: `grep` (search file contents), `glob` (find files by pattern), `ls` (list directories)
**File I/O**: `read`, `write` ⚠️, `edit` ⚠️, `multi_edit` ⚠️
**Shell**: `bash` ⚠️ (execute commands, run tests, install deps, manage services)
**External**: `web_search` (current info beyond training data)

## Tool Selection
**Finding content** → grep first, then read specific files
**Finding files** → glob for names, ls for structure
**Modifying files** → edit/multi_edit for changes, write for new files
**Running tasks** → bash for build/test/lint
**Current info** → web_search

## Execution Model
**Simple/obvious requests**: Execute immediately with sensible defaults. Don't deliberate on trivial choices.
**Complex/ambiguous tasks**: Reason about approach, then act efficiently.
**Chain operations**: grep → read → edit. Search before reading.

## Guidelines
- Use defaults for all tool calls unless specified (timeout: 30000ms, cwd: workspace root)
- edit > write for modifications (exact whitespace match required)
- ⚠️ = requires user approval: state the operation and the reason briefly before calling
- Prefer action over deliberation for straightforward tasks

Reason deeply when needed. Act decisively when obvious."""

    @staticmethod
    def _coerce_positive_int(value: Any) -> Optional[int]:
        """Convert value to positive int, returning None on failure."""
        try:
            number = int(value)
        except (TypeError, ValueError):
            return None
        return number if number > 0 else None

    @classmethod
    def _env_int(cls, env_key: str, default: int) -> int:
        raw = os.getenv(env_key)
        if raw is None or raw == "":
            return default
        number = cls._coerce_positive_int(raw)
        if number is None:
            logger.warning("Ignoring invalid value for %s: %r", env_key, raw)
            return default
        return number

    @staticmethod
    def _env_flag(env_key: str, default: bool) -> bool:
        raw = os.getenv(env_key)
        if raw is None or raw == "":
            return default
        return raw.strip().lower() not in ("0", "false", "no", "off")

    @classmethod
    def get_max_agent_iterations(cls) -> int:
        """Get the agent loop bound (model turns per user request)."""
        return cls._env_int("RELAYCHAT_MAX_AGENT_ITERATIONS", cls.MAX_AGENT_ITERATIONS)

    @classmethod
    def get_bash_default_timeout_ms(cls) -> int:
        return cls._env_int("RELAYCHAT_BASH_TIMEOUT_MS", cls.BASH_DEFAULT_TIMEOUT_MS)

    @classmethod
    def get_bash_max_timeout_ms(cls) -> int:
        return cls.BASH_MAX_TIMEOUT_MS

    @classmethod
    def get_bash_kill_grace_seconds(cls) -> float:
        return cls.BASH_KILL_GRACE_SECONDS

    @classmethod
    def get_ollama_base_url(cls) -> str:
        return os.getenv("OLLAMA_BASE_URL", cls.OLLAMA_BASE_URL).rstrip("/")

    @classmethod
    def get_ollama_model(cls) -> str:
        return os.getenv("OLLAMA_MODEL", cls.OLLAMA_MODEL)

    @classmethod
    def get_model_request_timeout(cls) -> int:
        return cls._env_int("RELAYCHAT_MODEL_TIMEOUT", cls.MODEL_REQUEST_TIMEOUT)

    @classmethod
    def get_model_connect_timeout(cls) -> int:
        return cls.MODEL_CONNECT_TIMEOUT

    @classmethod
    def get_workspace_root(cls) -> str:
        """Root directory that tool paths resolve against."""
        root = os.getenv("RELAYCHAT_WORKSPACE_ROOT") or os.getcwd()
        return str(Path(root).resolve())

    @classmethod
    def get_allowed_paths(cls) -> List[str]:
        """Extra directories tools may touch, separated by os.pathsep."""
        raw = os.getenv("RELAYCHAT_ALLOWED_PATHS", "")
        return [str(Path(p).resolve()) for p in raw.split(os.pathsep) if p.strip()]

    @classmethod
    def get_data_dir(cls) -> str:
        return os.getenv("RELAYCHAT_DATA_DIR") or str(PROJECT_ROOT / "data")

    @classmethod
    def get_db_name(cls) -> str:
        return os.getenv("RELAYCHAT_DB_NAME", cls.DB_NAME)

    @classmethod
    def get_default_thread_title(cls) -> str:
        return cls.DEFAULT_THREAD_TITLE

    @classmethod
    def is_title_generation_enabled(cls) -> bool:
        return cls._env_flag("RELAYCHAT_TITLE_GENERATION", cls.TITLE_GENERATION_ENABLED)

    @classmethod
    def get_title_max_length(cls) -> int:
        return cls.TITLE_MAX_LENGTH

    @classmethod
    def get_tool_executor_max_workers(cls) -> int:
        return cls._env_int("RELAYCHAT_TOOL_WORKERS", cls.TOOL_EXECUTOR_MAX_WORKERS)

    @classmethod
    def get_sse_keepalive_seconds(cls) -> int:
        return cls.SSE_KEEPALIVE_SECONDS

    @classmethod
    def get_tavily_api_key(cls) -> Optional[str]:
        return os.getenv("TAVILY_API_KEY") or None

    @classmethod
    def get_web_search_base_url(cls) -> str:
        return os.getenv("TAVILY_API_URL", cls.TAVILY_API_URL).rstrip("/")

    @classmethod
    def get_web_search_timeout(cls) -> int:
        return cls._env_int("RELAYCHAT_WEB_SEARCH_TIMEOUT", cls.WEB_SEARCH_TIMEOUT)

    @classmethod
    def get_agent_system_prompt(cls) -> str:
        """Base system prompt of the agent; RELAYCHAT_SYSTEM_PROMPT_FILE replaces it."""
        prompt_file = os.getenv("RELAYCHAT_SYSTEM_PROMPT_FILE")
        if prompt_file:
            try:
                return Path(prompt_file).read_text(encoding='utf-8').strip()
            except OSError as e:
                logger.warning("Cannot read system prompt file %s: %s", prompt_file, e)
        return cls.AGENT_SYSTEM_PROMPT

    @classmethod
    def get_cors_origins(cls) -> List[str]:
        raw = os.getenv("CORS_ORIGINS", cls.CORS_ORIGINS)
        return [origin.strip() for origin in raw.split(",") if origin.strip()]

    @classmethod
    def get_defaults(cls) -> dict:
        """Get the effective configuration values exposed by /health."""
        return {
            "max_agent_iterations": cls.get_max_agent_iterations(),
            "bash_default_timeout_ms": cls.get_bash_default_timeout_ms(),
            "ollama_base_url": cls.get_ollama_base_url(),
            "ollama_model": cls.get_ollama_model(),
            "workspace_root": cls.get_workspace_root(),
            "title_generation": cls.is_title_generation_enabled(),
        }
