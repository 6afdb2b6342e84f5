from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Optional

from utils.logger import get_logger

_logger = get_logger(__name__)

BINARY_EXTENSIONS = {
    '.jpg', '.jpeg', '.png', '.gif', '.bmp', '.webp', '.ico', '.tiff', '.tif',
    '.mp4', '.avi', '.mov', '.webm', '.mkv', '.mp3', '.wav', '.flac', '.ogg',
    '.zip', '.tar', '.gz', '.bz2', '.xz', '.7z', '.rar', '.iso',
    '.pdf', '.doc', '.docx', '.xls', '.xlsx', '.ppt', '.pptx',
    '.exe', '.dll', '.so', '.dylib', '.bin',
    '.db', '.sqlite', '.sqlite3',
    '.pyc', '.pyo', '.class', '.jar', '.o', '.a'
}

TEXTUAL_EXTENSIONS = {
    '.py', '.js', '.ts', '.jsx', '.tsx', '.java', '.c', '.cpp', '.h', '.hpp',
    '.go', '.rs', '.rb', '.php', '.swift', '.kt', '.cs',
    '.html', '.css', '.xml', '.json', '.yaml', '.yml', '.toml', '.ini', '.cfg',
    '.md', '.rst', '.txt', '.log', '.sh', '.bash', '.zsh',
    '.sql', '.graphql', '.proto', '.csv', '.tsv'
}

DEFAULT_EXCLUDED_DIRS = {'.git', 'node_modules', '__pycache__', '.venv', 'venv', 'dist', 'build', '.next'}


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
        return True
    except ValueError:
        return False


def resolve_safe_path(
    raw_path: str,
    workspace_root: Optional[str],
    allowed_paths: Optional[Iterable[str]] = None,
) -> Path:
    """
    Resolve a path against the workspace root.

    Relative paths are taken from the workspace root. The resolved path must
    stay inside the workspace or inside one of the extra allowed roots.
    Raises ValueError otherwise.
    """
    if not isinstance(raw_path, str) or not raw_path.strip():
        raise ValueError("path must be a non-empty string")

    root = Path(workspace_root).resolve() if workspace_root else Path.cwd().resolve()
    path = Path(raw_path).expanduser()
    resolved = (path if path.is_absolute() else root / path).resolve()

    roots: List[Path] = [root]
    roots.extend(Path(p).resolve() for p in (allowed_paths or []) if p)
    if not any(_is_within(resolved, allowed) for allowed in roots):
        raise ValueError(
            f"Access denied: path '{raw_path}' is outside allowed workspace boundaries."
        )
    return resolved


def workspace_relative_path(path: Path, workspace_root: Optional[str]) -> str:
    """
    Return a path relative to the workspace root, falling back to absolute.
    """
    if workspace_root:
        try:
            relative_str = path.relative_to(Path(workspace_root).resolve()).as_posix()
            return relative_str if relative_str else "."
        except ValueError:
            pass
    return path.as_posix()


def is_likely_binary(file_path: Path) -> tuple[bool, str]:
    """
    Determine if a file is likely binary.
    Returns (is_binary, reason).
    """
    ext = file_path.suffix.lower()

    if ext in BINARY_EXTENSIONS:
        return True, f"file extension '{ext}' indicates binary format"

    if ext in TEXTUAL_EXTENSIONS:
        return False, f"file extension '{ext}' indicates text format"

    try:
        with open(file_path, 'rb') as f:
            chunk = f.read(8192)
    except OSError as e:
        _logger.warning(f"Error checking file type for {file_path}: {e}")
        return True, f"unable to read file for type detection: {str(e)}"

    if b'\x00' in chunk:
        return True, "file contains null bytes (binary indicator)"
    try:
        chunk.decode('utf-8')
        return False, "file content appears to be valid UTF-8 text"
    except UnicodeDecodeError:
        return True, "file content contains non-UTF-8 data"


def read_text_file(resolved_path: Path, display_path: str) -> str:
    """Read a UTF-8 file, translating OS errors into ValueError."""
    if not resolved_path.exists():
        raise ValueError(f"path '{display_path}' does not exist")
    if resolved_path.is_dir():
        raise ValueError(f"path '{display_path}' is a directory, not a file")
    try:
        with open(resolved_path, 'r', encoding='utf-8', newline='') as f:
            return f.read()
    except UnicodeDecodeError:
        raise ValueError(
            f"Cannot read '{display_path}': file contains invalid UTF-8 data. "
            "This tool is for UTF-8 textual files only."
        )
    except PermissionError:
        raise ValueError(
            f"Cannot read '{display_path}': permission denied. "
            "Check that you have read access to this file."
        )
    except OSError as e:
        raise ValueError(f"Cannot read '{display_path}': {e.strerror or e}")


def write_text_file(resolved_path: Path, content: str, encoding: str = 'utf-8') -> int:
    """Write text and return the number of bytes written."""
    try:
        with open(resolved_path, 'w', encoding=encoding, newline='') as f:
            f.write(content)
    except PermissionError:
        raise ValueError(
            f"Cannot write to '{resolved_path}': permission denied. "
            "Check that you have write access to this location."
        )
    except IsADirectoryError:
        raise ValueError(f"Cannot write to '{resolved_path}': path is a directory")
    except OSError as e:
        raise ValueError(f"Cannot write to '{resolved_path}': {e.strerror or e}")
    return len(content.encode(encoding))


def format_file_size(size_bytes: int) -> str:
    """Format file size in human-readable format."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size_bytes < 1024.0:
            return f"{size_bytes:.2f} {unit}"
        size_bytes /= 1024.0
    return f"{size_bytes:.2f} PB"
