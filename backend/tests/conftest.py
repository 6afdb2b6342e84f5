"""Shared test fixtures and configuration for pytest.

The data, log and workspace directories are pointed at a temporary
directory before any backend module is imported, so the module-level
database and logger never touch the real project tree.
"""

import os
import sys
import tempfile
from pathlib import Path

backend_dir = Path(__file__).resolve().parents[1]
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

_test_root = Path(tempfile.mkdtemp(prefix="relaychat-tests-"))
os.environ.setdefault("RELAYCHAT_DATA_DIR", str(_test_root / "data"))
os.environ.setdefault("RELAYCHAT_LOG_DIR", str(_test_root / "logs"))
os.environ.setdefault("RELAYCHAT_WORKSPACE_ROOT", str(_test_root / "workspace"))
os.environ.setdefault("RELAYCHAT_LOG_LEVEL", "WARNING")
os.environ["RELAYCHAT_TITLE_GENERATION"] = "false"
(_test_root / "workspace").mkdir(parents=True, exist_ok=True)


def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
