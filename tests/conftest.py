"""Pytest configuration and fixtures."""

import threading
from collections.abc import Generator

import pytest

# Enable pytest-asyncio for all tests
pytest_plugins = ("pytest_asyncio",)


# Thread names that belong to executors and may outlive a single test
_IGNORED_THREAD_PREFIXES = (
    "MainThread",
    "ThreadPoolExecutor",  # aiofiles and run_in_executor workers
    "asyncio_",  # default executor of asyncio.run (CLI tests)
    "pydevd",  # Debugger threads
)


def _is_tracked_thread(t: threading.Thread) -> bool:
    """Only non-daemon threads outside known executors count as leaks."""
    if t.daemon:
        return False
    return not any(t.name.startswith(prefix) for prefix in _IGNORED_THREAD_PREFIXES)


@pytest.fixture(autouse=True)
def thread_leak_tracker(
    request: pytest.FixtureRequest,
) -> Generator[None, None, None]:
    """Fail tests that leave non-daemon threads running.

    To skip this check for a specific test, use:
        @pytest.mark.no_resource_tracking
    """
    if request.node.get_closest_marker("no_resource_tracking"):
        yield
        return

    baseline = {t for t in threading.enumerate() if _is_tracked_thread(t)}

    yield

    leaked = {t for t in threading.enumerate() if _is_tracked_thread(t)} - baseline
    if leaked:
        pytest.fail(
            f"Thread leak detected - {len(leaked)} thread(s): "
            f"{sorted(t.name for t in leaked)}"
        )


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "no_resource_tracking: skip resource leak checking for this test",
    )
