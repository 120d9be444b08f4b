"""
Pytest configuration and shared fixtures for the droidpanel test suite.

This module provides common fixtures, test utilities, and configuration
for all test modules in the droidpanel project.
"""

import shutil
import sys
import tempfile
import time
from pathlib import Path
from typing import Callable

import pytest

# Add src to Python path for testing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


# ============================================================================
# Test Configuration
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


# ============================================================================
# Core Fixtures
# ============================================================================


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def coordination_loop():
    """A running coordination loop, stopped after the test."""
    from droidpanel.orchestration import CoordinationLoop

    loop = CoordinationLoop(name="TestCoordination")
    loop.start()
    yield loop
    loop.stop()


@pytest.fixture
def sample_config_data(temp_dir):
    """Configuration data with fast timers and /bin/sh as the shell."""
    return {
        "sdk": {"home": str(temp_dir / "sdk"), "build_tools_version": "36.0.0"},
        "process": {"shell": "/bin/sh", "shell_args": ["-c"], "kill_grace_period": 0.2},
        "timing": {
            "emulator_check_interval": 0.05,
            "task_timer_interval": 0.02,
            "adb_restart_delay": 0.0,
            "mdns_init_delay": 0.0,
            "launch_delay": 0.0,
        },
        "log": {"max_lines": 1000, "trim_threshold": 1200, "timestamp_messages": False},
        "settings": {"path": str(temp_dir / "settings.toml")},
    }


@pytest.fixture
def app_config(sample_config_data):
    from droidpanel.config import validate_app_config

    return validate_app_config(sample_config_data)


@pytest.fixture
def config_file(temp_dir, sample_config_data):
    """Write the sample configuration to a config.toml."""
    import toml

    path = temp_dir / "config.toml"
    with open(path, "w") as f:
        toml.dump(sample_config_data, f)
    return path


@pytest.fixture
def orchestrator(app_config):
    """An orchestrator whose device query never touches adb."""
    from droidpanel.orchestration import TaskOrchestrator

    instance = TaskOrchestrator(app_config, status_query=lambda: False)
    yield instance
    instance.close()


@pytest.fixture
def android_project(temp_dir):
    """A minimal Android project with an ``app`` and a ``lib`` module."""
    project = temp_dir / "MyApp"
    app = project / "app"
    (app / "src" / "main").mkdir(parents=True)
    (app / "build.gradle.kts").write_text(
        'android {\n    namespace = "com.example.myapp"\n    defaultConfig {\n'
        '        applicationId = "com.example.myapp.store"\n    }\n}\n'
    )
    (app / "src" / "main" / "AndroidManifest.xml").write_text(
        '<manifest xmlns:android="http://schemas.android.com/apk/res/android">\n'
        '  <application>\n'
        '    <activity android:name=".SettingsActivity" />\n'
        '    <activity android:name=".MainActivity" android:exported="true" />\n'
        '  </application>\n'
        '</manifest>\n'
    )
    (project / "lib").mkdir()
    (project / "lib" / "build.gradle").write_text("apply plugin: 'com.android.library'\n")
    (project / "gradle").mkdir()
    return project


# ============================================================================
# Test Utilities
# ============================================================================


class TestUtils:
    """Utility functions for testing."""

    @staticmethod
    def wait_until(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.01) -> bool:
        """Poll ``predicate`` until it holds or ``timeout`` expires."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()


@pytest.fixture
def test_utils():
    """Provide test utility functions."""
    return TestUtils


@pytest.fixture(autouse=True)
def clear_config_after_test():
    """Automatically clear configuration cache after each test."""
    original_config_path = Path(__file__).parent.parent / "conf" / "config.toml"

    yield

    from droidpanel.config import clear_config_cache, set_config_path

    clear_config_cache()
    set_config_path(original_config_path)
