"""Shared test fixtures for coverwatch tests."""

import logging
from pathlib import Path

import pytest

from coverwatch.config import CoverageConfig
from coverwatch.hashing import FileHasher
from coverwatch.stores import MemoryStore


def pytest_addoption(parser):
    """Add --run-slow option for slow tests."""
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="run slow tests",
    )


def pytest_configure(config):
    """Configure slow marker."""
    config.addinivalue_line("markers", "slow: mark test as slow to run")


def pytest_collection_modifyitems(config, items):
    """Skip slow tests unless --run-slow is given."""
    if config.getoption("--run-slow"):
        return
    skip_slow = pytest.mark.skip(reason="need --run-slow option to run")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo setup_logging so caplog sees coverwatch records in every test."""
    yield
    logger = logging.getLogger("coverwatch")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


class FakeProbe:
    """Probe whose cumulative snapshot is set directly by the test."""

    def __init__(self, snapshot=None):
        self.current = dict(snapshot or {})
        self.started = 0
        self._running = False

    def start(self):
        self.started += 1
        self._running = True

    def stop(self):
        self._running = False

    def running(self):
        return self._running

    def snapshot(self):
        return {path: list(lines) for path, lines in self.current.items()}


class FakeClock:
    """Integer epoch clock that only moves when told to."""

    def __init__(self, now=1_700_000_000):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds=1):
        self.now += seconds
        return self.now


class FailingStore(MemoryStore):
    """Memory store whose saves always fail."""

    name = "failing"

    def __init__(self, error=None, **kwargs):
        super().__init__(**kwargs)
        self.error = error or OSError("disk full")
        self.attempts = 0

    def save_report(self, report, phase=None):
        self.attempts += 1
        raise self.error


@pytest.fixture
def project(tmp_path) -> Path:
    """A small project tree with real files so content hashes exist."""
    root = tmp_path / "app"
    (root / "lib").mkdir(parents=True)
    (root / "vendor_cache").mkdir()
    (root / "a.py").write_text("# header\nx = 1\ny = 2\n")
    (root / "b.py").write_text("def f():\n    return 1\n")
    (root / "lib" / "c.py").write_text("import os\n\nprint(os.sep)\n")
    (root / "vendor_cache" / "d.py").write_text("z = 3\n")
    return root


@pytest.fixture
def third_party(tmp_path) -> Path:
    root = tmp_path / "env" / "site-packages"
    (root / "requests").mkdir(parents=True)
    (root / "requests" / "api.py").write_text("def get():\n    pass\n")
    return root


@pytest.fixture
def config(project, third_party) -> CoverageConfig:
    return CoverageConfig(
        root=str(project),
        ignore=["site-packages", "vendor_cache"],
        third_party_paths=[str(third_party)],
        store_type="memory",
        test_mode=True,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock, project) -> MemoryStore:
    return MemoryStore(clock=clock, hasher=FileHasher(root=str(project)))


@pytest.fixture
def probe() -> FakeProbe:
    return FakeProbe()


@pytest.fixture
def make_probe():
    return FakeProbe


@pytest.fixture
def failing_store(clock) -> FailingStore:
    return FailingStore(clock=clock)
