"""Pytest configuration and shared fixtures."""

import threading
from pathlib import Path

import pytest
from pbcat.registry import MessageHandle, ProtobufRegistry

from tests.fixtures.record_generator import (
    LOG_LINE,
    READING,
    ensure_proto_root,
    make_labels,
    make_log_lines,
    make_readings,
    write_framed,
)


@pytest.fixture(scope="session")
def proto_root(tmp_path_factory) -> Path:
    """Proto root with a compiled descriptor set, created once per session."""
    return ensure_proto_root(tmp_path_factory.mktemp("protos"))


@pytest.fixture(scope="session")
def registry(proto_root) -> ProtobufRegistry:
    return ProtobufRegistry.from_root(proto_root)


@pytest.fixture
def reading_handle(registry) -> MessageHandle:
    return registry.resolve(READING)


@pytest.fixture
def log_line_handle(registry) -> MessageHandle:
    return registry.resolve(LOG_LINE)


@pytest.fixture
def readings_log(tmp_path, registry) -> Path:
    """200 Reading records."""
    return write_framed(tmp_path / "sensor_readings.bin", make_readings(registry, 200))


@pytest.fixture
def labels_log(tmp_path, registry) -> Path:
    """Label records; they also decode cleanly as Reading and LogLine."""
    return write_framed(tmp_path / "labels.bin", make_labels(registry, 20))


@pytest.fixture
def log_lines_log(tmp_path, registry) -> Path:
    """400 LogLine records spread over hosts web-0 .. web-3."""
    return write_framed(tmp_path / "access.log", make_log_lines(registry, 400))


@pytest.fixture
def no_leaked_workers():
    """Fail the test if pipeline threads are still alive afterwards."""
    yield
    leaked = [t.name for t in threading.enumerate() if t.name.startswith("pbcat-")]
    assert leaked == []
