"""Conftest.py for pytest configuration."""

import os
import sys

import numpy as np
import pytest

# Add the project root to sys.path so that the aura_harmonics package is discoverable.
project_root = os.path.abspath(os.path.dirname(__file__))
if project_root not in sys.path:
    sys.path.insert(0, project_root)


# Add command line options
def pytest_addoption(parser):
    """Add custom command line options to pytest."""
    parser.addoption(
        "--run-performance",
        action="store_true",
        default=False,
        help="Run performance tests",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "performance: mark test as a performance test")


def pytest_collection_modifyitems(config, items):
    """Skip performance tests unless --run-performance is given."""
    if config.getoption("--run-performance"):
        return
    skip = pytest.mark.skip(reason="needs --run-performance")
    for item in items:
        if "performance" in item.keywords:
            item.add_marker(skip)


class FakeStream:
    """Stands in for a sounddevice OutputStream; blocks are pulled by pump()."""

    def __init__(self, sample_rate, channels, block_size, device, callback):
        self.sample_rate = sample_rate
        self.channels = channels
        self.block_size = block_size
        self.device = device
        self.callback = callback
        self.calls = []
        self.active = False
        self.closed = False

    def start(self):
        self.calls.append("start")
        self.active = True

    def stop(self):
        self.calls.append("stop")
        self.active = False

    def close(self):
        self.calls.append("close")
        self.closed = True

    def pump(self, blocks=1):
        """Run the callback as the device would; returns (frames, channels)."""
        out = []
        for _ in range(blocks):
            outdata = np.zeros((self.block_size, self.channels), dtype=np.float32)
            self.callback(outdata, self.block_size, None, None)
            out.append(outdata)
        return np.concatenate(out)


@pytest.fixture
def fake_streams():
    """Every FakeStream opened through fake_stream_factory, in order."""
    return []


@pytest.fixture
def fake_stream_factory(fake_streams):
    def factory(sample_rate, channels, block_size, device, callback):
        stream = FakeStream(sample_rate, channels, block_size, device, callback)
        fake_streams.append(stream)
        return stream

    return factory
