"""Root conftest for all tests - console-only logging."""

from optledger.system import LoggerFactory, LoggingConfig


def pytest_configure(config):
    """Configure logging before test modules import their loggers, so no log file is created."""
    LoggerFactory.configure(LoggingConfig(enable_file=False))
