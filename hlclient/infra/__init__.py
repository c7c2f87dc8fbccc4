"""Infrastructure utilities for logging, configuration and metrics."""

from .config import ClientConfig, load_config
from .logging import configure_logging
from .metrics import MetricsSink

__all__ = [
    "ClientConfig",
    "configure_logging",
    "load_config",
    "MetricsSink",
]
