"""Lightweight metrics sink for connection and signing instrumentation."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping


@dataclass
class MetricsSink:
    """Collects counters and gauges; pass :meth:`observe` as ``metrics_callback``."""

    counters: Dict[str, int] = field(default_factory=dict)
    gauges: Dict[str, float] = field(default_factory=dict)
    log_events: bool = True
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("hlclient.metrics"))
    _lock: threading.Lock = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def incr(self, name: str, value: int = 1) -> None:
        with self._lock:
            self.counters[name] = self.counters.get(name, 0) + value

    def set_gauge(self, name: str, value: float) -> None:
        with self._lock:
            self.gauges[name] = float(value)

    def observe(self, name: str, values: Mapping[str, Any]) -> None:
        """Record an event, incrementing ``<name>_total`` and updating gauges."""

        with self._lock:
            counter_name = f"{name}_total"
            self.counters[counter_name] = self.counters.get(counter_name, 0) + 1
            for key, value in values.items():
                if isinstance(value, (int, float)) and not isinstance(value, bool):
                    self.gauges[f"{name}_{key}"] = float(value)
        if self.log_events:
            self.logger.debug(name, extra={"event": name, **dict(values)})

    def export(self) -> Dict[str, float | int]:
        """Return a merged view of all current metrics."""

        with self._lock:
            return {**self.counters, **self.gauges}

    __call__ = observe


__all__ = ["MetricsSink"]
