"""
In-process counters exported in Prometheus text format.

Only counters are needed: webhook outcomes, redemptions, completions and
HTTP requests. Every update happens on the event loop, so no locking.
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional, Tuple

LabelValues = Tuple[str, ...]

_ID_SEGMENT = re.compile(r"^(\d+|[0-9a-fA-F-]{8,})$")


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


class Counter:
    def __init__(self, name: str, help_text: str, label_names: Iterable[str] = ()):
        self.name = name
        self.help_text = help_text
        self.label_names = tuple(label_names)
        self._values: Dict[LabelValues, float] = {}

    def _key(self, labels: Optional[Dict[str, str]]) -> LabelValues:
        labels = labels or {}
        return tuple(str(labels.get(name, "")) for name in self.label_names)

    def inc(self, labels: Optional[Dict[str, str]] = None, amount: float = 1.0):
        key = self._key(labels)
        self._values[key] = self._values.get(key, 0.0) + amount

    def value(self, labels: Optional[Dict[str, str]] = None) -> float:
        return self._values.get(self._key(labels), 0.0)

    def samples(self) -> List[str]:
        lines = [f"# HELP {self.name} {self.help_text}", f"# TYPE {self.name} counter"]
        for key, value in sorted(self._values.items()):
            pairs = ",".join(f'{n}="{_escape(v)}"' for n, v in zip(self.label_names, key))
            lines.append(f"{self.name}{{{pairs}}} {float(value)}" if pairs else f"{self.name} {float(value)}")
        return lines


class MetricsRegistry:
    def __init__(self):
        self.counters: Dict[str, Counter] = {}

    def counter(self, name: str, help_text: str, label_names: Iterable[str] = ()) -> Counter:
        return self.counters.setdefault(name, Counter(name, help_text, label_names))

    def export_prometheus(self) -> str:
        lines: List[str] = []
        for counter in self.counters.values():
            lines.extend(counter.samples())
        return "\n".join(lines) + "\n"

    def reset(self):
        for counter in self.counters.values():
            counter._values.clear()


METRICS = MetricsRegistry()

http_requests_total = METRICS.counter(
    "http_requests_total", "HTTP requests by method, route and status.", ["method", "path", "status"]
)
webhook_events_total = METRICS.counter(
    "webhook_events_total", "Webhook deliveries and events by outcome.", ["result"]
)
redemptions_total = METRICS.counter("redemptions_total", "Order redemption attempts by outcome.", ["result"])
completions_total = METRICS.counter("completions_total", "Completion API calls by outcome.", ["result"])


def normalize_path(path: str) -> str:
    """Collapse numeric and UUID-like segments to :id to bound label cardinality."""
    segments = [":id" if _ID_SEGMENT.match(s) else s for s in path.split("/") if s]
    return "/" + "/".join(segments)
