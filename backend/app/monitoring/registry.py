"""In-process metric registry rendered in the Prometheus text format."""

from __future__ import annotations

from threading import Lock
from typing import Sequence

LabelValues = tuple[str, ...]


def _format_value(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.6f}".rstrip("0").rstrip(".")


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _format_labels(names: Sequence[str], values: LabelValues) -> str:
    if not names:
        return ""
    pairs = ",".join(f'{name}="{_escape(value)}"' for name, value in zip(names, values))
    return "{" + pairs + "}"


class Metric:
    """A named family of samples keyed by label values."""

    metric_type = "untyped"

    def __init__(self, name: str, description: str, label_names: Sequence[str] = ()) -> None:
        self.name = name
        self.description = description
        self.label_names = tuple(label_names)
        self._samples: dict[LabelValues, float] = {}
        self._lock = Lock()

    def _key(self, values: Sequence[object]) -> LabelValues:
        if len(values) != len(self.label_names):
            expected = ", ".join(self.label_names) or "<none>"
            raise ValueError(
                f"Metric '{self.name}' expected {len(self.label_names)} label values [{expected}] "
                f"but received {len(values)}"
            )
        return tuple(str(value) for value in values)

    def _add(self, key: LabelValues, amount: float) -> None:
        with self._lock:
            self._samples[key] = self._samples.get(key, 0.0) + amount

    def labels(self, *values: object) -> "BoundMetric":
        """Bind label values, Prometheus style: ``metric.labels("a", "b").inc()``."""

        return BoundMetric(self, self._key(values))

    def value(self, *values: object) -> float:
        with self._lock:
            return self._samples.get(self._key(values), 0.0)

    def clear(self) -> None:
        with self._lock:
            self._samples.clear()

    def render(self) -> list[str]:
        lines = [f"# HELP {self.name} {self.description}", f"# TYPE {self.name} {self.metric_type}"]
        with self._lock:
            samples = sorted(self._samples.items())
        if not samples:
            lines.append(f"{self.name} 0")
            return lines
        for key, value in samples:
            lines.append(f"{self.name}{_format_labels(self.label_names, key)} {_format_value(value)}")
        return lines


class CounterMetric(Metric):
    metric_type = "counter"

    def inc(self, amount: float = 1.0, *labels: object) -> None:
        if amount < 0:
            raise ValueError("Counters cannot be incremented by negative values")
        self._add(self._key(labels), amount)


class GaugeMetric(Metric):
    metric_type = "gauge"

    def inc(self, amount: float = 1.0, *labels: object) -> None:
        self._add(self._key(labels), amount)

    def dec(self, amount: float = 1.0, *labels: object) -> None:
        self._add(self._key(labels), -amount)

    def set(self, value: float, *labels: object) -> None:
        with self._lock:
            self._samples[self._key(labels)] = float(value)


class BoundMetric:
    """Metric bound to a concrete label value tuple."""

    def __init__(self, metric: Metric, key: LabelValues) -> None:
        self._metric = metric
        self._key = key

    def inc(self, amount: float = 1.0) -> None:
        if isinstance(self._metric, CounterMetric) and amount < 0:
            raise ValueError("Counters cannot be incremented by negative values")
        self._metric._add(self._key, amount)

    def dec(self, amount: float = 1.0) -> None:
        if not isinstance(self._metric, GaugeMetric):
            raise AttributeError("Only gauges support dec()")
        self._metric._add(self._key, -amount)

    def set(self, value: float) -> None:
        if not isinstance(self._metric, GaugeMetric):
            raise AttributeError("Only gauges support set()")
        self._metric.set(value, *self._key)


class MetricsRegistry:
    """Collection of metrics exported together."""

    def __init__(self) -> None:
        self._metrics: dict[str, Metric] = {}
        self._lock = Lock()

    def register(self, metric: Metric) -> Metric:
        with self._lock:
            if metric.name in self._metrics:
                raise ValueError(f"Metric '{metric.name}' already registered")
            self._metrics[metric.name] = metric
        return metric

    def counter(self, name: str, description: str, *, label_names: Sequence[str] = ()) -> CounterMetric:
        metric = CounterMetric(name, description, label_names)
        self.register(metric)
        return metric

    def gauge(self, name: str, description: str, *, label_names: Sequence[str] = ()) -> GaugeMetric:
        metric = GaugeMetric(name, description, label_names)
        self.register(metric)
        return metric

    def reset(self) -> None:
        """Zero every metric; used between tests."""

        for metric in list(self._metrics.values()):
            metric.clear()

    def render(self) -> str:
        lines: list[str] = []
        for name in sorted(self._metrics):
            lines.extend(self._metrics[name].render())
        return "\n".join(lines) + "\n"


registry = MetricsRegistry()
