"""Explicit gauge registry shared by the producer and the consumers."""

import threading
from dataclasses import dataclass

PREFIX = "socpulse"


@dataclass(slots=True, frozen=True)
class GaugeSpec:
    """Declaration of one gauge: its name, help text and label names."""

    name: str
    help: str
    labels: tuple[str, ...] = ()


GAUGES: tuple[GaugeSpec, ...] = (
    GaugeSpec("cpu_usage_percent", "Current total CPU usage percentage"),
    GaugeSpec("core_usage_percent", "Per-core CPU usage percentage", ("core",)),
    GaugeSpec("ecore_usage_percent", "Average efficiency core (E-core) usage percentage"),
    GaugeSpec("pcore_usage_percent", "Average performance core (P-core) usage percentage"),
    GaugeSpec("gpu_usage_percent", "Current GPU usage percentage"),
    GaugeSpec("gpu_freq_mhz", "Current GPU frequency in MHz"),
    GaugeSpec("memory_gb", "Memory usage in GB", ("type",)),
    GaugeSpec("network_activity_mb", "Network activity in MB/s", ("type",)),
    GaugeSpec("network_packets_per_sec", "Network packets per second", ("type",)),
    GaugeSpec("disk_activity_mb", "Disk activity in MB/s", ("type",)),
    GaugeSpec("disk_ops_per_sec", "Disk operations per second", ("type",)),
    GaugeSpec("power_watts", "Power draw in watts", ("component",)),
    GaugeSpec("thermal_state", "Thermal pressure: 0 Nominal, 1 Moderate, 2 Heavy, 3 Critical"),
    GaugeSpec("system_status", "System status", ("type",)),
)

LabelValues = tuple[str, ...]


class GaugeRegistry:
    """
    Thread-safe store of gauge values.

    Constructed once at startup and passed to whoever needs it; there are
    no module-level gauges.
    """

    def __init__(self, specs: tuple[GaugeSpec, ...] = GAUGES, prefix: str = PREFIX) -> None:
        self.prefix = prefix
        self._specs = {spec.name: spec for spec in specs}
        self._values: dict[str, dict[LabelValues, float]] = {spec.name: {} for spec in specs}
        self._lock = threading.Lock()

    def spec(self, name: str) -> GaugeSpec:
        try:
            return self._specs[name]
        except KeyError:
            raise KeyError(f"unknown gauge: {name}") from None

    def _label_values(self, spec: GaugeSpec, labels: dict[str, str]) -> LabelValues:
        if set(labels) != set(spec.labels):
            raise ValueError(
                f"gauge {spec.name} expects labels {spec.labels}, got {tuple(sorted(labels))}"
            )
        return tuple(str(labels[label]) for label in spec.labels)

    def set(self, name: str, value: float, **labels: str) -> None:
        spec = self.spec(name)
        key = self._label_values(spec, labels)
        with self._lock:
            self._values[name][key] = float(value)

    def get(self, name: str, **labels: str) -> float | None:
        spec = self.spec(name)
        key = self._label_values(spec, labels)
        with self._lock:
            return self._values[name].get(key)

    def clear(self, name: str) -> None:
        """Drop every labelled value of a gauge (e.g. when the core count changes)."""
        self.spec(name)
        with self._lock:
            self._values[name].clear()

    def collect(self) -> list[tuple[str, dict[str, str], float]]:
        """Return every set value as (full name, labels, value)."""
        with self._lock:
            values = {name: dict(series) for name, series in self._values.items()}
        samples = []
        for name, series in values.items():
            spec = self._specs[name]
            for key, value in sorted(series.items()):
                samples.append((f"{self.prefix}_{name}", dict(zip(spec.labels, key)), value))
        return samples
