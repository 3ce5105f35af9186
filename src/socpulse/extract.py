"""
Typed metric extraction from decoded powermetrics records.

Every parser here is total: a missing or mistyped field leaves the
corresponding metric at its zero value instead of failing the whole record.
"""

from socpulse.decoding import DecodedSample
from socpulse.models import (
    CPUMetrics,
    GPUMetrics,
    NetDiskMetrics,
    SocSample,
    ThermalMetrics,
)

THERMAL_LEVELS = {
    "Nominal": 0,
    "Moderate": 1,
    "Heavy": 2,
    "Critical": 3,
}


def milli_to_unit(value: float | None) -> float:
    """Milliwatts to watts."""
    return value / 1000 if value is not None else 0.0


def active_percent(idle_ratio: float | None) -> int:
    """Convert an idle ratio into an integer busy percentage."""
    if idle_ratio is None:
        return 0
    idle_ratio = min(1.0, max(0.0, idle_ratio))
    return int((1 - idle_ratio) * 100)


def _cluster_stats(data: DecodedSample, prefix: str) -> tuple[int, int]:
    """Average (active %, MHz) over the clusters whose name starts with ``prefix``."""
    clusters = data.items("processor", "clusters") or []
    active: list[int] = []
    freqs: list[int] = []
    for raw in clusters:
        if not isinstance(raw, dict):
            continue
        cluster = DecodedSample(raw)
        name = cluster.string("name") or ""
        if not name.startswith(prefix):
            continue
        idle = cluster.number("idle_ratio")
        if idle is not None:
            active.append(active_percent(idle))
        freq_hz = cluster.number("freq_hz")
        if freq_hz is not None:
            freqs.append(int(freq_hz / 1e6))
    avg_active = sum(active) // len(active) if active else 0
    avg_freq = sum(freqs) // len(freqs) if freqs else 0
    return avg_active, avg_freq


def parse_thermal_metrics(data: DecodedSample) -> ThermalMetrics:
    pressure = data.string("thermal_pressure") or ""
    return ThermalMetrics(pressure=pressure, level=THERMAL_LEVELS.get(pressure, 0))


def parse_cpu_metrics(data: DecodedSample) -> CPUMetrics:
    """Extract CPU power, cluster activity and throttle state."""
    e_active, e_freq = _cluster_stats(data, "E")
    p_active, p_freq = _cluster_stats(data, "P")
    pressure = data.string("thermal_pressure") or ""
    return CPUMetrics(
        cpu_watts=milli_to_unit(data.number("processor", "cpu_power")),
        gpu_watts=milli_to_unit(data.number("processor", "gpu_power")),
        ane_watts=milli_to_unit(data.number("processor", "ane_power")),
        package_watts=milli_to_unit(data.number("processor", "combined_power")),
        e_cluster_active=e_active,
        e_cluster_freq_mhz=e_freq,
        p_cluster_active=p_active,
        p_cluster_freq_mhz=p_freq,
        throttled=pressure not in ("", "Nominal"),
    )


def parse_gpu_metrics(data: DecodedSample) -> GPUMetrics:
    """Extract GPU frequency, busy percentage and power."""
    freq = data.number("gpu", "freq_hz")
    return GPUMetrics(
        # powermetrics reports the GPU "freq_hz" already in MHz
        freq_mhz=int(freq) if freq is not None else 0,
        active_percent=active_percent(data.number("gpu", "idle_ratio")),
        watts=milli_to_unit(data.number("processor", "gpu_power")),
    )


def parse_net_disk_metrics(data: DecodedSample) -> NetDiskMetrics:
    """Extract network and disk rates; byte rates are divided down to KB/s."""

    def rate(section: str, key: str, divisor: float = 1.0) -> float:
        value = data.number(section, key)
        return value / divisor if value is not None else 0.0

    return NetDiskMetrics(
        in_kbytes_per_sec=rate("network", "ibyte_rate", 1000),
        out_kbytes_per_sec=rate("network", "obyte_rate", 1000),
        in_packets_per_sec=rate("network", "ipacket_rate"),
        out_packets_per_sec=rate("network", "opacket_rate"),
        read_kbytes_per_sec=rate("disk", "rbytes_per_s", 1000),
        write_kbytes_per_sec=rate("disk", "wbytes_per_s", 1000),
        read_ops_per_sec=rate("disk", "rops_per_s"),
        write_ops_per_sec=rate("disk", "wops_per_s"),
    )


def parse_sample(data: DecodedSample) -> SocSample:
    """Run every extractor over one decoded record."""
    return SocSample(
        cpu=parse_cpu_metrics(data),
        gpu=parse_gpu_metrics(data),
        net_disk=parse_net_disk_metrics(data),
        thermal=parse_thermal_metrics(data),
    )


def kb_to_mib(kbytes_per_sec: float) -> float:
    """KB/s (decimal) to MiB/s, as exported on the network and disk gauges."""
    return (kbytes_per_sec * 1000) / (1024 * 1024)


def bytes_to_gib(value: float) -> float:
    return value / 1024 / 1024 / 1024
