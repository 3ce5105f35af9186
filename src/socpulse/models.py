"""Data models for socpulse."""

from dataclasses import dataclass, field


@dataclass(slots=True, frozen=True)
class CPUTicks:
    """Cumulative ticks one core has spent in each execution state."""

    user: float
    system: float
    idle: float
    nice: float


@dataclass(slots=True, frozen=True)
class CPUMetrics:
    """CPU side of one powermetrics sample. Power values are in watts."""

    cpu_watts: float = 0.0
    gpu_watts: float = 0.0
    ane_watts: float = 0.0
    package_watts: float = 0.0
    e_cluster_active: int = 0
    e_cluster_freq_mhz: int = 0
    p_cluster_active: int = 0
    p_cluster_freq_mhz: int = 0
    throttled: bool = False


@dataclass(slots=True, frozen=True)
class GPUMetrics:
    """GPU side of one powermetrics sample."""

    freq_mhz: int = 0
    active_percent: int = 0
    watts: float = 0.0


@dataclass(slots=True, frozen=True)
class NetDiskMetrics:
    """Network and disk rates. Byte rates are in KB/s (decimal)."""

    in_kbytes_per_sec: float = 0.0
    out_kbytes_per_sec: float = 0.0
    in_packets_per_sec: float = 0.0
    out_packets_per_sec: float = 0.0
    read_kbytes_per_sec: float = 0.0
    write_kbytes_per_sec: float = 0.0
    read_ops_per_sec: float = 0.0
    write_ops_per_sec: float = 0.0


@dataclass(slots=True, frozen=True)
class ThermalMetrics:
    """Thermal pressure as reported by powermetrics."""

    pressure: str = ""
    level: int = 0  # 0 Nominal .. 3 Critical


@dataclass(slots=True, frozen=True)
class MemoryMetrics:
    """Physical memory and swap usage in bytes."""

    total: int = 0
    used: int = 0
    available: int = 0
    swap_total: int = 0
    swap_used: int = 0


@dataclass(slots=True, frozen=True)
class SystemInfo:
    """Chip identification."""

    name: str
    p_core_count: int
    e_core_count: int
    gpu_core_count: int = 0

    @property
    def core_count(self) -> int:
        return self.p_core_count + self.e_core_count


@dataclass(slots=True, frozen=True)
class ChipTopology:
    """Mapping of logical CPU indices onto performance and efficiency cores."""

    p_core_indices: tuple[int, ...]
    e_core_indices: tuple[int, ...]
    description: str

    @property
    def total(self) -> int:
        return len(self.p_core_indices) + len(self.e_core_indices)


@dataclass(slots=True, frozen=True)
class ProcessSnapshot:
    """Immutable snapshot of a process state."""

    pid: int
    name: str
    username: str
    cpu_percent: float
    memory_percent: float
    memory_rss: int  # Bytes
    command_line: str


@dataclass(slots=True, frozen=True)
class SocSample:
    """All typed metrics extracted from a single powermetrics record."""

    cpu: CPUMetrics = field(default_factory=CPUMetrics)
    gpu: GPUMetrics = field(default_factory=GPUMetrics)
    net_disk: NetDiskMetrics = field(default_factory=NetDiskMetrics)
    thermal: ThermalMetrics = field(default_factory=ThermalMetrics)
