"""Consumer that refreshes the gauge registry on its own timer."""

import threading
from collections.abc import Callable

from loguru import logger

from socpulse.cpu import CPUUtilizationEstimator, total_usage
from socpulse.dispatch import Category, Dispatcher
from socpulse.errors import QueryError
from socpulse.extract import bytes_to_gib, kb_to_mib
from socpulse.models import (
    CPUMetrics,
    GPUMetrics,
    MemoryMetrics,
    NetDiskMetrics,
    ProcessSnapshot,
    SystemInfo,
    ThermalMetrics,
)
from socpulse.registry import GaugeRegistry
from socpulse.system import get_memory_metrics
from socpulse.topology import group_averages, topology_for


def update_cpu_gauges(registry: GaugeRegistry, metrics: CPUMetrics, info: SystemInfo) -> None:
    registry.set("power_watts", metrics.cpu_watts, component="cpu")
    registry.set("power_watts", metrics.gpu_watts, component="gpu")
    registry.set("power_watts", metrics.ane_watts, component="ane")
    registry.set("power_watts", metrics.package_watts, component="package")
    registry.set("system_status", info.p_core_count, type="p_cores")
    registry.set("system_status", info.e_core_count, type="e_cores")
    registry.set("system_status", 1.0 if metrics.throttled else 0.0, type="is_throttled")


def update_gpu_gauges(registry: GaugeRegistry, metrics: GPUMetrics, info: SystemInfo) -> None:
    registry.set("gpu_usage_percent", metrics.active_percent)
    registry.set("gpu_freq_mhz", metrics.freq_mhz)
    registry.set("system_status", info.gpu_core_count, type="g_cores")


def update_net_disk_gauges(registry: GaugeRegistry, metrics: NetDiskMetrics) -> None:
    registry.set("network_activity_mb", kb_to_mib(metrics.in_kbytes_per_sec), type="in")
    registry.set("network_activity_mb", kb_to_mib(metrics.out_kbytes_per_sec), type="out")
    registry.set("network_packets_per_sec", metrics.in_packets_per_sec, type="in")
    registry.set("network_packets_per_sec", metrics.out_packets_per_sec, type="out")
    registry.set("disk_activity_mb", kb_to_mib(metrics.read_kbytes_per_sec), type="read")
    registry.set("disk_activity_mb", kb_to_mib(metrics.write_kbytes_per_sec), type="write")
    registry.set("disk_ops_per_sec", metrics.read_ops_per_sec, type="read")
    registry.set("disk_ops_per_sec", metrics.write_ops_per_sec, type="write")


def update_memory_gauges(registry: GaugeRegistry, metrics: MemoryMetrics) -> None:
    registry.set("memory_gb", bytes_to_gib(metrics.used), type="used")
    registry.set("memory_gb", bytes_to_gib(metrics.total), type="total")
    registry.set("memory_gb", bytes_to_gib(metrics.swap_used), type="swap_used")
    registry.set("memory_gb", bytes_to_gib(metrics.swap_total), type="swap_total")


def update_usage_gauges(registry: GaugeRegistry, usages: list[float], info: SystemInfo) -> None:
    e_avg, p_avg = group_averages(usages, topology_for(info))
    registry.set("cpu_usage_percent", total_usage(usages))
    registry.set("ecore_usage_percent", e_avg)
    registry.set("pcore_usage_percent", p_avg)
    for index, usage in enumerate(usages):
        registry.set("core_usage_percent", usage, core=str(index))


def update_thermal_gauges(registry: GaugeRegistry, metrics: ThermalMetrics) -> None:
    registry.set("thermal_state", metrics.level)


class GaugeExporter:
    """
    Periodically pulls the latest value of every category into the registry.

    Each tick also polls the CPU utilization estimator and memory, and
    publishes those to the dispatcher for the other consumers.
    """

    def __init__(
        self,
        registry: GaugeRegistry,
        dispatcher: Dispatcher,
        estimator: CPUUtilizationEstimator,
        info: SystemInfo,
        interval: float = 1.0,
        cancel: threading.Event | None = None,
        memory_reader: Callable[[], MemoryMetrics] = get_memory_metrics,
        process_reader: Callable[[], list[ProcessSnapshot]] | None = None,
    ) -> None:
        """
        Initialize the exporter.

        Args:
            memory_reader: Memory source polled every tick.
            process_reader: When given, the process list is also collected
                every tick and published to ``Category.PROCESSES``. Only the
                dashboard needs it.
        """
        self._registry = registry
        self._dispatcher = dispatcher
        self._estimator = estimator
        self._info = info
        self._interval = interval
        self._cancel = cancel or threading.Event()
        self._read_memory = memory_reader
        self._read_processes = process_reader
        self._thread: threading.Thread | None = None
        self._seen: dict[Category, int] = {}
        self._core_count = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._thread = threading.Thread(target=self._loop, daemon=True, name="GaugeExporter")
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._cancel.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _loop(self) -> None:
        while not self._cancel.wait(timeout=self._interval):
            try:
                self.export_once()
            except Exception:
                # Keep the loop running; the next tick starts from fresh reads
                logger.exception("Unexpected error in exporter tick")

    def _fresh(self, category: Category):
        """Return the latest value if it was published since the last tick."""
        value, version = self._dispatcher.mailbox(category).read()
        if value is None or self._seen.get(category) == version:
            return None
        self._seen[category] = version
        return value

    def export_once(self) -> None:
        """Run one export tick."""
        try:
            usages = self._estimator.get_utilization()
        except QueryError as e:
            logger.warning(f"Error getting CPU percentages: {e}")
        else:
            if len(usages) != self._core_count:
                self._registry.clear("core_usage_percent")
                self._core_count = len(usages)
            self._dispatcher.publish(Category.UTILIZATION, usages)
            update_usage_gauges(self._registry, usages, self._info)

        try:
            memory = self._read_memory()
        except OSError as e:
            logger.warning(f"Error reading memory metrics: {e}")
        else:
            self._dispatcher.publish(Category.MEMORY, memory)
            update_memory_gauges(self._registry, memory)

        if self._read_processes is not None:
            try:
                processes = self._read_processes()
            except OSError as e:
                logger.warning(f"Error collecting processes: {e}")
            else:
                self._dispatcher.publish(Category.PROCESSES, processes)

        if (cpu := self._fresh(Category.CPU)) is not None:
            update_cpu_gauges(self._registry, cpu, self._info)
        if (gpu := self._fresh(Category.GPU)) is not None:
            update_gpu_gauges(self._registry, gpu, self._info)
        if (net_disk := self._fresh(Category.NET_DISK)) is not None:
            update_net_disk_gauges(self._registry, net_disk)
        if (thermal := self._fresh(Category.THERMAL)) is not None:
            update_thermal_gauges(self._registry, thermal)
