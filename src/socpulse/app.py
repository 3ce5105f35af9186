"""socpulse - Textual dashboard."""

from enum import Enum

from loguru import logger
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.widgets import DataTable, Footer, Static

from socpulse.cpu import total_usage
from socpulse.dispatch import Category, Dispatcher
from socpulse.extract import bytes_to_gib, kb_to_mib
from socpulse.models import (
    ChipTopology,
    CPUMetrics,
    GPUMetrics,
    MemoryMetrics,
    NetDiskMetrics,
    ProcessSnapshot,
    SystemInfo,
    ThermalMetrics,
)
from socpulse.sampler import PowermetricsSampler
from socpulse.topology import group_averages, topology_for

BAR_WIDTH = 20
PROCESS_LIMIT = 50


class SortKey(Enum):
    """Sort keys for the process table."""

    CPU = "cpu"
    MEM = "mem"
    PID = "pid"


def format_bytes(size: float) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:5.1f}{unit}" if unit != "B" else f"{int(size):5d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def usage_bar(percent: float, color: str = "green", width: int = BAR_WIDTH) -> str:
    """Render a percentage as a fixed-width markup bar."""
    filled = min(width, max(0, int(percent / 100 * width)))
    return f"[{color}]█[/{color}]" * filled + "[dim]░[/dim]" * (width - filled)


def core_color(percent: float) -> str:
    if percent >= 60:
        return "red"
    if percent >= 40:
        return "yellow"
    if percent >= 30:
        return "cyan"
    return "green"


class CoreGrid(Static):
    """Per-core usage bars, grouped into E-cores and P-cores."""

    DEFAULT_CSS = """
    CoreGrid {
        height: auto;
        padding: 0 1;
    }
    """

    def __init__(self, topology: ChipTopology, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._topology = topology
        self._usages: list[float] = []

    @property
    def usages(self) -> list[float]:
        return self._usages

    def update_usages(self, usages: list[float]) -> None:
        self._usages = list(usages)
        self.update(self.render_text())

    def render_text(self) -> str:
        if not self._usages:
            return "Loading CPU info..."
        e_avg, p_avg = group_averages(self._usages, self._topology)
        lines = [
            f"[b]CPU {total_usage(self._usages):5.1f}%[/b]  "
            f"E {e_avg:5.1f}%  P {p_avg:5.1f}%  [dim]{self._topology.description}[/dim]"
        ]
        for prefix, indices in (("E", self._topology.e_core_indices), ("P", self._topology.p_core_indices)):
            for n, index in enumerate(indices):
                if index >= len(self._usages):
                    continue
                usage = self._usages[index]
                lines.append(f"{prefix}{n:<2} \\[{usage_bar(usage, core_color(usage))}] {usage:5.1f}%")
        return "\n".join(lines)


class SocStats(Static):
    """Power, GPU, thermal, memory and I/O summary."""

    DEFAULT_CSS = """
    SocStats {
        height: auto;
        padding: 0 1;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.cpu = CPUMetrics()
        self.gpu = GPUMetrics()
        self.net_disk = NetDiskMetrics()
        self.thermal = ThermalMetrics()
        self.memory = MemoryMetrics()

    def update_stats(
        self,
        cpu: CPUMetrics | None = None,
        gpu: GPUMetrics | None = None,
        net_disk: NetDiskMetrics | None = None,
        thermal: ThermalMetrics | None = None,
        memory: MemoryMetrics | None = None,
    ) -> None:
        """Replace whichever metrics are given and redraw."""
        self.cpu = cpu or self.cpu
        self.gpu = gpu or self.gpu
        self.net_disk = net_disk or self.net_disk
        self.thermal = thermal or self.thermal
        self.memory = memory or self.memory
        self.update(self.render_text())

    def render_text(self) -> str:
        mem_percent = self.memory.used / self.memory.total * 100 if self.memory.total else 0.0
        thermal = self.thermal.pressure or "Unknown"
        if self.cpu.throttled:
            thermal = f"[red]{thermal} (throttled)[/red]"
        return (
            f"GPU \\[{usage_bar(self.gpu.active_percent, 'magenta')}] "
            f"{self.gpu.active_percent:3d}% @ {self.gpu.freq_mhz} MHz\n"
            f"Mem \\[{usage_bar(mem_percent, 'cyan')}] "
            f"{bytes_to_gib(self.memory.used):.1f}G/{bytes_to_gib(self.memory.total):.1f}G  "
            f"Swap {bytes_to_gib(self.memory.swap_used):.1f}G/{bytes_to_gib(self.memory.swap_total):.1f}G\n"
            f"Power CPU {self.cpu.cpu_watts:.2f}W  GPU {self.cpu.gpu_watts:.2f}W  "
            f"ANE {self.cpu.ane_watts:.2f}W  Package {self.cpu.package_watts:.2f}W\n"
            f"Net ↓{kb_to_mib(self.net_disk.in_kbytes_per_sec):.2f} MB/s "
            f"↑{kb_to_mib(self.net_disk.out_kbytes_per_sec):.2f} MB/s  "
            f"Disk R {kb_to_mib(self.net_disk.read_kbytes_per_sec):.2f} MB/s "
            f"W {kb_to_mib(self.net_disk.write_kbytes_per_sec):.2f} MB/s\n"
            f"Thermal: {thermal}"
        )


class ProcessTable(Container):
    """Container for the process data table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._sort_key: SortKey = SortKey.CPU

    @property
    def sort_key(self) -> SortKey:
        return self._sort_key

    def cycle_sort(self) -> SortKey:
        """Cycle to the next sort key and return it."""
        keys = list(SortKey)
        self._sort_key = keys[(keys.index(self._sort_key) + 1) % len(keys)]
        return self._sort_key

    def compose(self) -> ComposeResult:
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"
        table.add_column("PID", key="pid", width=8)
        table.add_column("USER", key="user", width=10)
        table.add_column("CPU%", key="cpu", width=8)
        table.add_column("MEM%", key="mem", width=8)
        table.add_column("RES", key="rss", width=8)
        table.add_column("Command", key="command")

    def sort_processes(self, processes: list[ProcessSnapshot]) -> list[ProcessSnapshot]:
        key_func = {
            SortKey.CPU: lambda p: p.cpu_percent,
            SortKey.MEM: lambda p: p.memory_percent,
            SortKey.PID: lambda p: p.pid,
        }
        reverse = self._sort_key is not SortKey.PID
        return sorted(processes, key=key_func[self._sort_key], reverse=reverse)

    def update_processes(self, processes: list[ProcessSnapshot]) -> None:
        """Replace the table contents with the top processes."""
        table = self.query_one("#process-table", DataTable)
        table.clear()
        for proc in self.sort_processes(processes)[:PROCESS_LIMIT]:
            table.add_row(
                str(proc.pid),
                proc.username[:10],
                f"{proc.cpu_percent:5.1f}",
                f"{proc.memory_percent:5.1f}",
                format_bytes(proc.memory_rss),
                proc.command_line[:50],
                key=str(proc.pid),
            )


class SocPulseApp(App):
    """Live dashboard reading the latest value of every metric category."""

    TITLE = "socpulse"
    SUB_TITLE = "Apple Silicon power monitor"

    CSS = """
    Screen {
        layout: vertical;
    }

    #stats {
        height: auto;
    }

    #core-grid {
        width: 1fr;
    }

    #soc-stats {
        width: 1fr;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("f6", "sort", "Sort"),
    ]

    def __init__(
        self,
        dispatcher: Dispatcher,
        info: SystemInfo,
        sampler: PowermetricsSampler | None = None,
        refresh_interval: float = 1.0,
    ) -> None:
        super().__init__()
        self._dispatcher = dispatcher
        self._info = info
        self._topology = topology_for(info)
        self._sampler = sampler
        self._refresh_interval = refresh_interval

    def compose(self) -> ComposeResult:
        yield Horizontal(
            CoreGrid(self._topology, id="core-grid"),
            SocStats(id="soc-stats"),
            id="stats",
        )
        yield ProcessTable()
        yield Footer()

    def on_mount(self) -> None:
        self.set_interval(self._refresh_interval, self.refresh_metrics)

    def refresh_metrics(self) -> None:
        """Pull the latest value of each category and redraw."""
        if self._sampler is not None and self._sampler.cancel.is_set():
            error = self._sampler.error
            logger.info(f"stopping dashboard: {error or 'cancelled'}")
            self.exit(message=str(error) if error else None)
            return

        usages = self._dispatcher.latest(Category.UTILIZATION)
        if usages is not None:
            self.query_one(CoreGrid).update_usages(usages)

        self.query_one(SocStats).update_stats(
            cpu=self._dispatcher.latest(Category.CPU),
            gpu=self._dispatcher.latest(Category.GPU),
            net_disk=self._dispatcher.latest(Category.NET_DISK),
            thermal=self._dispatcher.latest(Category.THERMAL),
            memory=self._dispatcher.latest(Category.MEMORY),
        )

        processes = self._dispatcher.latest(Category.PROCESSES)
        if processes is not None:
            self.query_one(ProcessTable).update_processes(processes)

    def action_sort(self) -> None:
        """Cycle through sort keys."""
        new_sort_key = self.query_one(ProcessTable).cycle_sort()
        self.notify(f"Sort: {new_sort_key.value.upper()}")

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        if self._sampler is not None:
            self._sampler.stop()
        self.exit()
