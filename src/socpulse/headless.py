"""Headless mode: print one JSON object per sampling interval."""

import json
import sys
import threading
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, TextIO

from socpulse.cpu import total_usage
from socpulse.dispatch import Category, Dispatcher
from socpulse.exporter import GaugeExporter
from socpulse.models import (
    CPUMetrics,
    GPUMetrics,
    MemoryMetrics,
    NetDiskMetrics,
    SystemInfo,
    ThermalMetrics,
)
from socpulse.topology import topology_for


def _latest(dispatcher: Dispatcher, category: Category, default: Any) -> Any:
    value = dispatcher.latest(category)
    return default if value is None else value


def build_output(dispatcher: Dispatcher, info: SystemInfo) -> dict[str, Any]:
    """Assemble the JSON document for the current latest values."""
    cpu = _latest(dispatcher, Category.CPU, CPUMetrics())
    gpu = _latest(dispatcher, Category.GPU, GPUMetrics())
    thermal = _latest(dispatcher, Category.THERMAL, ThermalMetrics())
    usages = _latest(dispatcher, Category.UTILIZATION, [])
    topology = topology_for(info)

    return {
        "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "soc_metrics": asdict(cpu),
        "gpu": asdict(gpu),
        "memory": asdict(_latest(dispatcher, Category.MEMORY, MemoryMetrics())),
        "net_disk": asdict(_latest(dispatcher, Category.NET_DISK, NetDiskMetrics())),
        "cpu_usage": total_usage(usages),
        "gpu_usage": gpu.active_percent,
        "core_usages": list(usages),
        "system_info": {
            "name": info.name,
            "core_count": info.core_count,
            "e_core_count": info.e_core_count,
            "p_core_count": info.p_core_count,
            "gpu_core_count": info.gpu_core_count,
            "topology": topology.description,
        },
        "thermal_state": thermal.pressure,
    }


class HeadlessPrinter:
    """
    Drives the exporter and prints a JSON snapshot on every tick.

    With ``count`` > 0 exactly that many samples are written as one JSON
    array; otherwise one object per line until cancelled.
    """

    def __init__(
        self,
        exporter: GaugeExporter,
        dispatcher: Dispatcher,
        info: SystemInfo,
        interval: float,
        cancel: threading.Event,
        count: int = 0,
        out: TextIO | None = None,
    ) -> None:
        self._exporter = exporter
        self._dispatcher = dispatcher
        self._info = info
        self._interval = interval
        self._cancel = cancel
        self._count = count
        self._out = out or sys.stdout

    def run(self) -> int:
        """Print until ``count`` samples are written or cancellation. Returns samples written."""
        # First tick only establishes the CPU tick baseline
        self._exporter.export_once()
        written = 0
        if self._count:
            self._out.write("[")

        try:
            while not self._cancel.wait(timeout=self._interval):
                self._exporter.export_once()
                if written and self._count:
                    self._out.write(",")
                self._out.write(json.dumps(build_output(self._dispatcher, self._info)))
                self._out.write("\n")
                self._out.flush()
                written += 1
                if self._count and written >= self._count:
                    break
        finally:
            # Ctrl-C still leaves a valid array behind
            if self._count:
                self._out.write("]\n")
                self._out.flush()
        return written
