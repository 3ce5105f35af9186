"""Chip identification, memory and process queries."""

import functools
import platform
import subprocess

import psutil
from loguru import logger

from socpulse.models import MemoryMetrics, ProcessSnapshot, SystemInfo

P_LEVEL_KEY = "hw.perflevel0.logicalcpu"
E_LEVEL_KEY = "hw.perflevel1.logicalcpu"


def run_cmd(args: list[str]) -> str:
    """Run a command and return its stdout, or "" if it cannot be run."""
    try:
        return subprocess.check_output(args, stderr=subprocess.DEVNULL, text=True, timeout=10)
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"{args[0]} failed: {e}")
        return ""


def parse_sysctl(output: str) -> dict[str, str]:
    """Parse ``key: value`` lines as printed by sysctl."""
    values: dict[str, str] = {}
    for line in output.splitlines():
        key, sep, value = line.partition(":")
        if sep:
            values[key.strip()] = value.strip()
    return values


def get_chip_name() -> str:
    name = run_cmd(["sysctl", "-n", "machdep.cpu.brand_string"]).strip()
    return name or platform.processor() or "Unknown"


def get_core_counts() -> tuple[int, int]:
    """Return (P-core count, E-core count)."""
    values = parse_sysctl(run_cmd(["sysctl", P_LEVEL_KEY, E_LEVEL_KEY]))
    try:
        p_count = int(values.get(P_LEVEL_KEY, "0"))
        e_count = int(values.get(E_LEVEL_KEY, "0"))
    except ValueError:
        p_count = e_count = 0

    if p_count + e_count == 0:
        # Not a heterogeneous chip (or no sysctl): treat every core as a P-core
        p_count = psutil.cpu_count(logical=True) or 0
        logger.info(f"performance levels unavailable, assuming {p_count} uniform cores")
    return p_count, e_count


def get_gpu_core_count() -> int:
    output = run_cmd(["system_profiler", "-detailLevel", "basic", "SPDisplaysDataType"])
    for line in output.splitlines():
        if "Total Number of Cores" in line:
            _, _, value = line.partition(":")
            try:
                return int(value.strip())
            except ValueError:
                break
    return 0


@functools.lru_cache(maxsize=1)
def get_system_info() -> SystemInfo:
    """Identify the chip once per process."""
    p_count, e_count = get_core_counts()
    info = SystemInfo(
        name=get_chip_name(),
        p_core_count=p_count,
        e_core_count=e_count,
        gpu_core_count=get_gpu_core_count(),
    )
    logger.info(
        f"Model: {info.name} | E-Cores: {info.e_core_count} | "
        f"P-Cores: {info.p_core_count} | GPU Cores: {info.gpu_core_count}"
    )
    return info


def get_memory_metrics() -> MemoryMetrics:
    mem = psutil.virtual_memory()
    swap = psutil.swap_memory()
    return MemoryMetrics(
        total=mem.total,
        used=mem.used,
        available=mem.available,
        swap_total=swap.total,
        swap_used=swap.used,
    )


def collect_processes() -> list[ProcessSnapshot]:
    """
    Collect snapshots of all running processes.

    Processes that vanish or deny access mid-iteration are skipped.
    """
    processes: list[ProcessSnapshot] = []
    attrs = ["pid", "name", "username", "cpu_percent", "memory_percent", "memory_info", "cmdline"]

    for proc in psutil.process_iter(attrs=attrs):
        try:
            info = proc.info
            cmdline = info.get("cmdline") or []
            mem_info = info.get("memory_info")
            processes.append(
                ProcessSnapshot(
                    pid=info.get("pid", 0),
                    name=info.get("name") or "",
                    username=info.get("username") or "",
                    cpu_percent=info.get("cpu_percent") or 0.0,
                    memory_percent=info.get("memory_percent") or 0.0,
                    memory_rss=mem_info.rss if mem_info else 0,
                    command_line=" ".join(cmdline) if cmdline else info.get("name") or "",
                )
            )
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue

    return processes
