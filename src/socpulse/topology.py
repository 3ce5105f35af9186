"""
Mapping of flat per-core arrays onto performance and efficiency cores.

Apple Silicon numbers its logical CPUs differently per chip family, so a
per-core utilization array cannot be split into P and E groups by core
counts alone. ``resolve_topology`` knows the layouts below and falls back to
"P-cores first" for anything it does not recognise:

    M3 Ultra 24P+8E   per die: 4 E, then 12 P
    M3 Ultra 20P+8E   per die: 4 E, then 10 P
    M4 Pro            all E, then all P
    M1/M2 Ultra       per die: P, then E
    default           all P, then all E
"""

import functools
from collections.abc import Sequence

from loguru import logger

from socpulse.models import ChipTopology, SystemInfo

# (p_count, e_count) -> (E-cores per die, P-cores per die)
_M3_ULTRA_DIES = {
    (24, 8): (4, 12),
    (20, 8): (4, 10),
}


def _split_die_e_first(e_per_die: int, p_per_die: int, dies: int = 2) -> tuple[list[int], list[int]]:
    p_cores: list[int] = []
    e_cores: list[int] = []
    base = 0
    for _ in range(dies):
        e_cores.extend(range(base, base + e_per_die))
        p_cores.extend(range(base + e_per_die, base + e_per_die + p_per_die))
        base += e_per_die + p_per_die
    return p_cores, e_cores


def _dual_die_p_first(p_count: int, e_count: int) -> tuple[list[int], list[int]]:
    # Odd counts leave the extra core at the tail of the first die's group
    first_p, second_p = p_count - p_count // 2, p_count // 2
    first_e, second_e = e_count - e_count // 2, e_count // 2

    p_cores = list(range(0, first_p))
    e_cores = list(range(first_p, first_p + first_e))
    base = first_p + first_e
    p_cores.extend(range(base, base + second_p))
    e_cores.extend(range(base + second_p, base + second_p + second_e))
    return p_cores, e_cores


def _default_layout(p_count: int, e_count: int) -> ChipTopology:
    return ChipTopology(
        p_core_indices=tuple(range(p_count)),
        e_core_indices=tuple(range(p_count, p_count + e_count)),
        description="Standard layout: P-cores first, then E-cores",
    )


def is_partition(topology: ChipTopology, total: int) -> bool:
    """True if the P and E indices cover ``range(total)`` exactly once."""
    indices = topology.p_core_indices + topology.e_core_indices
    return len(indices) == total and set(indices) == set(range(total))


@functools.lru_cache(maxsize=None)
def resolve_topology(name: str, p_count: int, e_count: int) -> ChipTopology:
    """
    Return the core topology for a chip. Never fails.

    Args:
        name: Marketing name, e.g. "Apple M3 Ultra".
        p_count: Number of performance cores.
        e_count: Number of efficiency cores.
    """
    p_count = max(0, p_count)
    e_count = max(0, e_count)
    total = p_count + e_count

    if "M3 Ultra" in name and (p_count, e_count) in _M3_ULTRA_DIES:
        e_per_die, p_per_die = _M3_ULTRA_DIES[(p_count, e_count)]
        p_cores, e_cores = _split_die_e_first(e_per_die, p_per_die)
        description = f"M3 Ultra {total}-core: E-cores first within each die"
    elif "M4 Pro" in name:
        e_cores = list(range(e_count))
        p_cores = list(range(e_count, total))
        description = "M4 Pro: E-cores first, then P-cores"
    elif "M1 Ultra" in name or "M2 Ultra" in name:
        p_cores, e_cores = _dual_die_p_first(p_count, e_count)
        description = "M1/M2 Ultra: P-cores first within each die"
    else:
        return _default_layout(p_count, e_count)

    topology = ChipTopology(
        p_core_indices=tuple(p_cores),
        e_core_indices=tuple(e_cores),
        description=description,
    )
    if not is_partition(topology, total):
        logger.warning(f"{description!r} does not fit {p_count}P+{e_count}E, using default layout")
        return _default_layout(p_count, e_count)
    return topology


def topology_for(info: SystemInfo) -> ChipTopology:
    return resolve_topology(info.name, info.p_core_count, info.e_core_count)


def group_average(usages: Sequence[float], indices: Sequence[int]) -> float:
    """Mean usage over ``indices``; indices past the end of ``usages`` count as idle."""
    if not indices:
        return 0.0
    total = sum(usages[i] for i in indices if i < len(usages))
    return total / len(indices)


def group_averages(usages: Sequence[float], topology: ChipTopology) -> tuple[float, float]:
    """Return (E-core average, P-core average)."""
    return (
        group_average(usages, topology.e_core_indices),
        group_average(usages, topology.p_core_indices),
    )
