"""Shared fixtures for socpulse tests."""

import plistlib

import pytest


def build_record(**overrides) -> bytes:
    """Serialize a powermetrics-like plist record."""
    data = {
        "processor": {
            "cpu_power": 5000.0,
            "gpu_power": 2000.0,
            "ane_power": 0.0,
            "combined_power": 7000.0,
            "clusters": [
                {"name": "E-Cluster", "freq_hz": 1_020_000_000.0, "idle_ratio": 0.75},
                {"name": "P0-Cluster", "freq_hz": 3_000_000_000.0, "idle_ratio": 0.5},
                {"name": "P1-Cluster", "freq_hz": 2_000_000_000.0, "idle_ratio": 0.7},
            ],
        },
        "gpu": {"freq_hz": 1398.0, "idle_ratio": 0.25},
        "thermal_pressure": "Nominal",
        "network": {
            "ibyte_rate": 1_000_000.0,
            "obyte_rate": 500_000.0,
            "ipacket_rate": 120.0,
            "opacket_rate": 80.0,
        },
        "disk": {
            "rbytes_per_s": 2_048_000.0,
            "wbytes_per_s": 1_024_000.0,
            "rops_per_s": 30.0,
            "wops_per_s": 15.0,
        },
    }
    data.update(overrides)
    return plistlib.dumps(data, fmt=plistlib.FMT_XML)


@pytest.fixture
def record() -> bytes:
    """A single well-formed record."""
    return build_record()


@pytest.fixture
def make_record():
    """Factory for records with overridden top-level sections."""
    return build_record
