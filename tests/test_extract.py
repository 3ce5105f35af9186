"""Tests for typed metric extraction."""

import pytest

from socpulse.decoding import DecodedSample, decode_sample
from socpulse.extract import (
    bytes_to_gib,
    kb_to_mib,
    parse_cpu_metrics,
    parse_gpu_metrics,
    parse_net_disk_metrics,
    parse_sample,
    parse_thermal_metrics,
)
from socpulse.models import CPUMetrics, GPUMetrics, NetDiskMetrics, ThermalMetrics


def test_unit_conversions_from_record(record):
    """Test milliwatts and byte rates convert with the fixed divisors."""
    sample = parse_sample(decode_sample(record))
    assert sample.cpu.cpu_watts == 5.0
    assert sample.cpu.gpu_watts == 2.0
    assert sample.net_disk.in_kbytes_per_sec == 1000.0


class TestCPUMetrics:
    """Tests for parse_cpu_metrics."""

    def test_power_and_clusters(self, record):
        metrics = parse_cpu_metrics(decode_sample(record))
        assert metrics.package_watts == 7.0
        assert metrics.ane_watts == 0.0
        assert metrics.e_cluster_active == 25
        assert metrics.e_cluster_freq_mhz == 1020
        # P0 50% / P1 30% averaged, 3000 / 2000 MHz averaged
        assert metrics.p_cluster_active == 40
        assert metrics.p_cluster_freq_mhz == 2500
        assert metrics.throttled is False

    def test_throttled_when_not_nominal(self, make_record):
        metrics = parse_cpu_metrics(decode_sample(make_record(thermal_pressure="Heavy")))
        assert metrics.throttled is True

    def test_empty_record_gives_zero_values(self):
        assert parse_cpu_metrics(DecodedSample({})) == CPUMetrics()

    def test_partial_fields_degrade_per_field(self):
        data = DecodedSample({"processor": {"cpu_power": 1234.0, "gpu_power": "oops"}})
        metrics = parse_cpu_metrics(data)
        assert metrics.cpu_watts == pytest.approx(1.234)
        assert metrics.gpu_watts == 0.0

    def test_malformed_clusters_are_skipped(self):
        data = DecodedSample({"processor": {"clusters": ["bad", {"name": "E-Cluster"}, {}]}})
        metrics = parse_cpu_metrics(data)
        assert metrics.e_cluster_active == 0
        assert metrics.e_cluster_freq_mhz == 0


class TestGPUMetrics:
    """Tests for parse_gpu_metrics."""

    def test_gpu_fields(self, record):
        metrics = parse_gpu_metrics(decode_sample(record))
        assert metrics.freq_mhz == 1398
        assert metrics.active_percent == 75
        assert metrics.watts == 2.0

    def test_missing_gpu(self):
        assert parse_gpu_metrics(DecodedSample({})) == GPUMetrics()


class TestNetDiskMetrics:
    """Tests for parse_net_disk_metrics."""

    def test_rates(self, record):
        metrics = parse_net_disk_metrics(decode_sample(record))
        assert metrics.in_kbytes_per_sec == 1000.0
        assert metrics.out_kbytes_per_sec == 500.0
        assert metrics.in_packets_per_sec == 120.0
        assert metrics.out_packets_per_sec == 80.0
        assert metrics.read_kbytes_per_sec == 2048.0
        assert metrics.write_kbytes_per_sec == 1024.0
        assert metrics.read_ops_per_sec == 30.0
        assert metrics.write_ops_per_sec == 15.0

    def test_missing_sections(self):
        assert parse_net_disk_metrics(DecodedSample({"network": {}})) == NetDiskMetrics()


class TestThermalMetrics:
    """Tests for parse_thermal_metrics."""

    @pytest.mark.parametrize(
        ("pressure", "level"),
        [("Nominal", 0), ("Moderate", 1), ("Heavy", 2), ("Critical", 3), ("Sizzling", 0)],
    )
    def test_levels(self, pressure, level):
        metrics = parse_thermal_metrics(DecodedSample({"thermal_pressure": pressure}))
        assert metrics == ThermalMetrics(pressure=pressure, level=level)

    def test_missing(self):
        assert parse_thermal_metrics(DecodedSample({})) == ThermalMetrics()


def test_kb_to_mib():
    """Test exported MB/s gauges use the 1000 / 1024**2 conversion."""
    assert kb_to_mib(1024 * 1024 / 1000) == pytest.approx(1.0)
    assert kb_to_mib(1000.0) == pytest.approx(1_000_000 / 1_048_576)


def test_bytes_to_gib():
    assert bytes_to_gib(16 * 1024**3) == 16.0


BAD_NUMBERS = [
    pytest.param(True, id="bool"),
    pytest.param("12", id="string"),
    pytest.param([1.0], id="list"),
    pytest.param(float("nan"), id="nan"),
    pytest.param(float("inf"), id="inf"),
    pytest.param(float("-inf"), id="neg-inf"),
    pytest.param(10**400, id="huge-int"),
]


class TestMistypedLeaves:
    """A bad numeric leaf zeroes only its own field."""

    @pytest.mark.parametrize("bad", BAD_NUMBERS)
    def test_gpu_fields(self, bad):
        metrics = parse_gpu_metrics(
            DecodedSample({"gpu": {"freq_hz": bad, "idle_ratio": bad}, "processor": {"gpu_power": 3000.0}})
        )
        assert metrics == GPUMetrics(freq_mhz=0, active_percent=0, watts=3.0)

    @pytest.mark.parametrize("bad", BAD_NUMBERS)
    def test_cluster_fields(self, bad):
        data = DecodedSample(
            {
                "processor": {
                    "cpu_power": bad,
                    "combined_power": 4000.0,
                    "clusters": [
                        {"name": "E-Cluster", "freq_hz": bad, "idle_ratio": bad},
                        {"name": "P-Cluster", "freq_hz": 3_000_000_000.0, "idle_ratio": 0.5},
                    ],
                }
            }
        )
        metrics = parse_cpu_metrics(data)
        assert metrics.cpu_watts == 0.0
        assert metrics.package_watts == 4.0
        assert metrics.e_cluster_active == 0
        assert metrics.e_cluster_freq_mhz == 0
        assert metrics.p_cluster_active == 50
        assert metrics.p_cluster_freq_mhz == 3000

    @pytest.mark.parametrize("bad", BAD_NUMBERS)
    def test_net_disk_fields(self, bad):
        metrics = parse_net_disk_metrics(DecodedSample({"network": {"ibyte_rate": bad, "obyte_rate": 2000.0}}))
        assert metrics.in_kbytes_per_sec == 0.0
        assert metrics.out_kbytes_per_sec == 2.0

    @pytest.mark.parametrize("value", ["nan", "inf", "-inf"])
    def test_non_finite_reals_from_plist(self, make_record, value):
        """Test nan and inf <real> leaves decoded by plistlib degrade to zero."""
        raw = make_record(gpu={"freq_hz": 1398.0, "idle_ratio": 0.25}).replace(
            b"<real>0.25</real>", f"<real>{value}</real>".encode()
        )
        sample = parse_sample(decode_sample(raw))
        assert sample.gpu.active_percent == 0
        assert sample.gpu.freq_mhz == 1398

    @pytest.mark.parametrize(("idle", "active"), [(1.5, 0), (-0.5, 100), (1e308, 0), (-1e308, 100)])
    def test_idle_ratio_out_of_range_is_clamped(self, idle, active):
        metrics = parse_gpu_metrics(DecodedSample({"gpu": {"idle_ratio": idle}}))
        assert metrics.active_percent == active
