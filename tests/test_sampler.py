"""Tests for the powermetrics producer."""

import io
import sys
import textwrap
import time

import pytest

from socpulse.config import Config
from socpulse.dispatch import Category, Dispatcher
from socpulse.errors import FramingError, SocPulseError, SubprocessExitError
from socpulse.models import CPUMetrics, GPUMetrics, NetDiskMetrics, ThermalMetrics
from socpulse.sampler import PowermetricsSampler

CONFIG = Config(interval_ms=100, grace_period=0.5, require_root=False)

EMIT_RECORDS = textwrap.dedent(
    """
    import plistlib, sys, time
    out = sys.stdout.buffer
    for pressure in {pressures!r}:
        out.write(b"log noise\\n")
        out.write(plistlib.dumps({{"processor": {{"cpu_power": 5000.0}}, "thermal_pressure": pressure}}))
        out.write(b"\\x00")
        out.flush()
    time.sleep({linger})
    """
)


def fake_powermetrics(pressures=("Nominal",), linger=0.0) -> list[str]:
    return [sys.executable, "-c", EMIT_RECORDS.format(pressures=list(pressures), linger=linger)]


def wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


class TestProcessRecord:
    """Tests for PowermetricsSampler.process_record."""

    def test_publishes_every_category(self, record):
        dispatcher = Dispatcher()
        sampler = PowermetricsSampler(dispatcher, CONFIG)

        assert sampler.process_record(record.rstrip()) is True
        assert isinstance(dispatcher.latest(Category.CPU), CPUMetrics)
        assert isinstance(dispatcher.latest(Category.GPU), GPUMetrics)
        assert isinstance(dispatcher.latest(Category.NET_DISK), NetDiskMetrics)
        assert isinstance(dispatcher.latest(Category.THERMAL), ThermalMetrics)
        assert dispatcher.latest(Category.CPU).cpu_watts == 5.0
        assert sampler.records_published == 1

    def test_truncated_record_is_counted(self, record):
        dispatcher = Dispatcher()
        sampler = PowermetricsSampler(dispatcher, CONFIG)

        assert sampler.process_record(record[:80]) is False
        assert sampler.malformed.consecutive == 1
        assert dispatcher.latest(Category.CPU) is None

    def test_corrupt_record_is_dropped(self):
        dispatcher = Dispatcher()
        sampler = PowermetricsSampler(dispatcher, CONFIG)
        corrupt = b"<?xml version='1.0'?><plist><dict><key>a</dict></plist>"

        assert sampler.process_record(corrupt) is False
        assert sampler.malformed.total == 1

    def test_failures_soft_degrade(self, record):
        """Test repeated failures never stop processing of good records."""
        dispatcher = Dispatcher()
        sampler = PowermetricsSampler(dispatcher, CONFIG)
        for _ in range(7):
            sampler.process_record(b"<?xml garbage")
        assert sampler.process_record(record.rstrip()) is True
        assert sampler.malformed.consecutive == 0
        assert sampler.malformed.total == 7

    def test_consume_stream(self, make_record):
        dispatcher = Dispatcher()
        sampler = PowermetricsSampler(dispatcher, CONFIG)
        stream = io.BytesIO(make_record() + b"noise" + make_record(thermal_pressure="Critical") + b"<?xml")

        sampler.consume(stream)

        assert sampler.records_published == 2
        assert dispatcher.latest(Category.THERMAL) == ThermalMetrics(pressure="Critical", level=3)
        assert sampler.malformed.total == 1

    def test_non_finite_fields_do_not_stop_the_stream(self, make_record):
        """Test a record with nan/inf leaves is published degraded and the next one still arrives."""
        dispatcher = Dispatcher()
        sampler = PowermetricsSampler(dispatcher, CONFIG)
        bad = make_record(gpu={"freq_hz": float("inf"), "idle_ratio": float("nan")})
        good = make_record(processor={"cpu_power": 7000.0})

        sampler.consume(io.BytesIO(bad + b"\x00" + good))

        assert sampler.records_published == 2
        assert dispatcher.latest(Category.CPU).cpu_watts == 7.0
        assert dispatcher.mailbox(Category.GPU).overwritten == 1
        assert sampler.malformed.total == 0

    def test_consume_oversized_record_is_fatal(self):
        config = Config(max_buffer=1024, require_root=False)
        sampler = PowermetricsSampler(Dispatcher(), config)
        stream = io.BytesIO(b"<?xml version='1.0'?><plist><dict>" + b"<key>k</key>" * 1000)
        with pytest.raises(FramingError):
            sampler.consume(stream)


class TestSubprocessLifecycle:
    """Tests driving a real child process through the sampler."""

    def test_unexpected_exit_is_fatal(self):
        dispatcher = Dispatcher()
        sampler = PowermetricsSampler(
            dispatcher, CONFIG, command=fake_powermetrics(["Nominal", "Moderate"])
        )
        sampler.start()
        try:
            assert wait_for(lambda: sampler.cancel.is_set())
            assert wait_for(lambda: not sampler.is_running)
        finally:
            sampler.stop()

        assert sampler.records_published == 2
        assert dispatcher.latest(Category.THERMAL).pressure == "Moderate"
        assert isinstance(sampler.error, SubprocessExitError)
        assert sampler.error.returncode == 0

    def test_unexpected_error_in_reader_cancels(self, monkeypatch):
        """Test a crash inside the reader thread cancels the pipeline and kills the child."""
        dispatcher = Dispatcher()
        sampler = PowermetricsSampler(dispatcher, CONFIG, command=fake_powermetrics(linger=30))

        def crash(raw):
            raise RuntimeError("boom")

        monkeypatch.setattr(sampler, "process_record", crash)
        sampler.start()
        process = sampler._process
        try:
            assert wait_for(lambda: sampler.cancel.is_set())
            assert wait_for(lambda: not sampler.is_running)
        finally:
            sampler.stop()

        assert isinstance(sampler.error, SocPulseError)
        assert "boom" in str(sampler.error)
        assert process.poll() is not None

    def test_stop_is_not_an_error(self):
        dispatcher = Dispatcher()
        sampler = PowermetricsSampler(dispatcher, CONFIG, command=fake_powermetrics(linger=30))
        sampler.start()
        try:
            assert wait_for(lambda: dispatcher.latest(Category.CPU) is not None)
        finally:
            sampler.stop()

        assert not sampler.is_running
        assert sampler.cancel.is_set()
        assert sampler.error is None

    def test_stop_kills_process_ignoring_sigterm(self):
        script = textwrap.dedent(
            """
            import signal, sys, time
            signal.signal(signal.SIGTERM, signal.SIG_IGN)
            sys.stdout.write("ready")
            sys.stdout.flush()
            time.sleep(30)
            """
        )
        sampler = PowermetricsSampler(
            Dispatcher(),
            Config(grace_period=0.2, require_root=False),
            command=[sys.executable, "-c", script],
        )
        sampler.start()
        time.sleep(0.3)
        start = time.monotonic()
        sampler.stop()

        assert time.monotonic() - start < 5.0
        assert not sampler.is_running
        assert sampler.error is None

    def test_start_idempotent(self):
        sampler = PowermetricsSampler(Dispatcher(), CONFIG, command=fake_powermetrics(linger=30))
        sampler.start()
        try:
            thread1 = sampler._thread
            sampler.start()
            assert sampler._thread is thread1
            assert thread1.daemon is True
            assert thread1.name == "PowermetricsSampler"
        finally:
            sampler.stop()


def test_powermetrics_command():
    command = Config(interval_ms=250, require_root=False).powermetrics_command()
    assert command[0] == "powermetrics"
    assert "cpu_power,gpu_power,thermal,network,disk" in command
    assert command[-2:] == ["-i", "250"]
    assert "plist" in command
