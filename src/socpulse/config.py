"""Runtime configuration."""

import os
from dataclasses import dataclass

from socpulse.errors import ConfigurationError
from socpulse.framing import DEFAULT_MAX_BUFFER

SAMPLERS = ("cpu_power", "gpu_power", "thermal", "network", "disk")


@dataclass(slots=True, frozen=True)
class Config:
    """Startup parameters for the sampling pipeline and its consumers."""

    interval_ms: int = 1000
    max_buffer: int = DEFAULT_MAX_BUFFER
    grace_period: float = 2.0  # seconds between SIGTERM and SIGKILL
    export_interval: float | None = None  # defaults to the sampling interval
    headless: bool = False
    count: int = 0  # headless samples to print, 0 = unlimited
    log_file: str = "logs/socpulse.log"
    require_root: bool = True

    @property
    def interval(self) -> float:
        """Sampling interval in seconds."""
        return self.interval_ms / 1000

    @property
    def export_period(self) -> float:
        return self.export_interval if self.export_interval is not None else self.interval

    def powermetrics_command(self) -> list[str]:
        return [
            "powermetrics",
            "--samplers",
            ",".join(SAMPLERS),
            "--show-initial-usage",
            "-f",
            "plist",
            "-i",
            str(self.interval_ms),
        ]

    def validate(self) -> "Config":
        """
        Check the configuration before the pipeline starts.

        Raises:
            ConfigurationError: on the first invalid parameter.
        """
        if self.interval_ms <= 0:
            raise ConfigurationError(f"interval must be a positive number of ms, got {self.interval_ms}")
        if self.max_buffer < 1024:
            raise ConfigurationError(f"max buffer must be at least 1024 bytes, got {self.max_buffer}")
        if self.grace_period < 0:
            raise ConfigurationError(f"grace period must not be negative, got {self.grace_period}")
        if self.export_interval is not None and self.export_interval <= 0:
            raise ConfigurationError(f"export interval must be positive, got {self.export_interval}")
        if self.count < 0:
            raise ConfigurationError(f"count must not be negative, got {self.count}")
        if self.count and not self.headless:
            raise ConfigurationError("--count is only valid with --headless")
        if self.require_root and hasattr(os, "geteuid") and os.geteuid() != 0:
            raise ConfigurationError("powermetrics requires root privileges, run with sudo")
        return self
