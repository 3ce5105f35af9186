"""Command line entry point."""

import argparse
import signal
import sys
import threading

from loguru import logger

from socpulse.app import SocPulseApp
from socpulse.config import Config
from socpulse.cpu import CPUUtilizationEstimator
from socpulse.dispatch import Dispatcher
from socpulse.errors import ConfigurationError
from socpulse.exporter import GaugeExporter
from socpulse.framing import DEFAULT_MAX_BUFFER
from socpulse.headless import HeadlessPrinter
from socpulse.logging_config import setup_logging
from socpulse.registry import GaugeRegistry
from socpulse.sampler import PowermetricsSampler
from socpulse.system import collect_processes, get_system_info


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="socpulse",
        description="Apple Silicon power and utilization monitor (requires sudo).",
        epilog="Example:\n  sudo socpulse\n  sudo socpulse --headless --count 5 -i 500",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument(
        "-i",
        "--interval",
        type=int,
        default=1000,
        help="powermetrics sampling interval in milliseconds (default: 1000).",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Print one JSON object per interval instead of the dashboard.",
    )
    parser.add_argument(
        "--count",
        type=int,
        default=0,
        help="With --headless, stop after this many samples and print a JSON array.",
    )
    parser.add_argument(
        "--log-file",
        default="logs/socpulse.log",
        help="Path of the rotating log file.",
    )
    parser.add_argument(
        "--max-buffer",
        type=int,
        default=DEFAULT_MAX_BUFFER,
        help="Largest powermetrics record accepted, in bytes.",
    )
    return parser.parse_args(argv)


def config_from_args(args: argparse.Namespace) -> Config:
    return Config(
        interval_ms=args.interval,
        max_buffer=args.max_buffer,
        headless=args.headless,
        count=args.count,
        log_file=args.log_file,
    ).validate()


def run(config: Config) -> int:
    """Run the pipeline until cancelled. Returns the process exit code."""
    info = get_system_info()
    cancel = threading.Event()
    dispatcher = Dispatcher()
    registry = GaugeRegistry()
    estimator = CPUUtilizationEstimator()

    sampler = PowermetricsSampler(dispatcher, config, cancel=cancel)
    exporter = GaugeExporter(
        registry,
        dispatcher,
        estimator,
        info,
        interval=config.export_period,
        cancel=cancel,
        process_reader=None if config.headless else collect_processes,
    )

    signal.signal(signal.SIGTERM, lambda signum, frame: cancel.set())
    sampler.start()
    try:
        if config.headless:
            printer = HeadlessPrinter(
                exporter, dispatcher, info, config.interval, cancel, count=config.count
            )
            printer.run()
        else:
            exporter.start()
            SocPulseApp(dispatcher, info, sampler=sampler, refresh_interval=config.interval).run()
    except KeyboardInterrupt:
        logger.info("interrupted")
    finally:
        logger.info("Shutting down...")
        exporter.stop()
        sampler.stop()

    if sampler.error is not None:
        print(f"socpulse: {sampler.error}", file=sys.stderr)
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    """Entry point for the socpulse command."""
    args = parse_args(argv)
    try:
        config = config_from_args(args)
    except ConfigurationError as e:
        print(f"socpulse: {e}", file=sys.stderr)
        return 2

    setup_logging(config.log_file, console=config.headless)
    return run(config)


if __name__ == "__main__":
    sys.exit(main())
