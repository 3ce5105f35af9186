"""Producer side: run powermetrics and publish every decoded sample."""

import subprocess
import threading
from typing import BinaryIO

from loguru import logger

from socpulse.config import Config
from socpulse.decoding import decode_sample
from socpulse.dispatch import Category, Dispatcher
from socpulse.errors import DecodeError, FramingError, SocPulseError, SubprocessExitError
from socpulse.extract import parse_sample
from socpulse.framing import MalformedCounter, is_complete, iter_samples


class PowermetricsSampler:
    """
    Runs the sampling subprocess and feeds its output through the pipeline.

    A daemon thread reads stdout, frames, decodes and extracts records and
    publishes them to the dispatcher. Publishing never blocks, so a slow
    consumer can never back up the powermetrics pipe.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        config: Config,
        cancel: threading.Event | None = None,
        command: list[str] | None = None,
    ) -> None:
        """
        Initialize the sampler.

        Args:
            dispatcher: Where extracted metrics are published.
            config: Interval, buffer cap and shutdown grace period.
            cancel: Shared cancellation signal. Set by :meth:`stop`, and by
                the sampler itself if the pipeline dies.
            command: Override for the sampling command (tests).
        """
        self._dispatcher = dispatcher
        self._config = config
        self._cancel = cancel or threading.Event()
        self._command = command or config.powermetrics_command()
        self._process: subprocess.Popen[bytes] | None = None
        self._thread: threading.Thread | None = None
        self._counter = MalformedCounter()
        self._error: SocPulseError | None = None
        self.records_published = 0

    @property
    def cancel(self) -> threading.Event:
        return self._cancel

    @property
    def error(self) -> SocPulseError | None:
        """The fatal error that stopped the producer, if any."""
        return self._error

    @property
    def malformed(self) -> MalformedCounter:
        return self._counter

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Launch powermetrics and the reader thread."""
        if self.is_running:
            return

        logger.info(f"starting {' '.join(self._command)}")
        self._process = subprocess.Popen(
            self._command,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
        self._thread = threading.Thread(
            target=self._run,
            args=(self._process,),
            daemon=True,
            name="PowermetricsSampler",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Request cancellation and tear down the subprocess.

        The subprocess gets SIGTERM, then SIGKILL after the grace period.
        """
        self._cancel.set()
        self._terminate()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _terminate(self) -> None:
        process = self._process
        if process is None or process.poll() is not None:
            return
        process.terminate()
        try:
            process.wait(timeout=self._config.grace_period)
        except subprocess.TimeoutExpired:
            logger.warning("powermetrics ignored SIGTERM, killing it")
            process.kill()
            process.wait()

    def _run(self, process: subprocess.Popen[bytes]) -> None:
        """Reader loop running in the background thread."""
        stream = process.stdout
        if stream is None:
            self._fail(SocPulseError("powermetrics has no stdout pipe"))
            return
        try:
            self.consume(stream)
        except FramingError as e:
            self._fail(e)
            return
        except Exception as e:
            logger.exception("Unexpected error in sampler thread")
            self._fail(SocPulseError(f"sampler thread crashed: {e!r}"))
            return
        finally:
            stream.close()

        if not self._cancel.is_set():
            self._fail(SubprocessExitError(process.wait()))

    def _fail(self, error: SocPulseError) -> None:
        logger.error(f"sampling pipeline stopped: {error}")
        self._error = error
        self._cancel.set()
        self._terminate()

    def consume(self, stream: BinaryIO) -> None:
        """Frame and process records from ``stream`` until EOF or cancellation."""
        for raw in iter_samples(stream, max_buffer=self._config.max_buffer):
            if self._cancel.is_set():
                return
            self.process_record(raw)

    def process_record(self, raw: bytes) -> bool:
        """Decode, extract and publish one framed record. Returns True on success."""
        if not is_complete(raw):
            self._skip(FramingError(f"record is missing its markers ({len(raw)} bytes)"))
            return False

        try:
            data = decode_sample(raw)
        except DecodeError as e:
            self._skip(e)
            return False

        self._counter.success()
        sample = parse_sample(data)
        self._dispatcher.publish(Category.CPU, sample.cpu)
        self._dispatcher.publish(Category.GPU, sample.gpu)
        self._dispatcher.publish(Category.NET_DISK, sample.net_disk)
        self._dispatcher.publish(Category.THERMAL, sample.thermal)
        self.records_published += 1
        return True

    def _skip(self, error: SocPulseError) -> None:
        logger.warning(f"skipping record: {error}")
        self._counter.failure()
