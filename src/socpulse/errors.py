"""Exception hierarchy for socpulse."""


class SocPulseError(Exception):
    """Base class for all socpulse errors."""


class FramingError(SocPulseError):
    """
    A record could not be framed from the sample stream.

    Soft framing errors (``fatal=False``) are counted and skipped. A fatal
    framing error means the buffer outgrew its cap without ever producing a
    complete record, and the producer cannot continue.
    """

    def __init__(self, message: str, *, fatal: bool = False) -> None:
        super().__init__(message)
        self.fatal = fatal


class DecodeError(SocPulseError):
    """A framed record could not be parsed as a property list."""


class QueryError(SocPulseError):
    """An OS-level metric query failed."""


class SubprocessExitError(SocPulseError):
    """The sampling subprocess exited while the pipeline was still running."""

    def __init__(self, returncode: int | None) -> None:
        super().__init__(f"powermetrics exited unexpectedly (returncode={returncode})")
        self.returncode = returncode


class ConfigurationError(SocPulseError):
    """A required startup parameter is missing or invalid."""
