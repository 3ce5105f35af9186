"""Decoding of framed powermetrics records."""

import math
import plistlib
from typing import Any
from xml.parsers.expat import ExpatError

from socpulse.errors import DecodeError

# powermetrics separates records with NUL bytes
_PADDING = b"\x00 \t\r\n"


class DecodedSample:
    """
    A parsed plist record with safe path lookups.

    Every accessor takes a path of dict keys and list indices and returns
    ``None`` if any step is missing or the leaf has the wrong type.
    """

    __slots__ = ("_root",)

    def __init__(self, root: dict[str, Any]) -> None:
        self._root = root

    @property
    def root(self) -> dict[str, Any]:
        return self._root

    def get(self, *path: str | int) -> Any | None:
        """Return the raw value at ``path`` or None."""
        node: Any = self._root
        for key in path:
            if isinstance(key, int):
                if not isinstance(node, list) or not -len(node) <= key < len(node):
                    return None
            elif not isinstance(node, dict) or key not in node:
                return None
            node = node[key]
        return node

    def number(self, *path: str | int) -> float | None:
        value = self.get(*path)
        # bool is an int subclass but never a measurement
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        try:
            number = float(value)
        except OverflowError:
            return None
        # plist <real> accepts nan and inf
        return number if math.isfinite(number) else None

    def string(self, *path: str | int) -> str | None:
        value = self.get(*path)
        return value if isinstance(value, str) else None

    def flag(self, *path: str | int) -> bool | None:
        value = self.get(*path)
        return value if isinstance(value, bool) else None

    def mapping(self, *path: str | int) -> dict[str, Any] | None:
        value = self.get(*path)
        return value if isinstance(value, dict) else None

    def items(self, *path: str | int) -> list[Any] | None:
        value = self.get(*path)
        return value if isinstance(value, list) else None

    def child(self, *path: str | int) -> "DecodedSample | None":
        """Return the dict at ``path`` wrapped for further lookups."""
        value = self.mapping(*path)
        return DecodedSample(value) if value is not None else None


def decode_sample(raw: bytes) -> DecodedSample:
    """
    Parse one framed record.

    Raises:
        DecodeError: if the record is not a well-formed XML plist whose
            top-level object is a dictionary.
    """
    data = raw.strip(_PADDING)
    try:
        root = plistlib.loads(data, fmt=plistlib.FMT_XML)
    except (plistlib.InvalidFileException, ExpatError, ValueError, TypeError) as e:
        raise DecodeError(f"unparsable plist record ({len(raw)} bytes): {e}") from e

    if not isinstance(root, dict):
        raise DecodeError(f"expected a plist dictionary, got {type(root).__name__}")
    return DecodedSample(root)
