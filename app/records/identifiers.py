"""Process identifiers as used by the municipal public-records portal.

A process is addressed as ``prefix/sequence/year`` where the prefix is three
digits and the sequence six digits, both zero padded. Users often type the
number without separators (``0180001232025``); those are sliced back into the
canonical form at fixed offsets.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

from .error_codes import ErrorCode
from .logging_utils import _records_event

PREFIX_WIDTH = 3
SEQUENCE_WIDTH = 6


class InvalidIdentifierError(ValueError):
    """Raised for malformed identifiers or ranges, before any network I/O."""

    error_code = ErrorCode.VALIDATION


def _require_digits(value: str, field: str) -> str:
    text = str(value or "").strip()
    if not text or not text.isdigit():
        raise InvalidIdentifierError(f"{field} must be numeric, got {value!r}")
    return text


@dataclass(frozen=True)
class ProcessIdentifier:
    prefix: str
    sequence: int
    year: str

    def __post_init__(self) -> None:
        prefix = _require_digits(self.prefix, "prefix")
        if len(prefix) > PREFIX_WIDTH:
            raise InvalidIdentifierError(f"prefix {prefix!r} is wider than {PREFIX_WIDTH} digits")
        if self.sequence < 0 or len(str(self.sequence)) > SEQUENCE_WIDTH:
            raise InvalidIdentifierError(f"sequence {self.sequence!r} does not fit {SEQUENCE_WIDTH} digits")
        year = _require_digits(self.year, "year")
        object.__setattr__(self, "prefix", prefix.zfill(PREFIX_WIDTH))
        object.__setattr__(self, "year", year)

    @property
    def canonical(self) -> str:
        return f"{self.prefix}/{self.sequence:0{SEQUENCE_WIDTH}d}/{self.year}"

    def __str__(self) -> str:
        return self.canonical


def canonicalize(raw: str) -> str:
    """Return the slash-separated canonical form of ``raw``.

    Input without separators is split at fixed offsets (3, 9). Input that
    already carries separators has each segment re-padded.
    """

    text = str(raw or "").strip()
    if not text:
        raise InvalidIdentifierError("process number is required")

    if "/" not in text:
        _require_digits(text, "process number")
        if len(text) <= PREFIX_WIDTH + SEQUENCE_WIDTH:
            raise InvalidIdentifierError(f"process number {text!r} is too short to contain a year")
        sliced = (
            f"{text[:PREFIX_WIDTH]}/"
            f"{text[PREFIX_WIDTH:PREFIX_WIDTH + SEQUENCE_WIDTH]}/"
            f"{text[PREFIX_WIDTH + SEQUENCE_WIDTH:]}"
        )
        _records_event("state", phase="identifier", kind="normalised", raw=text, canonical=sliced)
        text = sliced

    return parse_identifier(text).canonical


def parse_identifier(text: str) -> ProcessIdentifier:
    """Parse a ``prefix/sequence/year`` string into a ``ProcessIdentifier``."""

    parts = [part.strip() for part in str(text).split("/")]
    if len(parts) != 3:
        raise InvalidIdentifierError(f"process number {text!r} must have three segments")
    prefix, sequence, year = parts
    return ProcessIdentifier(prefix, int(_require_digits(sequence, "sequence")), year)


@dataclass(frozen=True)
class IdentifierRange:
    """Inclusive ``[start, end]`` sequence range under a fixed prefix and year."""

    prefix: str
    start: int
    end: int
    year: str

    def __post_init__(self) -> None:
        if self.start < 1:
            raise InvalidIdentifierError("start must be >= 1")
        if self.end < self.start:
            raise InvalidIdentifierError(f"end ({self.end}) must not be before start ({self.start})")
        # Validate prefix/year and the widest sequence up front.
        widest = ProcessIdentifier(self.prefix, self.end, self.year)
        object.__setattr__(self, "prefix", widest.prefix)
        object.__setattr__(self, "year", widest.year)

    @property
    def total(self) -> int:
        return self.end - self.start + 1

    def __len__(self) -> int:
        return self.total

    def __iter__(self) -> Iterator[ProcessIdentifier]:
        for sequence in range(self.start, self.end + 1):
            yield ProcessIdentifier(self.prefix, sequence, self.year)


def build_range(
    prefix: str,
    start: int | str | None,
    end: int | str | None,
    year: str,
    *,
    default_start: int = 1,
    default_end: int = 1000,
) -> IdentifierRange:
    """Build a validated range from loosely typed request input.

    Missing or blank bounds fall back to the defaults.
    """

    def _bound(value: int | str | None, default: int, field: str) -> int:
        if value is None or (isinstance(value, str) and not value.strip()):
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            raise InvalidIdentifierError(f"{field} must be an integer, got {value!r}") from None

    if not str(prefix or "").strip() or not str(year or "").strip():
        raise InvalidIdentifierError("prefix and year are required")

    return IdentifierRange(
        prefix=str(prefix).strip(),
        start=_bound(start, default_start, "start"),
        end=_bound(end, default_end, "end"),
        year=str(year).strip(),
    )


__all__ = [
    "InvalidIdentifierError",
    "ProcessIdentifier",
    "IdentifierRange",
    "canonicalize",
    "parse_identifier",
    "build_range",
]
