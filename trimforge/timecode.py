"""Timecode value type: parsing, formatting and ordering of media instants.

A ``Timecode`` is either a finite number of seconds or the ``END`` sentinel,
which stands for "until the end of the media". Finite values are stored as
``Decimal`` rounded to microseconds, so decomposition into hours, minutes and
seconds is exact; anything finer than six fractional digits is lost on
construction.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from functools import total_ordering

from trimforge.errors import TimecodeParseError, TimecodeRangeError

PRECISION = Decimal("0.000001")

# Largest value whose canonical form still fits the two-digit hour grammar.
MAX_SECONDS = Decimal("359999.999999")

_TIMECODE_RE = re.compile(
    r"^(?:(?:(?P<hours>[0-9]{1,2}):)?(?P<minutes>[0-5]?[0-9]):)?"
    r"(?P<seconds>[0-5]?[0-9](?:\.[0-9]{1,6})?)$"
)


@total_ordering
@dataclass(frozen=True)
class Timecode:
    """An instant on the media timeline.

    ``seconds`` is ``None`` only for the ``END`` sentinel. Use
    :meth:`parse`, :meth:`of_seconds`, ``ZERO`` or ``END`` rather than the
    constructor.
    """

    seconds: Decimal | None

    def __post_init__(self) -> None:
        if self.seconds is None:
            return
        try:
            value = Decimal(self.seconds).quantize(PRECISION, rounding=ROUND_HALF_EVEN)
        except InvalidOperation as e:
            raise TimecodeRangeError(f"Invalid timecode value: {self.seconds!r}") from e
        if value < 0:
            raise TimecodeRangeError(f"Timecode cannot be negative: {self.seconds}")
        if value > MAX_SECONDS:
            raise TimecodeRangeError(
                f"Timecode {self.seconds}s exceeds the supported maximum of {MAX_SECONDS}s"
            )
        object.__setattr__(self, "seconds", value)

    # --- construction ---------------------------------------------------

    @classmethod
    def parse(cls, text: str) -> "Timecode":
        """Parse ``[[HH:]MM:]SS[.ffffff]``."""
        match = _TIMECODE_RE.match(text) if isinstance(text, str) else None
        if match is None:
            raise TimecodeParseError(f"Invalid timecode: {text!r}")

        hours = int(match.group("hours") or 0)
        minutes = int(match.group("minutes") or 0)
        seconds = Decimal(match.group("seconds"))
        return cls(hours * 3600 + minutes * 60 + seconds)

    @classmethod
    def of_seconds(cls, value: int | float | str | Decimal) -> "Timecode":
        """Build a timecode from a plain number of seconds."""
        if isinstance(value, float):
            if not math.isfinite(value):
                raise TimecodeRangeError(f"Timecode must be finite: {value}")
            value = repr(value)
        try:
            seconds = Decimal(value)
        except (InvalidOperation, TypeError, ValueError) as e:
            raise TimecodeRangeError(f"Invalid number of seconds: {value!r}") from e
        if not seconds.is_finite():
            raise TimecodeRangeError(f"Timecode must be finite: {value}")
        return cls(seconds)

    # --- queries ----------------------------------------------------------

    @property
    def is_end(self) -> bool:
        return self.seconds is None

    def format(self) -> str:
        """Return the canonical ``HH:MM:SS.ffffff`` form.

        Raises TimecodeRangeError for ``END``, which has no numeric form.
        """
        if self.seconds is None:
            raise TimecodeRangeError("END has no numeric timecode representation")

        whole = int(self.seconds)
        micros = int((self.seconds - whole) * 1_000_000)
        hours, rest = divmod(whole, 3600)
        minutes, seconds = divmod(rest, 60)
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}.{micros:06d}"

    def subtract(self, other: "Timecode") -> "Timecode":
        """Difference of two finite timecodes, saturating at ZERO."""
        if self.seconds is None or other.seconds is None:
            raise TimecodeRangeError("END cannot take part in timecode arithmetic")
        if self.seconds <= other.seconds:
            return ZERO
        return Timecode(self.seconds - other.seconds)

    def __sub__(self, other: "Timecode") -> "Timecode":
        if not isinstance(other, Timecode):
            return NotImplemented
        return self.subtract(other)

    def _sort_key(self) -> tuple[int, Decimal]:
        if self.seconds is None:
            return (1, Decimal(0))
        return (0, self.seconds)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Timecode):
            return NotImplemented
        return self._sort_key() < other._sort_key()

    def __str__(self) -> str:
        return "END" if self.seconds is None else self.format()

    def __repr__(self) -> str:
        return "Timecode.END" if self.seconds is None else f"Timecode({self.format()!r})"


ZERO = Timecode(Decimal(0))
END = Timecode(None)


def subtract(a: Timecode, b: Timecode) -> Timecode:
    return a.subtract(b)
