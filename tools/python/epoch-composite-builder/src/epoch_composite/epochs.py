"""
epochs.py
=========
Named, contiguous date ranges that each produce one composite.

Epoch spans are caller-supplied and may differ in length (a full quarter,
a two-month window, a dry season); nothing here assumes a fixed span.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Sequence, Tuple, Union

from shared.python.exceptions import EpochConfigError

DateLike = Union[date, datetime, str]


def _to_date(value: DateLike, label: str, which: str) -> date:
    """Coerce a ``date``, ``datetime`` or ISO-8601 string to a ``date``."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError as exc:
            raise EpochConfigError(label, f"{which} date {value!r} is not ISO-8601") from exc
    raise EpochConfigError(label, f"{which} date must be a date or ISO string, got {type(value).__name__}")


@dataclass(frozen=True)
class Epoch:
    """A labelled, inclusive date range ``[start, end]``.

    Dates may be given as ``date``/``datetime`` objects or ISO strings and
    are normalised to ``date``.

    Raises:
        EpochConfigError: If the label is blank, a date cannot be parsed,
            or ``start`` is after ``end``.

    Example::

        Epoch("2020-dry", "2020-06-01", "2020-12-31")
    """

    label: str
    start: date
    end: date

    def __post_init__(self) -> None:
        if not isinstance(self.label, str) or not self.label.strip():
            raise EpochConfigError(str(self.label), "label must be a non-empty string")
        start = _to_date(self.start, self.label, "start")
        end = _to_date(self.end, self.label, "end")
        if start > end:
            raise EpochConfigError(self.label, f"start {start} is after end {end}")
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Epoch:
        """Build an epoch from a ``{"label", "start", "end"}`` mapping."""
        if not isinstance(raw, Mapping):
            raise EpochConfigError(
                str(raw), f"expected an object with label/start/end, got {type(raw).__name__}"
            )
        missing = [k for k in ("label", "start", "end") if k not in raw]
        if missing:
            raise EpochConfigError(
                str(raw.get("label", "<unnamed>")),
                f"missing key(s): {', '.join(missing)}",
            )
        return cls(label=raw["label"], start=raw["start"], end=raw["end"])

    @property
    def year(self) -> int:
        """Calendar year the epoch starts in."""
        return self.start.year

    @property
    def span_days(self) -> int:
        """Number of calendar days covered, both ends included."""
        return (self.end - self.start).days + 1

    def contains(self, when: date | datetime) -> bool:
        """``True`` when *when* falls on or between ``start`` and ``end``."""
        day = when.date() if isinstance(when, datetime) else when
        return self.start <= day <= self.end

    def __str__(self) -> str:
        return f"{self.label} [{self.start.isoformat()} → {self.end.isoformat()}]"


def union_range(epochs: Iterable[Epoch]) -> Tuple[date, date]:
    """Return the earliest start and latest end across *epochs*.

    Used to issue a single catalog query covering every epoch.

    Raises:
        EpochConfigError: If *epochs* is empty.
    """
    epochs = list(epochs)
    if not epochs:
        raise EpochConfigError("<none>", "at least one epoch is required")
    return min(e.start for e in epochs), max(e.end for e in epochs)


def check_unique_labels(epochs: Sequence[Epoch]) -> None:
    """Raise ``EpochConfigError`` on the first repeated epoch label."""
    seen: set[str] = set()
    for epoch in epochs:
        if epoch.label in seen:
            raise EpochConfigError(epoch.label, "duplicate epoch label")
        seen.add(epoch.label)
