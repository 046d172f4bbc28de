"""Rolling query window used to scope upstream searches to recent news."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable


DEFAULT_WINDOW = timedelta(hours=24)


def format_compact(moment: datetime) -> str:
    """Render as YYYYMMDDHHMMSS."""
    return moment.strftime("%Y%m%d%H%M%S")


def format_iso(moment: datetime) -> str:
    """Render as ISO-8601 UTC with millisecond precision and a Z suffix."""
    utc = moment.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


@dataclass(frozen=True)
class DateRange:
    """
    A query window in two renderings.

    start/end: compact local time (GDELT startdatetime/enddatetime)
    iso_start/iso_end: ISO-8601 UTC (NewsAPI from/to)
    """
    start: str
    end: str
    iso_start: str
    iso_end: str

    @property
    def start_date(self) -> str:
        return self.iso_start.split("T")[0]

    @property
    def end_date(self) -> str:
        return self.iso_end.split("T")[0]


class DateRangeProvider:
    """Computes the rolling window ending at the current wall-clock time."""

    def __init__(
        self,
        window: timedelta = DEFAULT_WINDOW,
        clock: Callable[[], datetime] = lambda: datetime.now().astimezone(),
    ) -> None:
        self.window = window
        self._clock = clock

    def now(self) -> DateRange:
        end = self._clock()
        start = end - self.window
        return DateRange(
            start=format_compact(start),
            end=format_compact(end),
            iso_start=format_iso(start),
            iso_end=format_iso(end),
        )
