"""Time range parsing for wtstats.

Turns expressions like "today", "last week" or "2026-10-01 to 2026-10-07"
into a (start, end) pair of local datetimes, and converts such a pair into
the UTC bounds snapshots are stored with.

Example:
    >>> parser = TimeParser()
    >>> start, end = parser.parse("yesterday")
    >>> parser.utc_bounds(start, end)
    ('2026-10-18T04:00:00', '2026-10-19T03:59:59')
"""

import re
from datetime import datetime, timedelta
from typing import Callable, List, Tuple

from dateutil import parser as dateutil_parser
from dateutil import tz

Range = Tuple[datetime, datetime]

WEEKDAYS = ['monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday']
_WEEKDAY = '(' + '|'.join(WEEKDAYS) + ')'

STORED_FORMAT = '%Y-%m-%dT%H:%M:%S'


class TimeParser:
    """Parse time range expressions relative to a reference time.

    Supported:
    - "today", "yesterday", "this week", "last week", "this month", "last month"
    - "last N days", "past N hours" (days count from midnight)
    - "monday" (most recent), "last friday" (always a previous week)
    - "YYYY-MM-DD", "YYYY-MM-DD to YYYY-MM-DD"
    - anything dateutil understands, as that whole day

    Attributes:
        now: Reference datetime (local, naive)
        today_start: Midnight of the reference day
    """

    def __init__(self, reference_time: datetime = None):
        self.now = reference_time or datetime.now()
        self.today_start = self.now.replace(hour=0, minute=0, second=0, microsecond=0)
        self._patterns: List[Tuple[str, Callable[..., Range]]] = [
            (r'^today$', lambda: (self.today_start, self.now)),
            (r'^yesterday$', lambda: self._day(self.today_start - timedelta(days=1))),
            (r'^this week$', lambda: (self._monday(), self.now)),
            (r'^last week$', self._last_week),
            (r'^this month$', lambda: (self.today_start.replace(day=1), self.now)),
            (r'^last month$', self._last_month),
            (r'^(?:last|past) (\d+) days?$',
             lambda n: (self.today_start - timedelta(days=int(n)), self.now)),
            (r'^(?:last|past) (\d+) hours?$',
             lambda n: (self.now - timedelta(hours=int(n)), self.now)),
            (r'^' + _WEEKDAY + r'$', lambda day: self._weekday(day)),
            (r'^last ' + _WEEKDAY + r'$', lambda day: self._weekday(day, last=True)),
            (r'^(\d{4}-\d{2}-\d{2})$', lambda d: self._day(self._date(d))),
            (r'^(\d{4}-\d{2}-\d{2}) to (\d{4}-\d{2}-\d{2})$',
             lambda a, b: (self._date(a), self._day(self._date(b))[1])),
        ]

    def parse(self, text: str) -> Range:
        """Parse an expression into (start, end), both inclusive.

        Raises:
            ValueError: If the text can't be parsed
        """
        text = text.lower().strip()
        for pattern, handler in self._patterns:
            match = re.match(pattern, text)
            if match:
                return handler(*match.groups())

        try:
            parsed = dateutil_parser.parse(text, fuzzy=True, default=self.today_start)
        except (ValueError, OverflowError):
            raise ValueError(f"Could not parse time range: {text}")
        return self._day(parsed.replace(tzinfo=None))

    def _day(self, day: datetime) -> Range:
        start = day.replace(hour=0, minute=0, second=0, microsecond=0)
        return start, start.replace(hour=23, minute=59, second=59)

    def _date(self, text: str) -> datetime:
        return datetime.strptime(text, '%Y-%m-%d')

    def _monday(self) -> datetime:
        return self.today_start - timedelta(days=self.now.weekday())

    def _last_week(self) -> Range:
        last_monday = self._monday() - timedelta(days=7)
        return last_monday, last_monday + timedelta(days=6, hours=23, minutes=59, seconds=59)

    def _last_month(self) -> Range:
        last_of_prev = self.today_start.replace(day=1) - timedelta(days=1)
        return last_of_prev.replace(day=1), self._day(last_of_prev)[1]

    def _weekday(self, day_name: str, last: bool = False) -> Range:
        days_ago = (self.now.weekday() - WEEKDAYS.index(day_name)) % 7
        if last:
            days_ago += 7
        return self._day(self.today_start - timedelta(days=days_ago))

    @staticmethod
    def utc_bounds(start: datetime, end: datetime) -> Tuple[str, str]:
        """Convert local (start, end) into UTC strings comparable with the
        first 19 characters of stored snapshot timestamps."""
        def to_utc(value: datetime) -> str:
            if value.tzinfo is None:
                value = value.replace(tzinfo=tz.tzlocal())
            return value.astimezone(tz.UTC).strftime(STORED_FORMAT)
        return to_utc(start), to_utc(end)
