"""
Recurring event expansion for appointments and prescription refills.

Both entity kinds are expanded by the same machinery: an anchor, a
period-stepping strategy (daily, weekly, monthly or yearly with
month-length clamping), an optional cap and a closed query window.
Appointments expand at instant granularity from a :class:`RecurrenceRule`;
prescriptions expand at day granularity from a named cadence.

Every occurrence is computed from the anchor (``anchor + n * period``)
rather than from the previous occurrence, so a day-31 anchor lands on the
30th in April and is back on the 31st in May.

Nothing in this module touches the database or holds state.  Callers must
bound the expansion: either the window has an end or the recurrence has a
cap/until, otherwise :class:`UnboundedRecurrence` is raised.
"""
from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone as dt_timezone
from typing import Any, Iterable, Iterator, Optional, Union

from dateutil import rrule as dateutil_rrule
from dateutil.relativedelta import relativedelta
from dateutil.rrule import rrulestr

logger = logging.getLogger(__name__)

DAILY = 'DAILY'
WEEKLY = 'WEEKLY'
MONTHLY = 'MONTHLY'
YEARLY = 'YEARLY'
FREQUENCIES = (DAILY, WEEKLY, MONTHLY, YEARLY)
_RRULE_FREQUENCIES = {
    dateutil_rrule.DAILY: DAILY,
    dateutil_rrule.WEEKLY: WEEKLY,
    dateutil_rrule.MONTHLY: MONTHLY,
    dateutil_rrule.YEARLY: YEARLY,
}
_RULE_PARTS = {'FREQ', 'INTERVAL', 'UNTIL', 'COUNT', 'WKST'}

CADENCE_DAILY = 'daily'
CADENCE_WEEKLY = 'weekly'
CADENCE_MONTHLY = 'monthly'
CADENCES = {
    CADENCE_DAILY: DAILY,
    CADENCE_WEEKLY: WEEKLY,
    CADENCE_MONTHLY: MONTHLY,
}
_CADENCE_ALIASES = {
    'day': CADENCE_DAILY,
    'week': CADENCE_WEEKLY,
    'wk': CADENCE_WEEKLY,
    'month': CADENCE_MONTHLY,
    'mo': CADENCE_MONTHLY,
}

Moment = Union[date, datetime]


class RecurrenceError(ValueError):
    """Base class for recurrence expansion errors."""


class InvalidWindow(RecurrenceError):
    """The window starts after it ends."""


class UnboundedRecurrence(RecurrenceError):
    """Expansion was requested with no window end and no cap."""


class MalformedDescriptor(RecurrenceError):
    """A recurrence rule or cadence could not be understood."""


@dataclass(frozen=True)
class RecurrenceRule:
    """Calendar recurrence for an appointment.

    The anchor is deliberately not part of the rule: it always comes from
    the appointment's own start so that editing the start moves the whole
    series.
    """
    frequency: str
    interval: int = 1
    until: Optional[datetime] = None

    def __post_init__(self) -> None:
        freq = (self.frequency or '').strip().upper()
        if freq not in FREQUENCIES:
            raise MalformedDescriptor(f'unknown frequency {self.frequency!r}')
        if isinstance(self.interval, bool) or not isinstance(self.interval, int) or self.interval < 1:
            raise MalformedDescriptor(f'interval must be a positive integer, got {self.interval!r}')
        if self.until is not None and not isinstance(self.until, date):
            raise MalformedDescriptor(f'invalid until {self.until!r}')
        object.__setattr__(self, 'frequency', freq)

    def to_rrule(self) -> str:
        text = f'FREQ={self.frequency};INTERVAL={self.interval}'
        if self.until is not None:
            until = self.until
            if not isinstance(until, datetime):
                until = datetime.combine(until, time(23, 59, 59))
            if until.tzinfo is None:
                # floating local time
                text += f';UNTIL={until:%Y%m%dT%H%M%S}'
            else:
                text += f';UNTIL={until.astimezone(dt_timezone.utc):%Y%m%dT%H%M%S}Z'
        return text


def parse_rrule(text: Optional[str], tzinfo=None, anchor: Optional[datetime] = None) -> Optional[RecurrenceRule]:
    """Parse RRULE text such as ``FREQ=WEEKLY;INTERVAL=2;UNTIL=20251231T235959Z``.

    The text goes through :func:`dateutil.rrule.rrulestr`.  An optional
    ``RRULE:`` prefix is accepted and ``DTSTART`` is ignored, since the
    series always starts at the appointment.  Returns ``None`` for empty
    input.

    A date-only ``UNTIL`` is read as the end of that day; a naive ``UNTIL``
    takes ``tzinfo``.  ``COUNT`` is turned into the instant of the last
    occurrence counted from ``anchor``, so it needs one.  BYDAY and the
    other BYxxx parts cannot be expanded from the anchor alone and are
    rejected.
    """
    if text is None or not str(text).strip():
        return None
    rule_line = None
    for line in str(text).strip().splitlines():
        line = line.strip()
        if line.upper().startswith('DTSTART'):
            continue
        if line.upper().startswith('RRULE:'):
            line = line[len('RRULE:'):]
        if line:
            rule_line = line
    if not rule_line:
        raise MalformedDescriptor(f'no rule in {text!r}')

    parts: dict[str, str] = {}
    for chunk in rule_line.split(';'):
        name, _, value = chunk.strip().partition('=')
        name = name.strip().upper()
        if not name or name == 'DTSTART':
            continue
        if name not in _RULE_PARTS:
            raise MalformedDescriptor(f'{name} is not supported in {text!r}')
        parts[name] = value.strip()
    if 'FREQ' not in parts:
        raise MalformedDescriptor(f'missing FREQ in {text!r}')
    if 'COUNT' in parts and 'UNTIL' in parts:
        raise MalformedDescriptor(f'COUNT and UNTIL are mutually exclusive in {text!r}')

    # rrule insists DTSTART and UNTIL agree on awareness
    utc_until = parts.get('UNTIL', '').upper().endswith('Z')
    dtstart = anchor if isinstance(anchor, datetime) else datetime(2000, 1, 1)
    if utc_until:
        dtstart = dtstart.astimezone(dt_timezone.utc) if dtstart.tzinfo else dtstart.replace(tzinfo=dt_timezone.utc)
    else:
        dtstart = dtstart.replace(tzinfo=None)
    try:
        parsed = rrulestr(';'.join(f'{k}={v}' for k, v in parts.items()), dtstart=dtstart)
    except (ValueError, TypeError, OverflowError) as exc:
        raise MalformedDescriptor(f'bad rule {text!r}: {exc}') from exc

    frequency = _RRULE_FREQUENCIES.get(parsed._freq)
    if frequency is None:
        raise MalformedDescriptor(f'unsupported frequency in {text!r}')
    interval = parsed._interval

    until = parsed._until
    if until is not None:
        if len(parts['UNTIL']) == 8:
            until = datetime.combine(until.date(), time.max)
        if until.tzinfo is None and tzinfo is not None:
            until = until.replace(tzinfo=tzinfo)

    count = parsed._count
    if count is not None:
        if count < 1:
            raise MalformedDescriptor(f'COUNT must be positive in {text!r}')
        if anchor is None:
            raise MalformedDescriptor(f'COUNT needs the series start in {text!r}')
        # validates frequency and interval before stepping
        RecurrenceRule(frequency=frequency, interval=interval)
        until = nth_occurrence(anchor, frequency, interval, count - 1)
        logger.debug('COUNT=%s ends the series at %s', count, until)
    return RecurrenceRule(frequency=frequency, interval=interval, until=until)


def parse_cadence(value: Optional[str]) -> Optional[str]:
    """Normalise a refill cadence name; ``None``/blank means non-recurring."""
    if value is None:
        return None
    name = str(value).strip().lower()
    if not name:
        return None
    name = _CADENCE_ALIASES.get(name, name)
    if name not in CADENCES:
        raise MalformedDescriptor(f'unknown cadence {value!r}')
    return name


@dataclass(frozen=True)
class OccurrenceWindow:
    """Closed ``[start, end]`` range; ``end=None`` leaves the window open."""
    start: Moment
    end: Optional[Moment] = None

    def __post_init__(self) -> None:
        if self.end is None:
            return
        # a date bound takes the zone of the other bound, if it has one
        tz = getattr(self.start, 'tzinfo', None) or getattr(self.end, 'tzinfo', None)
        try:
            start, end = self.instant_bounds(tz)
            inverted = start > end
        except TypeError as exc:
            raise InvalidWindow(f'window bounds {self.start} and {self.end} do not compare') from exc
        if inverted:
            raise InvalidWindow(f'window start {self.start} is after end {self.end}')

    def day_bounds(self) -> tuple[date, Optional[date]]:
        return _as_date(self.start), (_as_date(self.end) if self.end is not None else None)

    def instant_bounds(self, tzinfo=None) -> tuple[datetime, Optional[datetime]]:
        start = _as_instant(self.start, tzinfo)
        end = _as_instant(self.end, tzinfo, end_of_day=True) if self.end is not None else None
        return start, end


@dataclass(frozen=True)
class Occurrence:
    """One concrete occurrence paired with what the caller displays for it."""
    at: Moment
    source_id: Any = None
    display: dict = field(default_factory=dict, compare=False)


# ---------------------------------------------------------------------------
# Period stepping
# ---------------------------------------------------------------------------

def nth_occurrence(anchor: Moment, frequency: str, interval: int, n: int) -> Moment:
    """Return ``anchor`` advanced by ``n`` periods, clamping day-of-month."""
    k = n * interval
    if frequency == DAILY:
        return anchor + timedelta(days=k)
    if frequency == WEEKLY:
        return anchor + timedelta(weeks=k)
    if frequency == MONTHLY:
        return anchor + relativedelta(months=k)
    if frequency == YEARLY:
        return anchor + relativedelta(years=k)
    raise MalformedDescriptor(f'unknown frequency {frequency!r}')


def _first_index(anchor: Moment, frequency: str, interval: int, lower: Moment) -> int:
    if lower <= anchor:
        return 0
    if frequency in (DAILY, WEEKLY):
        period = timedelta(days=interval * (7 if frequency == WEEKLY else 1))
        q, r = divmod(lower - anchor, period)
        n = q + (1 if r else 0)
    else:
        months = (lower.year - anchor.year) * 12 + (lower.month - anchor.month)
        step = interval * (12 if frequency == YEARLY else 1)
        n = max(0, months // step - 1)
    # wall-clock stepping can differ from elapsed time around DST changes
    while n > 0 and nth_occurrence(anchor, frequency, interval, n - 1) >= lower:
        n -= 1
    while nth_occurrence(anchor, frequency, interval, n) < lower:
        n += 1
    return n


def iter_occurrences(anchor: Moment, frequency: str, interval: int,
                     lower: Moment, upper: Moment) -> Iterator[Moment]:
    """Yield every ``anchor + n * period`` inside ``[lower, upper]``, ascending."""
    if anchor > upper or lower > upper:
        return
    n = _first_index(anchor, frequency, interval, lower)
    while True:
        occurrence = nth_occurrence(anchor, frequency, interval, n)
        if occurrence > upper:
            return
        yield occurrence
        n += 1


# ---------------------------------------------------------------------------
# Rule-based expansion (appointments)
# ---------------------------------------------------------------------------

def _rule_bounds(anchor: datetime, rule: Optional[RecurrenceRule], window: OccurrenceWindow,
                 cap: Optional[Moment]) -> tuple[datetime, Optional[datetime]]:
    tz = getattr(anchor, 'tzinfo', None)
    lower, upper = window.instant_bounds(tz)
    limits = [upper]
    if rule is not None and rule.until is not None:
        limits.append(_as_instant(rule.until, tz, end_of_day=True))
    if cap is not None:
        limits.append(_as_instant(cap, tz, end_of_day=True))
    limits = [x for x in limits if x is not None]
    return lower, (min(limits) if limits else None)


def iter_rule_occurrences(anchor: datetime, rule: Optional[RecurrenceRule], window: OccurrenceWindow,
                          cap: Optional[Moment] = None) -> Iterator[datetime]:
    """Lazily yield appointment occurrences inside ``window``.

    Unlike :func:`expand_rule` this does not materialise the list; the
    sequence is ascending and duplicate free by construction.
    """
    lower, upper = _rule_bounds(anchor, rule, window, cap)
    if rule is None:
        if anchor >= lower and (upper is None or anchor <= upper):
            yield anchor
        return
    if upper is None:
        raise UnboundedRecurrence('rule has no until and the window has no end')
    yield from iter_occurrences(anchor, rule.frequency, rule.interval, max(lower, anchor), upper)


def expand_rule(anchor: datetime, rule: Optional[RecurrenceRule], window: OccurrenceWindow,
                cap: Optional[Moment] = None) -> list[datetime]:
    """Expand an appointment into the sorted, unique instants inside ``window``.

    The anchor is always a candidate, so a series whose first occurrence
    sits exactly on a window boundary never loses it.  Occurrences after
    ``rule.until`` or ``cap`` are dropped even inside the window.
    """
    lower, upper = _rule_bounds(anchor, rule, window, cap)
    candidates = [anchor]
    if rule is not None:
        if upper is None:
            raise UnboundedRecurrence('rule has no until and the window has no end')
        candidates.extend(iter_occurrences(anchor, rule.frequency, rule.interval,
                                           max(lower, anchor), upper))
    inside = (c for c in candidates if c >= lower and (upper is None or c <= upper))
    return unique_sorted(inside)


# ---------------------------------------------------------------------------
# Cadence-based expansion (refills)
# ---------------------------------------------------------------------------

def iter_cadence_occurrences(start_date: Moment, cadence: Optional[str], window: OccurrenceWindow,
                             cap: Optional[Moment] = None) -> Iterator[date]:
    """Lazily yield refill dates inside ``window`` at day granularity."""
    name = parse_cadence(cadence)
    anchor = _as_date(start_date)
    lower, upper = window.day_bounds()
    if cap is not None:
        cap_day = _as_date(cap)
        upper = cap_day if upper is None else min(upper, cap_day)
    if name is None:
        if anchor >= lower and (upper is None or anchor <= upper):
            yield anchor
        return
    if upper is None:
        raise UnboundedRecurrence('refill has no cap and the window has no end')
    if anchor > upper or lower > upper:
        return
    yield from iter_occurrences(anchor, CADENCES[name], 1, max(lower, anchor), upper)


def expand_cadence(start_date: Moment, cadence: Optional[str], window: OccurrenceWindow,
                   cap: Optional[Moment] = None) -> list[date]:
    """Expand a prescription's refill schedule into the sorted dates inside ``window``."""
    return unique_sorted(iter_cadence_occurrences(start_date, cadence, window, cap))


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def unique_sorted(values: Iterable[Moment]) -> list:
    return sorted(set(values), key=_key)


def merge_occurrences(groups: Iterable[Iterable[Occurrence]]) -> list[Occurrence]:
    """Merge per-event occurrence lists (each already ascending) into one."""
    return list(heapq.merge(*groups, key=lambda o: _key(o.at)))


def _as_date(value: Moment) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raise MalformedDescriptor(f'invalid date {value!r}')


def _as_instant(value: Moment, tzinfo=None, end_of_day: bool = False) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None and tzinfo is not None:
            return value.replace(tzinfo=tzinfo)
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.max if end_of_day else time.min, tzinfo=tzinfo)
    raise MalformedDescriptor(f'invalid instant {value!r}')


def _key(value: Moment):
    # dates and datetimes do not compare with each other
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)
