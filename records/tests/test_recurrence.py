"""
Unit tests for occurrence expansion.

These run without a database: the expansion functions only see anchors,
descriptors and windows.
"""
from datetime import date, datetime, time, timedelta, timezone as dt_timezone
from itertools import islice
from zoneinfo import ZoneInfo

import pytest

from records.recurrence import (
    DAILY,
    MONTHLY,
    WEEKLY,
    YEARLY,
    InvalidWindow,
    MalformedDescriptor,
    Occurrence,
    OccurrenceWindow,
    RecurrenceRule,
    UnboundedRecurrence,
    expand_cadence,
    expand_rule,
    iter_rule_occurrences,
    merge_occurrences,
    nth_occurrence,
    parse_cadence,
    parse_rrule,
)

LA = ZoneInfo('America/Los_Angeles')


def at(y, m, d, hh=0, mm=0):
    return datetime(y, m, d, hh, mm, tzinfo=LA)


# ---------------------------------------------------------------------------
# Rule-based expansion
# ---------------------------------------------------------------------------

def test_weekly_excludes_anchor_before_window():
    anchor = at(2025, 9, 15, 16, 30)
    window = OccurrenceWindow(date(2025, 9, 16), date(2025, 9, 30))
    got = expand_rule(anchor, RecurrenceRule(WEEKLY), window)
    assert got == [at(2025, 9, 22, 16, 30), at(2025, 9, 29, 16, 30)]


def test_window_bounds_are_inclusive():
    anchor = at(2025, 9, 15, 16, 30)
    window = OccurrenceWindow(anchor, anchor + timedelta(days=14))
    got = expand_rule(anchor, RecurrenceRule(WEEKLY), window)
    assert got == [anchor, at(2025, 9, 22, 16, 30), at(2025, 9, 29, 16, 30)]


def test_daily_interval():
    anchor = at(2025, 10, 1, 9)
    window = OccurrenceWindow(date(2025, 10, 2), date(2025, 10, 10))
    got = expand_rule(anchor, RecurrenceRule(DAILY, interval=3), window)
    assert got == [at(2025, 10, 4, 9), at(2025, 10, 7, 9), at(2025, 10, 10, 9)]


def test_until_caps_rule_inside_window():
    anchor = at(2025, 9, 15, 16, 30)
    rule = RecurrenceRule(WEEKLY, until=at(2025, 9, 29))
    got = expand_rule(anchor, rule, OccurrenceWindow(date(2025, 9, 1), date(2025, 10, 31)))
    assert got == [anchor, at(2025, 9, 22, 16, 30)]


def test_cap_argument_is_independent_of_until():
    anchor = at(2025, 9, 15, 16, 30)
    rule = RecurrenceRule(WEEKLY, until=at(2025, 12, 31))
    got = expand_rule(anchor, rule, OccurrenceWindow(date(2025, 9, 1), date(2025, 10, 31)),
                      cap=date(2025, 9, 22))
    assert got == [anchor, at(2025, 9, 22, 16, 30)]


def test_monthly_rule_clamps_and_recovers_day_of_month():
    anchor = at(2025, 1, 31, 10)
    got = expand_rule(anchor, RecurrenceRule(MONTHLY), OccurrenceWindow(date(2025, 2, 1), date(2025, 5, 31)))
    assert [d.date() for d in got] == [date(2025, 2, 28), date(2025, 3, 31), date(2025, 4, 30), date(2025, 5, 31)]


def test_yearly_leap_day_anchor():
    anchor = at(2024, 2, 29, 10)
    got = expand_rule(anchor, RecurrenceRule(YEARLY), OccurrenceWindow(date(2025, 1, 1), date(2028, 12, 31)))
    assert [d.date() for d in got] == [date(2025, 2, 28), date(2026, 2, 28), date(2027, 2, 28), date(2028, 2, 29)]


def test_weekly_keeps_wall_clock_time_across_dst():
    anchor = at(2025, 10, 27, 16, 30)
    got = expand_rule(anchor, RecurrenceRule(WEEKLY), OccurrenceWindow(date(2025, 10, 27), date(2025, 11, 10)))
    assert [(d.date(), d.time()) for d in got] == [
        (date(2025, 10, 27), time(16, 30)),
        (date(2025, 11, 3), time(16, 30)),
        (date(2025, 11, 10), time(16, 30)),
    ]
    assert got[0].utcoffset() != got[1].utcoffset()


def test_non_recurring_yields_anchor_only_when_inside():
    anchor = at(2025, 9, 15, 16, 30)
    assert expand_rule(anchor, None, OccurrenceWindow(date(2025, 9, 15), date(2025, 9, 15))) == [anchor]
    assert expand_rule(anchor, None, OccurrenceWindow(date(2025, 9, 16), date(2025, 9, 30))) == []
    # open window is fine without a rule
    assert expand_rule(anchor, None, OccurrenceWindow(date(2025, 9, 1))) == [anchor]


def test_empty_when_window_before_anchor_or_after_until():
    anchor = at(2025, 9, 15, 16, 30)
    assert expand_rule(anchor, RecurrenceRule(WEEKLY), OccurrenceWindow(date(2025, 8, 1), date(2025, 9, 14))) == []
    rule = RecurrenceRule(WEEKLY, until=at(2025, 9, 30))
    assert expand_rule(anchor, rule, OccurrenceWindow(date(2025, 10, 1), date(2025, 10, 31))) == []


def test_unbounded_rule_is_rejected():
    anchor = at(2025, 9, 15, 16, 30)
    with pytest.raises(UnboundedRecurrence):
        expand_rule(anchor, RecurrenceRule(DAILY), OccurrenceWindow(anchor))


def test_open_window_with_until_is_bounded():
    anchor = at(2025, 9, 15, 16, 30)
    rule = RecurrenceRule(DAILY, until=at(2025, 9, 17, 23))
    assert len(expand_rule(anchor, rule, OccurrenceWindow(anchor))) == 3


def test_iter_rule_occurrences_is_lazy():
    anchor = at(2025, 1, 1, 8)
    gen = iter_rule_occurrences(anchor, RecurrenceRule(DAILY), OccurrenceWindow(date(2025, 1, 1), date(2125, 1, 1)))
    assert list(islice(gen, 3)) == [anchor, at(2025, 1, 2, 8), at(2025, 1, 3, 8)]


@pytest.mark.parametrize('freq,interval', [(DAILY, 1), (DAILY, 5), (WEEKLY, 2), (MONTHLY, 1), (MONTHLY, 3),
                                           (YEARLY, 1)])
def test_results_are_sorted_unique_and_bounded(freq, interval):
    anchor = at(2024, 1, 31, 12)
    rule = RecurrenceRule(freq, interval=interval, until=at(2026, 6, 30))
    window = OccurrenceWindow(at(2024, 3, 15), at(2027, 1, 1))
    got = expand_rule(anchor, rule, window)
    assert got == sorted(set(got))
    for occurrence in got:
        assert window.start <= occurrence <= window.end
        assert anchor <= occurrence <= rule.until
    assert expand_rule(anchor, rule, window) == got


# ---------------------------------------------------------------------------
# Cadence-based expansion
# ---------------------------------------------------------------------------

def test_daily_cadence_with_cap():
    got = expand_cadence(date(2025, 10, 1), 'daily', OccurrenceWindow(date(2025, 10, 1), date(2025, 10, 10)),
                         cap=date(2025, 10, 3))
    assert got == [date(2025, 10, 1), date(2025, 10, 2), date(2025, 10, 3)]


def test_monthly_cadence_day_31_lands_on_last_day_of_february():
    window = OccurrenceWindow(date(2025, 2, 1), date(2025, 2, 28))
    assert expand_cadence(date(2025, 1, 31), 'monthly', window) == [date(2025, 2, 28)]
    leap = OccurrenceWindow(date(2024, 2, 1), date(2024, 2, 29))
    assert expand_cadence(date(2024, 1, 31), 'monthly', leap) == [date(2024, 2, 29)]


def test_monthly_cadence_does_not_drift_after_short_month():
    window = OccurrenceWindow(date(2025, 4, 1), date(2025, 5, 31))
    assert expand_cadence(date(2025, 1, 31), 'monthly', window) == [date(2025, 4, 30), date(2025, 5, 31)]


def test_weekly_cadence_first_date_on_or_after_window_start():
    window = OccurrenceWindow(date(2025, 10, 9), date(2025, 10, 31))
    got = expand_cadence(date(2025, 10, 1), 'weekly', window)
    assert got == [date(2025, 10, 15), date(2025, 10, 22), date(2025, 10, 29)]


def test_cadence_window_with_datetimes_uses_whole_days():
    window = OccurrenceWindow(at(2025, 10, 2, 18), at(2025, 10, 4, 1))
    assert expand_cadence(date(2025, 10, 1), 'daily', window) == [date(2025, 10, 2), date(2025, 10, 3),
                                                                  date(2025, 10, 4)]


def test_cadence_empty_results():
    # window entirely after the cap
    window = OccurrenceWindow(date(2025, 10, 5), date(2025, 10, 10))
    assert expand_cadence(date(2025, 10, 1), 'daily', window, cap=date(2025, 10, 3)) == []
    # window entirely before the start
    window = OccurrenceWindow(date(2025, 9, 1), date(2025, 9, 30))
    assert expand_cadence(date(2025, 10, 1), 'monthly', window) == []


def test_cadence_none_is_a_single_refill():
    window = OccurrenceWindow(date(2025, 10, 1), date(2025, 10, 31))
    assert expand_cadence(date(2025, 10, 5), None, window) == [date(2025, 10, 5)]


def test_unbounded_cadence_is_rejected():
    with pytest.raises(UnboundedRecurrence):
        expand_cadence(date(2025, 10, 1), 'weekly', OccurrenceWindow(date(2025, 10, 1)))
    got = expand_cadence(date(2025, 10, 1), 'weekly', OccurrenceWindow(date(2025, 10, 1)), cap=date(2025, 10, 15))
    assert got == [date(2025, 10, 1), date(2025, 10, 8), date(2025, 10, 15)]


# ---------------------------------------------------------------------------
# Windows, descriptors and helpers
# ---------------------------------------------------------------------------

def test_window_start_after_end_is_invalid():
    with pytest.raises(InvalidWindow):
        OccurrenceWindow(date(2025, 10, 2), date(2025, 10, 1))
    OccurrenceWindow(date(2025, 10, 1), date(2025, 10, 1))


def test_window_mixes_dates_and_instants():
    window = OccurrenceWindow(date(2025, 10, 1), at(2025, 10, 2, 12))
    with pytest.raises(InvalidWindow):
        OccurrenceWindow(at(2025, 10, 2, 12), date(2025, 10, 1))
    anchor = at(2025, 9, 30, 9)
    assert expand_rule(anchor, RecurrenceRule(DAILY), window) == [at(2025, 10, 1, 9), at(2025, 10, 2, 9)]
    assert expand_cadence(date(2025, 9, 30), 'daily', window) == [date(2025, 10, 1), date(2025, 10, 2)]


def test_parse_rrule_full():
    rule = parse_rrule('RRULE:FREQ=WEEKLY;INTERVAL=2;UNTIL=20251231T235959Z')
    assert rule.frequency == WEEKLY
    assert rule.interval == 2
    assert rule.until == datetime(2025, 12, 31, 23, 59, 59, tzinfo=dt_timezone.utc)
    assert rule.to_rrule() == 'FREQ=WEEKLY;INTERVAL=2;UNTIL=20251231T235959Z'


def test_parse_rrule_skips_dtstart():
    assert parse_rrule('DTSTART:20250915T233000Z\nRRULE:FREQ=DAILY') == RecurrenceRule(DAILY)
    assert parse_rrule('FREQ=MONTHLY;INTERVAL=1;DTSTART=20250920T013000Z') == RecurrenceRule(MONTHLY)


def test_parse_rrule_date_only_until_is_end_of_day():
    rule = parse_rrule('FREQ=daily;UNTIL=20251003', tzinfo=LA)
    assert rule.until == datetime.combine(date(2025, 10, 3), time.max, tzinfo=LA)


@pytest.mark.parametrize('text', ['FREQ=HOURLY', 'FREQ=DAILY;INTERVAL=0', 'FREQ=DAILY;INTERVAL=x',
                                  'INTERVAL=2', 'garbage', 'FREQ=DAILY;UNTIL=notadate'])
def test_parse_rrule_malformed(text):
    with pytest.raises(MalformedDescriptor):
        parse_rrule(text)


def test_parse_rrule_blank_is_none():
    assert parse_rrule('') is None
    assert parse_rrule(None) is None


def test_parse_rrule_count_ends_series_at_last_occurrence():
    anchor = at(2025, 10, 1, 9)
    rule = parse_rrule('FREQ=DAILY;COUNT=3', tzinfo=LA, anchor=anchor)
    assert rule == RecurrenceRule(DAILY, until=at(2025, 10, 3, 9))
    window = OccurrenceWindow(at(2025, 9, 1), at(2025, 11, 1))
    assert expand_rule(anchor, rule, window) == [at(2025, 10, 1, 9), at(2025, 10, 2, 9), at(2025, 10, 3, 9)]


def test_parse_rrule_count_follows_interval_and_month_clamping():
    anchor = at(2025, 1, 31, 10)
    rule = parse_rrule('RRULE:FREQ=MONTHLY;INTERVAL=1;COUNT=2', anchor=anchor)
    assert rule.until == at(2025, 2, 28, 10)
    rule = parse_rrule('FREQ=WEEKLY;INTERVAL=2;COUNT=1', anchor=anchor)
    assert rule.until == anchor


def test_parse_rrule_count_needs_anchor():
    with pytest.raises(MalformedDescriptor):
        parse_rrule('FREQ=DAILY;COUNT=3')


@pytest.mark.parametrize('text', ['FREQ=DAILY;COUNT=0', 'FREQ=DAILY;COUNT=x',
                                  'FREQ=DAILY;COUNT=2;UNTIL=20251231T235959Z'])
def test_parse_rrule_bad_count(text):
    with pytest.raises(MalformedDescriptor):
        parse_rrule(text, anchor=at(2025, 10, 1))


@pytest.mark.parametrize('text', ['FREQ=WEEKLY;BYDAY=MO,WE,FR', 'FREQ=MONTHLY;BYMONTHDAY=15',
                                  'FREQ=YEARLY;BYMONTH=3', 'FREQ=MONTHLY;BYDAY=1MO;BYSETPOS=1'])
def test_parse_rrule_rejects_by_parts(text):
    with pytest.raises(MalformedDescriptor, match='not supported'):
        parse_rrule(text, anchor=at(2025, 10, 1))


def test_parse_rrule_until_matches_anchor_awareness():
    anchor = at(2025, 10, 1, 9)
    rule = parse_rrule('FREQ=WEEKLY;UNTIL=20251031T235959Z', anchor=anchor)
    assert rule.until == datetime(2025, 10, 31, 23, 59, 59, tzinfo=dt_timezone.utc)
    rule = parse_rrule('FREQ=WEEKLY;UNTIL=20251031T120000', tzinfo=LA, anchor=anchor)
    assert rule.until == at(2025, 10, 31, 12)


def test_to_rrule_naive_until_is_floating():
    rule = RecurrenceRule(DAILY, until=datetime(2025, 10, 3, 17, 0))
    assert rule.to_rrule() == 'FREQ=DAILY;INTERVAL=1;UNTIL=20251003T170000'
    assert parse_rrule(rule.to_rrule()).until == datetime(2025, 10, 3, 17, 0)
    rule = RecurrenceRule(DAILY, until=date(2025, 10, 3))
    assert rule.to_rrule() == 'FREQ=DAILY;INTERVAL=1;UNTIL=20251003T235959'
    rule = RecurrenceRule(DAILY, until=at(2025, 10, 3, 17))
    assert rule.to_rrule() == 'FREQ=DAILY;INTERVAL=1;UNTIL=20251004T000000Z'


def test_parse_cadence():
    assert parse_cadence('Monthly') == 'monthly'
    assert parse_cadence(' wk ') == 'weekly'
    assert parse_cadence('') is None
    with pytest.raises(MalformedDescriptor):
        parse_cadence('fortnightly')
    with pytest.raises(MalformedDescriptor):
        expand_cadence(date(2025, 10, 1), 'fortnightly', OccurrenceWindow(date(2025, 10, 1), date(2025, 10, 2)))


def test_rule_validation():
    assert RecurrenceRule('weekly').frequency == WEEKLY
    with pytest.raises(MalformedDescriptor):
        RecurrenceRule(WEEKLY, interval=0)


def test_nth_occurrence_is_anchor_relative():
    anchor = date(2025, 1, 31)
    assert nth_occurrence(anchor, MONTHLY, 1, 1) == date(2025, 2, 28)
    assert nth_occurrence(anchor, MONTHLY, 1, 2) == date(2025, 3, 31)


def test_merge_occurrences_orders_across_events():
    a = [Occurrence(date(2025, 10, 1), 1), Occurrence(date(2025, 10, 8), 1)]
    b = [Occurrence(date(2025, 10, 3), 2), Occurrence(date(2025, 10, 10), 2)]
    merged = merge_occurrences([a, b])
    assert [(o.at.day, o.source_id) for o in merged] == [(1, 1), (3, 2), (8, 1), (10, 2)]
