"""
Occurrence lists for the patient portal.

Appointments and prescriptions are expanded through
:mod:`records.recurrence` and each concrete occurrence is paired with the
fields the portal displays for it.  Windows are built from the local
calendar of ``settings.TIME_ZONE``: a range of ``n`` days runs from the
start of today to the end of the day ``n`` days from now.
"""
from __future__ import annotations

import math
from datetime import datetime, time, timedelta
from typing import Iterable, Optional

from django.conf import settings
from django.utils import timezone

from records.models import Appointment, Patient, Prescription
from records.recurrence import Occurrence, OccurrenceWindow, expand_cadence, expand_rule, merge_occurrences


APPOINTMENT_RANGES = (7, 14, 21, 30)
APPOINTMENT_DEFAULT_RANGE = 30
# an appointments list opened without a range shows the coming week
APPOINTMENT_MISSING_RANGE = 7
MEDICATION_RANGES = (7, 14, 21, 30, 90)
MEDICATION_DEFAULT_RANGE = 7
RANGE_ALL = 'all'


def parse_range(value, allowed: Iterable[int], default: int, missing: Optional[int] = None) -> int:
    """Number of days for a ``range`` query value.

    Unknown values give ``default``; an absent value gives ``missing`` when
    set, else ``default``.
    """
    if value is None:
        return default if missing is None else missing
    text = str(value).strip().lower()
    if text == RANGE_ALL:
        days = settings.PORTAL_ALL_RANGE_DAYS
    else:
        try:
            days = int(text)
        except ValueError:
            return default
        if days not in allowed:
            return default
    return min(days, settings.PORTAL_MAX_WINDOW_DAYS)


def start_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.min, tzinfo=moment.tzinfo)


def end_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.max, tzinfo=moment.tzinfo)


def day_range_window(days: int, now: Optional[datetime] = None) -> OccurrenceWindow:
    now = timezone.localtime(now)
    return OccurrenceWindow(start_of_day(now), end_of_day(now + timedelta(days=days)))


# ---------------------------------------------------------------------------
# Expansion
# ---------------------------------------------------------------------------

def appointment_occurrences(appointment: Appointment, window: OccurrenceWindow) -> list[Occurrence]:
    # expand in local wall-clock time so a 16:30 series stays at 16:30 across DST
    anchor = timezone.localtime(appointment.start_at)
    rule = appointment.recurrence
    display = {
        'appointmentId': appointment.id,
        'providerName': appointment.provider_name,
        'durationMin': appointment.duration_min,
        'repeat': rule.frequency if rule else None,
    }
    return [Occurrence(at=at, source_id=appointment.id, display=display)
            for at in expand_rule(anchor, rule, window)]


def refill_occurrences(prescription: Prescription, window: OccurrenceWindow) -> list[Occurrence]:
    cadence = prescription.cadence
    display = {
        'prescriptionId': prescription.id,
        'medication': prescription.medication.name,
        'dosage': prescription.dosage_text,
        'quantity': prescription.quantity,
        'schedule': cadence,
    }
    dates = expand_cadence(prescription.start_date, cadence, window,
                           cap=prescription.refill_until)
    return [Occurrence(at=d, source_id=prescription.id, display=display) for d in dates]


def patient_appointment_occurrences(patient: Patient, window: OccurrenceWindow) -> list[Occurrence]:
    appointments = patient.appointments.order_by('start_at', 'id')
    return merge_occurrences(appointment_occurrences(a, window) for a in appointments)


def patient_refill_occurrences(patient: Patient, window: OccurrenceWindow) -> list[Occurrence]:
    prescriptions = patient.prescriptions.select_related('medication').order_by('start_date', 'id')
    return merge_occurrences(refill_occurrences(p, window) for p in prescriptions)


def serialize_occurrence(occurrence: Optional[Occurrence], display: Optional[dict] = None) -> dict:
    if occurrence is None:
        return {'at': None, **(display or {})}
    return {'at': occurrence.at.isoformat(), **occurrence.display}


# ---------------------------------------------------------------------------
# Filtering and paging
# ---------------------------------------------------------------------------

def matches_query(text: Optional[str], q: Optional[str]) -> bool:
    needle = (q or '').strip().lower()
    if not needle:
        return True
    return needle in (text or '').lower()


def paginate(items: list, page: int, page_size: Optional[int] = None) -> tuple[list, dict]:
    """Slice ``items`` for ``page`` (clamped into range) and describe the paging."""
    size = page_size or settings.PORTAL_PAGE_SIZE
    total = len(items)
    pages = max(1, math.ceil(total / size))
    page = min(max(1, page or 1), pages)
    start = (page - 1) * size
    return items[start:start + size], {
        'page': page,
        'pages': pages,
        'pageSize': size,
        'total': total,
    }


def provider_options(patient: Patient) -> list[str]:
    names = patient.appointments.exclude(provider_name='').values_list('provider_name', flat=True)
    return sorted(set(names))


def medication_options(patient: Patient) -> list[str]:
    names = patient.prescriptions.values_list('medication__name', flat=True)
    return sorted(set(names))


# ---------------------------------------------------------------------------
# Portal pages
# ---------------------------------------------------------------------------

def portal_summary(patient: Patient, now: Optional[datetime] = None) -> dict:
    """What the landing page shows: the coming week of appointments and refills."""
    now = timezone.localtime(now)
    horizon = now + timedelta(days=settings.PORTAL_SUMMARY_DAYS)
    appointments = patient_appointment_occurrences(patient, OccurrenceWindow(now, horizon))
    refills = patient_refill_occurrences(patient, OccurrenceWindow(start_of_day(now), end_of_day(horizon)))
    return {
        'appointments': [serialize_occurrence(o) for o in appointments],
        'refills': [serialize_occurrence(o) for o in refills[:settings.PORTAL_SUMMARY_REFILLS]],
    }


def appointment_page(patient: Patient, *, q='', range_value=None, page=1, now=None) -> dict:
    days = parse_range(range_value, APPOINTMENT_RANGES, APPOINTMENT_DEFAULT_RANGE,
                       missing=APPOINTMENT_MISSING_RANGE)
    window = day_range_window(days, now)
    rows = [o for o in patient_appointment_occurrences(patient, window)
            if matches_query(o.display['providerName'], q)]
    items, paging = paginate(rows, page)
    return {
        'range': days,
        'from': window.start.isoformat(),
        'to': window.end.isoformat(),
        'items': [serialize_occurrence(o) for o in items],
        **paging,
        'providerOptions': provider_options(patient),
    }


def medication_page(patient: Patient, *, q='', range_value=None, upcoming=True, page=1, now=None) -> dict:
    days = parse_range(range_value, MEDICATION_RANGES, MEDICATION_DEFAULT_RANGE)
    window = day_range_window(days, now)
    prescriptions = list(patient.prescriptions.select_related('medication').order_by('start_date', 'id'))
    groups, idle = [], []
    for rx in prescriptions:
        if not matches_query(rx.medication.name, q):
            continue
        found = refill_occurrences(rx, window)
        if found:
            groups.append(found)
        else:
            idle.append(rx)
    rows = [serialize_occurrence(o) for o in merge_occurrences(groups)]
    if not upcoming:
        # prescriptions with nothing due in the window go after the dated rows
        for rx in idle:
            rows.append(serialize_occurrence(None, {
                'prescriptionId': rx.id,
                'medication': rx.medication.name,
                'dosage': rx.dosage_text,
                'quantity': rx.quantity,
                'schedule': rx.cadence,
            }))
    items, paging = paginate(rows, page)
    return {
        'range': days,
        'from': window.start.date().isoformat(),
        'to': window.end.date().isoformat(),
        'items': items,
        **paging,
        'medicationOptions': medication_options(patient),
    }
