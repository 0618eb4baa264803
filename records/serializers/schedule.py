"""
Write and query serializers for prescriptions, appointments and the
portal's occurrence lists.

Recurrence input is parsed here, once, into the tagged structures from
:mod:`records.recurrence`; malformed rules become validation errors on
write instead of surfacing later when pages are rendered.
"""
from __future__ import annotations

from datetime import datetime, time

import bleach
from django.utils import timezone
from rest_framework import serializers

from records.recurrence import FREQUENCIES, MalformedDescriptor, RecurrenceRule, parse_cadence, parse_rrule

REPEAT_NONE = 'NONE'


def end_of_day(d):
    """Aware end-of-day instant (23:59:59) for a date in the current time zone."""
    return timezone.make_aware(datetime.combine(d, time(23, 59, 59)))


class PrescriptionWriteSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1, required=False)
    medicationId = serializers.IntegerField(min_value=1, required=False)
    dosageText = serializers.CharField(max_length=32, required=False, allow_blank=True, default='')
    quantity = serializers.IntegerField(min_value=1, required=False, default=30)
    startDate = serializers.DateField(required=False, allow_null=True)
    schedule = serializers.CharField(max_length=16, required=False, allow_blank=True, allow_null=True)
    refillSchedule = serializers.CharField(max_length=16, required=False, allow_blank=True, allow_null=True)
    refillUntil = serializers.DateField(required=False, allow_null=True)

    def validate_dosageText(self, v):
        return bleach.clean((v or '').strip(), strip=True)

    def validate(self, attrs):
        raw = attrs.pop('schedule', None) or attrs.pop('refillSchedule', None)
        attrs.pop('refillSchedule', None)
        try:
            attrs['schedule'] = parse_cadence(raw)
        except MalformedDescriptor:
            # unknown cadence: create falls back to monthly, update keeps the old one
            attrs['schedule'] = None
        start, until = attrs.get('startDate'), attrs.get('refillUntil')
        if start and until and until < start:
            raise serializers.ValidationError({'refillUntil': 'Refill until must not be before the start date.'})
        return attrs


class PrescriptionCreateSerializer(PrescriptionWriteSerializer):
    patientId = serializers.IntegerField(min_value=1)
    medicationId = serializers.IntegerField(min_value=1)


class AppointmentWriteSerializer(serializers.Serializer):
    """Appointment fields plus recurrence in either of two shapes.

    * ``repeatFreq`` / ``repeatInterval`` / ``repeatUntil`` as posted by the
      staff forms (``repeatFreq=NONE`` for a one-off appointment);
    * ``rrule`` text such as ``FREQ=WEEKLY;INTERVAL=1`` or
      ``FREQ=DAILY;COUNT=3`` with an optional separate ``until`` cap.

    The validated data carries ``rule`` (a :class:`RecurrenceRule` or
    ``None``); omitting both shapes means the appointment does not repeat.
    """
    patientId = serializers.IntegerField(min_value=1, required=False)
    providerName = serializers.CharField(max_length=128, required=False, allow_blank=True, default='')
    startDateTime = serializers.DateTimeField(required=False)
    start = serializers.DateTimeField(required=False)
    durationMin = serializers.IntegerField(min_value=1, required=False, default=30)
    rrule = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)
    until = serializers.DateTimeField(required=False, allow_null=True)
    repeatFreq = serializers.ChoiceField(choices=[REPEAT_NONE, *FREQUENCIES], required=False)
    repeatInterval = serializers.IntegerField(min_value=1, required=False, default=1)
    repeatUntil = serializers.DateField(required=False, allow_null=True)

    def validate_providerName(self, v):
        return bleach.clean((v or '').strip(), strip=True)

    def validate(self, attrs):
        start = attrs.pop('startDateTime', None) or attrs.pop('start', None)
        attrs.pop('start', None)
        if start is None:
            raise serializers.ValidationError({'startDateTime': 'Start date/time is required.'})
        attrs['start_at'] = start
        attrs['rule'] = self._build_rule(attrs)
        rule = attrs['rule']
        if rule is not None and rule.until is not None and rule.until < start:
            raise serializers.ValidationError({'repeatUntil': 'Repeat until must not be before the start.'})
        return attrs

    def _build_rule(self, attrs):
        freq = attrs.pop('repeatFreq', None)
        interval = attrs.pop('repeatInterval', 1)
        repeat_until = attrs.pop('repeatUntil', None)
        text = attrs.pop('rrule', None)
        cap = attrs.pop('until', None)

        if freq is not None:
            if freq == REPEAT_NONE:
                return None
            until = end_of_day(repeat_until) if repeat_until else cap
            return RecurrenceRule(frequency=freq, interval=interval, until=until)

        if text:
            try:
                rule = parse_rrule(text, tzinfo=timezone.get_current_timezone(),
                                   anchor=timezone.localtime(attrs['start_at']))
            except MalformedDescriptor as exc:
                raise serializers.ValidationError({'rrule': str(exc)})
            if cap is not None:
                rule = RecurrenceRule(frequency=rule.frequency, interval=rule.interval, until=cap)
            return rule
        return None


class AppointmentCreateSerializer(AppointmentWriteSerializer):
    patientId = serializers.IntegerField(min_value=1)


class OccurrenceQuerySerializer(serializers.Serializer):
    """Query string of the portal's appointment and refill lists."""
    q = serializers.CharField(required=False, allow_blank=True, max_length=128, default='')
    range = serializers.CharField(required=False, allow_blank=True, max_length=8)
    page = serializers.IntegerField(required=False, min_value=1, default=1)
    upcoming = serializers.ChoiceField(choices=['yes', 'no'], required=False, default='yes')
