"""
Database models for the EMR portal.

Patients own prescriptions and appointments.  Both are recurring events:
a prescription refills on a named cadence from its start date until an
optional ``refill_until`` date, an appointment repeats on a calendar rule
from its start instant until an optional ``until`` instant.  The models
store the recurrence as plain columns and hand the expansion code a parsed
descriptor (see :mod:`records.recurrence`).
"""
from __future__ import annotations

import logging
from typing import Optional

from django.contrib.auth.models import AbstractUser
from django.core.validators import MinValueValidator
from django.db import models

from .recurrence import (
    CADENCE_DAILY,
    CADENCE_MONTHLY,
    CADENCE_WEEKLY,
    DAILY,
    MONTHLY,
    WEEKLY,
    YEARLY,
    MalformedDescriptor,
    RecurrenceRule,
    parse_cadence,
)

logger = logging.getLogger(__name__)


class User(AbstractUser):
    """Login identity with a role.

    Patients sign in with their e-mail address as username; staff manage
    patient records through the admin API.  Superusers are treated as
    staff regardless of ``role``.
    """
    ROLE_PATIENT = 'patient'
    ROLE_STAFF = 'staff'
    ROLE_CHOICES = [
        (ROLE_PATIENT, 'Patient'),
        (ROLE_STAFF, 'Staff'),
    ]
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default=ROLE_PATIENT, db_index=True)

    @property
    def is_portal_staff(self) -> bool:
        return self.role == self.ROLE_STAFF or self.is_superuser

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"


class Patient(models.Model):
    """Contact and demographic details for a patient.

    Names and e-mail live on the linked :class:`User` so that login and
    display always agree.
    """
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='patient')
    dob = models.DateField(null=True, blank=True)
    phone = models.CharField(max_length=32, blank=True)
    address = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def full_name(self) -> str:
        return self.user.get_full_name() or self.user.username

    def __str__(self) -> str:
        return f"{self.full_name} <{self.user.email}>"


class Medication(models.Model):
    name = models.CharField(max_length=128, unique=True)

    class Meta:
        ordering = ['name']

    def __str__(self) -> str:
        return self.name


class Dosage(models.Model):
    """An available strength for a medication, e.g. ``500mg``."""
    medication = models.ForeignKey(Medication, on_delete=models.CASCADE, related_name='strengths')
    strength = models.CharField(max_length=32)

    class Meta:
        unique_together = [('medication', 'strength')]

    def __str__(self) -> str:
        return f"{self.medication.name} {self.strength}"


class Prescription(models.Model):
    SCHEDULE_CHOICES = [
        (CADENCE_DAILY, 'Daily'),
        (CADENCE_WEEKLY, 'Weekly'),
        (CADENCE_MONTHLY, 'Monthly'),
    ]
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='prescriptions')
    medication = models.ForeignKey(Medication, on_delete=models.PROTECT, related_name='prescriptions')
    dosage_text = models.CharField(max_length=32, blank=True)
    quantity = models.PositiveIntegerField(default=30, validators=[MinValueValidator(1)])
    # First refill; the recurrence anchor
    start_date = models.DateField()
    schedule = models.CharField(max_length=10, choices=SCHEDULE_CHOICES, default=CADENCE_MONTHLY)
    refill_until = models.DateField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [models.Index(fields=['patient', 'start_date'], name='rx_patient_start_idx')]

    @property
    def cadence(self) -> Optional[str]:
        """Refill cadence, or ``None`` when the stored value is unusable."""
        try:
            return parse_cadence(self.schedule)
        except MalformedDescriptor as exc:
            logger.warning('prescription %s: %s; treating as a single refill', self.pk, exc)
            return None

    def __str__(self) -> str:
        return f"Rx {self.pk}: {self.medication} {self.dosage_text} ({self.schedule})"


class Appointment(models.Model):
    FREQUENCY_CHOICES = [
        ('', 'Does not repeat'),
        (DAILY, 'Daily'),
        (WEEKLY, 'Weekly'),
        (MONTHLY, 'Monthly'),
        (YEARLY, 'Yearly'),
    ]
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='appointments')
    provider_name = models.CharField(max_length=128, blank=True)
    # First occurrence; the recurrence anchor
    start_at = models.DateTimeField()
    duration_min = models.PositiveIntegerField(default=30, validators=[MinValueValidator(1)])
    repeat_frequency = models.CharField(max_length=10, choices=FREQUENCY_CHOICES, blank=True, default='')
    repeat_interval = models.PositiveSmallIntegerField(default=1)
    until = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [models.Index(fields=['patient', 'start_at'], name='appt_patient_start_idx')]

    @property
    def recurrence(self) -> Optional[RecurrenceRule]:
        """The calendar rule, or ``None`` for one-off appointments.

        A stored rule that no longer validates degrades to a one-off
        appointment so that reading pages never fails on bad rows.
        """
        if not self.repeat_frequency:
            return None
        try:
            return RecurrenceRule(
                frequency=self.repeat_frequency,
                interval=self.repeat_interval,
                until=self.until,
            )
        except MalformedDescriptor as exc:
            logger.warning('appointment %s: %s; treating as non-recurring', self.pk, exc)
            return None

    @property
    def rrule(self) -> Optional[str]:
        rule = self.recurrence
        return rule.to_rrule() if rule else None

    def set_recurrence(self, rule: Optional[RecurrenceRule]) -> None:
        if rule is None:
            self.repeat_frequency = ''
            self.repeat_interval = 1
            self.until = None
            return
        self.repeat_frequency = rule.frequency
        self.repeat_interval = rule.interval
        self.until = rule.until

    def __str__(self) -> str:
        return f"Appt {self.pk}: {self.provider_name} @ {self.start_at:%F %T}"


class AuditEvent(models.Model):
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.IntegerField(blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at'], name='audit_action_created_idx'),
            models.Index(fields=['object_type', 'object_id', 'created_at'], name='audit_object_created_idx'),
        ]

    def __str__(self):
        return f"{self.action}:{self.object_type}#{self.object_id} by {self.user_id}"
