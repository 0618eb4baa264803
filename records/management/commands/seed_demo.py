from dateutil import parser as date_parser
from django.contrib.auth.hashers import make_password
from django.core.management.base import BaseCommand
from django.db import transaction

from records.models import Appointment, Dosage, Medication, Patient, Prescription, User
from records.recurrence import MONTHLY, WEEKLY, RecurrenceRule

PASSWORD = 'Password123!'

PATIENTS = [
    {
        'name': 'Mark Johnson',
        'email': 'mark@some-email-provider.net',
        'appointments': [
            ('Dr Kim West', '2025-09-16T16:30:00-07:00', WEEKLY),
            ('Dr Lin James', '2025-09-19T18:30:00-07:00', MONTHLY),
        ],
        'prescriptions': [
            ('Lexapro', '5mg', 2, '2025-10-05'),
            ('Ozempic', '1mg', 1, '2025-10-10'),
        ],
    },
    {
        'name': 'Lisa Smith',
        'email': 'lisa@some-email-provider.net',
        'appointments': [
            ('Dr Sally Field', '2025-09-22T18:15:00-07:00', MONTHLY),
            ('Dr Lin James', '2025-09-25T20:00:00-07:00', WEEKLY),
        ],
        'prescriptions': [
            ('Metformin', '500mg', 2, '2025-10-15'),
            ('Diovan', '100mg', 1, '2025-10-25'),
        ],
    },
]

MEDICATIONS = ['Diovan', 'Lexapro', 'Metformin', 'Ozempic', 'Prozac', 'Seroquel', 'Tegretol']
STRENGTHS = ['1mg', '2mg', '3mg', '5mg', '10mg', '25mg', '50mg', '100mg', '250mg', '500mg', '1000mg']


class Command(BaseCommand):
    help = "Load demo patients, appointments, prescriptions and the medication catalogue (idempotent)."

    def add_arguments(self, parser):
        parser.add_argument('--staff-username', default='staff')
        parser.add_argument('--staff-password', default=PASSWORD)

    @transaction.atomic
    def handle(self, *args, **opts):
        medications = {}
        for name in MEDICATIONS:
            med, _ = Medication.objects.get_or_create(name=name)
            for strength in STRENGTHS:
                Dosage.objects.get_or_create(medication=med, strength=strength)
            medications[name] = med
        self.stdout.write(self.style.SUCCESS(f"ok: {len(medications)} medications"))

        staff, _ = User.objects.get_or_create(username=opts['staff_username'])
        staff.role = User.ROLE_STAFF
        staff.is_staff = True
        staff.is_active = True
        staff.password = make_password(opts['staff_password'])
        staff.save()
        self.stdout.write(self.style.SUCCESS(f"ok: {staff.username} (staff)"))

        for entry in PATIENTS:
            first, _, last = entry['name'].partition(' ')
            user, _ = User.objects.get_or_create(username=entry['email'])
            user.email = entry['email']
            user.first_name = first
            user.last_name = last
            user.role = User.ROLE_PATIENT
            user.is_active = True
            user.password = make_password(PASSWORD)
            user.save()
            patient, _ = Patient.objects.get_or_create(user=user)

            # rebuild the patient's schedule so repeated runs do not pile up rows
            patient.appointments.all().delete()
            patient.prescriptions.all().delete()
            for provider, start, freq in entry['appointments']:
                appt = Appointment(patient=patient, provider_name=provider,
                                   start_at=date_parser.isoparse(start), duration_min=30)
                appt.set_recurrence(RecurrenceRule(frequency=freq))
                appt.save()
            for med_name, dosage, quantity, start in entry['prescriptions']:
                Prescription.objects.create(
                    patient=patient,
                    medication=medications[med_name],
                    dosage_text=dosage,
                    quantity=quantity,
                    start_date=date_parser.isoparse(start).date(),
                    schedule='monthly',
                )
            self.stdout.write(self.style.SUCCESS(f"ok: {user.username} (patient #{patient.id})"))
        self.stdout.write(self.style.SUCCESS("Demo data loaded."))
