import re

from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Count, Q
from rest_framework.exceptions import ValidationError as DRFValidationError

from records.models import Patient

User = get_user_model()

NAME_OPTIONS_LIMIT = 200


def format_phone(phone):
    """``5551234567`` -> ``(555)-123-4567``; anything else is returned as is."""
    if not phone:
        return ''
    digits = re.sub(r'\D', '', phone)
    if len(digits) != 10:
        return phone
    return f'({digits[:3]})-{digits[3:6]}-{digits[6:]}'


def serialize_patient(patient: Patient) -> dict:
    user = patient.user
    return {
        'id': patient.id,
        'userId': user.id,
        'firstName': user.first_name,
        'lastName': user.last_name,
        'name': patient.full_name,
        'email': user.email,
        'dob': patient.dob.isoformat() if patient.dob else None,
        'phone': patient.phone,
        'phoneDisplay': format_phone(patient.phone),
        'address': patient.address,
    }


def create_patient(*, email, password, first_name='', last_name='', dob=None, phone='', address=''):
    try:
        validate_password(password, user=User(username=email, email=email,
                                              first_name=first_name, last_name=last_name))
    except ValidationError as e:
        raise DRFValidationError({'password': e.messages})

    with transaction.atomic():
        user = User.objects.create_user(
            username=email, email=email, password=password,
            first_name=first_name or '', last_name=last_name or '',
        )
        user.role = User.ROLE_PATIENT
        user.save(update_fields=['role'])
        patient = Patient.objects.create(user=user, dob=dob, phone=phone or '', address=address or '')
    return patient


_USER_FIELDS = {'firstName': 'first_name', 'lastName': 'last_name'}
_PATIENT_FIELDS = {'dob': 'dob', 'phone': 'phone', 'address': 'address'}


def update_patient(patient: Patient, data: dict) -> Patient:
    """Apply validated fields to a patient; keys that are absent stay untouched."""
    user = patient.user
    with transaction.atomic():
        for key, attr in _USER_FIELDS.items():
            if key in data:
                setattr(user, attr, data[key] or '')
        if 'email' in data:
            # the e-mail address doubles as the login name
            user.email = data['email']
            user.username = data['email']
        user.save()
        for key, attr in _PATIENT_FIELDS.items():
            if key in data:
                value = data[key]
                setattr(patient, attr, value if attr == 'dob' else (value or ''))
        patient.save()
    return patient


def search_patients(q: str = '', direction: str = 'asc'):
    """Patients matching every whitespace-separated term of ``q``.

    A term matches when it occurs (case-insensitively) in the first name,
    last name or e-mail address.  Results are ordered by last, then first
    name.
    """
    qs = Patient.objects.select_related('user').annotate(
        prescription_count=Count('prescriptions', distinct=True),
        appointment_count=Count('appointments', distinct=True),
    )
    for term in (q or '').split():
        qs = qs.filter(
            Q(user__first_name__icontains=term)
            | Q(user__last_name__icontains=term)
            | Q(user__email__icontains=term)
        )
    prefix = '-' if direction == 'desc' else ''
    return qs.order_by(f'{prefix}user__last_name', f'{prefix}user__first_name', 'id')


def patient_name_options() -> list[str]:
    rows = (Patient.objects.select_related('user')
            .order_by('user__last_name', 'user__first_name')[:NAME_OPTIONS_LIMIT])
    names = []
    for p in rows:
        name = f'{p.user.first_name} {p.user.last_name}'.strip()
        if name and name not in names:
            names.append(name)
    return names
