import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from records.models import Dosage, Medication, Patient, User

PASSWORD = 'S3cure-Passw0rd!'


@pytest.fixture(autouse=True)
def _clear_cache():
    # throttle counters live in the cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def make_patient(db):
    def _make(email, first='Test', last='Patient', **extra):
        user = User.objects.create_user(
            username=email, email=email, password=PASSWORD,
            first_name=first, last_name=last, role=User.ROLE_PATIENT,
        )
        return Patient.objects.create(user=user, **extra)
    return _make


@pytest.fixture
def staff_user(db):
    return User.objects.create_user(username='staff1', password=PASSWORD, role=User.ROLE_STAFF)


@pytest.fixture
def staff_client(staff_user):
    client = APIClient()
    client.force_authenticate(user=staff_user)
    return client


@pytest.fixture
def patient_client():
    def _client(patient):
        client = APIClient()
        client.force_authenticate(user=patient.user)
        return client
    return _client


@pytest.fixture
def medication(db):
    med = Medication.objects.create(name='Lexapro')
    for strength in ('5mg', '10mg'):
        Dosage.objects.create(medication=med, strength=strength)
    return med
