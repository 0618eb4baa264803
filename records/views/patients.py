"""
Patient management views for staff.

Staff can search, create and edit patients and open a patient's record,
which lists their prescriptions and appointments together with the
choices the edit forms offer.
"""
from __future__ import annotations

from django.conf import settings
from django.core.paginator import Paginator
from django.shortcuts import get_object_or_404
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from records.models import Patient
from records.permissions import IsStaffRole
from records.serializers.patient import PatientCreateSerializer, PatientListQuerySerializer, PatientUpdateSerializer
from records.services.audit import log_action
from records.services.patients import (
    create_patient,
    patient_name_options,
    search_patients,
    serialize_patient,
    update_patient,
)

from . import appointments as appointment_views
from . import prescriptions as prescription_views
from .common import effective_method, respond
from .medications import medication_catalogue


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def patients(request):
    if request.method == 'POST':
        return _create_patient(request)

    q = PatientListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    qs = search_patients(vd.get('q') or '', vd.get('dir') or 'asc')
    paginator = Paginator(qs, settings.PORTAL_PAGE_SIZE)
    page = paginator.get_page(vd.get('page') or 1)
    items = []
    for patient in page.object_list:
        row = serialize_patient(patient)
        row['prescriptionCount'] = patient.prescription_count
        row['appointmentCount'] = patient.appointment_count
        items.append(row)
    return Response({
        'items': items,
        'page': page.number,
        'pages': paginator.num_pages,
        'pageSize': paginator.per_page,
        'total': paginator.count,
        'nameOptions': patient_name_options(),
    })


def _create_patient(request):
    s = PatientCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    patient = create_patient(
        email=vd['email'],
        password=vd['password'],
        first_name=vd.get('firstName') or '',
        last_name=vd.get('lastName') or '',
        dob=vd.get('dob'),
        phone=vd.get('phone') or '',
        address=vd.get('address') or '',
    )
    log_action(user=request.user, action='patient_create', object_type='patient', object_id=patient.id)
    return respond(request, serialize_patient(patient), status=201)


@api_view(['GET', 'POST', 'PUT', 'PATCH'])
@permission_classes([IsAuthenticated, IsStaffRole])
def patient_detail(request, pk: int):
    patient = get_object_or_404(Patient.objects.select_related('user'), pk=pk)
    method = effective_method(request)

    if method != 'GET':
        s = PatientUpdateSerializer(data=request.data, partial=True, context={'user': patient.user})
        s.is_valid(raise_exception=True)
        update_patient(patient, s.validated_data)
        log_action(user=request.user, action='patient_update', object_type='patient', object_id=patient.id,
                   detail={'fields': sorted(s.validated_data)})
        return respond(request, serialize_patient(patient))

    prescriptions = patient.prescriptions.select_related('medication').order_by('start_date', 'id')
    appointments = patient.appointments.order_by('start_at', 'id')
    providers = set(settings.DEFAULT_PROVIDERS)
    providers.update(a.provider_name for a in appointments if a.provider_name)
    return Response({
        **serialize_patient(patient),
        'prescriptions': [prescription_views._serialize(rx) for rx in prescriptions],
        'appointments': [appointment_views._serialize(a) for a in appointments],
        'providerOptions': sorted(providers),
        'medications': medication_catalogue(),
    })
