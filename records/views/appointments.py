from __future__ import annotations

from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from records.models import Appointment, Patient
from records.permissions import IsStaffRole
from records.serializers.schedule import AppointmentCreateSerializer, AppointmentWriteSerializer
from records.services.audit import log_action

from .common import effective_method, respond


def _serialize(appt: Appointment) -> dict:
    rule = appt.recurrence
    return {
        'id': appt.id,
        'patientId': appt.patient_id,
        'providerName': appt.provider_name,
        'startAt': timezone.localtime(appt.start_at).isoformat(),
        'durationMin': appt.duration_min,
        'repeatFreq': rule.frequency if rule else 'NONE',
        'repeatInterval': rule.interval if rule else 1,
        'repeatUntil': timezone.localtime(rule.until).date().isoformat() if rule and rule.until else None,
        'rrule': rule.to_rrule() if rule else None,
    }


def _apply(appt: Appointment, vd: dict) -> None:
    appt.provider_name = vd.get('providerName') or ''
    appt.start_at = vd['start_at']
    appt.duration_min = vd.get('durationMin') or 30
    appt.set_recurrence(vd.get('rule'))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def appointment_create(request):
    s = AppointmentCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    patient = get_object_or_404(Patient, pk=vd['patientId'])
    appt = Appointment(patient=patient)
    _apply(appt, vd)
    appt.save()
    log_action(user=request.user, action='appointment_create', object_type='appointment', object_id=appt.id,
               detail={'patientId': patient.id, 'rrule': appt.rrule})
    return respond(request, _serialize(appt), status=201)


@api_view(['POST', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, IsStaffRole])
def appointment_detail(request, pk: int):
    appt = get_object_or_404(Appointment, pk=pk)
    method = effective_method(request)

    if method == 'DELETE':
        patient_id = appt.patient_id
        appt.delete()
        log_action(user=request.user, action='appointment_delete', object_type='appointment', object_id=pk,
                   detail={'patientId': patient_id})
        return respond(request, {'ok': True, 'id': pk})

    if method == 'POST':
        return Response({'ok': False, 'error': {'code': 'method_not_allowed',
                                                'message': 'Use PUT or DELETE (or _method).'}}, status=405)

    # the whole form is posted on edit; missing recurrence fields mean "does not repeat"
    s = AppointmentWriteSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    _apply(appt, s.validated_data)
    appt.save()
    log_action(user=request.user, action='appointment_update', object_type='appointment', object_id=appt.id,
               detail={'rrule': appt.rrule})
    return respond(request, _serialize(appt))
