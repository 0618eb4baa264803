from __future__ import annotations

from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from records.models import Medication, Patient, Prescription
from records.permissions import IsStaffRole
from records.recurrence import CADENCE_MONTHLY
from records.serializers.schedule import PrescriptionCreateSerializer, PrescriptionWriteSerializer
from records.services.audit import log_action

from .common import effective_method, respond


def _serialize(rx: Prescription) -> dict:
    return {
        'id': rx.id,
        'patientId': rx.patient_id,
        'medicationId': rx.medication_id,
        'medication': rx.medication.name,
        'dosageText': rx.dosage_text,
        'quantity': rx.quantity,
        'startDate': rx.start_date.isoformat(),
        'schedule': rx.schedule,
        'refillUntil': rx.refill_until.isoformat() if rx.refill_until else None,
    }


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def prescription_create(request):
    s = PrescriptionCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    patient = get_object_or_404(Patient, pk=vd['patientId'])
    medication = get_object_or_404(Medication, pk=vd['medicationId'])
    start = vd.get('startDate') or timezone.localdate()
    until = vd.get('refillUntil')
    if until and until < start:
        raise ValidationError({'refillUntil': 'Refill until must not be before the start date.'})
    rx = Prescription.objects.create(
        patient=patient,
        medication=medication,
        dosage_text=vd.get('dosageText') or '',
        quantity=vd['quantity'],
        start_date=start,
        schedule=vd.get('schedule') or CADENCE_MONTHLY,
        refill_until=until,
    )
    log_action(user=request.user, action='prescription_create', object_type='prescription', object_id=rx.id,
               detail={'patientId': patient.id})
    return respond(request, _serialize(rx), status=201)


@api_view(['POST', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsStaffRole])
def prescription_detail(request, pk: int):
    rx = get_object_or_404(Prescription.objects.select_related('medication'), pk=pk)
    method = effective_method(request)

    if method == 'DELETE':
        patient_id = rx.patient_id
        rx.delete()
        log_action(user=request.user, action='prescription_delete', object_type='prescription', object_id=pk,
                   detail={'patientId': patient_id})
        return respond(request, {'ok': True, 'id': pk})

    if method == 'POST':
        return Response({'ok': False, 'error': {'code': 'method_not_allowed',
                                                'message': 'Use PUT or DELETE (or _method).'}}, status=405)

    s = PrescriptionWriteSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    if 'medicationId' in vd:
        rx.medication = get_object_or_404(Medication, pk=vd['medicationId'])
    if 'dosageText' in vd:
        rx.dosage_text = vd['dosageText']
    if 'quantity' in vd:
        rx.quantity = vd['quantity']
    if vd.get('startDate'):
        rx.start_date = vd['startDate']
    # an unknown schedule keeps the stored one
    if vd.get('schedule'):
        rx.schedule = vd['schedule']
    if 'refillUntil' in vd:
        rx.refill_until = vd['refillUntil']
    if rx.refill_until and rx.refill_until < rx.start_date:
        raise ValidationError({'refillUntil': 'Refill until must not be before the start date.'})
    rx.save()
    log_action(user=request.user, action='prescription_update', object_type='prescription', object_id=rx.id,
               detail={'fields': sorted(vd)})
    return respond(request, _serialize(rx))
