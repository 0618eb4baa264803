"""
Patient portal endpoints.

Every view reads the authenticated patient's own rows only; there is no
patient id in these URLs.
"""
from __future__ import annotations

from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from records.permissions import IsPatientRole
from records.serializers.patient import ProfileUpdateSerializer
from records.serializers.schedule import OccurrenceQuerySerializer
from records.services import schedule
from records.services.audit import log_action
from records.services.patients import serialize_patient, update_patient


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPatientRole])
def portal_home(request):
    patient = request.user.patient
    return Response({
        'now': timezone.localtime().isoformat(),
        'profile': serialize_patient(patient),
        **schedule.portal_summary(patient),
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsPatientRole])
def portal_profile(request):
    patient = request.user.patient
    s = ProfileUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    update_patient(patient, s.validated_data)
    log_action(user=request.user, action='profile_update', object_type='patient', object_id=patient.id,
               detail={'fields': sorted(s.validated_data)})
    return Response({'ok': True, 'profile': serialize_patient(patient)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPatientRole])
def portal_appointments(request):
    q = OccurrenceQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    return Response(schedule.appointment_page(
        request.user.patient, q=vd.get('q'), range_value=vd.get('range'), page=vd.get('page'),
    ))


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPatientRole])
def portal_medications(request):
    q = OccurrenceQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    return Response(schedule.medication_page(
        request.user.patient, q=vd.get('q'), range_value=vd.get('range'),
        upcoming=vd.get('upcoming') != 'no', page=vd.get('page'),
    ))
