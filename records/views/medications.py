from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from records.models import Medication
from records.permissions import IsStaffRole


def medication_catalogue() -> list[dict]:
    rows = Medication.objects.prefetch_related('strengths').order_by('name')
    return [
        {
            'id': m.id,
            'name': m.name,
            'strengths': sorted((d.strength for d in m.strengths.all()), key=_strength_key),
        }
        for m in rows
    ]


def _strength_key(strength: str):
    digits = ''.join(ch for ch in strength if ch.isdigit() or ch == '.')
    try:
        return (float(digits), strength)
    except ValueError:
        return (float('inf'), strength)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def list_medications(request):
    return Response(medication_catalogue())
