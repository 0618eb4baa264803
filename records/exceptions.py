import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from .recurrence import InvalidWindow, RecurrenceError, UnboundedRecurrence

logger = logging.getLogger(__name__)


def api_exception_handler(exc, context):
    if isinstance(exc, (InvalidWindow, UnboundedRecurrence)):
        code = 'invalid_window' if isinstance(exc, InvalidWindow) else 'unbounded_recurrence'
        return Response({'ok': False, 'error': {'code': code, 'message': str(exc)}},
                        status=status.HTTP_400_BAD_REQUEST)
    resp = drf_exception_handler(exc, context)
    if resp is None:
        if isinstance(exc, RecurrenceError):
            logger.warning('recurrence error in %s: %s', context.get('view'), exc)
        else:
            logger.exception('unhandled error in %s', context.get('view'))
        return Response({'ok': False, 'error': {'code': 'server_error', 'message': str(exc)}}, status=500)
    # normalize response
    if isinstance(resp.data, dict):
        detail = resp.data.get('detail') or resp.data
    else:
        detail = resp.data
    return Response({'ok': False, 'error': {'code': 'api_error', 'message': detail}}, status=resp.status_code)
