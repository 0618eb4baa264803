"""
Helpers shared by the staff views.

HTML forms can only POST, so the staff console sends ``_method=PUT`` or
``_method=DELETE`` alongside the form fields, and a ``redirectTo`` path to
land on afterwards.  JSON clients use the real HTTP verbs and get JSON back.
"""
from __future__ import annotations

from django.http import HttpResponseRedirect
from django.utils.http import url_has_allowed_host_and_scheme
from rest_framework.response import Response

OVERRIDABLE_METHODS = {'PUT', 'PATCH', 'DELETE'}


def effective_method(request) -> str:
    if request.method == 'POST':
        override = str(request.data.get('_method') or '').strip().upper()
        if override in OVERRIDABLE_METHODS:
            return override
    return request.method


def safe_redirect_target(request):
    target = request.data.get('redirectTo') if hasattr(request.data, 'get') else None
    if not target or not str(target).startswith('/') or str(target).startswith('//'):
        return None
    if not url_has_allowed_host_and_scheme(target, allowed_hosts={request.get_host()},
                                           require_https=request.is_secure()):
        return None
    return target


def respond(request, payload, status=200):
    """JSON response, or a 303 redirect for form posts that asked for one."""
    target = safe_redirect_target(request)
    if target:
        resp = HttpResponseRedirect(target)
        resp.status_code = 303
        return resp
    return Response(payload, status=status)
