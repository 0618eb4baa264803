"""
URL mappings for the portal and staff API.

Trailing slashes are omitted throughout (``APPEND_SLASH`` is off).
"""
from django.urls import include, path

from .views import health
from .views.appointments import appointment_create, appointment_detail
from .views.auth import jwt_refresh_view, login_view, logout_view
from .views.medications import list_medications
from .views.patients import patient_detail, patients
from .views.portal import portal_appointments, portal_home, portal_medications, portal_profile
from .views.prescriptions import prescription_create, prescription_detail

urlpatterns = [
    path('metrics', include('django_prometheus.urls')),
    path('healthz', health.healthz, name='healthz'),

    path('api/auth/login', login_view, name='login_view'),
    path('api/auth/logout', logout_view, name='logout_view'),
    path('api/auth/refresh', jwt_refresh_view, name='jwt_refresh'),

    path('api/portal', portal_home, name='portal_home'),
    path('api/portal/profile', portal_profile, name='portal_profile'),
    path('api/portal/appointments', portal_appointments, name='portal_appointments'),
    path('api/portal/medications', portal_medications, name='portal_medications'),

    path('api/patients', patients, name='patients'),
    path('api/patients/<int:pk>', patient_detail, name='patient_detail'),
    path('api/prescriptions', prescription_create, name='prescription_create'),
    path('api/prescriptions/<int:pk>', prescription_detail, name='prescription_detail'),
    path('api/appointments', appointment_create, name='appointment_create'),
    path('api/appointments/<int:pk>', appointment_detail, name='appointment_detail'),
    path('api/medications', list_medications, name='medications'),
]
