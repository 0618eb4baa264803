"""
Django admin registrations for the portal models.
"""
from django.contrib import admin

from .models import Appointment, AuditEvent, Dosage, Medication, Patient, Prescription, User


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'role', 'first_name', 'last_name', 'is_staff', 'is_superuser')
    list_filter = ('role',)
    search_fields = ('username', 'email', 'first_name', 'last_name')


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'dob', 'phone')
    search_fields = ('user__username', 'user__first_name', 'user__last_name', 'phone')


class DosageInline(admin.TabularInline):
    model = Dosage
    extra = 0


@admin.register(Medication)
class MedicationAdmin(admin.ModelAdmin):
    list_display = ('id', 'name')
    search_fields = ('name',)
    inlines = [DosageInline]


@admin.register(Prescription)
class PrescriptionAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'medication', 'dosage_text', 'quantity', 'start_date', 'schedule',
                    'refill_until')
    list_filter = ('schedule', 'medication')
    search_fields = ('patient__user__username', 'medication__name')


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'provider_name', 'start_at', 'duration_min', 'repeat_frequency',
                    'repeat_interval', 'until')
    list_filter = ('repeat_frequency',)
    search_fields = ('patient__user__username', 'provider_name')


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('id', 'action', 'object_type', 'object_id', 'user', 'created_at')
    list_filter = ('action', 'object_type')
    readonly_fields = ('user', 'action', 'object_type', 'object_id', 'detail', 'created_at')
