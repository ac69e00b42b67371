"""
Django admin registrations for the back office models.

Derived balance fields are read-only here; they are recomputed by the
billing services and the ``reconcile_balances`` command.
"""
from django.contrib import admin

from .models import AuditEvent, Employee, OtpChallenge, Patient, Payment, TreatmentRecord, User


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'role', 'account_status', 'first_login', 'is_superuser')
    list_filter = ('role', 'account_status')
    search_fields = ('username', 'full_name', 'email')
    exclude = ('password',)


@admin.register(Employee)
class EmployeeAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'position', 'user', 'is_code_used', 'created_at')
    list_filter = ('position', 'is_code_used')
    search_fields = ('name', 'email', 'user__username')
    exclude = ('generated_code',)


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'date_of_birth', 'has_account', 'total_balance')
    list_filter = ('has_account', 'sex')
    search_fields = ('name', 'phone', 'email')
    readonly_fields = ('total_balance',)


@admin.register(OtpChallenge)
class OtpChallengeAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'expires_at', 'verified', 'created_at')
    list_filter = ('verified',)
    exclude = ('code',)


@admin.register(TreatmentRecord)
class TreatmentRecordAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'treatment', 'cost', 'amount_paid', 'remaining_balance', 'date')
    list_filter = ('payment_type',)
    search_fields = ('treatment', 'patient__name', 'dentist')
    readonly_fields = ('amount_paid', 'remaining_balance')


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'treatment_record', 'amount', 'payment_method', 'payment_date')
    list_filter = ('payment_method', 'status')
    search_fields = ('patient__name',)


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('id', 'action', 'user', 'object_type', 'object_id', 'created_at')
    list_filter = ('action',)
    search_fields = ('action', 'object_type')
