"""
URL mappings for the clinic back office API.

Paths mirror the front-end's endpoint table; trailing slashes are
deliberately omitted.
"""
from django.urls import path

from .auth_views import change_password_view, check_username_view, login_view, update_settings_view
from .views import billing, claiming, employees, health, patients

urlpatterns = [
    path('healthz', health.healthz),
    # Authentication
    path('api/auth/login', login_view),
    path('api/auth/change-password', change_password_view),
    path('api/auth/check-username', check_username_view),
    path('api/auth/update-settings', update_settings_view),
    # Employees
    path('api/employees', employees.employees),
    path('api/employees/<int:employee_id>', employees.employee_detail),
    path('api/employees/<int:employee_id>/generate-credentials', employees.generate_credentials),
    # Patients
    path('api/patients', patients.patients),
    path('api/patients/<int:patient_id>', patients.patient_detail),
    # Patient record claiming
    path('api/patient-claiming/search', claiming.search_record),
    path('api/patient-claiming/select', claiming.select_record),
    path('api/patient-claiming/send-otp', claiming.send_otp),
    path('api/patient-claiming/resend-otp', claiming.resend_otp),
    path('api/patient-claiming/verify-and-link', claiming.verify_and_link),
    # Treatment records
    path('api/treatment-records', billing.treatment_records),
    path('api/treatment-records/patient/<int:patient_id>', billing.patient_treatment_records),
    path('api/treatment-records/<int:record_id>', billing.treatment_record_detail),
    # Payments
    path('api/payments', billing.payments),
    path('api/payments/<int:payment_id>', billing.payment_detail),
]
