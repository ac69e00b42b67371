"""Back office application for the dental clinic.

This package contains models, services, serializers, views and route
registrations for staff credentials, patient record claiming and
billing reconciliation.
"""
