"""
Database models for the clinic back office.

These models capture the parts of the clinic that carry real
invariants: staff and patient accounts, the employee and patient
records they are bound to, the one-time challenges used to claim a
patient record, and the treatments and payments whose balances are
derived from each other.  Derived fields (``amount_paid``,
``remaining_balance`` and ``total_balance``) are only ever written by
:mod:`backoffice.services.billing`.
"""
from __future__ import annotations

from decimal import Decimal

from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Login account for staff members and self-service patients.

    ``username`` is the login handle and ``password`` the verifier hash.
    Staff accounts start ``pending`` with ``first_login`` set until the
    issued one-time secret is used; patient accounts created through
    record claiming start ``active``.
    """
    ROLE_CLINICIAN = 'staff_clinician'
    ROLE_ASSISTANT = 'staff_assistant'
    ROLE_PATIENT = 'patient'
    ROLE_CHOICES = [
        (ROLE_CLINICIAN, 'Clinician'),
        (ROLE_ASSISTANT, 'Assistant'),
        (ROLE_PATIENT, 'Self-service patient'),
    ]
    STAFF_ROLES = {ROLE_CLINICIAN, ROLE_ASSISTANT}

    STATUS_PENDING = 'pending'
    STATUS_ACTIVE = 'active'
    STATUS_INACTIVE = 'inactive'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_ACTIVE, 'Active'),
        (STATUS_INACTIVE, 'Inactive'),
    ]

    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_PATIENT)
    position = models.CharField(max_length=32, blank=True, null=True)
    full_name = models.CharField(max_length=150, blank=True)
    phone = models.CharField(max_length=20, blank=True)
    first_login = models.BooleanField(default=False)
    account_status = models.CharField(
        max_length=10, choices=STATUS_CHOICES, default=STATUS_ACTIVE, db_index=True
    )

    @property
    def display_name(self) -> str:
        return self.full_name or self.username

    @property
    def is_staff_member(self) -> bool:
        return self.role in self.STAFF_ROLES

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"


class Employee(models.Model):
    """A staff member's HR record, bound to at most one login account.

    ``generated_code`` keeps the last issued one-time secret so the
    front desk can hand it over again; ``is_code_used`` flips once the
    linked account has logged in for the first time, after which the
    credentials can no longer be regenerated.
    """
    POSITION_DENTIST = 'dentist'
    POSITION_ASSISTANT_DENTIST = 'assistant_dentist'
    POSITION_ASSISTANT = 'assistant'
    POSITION_CHOICES = [
        (POSITION_DENTIST, 'Dentist'),
        (POSITION_ASSISTANT_DENTIST, 'Assistant dentist'),
        (POSITION_ASSISTANT, 'Assistant'),
    ]

    user = models.OneToOneField(
        User, null=True, blank=True, on_delete=models.PROTECT, related_name='employee'
    )
    name = models.CharField(max_length=100)
    position = models.CharField(max_length=32, choices=POSITION_CHOICES)
    phone = models.CharField(max_length=20, blank=True)
    email = models.EmailField(max_length=100, blank=True)
    address = models.TextField(blank=True)
    date_hired = models.DateField(null=True, blank=True)
    generated_code = models.CharField(max_length=100, unique=True, null=True, blank=True)
    is_code_used = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.name} ({self.position})"


class Patient(models.Model):
    """A clinical record.  May exist long before the patient has an account."""
    SEX_CHOICES = [
        ('Male', 'Male'),
        ('Female', 'Female'),
    ]

    user = models.OneToOneField(
        User, null=True, blank=True, on_delete=models.PROTECT, related_name='patient_record'
    )
    name = models.CharField(max_length=100, db_index=True)
    date_of_birth = models.DateField(null=True, blank=True, db_index=True)
    phone = models.CharField(max_length=20, blank=True)
    email = models.EmailField(max_length=100, blank=True)
    address = models.TextField(blank=True)
    sex = models.CharField(max_length=10, choices=SEX_CHOICES, blank=True)
    medical_history = models.TextField(blank=True)
    allergies = models.TextField(blank=True)
    last_visit = models.DateField(null=True, blank=True)
    next_appointment = models.DateField(null=True, blank=True)
    has_account = models.BooleanField(default=False, db_index=True)
    total_balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.name} (#{self.pk})"


class OtpChallenge(models.Model):
    """One-time code sent to the phone on a patient record."""
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='otp_challenges')
    phone = models.CharField(max_length=20)
    code = models.CharField(max_length=10)
    expires_at = models.DateTimeField()
    verified = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['patient', 'code', 'created_at']),
            models.Index(fields=['expires_at']),
        ]

    def is_expired(self, now) -> bool:
        return now > self.expires_at

    def __str__(self) -> str:
        return f"otp p={self.patient_id} exp={self.expires_at:%F %T} verified={self.verified}"


class TreatmentRecord(models.Model):
    PAYMENT_FULL = 'full'
    PAYMENT_INSTALLMENT = 'installment'
    PAYMENT_TYPE_CHOICES = [
        (PAYMENT_FULL, 'Full'),
        (PAYMENT_INSTALLMENT, 'Installment'),
    ]

    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='treatments')
    date = models.DateField(null=True, blank=True)
    treatment = models.CharField(max_length=100, blank=True)
    tooth = models.CharField(max_length=10, blank=True)
    notes = models.TextField(blank=True)
    cost = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    dentist = models.CharField(max_length=100, blank=True)
    payment_type = models.CharField(max_length=12, choices=PAYMENT_TYPE_CHOICES, default=PAYMENT_FULL)
    # derived, see services.billing
    amount_paid = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    remaining_balance = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    installment_plan = models.JSONField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=['patient', 'date'])]

    def __str__(self) -> str:
        return f"{self.treatment or 'treatment'} #{self.pk} p={self.patient_id}"


class Payment(models.Model):
    """A payment reported as already collected.  Never edited in place."""
    METHOD_CHOICES = [
        ('cash', 'Cash'),
        ('card', 'Card'),
        ('check', 'Check'),
        ('bank_transfer', 'Bank transfer'),
    ]
    STATUS_CHOICES = [
        ('paid', 'Paid'),
        ('pending', 'Pending'),
        ('overdue', 'Overdue'),
    ]

    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='payments')
    treatment_record = models.ForeignKey(
        TreatmentRecord, null=True, blank=True, on_delete=models.SET_NULL, related_name='payments'
    )
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    payment_date = models.DateField()
    payment_method = models.CharField(max_length=16, choices=METHOD_CHOICES)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='paid')
    notes = models.TextField(blank=True)
    recorded_by = models.CharField(max_length=100, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['patient', 'payment_date']),
            models.Index(fields=['treatment_record']),
        ]

    def __str__(self) -> str:
        return f"payment {self.amount} p={self.patient_id} t={self.treatment_record_id}"


class AuditEvent(models.Model):
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.IntegerField(blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at']),
            models.Index(fields=['object_type', 'object_id', 'created_at']),
        ]

    def __str__(self):
        return f"{self.action}:{self.user_id}@{self.created_at:%F %T}"
