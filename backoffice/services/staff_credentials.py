"""
Staff credential lifecycle.

Each employee moves through ``no credentials -> issued, unused ->
activated``.  While the issued secret is unused the front desk may
regenerate it; the old account is thrown away rather than updated
because its secret may have leaked.  The first successful login flips
the account to ``active`` and marks the employee's code as used, after
which regeneration is refused.
"""
from __future__ import annotations

import logging
import re
import secrets
import string
from dataclasses import dataclass

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction

from backoffice.exceptions import AlreadyActivated, DuplicateHandle, NotFound, ValidationFailure
from backoffice.models import Employee
from backoffice.services import credentials
from backoffice.services.audit import safe_log_action

User = get_user_model()
logger = logging.getLogger(__name__)

SECRET_ALPHABET = string.ascii_uppercase + string.digits

POSITION_ROLES = {
    Employee.POSITION_DENTIST: User.ROLE_CLINICIAN,
    Employee.POSITION_ASSISTANT_DENTIST: User.ROLE_CLINICIAN,
    Employee.POSITION_ASSISTANT: User.ROLE_ASSISTANT,
}

EMPLOYEE_FIELDS = ('name', 'position', 'phone', 'email', 'address', 'date_hired')


@dataclass
class IssuedCredentials:
    employee: Employee
    account: User
    username: str
    secret: str


def role_for_position(position: str) -> str:
    try:
        return POSITION_ROLES[position]
    except KeyError:
        raise ValidationFailure(f'Unknown position: {position}')


def generate_secret(length: int | None = None) -> str:
    length = length or settings.STAFF_CODE_LENGTH
    return ''.join(secrets.choice(SECRET_ALPHABET) for _ in range(length))


def base_handle(name: str) -> str:
    base = re.sub(r'\s+', '.', (name or '').strip().lower())
    if not base:
        raise ValidationFailure('Employee name is required to derive a username')
    return base


def next_free_handle(base: str) -> str:
    """Return ``base`` or ``base`` plus the smallest numeric suffix not yet taken."""
    taken = set(User.objects.filter(username__startswith=base).values_list('username', flat=True))
    if base not in taken:
        return base
    n = 1
    while f'{base}{n}' in taken:
        n += 1
    return f'{base}{n}'


def _create_staff_account(employee: Employee, secret: str, role: str) -> User:
    base = base_handle(employee.name)
    for attempt in range(settings.STAFF_HANDLE_MAX_ATTEMPTS):
        candidate = next_free_handle(base)
        try:
            return credentials.create_account(
                candidate, secret, role,
                full_name=employee.name,
                email=employee.email,
                phone=employee.phone,
                position=employee.position,
                first_login=True,
                account_status=User.STATUS_PENDING,
            )
        except DuplicateHandle:
            logger.info('handle %s taken concurrently (attempt %d)', candidate, attempt + 1)
    raise DuplicateHandle(f'Could not allocate a unique username for {employee.name}')


def issue_credentials(employee_id: int, *, issued_by: User | None = None) -> IssuedCredentials:
    """Issue (or regenerate) login credentials for an employee."""
    with transaction.atomic():
        employee = Employee.objects.select_for_update().filter(pk=employee_id).first()
        if employee is None:
            raise NotFound('Employee not found')
        if employee.is_code_used:
            raise AlreadyActivated()
        role = role_for_position(employee.position)

        previous_id = employee.user_id
        if previous_id:
            employee.user = None
            employee.generated_code = None
            employee.save(update_fields=['user', 'generated_code'])
            User.objects.filter(pk=previous_id).delete()
            logger.info('discarded unused account id=%s for employee id=%s', previous_id, employee.pk)

        secret = generate_secret()
        account = _create_staff_account(employee, secret, role)
        employee.user = account
        employee.generated_code = secret
        employee.is_code_used = False
        employee.save(update_fields=['user', 'generated_code', 'is_code_used'])

        safe_log_action(user=issued_by, action='credentials_issue', object_type='employee',
                        object_id=employee.pk,
                        detail={'username': account.username, 'regenerated': bool(previous_id)})
    return IssuedCredentials(employee=employee, account=account, username=account.username, secret=secret)


def on_first_authentication(account_id: int) -> bool:
    """Activate a pending account after its first successful login.

    Returns ``True`` when the transition happened and ``False`` when the
    account was not pending, so repeated calls are harmless.
    """
    with transaction.atomic():
        user = User.objects.select_for_update().filter(pk=account_id).first()
        if user is None:
            raise NotFound('User not found')
        if not (user.first_login and user.account_status == User.STATUS_PENDING):
            return False
        user.account_status = User.STATUS_ACTIVE
        user.save(update_fields=['account_status'])
        Employee.objects.filter(user_id=user.pk).update(is_code_used=True)
        safe_log_action(user=user, action='credentials_activate', object_type='user', object_id=user.pk)
    logger.info('account id=%s activated on first login', account_id)
    return True


# ---------------------------------------------------------------------
# Employee records
# ---------------------------------------------------------------------
def get_employee(employee_id: int) -> Employee:
    employee = Employee.objects.select_related('user').filter(pk=employee_id).first()
    if employee is None:
        raise NotFound('Employee not found')
    return employee


def create_employee(**fields) -> Employee:
    data = {k: v for k, v in fields.items() if k in EMPLOYEE_FIELDS and v is not None}
    if not data.get('name'):
        raise ValidationFailure('Employee name is required')
    role_for_position(data.get('position'))
    return Employee.objects.create(**data)


@transaction.atomic
def update_employee(employee_id: int, **fields) -> Employee:
    """Update the employee and mirror name, contact and position onto its account."""
    employee = Employee.objects.select_for_update().filter(pk=employee_id).first()
    if employee is None:
        raise NotFound('Employee not found')
    data = {k: v for k, v in fields.items() if k in EMPLOYEE_FIELDS and v is not None}
    if 'position' in data:
        role_for_position(data['position'])
    for name, value in data.items():
        setattr(employee, name, value)
    employee.save()

    if employee.user_id:
        credentials.update_profile(employee.user_id, full_name=employee.name,
                                   email=employee.email, phone=employee.phone)
        if 'position' in data:
            User.objects.filter(pk=employee.user_id).update(
                position=employee.position, role=role_for_position(employee.position)
            )
    return employee


@transaction.atomic
def delete_employee(employee_id: int) -> None:
    employee = get_employee(employee_id)
    # the linked account goes with it, see backoffice.signals
    employee.delete()
