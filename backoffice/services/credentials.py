"""
Credential store: account handles, verifier hashes and lifecycle flags.

Verifiers are produced and checked with Django's configured password
hashers, so the storage format is whatever ``PASSWORD_HASHERS`` says.
Handle-not-found and wrong-secret are reported with the same
``InvalidCredentials`` error.
"""
from __future__ import annotations

import logging
from typing import Optional

from django.contrib.auth import get_user_model
from django.contrib.auth.hashers import make_password
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction

from backoffice.exceptions import DuplicateHandle, InvalidCredentials, NotFound, ValidationFailure

User = get_user_model()
logger = logging.getLogger(__name__)

PROFILE_FIELDS = ('username', 'full_name', 'email', 'phone')


def get_account(account_id: int) -> User:
    user = User.objects.filter(pk=account_id).first()
    if user is None:
        raise NotFound('User not found')
    return user


def handle_taken(username: str, *, exclude_id: Optional[int] = None) -> bool:
    qs = User.objects.filter(username=username)
    if exclude_id is not None:
        qs = qs.exclude(pk=exclude_id)
    return qs.exists()


def handle_available(username: str) -> bool:
    username = (username or '').strip()
    if len(username) < 3:
        raise ValidationFailure('Username must be at least 3 characters')
    return not handle_taken(username)


def check_secret_strength(secret: str, user: Optional[User] = None) -> None:
    try:
        validate_password(secret, user=user)
    except ValidationError as e:
        raise ValidationFailure(' '.join(e.messages))


def create_account(username: str, secret: str, role: str, *, full_name: str = '', email: str = '',
                   phone: str = '', position: Optional[str] = None, first_login: bool = False,
                   account_status: str = User.STATUS_ACTIVE) -> User:
    """Create an account, failing with ``DuplicateHandle`` if the handle is taken.

    The unique index is the final arbiter: a concurrent insert of the same
    handle surfaces as ``IntegrityError`` inside the savepoint and is
    reported the same way as the up-front check.
    """
    username = (username or '').strip()
    if not username or not secret:
        raise ValidationFailure('Username and password are required')
    if handle_taken(username):
        raise DuplicateHandle()
    user = User(
        username=username,
        role=role,
        full_name=full_name or '',
        email=email or '',
        phone=phone or '',
        position=position,
        first_login=first_login,
        account_status=account_status,
    )
    user.set_password(secret)
    try:
        with transaction.atomic():
            user.save()
    except IntegrityError:
        raise DuplicateHandle()
    logger.info('account created id=%s role=%s status=%s', user.pk, role, account_status)
    return user


def authenticate(username: str, secret: str) -> User:
    user = User.objects.filter(username=(username or '').strip()).first()
    if user is None:
        # spend the same hashing time as a real check
        make_password(secret)
        raise InvalidCredentials()
    if not user.check_password(secret):
        raise InvalidCredentials()
    if not user.is_active or user.account_status == User.STATUS_INACTIVE:
        raise InvalidCredentials()
    return user


def update_verifier(account_id: int, new_secret: str, *, clear_first_login: bool = False) -> User:
    if not new_secret:
        raise ValidationFailure('Password is required')
    user = get_account(account_id)
    user.set_password(new_secret)
    fields = ['password']
    if clear_first_login:
        user.first_login = False
        fields.append('first_login')
    user.save(update_fields=fields)
    return user


def update_profile(account_id: int, **fields) -> User:
    """Partially update profile fields; a new handle must not belong to anyone else."""
    unknown = set(fields) - set(PROFILE_FIELDS)
    if unknown:
        raise ValidationFailure(f"Unsupported field(s): {', '.join(sorted(unknown))}")
    user = get_account(account_id)
    changed = []
    for name, value in fields.items():
        if value is None:
            continue
        if name == 'username':
            value = value.strip()
            if not value:
                raise ValidationFailure('Username cannot be empty')
            if value != user.username and handle_taken(value, exclude_id=user.pk):
                raise DuplicateHandle('Username is already taken')
        if getattr(user, name) != value:
            setattr(user, name, value)
            changed.append(name)
    if changed:
        try:
            with transaction.atomic():
                user.save(update_fields=changed)
        except IntegrityError:
            raise DuplicateHandle('Username is already taken')
    return user


def change_password(account_id: int, current_secret: str, new_secret: str) -> User:
    """Replace the verifier after re-checking the current one; clears ``first_login``."""
    user = get_account(account_id)
    if not current_secret or not user.check_password(current_secret):
        raise InvalidCredentials('Current password is incorrect')
    check_secret_strength(new_secret, user)
    return update_verifier(user.pk, new_secret, clear_first_login=True)
