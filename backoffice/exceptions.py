"""
Domain errors and the unified API exception handler.

Services raise the exceptions below; because they are DRF
``APIException`` subclasses the views do not need to translate them and
every failure reaches the client as
``{'ok': False, 'error': {'code': ..., 'message': ...}}``.
"""
import logging

from django.db import DatabaseError
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class BackofficeError(exceptions.APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = 'error'
    default_detail = 'request failed'


class NotFound(BackofficeError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = 'not_found'
    default_detail = 'not found'


class ValidationFailure(BackofficeError):
    default_code = 'validation_failure'
    default_detail = 'invalid or missing field'


class Conflict(BackofficeError):
    status_code = status.HTTP_409_CONFLICT
    default_code = 'conflict'
    default_detail = 'conflict'


class DuplicateHandle(Conflict):
    default_code = 'duplicate_handle'
    default_detail = 'Username already exists'


class AlreadyLinked(Conflict):
    default_code = 'already_linked'
    default_detail = 'This patient record is already linked to an account'


class AlreadyActivated(Conflict):
    default_code = 'already_activated'
    default_detail = 'Employee has already logged in. Cannot regenerate credentials.'


class InvalidCredentials(BackofficeError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_code = 'invalid_credentials'
    default_detail = 'Invalid credentials'


class InvalidChallenge(BackofficeError):
    default_code = 'invalid_challenge'
    default_detail = 'Invalid OTP'


class ChallengeExpired(BackofficeError):
    default_code = 'challenge_expired'
    default_detail = 'OTP has expired'


class ChallengeAlreadyUsed(BackofficeError):
    default_code = 'challenge_already_used'
    default_detail = 'OTP has already been used'


class VerificationMismatch(BackofficeError):
    default_code = 'verification_mismatch'
    default_detail = 'Last visit date does not match our records'


class NoContactMethod(BackofficeError):
    default_code = 'no_contact_method'
    default_detail = 'No phone number on record. Please contact clinic staff.'


class DependencyFailure(BackofficeError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_code = 'dependency_failure'
    default_detail = 'a required service is unavailable'


class NotificationFailed(DependencyFailure):
    default_detail = 'Failed to send OTP'


def _error(code, message, http_status):
    return Response({'ok': False, 'error': {'code': code, 'message': message}}, status=http_status)


def api_exception_handler(exc, context):
    if isinstance(exc, DatabaseError):
        logger.exception('database failure in %s', context.get('view'))
        return _error(DependencyFailure.default_code, DependencyFailure.default_detail,
                      DependencyFailure.status_code)
    resp = drf_exception_handler(exc, context)
    if resp is None:
        logger.exception('unhandled error in %s', context.get('view'))
        return _error('server_error', str(exc), 500)
    if isinstance(exc, BackofficeError):
        return _error(exc.default_code, str(exc.detail), resp.status_code)
    if isinstance(exc, exceptions.ValidationError):
        return _error(ValidationFailure.default_code, resp.data, resp.status_code)
    # normalize response
    if isinstance(resp.data, dict):
        detail = resp.data.get('detail') or resp.data
    else:
        detail = str(resp.data)
    return _error('api_error', detail, resp.status_code)
