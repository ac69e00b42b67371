from datetime import timedelta
from unittest import mock

import pytest
import requests
from rest_framework.test import APIClient

from backoffice.models import User
from backoffice.services import notifications, sessions


def test_http_gateway_posts_to_provider(settings):
    settings.SMS_GATEWAY_URL = 'https://sms.example.test/send'
    settings.SMS_API_KEY = 'k3y'
    settings.SMS_SENDER = 'CLINIC'
    with mock.patch('backoffice.services.notifications.requests.post') as post:
        post.return_value.status_code = 202
        result = notifications.HttpSmsGateway().send('09171234567', 'hello')
    assert result.success is True
    args, kwargs = post.call_args
    assert args[0] == 'https://sms.example.test/send'
    assert kwargs['json'] == {'to': '09171234567', 'message': 'hello', 'sender': 'CLINIC'}
    assert kwargs['headers'] == {'Authorization': 'Bearer k3y'}
    assert kwargs['timeout'] == settings.SMS_TIMEOUT


def test_http_gateway_reports_transport_errors(settings):
    settings.SMS_GATEWAY_URL = 'https://sms.example.test/send'
    with mock.patch('backoffice.services.notifications.requests.post',
                    side_effect=requests.ConnectionError('refused')):
        result = notifications.HttpSmsGateway().send('0917', 'hello')
    assert result.success is False
    assert 'refused' in result.detail


def test_gateway_is_loaded_from_settings(settings):
    settings.SMS_BACKEND = 'backoffice.services.notifications.ConsoleSmsGateway'
    gateway = notifications.get_sms_gateway()
    assert isinstance(gateway, notifications.ConsoleSmsGateway)
    assert gateway.send('0917', 'hi').success is True


@pytest.mark.django_db
def test_session_token_rejected_once_account_is_inactive():
    user = User.objects.create_user(username='frontdesk', password='Str0ng!Pass2024',
                                    role=User.ROLE_ASSISTANT)
    token = sessions.issue_session(user)
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
    assert client.get('/api/employees').status_code == 200

    User.objects.filter(pk=user.pk).update(account_status=User.STATUS_INACTIVE)
    assert client.get('/api/employees').status_code == 401


@pytest.mark.django_db
def test_session_token_honours_ttl():
    user = User.objects.create_user(username='frontdesk', password='Str0ng!Pass2024')
    token = sessions.JWTSessionIssuer().issue(sessions.claims_for(user), timedelta(seconds=-1))
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
    assert client.post('/api/auth/change-password', {}, format='json').status_code == 401
