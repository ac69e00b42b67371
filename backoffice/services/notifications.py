"""
SMS delivery for one-time codes.

``SMS_BACKEND`` names the gateway class.  The console gateway only logs
the message and is meant for development; the HTTP gateway posts to a
provider endpoint configured with ``SMS_GATEWAY_URL``.
"""
import logging
from dataclasses import dataclass

import requests
from django.conf import settings
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)


@dataclass
class SendResult:
    success: bool
    detail: str = ''


class SmsGateway:
    def send(self, phone: str, text: str) -> SendResult:
        raise NotImplementedError


class ConsoleSmsGateway(SmsGateway):
    def send(self, phone: str, text: str) -> SendResult:
        logger.info('[SMS] to %s: %s', phone, text)
        return SendResult(success=True, detail='SMS sent (simulated)')


class HttpSmsGateway(SmsGateway):
    def send(self, phone: str, text: str) -> SendResult:
        headers = {}
        if settings.SMS_API_KEY:
            headers['Authorization'] = f'Bearer {settings.SMS_API_KEY}'
        payload = {'to': phone, 'message': text}
        if settings.SMS_SENDER:
            payload['sender'] = settings.SMS_SENDER
        try:
            r = requests.post(settings.SMS_GATEWAY_URL, json=payload, headers=headers,
                              timeout=settings.SMS_TIMEOUT)
            r.raise_for_status()
        except requests.RequestException as e:
            logger.warning('SMS gateway error: %s', e)
            return SendResult(success=False, detail=str(e))
        return SendResult(success=True, detail=f'accepted ({r.status_code})')


def get_sms_gateway() -> SmsGateway:
    return import_string(settings.SMS_BACKEND)()
