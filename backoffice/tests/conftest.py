import datetime
import re

import pytest
from django.core.cache import cache

from backoffice.models import Employee, Patient
from backoffice.services.notifications import SendResult, SmsGateway


class RecordingSmsGateway(SmsGateway):
    """Keeps every message in memory; can be told to fail."""

    def __init__(self):
        self.sent = []
        self.fail = False
        self.explode = False

    def send(self, phone, text):
        if self.explode:
            raise ConnectionError('gateway unreachable')
        if self.fail:
            return SendResult(success=False, detail='rejected')
        self.sent.append((phone, text))
        return SendResult(success=True, detail='ok')

    @property
    def last_code(self):
        return re.search(r"code is: (\d+)", self.sent[-1][1]).group(1)


@pytest.fixture(autouse=True)
def _clear_cache():
    # throttle counters live in the cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def sms(monkeypatch):
    gateway = RecordingSmsGateway()
    monkeypatch.setattr('backoffice.services.claiming.get_sms_gateway', lambda: gateway)
    return gateway


@pytest.fixture
def patient(db):
    return Patient.objects.create(
        name='Maria Santos',
        date_of_birth=datetime.date(1990, 5, 17),
        phone='09171234567',
        email='maria@example.com',
        last_visit=datetime.date(2024, 3, 1),
    )


@pytest.fixture
def employee(db):
    return Employee.objects.create(name='Ana Reyes', position=Employee.POSITION_DENTIST,
                                   phone='09170000001', email='ana@example.com')


