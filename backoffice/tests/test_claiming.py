import datetime
import threading
from datetime import timedelta

import pytest
from django.db import connection
from django.utils import timezone
from rest_framework_simplejwt.tokens import AccessToken

from backoffice.exceptions import (
    AlreadyLinked,
    ChallengeAlreadyUsed,
    ChallengeExpired,
    DuplicateHandle,
    InvalidChallenge,
    NoContactMethod,
    NotificationFailed,
    ValidationFailure,
    VerificationMismatch,
)
from backoffice.models import AuditEvent, OtpChallenge, Patient, User
from backoffice.services import claiming

pytestmark = pytest.mark.django_db

PASSWORD = 'Str0ng!Pass2024'


def _link(patient_id, code, username='maria.s', **kw):
    return claiming.verify_and_link(patient_id, code, username=username, password=PASSWORD, **kw)


def test_mask_phone():
    assert claiming.mask_phone('09171234567') == '091****4567'
    assert claiming.mask_phone('+63 917-123-4567') == '639*****4567'
    assert claiming.mask_phone('1234567') == '*******'
    assert claiming.mask_phone('') == ''


def test_search_single_match_masks_phone(patient):
    res = claiming.search('maria', '1990-05-17', '1234567')
    assert res['found'] is True
    assert res['matches'] == 1
    assert res['patientId'] == patient.pk
    assert res['patientInfo'] == {'name': 'Maria Santos', 'phone': '091****4567', 'lastVisit': '2024-03-01'}


def test_search_no_match(patient):
    res = claiming.search('maria', datetime.date(1991, 1, 1), '09171234567')
    assert res['found'] is False
    assert 'message' in res


def test_search_multiple_matches_needs_more_info(patient):
    twin = Patient.objects.create(name='Maria Santos', date_of_birth=patient.date_of_birth,
                                  phone=patient.phone, last_visit=datetime.date(2023, 1, 9))
    res = claiming.search('Maria Santos', patient.date_of_birth, patient.phone)
    assert res['needsMoreInfo'] is True
    assert res['matches'] == 2
    assert {p['id'] for p in res['patients']} == {patient.pk, twin.pk}
    assert all('phone' not in p for p in res['patients'])


def test_search_skips_linked_records(patient):
    Patient.objects.filter(pk=patient.pk).update(has_account=True)
    assert claiming.search('Maria', patient.date_of_birth, patient.phone)['found'] is False


def test_search_requires_all_fields():
    with pytest.raises(ValidationFailure):
        claiming.search('', '1990-05-17', '0917')


def test_select_checks_last_visit(patient):
    assert claiming.select(patient.pk, '2024-03-01')['patientId'] == patient.pk
    assert claiming.select(patient.pk)['patientInfo']['phone'] == '091****4567'
    with pytest.raises(VerificationMismatch):
        claiming.select(patient.pk, '2024-03-02')


def test_select_without_stored_last_visit_is_a_mismatch(patient):
    Patient.objects.filter(pk=patient.pk).update(last_visit=None)
    with pytest.raises(VerificationMismatch):
        claiming.select(patient.pk, '2024-03-01')


def test_select_linked_record(patient):
    Patient.objects.filter(pk=patient.pk).update(has_account=True)
    with pytest.raises(AlreadyLinked):
        claiming.select(patient.pk)


def test_send_challenge_texts_the_record_phone(patient, sms):
    res = claiming.send_challenge(patient.pk)
    assert res['success'] is True
    assert res['phone'] == '091****4567'
    assert 'code' not in res and 'otp' not in res
    challenge = OtpChallenge.objects.get(patient=patient)
    assert sms.sent == [(patient.phone, sms.sent[0][1])]
    assert sms.last_code == challenge.code
    assert len(challenge.code) == 6
    assert challenge.expires_at > timezone.now() + timedelta(minutes=9)


def test_send_challenge_without_phone(patient, sms):
    Patient.objects.filter(pk=patient.pk).update(phone='')
    with pytest.raises(NoContactMethod):
        claiming.send_challenge(patient.pk)
    assert sms.sent == []


@pytest.mark.parametrize('mode', ['fail', 'explode'])
def test_notification_failure_keeps_the_challenge(patient, sms, mode):
    setattr(sms, mode, True)
    with pytest.raises(NotificationFailed):
        claiming.send_challenge(patient.pk)
    assert OtpChallenge.objects.filter(patient=patient, verified=False).count() == 1


def test_resend_supersedes_previous_code(patient, sms):
    claiming.send_challenge(patient.pk)
    first = sms.last_code
    res = claiming.resend_challenge(patient.pk)
    assert res['message'] == 'New OTP sent successfully'
    assert OtpChallenge.objects.filter(patient=patient).count() == 1
    second = sms.last_code
    if first != second:
        with pytest.raises(InvalidChallenge):
            _link(patient.pk, first)
    assert _link(patient.pk, second)['success'] is True


def test_verify_and_link_creates_and_binds_account(patient, sms):
    claiming.send_challenge(patient.pk)
    res = _link(patient.pk, sms.last_code, email='new@example.com')

    patient.refresh_from_db()
    account = User.objects.get(username='maria.s')
    assert patient.has_account is True
    assert patient.user_id == account.pk
    assert patient.email == 'new@example.com'
    assert account.role == User.ROLE_PATIENT
    assert account.account_status == User.STATUS_ACTIVE
    assert account.first_login is False
    assert account.full_name == 'Maria Santos'
    assert account.check_password(PASSWORD)
    assert OtpChallenge.objects.get(patient=patient).verified is True
    assert AuditEvent.objects.filter(action='record_link', object_id=patient.pk).exists()

    assert res['user']['patientId'] == patient.pk
    assert res['user']['isFirstLogin'] is False
    token = AccessToken(res['token'])
    assert token['patientId'] == patient.pk
    assert token['role'] == User.ROLE_PATIENT
    assert str(token['user_id']) == str(account.pk)


def test_verify_wrong_code(patient, sms):
    claiming.send_challenge(patient.pk)
    wrong = '000000' if sms.last_code != '000000' else '111111'
    with pytest.raises(InvalidChallenge):
        _link(patient.pk, wrong)
    assert not User.objects.filter(username='maria.s').exists()


def test_verify_expired_code(patient, sms):
    claiming.send_challenge(patient.pk)
    OtpChallenge.objects.filter(patient=patient).update(expires_at=timezone.now() - timedelta(seconds=1))
    with pytest.raises(ChallengeExpired):
        _link(patient.pk, sms.last_code)
    patient.refresh_from_db()
    assert patient.has_account is False


def test_code_cannot_be_reused(patient, sms):
    claiming.send_challenge(patient.pk)
    code = sms.last_code
    _link(patient.pk, code)
    with pytest.raises(ChallengeAlreadyUsed):
        _link(patient.pk, code, username='someone.else')


def test_taken_handle_leaves_challenge_unconsumed(patient, sms):
    User.objects.create_user(username='maria.s', password=PASSWORD)
    claiming.send_challenge(patient.pk)
    with pytest.raises(DuplicateHandle):
        _link(patient.pk, sms.last_code)
    assert OtpChallenge.objects.get(patient=patient).verified is False
    patient.refresh_from_db()
    assert patient.user_id is None
    # the same code still works with another handle
    assert _link(patient.pk, sms.last_code, username='maria.s2')['success'] is True


def test_weak_password_is_rejected_before_any_write(patient, sms):
    claiming.send_challenge(patient.pk)
    with pytest.raises(ValidationFailure):
        claiming.verify_and_link(patient.pk, sms.last_code, username='maria.s', password='123')
    assert OtpChallenge.objects.get(patient=patient).verified is False


def test_second_claim_after_a_successful_link_sees_already_linked(patient):
    # two valid challenges for the same record, as if issued before either claim committed
    expires = timezone.now() + timedelta(minutes=10)
    OtpChallenge.objects.create(patient=patient, phone=patient.phone, code='111111', expires_at=expires)
    OtpChallenge.objects.create(patient=patient, phone=patient.phone, code='222222', expires_at=expires)

    _link(patient.pk, '111111', username='winner')
    with pytest.raises(AlreadyLinked):
        _link(patient.pk, '222222', username='loser')
    assert not User.objects.filter(username='loser').exists()
    patient.refresh_from_db()
    assert patient.user.username == 'winner'


def test_send_challenge_to_linked_record(patient, sms):
    claiming.send_challenge(patient.pk)
    _link(patient.pk, sms.last_code)
    with pytest.raises(AlreadyLinked):
        claiming.send_challenge(patient.pk)


def test_prune_challenges(patient):
    now = timezone.now()
    OtpChallenge.objects.create(patient=patient, phone='1', code='1', expires_at=now - timedelta(minutes=1))
    OtpChallenge.objects.create(patient=patient, phone='1', code='2', expires_at=now + timedelta(minutes=5),
                                verified=True)
    keep = OtpChallenge.objects.create(patient=patient, phone='1', code='3', expires_at=now + timedelta(minutes=5))
    assert claiming.prune_challenges(now) == 2
    assert list(OtpChallenge.objects.values_list('id', flat=True)) == [keep.pk]


@pytest.mark.django_db(transaction=True)
def test_racing_claims_link_exactly_once():
    if connection.vendor == 'sqlite':
        pytest.skip('SQLite ignores SELECT ... FOR UPDATE; run against MySQL or PostgreSQL')
    record = Patient.objects.create(name='Maria Santos', date_of_birth=datetime.date(1990, 5, 17),
                                    phone='09171234567')
    expires = timezone.now() + timedelta(minutes=10)
    for code in ('111111', '222222'):
        OtpChallenge.objects.create(patient=record, phone=record.phone, code=code, expires_at=expires)

    barrier = threading.Barrier(2)
    outcomes = {}

    def claim(code, username):
        try:
            barrier.wait()
            _link(record.pk, code, username=username)
            outcomes[username] = 'linked'
        except AlreadyLinked:
            outcomes[username] = 'already_linked'
        except Exception as e:  # surfaced by the assertion below
            outcomes[username] = repr(e)
        finally:
            connection.close()

    threads = [threading.Thread(target=claim, args=('111111', 'first.claim')),
               threading.Thread(target=claim, args=('222222', 'second.claim'))]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert sorted(outcomes.values()) == ['already_linked', 'linked']
    record.refresh_from_db()
    winner = next(name for name, result in outcomes.items() if result == 'linked')
    assert record.user.username == winner
    assert User.objects.filter(role=User.ROLE_PATIENT).count() == 1
    assert OtpChallenge.objects.filter(patient=record, verified=True).count() == 1
