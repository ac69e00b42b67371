"""
Integration tests for the back office REST API.

These exercise the HTTP surface end to end: session tokens, role checks,
the staff credential flow, record claiming and billing.  Service-level
behaviour is covered in the neighbouring test modules.
"""
import datetime
from decimal import Decimal
from unittest import mock

from rest_framework import status
from rest_framework.test import APIClient, APITestCase

from backoffice.models import Employee, Patient, Payment, TreatmentRecord, User
from backoffice.services.notifications import SendResult

PASSWORD = 'Str0ng!Pass2024'


class BackofficeAPITests(APITestCase):
    def setUp(self) -> None:
        self.staff = User.objects.create_user(username='frontdesk', password=PASSWORD,
                                              role=User.ROLE_CLINICIAN, full_name='Front Desk')
        self.patient_user = User.objects.create_user(username='someone', password=PASSWORD,
                                                     role=User.ROLE_PATIENT)
        self.employee = Employee.objects.create(name='Ana Reyes', position=Employee.POSITION_ASSISTANT)
        self.record = Patient.objects.create(
            name='Maria Santos',
            date_of_birth=datetime.date(1990, 5, 17),
            phone='09171234567',
            last_visit=datetime.date(2024, 3, 1),
        )

    def authenticate(self, user: User) -> APIClient:
        client = APIClient()
        client.force_authenticate(user=user)
        return client

    def login(self, username, password):
        return self.client.post('/api/auth/login', {'username': username, 'password': password}, format='json')

    # -----------------------------------------------------------------
    # Auth
    # -----------------------------------------------------------------
    def test_login_returns_bearer_token(self):
        r = self.login('frontdesk', PASSWORD)
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.assertTrue(r.data['token'])
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {r.data['token']}")
        self.assertEqual(client.get('/api/employees').status_code, status.HTTP_200_OK)

    def test_login_failure_is_uniform(self):
        unknown = self.login('nobody', PASSWORD)
        wrong = self.login('frontdesk', 'nope')
        self.assertEqual(unknown.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(wrong.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(unknown.data, wrong.data)
        self.assertEqual(unknown.data['error']['code'], 'invalid_credentials')

    def test_anonymous_and_patient_cannot_reach_staff_endpoints(self):
        self.assertEqual(self.client.get('/api/employees').status_code, status.HTTP_401_UNAUTHORIZED)
        r = self.authenticate(self.patient_user).get('/api/payments')
        self.assertEqual(r.status_code, status.HTTP_403_FORBIDDEN)

    def test_check_username(self):
        r = self.client.get('/api/auth/check-username', {'username': 'frontdesk'})
        self.assertEqual(r.data, {'available': False})
        r = self.client.get('/api/auth/check-username', {'username': 'brand.new'})
        self.assertEqual(r.data, {'available': True})

    def test_update_settings_renames_account(self):
        client = self.authenticate(self.staff)
        r = client.put('/api/auth/update-settings', {'fullName': 'Dr. Desk', 'username': 'drdesk'}, format='json')
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.staff.refresh_from_db()
        self.assertEqual((self.staff.username, self.staff.full_name), ('drdesk', 'Dr. Desk'))
        r = client.put('/api/auth/update-settings', {'username': 'someone'}, format='json')
        self.assertEqual(r.status_code, status.HTTP_409_CONFLICT)

    # -----------------------------------------------------------------
    # Staff credentials
    # -----------------------------------------------------------------
    def test_staff_credential_flow(self):
        staff = self.authenticate(self.staff)
        url = f'/api/employees/{self.employee.pk}/generate-credentials'
        r = staff.post(url)
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        username, secret = r.data['username'], r.data['temporaryPassword']
        self.assertEqual(username, 'ana.reyes')
        detail = staff.get(f'/api/employees/{self.employee.pk}').data
        self.assertEqual(detail['generatedCode'], secret)
        self.assertFalse(detail['isCodeUsed'])

        r = self.login(username, secret)
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.assertEqual(r.data['accountStatus'], User.STATUS_ACTIVE)
        self.assertTrue(r.data['user']['isFirstLogin'])
        self.assertEqual(r.data['role'], User.ROLE_ASSISTANT)

        me = APIClient()
        me.credentials(HTTP_AUTHORIZATION=f"Bearer {r.data['token']}")
        r = me.post('/api/auth/change-password',
                    {'currentPassword': secret, 'newPassword': 'Brand!New7Secret'}, format='json')
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.assertFalse(User.objects.get(username=username).first_login)

        r = staff.post(url)
        self.assertEqual(r.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(r.data['error']['code'], 'already_activated')

        listing = staff.get('/api/employees').data
        row = next(e for e in listing if e['id'] == self.employee.pk)
        self.assertTrue(row['isCodeUsed'])
        self.assertEqual(row['username'], username)
        self.assertIsNone(row['generatedCode'])

    def test_employee_crud(self):
        staff = self.authenticate(self.staff)
        r = staff.post('/api/employees', {'name': 'Ben <b>Cruz</b>', 'position': 'dentist'}, format='json')
        self.assertEqual(r.status_code, status.HTTP_201_CREATED)
        emp_id = r.data['employeeId']
        self.assertEqual(Employee.objects.get(pk=emp_id).name, 'Ben Cruz')

        r = staff.put(f'/api/employees/{emp_id}', {'phone': '0917'}, format='json')
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.assertEqual(r.data['employee']['phone'], '0917')

        self.assertEqual(staff.delete(f'/api/employees/{emp_id}').status_code, status.HTTP_200_OK)
        r = staff.get(f'/api/employees/{emp_id}')
        self.assertEqual(r.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(r.data['error']['code'], 'not_found')

    # -----------------------------------------------------------------
    # Patients
    # -----------------------------------------------------------------
    def test_patient_crud(self):
        staff = self.authenticate(self.staff)
        r = staff.post('/api/patients', {
            'name': 'Jose <i>Rizal</i>', 'dateOfBirth': '1980-06-19', 'phone': '09181112222',
            'totalBalance': '999.00', 'hasAccount': True,
        }, format='json')
        self.assertEqual(r.status_code, status.HTTP_201_CREATED)
        pid = r.data['patient']['id']
        self.assertEqual(r.data['patient']['name'], 'Jose Rizal')
        self.assertEqual(r.data['patient']['totalBalance'], '0.00')
        self.assertFalse(r.data['patient']['hasAccount'])

        r = staff.put(f'/api/patients/{pid}', {'allergies': 'latex', 'totalBalance': '5.00'}, format='json')
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.assertEqual(r.data['patient']['allergies'], 'latex')
        self.assertEqual(Patient.objects.get(pk=pid).total_balance, Decimal('0.00'))

        names = [p['name'] for p in staff.get('/api/patients').data]
        self.assertIn('Jose Rizal', names)

        self.assertEqual(staff.delete(f'/api/patients/{pid}').status_code, status.HTTP_200_OK)
        self.assertEqual(staff.get(f'/api/patients/{pid}').status_code, status.HTTP_404_NOT_FOUND)

    def test_deleting_linked_patient_removes_its_account(self):
        Patient.objects.filter(pk=self.record.pk).update(user=self.patient_user, has_account=True)
        staff = self.authenticate(self.staff)
        self.assertEqual(staff.delete(f'/api/patients/{self.record.pk}').status_code, status.HTTP_200_OK)
        self.assertFalse(User.objects.filter(pk=self.patient_user.pk).exists())
        self.assertEqual(self.login('someone', PASSWORD).status_code, status.HTTP_401_UNAUTHORIZED)

    def test_patient_cannot_manage_patients(self):
        r = self.authenticate(self.patient_user).get('/api/patients')
        self.assertEqual(r.status_code, status.HTTP_403_FORBIDDEN)

    # -----------------------------------------------------------------
    # Record claiming
    # -----------------------------------------------------------------
    def test_claiming_flow(self):
        sent = []
        gateway = mock.Mock()
        gateway.send.side_effect = lambda phone, text: sent.append(text) or SendResult(True)

        with mock.patch('backoffice.services.claiming.get_sms_gateway', return_value=gateway):
            r = self.client.post('/api/patient-claiming/search',
                                 {'fullName': 'maria', 'dateOfBirth': '1990-05-17', 'phone': '1234567'},
                                 format='json')
            self.assertEqual(r.data['patientId'], self.record.pk)
            self.assertEqual(r.data['patientInfo']['phone'], '091****4567')

            r = self.client.post('/api/patient-claiming/select',
                                 {'patientId': self.record.pk, 'lastVisit': '2024-03-02'}, format='json')
            self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)
            self.assertEqual(r.data['error']['code'], 'verification_mismatch')

            r = self.client.post('/api/patient-claiming/send-otp', {'patientId': self.record.pk}, format='json')
            self.assertEqual(r.status_code, status.HTTP_200_OK)
            self.assertNotIn('09171234567', str(r.data))

        code = self.record.otp_challenges.get().code
        self.assertIn(code, sent[-1])
        body = {'patientId': self.record.pk, 'otp': code,
                'userData': {'username': 'maria.s', 'password': PASSWORD}}
        r = self.client.post('/api/patient-claiming/verify-and-link', body, format='json')
        self.assertEqual(r.status_code, status.HTTP_201_CREATED)
        self.assertEqual(r.data['user']['patientId'], self.record.pk)

        r = self.client.post('/api/patient-claiming/verify-and-link', body, format='json')
        self.assertEqual(r.data['error']['code'], 'challenge_already_used')

        r = self.login('maria.s', PASSWORD)
        self.assertEqual(r.data['user']['patientId'], self.record.pk)
        self.assertFalse(r.data['user']['isFirstLogin'])

    def test_send_otp_gateway_failure_is_503(self):
        gateway = mock.Mock()
        gateway.send.return_value = SendResult(False, 'down')
        with mock.patch('backoffice.services.claiming.get_sms_gateway', return_value=gateway):
            r = self.client.post('/api/patient-claiming/send-otp', {'patientId': self.record.pk}, format='json')
        self.assertEqual(r.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertEqual(r.data['error']['code'], 'dependency_failure')

    # -----------------------------------------------------------------
    # Billing
    # -----------------------------------------------------------------
    def test_treatment_and_payment_endpoints(self):
        staff = self.authenticate(self.staff)
        r = staff.post('/api/treatment-records',
                       {'patientId': self.record.pk, 'treatment': 'Crown', 'cost': '2000.00'}, format='json')
        self.assertEqual(r.status_code, status.HTTP_201_CREATED)
        tid = r.data['record']['id']
        self.assertEqual(r.data['record']['remainingBalance'], '2000.00')

        r = staff.post('/api/payments', {
            'patientId': self.record.pk, 'treatmentRecordId': tid, 'amount': '500.00',
            'paymentDate': '2024-06-01', 'paymentMethod': 'cash',
            # derived fields from the client are ignored
            'remainingBalance': '0.00',
        }, format='json')
        self.assertEqual(r.status_code, status.HTTP_201_CREATED)
        pid = r.data['paymentId']
        self.assertEqual(TreatmentRecord.objects.get(pk=tid).remaining_balance, Decimal('1500.00'))

        rows = staff.get(f'/api/treatment-records/patient/{self.record.pk}').data
        self.assertEqual(rows[0]['amountPaid'], '500.00')
        self.assertEqual(len(staff.get('/api/payments', {'patientId': self.record.pk}).data), 1)

        r = staff.put(f'/api/treatment-records/{tid}', {'cost': '400.00'}, format='json')
        self.assertEqual(r.data['record']['remainingBalance'], '0.00')

        self.assertEqual(staff.delete(f'/api/payments/{pid}').status_code, status.HTTP_200_OK)
        self.assertFalse(Payment.objects.exists())
        self.record.refresh_from_db()
        self.assertEqual(self.record.total_balance, Decimal('400.00'))

        self.assertEqual(staff.delete(f'/api/treatment-records/{tid}').status_code, status.HTTP_200_OK)
        self.record.refresh_from_db()
        self.assertEqual(self.record.total_balance, Decimal('0.00'))

    def test_zero_payment_rejected(self):
        staff = self.authenticate(self.staff)
        r = staff.post('/api/payments', {'patientId': self.record.pk, 'amount': '0',
                                         'paymentDate': '2024-06-01', 'paymentMethod': 'cash'}, format='json')
        self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(r.data['error']['code'], 'validation_failure')

    def test_healthz(self):
        r = self.client.get('/healthz')
        self.assertEqual(r.status_code, 200)
        self.assertTrue(r.json()['ok'])
