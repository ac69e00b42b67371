"""
Employee views.

Staff manage employee records here and issue login credentials for
them.  Credential issuance returns the one-time secret exactly once per
call; regenerating is only possible until the employee first logs in.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from backoffice.models import Employee
from backoffice.permissions import IsStaffRole
from backoffice.serializers.employee import EmployeeSerializer
from backoffice.services import staff_credentials


def _serialize_employee(e: Employee) -> dict:
    user = e.user
    return {
        'id': e.id,
        'name': e.name,
        'position': e.position,
        'phone': e.phone,
        'email': e.email,
        'address': e.address,
        'dateHired': e.date_hired.isoformat() if e.date_hired else None,
        'isCodeUsed': e.is_code_used,
        # handed over by the front desk; hidden once the employee has logged in
        'generatedCode': None if e.is_code_used else e.generated_code,
        'hasCredentials': bool(e.user_id),
        'username': user.username if user else None,
        'isFirstLogin': user.first_login if user else None,
        'accountStatus': user.account_status if user else None,
        'createdAt': e.created_at.isoformat() if e.created_at else None,
    }


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def employees(request):
    if request.method == 'GET':
        qs = Employee.objects.select_related('user').order_by('-created_at', '-id')
        return Response([_serialize_employee(e) for e in qs])
    s = EmployeeSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    e = staff_credentials.create_employee(**s.to_service_fields())
    return Response({'ok': True, 'message': 'Employee added successfully', 'employeeId': e.id},
                    status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, IsStaffRole])
def employee_detail(request, employee_id: int):
    if request.method == 'GET':
        return Response(_serialize_employee(staff_credentials.get_employee(employee_id)))
    if request.method == 'DELETE':
        staff_credentials.delete_employee(employee_id)
        return Response({'ok': True, 'message': 'Employee deleted successfully'})
    s = EmployeeSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    e = staff_credentials.update_employee(employee_id, **s.to_service_fields())
    return Response({'ok': True, 'message': 'Employee updated successfully', 'employee': _serialize_employee(e)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def generate_credentials(request, employee_id: int):
    issued = staff_credentials.issue_credentials(employee_id, issued_by=request.user)
    return Response({
        'ok': True,
        'message': 'Credentials generated successfully',
        'username': issued.username,
        'temporaryPassword': issued.secret,
    })
