import logging

from django.db import transaction
from django.db.models import Q
from django.shortcuts import get_object_or_404
from rest_framework import permissions, status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from authentication.permissions import IsStaffRole
from backend.exceptions import ServiceError, error_response
from student.models import CourseEnrollment
from . import services
from .models import EnrollmentRequest, Payment
from .serializers import (
    ApproveSerializer, CourseEnrollmentSerializer, CourseEnrollmentUpdateSerializer,
    DirectEnrollSerializer, EnrollmentRequestCreateSerializer, EnrollmentRequestSerializer,
    EnrollmentRequestUpdateSerializer, PaymentSerializer, ReviewSerializer
)

logger = logging.getLogger('enrollment_workflow')


class EnrollmentPagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100


def _invalid(message, errors):
    return Response({'error': message, 'details': errors}, status=status.HTTP_400_BAD_REQUEST)


def _paginated(request, queryset, serializer_class):
    paginator = EnrollmentPagination()
    page = paginator.paginate_queryset(queryset, request)
    return paginator.get_paginated_response(serializer_class(page, many=True).data)


class EnrollmentRequestListCreateView(APIView):
    """
    POST: anyone submits a request (throttled)
    GET: staff see every request, students their own
    """
    throttle_scope = 'enrollment_request'

    def get_permissions(self):
        if self.request.method == 'POST':
            return [permissions.AllowAny()]
        return [permissions.IsAuthenticated()]

    def get_throttles(self):
        if self.request.method == 'POST':
            return [ScopedRateThrottle()]
        return []

    def get(self, request):
        requests = EnrollmentRequest.objects.select_related('course', 'selected_tutor', 'reviewed_by')

        if not request.user.is_staff_role:
            requests = requests.filter(Q(student=request.user) | Q(student_email__iexact=request.user.email))

        request_status = request.query_params.get('status')
        if request_status:
            requests = requests.filter(status=request_status.upper())

        course_id = request.query_params.get('course_id')
        if course_id:
            requests = requests.filter(course_id=course_id)

        search = request.query_params.get('search', '').strip()
        if search:
            requests = requests.filter(
                Q(student_name__icontains=search) |
                Q(student_email__icontains=search) |
                Q(student_phone__icontains=search) |
                Q(course__title__icontains=search)
            )

        return _paginated(request, requests, EnrollmentRequestSerializer)

    def post(self, request):
        serializer = EnrollmentRequestCreateSerializer(data=request.data, context={'request': request})
        if not serializer.is_valid():
            return _invalid('Invalid enrollment request', serializer.errors)

        data = serializer.validated_data
        try:
            enrollment_request = services.create_request(data['course'], data, user=request.user)
        except ServiceError as e:
            return error_response(e)

        return Response({
            'request': EnrollmentRequestSerializer(enrollment_request).data,
            'payment': services.manager_contact_handoff(enrollment_request),
            'message': 'Request received. Contact our manager to complete the payment.',
        }, status=status.HTTP_201_CREATED)


class EnrollmentRequestDetailView(APIView):
    """
    GET: staff or the requesting student
    PATCH: staff change status (through the workflow) and notes
    DELETE: staff
    """
    permission_classes = [permissions.IsAuthenticated]

    def _get_request(self, request_id):
        return get_object_or_404(
            EnrollmentRequest.objects.select_related('course', 'selected_tutor', 'reviewed_by'),
            id=request_id
        )

    def get(self, request, request_id):
        enrollment_request = self._get_request(request_id)
        user = request.user
        is_own = enrollment_request.student_id == user.id or \
            enrollment_request.student_email.lower() == user.email.lower()
        if not (user.is_staff_role or is_own):
            return Response({'error': 'Enrollment request not found'}, status=status.HTTP_404_NOT_FOUND)

        data = EnrollmentRequestSerializer(enrollment_request).data
        if enrollment_request.is_open:
            data['payment'] = services.manager_contact_handoff(enrollment_request)
        return Response(data)

    def patch(self, request, request_id):
        if not request.user.is_staff_role:
            return Response({'error': 'Staff access required'}, status=status.HTTP_403_FORBIDDEN)

        enrollment_request = self._get_request(request_id)
        serializer = EnrollmentRequestUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid('Invalid data', serializer.errors)

        data = serializer.validated_data
        try:
            enrollment_request = services.change_status(
                enrollment_request,
                data.get('status', enrollment_request.status),
                request.user,
                data.get('admin_notes', ''),
            )
        except ServiceError as e:
            return error_response(e)

        return Response(EnrollmentRequestSerializer(enrollment_request).data)

    def delete(self, request, request_id):
        if not request.user.is_staff_role:
            return Response({'error': 'Staff access required'}, status=status.HTTP_403_FORBIDDEN)

        enrollment_request = self._get_request(request_id)
        enrollment_request.delete()
        logger.info(f"Enrollment request {request_id} deleted by {request.user.email}")
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsStaffRole])
def approve_request(request, request_id):
    """
    Confirm payment and activate the enrollment. Optional ``amount``,
    ``payment_method`` and ``reference`` describe the received payment.
    """
    enrollment_request = get_object_or_404(EnrollmentRequest, id=request_id)
    serializer = ApproveSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid('Invalid data', serializer.errors)

    data = serializer.validated_data
    try:
        enrollment_request, enrollment, payment = services.approve_request(
            enrollment_request,
            request.user,
            notes=data['admin_notes'],
            amount=data.get('amount'),
            payment_method=data['payment_method'],
            reference=data['reference'],
        )
    except ServiceError as e:
        return error_response(e)

    return Response({
        'message': 'Enrollment request approved and student enrolled successfully',
        'request': EnrollmentRequestSerializer(enrollment_request).data,
        'enrollment': CourseEnrollmentSerializer(enrollment).data,
        'payment': PaymentSerializer(payment).data,
    })


@api_view(['POST'])
@permission_classes([IsStaffRole])
def reject_request(request, request_id):
    enrollment_request = get_object_or_404(EnrollmentRequest, id=request_id)
    serializer = ReviewSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid('Invalid data', serializer.errors)

    try:
        enrollment_request = services.reject_request(
            enrollment_request, request.user, serializer.validated_data['admin_notes']
        )
    except ServiceError as e:
        return error_response(e)

    return Response(EnrollmentRequestSerializer(enrollment_request).data)


@api_view(['POST'])
@permission_classes([IsStaffRole])
def mark_contacted(request, request_id):
    enrollment_request = get_object_or_404(EnrollmentRequest, id=request_id)
    serializer = ReviewSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid('Invalid data', serializer.errors)

    try:
        enrollment_request = services.mark_contacted(
            enrollment_request, request.user, serializer.validated_data['admin_notes']
        )
    except ServiceError as e:
        return error_response(e)

    return Response(EnrollmentRequestSerializer(enrollment_request).data)


@api_view(['POST'])
@permission_classes([IsStaffRole])
def direct_enroll(request):
    """Enroll an existing user without a request (manual payment)."""
    serializer = DirectEnrollSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid('Invalid data', serializer.errors)

    data = serializer.validated_data
    try:
        with transaction.atomic():
            enrollment, payment = services.enroll_student(
                data['student'],
                data['course'],
                enrolled_by=request.user,
                tutor=data['tutor'],
                payment_method=data['payment_method'],
                amount=data.get('amount'),
                reference=data['reference'],
            )
    except ServiceError as e:
        return error_response(e)

    logger.info(f"{request.user.email} enrolled {data['student'].email} in '{data['course'].title}' directly")
    return Response({
        'enrollment': CourseEnrollmentSerializer(enrollment).data,
        'payment': PaymentSerializer(payment).data,
    }, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsStaffRole])
def enrollment_list(request):
    enrollments = CourseEnrollment.objects.select_related('student', 'course', 'tutor', 'enrolled_by')

    for param, field in (('status', 'status'), ('payment_status', 'payment_status')):
        value = request.query_params.get(param)
        if value:
            enrollments = enrollments.filter(**{field: value.upper()})

    course_id = request.query_params.get('course_id')
    if course_id:
        enrollments = enrollments.filter(course_id=course_id)

    tutor_id = request.query_params.get('tutor_id')
    if tutor_id:
        enrollments = enrollments.filter(tutor_id=tutor_id)

    search = request.query_params.get('search', '').strip()
    if search:
        enrollments = enrollments.filter(
            Q(student__email__icontains=search) |
            Q(student__first_name__icontains=search) |
            Q(student__last_name__icontains=search) |
            Q(course__title__icontains=search)
        )

    return _paginated(request, enrollments, CourseEnrollmentSerializer)


class EnrollmentDetailView(APIView):
    permission_classes = [IsStaffRole]

    def get(self, request, enrollment_id):
        enrollment = get_object_or_404(CourseEnrollment, id=enrollment_id)
        data = CourseEnrollmentSerializer(enrollment).data
        data['payments'] = PaymentSerializer(enrollment.payments.all(), many=True).data
        return Response(data)

    def patch(self, request, enrollment_id):
        enrollment = get_object_or_404(CourseEnrollment, id=enrollment_id)
        serializer = CourseEnrollmentUpdateSerializer(enrollment, data=request.data, partial=True)
        if not serializer.is_valid():
            return _invalid('Invalid enrollment data', serializer.errors)

        enrollment = serializer.save()
        logger.info(
            f"Enrollment {enrollment.id} updated by {request.user.email}: "
            f"status={enrollment.status}, payment={enrollment.payment_status}"
        )
        return Response(CourseEnrollmentSerializer(enrollment).data)


@api_view(['GET'])
@permission_classes([IsStaffRole])
def payment_list(request):
    payments = Payment.objects.select_related('enrollment__student', 'enrollment__course', 'confirmed_by')
    payment_status = request.query_params.get('status')
    if payment_status:
        payments = payments.filter(status=payment_status.upper())
    course_id = request.query_params.get('course_id')
    if course_id:
        payments = payments.filter(enrollment__course_id=course_id)
    return _paginated(request, payments, PaymentSerializer)


@api_view(['GET'])
@permission_classes([permissions.AllowAny])
def manager_contact(request):
    return Response(services.manager_contact())
