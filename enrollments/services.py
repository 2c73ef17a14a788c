"""
Enrollment request workflow.

PENDING -> CONTACTED -> APPROVED | REJECTED, with PENDING allowed to skip
straight to APPROVED or REJECTED. Approving a request is the moment the
manager has confirmed the off-platform payment: it activates the course
enrollment and records the payment in one transaction.
"""
import logging
from decimal import Decimal

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from backend.exceptions import AlreadyEnrolled, CourseUnavailable, DuplicateRequest, InvalidTransition
from student.models import CourseEnrollment
from users.models import telegram_link, whatsapp_link
from . import notifications
from .models import EnrollmentRequest, Payment

logger = logging.getLogger('enrollment_workflow')
User = get_user_model()


def handoff_message(enrollment_request):
    """Prefilled chat message the student sends to the manager"""
    tutor = enrollment_request.selected_tutor
    tutor_part = f" with tutor {tutor.display_name}" if tutor else ""
    return (
        f"Hello! I would like to enroll in the course \"{enrollment_request.course.title}\"{tutor_part}. "
        f"(Reference: {enrollment_request.id}) Please provide payment details."
    )


def manager_contact(text=None):
    """Configured manager contact details with chat links"""
    manager = settings.MANAGER_CONTACT
    return {
        'name': manager['name'],
        'phone': manager['phone'],
        'email': manager['email'],
        'whatsapp': manager['whatsapp'],
        'telegram': manager['telegram'].lstrip('@'),
        'working_hours': manager['working_hours'],
        'links': {
            'whatsapp': whatsapp_link(manager['whatsapp'], text),
            'telegram': telegram_link(manager['telegram']),
        },
    }


def manager_contact_handoff(enrollment_request):
    """
    What the student needs to complete the payment off-platform: who to
    write to, the prefilled message and the amount due.
    """
    text = handoff_message(enrollment_request)
    return {
        'reference': str(enrollment_request.id),
        'amount': str(enrollment_request.course.price),
        'currency': settings.PAYMENT_CURRENCY,
        'message': text,
        'preferred_contact': enrollment_request.preferred_contact,
        'manager': manager_contact(text),
    }


def _active_enrollment_exists(course, email):
    return CourseEnrollment.objects.filter(
        course=course, student__email__iexact=email, status='ACTIVE'
    ).exists()


def create_request(course, data, user=None):
    """
    Store a new PENDING request and notify staff.

    Raises CourseUnavailable for courses not open for enrollment,
    DuplicateRequest when the email already has an open request for the
    course and AlreadyEnrolled when it is actively enrolled.
    """
    if course.status != 'ACTIVE':
        raise CourseUnavailable()

    email = data['student_email'].lower()
    if EnrollmentRequest.objects.filter(
        course=course, student_email__iexact=email, status__in=EnrollmentRequest.OPEN_STATUSES
    ).exists():
        raise DuplicateRequest()
    if _active_enrollment_exists(course, email):
        raise AlreadyEnrolled('You are already enrolled in this course')

    student = user if user is not None and user.is_authenticated else None
    if student is None:
        student = User.objects.filter(email__iexact=email).first()

    enrollment_request = EnrollmentRequest.objects.create(
        course=course,
        student=student,
        student_name=data['student_name'],
        student_email=email,
        student_phone=data['student_phone'],
        whatsapp_number=data.get('whatsapp_number', ''),
        telegram_username=data.get('telegram_username', ''),
        preferred_contact=data.get('preferred_contact', 'WHATSAPP'),
        selected_tutor=data.get('selected_tutor'),
        message=data.get('message', ''),
    )
    logger.info(f"Enrollment request {enrollment_request.id} created: {email} -> '{course.title}'")

    transaction.on_commit(lambda: notifications.notify_new_request(enrollment_request))
    return enrollment_request


def _check_transition(enrollment_request, new_status):
    if not enrollment_request.can_transition(new_status):
        raise InvalidTransition(
            f"Cannot change status from {enrollment_request.status} to {new_status}"
        )


def _mark_reviewed(enrollment_request, new_status, reviewer, notes):
    enrollment_request.status = new_status
    enrollment_request.reviewed_by = reviewer
    enrollment_request.reviewed_at = timezone.now()
    if notes:
        enrollment_request.admin_notes = notes


def mark_contacted(enrollment_request, reviewer, notes=''):
    _check_transition(enrollment_request, 'CONTACTED')
    _mark_reviewed(enrollment_request, 'CONTACTED', reviewer, notes)
    enrollment_request.save()
    logger.info(f"Enrollment request {enrollment_request.id} marked contacted by {reviewer.email}")
    return enrollment_request


def _split_name(full_name):
    parts = (full_name or '').strip().split(' ', 1)
    return parts[0], parts[1] if len(parts) > 1 else ''


def find_or_create_student(enrollment_request):
    """
    The account the enrollment belongs to. Students who never signed in get
    a local account that is linked to Firebase by email on first sign-in.
    """
    student = enrollment_request.student
    if student is None:
        student = User.objects.filter(email__iexact=enrollment_request.student_email).first()
    if student is None:
        first_name, last_name = _split_name(enrollment_request.student_name)
        student = User.objects.create_user(
            email=enrollment_request.student_email,
            first_name=first_name,
            last_name=last_name,
            role=User.Role.STUDENT,
        )
        logger.info(f"Created student account {student.email} from enrollment request")

    profile = student.profile
    changed = False
    for field, value in (
        ('phone', enrollment_request.student_phone),
        ('whatsapp', enrollment_request.whatsapp_number),
        ('telegram', enrollment_request.telegram_username),
    ):
        if value and not getattr(profile, field):
            setattr(profile, field, value)
            changed = True
    if changed:
        profile.save()
    return student


def enroll_student(student, course, enrolled_by, tutor=None, payment_method='MANUAL',
                   amount=None, reference=''):
    """
    Create or re-activate the student's enrollment as ACTIVE/PAID and record
    a completed payment. Call inside a transaction.

    Raises CourseUnavailable when the course is not ACTIVE or full and
    AlreadyEnrolled when the enrollment is already active.
    """
    if course.status != 'ACTIVE':
        raise CourseUnavailable()

    enrollment = CourseEnrollment.objects.select_for_update().filter(course=course, student=student).first()
    if enrollment is not None and enrollment.status == 'ACTIVE':
        raise AlreadyEnrolled()
    if course.is_full and not (enrollment is not None and enrollment.status == 'COMPLETED'):
        raise CourseUnavailable('Course is full')

    tutor = tutor or course.primary_tutor
    if enrollment is None:
        enrollment = CourseEnrollment(course=course, student=student)
    enrollment.tutor = tutor
    enrollment.enrolled_by = enrolled_by
    enrollment.status = 'ACTIVE'
    enrollment.payment_status = 'PAID'
    enrollment.payment_method = payment_method
    enrollment.completed_at = None
    enrollment.save()

    payment = Payment.objects.create(
        enrollment=enrollment,
        amount=amount if amount is not None else Decimal(course.price),
        currency=settings.PAYMENT_CURRENCY,
        method=payment_method,
        status='COMPLETED',
        reference=reference,
        confirmed_by=enrolled_by,
        confirmed_at=timezone.now(),
    )
    return enrollment, payment


def approve_request(enrollment_request, reviewer, notes='', amount=None,
                    payment_method='CONTACT_MANAGER', reference=''):
    """
    Confirm the payment and activate the enrollment.

    Returns (enrollment_request, enrollment, payment).
    """
    _check_transition(enrollment_request, 'APPROVED')

    with transaction.atomic():
        locked = EnrollmentRequest.objects.select_for_update().select_related('course').get(
            pk=enrollment_request.pk
        )
        _check_transition(locked, 'APPROVED')

        student = find_or_create_student(locked)
        enrollment, payment = enroll_student(
            student,
            locked.course,
            enrolled_by=reviewer,
            tutor=locked.selected_tutor,
            payment_method=payment_method,
            amount=amount,
            reference=reference or str(locked.id),
        )

        locked.student = student
        locked.enrollment = enrollment
        _mark_reviewed(locked, 'APPROVED', reviewer, notes)
        locked.save()

        transaction.on_commit(lambda: notifications.notify_request_reviewed(locked))

    logger.info(
        f"Enrollment request {locked.id} approved by {reviewer.email}: "
        f"{student.email} enrolled in '{locked.course.title}' ({payment.amount} {payment.currency})"
    )
    return locked, enrollment, payment


def reject_request(enrollment_request, reviewer, notes=''):
    _check_transition(enrollment_request, 'REJECTED')
    _mark_reviewed(enrollment_request, 'REJECTED', reviewer, notes)
    enrollment_request.save()
    logger.info(f"Enrollment request {enrollment_request.id} rejected by {reviewer.email}")

    transaction.on_commit(lambda: notifications.notify_request_reviewed(enrollment_request))
    return enrollment_request


def change_status(enrollment_request, new_status, reviewer, notes=''):
    """Apply a status change through the matching transition."""
    if new_status == enrollment_request.status:
        if notes:
            enrollment_request.admin_notes = notes
            enrollment_request.save(update_fields=['admin_notes', 'updated_at'])
        return enrollment_request
    if new_status == 'CONTACTED':
        return mark_contacted(enrollment_request, reviewer, notes)
    if new_status == 'APPROVED':
        return approve_request(enrollment_request, reviewer, notes)[0]
    if new_status == 'REJECTED':
        return reject_request(enrollment_request, reviewer, notes)
    raise InvalidTransition(f"Cannot change status from {enrollment_request.status} to {new_status}")
