"""
Domain errors raised by service functions. Views turn them into JSON
responses with ``error_response``.
"""
from rest_framework import status
from rest_framework.response import Response


class ServiceError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Request could not be processed'

    def __init__(self, message=None, details=None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class EnrollmentWorkflowError(ServiceError):
    default_message = 'Enrollment request could not be processed'


class InvalidTransition(EnrollmentWorkflowError):
    default_message = 'Invalid status transition'


class DuplicateRequest(EnrollmentWorkflowError):
    status_code = status.HTTP_409_CONFLICT
    default_message = 'A pending request for this course already exists'


class AlreadyEnrolled(EnrollmentWorkflowError):
    status_code = status.HTTP_409_CONFLICT
    default_message = 'Student is already enrolled in this course'


class CourseUnavailable(EnrollmentWorkflowError):
    default_message = 'Course is not open for enrollment'


class AlreadySubmitted(ServiceError):
    status_code = status.HTTP_409_CONFLICT
    default_message = 'Already submitted'


class NotEnrolled(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = 'You are not enrolled in this course'


class ChallengeClosed(ServiceError):
    default_message = 'Challenge is not open for submissions'


class ChatAccessDenied(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'Chat not found'


class NotMessageSender(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = 'You can only change your own messages'


def error_response(exc):
    payload = {'error': exc.message}
    if exc.details is not None:
        payload['details'] = exc.details
    return Response(payload, status=exc.status_code)
