from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.core import mail
from django.core.cache import caches
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APITestCase

from backend.exceptions import AlreadyEnrolled, CourseUnavailable, DuplicateRequest, InvalidTransition
from courses.models import Course, CourseTutor
from student.models import CourseEnrollment
from . import services
from .models import EnrollmentRequest, Payment
from .notifications import SlackNotificationService

User = get_user_model()

REQUEST_DATA = {
    'student_name': 'Dana Nurlanovna',
    'student_email': 'Dana@Test.com',
    'student_phone': '+7 700 111 22 33',
    'whatsapp_number': '+77001112233',
    'preferred_contact': 'WHATSAPP',
}


def make_course(**kwargs):
    defaults = {
        'title': 'NUET Mathematics',
        'description': 'Full preparation course for the NUET maths section',
        'price': Decimal('45000.00'),
        'status': 'ACTIVE',
    }
    defaults.update(kwargs)
    return Course.objects.create(**defaults)


def make_request(course, **kwargs):
    data = dict(REQUEST_DATA, student_email='dana@test.com', student_phone='+77001112233')
    data.update(kwargs)
    return EnrollmentRequest.objects.create(course=course, **data)


class EnrollmentWorkflowTest(TestCase):

    def setUp(self):
        self.manager = User.objects.create_user(email='manager@test.com', role=User.Role.MANAGER)
        self.tutor = User.objects.create_user(email='tutor@test.com', role=User.Role.TUTOR)
        self.course = make_course()
        CourseTutor.objects.create(course=self.course, tutor=self.tutor, is_primary=True)

    def test_transitions(self):
        request = make_request(self.course)
        self.assertTrue(request.can_transition('CONTACTED'))
        self.assertTrue(request.can_transition('APPROVED'))
        self.assertFalse(request.can_transition('PENDING'))

        request.status = 'APPROVED'
        self.assertFalse(request.can_transition('REJECTED'))
        self.assertFalse(request.can_transition('CONTACTED'))

    def test_approve_creates_student_enrollment_and_payment(self):
        request = make_request(self.course, telegram_username='dana_n')

        request, enrollment, payment = services.approve_request(request, self.manager)

        student = User.objects.get(email='dana@test.com')
        self.assertEqual(student.role, User.Role.STUDENT)
        self.assertEqual(student.first_name, 'Dana')
        self.assertEqual(student.profile.whatsapp, '+77001112233')
        self.assertEqual(student.profile.telegram, 'dana_n')

        self.assertEqual(request.status, 'APPROVED')
        self.assertEqual(request.reviewed_by, self.manager)
        self.assertIsNotNone(request.reviewed_at)
        self.assertEqual(request.enrollment, enrollment)

        self.assertEqual(enrollment.status, 'ACTIVE')
        self.assertEqual(enrollment.payment_status, 'PAID')
        self.assertEqual(enrollment.payment_method, 'CONTACT_MANAGER')
        self.assertEqual(enrollment.tutor, self.tutor)
        self.assertEqual(enrollment.enrolled_by, self.manager)

        self.assertEqual(payment.status, 'COMPLETED')
        self.assertEqual(payment.amount, Decimal('45000.00'))
        self.assertEqual(payment.currency, 'KZT')

    def test_approve_reactivates_cancelled_enrollment(self):
        student = User.objects.create_user(email='dana@test.com')
        old = CourseEnrollment.objects.create(course=self.course, student=student, status='CANCELLED')

        _, enrollment, _ = services.approve_request(make_request(self.course), self.manager, amount=Decimal('1000'))

        self.assertEqual(enrollment.pk, old.pk)
        self.assertEqual(enrollment.status, 'ACTIVE')
        self.assertEqual(CourseEnrollment.objects.count(), 1)
        self.assertEqual(Payment.objects.get().amount, Decimal('1000'))

    def test_approve_refused_when_course_full(self):
        self.course.max_students = 1
        self.course.save()
        other = User.objects.create_user(email='other@test.com')
        CourseEnrollment.objects.create(course=self.course, student=other, status='ACTIVE')

        with self.assertRaises(CourseUnavailable):
            services.approve_request(make_request(self.course), self.manager)
        self.assertEqual(EnrollmentRequest.objects.get().status, 'PENDING')

    def test_completed_enrollments_keep_their_seat(self):
        self.course.max_students = 1
        self.course.save()
        graduate = User.objects.create_user(email='dana@test.com')
        CourseEnrollment.objects.create(course=self.course, student=graduate, status='COMPLETED')
        self.assertTrue(self.course.is_full)

        with self.assertRaises(CourseUnavailable):
            services.approve_request(make_request(self.course, student_email='new@test.com'), self.manager)

        _, enrollment, _ = services.approve_request(make_request(self.course), self.manager)
        self.assertEqual(enrollment.student, graduate)
        self.assertEqual(enrollment.status, 'ACTIVE')

    def test_approve_refused_when_course_inactive(self):
        request = make_request(self.course)
        self.course.status = 'INACTIVE'
        self.course.save()
        with self.assertRaises(CourseUnavailable):
            services.approve_request(request, self.manager)

    def test_final_states_cannot_change(self):
        request = services.reject_request(make_request(self.course), self.manager, 'No reply')
        self.assertEqual(request.admin_notes, 'No reply')
        with self.assertRaises(InvalidTransition):
            services.approve_request(request, self.manager)
        with self.assertRaises(InvalidTransition):
            services.mark_contacted(request, self.manager)

    def test_contacted_then_approved(self):
        request = services.mark_contacted(make_request(self.course), self.manager)
        self.assertEqual(request.status, 'CONTACTED')
        request, _, _ = services.approve_request(request, self.manager)
        self.assertEqual(request.status, 'APPROVED')

    def test_create_rejects_duplicates_and_enrolled_students(self):
        data = dict(REQUEST_DATA, student_email='dana@test.com')
        services.create_request(self.course, data)
        with self.assertRaises(DuplicateRequest):
            services.create_request(self.course, dict(data, student_email='DANA@test.com'))

        student = User.objects.create_user(email='aidar@test.com')
        CourseEnrollment.objects.create(course=self.course, student=student, status='ACTIVE')
        with self.assertRaises(AlreadyEnrolled):
            services.create_request(self.course, dict(data, student_email='aidar@test.com'))

    def test_handoff_links(self):
        request = make_request(self.course)
        with self.settings(MANAGER_CONTACT={
            'name': 'Aigerim', 'whatsapp': '+7 (700) 123-45-67', 'telegram': '@nuet_manager',
            'phone': '+77001234567', 'email': 'manager@test.com', 'working_hours': '9-18',
        }):
            handoff = services.manager_contact_handoff(request)

        self.assertEqual(handoff['amount'], '45000.00')
        self.assertEqual(handoff['reference'], str(request.id))
        self.assertTrue(handoff['manager']['links']['whatsapp'].startswith('https://wa.me/77001234567?text=Hello%21'))
        self.assertEqual(handoff['manager']['links']['telegram'], 'https://t.me/nuet_manager')
        self.assertIn('NUET Mathematics', handoff['message'])

    @mock.patch('enrollments.notifications.slack_service')
    def test_decision_email_sent_after_commit(self, slack):
        with self.captureOnCommitCallbacks(execute=True):
            services.approve_request(make_request(self.course), self.manager)

        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ['dana@test.com'])
        self.assertIn('NUET Mathematics', mail.outbox[0].subject)
        slack.send_request_reviewed_notification.assert_called_once()


class SlackNotificationServiceTest(TestCase):

    def test_disabled_without_token(self):
        service = SlackNotificationService(token='')
        self.assertFalse(service.is_available())
        self.assertFalse(service.send_system_notification('Title', 'Body'))

    @mock.patch('enrollments.notifications.WebClient')
    def test_posts_request_blocks(self, web_client):
        web_client.return_value.chat_postMessage.return_value = {'ts': '123.456'}
        course = make_course()
        request = make_request(course)

        service = SlackNotificationService(token='xoxb-test', channel='#test')
        self.assertTrue(service.send_enrollment_request_notification(request))

        kwargs = web_client.return_value.chat_postMessage.call_args.kwargs
        self.assertEqual(kwargs['channel'], '#test')
        self.assertIn('NUET Mathematics', kwargs['text'])
        self.assertEqual(kwargs['blocks'][0]['type'], 'header')

    @mock.patch('enrollments.notifications.WebClient')
    def test_delivery_errors_are_swallowed(self, web_client):
        web_client.return_value.chat_postMessage.side_effect = RuntimeError('network down')
        service = SlackNotificationService(token='xoxb-test')
        self.assertFalse(service.send_system_notification('Title', 'Body'))


class EnrollmentRequestAPITest(APITestCase):

    def setUp(self):
        caches['default'].clear()
        self.course = make_course()
        self.manager = User.objects.create_user(email='manager@test.com', role=User.Role.MANAGER)
        self.student = User.objects.create_user(email='student@test.com', first_name='Aidar', last_name='Bekov')
        self.url = '/api/enrollments/requests/'

    def test_anonymous_request_returns_handoff(self):
        response = self.client.post(self.url, dict(REQUEST_DATA, course=str(self.course.id)), format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['request']['status'], 'PENDING')
        self.assertEqual(response.data['request']['student_email'], 'dana@test.com')
        self.assertEqual(response.data['request']['student_phone'], '+77001112233')
        self.assertIn('https://wa.me/', response.data['payment']['manager']['links']['whatsapp'])
        self.assertEqual(response.data['payment']['currency'], 'KZT')

    def test_preferred_contact_required(self):
        data = dict(REQUEST_DATA, course=str(self.course.id))
        del data['preferred_contact']
        response = self.client.post(self.url, data, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('preferred_contact', response.data['details'])
        self.assertFalse(EnrollmentRequest.objects.exists())

    def test_preferred_contact_handle_required(self):
        data = dict(REQUEST_DATA, course=str(self.course.id), preferred_contact='TELEGRAM')
        response = self.client.post(self.url, data, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('telegram_username', response.data['details'])

    def test_invalid_phone(self):
        data = dict(REQUEST_DATA, course=str(self.course.id), student_phone='call me')
        response = self.client.post(self.url, data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('student_phone', response.data['details'])

    def test_duplicate_pending_request_conflicts(self):
        data = dict(REQUEST_DATA, course=str(self.course.id))
        self.client.post(self.url, data, format='json')
        response = self.client.post(self.url, data, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_draft_course_is_not_open(self):
        course = make_course(title='Draft course', status='DRAFT')
        response = self.client.post(self.url, dict(REQUEST_DATA, course=str(course.id)), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_signed_in_student_uses_account_details(self):
        self.client.force_authenticate(user=self.student)
        data = {
            'course': str(self.course.id),
            'student_phone': '+77005556677',
            'preferred_contact': 'PHONE',
        }
        response = self.client.post(self.url, data, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        request = EnrollmentRequest.objects.get()
        self.assertEqual(request.student, self.student)
        self.assertEqual(request.student_email, 'student@test.com')
        self.assertEqual(request.student_name, 'Aidar Bekov')

    def test_requests_are_throttled(self):
        for i in range(10):
            data = dict(REQUEST_DATA, course=str(self.course.id), student_email=f'user{i}@test.com')
            self.client.post(self.url, data, format='json')
        data = dict(REQUEST_DATA, course=str(self.course.id), student_email='late@test.com')
        response = self.client.post(self.url, data, format='json')
        self.assertEqual(response.status_code, status.HTTP_429_TOO_MANY_REQUESTS)

    def test_list_requires_authentication(self):
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_student_sees_only_own_requests(self):
        make_request(self.course, student_email='student@test.com')
        make_request(self.course, student_email='someone@test.com')

        self.client.force_authenticate(user=self.student)
        response = self.client.get(self.url)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['student_email'], 'student@test.com')

    def test_staff_filters(self):
        make_request(self.course)
        rejected = make_request(self.course, student_email='other@test.com', student_name='Other Person')
        rejected.status = 'REJECTED'
        rejected.save()

        self.client.force_authenticate(user=self.manager)
        response = self.client.get(self.url, {'status': 'pending'})
        self.assertEqual(response.data['count'], 1)

        response = self.client.get(self.url, {'search': 'other'})
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['contact_links']['whatsapp'], 'https://wa.me/77001112233')

    def test_approve_endpoint(self):
        request = make_request(self.course)
        self.client.force_authenticate(user=self.manager)
        response = self.client.post(f'{self.url}{request.id}/approve/', {'reference': 'KASPI-001'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['request']['status'], 'APPROVED')
        self.assertEqual(response.data['enrollment']['status'], 'ACTIVE')
        self.assertEqual(response.data['payment']['reference'], 'KASPI-001')

    def test_students_cannot_approve(self):
        request = make_request(self.course)
        self.client.force_authenticate(user=self.student)
        response = self.client.post(f'{self.url}{request.id}/approve/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_patch_invalid_transition(self):
        request = make_request(self.course, status='REJECTED')
        self.client.force_authenticate(user=self.manager)
        response = self.client.patch(f'{self.url}{request.id}/', {'status': 'CONTACTED'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('Cannot change status', response.data['error'])

    def test_patch_contacted_with_notes(self):
        request = make_request(self.course)
        self.client.force_authenticate(user=self.manager)
        response = self.client.patch(
            f'{self.url}{request.id}/', {'status': 'CONTACTED', 'admin_notes': 'Wrote on WhatsApp'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'CONTACTED')
        self.assertEqual(response.data['admin_notes'], 'Wrote on WhatsApp')

    def test_manager_contact_is_public(self):
        response = self.client.get('/api/enrollments/manager-contact/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('links', response.data)


class EnrollmentManagementAPITest(APITestCase):

    def setUp(self):
        self.course = make_course()
        self.admin = User.objects.create_user(email='admin@test.com', role=User.Role.ADMIN)
        self.student = User.objects.create_user(email='student@test.com')
        self.client.force_authenticate(user=self.admin)

    def test_direct_enroll(self):
        response = self.client.post('/api/enrollments/direct/', {
            'student_email': 'student@test.com',
            'course_id': str(self.course.id),
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        enrollment = CourseEnrollment.objects.get(student=self.student)
        self.assertEqual(enrollment.status, 'ACTIVE')
        self.assertEqual(enrollment.payment_method, 'MANUAL')
        self.assertEqual(response.data['payment']['method'], 'MANUAL')

    def test_direct_enroll_twice_conflicts(self):
        data = {'student_id': self.student.id, 'course_id': str(self.course.id)}
        self.client.post('/api/enrollments/direct/', data, format='json')
        response = self.client.post('/api/enrollments/direct/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_update_enrollment_status(self):
        enrollment = CourseEnrollment.objects.create(course=self.course, student=self.student, status='ACTIVE')
        response = self.client.patch(f'/api/enrollments/{enrollment.id}/', {'status': 'SUSPENDED'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        enrollment.refresh_from_db()
        self.assertEqual(enrollment.status, 'SUSPENDED')

    def test_list_filters(self):
        CourseEnrollment.objects.create(course=self.course, student=self.student, status='ACTIVE')
        other = User.objects.create_user(email='other@test.com')
        CourseEnrollment.objects.create(course=self.course, student=other, status='CANCELLED')

        response = self.client.get('/api/enrollments/', {'status': 'active'})
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['student_email'], 'student@test.com')

    def test_payments_list(self):
        services.enroll_student(self.student, self.course, enrolled_by=self.admin)
        response = self.client.get('/api/enrollments/payments/')
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['course_title'], 'NUET Mathematics')


class HealthCheckTest(TestCase):

    def test_health(self):
        response = self.client.get('/health/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['database'], 'connected')

    def test_enrollment_health_counts_by_status(self):
        course = make_course()
        student = User.objects.create_user(email='student@test.com')
        CourseEnrollment.objects.create(course=course, student=student, status='ACTIVE')
        make_request(course)
        make_request(course, student_email='other@test.com', status='REJECTED')

        data = self.client.get('/health/enrollments/').json()

        self.assertEqual(data['status'], 'healthy')
        self.assertEqual(data['enrollments']['active'], 1)
        self.assertEqual(data['enrollments']['total'], 1)
        self.assertEqual(data['requests']['pending'], 1)
        self.assertEqual(data['requests']['rejected'], 1)
        self.assertEqual(data['requests']['open'], 1)
