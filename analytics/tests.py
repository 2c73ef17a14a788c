from datetime import date
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import SimpleTestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from courses.models import CourseTutor
from enrollments.models import EnrollmentRequest, Payment
from student import services as student_services
from student.tests import CourseFixtureMixin
from . import services

User = get_user_model()


class AnalyticsHelpersTest(SimpleTestCase):

    def test_last_months_crosses_year(self):
        self.assertEqual(services.last_months(3, date(2024, 2, 15)), [
            date(2023, 12, 1), date(2024, 1, 1), date(2024, 2, 1),
        ])

    def test_score_bands(self):
        self.assertEqual(
            [services.score_band(p) for p in (100, 90, 89, 75, 60, 59, 40, 39, 0)],
            ['EXCELLENT', 'EXCELLENT', 'GOOD', 'GOOD', 'AVERAGE', 'POOR', 'POOR', 'FAILED', 'FAILED']
        )


class AnalyticsAPITest(CourseFixtureMixin, APITestCase):

    def setUp(self):
        self.create_course()
        self.manager = User.objects.create_user(email='manager@test.com', role=User.Role.MANAGER)
        self.tutor = User.objects.create_user(email='tutor@test.com', first_name='Aigerim', role=User.Role.TUTOR)
        CourseTutor.objects.create(course=self.course, tutor=self.tutor, is_primary=True)

        self.alina = User.objects.create_user(email='alina@test.com', first_name='Alina')
        self.timur = User.objects.create_user(email='timur@test.com', first_name='Timur')
        enrollment = self.enroll(self.alina)
        self.enroll(self.timur, status='COMPLETED')
        Payment.objects.create(
            enrollment=enrollment, amount=Decimal('30000.00'), status='COMPLETED',
            confirmed_by=self.manager, confirmed_at=timezone.now()
        )
        Payment.objects.create(enrollment=enrollment, amount=Decimal('5000.00'), status='PENDING')
        EnrollmentRequest.objects.create(
            course=self.course, student_name='Dias Omarov', student_email='dias@test.com',
            student_phone='+77010000000'
        )
        student_services.submit_test(self.alina, self.test, {str(self.q1.id): '16'})

        self.client.force_authenticate(self.manager)

    def test_staff_only(self):
        self.client.force_authenticate(self.alina)
        for name in ('overview', 'trends', 'top-courses', 'recent-activity',
                     'recent-users', 'test-performance', 'engagement'):
            response = self.client.get(reverse(f'analytics:{name}'))
            self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN, name)

    def test_overview(self):
        response = self.client.get(reverse('analytics:overview'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['users']['by_role']['STUDENT'], 2)
        self.assertEqual(response.data['users']['by_role']['OWNER'], 0)
        self.assertEqual(response.data['courses']['by_status']['ACTIVE'], 1)
        self.assertEqual(response.data['enrollments']['by_status']['ACTIVE'], 1)
        self.assertEqual(response.data['enrollments']['by_status']['COMPLETED'], 1)
        self.assertEqual(response.data['pending_requests'], 1)
        self.assertEqual(Decimal(response.data['revenue']['total']), Decimal('30000'))
        self.assertEqual(Decimal(response.data['revenue']['this_month']), Decimal('30000'))

    def test_trends_are_zero_filled(self):
        response = self.client.get(reverse('analytics:trends'), {'months': 3})

        trends = response.data['trends']
        self.assertEqual(len(trends), 3)
        self.assertEqual(trends[-1]['month'], timezone.localdate().strftime('%Y-%m'))
        self.assertEqual(trends[-1]['enrollments'], 2)
        self.assertEqual(Decimal(trends[-1]['revenue']), Decimal('30000'))
        self.assertEqual(trends[0]['enrollments'], 0)
        self.assertEqual(Decimal(trends[0]['revenue']), Decimal('0'))

    def test_trends_months_capped(self):
        response = self.client.get(reverse('analytics:trends'), {'months': 100})
        self.assertEqual(len(response.data['trends']), services.MAX_TREND_MONTHS)

    def test_top_courses(self):
        response = self.client.get(reverse('analytics:top-courses'))

        course = response.data[0]
        self.assertEqual(course['title'], 'NUET Critical Thinking')
        self.assertEqual(course['tutor'], 'Aigerim')
        self.assertEqual(course['active_enrollments'], 1)
        self.assertEqual(course['completion_rate'], 50)
        self.assertEqual(course['average_score'], 50)
        self.assertEqual(Decimal(course['revenue']), Decimal('30000'))

    def test_recent_activity_newest_first(self):
        response = self.client.get(reverse('analytics:recent-activity'))

        types = {event['type'] for event in response.data}
        self.assertEqual(types, {'enrollment_request', 'enrollment', 'test_submission', 'user_joined'})
        timestamps = [event['timestamp'] for event in response.data]
        self.assertEqual(timestamps, sorted(timestamps, reverse=True))

    def test_recent_users(self):
        response = self.client.get(reverse('analytics:recent-users'), {'limit': 2})
        self.assertEqual(len(response.data), 2)
        self.assertEqual(response.data[0]['email'], 'timur@test.com')

    def test_test_performance(self):
        response = self.client.get(reverse('analytics:test-performance'))

        self.assertEqual(response.data['tests'], [{
            'id': str(self.test.id),
            'title': 'Sequences quiz',
            'course_title': 'NUET Critical Thinking',
            'submissions': 1,
            'average_percentage': 50,
            'pass_rate': 0,
        }])
        self.assertEqual(response.data['distribution']['POOR'], 1)

    def test_engagement(self):
        student_services.record_material_progress(self.alina, self.material1, status='IN_PROGRESS', time_spent=120)

        response = self.client.get(reverse('analytics:engagement'))

        self.assertEqual(response.data['total_students'], 2)
        self.assertEqual(response.data['active_students'], 1)
        self.assertEqual(response.data['average_study_time'], 120)
        self.assertEqual(response.data['completion_rate'], 50)
        self.assertEqual(len(response.data['weekly']), 4)
        self.assertEqual(response.data['weekly'][-1]['active_students'], 1)
