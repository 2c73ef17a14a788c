from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APITestCase

from backend.cache import CacheKeys, clear_cache, get_cached_data
from backend.exceptions import AlreadySubmitted, NotEnrolled
from courses.models import Course, Material, Question, Test, TestSubmission, Topic
from enrollments.models import EnrollmentRequest
from . import services
from .models import CourseBookmark, CourseEnrollment, MaterialProgress

User = get_user_model()


class CourseFixtureMixin:
    """An active course with two topics, three published materials and a published test."""

    def create_course(self):
        self.course = Course.objects.create(
            title='NUET Critical Thinking',
            description='Logic puzzles and reasoning practice for NUET',
            price=Decimal('30000.00'),
            status='ACTIVE',
        )
        self.topic1 = Topic.objects.create(course=self.course, title='Logic basics', order=1)
        self.topic2 = Topic.objects.create(course=self.course, title='Sequences', order=2)
        self.material1 = Material.objects.create(
            topic=self.topic1, type='VIDEO', title='Intro video', url='https://video.test/1', order=1
        )
        self.material2 = Material.objects.create(
            topic=self.topic1, type='TEXT', title='Notes', content='Read me', order=2
        )
        self.material3 = Material.objects.create(
            topic=self.topic2, type='PDF', title='Worksheet', url='https://files.test/w.pdf', order=1
        )
        Material.objects.create(
            topic=self.topic2, type='LINK', title='Draft link', url='https://x.test', is_published=False
        )
        self.test = Test.objects.create(topic=self.topic2, title='Sequences quiz', is_published=True, passing_score=60)
        self.q1 = Question.objects.create(
            test=self.test, question='2, 4, 8, ?', type='MULTIPLE_CHOICE',
            options=['10', '16', '12'], correct_answer='16', points=2, order=1,
            explanation='Each term doubles'
        )
        self.q2 = Question.objects.create(
            test=self.test, question='All squares are rectangles', type='TRUE_FALSE',
            correct_answer='true', points=1, order=2
        )
        self.q3 = Question.objects.create(
            test=self.test, question='Name the next prime after 7', type='SHORT_ANSWER',
            correct_answer='eleven', points=1, order=3
        )

    def enroll(self, user, status='ACTIVE'):
        return CourseEnrollment.objects.create(course=self.course, student=user, status=status, payment_status='PAID')


class EnrollmentProgressTest(CourseFixtureMixin, TestCase):

    def setUp(self):
        self.create_course()
        self.student = User.objects.create_user(email='student@test.com')
        self.enrollment = self.enroll(self.student)

    def test_progress_counts_published_materials_and_tests(self):
        services.record_material_progress(self.student, self.material1, status='COMPLETED')
        self.enrollment.refresh_from_db()
        # 1 of 3 published materials + 1 published test
        self.assertEqual(self.enrollment.progress_percentage, 25)

    def test_completed_material_stays_completed_and_time_accumulates(self):
        services.record_material_progress(self.student, self.material1, status='COMPLETED', time_spent=60)
        progress, _ = services.record_material_progress(self.student, self.material1, status='IN_PROGRESS', time_spent=30)

        self.assertEqual(progress.status, 'COMPLETED')
        self.assertEqual(progress.time_spent, 90)
        self.assertIsNotNone(progress.completed_at)
        self.assertEqual(MaterialProgress.objects.count(), 1)

    def test_enrollment_completes_at_100_percent(self):
        for material in (self.material1, self.material2, self.material3):
            services.record_material_progress(self.student, material, status='COMPLETED')
        services.submit_test(self.student, self.test, {})

        self.enrollment.refresh_from_db()
        self.assertEqual(self.enrollment.status, 'COMPLETED')
        self.assertEqual(self.enrollment.progress_percentage, 100)
        self.assertIsNotNone(self.enrollment.completed_at)

    def test_progress_requires_active_enrollment(self):
        self.enrollment.status = 'SUSPENDED'
        self.enrollment.save()
        with self.assertRaises(NotEnrolled):
            services.record_material_progress(self.student, self.material1)

    def test_grading(self):
        answers = {str(self.q1.id): '16', str(self.q2.id): 'TRUE', str(self.q3.id): 'it is Eleven'}
        submission = services.submit_test(self.student, self.test, answers)

        self.assertEqual(submission.score, 4)
        self.assertEqual(submission.max_score, 4)
        self.assertEqual(submission.percentage, 100)
        self.assertTrue(submission.passed)

    def test_partial_score_and_passing_threshold(self):
        submission = services.submit_test(self.student, self.test, {str(self.q1.id): '12', str(self.q2.id): True})

        # 1 of 4 points
        self.assertEqual(submission.percentage, 25)
        self.assertFalse(submission.passed)
        results = {item['question_id']: item for item in submission.answers}
        self.assertFalse(results[str(self.q1.id)]['is_correct'])
        self.assertEqual(results[str(self.q1.id)]['explanation'], 'Each term doubles')
        self.assertTrue(results[str(self.q2.id)]['is_correct'])
        self.assertFalse(results[str(self.q3.id)]['is_correct'])

    def test_second_submission_rejected(self):
        services.submit_test(self.student, self.test, {})
        with self.assertRaises(AlreadySubmitted):
            services.submit_test(self.student, self.test, {})
        self.assertEqual(TestSubmission.objects.count(), 1)

    def test_course_progress_breakdown(self):
        services.record_material_progress(self.student, self.material3, status='COMPLETED')
        services.submit_test(self.student, self.test, {str(self.q1.id): '16'})

        data = services.course_progress(self.student, self.course)
        self.assertEqual(data['total_items'], 4)
        self.assertEqual(data['completed_items'], 2)
        self.assertEqual(data['percentage'], 50)
        self.assertEqual(data['topics'][0]['percentage'], 0)
        self.assertEqual(data['topics'][1]['percentage'], 100)
        self.assertEqual(data['topics'][1]['test_results'][0]['percentage'], 50)


class StudentAPITest(CourseFixtureMixin, APITestCase):

    def setUp(self):
        clear_cache()
        self.create_course()
        self.student = User.objects.create_user(email='student@test.com', first_name='Aidar')
        self.outsider = User.objects.create_user(email='outsider@test.com')
        self.enrollment = self.enroll(self.student)
        self.client.force_authenticate(user=self.student)

    def test_my_courses(self):
        response = self.client.get('/api/student/courses/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['course_title'], 'NUET Critical Thinking')

    def test_enrollment_check_reports_pending_request(self):
        other_course = Course.objects.create(
            title='NUET Maths', description='Maths preparation course', status='ACTIVE'
        )
        EnrollmentRequest.objects.create(
            course=other_course, student_name='Aidar', student_email='STUDENT@test.com',
            student_phone='+77001112233', whatsapp_number='+77001112233'
        )

        response = self.client.get(f'/api/student/enrollments/check/{other_course.id}/')
        self.assertFalse(response.data['is_enrolled'])
        self.assertTrue(response.data['has_pending_request'])
        self.assertEqual(response.data['request']['status'], 'PENDING')

        response = self.client.get(f'/api/student/enrollments/check/{self.course.id}/')
        self.assertTrue(response.data['is_enrolled'])
        self.assertIsNone(response.data['request'])

    def test_material_progress_update_and_listing_order(self):
        response = self.client.post('/api/student/materials/progress/', {
            'material_id': str(self.material3.id), 'status': 'COMPLETED', 'time_spent': 120
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['course_progress'], 25)

        self.client.post('/api/student/materials/progress/', {'material_id': str(self.material1.id)}, format='json')

        response = self.client.get('/api/student/materials/progress/', {'course_id': str(self.course.id)})
        titles = [item['material_title'] for item in response.data]
        self.assertEqual(titles, ['Intro video', 'Worksheet'])
        self.assertEqual(response.data[0]['status'], 'IN_PROGRESS')

    def test_material_progress_requires_enrollment(self):
        self.client.force_authenticate(user=self.outsider)
        response = self.client.post(
            '/api/student/materials/progress/', {'material_id': str(self.material1.id)}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_course_progress_is_cached_and_invalidated(self):
        url = f'/api/student/courses/{self.course.id}/progress/'
        response = self.client.get(url)
        self.assertEqual(response.data['percentage'], 0)
        self.assertIsNotNone(get_cached_data(CacheKeys.course_progress(self.course.id, self.student.id)))

        services.record_material_progress(self.student, self.material1, status='COMPLETED')
        response = self.client.get(url)
        self.assertEqual(response.data['percentage'], 25)

    def test_take_test_hides_answers(self):
        response = self.client.get(f'/api/student/tests/{self.test.id}/take/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['questions']), 3)
        self.assertNotIn('correct_answer', response.data['questions'][0])
        self.assertEqual(response.data['total_points'], 4)

    def test_take_test_errors(self):
        self.client.force_authenticate(user=self.outsider)
        response = self.client.get(f'/api/student/tests/{self.test.id}/take/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.test.is_published = False
        self.test.save()
        self.client.force_authenticate(user=self.student)
        response = self.client.get(f'/api/student/tests/{self.test.id}/take/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_submit_then_results(self):
        url = f'/api/student/tests/{self.test.id}/'
        response = self.client.post(url + 'submit/', {
            'answers': {str(self.q1.id): '16', str(self.q2.id): 'false'}, 'time_spent': 300
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['score'], 2)
        self.assertEqual(response.data['percentage'], 50)
        self.assertFalse(response.data['passed'])

        response = self.client.post(url + 'submit/', {'answers': {}}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

        response = self.client.get(url + 'take/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

        response = self.client.get(url + 'results/')
        self.assertEqual(response.data['passing_score'], 60)
        self.assertEqual(len(response.data['answers']), 3)

    def test_results_without_submission(self):
        response = self.client.get(f'/api/student/tests/{self.test.id}/results/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_bookmark_toggle(self):
        url = '/api/student/bookmarks/'
        response = self.client.post(url, {'course_id': str(self.course.id)}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['active'])
        self.assertEqual(len(self.client.get(url).data), 1)

        response = self.client.post(url, {'course_id': str(self.course.id)}, format='json')
        self.assertFalse(response.data['active'])
        self.assertFalse(CourseBookmark.objects.exists())

    def test_favorite_delete(self):
        url = '/api/student/favorites/'
        self.client.post(url, {'course_id': str(self.course.id)}, format='json')
        response = self.client.delete(f'{url}?course_id={self.course.id}')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        response = self.client.delete(f'{url}?course_id={self.course.id}')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_dashboard(self):
        services.record_material_progress(self.student, self.material1, status='COMPLETED', time_spent=600)
        services.submit_test(self.student, self.test, {str(self.q1.id): '16', str(self.q2.id): 'true'})

        response = self.client.get('/api/student/dashboard/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['stats']['active_courses'], 1)
        self.assertEqual(response.data['stats']['tests_taken'], 1)
        self.assertEqual(response.data['stats']['tests_passed'], 1)
        self.assertEqual(response.data['stats']['total_study_time'], 600)
        self.assertEqual(len(response.data['recent_test_results']), 1)
        self.assertEqual(response.data['streak']['current_streak'], 1)
        self.assertGreater(response.data['points']['points'], 0)
        self.assertEqual(response.data['pending_requests'], [])
