from django.contrib.auth import get_user_model
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from courses.models import Course, CourseTutor
from enrollments.models import EnrollmentRequest
from student import services as student_services
from student.models import CourseEnrollment
from student.tests import CourseFixtureMixin

User = get_user_model()


class TutorAPITest(CourseFixtureMixin, APITestCase):

    def setUp(self):
        self.create_course()
        self.tutor = User.objects.create_user(email='tutor@test.com', first_name='Marat', role=User.Role.TUTOR)
        self.other_tutor = User.objects.create_user(email='other.tutor@test.com', role=User.Role.TUTOR)
        CourseTutor.objects.create(course=self.course, tutor=self.tutor, is_primary=True)

        self.other_course = Course.objects.create(
            title='NUET Math', description='Algebra and geometry for NUET', status='ACTIVE'
        )
        CourseTutor.objects.create(course=self.other_course, tutor=self.other_tutor)

        self.alina = User.objects.create_user(email='alina@test.com', first_name='Alina')
        self.timur = User.objects.create_user(email='timur@test.com', first_name='Timur')
        self.enroll(self.alina)
        self.enroll(self.timur, status='CANCELLED')
        CourseEnrollment.objects.create(course=self.other_course, student=self.timur, status='ACTIVE')

    def test_students_cannot_access(self):
        self.client.force_authenticate(self.alina)
        response = self.client.get(reverse('tutor:dashboard'))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_dashboard(self):
        EnrollmentRequest.objects.create(
            course=self.course, student_name='Dias Omarov', student_email='dias@test.com',
            student_phone='+77010000000', selected_tutor=self.tutor
        )
        EnrollmentRequest.objects.create(
            course=self.course, student_name='Old Request', student_email='old@test.com',
            student_phone='+77010000001', selected_tutor=self.tutor, status='REJECTED'
        )
        student_services.submit_test(self.alina, self.test, {str(self.q1.id): '16', str(self.q2.id): 'true'})
        self.client.force_authenticate(self.tutor)

        response = self.client.get(reverse('tutor:dashboard'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        overview = response.data['overview']
        self.assertEqual(overview['total_courses'], 1)
        self.assertEqual(overview['total_students'], 1)
        self.assertEqual(overview['pending_requests'], 1)
        self.assertEqual(response.data['pending_requests'][0]['student_name'], 'Dias Omarov')
        self.assertEqual(response.data['courses'][0]['enrolled_count'], 1)
        self.assertTrue(response.data['courses'][0]['is_primary'])
        self.assertEqual(response.data['test_stats'], {
            'total_submissions': 1, 'passed': 1, 'pass_rate': 100, 'average_percentage': 75,
        })
        self.assertEqual(len(response.data['recent_submissions']), 1)

    def test_courses(self):
        self.client.force_authenticate(self.tutor)
        response = self.client.get(reverse('tutor:courses'))

        self.assertEqual([course['title'] for course in response.data], ['NUET Critical Thinking'])
        self.assertEqual(response.data[0]['topics_count'], 2)
        self.assertEqual(response.data[0]['tests_count'], 1)

    def test_students(self):
        self.client.force_authenticate(self.tutor)
        response = self.client.get(reverse('tutor:students'))

        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['students'][0]['email'], 'alina@test.com')
        self.assertEqual(response.data['students'][0]['course_title'], 'NUET Critical Thinking')

    def test_students_status_filter_and_search(self):
        self.client.force_authenticate(self.tutor)

        response = self.client.get(reverse('tutor:students'), {'status': 'cancelled'})
        self.assertEqual([s['email'] for s in response.data['students']], ['timur@test.com'])

        response = self.client.get(reverse('tutor:students'), {'search': 'ALI'})
        self.assertEqual(response.data['count'], 1)

    def test_students_include_enrollments_assigned_to_tutor(self):
        CourseEnrollment.objects.filter(course=self.other_course, student=self.timur).update(tutor=self.tutor)
        self.client.force_authenticate(self.tutor)

        response = self.client.get(reverse('tutor:students'))

        self.assertEqual(response.data['count'], 2)

    def test_test_submissions(self):
        student_services.submit_test(self.alina, self.test, {str(self.q1.id): '16'})
        self.client.force_authenticate(self.tutor)

        response = self.client.get(reverse('tutor:test-submissions', args=[self.test.id]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['test']['total_points'], 4)
        self.assertEqual(response.data['stats']['passed'], 0)
        self.assertEqual(response.data['submissions'][0]['student_email'], 'alina@test.com')
        self.assertEqual(response.data['submissions'][0]['percentage'], 50)

    def test_submissions_of_unassigned_course_hidden(self):
        self.client.force_authenticate(self.other_tutor)
        response = self.client.get(reverse('tutor:test-submissions', args=[self.test.id]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
