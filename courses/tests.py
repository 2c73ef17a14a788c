from decimal import Decimal
from io import StringIO
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.core.files.storage import default_storage
from django.core.files.uploadedfile import SimpleUploadedFile
from django.core.management import call_command
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework import status
from rest_framework.test import APITestCase

from backend.cache import clear_cache
from student.models import CourseEnrollment
from . import grading
from .models import Course, CourseTutor, Material, Question, Test, Topic

User = get_user_model()


def make_course(title='NUET Mathematics', **kwargs):
    defaults = {
        'description': 'Complete preparation for the NUET maths section',
        'category': 'Mathematics',
        'difficulty': 'INTERMEDIATE',
        'price': Decimal('45000.00'),
        'status': 'ACTIVE',
    }
    defaults.update(kwargs)
    return Course.objects.create(title=title, **defaults)


class GradingTest(SimpleTestCase):

    def test_exact_match_ignores_case_and_whitespace(self):
        self.assertTrue(grading.is_correct(grading.MULTIPLE_CHOICE, 'Paris', '  paris '))
        self.assertFalse(grading.is_correct(grading.MULTIPLE_CHOICE, 'Paris', 'Paris, France'))
        self.assertTrue(grading.is_correct(grading.TRUE_FALSE, 'true', True))
        self.assertFalse(grading.is_correct(grading.TRUE_FALSE, 'true', 'false'))

    def test_short_answer_containment(self):
        self.assertTrue(grading.is_correct(grading.SHORT_ANSWER, 'photosynthesis', 'It is Photosynthesis'))
        self.assertTrue(grading.is_correct(grading.SHORT_ANSWER, 'the mitochondria', 'mitochondria'))
        self.assertFalse(grading.is_correct(grading.SHORT_ANSWER, 'osmosis', 'diffusion'))

    def test_empty_answer_is_wrong(self):
        self.assertFalse(grading.is_correct(grading.SHORT_ANSWER, 'anything', ''))
        self.assertFalse(grading.is_correct(grading.MULTIPLE_CHOICE, 'A', None))

    def test_percentage(self):
        self.assertEqual(grading.percentage(2, 3), 67)
        self.assertEqual(grading.percentage(0, 0), 0)

    def test_percentage_rounds_halves_up(self):
        self.assertEqual(grading.percentage(5, 8), 63)
        self.assertEqual(grading.percentage(1, 8), 13)
        self.assertEqual(grading.round_half_up(2.5), 3)
        self.assertEqual(grading.round_half_up(2.49), 2)


class CourseModelTest(TestCase):

    def setUp(self):
        self.course = make_course(max_students=2)

    def test_seats(self):
        student = User.objects.create_user(email='s1@test.com')
        CourseEnrollment.objects.create(course=self.course, student=student, status='ACTIVE')
        CourseEnrollment.objects.create(
            course=self.course, student=User.objects.create_user(email='s2@test.com'), status='CANCELLED'
        )
        self.assertEqual(self.course.enrolled_students_count, 1)
        self.assertEqual(self.course.seats_left, 1)
        self.assertFalse(self.course.is_full)

    def test_primary_tutor(self):
        first = User.objects.create_user(email='t1@test.com', role=User.Role.TUTOR)
        second = User.objects.create_user(email='t2@test.com', role=User.Role.TUTOR)
        CourseTutor.objects.create(course=self.course, tutor=first)
        CourseTutor.objects.create(course=self.course, tutor=second, is_primary=True)
        self.assertEqual(self.course.primary_tutor, second)

    def test_material_requires_url_or_content(self):
        topic = Topic.objects.create(course=self.course, title='Algebra')
        with self.assertRaises(ValidationError):
            Material(topic=topic, type='VIDEO', title='No url').clean()
        with self.assertRaises(ValidationError):
            Material(topic=topic, type='TEXT', title='No content').clean()

    def test_question_validation(self):
        topic = Topic.objects.create(course=self.course, title='Algebra')
        test = Test.objects.create(topic=topic, title='Quiz')
        with self.assertRaises(ValidationError):
            Question(test=test, question='?', type='MULTIPLE_CHOICE', options=['a'], correct_answer='a').clean()
        with self.assertRaises(ValidationError):
            Question(test=test, question='?', type='MULTIPLE_CHOICE', options=['a', 'b'], correct_answer='c').clean()
        with self.assertRaises(ValidationError):
            Question(test=test, question='?', type='TRUE_FALSE', correct_answer='maybe').clean()


class CatalogAPITest(APITestCase):

    def setUp(self):
        clear_cache()
        self.maths = make_course()
        self.physics = make_course(
            'NUET Physics', category='Physics', difficulty='ADVANCED', price=Decimal('60000.00')
        )
        make_course('Draft course', status='DRAFT')
        self.tutor = User.objects.create_user(email='tutor@test.com', first_name='Asel', role=User.Role.TUTOR)
        CourseTutor.objects.create(course=self.maths, tutor=self.tutor, is_primary=True)

    def test_only_active_courses_listed(self):
        response = self.client.get('/api/courses/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 2)

    def test_filters(self):
        self.assertEqual(self.client.get('/api/courses/', {'search': 'physics'}).data['count'], 1)
        self.assertEqual(self.client.get('/api/courses/', {'difficulty': 'advanced'}).data['count'], 1)
        self.assertEqual(self.client.get('/api/courses/', {'category': 'mathematics'}).data['count'], 1)
        self.assertEqual(self.client.get('/api/courses/', {'max_price': '50000'}).data['count'], 1)
        self.assertEqual(self.client.get('/api/courses/', {'min_price': 'abc'}).data['count'], 2)

    def test_listing_is_cached_and_invalidated_on_change(self):
        response = self.client.get('/api/courses/')
        self.assertEqual(response['X-Cache'], 'MISS')
        response = self.client.get('/api/courses/')
        self.assertEqual(response['X-Cache'], 'HIT')

        self.physics.status = 'ARCHIVED'
        self.physics.save()

        response = self.client.get('/api/courses/')
        self.assertEqual(response['X-Cache'], 'MISS')
        self.assertEqual(response.data['count'], 1)

    def test_enrolled_count_and_tutors(self):
        student = User.objects.create_user(email='student@test.com')
        CourseEnrollment.objects.create(course=self.maths, student=student, status='ACTIVE')

        response = self.client.get(f'/api/courses/{self.maths.id}/')
        self.assertEqual(response.data['enrolled_count'], 1)
        self.assertEqual(response.data['seats_left'], 29)
        self.assertEqual(response.data['tutors'][0]['tutor']['full_name'], 'Asel')

    def test_draft_detail_hidden_from_public(self):
        draft = Course.objects.get(title='Draft course')
        self.assertEqual(self.client.get(f'/api/courses/{draft.id}/').status_code, status.HTTP_404_NOT_FOUND)

        self.client.force_authenticate(user=self.tutor)
        self.assertEqual(self.client.get(f'/api/courses/{draft.id}/').status_code, status.HTTP_200_OK)

    def test_public_tutor_list(self):
        response = self.client.get('/api/courses/tutors/')
        self.assertEqual(len(response.data), 1)
        self.assertNotIn('email', response.data[0])


class CourseContentAPITest(APITestCase):

    def setUp(self):
        clear_cache()
        self.course = make_course()
        topic = Topic.objects.create(course=self.course, title='Algebra')
        Material.objects.create(topic=topic, type='LINK', title='Published', url='https://a.test')
        Material.objects.create(topic=topic, type='LINK', title='Draft', url='https://b.test', is_published=False)
        self.student = User.objects.create_user(email='student@test.com')
        self.url = f'/api/courses/{self.course.id}/content/'

    def test_not_enrolled(self):
        self.client.force_authenticate(user=self.student)
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['error'], 'You are not enrolled in this course')

    def test_enrolled_student_sees_published_items(self):
        CourseEnrollment.objects.create(course=self.course, student=self.student, status='ACTIVE')
        self.client.force_authenticate(user=self.student)
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([m['title'] for m in response.data['topics'][0]['materials']], ['Published'])

    def test_staff_see_drafts(self):
        manager = User.objects.create_user(email='manager@test.com', role=User.Role.MANAGER)
        self.client.force_authenticate(user=manager)
        response = self.client.get(self.url)
        self.assertEqual(len(response.data['topics'][0]['materials']), 2)


class CourseManagementAPITest(APITestCase):

    def setUp(self):
        clear_cache()
        self.admin = User.objects.create_user(email='admin@test.com', role=User.Role.ADMIN)
        self.tutor = User.objects.create_user(email='tutor@test.com', role=User.Role.TUTOR)
        self.other_tutor = User.objects.create_user(email='other@test.com', role=User.Role.TUTOR)
        self.student = User.objects.create_user(email='student@test.com')
        self.course = make_course()
        CourseTutor.objects.create(course=self.course, tutor=self.tutor, is_primary=True)

    def test_create_course(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.post('/api/courses/manage/', {
            'title': 'IELTS Writing',
            'description': 'Task 1 and Task 2 writing practice',
            'price': '25000.00',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        course = Course.objects.get(title='IELTS Writing')
        self.assertEqual(course.status, 'DRAFT')
        self.assertEqual(course.created_by, self.admin)

    def test_create_course_validation(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.post('/api/courses/manage/', {'title': 'ab', 'description': 'short'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('title', response.data['details'])
        self.assertIn('description', response.data['details'])

    def test_tutors_cannot_create_courses(self):
        self.client.force_authenticate(user=self.tutor)
        response = self.client.post('/api/courses/manage/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_students_cannot_manage(self):
        self.client.force_authenticate(user=self.student)
        self.assertEqual(self.client.get('/api/courses/manage/').status_code, status.HTTP_403_FORBIDDEN)

    def test_tutor_lists_assigned_courses(self):
        make_course('Other course')
        self.client.force_authenticate(user=self.tutor)
        response = self.client.get('/api/courses/manage/')
        self.assertEqual(response.data['count'], 1)

    def test_max_students_not_below_enrolled(self):
        for i in range(2):
            student = User.objects.create_user(email=f'enrolled{i}@test.com')
            CourseEnrollment.objects.create(course=self.course, student=student, status='ACTIVE')
        self.client.force_authenticate(user=self.admin)
        response = self.client.patch(f'/api/courses/manage/{self.course.id}/', {'max_students': 1}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_with_active_enrollments_conflicts(self):
        CourseEnrollment.objects.create(course=self.course, student=self.student, status='ACTIVE')
        self.client.force_authenticate(user=self.admin)
        response = self.client.delete(f'/api/courses/manage/{self.course.id}/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_change_status(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.post(f'/api/courses/manage/{self.course.id}/status/', {'status': 'ARCHIVED'})
        self.assertEqual(response.data['status'], 'ARCHIVED')

    def test_assign_tutor_primary(self):
        self.client.force_authenticate(user=self.admin)
        url = f'/api/courses/manage/{self.course.id}/tutors/'
        response = self.client.post(url, {'tutor_id': self.other_tutor.id, 'is_primary': True}, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(self.course.primary_tutor, self.other_tutor)
        self.assertFalse(CourseTutor.objects.get(tutor=self.tutor).is_primary)

        response = self.client.post(url, {'tutor_id': self.student.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_tutor_manages_own_content_only(self):
        self.client.force_authenticate(user=self.tutor)
        response = self.client.post(f'/api/courses/manage/{self.course.id}/topics/', {'title': 'Geometry'})
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['order'], 0)

        self.client.force_authenticate(user=self.other_tutor)
        response = self.client.post(f'/api/courses/manage/{self.course.id}/topics/', {'title': 'Trigonometry'})
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_material_test_and_question_creation(self):
        topic = Topic.objects.create(course=self.course, title='Geometry')
        self.client.force_authenticate(user=self.tutor)

        response = self.client.post(f'/api/courses/manage/topics/{topic.id}/materials/', {
            'type': 'VIDEO', 'title': 'Triangles'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('url', response.data['details'])

        response = self.client.post(f'/api/courses/manage/topics/{topic.id}/materials/', {
            'type': 'TEXT', 'title': 'Summary', 'content': 'Angles sum to 180'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        response = self.client.post(f'/api/courses/manage/topics/{topic.id}/tests/', {'title': 'Geometry quiz'})
        test_id = response.data['id']
        self.assertFalse(response.data['is_published'])

        response = self.client.post(f'/api/courses/manage/tests/{test_id}/questions/', {
            'question': 'Is a square a rhombus?', 'type': 'TRUE_FALSE', 'correct_answer': 'TRUE'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['correct_answer'], 'true')

        response = self.client.post(f'/api/courses/manage/tests/{test_id}/questions/', {
            'question': 'Sum of angles?', 'type': 'MULTIPLE_CHOICE', 'options': ['90', '180'],
            'correct_answer': '360'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('correct_answer', response.data['details'])

        response = self.client.get(f'/api/courses/manage/tests/{test_id}/')
        self.assertEqual(response.data['total_points'], 1)
        self.assertEqual(len(response.data['questions']), 1)

    def test_reorder_topics(self):
        first = Topic.objects.create(course=self.course, title='First', order=0)
        second = Topic.objects.create(course=self.course, title='Second', order=1)
        self.client.force_authenticate(user=self.tutor)
        url = f'/api/courses/manage/{self.course.id}/topics/reorder/'

        response = self.client.post(url, {'topic_ids': [str(second.id)]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(url, {'topic_ids': [str(second.id), str(first.id)]}, format='json')
        self.assertEqual([t['title'] for t in response.data], ['Second', 'First'])

    def test_import_course(self):
        self.client.force_authenticate(user=self.admin)
        document = {
            'title': 'NUET Critical Thinking',
            'description': 'Reasoning and logic practice',
            'status': 'ACTIVE',
            'topics': [
                {
                    'title': 'Logic',
                    'materials': [{'type': 'LINK', 'title': 'Reading', 'url': 'https://r.test'}],
                    'tests': [{
                        'title': 'Logic quiz',
                        'is_published': True,
                        'questions': [
                            {'question': 'Odd one out', 'type': 'MULTIPLE_CHOICE',
                             'options': ['2', '3', '4'], 'correct_answer': '3'},
                            {'question': 'A implies A', 'type': 'TRUE_FALSE', 'correct_answer': 'true'},
                        ],
                    }],
                },
                {'title': 'Patterns'},
            ],
        }
        response = self.client.post('/api/courses/manage/import/', document, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        course = Course.objects.get(title='NUET Critical Thinking')
        self.assertEqual(list(course.topics.values_list('title', 'order')), [('Logic', 0), ('Patterns', 1)])
        self.assertEqual(Question.objects.filter(test__topic__course=course).count(), 2)

    def test_invalid_import_creates_nothing(self):
        self.client.force_authenticate(user=self.admin)
        document = {
            'title': 'Broken course',
            'description': 'This document has an invalid question',
            'topics': [{'title': 'T', 'tests': [{'title': 'Q', 'questions': [
                {'question': 'x', 'type': 'TRUE_FALSE', 'correct_answer': 'perhaps'}
            ]}]}],
        }
        response = self.client.post('/api/courses/manage/import/', document, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(Course.objects.filter(title='Broken course').exists())


IN_MEMORY_STORAGES = {
    'default': {'BACKEND': 'django.core.files.storage.InMemoryStorage'},
    'staticfiles': {'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage'},
}


@override_settings(STORAGES=IN_MEMORY_STORAGES)
class MaterialUploadAPITest(APITestCase):

    def setUp(self):
        self.tutor = User.objects.create_user(email='tutor@test.com', role=User.Role.TUTOR)
        self.student = User.objects.create_user(email='student@test.com')
        self.client.force_authenticate(user=self.tutor)

    def upload(self, name='notes.pdf', content=b'%PDF-1.4 notes', content_type='application/pdf', **fields):
        data = {'file': SimpleUploadedFile(name, content, content_type=content_type), **fields}
        return self.client.post('/api/courses/manage/upload/', data, format='multipart')

    def test_upload_material_file(self):
        response = self.upload(material_type='PDF')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['type'], 'document')
        self.assertEqual(response.data['mime_type'], 'application/pdf')
        self.assertEqual(response.data['file_name'], 'notes.pdf')
        self.assertTrue(response.data['path'].startswith('materials/document/'))
        self.assertTrue(response.data['url'].startswith('http://testserver/media/materials/document/'))
        self.assertTrue(default_storage.exists(response.data['path']))

    def test_unsafe_characters_removed_from_name(self):
        response = self.upload(name='../my notes (1).pdf', type='document')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['path'].count('/'), 2)
        self.assertTrue(response.data['path'].endswith('-my_notes__1_.pdf'))

    def test_type_must_match_kind(self):
        response = self.upload(name='photo.png', content=b'png', content_type='image/png', material_type='PDF')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Invalid file type for document')

    def test_unknown_kind_rejected(self):
        response = self.upload(type='spreadsheet')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_size_limit(self):
        with mock.patch('backend.uploads.MAX_UPLOAD_SIZE', 10):
            response = self.upload(content=b'x' * 11)

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('file_size_mb', response.data['details'])

    def test_file_required(self):
        response = self.client.post('/api/courses/manage/upload/', {'type': 'document'}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'No file provided')

    def test_students_cannot_upload(self):
        self.client.force_authenticate(user=self.student)
        self.assertEqual(self.upload().status_code, status.HTTP_403_FORBIDDEN)


class SeedDemoDataTest(TestCase):

    def test_seed_is_repeatable(self):
        from gamification.models import Badge, Challenge

        call_command('seed_demo_data', '--with-students', stdout=StringIO())
        call_command('seed_demo_data', '--with-students', stdout=StringIO())

        self.assertEqual(Course.objects.filter(status='ACTIVE').count(), 3)
        self.assertEqual(User.objects.filter(role=User.Role.TUTOR).count(), 3)
        self.assertEqual(CourseEnrollment.objects.filter(status='ACTIVE').count(), 2)
        self.assertEqual(Question.objects.count(), 4)
        self.assertTrue(Challenge.objects.get(name='Logic sprint').has_quiz)
        self.assertTrue(Badge.objects.filter(name='Streak Master').exists())
        maths = Course.objects.get(title='NUET Mathematics Fundamentals')
        self.assertEqual(maths.primary_tutor.email, 'sarah.johnson@nuetprep.kz')
