"""
Populate a development database with tutors, NUET courses, content,
badges and challenges.
Run: python manage.py seed_demo_data [--with-students]
"""
from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from courses.models import Course, CourseTutor, Material, Question, Test, Topic
from gamification.models import Badge, Challenge
from student.models import CourseEnrollment

User = get_user_model()

TUTORS = [
    {'email': 'sarah.johnson@nuetprep.kz', 'first_name': 'Sarah', 'last_name': 'Johnson'},
    {'email': 'michael.chen@nuetprep.kz', 'first_name': 'Michael', 'last_name': 'Chen'},
    {'email': 'aisha.rahman@nuetprep.kz', 'first_name': 'Aisha', 'last_name': 'Rahman'},
]

STUDENTS = [
    {'email': 'anton.ivanova@example.com', 'first_name': 'Anton', 'last_name': 'Ivanova'},
    {'email': 'dana.nurlanovna@example.com', 'first_name': 'Dana', 'last_name': 'Nurlanovna'},
]

COURSES = [
    {
        'title': 'NUET Mathematics Fundamentals',
        'description': 'Algebra, geometry, trigonometry and the calculus basics the NUET maths section expects.',
        'category': 'Mathematics',
        'difficulty': 'INTERMEDIATE',
        'price': Decimal('15000.00'),
        'duration': '8 weeks',
        'estimated_hours': 120,
        'max_students': 50,
        'status': 'ACTIVE',
        'tutor': 0,
        'topics': [
            {
                'title': 'Algebra Fundamentals',
                'description': 'Basic algebraic concepts and operations',
                'materials': [
                    {'type': 'VIDEO', 'title': 'Algebra Introduction Video', 'url': 'https://cdn.nuetprep.kz/algebra-intro.mp4', 'duration_minutes': 18},
                    {'type': 'PDF', 'title': 'Algebra Practice Problems', 'url': 'https://cdn.nuetprep.kz/algebra-practice.pdf'},
                ],
                'test': {
                    'title': 'Algebra check',
                    'questions': [
                        {'question': 'Solve 2x + 6 = 14', 'type': 'MULTIPLE_CHOICE', 'options': ['2', '4', '8'], 'correct_answer': '4'},
                        {'question': '(a + b)^2 equals a^2 + b^2', 'type': 'TRUE_FALSE', 'correct_answer': 'false'},
                    ],
                },
            },
            {
                'title': 'Geometry Basics',
                'description': 'Shapes, angles and areas',
                'materials': [
                    {'type': 'TEXT', 'title': 'Angle rules', 'content': 'Angles on a straight line add up to 180 degrees.'},
                ],
            },
        ],
    },
    {
        'title': 'NUET Critical Thinking',
        'description': 'Logic puzzles, sequences and argument analysis for the critical thinking section.',
        'category': 'Critical Thinking',
        'difficulty': 'BEGINNER',
        'price': Decimal('12000.00'),
        'duration': '6 weeks',
        'estimated_hours': 90,
        'max_students': 80,
        'status': 'ACTIVE',
        'tutor': 1,
        'topics': [
            {
                'title': 'Number sequences',
                'description': 'Spotting the rule behind a sequence',
                'materials': [
                    {'type': 'VIDEO', 'title': 'Sequences walkthrough', 'url': 'https://cdn.nuetprep.kz/sequences.mp4', 'duration_minutes': 12},
                    {'type': 'LINK', 'title': 'Practice set', 'url': 'https://nuetprep.kz/practice/sequences'},
                ],
                'test': {
                    'title': 'Sequences quiz',
                    'questions': [
                        {'question': '2, 4, 8, 16, ?', 'type': 'MULTIPLE_CHOICE', 'options': ['24', '32', '20'], 'correct_answer': '32'},
                        {'question': 'Name the next prime after 7', 'type': 'SHORT_ANSWER', 'correct_answer': 'eleven'},
                    ],
                },
            },
        ],
    },
    {
        'title': 'NUET Physics Mastery',
        'description': 'Mechanics, thermodynamics, electromagnetism and modern physics for NUET preparation.',
        'category': 'Physics',
        'difficulty': 'ADVANCED',
        'price': Decimal('18000.00'),
        'duration': '10 weeks',
        'estimated_hours': 150,
        'max_students': 40,
        'status': 'ACTIVE',
        'tutor': 2,
        'topics': [
            {
                'title': 'Kinematics',
                'description': 'Motion in one and two dimensions',
                'materials': [
                    {'type': 'PDF', 'title': 'Kinematics formulas', 'url': 'https://cdn.nuetprep.kz/kinematics.pdf'},
                    {'type': 'AUDIO', 'title': 'Lecture recording', 'url': 'https://cdn.nuetprep.kz/kinematics.mp3', 'duration_minutes': 40},
                ],
            },
        ],
    },
]

BADGES = [
    {'name': 'First Steps', 'icon': '👣', 'description': 'Complete your first course',
     'criteria': {'type': 'courses_completed', 'value': 1, 'condition': 'gte'}, 'points_reward': 50},
    {'name': 'Perfect Score', 'icon': '💯', 'description': 'Score 100% on a test',
     'criteria': {'type': 'perfect_scores', 'value': 1, 'condition': 'gte'}, 'points_reward': 50},
    {'name': 'Dedicated Learner', 'icon': '📚', 'description': 'Complete 10 materials',
     'criteria': {'type': 'materials_completed', 'value': 10, 'condition': 'gte'}, 'points_reward': 25},
    {'name': 'Streak Master', 'icon': '🔥', 'description': 'Study 7 days in a row',
     'criteria': {'type': 'streak', 'value': 7, 'condition': 'gte'}, 'points_reward': 75},
    {'name': 'Unstoppable', 'icon': '⚡', 'description': 'Study 30 days in a row',
     'criteria': {'type': 'streak', 'value': 30, 'condition': 'gte'}, 'points_reward': 300},
    {'name': 'Milestone Reacher', 'icon': '🏆', 'description': 'Collect 1000 points',
     'criteria': {'type': 'points', 'value': 1000, 'condition': 'gte'}, 'points_reward': 0},
]


def challenge_data():
    return [
        {
            'name': '7-day study streak',
            'description': 'Study every day for a week',
            'type': 'STREAK',
            'target': 7,
            'icon': '🔥',
            'rewards': {'points': 150},
        },
        {
            'name': 'Weekend warrior',
            'description': 'Study on both days of the weekend',
            'type': 'WEEKEND_STREAK',
            'target': 2,
            'icon': '🗓',
            'rewards': {'points': 60},
        },
        {
            'name': 'Logic sprint',
            'description': 'A five minute logic quiz',
            'type': 'QUIZ',
            'target': 1,
            'icon': '🧠',
            'rewards': {'points': 100},
            'rules': {'time_limit': 5, 'required_score': 70},
            'has_quiz': True,
            'quiz': {
                'total_points': 100,
                'passing_score': 70,
                'questions': [
                    {'id': '1', 'question': 'All squares are rectangles', 'type': 'TRUE_FALSE', 'correct_answer': 'true'},
                    {'id': '2', 'question': '1, 1, 2, 3, 5, ?', 'type': 'MULTIPLE_CHOICE',
                     'options': ['7', '8', '9'], 'correct_answer': '8'},
                ],
            },
        },
    ]


class Command(BaseCommand):
    help = 'Populate the database with demo tutors, courses, content, badges and challenges'

    def add_arguments(self, parser):
        parser.add_argument('--with-students', action='store_true', help='Also create demo students with active enrollments')

    @transaction.atomic
    def handle(self, *args, **options):
        tutors = [self._user(data, User.Role.TUTOR) for data in TUTORS]

        courses = []
        for data in COURSES:
            course, created = Course.objects.get_or_create(
                title=data['title'],
                defaults={
                    key: data[key] for key in (
                        'description', 'category', 'difficulty', 'price',
                        'duration', 'estimated_hours', 'max_students', 'status',
                    )
                },
            )
            courses.append(course)
            if not created:
                self.stdout.write(self.style.NOTICE(f'Course already exists: {course.title}'))
                continue

            CourseTutor.objects.get_or_create(course=course, tutor=tutors[data['tutor']], defaults={'is_primary': True})
            for order, topic_data in enumerate(data['topics'], start=1):
                self._topic(course, order, topic_data)
            self.stdout.write(self.style.SUCCESS(f'Created course: {course.title}'))

        for data in BADGES:
            badge, created = Badge.objects.get_or_create(name=data['name'], defaults=data)
            if created:
                self.stdout.write(self.style.SUCCESS(f'Created badge: {badge.name}'))

        now = timezone.now()
        for data in challenge_data():
            challenge, created = Challenge.objects.get_or_create(
                name=data['name'],
                defaults={**data, 'start_date': now, 'end_date': now + timedelta(days=30)},
            )
            if created:
                self.stdout.write(self.style.SUCCESS(f'Created challenge: {challenge.name}'))

        if options['with_students']:
            for data, course in zip(STUDENTS, courses):
                student = self._user(data, User.Role.STUDENT)
                CourseEnrollment.objects.get_or_create(
                    course=course,
                    student=student,
                    defaults={'status': 'ACTIVE', 'payment_status': 'PAID', 'tutor': course.primary_tutor},
                )

        self.stdout.write(self.style.SUCCESS('Demo data ready'))

    def _user(self, data, role):
        user = User.objects.filter(email__iexact=data['email']).first()
        if user is None:
            user = User.objects.create_user(role=role, **data)
            self.stdout.write(self.style.SUCCESS(f'Created {role.lower()}: {user.email}'))
        return user

    def _topic(self, course, order, data):
        topic = Topic.objects.create(course=course, title=data['title'], description=data['description'], order=order)
        for material_order, material in enumerate(data['materials'], start=1):
            Material.objects.create(topic=topic, order=material_order, **material)

        test_data = data.get('test')
        if test_data:
            test = Test.objects.create(topic=topic, title=test_data['title'], is_published=True)
            for question_order, question in enumerate(test_data['questions'], start=1):
                Question.objects.create(test=test, order=question_order, **question)
        return topic
