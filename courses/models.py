import logging
import uuid
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinLengthValidator, MinValueValidator
from django.db import models

from . import grading

User = get_user_model()
logger = logging.getLogger(__name__)


class Course(models.Model):
    """
    Course offered in the catalog. Students get access through an approved
    enrollment request (see the enrollments app).
    """
    DIFFICULTY_CHOICES = [
        ('BEGINNER', 'Beginner'),
        ('INTERMEDIATE', 'Intermediate'),
        ('ADVANCED', 'Advanced'),
    ]

    STATUS_CHOICES = [
        ('DRAFT', 'Draft'),
        ('ACTIVE', 'Active'),
        ('INACTIVE', 'Inactive'),
        ('ARCHIVED', 'Archived'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    title = models.CharField(max_length=100, validators=[MinLengthValidator(3)])
    description = models.TextField(max_length=1000, validators=[MinLengthValidator(10)])
    category = models.CharField(max_length=100, blank=True)
    difficulty = models.CharField(max_length=20, choices=DIFFICULTY_CHOICES, default='BEGINNER')
    estimated_hours = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1), MaxValueValidator(1000)]
    )
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0')), MaxValueValidator(Decimal('1000000'))],
        help_text="Course price in the payment currency"
    )
    duration = models.CharField(max_length=100, blank=True, help_text="Human readable duration, e.g. '3 months'")
    max_students = models.PositiveIntegerField(
        default=30,
        validators=[MinValueValidator(1), MaxValueValidator(1000)]
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='DRAFT')
    image = models.URLField(max_length=500, blank=True)
    is_featured = models.BooleanField(default=False)

    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_courses'
    )
    tutors = models.ManyToManyField(User, through='CourseTutor', related_name='tutored_courses', blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-is_featured', '-created_at']
        indexes = [
            models.Index(fields=['status'], name='course_status_idx'),
            models.Index(fields=['category'], name='course_category_idx'),
        ]

    def __str__(self):
        return self.title

    @property
    def enrolled_students_count(self):
        return self.enrollments.filter(status__in=['ACTIVE', 'COMPLETED']).count()

    @property
    def seats_left(self):
        return max(self.max_students - self.enrolled_students_count, 0)

    @property
    def is_full(self):
        return self.seats_left == 0

    @property
    def primary_tutor(self):
        assignment = self.course_tutors.select_related('tutor').order_by('-is_primary', 'assigned_at').first()
        return assignment.tutor if assignment else None

    def is_tutor(self, user):
        return self.course_tutors.filter(tutor=user).exists()


class CourseTutor(models.Model):
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name='course_tutors')
    tutor = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='course_assignments',
        limit_choices_to={'role': 'TUTOR'}
    )
    is_primary = models.BooleanField(default=False)
    assigned_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ['course', 'tutor']
        ordering = ['-is_primary', 'assigned_at']

    def __str__(self):
        return f"{self.tutor.display_name} -> {self.course.title}"


class Topic(models.Model):
    """
    Ordered grouping of materials and tests within a course
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name='topics')
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    order = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['course', 'order', 'created_at']
        indexes = [
            models.Index(fields=['course', 'order'], name='topic_course_order_idx'),
        ]

    def __str__(self):
        return f"{self.course.title} - {self.title}"


class Material(models.Model):
    TYPE_CHOICES = [
        ('PDF', 'PDF'),
        ('VIDEO', 'Video'),
        ('AUDIO', 'Audio'),
        ('LINK', 'Link'),
        ('TEXT', 'Text'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    topic = models.ForeignKey(Topic, on_delete=models.CASCADE, related_name='materials')
    type = models.CharField(max_length=10, choices=TYPE_CHOICES)
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    url = models.URLField(max_length=500, blank=True, help_text="Required for every type except TEXT")
    content = models.TextField(blank=True, help_text="Body of TEXT materials")
    duration_minutes = models.PositiveIntegerField(null=True, blank=True)
    order = models.PositiveIntegerField(default=0)
    is_published = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['topic', 'order', 'created_at']

    def __str__(self):
        return f"{self.get_type_display()}: {self.title}"

    def clean(self):
        if self.type == 'TEXT':
            if not self.content:
                raise ValidationError({'content': "Text materials need content"})
        elif not self.url:
            raise ValidationError({'url': f"{self.get_type_display()} materials need a URL"})

    @property
    def course(self):
        return self.topic.course


class Test(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    topic = models.ForeignKey(Topic, on_delete=models.CASCADE, related_name='tests')
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    duration_minutes = models.PositiveIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(1)],
        help_text="Time limit in minutes (null = no limit)"
    )
    passing_score = models.PositiveIntegerField(
        default=70,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
        help_text="Minimum percentage to pass"
    )
    is_published = models.BooleanField(default=False)
    order = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['topic', 'order', 'created_at']

    def __str__(self):
        return f"Test: {self.title}"

    @property
    def total_points(self):
        return sum(question.points for question in self.questions.all())

    @property
    def question_count(self):
        return self.questions.count()

    @property
    def course(self):
        return self.topic.course


class Question(models.Model):
    TYPE_CHOICES = [
        (grading.MULTIPLE_CHOICE, 'Multiple Choice'),
        (grading.TRUE_FALSE, 'True/False'),
        (grading.SHORT_ANSWER, 'Short Answer'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    test = models.ForeignKey(Test, on_delete=models.CASCADE, related_name='questions')
    question = models.TextField(help_text="The question text")
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=grading.MULTIPLE_CHOICE)
    options = models.JSONField(default=list, blank=True, help_text="Answer options for multiple choice")
    correct_answer = models.CharField(max_length=500)
    points = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    order = models.PositiveIntegerField(default=0)
    explanation = models.TextField(blank=True, help_text="Explanation shown after answering")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['test', 'order', 'created_at']

    def __str__(self):
        return f"Q{self.order}: {self.question[:50]}"

    def clean(self):
        errors = validate_question_fields(self.type, self.options, self.correct_answer)
        if errors:
            raise ValidationError(errors)

    def check_answer(self, answer):
        return grading.is_correct(self.type, self.correct_answer, answer)


def validate_question_fields(question_type, options, correct_answer):
    """Return a dict of field errors for an invalid question definition."""
    errors = {}
    if question_type == grading.MULTIPLE_CHOICE:
        options = [str(option).strip() for option in (options or []) if str(option).strip()]
        if len(options) < 2:
            errors['options'] = "Multiple choice questions need at least 2 options"
        elif str(correct_answer).strip().lower() not in [option.lower() for option in options]:
            errors['correct_answer'] = "The correct answer must be one of the options"
    elif question_type == grading.TRUE_FALSE:
        if str(correct_answer).strip().lower() not in ('true', 'false'):
            errors['correct_answer'] = "True/false answers must be 'true' or 'false'"
    elif not str(correct_answer or '').strip():
        errors['correct_answer'] = "A correct answer is required"
    return errors


class TestSubmission(models.Model):
    """
    A student's graded answers to a test. One submission per test.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    test = models.ForeignKey(Test, on_delete=models.CASCADE, related_name='submissions')
    student = models.ForeignKey(User, on_delete=models.CASCADE, related_name='test_submissions')

    answers = models.JSONField(default=list, help_text="Per-question answer and correctness")
    score = models.PositiveIntegerField(default=0)
    max_score = models.PositiveIntegerField(default=0)
    percentage = models.PositiveIntegerField(default=0)
    passed = models.BooleanField(default=False)
    time_spent = models.PositiveIntegerField(default=0, help_text="Seconds spent on the test")
    submitted_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ['test', 'student']
        ordering = ['-submitted_at']
        indexes = [
            models.Index(fields=['student', 'submitted_at'], name='submission_student_date_idx'),
        ]

    def __str__(self):
        return f"{self.student.display_name} - {self.test.title} ({self.percentage}%)"
