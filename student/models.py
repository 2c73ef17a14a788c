import uuid

from django.contrib.auth import get_user_model
from django.db import models
from django.utils import timezone

from courses.grading import round_half_up

User = get_user_model()


class CourseEnrollment(models.Model):
    """
    A student's access to a course. Created when an enrollment request is
    approved (or when staff enroll a student directly).
    """
    STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('ACTIVE', 'Active'),
        ('COMPLETED', 'Completed'),
        ('SUSPENDED', 'Suspended'),
        ('CANCELLED', 'Cancelled'),
    ]

    PAYMENT_STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('PAID', 'Paid'),
        ('FAILED', 'Failed'),
        ('REFUNDED', 'Refunded'),
    ]

    PAYMENT_METHOD_CHOICES = [
        ('KASPI', 'Kaspi'),
        ('CARD', 'Card'),
        ('BANK_TRANSFER', 'Bank transfer'),
        ('CONTACT_MANAGER', 'Paid via manager'),
        ('MANUAL', 'Manual'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    course = models.ForeignKey('courses.Course', on_delete=models.CASCADE, related_name='enrollments')
    student = models.ForeignKey(User, on_delete=models.CASCADE, related_name='course_enrollments')
    tutor = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='tutored_enrollments'
    )
    enrolled_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='enrollments_created',
        help_text="Staff member who activated the enrollment"
    )

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='PENDING')
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default='PENDING')
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES, default='CONTACT_MANAGER')

    progress_percentage = models.PositiveIntegerField(default=0, help_text="Overall course completion percentage")
    enrolled_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    last_accessed = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ['course', 'student']
        ordering = ['-enrolled_at']
        indexes = [
            models.Index(fields=['student', 'status'], name='enrollment_student_status_idx'),
            models.Index(fields=['course', 'status'], name='enrollment_course_status_idx'),
        ]

    def __str__(self):
        return f"{self.student.display_name} enrolled in {self.course.title}"

    @property
    def is_active(self):
        return self.status == 'ACTIVE'

    @property
    def has_access(self):
        return self.status in ('ACTIVE', 'COMPLETED')

    def calculate_progress(self):
        """
        Completed published materials plus submitted published tests, as a
        percentage of all published materials and tests of the course.
        """
        from courses.models import Material, Test, TestSubmission

        materials = Material.objects.filter(topic__course_id=self.course_id, is_published=True)
        tests = Test.objects.filter(topic__course_id=self.course_id, is_published=True)
        total = materials.count() + tests.count()
        if total == 0:
            return 0

        completed_materials = MaterialProgress.objects.filter(
            student_id=self.student_id, material__in=materials, status='COMPLETED'
        ).count()
        submitted_tests = TestSubmission.objects.filter(student_id=self.student_id, test__in=tests).count()
        return round_half_up((completed_materials + submitted_tests) / total * 100)

    def update_progress(self):
        """Recalculate progress; completes the enrollment at 100%."""
        self.progress_percentage = self.calculate_progress()
        self.last_accessed = timezone.now()
        if self.progress_percentage >= 100 and self.status == 'ACTIVE':
            self.mark_completed()
        else:
            self.save(update_fields=['progress_percentage', 'last_accessed', 'updated_at'])

    def mark_completed(self):
        self.status = 'COMPLETED'
        self.completed_at = timezone.now()
        self.progress_percentage = 100
        self.save()


class MaterialProgress(models.Model):
    STATUS_CHOICES = [
        ('NOT_STARTED', 'Not started'),
        ('IN_PROGRESS', 'In progress'),
        ('COMPLETED', 'Completed'),
    ]

    material = models.ForeignKey('courses.Material', on_delete=models.CASCADE, related_name='progress_records')
    student = models.ForeignKey(User, on_delete=models.CASCADE, related_name='material_progress')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='NOT_STARTED')
    time_spent = models.PositiveIntegerField(default=0, help_text="Accumulated seconds")
    last_accessed = models.DateTimeField(default=timezone.now)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ['material', 'student']
        ordering = ['-last_accessed']
        indexes = [
            models.Index(fields=['student', 'last_accessed'], name='progress_student_access_idx'),
        ]

    def __str__(self):
        return f"{self.student.display_name} - {self.material.title} ({self.status})"


class CourseBookmark(models.Model):
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='course_bookmarks')
    course = models.ForeignKey('courses.Course', on_delete=models.CASCADE, related_name='bookmarks')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ['user', 'course']
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.user.email} bookmarked {self.course.title}"


class CourseFavorite(models.Model):
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='course_favorites')
    course = models.ForeignKey('courses.Course', on_delete=models.CASCADE, related_name='favorites')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ['user', 'course']
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.user.email} favorited {self.course.title}"
