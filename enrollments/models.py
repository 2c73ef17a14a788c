import uuid

from django.conf import settings
from django.db import models


class EnrollmentRequest(models.Model):
    """
    A request to join a course. Payment happens off-platform: a manager
    contacts the student over WhatsApp/Telegram, confirms the payment and
    approves the request, which activates a CourseEnrollment.
    """
    STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('CONTACTED', 'Contacted'),
        ('APPROVED', 'Approved'),
        ('REJECTED', 'Rejected'),
    ]

    CONTACT_CHOICES = [
        ('WHATSAPP', 'WhatsApp'),
        ('TELEGRAM', 'Telegram'),
        ('PHONE', 'Phone'),
        ('EMAIL', 'Email'),
    ]

    OPEN_STATUSES = ('PENDING', 'CONTACTED')

    # Allowed status changes; APPROVED and REJECTED are final
    TRANSITIONS = {
        'PENDING': ('CONTACTED', 'APPROVED', 'REJECTED'),
        'CONTACTED': ('APPROVED', 'REJECTED'),
        'APPROVED': (),
        'REJECTED': (),
    }

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    course = models.ForeignKey('courses.Course', on_delete=models.CASCADE, related_name='enrollment_requests')
    student = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='enrollment_requests'
    )

    student_name = models.CharField(max_length=100)
    student_email = models.EmailField()
    student_phone = models.CharField(max_length=20)
    whatsapp_number = models.CharField(max_length=20, blank=True)
    telegram_username = models.CharField(max_length=64, blank=True)
    preferred_contact = models.CharField(max_length=20, choices=CONTACT_CHOICES, default='WHATSAPP')
    selected_tutor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='tutor_enrollment_requests'
    )
    message = models.TextField(blank=True, max_length=1000)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='PENDING')
    admin_notes = models.TextField(blank=True)
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='reviewed_enrollment_requests'
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)
    enrollment = models.ForeignKey(
        'student.CourseEnrollment',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='requests'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'created_at'], name='request_status_date_idx'),
            models.Index(fields=['course', 'student_email'], name='request_course_email_idx'),
        ]

    def __str__(self):
        return f"{self.student_name} -> {self.course.title} ({self.status})"

    @property
    def is_open(self):
        return self.status in self.OPEN_STATUSES

    def can_transition(self, new_status):
        return new_status in self.TRANSITIONS.get(self.status, ())


class Payment(models.Model):
    """Manual payment confirmed by staff after the off-platform exchange."""
    STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('COMPLETED', 'Completed'),
        ('FAILED', 'Failed'),
        ('REFUNDED', 'Refunded'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    enrollment = models.ForeignKey('student.CourseEnrollment', on_delete=models.CASCADE, related_name='payments')
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=10, default='KZT')
    method = models.CharField(max_length=20, default='CONTACT_MANAGER')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='PENDING')
    reference = models.CharField(max_length=255, blank=True, help_text="Receipt or transfer reference")
    confirmed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='confirmed_payments'
    )
    confirmed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'confirmed_at'], name='payment_status_date_idx'),
        ]

    def __str__(self):
        return f"Payment {self.amount} {self.currency} ({self.status})"
