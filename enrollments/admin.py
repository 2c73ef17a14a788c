from django.contrib import admin, messages

from backend.exceptions import ServiceError
from . import services
from .models import EnrollmentRequest, Payment


@admin.register(EnrollmentRequest)
class EnrollmentRequestAdmin(admin.ModelAdmin):
    list_display = [
        'student_name', 'student_email', 'course', 'preferred_contact',
        'status', 'selected_tutor', 'created_at', 'reviewed_at'
    ]
    list_filter = ['status', 'preferred_contact', 'created_at']
    search_fields = ['student_name', 'student_email', 'student_phone', 'course__title']
    readonly_fields = ['id', 'enrollment', 'reviewed_by', 'reviewed_at', 'created_at', 'updated_at']
    raw_id_fields = ['student', 'selected_tutor']
    date_hierarchy = 'created_at'
    actions = ['approve_requests', 'mark_contacted', 'reject_requests']

    fieldsets = (
        ('Request', {
            'fields': ('id', 'course', 'selected_tutor', 'message', 'status')
        }),
        ('Student', {
            'fields': (
                'student', 'student_name', 'student_email', 'student_phone',
                'whatsapp_number', 'telegram_username', 'preferred_contact'
            )
        }),
        ('Review', {
            'fields': ('admin_notes', 'reviewed_by', 'reviewed_at', 'enrollment')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def _apply(self, request, queryset, operation, label):
        done = 0
        for enrollment_request in queryset:
            try:
                operation(enrollment_request, request.user)
                done += 1
            except ServiceError as e:
                self.message_user(
                    request, f"{enrollment_request.student_email}: {e.message}", level=messages.WARNING
                )
        if done:
            self.message_user(request, f"{done} requests {label}.")

    def approve_requests(self, request, queryset):
        self._apply(request, queryset, services.approve_request, 'approved')
    approve_requests.short_description = "Approve (payment confirmed)"

    def mark_contacted(self, request, queryset):
        self._apply(request, queryset, services.mark_contacted, 'marked as contacted')
    mark_contacted.short_description = "Mark as contacted"

    def reject_requests(self, request, queryset):
        self._apply(request, queryset, services.reject_request, 'rejected')
    reject_requests.short_description = "Reject"


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['enrollment', 'amount', 'currency', 'method', 'status', 'confirmed_by', 'confirmed_at']
    list_filter = ['status', 'method', 'currency']
    search_fields = ['enrollment__student__email', 'enrollment__course__title', 'reference']
    raw_id_fields = ['enrollment', 'confirmed_by']
