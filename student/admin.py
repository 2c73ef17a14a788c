from django.contrib import admin
from .models import CourseBookmark, CourseEnrollment, CourseFavorite, MaterialProgress


@admin.register(CourseEnrollment)
class CourseEnrollmentAdmin(admin.ModelAdmin):
    list_display = [
        'student', 'course', 'status', 'payment_status', 'progress_percentage',
        'enrolled_at', 'last_accessed'
    ]
    list_filter = ['status', 'payment_status', 'payment_method', 'enrolled_at']
    search_fields = ['student__email', 'student__first_name', 'student__last_name', 'course__title']
    readonly_fields = ['id', 'enrolled_at', 'updated_at', 'progress_percentage']
    raw_id_fields = ['student', 'tutor', 'enrolled_by']
    date_hierarchy = 'enrolled_at'
    actions = ['recalculate_progress', 'suspend_enrollments']

    fieldsets = (
        ('Basic Information', {
            'fields': ('id', 'student', 'course', 'tutor', 'status', 'enrolled_by')
        }),
        ('Payment', {
            'fields': ('payment_status', 'payment_method')
        }),
        ('Progress', {
            'fields': ('progress_percentage', 'last_accessed', 'completed_at')
        }),
        ('Timestamps', {
            'fields': ('enrolled_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def recalculate_progress(self, request, queryset):
        for enrollment in queryset:
            enrollment.update_progress()
        self.message_user(request, f"Recalculated progress for {queryset.count()} enrollments.")
    recalculate_progress.short_description = "Recalculate progress"

    def suspend_enrollments(self, request, queryset):
        updated = queryset.filter(status='ACTIVE').update(status='SUSPENDED')
        self.message_user(request, f"{updated} enrollments suspended.")
    suspend_enrollments.short_description = "Suspend selected enrollments"


@admin.register(MaterialProgress)
class MaterialProgressAdmin(admin.ModelAdmin):
    list_display = ['student', 'material', 'status', 'time_spent', 'last_accessed']
    list_filter = ['status']
    search_fields = ['student__email', 'material__title']
    raw_id_fields = ['student', 'material']


@admin.register(CourseBookmark)
class CourseBookmarkAdmin(admin.ModelAdmin):
    list_display = ['user', 'course', 'created_at']
    search_fields = ['user__email', 'course__title']


@admin.register(CourseFavorite)
class CourseFavoriteAdmin(admin.ModelAdmin):
    list_display = ['user', 'course', 'created_at']
    search_fields = ['user__email', 'course__title']
