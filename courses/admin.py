from django.contrib import admin

from .models import Course, CourseTutor, Material, Question, Test, TestSubmission, Topic


class CourseTutorInline(admin.TabularInline):
    model = CourseTutor
    extra = 0
    autocomplete_fields = ['tutor']


class TopicInline(admin.TabularInline):
    model = Topic
    extra = 0
    fields = ['title', 'order']


@admin.register(Course)
class CourseAdmin(admin.ModelAdmin):
    list_display = ['title', 'category', 'difficulty', 'price', 'status', 'is_featured', 'enrolled_students_count', 'created_at']
    list_filter = ['status', 'difficulty', 'category', 'is_featured', 'created_at']
    search_fields = ['title', 'description', 'category']
    readonly_fields = ['id', 'created_at', 'updated_at', 'enrolled_students_count']
    inlines = [CourseTutorInline, TopicInline]
    actions = ['publish_courses', 'deactivate_courses', 'archive_courses']

    fieldsets = (
        ('Basic Information', {
            'fields': ('title', 'description', 'category', 'difficulty', 'image')
        }),
        ('Pricing & Capacity', {
            'fields': ('price', 'duration', 'estimated_hours', 'max_students')
        }),
        ('Settings', {
            'fields': ('status', 'is_featured', 'created_by')
        }),
        ('Metadata', {
            'fields': ('id', 'created_at', 'updated_at', 'enrolled_students_count'),
            'classes': ('collapse',)
        }),
    )

    def publish_courses(self, request, queryset):
        updated = queryset.update(status='ACTIVE')
        self.message_user(request, f'{updated} courses were published.')
    publish_courses.short_description = "Publish selected courses"

    def deactivate_courses(self, request, queryset):
        updated = queryset.update(status='INACTIVE')
        self.message_user(request, f'{updated} courses were deactivated.')
    deactivate_courses.short_description = "Deactivate selected courses"

    def archive_courses(self, request, queryset):
        updated = queryset.update(status='ARCHIVED')
        self.message_user(request, f'{updated} courses were archived.')
    archive_courses.short_description = "Archive selected courses"

    def save_model(self, request, obj, form, change):
        if not change and not obj.created_by:
            obj.created_by = request.user
        super().save_model(request, obj, form, change)


class MaterialInline(admin.StackedInline):
    model = Material
    extra = 0


class TestInline(admin.TabularInline):
    model = Test
    extra = 0
    fields = ['title', 'passing_score', 'is_published', 'order']


@admin.register(Topic)
class TopicAdmin(admin.ModelAdmin):
    list_display = ['title', 'course', 'order', 'created_at']
    list_filter = ['course']
    search_fields = ['title', 'course__title']
    inlines = [MaterialInline, TestInline]


@admin.register(Material)
class MaterialAdmin(admin.ModelAdmin):
    list_display = ['title', 'type', 'topic', 'order', 'is_published']
    list_filter = ['type', 'is_published', 'topic__course']
    search_fields = ['title', 'description', 'topic__title']


class QuestionInline(admin.StackedInline):
    model = Question
    extra = 0


@admin.register(Test)
class TestAdmin(admin.ModelAdmin):
    list_display = ['title', 'topic', 'passing_score', 'question_count', 'total_points', 'is_published']
    list_filter = ['is_published', 'topic__course']
    search_fields = ['title', 'topic__title', 'topic__course__title']
    inlines = [QuestionInline]
    actions = ['publish_tests']

    def publish_tests(self, request, queryset):
        updated = queryset.update(is_published=True)
        self.message_user(request, f'{updated} tests were published.')
    publish_tests.short_description = "Publish selected tests"


@admin.register(Question)
class QuestionAdmin(admin.ModelAdmin):
    list_display = ['__str__', 'test', 'type', 'points', 'order']
    list_filter = ['type', 'test__topic__course']
    search_fields = ['question', 'test__title']


@admin.register(TestSubmission)
class TestSubmissionAdmin(admin.ModelAdmin):
    list_display = ['student', 'test', 'score', 'max_score', 'percentage', 'passed', 'submitted_at']
    list_filter = ['passed', 'submitted_at', 'test__topic__course']
    search_fields = ['student__email', 'test__title']
    readonly_fields = ['id', 'answers', 'submitted_at']


@admin.register(CourseTutor)
class CourseTutorAdmin(admin.ModelAdmin):
    list_display = ['course', 'tutor', 'is_primary', 'assigned_at']
    list_filter = ['is_primary']
    search_fields = ['course__title', 'tutor__email']
