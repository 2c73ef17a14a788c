from django.contrib import admin, messages

from . import services
from .models import Badge, Challenge, ChallengeSubmission, PointTransaction, UserBadge, UserPoints


@admin.register(UserPoints)
class UserPointsAdmin(admin.ModelAdmin):
    list_display = ['user', 'points', 'level', 'experience', 'streak', 'longest_streak', 'last_activity_date']
    search_fields = ['user__email', 'user__first_name', 'user__last_name']
    readonly_fields = ['updated_at']
    raw_id_fields = ['user']


@admin.register(PointTransaction)
class PointTransactionAdmin(admin.ModelAdmin):
    list_display = ['user', 'points', 'category', 'reason', 'created_at']
    list_filter = ['category', 'created_at']
    search_fields = ['user__email', 'reason']
    raw_id_fields = ['user']
    date_hierarchy = 'created_at'


@admin.register(Badge)
class BadgeAdmin(admin.ModelAdmin):
    list_display = ['name', 'icon', 'points_reward', 'is_active', 'created_at']
    list_filter = ['is_active']
    search_fields = ['name', 'description']


@admin.register(UserBadge)
class UserBadgeAdmin(admin.ModelAdmin):
    list_display = ['user', 'badge', 'earned_at']
    list_filter = ['badge']
    search_fields = ['user__email', 'badge__name']
    raw_id_fields = ['user']


@admin.register(Challenge)
class ChallengeAdmin(admin.ModelAdmin):
    list_display = ['name', 'type', 'target', 'start_date', 'end_date', 'is_active', 'has_quiz']
    list_filter = ['type', 'is_active', 'has_quiz']
    search_fields = ['name', 'description']
    readonly_fields = ['id', 'created_at', 'updated_at']
    raw_id_fields = ['created_by']
    actions = ['activate_challenges', 'deactivate_challenges']

    def activate_challenges(self, request, queryset):
        updated = queryset.update(is_active=True)
        self.message_user(request, f"{updated} challenges activated.")
    activate_challenges.short_description = "Activate selected challenges"

    def deactivate_challenges(self, request, queryset):
        updated = queryset.update(is_active=False)
        self.message_user(request, f"{updated} challenges deactivated.")
    deactivate_challenges.short_description = "Deactivate selected challenges"


@admin.register(ChallengeSubmission)
class ChallengeSubmissionAdmin(admin.ModelAdmin):
    list_display = ['user', 'challenge', 'score', 'passed', 'submitted_at']
    list_filter = ['passed', 'challenge']
    search_fields = ['user__email', 'challenge__name']
    raw_id_fields = ['user']
    actions = ['mark_passed']

    def mark_passed(self, request, queryset):
        count = 0
        for submission in queryset.filter(passed=False).select_related('challenge', 'user'):
            services.review_submission(submission, passed=True)
            count += 1
        self.message_user(request, f"{count} submissions marked as passed and rewarded.", messages.SUCCESS)
    mark_passed.short_description = "Mark as passed and give rewards"
