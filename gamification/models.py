import uuid

from django.contrib.auth import get_user_model
from django.db import models
from django.utils import timezone

User = get_user_model()

EXPERIENCE_PER_LEVEL = 1000


class UserPoints(models.Model):
    """Points balance, level and daily activity streak of a user"""
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='points_account')
    points = models.IntegerField(default=0)
    level = models.PositiveIntegerField(default=1)
    experience = models.PositiveIntegerField(default=0)
    streak = models.PositiveIntegerField(default=0, help_text="Consecutive days with activity")
    longest_streak = models.PositiveIntegerField(default=0)
    last_activity_date = models.DateField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = 'User points'
        ordering = ['-points']

    def __str__(self):
        return f"{self.user.email}: {self.points} pts (level {self.level})"

    @staticmethod
    def level_for(experience):
        return experience // EXPERIENCE_PER_LEVEL + 1

    @property
    def next_level_experience(self):
        return self.level * EXPERIENCE_PER_LEVEL

    @property
    def level_progress(self):
        """Percentage of the way to the next level"""
        return round((self.experience % EXPERIENCE_PER_LEVEL) / EXPERIENCE_PER_LEVEL * 100)


class PointTransaction(models.Model):
    CATEGORY_CHOICES = [
        ('TEST_COMPLETION', 'Test completion'),
        ('MATERIAL_COMPLETION', 'Material completion'),
        ('COURSE_COMPLETION', 'Course completion'),
        ('STREAK_BONUS', 'Streak bonus'),
        ('CHALLENGE_COMPLETION', 'Challenge completion'),
        ('BADGE_EARNED', 'Badge earned'),
        ('DAILY_LOGIN', 'Daily login'),
        ('MANUAL', 'Manual'),
    ]

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='point_transactions')
    points = models.IntegerField()
    reason = models.CharField(max_length=255)
    category = models.CharField(max_length=30, choices=CATEGORY_CHOICES)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'category'], name='points_user_category_idx'),
        ]

    def __str__(self):
        return f"{self.user.email} {self.points:+d} ({self.category})"


class Badge(models.Model):
    """
    An achievement awarded automatically when its criteria match, e.g.
    ``{"type": "tests_passed", "value": 5, "condition": "gte"}``.
    """
    CRITERIA_TYPES = [
        'points', 'level', 'streak', 'tests_passed',
        'materials_completed', 'courses_completed', 'perfect_scores',
    ]
    CONDITIONS = ['gte', 'lte', 'eq']

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    icon = models.CharField(max_length=50, blank=True, default='🏅')
    criteria = models.JSONField(default=dict)
    points_reward = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class UserBadge(models.Model):
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='user_badges')
    badge = models.ForeignKey(Badge, on_delete=models.CASCADE, related_name='awards')
    earned_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ['user', 'badge']
        ordering = ['-earned_at']

    def __str__(self):
        return f"{self.user.email} earned {self.badge.name}"


class Challenge(models.Model):
    TYPE_CHOICES = [
        ('STREAK', 'Study streak'),
        ('STUDY_DAYS', 'Study days'),
        ('WEEKEND_STREAK', 'Weekend streak'),
        ('QUIZ', 'Quiz'),
        ('TEST_SCORE', 'Test score'),
        ('CUSTOM', 'Custom'),
    ]

    STREAK_TYPES = ('STREAK', 'STUDY_DAYS', 'WEEKEND_STREAK')

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='CUSTOM')
    target = models.PositiveIntegerField(default=1, help_text="Days or score needed to complete")
    start_date = models.DateTimeField()
    end_date = models.DateTimeField()

    rules = models.JSONField(default=dict, blank=True, help_text="time_limit, max_attempts, required_score")
    rewards = models.JSONField(default=dict, blank=True, help_text="points and optional badge ids")
    max_participants = models.PositiveIntegerField(null=True, blank=True)

    has_quiz = models.BooleanField(default=False)
    quiz = models.JSONField(default=dict, blank=True, help_text="questions, total_points, passing_score")

    icon = models.CharField(max_length=50, blank=True, default='🎯')
    is_active = models.BooleanField(default=True)
    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_challenges'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-start_date']
        indexes = [
            models.Index(fields=['is_active', 'end_date'], name='challenge_active_end_idx'),
        ]

    def __str__(self):
        return self.name

    def is_open(self, now=None):
        now = now or timezone.now()
        return self.is_active and self.start_date <= now <= self.end_date

    @property
    def reward_points(self):
        return int((self.rewards or {}).get('points', 0) or 0)

    @property
    def passing_score(self):
        quiz = self.quiz or {}
        rules = self.rules or {}
        return int(quiz.get('passing_score', rules.get('required_score', 70)))

    @property
    def total_points(self):
        return int((self.quiz or {}).get('total_points', 100))


class ChallengeSubmission(models.Model):
    challenge = models.ForeignKey(Challenge, on_delete=models.CASCADE, related_name='submissions')
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='challenge_submissions')
    content = models.TextField(blank=True)
    answers = models.JSONField(default=dict, blank=True)
    score = models.PositiveIntegerField(null=True, blank=True)
    passed = models.BooleanField(default=False)
    submitted_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ['challenge', 'user']
        ordering = ['-submitted_at']

    def __str__(self):
        return f"{self.user.email} - {self.challenge.name}"
