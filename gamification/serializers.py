import uuid

from rest_framework import serializers

from courses.models import validate_question_fields
from .models import Badge, Challenge, ChallengeSubmission, PointTransaction, UserBadge
from .services import normalize_question_type, public_quiz


class PointTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = PointTransaction
        fields = ['id', 'points', 'reason', 'category', 'metadata', 'created_at']


class BadgeSerializer(serializers.ModelSerializer):
    class Meta:
        model = Badge
        fields = ['id', 'name', 'description', 'icon', 'criteria', 'points_reward', 'is_active', 'created_at']
        read_only_fields = ['id', 'created_at']

    def validate_criteria(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError('Criteria must be an object')
        if value.get('type') not in Badge.CRITERIA_TYPES:
            raise serializers.ValidationError(f"type must be one of: {', '.join(Badge.CRITERIA_TYPES)}")
        if value.setdefault('condition', 'gte') not in Badge.CONDITIONS:
            raise serializers.ValidationError('condition must be gte, lte or eq')
        try:
            value['value'] = int(value.get('value'))
        except (TypeError, ValueError):
            raise serializers.ValidationError('value must be an integer')
        return value


class UserBadgeSerializer(serializers.ModelSerializer):
    badge = BadgeSerializer(read_only=True)

    class Meta:
        model = UserBadge
        fields = ['badge', 'earned_at']


class ChallengeSerializer(serializers.ModelSerializer):
    """Full challenge, as managed by admins"""
    submissions_count = serializers.SerializerMethodField()
    created_by_name = serializers.CharField(source='created_by.display_name', read_only=True, default=None)

    class Meta:
        model = Challenge
        fields = [
            'id', 'name', 'description', 'type', 'target', 'start_date', 'end_date',
            'rules', 'rewards', 'max_participants', 'has_quiz', 'quiz', 'icon',
            'is_active', 'created_by_name', 'submissions_count', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_by_name', 'submissions_count', 'created_at', 'updated_at']

    def get_submissions_count(self, obj):
        count = getattr(obj, 'submissions_count', None)
        return count if count is not None else obj.submissions.count()

    def validate_rewards(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError('Rewards must be an object')
        points = value.get('points', 0)
        if not isinstance(points, int) or points < 0:
            raise serializers.ValidationError('points must be a non-negative integer')
        badges = value.get('badges', [])
        try:
            value['badges'] = [str(uuid.UUID(str(badge_id))) for badge_id in badges]
        except (TypeError, ValueError):
            raise serializers.ValidationError('badges must be a list of badge ids')
        return value

    def validate_quiz(self, value):
        if not value:
            return {}
        if not isinstance(value, dict) or not isinstance(value.get('questions'), list):
            raise serializers.ValidationError('Quiz must contain a list of questions')

        errors = {}
        for index, question in enumerate(value['questions']):
            if not isinstance(question, dict) or not str(question.get('question', '')).strip():
                errors[str(index)] = 'Question text is required'
                continue
            question['type'] = normalize_question_type(question.get('type'))
            question.setdefault('id', str(index))
            question_errors = validate_question_fields(
                question['type'], question.get('options'), question.get('correct_answer', '')
            )
            if question_errors:
                errors[str(index)] = question_errors
        if errors:
            raise serializers.ValidationError(errors)

        value.setdefault('total_points', 100)
        value.setdefault('passing_score', 70)
        return value

    def validate(self, attrs):
        start = attrs.get('start_date', getattr(self.instance, 'start_date', None))
        end = attrs.get('end_date', getattr(self.instance, 'end_date', None))
        if start and end and end <= start:
            raise serializers.ValidationError({'end_date': 'End date must be after start date'})

        has_quiz = attrs.get('has_quiz', getattr(self.instance, 'has_quiz', False))
        quiz = attrs.get('quiz', getattr(self.instance, 'quiz', {}))
        if has_quiz and not (quiz or {}).get('questions'):
            raise serializers.ValidationError({'quiz': 'A quiz challenge needs at least one question'})
        return attrs


class ParticipantChallengeSerializer(serializers.ModelSerializer):
    """Challenge as shown to students; quiz answers are hidden"""
    quiz = serializers.SerializerMethodField()
    participants_count = serializers.SerializerMethodField()

    class Meta:
        model = Challenge
        fields = [
            'id', 'name', 'description', 'type', 'target', 'start_date', 'end_date',
            'rules', 'rewards', 'max_participants', 'participants_count',
            'has_quiz', 'quiz', 'icon'
        ]

    def get_quiz(self, obj):
        return public_quiz(obj.quiz) if obj.has_quiz else None

    def get_participants_count(self, obj):
        count = getattr(obj, 'submissions_count', None)
        return count if count is not None else obj.submissions.count()


class ChallengeSubmissionSerializer(serializers.ModelSerializer):
    challenge_name = serializers.CharField(source='challenge.name', read_only=True)

    class Meta:
        model = ChallengeSubmission
        fields = ['id', 'challenge', 'challenge_name', 'content', 'score', 'passed', 'submitted_at']


class ChallengeContentSerializer(serializers.Serializer):
    content = serializers.CharField(max_length=5000)


class ChallengeQuizAnswersSerializer(serializers.Serializer):
    answers = serializers.JSONField()

    def validate_answers(self, value):
        if not isinstance(value, (dict, list)) or not value:
            raise serializers.ValidationError('Answers are required')
        return value
