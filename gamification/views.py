import logging

from django.db.models import Count
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import permissions, status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.views import APIView

from authentication.permissions import IsAdminRole
from backend.exceptions import ServiceError, error_response
from . import services
from .models import Badge, Challenge, ChallengeSubmission, UserBadge
from .serializers import (
    BadgeSerializer, ChallengeContentSerializer, ChallengeQuizAnswersSerializer,
    ChallengeSerializer, ChallengeSubmissionSerializer, ParticipantChallengeSerializer,
    PointTransactionSerializer, UserBadgeSerializer
)
from .streaks import get_activity_dates, get_study_streak, streak_leaderboard

logger = logging.getLogger(__name__)

MAX_LEADERBOARD_SIZE = 100


def _invalid(message, errors):
    return Response({'error': message, 'details': errors}, status=status.HTTP_400_BAD_REQUEST)


def _limit(request, default=10):
    try:
        limit = int(request.query_params.get('limit', default))
    except (TypeError, ValueError):
        return default
    return min(max(limit, 1), MAX_LEADERBOARD_SIZE)


@api_view(['GET'])
@permission_classes([permissions.IsAuthenticated])
def study_streak(request):
    return Response(get_study_streak(request.user))


@api_view(['GET'])
@permission_classes([permissions.IsAuthenticated])
def streak_leaderboard_view(request):
    """?period=week|month|all"""
    period = request.query_params.get('period', 'week')
    return Response(streak_leaderboard(period, _limit(request), user=request.user))


@api_view(['GET'])
@permission_classes([permissions.IsAuthenticated])
def leaderboard(request):
    """?category=points|streak|tests"""
    category = request.query_params.get('category', 'points')
    return Response(services.leaderboard(category, _limit(request), user=request.user))


@api_view(['GET'])
@permission_classes([permissions.IsAuthenticated])
def profile(request):
    user_points = services.get_user_points(request.user)
    badges = UserBadge.objects.filter(user=request.user).select_related('badge')
    transactions = request.user.point_transactions.all()[:10]
    return Response({
        'points': user_points.points,
        'level': user_points.level,
        'experience': user_points.experience,
        'next_level_experience': user_points.next_level_experience,
        'level_progress': user_points.level_progress,
        'streak': user_points.streak,
        'longest_streak': user_points.longest_streak,
        'last_activity_date': user_points.last_activity_date,
        'badges': UserBadgeSerializer(badges, many=True).data,
        'recent_transactions': PointTransactionSerializer(transactions, many=True).data,
    })


class BadgeListCreateView(APIView):
    """
    GET: active badges with the caller's earned flags
    POST: admins create a badge
    """

    def get_permissions(self):
        if self.request.method == 'GET':
            return [permissions.IsAuthenticated()]
        return [IsAdminRole()]

    def get(self, request):
        earned = dict(UserBadge.objects.filter(user=request.user).values_list('badge_id', 'earned_at'))
        badges = Badge.objects.all() if request.user.is_admin_role else Badge.objects.filter(is_active=True)
        data = []
        for badge in badges:
            item = BadgeSerializer(badge).data
            item['earned'] = badge.id in earned
            item['earned_at'] = earned.get(badge.id)
            data.append(item)
        return Response(data)

    def post(self, request):
        serializer = BadgeSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid('Invalid badge data', serializer.errors)
        badge = serializer.save()
        logger.info(f"Badge '{badge.name}' created by {request.user.email}")
        return Response(BadgeSerializer(badge).data, status=status.HTTP_201_CREATED)


class BadgeDetailView(APIView):
    permission_classes = [IsAdminRole]

    def put(self, request, badge_id):
        badge = get_object_or_404(Badge, id=badge_id)
        serializer = BadgeSerializer(badge, data=request.data, partial=True)
        if not serializer.is_valid():
            return _invalid('Invalid badge data', serializer.errors)
        return Response(BadgeSerializer(serializer.save()).data)

    patch = put

    def delete(self, request, badge_id):
        badge = get_object_or_404(Badge, id=badge_id)
        badge.delete()
        logger.info(f"Badge {badge_id} deleted by {request.user.email}")
        return Response(status=status.HTTP_204_NO_CONTENT)


def _participant_data(challenge, user, activity_dates, submissions):
    data = ParticipantChallengeSerializer(challenge).data
    submission = submissions.get(challenge.id)
    data['progress'] = services.challenge_progress(challenge, user, activity_dates)
    data['submitted'] = submission is not None
    data['submission'] = ChallengeSubmissionSerializer(submission).data if submission else None
    return data


class ChallengeListCreateView(APIView):
    """
    GET: students see active challenges with their own progress, admins and
    staff see every challenge with submission counts
    POST: admins create a challenge
    """

    def get_permissions(self):
        if self.request.method == 'GET':
            return [permissions.IsAuthenticated()]
        return [IsAdminRole()]

    def get(self, request):
        challenges = Challenge.objects.select_related('created_by').annotate(submissions_count=Count('submissions'))

        if request.user.is_staff_role:
            return Response(ChallengeSerializer(challenges, many=True).data)

        challenges = challenges.filter(is_active=True, end_date__gte=timezone.now())
        activity_dates = get_activity_dates(request.user)
        submissions = {
            s.challenge_id: s for s in ChallengeSubmission.objects.filter(user=request.user)
        }
        return Response([
            _participant_data(challenge, request.user, activity_dates, submissions)
            for challenge in challenges
        ])

    def post(self, request):
        serializer = ChallengeSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid('Invalid challenge data', serializer.errors)
        challenge = serializer.save(created_by=request.user)
        logger.info(f"Challenge '{challenge.name}' created by {request.user.email}")
        return Response(ChallengeSerializer(challenge).data, status=status.HTTP_201_CREATED)


class ChallengeDetailView(APIView):

    def get_permissions(self):
        if self.request.method == 'GET':
            return [permissions.IsAuthenticated()]
        return [IsAdminRole()]

    def get(self, request, challenge_id):
        challenge = get_object_or_404(Challenge, id=challenge_id)
        if request.user.is_staff_role:
            data = ChallengeSerializer(challenge).data
            data['submissions'] = ChallengeSubmissionSerializer(challenge.submissions.all(), many=True).data
            return Response(data)

        if not challenge.is_active:
            return Response({'error': 'Challenge not found'}, status=status.HTTP_404_NOT_FOUND)
        submissions = {
            s.challenge_id: s for s in ChallengeSubmission.objects.filter(user=request.user, challenge=challenge)
        }
        return Response(_participant_data(challenge, request.user, get_activity_dates(request.user), submissions))

    def put(self, request, challenge_id):
        challenge = get_object_or_404(Challenge, id=challenge_id)
        serializer = ChallengeSerializer(challenge, data=request.data, partial=True)
        if not serializer.is_valid():
            return _invalid('Invalid challenge data', serializer.errors)
        challenge = serializer.save()
        logger.info(f"Challenge '{challenge.name}' updated by {request.user.email}")
        return Response(ChallengeSerializer(challenge).data)

    patch = put

    def delete(self, request, challenge_id):
        challenge = get_object_or_404(Challenge, id=challenge_id)
        challenge.delete()
        logger.info(f"Challenge {challenge_id} deleted by {request.user.email}")
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAdminRole])
def toggle_challenge_status(request, challenge_id):
    challenge = get_object_or_404(Challenge, id=challenge_id)
    challenge.is_active = not challenge.is_active
    challenge.save(update_fields=['is_active', 'updated_at'])
    logger.info(f"Challenge '{challenge.name}' active={challenge.is_active} (by {request.user.email})")
    return Response({'id': str(challenge.id), 'is_active': challenge.is_active})


@api_view(['POST'])
@permission_classes([permissions.IsAuthenticated])
def submit_challenge(request, challenge_id):
    challenge = get_object_or_404(Challenge, id=challenge_id)
    serializer = ChallengeContentSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid('Content is required', serializer.errors)

    try:
        submission = services.submit_challenge(challenge, request.user, serializer.validated_data['content'])
    except ServiceError as e:
        return error_response(e)

    return Response(ChallengeSubmissionSerializer(submission).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([permissions.IsAuthenticated])
def submit_challenge_quiz(request, challenge_id):
    challenge = get_object_or_404(Challenge, id=challenge_id)
    serializer = ChallengeQuizAnswersSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid('Answers are required', serializer.errors)

    try:
        submission, correct, total = services.submit_challenge_quiz(
            challenge, request.user, serializer.validated_data['answers']
        )
    except ServiceError as e:
        return error_response(e)

    return Response({
        'id': submission.id,
        'score': submission.score,
        'total_points': challenge.total_points,
        'passing_score': challenge.passing_score,
        'passed': submission.passed,
        'correct_answers': correct,
        'total_questions': total,
        'points_awarded': challenge.reward_points if submission.passed else 0,
    }, status=status.HTTP_201_CREATED)
