"""
Points, levels, badges and challenges.
"""
import logging

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import Avg, Count, Q
from django.utils import timezone

from backend.exceptions import AlreadySubmitted, ChallengeClosed, ServiceError
from courses import grading
from .models import Badge, ChallengeSubmission, PointTransaction, UserBadge, UserPoints
from .streaks import analyze_study_streak, get_activity_dates

logger = logging.getLogger(__name__)

User = get_user_model()

MATERIAL_COMPLETION_POINTS = 10
COURSE_COMPLETION_POINTS = 200
PERFECT_SCORE_BONUS = 25
MAX_STREAK_BONUS = 100

LEADERBOARD_CATEGORIES = ('points', 'streak', 'tests')


def get_user_points(user):
    user_points, _ = UserPoints.objects.get_or_create(user=user)
    return user_points


def has_award(user, category, **metadata):
    """True when a transaction of this category with this metadata exists."""
    lookups = {f'metadata__{key}': value for key, value in metadata.items()}
    return PointTransaction.objects.filter(user=user, category=category, **lookups).exists()


def award_points(user, points, category, reason, metadata=None, evaluate_badges=True):
    """
    Record a point transaction and update the balance. Experience grows by
    the absolute amount so deductions never lower the level.
    """
    with transaction.atomic():
        get_user_points(user)
        user_points = UserPoints.objects.select_for_update().get(user=user)
        point_transaction = PointTransaction.objects.create(
            user=user,
            points=points,
            reason=reason,
            category=category,
            metadata=metadata or {},
        )
        user_points.points += points
        user_points.experience += abs(points)
        user_points.level = UserPoints.level_for(user_points.experience)
        user_points.save()

    logger.info(f"Awarded {points} points to {user.email} ({category}): {reason}")

    if evaluate_badges:
        check_badges(user)
    return point_transaction, user_points


def record_activity(user, day=None):
    """
    Count a day of activity towards the daily streak. Returns the points
    account and the streak bonus awarded (0 when none).
    """
    day = day or timezone.localdate()
    with transaction.atomic():
        get_user_points(user)
        user_points = UserPoints.objects.select_for_update().get(user=user)
        last = user_points.last_activity_date

        if last is not None and last >= day:
            return user_points, 0

        if last is not None and (day - last).days == 1:
            user_points.streak += 1
            bonus = min(user_points.streak * 10, MAX_STREAK_BONUS)
        else:
            user_points.streak = 1
            bonus = 0

        user_points.longest_streak = max(user_points.longest_streak, user_points.streak)
        user_points.last_activity_date = day
        user_points.save()

    if bonus:
        _, user_points = award_points(
            user,
            bonus,
            'STREAK_BONUS',
            f"{user_points.streak} day streak",
            {'streak': user_points.streak, 'date': day.isoformat()},
        )
    return user_points, bonus


# Badges

def badge_metric(user, metric, user_points=None):
    from courses.models import TestSubmission
    from student.models import CourseEnrollment, MaterialProgress

    user_points = user_points or get_user_points(user)
    if metric == 'points':
        return user_points.points
    if metric == 'level':
        return user_points.level
    if metric == 'streak':
        return max(user_points.streak, user_points.longest_streak)
    if metric == 'tests_passed':
        return TestSubmission.objects.filter(student=user, passed=True).count()
    if metric == 'perfect_scores':
        return TestSubmission.objects.filter(student=user, percentage=100).count()
    if metric == 'materials_completed':
        return MaterialProgress.objects.filter(student=user, status='COMPLETED').count()
    if metric == 'courses_completed':
        return CourseEnrollment.objects.filter(student=user, status='COMPLETED').count()
    return None


def criteria_met(criteria, actual):
    if actual is None:
        return False
    try:
        expected = int(criteria.get('value', 0))
    except (TypeError, ValueError):
        return False
    condition = criteria.get('condition', 'gte')
    if condition == 'lte':
        return actual <= expected
    if condition == 'eq':
        return actual == expected
    return actual >= expected


def award_badge(user, badge):
    """Give a badge once; returns the UserBadge or None if already earned."""
    try:
        with transaction.atomic():
            user_badge = UserBadge.objects.create(user=user, badge=badge)
    except IntegrityError:
        return None

    logger.info(f"Badge '{badge.name}' awarded to {user.email}")
    if badge.points_reward:
        award_points(
            user,
            badge.points_reward,
            'BADGE_EARNED',
            f"Earned badge: {badge.name}",
            {'badge_id': str(badge.id)},
            evaluate_badges=False,
        )
    return user_badge


def check_badges(user):
    """
    Award every active badge whose criteria the user now meets. Badge
    rewards can unlock further badges, so evaluation repeats until nothing
    new is earned.
    """
    earned = []
    while True:
        owned = UserBadge.objects.filter(user=user).values_list('badge_id', flat=True)
        candidates = Badge.objects.filter(is_active=True).exclude(id__in=list(owned))
        user_points = get_user_points(user)
        metrics = {}
        new_badges = []
        for badge in candidates:
            criteria = badge.criteria or {}
            metric = criteria.get('type')
            if metric not in metrics:
                metrics[metric] = badge_metric(user, metric, user_points)
            if criteria_met(criteria, metrics[metric]) and award_badge(user, badge):
                new_badges.append(badge)
        if not new_badges:
            return earned
        earned.extend(new_badges)


# Automatic awards

def award_material_completion(progress):
    if progress.status != 'COMPLETED':
        return None
    material_id = str(progress.material_id)
    if has_award(progress.student, 'MATERIAL_COMPLETION', material_id=material_id):
        return None
    return award_points(
        progress.student,
        MATERIAL_COMPLETION_POINTS,
        'MATERIAL_COMPLETION',
        f"Completed material: {progress.material.title}",
        {'material_id': material_id},
    )


def test_points(percentage):
    points = percentage // 2
    if percentage >= 100:
        points += PERFECT_SCORE_BONUS
    return points


def award_test_result(submission):
    if not submission.passed:
        return None
    test_id = str(submission.test_id)
    if has_award(submission.student, 'TEST_COMPLETION', test_id=test_id):
        return None
    return award_points(
        submission.student,
        test_points(submission.percentage),
        'TEST_COMPLETION',
        f"Passed test: {submission.test.title} ({submission.percentage}%)",
        {'test_id': test_id, 'percentage': submission.percentage},
    )


def award_course_completion(enrollment):
    if enrollment.status != 'COMPLETED':
        return None
    course_id = str(enrollment.course_id)
    if has_award(enrollment.student, 'COURSE_COMPLETION', course_id=course_id):
        return None
    return award_points(
        enrollment.student,
        COURSE_COMPLETION_POINTS,
        'COURSE_COMPLETION',
        f"Completed course: {enrollment.course.title}",
        {'course_id': course_id},
    )


# Leaderboards

def leaderboard(category='points', limit=10, user=None):
    if category not in LEADERBOARD_CATEGORIES:
        category = 'points'

    if category == 'tests':
        rows = User.objects.filter(role=User.Role.STUDENT, is_active=True).annotate(
            tests_passed=Count('test_submissions', filter=Q(test_submissions__passed=True)),
            average_percentage=Avg('test_submissions__percentage'),
        ).filter(tests_passed__gt=0).order_by('-tests_passed', '-average_percentage', 'email')
        entries = [{
            'user_id': row.id,
            'name': row.display_name,
            'score': row.tests_passed,
            'average_percentage': round(row.average_percentage or 0),
        } for row in rows]
    else:
        order = ['-points', '-level'] if category == 'points' else ['-streak', '-longest_streak']
        rows = UserPoints.objects.select_related('user').filter(
            user__is_active=True, user__role=User.Role.STUDENT
        ).order_by(*order, 'user__email')
        entries = [{
            'user_id': row.user_id,
            'name': row.user.display_name,
            'score': row.points if category == 'points' else row.streak,
            'points': row.points,
            'level': row.level,
            'streak': row.streak,
        } for row in rows]

    for rank, entry in enumerate(entries, start=1):
        entry['rank'] = rank

    user_rank = None
    if user is not None:
        user_rank = next((e['rank'] for e in entries if e['user_id'] == user.id), None)

    return {'category': category, 'leaderboard': entries[:limit], 'user_rank': user_rank}


# Challenges

def normalize_question_type(question_type):
    return str(question_type or grading.MULTIPLE_CHOICE).upper().replace('-', '_')


def public_quiz(quiz):
    """Quiz as shown to participants, without the answers."""
    if not quiz:
        return {}
    questions = []
    for index, question in enumerate(quiz.get('questions', [])):
        questions.append({
            'id': str(question.get('id', index)),
            'question': question.get('question', ''),
            'type': normalize_question_type(question.get('type')),
            'options': question.get('options', []),
        })
    return {
        'questions': questions,
        'total_points': quiz.get('total_points', 100),
        'passing_score': quiz.get('passing_score', 70),
        'time_limit': quiz.get('time_limit'),
    }


def score_quiz(quiz, answers):
    """
    Returns (correct_count, question_count, score). Answers are keyed by
    question id, falling back to the question's position.
    """
    questions = quiz.get('questions', [])
    total_points = int(quiz.get('total_points', 100))
    if isinstance(answers, list):
        answers = {str(index): answer for index, answer in enumerate(answers)}

    correct = 0
    for index, question in enumerate(questions):
        key = str(question.get('id', index))
        given = answers.get(key, answers.get(str(index)))
        if grading.is_correct(normalize_question_type(question.get('type')), question.get('correct_answer'), given):
            correct += 1

    if not questions:
        return 0, 0, 0
    return correct, len(questions), grading.round_half_up(correct / len(questions) * total_points)


def _ensure_can_submit(challenge, user):
    if not challenge.is_open():
        raise ChallengeClosed()
    if ChallengeSubmission.objects.filter(challenge=challenge, user=user).exists():
        raise AlreadySubmitted('You have already submitted this challenge')
    if challenge.max_participants and challenge.submissions.count() >= challenge.max_participants:
        raise ChallengeClosed('Challenge is full')


def _create_submission(challenge, user, **fields):
    try:
        with transaction.atomic():
            return ChallengeSubmission.objects.create(challenge=challenge, user=user, **fields)
    except IntegrityError:
        raise AlreadySubmitted('You have already submitted this challenge')


def complete_challenge(submission):
    """Give the challenge rewards (points and badges) for a passed submission."""
    challenge = submission.challenge
    user = submission.user
    if challenge.reward_points and not has_award(user, 'CHALLENGE_COMPLETION', challenge_id=str(challenge.id)):
        award_points(
            user,
            challenge.reward_points,
            'CHALLENGE_COMPLETION',
            f"Completed challenge: {challenge.name}",
            {'challenge_id': str(challenge.id), 'score': submission.score},
        )
    for badge in Badge.objects.filter(id__in=(challenge.rewards or {}).get('badges', []), is_active=True):
        award_badge(user, badge)


def submit_challenge(challenge, user, content):
    _ensure_can_submit(challenge, user)
    submission = _create_submission(challenge, user, content=content)
    logger.info(f"{user.email} submitted challenge '{challenge.name}'")
    return submission


def submit_challenge_quiz(challenge, user, answers):
    if not challenge.has_quiz or not (challenge.quiz or {}).get('questions'):
        raise ServiceError('This challenge does not have a quiz')
    _ensure_can_submit(challenge, user)

    correct, total, score = score_quiz(challenge.quiz, answers)
    passed = score >= challenge.passing_score
    submission = _create_submission(challenge, user, answers=answers, score=score, passed=passed)

    if passed:
        complete_challenge(submission)
    logger.info(f"{user.email} scored {score} on challenge '{challenge.name}' (passed={passed})")
    return submission, correct, total


def review_submission(submission, passed, score=None):
    """Staff decision on a content submission."""
    submission.passed = passed
    if score is not None:
        submission.score = score
    submission.save(update_fields=['passed', 'score'])
    if passed:
        complete_challenge(submission)
    return submission


def challenge_progress(challenge, user, activity_dates=None, today=None):
    """
    Progress towards a challenge. Streak challenges measure study days;
    the others count as done once a passing submission exists.
    """
    today = today or timezone.localdate()
    target = challenge.target or 1

    if challenge.type in challenge.STREAK_TYPES:
        if activity_dates is None:
            activity_dates = get_activity_dates(user)
        start = timezone.localtime(challenge.start_date).date()
        end = timezone.localtime(challenge.end_date).date()
        in_window = {day for day in activity_dates if start <= day <= end}
        if challenge.type == 'STREAK':
            progress = analyze_study_streak(activity_dates, today)['current_streak']
        elif challenge.type == 'STUDY_DAYS':
            progress = len(in_window)
        else:
            target = challenge.target or 2
            progress = sum(1 for day in in_window if day.weekday() >= 5)
    else:
        submission = ChallengeSubmission.objects.filter(challenge=challenge, user=user).first()
        if challenge.type == 'TEST_SCORE' and submission is not None:
            progress = submission.score or 0
        else:
            progress = target if submission is not None and submission.passed else 0

    return {
        'progress': progress,
        'target': target,
        'percentage': min(round(progress / target * 100), 100),
        'completed': progress >= target,
    }
