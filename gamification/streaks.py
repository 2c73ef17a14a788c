"""
Study streaks computed from the days a student actually studied.

A study day is any local calendar day with material progress activity or a
test submission. ``analyze_study_streak`` works on plain dates so it can be
used for one student or for a whole leaderboard.
"""
from collections import defaultdict
from datetime import timedelta

from django.contrib.auth import get_user_model
from django.utils import timezone

User = get_user_model()

MILESTONES = [
    (3, 'Getting Started', '🔥'),
    (7, 'Week Warrior', '⚡'),
    (14, 'Two Week Champion', '🏆'),
    (30, 'Monthly Master', '👑'),
    (60, 'Dedication Legend', '🌟'),
    (100, 'Century Scholar', '💎'),
]

LEADERBOARD_PERIODS = ('week', 'month', 'all')


def _milestone(days, name, icon):
    return {'days': days, 'name': name, 'icon': icon}


def _count_back(days, start):
    count = 0
    day = start
    while day in days:
        count += 1
        day -= timedelta(days=1)
    return count


def _longest_run(days):
    longest = 0
    run = 0
    previous = None
    for day in sorted(days):
        if previous is not None and day - previous == timedelta(days=1):
            run += 1
        else:
            run = 1
        longest = max(longest, run)
        previous = day
    return longest


def analyze_study_streak(activity_dates, today=None):
    """
    Summarize a set of study days.

    The current streak counts back from today, or from yesterday when there
    is no activity today yet, so an unbroken streak does not drop to zero
    in the morning.
    """
    today = today or timezone.localdate()
    days = {day for day in activity_dates if day <= today}

    yesterday = today - timedelta(days=1)
    if today in days:
        current = _count_back(days, today)
    elif yesterday in days:
        current = _count_back(days, yesterday)
    else:
        current = 0

    longest = max(_longest_run(days), current)
    week_start = today - timedelta(days=6)
    month_start = today - timedelta(days=29)

    reached = [_milestone(*m) for m in MILESTONES if longest >= m[0]]
    current_milestones = [_milestone(*m) for m in MILESTONES if current >= m[0]]
    upcoming = next((m for m in MILESTONES if current < m[0]), None)
    next_milestone = None
    if upcoming:
        next_milestone = dict(_milestone(*upcoming), days_remaining=upcoming[0] - current)

    last_7_days = []
    for offset in range(6, -1, -1):
        day = today - timedelta(days=offset)
        last_7_days.append({
            'date': day.isoformat(),
            'day': day.strftime('%a'),
            'has_activity': day in days,
            'is_today': day == today,
        })

    return {
        'current_streak': current,
        'longest_streak': longest,
        'this_week': sum(1 for day in days if day >= week_start),
        'this_month': sum(1 for day in days if day >= month_start),
        'total_days': len(days),
        'studied_today': today in days,
        'last_activity_date': max(days).isoformat() if days else None,
        'milestones': reached,
        'current_milestones': current_milestones,
        'next_milestone': next_milestone,
        'last_7_days': last_7_days,
    }


def collect_activity_dates(user_ids=None):
    """Map user id to the set of local dates with study activity."""
    from courses.models import TestSubmission
    from student.models import MaterialProgress

    activity = defaultdict(set)

    progress = MaterialProgress.objects.all()
    submissions = TestSubmission.objects.all()
    if user_ids is not None:
        progress = progress.filter(student_id__in=user_ids)
        submissions = submissions.filter(student_id__in=user_ids)

    for student_id, created, accessed, completed in progress.values_list(
        'student_id', 'created_at', 'last_accessed', 'completed_at'
    ):
        for moment in (created, accessed, completed):
            if moment is not None:
                activity[student_id].add(timezone.localtime(moment).date())

    for student_id, submitted in submissions.values_list('student_id', 'submitted_at'):
        activity[student_id].add(timezone.localtime(submitted).date())

    return activity


def get_activity_dates(user):
    return collect_activity_dates([user.id]).get(user.id, set())


def get_study_streak(user, today=None):
    return analyze_study_streak(get_activity_dates(user), today)


def _leaderboard_score(analysis, period):
    if period == 'week':
        return analysis['this_week']
    if period == 'month':
        return analysis['this_month']
    return analysis['current_streak']


def streak_leaderboard(period='week', limit=10, user=None, today=None):
    """
    Rank active students by study days this week, this month, or by their
    current streak. Students with a zero score are left out.
    """
    if period not in LEADERBOARD_PERIODS:
        period = 'week'
    today = today or timezone.localdate()

    students = {
        student.id: student
        for student in User.objects.filter(role=User.Role.STUDENT, is_active=True)
    }
    activity = collect_activity_dates(list(students))

    entries = []
    for student_id, student in students.items():
        analysis = analyze_study_streak(activity.get(student_id, set()), today)
        score = _leaderboard_score(analysis, period)
        if score <= 0:
            continue
        entries.append({
            'user_id': student_id,
            'name': student.display_name,
            'score': score,
            'current_streak': analysis['current_streak'],
            'longest_streak': analysis['longest_streak'],
            'this_week': analysis['this_week'],
            'this_month': analysis['this_month'],
        })

    entries.sort(key=lambda e: (-e['score'], -e['longest_streak'], e['name'].lower(), e['user_id']))
    for rank, entry in enumerate(entries, start=1):
        entry['rank'] = rank

    user_position = None
    if user is not None:
        user_position = next((e for e in entries if e['user_id'] == user.id), None)

    return {
        'period': period,
        'leaderboard': entries[:limit],
        'total_participants': len(entries),
        'user_position': user_position,
    }
