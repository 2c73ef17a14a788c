"""
Read-only aggregates for the admin analytics dashboard.
"""
from datetime import date, datetime, time, timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db.models import Avg, Count, Q, Sum
from django.db.models.functions import TruncMonth
from django.utils import timezone

from courses.models import Course, Test, TestSubmission
from enrollments.models import EnrollmentRequest, Payment
from student.models import CourseEnrollment, MaterialProgress

User = get_user_model()

CURRENCY = 'KZT'
MAX_TREND_MONTHS = 24
ACTIVE_WINDOW_DAYS = 7

# Lower bounds of the score bands, checked in order
SCORE_BANDS = [
    ('EXCELLENT', 90),
    ('GOOD', 75),
    ('AVERAGE', 60),
    ('POOR', 40),
    ('FAILED', 0),
]


def _counts_by(queryset, field, choices):
    counts = {value: 0 for value, _ in choices}
    for row in queryset.values(field).annotate(total=Count('id')):
        counts[row[field]] = row['total']
    return counts


def _start_of_day(day):
    return timezone.make_aware(datetime.combine(day, time.min))


def month_start(today=None):
    today = today or timezone.localdate()
    return today.replace(day=1)


def last_months(count, today=None):
    """First days of the last ``count`` months, oldest first, current month included."""
    current = month_start(today)
    months = []
    year, month = current.year, current.month
    for _ in range(count):
        months.append(date(year, month, 1))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(months))


def completed_revenue(payments=None):
    payments = Payment.objects.filter(status='COMPLETED') if payments is None else payments
    return payments.aggregate(total=Sum('amount'))['total'] or Decimal('0')


def overview(today=None):
    this_month = _start_of_day(month_start(today))
    completed_payments = Payment.objects.filter(status='COMPLETED')

    users = _counts_by(User.objects.filter(is_active=True), 'role', User.Role.choices)
    courses = _counts_by(Course.objects.all(), 'status', Course.STATUS_CHOICES)
    enrollments = _counts_by(CourseEnrollment.objects.all(), 'status', CourseEnrollment.STATUS_CHOICES)

    return {
        'users': {
            'total': sum(users.values()),
            'by_role': users,
            'new_this_month': User.objects.filter(date_joined__gte=this_month).count(),
        },
        'courses': {'total': sum(courses.values()), 'by_status': courses},
        'enrollments': {'total': sum(enrollments.values()), 'by_status': enrollments},
        'pending_requests': EnrollmentRequest.objects.filter(
            status__in=EnrollmentRequest.OPEN_STATUSES
        ).count(),
        'revenue': {
            'currency': CURRENCY,
            'total': str(completed_revenue(completed_payments)),
            'this_month': str(completed_revenue(completed_payments.filter(confirmed_at__gte=this_month))),
        },
    }


def _by_month(queryset, date_field, **aggregates):
    rows = (
        queryset.annotate(month=TruncMonth(date_field))
        .values('month')
        .annotate(**aggregates)
    )
    result = {}
    for row in rows:
        if row['month'] is None:
            continue
        month = row.pop('month')
        month = timezone.localtime(month).date() if isinstance(month, datetime) else month
        result[(month.year, month.month)] = row
    return result


def trends(months=6, today=None):
    """Enrollments and completed revenue per month, zero-filled."""
    months = max(1, min(months, MAX_TREND_MONTHS))
    starts = last_months(months, today)
    since = _start_of_day(starts[0])

    enrollments = _by_month(
        CourseEnrollment.objects.filter(enrolled_at__gte=since), 'enrolled_at', count=Count('id')
    )
    revenue = _by_month(
        Payment.objects.filter(status='COMPLETED', confirmed_at__gte=since), 'confirmed_at', total=Sum('amount')
    )

    data = []
    for start in starts:
        key = (start.year, start.month)
        data.append({
            'month': start.strftime('%Y-%m'),
            'label': start.strftime('%b %Y'),
            'enrollments': enrollments.get(key, {}).get('count', 0),
            'revenue': str(revenue.get(key, {}).get('total') or Decimal('0')),
        })
    return data


def top_courses(limit=5):
    revenue = {
        row['enrollment__course']: row['total']
        for row in Payment.objects.filter(status='COMPLETED')
        .values('enrollment__course').annotate(total=Sum('amount'))
    }
    scores = {
        row['test__topic__course']: row['average']
        for row in TestSubmission.objects.values('test__topic__course').annotate(average=Avg('percentage'))
    }

    courses = (
        Course.objects.annotate(
            active_enrollments=Count('enrollments', filter=Q(enrollments__status='ACTIVE'), distinct=True),
            completed_enrollments=Count('enrollments', filter=Q(enrollments__status='COMPLETED'), distinct=True),
        )
        .order_by('-active_enrollments', 'title')[:limit]
    )

    data = []
    for course in courses:
        taking = course.active_enrollments + course.completed_enrollments
        tutor = course.primary_tutor
        average = scores.get(course.id)
        data.append({
            'id': str(course.id),
            'title': course.title,
            'tutor': tutor.display_name if tutor else None,
            'active_enrollments': course.active_enrollments,
            'completion_rate': round(course.completed_enrollments / taking * 100) if taking else 0,
            'average_score': round(average) if average is not None else None,
            'revenue': str(revenue.get(course.id) or Decimal('0')),
        })
    return data


def recent_activity(limit=20):
    """Latest requests, enrollments, test submissions and sign-ups, newest first."""
    events = []

    for item in EnrollmentRequest.objects.select_related('course').order_by('-created_at')[:limit]:
        events.append({
            'type': 'enrollment_request',
            'description': f"{item.student_name} requested {item.course.title}",
            'status': item.status,
            'timestamp': item.created_at,
        })

    for item in CourseEnrollment.objects.select_related('student', 'course').order_by('-enrolled_at')[:limit]:
        events.append({
            'type': 'enrollment',
            'description': f"{item.student.display_name} enrolled in {item.course.title}",
            'status': item.status,
            'timestamp': item.enrolled_at,
        })

    for item in TestSubmission.objects.select_related('student', 'test').order_by('-submitted_at')[:limit]:
        events.append({
            'type': 'test_submission',
            'description': f"{item.student.display_name} scored {item.percentage}% on {item.test.title}",
            'status': 'PASSED' if item.passed else 'FAILED',
            'timestamp': item.submitted_at,
        })

    for item in User.objects.order_by('-date_joined')[:limit]:
        events.append({
            'type': 'user_joined',
            'description': f"{item.display_name} joined as {item.get_role_display().lower()}",
            'status': item.role,
            'timestamp': item.date_joined,
        })

    events.sort(key=lambda event: event['timestamp'], reverse=True)
    return events[:limit]


def score_band(percentage):
    for band, lower in SCORE_BANDS:
        if percentage >= lower:
            return band
    return SCORE_BANDS[-1][0]


def test_performance():
    tests = (
        Test.objects.select_related('topic__course')
        .annotate(
            submissions_count=Count('submissions'),
            passed_count=Count('submissions', filter=Q(submissions__passed=True)),
            average_percentage=Avg('submissions__percentage'),
        )
        .filter(submissions_count__gt=0)
        .order_by('topic__course__title', 'title')
    )

    distribution = {band: 0 for band, _ in SCORE_BANDS}
    for percentage in TestSubmission.objects.values_list('percentage', flat=True):
        distribution[score_band(percentage)] += 1

    return {
        'tests': [{
            'id': str(test.id),
            'title': test.title,
            'course_title': test.topic.course.title,
            'submissions': test.submissions_count,
            'average_percentage': round(test.average_percentage or 0),
            'pass_rate': round(test.passed_count / test.submissions_count * 100),
        } for test in tests],
        'distribution': distribution,
    }


def _active_student_ids(since, until=None):
    progress = MaterialProgress.objects.filter(last_accessed__gte=since)
    submissions = TestSubmission.objects.filter(submitted_at__gte=since)
    if until is not None:
        progress = progress.filter(last_accessed__lt=until)
        submissions = submissions.filter(submitted_at__lt=until)
    return set(progress.values_list('student_id', flat=True)) | set(
        submissions.values_list('student_id', flat=True)
    )


def engagement(weeks=4, now=None):
    now = now or timezone.now()
    since = now - timedelta(days=ACTIVE_WINDOW_DAYS)

    statuses = CourseEnrollment.objects.aggregate(
        active=Count('id', filter=Q(status='ACTIVE')),
        completed=Count('id', filter=Q(status='COMPLETED')),
    )
    taking = statuses['active'] + statuses['completed']
    average_time = MaterialProgress.objects.filter(time_spent__gt=0).aggregate(
        average=Avg('time_spent')
    )['average']

    weekly = []
    for offset in range(weeks - 1, -1, -1):
        week_end = now - timedelta(weeks=offset)
        week_start = week_end - timedelta(weeks=1)
        study_time = MaterialProgress.objects.filter(
            last_accessed__gte=week_start, last_accessed__lt=week_end, time_spent__gt=0
        ).aggregate(average=Avg('time_spent'))['average']
        weekly.append({
            'week_start': timezone.localtime(week_start).date().isoformat(),
            'active_students': len(_active_student_ids(week_start, week_end)),
            'average_study_time': round(study_time or 0),
        })

    return {
        'total_students': User.objects.filter(role=User.Role.STUDENT, is_active=True).count(),
        'active_students': len(_active_student_ids(since)),
        'average_study_time': round(average_time or 0),
        'completion_rate': round(statuses['completed'] / taking * 100) if taking else 0,
        'weekly': weekly,
    }
