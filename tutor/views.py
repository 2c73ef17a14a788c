"""
Tutor workspace: the courses a tutor is assigned to and their students.
"""
from django.db.models import Avg, Count, Q
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.views import APIView

from authentication.permissions import IsTutor
from courses.models import Course, Test, TestSubmission
from courses.serializers import TestSubmissionSerializer
from enrollments.models import EnrollmentRequest
from student.models import CourseEnrollment

ACCESS_STATUSES = ('ACTIVE', 'COMPLETED')


def assigned_courses(tutor):
    return Course.objects.filter(course_tutors__tutor=tutor).distinct()


def tutor_enrollments(tutor):
    """Enrollments in the tutor's courses plus those where they are the chosen tutor."""
    return CourseEnrollment.objects.filter(
        Q(tutor=tutor) | Q(course__course_tutors__tutor=tutor)
    ).distinct()


def submission_stats(submissions):
    stats = submissions.aggregate(
        total=Count('id'),
        passed=Count('id', filter=Q(passed=True)),
        average=Avg('percentage'),
    )
    total = stats['total']
    return {
        'total_submissions': total,
        'passed': stats['passed'],
        'pass_rate': round(stats['passed'] / total * 100) if total else 0,
        'average_percentage': round(stats['average'] or 0),
    }


def _course_data(course, tutor):
    return {
        'id': str(course.id),
        'title': course.title,
        'category': course.category,
        'difficulty': course.difficulty,
        'status': course.status,
        'price': str(course.price),
        'max_students': course.max_students,
        'enrolled_count': course.enrolled_count,
        'topics_count': course.topics_count,
        'tests_count': course.tests_count,
        'is_primary': course.course_tutors.filter(tutor=tutor, is_primary=True).exists(),
    }


def _annotated_courses(tutor):
    return assigned_courses(tutor).annotate(
        enrolled_count=Count(
            'enrollments', filter=Q(enrollments__status__in=ACCESS_STATUSES), distinct=True
        ),
        topics_count=Count('topics', distinct=True),
        tests_count=Count('topics__tests', distinct=True),
    ).order_by('title')


class TutorDashboardView(APIView):
    """
    Tutor dashboard: assigned courses, requests that chose this tutor and
    how students do on the tests.
    """
    permission_classes = [IsTutor]

    def get(self, request):
        tutor = request.user
        courses = _annotated_courses(tutor)
        enrollments = tutor_enrollments(tutor)
        submissions = TestSubmission.objects.filter(test__topic__course__in=assigned_courses(tutor))

        pending_requests = EnrollmentRequest.objects.filter(
            selected_tutor=tutor, status__in=EnrollmentRequest.OPEN_STATUSES
        ).select_related('course')

        return Response({
            'overview': {
                'total_courses': courses.count(),
                'active_courses': courses.filter(status='ACTIVE').count(),
                'total_students': enrollments.filter(status__in=ACCESS_STATUSES)
                    .values('student').distinct().count(),
                'completed_enrollments': enrollments.filter(status='COMPLETED').count(),
                'pending_requests': pending_requests.count(),
            },
            'courses': [_course_data(course, tutor) for course in courses],
            'pending_requests': [{
                'id': str(enrollment_request.id),
                'course_id': str(enrollment_request.course_id),
                'course_title': enrollment_request.course.title,
                'student_name': enrollment_request.student_name,
                'status': enrollment_request.status,
                'created_at': enrollment_request.created_at,
            } for enrollment_request in pending_requests[:10]],
            'test_stats': submission_stats(submissions),
            'recent_submissions': TestSubmissionSerializer(
                submissions.select_related('test', 'student').order_by('-submitted_at')[:5], many=True
            ).data,
        })


@api_view(['GET'])
@permission_classes([IsTutor])
def tutor_courses(request):
    return Response([_course_data(course, request.user) for course in _annotated_courses(request.user)])


@api_view(['GET'])
@permission_classes([IsTutor])
def tutor_students(request):
    """
    Students in the tutor's courses. Filters: ``course_id``, ``status``,
    ``search`` (name or email).
    """
    enrollments = tutor_enrollments(request.user).select_related('student', 'course')

    course_id = request.query_params.get('course_id')
    if course_id:
        enrollments = enrollments.filter(course_id=course_id)

    enrollment_status = request.query_params.get('status')
    if enrollment_status:
        enrollments = enrollments.filter(status=enrollment_status.upper())
    else:
        enrollments = enrollments.filter(status__in=ACCESS_STATUSES)

    search = request.query_params.get('search', '').strip()
    if search:
        enrollments = enrollments.filter(
            Q(student__email__icontains=search) |
            Q(student__first_name__icontains=search) |
            Q(student__last_name__icontains=search)
        )

    students = []
    for enrollment in enrollments.order_by('student__first_name', 'student__email'):
        student = enrollment.student
        students.append({
            'enrollment_id': str(enrollment.id),
            'student_id': student.id,
            'name': student.display_name,
            'email': student.email,
            'course_id': str(enrollment.course_id),
            'course_title': enrollment.course.title,
            'status': enrollment.status,
            'progress_percentage': enrollment.progress_percentage,
            'enrolled_at': enrollment.enrolled_at,
            'last_activity': enrollment.last_accessed,
        })
    return Response({'count': len(students), 'students': students})


@api_view(['GET'])
@permission_classes([IsTutor])
def test_submissions(request, test_id):
    test = get_object_or_404(Test.objects.select_related('topic__course'), id=test_id)
    if not test.topic.course.is_tutor(request.user):
        return Response({'error': 'Test not found'}, status=status.HTTP_404_NOT_FOUND)

    submissions = test.submissions.select_related('student', 'test').order_by('-submitted_at')
    return Response({
        'test': {
            'id': str(test.id),
            'title': test.title,
            'course_id': str(test.topic.course_id),
            'course_title': test.topic.course.title,
            'passing_score': test.passing_score,
            'total_points': test.total_points,
        },
        'stats': submission_stats(submissions),
        'submissions': TestSubmissionSerializer(submissions, many=True).data,
    })
