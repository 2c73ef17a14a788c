
from django.db.models import Avg, Count, Q
from django.shortcuts import get_object_or_404
from rest_framework import permissions, status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.views import APIView

from backend.cache import CACHE_TTL, CacheKeys, get_cached_data, set_cached_data
from backend.exceptions import ServiceError, error_response
from courses.models import Course, Material, Test, TestSubmission
from courses.serializers import QuestionPublicSerializer, TestResultSerializer, TestSubmissionSerializer
from . import services
from .models import CourseBookmark, CourseEnrollment, CourseFavorite, MaterialProgress
from .serializers import (
    CourseBookmarkSerializer, CourseFavoriteSerializer, CourseToggleSerializer,
    EnrolledCourseSerializer, MaterialProgressSerializer,
    MaterialProgressUpdateSerializer, TestSubmitSerializer
)


@api_view(['GET'])
@permission_classes([permissions.IsAuthenticated])
def my_courses(request):
    """
    The caller's enrollments with progress. ``status`` filters by
    enrollment status.
    """
    enrollments = CourseEnrollment.objects.filter(student=request.user).select_related('course', 'tutor')
    enrollment_status = request.query_params.get('status')
    if enrollment_status:
        enrollments = enrollments.filter(status=enrollment_status.upper())
    return Response(EnrolledCourseSerializer(enrollments, many=True).data)


@api_view(['GET'])
@permission_classes([permissions.IsAuthenticated])
def enrollment_check(request, course_id):
    """
    Whether the caller is enrolled in a course and the state of their
    latest enrollment request for it.
    """
    from enrollments.models import EnrollmentRequest

    course = get_object_or_404(Course, id=course_id)
    enrollment = CourseEnrollment.objects.filter(student=request.user, course=course).first()
    latest_request = (
        EnrollmentRequest.objects
        .filter(course=course)
        .filter(Q(student=request.user) | Q(student_email__iexact=request.user.email))
        .order_by('-created_at')
        .first()
    )

    return Response({
        'course_id': str(course.id),
        'is_enrolled': bool(enrollment and enrollment.has_access),
        'enrollment': EnrolledCourseSerializer(enrollment).data if enrollment else None,
        'request': {
            'id': str(latest_request.id),
            'status': latest_request.status,
            'created_at': latest_request.created_at,
        } if latest_request else None,
        'has_pending_request': bool(latest_request and latest_request.is_open),
    })


class MaterialProgressView(APIView):
    """
    GET: progress records of a course (``?course_id=``) in course order
    POST: upsert progress for one material
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        course_id = request.query_params.get('course_id')
        if not course_id:
            return Response({'error': 'course_id is required'}, status=status.HTTP_400_BAD_REQUEST)
        try:
            services.get_enrollment(request.user, course_id)
        except ServiceError as e:
            return error_response(e)

        records = (
            MaterialProgress.objects
            .filter(student=request.user, material__topic__course_id=course_id)
            .select_related('material__topic')
            .order_by('material__topic__order', 'material__order')
        )
        return Response(MaterialProgressSerializer(records, many=True).data)

    def post(self, request):
        serializer = MaterialProgressUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {'error': 'Invalid progress data', 'details': serializer.errors},
                status=status.HTTP_400_BAD_REQUEST
            )
        data = serializer.validated_data
        material = get_object_or_404(
            Material.objects.select_related('topic'), id=data['material_id'], is_published=True
        )

        try:
            progress, enrollment = services.record_material_progress(
                request.user, material, status=data.get('status'), time_spent=data.get('time_spent', 0)
            )
        except ServiceError as e:
            return error_response(e)

        return Response({
            'progress': MaterialProgressSerializer(progress).data,
            'course_progress': enrollment.progress_percentage,
            'enrollment_status': enrollment.status,
        })


@api_view(['GET'])
@permission_classes([permissions.IsAuthenticated])
def course_progress(request, course_id):
    course = get_object_or_404(Course, id=course_id)
    try:
        enrollment = services.get_enrollment(request.user, course.id)
    except ServiceError as e:
        return error_response(e)

    cache_key = CacheKeys.course_progress(course.id, request.user.id)
    data = get_cached_data(cache_key)
    if data is None:
        data = services.course_progress(request.user, course)
        data['enrollment_status'] = enrollment.status
        set_cached_data(cache_key, data, CACHE_TTL['COURSE_PROGRESS'])
    return Response(data)


def _published_test(test_id):
    return get_object_or_404(Test.objects.select_related('topic__course'), id=test_id, is_published=True)


@api_view(['GET'])
@permission_classes([permissions.IsAuthenticated])
def take_test(request, test_id):
    """
    Questions of a test without answers. A test can be taken once.
    """
    test = _published_test(test_id)
    try:
        services.get_enrollment(request.user, test.topic.course_id)
    except ServiceError as e:
        return error_response(e)

    submission = TestSubmission.objects.filter(test=test, student=request.user).first()
    if submission:
        return Response(
            {'error': 'You have already submitted this test', 'submission_id': str(submission.id)},
            status=status.HTTP_409_CONFLICT
        )

    return Response({
        'id': str(test.id),
        'title': test.title,
        'description': test.description,
        'duration_minutes': test.duration_minutes,
        'passing_score': test.passing_score,
        'total_points': test.total_points,
        'course_id': str(test.topic.course_id),
        'topic_title': test.topic.title,
        'questions': QuestionPublicSerializer(test.questions.all(), many=True).data,
    })


@api_view(['POST'])
@permission_classes([permissions.IsAuthenticated])
def submit_test(request, test_id):
    test = _published_test(test_id)
    serializer = TestSubmitSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(
            {'error': 'Invalid submission', 'details': serializer.errors},
            status=status.HTTP_400_BAD_REQUEST
        )

    try:
        submission = services.submit_test(
            request.user,
            test,
            serializer.validated_data['answers'],
            serializer.validated_data.get('time_spent', 0),
        )
    except ServiceError as e:
        return error_response(e)

    return Response(TestResultSerializer(submission).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([permissions.IsAuthenticated])
def test_results(request, test_id):
    test = get_object_or_404(Test, id=test_id)
    submission = TestSubmission.objects.filter(test=test, student=request.user).select_related('test').first()
    if submission is None:
        return Response({'error': 'No submission found for this test'}, status=status.HTTP_404_NOT_FOUND)

    data = TestResultSerializer(submission).data
    data['passing_score'] = test.passing_score
    return Response(data)


class _CourseMarkView(APIView):
    """
    GET lists the caller's marks, POST toggles one (``{"course_id"}``) and
    DELETE removes one.
    """
    permission_classes = [permissions.IsAuthenticated]
    model = None
    serializer_class = None

    def get(self, request):
        marks = self.model.objects.filter(user=request.user).select_related('course')
        return Response(self.serializer_class(marks, many=True).data)

    def post(self, request):
        serializer = CourseToggleSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {'error': 'Invalid data', 'details': serializer.errors},
                status=status.HTTP_400_BAD_REQUEST
            )
        course = get_object_or_404(Course, id=serializer.validated_data['course_id'])

        existing = self.model.objects.filter(user=request.user, course=course)
        if existing.exists():
            existing.delete()
            return Response({'course_id': str(course.id), 'active': False})

        mark = self.model.objects.create(user=request.user, course=course)
        return Response(
            {'course_id': str(course.id), 'active': True, 'item': self.serializer_class(mark).data},
            status=status.HTTP_201_CREATED
        )

    def delete(self, request):
        course_id = request.query_params.get('course_id') or request.data.get('course_id')
        deleted, _ = self.model.objects.filter(user=request.user, course_id=course_id).delete()
        if not deleted:
            return Response({'error': 'Not found'}, status=status.HTTP_404_NOT_FOUND)
        return Response(status=status.HTTP_204_NO_CONTENT)


class BookmarkView(_CourseMarkView):
    model = CourseBookmark
    serializer_class = CourseBookmarkSerializer


class FavoriteView(_CourseMarkView):
    model = CourseFavorite
    serializer_class = CourseFavoriteSerializer


class StudentDashboardView(APIView):
    """
    Everything the student home page needs in one request
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        from enrollments.models import EnrollmentRequest
        from gamification.services import get_user_points
        from gamification.streaks import get_study_streak

        user = request.user
        enrollments = CourseEnrollment.objects.filter(student=user).select_related('course', 'tutor')
        submissions = TestSubmission.objects.filter(student=user).select_related('test')

        test_stats = submissions.aggregate(
            taken=Count('id'),
            passed=Count('id', filter=Q(passed=True)),
            average=Avg('percentage'),
        )
        enrollment_counts = {
            row['status']: row['count']
            for row in enrollments.values('status').annotate(count=Count('id'))
        }

        pending_requests = (
            EnrollmentRequest.objects
            .filter(Q(student=user) | Q(student_email__iexact=user.email), status__in=EnrollmentRequest.OPEN_STATUSES)
            .select_related('course')
        )

        user_points = get_user_points(user)
        streak = get_study_streak(user)

        return Response({
            'enrolled_courses': EnrolledCourseSerializer(enrollments, many=True).data,
            'stats': {
                'total_courses': sum(enrollment_counts.values()),
                'active_courses': enrollment_counts.get('ACTIVE', 0),
                'completed_courses': enrollment_counts.get('COMPLETED', 0),
                'tests_taken': test_stats['taken'],
                'tests_passed': test_stats['passed'],
                'average_test_score': round(test_stats['average'] or 0),
                'total_study_time': sum(
                    MaterialProgress.objects.filter(student=user).values_list('time_spent', flat=True)
                ),
            },
            'recent_test_results': TestSubmissionSerializer(submissions[:5], many=True).data,
            'streak': {
                'current_streak': streak['current_streak'],
                'longest_streak': streak['longest_streak'],
                'this_week': streak['this_week'],
                'last_7_days': streak['last_7_days'],
            },
            'points': {
                'points': user_points.points,
                'level': user_points.level,
                'experience': user_points.experience,
            },
            'pending_requests': [
                {
                    'id': str(req.id),
                    'course_id': str(req.course_id),
                    'course_title': req.course.title,
                    'status': req.status,
                    'created_at': req.created_at,
                }
                for req in pending_requests
            ],
        })
