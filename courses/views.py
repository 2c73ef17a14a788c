import logging
from decimal import Decimal, InvalidOperation
from urllib.parse import urlencode

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Count, Prefetch, Q
from django.shortcuts import get_object_or_404
from rest_framework import permissions, status
from rest_framework.decorators import api_view, parser_classes, permission_classes
from rest_framework.pagination import PageNumberPagination
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.response import Response
from rest_framework.views import APIView

from authentication.permissions import IsStaffRole, IsTutorOrStaff
from backend import uploads
from backend.cache import CACHE_TTL, CacheKeys, build_key, cached_response, get_cached_data, set_cached_data
from backend.exceptions import ServiceError, error_response
from .models import Course, CourseTutor, Material, Question, Test, Topic
from .serializers import (
    AssignTutorSerializer, CourseCreateUpdateSerializer, CourseDetailSerializer,
    CourseImportSerializer, CourseListSerializer, CourseStatusSerializer,
    CourseTutorSerializer, MaterialSerializer, QuestionSerializer,
    TestDetailSerializer, TestSerializer, TopicContentSerializer,
    TopicReorderSerializer, TopicSerializer, TutorBriefSerializer
)

logger = logging.getLogger(__name__)
User = get_user_model()

ENROLLED_STATUSES = ['ACTIVE', 'COMPLETED']


class CoursesPagination(PageNumberPagination):
    page_size = 12
    page_size_query_param = 'page_size'
    max_page_size = 50


def catalog_queryset():
    return (
        Course.objects
        .prefetch_related(
            Prefetch('course_tutors', queryset=CourseTutor.objects.select_related('tutor__profile'))
        )
        .annotate(
            enrolled_count=Count('enrollments', filter=Q(enrollments__status__in=ENROLLED_STATUSES), distinct=True),
            topics_count=Count('topics', distinct=True),
        )
    )


def _parse_price(value):
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError):
        return None


def filter_courses(courses, params):
    """Search and filters shared by the public catalog and staff listing."""
    search = params.get('search', '').strip()
    if search:
        courses = courses.filter(
            Q(title__icontains=search) |
            Q(description__icontains=search) |
            Q(category__icontains=search)
        )

    difficulty = params.get('difficulty')
    if difficulty:
        courses = courses.filter(difficulty=difficulty.upper())

    category = params.get('category')
    if category:
        courses = courses.filter(category__iexact=category)

    min_price = _parse_price(params.get('min_price'))
    if min_price is not None:
        courses = courses.filter(price__gte=min_price)

    max_price = _parse_price(params.get('max_price'))
    if max_price is not None:
        courses = courses.filter(price__lte=max_price)

    return courses


def _catalog_key(request):
    return build_key(CacheKeys.COURSES, 'list', urlencode(sorted(request.query_params.items())))


def _is_privileged(user):
    return user.is_authenticated and (user.is_staff_role or user.is_tutor)


@api_view(['GET'])
@permission_classes([permissions.AllowAny])
@cached_response(lambda request: _catalog_key(request), ttl=CACHE_TTL['COURSES'])
def course_list(request):
    """
    Public catalog of active courses.

    Query params: ``search``, ``difficulty``, ``category``, ``min_price``,
    ``max_price``, ``page``, ``page_size`` (max 50).
    """
    courses = filter_courses(catalog_queryset().filter(status='ACTIVE'), request.query_params)
    paginator = CoursesPagination()
    page = paginator.paginate_queryset(courses, request)
    return paginator.get_paginated_response(CourseListSerializer(page, many=True).data)


@api_view(['GET'])
@permission_classes([permissions.AllowAny])
@cached_response(
    lambda request, course_id: None if _is_privileged(request.user) else CacheKeys.course_detail(course_id),
    ttl=CACHE_TTL['COURSE_DETAIL']
)
def course_detail(request, course_id):
    """
    Course page: tutors, topic outline, enrolled count and seats left.
    Drafts and archived courses are visible to staff and tutors only.
    """
    courses = catalog_queryset().prefetch_related('topics__materials', 'topics__tests')
    if not _is_privileged(request.user):
        courses = courses.filter(status='ACTIVE')
    course = get_object_or_404(courses, id=course_id)
    return Response(CourseDetailSerializer(course).data)


@api_view(['GET'])
@permission_classes([permissions.AllowAny])
def course_tutors(request, course_id):
    course = get_object_or_404(Course, id=course_id)
    assignments = course.course_tutors.select_related('tutor__profile')
    return Response(CourseTutorSerializer(assignments, many=True).data)


@api_view(['GET'])
@permission_classes([permissions.AllowAny])
@cached_response(lambda request: build_key(CacheKeys.TUTORS, 'public'), ttl=CACHE_TTL['TUTORS'])
def tutor_list(request):
    """Active tutors, used by the enrollment request form."""
    tutors = User.objects.filter(role=User.Role.TUTOR, is_active=True).select_related('profile').order_by('first_name')
    return Response(TutorBriefSerializer(tutors, many=True).data)


def can_view_content(user, course):
    if user.is_staff_role:
        return True
    if user.is_tutor:
        return course.is_tutor(user)
    return course.enrollments.filter(student=user, status__in=ENROLLED_STATUSES).exists()


@api_view(['GET'])
@permission_classes([permissions.IsAuthenticated])
def course_content(request, course_id):
    """
    Full topic tree with materials and tests for enrolled students,
    assigned tutors and staff. Students only see published items.
    """
    course = get_object_or_404(Course, id=course_id)

    if not can_view_content(request.user, course):
        return Response(
            {'error': 'You are not enrolled in this course'},
            status=status.HTTP_403_FORBIDDEN
        )

    published_only = request.user.is_student
    cache_key = build_key(CacheKeys.course_content(course.id), 'published' if published_only else 'all')
    data = get_cached_data(cache_key)
    if data is None:
        topics = course.topics.prefetch_related('materials', 'tests__questions')
        data = {
            'course': {'id': str(course.id), 'title': course.title, 'status': course.status},
            'topics': TopicContentSerializer(topics, many=True, context={'published_only': published_only}).data,
        }
        set_cached_data(cache_key, data, CACHE_TTL['COURSE_CONTENT'])
    return Response(data)


# ===== CONTENT MANAGEMENT =====

def can_manage_content(user, course):
    """Staff manage every course; tutors manage the content of their own."""
    return user.is_staff_role or (user.is_tutor and course.is_tutor(user))


def _forbidden():
    return Response(
        {'error': 'You do not have permission to manage this course'},
        status=status.HTTP_403_FORBIDDEN
    )


def _invalid(message, errors):
    return Response({'error': message, 'details': errors}, status=status.HTTP_400_BAD_REQUEST)


class ManageCourseListView(APIView):
    """
    GET: courses the caller can manage (all for staff, assigned for tutors)
    POST: create a course (staff)
    """
    permission_classes = [IsTutorOrStaff]

    def get(self, request):
        courses = catalog_queryset()
        if not request.user.is_staff_role:
            courses = courses.filter(course_tutors__tutor=request.user)

        course_status = request.query_params.get('status')
        if course_status:
            courses = courses.filter(status=course_status.upper())
        courses = filter_courses(courses, request.query_params)

        paginator = CoursesPagination()
        page = paginator.paginate_queryset(courses.order_by('-created_at'), request)
        return paginator.get_paginated_response(CourseListSerializer(page, many=True).data)

    def post(self, request):
        if not request.user.is_staff_role:
            return _forbidden()
        serializer = CourseCreateUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid('Invalid course data', serializer.errors)
        course = serializer.save(created_by=request.user)
        logger.info(f"Course '{course.title}' created by {request.user.email}")
        return Response(CourseDetailSerializer(course).data, status=status.HTTP_201_CREATED)


class ManageCourseDetailView(APIView):
    permission_classes = [IsTutorOrStaff]

    def get(self, request, course_id):
        course = get_object_or_404(Course, id=course_id)
        if not can_manage_content(request.user, course):
            return _forbidden()
        return Response(CourseDetailSerializer(course).data)

    def put(self, request, course_id):
        return self._update(request, course_id, partial=False)

    def patch(self, request, course_id):
        return self._update(request, course_id, partial=True)

    def _update(self, request, course_id, partial):
        course = get_object_or_404(Course, id=course_id)
        if not request.user.is_staff_role:
            return _forbidden()
        serializer = CourseCreateUpdateSerializer(course, data=request.data, partial=partial)
        if not serializer.is_valid():
            return _invalid('Invalid course data', serializer.errors)
        course = serializer.save()
        return Response(CourseDetailSerializer(course).data)

    def delete(self, request, course_id):
        course = get_object_or_404(Course, id=course_id)
        if not request.user.is_staff_role:
            return _forbidden()
        if course.enrollments.filter(status='ACTIVE').exists():
            return Response(
                {'error': 'Course has active enrollments; archive it instead'},
                status=status.HTTP_409_CONFLICT
            )
        logger.info(f"Course '{course.title}' deleted by {request.user.email}")
        course.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsStaffRole])
def change_course_status(request, course_id):
    course = get_object_or_404(Course, id=course_id)
    serializer = CourseStatusSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid('Invalid status', serializer.errors)

    old_status = course.status
    course.status = serializer.validated_data['status']
    course.save(update_fields=['status', 'updated_at'])
    logger.info(f"Course '{course.title}' status {old_status} -> {course.status} by {request.user.email}")
    return Response({'id': str(course.id), 'status': course.status})


class CourseTutorAssignmentView(APIView):
    """
    POST: assign a tutor ({"tutor_id", "is_primary"})
    DELETE: unassign a tutor ({"tutor_id"})
    """
    permission_classes = [IsStaffRole]

    def post(self, request, course_id):
        course = get_object_or_404(Course, id=course_id)
        serializer = AssignTutorSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid('Invalid tutor assignment', serializer.errors)

        tutor_id = serializer.validated_data['tutor_id']
        is_primary = serializer.validated_data['is_primary'] or not course.course_tutors.exists()

        with transaction.atomic():
            if is_primary:
                course.course_tutors.filter(is_primary=True).update(is_primary=False)
            assignment, created = CourseTutor.objects.update_or_create(
                course=course, tutor_id=tutor_id, defaults={'is_primary': is_primary}
            )

        logger.info(f"Tutor {tutor_id} assigned to course '{course.title}' (primary={is_primary})")
        return Response(
            CourseTutorSerializer(assignment).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK
        )

    def delete(self, request, course_id):
        course = get_object_or_404(Course, id=course_id)
        tutor_id = request.data.get('tutor_id') or request.query_params.get('tutor_id')
        deleted, _ = CourseTutor.objects.filter(course=course, tutor_id=tutor_id).delete()
        if not deleted:
            return Response({'error': 'Tutor is not assigned to this course'}, status=status.HTTP_404_NOT_FOUND)
        return Response(status=status.HTTP_204_NO_CONTENT)


class TopicListCreateView(APIView):
    permission_classes = [IsTutorOrStaff]

    def get(self, request, course_id):
        course = get_object_or_404(Course, id=course_id)
        if not can_manage_content(request.user, course):
            return _forbidden()
        topics = course.topics.prefetch_related('materials', 'tests__questions')
        return Response(TopicContentSerializer(topics, many=True).data)

    def post(self, request, course_id):
        course = get_object_or_404(Course, id=course_id)
        if not can_manage_content(request.user, course):
            return _forbidden()
        serializer = TopicSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid('Invalid topic data', serializer.errors)
        order = serializer.validated_data.get('order')
        if order is None:
            order = course.topics.count()
        topic = serializer.save(course=course, order=order)
        return Response(TopicSerializer(topic).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsTutorOrStaff])
def reorder_topics(request, course_id):
    """
    Reorder topics: ``{"topic_ids": [...]}`` lists every topic of the course
    in its new order.
    """
    course = get_object_or_404(Course, id=course_id)
    if not can_manage_content(request.user, course):
        return _forbidden()

    serializer = TopicReorderSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid('Invalid topic order', serializer.errors)

    topic_ids = serializer.validated_data['topic_ids']
    topics = {topic.id: topic for topic in course.topics.all()}
    if set(topic_ids) != set(topics):
        return _invalid('Invalid topic order', {'topic_ids': 'Must list every topic of the course exactly once'})

    with transaction.atomic():
        for index, topic_id in enumerate(topic_ids):
            topic = topics[topic_id]
            if topic.order != index:
                topic.order = index
                topic.save(update_fields=['order', 'updated_at'])

    return Response(TopicSerializer(course.topics.all(), many=True).data)


class _ContentObjectView(APIView):
    """
    Update/delete of a single content object. Subclasses name the model,
    serializer and how to reach the course from an instance.
    """
    permission_classes = [IsTutorOrStaff]
    model = None
    serializer_class = None
    course_path = None

    def get_instance(self, pk):
        return get_object_or_404(self.model.objects.select_related(*self.select), pk=pk)

    @property
    def select(self):
        return ['__'.join(self.course_path.split('.')[:-1])] if '.' in self.course_path else []

    def course_of(self, instance):
        obj = instance
        for attr in self.course_path.split('.'):
            obj = getattr(obj, attr)
        return obj

    def get(self, request, pk):
        instance = self.get_instance(pk)
        if not can_manage_content(request.user, self.course_of(instance)):
            return _forbidden()
        return Response(self.serializer_class(instance).data)

    def patch(self, request, pk):
        instance = self.get_instance(pk)
        if not can_manage_content(request.user, self.course_of(instance)):
            return _forbidden()
        serializer = self.serializer_class(instance, data=request.data, partial=True)
        if not serializer.is_valid():
            return _invalid(f'Invalid {self.model._meta.verbose_name} data', serializer.errors)
        serializer.save()
        return Response(serializer.data)

    put = patch

    def delete(self, request, pk):
        instance = self.get_instance(pk)
        if not can_manage_content(request.user, self.course_of(instance)):
            return _forbidden()
        instance.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


class TopicDetailView(_ContentObjectView):
    model = Topic
    serializer_class = TopicSerializer
    course_path = 'course'


class MaterialDetailView(_ContentObjectView):
    model = Material
    serializer_class = MaterialSerializer
    course_path = 'topic.course'


class TestDetailView(_ContentObjectView):
    model = Test
    serializer_class = TestSerializer
    course_path = 'topic.course'

    def get(self, request, pk):
        test = self.get_instance(pk)
        if not can_manage_content(request.user, self.course_of(test)):
            return _forbidden()
        return Response(TestDetailSerializer(test).data)


class QuestionDetailView(_ContentObjectView):
    model = Question
    serializer_class = QuestionSerializer
    course_path = 'test.topic.course'


class _ChildCreateView(APIView):
    """
    POST creates a child object (material, test, question) under a parent.
    """
    permission_classes = [IsTutorOrStaff]
    parent_model = None
    parent_field = None
    related_name = None
    serializer_class = None
    course_path = None

    def course_of(self, parent):
        obj = parent
        for attr in self.course_path.split('.'):
            obj = getattr(obj, attr)
        return obj

    def post(self, request, pk):
        parent = get_object_or_404(self.parent_model, pk=pk)
        if not can_manage_content(request.user, self.course_of(parent)):
            return _forbidden()
        serializer = self.serializer_class(data=request.data)
        if not serializer.is_valid():
            return _invalid('Invalid data', serializer.errors)
        order = serializer.validated_data.get('order')
        if order is None:
            order = getattr(parent, self.related_name).count()
        instance = serializer.save(**{self.parent_field: parent, 'order': order})
        return Response(self.serializer_class(instance).data, status=status.HTTP_201_CREATED)


class TopicMaterialCreateView(_ChildCreateView):
    parent_model = Topic
    parent_field = 'topic'
    related_name = 'materials'
    serializer_class = MaterialSerializer
    course_path = 'course'


class TopicTestCreateView(_ChildCreateView):
    parent_model = Topic
    parent_field = 'topic'
    related_name = 'tests'
    serializer_class = TestSerializer
    course_path = 'course'


class TestQuestionListCreateView(_ChildCreateView):
    parent_model = Test
    parent_field = 'test'
    related_name = 'questions'
    serializer_class = QuestionSerializer
    course_path = 'topic.course'

    def get(self, request, pk):
        test = get_object_or_404(Test, pk=pk)
        if not can_manage_content(request.user, self.course_of(test)):
            return _forbidden()
        return Response(QuestionSerializer(test.questions.all(), many=True).data)


@api_view(['POST'])
@permission_classes([IsStaffRole])
def import_course(request):
    """
    Create a course with all of its topics, materials, tests and questions
    from one nested JSON document. Nothing is created if any part is invalid.
    """
    serializer = CourseImportSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid('Invalid course document', serializer.errors)

    with transaction.atomic():
        course = serializer.save(created_by=request.user)

    logger.info(
        f"Course '{course.title}' imported by {request.user.email} "
        f"({course.topics.count()} topics)"
    )
    return Response(CourseDetailSerializer(catalog_queryset().get(id=course.id)).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsTutorOrStaff])
@parser_classes([MultiPartParser, FormParser])
def upload_file(request):
    """
    Upload a file for a material and return its URL.

    Form fields: ``file`` plus either ``type`` (image, document, video, audio,
    general) or ``material_type`` (PDF, VIDEO, AUDIO).
    """
    uploaded_file = request.FILES.get('file')
    if not uploaded_file:
        return _invalid('No file provided', {'file': ['This field is required.']})

    kind = request.data.get('type') or uploads.MATERIAL_UPLOAD_KINDS.get(
        str(request.data.get('material_type', '')).upper(), 'general'
    )
    try:
        result = uploads.store_upload(uploaded_file, kind, folder='materials')
    except ServiceError as e:
        return error_response(e)

    result['url'] = request.build_absolute_uri(result['url'])
    logger.info(f"{request.user.email} uploaded {result['path']}")
    return Response(result, status=status.HTTP_201_CREATED)
