import logging

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Count, Q
from firebase_admin import auth
from rest_framework import permissions, status
from rest_framework.decorators import api_view, parser_classes, permission_classes
from rest_framework.generics import RetrieveUpdateAPIView
from rest_framework.pagination import PageNumberPagination
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.response import Response
from rest_framework.views import APIView

from backend.cache import CacheKeys, delete_cached_data, invalidate_cache
from backend.exceptions import ServiceError, error_response
from backend.uploads import store_upload
from users.models import UserProfile
from .authentication import ensure_firebase_initialized, verify_token_with_retry
from .permissions import IsAdminRole
from .serializers import (
    AuthTokenSerializer, BulkUserActionSerializer, RoleUpdateSerializer,
    SignupSerializer, TutorCreateSerializer, TutorSerializer,
    UserProfileSerializer
)

logger = logging.getLogger(__name__)
User = get_user_model()


class UserPagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100


@api_view(['POST'])
@permission_classes([permissions.AllowAny])
def verify_token(request):
    """
    Verify Firebase ID token and return user information.

    Used by the frontend to check a token without creating a session.
    """
    serializer = AuthTokenSerializer(data=request.data)

    if not serializer.is_valid():
        return Response(
            {'error': 'Invalid request data', 'details': serializer.errors},
            status=status.HTTP_400_BAD_REQUEST
        )

    if not ensure_firebase_initialized():
        return Response(
            {'valid': False, 'error': 'Authentication service unavailable'},
            status=status.HTTP_503_SERVICE_UNAVAILABLE
        )

    try:
        decoded_token = verify_token_with_retry(serializer.validated_data['token'])
    except auth.InvalidIdTokenError as e:
        logger.warning(f"Invalid token verification: {e}")
        return Response(
            {'valid': False, 'error': 'Invalid token'},
            status=status.HTTP_401_UNAUTHORIZED
        )
    except Exception as e:
        logger.error(f"Token verification error: {e}", exc_info=True)
        return Response(
            {'valid': False, 'error': 'Token verification failed'},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    return Response({
        'valid': True,
        'user_info': {
            'uid': decoded_token.get('uid'),
            'email': decoded_token.get('email'),
            'name': decoded_token.get('name'),
            'email_verified': decoded_token.get('email_verified', False),
        }
    })


@api_view(['POST'])
@permission_classes([permissions.IsAuthenticated])
def signup(request):
    """
    Complete signup of the signed-in Firebase user as a student.

    Calling it again with the same data is harmless: the account keeps its
    role and the contact details are simply overwritten.
    """
    serializer = SignupSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(
            {'error': 'Invalid signup data', 'details': serializer.errors},
            status=status.HTTP_400_BAD_REQUEST
        )

    data = serializer.validated_data
    user = request.user
    created = not UserProfile.objects.filter(user=user).exclude(phone='').exists()

    with transaction.atomic():
        user.first_name = data['first_name']
        user.last_name = data.get('last_name', '')
        user.save()

        profile, _ = UserProfile.objects.get_or_create(user=user)
        profile.phone = data['phone']
        profile.whatsapp = data.get('whatsapp') or data['phone']
        profile.telegram = data.get('telegram', '')
        profile.save()

    delete_cached_data(CacheKeys.user_profile(user.id))
    logger.info(f"Signup completed for user: {user.email}")

    return Response({
        'message': 'Student account created successfully' if created else 'Profile updated',
        'user': UserProfileSerializer(user).data
    }, status=status.HTTP_201_CREATED if created else status.HTTP_200_OK)


class AuthenticatedUserView(APIView):
    """
    Get current authenticated user information.
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        user = User.objects.select_related('profile').get(id=request.user.id)
        return Response(UserProfileSerializer(user).data)


class UserProfileView(RetrieveUpdateAPIView):
    """
    Retrieve and update the caller's name and contact profile.
    """
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = UserProfileSerializer

    def get_object(self):
        return User.objects.select_related('profile').get(id=self.request.user.id)

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop('partial', False)
        serializer = self.get_serializer(self.get_object(), data=request.data, partial=partial)
        if not serializer.is_valid():
            return Response(
                {'error': 'Invalid profile data', 'details': serializer.errors},
                status=status.HTTP_400_BAD_REQUEST
            )
        user = serializer.save()
        delete_cached_data(CacheKeys.user_profile(user.id))
        if user.is_tutor:
            invalidate_cache(CacheKeys.TUTORS)
        return Response(UserProfileSerializer(user).data)


@api_view(['POST'])
@permission_classes([permissions.IsAuthenticated])
@parser_classes([MultiPartParser, FormParser])
def upload_avatar(request):
    """
    Store an uploaded image as the caller's avatar.
    """
    uploaded_file = request.FILES.get('file') or request.FILES.get('avatar')
    if not uploaded_file:
        return Response(
            {'error': 'No file provided', 'details': {'file': ['This field is required.']}},
            status=status.HTTP_400_BAD_REQUEST
        )

    try:
        result = store_upload(uploaded_file, 'image', folder='avatars')
    except ServiceError as e:
        return error_response(e)

    profile, _ = UserProfile.objects.get_or_create(user=request.user)
    profile.avatar = request.build_absolute_uri(result['url'])
    profile.save(update_fields=['avatar', 'updated_at'])

    delete_cached_data(CacheKeys.user_profile(request.user.id))
    if request.user.is_tutor:
        invalidate_cache(CacheKeys.TUTORS)
    return Response({'message': 'Avatar updated successfully', 'avatar': profile.avatar})


class UpdateUserRoleView(APIView):
    """
    Update user role (admin only).
    """
    permission_classes = [IsAdminRole]

    def post(self, request, user_id):
        try:
            user = User.objects.get(id=user_id)
        except User.DoesNotExist:
            return Response(
                {'error': 'User not found'},
                status=status.HTTP_404_NOT_FOUND
            )

        serializer = RoleUpdateSerializer(data=request.data, context={'request': request})
        if not serializer.is_valid():
            return Response(
                {'error': 'Invalid data', 'details': serializer.errors},
                status=status.HTTP_400_BAD_REQUEST
            )

        if user.id == request.user.id:
            return Response(
                {'error': 'You cannot change your own role'},
                status=status.HTTP_400_BAD_REQUEST
            )

        old_role = user.role
        user.role = serializer.validated_data['role']
        user.save(update_fields=['role', 'updated_at'])
        invalidate_cache(CacheKeys.TUTORS)

        logger.info(f"User {user.email} role changed from {old_role} to {user.role} by {request.user.email}")
        return Response(UserProfileSerializer(user).data)


@api_view(['GET'])
@permission_classes([IsAdminRole])
def user_list(request):
    """
    Admin user listing.

    Query params: ``role``, ``is_active`` (true/false), ``search`` (email or
    name).
    """
    users = User.objects.select_related('profile').order_by('-created_at')

    role = request.query_params.get('role')
    if role:
        users = users.filter(role=role.upper())

    is_active = request.query_params.get('is_active')
    if is_active in ('true', 'false'):
        users = users.filter(is_active=is_active == 'true')

    search = request.query_params.get('search', '').strip()
    if search:
        users = users.filter(
            Q(email__icontains=search) |
            Q(first_name__icontains=search) |
            Q(last_name__icontains=search)
        )

    paginator = UserPagination()
    page = paginator.paginate_queryset(users, request)
    return paginator.get_paginated_response(UserProfileSerializer(page, many=True).data)


@api_view(['POST'])
@permission_classes([IsAdminRole])
def bulk_user_action(request):
    serializer = BulkUserActionSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(
            {'error': 'Invalid data', 'details': serializer.errors},
            status=status.HTTP_400_BAD_REQUEST
        )

    action = serializer.validated_data['action']
    # Admins never act on their own account in bulk
    users = User.objects.filter(id__in=serializer.validated_data['user_ids']).exclude(id=request.user.id)

    if action == 'activate':
        affected = users.update(is_active=True)
    elif action == 'deactivate':
        affected = users.update(is_active=False)
    elif action == 'change_role':
        affected = users.update(role=serializer.validated_data['role'])
    else:
        affected, _ = users.delete()

    invalidate_cache(CacheKeys.TUTORS)
    logger.info(f"Bulk action '{action}' by {request.user.email} affected {affected} records")
    return Response({'action': action, 'affected': affected})


def create_firebase_account(email, display_name):
    """
    Create (or look up) the Firebase account for a staff-created user.
    Returns the Firebase uid, or None when Firebase is not configured.
    """
    if not ensure_firebase_initialized():
        return None
    try:
        record = auth.create_user(email=email, display_name=display_name or None)
    except auth.EmailAlreadyExistsError:
        record = auth.get_user_by_email(email)
    return record.uid


class TutorListCreateView(APIView):
    """
    GET: tutors with the number of courses they are assigned to
    POST: create a tutor account
    """
    permission_classes = [IsAdminRole]

    def get(self, request):
        tutors = (
            User.objects.filter(role=User.Role.TUTOR)
            .select_related('profile')
            .annotate(courses_count=Count('course_assignments', distinct=True))
            .order_by('first_name', 'last_name')
        )
        return Response(TutorSerializer(tutors, many=True).data)

    def post(self, request):
        serializer = TutorCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {'error': 'Invalid tutor data', 'details': serializer.errors},
                status=status.HTTP_400_BAD_REQUEST
            )
        data = serializer.validated_data
        display_name = f"{data['first_name']} {data.get('last_name', '')}".strip()

        try:
            firebase_uid = create_firebase_account(data['email'], display_name)
        except Exception as e:
            logger.error(f"Failed to create Firebase account for tutor {data['email']}: {e}", exc_info=True)
            return Response(
                {'error': 'Failed to create tutor account', 'details': str(e)},
                status=status.HTTP_502_BAD_GATEWAY
            )

        with transaction.atomic():
            extra = {'firebase_uid': firebase_uid} if firebase_uid else {}
            tutor = User.objects.create_user(
                email=data['email'],
                first_name=data['first_name'],
                last_name=data.get('last_name', ''),
                role=User.Role.TUTOR,
                **extra
            )
            profile, _ = UserProfile.objects.get_or_create(user=tutor)
            for field in ('phone', 'whatsapp', 'telegram', 'bio', 'experience', 'specialization'):
                if data.get(field):
                    setattr(profile, field, data[field])
            profile.save()

        invalidate_cache(CacheKeys.TUTORS)
        logger.info(f"Tutor account {tutor.email} created by {request.user.email}")
        tutor.courses_count = 0
        return Response(TutorSerializer(tutor).data, status=status.HTTP_201_CREATED)
