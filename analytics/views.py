"""
Admin analytics. Staff only.
"""
from django.contrib.auth import get_user_model
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from authentication.permissions import IsStaffRole
from . import services

User = get_user_model()


def _int_param(request, name, default, maximum):
    try:
        value = int(request.query_params.get(name, default))
    except (TypeError, ValueError):
        return default
    return min(max(value, 1), maximum)


@api_view(['GET'])
@permission_classes([IsStaffRole])
def overview(request):
    return Response(services.overview())


@api_view(['GET'])
@permission_classes([IsStaffRole])
def trends(request):
    """?months=6"""
    months = _int_param(request, 'months', 6, services.MAX_TREND_MONTHS)
    return Response({'months': months, 'trends': services.trends(months)})


@api_view(['GET'])
@permission_classes([IsStaffRole])
def top_courses(request):
    return Response(services.top_courses(_int_param(request, 'limit', 5, 50)))


@api_view(['GET'])
@permission_classes([IsStaffRole])
def recent_activity(request):
    return Response(services.recent_activity(_int_param(request, 'limit', 20, 100)))


@api_view(['GET'])
@permission_classes([IsStaffRole])
def recent_users(request):
    users = User.objects.order_by('-date_joined')[:_int_param(request, 'limit', 10, 100)]
    return Response([{
        'id': user.id,
        'name': user.display_name,
        'email': user.email,
        'role': user.role,
        'is_active': user.is_active,
        'date_joined': user.date_joined,
        'last_login_at': user.last_login_at,
    } for user in users])


@api_view(['GET'])
@permission_classes([IsStaffRole])
def test_performance(request):
    return Response(services.test_performance())


@api_view(['GET'])
@permission_classes([IsStaffRole])
def engagement(request):
    return Response(services.engagement())
