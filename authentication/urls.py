from django.urls import path
from . import views

app_name = 'authentication'

urlpatterns = [
    # Token verification
    path('verify-token/', views.verify_token, name='verify_token'),
    path('signup/', views.signup, name='signup'),

    # Current user
    path('user/', views.AuthenticatedUserView.as_view(), name='current_user'),
    path('profile/', views.UserProfileView.as_view(), name='user_profile'),
    path('profile/avatar/', views.upload_avatar, name='upload_avatar'),

    # Admin endpoints
    path('users/', views.user_list, name='user_list'),
    path('users/bulk-action/', views.bulk_user_action, name='bulk_user_action'),
    path('users/<int:user_id>/role/', views.UpdateUserRoleView.as_view(), name='update_user_role'),
    path('tutors/', views.TutorListCreateView.as_view(), name='tutors'),
]
