from django.urls import path
from . import views

app_name = 'student'

urlpatterns = [
    # Enrolled courses
    path('courses/', views.my_courses, name='my_courses'),
    path('courses/<uuid:course_id>/progress/', views.course_progress, name='course_progress'),
    path('enrollments/check/<uuid:course_id>/', views.enrollment_check, name='enrollment_check'),

    # Materials
    path('materials/progress/', views.MaterialProgressView.as_view(), name='material_progress'),

    # Tests
    path('tests/<uuid:test_id>/take/', views.take_test, name='take_test'),
    path('tests/<uuid:test_id>/submit/', views.submit_test, name='submit_test'),
    path('tests/<uuid:test_id>/results/', views.test_results, name='test_results'),

    # Saved courses
    path('bookmarks/', views.BookmarkView.as_view(), name='bookmarks'),
    path('favorites/', views.FavoriteView.as_view(), name='favorites'),

    path('dashboard/', views.StudentDashboardView.as_view(), name='dashboard'),
]
