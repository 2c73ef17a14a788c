from django.urls import path

from . import views

app_name = 'tutor'

urlpatterns = [
    path('dashboard/', views.TutorDashboardView.as_view(), name='dashboard'),
    path('courses/', views.tutor_courses, name='courses'),
    path('students/', views.tutor_students, name='students'),
    path('tests/<uuid:test_id>/submissions/', views.test_submissions, name='test-submissions'),
]
