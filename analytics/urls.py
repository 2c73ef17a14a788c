from django.urls import path

from . import views

app_name = 'analytics'

urlpatterns = [
    path('admin/overview/', views.overview, name='overview'),
    path('admin/trends/', views.trends, name='trends'),
    path('admin/top-courses/', views.top_courses, name='top-courses'),
    path('admin/recent-activity/', views.recent_activity, name='recent-activity'),
    path('admin/recent-users/', views.recent_users, name='recent-users'),
    path('admin/test-performance/', views.test_performance, name='test-performance'),
    path('admin/engagement/', views.engagement, name='engagement'),
]
