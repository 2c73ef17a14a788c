from django.urls import path

from . import views

app_name = 'gamification'

urlpatterns = [
    path('study-streak/', views.study_streak, name='study-streak'),
    path('streak-leaderboard/', views.streak_leaderboard_view, name='streak-leaderboard'),
    path('leaderboard/', views.leaderboard, name='leaderboard'),
    path('profile/', views.profile, name='profile'),
    path('badges/', views.BadgeListCreateView.as_view(), name='badge-list'),
    path('badges/<uuid:badge_id>/', views.BadgeDetailView.as_view(), name='badge-detail'),
    path('challenges/', views.ChallengeListCreateView.as_view(), name='challenge-list'),
    path('challenges/<uuid:challenge_id>/', views.ChallengeDetailView.as_view(), name='challenge-detail'),
    path('challenges/<uuid:challenge_id>/toggle-status/', views.toggle_challenge_status, name='challenge-toggle-status'),
    path('challenges/<uuid:challenge_id>/submit/', views.submit_challenge, name='challenge-submit'),
    path('challenges/<uuid:challenge_id>/submit-quiz/', views.submit_challenge_quiz, name='challenge-submit-quiz'),
]
