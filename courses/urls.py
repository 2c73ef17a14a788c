from django.urls import path
from . import views

app_name = 'courses'

urlpatterns = [
    # Public catalog
    path('', views.course_list, name='course_list'),
    path('tutors/', views.tutor_list, name='tutor_list'),
    path('<uuid:course_id>/', views.course_detail, name='course_detail'),
    path('<uuid:course_id>/tutors/', views.course_tutors, name='course_tutors'),
    path('<uuid:course_id>/content/', views.course_content, name='course_content'),

    # Course management
    path('manage/', views.ManageCourseListView.as_view(), name='manage_courses'),
    path('manage/import/', views.import_course, name='import_course'),
    path('manage/upload/', views.upload_file, name='upload_file'),
    path('manage/<uuid:course_id>/', views.ManageCourseDetailView.as_view(), name='manage_course_detail'),
    path('manage/<uuid:course_id>/status/', views.change_course_status, name='change_course_status'),
    path('manage/<uuid:course_id>/tutors/', views.CourseTutorAssignmentView.as_view(), name='course_tutor_assignment'),

    # Topic management
    path('manage/<uuid:course_id>/topics/', views.TopicListCreateView.as_view(), name='course_topics'),
    path('manage/<uuid:course_id>/topics/reorder/', views.reorder_topics, name='reorder_topics'),
    path('manage/topics/<uuid:pk>/', views.TopicDetailView.as_view(), name='topic_detail'),

    # Materials, tests and questions
    path('manage/topics/<uuid:pk>/materials/', views.TopicMaterialCreateView.as_view(), name='topic_materials'),
    path('manage/topics/<uuid:pk>/tests/', views.TopicTestCreateView.as_view(), name='topic_tests'),
    path('manage/materials/<uuid:pk>/', views.MaterialDetailView.as_view(), name='material_detail'),
    path('manage/tests/<uuid:pk>/', views.TestDetailView.as_view(), name='test_detail'),
    path('manage/tests/<uuid:pk>/questions/', views.TestQuestionListCreateView.as_view(), name='test_questions'),
    path('manage/questions/<uuid:pk>/', views.QuestionDetailView.as_view(), name='question_detail'),
]
