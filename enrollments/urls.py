from django.urls import path
from . import views

app_name = 'enrollments'

urlpatterns = [
    # Enrollment requests
    path('requests/', views.EnrollmentRequestListCreateView.as_view(), name='request_list'),
    path('requests/<uuid:request_id>/', views.EnrollmentRequestDetailView.as_view(), name='request_detail'),
    path('requests/<uuid:request_id>/approve/', views.approve_request, name='request_approve'),
    path('requests/<uuid:request_id>/reject/', views.reject_request, name='request_reject'),
    path('requests/<uuid:request_id>/contacted/', views.mark_contacted, name='request_contacted'),

    # Enrollments and payments (staff)
    path('', views.enrollment_list, name='enrollment_list'),
    path('direct/', views.direct_enroll, name='direct_enroll'),
    path('payments/', views.payment_list, name='payment_list'),
    path('<uuid:enrollment_id>/', views.EnrollmentDetailView.as_view(), name='enrollment_detail'),

    path('manager-contact/', views.manager_contact, name='manager_contact'),
]
