"""
API URL patterns for the student directory
"""
from django.urls import path
from . import api_views

urlpatterns = [
    # Students API
    path('students/', api_views.api_students_list, name='api_students_list'),
    path('students/<int:pk>/', api_views.api_student_detail, name='api_student_detail'),

    # Classes API
    path('classes/', api_views.api_classes_list, name='api_classes_list'),
]
