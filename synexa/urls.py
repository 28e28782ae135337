"""
URL configuration for synexa project.

The `urlpatterns` list routes URLs to views. For more information please see:
    https://docs.djangoproject.com/en/5.1/topics/http/urls/
"""
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    # Django admin interface
    path('django-admin/', admin.site.urls),

    # Student directory API (classes, students)
    path('api/', include('education.api_urls')),

    # Finance API (invoices, payments, payment plans, reports)
    path('api/', include('finance.api_urls')),
]
