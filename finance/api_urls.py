"""
API URL patterns for the finance core
"""
from django.urls import path
from . import api_views

urlpatterns = [
    # Invoices API
    path('invoices/', api_views.api_invoices, name='api_invoices'),
    path('invoices/<int:pk>/', api_views.api_invoice_detail, name='api_invoice_detail'),
    path('invoices/<int:pk>/pay/', api_views.api_invoice_pay, name='api_invoice_pay'),
    path('invoices/<int:pk>/cancel/', api_views.api_invoice_cancel, name='api_invoice_cancel'),
    path('invoices/<int:pk>/pdf/', api_views.api_invoice_pdf, name='api_invoice_pdf'),

    # Payments API
    path('payments/<int:pk>/cancel/', api_views.api_payment_cancel, name='api_payment_cancel'),

    # Payment Plans API
    path('payment-plans/', api_views.api_payment_plans, name='api_payment_plans'),
    path('payment-plans/<int:pk>/', api_views.api_payment_plan_detail, name='api_payment_plan_detail'),
    path('payment-plans/<int:pk>/generate/', api_views.api_payment_plan_generate, name='api_payment_plan_generate'),

    # Reports API
    path('financial/defaulters/', api_views.api_defaulters, name='api_defaulters'),
    path('financial/summary/', api_views.api_financial_summary, name='api_financial_summary'),
    path('financial/stats/', api_views.api_financial_stats, name='api_financial_stats'),
    path('students/<int:pk>/financial-history/', api_views.api_student_financial_history, name='api_student_financial_history'),
]
