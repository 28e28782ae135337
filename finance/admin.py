from django.contrib import admin
from .models import PaymentPlan, Invoice, Payment, InvoiceCharge


@admin.register(PaymentPlan)
class PaymentPlanAdmin(admin.ModelAdmin):
    list_display = ['name', 'academic_year', 'school_class', 'course', 'monthly_amount', 'due_day', 'is_active']
    list_filter = ['academic_year', 'is_active', 'invoice_type']
    search_fields = ['name']
    readonly_fields = ['created_by', 'created_at', 'updated_at']


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0
    can_delete = False
    fields = ['receipt_number', 'amount', 'method', 'payment_date', 'is_cancelled']
    readonly_fields = fields


class InvoiceChargeInline(admin.TabularInline):
    model = InvoiceCharge
    extra = 0
    can_delete = False
    readonly_fields = ['kind', 'amount', 'days_overdue', 'calculated_on']


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ['invoice_number', 'student', 'invoice_type', 'amount', 'paid_amount', 'status', 'due_date']
    list_filter = ['status', 'invoice_type', 'academic_year', 'year', 'month']
    search_fields = ['invoice_number', 'student__student_number', 'student__full_name']
    # Paid amount, status and cancellation change only through the finance API
    readonly_fields = [
        'invoice_number', 'paid_amount', 'status', 'generation_key', 'version',
        'created_by', 'created_at', 'updated_at', 'cancelled_at', 'cancelled_by', 'cancellation_reason',
    ]
    inlines = [PaymentInline, InvoiceChargeInline]


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['receipt_number', 'invoice', 'amount', 'method', 'payment_date', 'is_cancelled']
    list_filter = ['method', 'is_cancelled', 'payment_date']
    search_fields = ['receipt_number', 'reference', 'invoice__invoice_number']
    readonly_fields = [
        'invoice', 'amount', 'receipt_number', 'created_by', 'created_at',
        'is_cancelled', 'cancelled_at', 'cancelled_by', 'cancellation_reason',
    ]
