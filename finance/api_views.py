"""
API Views for the finance core (invoices, payments, payment plans, reports)
All responses are JSON; amounts are decimal strings with 2 places.
"""
import json
import logging
from functools import wraps

from django.core.paginator import Paginator
from django.forms.models import model_to_dict
from django.http import JsonResponse, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from education.api_views import student_to_dict
from education.decorators import role_required

from .context import FinanceContext, MANAGE_ROLES, REPORT_ROLES, READ_ROLES
from .exceptions import FinanceError, FinanceValidationError, NotFound
from .forms import (
    InvoiceForm, PaymentForm, CancellationForm, PaymentPlanForm, GenerateInvoicesForm,
    InvoiceFilterForm, PeriodForm, DefaultersForm,
)
from .models import Invoice, PaymentPlan
from .services import invoicing, payments, reports
from .services.penalties import preview_charges
from .services.status import status_q
from .utils.invoice_pdf import generate_invoice_pdf
from .utils.money import format_money, round_money, ZERO

logger = logging.getLogger(__name__)


def finance_api(view_func):
    """Turn FinanceError into its structured JSON response"""
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        try:
            return view_func(request, *args, **kwargs)
        except FinanceError as exc:
            if exc.status_code >= 409:
                logger.warning("%s %s -> %s: %s", request.method, request.path, exc.kind, exc.message)
            return JsonResponse(exc.as_dict(), status=exc.status_code)
        except Exception:
            logger.error("Unexpected error in %s %s", request.method, request.path, exc_info=True)
            return JsonResponse(
                {'error': 'Erro interno do servidor.', 'kind': 'InternalError', 'details': {}},
                status=500
            )
    return wrapper


def _parse_json(request):
    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except json.JSONDecodeError:
        raise FinanceValidationError('JSON inválido.')
    if not isinstance(data, dict):
        raise FinanceValidationError('O corpo do pedido deve ser um objeto JSON.')
    return data


def _validate(form):
    if not form.is_valid():
        raise FinanceValidationError(
            details={name: [str(message) for message in messages] for name, messages in form.errors.items()}
        )
    return form.cleaned_data


def _get_invoice(pk):
    try:
        return (
            Invoice.objects.select_related('student__school_class', 'payment_plan')
            .prefetch_related('payments', 'charges')
            .get(pk=pk)
        )
    except Invoice.DoesNotExist:
        raise NotFound(f'Fatura com ID {pk} não encontrada.', details={'invoice_id': pk})


def _get_plan(pk):
    try:
        return PaymentPlan.objects.select_related('course', 'school_class').get(pk=pk)
    except PaymentPlan.DoesNotExist:
        raise NotFound(f'Plano de pagamento com ID {pk} não encontrado.', details={'plan_id': pk})


def payment_to_dict(payment):
    return {
        'id': payment.id,
        'invoice_id': payment.invoice_id,
        'receipt_number': payment.receipt_number,
        'amount': format_money(payment.amount),
        'method': payment.method,
        'method_display': payment.get_method_display(),
        'reference': payment.reference,
        'payment_date': payment.payment_date.isoformat(),
        'notes': payment.notes,
        'created_by': payment.created_by_id,
        'created_at': payment.created_at.isoformat() if payment.created_at else None,
        'is_cancelled': payment.is_cancelled,
        'cancelled_at': payment.cancelled_at.isoformat() if payment.cancelled_at else None,
        'cancellation_reason': payment.cancellation_reason,
    }


def invoice_to_dict(invoice, today, detail=False):
    status = invoice.current_status(today)
    student = invoice.student
    data = {
        'id': invoice.id,
        'invoice_number': invoice.invoice_number,
        'student_id': student.id,
        'student_name': student.full_name,
        'student_number': student.student_number,
        'class_name': student.class_name,
        'payment_plan_id': invoice.payment_plan_id,
        'invoice_type': invoice.invoice_type,
        'invoice_type_display': invoice.get_invoice_type_display(),
        'description': invoice.description,
        'amount': format_money(invoice.amount),
        'paid_amount': format_money(invoice.paid_amount),
        'balance': format_money(invoice.balance),
        'credit': format_money(invoice.credit),
        'status': status,
        'status_display': dict(Invoice.STATUS_CHOICES).get(status, status),
        'due_date': invoice.due_date.isoformat(),
        'month': invoice.month,
        'year': invoice.year,
        'academic_year': invoice.academic_year,
        'version': invoice.version,
        'created_by': invoice.created_by_id,
        'created_at': invoice.created_at.isoformat() if invoice.created_at else None,
        'cancelled_at': invoice.cancelled_at.isoformat() if invoice.cancelled_at else None,
        'cancellation_reason': invoice.cancellation_reason,
    }

    if detail:
        charges = preview_charges(invoice, today)
        data['payments'] = [payment_to_dict(p) for p in invoice.payments.all()]
        data['charges'] = charges.as_dict()
        data['total_owed'] = format_money(
            ZERO if invoice.is_cancelled else round_money(invoice.balance + charges.total)
        )
    return data


def plan_to_dict(plan):
    return {
        'id': plan.id,
        'name': plan.name,
        'academic_year': plan.academic_year,
        'course_id': plan.course_id,
        'course_name': plan.course.name if plan.course else '',
        'class_id': plan.school_class_id,
        'class_name': plan.school_class.name if plan.school_class else '',
        'invoice_type': plan.invoice_type,
        'monthly_amount': format_money(plan.monthly_amount),
        'due_day': plan.due_day,
        'late_fee_percent': str(plan.late_fee_percent),
        'daily_interest_rate': str(plan.daily_interest_rate),
        'is_active': plan.is_active,
        'created_at': plan.created_at.isoformat() if plan.created_at else None,
        'updated_at': plan.updated_at.isoformat() if plan.updated_at else None,
    }


# ==================== INVOICES ====================

@csrf_exempt
@role_required(*READ_ROLES)
@require_http_methods(["GET", "POST"])
@finance_api
def api_invoices(request):
    """API endpoint for invoice list with filters and pagination, and manual invoice creation"""
    context = FinanceContext.from_request(request)

    if request.method == 'POST':
        data = _validate(InvoiceForm(_parse_json(request)))
        invoice = invoicing.create_invoice(
            student_id=data['student_id'],
            amount=data['amount'],
            due_date=data['due_date'],
            month=data['month'],
            year=data['year'],
            academic_year=data['academic_year'],
            context=context,
            invoice_type=data['invoice_type'],
            description=data['description'],
        )
        invoice = _get_invoice(invoice.pk)
        return JsonResponse(invoice_to_dict(invoice, context.today, detail=True), status=201)

    filters = _validate(InvoiceFilterForm(request.GET))
    invoices = Invoice.objects.select_related('student__school_class')

    if filters['status']:
        invoices = invoices.filter(status_q(filters['status'], context.today))
    if filters['student_id']:
        invoices = invoices.filter(student_id=filters['student_id'])
    if filters['type']:
        invoices = invoices.filter(invoice_type=filters['type'])
    if filters['month']:
        invoices = invoices.filter(month=filters['month'])
    if filters['year']:
        invoices = invoices.filter(year=filters['year'])
    # Scoped to the active academic year unless one is asked for
    academic_year = filters['academic_year'] or context.academic_year
    if academic_year:
        invoices = invoices.filter(academic_year=academic_year)
    if filters['start_date']:
        invoices = invoices.filter(due_date__gte=filters['start_date'])
    if filters['end_date']:
        invoices = invoices.filter(due_date__lte=filters['end_date'])

    invoices = invoices.order_by('-due_date', '-id')

    paginator = Paginator(invoices, filters['limit'])
    page_obj = paginator.get_page(filters['page'])

    return JsonResponse({
        'results': [invoice_to_dict(invoice, context.today) for invoice in page_obj],
        'academic_year': academic_year,
        'count': paginator.count,
        'page': page_obj.number,
        'page_size': filters['limit'],
        'total_pages': paginator.num_pages,
    })


@csrf_exempt
@role_required(*READ_ROLES)
@require_http_methods(["GET", "DELETE"])
@finance_api
def api_invoice_detail(request, pk):
    """API endpoint for one invoice (with payments and charges) and deletion"""
    context = FinanceContext.from_request(request)

    if request.method == 'DELETE':
        invoice_number = invoicing.delete_invoice(pk, context)
        return JsonResponse({'success': True, 'invoice_number': invoice_number})

    return JsonResponse(invoice_to_dict(_get_invoice(pk), context.today, detail=True))


@csrf_exempt
@role_required(*MANAGE_ROLES)
@require_http_methods(["POST"])
@finance_api
def api_invoice_pay(request, pk):
    """API endpoint recording a payment against an invoice"""
    context = FinanceContext.from_request(request)
    data = _validate(PaymentForm(_parse_json(request)))

    payment = payments.record_payment(
        invoice_id=pk,
        amount=data['amount'],
        method=data['method'],
        reference=data['reference'],
        payment_date=data['payment_date'],
        context=context,
        notes=data['notes'],
    )

    return JsonResponse({
        'payment': payment_to_dict(payment),
        'invoice': invoice_to_dict(_get_invoice(pk), context.today, detail=True),
    }, status=201)


@csrf_exempt
@role_required(*MANAGE_ROLES)
@require_http_methods(["POST"])
@finance_api
def api_invoice_cancel(request, pk):
    """API endpoint cancelling an invoice"""
    context = FinanceContext.from_request(request)
    data = _validate(CancellationForm(_parse_json(request)))

    invoicing.cancel_invoice(pk, data['reason'], context)
    return JsonResponse(invoice_to_dict(_get_invoice(pk), context.today, detail=True))


@role_required(*READ_ROLES)
@require_http_methods(["GET"])
@finance_api
def api_invoice_pdf(request, pk):
    """API endpoint downloading the invoice as PDF"""
    context = FinanceContext.from_request(request)
    invoice = _get_invoice(pk)

    buffer = generate_invoice_pdf(invoice, context.today)
    response = HttpResponse(buffer.getvalue(), content_type='application/pdf')
    response['Content-Disposition'] = f'attachment; filename="fatura_{invoice.invoice_number}.pdf"'
    return response


# ==================== PAYMENTS ====================

@csrf_exempt
@role_required(*MANAGE_ROLES)
@require_http_methods(["POST"])
@finance_api
def api_payment_cancel(request, pk):
    """API endpoint cancelling a payment"""
    context = FinanceContext.from_request(request)
    data = _validate(CancellationForm(_parse_json(request)))

    payment = payments.cancel_payment(pk, data['reason'], context)
    return JsonResponse({
        'payment': payment_to_dict(payment),
        'invoice': invoice_to_dict(_get_invoice(payment.invoice_id), context.today, detail=True),
    })


# ==================== PAYMENT PLANS ====================

@csrf_exempt
@role_required(*MANAGE_ROLES)
@require_http_methods(["GET", "POST"])
@finance_api
def api_payment_plans(request):
    """API endpoint for payment plans list and creation"""
    if request.method == 'POST':
        data = _parse_json(request)
        data.setdefault('is_active', True)
        form = PaymentPlanForm(data)
        _validate(form)
        plan = form.save(commit=False)
        plan.created_by = request.user
        plan.save()
        logger.info("Payment plan %s (%s) created by %s", plan.pk, plan.academic_year, request.user.username)
        return JsonResponse(plan_to_dict(plan), status=201)

    plans = PaymentPlan.objects.select_related('course', 'school_class')
    academic_year = request.GET.get('academic_year')
    if academic_year:
        plans = plans.filter(academic_year=academic_year)
    is_active = request.GET.get('is_active')
    if is_active in ('true', 'false'):
        plans = plans.filter(is_active=(is_active == 'true'))

    return JsonResponse({'results': [plan_to_dict(plan) for plan in plans]})


@csrf_exempt
@role_required(*MANAGE_ROLES)
@require_http_methods(["GET", "PUT"])
@finance_api
def api_payment_plan_detail(request, pk):
    """API endpoint for one payment plan; PUT accepts partial updates"""
    plan = _get_plan(pk)

    if request.method == 'PUT':
        data = model_to_dict(plan, fields=PaymentPlanForm._meta.fields)
        data.update(_parse_json(request))
        form = PaymentPlanForm(data, instance=plan)
        _validate(form)
        plan = form.save()
        logger.info("Payment plan %s updated by %s (active=%s)", plan.pk, request.user.username, plan.is_active)

    return JsonResponse(plan_to_dict(plan))


@csrf_exempt
@role_required(*MANAGE_ROLES)
@require_http_methods(["POST"])
@finance_api
def api_payment_plan_generate(request, pk):
    """API endpoint generating the invoices of a payment plan"""
    context = FinanceContext.from_request(request)
    data = _validate(GenerateInvoicesForm(_parse_json(request)))

    result = invoicing.generate_invoices(
        plan_id=pk,
        target_student_ids=data['student_ids'],
        academic_year=data['academic_year'] or None,
        context=context,
        dry_run=data['dry_run'],
    )

    status = 201 if result.created_count and not result.dry_run else 200
    return JsonResponse(result.as_dict(), status=status)


# ==================== REPORTS ====================

@role_required(*REPORT_ROLES)
@require_http_methods(["GET"])
@finance_api
def api_defaulters(request):
    """API endpoint listing students with overdue invoices"""
    context = FinanceContext.from_request(request)
    as_of = _validate(DefaultersForm(request.GET))['as_of'] or context.today

    defaulters = reports.list_defaulters(as_of)
    total = round_money(sum((d.total_overdue for d in defaulters), ZERO))

    return JsonResponse({
        'as_of': as_of.isoformat(),
        'count': len(defaulters),
        'total_overdue': format_money(total),
        'results': [d.as_dict() for d in defaulters],
    })


@role_required(*REPORT_ROLES)
@require_http_methods(["GET"])
@finance_api
def api_financial_summary(request):
    """API endpoint for expected vs. collected revenue over a period"""
    period = _validate(PeriodForm(request.GET))

    if period['start']:
        start, end = period['start'], period['end']
    else:
        start, end = reports.period_for(period['year'], period['month'])

    return JsonResponse(reports.revenue_summary(start, end))


@role_required(*REPORT_ROLES)
@require_http_methods(["GET"])
@finance_api
def api_financial_stats(request):
    """API endpoint for the finance dashboard figures"""
    context = FinanceContext.from_request(request)
    return JsonResponse(reports.financial_stats(context.today))


@role_required(*READ_ROLES)
@require_http_methods(["GET"])
@finance_api
def api_student_financial_history(request, pk):
    """API endpoint for a student's invoices and balance summary"""
    context = FinanceContext.from_request(request)
    history = reports.student_financial_history(pk, context.today)
    summary = history['summary']

    return JsonResponse({
        'student': student_to_dict(history['student']),
        'invoices': [invoice_to_dict(invoice, context.today) for invoice in history['invoices']],
        'summary': {
            'total_invoices': summary['total_invoices'],
            'total_amount': format_money(summary['total_amount']),
            'total_paid': format_money(summary['total_paid']),
            'total_pending': format_money(summary['total_pending']),
            'overdue_amount': format_money(summary['overdue_amount']),
            'overdue_count': summary['overdue_count'],
        },
    })
