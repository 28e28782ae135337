"""
Aggregation and reporting: defaulters, revenue vs. collections, student
history and the dashboard figures. Read-only; status is always computed
for the requested date.
"""
import calendar
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from django.db.models import Count, Sum

from education.models import Student

from ..exceptions import NotFound, FinanceValidationError
from ..models import Invoice, Payment
from ..utils.money import round_money, format_money, sum_amounts, ZERO, HUNDRED
from .status import status_q, OVERDUE, CANCELLED


@dataclass
class Defaulter:
    student_id: int
    student_name: str
    student_number: str
    class_name: str
    guardian_phone: str
    guardian_email: str
    total_overdue: Decimal = ZERO
    overdue_invoices: int = 0
    oldest_due_date: date = None
    invoice_ids: list = field(default_factory=list)

    def as_dict(self):
        return {
            'student_id': self.student_id,
            'student_name': self.student_name,
            'student_number': self.student_number,
            'class_name': self.class_name,
            'guardian_phone': self.guardian_phone,
            'guardian_email': self.guardian_email,
            'total_overdue': format_money(self.total_overdue),
            'overdue_invoices': self.overdue_invoices,
            'oldest_due_date': self.oldest_due_date.isoformat() if self.oldest_due_date else None,
            'invoice_ids': self.invoice_ids,
        }


def list_defaulters(as_of, overdue_takes_precedence=None):
    """
    Students with at least one invoice OVERDUE on `as_of`.

    Sorted by total overdue amount (largest first), then by oldest due date,
    then by student number.
    """
    invoices = (
        Invoice.objects.filter(status_q(OVERDUE, as_of, overdue_takes_precedence))
        .select_related('student__school_class')
        .order_by('due_date', 'pk')
    )

    defaulters = {}
    for invoice in invoices:
        student = invoice.student
        entry = defaulters.get(student.pk)
        if entry is None:
            entry = defaulters[student.pk] = Defaulter(
                student_id=student.pk,
                student_name=student.full_name,
                student_number=student.student_number,
                class_name=student.class_name,
                guardian_phone=student.guardian_phone,
                guardian_email=student.guardian_email,
            )
        entry.total_overdue = round_money(entry.total_overdue + invoice.balance)
        entry.overdue_invoices += 1
        entry.invoice_ids.append(invoice.pk)
        if entry.oldest_due_date is None or invoice.due_date < entry.oldest_due_date:
            entry.oldest_due_date = invoice.due_date

    return sorted(
        defaulters.values(),
        key=lambda d: (-d.total_overdue, d.oldest_due_date, d.student_number)
    )


def period_for(year, month=None):
    """First and last day of a month, or of a whole calendar year"""
    if month:
        return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])
    return date(year, 1, 1), date(year, 12, 31)


def _month_keys(start, end):
    keys = []
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        keys.append(f"{year:04d}-{month:02d}")
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)
    return keys


def revenue_summary(start, end):
    """
    Expected vs. collected revenue for a period.

    collected: non-cancelled payments dated within the period, per month and
    per method. expected: amounts of non-cancelled invoices due within the
    period, per month, regardless of payment status.
    """
    if start > end:
        raise FinanceValidationError(
            'A data inicial deve ser anterior à data final.',
            details={'start': start.isoformat(), 'end': end.isoformat()}
        )

    months = OrderedDict((key, {'expected': ZERO, 'collected': ZERO}) for key in _month_keys(start, end))
    by_method = OrderedDict((code, ZERO) for code in Payment.method_codes())

    payments = Payment.objects.filter(is_cancelled=False, payment_date__range=(start, end))
    for payment in payments.only('amount', 'method', 'payment_date'):
        key = payment.payment_date.strftime('%Y-%m')
        months[key]['collected'] += payment.amount
        by_method[payment.method] = by_method.get(payment.method, ZERO) + payment.amount

    invoices = Invoice.objects.filter(cancelled_at__isnull=True, due_date__range=(start, end))
    outstanding = ZERO
    for invoice in invoices.only('amount', 'paid_amount', 'due_date'):
        months[invoice.due_date.strftime('%Y-%m')]['expected'] += invoice.amount
        outstanding += invoice.balance

    overdue = sum_amounts(
        invoice.balance
        for invoice in invoices.filter(status_q(OVERDUE, end)).only('amount', 'paid_amount')
    )

    total_expected = sum_amounts(m['expected'] for m in months.values())
    total_collected = sum_amounts(m['collected'] for m in months.values())
    collection_rate = round_money(total_collected / total_expected * HUNDRED) if total_expected else ZERO

    return {
        'start': start.isoformat(),
        'end': end.isoformat(),
        'months': [
            {
                'month': key,
                'expected': format_money(values['expected']),
                'collected': format_money(values['collected']),
            }
            for key, values in months.items()
        ],
        'by_method': {method: format_money(amount) for method, amount in by_method.items()},
        'total_expected': format_money(total_expected),
        'total_collected': format_money(total_collected),
        'outstanding': format_money(outstanding),
        'overdue': format_money(overdue),
        'collection_rate': format_money(collection_rate),
    }


def student_financial_history(student_id, today):
    """Invoices of a student with an outstanding/overdue summary"""
    try:
        student = Student.objects.select_related('school_class').get(pk=student_id)
    except Student.DoesNotExist:
        raise NotFound(f'Aluno com ID {student_id} não encontrado.', details={'student_id': student_id})

    invoices = list(
        student.invoices.select_related('payment_plan')
        .prefetch_related('payments', 'charges')
        .order_by('-year', '-month', '-created_at')
    )

    summary = {
        'total_invoices': 0,
        'total_amount': ZERO,
        'total_paid': ZERO,
        'total_pending': ZERO,
        'overdue_amount': ZERO,
        'overdue_count': 0,
    }
    for invoice in invoices:
        status = invoice.current_status(today)
        if status == CANCELLED:
            continue
        summary['total_invoices'] += 1
        summary['total_amount'] += invoice.amount
        summary['total_paid'] += invoice.paid_amount
        summary['total_pending'] += invoice.balance
        if status == OVERDUE:
            summary['overdue_amount'] += invoice.balance
            summary['overdue_count'] += 1

    for key in ('total_amount', 'total_paid', 'total_pending', 'overdue_amount'):
        summary[key] = round_money(summary[key])

    return {'student': student, 'invoices': invoices, 'summary': summary}


def financial_stats(today):
    """Dashboard figures for the finance screen"""
    active_payments = Payment.objects.filter(is_cancelled=False)
    active_invoices = Invoice.objects.filter(cancelled_at__isnull=True)
    month_start, month_end = period_for(today.year, today.month)

    total_revenue = active_payments.aggregate(total=Sum('amount'))['total']
    paid_this_month = active_payments.filter(
        payment_date__range=(month_start, month_end)
    ).aggregate(total=Sum('amount'))['total']

    pending_amount = sum_amounts(
        invoice.balance for invoice in active_invoices.only('amount', 'paid_amount')
    )
    overdue_amount = sum_amounts(
        invoice.balance
        for invoice in active_invoices.filter(status_q(OVERDUE, today)).only('amount', 'paid_amount')
    )

    revenue_by_type = (
        active_payments.values('invoice__invoice_type')
        .annotate(total=Sum('amount'), count=Count('id'))
        .order_by('invoice__invoice_type')
    )
    totals_by_method = (
        active_payments.values('method')
        .annotate(total=Sum('amount'), count=Count('id'))
        .order_by('method')
    )

    return {
        'date': today.isoformat(),
        'total_revenue': format_money(total_revenue or ZERO),
        'pending_amount': format_money(pending_amount),
        'overdue_amount': format_money(overdue_amount),
        'paid_this_month': format_money(paid_this_month or ZERO),
        'invoices_this_month': active_invoices.filter(year=today.year, month=today.month).count(),
        'defaulter_count': len(list_defaulters(today)),
        'revenue_by_type': [
            {
                'invoice_type': row['invoice__invoice_type'],
                'total': format_money(row['total']),
                'count': row['count'],
            }
            for row in revenue_by_type
        ],
        'totals_by_method': [
            {'method': row['method'], 'total': format_money(row['total']), 'count': row['count']}
            for row in totals_by_method
        ],
    }
