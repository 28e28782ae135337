"""
Invoice status engine.

Status is always derived from (amount, paid_amount, due_date, cancelled, now);
the status column on Invoice is only a snapshot written at mutation time.
status_q() expresses the same rules as a database predicate so list filters
agree with compute_status() row by row.
"""
from datetime import datetime

from django.db.models import F, Q

from ..conf import finance_setting
from ..exceptions import FinanceValidationError
from ..utils.money import round_money, ZERO

PENDING = 'PENDING'
PARTIAL = 'PARTIAL'
PAID = 'PAID'
OVERDUE = 'OVERDUE'
CANCELLED = 'CANCELLED'

STATUSES = (PENDING, PARTIAL, PAID, OVERDUE, CANCELLED)


def _as_date(value):
    if isinstance(value, datetime):
        return value.date()
    return value


def _precedence(overdue_takes_precedence):
    if overdue_takes_precedence is None:
        return bool(finance_setting('OVERDUE_TAKES_PRECEDENCE'))
    return overdue_takes_precedence


def compute_balance(amount, paid_amount):
    """Outstanding amount, never negative"""
    return max(round_money(amount) - round_money(paid_amount), ZERO)


def compute_status(amount, paid_amount, due_date, is_cancelled, now, overdue_takes_precedence=None):
    """
    Derive the invoice status.

    Overdue means the current date is strictly after the due date. A partially
    paid invoice past its due date reports OVERDUE when overdue takes
    precedence (the default) and PARTIAL otherwise.
    """
    if is_cancelled:
        return CANCELLED

    amount = round_money(amount)
    paid_amount = round_money(paid_amount)
    if paid_amount >= amount:
        return PAID

    past_due = _as_date(now) > due_date
    if paid_amount > ZERO:
        if past_due and _precedence(overdue_takes_precedence):
            return OVERDUE
        return PARTIAL

    return OVERDUE if past_due else PENDING


def status_q(status, today, overdue_takes_precedence=None):
    """Q object selecting invoices whose computed status is `status` on `today`"""
    today = _as_date(today)
    precedence = _precedence(overdue_takes_precedence)

    active = Q(cancelled_at__isnull=True)
    unpaid = active & Q(paid_amount__lt=F('amount'))
    past_due = Q(due_date__lt=today)
    not_due = Q(due_date__gte=today)

    if status == CANCELLED:
        return Q(cancelled_at__isnull=False)
    if status == PAID:
        return active & Q(paid_amount__gte=F('amount'))
    if status == PARTIAL:
        q = unpaid & Q(paid_amount__gt=0)
        return q & not_due if precedence else q
    if status == OVERDUE:
        q = unpaid & past_due
        return q if precedence else q & Q(paid_amount__lte=0)
    if status == PENDING:
        return unpaid & Q(paid_amount__lte=0) & not_due

    raise FinanceValidationError(
        f'Estado de fatura desconhecido: {status}',
        details={'status': status, 'allowed': list(STATUSES)}
    )
