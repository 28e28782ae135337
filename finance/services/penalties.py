"""
Late fee and interest accrual for overdue plan invoices.

Charges are ledger lines (InvoiceCharge) next to the invoice; the billed
amount is never modified. The late fee is charged once, when the invoice is
first evaluated past its due date plus the grace period. Interest grows by
balance * daily rate for every day overdue since the last accrual, so a
partial payment only lowers interest from the payment date onwards and a
settled invoice stops accruing.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from ..conf import finance_setting
from ..models import InvoiceCharge
from ..utils.money import calculate_percentage, round_money, format_money, ZERO, HUNDRED

logger = logging.getLogger(__name__)

LATE_FEE = 'LATE_FEE'
INTEREST = 'INTEREST'


@dataclass
class ChargeSummary:
    late_fee: Decimal = ZERO
    interest: Decimal = ZERO
    interest_days: int = 0
    calculated_on: date = None
    changed: list = field(default_factory=list)

    @property
    def total(self):
        return round_money(self.late_fee + self.interest)

    def as_dict(self):
        return {
            'late_fee': format_money(self.late_fee),
            'interest': format_money(self.interest),
            'interest_days': self.interest_days,
            'total': format_money(self.total),
            'calculated_on': self.calculated_on.isoformat() if self.calculated_on else None,
        }


def _existing_charges(invoice):
    if not invoice.pk:
        return {}
    return {charge.kind: charge for charge in invoice.charges.all()}


def _accrues(invoice, as_of):
    return (
        invoice.payment_plan_id is not None
        and not invoice.is_cancelled
        and invoice.balance > ZERO
        and as_of > invoice.due_date
    )


def _pending_values(invoice, as_of, existing):
    """New (amount, days) per charge kind that accrual on `as_of` would write"""
    values = {}
    if not _accrues(invoice, as_of):
        return values

    plan = invoice.payment_plan
    days_overdue = (as_of - invoice.due_date).days
    grace_days = int(finance_setting('LATE_FEE_GRACE_DAYS'))

    if LATE_FEE not in existing and plan.late_fee_percent > 0 and days_overdue > grace_days:
        values[LATE_FEE] = (calculate_percentage(invoice.amount, plan.late_fee_percent), 0)

    if plan.daily_interest_rate > 0:
        interest = existing.get(INTEREST)
        since = max(interest.calculated_on, invoice.due_date) if interest else invoice.due_date
        new_days = (as_of - since).days
        if new_days > 0:
            increment = round_money(
                invoice.balance * plan.daily_interest_rate / HUNDRED * new_days
            )
            base_amount = interest.amount if interest else ZERO
            base_days = interest.days_overdue if interest else 0
            values[INTEREST] = (round_money(base_amount + increment), base_days + new_days)

    return _apply_cap(invoice, existing, values)


def _apply_cap(invoice, existing, values):
    """Late fee plus interest never exceed MAX_PENALTY_PERCENT of the billed amount"""
    max_percent = finance_setting('MAX_PENALTY_PERCENT')
    if max_percent is None or not values:
        return values

    cap = calculate_percentage(invoice.amount, Decimal(str(max_percent)))
    if LATE_FEE in values:
        values[LATE_FEE] = (min(values[LATE_FEE][0], cap), 0)
        late_fee = values[LATE_FEE][0]
    else:
        late_fee = existing[LATE_FEE].amount if LATE_FEE in existing else ZERO

    if INTEREST in values:
        amount, days = values[INTEREST]
        values[INTEREST] = (max(min(amount, cap - late_fee), ZERO), days)
    return values


def _summarize(existing, values, as_of):
    summary = ChargeSummary()
    for kind in (LATE_FEE, INTEREST):
        if kind in values:
            amount, days = values[kind]
            calculated_on = as_of
        elif kind in existing:
            amount, days = existing[kind].amount, existing[kind].days_overdue
            calculated_on = existing[kind].calculated_on
        else:
            continue

        if kind == LATE_FEE:
            summary.late_fee = amount
        else:
            summary.interest = amount
            summary.interest_days = days
        if summary.calculated_on is None or calculated_on > summary.calculated_on:
            summary.calculated_on = calculated_on
    return summary


def preview_charges(invoice, as_of):
    """Charges as they would stand on `as_of`, without writing anything"""
    existing = _existing_charges(invoice)
    return _summarize(existing, _pending_values(invoice, as_of, existing), as_of)


def accrue_charges(invoice, as_of):
    """
    Bring the charge ledger of `invoice` up to `as_of`.
    Callers hold the invoice row lock.
    """
    existing = _existing_charges(invoice)
    values = _pending_values(invoice, as_of, existing)

    for kind, (amount, days) in values.items():
        charge, _created = InvoiceCharge.objects.update_or_create(
            invoice=invoice,
            kind=kind,
            defaults={'amount': amount, 'days_overdue': days, 'calculated_on': as_of},
        )
        existing[kind] = charge
        logger.info(
            "Accrued %s on invoice %s: AOA %s (as of %s)",
            kind, invoice.invoice_number, amount, as_of
        )

    summary = _summarize(existing, {}, as_of)
    summary.changed = sorted(values)
    return summary
