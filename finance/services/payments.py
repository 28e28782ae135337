"""
Payment recorder.

Recording and cancelling a payment each run in one transaction that locks
the invoice row, writes the payment and writes the invoice through a
version-checked update. Any failure rolls back both writes.
"""
import logging
from decimal import Decimal, InvalidOperation

from django.db import transaction, OperationalError
from django.utils import timezone

from ..conf import finance_setting
from ..context import MANAGE_ROLES
from ..exceptions import (
    NotFound, InvalidState, AlreadyCancelled, FinanceValidationError,
    OverpaymentError, ConcurrencyConflict,
)
from ..models import Invoice, Payment
from ..utils.money import round_money, format_money, ZERO
from .penalties import accrue_charges
from .status import compute_status

logger = logging.getLogger(__name__)


def lock_invoice(invoice_id):
    """Fetch an invoice with a row lock; must run inside transaction.atomic()"""
    queryset = Invoice.objects.select_for_update(nowait=bool(finance_setting('LOCK_NOWAIT')))
    try:
        return queryset.get(pk=invoice_id)
    except Invoice.DoesNotExist:
        raise NotFound(f'Fatura com ID {invoice_id} não encontrada.', details={'invoice_id': invoice_id})
    except OperationalError as exc:
        logger.warning("Lock contention on invoice %s: %s", invoice_id, exc)
        raise ConcurrencyConflict(details={'invoice_id': invoice_id}) from exc


def parse_amount(value):
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise FinanceValidationError('Valor inválido.', details={'amount': str(value)})
    if not amount.is_finite():
        raise FinanceValidationError('Valor inválido.', details={'amount': str(value)})
    return round_money(amount)


def record_payment(invoice_id, amount, method, reference, payment_date, context, notes=''):
    """
    Record a payment against an invoice and refresh its paid amount and status.

    Raises NotFound, InvalidState (cancelled invoice), FinanceValidationError
    (amount <= 0, unknown method, future date), OverpaymentError.
    """
    context.require(MANAGE_ROLES)

    with transaction.atomic():
        invoice = lock_invoice(invoice_id)

        if invoice.is_cancelled:
            raise InvalidState(
                'Não é possível registar pagamentos numa fatura cancelada.',
                details={'invoice_id': invoice.pk, 'status': 'CANCELLED'}
            )

        amount = parse_amount(amount)
        if amount <= ZERO:
            raise FinanceValidationError('O valor do pagamento deve ser maior que zero.', details={'amount': format_money(amount)})

        if method not in Payment.method_codes():
            raise FinanceValidationError(
                'Método de pagamento inválido.',
                details={'method': method, 'allowed': Payment.method_codes()}
            )

        payment_date = payment_date or context.today
        if payment_date > context.today:
            raise FinanceValidationError(
                'A data de pagamento não pode ser futura.',
                details={'payment_date': payment_date.isoformat()}
            )

        new_paid = round_money(invoice.paid_amount + amount)
        if new_paid > invoice.amount and not finance_setting('ALLOW_OVERPAYMENT'):
            raise OverpaymentError(details={
                'amount': format_money(amount),
                'balance': format_money(invoice.balance),
            })

        # Interest up to the payment date is charged on the balance before it
        accrue_charges(invoice, payment_date)

        payment = Payment.objects.create(
            invoice=invoice,
            amount=amount,
            method=method,
            reference=reference or '',
            payment_date=payment_date,
            notes=notes or '',
            created_by=context.actor,
        )

        invoice.versioned_update(
            paid_amount=new_paid,
            status=compute_status(invoice.amount, new_paid, invoice.due_date, False, context.today),
        )

    logger.info(
        "Payment %s of AOA %s recorded on invoice %s (%s) by %s",
        payment.receipt_number, amount, invoice.invoice_number, invoice.status, context.role
    )
    return payment


def cancel_payment(payment_id, reason, context):
    """
    Cancel a payment and take its amount back off the invoice.

    Raises NotFound, AlreadyCancelled, InvalidState (invoice cancelled),
    FinanceValidationError (missing reason).
    """
    context.require(MANAGE_ROLES)

    invoice_id = Payment.objects.filter(pk=payment_id).values_list('invoice_id', flat=True).first()
    if invoice_id is None:
        raise NotFound(f'Pagamento com ID {payment_id} não encontrado.', details={'payment_id': payment_id})

    with transaction.atomic():
        invoice = lock_invoice(invoice_id)
        payment = Payment.objects.select_for_update().get(pk=payment_id)

        if payment.is_cancelled:
            raise AlreadyCancelled('O pagamento já foi cancelado.', details={'payment_id': payment.pk})

        if invoice.is_cancelled:
            raise InvalidState(
                'Não é possível cancelar pagamentos de uma fatura cancelada.',
                details={'invoice_id': invoice.pk}
            )

        reason = (reason or '').strip()
        if not reason:
            raise FinanceValidationError('O motivo do cancelamento é obrigatório.', details={'reason': 'required'})

        payment.is_cancelled = True
        payment.cancelled_at = timezone.now()
        payment.cancelled_by = context.actor
        payment.cancellation_reason = reason
        payment.save(update_fields=['is_cancelled', 'cancelled_at', 'cancelled_by', 'cancellation_reason'])

        new_paid = max(round_money(invoice.paid_amount - payment.amount), ZERO)
        invoice.versioned_update(
            paid_amount=new_paid,
            status=compute_status(invoice.amount, new_paid, invoice.due_date, False, context.today),
        )

    logger.info(
        "Payment %s cancelled on invoice %s by %s: %s",
        payment.receipt_number, invoice.invoice_number, context.role, reason
    )
    return payment
