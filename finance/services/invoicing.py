"""
Invoicing engine: manual invoices, payment plan generation, cancellation,
deletion and the periodic status refresh.
"""
import logging
from dataclasses import dataclass, field

from django.db import transaction, IntegrityError, OperationalError
from django.utils import timezone

from education.models import Student
from education.utils.academic_year import parse_academic_year

from ..conf import finance_setting
from ..context import MANAGE_ROLES, DELETE_ROLES
from ..exceptions import (
    NotFound, InvalidState, AlreadyCancelled, FinanceValidationError,
    PlanInactive, ConcurrencyConflict,
)
from ..models import Invoice, PaymentPlan, INVOICE_TYPE_CHOICES
from ..utils.money import format_money, ZERO
from .payments import lock_invoice, parse_amount
from .penalties import accrue_charges
from .status import compute_status, CANCELLED

logger = logging.getLogger(__name__)

MONTH_NAMES = {
    1: 'Janeiro', 2: 'Fevereiro', 3: 'Março', 4: 'Abril',
    5: 'Maio', 6: 'Junho', 7: 'Julho', 8: 'Agosto',
    9: 'Setembro', 10: 'Outubro', 11: 'Novembro', 12: 'Dezembro',
}


@dataclass
class GenerationResult:
    plan_id: int
    academic_year: str
    invoices: list = field(default_factory=list)
    created_count: int = 0
    skipped_count: int = 0
    student_count: int = 0
    dry_run: bool = False

    def as_dict(self):
        return {
            'plan_id': self.plan_id,
            'academic_year': self.academic_year,
            'created': self.created_count,
            'skipped': self.skipped_count,
            'students': self.student_count,
            'dry_run': self.dry_run,
            'invoice_ids': [invoice.pk for invoice in self.invoices],
        }


def _require_academic_year(label):
    years = parse_academic_year(label)
    if years is None:
        raise FinanceValidationError(
            'Ano letivo inválido. Use o formato AAAA/AAAA (ex: 2024/2025).',
            details={'academic_year': label}
        )
    return years


def billing_periods(academic_year, start_month=None, month_count=None):
    """
    (year, month) pairs billed for an academic year.

    Example with the defaults (September, 10 months):
        2024/2025 -> (2024, 9) .. (2024, 12), (2025, 1) .. (2025, 6)
    """
    first_year, _second_year = _require_academic_year(academic_year)
    start_month = start_month or int(finance_setting('BILLING_START_MONTH'))
    month_count = month_count or int(finance_setting('BILLING_MONTH_COUNT'))

    periods = []
    for offset in range(month_count):
        index = start_month - 1 + offset
        periods.append((first_year + index // 12, index % 12 + 1))
    return periods


def lock_student(student_id):
    """Fetch a student with a row lock; must run inside transaction.atomic()"""
    queryset = Student.objects.select_for_update(nowait=bool(finance_setting('LOCK_NOWAIT')))
    try:
        return queryset.get(pk=student_id)
    except Student.DoesNotExist:
        raise NotFound(f'Aluno com ID {student_id} não encontrado.', details={'student_id': student_id})
    except OperationalError as exc:
        logger.warning("Lock contention on student %s: %s", student_id, exc)
        raise ConcurrencyConflict(details={'student_id': student_id}) from exc


def create_invoice(student_id, amount, due_date, month, year, academic_year, context,
                   invoice_type='TUITION', description=''):
    """Create a manual invoice (no payment plan)"""
    context.require(MANAGE_ROLES)

    amount = parse_amount(amount)
    if amount <= ZERO:
        raise FinanceValidationError('O valor da fatura deve ser maior que zero.', details={'amount': format_money(amount)})
    try:
        month, year = int(month), int(year)
    except (TypeError, ValueError):
        raise FinanceValidationError('Mês ou ano inválido.', details={'month': month, 'year': year})
    if not 1 <= month <= 12:
        raise FinanceValidationError('Mês inválido.', details={'month': month})
    if not 2000 <= year <= 2100:
        raise FinanceValidationError('Ano inválido.', details={'year': year})
    if invoice_type not in dict(INVOICE_TYPE_CHOICES):
        raise FinanceValidationError('Tipo de fatura inválido.', details={'invoice_type': invoice_type})
    _require_academic_year(academic_year)
    if due_date is None:
        raise FinanceValidationError('A data de vencimento é obrigatória.', details={'due_date': 'required'})

    with transaction.atomic():
        # The student row lock serializes manual invoice creation per student
        student = lock_student(student_id)

        duplicate = Invoice.objects.filter(
            student=student,
            invoice_type=invoice_type,
            month=month,
            year=year,
            cancelled_at__isnull=True,
        ).first()
        if duplicate:
            raise FinanceValidationError(
                'Já existe uma fatura deste tipo para este aluno neste mês/ano.',
                details={'invoice_id': duplicate.pk, 'invoice_number': duplicate.invoice_number}
            )

        try:
            with transaction.atomic():
                invoice = Invoice.objects.create(
                    student=student,
                    invoice_type=invoice_type,
                    description=description or '',
                    amount=amount,
                    status=compute_status(amount, ZERO, due_date, False, context.today),
                    due_date=due_date,
                    month=month,
                    year=year,
                    academic_year=academic_year,
                    created_by=context.actor,
                )
        except IntegrityError as exc:
            logger.warning("Invoice number collision for student %s: %s", student.student_number, exc)
            raise ConcurrencyConflict(
                'Outra fatura foi emitida ao mesmo tempo. Tente novamente.',
                details={'student_id': student.pk}
            ) from exc

    logger.info(
        "Invoice %s created for student %s: AOA %s due %s",
        invoice.invoice_number, student.student_number, amount, due_date
    )
    return invoice


def _target_students(plan, student_ids):
    if student_ids:
        student_ids = sorted(set(int(pk) for pk in student_ids))
        students = list(Student.objects.filter(pk__in=student_ids))
        missing = sorted(set(student_ids) - {s.pk for s in students})
        if missing:
            raise NotFound('Alguns alunos não foram encontrados.', details={'student_ids': missing})
        return students

    students = Student.objects.filter(status='active')
    if plan.school_class_id:
        students = students.filter(school_class_id=plan.school_class_id)
    elif plan.course_id:
        students = students.filter(
            school_class__course_id=plan.course_id,
            school_class__academic_year=plan.academic_year,
        )
    return list(students.order_by('student_number'))


def generate_invoices(plan_id, target_student_ids, academic_year, context, dry_run=False):
    """
    Materialize one invoice per student per billing month of a payment plan.

    Re-running with the same arguments creates nothing new: each invoice
    carries a unique generation key (student, plan, year, month).

    Without an explicit academic year the active year of the context is
    used, then the plan's own year.
    """
    context.require(MANAGE_ROLES)

    try:
        plan = PaymentPlan.objects.get(pk=plan_id)
    except PaymentPlan.DoesNotExist:
        raise NotFound(f'Plano de pagamento com ID {plan_id} não encontrado.', details={'plan_id': plan_id})

    if not plan.is_active:
        raise PlanInactive(details={'plan_id': plan.pk})

    academic_year = academic_year or context.academic_year or plan.academic_year
    _require_academic_year(academic_year)
    if academic_year != plan.academic_year:
        raise FinanceValidationError(
            'O ano letivo não corresponde ao do plano de pagamento.',
            details={'academic_year': academic_year, 'plan_academic_year': plan.academic_year}
        )

    students = _target_students(plan, target_student_ids)
    periods = billing_periods(academic_year)
    result = GenerationResult(plan_id=plan.pk, academic_year=academic_year, dry_run=dry_run, student_count=len(students))

    existing_keys = set(
        Invoice.objects.filter(payment_plan=plan, student__in=students)
        .exclude(generation_key__isnull=True)
        .values_list('generation_key', flat=True)
    )

    with transaction.atomic():
        for student in students:
            for year, month in periods:
                key = Invoice.build_generation_key(student.pk, plan.pk, year, month)
                if key in existing_keys:
                    result.skipped_count += 1
                    continue
                if dry_run:
                    result.created_count += 1
                    continue

                due_date = plan.due_date_for(year, month)
                try:
                    with transaction.atomic():
                        invoice = Invoice.objects.create(
                            student=student,
                            payment_plan=plan,
                            invoice_type=plan.invoice_type,
                            description=f"{plan.get_invoice_type_display()} - {MONTH_NAMES[month]}/{year}",
                            amount=plan.monthly_amount,
                            status=compute_status(plan.monthly_amount, ZERO, due_date, False, context.today),
                            due_date=due_date,
                            month=month,
                            year=year,
                            academic_year=academic_year,
                            generation_key=key,
                            created_by=context.actor,
                        )
                except IntegrityError as exc:
                    # A concurrent run created the same period first
                    if not Invoice.objects.filter(generation_key=key).exists():
                        logger.warning("Invoice number collision generating %s: %s", key, exc)
                        raise ConcurrencyConflict(
                            'Outra fatura foi emitida ao mesmo tempo. Tente novamente.',
                            details={'plan_id': plan.pk, 'generation_key': key}
                        ) from exc
                    result.skipped_count += 1
                    continue

                existing_keys.add(key)
                result.invoices.append(invoice)
                result.created_count += 1

    logger.info(
        "Plan %s (%s): %s invoices %s, %s skipped, %s students",
        plan.pk, academic_year, result.created_count,
        'planned' if dry_run else 'created', result.skipped_count, result.student_count
    )
    return result


def cancel_invoice(invoice_id, reason, context):
    """Cancel an invoice with no active payments. Terminal."""
    context.require(MANAGE_ROLES)

    with transaction.atomic():
        invoice = lock_invoice(invoice_id)

        if invoice.is_cancelled:
            raise AlreadyCancelled('A fatura já foi cancelada.', details={'invoice_id': invoice.pk})

        active_payments = invoice.payments.filter(is_cancelled=False).count()
        if active_payments:
            raise InvalidState(
                'Não é possível cancelar uma fatura com pagamentos ativos. Cancele os pagamentos primeiro.',
                details={'invoice_id': invoice.pk, 'active_payments': active_payments}
            )

        reason = (reason or '').strip()
        if not reason:
            raise FinanceValidationError('O motivo do cancelamento é obrigatório.', details={'reason': 'required'})

        invoice.versioned_update(
            status=CANCELLED,
            cancelled_at=timezone.now(),
            cancelled_by=context.actor,
            cancellation_reason=reason,
        )

    logger.info("Invoice %s cancelled by %s: %s", invoice.invoice_number, context.role, reason)
    return invoice


def delete_invoice(invoice_id, context):
    """Delete an invoice that never received a payment"""
    context.require(DELETE_ROLES)

    with transaction.atomic():
        invoice = lock_invoice(invoice_id)
        if invoice.payments.exists():
            raise InvalidState(
                'Não é possível eliminar uma fatura com pagamentos registados.',
                details={'invoice_id': invoice.pk}
            )
        invoice_number = invoice.invoice_number
        invoice.delete()

    logger.info("Invoice %s deleted by %s", invoice_number, context.role)
    return invoice_number


def refresh_statuses(as_of, dry_run=False):
    """
    Re-persist status snapshots and accrue penalties for every active invoice.

    Returns a dict of counters. Invoices changed concurrently are counted as
    conflicts and left for the next run; invoices deleted meanwhile are
    counted as skipped. Charges only accrue for days that have passed, so
    `as_of` cannot be later than today.
    """
    today = timezone.localdate()
    if as_of > today:
        raise FinanceValidationError(
            'A data de avaliação não pode ser posterior a hoje.',
            details={'as_of': as_of.isoformat(), 'today': today.isoformat()}
        )

    counters = {'checked': 0, 'updated': 0, 'charged': 0, 'conflicts': 0, 'skipped': 0}
    invoice_ids = Invoice.objects.filter(cancelled_at__isnull=True).values_list('pk', flat=True)

    for invoice_id in list(invoice_ids):
        counters['checked'] += 1
        if dry_run:
            invoice = Invoice.objects.filter(pk=invoice_id).first()
            if invoice is None:
                counters['skipped'] += 1
            elif invoice.current_status(as_of) != invoice.status:
                counters['updated'] += 1
            continue

        try:
            with transaction.atomic():
                invoice = lock_invoice(invoice_id)
                summary = accrue_charges(invoice, as_of)
                if summary.changed:
                    counters['charged'] += 1
                status = invoice.current_status(as_of)
                if status != invoice.status:
                    invoice.versioned_update(status=status)
                    counters['updated'] += 1
        except ConcurrencyConflict:
            logger.warning("Invoice %s changed during status refresh; skipped", invoice_id)
            counters['conflicts'] += 1
        except NotFound:
            logger.info("Invoice %s deleted during status refresh; skipped", invoice_id)
            counters['skipped'] += 1

    logger.info(
        "Status refresh as of %s: %s checked, %s updated, %s charged, %s conflicts, %s skipped",
        as_of, counters['checked'], counters['updated'], counters['charged'],
        counters['conflicts'], counters['skipped']
    )
    return counters
