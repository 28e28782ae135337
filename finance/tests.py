from datetime import date, datetime, timedelta
from decimal import Decimal
from io import StringIO
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import OperationalError
from django.db.models import F
from django.test import TestCase, override_settings
from django.utils import timezone

from education.models import Course, SchoolClass, Student
from .context import FinanceContext
from .exceptions import (
    AccessDenied, AlreadyCancelled, ConcurrencyConflict, FinanceValidationError,
    InvalidState, NotFound, OverpaymentError, PlanInactive,
)
from .models import Invoice, InvoiceCharge, Payment, PaymentPlan
from .services import invoicing, payments, penalties, reports
from .services.status import STATUSES, compute_balance, compute_status, status_q
from .utils.money import calculate_percentage, format_money, round_money

User = get_user_model()


def make_student(number, name=None, school_class=None, status='active', **extra):
    return Student.objects.create(
        student_number=number,
        full_name=name or f"Aluno {number}",
        school_class=school_class,
        status=status,
        **extra
    )


def make_invoice(student, amount, due_date, paid=Decimal('0.00'), **extra):
    extra.setdefault('month', due_date.month)
    extra.setdefault('year', due_date.year)
    extra.setdefault('academic_year', '2023/2024')
    return Invoice.objects.create(
        student=student,
        amount=Decimal(amount),
        paid_amount=Decimal(paid),
        due_date=due_date,
        **extra
    )


class MoneyTestCase(TestCase):
    def test_round_money_half_up(self):
        """Amounts round half-up to 2 places"""
        self.assertEqual(round_money('10.005'), Decimal('10.01'))
        self.assertEqual(round_money(Decimal('10.004')), Decimal('10.00'))
        self.assertEqual(round_money(None), Decimal('0.00'))

    def test_float_input_goes_through_str(self):
        self.assertEqual(round_money(0.1 + 0.2), Decimal('0.30'))

    def test_calculate_percentage(self):
        self.assertEqual(calculate_percentage(Decimal('15000.00'), Decimal('2')), Decimal('300.00'))
        self.assertEqual(calculate_percentage(Decimal('15000.00'), Decimal('0')), Decimal('0.00'))

    def test_serialization(self):
        self.assertEqual(format_money(Decimal('15000')), '15000.00')


class StatusEngineTestCase(TestCase):
    due = date(2024, 1, 10)

    def test_cancelled_wins_over_everything(self):
        self.assertEqual(compute_status(Decimal('100'), Decimal('100'), self.due, True, date(2024, 2, 1)), 'CANCELLED')

    def test_paid_when_paid_reaches_amount(self):
        self.assertEqual(compute_status(Decimal('15000.00'), Decimal('15000.00'), self.due, False, date(2024, 2, 1)), 'PAID')

    def test_pending_before_and_on_due_date(self):
        self.assertEqual(compute_status(Decimal('100'), Decimal('0'), self.due, False, date(2024, 1, 9)), 'PENDING')
        self.assertEqual(compute_status(Decimal('100'), Decimal('0'), self.due, False, self.due), 'PENDING')

    def test_overdue_strictly_after_due_date(self):
        self.assertEqual(compute_status(Decimal('100'), Decimal('0'), self.due, False, date(2024, 1, 11)), 'OVERDUE')

    def test_partial_before_due_date(self):
        self.assertEqual(compute_status(Decimal('10000'), Decimal('4000'), self.due, False, date(2024, 1, 5)), 'PARTIAL')

    def test_overdue_takes_precedence_over_partial_by_default(self):
        self.assertEqual(compute_status(Decimal('10000'), Decimal('4000'), self.due, False, date(2024, 2, 1)), 'OVERDUE')

    def test_partial_precedence_per_call(self):
        status = compute_status(Decimal('10000'), Decimal('4000'), self.due, False, date(2024, 2, 1), overdue_takes_precedence=False)
        self.assertEqual(status, 'PARTIAL')

    @override_settings(FINANCE={'OVERDUE_TAKES_PRECEDENCE': False})
    def test_partial_precedence_from_settings(self):
        self.assertEqual(compute_status(Decimal('10000'), Decimal('4000'), self.due, False, date(2024, 2, 1)), 'PARTIAL')

    def test_accepts_datetime_now(self):
        now = datetime(2024, 1, 10, 23, 59)
        self.assertEqual(compute_status(Decimal('100'), Decimal('0'), self.due, False, now), 'PENDING')

    def test_balance_never_negative(self):
        self.assertEqual(compute_balance(Decimal('100.00'), Decimal('150.00')), Decimal('0.00'))
        self.assertEqual(compute_balance(Decimal('100.00'), Decimal('40.50')), Decimal('59.50'))

    def test_unknown_status_filter_rejected(self):
        with self.assertRaises(FinanceValidationError):
            status_q('LATE', date(2024, 1, 1))

    def test_status_q_matches_compute_status(self):
        """Database filtering agrees with the status engine for every row"""
        student = make_student('S001')
        today = date(2024, 2, 1)
        later, earlier = date(2024, 3, 10), date(2024, 1, 10)
        invoices = [
            make_invoice(student, '1000.00', later),
            make_invoice(student, '1000.00', earlier),
            make_invoice(student, '1000.00', later, paid='100.00'),
            make_invoice(student, '1000.00', earlier, paid='100.00'),
            make_invoice(student, '1000.00', earlier, paid='1000.00'),
            make_invoice(student, '1000.00', earlier, cancelled_at=timezone.now(), status='CANCELLED'),
            make_invoice(student, '1000.00', today),
        ]

        for precedence in (True, False):
            for status in STATUSES:
                filtered = set(
                    Invoice.objects.filter(status_q(status, today, precedence)).values_list('pk', flat=True)
                )
                expected = {i.pk for i in invoices if i.current_status(today, precedence) == status}
                self.assertEqual(filtered, expected, f"{status} (precedence={precedence})")


class PaymentRecorderTestCase(TestCase):
    def setUp(self):
        """Set up test data"""
        self.user = User.objects.create_user(username='financeiro', password='testpass123', role='FINANCEIRO')
        self.student = make_student('S100', 'Maria Domingos')
        self.invoice = make_invoice(self.student, '15000.00', date(2024, 1, 10))
        self.context = FinanceContext(today=date(2024, 1, 5), role='FINANCEIRO', user=self.user)

    def pay(self, amount, context=None, **kwargs):
        kwargs.setdefault('method', 'CASH')
        kwargs.setdefault('reference', '')
        kwargs.setdefault('payment_date', None)
        return payments.record_payment(self.invoice.pk, Decimal(amount), context=context or self.context, **kwargs)

    def test_full_payment_marks_paid(self):
        """15000.00 paid before due date -> PAID, balance 0"""
        payment = self.pay('15000.00', payment_date=date(2024, 1, 5))
        self.invoice.refresh_from_db()

        self.assertEqual(self.invoice.current_status(date(2024, 1, 5)), 'PAID')
        self.assertEqual(self.invoice.status, 'PAID')
        self.assertEqual(self.invoice.balance, Decimal('0.00'))
        self.assertTrue(payment.receipt_number.startswith('REC-'))
        self.assertEqual(payment.created_by, self.user)

    def test_unpaid_invoice_is_overdue_after_due_date(self):
        self.assertEqual(self.invoice.current_status(date(2024, 2, 1)), 'OVERDUE')
        self.assertEqual(self.invoice.balance, Decimal('15000.00'))

    def test_partial_then_overdue(self):
        """10000.00 invoice with 4000.00 paid: PARTIAL before due date, OVERDUE after"""
        self.invoice = make_invoice(self.student, '10000.00', date(2024, 1, 10), invoice_type='MATERIAL')
        self.pay('4000.00')
        self.invoice.refresh_from_db()

        self.assertEqual(self.invoice.status, 'PARTIAL')
        self.assertEqual(self.invoice.balance, Decimal('6000.00'))
        self.assertEqual(self.invoice.current_status(date(2024, 2, 1)), 'OVERDUE')
        self.assertEqual(self.invoice.balance, Decimal('6000.00'))

    def test_paying_exact_remaining_balance_marks_paid(self):
        self.pay('6000.00')
        self.invoice.refresh_from_db()
        self.pay(str(self.invoice.balance))
        self.invoice.refresh_from_db()

        self.assertEqual(self.invoice.status, 'PAID')
        self.assertEqual(self.invoice.paid_amount, self.invoice.amount)

    def test_snapshot_matches_computed_status_after_each_mutation(self):
        first = self.pay('5000.00')
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, self.invoice.current_status(self.context.today))

        payments.cancel_payment(first.pk, 'Lançamento duplicado', self.context)
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, self.invoice.current_status(self.context.today))
        self.assertEqual(self.invoice.balance, self.invoice.amount - self.invoice.paid_amount)

    def test_paying_cancelled_invoice_fails(self):
        invoicing.cancel_invoice(self.invoice.pk, 'Aluno transferido', self.context)

        with self.assertRaises(InvalidState):
            self.pay('100.00')
        self.assertEqual(Payment.objects.count(), 0)

    def test_overpayment_rejected(self):
        with self.assertRaises(OverpaymentError) as ctx:
            self.pay('20000.00')

        self.assertEqual(ctx.exception.details['balance'], '15000.00')
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.paid_amount, Decimal('0.00'))
        self.assertEqual(Payment.objects.count(), 0)

    @override_settings(FINANCE={'ALLOW_OVERPAYMENT': True})
    def test_overpayment_allowed_by_configuration(self):
        self.pay('20000.00')
        self.invoice.refresh_from_db()

        self.assertEqual(self.invoice.status, 'PAID')
        self.assertEqual(self.invoice.balance, Decimal('0.00'))
        self.assertEqual(self.invoice.credit, Decimal('5000.00'))

    def test_non_positive_amount_rejected(self):
        for amount in ('0.00', '-10.00'):
            with self.assertRaises(FinanceValidationError):
                self.pay(amount)
        self.assertEqual(Payment.objects.count(), 0)

    def test_unknown_method_rejected(self):
        with self.assertRaises(FinanceValidationError):
            self.pay('100.00', method='BITCOIN')

    def test_future_payment_date_rejected(self):
        with self.assertRaises(FinanceValidationError):
            self.pay('100.00', payment_date=date(2024, 1, 6))

    def test_payment_date_defaults_to_context_today(self):
        payment = self.pay('100.00')
        self.assertEqual(payment.payment_date, date(2024, 1, 5))

    def test_missing_invoice(self):
        with self.assertRaises(NotFound):
            payments.record_payment(999999, Decimal('100.00'), 'CASH', '', None, self.context)

    def test_role_without_finance_access(self):
        context = FinanceContext(today=date(2024, 1, 5), role='DIRETOR')
        with self.assertRaises(AccessDenied):
            self.pay('100.00', context=context)

    def test_record_then_cancel_restores_invoice(self):
        """Record then cancel leaves paid amount, balance and status unchanged"""
        before = (self.invoice.paid_amount, self.invoice.balance, self.invoice.current_status(self.context.today))

        payment = self.pay('4000.00')
        payments.cancel_payment(payment.pk, 'Valor errado', self.context)
        self.invoice.refresh_from_db()
        payment.refresh_from_db()

        after = (self.invoice.paid_amount, self.invoice.balance, self.invoice.status)
        self.assertEqual(before, after)
        self.assertTrue(payment.is_cancelled)
        self.assertEqual(payment.cancellation_reason, 'Valor errado')
        self.assertEqual(payment.cancelled_by, self.user)

    def test_cancel_payment_twice(self):
        payment = self.pay('4000.00')
        payments.cancel_payment(payment.pk, 'Valor errado', self.context)

        with self.assertRaises(AlreadyCancelled):
            payments.cancel_payment(payment.pk, 'Outra vez', self.context)

    def test_cancel_missing_payment(self):
        with self.assertRaises(NotFound):
            payments.cancel_payment(999999, 'Motivo', self.context)

    def test_cancel_payment_requires_reason(self):
        payment = self.pay('4000.00')

        with self.assertRaises(FinanceValidationError):
            payments.cancel_payment(payment.pk, '   ', self.context)
        payment.refresh_from_db()
        self.assertFalse(payment.is_cancelled)

    def test_failed_invoice_write_rolls_back_payment(self):
        """A failure after the payment insert leaves neither write behind"""
        with mock.patch.object(Invoice, 'versioned_update', side_effect=ConcurrencyConflict()):
            with self.assertRaises(ConcurrencyConflict):
                self.pay('4000.00')

        self.assertEqual(Payment.objects.count(), 0)
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.paid_amount, Decimal('0.00'))

    def test_failed_cancellation_rolls_back(self):
        payment = self.pay('4000.00')

        with mock.patch.object(Invoice, 'versioned_update', side_effect=ConcurrencyConflict()):
            with self.assertRaises(ConcurrencyConflict):
                payments.cancel_payment(payment.pk, 'Valor errado', self.context)

        payment.refresh_from_db()
        self.invoice.refresh_from_db()
        self.assertFalse(payment.is_cancelled)
        self.assertEqual(self.invoice.paid_amount, Decimal('4000.00'))

    def test_stale_version_conflicts(self):
        stale = Invoice.objects.get(pk=self.invoice.pk)
        Invoice.objects.filter(pk=self.invoice.pk).update(version=F('version') + 1)

        with self.assertRaises(ConcurrencyConflict):
            stale.versioned_update(paid_amount=Decimal('1.00'))

    def test_versioned_update_bumps_version(self):
        self.pay('100.00')
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.version, 2)

    def test_lock_contention_is_a_conflict(self):
        with mock.patch('finance.services.payments.Invoice.objects.select_for_update') as select_for_update:
            select_for_update.return_value.get.side_effect = OperationalError('could not obtain lock')
            with self.assertRaises(ConcurrencyConflict):
                self.pay('100.00')

        self.assertEqual(Payment.objects.count(), 0)


class PenaltiesTestCase(TestCase):
    def setUp(self):
        """Set up test data"""
        self.student = make_student('S200')
        self.plan = PaymentPlan.objects.create(
            name='Propina 2023/2024',
            academic_year='2023/2024',
            monthly_amount=Decimal('10000.00'),
            late_fee_percent=Decimal('2.00'),
            daily_interest_rate=Decimal('0.1000'),
        )
        self.invoice = make_invoice(self.student, '10000.00', date(2024, 1, 10), payment_plan=self.plan)

    def context(self, today):
        return FinanceContext(today=today, role='FINANCEIRO')

    def test_preview_does_not_persist(self):
        """Late fee 2% once, interest 0.1%/day on the balance"""
        summary = penalties.preview_charges(self.invoice, date(2024, 1, 20))

        self.assertEqual(summary.late_fee, Decimal('200.00'))
        self.assertEqual(summary.interest, Decimal('100.00'))
        self.assertEqual(summary.interest_days, 10)
        self.assertEqual(summary.total, Decimal('300.00'))
        self.assertEqual(InvoiceCharge.objects.count(), 0)

    def test_no_charges_before_due_date(self):
        summary = penalties.accrue_charges(self.invoice, date(2024, 1, 10))
        self.assertEqual(summary.total, Decimal('0.00'))
        self.assertEqual(InvoiceCharge.objects.count(), 0)

    def test_accrual_is_incremental_and_late_fee_once(self):
        penalties.accrue_charges(self.invoice, date(2024, 1, 20))
        summary = penalties.accrue_charges(self.invoice, date(2024, 1, 25))

        self.assertEqual(summary.late_fee, Decimal('200.00'))
        self.assertEqual(summary.interest, Decimal('150.00'))
        self.assertEqual(summary.interest_days, 15)
        self.assertEqual(self.invoice.charges.count(), 2)

    def test_repeated_accrual_same_day_is_stable(self):
        penalties.accrue_charges(self.invoice, date(2024, 1, 20))
        summary = penalties.accrue_charges(self.invoice, date(2024, 1, 20))

        self.assertEqual(summary.interest, Decimal('100.00'))
        self.assertEqual(summary.changed, [])

    @override_settings(FINANCE={'LATE_FEE_GRACE_DAYS': 5})
    def test_late_fee_grace_period(self):
        self.assertEqual(penalties.preview_charges(self.invoice, date(2024, 1, 14)).late_fee, Decimal('0.00'))
        self.assertEqual(penalties.preview_charges(self.invoice, date(2024, 1, 16)).late_fee, Decimal('200.00'))

    def test_manual_invoices_do_not_accrue(self):
        manual = make_invoice(self.student, '10000.00', date(2024, 1, 10), invoice_type='UNIFORM')
        summary = penalties.accrue_charges(manual, date(2024, 3, 1))
        self.assertEqual(summary.total, Decimal('0.00'))

    def test_interest_frozen_after_full_payment(self):
        payments.record_payment(self.invoice.pk, Decimal('10000.00'), 'CASH', '', date(2024, 1, 20), self.context(date(2024, 1, 20)))
        self.invoice.refresh_from_db()

        summary = penalties.accrue_charges(self.invoice, date(2024, 2, 20))
        self.assertEqual(summary.interest, Decimal('100.00'))
        self.assertEqual(summary.late_fee, Decimal('200.00'))

    def test_partial_payment_lowers_interest_from_payment_date(self):
        payments.record_payment(self.invoice.pk, Decimal('5000.00'), 'CASH', '', date(2024, 1, 20), self.context(date(2024, 1, 20)))
        self.invoice.refresh_from_db()

        summary = penalties.accrue_charges(self.invoice, date(2024, 1, 30))
        # 10 days on 10000.00 then 10 days on 5000.00
        self.assertEqual(summary.interest, Decimal('150.00'))
        self.assertEqual(summary.interest_days, 20)

    def test_original_amount_untouched(self):
        penalties.accrue_charges(self.invoice, date(2024, 2, 10))
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.amount, Decimal('10000.00'))
        self.assertEqual(self.invoice.balance, Decimal('10000.00'))

    @override_settings(FINANCE={'MAX_PENALTY_PERCENT': 10})
    def test_penalty_cap(self):
        """121 days at 0.1%/day would be 1210.00 of interest; capped at 10% with the late fee"""
        summary = penalties.accrue_charges(self.invoice, date(2024, 5, 10))

        self.assertEqual(summary.late_fee, Decimal('200.00'))
        self.assertEqual(summary.interest, Decimal('800.00'))
        self.assertEqual(summary.total, Decimal('1000.00'))

        later = penalties.accrue_charges(self.invoice, date(2024, 6, 10))
        self.assertEqual(later.total, Decimal('1000.00'))


class InvoicingEngineTestCase(TestCase):
    def setUp(self):
        """Set up test data"""
        self.user = User.objects.create_user(username='secretaria', password='testpass123', role='SECRETARIA')
        self.course = Course.objects.create(name='Ensino Primário', code='EP')
        self.school_class = SchoolClass.objects.create(name='5ª A', course=self.course, academic_year='2024/2025')
        self.other_class = SchoolClass.objects.create(name='6ª B', course=self.course, academic_year='2024/2025')
        self.student1 = make_student('S301', school_class=self.school_class)
        self.student2 = make_student('S302', school_class=self.school_class)
        self.suspended = make_student('S303', school_class=self.school_class, status='suspended')
        self.elsewhere = make_student('S304', school_class=self.other_class)
        self.plan = PaymentPlan.objects.create(
            name='Propina 5ª A',
            academic_year='2024/2025',
            school_class=self.school_class,
            monthly_amount=Decimal('15000.00'),
            due_day=10,
        )
        self.context = FinanceContext(today=date(2024, 9, 1), role='SECRETARIA', academic_year='2024/2025', user=self.user)

    def test_billing_periods_default_window(self):
        periods = invoicing.billing_periods('2024/2025')
        self.assertEqual(len(periods), 10)
        self.assertEqual(periods[0], (2024, 9))
        self.assertEqual(periods[3], (2024, 12))
        self.assertEqual(periods[4], (2025, 1))
        self.assertEqual(periods[-1], (2025, 6))

    @override_settings(FINANCE={'BILLING_START_MONTH': 2, 'BILLING_MONTH_COUNT': 10})
    def test_billing_periods_configurable(self):
        periods = invoicing.billing_periods('2024/2025')
        self.assertEqual(periods[0], (2024, 2))
        self.assertEqual(periods[-1], (2024, 11))

    def test_generate_for_plan_class(self):
        """One invoice per active student of the class per billing month"""
        result = invoicing.generate_invoices(self.plan.pk, None, '2024/2025', self.context)

        self.assertEqual(result.student_count, 2)
        self.assertEqual(result.created_count, 20)
        self.assertEqual(Invoice.objects.filter(student=self.suspended).count(), 0)
        self.assertEqual(Invoice.objects.filter(student=self.elsewhere).count(), 0)

        first = Invoice.objects.get(student=self.student1, year=2024, month=9)
        self.assertEqual(first.amount, Decimal('15000.00'))
        self.assertEqual(first.due_date, date(2024, 9, 10))
        self.assertEqual(first.payment_plan, self.plan)
        self.assertEqual(first.status, 'PENDING')
        self.assertEqual(first.generation_key, f"{self.student1.pk}:{self.plan.pk}:2024:9")
        self.assertTrue(first.invoice_number.startswith('FAT-'))

    def test_generate_is_idempotent(self):
        invoicing.generate_invoices(self.plan.pk, None, '2024/2025', self.context)
        result = invoicing.generate_invoices(self.plan.pk, None, '2024/2025', self.context)

        self.assertEqual(result.created_count, 0)
        self.assertEqual(result.skipped_count, 20)
        self.assertEqual(Invoice.objects.count(), 20)

    def test_generate_for_explicit_students(self):
        result = invoicing.generate_invoices(self.plan.pk, [self.elsewhere.pk], None, self.context)

        self.assertEqual(result.created_count, 10)
        self.assertEqual(set(Invoice.objects.values_list('student_id', flat=True)), {self.elsewhere.pk})

    def test_generate_for_course_plan(self):
        plan = PaymentPlan.objects.create(
            name='Material EP', academic_year='2024/2025', course=self.course,
            invoice_type='MATERIAL', monthly_amount=Decimal('2500.00'),
        )
        result = invoicing.generate_invoices(plan.pk, None, None, self.context)

        self.assertEqual(result.student_count, 3)
        self.assertEqual(result.created_count, 30)

    def test_dry_run_creates_nothing(self):
        result = invoicing.generate_invoices(self.plan.pk, None, None, self.context, dry_run=True)

        self.assertEqual(result.created_count, 20)
        self.assertEqual(Invoice.objects.count(), 0)

    def test_inactive_plan(self):
        self.plan.is_active = False
        self.plan.save()

        with self.assertRaises(PlanInactive):
            invoicing.generate_invoices(self.plan.pk, None, None, self.context)

    def test_deactivation_keeps_existing_invoices(self):
        invoicing.generate_invoices(self.plan.pk, None, None, self.context)
        self.plan.is_active = False
        self.plan.save()

        self.assertEqual(Invoice.objects.filter(payment_plan=self.plan, cancelled_at__isnull=True).count(), 20)

    def test_missing_plan(self):
        with self.assertRaises(NotFound):
            invoicing.generate_invoices(999999, None, None, self.context)

    def test_academic_year_must_match_plan(self):
        with self.assertRaises(FinanceValidationError):
            invoicing.generate_invoices(self.plan.pk, None, '2025/2026', self.context)
        with self.assertRaises(FinanceValidationError):
            invoicing.generate_invoices(self.plan.pk, None, '2024-2025', self.context)

    def test_unknown_student_ids(self):
        with self.assertRaises(NotFound) as ctx:
            invoicing.generate_invoices(self.plan.pk, [self.student1.pk, 999999], None, self.context)
        self.assertEqual(ctx.exception.details['student_ids'], [999999])

    def test_create_manual_invoice(self):
        invoice = invoicing.create_invoice(
            self.student1.pk, Decimal('3500.00'), date(2024, 10, 15), 10, 2024, '2024/2025',
            self.context, invoice_type='UNIFORM', description='Uniforme completo'
        )

        self.assertEqual(invoice.status, 'PENDING')
        self.assertEqual(invoice.created_by, self.user)
        self.assertIsNone(invoice.payment_plan)
        self.assertIsNone(invoice.generation_key)

    def test_manual_duplicate_rejected(self):
        args = (self.student1.pk, Decimal('3500.00'), date(2024, 10, 15), 10, 2024, '2024/2025', self.context)
        first = invoicing.create_invoice(*args, invoice_type='UNIFORM')

        with self.assertRaises(FinanceValidationError):
            invoicing.create_invoice(*args, invoice_type='UNIFORM')

        invoicing.cancel_invoice(first.pk, 'Valor errado', self.context)
        invoicing.create_invoice(*args, invoice_type='UNIFORM')

    def test_create_invoice_validation(self):
        with self.assertRaises(NotFound):
            invoicing.create_invoice(999999, Decimal('100.00'), date(2024, 10, 15), 10, 2024, '2024/2025', self.context)
        with self.assertRaises(FinanceValidationError):
            invoicing.create_invoice(self.student1.pk, Decimal('0.00'), date(2024, 10, 15), 10, 2024, '2024/2025', self.context)
        with self.assertRaises(FinanceValidationError):
            invoicing.create_invoice(self.student1.pk, Decimal('100.00'), date(2024, 10, 15), 13, 2024, '2024/2025', self.context)

    def test_cancel_invoice(self):
        invoice = make_invoice(self.student1, '15000.00', date(2024, 10, 10), academic_year='2024/2025')
        invoicing.cancel_invoice(invoice.pk, 'Aluno transferido', self.context)
        invoice.refresh_from_db()

        self.assertEqual(invoice.status, 'CANCELLED')
        self.assertEqual(invoice.current_status(date(2025, 1, 1)), 'CANCELLED')
        self.assertEqual(invoice.cancelled_by, self.user)
        self.assertEqual(invoice.cancellation_reason, 'Aluno transferido')

        with self.assertRaises(AlreadyCancelled):
            invoicing.cancel_invoice(invoice.pk, 'Outra vez', self.context)

    def test_cancel_invoice_with_active_payment(self):
        invoice = make_invoice(self.student1, '15000.00', date(2024, 10, 10), academic_year='2024/2025')
        payment = payments.record_payment(invoice.pk, Decimal('1000.00'), 'CASH', '', None, self.context)

        with self.assertRaises(InvalidState):
            invoicing.cancel_invoice(invoice.pk, 'Aluno transferido', self.context)

        payments.cancel_payment(payment.pk, 'Devolvido', self.context)
        invoicing.cancel_invoice(invoice.pk, 'Aluno transferido', self.context)

    def test_delete_invoice(self):
        invoice = make_invoice(self.student1, '15000.00', date(2024, 10, 10), academic_year='2024/2025')

        with self.assertRaises(AccessDenied):
            invoicing.delete_invoice(invoice.pk, self.context)

        admin_context = FinanceContext(today=date(2024, 9, 1), role='ADMIN')
        invoicing.delete_invoice(invoice.pk, admin_context)
        self.assertFalse(Invoice.objects.filter(pk=invoice.pk).exists())

    def test_delete_invoice_with_payment_history(self):
        invoice = make_invoice(self.student1, '15000.00', date(2024, 10, 10), academic_year='2024/2025')
        payment = payments.record_payment(invoice.pk, Decimal('1000.00'), 'CASH', '', None, self.context)
        payments.cancel_payment(payment.pk, 'Devolvido', self.context)

        with self.assertRaises(InvalidState):
            invoicing.delete_invoice(invoice.pk, FinanceContext(today=date(2024, 9, 1), role='ADMIN'))

    def test_refresh_statuses(self):
        invoicing.generate_invoices(self.plan.pk, [self.student1.pk], None, self.context)

        counters = invoicing.refresh_statuses(date(2024, 11, 1))

        self.assertEqual(counters['checked'], 10)
        self.assertEqual(counters['updated'], 2)
        overdue = Invoice.objects.filter(status='OVERDUE').values_list('month', flat=True)
        self.assertEqual(sorted(overdue), [9, 10])

    def test_refresh_statuses_dry_run(self):
        invoicing.generate_invoices(self.plan.pk, [self.student1.pk], None, self.context)

        counters = invoicing.refresh_statuses(date(2024, 11, 1), dry_run=True)

        self.assertEqual(counters['updated'], 2)
        self.assertEqual(Invoice.objects.filter(status='OVERDUE').count(), 0)

    def test_refresh_statuses_rejects_future_date(self):
        """Charges must not accrue for days that have not happened yet"""
        plan = PaymentPlan.objects.create(
            name='Propina com juros', academic_year='2024/2025', school_class=self.school_class,
            monthly_amount=Decimal('10000.00'), daily_interest_rate=Decimal('1.0000'),
        )
        invoicing.generate_invoices(plan.pk, [self.student1.pk], None, self.context)

        with self.assertRaises(FinanceValidationError):
            invoicing.refresh_statuses(timezone.localdate() + timedelta(days=1))

        self.assertEqual(InvoiceCharge.objects.count(), 0)
        self.assertEqual(Invoice.objects.filter(status='OVERDUE').count(), 0)

    def test_refresh_statuses_skips_deleted_invoice(self):
        invoicing.generate_invoices(self.plan.pk, [self.student1.pk], None, self.context)
        september = Invoice.objects.get(student=self.student1, year=2024, month=9)
        lock_invoice = invoicing.lock_invoice

        def lock_or_missing(invoice_id):
            if invoice_id == september.pk:
                raise NotFound(details={'invoice_id': invoice_id})
            return lock_invoice(invoice_id)

        with mock.patch.object(invoicing, 'lock_invoice', side_effect=lock_or_missing):
            counters = invoicing.refresh_statuses(date(2024, 11, 1))

        self.assertEqual(counters['checked'], 10)
        self.assertEqual(counters['skipped'], 1)
        self.assertEqual(counters['updated'], 1)
        self.assertEqual(Invoice.objects.get(student=self.student1, year=2024, month=10).status, 'OVERDUE')

    def test_invoice_number_collision_is_a_conflict(self):
        first = invoicing.create_invoice(
            self.student1.pk, Decimal('3500.00'), date(2024, 10, 15), 10, 2024, '2024/2025',
            self.context, invoice_type='UNIFORM'
        )

        with mock.patch.object(Invoice, 'generate_invoice_number', return_value=first.invoice_number):
            with self.assertRaises(ConcurrencyConflict):
                invoicing.create_invoice(
                    self.student2.pk, Decimal('3500.00'), date(2024, 10, 15), 10, 2024, '2024/2025',
                    self.context, invoice_type='UNIFORM'
                )

        self.assertEqual(Invoice.objects.count(), 1)

    def test_generated_invoice_number_collision_is_a_conflict(self):
        taken = make_invoice(self.elsewhere, '100.00', date(2024, 9, 10), academic_year='2024/2025')

        with mock.patch.object(Invoice, 'generate_invoice_number', return_value=taken.invoice_number):
            with self.assertRaises(ConcurrencyConflict):
                invoicing.generate_invoices(self.plan.pk, [self.student1.pk], None, self.context)

        self.assertEqual(Invoice.objects.count(), 1)

    def test_invoice_numbers_grow_past_9999(self):
        prefix = f"FAT-{timezone.localdate():%Y%m%d}"
        make_invoice(self.student1, '100.00', date(2024, 9, 10), academic_year='2024/2025', invoice_number=f'{prefix}-9999')

        second = make_invoice(self.student1, '100.00', date(2024, 10, 10), academic_year='2024/2025')
        third = make_invoice(self.student1, '100.00', date(2024, 11, 10), academic_year='2024/2025')

        self.assertEqual(second.invoice_number, f'{prefix}-10000')
        self.assertEqual(third.invoice_number, f'{prefix}-10001')

    def test_generate_defaults_to_context_academic_year(self):
        """The active academic year of the request picks the billing year"""
        next_year = FinanceContext(today=date(2025, 9, 1), role='SECRETARIA', academic_year='2025/2026')
        with self.assertRaises(FinanceValidationError):
            invoicing.generate_invoices(self.plan.pk, [self.student1.pk], None, next_year)

        no_year = FinanceContext(today=date(2024, 9, 1), role='SECRETARIA')
        result = invoicing.generate_invoices(self.plan.pk, [self.student1.pk], None, no_year)
        self.assertEqual(result.academic_year, '2024/2025')
        self.assertEqual(result.created_count, 10)


class ReportsTestCase(TestCase):
    def setUp(self):
        """Set up test data"""
        self.context = FinanceContext(today=date(2024, 3, 15), role='FINANCEIRO')
        self.student_a = make_student('A001', 'Ana Baptista')
        self.student_b = make_student('B001', 'Bruno Kiala', guardian_phone='+244923000000')

        self.inv_jan = make_invoice(self.student_a, '5000.00', date(2024, 1, 10))
        self.inv_mar = make_invoice(self.student_a, '4000.00', date(2024, 3, 10))
        self.inv_feb = make_invoice(self.student_b, '8000.00', date(2024, 2, 10))
        self.inv_cancel = make_invoice(self.student_b, '2000.00', date(2024, 2, 15), invoice_type='EXAM')

        payments.record_payment(self.inv_jan.pk, Decimal('5000.00'), 'CASH', '', date(2024, 1, 8), self.context)
        payments.record_payment(self.inv_feb.pk, Decimal('3000.00'), 'MULTICAIXA', 'MCX-1', date(2024, 2, 5), self.context)
        wrong = payments.record_payment(self.inv_feb.pk, Decimal('1000.00'), 'CASH', '', date(2024, 2, 6), self.context)
        payments.cancel_payment(wrong.pk, 'Registado em duplicado', self.context)
        payments.record_payment(self.inv_mar.pk, Decimal('4000.00'), 'BANK_TRANSFER', 'TRF-9', date(2024, 3, 5), self.context)
        invoicing.cancel_invoice(self.inv_cancel.pk, 'Exame anulado', self.context)

    def test_revenue_summary(self):
        summary = reports.revenue_summary(date(2024, 1, 1), date(2024, 2, 29))

        self.assertEqual(summary['months'], [
            {'month': '2024-01', 'expected': '5000.00', 'collected': '5000.00'},
            {'month': '2024-02', 'expected': '8000.00', 'collected': '3000.00'},
        ])
        self.assertEqual(summary['by_method']['CASH'], '5000.00')
        self.assertEqual(summary['by_method']['MULTICAIXA'], '3000.00')
        self.assertEqual(summary['by_method']['BANK_TRANSFER'], '0.00')
        self.assertEqual(summary['total_expected'], '13000.00')
        self.assertEqual(summary['total_collected'], '8000.00')
        self.assertEqual(summary['outstanding'], '5000.00')
        self.assertEqual(summary['overdue'], '5000.00')
        self.assertEqual(summary['collection_rate'], '61.54')

    def test_revenue_summary_invalid_period(self):
        with self.assertRaises(FinanceValidationError):
            reports.revenue_summary(date(2024, 3, 1), date(2024, 2, 1))

    def test_period_for(self):
        self.assertEqual(reports.period_for(2024, 2), (date(2024, 2, 1), date(2024, 2, 29)))
        self.assertEqual(reports.period_for(2024), (date(2024, 1, 1), date(2024, 12, 31)))

    def test_student_financial_history(self):
        history = reports.student_financial_history(self.student_b.pk, date(2024, 2, 20))
        summary = history['summary']

        self.assertEqual(len(history['invoices']), 2)
        self.assertEqual(summary['total_invoices'], 1)
        self.assertEqual(summary['total_amount'], Decimal('8000.00'))
        self.assertEqual(summary['total_paid'], Decimal('3000.00'))
        self.assertEqual(summary['total_pending'], Decimal('5000.00'))
        self.assertEqual(summary['overdue_amount'], Decimal('5000.00'))
        self.assertEqual(summary['overdue_count'], 1)

        with self.assertRaises(NotFound):
            reports.student_financial_history(999999, date(2024, 2, 20))

    def test_financial_stats(self):
        stats = reports.financial_stats(date(2024, 2, 20))

        self.assertEqual(stats['total_revenue'], '12000.00')
        self.assertEqual(stats['paid_this_month'], '3000.00')
        self.assertEqual(stats['pending_amount'], '5000.00')
        self.assertEqual(stats['overdue_amount'], '5000.00')
        self.assertEqual(stats['invoices_this_month'], 1)
        self.assertEqual(stats['defaulter_count'], 1)


class DefaultersTestCase(TestCase):
    def setUp(self):
        """Set up test data"""
        self.school_class = SchoolClass.objects.create(name='7ª A', academic_year='2023/2024')
        self.a = make_student('D001', 'Adelino Neto', school_class=self.school_class)
        self.b = make_student('D002', 'Beatriz Lopes', school_class=self.school_class)
        self.c = make_student('D003', 'Carlos Manuel', school_class=self.school_class)
        self.d = make_student('D004', 'Domingas Paulo')
        self.e = make_student('D005', 'Esperança Tomás')
        self.f = make_student('D006', 'Filipe Sousa')

        self.a1 = make_invoice(self.a, '5000.00', date(2024, 1, 10))
        self.a2 = make_invoice(self.a, '3000.00', date(2024, 2, 10), invoice_type='MATERIAL')
        self.b1 = make_invoice(self.b, '8000.00', date(2024, 2, 10))
        self.c1 = make_invoice(self.c, '10000.00', date(2024, 2, 10))
        self.d1 = make_invoice(self.d, '6000.00', date(2024, 1, 10), paid='6000.00')
        self.e1 = make_invoice(self.e, '6000.00', date(2024, 1, 10), cancelled_at=timezone.now(), status='CANCELLED')
        self.f1 = make_invoice(self.f, '6000.00', date(2024, 4, 10))

    def test_order_and_aggregates(self):
        """Largest total first; ties broken by the oldest due date"""
        defaulters = reports.list_defaulters(date(2024, 3, 1))

        self.assertEqual([d.student_number for d in defaulters], ['D003', 'D001', 'D002'])
        adelino = defaulters[1]
        self.assertEqual(adelino.total_overdue, Decimal('8000.00'))
        self.assertEqual(adelino.overdue_invoices, 2)
        self.assertEqual(adelino.oldest_due_date, date(2024, 1, 10))
        self.assertEqual(adelino.class_name, '7ª A')

    def test_never_lists_paid_or_cancelled_invoices(self):
        defaulters = reports.list_defaulters(date(2024, 3, 1))
        listed = {pk for d in defaulters for pk in d.invoice_ids}

        self.assertNotIn(self.d1.pk, listed)
        self.assertNotIn(self.e1.pk, listed)
        self.assertNotIn(self.f1.pk, listed)
        for invoice in Invoice.objects.filter(pk__in=listed):
            self.assertEqual(invoice.current_status(date(2024, 3, 1)), 'OVERDUE')

    def test_partial_payments_count_only_the_balance(self):
        Invoice.objects.filter(pk=self.c1.pk).update(paid_amount=Decimal('4000.00'))

        defaulters = reports.list_defaulters(date(2024, 3, 1))
        carlos = next(d for d in defaulters if d.student_number == 'D003')
        self.assertEqual(carlos.total_overdue, Decimal('6000.00'))

    def test_as_of_date_matters(self):
        defaulters = reports.list_defaulters(date(2024, 1, 15))
        self.assertEqual([d.student_number for d in defaulters], ['D001'])

    def test_without_overdue_precedence_partial_invoices_drop_out(self):
        Invoice.objects.filter(pk=self.c1.pk).update(paid_amount=Decimal('4000.00'))

        defaulters = reports.list_defaulters(date(2024, 3, 1), overdue_takes_precedence=False)
        self.assertNotIn('D003', [d.student_number for d in defaulters])


class ManagementCommandsTestCase(TestCase):
    def setUp(self):
        """Set up test data"""
        self.school_class = SchoolClass.objects.create(name='8ª A', academic_year='2024/2025')
        self.student = make_student('M001', school_class=self.school_class)
        self.plan = PaymentPlan.objects.create(
            name='Propina 8ª A', academic_year='2024/2025',
            school_class=self.school_class, monthly_amount=Decimal('12000.00'),
        )

    def test_generate_invoices_command(self):
        out = StringIO()
        call_command('generate_invoices', '--plan-id', str(self.plan.pk), stdout=out)
        call_command('generate_invoices', '--plan-id', str(self.plan.pk), stdout=StringIO())

        self.assertEqual(Invoice.objects.count(), 10)
        self.assertIn('Generated: 10', out.getvalue())

    def test_generate_invoices_dry_run(self):
        out = StringIO()
        call_command('generate_invoices', '--plan-id', str(self.plan.pk), '--dry-run', stdout=out)

        self.assertEqual(Invoice.objects.count(), 0)
        self.assertIn('Would generate: 10', out.getvalue())

    def test_generate_invoices_inactive_plan(self):
        self.plan.is_active = False
        self.plan.save()

        with self.assertRaises(CommandError):
            call_command('generate_invoices', '--plan-id', str(self.plan.pk), stdout=StringIO())

    def test_refresh_invoice_statuses_command(self):
        call_command('generate_invoices', '--plan-id', str(self.plan.pk), stdout=StringIO())
        Invoice.objects.update(status='PENDING')

        out = StringIO()
        call_command('refresh_invoice_statuses', '--as-of', '2024-10-15', stdout=out)

        self.assertEqual(Invoice.objects.filter(status='OVERDUE').count(), 2)
        self.assertIn('Status updated: 2', out.getvalue())

    def test_refresh_invoice_statuses_bad_date(self):
        with self.assertRaises(CommandError):
            call_command('refresh_invoice_statuses', '--as-of', '15/10/2024', stdout=StringIO())

    def test_refresh_invoice_statuses_future_date(self):
        tomorrow = timezone.localdate() + timedelta(days=1)
        with self.assertRaises(CommandError):
            call_command('refresh_invoice_statuses', '--as-of', tomorrow.isoformat(), stdout=StringIO())


TODAY = date(2024, 1, 5)


class FinanceAPITestCase(TestCase):
    def setUp(self):
        """Set up test data"""
        patcher = mock.patch('education.middleware.timezone')
        self.mock_timezone = patcher.start()
        self.mock_timezone.localdate.return_value = TODAY
        self.addCleanup(patcher.stop)

        self.admin = User.objects.create_user(username='admin', password='testpass123', role='ADMIN')
        self.financeiro = User.objects.create_user(username='financeiro', password='testpass123', role='FINANCEIRO')
        self.diretor = User.objects.create_user(username='diretor', password='testpass123', role='DIRETOR')
        self.secretaria = User.objects.create_user(username='secretaria', password='testpass123', role='SECRETARIA')
        self.professor = User.objects.create_user(username='professor', password='testpass123', role='PROFESSOR')

        self.school_class = SchoolClass.objects.create(name='9ª A', academic_year='2023/2024')
        self.student = make_student('API001', 'Teresa Cassoma', school_class=self.school_class)
        self.invoice = make_invoice(self.student, '15000.00', date(2024, 1, 10))
        self.client.force_login(self.financeiro)

    def post_json(self, url, data):
        return self.client.post(url, data, content_type='application/json')

    def test_requires_authentication(self):
        self.client.logout()
        response = self.client.get('/api/invoices/')
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()['kind'], 'NotAuthenticated')

    def test_role_outside_finance_is_denied(self):
        self.client.force_login(self.professor)
        response = self.client.get('/api/invoices/')
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['kind'], 'AccessDenied')

    def test_create_invoice(self):
        response = self.post_json('/api/invoices/', {
            'student_id': self.student.pk,
            'invoice_type': 'TRANSPORT',
            'amount': '7500.00',
            'due_date': '2024-01-31',
            'month': 1,
            'year': 2024,
            'academic_year': '2023/2024',
        })

        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertEqual(data['amount'], '7500.00')
        self.assertEqual(data['balance'], '7500.00')
        self.assertEqual(data['status'], 'PENDING')
        self.assertEqual(data['student_number'], 'API001')

    def test_create_invoice_validation_errors(self):
        response = self.post_json('/api/invoices/', {'student_id': self.student.pk})

        self.assertEqual(response.status_code, 400)
        data = response.json()
        self.assertEqual(data['kind'], 'ValidationError')
        self.assertIn('amount', data['details'])

    def test_malformed_json(self):
        response = self.client.post('/api/invoices/', '{not json', content_type='application/json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['kind'], 'ValidationError')

    def test_list_filters_by_computed_status(self):
        overdue = make_invoice(self.student, '2000.00', date(2023, 12, 10), invoice_type='FOOD')

        response = self.client.get('/api/invoices/', {'status': 'OVERDUE'})

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['count'], 1)
        self.assertEqual(data['results'][0]['id'], overdue.pk)
        self.assertEqual(data['results'][0]['status'], 'OVERDUE')

    def test_list_pagination(self):
        response = self.client.get('/api/invoices/', {'limit': 1, 'page': 1, 'student_id': self.student.pk})
        data = response.json()

        self.assertEqual(data['page_size'], 1)
        self.assertEqual(data['count'], 1)
        self.assertEqual(data['total_pages'], 1)

    def test_list_scoped_to_active_academic_year(self):
        older = make_invoice(self.student, '9000.00', date(2023, 1, 10), academic_year='2022/2023')

        response = self.client.get('/api/invoices/')
        data = response.json()
        self.assertEqual(data['academic_year'], '2023/2024')
        self.assertEqual([row['id'] for row in data['results']], [self.invoice.pk])

        response = self.client.get('/api/invoices/', {'academic_year': '2022/2023'})
        self.assertEqual([row['id'] for row in response.json()['results']], [older.pk])

        response = self.client.get('/api/invoices/', HTTP_X_ACADEMIC_YEAR='2022/2023')
        self.assertEqual([row['id'] for row in response.json()['results']], [older.pk])

    def test_invoice_detail(self):
        response = self.client.get(f'/api/invoices/{self.invoice.pk}/')

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['invoice_number'], self.invoice.invoice_number)
        self.assertEqual(data['payments'], [])
        self.assertEqual(data['total_owed'], '15000.00')

    def test_missing_invoice(self):
        response = self.client.get('/api/invoices/999999/')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['kind'], 'NotFound')

    def test_pay_invoice(self):
        response = self.post_json(f'/api/invoices/{self.invoice.pk}/pay/', {
            'amount': '15000.00',
            'method': 'MULTICAIXA',
            'reference': 'MCX-778',
        })

        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertEqual(data['payment']['amount'], '15000.00')
        self.assertEqual(data['payment']['payment_date'], '2024-01-05')
        self.assertEqual(data['invoice']['status'], 'PAID')
        self.assertEqual(data['invoice']['balance'], '0.00')

    def test_overpayment_is_422(self):
        response = self.post_json(f'/api/invoices/{self.invoice.pk}/pay/', {'amount': '20000.00', 'method': 'CASH'})

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()['kind'], 'OverpaymentError')

    def test_paying_cancelled_invoice_is_409(self):
        self.post_json(f'/api/invoices/{self.invoice.pk}/cancel/', {'reason': 'Anulada'})

        response = self.post_json(f'/api/invoices/{self.invoice.pk}/pay/', {'amount': '100.00', 'method': 'CASH'})

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['kind'], 'InvalidState')

    def test_director_cannot_pay(self):
        self.client.force_login(self.diretor)
        response = self.post_json(f'/api/invoices/{self.invoice.pk}/pay/', {'amount': '100.00', 'method': 'CASH'})
        self.assertEqual(response.status_code, 403)

    def test_director_can_read_invoices(self):
        self.client.force_login(self.diretor)
        response = self.client.get(f'/api/invoices/{self.invoice.pk}/')
        self.assertEqual(response.status_code, 200)

    def test_cancel_payment(self):
        paid = self.post_json(f'/api/invoices/{self.invoice.pk}/pay/', {'amount': '4000.00', 'method': 'CASH'}).json()

        response = self.post_json(f"/api/payments/{paid['payment']['id']}/cancel/", {'reason': 'Valor errado'})

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertTrue(data['payment']['is_cancelled'])
        self.assertEqual(data['invoice']['paid_amount'], '0.00')
        self.assertEqual(data['invoice']['status'], 'PENDING')

        again = self.post_json(f"/api/payments/{paid['payment']['id']}/cancel/", {'reason': 'Valor errado'})
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.json()['kind'], 'AlreadyCancelled')

    def test_cancel_requires_reason(self):
        response = self.post_json(f'/api/invoices/{self.invoice.pk}/cancel/', {})
        self.assertEqual(response.status_code, 400)
        self.assertIn('reason', response.json()['details'])

    def test_delete_requires_admin(self):
        response = self.client.delete(f'/api/invoices/{self.invoice.pk}/')
        self.assertEqual(response.status_code, 403)

        self.client.force_login(self.admin)
        response = self.client.delete(f'/api/invoices/{self.invoice.pk}/')
        self.assertEqual(response.status_code, 200)
        self.assertFalse(Invoice.objects.filter(pk=self.invoice.pk).exists())

    def test_invoice_pdf(self):
        response = self.client.get(f'/api/invoices/{self.invoice.pk}/pdf/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response['Content-Type'], 'application/pdf')
        self.assertTrue(response.content.startswith(b'%PDF'))

    def test_payment_plan_lifecycle(self):
        response = self.post_json('/api/payment-plans/', {
            'name': 'Propina 9ª A',
            'academic_year': '2023/2024',
            'school_class': self.school_class.pk,
            'invoice_type': 'TUITION',
            'monthly_amount': '15000.00',
            'due_day': 10,
            'late_fee_percent': '2.00',
            'daily_interest_rate': '0.0333',
        })
        self.assertEqual(response.status_code, 201)
        plan = response.json()
        self.assertTrue(plan['is_active'])

        generated = self.post_json(f"/api/payment-plans/{plan['id']}/generate/", {})
        self.assertEqual(generated.status_code, 201)
        self.assertEqual(generated.json()['created'], 10)

        again = self.post_json(f"/api/payment-plans/{plan['id']}/generate/", {})
        self.assertEqual(again.status_code, 200)
        self.assertEqual(again.json()['created'], 0)
        self.assertEqual(again.json()['skipped'], 10)

        updated = self.client.put(f"/api/payment-plans/{plan['id']}/", {'is_active': False}, content_type='application/json')
        self.assertEqual(updated.status_code, 200)
        self.assertFalse(updated.json()['is_active'])
        self.assertEqual(updated.json()['monthly_amount'], '15000.00')

        inactive = self.post_json(f"/api/payment-plans/{plan['id']}/generate/", {})
        self.assertEqual(inactive.status_code, 409)
        self.assertEqual(inactive.json()['kind'], 'PlanInactive')

    def test_payment_plan_rejects_bad_due_day(self):
        response = self.post_json('/api/payment-plans/', {
            'name': 'Plano inválido',
            'academic_year': '2023/2024',
            'monthly_amount': '1000.00',
            'due_day': 31,
        })
        self.assertEqual(response.status_code, 400)
        self.assertIn('due_day', response.json()['details'])

    def test_defaulters_report(self):
        self.client.force_login(self.diretor)
        response = self.client.get('/api/financial/defaulters/', {'as_of': '2024-02-01'})

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['count'], 1)
        self.assertEqual(data['total_overdue'], '15000.00')
        self.assertEqual(data['results'][0]['student_number'], 'API001')
        self.assertEqual(data['results'][0]['oldest_due_date'], '2024-01-10')

    def test_defaulters_default_to_request_date(self):
        response = self.client.get('/api/financial/defaulters/')
        self.assertEqual(response.json()['as_of'], '2024-01-05')
        self.assertEqual(response.json()['count'], 0)

    def test_reports_denied_to_secretaria(self):
        self.client.force_login(self.secretaria)
        response = self.client.get('/api/financial/defaulters/')
        self.assertEqual(response.status_code, 403)

    def test_summary(self):
        response = self.client.get('/api/financial/summary/', {'year': 2024, 'month': 1})

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['start'], '2024-01-01')
        self.assertEqual(data['end'], '2024-01-31')
        self.assertEqual(data['total_expected'], '15000.00')

    def test_summary_requires_period(self):
        response = self.client.get('/api/financial/summary/')
        self.assertEqual(response.status_code, 400)

    def test_stats(self):
        response = self.client.get('/api/financial/stats/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['pending_amount'], '15000.00')

    def test_student_financial_history(self):
        response = self.client.get(f'/api/students/{self.student.pk}/financial-history/')

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['student']['student_number'], 'API001')
        self.assertEqual(data['summary']['total_pending'], '15000.00')
        self.assertEqual(len(data['invoices']), 1)
