from datetime import date
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.db.models import F
from django.utils import timezone

from education.models import Course, SchoolClass, Student

from .exceptions import ConcurrencyConflict
from .services.status import compute_status, compute_balance
from .utils.money import round_money, ZERO


INVOICE_TYPE_CHOICES = [
    ('TUITION', 'Propina'),
    ('ENROLLMENT', 'Matrícula'),
    ('MATERIAL', 'Material Escolar'),
    ('UNIFORM', 'Uniforme'),
    ('ACTIVITY', 'Atividade Extracurricular'),
    ('TRANSPORT', 'Transporte'),
    ('FOOD', 'Alimentação'),
    ('EXAM', 'Exame'),
    ('CERTIFICATE', 'Certificado'),
    ('FINE', 'Multa'),
    ('OTHER', 'Outro'),
]


def _next_sequence_number(model, field, prefix):
    """
    Next suffix for numbers shaped PREFIX-NNNN.
    Compared as integers: past 9999 the suffix grows to five digits.
    """
    numbers = model.objects.filter(
        **{f'{field}__startswith': f'{prefix}-'}
    ).values_list(field, flat=True)

    suffixes = [int(number.rsplit('-', 1)[-1]) for number in numbers if number.rsplit('-', 1)[-1].isdigit()]
    return max(suffixes, default=0) + 1


class PaymentPlan(models.Model):
    """Recurring billing template (e.g. monthly tuition for a class)"""
    name = models.CharField(max_length=200)
    academic_year = models.CharField(max_length=20, help_text="Academic year (e.g., 2024/2025)")
    course = models.ForeignKey(Course, on_delete=models.SET_NULL, null=True, blank=True, related_name='payment_plans')
    school_class = models.ForeignKey(SchoolClass, on_delete=models.SET_NULL, null=True, blank=True, related_name='payment_plans')
    invoice_type = models.CharField(max_length=20, choices=INVOICE_TYPE_CHOICES, default='TUITION')
    monthly_amount = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal('0.01'))])
    due_day = models.PositiveSmallIntegerField(
        default=10,
        validators=[MinValueValidator(1), MaxValueValidator(28)],
        help_text="Day of month the invoice is due (1-28)"
    )
    late_fee_percent = models.DecimalField(
        max_digits=5, decimal_places=2, default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0')), MaxValueValidator(Decimal('100'))],
        help_text="One-off late fee as a percentage of the invoice amount"
    )
    daily_interest_rate = models.DecimalField(
        max_digits=7, decimal_places=4, default=Decimal('0.0000'),
        validators=[MinValueValidator(Decimal('0')), MaxValueValidator(Decimal('100'))],
        help_text="Interest per day overdue, as a percentage of the balance"
    )
    is_active = models.BooleanField(default=True)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='created_payment_plans')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'payment_plans'
        ordering = ['-academic_year', 'name']
        indexes = [
            models.Index(fields=['academic_year', 'is_active'], name='plans_year_active_idx'),
        ]

    def __str__(self):
        return f"{self.name} ({self.academic_year}) - AOA {self.monthly_amount}"

    def due_date_for(self, year, month):
        return date(year, month, self.due_day)


class Invoice(models.Model):
    """Amount owed by a student for one billing period"""
    STATUS_CHOICES = [
        ('PENDING', 'Pendente'),
        ('PARTIAL', 'Parcial'),
        ('PAID', 'Pago'),
        ('OVERDUE', 'Em Atraso'),
        ('CANCELLED', 'Cancelado'),
    ]

    student = models.ForeignKey(Student, on_delete=models.PROTECT, related_name='invoices')
    payment_plan = models.ForeignKey(PaymentPlan, on_delete=models.SET_NULL, null=True, blank=True, related_name='invoices')
    invoice_number = models.CharField(max_length=50, unique=True, blank=True)
    invoice_type = models.CharField(max_length=20, choices=INVOICE_TYPE_CHOICES, default='TUITION')
    description = models.CharField(max_length=200, blank=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal('0.01'))])
    paid_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    # Snapshot refreshed at every mutation; reads use current_status()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='PENDING')
    due_date = models.DateField()
    month = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(12)])
    year = models.PositiveIntegerField()
    academic_year = models.CharField(max_length=20, help_text="Academic year (e.g., 2024/2025)")
    generation_key = models.CharField(
        max_length=100, unique=True, null=True, blank=True,
        help_text="student:plan:year:month for invoices generated from a payment plan"
    )
    version = models.PositiveIntegerField(default=1)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='created_invoices')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='cancelled_invoices')
    cancellation_reason = models.TextField(blank=True)

    class Meta:
        db_table = 'invoices'
        ordering = ['-year', '-month', '-created_at']
        indexes = [
            models.Index(fields=['student', 'year', 'month'], name='invoices_student_period_idx'),
            models.Index(fields=['due_date'], name='invoices_due_date_idx'),
            models.Index(fields=['status'], name='invoices_status_idx'),
            models.Index(fields=['academic_year'], name='invoices_academic_year_idx'),
        ]

    def __str__(self):
        return f"{self.invoice_number} - {self.student.full_name} - AOA {self.amount}"

    def save(self, *args, **kwargs):
        if not self.invoice_number:
            self.invoice_number = self.generate_invoice_number()
        super().save(*args, **kwargs)

    def generate_invoice_number(self):
        """Generate unique invoice number"""
        prefix = f"FAT-{timezone.localdate().strftime('%Y%m%d')}"
        new_num = _next_sequence_number(Invoice, 'invoice_number', prefix)
        return f"{prefix}-{new_num:04d}"

    @staticmethod
    def build_generation_key(student_id, plan_id, year, month):
        return f"{student_id}:{plan_id}:{year}:{month}"

    @property
    def is_cancelled(self):
        return self.cancelled_at is not None

    @property
    def balance(self):
        return compute_balance(self.amount, self.paid_amount)

    @property
    def credit(self):
        """Amount paid above the invoice amount (only when overpayment is allowed)"""
        return max(round_money(self.paid_amount - self.amount), ZERO)

    def current_status(self, today, overdue_takes_precedence=None):
        return compute_status(
            self.amount, self.paid_amount, self.due_date,
            self.is_cancelled, today, overdue_takes_precedence
        )

    def versioned_update(self, **fields):
        """
        Write fields only if nobody changed the row since it was read.
        Raises ConcurrencyConflict on a stale version.
        """
        updated = Invoice.objects.filter(pk=self.pk, version=self.version).update(
            version=F('version') + 1,
            updated_at=timezone.now(),
            **fields
        )
        if not updated:
            raise ConcurrencyConflict(details={'invoice_id': self.pk, 'version': self.version})

        for name, value in fields.items():
            setattr(self, name, value)
        self.version += 1


class Payment(models.Model):
    """Settlement applied against one invoice"""
    METHOD_CHOICES = [
        ('CASH', 'Dinheiro'),
        ('BANK_TRANSFER', 'Transferência Bancária'),
        ('MULTICAIXA', 'Multicaixa'),
        ('MOBILE_MONEY', 'Multicaixa Express'),
        ('CARD', 'Cartão'),
        ('CHECK', 'Cheque'),
    ]

    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT, related_name='payments')
    amount = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal('0.01'))])
    method = models.CharField(max_length=20, choices=METHOD_CHOICES)
    reference = models.CharField(max_length=100, blank=True, help_text="Bank reference, Multicaixa code, cheque number, etc.")
    payment_date = models.DateField()
    receipt_number = models.CharField(max_length=50, unique=True, blank=True)
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='recorded_payments')
    created_at = models.DateTimeField(auto_now_add=True)
    is_cancelled = models.BooleanField(default=False)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='cancelled_payments')
    cancellation_reason = models.TextField(blank=True)

    class Meta:
        db_table = 'payments'
        ordering = ['-payment_date', '-created_at']
        indexes = [
            models.Index(fields=['invoice', 'is_cancelled'], name='payments_invoice_active_idx'),
            models.Index(fields=['payment_date'], name='payments_date_idx'),
            models.Index(fields=['method'], name='payments_method_idx'),
        ]

    def __str__(self):
        return f"Pagamento {self.receipt_number or self.id} - AOA {self.amount}"

    @classmethod
    def method_codes(cls):
        return [code for code, _label in cls.METHOD_CHOICES]

    def save(self, *args, **kwargs):
        if not self.receipt_number:
            self.receipt_number = self.generate_receipt_number()
        super().save(*args, **kwargs)

    def generate_receipt_number(self):
        """Generate unique receipt number"""
        prefix = f"REC-{timezone.localdate().strftime('%Y%m%d')}"
        new_num = _next_sequence_number(Payment, 'receipt_number', prefix)
        return f"{prefix}-{new_num:04d}"


class InvoiceCharge(models.Model):
    """Late fee or interest accrued on an overdue invoice, kept apart from the billed amount"""
    KIND_CHOICES = [
        ('LATE_FEE', 'Multa por Atraso'),
        ('INTEREST', 'Juros de Mora'),
    ]

    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name='charges')
    kind = models.CharField(max_length=20, choices=KIND_CHOICES)
    amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    days_overdue = models.PositiveIntegerField(default=0)
    calculated_on = models.DateField()
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'invoice_charges'
        ordering = ['invoice', 'kind']
        unique_together = ['invoice', 'kind']

    def __str__(self):
        return f"{self.get_kind_display()} - {self.invoice.invoice_number} - AOA {self.amount}"
