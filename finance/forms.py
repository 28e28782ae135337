"""
Forms validating the JSON payloads and query strings of the finance API.
Business rules stay in finance.services; these only check shape and types.
"""
from decimal import Decimal

from django import forms
from django.core.exceptions import ValidationError

from education.utils.academic_year import is_valid_academic_year

from .conf import finance_setting
from .models import PaymentPlan, Payment, INVOICE_TYPE_CHOICES
from .services.status import STATUSES


def validate_academic_year(value):
    if value and not is_valid_academic_year(value):
        raise ValidationError('O ano letivo deve estar no formato AAAA/AAAA (ex: 2024/2025), com o segundo ano a seguir ao primeiro.')


class InvoiceForm(forms.Form):
    student_id = forms.IntegerField(min_value=1)
    invoice_type = forms.ChoiceField(choices=INVOICE_TYPE_CHOICES, required=False)
    description = forms.CharField(max_length=200, required=False)
    amount = forms.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    due_date = forms.DateField()
    month = forms.IntegerField(min_value=1, max_value=12)
    year = forms.IntegerField(min_value=2000, max_value=2100)
    academic_year = forms.CharField(max_length=20, validators=[validate_academic_year])

    def clean_invoice_type(self):
        return self.cleaned_data.get('invoice_type') or 'TUITION'


class PaymentForm(forms.Form):
    # Sign and overpayment are checked by the payment recorder, after the invoice state
    amount = forms.DecimalField(max_digits=12, decimal_places=2)
    method = forms.ChoiceField(choices=Payment.METHOD_CHOICES)
    reference = forms.CharField(max_length=100, required=False)
    payment_date = forms.DateField(required=False)
    notes = forms.CharField(required=False)


class CancellationForm(forms.Form):
    reason = forms.CharField(max_length=500, error_messages={'required': 'O motivo do cancelamento é obrigatório.'})


class PaymentPlanForm(forms.ModelForm):
    class Meta:
        model = PaymentPlan
        fields = [
            'name', 'academic_year', 'course', 'school_class', 'invoice_type',
            'monthly_amount', 'due_day', 'late_fee_percent', 'daily_interest_rate', 'is_active',
        ]

    def clean_academic_year(self):
        academic_year = self.cleaned_data.get('academic_year')
        validate_academic_year(academic_year)
        return academic_year

    def clean(self):
        cleaned_data = super().clean()
        school_class = cleaned_data.get('school_class')
        course = cleaned_data.get('course')
        academic_year = cleaned_data.get('academic_year')

        if school_class and academic_year and school_class.academic_year != academic_year:
            self.add_error('school_class', 'A turma não pertence ao ano letivo do plano.')
        if school_class and course and school_class.course_id != course.pk:
            self.add_error('school_class', 'A turma não pertence ao curso do plano.')

        return cleaned_data


class StudentIdListField(forms.Field):
    """Accepts a JSON list of ids or a comma separated string"""

    def to_python(self, value):
        if value in (None, '', []):
            return []
        if isinstance(value, str):
            value = [part for part in value.split(',') if part.strip()]
        if not isinstance(value, (list, tuple)):
            raise ValidationError('Lista de alunos inválida.')
        try:
            return [int(item) for item in value]
        except (TypeError, ValueError):
            raise ValidationError('Lista de alunos inválida.')


class GenerateInvoicesForm(forms.Form):
    academic_year = forms.CharField(max_length=20, required=False, validators=[validate_academic_year])
    student_ids = StudentIdListField(required=False)
    dry_run = forms.BooleanField(required=False)


class InvoiceFilterForm(forms.Form):
    status = forms.ChoiceField(choices=[(s, s) for s in STATUSES], required=False)
    student_id = forms.IntegerField(required=False)
    type = forms.ChoiceField(choices=INVOICE_TYPE_CHOICES, required=False)
    month = forms.IntegerField(min_value=1, max_value=12, required=False)
    year = forms.IntegerField(min_value=2000, max_value=2100, required=False)
    academic_year = forms.CharField(max_length=20, required=False, validators=[validate_academic_year])
    start_date = forms.DateField(required=False)
    end_date = forms.DateField(required=False)
    page = forms.IntegerField(min_value=1, required=False)
    limit = forms.IntegerField(min_value=1, required=False)

    def clean_limit(self):
        limit = self.cleaned_data.get('limit') or finance_setting('DEFAULT_PAGE_SIZE')
        return min(limit, finance_setting('MAX_PAGE_SIZE'))

    def clean_page(self):
        return self.cleaned_data.get('page') or 1


class PeriodForm(forms.Form):
    """Either start/end dates or a year (optionally with a month)"""
    start = forms.DateField(required=False)
    end = forms.DateField(required=False)
    year = forms.IntegerField(min_value=2000, max_value=2100, required=False)
    month = forms.IntegerField(min_value=1, max_value=12, required=False)

    def clean(self):
        cleaned_data = super().clean()
        start, end = cleaned_data.get('start'), cleaned_data.get('end')
        year = cleaned_data.get('year')

        if self.errors:
            return cleaned_data
        if start or end:
            if not (start and end):
                raise ValidationError('Indique a data inicial e a data final.')
            if start > end:
                raise ValidationError('A data inicial deve ser anterior à data final.')
        elif not year:
            raise ValidationError('Indique o período (start/end ou year/month).')

        return cleaned_data


class DefaultersForm(forms.Form):
    as_of = forms.DateField(required=False)

