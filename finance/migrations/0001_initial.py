# Initial migration for payment plans, invoices, payments and invoice charges

import django.core.validators
import django.db.models.deletion
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('education', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='PaymentPlan',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=200)),
                ('academic_year', models.CharField(help_text='Academic year (e.g., 2024/2025)', max_length=20)),
                ('invoice_type', models.CharField(choices=[('TUITION', 'Propina'), ('ENROLLMENT', 'Matrícula'), ('MATERIAL', 'Material Escolar'), ('UNIFORM', 'Uniforme'), ('ACTIVITY', 'Atividade Extracurricular'), ('TRANSPORT', 'Transporte'), ('FOOD', 'Alimentação'), ('EXAM', 'Exame'), ('CERTIFICATE', 'Certificado'), ('FINE', 'Multa'), ('OTHER', 'Outro')], default='TUITION', max_length=20)),
                ('monthly_amount', models.DecimalField(decimal_places=2, max_digits=12, validators=[django.core.validators.MinValueValidator(Decimal('0.01'))])),
                ('due_day', models.PositiveSmallIntegerField(default=10, help_text='Day of month the invoice is due (1-28)', validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(28)])),
                ('late_fee_percent', models.DecimalField(decimal_places=2, default=Decimal('0.00'), help_text='One-off late fee as a percentage of the invoice amount', max_digits=5, validators=[django.core.validators.MinValueValidator(Decimal('0')), django.core.validators.MaxValueValidator(Decimal('100'))])),
                ('daily_interest_rate', models.DecimalField(decimal_places=4, default=Decimal('0.0000'), help_text='Interest per day overdue, as a percentage of the balance', max_digits=7, validators=[django.core.validators.MinValueValidator(Decimal('0')), django.core.validators.MaxValueValidator(Decimal('100'))])),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('course', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='payment_plans', to='education.course')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='created_payment_plans', to=settings.AUTH_USER_MODEL)),
                ('school_class', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='payment_plans', to='education.schoolclass')),
            ],
            options={
                'db_table': 'payment_plans',
                'ordering': ['-academic_year', 'name'],
                'indexes': [models.Index(fields=['academic_year', 'is_active'], name='plans_year_active_idx')],
            },
        ),
        migrations.CreateModel(
            name='Invoice',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('invoice_number', models.CharField(blank=True, max_length=50, unique=True)),
                ('invoice_type', models.CharField(choices=[('TUITION', 'Propina'), ('ENROLLMENT', 'Matrícula'), ('MATERIAL', 'Material Escolar'), ('UNIFORM', 'Uniforme'), ('ACTIVITY', 'Atividade Extracurricular'), ('TRANSPORT', 'Transporte'), ('FOOD', 'Alimentação'), ('EXAM', 'Exame'), ('CERTIFICATE', 'Certificado'), ('FINE', 'Multa'), ('OTHER', 'Outro')], default='TUITION', max_length=20)),
                ('description', models.CharField(blank=True, max_length=200)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12, validators=[django.core.validators.MinValueValidator(Decimal('0.01'))])),
                ('paid_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('status', models.CharField(choices=[('PENDING', 'Pendente'), ('PARTIAL', 'Parcial'), ('PAID', 'Pago'), ('OVERDUE', 'Em Atraso'), ('CANCELLED', 'Cancelado')], default='PENDING', max_length=20)),
                ('due_date', models.DateField()),
                ('month', models.PositiveSmallIntegerField(validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(12)])),
                ('year', models.PositiveIntegerField()),
                ('academic_year', models.CharField(help_text='Academic year (e.g., 2024/2025)', max_length=20)),
                ('generation_key', models.CharField(blank=True, help_text='student:plan:year:month for invoices generated from a payment plan', max_length=100, null=True, unique=True)),
                ('version', models.PositiveIntegerField(default=1)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('cancellation_reason', models.TextField(blank=True)),
                ('cancelled_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='cancelled_invoices', to=settings.AUTH_USER_MODEL)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='created_invoices', to=settings.AUTH_USER_MODEL)),
                ('payment_plan', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='invoices', to='finance.paymentplan')),
                ('student', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='invoices', to='education.student')),
            ],
            options={
                'db_table': 'invoices',
                'ordering': ['-year', '-month', '-created_at'],
                'indexes': [
                    models.Index(fields=['student', 'year', 'month'], name='invoices_student_period_idx'),
                    models.Index(fields=['due_date'], name='invoices_due_date_idx'),
                    models.Index(fields=['status'], name='invoices_status_idx'),
                    models.Index(fields=['academic_year'], name='invoices_academic_year_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Payment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12, validators=[django.core.validators.MinValueValidator(Decimal('0.01'))])),
                ('method', models.CharField(choices=[('CASH', 'Dinheiro'), ('BANK_TRANSFER', 'Transferência Bancária'), ('MULTICAIXA', 'Multicaixa'), ('MOBILE_MONEY', 'Multicaixa Express'), ('CARD', 'Cartão'), ('CHECK', 'Cheque')], max_length=20)),
                ('reference', models.CharField(blank=True, help_text='Bank reference, Multicaixa code, cheque number, etc.', max_length=100)),
                ('payment_date', models.DateField()),
                ('receipt_number', models.CharField(blank=True, max_length=50, unique=True)),
                ('notes', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('is_cancelled', models.BooleanField(default=False)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('cancellation_reason', models.TextField(blank=True)),
                ('cancelled_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='cancelled_payments', to=settings.AUTH_USER_MODEL)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='recorded_payments', to=settings.AUTH_USER_MODEL)),
                ('invoice', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='payments', to='finance.invoice')),
            ],
            options={
                'db_table': 'payments',
                'ordering': ['-payment_date', '-created_at'],
                'indexes': [
                    models.Index(fields=['invoice', 'is_cancelled'], name='payments_invoice_active_idx'),
                    models.Index(fields=['payment_date'], name='payments_date_idx'),
                    models.Index(fields=['method'], name='payments_method_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='InvoiceCharge',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('kind', models.CharField(choices=[('LATE_FEE', 'Multa por Atraso'), ('INTEREST', 'Juros de Mora')], max_length=20)),
                ('amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('days_overdue', models.PositiveIntegerField(default=0)),
                ('calculated_on', models.DateField()),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('invoice', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='charges', to='finance.invoice')),
            ],
            options={
                'db_table': 'invoice_charges',
                'ordering': ['invoice', 'kind'],
                'unique_together': {('invoice', 'kind')},
            },
        ),
    ]
