from django.db import models
from django.contrib.auth.models import AbstractUser


class CustomUser(AbstractUser):
    """School staff user with a role used for authorization"""
    ROLE_CHOICES = [
        ('ADMIN', 'Administrador'),
        ('SECRETARIA', 'Secretaria'),
        ('FINANCEIRO', 'Financeiro'),
        ('DIRETOR', 'Diretor'),
        ('PROFESSOR', 'Professor'),
    ]

    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default='PROFESSOR')
    phone = models.CharField(max_length=20, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'users'
        ordering = ['username']
        indexes = [
            models.Index(fields=['role'], name='users_role_idx'),
        ]

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"

    def is_admin(self):
        """Admin role or Django superuser flag"""
        return self.role == 'ADMIN' or self.is_superuser

    def is_secretaria(self):
        return self.role == 'SECRETARIA'

    def is_financeiro(self):
        return self.role == 'FINANCEIRO'

    def is_diretor(self):
        return self.role == 'DIRETOR'

    def effective_role(self):
        """Role used for permission checks (superusers act as ADMIN)"""
        return 'ADMIN' if self.is_superuser else self.role

    # Permission helper methods
    def can_manage_finance(self):
        """Admin, Secretaria and Financeiro create/cancel invoices and payments"""
        return self.is_admin() or self.is_secretaria() or self.is_financeiro()

    def can_view_financial_reports(self):
        """Admin, Diretor and Financeiro read aggregated financial reports"""
        return self.is_admin() or self.is_diretor() or self.is_financeiro()


class Course(models.Model):
    """Course/cycle offered by the school (e.g. Ensino Primário, I Ciclo)"""
    name = models.CharField(max_length=200, unique=True)
    code = models.CharField(max_length=20, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'courses'
        ordering = ['name']

    def __str__(self):
        return f"{self.code} - {self.name}"


class SchoolClass(models.Model):
    """Class (turma) for one academic year"""
    name = models.CharField(max_length=100)
    course = models.ForeignKey(Course, on_delete=models.SET_NULL, null=True, blank=True, related_name='classes')
    academic_year = models.CharField(max_length=20, help_text="Academic year (e.g., 2024/2025)")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'school_classes'
        unique_together = ['name', 'academic_year']
        ordering = ['academic_year', 'name']

    def __str__(self):
        return f"{self.name} ({self.academic_year})"


class Student(models.Model):
    """Student directory entry"""
    STATUS_CHOICES = [
        ('active', 'Ativo'),
        ('suspended', 'Suspenso'),
        ('transferred', 'Transferido'),
        ('graduated', 'Concluído'),
    ]

    student_number = models.CharField(max_length=50, unique=True)
    full_name = models.CharField(max_length=200)
    school_class = models.ForeignKey(SchoolClass, on_delete=models.SET_NULL, null=True, blank=True, related_name='students')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active')
    email = models.EmailField(blank=True)
    guardian_name = models.CharField(max_length=200, blank=True)
    guardian_phone = models.CharField(max_length=20, blank=True)
    guardian_email = models.EmailField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'students'
        ordering = ['student_number']
        indexes = [
            models.Index(fields=['status'], name='students_status_idx'),
            models.Index(fields=['school_class', 'status'], name='students_class_status_idx'),
            models.Index(fields=['full_name'], name='students_full_name_idx'),
        ]

    def __str__(self):
        return f"{self.student_number} - {self.full_name}"

    @property
    def class_name(self):
        return self.school_class.name if self.school_class else ''
