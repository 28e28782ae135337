from datetime import date
from unittest import mock

from django.contrib.auth import get_user_model
from django.http import HttpResponse
from django.test import TestCase, RequestFactory, override_settings

from .middleware import SchoolContextMiddleware
from .models import Course, SchoolClass, Student
from .utils.academic_year import academic_year_for_date, is_valid_academic_year, parse_academic_year

User = get_user_model()


class AcademicYearTestCase(TestCase):
    def test_parse_academic_year(self):
        self.assertEqual(parse_academic_year('2024/2025'), (2024, 2025))
        self.assertEqual(parse_academic_year(' 2024/2025 '), (2024, 2025))

    def test_rejects_malformed_labels(self):
        for label in ('2024-2025', '2024/2026', '24/25', '', None):
            self.assertFalse(is_valid_academic_year(label), label)

    def test_academic_year_for_date(self):
        """The year turns over in September by default"""
        self.assertEqual(academic_year_for_date(date(2024, 9, 1)), '2024/2025')
        self.assertEqual(academic_year_for_date(date(2025, 6, 30)), '2024/2025')
        self.assertEqual(academic_year_for_date(date(2025, 2, 1), start_month=2), '2025/2026')


class UserRoleTestCase(TestCase):
    def test_superuser_acts_as_admin(self):
        user = User.objects.create_superuser(username='root', password='testpass123', email='root@escola.ao')
        self.assertEqual(user.effective_role(), 'ADMIN')
        self.assertTrue(user.can_manage_finance())

    def test_role_permissions(self):
        diretor = User.objects.create_user(username='diretor', password='testpass123', role='DIRETOR')
        secretaria = User.objects.create_user(username='secretaria', password='testpass123', role='SECRETARIA')

        self.assertFalse(diretor.can_manage_finance())
        self.assertTrue(diretor.can_view_financial_reports())
        self.assertTrue(secretaria.can_manage_finance())
        self.assertFalse(secretaria.can_view_financial_reports())


class SchoolContextMiddlewareTestCase(TestCase):
    def setUp(self):
        self.factory = RequestFactory()
        self.middleware = SchoolContextMiddleware(lambda request: HttpResponse())

    def run_middleware(self, request, today=date(2024, 10, 1)):
        with mock.patch('education.middleware.timezone') as mock_timezone:
            mock_timezone.localdate.return_value = today
            self.middleware(request)
        return request

    def test_header_wins(self):
        request = self.factory.get('/api/students/?academic_year=2022/2023', HTTP_X_ACADEMIC_YEAR='2023/2024')
        self.run_middleware(request)

        self.assertEqual(request.active_academic_year, '2023/2024')
        self.assertEqual(request.today, date(2024, 10, 1))

    def test_query_parameter(self):
        request = self.run_middleware(self.factory.get('/api/students/', {'academic_year': '2022/2023'}))
        self.assertEqual(request.active_academic_year, '2022/2023')

    @override_settings(SYNEXA_ACTIVE_ACADEMIC_YEAR='2021/2022')
    def test_setting_then_invalid_values_ignored(self):
        request = self.factory.get('/api/students/', {'academic_year': 'bad'}, HTTP_X_ACADEMIC_YEAR='2024')
        self.run_middleware(request)
        self.assertEqual(request.active_academic_year, '2021/2022')

    def test_derived_from_date(self):
        request = self.run_middleware(self.factory.get('/api/students/'), today=date(2025, 3, 1))
        self.assertEqual(request.active_academic_year, '2024/2025')

    def test_admin_urls_skipped(self):
        request = self.run_middleware(self.factory.get('/django-admin/'))
        self.assertFalse(hasattr(request, 'active_academic_year'))


class StudentDirectoryAPITestCase(TestCase):
    def setUp(self):
        """Set up test data"""
        self.user = User.objects.create_user(username='secretaria', password='testpass123', role='SECRETARIA')
        self.course = Course.objects.create(name='I Ciclo', code='IC')
        self.class_a = SchoolClass.objects.create(name='7ª A', course=self.course, academic_year='2024/2025')
        self.class_b = SchoolClass.objects.create(name='7ª B', course=self.course, academic_year='2024/2025')
        self.old_class = SchoolClass.objects.create(name='6ª A', course=self.course, academic_year='2023/2024')

        self.joao = Student.objects.create(student_number='2024001', full_name='João Mateus', school_class=self.class_a)
        self.rosa = Student.objects.create(student_number='2024002', full_name='Rosa Canda', school_class=self.class_a, status='suspended')
        self.paulo = Student.objects.create(student_number='2024003', full_name='Paulo Simão', school_class=self.class_b)

        self.client.force_login(self.user)

    def test_requires_authentication(self):
        self.client.logout()
        response = self.client.get('/api/students/')
        self.assertEqual(response.status_code, 401)

    def test_students_list(self):
        response = self.client.get('/api/students/')

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['count'], 3)
        self.assertEqual(data['results'][0]['student_number'], '2024001')
        self.assertEqual(data['results'][0]['class_name'], '7ª A')

    def test_students_search_and_filters(self):
        response = self.client.get('/api/students/', {'search': 'rosa'})
        self.assertEqual([s['id'] for s in response.json()['results']], [self.rosa.pk])

        response = self.client.get('/api/students/', {'class_id': self.class_a.pk, 'status': 'active'})
        self.assertEqual([s['id'] for s in response.json()['results']], [self.joao.pk])

    def test_students_pagination(self):
        response = self.client.get('/api/students/', {'page_size': 2, 'page': 2})
        data = response.json()

        self.assertEqual(data['total_pages'], 2)
        self.assertEqual(data['page'], 2)
        self.assertEqual(len(data['results']), 1)

    def test_invalid_pagination(self):
        response = self.client.get('/api/students/', {'page': 'x'})
        self.assertEqual(response.status_code, 400)

    def test_student_detail(self):
        response = self.client.get(f'/api/students/{self.paulo.pk}/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['full_name'], 'Paulo Simão')

        response = self.client.get('/api/students/999999/')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['kind'], 'NotFound')

    def test_classes_for_requested_year(self):
        response = self.client.get('/api/classes/', {'academic_year': '2024/2025'})

        data = response.json()
        self.assertEqual(data['academic_year'], '2024/2025')
        counts = {c['name']: c['active_students'] for c in data['results']}
        self.assertEqual(counts, {'7ª A': 1, '7ª B': 1})

    def test_classes_use_header_year(self):
        response = self.client.get('/api/classes/', HTTP_X_ACADEMIC_YEAR='2023/2024')
        self.assertEqual([c['name'] for c in response.json()['results']], ['6ª A'])
