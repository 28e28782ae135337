"""
API Views for the student directory
Read-only lookups consumed by the finance screens (student picker, class filter)
"""
from django.http import JsonResponse
from django.views.decorators.http import require_http_methods
from django.core.paginator import Paginator
from django.db.models import Q, Count

from .models import Student, SchoolClass
from .decorators import api_login_required


def student_to_dict(student):
    return {
        'id': student.id,
        'student_number': student.student_number,
        'full_name': student.full_name,
        'class_id': student.school_class_id,
        'class_name': student.class_name,
        'status': student.status,
        'email': student.email or '',
        'guardian_name': student.guardian_name or '',
        'guardian_phone': student.guardian_phone or '',
        'guardian_email': student.guardian_email or '',
    }


@api_login_required
@require_http_methods(["GET"])
def api_students_list(request):
    """API endpoint for the student directory with search and class filter"""
    search = request.GET.get('search', '').strip()
    class_id = request.GET.get('class_id')
    status = request.GET.get('status')

    try:
        page = max(int(request.GET.get('page', 1)), 1)
        page_size = min(max(int(request.GET.get('page_size', 20)), 1), 100)  # Max 100
    except ValueError:
        return JsonResponse({'error': 'Parâmetros de paginação inválidos.', 'kind': 'ValidationError'}, status=400)

    students = Student.objects.select_related('school_class')
    if search:
        students = students.filter(Q(full_name__icontains=search) | Q(student_number__icontains=search))
    if class_id:
        students = students.filter(school_class_id=class_id)
    if status:
        students = students.filter(status=status)

    paginator = Paginator(students, page_size)
    page_obj = paginator.get_page(page)

    return JsonResponse({
        'results': [student_to_dict(s) for s in page_obj],
        'count': paginator.count,
        'page': page_obj.number,
        'page_size': page_size,
        'total_pages': paginator.num_pages,
    })


@api_login_required
@require_http_methods(["GET"])
def api_student_detail(request, pk):
    """API endpoint resolving one student (id -> name, number, class)"""
    try:
        student = Student.objects.select_related('school_class').get(pk=pk)
    except Student.DoesNotExist:
        return JsonResponse({'error': f'Aluno com ID {pk} não encontrado', 'kind': 'NotFound'}, status=404)

    return JsonResponse(student_to_dict(student))


@api_login_required
@require_http_methods(["GET"])
def api_classes_list(request):
    """API endpoint for classes of an academic year (defaults to the active one)"""
    academic_year = request.GET.get('academic_year') or request.active_academic_year

    classes = (
        SchoolClass.objects.filter(academic_year=academic_year)
        .select_related('course')
        .annotate(active_students=Count('students', filter=Q(students__status='active')))
    )

    return JsonResponse({
        'academic_year': academic_year,
        'results': [
            {
                'id': c.id,
                'name': c.name,
                'course_id': c.course_id,
                'course_name': c.course.name if c.course else '',
                'academic_year': c.academic_year,
                'active_students': c.active_students,
            }
            for c in classes
        ],
    })
