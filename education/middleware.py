from django.conf import settings
from django.utils import timezone

from .utils.academic_year import academic_year_for_date, is_valid_academic_year


class SchoolContextMiddleware:
    """
    Attach the request-scoped school context: the current date and the active
    academic year. Views pass these explicitly into the finance services
    instead of reading module-level state.

    Academic year resolution order:
    1. X-Academic-Year header
    2. academic_year query parameter
    3. SYNEXA_ACTIVE_ACADEMIC_YEAR setting
    4. Derived from the current date
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        # Skip for Django admin URLs
        if request.path.startswith('/django-admin/'):
            return self.get_response(request)

        request.today = timezone.localdate()
        request.active_academic_year = self.resolve_academic_year(request)

        return self.get_response(request)

    def resolve_academic_year(self, request):
        candidates = [
            request.headers.get('X-Academic-Year'),
            request.GET.get('academic_year'),
            getattr(settings, 'SYNEXA_ACTIVE_ACADEMIC_YEAR', ''),
        ]
        for candidate in candidates:
            if candidate and is_valid_academic_year(candidate):
                return candidate.strip()
        return academic_year_for_date(request.today)
