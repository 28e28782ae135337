"""
Decorators for enforcing authentication and role-based access on JSON API views
"""
from functools import wraps
from django.http import JsonResponse


def api_login_required(view_func):
    """
    Decorator to ensure the caller is authenticated.
    API clients get a JSON 401 instead of a redirect to a login page.
    """
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return JsonResponse(
                {'error': 'Autenticação necessária.', 'kind': 'NotAuthenticated'},
                status=401
            )
        return view_func(request, *args, **kwargs)
    return wrapper


def role_required(*roles):
    """
    Decorator to ensure the authenticated user holds one of the given roles.
    Superusers are treated as ADMIN.

    Usage:
        @role_required('ADMIN', 'SECRETARIA', 'FINANCEIRO')
        def api_view(request): ...
    """
    allowed = frozenset(roles)

    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            if not request.user.is_authenticated:
                return JsonResponse(
                    {'error': 'Autenticação necessária.', 'kind': 'NotAuthenticated'},
                    status=401
                )

            if request.user.effective_role() not in allowed:
                return JsonResponse(
                    {
                        'error': 'Não tem permissão para executar esta operação.',
                        'kind': 'AccessDenied',
                        'details': {'required_roles': sorted(allowed)},
                    },
                    status=403
                )

            return view_func(request, *args, **kwargs)
        return wrapper
    return decorator
