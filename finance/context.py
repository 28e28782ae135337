"""
Request-scoped context passed explicitly into every finance service.

Services never read the clock, the logged-in user or the active academic
year from globals; views build a FinanceContext from the request and
management commands build one from their arguments.
"""
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional

from django.utils import timezone

from .exceptions import AccessDenied

MANAGE_ROLES = frozenset({'ADMIN', 'SECRETARIA', 'FINANCEIRO'})
REPORT_ROLES = frozenset({'ADMIN', 'DIRETOR', 'FINANCEIRO'})
READ_ROLES = MANAGE_ROLES | {'DIRETOR'}
DELETE_ROLES = frozenset({'ADMIN'})


@dataclass(frozen=True)
class FinanceContext:
    today: date
    role: str
    academic_year: Optional[str] = None
    user: Any = None

    @classmethod
    def from_request(cls, request):
        user = request.user
        today = getattr(request, 'today', None) or timezone.localdate()
        return cls(
            today=today,
            role=user.effective_role() if user.is_authenticated else '',
            academic_year=getattr(request, 'active_academic_year', None),
            user=user if user.is_authenticated else None,
        )

    @classmethod
    def system(cls, today=None, academic_year=None):
        """Context for management commands and scheduled jobs"""
        return cls(today=today or timezone.localdate(), role='ADMIN', academic_year=academic_year)

    def require(self, roles):
        if self.role not in roles:
            raise AccessDenied(details={'required_roles': sorted(roles), 'role': self.role})

    @property
    def actor(self):
        """User to store in created_by/cancelled_by columns"""
        return self.user
