"""
Finance configuration with defaults.
Projects override any key through the FINANCE dict in Django settings.
"""
from django.conf import settings

DEFAULTS = {
    # Reject payments that would take paid_amount above the invoice amount
    'ALLOW_OVERPAYMENT': False,
    # Past the due date an unpaid balance reports OVERDUE even when partially paid
    'OVERDUE_TAKES_PRECEDENCE': True,
    # Billing window of a payment plan inside its academic year
    'BILLING_START_MONTH': 9,
    'BILLING_MONTH_COUNT': 10,
    # Days after the due date before the one-off late fee is charged
    'LATE_FEE_GRACE_DAYS': 0,
    # Cap on late fee plus interest, as a percentage of the invoice amount (None: no cap)
    'MAX_PENALTY_PERCENT': None,
    # select_for_update(nowait=True) on the invoice row
    'LOCK_NOWAIT': False,
    'CURRENCY': 'AOA',
    'SCHOOL_NAME': 'Escola Synexa',
    'SCHOOL_ADDRESS': 'Luanda, Angola',
    'DEFAULT_PAGE_SIZE': 10,
    'MAX_PAGE_SIZE': 100,
}


def finance_setting(name):
    """Read one finance setting, falling back to the default"""
    overrides = getattr(settings, 'FINANCE', None) or {}
    if name in overrides:
        return overrides[name]
    return DEFAULTS[name]
