"""
Academic year helpers.
Academic years are labelled "YYYY/YYYY" where the second year follows the first.
"""
import re

from django.conf import settings

ACADEMIC_YEAR_PATTERN = re.compile(r'^(\d{4})/(\d{4})$')


def parse_academic_year(label):
    """
    Split an academic year label into its two calendar years.

    Returns:
        tuple: (first_year, second_year) as ints, or None when the label is malformed
    """
    if not label:
        return None
    match = ACADEMIC_YEAR_PATTERN.match(label.strip())
    if not match:
        return None
    first, second = int(match.group(1)), int(match.group(2))
    if second != first + 1:
        return None
    return first, second


def is_valid_academic_year(label):
    return parse_academic_year(label) is not None


def academic_year_for_date(day, start_month=None):
    """
    Academic year a date falls in. The year turns over on the first day of
    start_month (defaults to the finance billing start month).
    """
    if start_month is None:
        start_month = getattr(settings, 'FINANCE', {}).get('BILLING_START_MONTH', 9)
    if day.month >= start_month:
        return f"{day.year}/{day.year + 1}"
    return f"{day.year - 1}/{day.year}"
