from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

TWO_PLACES = Decimal('0.01')


def utcnow():
    return datetime.now(timezone.utc)


def ensure_aware(value):
    """SQLite hands timestamps back naive; they are stored as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_decimal(value, default='0.00'):
    if value is None:
        value = default
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def paginate_params(page, per_page, max_per_page=50):
    page = max(int(page or 1), 1)
    per_page = min(max(int(per_page or 10), 1), max_per_page)
    return page, per_page
