"""Display helpers shared by services and views."""
from __future__ import annotations

import re
from datetime import date, time
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

from django.conf import settings

CENTS = Decimal('0.01')


def money(value) -> Decimal:
    """Quantize to cents using half-up rounding."""
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def as_float(value) -> float:
    return float(value) if value is not None else 0.0


def format_currency(amount, symbol: Optional[str] = None) -> str:
    """``1234.5`` -> ``"$1,234.50"``."""
    symbol = settings.CLINIC_CURRENCY_SYMBOL if symbol is None else symbol
    value = money(amount)
    sign = '-' if value < 0 else ''
    return f"{sign}{symbol}{abs(value):,.2f}"


def format_time(value: Union[str, time]) -> str:
    """``"14:30"`` -> ``"2:30 PM"``."""
    if isinstance(value, time):
        hour, minute = value.hour, value.minute
    else:
        hh, mm = value.split(':')[:2]
        hour, minute = int(hh), int(mm)
    suffix = 'PM' if hour >= 12 else 'AM'
    return f"{hour % 12 or 12}:{minute:02d} {suffix}"


def format_time_range(start: Union[str, time], end: Union[str, time]) -> str:
    return f"{format_time(start)} - {format_time(end)}"


def format_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def format_phone_number(phone: str) -> str:
    """Ten digit numbers become ``(XXX) XXX-XXXX``; anything else is returned unchanged."""
    digits = re.sub(r'\D', '', phone or '')
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    return phone
