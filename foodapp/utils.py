import re
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
import bleach

from . import config

PHONE_RE = re.compile(r"^[0-9+\-\s()]{10,20}$")
USERNAME_RE = re.compile(r"^[a-zA-Z0-9_]+$")


def round_amount(value: Decimal) -> Decimal:
    """Money is stored rounded to 2 decimals, half up."""
    return Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def format_currency(amount: Decimal, currency: Optional[str] = None) -> str:
    return f"{currency or config.CURRENCY} {round_amount(amount):,.2f}"


def clean_text(value: Optional[str]) -> str:
    """Strip HTML tags and NUL bytes from free text (addresses, notes, descriptions)."""
    if value is None:
        return ""
    val = value.replace("\x00", "")
    val = bleach.clean(val, tags=set(), strip=True)
    return val.strip()


def sanitize_input(value: Optional[str]) -> str:
    """Sanitize a user-supplied string for safe display and search.

    - Strips HTML tags using bleach.clean(..., strip=True)
    - Removes obvious SQL metacharacters like '--' and ';'
    - Trims whitespace
    """
    val = clean_text(value)
    # remove common SQL comment and statement separators
    val = re.sub(r"(--|;)", "", val)
    return val.strip()


def is_valid_phone(phone: Optional[str]) -> bool:
    return bool(phone) and PHONE_RE.match(phone) is not None


def is_valid_username(username: Optional[str]) -> bool:
    return bool(username) and len(username) >= 3 and USERNAME_RE.match(username) is not None
