"""
General helper functions: tax id and phone handling, input sanitisation,
money rounding and date utilities.
"""
import re
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

_NON_DIGITS = re.compile(r"\D")
_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
# Control characters except \t, \n and \r
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")

COUNTRY_CODE = "55"


def utcnow() -> datetime:
    """Naive UTC timestamp, as stored in DateTime columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def safe_get(data: Dict[str, Any], *keys, default: Any = None) -> Any:
    """
    Safely get nested dictionary values.

    Args:
        data: Dictionary to search
        *keys: Keys to traverse
        default: Default value if key not found

    Returns:
        Value or default
    """
    result = data
    for key in keys:
        if isinstance(result, dict):
            result = result.get(key)
            if result is None:
                return default
        else:
            return default
    return result if result is not None else default


def only_digits(value: str) -> str:
    return _NON_DIGITS.sub("", value or "")


def validate_tax_id(tax_id: str) -> bool:
    """
    Validate a CPF with the mod-11 check digit algorithm.
    Formatting characters are ignored; sequences of one repeated digit are rejected.
    """
    digits = only_digits(tax_id)
    if len(digits) != 11 or digits == digits[0] * 11:
        return False

    for length in (9, 10):
        total = sum(int(digits[i]) * (length + 1 - i) for i in range(length))
        check = (total * 10) % 11
        if check == 10:
            check = 0
        if check != int(digits[length]):
            return False
    return True


def mask_tax_id(tax_id: Optional[str]) -> str:
    """***.XXX.XXX-** (only the middle six digits are shown)"""
    digits = only_digits(tax_id or "")
    if len(digits) != 11:
        return "***"
    return f"***.{digits[3:6]}.{digits[6:9]}-**"


def normalize_phone(phone: str) -> str:
    """Strip formatting and make sure the number carries the country code"""
    digits = only_digits(phone)
    if not digits.startswith(COUNTRY_CODE):
        digits = COUNTRY_CODE + digits
    return digits


def mask_phone(phone: Optional[str]) -> str:
    digits = only_digits(phone or "")
    if len(digits) < 8:
        return "****"
    return f"{digits[:4]}*****{digits[-4:]}"


def validate_email(email: str) -> bool:
    return bool(email) and bool(_EMAIL_PATTERN.match(email))


def sanitize_input(text: str, max_length: int = 500) -> str:
    """Truncate and drop control characters (tabs and line breaks are kept)"""
    return _CONTROL_CHARS.sub("", (text or "")[:max_length])


def round_money(value: float) -> float:
    """Round to cents, half-up"""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def parse_date(value: Any) -> Optional[date]:
    """Parse YYYY-MM-DD or DD/MM/YYYY; returns None when the value is not a date"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    for fmt in ("%Y-%m-%d", "%d/%m/%Y"):
        try:
            return datetime.strptime(value.strip(), fmt).date()
        except ValueError:
            continue
    return None


def age_on(birth_date: date, today: Optional[date] = None) -> int:
    """Age in completed years"""
    today = today or date.today()
    years = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        years -= 1
    return years


def add_months(start: date, months: int, day: int) -> date:
    """Same day-of-month `months` later (day must exist in every month, e.g. 10)"""
    month_index = start.month - 1 + months
    return date(start.year + month_index // 12, month_index % 12 + 1, day)
