import re
from datetime import date, datetime
from typing import Optional

from circulation.errors import ValidationError

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_RE = re.compile(r"^\+?[0-9 ()\-]{5,20}$")


class ISBNValidator:
    """ISBN-10 ve ISBN-13 normalleştirme ve kontrol toplamı doğrulaması."""

    @staticmethod
    def normalize_isbn(raw: Optional[str]) -> str:
        if raw is None:
            return ""
        s = re.sub(r"[^0-9Xx]", "", raw)
        return s.upper()

    @staticmethod
    def is_valid_isbn(isbn: str) -> bool:
        if not isbn:
            return False
        s = ISBNValidator.normalize_isbn(isbn)
        if len(s) == 10:
            # ISBN-10: 1..10 ağırlıklı kontrol toplamı
            total = 0
            for i, ch in enumerate(s[:-1], 1):
                if not ch.isdigit():
                    return False
                total += i * int(ch)
            check = s[-1]
            if check == 'X':
                check_val = 10
            elif check.isdigit():
                check_val = int(check)
            else:
                return False
            return (total + 10 * check_val) % 11 == 0
        elif len(s) == 13 and s.isdigit():
            # ISBN-13 kontrol toplamı
            total = 0
            for i, ch in enumerate(s[:-1]):
                factor = 1 if i % 2 == 0 else 3
                total += factor * int(ch)
            check_val = (10 - (total % 10)) % 10
            return check_val == int(s[-1])
        return False


class TextValidator:
    """Form alanları için basit doğrulamalar."""

    @staticmethod
    def require(value: Optional[str], field: str) -> str:
        if value is None or not str(value).strip():
            raise ValidationError(f"{field} is required.")
        return str(value).strip()

    @staticmethod
    def email(value: Optional[str]) -> str:
        value = TextValidator.require(value, "Email")
        if not EMAIL_RE.match(value):
            raise ValidationError(f"Invalid email address: {value}")
        return value

    @staticmethod
    def phone(value: Optional[str]) -> Optional[str]:
        # Telefon isteğe bağlı; boş değer None olarak saklanır
        if value is None or not str(value).strip():
            return None
        value = str(value).strip()
        if not PHONE_RE.match(value):
            raise ValidationError(f"Invalid phone number: {value}")
        return value

    @staticmethod
    def quantity(value) -> int:
        try:
            number = int(value)
        except (TypeError, ValueError):
            raise ValidationError("Quantity must be a whole number.") from None
        if number < 1:
            raise ValidationError("Quantity must be at least 1.")
        return number


def validate_due_date(due_date: Optional[date], today: date) -> date:
    if due_date is None:
        raise ValidationError("Due date is required.")
    if isinstance(due_date, datetime):
        due_date = due_date.date()
    if due_date < today:
        raise ValidationError("Due date cannot be in the past.")
    return due_date
