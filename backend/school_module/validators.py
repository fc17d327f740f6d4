import re

from .errors import ValidationError
from .models import ASSESSMENT_TYPES, CLASS_TITLES, MONTHS, SECTIONS, SUBJECT_NAMES


EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,6}$")
PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[!@#$%^&*]).{8,}$")


def normalize_email(value: str) -> str:
    normalized = (value or "").strip().lower()
    if not EMAIL_PATTERN.match(normalized):
        raise ValidationError("Invalid email format")
    return normalized


def validate_password_strength(password: str) -> str:
    if not password or not PASSWORD_PATTERN.match(password):
        raise ValidationError(
            "Password must be at least 8 characters long and include upper and lower case letters, "
            "a number and one of !@#$%^&*"
        )
    return password


def normalize_name(value: str, field: str = "Name") -> str:
    normalized = (value or "").strip().lower()
    if not normalized:
        raise ValidationError(f"{field} is required")
    return normalized


def validate_class_title(value) -> int:
    try:
        title = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Class title must be a number between 1 and 10") from None
    if title not in CLASS_TITLES:
        raise ValidationError("Class title must be a number between 1 and 10")
    return title


def validate_section(value: str) -> str:
    section = (value or "").strip().upper()
    if section not in SECTIONS:
        raise ValidationError(f"Section must be one of {', '.join(SECTIONS)}")
    return section


def validate_subject_name(value: str) -> str:
    name = (value or "").strip()
    if name not in SUBJECT_NAMES:
        raise ValidationError(f"Unknown subject: {name}")
    return name


def validate_assessment_type(value: str) -> str:
    kind = (value or "").strip()
    if kind not in ASSESSMENT_TYPES:
        raise ValidationError(f"Unknown assessment type: {kind}")
    return kind


def validate_month(value: str) -> str:
    month = (value or "").strip().capitalize()
    if month not in MONTHS:
        raise ValidationError(f"Unknown month: {value}")
    return month


def validate_year(value) -> int:
    try:
        year = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Year must be between 2000 and 2100") from None
    if not 2000 <= year <= 2100:
        raise ValidationError("Year must be between 2000 and 2100")
    return year
