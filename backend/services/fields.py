from datetime import date, datetime

from backend.errors import ValidationError


def clean_text(value: str | None) -> str | None:
    """Trim a free-text field; blank values are stored as NULL."""
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def require_text(value: str | None, field: str, label: str | None = None) -> str:
    cleaned = clean_text(value)
    if not cleaned:
        raise ValidationError(f"{label or field} is required", details={"field": field})
    return cleaned


def safe_date(value: str | None) -> date | None:
    if not value:
        return None
    for fmt in ("%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y", "%d.%m.%Y"):
        try:
            return datetime.strptime(value.strip(), fmt).date()
        except ValueError:
            continue
    return None


def parse_date(value: str | None, field: str = "date_of_birth") -> date | None:
    """Like ``safe_date`` but rejects non-empty values that do not parse."""
    if not clean_text(value):
        return None
    parsed = safe_date(value)
    if parsed is None:
        raise ValidationError(f"Invalid date: {value}", details={"field": field})
    return parsed
