from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from backend.config import LOCAL_TIMEZONE
from backend.utils.errors import ValidationError

# module backend.utils.timespan
@dataclass(frozen=True)
class Span:
    """Créneau [start, end): start inclus, end exclu."""
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.start is None or self.end is None:
            raise ValidationError("Dates de début et de fin requises", code="missing_dates")
        if localize(self.end) <= localize(self.start):
            raise ValidationError(
                "La date et heure de fin doivent être après la date et heure de début",
                code="end_before_start",
            )

    def localized(self) -> "Span":
        return Span(localize(self.start), localize(self.end))


def localize(dt: datetime) -> datetime:
    """Les dates naïves saisies dans le wizard sont en heure locale (LOCAL_TIMEZONE)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=ZoneInfo(LOCAL_TIMEZONE))
    return dt


def parse_datetime(value, field: str = "date") -> Optional[datetime]:
    """Accepte datetime ou chaîne ISO 8601 (suffixe Z toléré)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"Format de {field} invalide", code="invalid_dates")


def to_utc_iso(dt: datetime) -> str:
    return localize(dt).astimezone(timezone.utc).isoformat()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
