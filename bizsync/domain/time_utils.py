from __future__ import annotations

from datetime import datetime, timezone
from numbers import Real

EPOCH_WATERMARK = "1970-01-01T00:00:00.000Z"

_SQLITE_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M:%S.%f", "%Y-%m-%d")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: object) -> datetime | None:
    """Convierte un ``updated_at`` de cualquier origen a ``datetime`` UTC.

    Acepta ``datetime``, segundos epoch numéricos, ISO-8601 (con ``Z`` u offset)
    y el formato de ``CURRENT_TIMESTAMP`` de SQLite. Devuelve ``None`` si el valor
    falta o no se puede interpretar; las horas sin zona se asumen UTC.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, Real):
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        parsed = _parse_text(raw)
        if parsed is None:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_text(raw: str) -> datetime | None:
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        pass
    for fmt in _SQLITE_FORMATS:
        try:
            return datetime.strptime(raw, fmt)
        except ValueError:
            continue
    return None


def format_watermark(moment: datetime) -> str:
    """Formato canónico de marca de agua: orden lexicográfico == orden temporal."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def to_watermark(value: object) -> str | None:
    parsed = parse_timestamp(value)
    if parsed is None:
        return None
    return format_watermark(parsed)


def now_watermark() -> str:
    return format_watermark(utc_now())
