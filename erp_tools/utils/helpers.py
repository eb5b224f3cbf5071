"""Small request and parsing helpers shared by services and blueprints."""

from datetime import date, datetime

from flask import request

_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y")


def parse_date_input(value):
    """Coerce *value* to a ``date``.

    Accepts date/datetime objects, ``YYYY-MM-DD``, an ISO datetime (the
    date part is kept) or ``DD/MM/YYYY``.  Empty input gives None; anything
    else raises ValueError.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        raise ValueError(f"Invalid date {text!r}; use YYYY-MM-DD or DD/MM/YYYY") from None


def request_actor() -> str | None:
    """Acting user of the current request: body ``actor`` first, then the ``X-Actor`` header."""
    body = request.get_json(silent=True)
    candidate = body.get("actor") if isinstance(body, dict) else None
    if not candidate:
        candidate = request.headers.get("X-Actor")
    if isinstance(candidate, str):
        candidate = candidate.strip()
    return candidate or None
