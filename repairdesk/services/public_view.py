import re
from enum import Enum
from typing import Any, Iterable, Optional

from ..models import LOG_DISPLAY_LIMIT, PublicCustomer, PublicLogEntry, PublicView

HIDDEN = "[hidden]"

# "Contact: 0917... → 0918..." segments written by detail edits
_CONTACT_SEGMENT = re.compile(r"Contact:[^|]*?(?=\s*\||\s*$)")
# "for Ana Reyes (09171234567) | Unit" intro lines of older tickets
_PARENTHESIZED_PHONE = re.compile(r"\s*\(\+?\d[\d\s-]{5,}\d\)")


def _text(value: Any) -> str:
    if isinstance(value, Enum):
        value = value.value
    return value if isinstance(value, str) else ""


def redact(text: str, contact_number: Optional[str] = None) -> str:
    """Strip phone numbers from a log line before it goes on the public page."""
    text = _CONTACT_SEGMENT.sub(f"Contact: {HIDDEN}", text)
    text = _PARENTHESIZED_PHONE.sub("", text)
    if contact_number and contact_number.strip():
        text = text.replace(contact_number.strip(), HIDDEN)
    return text


def project(ticket: Any, logs: Optional[Iterable[Any]] = None) -> PublicView:
    """
    Reduce a ticket record to what the anonymous status page may show.

    Works on any object exposing ticket attributes; anything missing comes
    out as an empty value so the view never has absent fields. Contact
    details are left out, including phone numbers inside log texts. ``logs``
    overrides the ticket's own log list.
    """
    customer = getattr(ticket, "customer", None)
    contact = _text(getattr(customer, "contact_number", None))
    entries = list(logs if logs is not None else (getattr(ticket, "logs", None) or []))
    return PublicView(
        ticket_number=_text(getattr(ticket, "ticket_number", None)),
        customer=PublicCustomer(
            first_name=_text(getattr(customer, "first_name", None)),
            middle_name=_text(getattr(customer, "middle_name", None)),
            last_name=_text(getattr(customer, "last_name", None)),
            suffix=_text(getattr(customer, "suffix", None)),
        ),
        unit=_text(getattr(ticket, "unit", None)),
        problem=_text(getattr(ticket, "problem", None)),
        status=_text(getattr(ticket, "status", None)),
        images=[i for i in (getattr(ticket, "images", None) or []) if isinstance(i, str)],
        logs=[
            PublicLogEntry(
                text=redact(_text(getattr(e, "text", None)), contact),
                created_at=getattr(e, "created_at", None),
            )
            for e in entries[-LOG_DISPLAY_LIMIT:]
        ],
        created_at=getattr(ticket, "created_at", None),
        qr_code_url=_text(getattr(ticket, "qr_code_url", None)),
    )
