"""
Signal Extractor - Normalize a meeting into comparable signals
"""
from typing import Any, List, Optional
from datetime import datetime, timezone
import re
import logging

from app.models.prep_sheet import MeetingAttendee, MeetingRecord, MeetingSignals

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Meeting"

# "Jane Doe <jane@acme.com>" style entries
_ANGLE_EMAIL = re.compile(r"<\s*([^<>\s]+@[^<>\s]+)\s*>")
_BARE_EMAIL = re.compile(r"[\w.+'-]+@[\w-]+(?:\.[\w-]+)+")
_TOKEN = re.compile(r"[a-z0-9][a-z0-9&.'-]*")


def domain_from_email(email: Optional[str]) -> Optional[str]:
    """Extract the lowercased domain part of an address containing '@'."""
    if not email or '@' not in email:
        return None
    domain = email.rsplit('@', 1)[1].strip().lower()
    return domain or None


def normalize_attendee(entry: Any) -> Optional[MeetingAttendee]:
    """
    Turn a raw attendee entry (string, dict or MeetingAttendee) into a MeetingAttendee.

    Returns None for entries that carry neither an address nor a name.
    """
    if entry is None:
        return None
    if isinstance(entry, MeetingAttendee):
        return entry

    if isinstance(entry, str):
        text = entry.strip()
        if not text:
            return None
        match = _ANGLE_EMAIL.search(text) or _BARE_EMAIL.search(text)
        if not match:
            return MeetingAttendee(display_name=text)
        email = match.group(1) if match.re is _ANGLE_EMAIL else match.group(0)
        name = _ANGLE_EMAIL.sub("", text).strip().strip('"') if match.re is _ANGLE_EMAIL else None
        return MeetingAttendee(email=email.lower(), display_name=name or None)

    if isinstance(entry, dict):
        email = entry.get("email") or entry.get("emailAddress") or entry.get("address")
        if isinstance(email, dict):
            # Microsoft Graph shape: {"emailAddress": {"address": ..., "name": ...}}
            name = email.get("name")
            email = email.get("address")
        else:
            name = None
        name = entry.get("display_name") or entry.get("displayName") or entry.get("name") or name
        if not email and not name:
            return None
        return MeetingAttendee(
            email=email.strip().lower() if isinstance(email, str) and email.strip() else None,
            display_name=name,
            response_status=entry.get("response_status") or entry.get("responseStatus"),
            is_organizer=bool(entry.get("is_organizer") or entry.get("organizer")),
        )

    logger.debug(f"Ignoring attendee entry of type {type(entry).__name__}")
    return None


def _tokens(*texts: str) -> List[str]:
    seen = []
    for text in texts:
        for token in _TOKEN.findall((text or "").lower()):
            if len(token) > 1 and token not in seen:
                seen.append(token)
    return seen


def extract_signals(meeting: Optional[MeetingRecord], now: Optional[datetime] = None) -> MeetingSignals:
    """
    Derive MeetingSignals from a raw meeting record.

    Missing fields leave the matching signals empty; a missing title becomes
    "Meeting" and a missing start becomes the current time.
    """
    if meeting is None:
        meeting = MeetingRecord()

    title = (meeting.title or "").strip() or DEFAULT_TITLE
    description = meeting.description or ""

    attendees: List[MeetingAttendee] = []
    for entry in meeting.attendees or []:
        attendee = normalize_attendee(entry)
        if attendee:
            attendees.append(attendee)

    emails: List[str] = []
    for attendee in attendees:
        if attendee.email and attendee.email not in emails:
            emails.append(attendee.email)

    domains: List[str] = []
    for email in emails:
        domain = domain_from_email(email)
        if domain and domain not in domains:
            domains.append(domain)

    start = meeting.start or now or datetime.now(timezone.utc)
    end = meeting.end
    if end is not None:
        try:
            if end < start:
                end = None
        except TypeError:
            # naive vs aware timestamps
            end = None

    return MeetingSignals(
        title=title,
        attendees=attendees,
        emails=emails,
        domains=domains,
        description=description,
        tokens=_tokens(title, description),
        start=start,
        end=end,
    )
