"""
Google Calendar Service - Meeting lookups for prep generation
"""
import os
import base64
import logging
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from app.models.prep_sheet import MeetingRecord
from app.services.prep_store import PrepStore
from app.utils import ExternalServiceUnavailable, run_blocking, service_with_timeout

logger = logging.getLogger(__name__)

# OAuth Configuration
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")


def decode_token(stored_token) -> str:
    """Decode a stored token from database (bytes, Postgres hex or base64)."""
    if stored_token is None:
        return ""
    if isinstance(stored_token, bytes):
        return stored_token.decode('utf-8')
    if isinstance(stored_token, str):
        if stored_token.startswith('\\x'):
            return bytes.fromhex(stored_token[2:]).decode('utf-8')
        if stored_token.startswith('ya29'):
            return stored_token
        try:
            padded = stored_token + '=' * (-len(stored_token) % 4)
            decoded = base64.b64decode(padded).decode('utf-8')
            if decoded.startswith('ya29'):
                return decoded
        except (ValueError, UnicodeDecodeError):
            pass
        return stored_token
    return str(stored_token)


def build_google_credentials(connection: Dict[str, Any]) -> Credentials:
    """Build Google credentials from a stored calendar connection."""
    refresh_token = None
    if connection.get("refresh_token_encrypted"):
        refresh_token = decode_token(connection["refresh_token_encrypted"])
    return Credentials(
        token=decode_token(connection.get("access_token_encrypted")),
        refresh_token=refresh_token,
        token_uri="https://oauth2.googleapis.com/token",
        client_id=GOOGLE_CLIENT_ID,
        client_secret=GOOGLE_CLIENT_SECRET,
    )


def _parse_time(value: Dict[str, Any]) -> tuple:
    """Return (datetime, all_day) for a Google start/end object."""
    if not value:
        return None, False
    if value.get("dateTime"):
        return datetime.fromisoformat(value["dateTime"].replace("Z", "+00:00")), False
    if value.get("date"):
        # All-day event - use midnight UTC
        return datetime.strptime(value["date"], "%Y-%m-%d").replace(tzinfo=timezone.utc), True
    return None, False


def parse_google_event(event: Dict[str, Any]) -> MeetingRecord:
    """Parse a Google Calendar event into a MeetingRecord."""
    start, all_day = _parse_time(event.get("start", {}))
    end, _ = _parse_time(event.get("end", {}))

    attendees = []
    for attendee in event.get("attendees", []):
        attendees.append({
            "email": attendee.get("email", ""),
            "display_name": attendee.get("displayName"),
            "response_status": attendee.get("responseStatus", "needsAction"),
            "is_organizer": attendee.get("organizer", False),
        })

    return MeetingRecord(
        id=event.get("id"),
        title=event.get("summary"),
        description=event.get("description"),
        start=start,
        end=end,
        all_day=all_day,
        attendees=attendees,
        location=event.get("location"),
        organizer_email=event.get("organizer", {}).get("email"),
        status=event.get("status", "confirmed"),
    )


class GoogleCalendarService:
    """Calendar collaborator: get_event_by_id and list_upcoming."""

    def __init__(self, store: PrepStore):
        self.store = store

    def _service(self, owner_id: str):
        connection = self.store.get_google_connection(owner_id)
        if not connection:
            raise ExternalServiceUnavailable("calendar", "no active Google connection")
        return build("calendar", "v3", credentials=build_google_credentials(connection), cache_discovery=False)

    def _get_event(self, owner_id: str, event_id: str) -> Optional[MeetingRecord]:
        try:
            event = self._service(owner_id).events().get(calendarId="primary", eventId=event_id).execute()
        except HttpError as e:
            if e.resp is not None and e.resp.status in (404, 410):
                return None
            raise ExternalServiceUnavailable("calendar", str(e))
        return parse_google_event(event)

    def _list_upcoming(self, owner_id: str, n: int) -> List[MeetingRecord]:
        try:
            result = self._service(owner_id).events().list(
                calendarId="primary",
                timeMin=datetime.utcnow().isoformat() + "Z",
                maxResults=n,
                singleEvents=True,
                orderBy="startTime",
            ).execute()
        except HttpError as e:
            raise ExternalServiceUnavailable("calendar", str(e))
        return [parse_google_event(item) for item in result.get("items", [])]

    async def get_event_by_id(self, owner_id: str, event_id: str) -> Optional[MeetingRecord]:
        return await service_with_timeout(
            run_blocking(self._get_event, owner_id, event_id), "calendar.get_event_by_id"
        )

    async def list_upcoming(self, owner_id: str, n: int = 10) -> List[MeetingRecord]:
        return await service_with_timeout(
            run_blocking(self._list_upcoming, owner_id, n), "calendar.list_upcoming"
        )
