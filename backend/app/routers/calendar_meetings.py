"""
Calendar Meetings Router - Upcoming meetings and idempotent call records
"""
from fastapi import APIRouter, Depends, HTTPException, status, Query
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime, timedelta, timezone
import logging

from app.deps import get_owner_id
from app.models.prep_sheet import MeetingRecord
from app.services.prep_orchestrator import PrepSheetOrchestrator, get_prep_orchestrator
from app.utils import ExternalServiceUnavailable, MeetingUnavailable

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/calendar-meetings", tags=["calendar-meetings"])


# ==========================================
# Pydantic Models
# ==========================================

class UpcomingMeeting(MeetingRecord):
    """Meeting with computed fields."""
    is_now: bool = False
    is_today: bool = False
    is_tomorrow: bool = False


class UpcomingMeetingsResponse(BaseModel):
    meetings: List[UpcomingMeeting]
    total: int


class EnsureCallRequest(BaseModel):
    event_id: str = Field(..., min_length=1)
    integration_kind: str = "google_calendar"
    meeting: Optional[MeetingRecord] = None


class EnsureCallResponse(BaseModel):
    call_id: str
    event_id: str
    title: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    status: Optional[str] = None


# ==========================================
# Helper Functions
# ==========================================

def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def is_meeting_now(start_time: datetime, end_time: Optional[datetime]) -> bool:
    """Check if a meeting is currently happening."""
    if end_time is None:
        return False
    now = datetime.now(timezone.utc)
    return _aware(start_time) <= now <= _aware(end_time)


def is_meeting_today(start_time: datetime) -> bool:
    now = datetime.now(timezone.utc)
    return _aware(start_time).date() == now.date()


def is_meeting_tomorrow(start_time: datetime) -> bool:
    tomorrow = datetime.now(timezone.utc) + timedelta(days=1)
    return _aware(start_time).date() == tomorrow.date()


def _with_flags(meeting: MeetingRecord) -> UpcomingMeeting:
    upcoming = UpcomingMeeting(**meeting.model_dump())
    if meeting.start:
        upcoming.is_now = is_meeting_now(meeting.start, meeting.end)
        upcoming.is_today = is_meeting_today(meeting.start)
        upcoming.is_tomorrow = is_meeting_tomorrow(meeting.start)
    return upcoming


# ==========================================
# Endpoints
# ==========================================

@router.get("/upcoming", response_model=UpcomingMeetingsResponse)
async def list_upcoming_meetings(
    limit: int = Query(10, ge=1, le=50, description="Max results"),
    owner_id: str = Depends(get_owner_id),
    orchestrator: PrepSheetOrchestrator = Depends(get_prep_orchestrator),
):
    """List the user's next calendar meetings."""
    try:
        meetings = await orchestrator.list_upcoming(owner_id, limit)
    except ExternalServiceUnavailable as e:
        logger.error(f"Failed to list upcoming meetings: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Calendar unavailable")
    return UpcomingMeetingsResponse(meetings=[_with_flags(m) for m in meetings], total=len(meetings))


@router.post("/ensure-call", response_model=EnsureCallResponse)
async def ensure_call(
    body: EnsureCallRequest,
    owner_id: str = Depends(get_owner_id),
    orchestrator: PrepSheetOrchestrator = Depends(get_prep_orchestrator),
):
    """Return the local call for a calendar event, creating it on first open."""
    try:
        call = await orchestrator.ensure_call(owner_id, body.integration_kind, body.event_id, body.meeting)
    except MeetingUnavailable:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Meeting not found")
    except ExternalServiceUnavailable as e:
        logger.error(f"Failed to ensure call for {body.event_id}: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service unavailable")

    return EnsureCallResponse(
        call_id=call["id"],
        event_id=body.event_id,
        title=call.get("title"),
        scheduled_at=call.get("scheduled_at"),
        status=call.get("status"),
    )
