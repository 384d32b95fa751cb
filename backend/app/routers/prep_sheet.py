"""
Prep Sheet Router

Generation, regeneration, manual account linking and editable notes.
Generation endpoints always answer 200 with a renderable sheet; only
request validation, auth and rate limiting produce other statuses.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, model_validator
from typing import Optional
from datetime import datetime
import logging
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.deps import get_owner_id
from app.inngest.events import send_event, use_inngest_for, Events
from app.models.prep_sheet import GenerationResult, MeetingRecord, MeetingRef
from app.services.prep_orchestrator import PrepSheetOrchestrator, get_prep_orchestrator
from app.utils import AccountNotFound, ExternalServiceUnavailable

logger = logging.getLogger(__name__)

# Rate limiter
limiter = Limiter(key_func=get_remote_address)

router = APIRouter(prefix="/api/v1/prep-sheet", tags=["prep-sheet"])


# ==========================================
# Pydantic Models
# ==========================================

class GeneratePrepSheetRequest(BaseModel):
    event_id: Optional[str] = None
    call_id: Optional[str] = None
    meeting: Optional[MeetingRecord] = None
    integration_kind: str = "google_calendar"
    language: Optional[str] = "en"

    @model_validator(mode="after")
    def has_reference(self):
        if not (self.event_id or self.call_id or self.meeting):
            raise ValueError("event_id, call_id or meeting is required")
        return self

    def to_ref(self) -> MeetingRef:
        return MeetingRef(
            event_id=self.event_id,
            call_id=self.call_id,
            meeting=self.meeting,
            integration_kind=self.integration_kind,
            language=self.language or "en",
        )


class RegeneratePrepSheetRequest(GeneratePrepSheetRequest):
    background: bool = False


class LinkAccountRequest(BaseModel):
    event_id: str = Field(..., min_length=1)
    account_id: str = Field(..., min_length=1)
    language: Optional[str] = "en"


class NotesRequest(BaseModel):
    text: str = Field("", max_length=20000)


class NotesResponse(BaseModel):
    event_id: str
    text: str
    updated_at: Optional[datetime] = None


# ==========================================
# Endpoints
# ==========================================

@router.post("/generate", response_model=GenerationResult)
@limiter.limit("10/minute")
async def generate_prep_sheet(
    request: Request,  # Required for rate limiting (must be named 'request')
    body: GeneratePrepSheetRequest,
    owner_id: str = Depends(get_owner_id),
    orchestrator: PrepSheetOrchestrator = Depends(get_prep_orchestrator),
):
    """Generate the prep sheet for a meeting (partial or full, by match)."""
    return await orchestrator.generate_prep_sheet(
        owner_id, body.to_ref(), mode="auto", is_cancelled=request.is_disconnected
    )


@router.post("/regenerate", response_model=GenerationResult)
@limiter.limit("10/minute")
async def regenerate_prep_sheet(
    request: Request,
    body: RegeneratePrepSheetRequest,
    owner_id: str = Depends(get_owner_id),
    orchestrator: PrepSheetOrchestrator = Depends(get_prep_orchestrator),
):
    """
    Regenerate a prep sheet, reusing the account already resolved for the call.

    With background=true and Inngest enabled the work is queued and 202 is returned.
    """
    if body.background and use_inngest_for("prep_sheet"):
        sent = await send_event(Events.PREP_SHEET_REGENERATE_REQUESTED, {
            "owner_id": owner_id,
            "event_id": body.event_id,
            "call_id": body.call_id,
            "language": body.language or "en",
        })
        if sent:
            return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content={"status": "queued"})
        logger.warning("Could not queue regeneration, running inline")

    return await orchestrator.generate_prep_sheet(
        owner_id, body.to_ref(), mode="regenerate", is_cancelled=request.is_disconnected
    )


@router.post("/link-account", response_model=GenerationResult)
@limiter.limit("10/minute")
async def link_account(
    request: Request,
    body: LinkAccountRequest,
    owner_id: str = Depends(get_owner_id),
    orchestrator: PrepSheetOrchestrator = Depends(get_prep_orchestrator),
):
    """Pin a meeting to one of the suggested accounts and return the full sheet."""
    try:
        return await orchestrator.link_account(
            owner_id, body.event_id, body.account_id, body.language or "en",
            is_cancelled=request.is_disconnected,
        )
    except AccountNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
    except ExternalServiceUnavailable as e:
        logger.error(f"Failed to link event {body.event_id}: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Storage unavailable")


@router.get("/notes/{event_id}", response_model=NotesResponse)
async def get_notes(
    event_id: str,
    owner_id: str = Depends(get_owner_id),
    orchestrator: PrepSheetOrchestrator = Depends(get_prep_orchestrator),
):
    try:
        text = await orchestrator.get_notes(owner_id, event_id)
    except ExternalServiceUnavailable as e:
        logger.error(f"Failed to load notes for {event_id}: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Storage unavailable")
    return NotesResponse(event_id=event_id, text=text)


@router.put("/notes/{event_id}", response_model=NotesResponse)
async def save_notes(
    event_id: str,
    body: NotesRequest,
    owner_id: str = Depends(get_owner_id),
    orchestrator: PrepSheetOrchestrator = Depends(get_prep_orchestrator),
):
    """Create or replace the user's note for a meeting."""
    try:
        row = await orchestrator.save_notes(owner_id, event_id, body.text)
    except ExternalServiceUnavailable as e:
        logger.error(f"Failed to save notes for {event_id}: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Storage unavailable")
    return NotesResponse(event_id=event_id, text=row.get("text", body.text), updated_at=row.get("updated_at"))
