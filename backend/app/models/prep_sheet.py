"""
Prep Sheet Models

Data shapes shared by the resolution and generation pipeline:
meeting records, extracted signals, match candidates, call context,
methodology weights and the tiered preparation document.
"""

from pydantic import BaseModel, Field, model_validator
from typing import Optional, List, Dict, Any, Literal
from datetime import datetime


MatchReason = Literal["email_match", "name_match", "domain_match", "manual_link", "none", "emergency"]
CallType = Literal["discovery", "demo", "proposal", "negotiation", "closing", "followup"]
DealStage = Literal["prospecting", "qualifying", "developing", "proposing", "negotiating", "closed"]
Bucket = Literal["low", "medium", "high"]
SalesCycle = Literal["short", "medium", "long"]


# ============================================================
# MEETING MODELS
# ============================================================

class MeetingAttendee(BaseModel):
    """Attendee as reported by the calendar provider."""
    email: Optional[str] = None
    display_name: Optional[str] = None
    response_status: Optional[str] = None
    is_organizer: bool = False


class MeetingRecord(BaseModel):
    """A calendar meeting. Attendees may be plain strings or structured entries."""
    id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    all_day: bool = False
    attendees: List[Any] = []
    location: Optional[str] = None
    organizer_email: Optional[str] = None
    status: Optional[str] = None


class MeetingSignals(BaseModel):
    """Comparable signals derived from a meeting. Recomputed per request."""
    title: str = "Meeting"
    attendees: List[MeetingAttendee] = []
    emails: List[str] = []
    domains: List[str] = []
    description: str = ""
    tokens: List[str] = []
    start: Optional[datetime] = None
    end: Optional[datetime] = None


# ============================================================
# RESOLUTION MODELS
# ============================================================

class AccountRef(BaseModel):
    """Reference to a relationship-store account."""
    id: str
    name: Optional[str] = None
    domain: Optional[str] = None
    reason: Optional[str] = None


class ContactRef(BaseModel):
    """Reference to a relationship-store contact."""
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    account_id: Optional[str] = None


class MatchCandidate(BaseModel):
    """Outcome of resolving a meeting against relationship records."""
    account: Optional[AccountRef] = None
    contacts: List[ContactRef] = []
    confidence: int = Field(0, ge=0, le=100)
    match_reason: MatchReason = "none"
    details: Dict[str, Any] = {}
    alternatives: List[AccountRef] = []

    @property
    def matched(self) -> bool:
        return self.confidence >= 40


class ExternalMapping(BaseModel):
    """(integration_kind, external_id) -> local call id, unique per owner."""
    owner_id: str
    integration_kind: str
    external_id: str
    local_call_id: str


# ============================================================
# METHODOLOGY MODELS
# ============================================================

class CallContext(BaseModel):
    """Conversation context derived per generation call. Never persisted."""
    call_type: CallType = "discovery"
    deal_stage: DealStage = "qualifying"
    deal_value: Optional[float] = None
    industry: Optional[str] = None
    company_size: str = "mid-market"
    sales_cycle: SalesCycle = "medium"
    complexity: Bucket = "medium"
    is_new_business: bool = True


class MethodologyWeights(BaseModel):
    """Normalized blend across the six frameworks."""
    meddic: float = Field(0.0, ge=0.0)
    bant: float = Field(0.0, ge=0.0)
    spin: float = Field(0.0, ge=0.0)
    challenger: float = Field(0.0, ge=0.0)
    sandler: float = Field(0.0, ge=0.0)
    solution_selling: float = Field(0.0, ge=0.0)

    def as_dict(self) -> Dict[str, float]:
        return self.model_dump()

    def ranked(self) -> List[str]:
        """Framework keys ordered by weight, highest first."""
        weights = self.as_dict()
        return sorted(weights, key=lambda key: weights[key], reverse=True)


# ============================================================
# CONTEXT MODELS
# ============================================================

class CallHistoryEntry(BaseModel):
    """One prior call joined with its account, contacts and stored prep."""
    id: str
    title: str
    scheduled_at: Optional[datetime] = None
    status: Optional[str] = None
    company_name: Optional[str] = None
    contact_emails: List[str] = []
    prep_summary: Optional[str] = None
    notes: Optional[str] = None


class AccountContext(BaseModel):
    """Everything gathered about a resolved account for the full path."""
    account: Optional[Dict[str, Any]] = None
    contacts: List[Dict[str, Any]] = []
    opportunities: List[Dict[str, Any]] = []
    call_history: List[CallHistoryEntry] = []
    notes: List[Dict[str, Any]] = []
    call: Optional[Dict[str, Any]] = None

    @property
    def primary_opportunity(self) -> Optional[Dict[str, Any]]:
        return self.opportunities[0] if self.opportunities else None


# ============================================================
# DOCUMENT MODELS
# ============================================================

class PrepSection(BaseModel):
    """A section of the preparation document."""
    id: str
    title: str
    content: Any = ""
    editable: bool = False
    expanded: bool = False
    source: Literal["template", "generated", "crm", "user"] = "template"


class PrepSheetMeta(BaseModel):
    title: str
    time_range: Optional[str] = None
    attendees: List[str] = []
    account: Optional[str] = None


class PrepSheet(BaseModel):
    """Tiered preparation document. The notes section is always first."""
    tier: Literal["base", "enriched", "emergency"] = "base"
    meta: PrepSheetMeta
    sections: List[PrepSection]
    banner: Optional[str] = None

    @model_validator(mode="after")
    def notes_section_first(self):
        if not self.sections or self.sections[0].id != "notes":
            raise ValueError("sections[0] must be the notes section")
        if not self.sections[0].editable:
            raise ValueError("notes section must be editable")
        if not self.sections[0].expanded:
            raise ValueError("notes section must be expanded")
        return self


class GenerationResult(BaseModel):
    """Response of a generation request. Always status == success."""
    status: Literal["success"] = "success"
    mode: Literal["partial", "full"] = "partial"
    confidence: int = Field(0, ge=0, le=100)
    matched: bool = False
    match_reason: MatchReason = "none"
    candidates: List[AccountRef] = []
    needs_selection: bool = False
    sheet: PrepSheet
    call_id: Optional[str] = None
    prep_id: Optional[str] = None
    account_id: Optional[str] = None
    methodology: Optional[Dict[str, Any]] = None
    generated_at: datetime = Field(default_factory=datetime.utcnow)


class MeetingRef(BaseModel):
    """What the caller asks a prep sheet for."""
    event_id: Optional[str] = None
    call_id: Optional[str] = None
    meeting: Optional[MeetingRecord] = None
    integration_kind: str = "google_calendar"
    language: str = "en"
