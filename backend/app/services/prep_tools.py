"""
Prep Tools - Closed registry of data-fetch tools for the generation step

Each tool has a name, a description, a pydantic argument model and an
async handler taking the validated arguments plus a request-scoped
ToolContext. `execute_tool` never raises: unknown names, invalid
arguments and handler failures all return the tool's empty payload with
an `error` key.
"""
from typing import Optional, List, Dict, Any, Callable, Awaitable, Type
from dataclasses import dataclass, field
import logging

from pydantic import BaseModel, Field, ValidationError, model_validator

from app.services.call_history import build_call_history, CALL_HISTORY_LOOKBACK_DAYS
from app.services.crm_store import CrmStore
from app.services.prep_store import PrepStore
from app.utils import run_blocking, service_with_timeout

logger = logging.getLogger(__name__)


@dataclass
class ToolContext:
    """Request-scoped handles passed to every tool handler."""
    owner_id: str
    crm: CrmStore
    store: PrepStore
    calendar: Any = None
    mail: Any = None


# ==========================================
# Argument models
# ==========================================

class CalendarMeetingArgs(BaseModel):
    event_id: str = Field(..., min_length=1, description="Calendar event id")


class ContactLookupArgs(BaseModel):
    email: Optional[str] = Field(None, description="Exact contact email")
    company: Optional[str] = Field(None, description="Account name to list contacts for")
    limit: int = Field(10, ge=1, le=25)

    @model_validator(mode="after")
    def one_criterion(self):
        if not self.email and not self.company:
            raise ValueError("email or company is required")
        return self


class OpportunityLookupArgs(BaseModel):
    account_id: Optional[str] = Field(None, description="Account id")
    account_name: Optional[str] = Field(None, description="Account name (substring)")

    @model_validator(mode="after")
    def one_criterion(self):
        if not self.account_id and not self.account_name:
            raise ValueError("account_id or account_name is required")
        return self


class AccountLookupArgs(BaseModel):
    account_id: Optional[str] = None
    name: Optional[str] = Field(None, description="Account name (substring)")
    domain: Optional[str] = Field(None, description="Website domain, e.g. acme.com")

    @model_validator(mode="after")
    def one_criterion(self):
        if not (self.account_id or self.name or self.domain):
            raise ValueError("account_id, name or domain is required")
        return self


class CallHistoryArgs(BaseModel):
    contact_email: Optional[str] = None
    account_name: Optional[str] = None
    domain: Optional[str] = None
    lookback_days: int = Field(CALL_HISTORY_LOOKBACK_DAYS, ge=1, le=365)
    max_results: int = Field(10, ge=1, le=20)

    @model_validator(mode="after")
    def one_criterion(self):
        if not (self.contact_email or self.account_name or self.domain):
            raise ValueError("contact_email, account_name or domain is required")
        return self


class NotesSearchArgs(BaseModel):
    query: str = Field(..., min_length=1, description="Full-text query over saved notes")
    limit: int = Field(10, ge=1, le=50)


class ThreadSearchArgs(BaseModel):
    q: str = Field("newer_than:7d", description="Mail search query")
    max_results: int = Field(10, ge=1, le=20)


class ThreadReadArgs(BaseModel):
    thread_id: str = Field(..., min_length=1)


# ==========================================
# Handlers
# ==========================================

async def _calendar_meeting_context(args: CalendarMeetingArgs, ctx: ToolContext) -> Dict[str, Any]:
    if not ctx.calendar:
        return {"meeting": None, "error": "calendar not connected"}
    meeting = await ctx.calendar.get_event_by_id(ctx.owner_id, args.event_id)
    return {"meeting": meeting.model_dump(mode="json") if meeting else None}


async def _crm_contact_lookup(args: ContactLookupArgs, ctx: ToolContext) -> Dict[str, Any]:
    contacts = await service_with_timeout(
        run_blocking(ctx.crm.find_contacts, ctx.owner_id, args.email, args.company, args.limit),
        "crm.find_contacts",
    )
    return {"contacts": contacts}


async def _crm_opportunity_lookup(args: OpportunityLookupArgs, ctx: ToolContext) -> Dict[str, Any]:
    def lookup():
        account_ids = [args.account_id] if args.account_id else [
            a["id"] for a in ctx.crm.find_accounts_by_name(ctx.owner_id, args.account_name)
        ]
        opportunities = []
        for account_id in account_ids:
            opportunities.extend(ctx.crm.get_opportunities_for_account(ctx.owner_id, account_id))
        return opportunities

    opportunities = await service_with_timeout(run_blocking(lookup), "crm.opportunities")
    return {"opportunities": opportunities}


async def _crm_account_lookup(args: AccountLookupArgs, ctx: ToolContext) -> Dict[str, Any]:
    def lookup():
        if args.account_id:
            account = ctx.crm.get_account(ctx.owner_id, args.account_id)
            return [account] if account else []
        if args.domain:
            return ctx.crm.find_accounts_by_domain(ctx.owner_id, args.domain)
        return ctx.crm.find_accounts_by_name(ctx.owner_id, args.name)

    accounts = await service_with_timeout(run_blocking(lookup), "crm.accounts")
    return {"accounts": accounts}


async def _call_history_lookup(args: CallHistoryArgs, ctx: ToolContext) -> Dict[str, Any]:
    entries = await service_with_timeout(
        run_blocking(
            build_call_history,
            ctx.crm,
            ctx.store,
            ctx.owner_id,
            contact_email=args.contact_email,
            account_name=args.account_name,
            domain=args.domain,
            lookback_days=args.lookback_days,
            max_results=args.max_results,
        ),
        "store.call_history",
    )
    return {"calls": [e.model_dump(mode="json") for e in entries]}


async def _prep_notes_search(args: NotesSearchArgs, ctx: ToolContext) -> Dict[str, Any]:
    notes = await service_with_timeout(
        run_blocking(ctx.store.search_notes, ctx.owner_id, args.query, args.limit),
        "store.search_notes",
    )
    return {"notes": notes}


async def _message_thread_search(args: ThreadSearchArgs, ctx: ToolContext) -> Dict[str, Any]:
    if not ctx.mail:
        return {"threads": [], "error": "mail not connected"}
    threads = await ctx.mail.search_threads(ctx.owner_id, args.q, args.max_results)
    return {"threads": threads}


async def _message_thread_read(args: ThreadReadArgs, ctx: ToolContext) -> Dict[str, Any]:
    if not ctx.mail:
        return {"thread": None, "error": "mail not connected"}
    thread = await ctx.mail.read_thread(ctx.owner_id, args.thread_id)
    return {"thread": thread}


# ==========================================
# Registry
# ==========================================

@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    args_model: Type[BaseModel]
    handler: Callable[[Any, ToolContext], Awaitable[Dict[str, Any]]]
    empty_result: Dict[str, Any] = field(default_factory=dict)


TOOL_REGISTRY: Dict[str, ToolSpec] = {
    tool.name: tool for tool in (
        ToolSpec(
            "calendar_meeting_context",
            "Fetch full details (title, description, attendees, time) of a calendar event by id.",
            CalendarMeetingArgs, _calendar_meeting_context, {"meeting": None},
        ),
        ToolSpec(
            "crm_contact_lookup",
            "Look up CRM contacts by exact email or by account name.",
            ContactLookupArgs, _crm_contact_lookup, {"contacts": []},
        ),
        ToolSpec(
            "crm_opportunity_lookup",
            "List open and past opportunities of an account, by account id or name.",
            OpportunityLookupArgs, _crm_opportunity_lookup, {"opportunities": []},
        ),
        ToolSpec(
            "crm_account_lookup",
            "Look up CRM accounts by id, name or website domain.",
            AccountLookupArgs, _crm_account_lookup, {"accounts": []},
        ),
        ToolSpec(
            "call_history_lookup",
            "Search prior calls by contact email, account name or domain within a lookback window.",
            CallHistoryArgs, _call_history_lookup, {"calls": []},
        ),
        ToolSpec(
            "prep_notes_search",
            "Full-text search over the user's saved preparation notes.",
            NotesSearchArgs, _prep_notes_search, {"notes": []},
        ),
        ToolSpec(
            "message_thread_search",
            "Search the user's mailbox threads with a mail query (e.g. 'from:ceo@acme.com').",
            ThreadSearchArgs, _message_thread_search, {"threads": []},
        ),
        ToolSpec(
            "message_thread_read",
            "Read the messages of one mail thread by id.",
            ThreadReadArgs, _message_thread_read, {"thread": None},
        ),
    )
}


def tool_names() -> List[str]:
    return list(TOOL_REGISTRY)


def tool_definitions(names: Optional[List[str]] = None) -> List[Dict[str, Any]]:
    """Tool descriptions in the generation service's format."""
    selected = names if names is not None else tool_names()
    return [
        {
            "name": TOOL_REGISTRY[name].name,
            "description": TOOL_REGISTRY[name].description,
            "input_schema": TOOL_REGISTRY[name].args_model.model_json_schema(),
        }
        for name in selected
        if name in TOOL_REGISTRY
    ]


async def execute_tool(name: str, arguments: Optional[Dict[str, Any]], ctx: ToolContext) -> Dict[str, Any]:
    """
    Run a registered tool.

    Returns:
        The handler's result, or the tool's empty payload plus `error`
    """
    tool = TOOL_REGISTRY.get(name)
    if tool is None:
        logger.warning(f"Unknown tool requested: {name}")
        return {"error": f"unknown tool: {name}"}

    try:
        args = tool.args_model.model_validate(arguments or {})
    except ValidationError as e:
        logger.warning(f"Invalid arguments for tool {name}: {e.error_count()} errors")
        return {**tool.empty_result, "error": f"invalid arguments: {e.errors(include_url=False)[0]['msg']}"}

    try:
        result = await tool.handler(args, ctx)
        logger.info(f"Tool {name} executed")
        return result
    except Exception as e:
        logger.warning(f"Tool {name} failed: {e}")
        return {**tool.empty_result, "error": str(e)}
