"""
Prep Sheet Builder - Tiered preparation documents

Three tiers, all starting with the pinned, editable notes section:
- base: generic sections shaped by the meeting title and invite
- enriched: base plus a CRM Insights section right after notes
- emergency: notes only

`decide_tier` is a pure function from pipeline outcomes to the tier.
"""
from typing import Optional, List, Dict, Any, Union
from dataclasses import dataclass
import re

from app.i18n.config import DEFAULT_LANGUAGE
from app.i18n.utils import get_banner_text, get_section_title
from app.models.prep_sheet import AccountContext, MeetingSignals, PrepSection, PrepSheet, PrepSheetMeta
from app.services.signal_extractor import DEFAULT_TITLE

MAX_AGENDA_ITEMS = 12
GENERIC_SECTION_IDS = ("objectives", "agenda", "discovery_questions", "next_steps")

_AGENDA_LINE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(.+)$")


# ============================================================
# Tier decision
# ============================================================

@dataclass(frozen=True)
class BaseTier:
    use_generated: bool = False


@dataclass(frozen=True)
class EnrichedTier:
    use_generated: bool = False


@dataclass(frozen=True)
class EmergencyTier:
    pass


Tier = Union[BaseTier, EnrichedTier, EmergencyTier]


def decide_tier(
    meeting_loaded: bool,
    matched: bool,
    account_loaded: bool,
    generation_succeeded: bool
) -> Tier:
    if not meeting_loaded:
        return EmergencyTier()
    if matched and account_loaded:
        return EnrichedTier(use_generated=generation_succeeded)
    return BaseTier(use_generated=generation_succeeded)


# ============================================================
# Sections
# ============================================================

def notes_section(notes_text: Optional[str] = None, language: str = DEFAULT_LANGUAGE) -> PrepSection:
    return PrepSection(
        id="notes",
        title=get_section_title("notes", language),
        content=notes_text or "",
        editable=True,
        expanded=True,
        source="user",
    )


def agenda_from_description(description: Optional[str]) -> List[str]:
    """Bullet or numbered lines of the invite description, at most 12."""
    items = []
    for line in (description or "").splitlines():
        match = _AGENDA_LINE.match(line)
        if match and match.group(1).strip():
            items.append(match.group(1).strip())
        if len(items) >= MAX_AGENDA_ITEMS:
            break
    return items


def _generic_content(section_id: str, signals: MeetingSignals) -> List[str]:
    title = signals.title or DEFAULT_TITLE
    if section_id == "objectives":
        return [
            f"Confirm the purpose and expected outcome of \"{title}\"",
            "Understand the attendees' current priorities",
            "Agree on a concrete next step before the call ends",
        ]
    if section_id == "agenda":
        return agenda_from_description(signals.description) or [
            "Introductions and goals for the call (5 min)",
            f"Discussion: {title} (20 min)",
            "Open questions (5 min)",
            "Next steps (5 min)",
        ]
    if section_id == "discovery_questions":
        return [
            "What prompted this conversation now?",
            "How is this handled today, and what is not working?",
            "Who else is involved in deciding on this?",
            "What would a successful outcome look like for you?",
            "What timeline are you working towards?",
        ]
    return [
        "Send a short recap with agreed actions",
        "Schedule the follow-up meeting",
        "Update the CRM with what you learned",
    ]


def _time_range(signals: MeetingSignals) -> Optional[str]:
    if not signals.start:
        return None
    start = signals.start.strftime("%Y-%m-%d %H:%M")
    if signals.end:
        return f"{start} - {signals.end.strftime('%H:%M')}"
    return start


def _meta(signals: MeetingSignals, account_name: Optional[str] = None) -> PrepSheetMeta:
    attendees = [a.display_name or a.email for a in signals.attendees if a.display_name or a.email]
    return PrepSheetMeta(
        title=signals.title or DEFAULT_TITLE,
        time_range=_time_range(signals),
        attendees=attendees,
        account=account_name,
    )


def _body_sections(
    signals: MeetingSignals,
    generated: Optional[List[Dict[str, Any]]],
    language: str
) -> List[PrepSection]:
    """Generic sections, with generated content taking over matching ids."""
    # first section wins when a heading repeats
    by_id: Dict[str, Dict[str, Any]] = {}
    for s in generated or []:
        by_id.setdefault(s["id"], s)
    sections = []
    for section_id in GENERIC_SECTION_IDS:
        if section_id in by_id:
            sections.append(PrepSection(
                id=section_id,
                title=get_section_title(section_id, language),
                content=by_id[section_id]["content"],
                expanded=True,
                source="generated",
            ))
        else:
            sections.append(PrepSection(
                id=section_id,
                title=get_section_title(section_id, language),
                content=_generic_content(section_id, signals),
                expanded=section_id == "objectives",
                source="template",
            ))

    extras = [
        PrepSection(id=s["id"], title=s["title"], content=s["content"], source="generated")
        for section_id, s in by_id.items()
        if section_id not in GENERIC_SECTION_IDS and section_id not in ("notes", "crm_insights")
    ]
    # next steps stays last
    return sections[:-1] + extras + sections[-1:]


def crm_insights_section(stored: AccountContext, language: str = DEFAULT_LANGUAGE) -> PrepSection:
    account = stored.account or {}
    contacts = []
    for contact in stored.contacts[:10]:
        name = " ".join(p for p in (contact.get("first_name"), contact.get("last_name")) if p)
        contacts.append({"name": name or None, "email": contact.get("email"), "title": contact.get("title")})

    opportunity = stored.primary_opportunity
    content = {
        "account": account.get("name"),
        "industry": account.get("industry"),
        "contacts": contacts,
        "opportunity": {
            "name": opportunity.get("name"),
            "stage": opportunity.get("stage"),
            "amount": opportunity.get("amount"),
        } if opportunity else None,
        "previous_calls": [
            {
                "title": entry.title,
                "scheduled_at": entry.scheduled_at.isoformat() if entry.scheduled_at else None,
                "status": entry.status,
            }
            for entry in stored.call_history[:5]
        ],
    }
    return PrepSection(
        id="crm_insights",
        title=get_section_title("crm_insights", language),
        content=content,
        expanded=True,
        source="crm",
    )


# ============================================================
# Builders
# ============================================================

def build_base(
    signals: MeetingSignals,
    notes_text: Optional[str] = None,
    generated: Optional[List[Dict[str, Any]]] = None,
    language: str = DEFAULT_LANGUAGE,
    banner: Optional[str] = None
) -> PrepSheet:
    """Notes plus generic sections; used when no account is resolved."""
    return PrepSheet(
        tier="base",
        meta=_meta(signals),
        sections=[notes_section(notes_text, language)] + _body_sections(signals, generated, language),
        banner=banner,
    )


def build_enriched(
    stored: AccountContext,
    signals: MeetingSignals,
    notes_text: Optional[str] = None,
    generated: Optional[List[Dict[str, Any]]] = None,
    language: str = DEFAULT_LANGUAGE
) -> PrepSheet:
    """Base sheet with CRM Insights inserted right after notes."""
    sheet = build_base(signals, notes_text, generated, language)
    sections = list(sheet.sections)
    sections.insert(1, crm_insights_section(stored, language))
    return PrepSheet(
        tier="enriched",
        meta=_meta(signals, (stored.account or {}).get("name")),
        sections=sections,
    )


def build_emergency(
    title: Optional[str] = None,
    notes_text: Optional[str] = None,
    language: str = DEFAULT_LANGUAGE
) -> PrepSheet:
    """Notes only. Must not depend on anything that can fail."""
    return PrepSheet(
        tier="emergency",
        meta=PrepSheetMeta(title=title or DEFAULT_TITLE),
        sections=[notes_section(notes_text, language)],
        banner=get_banner_text("emergency", language),
    )


def build_for_tier(
    tier: Tier,
    signals: Optional[MeetingSignals],
    stored: Optional[AccountContext] = None,
    generated: Optional[List[Dict[str, Any]]] = None,
    notes_text: Optional[str] = None,
    language: str = DEFAULT_LANGUAGE,
    banner: Optional[str] = None
) -> PrepSheet:
    if isinstance(tier, EmergencyTier) or signals is None:
        return build_emergency(signals.title if signals else None, notes_text, language)
    sections = generated if tier.use_generated else None
    if isinstance(tier, EnrichedTier):
        return build_enriched(stored or AccountContext(), signals, notes_text, sections, language)
    return build_base(signals, notes_text, sections, language, banner)


def selection_banner(signals: MeetingSignals, language: str = DEFAULT_LANGUAGE) -> str:
    banner = get_banner_text("no_account", language)
    if not signals.emails:
        banner += " " + get_banner_text("no_attendees", language)
    return banner
