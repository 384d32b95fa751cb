"""
Call Context Analyzer - Classify a conversation for methodology weighting

Keyword heuristics on the meeting title, with CRM-derived deal stage,
value, company size and complexity. Absent attributes fall back to fixed
default buckets.
"""

from typing import Optional, Dict, Any, List
import re
import logging

from app.models.prep_sheet import AccountContext, CallContext, MeetingSignals

logger = logging.getLogger(__name__)

# Checked in order; first hit wins
CALL_TYPE_KEYWORDS = [
    ("discovery", ("discovery", "intake", "intro")),
    ("demo", ("demo", "presentation", "walkthrough")),
    ("proposal", ("proposal", "quote", "pricing")),
    ("negotiation", ("negotiation", "contract", "terms")),
    ("closing", ("close", "closing", "signature", "final")),
    ("followup", ("followup", "follow-up", "follow up", "check in", "check-in")),
]

DEAL_STAGE_KEYWORDS = [
    ("prospecting", ("prospect",)),
    ("qualifying", ("qualif", "discovery")),
    ("developing", ("develop", "needs", "analysis")),
    ("proposing", ("proposal", "quote")),
    ("negotiating", ("negotiat", "contract")),
    ("closed", ("closed", "won")),
]

# Default call type once a deal has reached a stage
STAGE_DEFAULT_CALL_TYPE = {
    "prospecting": "discovery",
    "qualifying": "discovery",
    "developing": "demo",
    "proposing": "proposal",
    "negotiating": "negotiation",
    "closed": "followup",
}

REGULATED_INDUSTRIES = ("healthcare", "finance", "government")
COMPLEX_INDUSTRIES = REGULATED_INDUSTRIES + ("manufacturing",)
DEFAULT_COMPANY_SIZE = "mid-market"

_AMOUNT_IN_NAME = re.compile(r"\$([0-9][0-9,]*)(k)?", re.IGNORECASE)


def determine_deal_stage(opportunity: Optional[Dict[str, Any]], call: Optional[Dict[str, Any]] = None) -> str:
    if opportunity and opportunity.get("stage"):
        stage = str(opportunity["stage"]).lower()
        for deal_stage, keywords in DEAL_STAGE_KEYWORDS:
            if any(k in stage for k in keywords):
                return deal_stage
    call_status = (call or {}).get("status")
    if call_status == "completed":
        return "closed"
    if call_status in ("scheduled", "upcoming"):
        return "prospecting"
    return "qualifying"


def determine_call_type(title: str, deal_stage: str, call: Optional[Dict[str, Any]] = None) -> str:
    text = f"{title} {(call or {}).get('call_type') or ''}".lower()
    for call_type, keywords in CALL_TYPE_KEYWORDS:
        if any(k in text for k in keywords):
            return call_type
    return STAGE_DEFAULT_CALL_TYPE.get(deal_stage, "discovery")


def extract_deal_value(opportunity: Optional[Dict[str, Any]]) -> Optional[float]:
    if not opportunity:
        return None
    amount = opportunity.get("amount")
    if isinstance(amount, (int, float)) and not isinstance(amount, bool):
        return float(amount)
    if isinstance(amount, str):
        try:
            return float(amount.replace(",", ""))
        except ValueError:
            pass
    match = _AMOUNT_IN_NAME.search(opportunity.get("name") or "")
    if match:
        value = float(match.group(1).replace(",", ""))
        return value * 1000 if match.group(2) else value
    return None


def determine_company_size(account: Optional[Dict[str, Any]]) -> str:
    if not account:
        return DEFAULT_COMPANY_SIZE
    employees = account.get("employees")
    if isinstance(employees, (int, float)) and employees > 0:
        if employees > 5000:
            return "enterprise"
        if employees > 500:
            return "mid-market"
        if employees > 50:
            return "smb"
        return "startup"
    industry = (account.get("industry") or "").lower()
    if "enterprise" in industry or "fortune" in industry:
        return "enterprise"
    if "startup" in industry or "early-stage" in industry:
        return "startup"
    return DEFAULT_COMPANY_SIZE


def assess_sales_cycle(deal_value: Optional[float], industry: Optional[str], company_size: str) -> str:
    if deal_value is not None and deal_value > 500_000:
        return "long"
    if deal_value is not None and deal_value < 50_000:
        return "short"
    if company_size == "enterprise":
        return "long"
    if company_size == "startup":
        return "short"
    industry_lower = (industry or "").lower()
    if any(k in industry_lower for k in REGULATED_INDUSTRIES):
        return "long"
    return "medium"


def assess_complexity(
    deal_value: Optional[float],
    industry: Optional[str],
    company_size: str,
    contact_count: int
) -> str:
    score = 0
    if deal_value is not None and deal_value > 500_000:
        score += 2
    elif deal_value is not None and deal_value > 100_000:
        score += 1

    if company_size == "enterprise":
        score += 2
    elif company_size == "mid-market":
        score += 1

    if any(k in (industry or "").lower() for k in COMPLEX_INDUSTRIES):
        score += 1

    if contact_count > 5:
        score += 2
    elif contact_count > 2:
        score += 1

    if score >= 4:
        return "high"
    if score >= 2:
        return "medium"
    return "low"


def assess_is_new_business(opportunity: Optional[Dict[str, Any]], previous_interactions: List[Any]) -> bool:
    if previous_interactions:
        return False
    opportunity_type = ((opportunity or {}).get("type") or "").lower()
    if "expansion" in opportunity_type or "renewal" in opportunity_type:
        return False
    return True


def classify_call_context(signals: MeetingSignals, stored: Optional[AccountContext] = None) -> CallContext:
    """
    Derive the CallContext from meeting signals and whatever account data is known.

    Args:
        signals: Extracted meeting signals
        stored: Account context gathered for the full path (None on the partial path)

    Returns:
        CallContext with default buckets for anything unknown
    """
    stored = stored or AccountContext()
    account = stored.account
    opportunity = stored.primary_opportunity

    deal_stage = determine_deal_stage(opportunity, stored.call)
    call_type = determine_call_type(signals.title, deal_stage, stored.call)
    deal_value = extract_deal_value(opportunity)
    industry = (account or {}).get("industry")
    company_size = determine_company_size(account)
    contact_count = max(len(stored.contacts), len(signals.emails))

    context = CallContext(
        call_type=call_type,
        deal_stage=deal_stage,
        deal_value=deal_value,
        industry=industry,
        company_size=company_size,
        sales_cycle=assess_sales_cycle(deal_value, industry, company_size),
        complexity=assess_complexity(deal_value, industry, company_size, contact_count),
        is_new_business=assess_is_new_business(opportunity, stored.call_history),
    )
    logger.debug(f"Call context for '{signals.title}': {context.call_type}/{context.deal_stage}/{context.complexity}")
    return context


def context_summary(context: CallContext) -> str:
    """Human-readable summary used in prompts."""
    value = f"${context.deal_value:,.0f}" if context.deal_value is not None else "Unknown"
    return (
        "**Call Context Analysis:**\n"
        f"- **Call Type:** {context.call_type}\n"
        f"- **Deal Stage:** {context.deal_stage}\n"
        f"- **Deal Value:** {value}\n"
        f"- **Industry:** {context.industry or 'Not specified'}\n"
        f"- **Company Size:** {context.company_size}\n"
        f"- **Sales Cycle:** {context.sales_cycle}\n"
        f"- **Complexity:** {context.complexity}\n"
        f"- **Customer Type:** {'New Business' if context.is_new_business else 'Existing Customer'}"
    )
