"""
Meeting Prep Generator Service

Generates the AI part of a prep sheet. Partial mode sees only the meeting
signals; full mode sees the account context, the methodology blend and
may call registry tools through the context aggregator.
"""

from typing import Dict, Any, List, Optional
import re
import logging

from app.i18n.utils import get_language_instruction
from app.i18n.config import DEFAULT_LANGUAGE
from app.models.prep_sheet import (
    AccountContext,
    CallContext,
    MatchCandidate,
    MeetingSignals,
    MethodologyWeights,
)
from app.services.call_context_analyzer import context_summary
from app.services.context_aggregator import ContextAggregator, ToolRunResult, CancelCheck
from app.services.generation_client import Conversation, GenerationClient
from app.services.methodology import methodology_instructions, structured_output_format

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a smart, experienced sales preparation expert. You deliver commercial intelligence, not sales pitches.

Your goal: a sharp, strategically relevant and to-the-point call preparation for an upcoming client meeting.
Be businesslike, concise and strategic. Never invent facts about the prospect; say what is unknown."""

# Heading text -> section id used by the document builder
SECTION_ALIASES = {
    "objectives": "objectives",
    "objective": "objectives",
    "goals": "objectives",
    "suggested agenda": "agenda",
    "agenda": "agenda",
    "discovery questions": "discovery_questions",
    "questions": "discovery_questions",
    "next steps": "next_steps",
    "opportunity overview": "overview",
    "meddic qualification": "meddic",
    "bant assessment": "bant",
    "challenger insights": "challenger",
    "objection handling": "objections",
}

_HEADING = re.compile(r"^#{1,3}\s+(.+?)\s*$")
_BULLET = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+")


def _slug(title: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", title.lower()).strip("_") or "section"


def _section_content(lines: List[str]) -> Any:
    """Bullet-only blocks become a list of items; anything else stays text."""
    body = [line for line in lines if line.strip()]
    if body and all(_BULLET.match(line) for line in body):
        return [_BULLET.sub("", line).strip() for line in body]
    return "\n".join(lines).strip()


def parse_sections(text: str) -> List[Dict[str, Any]]:
    """
    Split generated markdown into sections on headings.

    Returns:
        [{"id", "title", "content"}] in document order; text before the first
        heading becomes an "overview" section.
    """
    sections: List[Dict[str, Any]] = []
    title: Optional[str] = None
    lines: List[str] = []

    def flush():
        content = _section_content(lines)
        if title is None and not content:
            return
        heading = title or "Overview"
        clean = heading.split("(")[0].strip("*# \t")
        section_id = SECTION_ALIASES.get(clean.lower(), _slug(clean))
        if content:
            sections.append({"id": section_id, "title": clean, "content": content})

    for line in (text or "").splitlines():
        match = _HEADING.match(line)
        if match:
            flush()
            title = match.group(1)
            lines = []
        else:
            lines.append(line)
    flush()
    return sections


class PrepGeneratorService:
    """Service for generating the AI sections of a prep sheet"""

    def __init__(self, client: GenerationClient, aggregator: ContextAggregator):
        self.client = client
        self.aggregator = aggregator

    # ==========================================
    # Prompts
    # ==========================================

    def _meeting_block(self, signals: MeetingSignals) -> str:
        block = f"**Meeting**: {signals.title}\n"
        if signals.start:
            block += f"**When**: {signals.start.isoformat()}\n"
        if signals.emails:
            block += f"**Attendees**: {', '.join(signals.emails)}\n"
        if signals.description:
            block += f"**Invite description**:\n{signals.description[:2000]}\n"
        return block

    def build_partial_prompt(
        self,
        signals: MeetingSignals,
        candidate: Optional[MatchCandidate] = None,
        language: str = DEFAULT_LANGUAGE
    ) -> str:
        prompt = "Prepare me for this meeting. No CRM account is linked yet, so work from the invite only.\n\n"
        prompt += self._meeting_block(signals)

        if candidate and (candidate.account or candidate.alternatives):
            names = [a.name for a in ([candidate.account] if candidate.account else []) + candidate.alternatives if a.name]
            if names:
                prompt += f"\nPossibly related accounts (unconfirmed): {', '.join(names[:3])}\n"

        prompt += """
**Structure your response with these sections:**

## Objectives
## Suggested Agenda
## Discovery Questions
## Next Steps

Use short bullet points under each heading.
"""
        prompt += f"\n{get_language_instruction(language)}"
        return prompt

    def _format_account(self, stored: AccountContext) -> str:
        account = stored.account or {}
        text = "## CRM Context\n\n"
        text += f"**Account**: {account.get('name', 'Unknown')}\n"
        if account.get("industry"):
            text += f"**Industry**: {account['industry']}\n"
        if account.get("description"):
            text += f"**About**: {account['description'][:500]}\n"

        if stored.contacts:
            text += "\n**Known contacts**:\n"
            for contact in stored.contacts[:10]:
                name = " ".join(p for p in (contact.get("first_name"), contact.get("last_name")) if p)
                text += f"- {name or contact.get('email')} ({contact.get('title') or contact.get('role') or 'role unknown'})\n"

        if stored.opportunities:
            text += "\n**Opportunities**:\n"
            for opportunity in stored.opportunities[:5]:
                text += f"- {opportunity.get('name')}: stage {opportunity.get('stage') or 'unknown'}"
                if opportunity.get("amount"):
                    text += f", amount {opportunity['amount']}"
                text += "\n"

        if stored.call_history:
            text += "\n**Previous calls**:\n"
            for entry in stored.call_history[:5]:
                when = entry.scheduled_at.date().isoformat() if entry.scheduled_at else "date unknown"
                text += f"- {when}: {entry.title}"
                if entry.prep_summary:
                    text += f" (prep: {entry.prep_summary[:200]})"
                text += "\n"

        if stored.notes:
            text += "\n**Related notes**:\n"
            for note in stored.notes[:5]:
                text += f"- {(note.get('text') or '')[:300]}\n"
        return text

    def build_full_prompt(
        self,
        signals: MeetingSignals,
        stored: AccountContext,
        call_context: CallContext,
        weights: MethodologyWeights,
        language: str = DEFAULT_LANGUAGE
    ) -> str:
        prompt = "Prepare me for this call with a known account.\n\n"
        prompt += self._meeting_block(signals) + "\n"
        prompt += self._format_account(stored) + "\n"
        prompt += context_summary(call_context) + "\n\n"
        prompt += methodology_instructions(call_context, weights)
        prompt += "You may use the available tools to look up missing CRM data, prior calls, saved notes or recent mail threads.\n"
        prompt += structured_output_format(weights)
        prompt += f"\n{get_language_instruction(language)}"
        return prompt

    # ==========================================
    # Generation
    # ==========================================

    async def generate_partial(
        self,
        signals: MeetingSignals,
        candidate: Optional[MatchCandidate] = None,
        language: str = DEFAULT_LANGUAGE
    ) -> str:
        """Single generation call from meeting signals only. Raises on failure."""
        logger.info(f"Generating partial prep for '{signals.title}'")
        turn = await self.client.run_turn(
            SYSTEM_PROMPT,
            Conversation(self.build_partial_prompt(signals, candidate, language)),
        )
        if not turn.text.strip():
            raise ValueError("empty generation")
        logger.info(f"Generated partial prep ({len(turn.text)} chars)")
        return turn.text

    async def generate_full(
        self,
        owner_id: str,
        signals: MeetingSignals,
        stored: AccountContext,
        call_context: CallContext,
        weights: MethodologyWeights,
        language: str = DEFAULT_LANGUAGE,
        is_cancelled: Optional[CancelCheck] = None
    ) -> ToolRunResult:
        """Tool-enabled generation for a resolved account. Raises on failure."""
        account_name = (stored.account or {}).get("name", "unknown account")
        logger.info(f"Generating full prep for '{signals.title}' ({account_name}, {call_context.call_type})")
        result = await self.aggregator.run_with_tools(
            self.client,
            SYSTEM_PROMPT,
            self.build_full_prompt(signals, stored, call_context, weights, language),
            owner_id,
            is_cancelled=is_cancelled,
        )
        if not result.text.strip():
            raise ValueError("empty generation")
        logger.info(f"Generated full prep ({len(result.text)} chars, {result.rounds} tool rounds)")
        return result
