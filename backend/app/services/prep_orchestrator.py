"""
Prep Sheet Orchestrator - Resolution and generation pipeline

Sequences: load meeting -> ensure call -> extract signals -> resolve
account -> partial (no account) or full (matched) generation -> build
document -> persist.

generate_prep_sheet always returns a successful GenerationResult with a
renderable sheet. Any failure inside the pipeline lowers the document
tier; an unexpected exception yields the emergency sheet.
"""
from typing import Optional, List, Dict, Any
from dataclasses import dataclass
from functools import lru_cache
import logging

from app.database import get_supabase_service
from app.i18n.utils import resolve_language
from app.models.prep_sheet import (
    AccountRef,
    GenerationResult,
    MatchCandidate,
    MeetingRecord,
    MeetingRef,
    MeetingSignals,
    PrepSheet,
)
from app.services.account_resolver import AccountResolver, MATCH_THRESHOLD
from app.services.call_context_analyzer import classify_call_context
from app.services.call_mapping import CallMappingService
from app.services.context_aggregator import ContextAggregator, CancelCheck, raise_if_cancelled, MAX_TOOL_ROUNDS
from app.services.crm_store import CrmStore
from app.services.generation_client import AnthropicGenerationClient, GenerationClient
from app.services.gmail_service import GmailService
from app.services.google_calendar import GoogleCalendarService
from app.services.methodology import compute_methodology_weights, methodology_summary
from app.services.prep_generator import PrepGeneratorService, parse_sections
from app.services.prep_sheet_builder import (
    build_base,
    build_emergency,
    build_enriched,
    build_for_tier,
    decide_tier,
    selection_banner,
)
from app.services.prep_store import PrepStore
from app.services.signal_extractor import extract_signals
from app.utils import (
    AccountNotFound,
    GenerationCancelled,
    MeetingUnavailable,
    run_blocking,
    service_with_timeout,
)

logger = logging.getLogger(__name__)

MAX_CANDIDATES = 3


@dataclass
class _RunState:
    """What the pipeline knows so far; used to answer on cancel or failure."""
    event_id: Optional[str] = None
    signals: Optional[MeetingSignals] = None
    notes_text: Optional[str] = None
    call: Optional[Dict[str, Any]] = None
    best: Optional[PrepSheet] = None
    mode: str = "partial"
    candidate: Optional[MatchCandidate] = None


class PrepSheetOrchestrator:
    """Entry point for prep sheet generation, account linking and notes."""

    def __init__(
        self,
        crm: CrmStore,
        store: PrepStore,
        calendar=None,
        mail=None,
        client: Optional[GenerationClient] = None,
        max_tool_rounds: int = MAX_TOOL_ROUNDS
    ):
        self.crm = crm
        self.store = store
        self.calendar = calendar
        self.mail = mail
        self.resolver = AccountResolver(crm, store, mail)
        self.aggregator = ContextAggregator(crm, store, calendar, mail, max_tool_rounds)
        self.generator = PrepGeneratorService(client, self.aggregator)
        self.mapping = CallMappingService(store)

    # ==========================================
    # Storage helpers
    # ==========================================

    async def _storage(self, name: str, func, *args, **kwargs):
        return await service_with_timeout(run_blocking(func, *args, **kwargs), name)

    async def _try_storage(self, name: str, func, *args, default=None, **kwargs):
        try:
            return await self._storage(name, func, *args, **kwargs)
        except Exception as e:
            logger.warning(f"Storage step {name} failed: {e}")
            return default

    async def _user_note(self, owner_id: str, event_id: Optional[str]) -> Optional[str]:
        if not event_id:
            return None
        note = await self._try_storage("store.get_note", self.store.get_note, owner_id, event_id, "user")
        return (note or {}).get("text")

    # ==========================================
    # Meeting loading
    # ==========================================

    async def _load_meeting(self, owner_id: str, ref: MeetingRef, state: _RunState) -> MeetingRecord:
        if ref.call_id:
            call = await self._try_storage("store.get_call", self.store.get_call, ref.call_id)
            if call and call.get("owner_id") != owner_id:
                logger.warning(f"Call {ref.call_id} does not belong to the requesting owner")
                call = None
            state.call = call

        event_id = ref.event_id or (ref.meeting.id if ref.meeting else None) or (state.call or {}).get("external_id")
        state.event_id = event_id

        if ref.meeting:
            return ref.meeting

        if event_id and self.calendar:
            try:
                meeting = await self.calendar.get_event_by_id(owner_id, event_id)
                if meeting:
                    return meeting
                logger.warning(f"Calendar has no event {event_id}")
            except Exception as e:
                logger.warning(f"Calendar lookup failed for {event_id}: {e}")

        if state.call:
            return MeetingRecord(
                id=event_id,
                title=state.call.get("title"),
                start=state.call.get("scheduled_at"),
            )
        raise MeetingUnavailable(event_id or ref.call_id or "unknown")

    # ==========================================
    # Resolution
    # ==========================================

    async def _manual_candidate(self, owner_id: str, state: _RunState, mode: str) -> Optional[MatchCandidate]:
        account_id = None
        reason = "manual_link"
        confidence = 100
        if state.event_id:
            link = await self._try_storage(
                "store.get_event_account_link", self.store.get_event_account_link, owner_id, state.event_id
            )
            account_id = (link or {}).get("account_id")
        if not account_id and mode == "regenerate" and (state.call or {}).get("account_id"):
            account_id = state.call["account_id"]
            stored_reason = state.call.get("match_reason")
            if stored_reason in ("email_match", "name_match", "domain_match"):
                reason = stored_reason
            confidence = max(MATCH_THRESHOLD, min(100, int(state.call.get("match_confidence") or 100)))
        if not account_id:
            return None
        account = await self._try_storage("crm.get_account", self.crm.get_account, owner_id, account_id)
        if not account:
            logger.warning(f"Stored account {account_id} is not available to this owner; resolving instead")
            return None
        return MatchCandidate(
            account=AccountRef(id=account_id, name=account.get("name"), reason=reason),
            confidence=confidence,
            match_reason=reason,
            details={"source": "link" if reason == "manual_link" else "stored_call"},
        )

    def _candidates(self, candidate: MatchCandidate) -> List[AccountRef]:
        refs = ([candidate.account] if candidate.account else []) + list(candidate.alternatives)
        return refs[:MAX_CANDIDATES]

    # ==========================================
    # Pipeline
    # ==========================================

    async def generate_prep_sheet(
        self,
        owner_id: str,
        ref: MeetingRef,
        mode: str = "auto",
        is_cancelled: Optional[CancelCheck] = None
    ) -> GenerationResult:
        """
        Generate (or regenerate) the prep sheet for a meeting.

        Args:
            owner_id: Requesting user
            ref: Event id, stored call id or an inline meeting record
            mode: "auto" or "regenerate"
            is_cancelled: Async check polled between steps

        Returns:
            GenerationResult, always with status "success"
        """
        language = resolve_language(ref.language)
        state = _RunState()
        try:
            return await self._run(owner_id, ref, mode, language, state, is_cancelled)
        except GenerationCancelled:
            logger.info(f"Prep sheet generation cancelled for event {state.event_id}")
            return self._best_effort(state, language)
        except Exception as e:
            logger.error(f"Prep sheet generation failed for event {state.event_id}: {e}", exc_info=True)
            return self._emergency(state, language)

    async def _run(
        self,
        owner_id: str,
        ref: MeetingRef,
        mode: str,
        language: str,
        state: _RunState,
        is_cancelled: Optional[CancelCheck]
    ) -> GenerationResult:
        await raise_if_cancelled(is_cancelled)
        meeting = await self._load_meeting(owner_id, ref, state)
        signals = extract_signals(meeting)
        state.signals = signals
        state.notes_text = await self._user_note(owner_id, state.event_id)
        state.best = build_base(signals, state.notes_text, language=language)

        await raise_if_cancelled(is_cancelled)
        # a call loaded by id is already the local record for this meeting
        if state.event_id and not (ref.call_id and state.call):
            try:
                state.call = await self.mapping.ensure_call(
                    owner_id, ref.integration_kind, state.event_id, signals,
                    account_id=(state.call or {}).get("account_id"),
                )
            except Exception as e:
                logger.warning(f"Could not ensure call for event {state.event_id}: {e}")

        await raise_if_cancelled(is_cancelled)
        candidate = await self._manual_candidate(owner_id, state, mode)
        if candidate is None:
            candidate = await self.resolver.resolve(
                signals, owner_id, exclude_call_id=(state.call or {}).get("id")
            )
        state.candidate = candidate

        await raise_if_cancelled(is_cancelled)
        if candidate.matched and candidate.account:
            state.mode = "full"
            result = await self._full(owner_id, signals, candidate, language, state, is_cancelled)
        else:
            result = await self._partial(owner_id, signals, candidate, language, state)

        logger.info(
            f"prep-sheet generation complete mode={result.mode} resolver={result.match_reason} "
            f"candidateCount={len(result.candidates)} event={state.event_id} tier={result.sheet.tier}"
        )
        return result

    async def _full(
        self,
        owner_id: str,
        signals: MeetingSignals,
        candidate: MatchCandidate,
        language: str,
        state: _RunState,
        is_cancelled: Optional[CancelCheck]
    ) -> GenerationResult:
        account_id = candidate.account.id
        call_id = (state.call or {}).get("id")
        if call_id:
            await self._try_storage("store.update_call", self.store.update_call, call_id, {
                "account_id": account_id,
                "match_confidence": candidate.confidence,
                "match_reason": candidate.match_reason,
            })
            state.call = {**state.call, "account_id": account_id}

        stored = await self.aggregator.gather_account_context(owner_id, account_id, signals, state.call)
        if stored.account:
            state.best = build_enriched(stored, signals, state.notes_text, language=language)
        call_context = classify_call_context(signals, stored)
        weights = compute_methodology_weights(call_context)

        await raise_if_cancelled(is_cancelled)
        generated_text = None
        tool_log: List[Dict[str, Any]] = []
        if stored.account:
            try:
                run = await self.generator.generate_full(
                    owner_id, signals, stored, call_context, weights, language, is_cancelled
                )
                generated_text = run.text
                tool_log = run.tool_log
            except GenerationCancelled:
                raise
            except Exception as e:
                logger.warning(f"Full generation failed for account {account_id}, using template: {e}")

        tier = decide_tier(True, True, stored.account is not None, generated_text is not None)
        sections = parse_sections(generated_text) if generated_text else None
        sheet = build_for_tier(tier, signals, stored, sections, state.notes_text, language)
        methodology = methodology_summary(weights)

        prep_id = None
        if call_id:
            await raise_if_cancelled(is_cancelled)
            prep = await self._try_storage("store.upsert_prep", self.store.upsert_prep, call_id, {
                "owner_id": owner_id,
                "account_id": account_id,
                "event_id": state.event_id,
                "mode": "full",
                "confidence": candidate.confidence,
                "match_reason": candidate.match_reason,
                "sheet": sheet.model_dump(mode="json"),
                "generated_text": generated_text,
                "methodology": methodology,
                "tool_log": tool_log,
            })
            prep_id = (prep or {}).get("id")

        account = candidate.account
        if stored.account:
            account = AccountRef(
                id=account_id,
                name=stored.account.get("name"),
                domain=account.domain,
                reason=account.reason,
            )
        return GenerationResult(
            mode="full",
            confidence=candidate.confidence,
            matched=True,
            match_reason=candidate.match_reason,
            candidates=[account],
            needs_selection=False,
            sheet=sheet,
            call_id=call_id,
            prep_id=prep_id,
            account_id=account_id,
            methodology=methodology,
        )

    async def _partial(
        self,
        owner_id: str,
        signals: MeetingSignals,
        candidate: MatchCandidate,
        language: str,
        state: _RunState
    ) -> GenerationResult:
        generated_text = None
        try:
            generated_text = await self.generator.generate_partial(signals, candidate, language)
        except Exception as e:
            logger.warning(f"Partial generation failed for '{signals.title}', using template: {e}")

        tier = decide_tier(True, False, False, generated_text is not None)
        sections = parse_sections(generated_text) if generated_text else None
        sheet = build_for_tier(
            tier, signals, None, sections, state.notes_text, language, banner=selection_banner(signals, language)
        )

        if generated_text and state.event_id:
            await self._try_storage(
                "store.upsert_note", self.store.upsert_note, owner_id, state.event_id, generated_text, "generated"
            )

        return GenerationResult(
            mode="partial",
            confidence=candidate.confidence,
            matched=candidate.matched,
            match_reason=candidate.match_reason,
            candidates=self._candidates(candidate),
            needs_selection=True,
            sheet=sheet,
            call_id=(state.call or {}).get("id"),
        )

    def _best_effort(self, state: _RunState, language: str) -> GenerationResult:
        if state.best is None:
            return self._emergency(state, language)
        candidate = state.candidate or MatchCandidate()
        return GenerationResult(
            mode=state.mode,
            confidence=candidate.confidence,
            matched=candidate.matched,
            match_reason=candidate.match_reason,
            candidates=self._candidates(candidate),
            needs_selection=not candidate.matched,
            sheet=state.best,
            call_id=(state.call or {}).get("id"),
        )

    def _emergency(self, state: _RunState, language: str) -> GenerationResult:
        title = state.signals.title if state.signals else None
        return GenerationResult(
            mode="partial",
            confidence=0,
            matched=False,
            match_reason="emergency",
            sheet=build_emergency(title, state.notes_text, language),
            call_id=(state.call or {}).get("id"),
        )

    # ==========================================
    # Linking, notes, meetings
    # ==========================================

    async def link_account(
        self,
        owner_id: str,
        event_id: str,
        account_id: str,
        language: str = "en",
        is_cancelled: Optional[CancelCheck] = None
    ) -> GenerationResult:
        """Pin an event to an account, then regenerate its sheet in full mode."""
        account = await self._storage("crm.get_account", self.crm.get_account, owner_id, account_id)
        if not account:
            raise AccountNotFound(account_id)

        await self._storage(
            "store.upsert_event_account_link", self.store.upsert_event_account_link, owner_id, event_id, account_id
        )
        logger.info(f"Linked event {event_id} to account {account_id}")
        return await self.generate_prep_sheet(
            owner_id, MeetingRef(event_id=event_id, language=language), mode="auto", is_cancelled=is_cancelled
        )

    async def get_notes(self, owner_id: str, event_id: str) -> str:
        note = await self._storage("store.get_note", self.store.get_note, owner_id, event_id, "user")
        return (note or {}).get("text") or ""

    async def save_notes(self, owner_id: str, event_id: str, text: str) -> Dict[str, Any]:
        return await self._storage("store.upsert_note", self.store.upsert_note, owner_id, event_id, text, "user")

    async def list_upcoming(self, owner_id: str, n: int = 10) -> List[MeetingRecord]:
        if not self.calendar:
            return []
        return await self.calendar.list_upcoming(owner_id, n)

    async def ensure_call(
        self,
        owner_id: str,
        integration_kind: str,
        external_id: str,
        meeting: Optional[MeetingRecord] = None
    ) -> Dict[str, Any]:
        if meeting is None and self.calendar:
            meeting = await self.calendar.get_event_by_id(owner_id, external_id)
        if meeting is None:
            raise MeetingUnavailable(external_id)
        return await self.mapping.ensure_call(owner_id, integration_kind, external_id, extract_signals(meeting))


@lru_cache()
def get_prep_orchestrator() -> PrepSheetOrchestrator:
    """Process-wide orchestrator wired to Supabase, Google and Claude."""
    supabase = get_supabase_service()
    store = PrepStore(supabase)
    return PrepSheetOrchestrator(
        crm=CrmStore(supabase),
        store=store,
        calendar=GoogleCalendarService(store),
        mail=GmailService(store),
        client=AnthropicGenerationClient(),
    )
