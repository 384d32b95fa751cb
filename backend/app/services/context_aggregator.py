"""
Context Aggregator - Account context and the bounded tool-calling loop

Two jobs:
- gather_account_context: pull CRM records, call history and notes for a
  resolved account. Each source degrades independently to empty.
- run_with_tools: let the generation step call registry tools by name,
  feed results back, and stop after PREP_MAX_TOOL_ROUNDS rounds.
"""
from typing import Optional, List, Dict, Any, Callable, Awaitable
from dataclasses import dataclass, field
import os
import logging

from app.models.prep_sheet import AccountContext, MeetingSignals
from app.services.call_history import build_call_history, CALL_HISTORY_LOOKBACK_DAYS
from app.services.crm_store import CrmStore
from app.services.generation_client import Conversation, GenerationClient, ToolResult
from app.services.prep_store import PrepStore
from app.services.prep_tools import ToolContext, execute_tool, tool_definitions
from app.utils import GenerationCancelled, run_blocking, service_with_timeout

logger = logging.getLogger(__name__)

MAX_TOOL_ROUNDS = int(os.getenv("PREP_MAX_TOOL_ROUNDS", "4"))

CancelCheck = Callable[[], Awaitable[bool]]


@dataclass
class ToolRunResult:
    text: str
    rounds: int = 0
    tool_log: List[Dict[str, Any]] = field(default_factory=list)


async def raise_if_cancelled(is_cancelled: Optional[CancelCheck]) -> None:
    if is_cancelled and await is_cancelled():
        raise GenerationCancelled()


class ContextAggregator:
    """Collects enrichment data for the full generation path."""

    def __init__(
        self,
        crm: CrmStore,
        store: PrepStore,
        calendar=None,
        mail=None,
        max_tool_rounds: int = MAX_TOOL_ROUNDS,
        lookback_days: int = CALL_HISTORY_LOOKBACK_DAYS
    ):
        self.crm = crm
        self.store = store
        self.calendar = calendar
        self.mail = mail
        self.max_tool_rounds = max_tool_rounds
        self.lookback_days = lookback_days

    def tool_context(self, owner_id: str) -> ToolContext:
        return ToolContext(
            owner_id=owner_id,
            crm=self.crm,
            store=self.store,
            calendar=self.calendar,
            mail=self.mail,
        )

    async def _fetch(self, name: str, func, *args, default=None, **kwargs):
        try:
            return await service_with_timeout(run_blocking(func, *args, **kwargs), name)
        except Exception as e:
            logger.warning(f"Context source {name} unavailable: {e}")
            return default

    async def gather_account_context(
        self,
        owner_id: str,
        account_id: str,
        signals: MeetingSignals,
        call: Optional[Dict[str, Any]] = None
    ) -> AccountContext:
        """
        Load account, contacts, opportunities, history and related notes.

        `account` stays None when the account itself cannot be loaded; the
        caller treats that as "not enriched".
        """
        account = await self._fetch("crm.get_account", self.crm.get_account, owner_id, account_id)
        contacts = await self._fetch(
            "crm.get_contacts_for_account", self.crm.get_contacts_for_account, owner_id, account_id, default=[]
        )
        opportunities = await self._fetch(
            "crm.get_opportunities_for_account", self.crm.get_opportunities_for_account, owner_id, account_id, default=[]
        )
        history = await self._fetch(
            "store.call_history",
            build_call_history,
            self.crm,
            self.store,
            owner_id,
            account_ids=[account_id],
            lookback_days=self.lookback_days,
            exclude_call_id=(call or {}).get("id"),
            default=[],
        )
        notes: List[Dict[str, Any]] = []
        if account and account.get("name"):
            notes = await self._fetch(
                "store.search_notes", self.store.search_notes, owner_id, account["name"], 5, default=[]
            )

        logger.info(
            f"Gathered context for account {account_id}: {len(contacts)} contacts, "
            f"{len(opportunities)} opportunities, {len(history)} prior calls, {len(notes)} notes"
        )
        return AccountContext(
            account=account,
            contacts=contacts,
            opportunities=opportunities,
            call_history=history,
            notes=notes,
            call=call,
        )

    async def run_with_tools(
        self,
        client: GenerationClient,
        system: str,
        prompt: str,
        owner_id: str,
        tools: Optional[List[str]] = None,
        is_cancelled: Optional[CancelCheck] = None
    ) -> ToolRunResult:
        """
        Drive the generation step through at most max_tool_rounds tool rounds.

        After the last round a final turn is requested with tools disabled so
        the loop always ends in text.
        """
        ctx = self.tool_context(owner_id)
        definitions = tool_definitions(tools)
        conversation = Conversation(prompt)
        result = ToolRunResult(text="")

        for _ in range(self.max_tool_rounds):
            await raise_if_cancelled(is_cancelled)
            turn = await client.run_turn(system, conversation, definitions)
            if not turn.tool_calls:
                result.text = turn.text
                return result

            conversation.add_assistant(turn)
            results = []
            for call in turn.tool_calls:
                await raise_if_cancelled(is_cancelled)
                payload = await execute_tool(call.name, call.arguments, ctx)
                results.append(ToolResult(call.id, call.name, payload))
                result.tool_log.append({"round": result.rounds + 1, "tool": call.name, "error": payload.get("error")})
            conversation.add_tool_results(results)
            result.rounds += 1

        logger.warning(f"Tool rounds exhausted after {result.rounds}; requesting final answer")
        await raise_if_cancelled(is_cancelled)
        final = await client.run_turn(system, conversation, definitions, allow_tools=False)
        result.text = final.text
        return result
