"""Tests for context gathering and the bounded tool loop."""

import pytest

from app.models.prep_sheet import MeetingRecord
from app.services.context_aggregator import ContextAggregator
from app.services.generation_client import GenerationTurn, ToolCall
from app.services.signal_extractor import extract_signals
from app.utils import GenerationCancelled
from tests.fakes.fake_db import FailingDB, FakeDB, OWNER_ID
from tests.fakes.fake_services import (
    DEFAULT_GENERATED,
    LoopingGenerationClient,
    ScriptedGenerationClient,
)

SIGNALS = extract_signals(MeetingRecord(title="Acme Corp - Discovery", attendees=["ceo@acme.com"]))


def _tool_turn(*names):
    return GenerationTurn(
        tool_calls=[ToolCall(id=f"call-{i}", name=name, arguments={"query": "acme"}) for i, name in enumerate(names)],
        stop_reason="tool_use",
    )


class TestRunWithTools:
    @pytest.mark.asyncio
    async def test_plain_text_needs_no_rounds(self, db):
        client = ScriptedGenerationClient()
        result = await ContextAggregator(db, db).run_with_tools(client, "system", "prompt", OWNER_ID)

        assert result.text == DEFAULT_GENERATED
        assert result.rounds == 0
        assert len(client.calls) == 1

    @pytest.mark.asyncio
    async def test_tool_results_are_fed_back(self, db):
        client = ScriptedGenerationClient(turns=[_tool_turn("prep_notes_search")])
        result = await ContextAggregator(db, db).run_with_tools(client, "system", "prompt", OWNER_ID)

        assert result.rounds == 1
        assert result.tool_log == [{"round": 1, "tool": "prep_notes_search", "error": None}]
        # user prompt, assistant tool request, tool results
        assert client.calls[1]["entries"] == 3

    @pytest.mark.asyncio
    async def test_unknown_tool_is_logged_and_loop_continues(self, db):
        client = ScriptedGenerationClient(turns=[_tool_turn("drop_tables")])
        result = await ContextAggregator(db, db).run_with_tools(client, "system", "prompt", OWNER_ID)

        assert result.text == DEFAULT_GENERATED
        assert "unknown tool" in result.tool_log[0]["error"]

    @pytest.mark.asyncio
    async def test_rounds_are_bounded(self, db):
        client = LoopingGenerationClient()
        result = await ContextAggregator(db, db, max_tool_rounds=2).run_with_tools(
            client, "system", "prompt", OWNER_ID
        )

        assert result.rounds == 2
        assert result.text == DEFAULT_GENERATED
        assert [c["allow_tools"] for c in client.calls] == [True, True, False]

    @pytest.mark.asyncio
    async def test_tool_subset_is_offered(self, db):
        client = ScriptedGenerationClient()
        await ContextAggregator(db, db).run_with_tools(
            client, "system", "prompt", OWNER_ID, tools=["crm_account_lookup"]
        )
        assert client.calls[0]["tools"] == ["crm_account_lookup"]

    @pytest.mark.asyncio
    async def test_cancellation_stops_the_loop(self, db):
        client = LoopingGenerationClient()

        async def cancelled():
            return len(client.calls) >= 1

        with pytest.raises(GenerationCancelled):
            await ContextAggregator(db, db).run_with_tools(
                client, "system", "prompt", OWNER_ID, is_cancelled=cancelled
            )
        assert len(client.calls) == 1


class TestGatherAccountContext:
    @pytest.mark.asyncio
    async def test_collects_every_source(self, db):
        acme = db.add_account("Acme Corp", website="acme.com", industry="Software")
        db.add_contact("ceo@acme.com", account_id=acme["id"])
        db.add_opportunity("Acme platform", account_id=acme["id"], stage="Discovery")
        prior = db.add_call(acme["id"], title="Intro call")
        current = db.add_call(acme["id"], title="Acme Corp - Discovery")
        db.upsert_note(OWNER_ID, "evt-old", "Acme Corp asked about SSO")

        context = await ContextAggregator(db, db).gather_account_context(OWNER_ID, acme["id"], SIGNALS, current)

        assert context.account["name"] == "Acme Corp"
        assert len(context.contacts) == 1
        assert context.primary_opportunity["name"] == "Acme platform"
        assert [h.id for h in context.call_history] == [prior["id"]]
        assert len(context.notes) == 1
        assert context.call == current

    @pytest.mark.asyncio
    async def test_storage_failure_degrades_to_empty(self):
        store = FailingDB()
        context = await ContextAggregator(store, store).gather_account_context(OWNER_ID, "acct-1", SIGNALS)

        assert context.account is None
        assert context.contacts == []
        assert context.opportunities == []
        assert context.call_history == []
        assert context.notes == []
