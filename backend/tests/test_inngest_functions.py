"""Tests for background regeneration."""

import pytest

from app.inngest import events
from app.inngest.functions import prep_sheet as prep_sheet_fn
from app.models.prep_sheet import MeetingRecord
from tests.fakes.fake_db import OWNER_ID


class TestRegenerateStep:
    @pytest.mark.asyncio
    async def test_step_runs_orchestrator(self, orchestrator, db, calendar, monkeypatch):
        acme = db.add_account("Acme Corp", website="acme.com")
        db.add_contact("ceo@acme.com", account_id=acme["id"])
        calendar.add(MeetingRecord(id="evt-a", title="Acme Corp - Discovery", attendees=["ceo@acme.com"]))
        monkeypatch.setattr(prep_sheet_fn, "get_prep_orchestrator", lambda: orchestrator)

        result = await prep_sheet_fn.regenerate_prep_sheet(OWNER_ID, "evt-a", None, "en")

        assert result["mode"] == "full"
        assert result["tier"] == "enriched"
        assert result["match_reason"] == "email_match"
        assert result["prep_id"] == db.get_prep_for_call(result["call_id"])["id"]


class TestEvents:
    @pytest.mark.asyncio
    async def test_disabled_inngest_sends_nothing(self):
        assert events.INNGEST_ENABLED is False
        assert await events.send_event(events.Events.PREP_SHEET_GENERATED, {}) is False
        assert events.use_inngest_for("prep_sheet") is False
