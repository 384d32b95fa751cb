"""Tests for prior-call lookups."""

from app.services.call_history import PREP_SUMMARY_CHARS, build_call_history
from tests.fakes.fake_db import FakeDB, OWNER_ID


def _db_with_calls():
    db = FakeDB()
    acme = db.add_account("Acme Corp", website="acme.com")
    db.add_contact("ceo@acme.com", account_id=acme["id"])
    recent = db.add_call(acme["id"], title="Recent call")
    old = db.add_call(acme["id"], title="Old call", scheduled_at="2020-01-01T09:00:00")
    return db, acme, recent, old


class TestBuildCallHistory:
    def test_no_criteria_returns_nothing(self):
        db, _, _, _ = _db_with_calls()
        assert build_call_history(db, db, OWNER_ID) == []

    def test_lookback_window_excludes_old_calls(self):
        db, acme, recent, _ = _db_with_calls()
        entries = build_call_history(db, db, OWNER_ID, account_ids=[acme["id"]], lookback_days=30)
        assert [e.id for e in entries] == [recent["id"]]

    def test_contact_email_criterion(self):
        db, _, recent, _ = _db_with_calls()
        entries = build_call_history(db, db, OWNER_ID, contact_email="CEO@acme.com", lookback_days=30)
        assert [e.id for e in entries] == [recent["id"]]
        assert entries[0].company_name == "Acme Corp"

    def test_excluded_call_does_not_shorten_page(self):
        db, acme, recent, _ = _db_with_calls()
        second = db.add_call(acme["id"], title="Another call")
        entries = build_call_history(
            db, db, OWNER_ID, account_ids=[acme["id"]], max_results=1, exclude_call_id=second["id"]
        )
        assert len(entries) == 1
        assert entries[0].id != second["id"]

    def test_prep_summary_is_truncated(self):
        db, acme, recent, _ = _db_with_calls()
        db.upsert_prep(recent["id"], {"generated_text": "x" * 2000})
        entries = build_call_history(db, db, OWNER_ID, account_ids=[acme["id"]], lookback_days=30)
        assert len(entries[0].prep_summary) == PREP_SUMMARY_CHARS
