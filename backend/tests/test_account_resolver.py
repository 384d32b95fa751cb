"""Tests for account resolution scoring."""

import pytest

from app.services.account_resolver import (
    MATCH_THRESHOLD,
    SCORING_POLICY,
    AccountResolver,
    extract_domain_from_website,
)
from app.models.prep_sheet import MeetingRecord
from app.services.signal_extractor import extract_signals
from tests.fakes.fake_db import FailingDB, FakeDB, OWNER_ID, OTHER_OWNER_ID
from tests.fakes.fake_services import FakeMail


def _signals(title, attendees):
    return extract_signals(MeetingRecord(title=title, attendees=attendees))


# ──────────────────────────────────────────────────────────────────────
# Policy table
# ──────────────────────────────────────────────────────────────────────


class TestScoringPolicy:
    def test_points_and_priorities(self):
        assert [(r.key, r.points) for r in SCORING_POLICY] == [
            ("email", 40),
            ("title", 25),
            ("domain", 15),
            ("message_threads", 10),
            ("call_history", 10),
        ]
        assert [r.priority for r in SCORING_POLICY] == [1, 2, 3, 4, 5]

    def test_threshold(self):
        assert MATCH_THRESHOLD == 40

    @pytest.mark.parametrize("website,expected", [
        ("https://www.acme.com/", "acme.com"),
        ("acme.com", "acme.com"),
        ("http://Shop.Acme.com/path", "shop.acme.com"),
        (None, None),
    ])
    def test_extract_domain_from_website(self, website, expected):
        assert extract_domain_from_website(website) == expected


# ──────────────────────────────────────────────────────────────────────
# Resolution
# ──────────────────────────────────────────────────────────────────────


class TestResolve:
    @pytest.mark.asyncio
    async def test_known_contact_email_resolves_with_email_reason(self):
        db = FakeDB()
        acme = db.add_account("Acme Corp", website="https://acme.com")
        db.add_contact("ceo@acme.com", account_id=acme["id"])

        resolver = AccountResolver(db, db, FakeMail())
        result = await resolver.resolve(_signals("Acme Corp - Discovery", ["ceo@acme.com"]), OWNER_ID)

        assert result.confidence >= 65
        assert result.matched is True
        assert result.match_reason == "email_match"
        assert result.account.id == acme["id"]
        assert [c.email for c in result.contacts] == ["ceo@acme.com"]

    @pytest.mark.asyncio
    async def test_domain_only_is_below_threshold(self):
        db = FakeDB()
        db.add_account("Globex", website="https://www.globex.com")

        resolver = AccountResolver(db, db, FakeMail())
        result = await resolver.resolve(_signals("Weekly sync", ["jane@globex.com"]), OWNER_ID)

        assert result.confidence == 15
        assert result.matched is False
        assert result.match_reason == "domain_match"
        assert result.account.name == "Globex"

    @pytest.mark.asyncio
    async def test_no_signals_scores_zero(self):
        db = FakeDB()
        db.add_account("Globex", website="globex.com")
        result = await AccountResolver(db, db).resolve(_signals("Lunch", []), OWNER_ID)
        assert result.confidence == 0
        assert result.match_reason == "none"
        assert result.account is None

    @pytest.mark.asyncio
    async def test_title_matches_opportunity_name(self):
        db = FakeDB()
        initech = db.add_account("Initech", website="initech.com")
        db.add_opportunity("Project Falcon", account_id=initech["id"])

        result = await AccountResolver(db, db).resolve(_signals("project falcon kickoff", []), OWNER_ID)

        assert result.confidence == 25
        assert result.match_reason == "name_match"
        assert result.account.id == initech["id"]

    @pytest.mark.asyncio
    async def test_personal_domains_never_match(self):
        db = FakeDB()
        db.add_account("Gmail Fans", website="gmail.com")
        result = await AccountResolver(db, db).resolve(_signals("Chat", ["someone@gmail.com"]), OWNER_ID)
        assert result.confidence == 0
        assert result.match_reason == "none"

    @pytest.mark.asyncio
    async def test_other_owners_records_are_invisible(self):
        db = FakeDB()
        acme = db.add_account("Acme Corp", website="acme.com", owner_id=OTHER_OWNER_ID)
        db.add_contact("ceo@acme.com", account_id=acme["id"], owner_id=OTHER_OWNER_ID)
        result = await AccountResolver(db, db).resolve(_signals("Acme Corp", ["ceo@acme.com"]), OWNER_ID)
        assert result.confidence == 0

    @pytest.mark.asyncio
    async def test_first_reason_wins_and_later_rules_still_add(self):
        db = FakeDB()
        globex = db.add_account("Globex", website="globex.com")
        db.add_call(globex["id"])

        resolver = AccountResolver(db, db, FakeMail(known_addresses=["jane@globex.com"]))
        result = await resolver.resolve(_signals("Globex roadmap", ["jane@globex.com"]), OWNER_ID)

        # title 25 + domain 15 + threads 10 + history 10
        assert result.confidence == 60
        assert result.match_reason == "name_match"
        assert result.matched is True

    @pytest.mark.asyncio
    async def test_first_contact_wins_when_several_accounts_match(self):
        db = FakeDB()
        first = db.add_account("First Co", website="first.com")
        second = db.add_account("Second Co", website="second.com")
        db.add_contact("a@first.com", account_id=first["id"])
        db.add_contact("b@second.com", account_id=second["id"])

        result = await AccountResolver(db, db).resolve(_signals("Intro", ["b@second.com", "a@first.com"]), OWNER_ID)

        assert result.account.id == first["id"]
        assert [a.id for a in result.alternatives] == []

    @pytest.mark.asyncio
    async def test_alternatives_list_other_rule_accounts(self):
        db = FakeDB()
        acme = db.add_account("Acme Corp", website="acme.com")
        globex = db.add_account("Globex", website="globex.com")
        db.add_contact("ceo@acme.com", account_id=acme["id"])

        result = await AccountResolver(db, db).resolve(_signals("Globex and Acme", ["ceo@acme.com"]), OWNER_ID)

        assert result.account.id == acme["id"]
        assert result.match_reason == "email_match"
        assert globex["id"] in [a.id for a in result.alternatives]

    @pytest.mark.asyncio
    async def test_current_call_does_not_count_as_history(self):
        db = FakeDB()
        globex = db.add_account("Globex", website="globex.com")
        current = db.add_call(globex["id"], title="This meeting")

        resolver = AccountResolver(db, db)
        signals = _signals("Weekly sync", ["jane@globex.com"])
        assert (await resolver.resolve(signals, OWNER_ID, exclude_call_id=current["id"])).confidence == 15
        assert (await resolver.resolve(signals, OWNER_ID)).confidence == 25

    @pytest.mark.asyncio
    async def test_history_counts_only_for_resolved_account(self):
        db = FakeDB()
        initech = db.add_account("Initech", website="initech.com")
        acme = db.add_account("Acme Corp", website="acme.com")
        db.add_contact("ceo@acme.com", account_id=acme["id"])
        db.add_call(initech["id"], title="Initech pricing")

        result = await AccountResolver(db, db).resolve(
            _signals("Quarterly review", ["ceo@acme.com", "bob@initech.com"]), OWNER_ID
        )

        assert result.account.id == acme["id"]
        assert [a.id for a in result.alternatives] == [initech["id"]]
        # email 40 + domain 15; Initech's call is not Acme's history
        assert result.confidence == 55
        assert "call_history" not in [r["rule"] for r in result.details["rules"]]

        db.add_call(acme["id"], title="Acme kickoff")
        rescored = await AccountResolver(db, db).resolve(
            _signals("Quarterly review", ["ceo@acme.com", "bob@initech.com"]), OWNER_ID
        )
        assert rescored.confidence == 65

    @pytest.mark.asyncio
    async def test_storage_failure_returns_zero_candidate(self):
        store = FailingDB()
        result = await AccountResolver(store, store).resolve(_signals("Acme Corp", ["ceo@acme.com"]), OWNER_ID)
        assert result.confidence == 0
        assert result.matched is False
        assert result.match_reason == "none"
        assert "error" in result.details


class TestMonotonicity:
    """Adding a positive signal never lowers confidence."""

    @pytest.mark.asyncio
    async def test_each_added_signal_keeps_or_raises_score(self):
        db = FakeDB()
        globex = db.add_account("Globex", website="globex.com")

        scores = []
        scores.append((await AccountResolver(db, db).resolve(_signals("Sync", ["jane@globex.com"]), OWNER_ID)).confidence)

        mail = FakeMail(known_addresses=["jane@globex.com"])
        scores.append((await AccountResolver(db, db, mail).resolve(_signals("Sync", ["jane@globex.com"]), OWNER_ID)).confidence)

        db.add_call(globex["id"])
        scores.append((await AccountResolver(db, db, mail).resolve(_signals("Sync", ["jane@globex.com"]), OWNER_ID)).confidence)

        scores.append((await AccountResolver(db, db, mail).resolve(_signals("Globex sync", ["jane@globex.com"]), OWNER_ID)).confidence)

        db.add_contact("jane@globex.com", account_id=globex["id"])
        scores.append((await AccountResolver(db, db, mail).resolve(_signals("Globex sync", ["jane@globex.com"]), OWNER_ID)).confidence)

        assert scores == sorted(scores)
        assert scores[0] == 15
        assert scores[-1] == 100
        assert all(0 <= s <= 100 for s in scores)
