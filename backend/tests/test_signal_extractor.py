"""Tests for meeting signal extraction."""

from datetime import datetime, timedelta, timezone

from app.models.prep_sheet import MeetingAttendee, MeetingRecord
from app.services.signal_extractor import (
    DEFAULT_TITLE,
    domain_from_email,
    extract_signals,
    normalize_attendee,
)

START = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


class TestNormalizeAttendee:
    def test_plain_address(self):
        attendee = normalize_attendee("CEO@Acme.com")
        assert attendee.email == "ceo@acme.com"
        assert attendee.display_name is None

    def test_name_and_angle_address(self):
        attendee = normalize_attendee('"Jane Doe" <Jane@Acme.com>')
        assert attendee.email == "jane@acme.com"
        assert attendee.display_name == "Jane Doe"

    def test_name_without_address(self):
        attendee = normalize_attendee("Conference Room 4")
        assert attendee.email is None
        assert attendee.display_name == "Conference Room 4"

    def test_google_shape(self):
        attendee = normalize_attendee({"email": "bob@globex.com", "displayName": "Bob", "responseStatus": "accepted"})
        assert attendee.email == "bob@globex.com"
        assert attendee.display_name == "Bob"
        assert attendee.response_status == "accepted"

    def test_graph_shape(self):
        attendee = normalize_attendee({"emailAddress": {"address": "amy@initech.com", "name": "Amy"}})
        assert attendee.email == "amy@initech.com"
        assert attendee.display_name == "Amy"

    def test_empty_entries_are_dropped(self):
        assert normalize_attendee(None) is None
        assert normalize_attendee("   ") is None
        assert normalize_attendee({}) is None

    def test_structured_attendee_passes_through(self):
        attendee = MeetingAttendee(email="x@y.com")
        assert normalize_attendee(attendee) is attendee


class TestDomainFromEmail:
    def test_domain_is_lowercased(self):
        assert domain_from_email("a@Acme.COM") == "acme.com"

    def test_no_at_sign(self):
        assert domain_from_email("not-an-address") is None
        assert domain_from_email(None) is None


class TestExtractSignals:
    def test_emails_and_domains_are_deduplicated(self):
        meeting = MeetingRecord(
            title="Acme Corp - Discovery",
            start=START,
            attendees=["ceo@acme.com", {"email": "CEO@acme.com"}, "cto@acme.com", "Room 4"],
        )
        signals = extract_signals(meeting)
        assert signals.emails == ["ceo@acme.com", "cto@acme.com"]
        assert signals.domains == ["acme.com"]
        assert len(signals.attendees) == 4

    def test_missing_fields_get_defaults(self):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        signals = extract_signals(MeetingRecord(), now=now)
        assert signals.title == DEFAULT_TITLE
        assert signals.start == now
        assert signals.emails == []
        assert signals.domains == []
        assert signals.description == ""

    def test_none_meeting_is_tolerated(self):
        signals = extract_signals(None)
        assert signals.title == DEFAULT_TITLE
        assert signals.start is not None

    def test_blank_title_becomes_default(self):
        assert extract_signals(MeetingRecord(title="   ", start=START)).title == DEFAULT_TITLE

    def test_end_before_start_is_dropped(self):
        signals = extract_signals(MeetingRecord(title="x", start=START, end=START - timedelta(hours=1)))
        assert signals.end is None

    def test_tokens_cover_title_and_description(self):
        signals = extract_signals(MeetingRecord(title="Pricing review", description="Discuss Q3 budget", start=START))
        assert "pricing" in signals.tokens
        assert "budget" in signals.tokens
