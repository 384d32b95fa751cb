"""Pytest configuration and fixtures."""

import os

# read at import time by app modules
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-with-at-least-32-bytes")
os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key")
os.environ["INNGEST_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "test"

import pytest

from app.services.prep_orchestrator import PrepSheetOrchestrator
from tests.fakes.fake_db import FakeDB, OWNER_ID
from tests.fakes.fake_services import FakeCalendar, FakeMail, ScriptedGenerationClient


@pytest.fixture
def db():
    return FakeDB()


@pytest.fixture
def calendar():
    return FakeCalendar()


@pytest.fixture
def mail():
    return FakeMail()


@pytest.fixture
def client():
    return ScriptedGenerationClient()


@pytest.fixture
def owner_id():
    return OWNER_ID


@pytest.fixture
def orchestrator(db, calendar, mail, client):
    return PrepSheetOrchestrator(crm=db, store=db, calendar=calendar, mail=mail, client=client)
