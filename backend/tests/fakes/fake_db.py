"""Fake in-memory relationship and prep store for behavioral testing."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

OWNER_ID = "00000000-0000-0000-0000-0000000000aa"
OTHER_OWNER_ID = "00000000-0000-0000-0000-0000000000bb"


def _naive_utc(value) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class FakeDB:
    """In-memory implementation of the CrmStore and PrepStore methods.

    Upserts honour the same unique keys as the real tables.
    """

    def __init__(self):
        self.reset()

    def reset(self):
        """Reset all stores to initial state."""
        self.accounts: List[Dict[str, Any]] = []
        self.contacts: List[Dict[str, Any]] = []
        self.opportunities: List[Dict[str, Any]] = []
        self.calls: Dict[str, Dict[str, Any]] = {}
        self.mappings: List[Dict[str, Any]] = []
        self.preps: Dict[str, Dict[str, Any]] = {}
        self.notes: Dict[tuple, Dict[str, Any]] = {}
        self.links: Dict[tuple, Dict[str, Any]] = {}
        self.connections: Dict[str, Dict[str, Any]] = {}
        self.mapping_inserts = 0

    # Seeding helpers
    def add_account(self, name: str, website: Optional[str] = None, owner_id: str = OWNER_ID, **fields) -> Dict[str, Any]:
        account = {"id": str(uuid4()), "owner_id": owner_id, "name": name, "website": website, "domain": None, **fields}
        self.accounts.append(account)
        return account

    def add_contact(self, email: str, account_id: Optional[str] = None, owner_id: str = OWNER_ID, **fields) -> Dict[str, Any]:
        contact = {"id": str(uuid4()), "owner_id": owner_id, "account_id": account_id, "email": email.lower(), **fields}
        self.contacts.append(contact)
        return contact

    def add_opportunity(self, name: str, account_id: str, owner_id: str = OWNER_ID, **fields) -> Dict[str, Any]:
        opportunity = {"id": str(uuid4()), "owner_id": owner_id, "account_id": account_id, "name": name, **fields}
        self.opportunities.append(opportunity)
        return opportunity

    def add_call(self, account_id: Optional[str], title: str = "Earlier call", scheduled_at: Optional[str] = None,
                 owner_id: str = OWNER_ID, **fields) -> Dict[str, Any]:
        call = {
            "id": str(uuid4()),
            "owner_id": owner_id,
            "account_id": account_id,
            "title": title,
            "scheduled_at": scheduled_at or datetime.utcnow().isoformat(),
            "status": "completed",
            **fields,
        }
        self.calls[call["id"]] = call
        return call

    # Accounts
    def list_accounts(self, owner_id: str) -> List[Dict[str, Any]]:
        return [a for a in self.accounts if a["owner_id"] == owner_id]

    def get_account(self, owner_id: str, account_id: str) -> Optional[Dict[str, Any]]:
        return next((a for a in self.list_accounts(owner_id) if a["id"] == account_id), None)

    def find_accounts_by_name(self, owner_id: str, name: str, limit: int = 10) -> List[Dict[str, Any]]:
        return [a for a in self.list_accounts(owner_id) if name.lower() in (a.get("name") or "").lower()][:limit]

    def find_accounts_by_domain(self, owner_id: str, domain: str) -> List[Dict[str, Any]]:
        return [a for a in self.list_accounts(owner_id) if (a.get("domain") or "") == domain.lower()]

    # Contacts
    def find_contacts_by_emails(self, owner_id: str, emails: List[str]) -> List[Dict[str, Any]]:
        wanted = {e.lower() for e in emails}
        return [c for c in self.contacts if c["owner_id"] == owner_id and c["email"] in wanted]

    def get_contacts_for_account(self, owner_id: str, account_id: str) -> List[Dict[str, Any]]:
        return [c for c in self.contacts if c["owner_id"] == owner_id and c.get("account_id") == account_id]

    def find_contacts(self, owner_id: str, email: Optional[str] = None, company: Optional[str] = None,
                      limit: int = 25) -> List[Dict[str, Any]]:
        if company and not email:
            ids = {a["id"] for a in self.find_accounts_by_name(owner_id, company)}
            return [c for c in self.contacts if c.get("account_id") in ids][:limit]
        contacts = [c for c in self.contacts if c["owner_id"] == owner_id]
        if email:
            contacts = [c for c in contacts if c["email"] == email.lower()]
        return contacts[:limit]

    # Opportunities
    def list_opportunities(self, owner_id: str) -> List[Dict[str, Any]]:
        return [o for o in self.opportunities if o["owner_id"] == owner_id]

    def get_opportunities_for_account(self, owner_id: str, account_id: str) -> List[Dict[str, Any]]:
        return [o for o in self.opportunities if o["owner_id"] == owner_id and o["account_id"] == account_id]

    # External mappings
    def get_mapping(self, owner_id: str, integration_kind: str, external_id: str) -> Optional[Dict[str, Any]]:
        for mapping in self.mappings:
            if (mapping["owner_id"], mapping["integration_kind"], mapping["external_id"]) == (owner_id, integration_kind, external_id):
                return mapping
        return None

    def insert_mapping_if_absent(self, mapping: Dict[str, Any]) -> None:
        self.mapping_inserts += 1
        if not self.get_mapping(mapping["owner_id"], mapping["integration_kind"], mapping["external_id"]):
            self.mappings.append(dict(mapping))

    # Calls
    def insert_call(self, call: Dict[str, Any]) -> Dict[str, Any]:
        self.calls[call["id"]] = dict(call)
        return self.calls[call["id"]]

    def update_call(self, call_id: str, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if call_id not in self.calls:
            return None
        self.calls[call_id].update(patch)
        return self.calls[call_id]

    def get_call(self, call_id: str) -> Optional[Dict[str, Any]]:
        return self.calls.get(call_id)

    def find_calls_by_account_ids(self, account_ids: List[str], since: datetime, limit: int = 10) -> List[Dict[str, Any]]:
        since = _naive_utc(since)
        calls = [
            c for c in self.calls.values()
            if c.get("account_id") in account_ids and (_naive_utc(c.get("scheduled_at")) or since) >= since
        ]
        calls.sort(key=lambda c: _naive_utc(c.get("scheduled_at")) or since, reverse=True)
        return calls[:limit]

    def has_calls_for_accounts(self, account_ids: List[str], exclude_call_id: Optional[str] = None) -> bool:
        return any(
            c.get("account_id") in account_ids and c["id"] != exclude_call_id
            for c in self.calls.values()
        )

    # Preparation records
    def get_prep_for_call(self, call_id: str) -> Optional[Dict[str, Any]]:
        return self.preps.get(call_id)

    def upsert_prep(self, call_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        existing = self.preps.get(call_id)
        row = {**(existing or {"id": str(uuid4())}), **payload, "call_id": call_id,
               "updated_at": datetime.utcnow().isoformat()}
        self.preps[call_id] = row
        return row

    # Notes
    def get_note(self, owner_id: str, event_id: str, source: str = "user") -> Optional[Dict[str, Any]]:
        return self.notes.get((owner_id, event_id, source))

    def upsert_note(self, owner_id: str, event_id: str, text: str, source: str = "user") -> Dict[str, Any]:
        key = (owner_id, event_id, source)
        existing = self.notes.get(key)
        row = {"id": (existing or {}).get("id") or str(uuid4()), "owner_id": owner_id, "event_id": event_id,
               "source": source, "text": text, "updated_at": datetime.utcnow().isoformat()}
        self.notes[key] = row
        return row

    def search_notes(self, owner_id: str, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        return [
            n for n in self.notes.values()
            if n["owner_id"] == owner_id and query.lower() in n["text"].lower()
        ][:limit]

    # Manual links
    def get_event_account_link(self, owner_id: str, event_id: str) -> Optional[Dict[str, Any]]:
        return self.links.get((owner_id, event_id))

    def upsert_event_account_link(self, owner_id: str, event_id: str, account_id: str) -> Dict[str, Any]:
        row = {"owner_id": owner_id, "event_id": event_id, "account_id": account_id}
        self.links[(owner_id, event_id)] = row
        return row

    # Provider connections
    def get_google_connection(self, owner_id: str) -> Optional[Dict[str, Any]]:
        return self.connections.get(owner_id)


class FailingDB:
    """Every store call raises, as if Supabase were unreachable."""

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise ConnectionError(f"storage unavailable ({name})")
        return fail
