"""
Prep Store - Persistence for calls, preparation records, notes and mappings

Unique keys the schema must carry:
- external_mappings (owner_id, integration_kind, external_id)
- call_preps (call_id)
- prep_notes (owner_id, event_id, source)
- event_account_links (owner_id, event_id)
"""
from typing import Optional, Dict, Any, List
from datetime import datetime
from supabase import Client
import logging

logger = logging.getLogger(__name__)


class PrepStore:
    """Supabase-backed persistent store."""

    def __init__(self, supabase: Client):
        self.supabase = supabase

    # ==========================================
    # External mappings
    # ==========================================

    def get_mapping(self, owner_id: str, integration_kind: str, external_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table("external_mappings")\
            .select("*")\
            .eq("owner_id", owner_id)\
            .eq("integration_kind", integration_kind)\
            .eq("external_id", external_id)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def insert_mapping_if_absent(self, mapping: Dict[str, Any]) -> None:
        """Insert a mapping; an existing row for the same key wins."""
        self.supabase.table("external_mappings").upsert(
            mapping,
            on_conflict="owner_id,integration_kind,external_id",
            ignore_duplicates=True,
        ).execute()

    # ==========================================
    # Calls
    # ==========================================

    def insert_call(self, call: Dict[str, Any]) -> Dict[str, Any]:
        result = self.supabase.table("calls").insert(call).execute()
        return result.data[0] if result.data else call

    def update_call(self, call_id: str, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        result = self.supabase.table("calls").update(patch).eq("id", call_id).execute()
        return result.data[0] if result.data else None

    def get_call(self, call_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table("calls").select("*").eq("id", call_id).limit(1).execute()
        return result.data[0] if result.data else None

    def find_calls_by_account_ids(
        self,
        account_ids: List[str],
        since: datetime,
        limit: int = 10
    ) -> List[Dict[str, Any]]:
        """Calls of the given accounts scheduled after `since`, newest first."""
        if not account_ids:
            return []
        result = self.supabase.table("calls")\
            .select("*")\
            .in_("account_id", account_ids)\
            .gte("scheduled_at", since.isoformat())\
            .order("scheduled_at", desc=True)\
            .limit(limit)\
            .execute()
        return result.data or []

    def has_calls_for_accounts(self, account_ids: List[str], exclude_call_id: Optional[str] = None) -> bool:
        if not account_ids:
            return False
        query = self.supabase.table("calls").select("id").in_("account_id", account_ids)
        if exclude_call_id:
            query = query.neq("id", exclude_call_id)
        result = query.limit(1).execute()
        return bool(result.data)

    # ==========================================
    # Preparation records
    # ==========================================

    def get_prep_for_call(self, call_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table("call_preps").select("*").eq("call_id", call_id).limit(1).execute()
        return result.data[0] if result.data else None

    def upsert_prep(self, call_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create or update the single preparation record of a call."""
        row = {**payload, "call_id": call_id, "updated_at": datetime.utcnow().isoformat()}
        result = self.supabase.table("call_preps").upsert(row, on_conflict="call_id").execute()
        return result.data[0] if result.data else row

    # ==========================================
    # Notes
    # ==========================================

    def get_note(self, owner_id: str, event_id: str, source: str = "user") -> Optional[Dict[str, Any]]:
        result = self.supabase.table("prep_notes")\
            .select("*")\
            .eq("owner_id", owner_id)\
            .eq("event_id", event_id)\
            .eq("source", source)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def upsert_note(self, owner_id: str, event_id: str, text: str, source: str = "user") -> Dict[str, Any]:
        row = {
            "owner_id": owner_id,
            "event_id": event_id,
            "source": source,
            "text": text,
            "updated_at": datetime.utcnow().isoformat(),
        }
        result = self.supabase.table("prep_notes").upsert(
            row, on_conflict="owner_id,event_id,source"
        ).execute()
        return result.data[0] if result.data else row

    def search_notes(self, owner_id: str, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Full-text search over saved notes, newest first."""
        result = self.supabase.table("prep_notes")\
            .select("id, owner_id, event_id, source, text, updated_at")\
            .eq("owner_id", owner_id)\
            .text_search("text", query, options={"type": "websearch"})\
            .order("updated_at", desc=True)\
            .limit(limit)\
            .execute()
        return result.data or []

    # ==========================================
    # Manual account links
    # ==========================================

    def get_event_account_link(self, owner_id: str, event_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table("event_account_links")\
            .select("*")\
            .eq("owner_id", owner_id)\
            .eq("event_id", event_id)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def upsert_event_account_link(self, owner_id: str, event_id: str, account_id: str) -> Dict[str, Any]:
        row = {
            "owner_id": owner_id,
            "event_id": event_id,
            "account_id": account_id,
            "updated_at": datetime.utcnow().isoformat(),
        }
        result = self.supabase.table("event_account_links").upsert(
            row, on_conflict="owner_id,event_id"
        ).execute()
        return result.data[0] if result.data else row

    # ==========================================
    # Provider connections
    # ==========================================

    def get_google_connection(self, owner_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table("calendar_connections")\
            .select("*")\
            .eq("user_id", owner_id)\
            .eq("provider", "google")\
            .eq("is_active", True)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None
