"""
CRM Store - Relationship records (accounts, contacts, opportunities)

Lookups used by the resolver, the context aggregator and the CRM tools.
Errors propagate; callers decide how to degrade.
"""
from typing import Optional, Dict, Any, List
from supabase import Client
import logging

logger = logging.getLogger(__name__)

ACCOUNT_FIELDS = "id, owner_id, name, website, domain, industry, employees, annual_revenue, description"
CONTACT_FIELDS = "id, owner_id, account_id, email, first_name, last_name, title, role"
OPPORTUNITY_FIELDS = "id, owner_id, account_id, name, stage, amount, close_date, type, probability, next_step"


class CrmStore:
    """Supabase-backed relationship store."""

    def __init__(self, supabase: Client):
        self.supabase = supabase

    # ==========================================
    # Accounts
    # ==========================================

    def list_accounts(self, owner_id: str) -> List[Dict[str, Any]]:
        """All accounts of an owner, oldest first (resolution order)."""
        result = self.supabase.table("accounts")\
            .select(ACCOUNT_FIELDS)\
            .eq("owner_id", owner_id)\
            .order("created_at")\
            .execute()
        return result.data or []

    def get_account(self, owner_id: str, account_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table("accounts")\
            .select(ACCOUNT_FIELDS)\
            .eq("id", account_id)\
            .eq("owner_id", owner_id)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def find_accounts_by_name(self, owner_id: str, name: str, limit: int = 10) -> List[Dict[str, Any]]:
        result = self.supabase.table("accounts")\
            .select(ACCOUNT_FIELDS)\
            .eq("owner_id", owner_id)\
            .ilike("name", f"%{name}%")\
            .limit(limit)\
            .execute()
        return result.data or []

    def find_accounts_by_domain(self, owner_id: str, domain: str) -> List[Dict[str, Any]]:
        result = self.supabase.table("accounts")\
            .select(ACCOUNT_FIELDS)\
            .eq("owner_id", owner_id)\
            .eq("domain", domain.lower())\
            .execute()
        return result.data or []

    # ==========================================
    # Contacts
    # ==========================================

    def find_contacts_by_emails(self, owner_id: str, emails: List[str]) -> List[Dict[str, Any]]:
        """Contacts whose email exactly matches one of the addresses, oldest first."""
        if not emails:
            return []
        result = self.supabase.table("contacts")\
            .select(CONTACT_FIELDS)\
            .eq("owner_id", owner_id)\
            .in_("email", [e.lower() for e in emails])\
            .order("created_at")\
            .execute()
        return result.data or []

    def get_contacts_for_account(self, owner_id: str, account_id: str) -> List[Dict[str, Any]]:
        result = self.supabase.table("contacts")\
            .select(CONTACT_FIELDS)\
            .eq("account_id", account_id)\
            .eq("owner_id", owner_id)\
            .execute()
        return result.data or []

    def find_contacts(
        self,
        owner_id: str,
        email: Optional[str] = None,
        company: Optional[str] = None,
        limit: int = 25
    ) -> List[Dict[str, Any]]:
        """Contact search by email or by account name."""
        if company and not email:
            account_ids = [a["id"] for a in self.find_accounts_by_name(owner_id, company)]
            if not account_ids:
                return []
            result = self.supabase.table("contacts")\
                .select(CONTACT_FIELDS)\
                .in_("account_id", account_ids)\
                .limit(limit)\
                .execute()
            return result.data or []

        query = self.supabase.table("contacts").select(CONTACT_FIELDS).eq("owner_id", owner_id)
        if email:
            query = query.eq("email", email.lower())
        result = query.limit(limit).execute()
        return result.data or []

    # ==========================================
    # Opportunities
    # ==========================================

    def list_opportunities(self, owner_id: str) -> List[Dict[str, Any]]:
        result = self.supabase.table("opportunities")\
            .select(OPPORTUNITY_FIELDS)\
            .eq("owner_id", owner_id)\
            .order("created_at")\
            .execute()
        return result.data or []

    def get_opportunities_for_account(self, owner_id: str, account_id: str) -> List[Dict[str, Any]]:
        """Opportunities of an account, most recently updated first."""
        result = self.supabase.table("opportunities")\
            .select(OPPORTUNITY_FIELDS)\
            .eq("account_id", account_id)\
            .eq("owner_id", owner_id)\
            .order("updated_at", desc=True)\
            .execute()
        return result.data or []
