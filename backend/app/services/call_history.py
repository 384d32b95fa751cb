"""
Call History - Prior calls for an account or contact

Joins call records with the linked account, the account's contact emails
and any stored preparation. Used by the call_history_lookup tool and
directly by the context aggregator for the enriched document.
"""
from typing import Optional, List, Dict, Any
from datetime import datetime, timedelta
import os
import logging

from app.models.prep_sheet import CallHistoryEntry
from app.services.crm_store import CrmStore
from app.services.prep_store import PrepStore

logger = logging.getLogger(__name__)

CALL_HISTORY_LOOKBACK_DAYS = int(os.getenv("CALL_HISTORY_LOOKBACK_DAYS", "180"))
MAX_HISTORY_RESULTS = 20
PREP_SUMMARY_CHARS = 500


def _account_ids_for_criteria(
    crm: CrmStore,
    owner_id: str,
    contact_email: Optional[str],
    account_name: Optional[str],
    domain: Optional[str]
) -> List[str]:
    account_ids: List[str] = []
    if contact_email:
        for contact in crm.find_contacts_by_emails(owner_id, [contact_email]):
            if contact.get("account_id"):
                account_ids.append(contact["account_id"])
    if account_name:
        account_ids.extend(a["id"] for a in crm.find_accounts_by_name(owner_id, account_name))
    if domain:
        account_ids.extend(a["id"] for a in crm.find_accounts_by_domain(owner_id, domain))
    # dedupe, keep order
    return list(dict.fromkeys(account_ids))


def _prep_summary(prep: Optional[Dict[str, Any]]) -> Optional[str]:
    if not prep:
        return None
    text = prep.get("generated_text") or ""
    return text[:PREP_SUMMARY_CHARS] or None


def build_call_history(
    crm: CrmStore,
    store: PrepStore,
    owner_id: str,
    account_ids: Optional[List[str]] = None,
    contact_email: Optional[str] = None,
    account_name: Optional[str] = None,
    domain: Optional[str] = None,
    lookback_days: int = CALL_HISTORY_LOOKBACK_DAYS,
    max_results: int = 10,
    exclude_call_id: Optional[str] = None
) -> List[CallHistoryEntry]:
    """
    Prior calls matching any of the criteria, newest first.

    Blocking: runs supabase queries. Callers on the event loop wrap it in
    run_blocking.
    """
    ids = list(account_ids or [])
    ids.extend(_account_ids_for_criteria(crm, owner_id, contact_email, account_name, domain))
    ids = list(dict.fromkeys(ids))
    if not ids:
        return []

    since = datetime.utcnow() - timedelta(days=lookback_days)
    max_results = max(1, min(MAX_HISTORY_RESULTS, max_results))
    # one extra row so an excluded call does not shorten the page
    calls = store.find_calls_by_account_ids(ids, since, max_results + 1)

    accounts: Dict[str, Optional[Dict[str, Any]]] = {}
    contact_emails: Dict[str, List[str]] = {}
    entries: List[CallHistoryEntry] = []

    for call in calls:
        if exclude_call_id and call.get("id") == exclude_call_id:
            continue
        account_id = call.get("account_id")
        if account_id not in accounts:
            accounts[account_id] = crm.get_account(owner_id, account_id) if account_id else None
            contact_emails[account_id] = [
                c["email"] for c in (crm.get_contacts_for_account(owner_id, account_id) if account_id else [])
                if c.get("email")
            ]
        account = accounts[account_id]

        entries.append(CallHistoryEntry(
            id=call["id"],
            title=call.get("title") or "Meeting",
            scheduled_at=call.get("scheduled_at"),
            status=call.get("status"),
            company_name=(account or {}).get("name"),
            contact_emails=contact_emails.get(account_id, []),
            prep_summary=_prep_summary(store.get_prep_for_call(call["id"])),
            notes=call.get("notes"),
        ))
        if len(entries) >= max_results:
            break

    logger.debug(f"Call history: {len(entries)} calls for {len(ids)} accounts")
    return entries
