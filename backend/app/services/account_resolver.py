"""
Account Resolver - Match calendar meetings to known accounts

Deterministic additive scoring over a fixed policy table. Rules are
evaluated in priority order; the first rule that fires sets the match
reason and the account it points at becomes the resolved account. Later
rules still add points.

Known limitation: when several accounts satisfy the email rule, the first
contact returned by the store wins. This is not a best-match search.
"""
from typing import Optional, List, Dict, Any, Tuple
from dataclasses import dataclass
from urllib.parse import urlparse
import logging

from app.models.prep_sheet import AccountRef, ContactRef, MatchCandidate, MeetingSignals
from app.services.crm_store import CrmStore
from app.services.prep_store import PrepStore
from app.utils import run_blocking, service_with_timeout

logger = logging.getLogger(__name__)

MATCH_THRESHOLD = 40
MAX_CONFIDENCE = 100

PERSONAL_DOMAINS = frozenset({
    "gmail.com",
    "outlook.com",
    "yahoo.com",
    "hotmail.com",
    "icloud.com",
    "aol.com",
    "protonmail.com",
})


@dataclass(frozen=True)
class ScoringRule:
    """One row of the scoring policy."""
    key: str
    points: int
    priority: int
    match_reason: Optional[str]
    description: str


SCORING_POLICY: Tuple[ScoringRule, ...] = (
    ScoringRule("email", 40, 1, "email_match", "attendee email matches a known contact"),
    ScoringRule("title", 25, 2, "name_match", "title contains an account or opportunity name"),
    ScoringRule("domain", 15, 3, "domain_match", "attendee domain matches an account website"),
    ScoringRule("message_threads", 10, 4, None, "message threads exist with an attendee"),
    ScoringRule("call_history", 10, 5, None, "prior calls exist for the resolved account"),
)


def extract_domain_from_website(website: Optional[str]) -> Optional[str]:
    """Extract domain from website URL."""
    if not website:
        return None
    try:
        if not website.startswith(('http://', 'https://')):
            website = 'https://' + website
        parsed = urlparse(website)
        domain = parsed.netloc or parsed.path
        if domain.startswith('www.'):
            domain = domain[4:]
        return domain.lower().rstrip('/') or None
    except ValueError:
        return None


def account_domain(account: Dict[str, Any]) -> Optional[str]:
    return (account.get("domain") or "").lower() or extract_domain_from_website(account.get("website"))


def _account_ref(account: Dict[str, Any], reason: str) -> AccountRef:
    return AccountRef(
        id=account["id"],
        name=account.get("name"),
        domain=account_domain(account),
        reason=reason,
    )


def _contact_ref(contact: Dict[str, Any]) -> ContactRef:
    name = " ".join(p for p in (contact.get("first_name"), contact.get("last_name")) if p) or None
    return ContactRef(
        id=contact["id"],
        email=contact.get("email"),
        name=name,
        account_id=contact.get("account_id"),
    )


class AccountResolver:
    """Resolve MeetingSignals to a scored MatchCandidate."""

    def __init__(self, crm: CrmStore, store: PrepStore, mail=None):
        self.crm = crm
        self.store = store
        self.mail = mail

    async def _load_records(self, owner_id: str, emails: List[str]):
        contacts = await service_with_timeout(
            run_blocking(self.crm.find_contacts_by_emails, owner_id, emails), "crm.find_contacts_by_emails"
        )
        accounts = await service_with_timeout(
            run_blocking(self.crm.list_accounts, owner_id), "crm.list_accounts"
        )
        opportunities = await service_with_timeout(
            run_blocking(self.crm.list_opportunities, owner_id), "crm.list_opportunities"
        )
        return contacts, accounts, opportunities

    def _email_rule(self, contacts, accounts_by_id) -> Optional[Dict[str, Any]]:
        for contact in contacts:
            account = accounts_by_id.get(contact.get("account_id"))
            if account:
                return account
        return None

    def _title_rule(self, title: str, accounts, opportunities, accounts_by_id) -> Optional[Dict[str, Any]]:
        title_lower = title.lower()
        for account in accounts:
            name = (account.get("name") or "").strip().lower()
            if name and name in title_lower:
                return account
        for opportunity in opportunities:
            name = (opportunity.get("name") or "").strip().lower()
            if name and name in title_lower:
                account = accounts_by_id.get(opportunity.get("account_id"))
                if account:
                    return account
        return None

    def _domain_rule(self, domains: List[str], accounts) -> Optional[Dict[str, Any]]:
        business_domains = {d for d in domains if d not in PERSONAL_DOMAINS}
        if not business_domains:
            return None
        for account in accounts:
            if account_domain(account) in business_domains:
                return account
        return None

    async def _has_thread_evidence(self, owner_id: str, emails: List[str]) -> bool:
        if not self.mail or not emails:
            return False
        try:
            return await self.mail.has_threads_with(owner_id, emails)
        except Exception as e:
            logger.warning(f"Message-thread evidence unavailable: {e}")
            return False

    async def _has_call_history(self, account_ids: List[str], exclude_call_id: Optional[str]) -> bool:
        if not account_ids:
            return False
        try:
            return await service_with_timeout(
                run_blocking(self.store.has_calls_for_accounts, account_ids, exclude_call_id),
                "store.has_calls_for_accounts",
            )
        except Exception as e:
            logger.warning(f"Call history unavailable: {e}")
            return False

    async def resolve(
        self,
        signals: MeetingSignals,
        owner_id: str,
        exclude_call_id: Optional[str] = None
    ) -> MatchCandidate:
        """
        Score a meeting against the owner's relationship records.

        Returns a zero-confidence unmatched candidate when relationship
        storage is unavailable.
        """
        try:
            contacts, accounts, opportunities = await self._load_records(owner_id, signals.emails)
        except Exception as e:
            logger.error(f"Relationship storage unavailable while resolving '{signals.title}': {e}")
            return MatchCandidate(details={"error": str(e)})

        accounts_by_id = {a["id"]: a for a in accounts}
        hits: Dict[str, Optional[Dict[str, Any]]] = {
            "email": self._email_rule(contacts, accounts_by_id),
            "title": self._title_rule(signals.title, accounts, opportunities, accounts_by_id),
            "domain": self._domain_rule(signals.domains, accounts),
        }

        candidates: Dict[str, AccountRef] = {}
        for rule in SCORING_POLICY[:3]:
            account = hits[rule.key]
            if account and account["id"] not in candidates:
                candidates[account["id"]] = _account_ref(account, rule.match_reason)

        fired = {rule.key: hits[rule.key] is not None for rule in SCORING_POLICY[:3]}
        # a known contact counts even when it is not attached to an account
        fired["email"] = bool(contacts)

        resolved: Optional[AccountRef] = None
        for rule in sorted(SCORING_POLICY[:3], key=lambda r: r.priority):
            if hits[rule.key]:
                resolved = candidates[hits[rule.key]["id"]]
                break

        fired["message_threads"] = await self._has_thread_evidence(owner_id, signals.emails)
        fired["call_history"] = bool(resolved) and await self._has_call_history([resolved.id], exclude_call_id)

        confidence = 0
        match_reason = "none"
        applied = []
        for rule in sorted(SCORING_POLICY, key=lambda r: r.priority):
            if not fired[rule.key]:
                continue
            confidence += rule.points
            applied.append({"rule": rule.key, "points": rule.points})
            if match_reason == "none" and rule.match_reason:
                match_reason = rule.match_reason
        confidence = max(0, min(MAX_CONFIDENCE, confidence))

        matched_contacts = [_contact_ref(c) for c in contacts if c.get("id")]
        alternatives = [ref for account_id, ref in candidates.items() if not resolved or account_id != resolved.id]

        result = MatchCandidate(
            account=resolved,
            contacts=matched_contacts,
            confidence=confidence,
            match_reason=match_reason,
            details={"rules": applied, "emails_checked": len(signals.emails)},
            alternatives=alternatives,
        )

        if resolved:
            logger.info(
                f"Resolved '{signals.title}' to account {resolved.name} "
                f"(confidence: {confidence}, reason: {match_reason}, matched: {result.matched})"
            )
        else:
            logger.info(f"No account resolved for '{signals.title}' (confidence: {confidence})")
        return result
