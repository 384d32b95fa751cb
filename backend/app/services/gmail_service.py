"""
Gmail Service - Message-thread search used as relationship evidence
"""
import base64
import logging
from typing import List, Dict, Any

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from app.services.google_calendar import build_google_credentials
from app.services.prep_store import PrepStore
from app.utils import ExternalServiceUnavailable, run_blocking, service_with_timeout

logger = logging.getLogger(__name__)

DEFAULT_THREAD_QUERY = "newer_than:7d"


def _header(headers: List[Dict[str, str]], name: str) -> str:
    for header in headers or []:
        if header.get("name", "").lower() == name:
            return header.get("value", "")
    return ""


def _body_text(payload: Dict[str, Any]) -> str:
    """First text/plain part of a message payload."""
    if payload.get("mimeType") == "text/plain" and payload.get("body", {}).get("data"):
        return base64.urlsafe_b64decode(payload["body"]["data"] + "===").decode("utf-8", errors="replace")
    for part in payload.get("parts", []) or []:
        text = _body_text(part)
        if text:
            return text
    return ""


class GmailService:
    """Mail collaborator: thread search and read."""

    def __init__(self, store: PrepStore):
        self.store = store

    def _service(self, owner_id: str):
        connection = self.store.get_google_connection(owner_id)
        if not connection:
            raise ExternalServiceUnavailable("mail", "no active Google connection")
        return build("gmail", "v1", credentials=build_google_credentials(connection), cache_discovery=False)

    def _search(self, owner_id: str, query: str, max_results: int) -> List[Dict[str, Any]]:
        try:
            service = self._service(owner_id)
            result = service.users().threads().list(userId="me", q=query, maxResults=max_results).execute()
        except HttpError as e:
            raise ExternalServiceUnavailable("mail", str(e))
        return [
            {"id": t.get("id"), "snippet": t.get("snippet", ""), "history_id": t.get("historyId")}
            for t in result.get("threads", [])
        ]

    def _read(self, owner_id: str, thread_id: str) -> Dict[str, Any]:
        try:
            service = self._service(owner_id)
            thread = service.users().threads().get(userId="me", id=thread_id, format="full").execute()
        except HttpError as e:
            raise ExternalServiceUnavailable("mail", str(e))
        messages = []
        for message in thread.get("messages", []):
            payload = message.get("payload", {})
            headers = payload.get("headers", [])
            messages.append({
                "id": message.get("id"),
                "date": _header(headers, "date"),
                "from": _header(headers, "from"),
                "to": _header(headers, "to"),
                "subject": _header(headers, "subject"),
                "snippet": message.get("snippet", ""),
                "body": _body_text(payload)[:4000],
            })
        return {"thread_id": thread.get("id"), "messages": messages}

    async def search_threads(self, owner_id: str, query: str = DEFAULT_THREAD_QUERY, max_results: int = 10) -> List[Dict[str, Any]]:
        return await service_with_timeout(run_blocking(self._search, owner_id, query, max_results), "mail.search_threads")

    async def read_thread(self, owner_id: str, thread_id: str) -> Dict[str, Any]:
        return await service_with_timeout(run_blocking(self._read, owner_id, thread_id), "mail.read_thread")

    async def has_threads_with(self, owner_id: str, emails: List[str]) -> bool:
        """True when any thread exchanged with one of the addresses exists."""
        if not emails:
            return False
        query = " OR ".join(f"from:{e} OR to:{e}" for e in emails[:10])
        threads = await self.search_threads(owner_id, query, max_results=1)
        return bool(threads)
