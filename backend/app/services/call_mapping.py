"""
Call Mapping - Idempotent "ensure call" for external calendar events

One (owner, integration kind, external id) maps to exactly one local call.
The mapping row is written with insert-if-absent on its unique key, so two
racing requests converge on whichever row landed first.
"""
from typing import Optional, Dict, Any
from datetime import datetime
import uuid
import logging

from app.models.prep_sheet import MeetingSignals
from app.services.prep_store import PrepStore
from app.utils import run_blocking, service_with_timeout

logger = logging.getLogger(__name__)


def _call_fields(signals: MeetingSignals) -> Dict[str, Any]:
    status = "scheduled"
    if signals.end and signals.end < datetime.now(signals.end.tzinfo):
        status = "completed"
    return {
        "title": signals.title,
        "scheduled_at": signals.start.isoformat() if signals.start else None,
        "status": status,
    }


class CallMappingService:
    """Creates or patches the local call record behind an external event."""

    def __init__(self, store: PrepStore):
        self.store = store

    def _ensure_call(
        self,
        owner_id: str,
        integration_kind: str,
        external_id: str,
        signals: MeetingSignals,
        account_id: Optional[str] = None
    ) -> Dict[str, Any]:
        fields = _call_fields(signals)

        mapping = self.store.get_mapping(owner_id, integration_kind, external_id)
        if mapping:
            call_id = mapping["local_call_id"]
            call = self.store.update_call(call_id, fields)
            if call is None:
                # mapping survived a deleted call; recreate under the same id
                call = self.store.insert_call(self._new_call(call_id, owner_id, integration_kind, external_id, fields, account_id))
            return call

        call_id = str(uuid.uuid4())
        self.store.insert_mapping_if_absent({
            "owner_id": owner_id,
            "integration_kind": integration_kind,
            "external_id": external_id,
            "local_call_id": call_id,
        })
        mapping = self.store.get_mapping(owner_id, integration_kind, external_id)
        winner = mapping["local_call_id"] if mapping else call_id

        if winner == call_id:
            logger.info(f"Created call {call_id} for {integration_kind}:{external_id}")
            return self.store.insert_call(self._new_call(call_id, owner_id, integration_kind, external_id, fields, account_id))

        logger.info(f"Lost mapping race for {integration_kind}:{external_id}; using call {winner}")
        call = self.store.update_call(winner, fields)
        return call or {"id": winner, "owner_id": owner_id, **fields}

    def _new_call(
        self,
        call_id: str,
        owner_id: str,
        integration_kind: str,
        external_id: str,
        fields: Dict[str, Any],
        account_id: Optional[str]
    ) -> Dict[str, Any]:
        return {
            "id": call_id,
            "owner_id": owner_id,
            "account_id": account_id,
            "integration_kind": integration_kind,
            "external_id": external_id,
            "created_at": datetime.utcnow().isoformat(),
            **fields,
        }

    async def ensure_call(
        self,
        owner_id: str,
        integration_kind: str,
        external_id: str,
        signals: MeetingSignals,
        account_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Return the local call for an external event, creating it on first open.

        Repeated calls with the same key return the same call id; meeting
        changes (title, time, status) patch that call.
        """
        return await service_with_timeout(
            run_blocking(self._ensure_call, owner_id, integration_kind, external_id, signals, account_id),
            "store.ensure_call",
        )
