"""
Prep Sheet Regeneration Inngest Function.

Events:
- callprep/prep_sheet.regenerate.requested: regenerate a prep sheet in the background
- callprep/prep_sheet.generated: emitted when the sheet is stored
"""

import logging
from typing import Optional
import inngest
from inngest import NonRetriableError, TriggerEvent

from app.inngest.client import inngest_client
from app.inngest.events import Events
from app.models.prep_sheet import MeetingRef
from app.services.prep_orchestrator import get_prep_orchestrator

logger = logging.getLogger(__name__)


@inngest_client.create_function(
    fn_id="prep-sheet-regenerate",
    trigger=TriggerEvent(event=Events.PREP_SHEET_REGENERATE_REQUESTED),
    retries=1,
)
async def regenerate_prep_sheet_fn(ctx, step):
    """
    Regenerate the prep sheet of a meeting.

    Steps:
    1. Run the orchestrator in regenerate mode (stores the result)
    2. Emit completion event
    """
    event_data = ctx.event.data
    owner_id = event_data.get("owner_id")
    event_id = event_data.get("event_id")
    call_id = event_data.get("call_id")
    language = event_data.get("language", "en")

    if not owner_id or not (event_id or call_id):
        raise NonRetriableError("owner_id and event_id or call_id are required")

    logger.info(f"Starting Inngest prep sheet regeneration (event={event_id}, call={call_id})")

    result = await step.run(
        "regenerate-prep-sheet",
        regenerate_prep_sheet,
        owner_id, event_id, call_id, language
    )

    await step.send_event(
        "emit-completion",
        inngest.Event(
            name=Events.PREP_SHEET_GENERATED,
            data={"owner_id": owner_id, "event_id": event_id, **result},
        )
    )
    return result


async def regenerate_prep_sheet(
    owner_id: str,
    event_id: Optional[str],
    call_id: Optional[str],
    language: str
) -> dict:
    result = await get_prep_orchestrator().generate_prep_sheet(
        owner_id,
        MeetingRef(event_id=event_id, call_id=call_id, language=language),
        mode="regenerate",
    )
    return {
        "call_id": result.call_id,
        "prep_id": result.prep_id,
        "mode": result.mode,
        "tier": result.sheet.tier,
        "match_reason": result.match_reason,
    }
