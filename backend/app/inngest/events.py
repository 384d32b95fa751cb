"""
Inngest Event Helpers.

Routers send events through send_event; when Inngest is disabled for a
feature the router runs the work inline instead.
"""

import os
import logging
from typing import Optional
import inngest

logger = logging.getLogger(__name__)

INNGEST_ENABLED = os.getenv("INNGEST_ENABLED", "true").lower() == "true"


class Events:
    """Event name constants."""

    PREP_SHEET_REGENERATE_REQUESTED = "callprep/prep_sheet.regenerate.requested"
    PREP_SHEET_GENERATED = "callprep/prep_sheet.generated"


async def send_event(
    event_name: str,
    data: dict,
    user: Optional[dict] = None
) -> bool:
    """
    Send an event to Inngest.

    Returns:
        True if the event was sent, False otherwise
    """
    if not INNGEST_ENABLED:
        logger.debug(f"Inngest disabled, skipping event: {event_name}")
        return False

    from app.inngest.client import inngest_client

    try:
        event_kwargs = {"name": event_name, "data": data}
        if user is not None:
            event_kwargs["user"] = user
        await inngest_client.send(inngest.Event(**event_kwargs))
        logger.info(f"Inngest event sent: {event_name}")
        return True
    except Exception as e:
        logger.error(f"Failed to send Inngest event {event_name}: {e}")
        return False


def use_inngest_for(feature: str) -> bool:
    """
    Check if Inngest should be used for a specific feature.

    Args:
        feature: Feature name (e.g., "prep_sheet")
    """
    if not INNGEST_ENABLED:
        return False
    env_key = f"INNGEST_FEATURE_{feature.upper()}"
    result = os.getenv(env_key, "true").lower() == "true"
    logger.debug(f"use_inngest_for({feature}): {env_key} -> {result}")
    return result
