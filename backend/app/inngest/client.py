"""
Inngest Client Configuration.
"""

import os
import logging
from inngest import Inngest

logger = logging.getLogger(__name__)

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

inngest_client = Inngest(
    app_id="callprep",
    # Event key is required for sending events in production
    event_key=os.getenv("INNGEST_EVENT_KEY"),
    signing_key=os.getenv("INNGEST_SIGNING_KEY"),
    is_production=ENVIRONMENT == "production",
)

logger.info(f"Inngest client initialized (env={ENVIRONMENT})")
