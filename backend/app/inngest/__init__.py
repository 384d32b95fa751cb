"""
Inngest workflow orchestration for background prep sheet regeneration.

Usage:
    from app.inngest import inngest_client, all_functions

    # In main.py:
    inngest.fast_api.serve(app, inngest_client, all_functions)
"""

from .client import inngest_client
from .functions import all_functions

__all__ = ["inngest_client", "all_functions"]
