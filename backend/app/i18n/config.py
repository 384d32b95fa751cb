"""
i18n configuration for the call prep backend.
"""

from typing import List, Optional

# Supported language codes (ISO 639-1)
SUPPORTED_LANGUAGES: List[str] = ["en", "nl", "de"]

DEFAULT_LANGUAGE: str = "en"


def is_supported_language(language: Optional[str]) -> bool:
    """Check if a language code is supported."""
    return language in SUPPORTED_LANGUAGES if language else False
