"""
Internationalization (i18n) for prep sheet output.

Provides:
- Supported output languages
- Prompt language instructions
- Localised section titles for template sections
"""

from .config import (
    SUPPORTED_LANGUAGES,
    DEFAULT_LANGUAGE,
    is_supported_language,
)

from .utils import (
    get_language_instruction,
    resolve_language,
    get_section_title,
    get_banner_text,
)

__all__ = [
    "SUPPORTED_LANGUAGES",
    "DEFAULT_LANGUAGE",
    "is_supported_language",
    "get_language_instruction",
    "resolve_language",
    "get_section_title",
    "get_banner_text",
]
