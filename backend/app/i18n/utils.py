"""
i18n utility functions for prep sheet output.
"""

from typing import Optional
from .config import DEFAULT_LANGUAGE, is_supported_language


# Language instructions for AI prompts
LANGUAGE_INSTRUCTIONS = {
    "en": "Write everything in English.",
    "nl": "Schrijf alles in het Nederlands.",
    "de": "Schreibe alles auf Deutsch.",
}

SECTION_TITLES = {
    "en": {
        "notes": "Notes",
        "crm_insights": "CRM Insights",
        "objectives": "Objectives",
        "agenda": "Suggested Agenda",
        "discovery_questions": "Discovery Questions",
        "next_steps": "Next Steps",
    },
    "nl": {
        "notes": "Notities",
        "crm_insights": "CRM-inzichten",
        "objectives": "Doelen",
        "agenda": "Voorgestelde agenda",
        "discovery_questions": "Discovery-vragen",
        "next_steps": "Vervolgstappen",
    },
    "de": {
        "notes": "Notizen",
        "crm_insights": "CRM-Einblicke",
        "objectives": "Ziele",
        "agenda": "Vorgeschlagene Agenda",
        "discovery_questions": "Discovery-Fragen",
        "next_steps": "Nächste Schritte",
    },
}

BANNERS = {
    "en": {
        "no_account": "Limited context: no account linked yet. Pick a suggested account to unlock CRM insights.",
        "no_attendees": "This invite has no attendees, so the account could not be inferred.",
        "emergency": "Preparation data is temporarily unavailable. Your notes are still saved.",
    },
    "nl": {
        "no_account": "Beperkte context: nog geen account gekoppeld. Kies een voorgesteld account voor CRM-inzichten.",
        "no_attendees": "Deze uitnodiging heeft geen deelnemers, dus het account kon niet worden afgeleid.",
        "emergency": "Voorbereidingsgegevens zijn tijdelijk niet beschikbaar. Je notities blijven bewaard.",
    },
    "de": {
        "no_account": "Eingeschränkter Kontext: noch kein Account verknüpft. Wähle einen vorgeschlagenen Account für CRM-Einblicke.",
        "no_attendees": "Diese Einladung hat keine Teilnehmer, daher konnte der Account nicht ermittelt werden.",
        "emergency": "Vorbereitungsdaten sind vorübergehend nicht verfügbar. Deine Notizen bleiben gespeichert.",
    },
}


def get_language_instruction(language: str = DEFAULT_LANGUAGE) -> str:
    """
    Get the 'write in X language' instruction for AI prompts.

    Args:
        language: ISO 639-1 language code

    Returns:
        Language instruction string
    """
    return LANGUAGE_INSTRUCTIONS.get(language, LANGUAGE_INSTRUCTIONS[DEFAULT_LANGUAGE])


def resolve_language(request_language: Optional[str] = None) -> str:
    """Requested language when supported, otherwise the default."""
    if is_supported_language(request_language):
        return request_language
    return DEFAULT_LANGUAGE


def get_section_title(section_id: str, language: str = DEFAULT_LANGUAGE) -> str:
    titles = SECTION_TITLES.get(language, SECTION_TITLES[DEFAULT_LANGUAGE])
    return titles.get(section_id) or SECTION_TITLES[DEFAULT_LANGUAGE].get(section_id, section_id)


def get_banner_text(key: str, language: str = DEFAULT_LANGUAGE) -> str:
    banners = BANNERS.get(language, BANNERS[DEFAULT_LANGUAGE])
    return banners.get(key) or BANNERS[DEFAULT_LANGUAGE][key]
