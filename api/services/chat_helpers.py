"""
Chat helper functions for message screening and fact formatting.

Pure functions shared by the fact extractor and the reply composer. These
handle the ambiguity guard, recall-question detection, fact-key
normalisation and prompt rendering of facts.
"""
import re
from typing import Optional

# "red or blue", "maybe Tuesday", "possibly a cat": too uncertain to store
AMBIGUITY_PATTERN = re.compile(r"\b(or|maybe|possibly)\b", re.IGNORECASE)

# "what's my name", "what is my favorite color?", "do you know my pet"
RECALL_PATTERN = re.compile(
    r"^\s*(?:what(?:'|’)?s|what\s+is|do\s+you\s+(?:know|remember))\s+my\s+"
    r"(?P<subject>[a-z][a-z\s\-]*?)\s*\??\s*$",
    re.IGNORECASE,
)

# Spoken forms that map onto a different stored key
RECALL_KEY_ALIASES = {
    "favourite_color": "favorite_color",
    "favourite_colour": "favorite_color",
    "favorite_colour": "favorite_color",
    "fav_color": "favorite_color",
    "city": "location",
    "dog": "pet",
    "cat": "pet",
}


def is_ambiguous(message: str) -> bool:
    """
    Detect whether a message is too uncertain to extract facts from.

    Args:
        message: User message text

    Returns:
        True if the message contains "or", "maybe" or "possibly"
    """
    return bool(AMBIGUITY_PATTERN.search(message))


def normalize_fact_key(key: str) -> str:
    """
    Normalise a fact key to snake_case.

    "Favorite Color" -> "favorite_color", " pet-name " -> "pet_name"
    """
    key = key.strip().lower()
    key = re.sub(r"[\s\-]+", "_", key)
    key = re.sub(r"[^a-z0-9_]", "", key)
    return key.strip("_")


def detect_recall_question(message: str) -> Optional[str]:
    """
    Detect a direct question about one stored fact.

    Args:
        message: User message text

    Returns:
        The fact key the question asks about, or None
    """
    match = RECALL_PATTERN.match(message)
    if not match:
        return None

    key = normalize_fact_key(match.group("subject"))
    if not key:
        return None
    return RECALL_KEY_ALIASES.get(key, key)


def humanize_fact_key(key: str) -> str:
    """Render a fact key for a sentence ("favorite_color" -> "favorite color")."""
    return key.replace("_", " ")


def format_facts_for_prompt(facts: dict[str, str]) -> str:
    """
    Render facts as "key: value" pairs joined by commas.

    Args:
        facts: Mapping of fact key to value

    Returns:
        Rendered facts, or an empty string when there are none
    """
    return ", ".join(f"{key}: {value}" for key, value in facts.items())
