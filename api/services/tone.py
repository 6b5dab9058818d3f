"""
Tone detection for reply generation.

Keyword heuristic that picks the register the persona should answer in.
Checked in priority order, first match wins:

    sadness   -> empathetic
    happiness -> cheerful
    anger     -> calm
    humor     -> sarcastic
    otherwise -> friendly
"""
import re
from enum import Enum


class Tone(str, Enum):
    """Reply register."""
    EMPATHETIC = "empathetic"
    CHEERFUL = "cheerful"
    CALM = "calm"
    SARCASTIC = "sarcastic"
    FRIENDLY = "friendly"


TONE_KEYWORDS: list[tuple[Tone, tuple[str, ...]]] = [
    (Tone.EMPATHETIC, (
        "sad", "unhappy", "depressed", "lonely", "upset", "cry", "crying",
        "heartbroken", "miserable", "grief", "grieving",
    )),
    (Tone.CHEERFUL, (
        "happy", "excited", "glad", "great", "awesome", "amazing",
        "wonderful", "yay", "thrilled", "love",
    )),
    (Tone.CALM, (
        "angry", "mad", "furious", "annoyed", "frustrated", "pissed",
        "hate", "irritated", "rage",
    )),
    (Tone.SARCASTIC, (
        "joke", "jokes", "funny", "lol", "lmao", "haha", "hahaha", "kidding",
        "meme",
    )),
]

_TONE_PATTERNS = [
    (tone, re.compile(r"\b(" + "|".join(map(re.escape, words)) + r")\b"))
    for tone, words in TONE_KEYWORDS
]


def detect_tone(message: str) -> Tone:
    """
    Classify the emotional register of a message.

    Total and deterministic: every input maps to exactly one Tone.

    Args:
        message: User message text

    Returns:
        Detected Tone (FRIENDLY when nothing matches)
    """
    text = message.lower()
    for tone, pattern in _TONE_PATTERNS:
        if pattern.search(text):
            return tone
    return Tone.FRIENDLY
