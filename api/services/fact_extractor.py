"""
Fact extraction from chat messages.

Turns a free-text user message into key/value facts via the remote LLM and
merges them into the user's fact store:

1. Ambiguity guard: uncertain messages ("red or blue") are never mined.
2. Remote call at temperature 0 asking for a JSON object of facts.
3. Defensive parse: anything unparsable counts as no facts.
4. Reconciliation against the store, reporting changed values as
   contradictions.

Extraction is best-effort. A failed remote step degrades to "no facts" and
never blocks reply generation.
"""
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from api.services.chat_helpers import is_ambiguous, normalize_fact_key
from api.services.fact_store import Contradiction, FactStore
from api.services.openrouter_client import (
    Completion,
    OpenRouterClient,
    OpenRouterError,
    ProviderError,
)
from api.services.service_health import mark_service_healthy, record_degradation

logger = logging.getLogger(__name__)

EXTRACTION_PROMPT = """Extract facts about the user from the message below.

Rules:
- Only extract facts the user states clearly and unambiguously about themselves.
- Do not guess. Skip anything uncertain, hypothetical, or asked as a question.
- Use short snake_case keys. Prefer these when they fit: name, favorite_color, location, pet, hobby, age, job, favorite_food.
  Other keys are fine when none of these fit.
- Values are short plain strings.
- Return ONLY a JSON object mapping keys to values, e.g. {{"name": "Kia", "pet": "a dog named Milo"}}.
- If nothing qualifies, return {{}}.

Message:
{message}"""


@dataclass(frozen=True)
class ExtractionOk:
    """Remote step succeeded (facts may still be empty)."""
    facts: dict[str, str]


@dataclass(frozen=True)
class ExtractionFailed:
    """Remote step failed; the caller decides the fallback."""
    reason: str


ExtractionResult = Union[ExtractionOk, ExtractionFailed]


@dataclass
class ExtractionOutcome:
    """Facts extracted from one message and the changes they caused."""
    facts: dict[str, str] = field(default_factory=dict)
    contradictions: list[Contradiction] = field(default_factory=list)


def extract_json(text: str) -> Optional[Any]:
    """
    Extract JSON from LLM response text.

    Handles:
    - Raw JSON
    - ```json ... ``` code blocks
    - ``` ... ``` code blocks
    - A JSON object embedded in other text (braces inside strings are fine)

    Args:
        text: Raw response text

    Returns:
        Parsed JSON value, or None if no valid JSON found
    """
    # Try raw JSON first
    try:
        return json.loads(text.strip())
    except json.JSONDecodeError:
        pass

    # Try any code block (json-tagged or not)
    code_block_match = re.search(r'```(?:json)?\s*([\s\S]*?)\s*```', text)
    if code_block_match:
        try:
            return json.loads(code_block_match.group(1))
        except json.JSONDecodeError:
            pass

    # Decode from the first { that starts a valid object (strings may hold braces)
    decoder = json.JSONDecoder()
    brace_start = text.find('{')
    while brace_start >= 0:
        try:
            value, _ = decoder.raw_decode(text, brace_start)
            return value
        except json.JSONDecodeError:
            brace_start = text.find('{', brace_start + 1)

    return None


def _stringify(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    text = str(value).strip()
    return text or None


def parse_facts(text: str) -> dict[str, str]:
    """
    Parse an extraction response into normalised facts.

    Non-JSON text and non-object JSON both yield an empty mapping. Entries
    with empty, null or nested values are dropped.

    Args:
        text: Raw extraction response

    Returns:
        Mapping of snake_case key to string value
    """
    data = extract_json(text)
    if not isinstance(data, dict):
        if text.strip():
            logger.warning(f"Extraction response was not a JSON object: {text[:200]}")
        return {}

    facts = {}
    for raw_key, raw_value in data.items():
        key = normalize_fact_key(str(raw_key))
        value = _stringify(raw_value)
        if not key or value is None:
            logger.debug(f"Skipping unusable fact: {raw_key!r}={raw_value!r}")
            continue
        facts[key] = value
    return facts


class FactExtractor:
    """
    Extracts facts from a message and reconciles them with a user's store.
    """

    def __init__(self, store: FactStore, client: OpenRouterClient):
        """
        Initialize extractor.

        Args:
            store: Fact storage capability
            client: OpenRouter client used for the extraction call
        """
        self.store = store
        self.client = client

    async def request_facts(self, message: str) -> ExtractionResult:
        """
        Ask the remote LLM for facts in a message.

        Args:
            message: User message text

        Returns:
            ExtractionOk with parsed facts, or ExtractionFailed
        """
        prompt = EXTRACTION_PROMPT.format(message=message)

        try:
            result = await self.client.chat(
                [{"role": "user", "content": prompt}],
                temperature=0,
            )
        except OpenRouterError as e:
            return ExtractionFailed(reason=str(e))

        if isinstance(result, ProviderError):
            return ExtractionFailed(reason=f"Provider error: {result.message}")
        if not isinstance(result, Completion):
            return ExtractionFailed(reason=f"Malformed provider response: {result.raw}")

        return ExtractionOk(facts=parse_facts(result.text))

    def reconcile(self, user_id: str, facts: dict[str, str]) -> list[Contradiction]:
        """
        Merge facts into the store.

        Args:
            user_id: User identifier
            facts: Extracted facts

        Returns:
            Contradictions, in the order the facts were given
        """
        contradictions = []
        for key, value in facts.items():
            contradiction = self.store.reconcile(user_id, key, value)
            if contradiction:
                logger.info(
                    f"Fact changed for {user_id}: {key} "
                    f"'{contradiction.old}' -> '{contradiction.new}'"
                )
                contradictions.append(contradiction)
            else:
                logger.debug(f"Stored fact for {user_id}: {key}={value}")
        return contradictions

    async def extract(self, message: str, user_id: str) -> ExtractionOutcome:
        """
        Extract facts from a message and store them.

        Args:
            message: User message text
            user_id: User identifier

        Returns:
            ExtractionOutcome; empty when the message is ambiguous or the
            remote step failed
        """
        if is_ambiguous(message):
            logger.info("Skipping fact extraction for ambiguous message")
            return ExtractionOutcome()

        result = await self.request_facts(message)

        if isinstance(result, ExtractionFailed):
            logger.warning(f"Fact extraction failed: {result.reason}")
            record_degradation("openrouter", "fact_extraction", "no_facts", result.reason)
            return ExtractionOutcome()

        mark_service_healthy("openrouter")

        if not result.facts:
            return ExtractionOutcome()

        contradictions = self.reconcile(user_id, result.facts)
        logger.info(
            f"Extracted {len(result.facts)} fact(s) for {user_id}, "
            f"{len(contradictions)} contradiction(s)"
        )
        return ExtractionOutcome(facts=result.facts, contradictions=contradictions)
