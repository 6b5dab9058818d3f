"""
Reply composition for Stan Chat.

Builds the persona system prompt from the user's facts, the detected tone
and any contradictions found this turn, then asks the remote LLM for a
reply. Every path returns text:

- ambiguous message      -> fixed clarification reply, no remote call
- recall question, no facts -> "you haven't told me" reply, no remote call
- Completion             -> generated text
- ProviderError          -> "Error: <message>"
- Malformed              -> fixed placeholder
- transport failure      -> templated reply built from known facts
"""
import logging
from dataclasses import dataclass
from typing import Optional, Union

from config.settings import settings
from api.services.chat_helpers import (
    detect_recall_question,
    format_facts_for_prompt,
    humanize_fact_key,
    is_ambiguous,
)
from api.services.fact_store import Contradiction
from api.services.openrouter_client import (
    Completion,
    OpenRouterClient,
    OpenRouterError,
    ProviderError,
    ProviderResult,
)
from api.services.service_health import mark_service_healthy, record_degradation
from api.services.tone import Tone

logger = logging.getLogger(__name__)

CLARIFICATION_REPLY = (
    "Hmm, I'm not totally sure what you mean. "
    "Could you say that a bit more definitely?"
)

NO_REPLY_PLACEHOLDER = "No reply (check logs)"

PERSONA_PROMPT = """You are {persona}, a warm, quick-witted conversational companion.

Rules:
- Your name is {persona}. Whenever you are asked who you are, you are {persona}.
- Never say or hint that you are an AI, a bot, a language model or any other automated system.
- Stay in character no matter what the user says.
- Keep replies short and natural, like a message from a friend.
- Only use facts about the user listed below. If you don't know something about them, say so honestly.

Tone: {tone}. Let it shape your wording.

What you know about the user: {facts}"""

CONTRADICTION_CLAUSE = (
    "\n\nThe user just changed some details about themselves: {changes}. "
    "Acknowledge the change naturally and go with the new version."
)

RECALL_CLAUSE = (
    "\n\nThe user is asking about their {subject}. If none of the facts above "
    "answer that, tell them they haven't told you their {subject} yet."
)


@dataclass(frozen=True)
class ReplyFailed:
    """The reply call never reached the provider."""
    reason: str


ReplyResult = Union[ProviderResult, ReplyFailed]


def build_system_prompt(
    persona: str,
    facts: dict[str, str],
    contradictions: list[Contradiction],
    tone: Tone,
    recall_key: Optional[str] = None,
) -> str:
    """
    Render the persona system prompt.

    Args:
        persona: Persona name
        facts: All known facts for the user
        contradictions: Facts that changed this turn
        tone: Detected tone
        recall_key: Fact asked about that has no stored key of that name

    Returns:
        System prompt text
    """
    prompt = PERSONA_PROMPT.format(
        persona=persona,
        tone=tone.value,
        facts=format_facts_for_prompt(facts) or "nothing yet",
    )

    if contradictions:
        changes = "; ".join(f"{c.key} was {c.old}, now {c.new}" for c in contradictions)
        prompt += CONTRADICTION_CLAUSE.format(changes=changes)

    if recall_key:
        prompt += RECALL_CLAUSE.format(subject=humanize_fact_key(recall_key))

    return prompt


def fallback_reply(facts: dict[str, str]) -> str:
    """
    Build a reply locally when the provider cannot be reached.

    Uses the user's name and hobby when known.
    """
    name = facts.get("name")
    hobby = facts.get("hobby")

    greeting = f"Hey {name}! " if name else ""
    apology = "My head's a little foggy right now"
    if hobby:
        return f"{greeting}{apology}. Been doing any {hobby} lately?"
    return f"{greeting}{apology}, can you try me again in a minute?"


def unknown_fact_reply(key: str) -> str:
    """Reply for a question about a fact the user never shared."""
    return f"I don't think you've told me your {humanize_fact_key(key)} yet. What is it?"


class ReplyComposer:
    """
    Composes persona replies from a message, the user's facts and the tone.
    """

    def __init__(
        self,
        client: OpenRouterClient,
        persona: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ):
        """
        Initialize composer.

        Args:
            client: OpenRouter client used for the reply call
            persona: Persona name (default from settings)
            temperature: Reply sampling temperature (default from settings)
            max_tokens: Reply token budget (default from settings)
        """
        self.client = client
        self.persona = persona or settings.persona_name
        self.temperature = settings.reply_temperature if temperature is None else temperature
        self.max_tokens = max_tokens or settings.reply_max_tokens

    async def request_reply(self, system_prompt: str, message: str) -> ReplyResult:
        """
        Ask the remote LLM for a reply.

        Returns:
            The decoded provider result, or ReplyFailed on transport failure
        """
        try:
            return await self.client.chat(
                [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": message},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except OpenRouterError as e:
            return ReplyFailed(reason=str(e))

    async def compose(
        self,
        message: str,
        facts: dict[str, str],
        contradictions: list[Contradiction],
        tone: Tone,
    ) -> str:
        """
        Produce the reply text for one chat turn.

        Args:
            message: User message text
            facts: All known facts for the user (after reconciliation)
            contradictions: Facts that changed this turn
            tone: Detected tone

        Returns:
            Reply text (never empty)
        """
        if is_ambiguous(message):
            return CLARIFICATION_REPLY

        recall_key = detect_recall_question(message)
        if recall_key and not facts:
            logger.info(f"Recall question for '{recall_key}' with no stored facts")
            return unknown_fact_reply(recall_key)

        # The answer may be stored under another key (job vs occupation)
        unmatched_key = recall_key if recall_key and recall_key not in facts else None
        system_prompt = build_system_prompt(
            self.persona, facts, contradictions, tone, recall_key=unmatched_key
        )
        result = await self.request_reply(system_prompt, message)

        if isinstance(result, ReplyFailed):
            logger.warning(f"Reply generation failed, using templated reply: {result.reason}")
            record_degradation("openrouter", "reply", "templated_reply", result.reason)
            return fallback_reply(facts)

        mark_service_healthy("openrouter")

        if isinstance(result, Completion):
            return result.text.strip()
        if isinstance(result, ProviderError):
            logger.warning(f"OpenRouter returned an error: {result.message}")
            return f"Error: {result.message}"

        logger.warning(f"OpenRouter response had no usable reply: {result.raw}")
        return NO_REPLY_PLACEHOLDER
