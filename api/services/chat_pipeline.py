"""
Chat pipeline: one user message in, one reply out.

    message -> extract + reconcile facts -> load all facts
            -> detect tone -> compose reply

The reply prompt depends on the post-reconciliation fact set, so the two
remote calls always run one after the other.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

from api.services.fact_extractor import FactExtractor
from api.services.fact_store import Contradiction, FactStore, get_fact_store
from api.services.openrouter_client import OpenRouterClient, get_openrouter_client
from api.services.reply_composer import ReplyComposer
from api.services.tone import Tone, detect_tone

logger = logging.getLogger(__name__)


@dataclass
class ChatResult:
    """Everything a chat turn produced."""
    reply: str
    tone: Tone
    facts: dict[str, str] = field(default_factory=dict)
    contradictions: list[Contradiction] = field(default_factory=list)


class ChatPipeline:
    """Runs fact extraction and reply composition for a chat turn."""

    def __init__(self, store: FactStore, client: OpenRouterClient):
        self.store = store
        self.extractor = FactExtractor(store, client)
        self.composer = ReplyComposer(client)

    async def handle(self, message: str, user_id: str) -> ChatResult:
        """
        Handle one chat message.

        Args:
            message: User message text (non-empty)
            user_id: User identifier

        Returns:
            ChatResult with the reply and the facts in play
        """
        extraction = await self.extractor.extract(message, user_id)
        facts = self.store.get_all(user_id)
        tone = detect_tone(message)

        logger.info(
            f"Chat turn for {user_id}: {len(facts)} known fact(s), tone={tone.value}"
        )

        reply = await self.composer.compose(message, facts, extraction.contradictions, tone)
        return ChatResult(
            reply=reply,
            tone=tone,
            facts=facts,
            contradictions=extraction.contradictions,
        )


# Singleton instance
_pipeline: Optional[ChatPipeline] = None


def get_chat_pipeline() -> ChatPipeline:
    """Get or create ChatPipeline singleton wired to the default store and client."""
    global _pipeline
    if _pipeline is None:
        _pipeline = ChatPipeline(get_fact_store(), get_openrouter_client())
    return _pipeline


def reset_chat_pipeline() -> None:
    """Reset the singleton (for testing)."""
    global _pipeline
    _pipeline = None
