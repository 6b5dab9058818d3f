"""
Stan Chat Services Package.

Business logic behind the chat endpoint: fact extraction and storage, tone
detection, reply composition and the OpenRouter client.

Example:
    from api.services import get_chat_pipeline, detect_tone
"""

from api.services.chat_pipeline import ChatPipeline, ChatResult, get_chat_pipeline
from api.services.fact_extractor import FactExtractor, ExtractionOutcome
from api.services.fact_store import Contradiction, Fact, FactStore, SQLiteFactStore, get_fact_store
from api.services.openrouter_client import OpenRouterClient, OpenRouterError, get_openrouter_client
from api.services.reply_composer import ReplyComposer
from api.services.tone import Tone, detect_tone

__all__ = [
    "ChatPipeline",
    "ChatResult",
    "Contradiction",
    "ExtractionOutcome",
    "Fact",
    "FactExtractor",
    "FactStore",
    "OpenRouterClient",
    "OpenRouterError",
    "ReplyComposer",
    "SQLiteFactStore",
    "Tone",
    "detect_tone",
    "get_chat_pipeline",
    "get_fact_store",
    "get_openrouter_client",
]
