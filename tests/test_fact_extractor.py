"""
Tests for api/services/fact_extractor.py

Tests JSON parsing, the ambiguity guard, reconciliation and the
fail-soft behaviour of extraction.
"""
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from api.services.fact_extractor import (
    EXTRACTION_PROMPT,
    ExtractionFailed,
    ExtractionOk,
    ExtractionOutcome,
    FactExtractor,
    extract_json,
    parse_facts,
)
from api.services.fact_store import Contradiction
from api.services.openrouter_client import (
    Completion,
    Malformed,
    OpenRouterError,
    ProviderError,
)
from api.services.service_health import get_service_health, ServiceStatus
from tests.fakes import FakeOpenRouter, InMemoryFactStore


def stub_client(result=None, side_effect=None) -> MagicMock:
    client = MagicMock()
    client.chat = AsyncMock(return_value=result, side_effect=side_effect)
    return client


# =============================================================================
# Parsing
# =============================================================================

@pytest.mark.unit
class TestExtractJson:
    """Tests for extract_json."""

    def test_raw_json(self):
        assert extract_json('{"name": "Kia"}') == {"name": "Kia"}

    def test_json_code_block(self):
        text = 'Here you go:\n```json\n{"pet": "cat"}\n```'
        assert extract_json(text) == {"pet": "cat"}

    def test_plain_code_block(self):
        assert extract_json('```\n{"pet": "cat"}\n```') == {"pet": "cat"}

    def test_embedded_object(self):
        text = 'Sure! {"hobby": "climbing"} Hope that helps.'
        assert extract_json(text) == {"hobby": "climbing"}

    def test_nested_braces(self):
        assert extract_json('x {"a": {"b": 1}} y') == {"a": {"b": 1}}

    def test_garbage(self):
        assert extract_json("I couldn't find any facts.") is None

    def test_unbalanced(self):
        assert extract_json('{"name": "Kia"') is None

    def test_brace_inside_string(self):
        assert extract_json('Here you go: {"name": "K}ia"}') == {"name": "K}ia"}

    def test_skips_stray_brace(self):
        assert extract_json('Format {x}, result: {"pet": "cat"}') == {"pet": "cat"}


@pytest.mark.unit
class TestParseFacts:
    """Tests for parse_facts."""

    def test_simple(self):
        assert parse_facts('{"name": "Kia", "favorite_color": "blue"}') == {
            "name": "Kia",
            "favorite_color": "blue",
        }

    def test_empty_object(self):
        assert parse_facts("{}") == {}

    def test_invalid_json_is_empty(self):
        assert parse_facts("not json at all") == {}

    def test_empty_text_is_empty(self):
        assert parse_facts("") == {}

    def test_non_object_json_is_empty(self):
        assert parse_facts('["name", "Kia"]') == {}
        assert parse_facts('"Kia"') == {}

    def test_keys_are_normalised(self):
        assert parse_facts('{"Favorite Color": "blue"}') == {"favorite_color": "blue"}

    def test_values_are_stringified(self):
        assert parse_facts('{"age": 31, "vegan": true}') == {"age": "31", "vegan": "true"}

    def test_unusable_values_dropped(self):
        text = '{"name": "Kia", "pet": null, "hobby": "", "job": {"title": "x"}, "tags": [1]}'
        assert parse_facts(text) == {"name": "Kia"}

    def test_values_trimmed(self):
        assert parse_facts('{"location": "  Lisbon "}') == {"location": "Lisbon"}


# =============================================================================
# Remote step
# =============================================================================

@pytest.mark.unit
class TestRequestFacts:
    """Tests for FactExtractor.request_facts result types."""

    @pytest.mark.asyncio
    async def test_ok(self, memory_store):
        client = stub_client(Completion(text='{"name": "Kia"}'))
        result = await FactExtractor(memory_store, client).request_facts("My name is Kia")
        assert result == ExtractionOk(facts={"name": "Kia"})

    @pytest.mark.asyncio
    async def test_uses_temperature_zero_and_instruction(self, memory_store):
        client = stub_client(Completion(text="{}"))
        await FactExtractor(memory_store, client).request_facts("My name is Kia")

        messages = client.chat.call_args.args[0]
        assert client.chat.call_args.kwargs["temperature"] == 0
        assert messages == [
            {"role": "user", "content": EXTRACTION_PROMPT.format(message="My name is Kia")}
        ]
        assert "My name is Kia" in messages[0]["content"]

    @pytest.mark.asyncio
    async def test_transport_failure(self, memory_store):
        client = stub_client(side_effect=OpenRouterError("Timeout connecting to OpenRouter"))
        result = await FactExtractor(memory_store, client).request_facts("My name is Kia")
        assert isinstance(result, ExtractionFailed)
        assert "Timeout" in result.reason

    @pytest.mark.asyncio
    async def test_provider_error(self, memory_store):
        client = stub_client(ProviderError(message="No auth credentials found", status_code=401))
        result = await FactExtractor(memory_store, client).request_facts("My name is Kia")
        assert isinstance(result, ExtractionFailed)

    @pytest.mark.asyncio
    async def test_malformed(self, memory_store):
        client = stub_client(Malformed(raw="{}"))
        result = await FactExtractor(memory_store, client).request_facts("My name is Kia")
        assert isinstance(result, ExtractionFailed)


# =============================================================================
# extract()
# =============================================================================

@pytest.mark.unit
class TestExtract:
    """Tests for FactExtractor.extract."""

    @pytest.mark.asyncio
    async def test_stores_new_facts(self, memory_store):
        client = stub_client(Completion(text='{"favorite_color": "blue"}'))
        outcome = await FactExtractor(memory_store, client).extract("My favorite color is blue", "u2")

        assert outcome.facts == {"favorite_color": "blue"}
        assert outcome.contradictions == []
        assert memory_store.get("u2", "favorite_color") == "blue"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message", [
        "red or blue",
        "maybe my name is Kia",
        "I possibly own a dog",
    ])
    async def test_ambiguous_message_skips_remote_call(self, memory_store, message):
        client = stub_client(Completion(text='{"favorite_color": "red"}'))
        outcome = await FactExtractor(memory_store, client).extract(message, "u1")

        assert outcome == ExtractionOutcome()
        client.chat.assert_not_called()
        assert memory_store.get_all("u1") == {}

    @pytest.mark.asyncio
    async def test_invalid_json_proceeds_with_no_facts(self, memory_store):
        client = stub_client(Completion(text="Sorry, I can't help with that."))
        outcome = await FactExtractor(memory_store, client).extract("My name is Kia", "u1")

        assert outcome.facts == {}
        assert outcome.contradictions == []
        assert memory_store.get_all("u1") == {}

    @pytest.mark.asyncio
    async def test_transport_failure_is_absorbed(self, memory_store):
        client = stub_client(side_effect=OpenRouterError("Connection error"))
        outcome = await FactExtractor(memory_store, client).extract("My name is Kia", "u1")

        assert outcome == ExtractionOutcome()
        state = get_service_health().get_state("openrouter")
        assert state.status == ServiceStatus.DEGRADED
        assert state.fallback_name == "no_facts"

    @pytest.mark.asyncio
    async def test_contradiction_kia_then_milo(self, memory_store):
        """name=Kia then name=Milo: one contradiction, store holds Milo."""
        memory_store.upsert("u1", "name", "Kia")
        client = stub_client(Completion(text='{"name": "Milo"}'))

        outcome = await FactExtractor(memory_store, client).extract("My name is Milo", "u1")

        assert outcome.contradictions == [Contradiction(key="name", old="Kia", new="Milo")]
        assert memory_store.get("u1", "name") == "Milo"

    @pytest.mark.asyncio
    async def test_same_value_twice_no_contradiction(self, store):
        """Against the real SQLite store: no contradiction, one row."""
        client = stub_client(Completion(text='{"name": "Kia"}'))
        extractor = FactExtractor(store, client)

        first = await extractor.extract("My name is Kia", "u1")
        second = await extractor.extract("My name is Kia", "u1")

        assert first.contradictions == []
        assert second.contradictions == []
        assert len(store.list_facts("u1")) == 1

    @pytest.mark.asyncio
    async def test_contradictions_keep_order(self, memory_store):
        memory_store.upsert("u1", "name", "Kia")
        memory_store.upsert("u1", "pet", "cat")
        client = stub_client(Completion(text='{"pet": "dog", "hobby": "chess", "name": "Milo"}'))

        outcome = await FactExtractor(memory_store, client).extract("update", "u1")

        assert [c.key for c in outcome.contradictions] == ["pet", "name"]
        assert memory_store.get("u1", "hobby") == "chess"

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self):
        """Store faults are not extraction failures; they reach the caller."""
        store = InMemoryFactStore()
        store.reconcile = MagicMock(side_effect=RuntimeError("disk I/O error"))
        client = stub_client(Completion(text='{"name": "Kia"}'))

        with pytest.raises(RuntimeError):
            await FactExtractor(store, client).extract("My name is Kia", "u1")

    @pytest.mark.asyncio
    async def test_through_http_transport(self, memory_store):
        fake = FakeOpenRouter(extraction='```json\n{"pet": "a dog named Rex"}\n```')
        outcome = await FactExtractor(memory_store, fake.client()).extract("I have a dog named Rex", "u9")

        assert outcome.facts == {"pet": "a dog named Rex"}
        assert fake.extraction_requests[0]["temperature"] == 0

    @pytest.mark.asyncio
    async def test_network_error_through_http_transport(self, memory_store):
        fake = FakeOpenRouter(extraction=httpx.ConnectError("refused"))
        outcome = await FactExtractor(memory_store, fake.client()).extract("My name is Kia", "u1")
        assert outcome == ExtractionOutcome()
