import asyncio
import json

import httpx
import pytest

from limbic.config.memory import ProviderConfig
from limbic.runtime.memory.errors import ProviderError
from limbic.runtime.memory.models import EmotionalQuadrant
from limbic.runtime.memory.prompting import (
    ExtractionContext,
    build_extraction_messages,
    parse_json_object,
)
from limbic.runtime.memory.providers import (
    FallbackProvider,
    NeutralProvider,
    OpenAIProvider,
    build_provider,
)

CONFIG = ProviderConfig(api_key="sk-test", base_url="https://llm.test/v1", embedding_dimensions=3)


def chat_response(payload) -> httpx.Response:
    content = payload if isinstance(payload, str) else json.dumps(payload)
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


def make_provider(handler, config: ProviderConfig = CONFIG) -> OpenAIProvider:
    client = httpx.AsyncClient(base_url=config.base_url, transport=httpx.MockTransport(handler))
    return OpenAIProvider(config, client=client)


@pytest.mark.asyncio
async def test_extract_fact_parses_json_mode_reply():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return chat_response(
            {"content": "The sun is shining", "emotionalImpact": {"joy": 0.8, "calm": 0.5, "anger": -0.2}}
        )

    provider = make_provider(handler)
    fact = await provider.extract_fact("sunny!", ExtractionContext(recent_facts=["It rained yesterday"]))

    assert fact.content == "The sun is shining"
    assert fact.emotional_impact == EmotionalQuadrant(joy=0.8, calm=0.5, anger=-0.2)
    assert seen["path"] == "/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["response_format"] == {"type": "json_object"}
    assert "It rained yesterday" in seen["body"]["messages"][1]["content"]


@pytest.mark.asyncio
async def test_extract_fact_without_impact_leaves_it_unset():
    provider = make_provider(lambda request: chat_response({"content": ""}))
    fact = await provider.extract_fact("plain text")

    assert fact.content == "plain text"
    assert fact.emotional_impact is None


@pytest.mark.asyncio
async def test_score_emotion_clamps_values():
    provider = make_provider(lambda request: chat_response({"joy": 2.5, "sadness": -3, "calm": "n/a"}))
    quadrant = await provider.score_emotion("ecstatic")

    assert quadrant == EmotionalQuadrant(joy=1.0, sadness=-1.0)


@pytest.mark.asyncio
async def test_embed_checks_dimensions():
    provider = make_provider(
        lambda request: httpx.Response(200, json={"data": [{"embedding": [0.1, 0.2, 0.3]}]})
    )
    assert await provider.embed("hello") == [0.1, 0.2, 0.3]

    wrong = make_provider(lambda request: httpx.Response(200, json={"data": [{"embedding": [0.1]}]}))
    with pytest.raises(ProviderError):
        await wrong.embed("hello")


@pytest.mark.asyncio
async def test_http_and_parse_failures_raise_provider_error():
    failing = make_provider(lambda request: httpx.Response(500, json={"error": "boom"}))
    with pytest.raises(ProviderError):
        await failing.score_emotion("x")

    garbled = make_provider(lambda request: chat_response("not json at all"))
    with pytest.raises(ProviderError):
        await garbled.extract_fact("x")

    shapeless = make_provider(lambda request: httpx.Response(200, json={"unexpected": True}))
    with pytest.raises(ProviderError):
        await shapeless.embed("x")


@pytest.mark.asyncio
async def test_missing_api_key_raises_provider_error():
    provider = make_provider(lambda request: chat_response({}), ProviderConfig(api_key=""))
    with pytest.raises(ProviderError):
        await provider.score_emotion("x")


@pytest.mark.asyncio
async def test_fallback_provider_degrades_and_counts():
    class Broken(NeutralProvider):
        async def score_emotion(self, text):
            raise ProviderError("down")

        async def embed(self, text):
            await asyncio.sleep(1.0)
            return [1.0] * self.dimensions

    provider = FallbackProvider(Broken(3), timeout_seconds=0.02, dimensions=3)

    assert await provider.score_emotion("x") == EmotionalQuadrant.neutral()
    assert await provider.embed("x") == [0.0, 0.0, 0.0]
    extracted = await provider.extract_fact("kept as is")
    assert extracted.content == "kept as is"
    assert dict(provider.degradations) == {"score_emotion": 1, "embed": 1}


def test_build_provider_offline_uses_neutral_inner():
    provider = build_provider(ProviderConfig(embedding_dimensions=4), offline=True)
    assert isinstance(provider.inner, NeutralProvider)
    assert provider.inner.dimensions == 4


def test_prompt_helpers():
    messages = build_extraction_messages("hello")
    assert messages[0]["role"] == "system"
    assert messages[1]["content"] == "Text to analyze: hello"

    context = ExtractionContext(working_memory=["a"], pattern_facts=["b"])
    rendered = build_extraction_messages("hi", context)[1]["content"]
    assert "Working memory:\n- a" in rendered
    assert "Significant patterns:\n- b" in rendered

    assert parse_json_object(None) == {}
    with pytest.raises(ValueError):
        parse_json_object("[1, 2]")
