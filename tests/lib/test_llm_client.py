"""Tests for model id resolution, pricing and stream normalization."""

from types import SimpleNamespace
from typing import Any, List

from lib.llm_client import ModelClient, compute_cost, resolve_model_id


def test_resolve_model_id_maps_short_names_for_openrouter() -> None:
    assert resolve_model_id("gpt-4o", "openrouter") == "openai/gpt-4o"
    assert resolve_model_id("claude-3-5-haiku-latest", "openrouter") == "anthropic/claude-3.5-haiku"


def test_resolve_model_id_keeps_unknown_and_prefixed_ids() -> None:
    assert resolve_model_id("openai/gpt-4o", "openrouter") == "openai/gpt-4o"
    assert resolve_model_id("mistral/mixtral-8x7b", "openrouter") == "mistral/mixtral-8x7b"


def test_resolve_model_id_strips_vendor_prefix_for_openai() -> None:
    assert resolve_model_id("openai/gpt-4o-mini", "openai") == "gpt-4o-mini"
    assert resolve_model_id("gpt-4o", "openai") == "gpt-4o"


def test_compute_cost_uses_static_pricing() -> None:
    # gpt-4o: $2.50 prompt / $10.00 completion per 1M tokens
    assert compute_cost("openai/gpt-4o", 1_000_000, 100_000) == 3.5
    assert compute_cost("gpt-4o", 1_000_000, 100_000) == 3.5


def test_compute_cost_unknown_model_is_free() -> None:
    assert compute_cost("someone/unknown-model", 5000, 5000) == 0.0


class FakeStream:
    def __init__(self, chunks: List[Any]) -> None:
        self._chunks = iter(chunks)
        self.closed = False

    def __aiter__(self) -> "FakeStream":
        return self

    async def __anext__(self) -> Any:
        try:
            return next(self._chunks)
        except StopIteration:
            raise StopAsyncIteration

    async def close(self) -> None:
        self.closed = True


def _chunk(content: Any = None, reasoning: Any = None, usage: Any = None) -> SimpleNamespace:
    choices = []
    if content is not None or reasoning is not None:
        choices = [SimpleNamespace(delta=SimpleNamespace(content=content, reasoning=reasoning))]
    return SimpleNamespace(choices=choices, usage=usage)


class FakeCompletions:
    def __init__(self, stream: FakeStream) -> None:
        self.stream = stream
        self.kwargs: dict = {}

    async def create(self, **kwargs: Any) -> FakeStream:
        self.kwargs = kwargs
        return self.stream


async def test_stream_chat_normalizes_text_reasoning_and_usage() -> None:
    stream = FakeStream(
        [
            _chunk(reasoning="thinking"),
            _chunk(content="Hel"),
            _chunk(content=[{"type": "text", "text": "lo"}]),
            _chunk(usage=SimpleNamespace(prompt_tokens=120, completion_tokens=8)),
        ]
    )
    completions = FakeCompletions(stream)
    openai_client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    client = ModelClient(openai_client, provider="openrouter")

    events = [e async for e in client.stream_chat("system text", [{"role": "user", "content": "hi"}], "openai/gpt-4o")]

    assert events == [
        {"type": "reasoning", "text": "thinking"},
        {"type": "text", "text": "Hel"},
        {"type": "text", "text": "lo"},
        {"type": "usage", "prompt_tokens": 120, "completion_tokens": 8},
    ]
    assert completions.kwargs["messages"][0] == {"role": "system", "content": "system text"}
    assert completions.kwargs["stream"] is True
    assert stream.closed


async def test_embed_prefixes_vendor_for_openrouter() -> None:
    calls = {}

    async def create(model: str, input: str) -> SimpleNamespace:
        calls["model"] = model
        return SimpleNamespace(data=[SimpleNamespace(embedding=[0.5, 0.25])])

    openai_client = SimpleNamespace(embeddings=SimpleNamespace(create=create))
    client = ModelClient(openai_client, provider="openrouter")

    assert await client.embed("pricing objections", model="text-embedding-3-small") == [0.5, 0.25]
    assert calls["model"] == "openai/text-embedding-3-small"
