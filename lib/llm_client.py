"""LLM client for OpenRouter / OpenAI streaming chat and embeddings."""
from __future__ import annotations

from typing import Any, AsyncIterator, Dict, List, Optional

from openai import APIError, AsyncOpenAI

from lib.config import (
    EMBEDDING_MODEL,
    LLM_PROVIDER,
    MODEL_PRICING,
    OPENAI_API_KEY,
    OPENROUTER_API_KEY,
    OPENROUTER_APP_NAME,
    OPENROUTER_BASE_URL,
    OPENROUTER_SITE_URL,
)
from utils.errors import ConfigError, LLMError


# Short model names accepted from the chat UI, mapped to OpenRouter ids
MODEL_MAP = {
    # OpenAI models
    "gpt-4o": "openai/gpt-4o",
    "gpt-4o-mini": "openai/gpt-4o-mini",
    "gpt-4-turbo": "openai/gpt-4-turbo",
    "gpt-3.5-turbo": "openai/gpt-3.5-turbo",
    # Anthropic models
    "claude-sonnet-4.5": "anthropic/claude-sonnet-4.5",
    "claude-3-5-sonnet-latest": "anthropic/claude-3.5-sonnet",
    "claude-3-5-haiku-latest": "anthropic/claude-3.5-haiku",
    "claude-3-opus": "anthropic/claude-3-opus",
    "claude-3-sonnet": "anthropic/claude-3-sonnet",
    # Google models
    "gemini-2.0-flash-exp": "google/gemini-2.0-flash-exp:free",
    "gemini-1.5-pro": "google/gemini-pro-1.5",
    "gemini-1.5-flash": "google/gemini-flash-1.5",
    # Perplexity models
    "sonar-pro": "perplexity/sonar-pro",
    "sonar": "perplexity/sonar",
    "sonar-reasoning": "perplexity/sonar-reasoning",
}

_client: Optional[AsyncOpenAI] = None


def resolve_model_id(model_id: str, provider: str = LLM_PROVIDER) -> str:
    """
    Map a model name from the UI to the id the provider expects.

    Args:
        model_id: "gpt-4o", "openai/gpt-4o", "claude-3-5-haiku-latest", ...
        provider: "openrouter" or "openai"

    Returns:
        The provider-specific model id.
    """
    model_id = (model_id or "").strip()
    if provider == "openai":
        return model_id.split("/", 1)[1] if "/" in model_id else model_id
    name = model_id.split("/", 1)[1] if "/" in model_id else model_id
    if name in MODEL_MAP:
        return MODEL_MAP[name]
    return model_id


def compute_cost(model_id: str, prompt_tokens: int, completion_tokens: int) -> float:
    """Price a run from the static table; unknown models cost 0."""
    pricing = MODEL_PRICING.get(model_id) or MODEL_PRICING.get(resolve_model_id(model_id, "openrouter"))
    if not pricing:
        return 0.0
    prompt_price, completion_price = pricing
    cost = (prompt_tokens * prompt_price + completion_tokens * completion_price) / 1_000_000
    return round(cost, 6)


def get_client() -> AsyncOpenAI:
    """Return the shared async client for the configured provider."""
    global _client
    if _client is not None:
        return _client
    if LLM_PROVIDER == "openai":
        if not OPENAI_API_KEY:
            raise ConfigError("OPENAI_API_KEY is not set in environment variables")
        _client = AsyncOpenAI(api_key=OPENAI_API_KEY)
    else:
        if not OPENROUTER_API_KEY:
            raise ConfigError("OPENROUTER_API_KEY is not set in environment variables")
        # Configure OpenRouter client with required headers
        _client = AsyncOpenAI(
            base_url=OPENROUTER_BASE_URL,
            api_key=OPENROUTER_API_KEY,
            default_headers={
                "HTTP-Referer": OPENROUTER_SITE_URL,
                "X-Title": OPENROUTER_APP_NAME,
            },
        )
    return _client


def _extract_text(message_content: Any) -> str:
    """Normalize delta content that may arrive as a list of parts or a string."""
    if isinstance(message_content, str):
        return message_content
    if isinstance(message_content, list):
        parts: List[str] = []
        for part in message_content:
            if isinstance(part, dict):
                if part.get("type") == "text" and part.get("text"):
                    parts.append(part["text"])
                elif isinstance(part.get("content"), str):
                    parts.append(part["content"])
            elif isinstance(part, str):
                parts.append(part)
        return "".join(parts)
    return ""


class ModelClient:
    """
    Streams chat completions as a sequence of small event dicts.

    Events:
        {"type": "text", "text": str}
        {"type": "reasoning", "text": str}
        {"type": "usage", "prompt_tokens": int, "completion_tokens": int}
    """

    def __init__(self, client: Optional[AsyncOpenAI] = None, provider: str = LLM_PROVIDER) -> None:
        self._client = client
        self.provider = provider

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = get_client()
        return self._client

    async def stream_chat(
        self,
        system_prompt: str,
        messages: List[Dict[str, Any]],
        model: str,
    ) -> AsyncIterator[Dict[str, Any]]:
        try:
            stream = await self.client.chat.completions.create(
                model=model,
                messages=[{"role": "system", "content": system_prompt}, *messages],
                stream=True,
                stream_options={"include_usage": True},
            )
        except APIError as e:
            raise LLMError(f"Model request failed for {model}: {e}") from e
        try:
            async for chunk in stream:
                usage = getattr(chunk, "usage", None)
                if usage is not None:
                    yield {
                        "type": "usage",
                        "prompt_tokens": int(getattr(usage, "prompt_tokens", 0) or 0),
                        "completion_tokens": int(getattr(usage, "completion_tokens", 0) or 0),
                    }
                for choice in chunk.choices or []:
                    delta = choice.delta
                    if delta is None:
                        continue
                    # OpenRouter forwards reasoning tokens on a non-standard field
                    reasoning = getattr(delta, "reasoning", None)
                    if isinstance(reasoning, str) and reasoning:
                        yield {"type": "reasoning", "text": reasoning}
                    text = _extract_text(delta.content)
                    if text:
                        yield {"type": "text", "text": text}
        except APIError as e:
            raise LLMError(f"Model stream failed for {model}: {e}") from e
        finally:
            await stream.close()

    async def embed(self, text: str, model: str = EMBEDDING_MODEL) -> List[float]:
        embed_model = model
        if self.provider != "openai" and "/" not in model:
            embed_model = f"openai/{model}"
        response = await self.client.embeddings.create(model=embed_model, input=text)
        return list(response.data[0].embedding)
