"""
Chat-completion providers.

Components never build their own client: a provider is constructed once
(see build_provider) and passed in, so tests can hand in a mock and
deployments can point at different vendors or credentials.

Two implementations:
  OpenAIChatProvider     - any OpenAI-compatible endpoint (DeepSeek by default),
                           exposes `reasoning_content` deltas and JSON mode
  AnthropicChatProvider  - Claude via the Messages API, thinking deltas map
                           onto `reasoning`
"""

from typing import AsyncIterator, NamedTuple, Protocol

import anthropic
from openai import AsyncOpenAI


class StreamDelta(NamedTuple):
    content: str = ""
    reasoning: str = ""


class ChatProvider(Protocol):
    fast_model: str
    reasoning_model: str

    async def complete(
        self,
        *,
        model: str,
        messages: list[dict],
        temperature: float = 0.7,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> str:
        ...

    def stream(
        self,
        *,
        model: str,
        messages: list[dict],
        temperature: float = 0.7,
        max_tokens: int | None = None,
        json_mode: bool = False,
        reasoning: bool = False,
    ) -> AsyncIterator[StreamDelta]:
        ...


class OpenAIChatProvider:
    def __init__(self, api_key: str, base_url: str | None, fast_model: str, reasoning_model: str,
                 timeout: float = 300.0):
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url or None, timeout=timeout)
        self.fast_model = fast_model
        self.reasoning_model = reasoning_model

    def _request(self, model, messages, temperature, max_tokens, json_mode) -> dict:
        kwargs = {"model": model, "messages": messages, "temperature": temperature}
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        return kwargs

    async def complete(self, *, model, messages, temperature=0.7, max_tokens=None, json_mode=False) -> str:
        response = await self.client.chat.completions.create(
            **self._request(model, messages, temperature, max_tokens, json_mode)
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def stream(self, *, model, messages, temperature=0.7, max_tokens=None, json_mode=False,
                     reasoning=False) -> AsyncIterator[StreamDelta]:
        # Reasoning models emit `reasoning_content` on their own; nothing to switch on
        stream = await self.client.chat.completions.create(
            stream=True, **self._request(model, messages, temperature, max_tokens, json_mode)
        )
        async for chunk in stream:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta
            content = delta.content or ""
            thinking = getattr(delta, "reasoning_content", None) or ""
            if content or thinking:
                yield StreamDelta(content=content, reasoning=thinking)


class AnthropicChatProvider:
    THINKING_BUDGET = 4000

    def __init__(self, api_key: str, fast_model: str, reasoning_model: str):
        self.client = anthropic.AsyncAnthropic(api_key=api_key)
        self.fast_model = fast_model
        self.reasoning_model = reasoning_model

    @staticmethod
    def _split_system(messages: list[dict]) -> tuple[str, list[dict]]:
        """Messages API takes the system prompt separately; user/ai turns must alternate."""
        system_parts = [m["content"] for m in messages if m["role"] == "system"]
        turns = []
        for m in messages:
            if m["role"] == "system":
                continue
            role = "assistant" if m["role"] in ("assistant", "ai") else "user"
            if turns and turns[-1]["role"] == role:
                turns[-1]["content"] += "\n\n" + m["content"]
            else:
                turns.append({"role": role, "content": m["content"]})
        return "\n\n".join(system_parts), turns

    def _request(self, model, messages, temperature, max_tokens, json_mode, reasoning=False) -> dict:
        system, turns = self._split_system(messages)
        if json_mode:
            system += "\n\nRespond with a single JSON object and nothing else."
        kwargs = {
            "model": model,
            "max_tokens": max_tokens or 8000,
            "messages": turns,
        }
        if system.strip():
            kwargs["system"] = system.strip()
        if reasoning:
            # Extended thinking requires the default temperature
            kwargs["thinking"] = {"type": "enabled", "budget_tokens": self.THINKING_BUDGET}
            kwargs["max_tokens"] = max(kwargs["max_tokens"], self.THINKING_BUDGET + 1000)
        else:
            kwargs["temperature"] = temperature
        return kwargs

    async def complete(self, *, model, messages, temperature=0.7, max_tokens=None, json_mode=False) -> str:
        response = await self.client.messages.create(
            **self._request(model, messages, temperature, max_tokens, json_mode)
        )
        return "".join(
            getattr(block, "text", "") for block in response.content if block.type == "text"
        )

    async def stream(self, *, model, messages, temperature=0.7, max_tokens=None, json_mode=False,
                     reasoning=False) -> AsyncIterator[StreamDelta]:
        kwargs = self._request(model, messages, temperature, max_tokens, json_mode, reasoning)
        async with self.client.messages.stream(**kwargs) as stream:
            async for event in stream:
                if event.type != "content_block_delta":
                    continue
                if event.delta.type == "text_delta":
                    yield StreamDelta(content=event.delta.text)
                elif event.delta.type == "thinking_delta":
                    yield StreamDelta(reasoning=event.delta.thinking)


def build_provider(settings) -> ChatProvider:
    """Construct the configured provider. Raises if credentials are missing."""
    if settings.llm_provider == "anthropic":
        if not settings.anthropic_api_key:
            raise ValueError("ANTHROPIC_API_KEY must be set when LLM_PROVIDER=anthropic")
        return AnthropicChatProvider(
            api_key=settings.anthropic_api_key,
            fast_model=settings.anthropic_fast_model,
            reasoning_model=settings.anthropic_reasoning_model,
        )
    if settings.llm_provider != "openai":
        raise ValueError(f"Unknown LLM_PROVIDER: {settings.llm_provider}")
    if not settings.openai_api_key:
        raise ValueError("OPENAI_API_KEY must be set when LLM_PROVIDER=openai")
    return OpenAIChatProvider(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        fast_model=settings.openai_fast_model,
        reasoning_model=settings.openai_reasoning_model,
    )
