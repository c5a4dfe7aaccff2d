"""LLM access through LiteLLM, used for intent classification and slot extraction."""

import asyncio
from typing import Any

import litellm
from litellm import acompletion
from loguru import logger

from amana.providers.base import LLMProvider, LLMResponse

litellm.suppress_debug_info = True
# Providers reject parameters they do not know (temperature on reasoning models).
litellm.drop_params = True


class LiteLLMProvider(LLMProvider):
    """
    Short, bounded completions for the dialog pipeline.

    Model names follow LiteLLM ("gpt-4o-mini", "anthropic/claude-3-5-haiku-latest").
    Credentials travel with each call, so several providers can coexist in one
    process without touching environment variables. A call never raises:
    failures and timeouts come back as ``finish_reason == "error"`` and the
    caller falls back to its deterministic path.
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        default_model: str = "gpt-4o-mini",
        default_timeout: float = 30.0,
    ):
        super().__init__(api_key, api_base)
        self.default_model = default_model
        self.default_timeout = default_timeout

    def _credentials(self) -> dict[str, str]:
        creds = {"api_key": self.api_key, "api_base": self.api_base}
        return {k: v for k, v in creds.items() if v}

    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int = 512,
        temperature: float = 0.2,
        timeout: float | None = None,
    ) -> LLMResponse:
        model = model or self.default_model
        timeout = timeout or self.default_timeout
        request = acompletion(
            model=model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
            timeout=timeout,
            **self._credentials(),
        )
        try:
            return _to_response(await asyncio.wait_for(request, timeout=timeout), model)
        except TimeoutError:
            logger.warning(f"LLM call timed out after {timeout}s ({model})")
            return LLMResponse(content=None, finish_reason="error", model=model)
        except Exception as e:
            logger.error(f"LLM call failed ({model}): {e}")
            return LLMResponse(content=None, finish_reason="error", model=model)

    def get_default_model(self) -> str:
        return self.default_model


def _to_response(response: Any, model: str) -> LLMResponse:
    choice = response.choices[0]
    usage = getattr(response, "usage", None)
    return LLMResponse(
        content=choice.message.content,
        finish_reason=choice.finish_reason or "stop",
        usage={
            "prompt_tokens": usage.prompt_tokens,
            "completion_tokens": usage.completion_tokens,
            "total_tokens": usage.total_tokens,
        } if usage else {},
        model=model,
    )
