"""Base LLM provider interface."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class LLMResponse:
    """Response from an LLM provider."""

    content: str | None
    finish_reason: str = "stop"
    usage: dict[str, int] = field(default_factory=dict)
    model: str = ""

    @property
    def failed(self) -> bool:
        return self.finish_reason == "error"


class LLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    Implementations never raise on transport or model errors; they return an
    ``LLMResponse`` with ``finish_reason="error"`` instead.
    """

    def __init__(self, api_key: str | None = None, api_base: str | None = None):
        self.api_key = api_key
        self.api_base = api_base

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int = 512,
        temperature: float = 0.2,
        timeout: float | None = None,
    ) -> LLMResponse:
        """Send a chat completion request."""

    @abstractmethod
    def get_default_model(self) -> str:
        """Get the default model for this provider."""


def parse_json_object(text: str | None) -> dict[str, Any] | None:
    """Parse the JSON object embedded in a model reply.

    Models wrap JSON in prose or code fences, so the slice between the first
    ``{`` and the last ``}`` is parsed. Returns None when nothing parses.
    """
    if not text:
        return None
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        return None
    try:
        data = json.loads(text[start:end + 1])
    except ValueError:
        return None
    return data if isinstance(data, dict) else None
