"""LLM and voice provider adapters."""

from amana.providers.base import LLMProvider, LLMResponse, parse_json_object
from amana.providers.litellm_provider import LiteLLMProvider
from amana.providers.voice import OpenAIVoiceProvider

__all__ = ["LLMProvider", "LLMResponse", "LiteLLMProvider", "OpenAIVoiceProvider", "parse_json_object"]
