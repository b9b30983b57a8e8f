"""Text generation clients for hosted and local completion services.

Every client exposes ``generate(prompt, max_output_tokens) -> TextResponse``.
Clients are built once (see ``create_client``) and injected into the
generation stage; tests substitute a fake with the same method.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from .config_manager import Settings, get_provider_config
from .errors import GenerationServiceError

logger = logging.getLogger(__name__)


@dataclass
class ContentBlock:
    type: str
    text: str = ""


@dataclass
class TextResponse:
    content: List[ContentBlock] = field(default_factory=list)
    model: str = ""
    usage: Dict[str, int] = field(default_factory=dict)

    def first_text(self) -> Optional[str]:
        """Text of the first ``text`` block, or None when there is none."""
        for block in self.content:
            if block.type == "text":
                return block.text
        return None


class TextGenerationClient:
    """Base class for text generation providers."""

    provider_name = "base"

    def generate(self, prompt: str, max_output_tokens: int) -> TextResponse:
        """Send one prompt and return the provider's content blocks."""
        raise NotImplementedError


class _HTTPClient(TextGenerationClient):
    """Shared POST/JSON plumbing. Failures become ``GenerationServiceError``."""

    def __init__(self, model: str, endpoint: str, api_key: str = "", timeout: float = 120.0):
        self.model = model
        self.endpoint = endpoint
        self.api_key = api_key
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        started = time.monotonic()
        try:
            response = requests.post(
                self.endpoint,
                headers=self._headers(),
                json=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as exc:
            raise GenerationServiceError(f"{self.provider_name} request failed: {exc}") from exc
        except ValueError as exc:
            raise GenerationServiceError(f"{self.provider_name} returned invalid JSON: {exc}") from exc

        logger.debug(
            "%s responded in %.0fms", self.provider_name, (time.monotonic() - started) * 1000,
            extra={"event": "llm.response", "provider": self.provider_name},
        )
        if not isinstance(body, dict):
            raise GenerationServiceError(f"{self.provider_name} returned an unexpected payload")
        return body


class AnthropicClient(_HTTPClient):
    """Anthropic Messages API."""

    provider_name = "anthropic"
    API_VERSION = "2023-06-01"

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
            "anthropic-version": self.API_VERSION,
        }

    def generate(self, prompt: str, max_output_tokens: int) -> TextResponse:
        if not self.api_key:
            raise GenerationServiceError("anthropic: an API key is required")
        body = self._post({
            "model": self.model,
            "max_tokens": max_output_tokens,
            "messages": [{"role": "user", "content": prompt}],
        })
        blocks = [
            ContentBlock(type=str(item.get("type", "")), text=str(item.get("text", "")))
            for item in body.get("content") or []
            if isinstance(item, dict)
        ]
        return TextResponse(content=blocks, model=str(body.get("model", self.model)), usage=body.get("usage") or {})


class OpenAIClient(_HTTPClient):
    """OpenAI-compatible chat completions (OpenAI, OpenRouter, Groq)."""

    provider_name = "openai"

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    def generate(self, prompt: str, max_output_tokens: int) -> TextResponse:
        if not self.api_key:
            raise GenerationServiceError(f"{self.provider_name}: an API key is required")
        body = self._post({
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": max_output_tokens,
        })
        blocks: List[ContentBlock] = []
        for choice in body.get("choices") or []:
            message = choice.get("message") or {}
            content = message.get("content")
            if isinstance(content, str) and content.strip():
                blocks.append(ContentBlock(type="text", text=content))
        usage = body.get("usage") or {}
        return TextResponse(
            content=blocks,
            model=str(body.get("model", self.model)),
            usage={
                "input_tokens": usage.get("prompt_tokens", 0),
                "output_tokens": usage.get("completion_tokens", 0),
            },
        )


class OllamaClient(_HTTPClient):
    """Local Ollama generate API."""

    provider_name = "ollama"

    def generate(self, prompt: str, max_output_tokens: int) -> TextResponse:
        body = self._post({
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {"num_predict": max_output_tokens},
        })
        text = body.get("response")
        blocks = [ContentBlock(type="text", text=text)] if isinstance(text, str) and text else []
        return TextResponse(
            content=blocks,
            model=str(body.get("model", self.model)),
            usage={
                "input_tokens": body.get("prompt_eval_count", 0),
                "output_tokens": body.get("eval_count", 0),
            },
        )


def create_client(settings: Settings) -> TextGenerationClient:
    """Create the client for ``settings.provider`` (Anthropic when unknown)."""
    provider = settings.provider.lower()
    defaults = get_provider_config(provider)
    endpoint = settings.endpoint or defaults["endpoint"]
    model = settings.model or defaults["model"]

    if provider in ("openai", "openrouter", "groq"):
        client: TextGenerationClient = OpenAIClient(model, endpoint, settings.api_key, settings.timeout)
        client.provider_name = provider
        return client
    if provider == "ollama":
        return OllamaClient(model, endpoint, timeout=settings.timeout)
    if provider != "anthropic":
        logger.warning("Unknown provider '%s'; using anthropic", settings.provider)
        defaults = get_provider_config("anthropic")
        model, endpoint = defaults["model"], defaults["endpoint"]
    return AnthropicClient(model, endpoint, settings.api_key, settings.timeout)
