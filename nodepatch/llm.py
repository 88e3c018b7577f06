"""Multi-provider LLM adapter supporting Ollama, Groq, OpenAI, Anthropic, Gemini and OpenRouter."""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from typing import Any, Dict, Optional

import requests

from . import config

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60


def _post_json(url: str, payload: Dict[str, Any], headers: Dict[str, str], timeout: int) -> Optional[Dict[str, Any]]:
    req = urllib.request.Request(
        url,
        data=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json", **headers},
        method="POST",
    )
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return json.loads(resp.read().decode("utf-8"))
    except (urllib.error.URLError, TimeoutError, json.JSONDecodeError) as exc:
        logger.warning("LLM request to %s failed: %s", url, exc)
        return None


class LLMProvider:
    """Base class for LLM providers."""

    def generate(self, prompt: str, max_tokens: int = 1024) -> Optional[str]:
        """Generate a response from the LLM."""
        raise NotImplementedError


class OllamaProvider(LLMProvider):
    """Ollama local LLM provider."""

    def __init__(self, model: str, endpoint: str):
        self.model = model
        self.endpoint = endpoint

    def generate(self, prompt: str, max_tokens: int = 1024) -> Optional[str]:
        parsed = _post_json(
            self.endpoint,
            {
                "model": self.model,
                "prompt": prompt,
                "stream": False,
                "options": {"temperature": 0, "num_predict": max_tokens},
            },
            headers={},
            timeout=DEFAULT_TIMEOUT,
        )
        return parsed.get("response") if parsed else None


class GroqProvider(LLMProvider):
    """Groq cloud API provider."""

    def __init__(self, model: str, api_key: str):
        self.model = model
        self.api_key = api_key
        self.endpoint = "https://api.groq.com/openai/v1/chat/completions"

    def generate(self, prompt: str, max_tokens: int = 1024) -> Optional[str]:
        if not self.api_key:
            return None

        try:
            response = requests.post(
                self.endpoint,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.api_key}",
                },
                json={
                    "model": self.model,
                    "messages": [{"role": "user", "content": prompt}],
                    "temperature": 0,
                    "max_tokens": max_tokens,
                },
                timeout=DEFAULT_TIMEOUT,
            )
            response.raise_for_status()
            return response.json()["choices"][0]["message"]["content"]
        except (requests.RequestException, KeyError, IndexError, ValueError) as exc:
            logger.warning("Groq request failed: %s", exc)
            return None


class OpenAIProvider(LLMProvider):
    """OpenAI API provider (also works with other OpenAI-compatible APIs)."""

    def __init__(self, model: str, api_key: str, endpoint: str = "https://api.openai.com/v1/chat/completions"):
        self.model = model
        self.api_key = api_key
        self.endpoint = endpoint

    def generate(self, prompt: str, max_tokens: int = 1024) -> Optional[str]:
        if not self.api_key:
            return None

        parsed = _post_json(
            self.endpoint,
            {
                "model": self.model,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": 0,
                "max_tokens": max_tokens,
            },
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=DEFAULT_TIMEOUT,
        )
        try:
            return parsed["choices"][0]["message"]["content"] if parsed else None
        except (KeyError, IndexError, TypeError):
            return None


class AnthropicProvider(LLMProvider):
    """Anthropic Claude API provider."""

    def __init__(self, model: str, api_key: str):
        self.model = model
        self.api_key = api_key
        self.endpoint = "https://api.anthropic.com/v1/messages"

    def generate(self, prompt: str, max_tokens: int = 1024) -> Optional[str]:
        if not self.api_key:
            return None

        parsed = _post_json(
            self.endpoint,
            {
                "model": self.model,
                "messages": [{"role": "user", "content": prompt}],
                "max_tokens": max_tokens,
                "temperature": 0,
            },
            headers={"x-api-key": self.api_key, "anthropic-version": "2023-06-01"},
            timeout=DEFAULT_TIMEOUT,
        )
        try:
            return parsed["content"][0]["text"] if parsed else None
        except (KeyError, IndexError, TypeError):
            return None


class GeminiProvider(LLMProvider):
    """Google Gemini API provider."""

    def __init__(self, model: str, api_key: str):
        self.model = model
        self.api_key = api_key
        self.endpoint = f"https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

    def generate(self, prompt: str, max_tokens: int = 1024) -> Optional[str]:
        if not self.api_key:
            return None

        parsed = _post_json(
            f"{self.endpoint}?key={self.api_key}",
            {
                "contents": [{"parts": [{"text": prompt}]}],
                "generationConfig": {"temperature": 0, "maxOutputTokens": max_tokens},
            },
            headers={},
            timeout=DEFAULT_TIMEOUT,
        )
        try:
            return parsed["candidates"][0]["content"]["parts"][0]["text"] if parsed else None
        except (KeyError, IndexError, TypeError):
            return None


class OpenRouterProvider(OpenAIProvider):
    """OpenRouter API provider (OpenAI-compatible, multi-model gateway)."""

    def __init__(self, model: str, api_key: str, endpoint: str = "https://openrouter.ai/api/v1/chat/completions"):
        super().__init__(model, api_key, endpoint)

    def generate(self, prompt: str, max_tokens: int = 1024) -> Optional[str]:
        if not self.api_key:
            return None

        parsed = _post_json(
            self.endpoint,
            {
                "model": self.model,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": 0,
                "max_tokens": max_tokens,
            },
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=DEFAULT_TIMEOUT,
        )
        try:
            return self._extract_response(parsed) if parsed else None
        except (KeyError, IndexError, TypeError):
            return None

    @staticmethod
    def _extract_response(parsed: dict) -> Optional[str]:
        """Extract response text, handling reasoning models that return empty content."""
        msg = parsed["choices"][0]["message"]
        content = msg.get("content") or ""
        if content.strip():
            return content
        reasoning = msg.get("reasoning") or ""
        if reasoning.strip():
            return reasoning
        return content or None


class LocalLLM:
    """Multi-provider LLM manager configured from ``config.toml``."""

    def __init__(
        self,
        model: Optional[str] = None,
        provider: Optional[str] = None,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
    ):
        """Initialize LLM with provider selection.

        Args:
            model: Model name (defaults to config or "qwen2.5-coder:7b")
            provider: Provider name: "ollama", "groq", "openai", "anthropic",
                "gemini", "openrouter" (defaults to config)
            api_key: API key for cloud providers (defaults to config)
            endpoint: Custom endpoint for Ollama or OpenAI-compatible APIs
        """
        self.provider_name = provider or config.LLM_PROVIDER
        self.model = model or config.LLM_MODEL
        self.api_key = api_key or config.LLM_API_KEY
        self.endpoint = endpoint or config.LLM_ENDPOINT

        self.provider = self._create_provider()

    def _create_provider(self) -> LLMProvider:
        """Create the appropriate provider based on configuration."""
        provider_name = self.provider_name.lower()
        default_model = self.model == "qwen2.5-coder:7b"

        if provider_name == "groq":
            return GroqProvider("llama-3.3-70b-versatile" if default_model else self.model, self.api_key)

        elif provider_name == "openai":
            endpoint = self.endpoint
            if not endpoint or endpoint.endswith("/api/generate"):
                endpoint = "https://api.openai.com/v1/chat/completions"
            return OpenAIProvider("gpt-4o" if default_model else self.model, self.api_key, endpoint)

        elif provider_name == "anthropic":
            return AnthropicProvider("claude-3-5-sonnet-20241022" if default_model else self.model, self.api_key)

        elif provider_name == "gemini":
            return GeminiProvider("gemini-2.0-flash" if default_model else self.model, self.api_key)

        elif provider_name == "openrouter":
            endpoint = self.endpoint
            if not endpoint or endpoint.endswith("/api/generate"):
                endpoint = "https://openrouter.ai/api/v1/chat/completions"
            return OpenRouterProvider(
                "google/gemini-2.0-flash-exp:free" if default_model else self.model, self.api_key, endpoint,
            )

        else:  # Default to Ollama
            return OllamaProvider(self.model, self.endpoint)

    def generate(self, prompt: str, max_tokens: int = 1024) -> Optional[str]:
        """Return the provider's answer, or None when it was unavailable."""
        return self.provider.generate(prompt, max_tokens=max_tokens)
