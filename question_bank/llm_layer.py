# question_bank/llm_layer.py
# Created: 2026-10-05
# Purpose: Provider-specific chat-completion implementations and routing

"""
LLM Provider Layer

This is the BOTTOM layer that handles provider-specific details.
Each provider has its own class with specific HTTP calls and error handling.

Responsibilities:
- Provider-specific HTTP/SDK calls
- Provider-specific error handling (mapped onto LLMProviderError subclasses)
- Provider-specific configuration (base URL, headers, API key)

Does NOT:
- Retry (llm_abstraction does this)
- Input validation (llm_abstraction does this)
- Parse questions (response_parser does this)
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import requests

from question_bank.config import ProviderConfig


logger = logging.getLogger(__name__)


# ============================================================================
# Exceptions
# ============================================================================

class LLMProviderError(Exception):
    """Base exception for provider errors."""
    pass


class ProviderConnectionError(LLMProviderError):
    """Provider is unreachable or timed out."""
    pass


class ProviderAuthError(LLMProviderError):
    """Authentication failed (API key, etc.)."""
    pass


class ProviderRateLimitError(LLMProviderError):
    """Rate limit exceeded."""
    pass


class ProviderModelError(LLMProviderError):
    """Model not available or invalid."""
    pass


# ============================================================================
# Base Provider Interface
# ============================================================================

class LLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    All providers must implement the call() method.
    """

    def __init__(self, config: ProviderConfig):
        self.config = config

    @abstractmethod
    def call(
        self,
        messages: List[Dict[str, str]],
        model: str,
        temperature: float,
        max_tokens: Optional[int],
        timeout: Optional[float],
        **kwargs
    ) -> Dict[str, Any]:
        """
        Make provider-specific call.

        Returns:
            Dict with:
                - content: Generated text
                - tokens: Dict with prompt_tokens, completion_tokens, total_tokens
                - raw: Raw provider response

        Raises:
            LLMProviderError: On provider-specific errors
        """
        pass


# ============================================================================
# OpenAI-compatible HTTP Provider (OpenRouter, DeepSeek, ...)
# ============================================================================

class OpenAICompatibleProvider(LLMProvider):
    """
    Any /chat/completions endpoint speaking the OpenAI wire format.

    Used for OpenRouter, which fronts both the DeepSeek and OpenAI models.
    """

    def __init__(self, config: ProviderConfig):
        super().__init__(config)
        self.base_url = (config.base_url or "https://openrouter.ai/api/v1").rstrip("/")
        self.api_key = config.api_key
        self.timeout = config.timeout
        self.headers = dict(config.headers or {})

        if not self.api_key:
            raise ProviderAuthError("API key not configured (set API_KEY)")

        self.chat_url = f"{self.base_url}/chat/completions"

    def call(
        self,
        messages: List[Dict[str, str]],
        model: str,
        temperature: float,
        max_tokens: Optional[int],
        timeout: Optional[float],
        **kwargs
    ) -> Dict[str, Any]:
        """Call the chat completions endpoint."""
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            **self.headers,
        }

        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
        }

        if max_tokens:
            payload["max_tokens"] = max_tokens

        payload.update(kwargs)

        try:
            response = requests.post(
                self.chat_url,
                headers=headers,
                json=payload,
                timeout=timeout or self.timeout
            )

            response.raise_for_status()

        except requests.exceptions.Timeout:
            raise ProviderConnectionError(
                f"Request to {self.base_url} timed out after {timeout or self.timeout}s"
            )

        except requests.exceptions.ConnectionError as e:
            raise ProviderConnectionError(
                f"Cannot connect to {self.base_url}: {str(e)}"
            )

        except requests.exceptions.HTTPError:
            if response.status_code == 429:
                raise ProviderRateLimitError("Rate limit exceeded")
            elif response.status_code in (401, 403):
                raise ProviderAuthError(f"API key rejected ({response.status_code})")
            elif response.status_code == 404:
                raise ProviderModelError(f"Model '{model}' not found")
            else:
                raise LLMProviderError(
                    f"API request failed: {response.status_code} {response.reason}"
                )

        try:
            data = response.json()
        except ValueError as e:
            raise LLMProviderError(f"Invalid JSON from {self.base_url}: {str(e)}")

        try:
            content = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            raise LLMProviderError(f"Unexpected response format: {list(data.keys())}")

        tokens = {}
        if "usage" in data and data["usage"]:
            tokens = {
                "prompt_tokens": data["usage"].get("prompt_tokens", 0),
                "completion_tokens": data["usage"].get("completion_tokens", 0),
                "total_tokens": data["usage"].get("total_tokens", 0)
            }

        return {
            "content": content,
            "tokens": tokens,
            "raw": data
        }


# ============================================================================
# OpenAI SDK Provider
# ============================================================================

class OpenAIProvider(LLMProvider):
    """
    OpenAI provider implementation.

    Uses the OpenAI Python SDK against api.openai.com (or config.base_url).
    """

    def __init__(self, config: ProviderConfig):
        super().__init__(config)
        self.api_key = config.api_key
        self.timeout = config.timeout

        if not self.api_key:
            raise ProviderAuthError("OpenAI API key not configured")

        from openai import OpenAI
        self.client = OpenAI(api_key=self.api_key, base_url=config.base_url or None)

    def call(
        self,
        messages: List[Dict[str, str]],
        model: str,
        temperature: float,
        max_tokens: Optional[int],
        timeout: Optional[float],
        **kwargs
    ) -> Dict[str, Any]:
        """Call using OpenAI SDK."""
        import openai

        try:
            response = self.client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                timeout=timeout or self.timeout,
                **kwargs
            )
        except openai.RateLimitError as e:
            raise ProviderRateLimitError(f"OpenAI rate limit: {e}")
        except openai.AuthenticationError as e:
            raise ProviderAuthError(f"OpenAI auth error: {e}")
        except openai.NotFoundError as e:
            raise ProviderModelError(f"OpenAI model error: {e}")
        except (openai.APITimeoutError, openai.APIConnectionError) as e:
            raise ProviderConnectionError(f"OpenAI connection error: {e}")
        except openai.OpenAIError as e:
            raise LLMProviderError(f"OpenAI error: {e}")

        content = response.choices[0].message.content or ""

        tokens = {}
        if response.usage:
            tokens = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens
            }

        return {
            "content": content,
            "tokens": tokens,
            "raw": response.model_dump()
        }


# ============================================================================
# Provider Router
# ============================================================================

PROVIDER_CLASSES = {
    "openrouter": OpenAICompatibleProvider,
    "openai": OpenAIProvider,
}


class ProviderRouter:
    """
    Routes calls to appropriate provider based on provider name.

    Providers are created lazily on first use so a missing API key only
    fails the calls that need it.
    """

    def __init__(self, provider_configs: Dict[str, ProviderConfig]):
        self.provider_configs = dict(provider_configs)
        self.providers: Dict[str, LLMProvider] = {}

    def _get_provider_class(self, name: str) -> type:
        if name not in PROVIDER_CLASSES:
            raise ValueError(
                f"Unknown provider '{name}'. "
                f"Available: {list(PROVIDER_CLASSES.keys())}"
            )
        return PROVIDER_CLASSES[name]

    def get(self, provider: str) -> LLMProvider:
        if provider not in self.providers:
            provider_class = self._get_provider_class(provider)
            config = self.provider_configs.get(provider, ProviderConfig())
            self.providers[provider] = provider_class(config)
            logger.info(f"Initialized provider: {provider}")
        return self.providers[provider]

    def call(
        self,
        provider: str,
        messages: List[Dict[str, str]],
        model: str,
        temperature: float,
        max_tokens: Optional[int],
        timeout: Optional[float],
        **kwargs
    ) -> Dict[str, Any]:
        """
        Route call to appropriate provider.

        Raises:
            LLMProviderError: Provider-specific errors
        """
        return self.get(provider).call(
            messages=messages,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
            **kwargs
        )


__all__ = [
    "LLMProvider",
    "LLMProviderError",
    "ProviderConnectionError",
    "ProviderAuthError",
    "ProviderRateLimitError",
    "ProviderModelError",
    "ProviderRouter",
    "OpenAICompatibleProvider",
    "OpenAIProvider",
    "PROVIDER_CLASSES",
]
