# question_bank/llm_abstraction.py
# Created: 2026-10-05
# Purpose: Provider-agnostic LLM interface with OpenAI-format messages

"""
LLM Abstraction Layer

This is the TOP layer that the question fetcher interacts with.
Provides a clean, provider-agnostic interface using OpenAI message format.

Responsibilities:
- Input validation
- Generic logging
- Response standardization
- Retry with a fixed delay between attempts
- Delegates to llm_layer.py for provider-specific implementation

Does NOT:
- Know about specific providers (OpenRouter, OpenAI, etc.)
- Handle provider-specific errors (llm_layer does this)
- Make HTTP calls directly (llm_layer does this)
"""

import time
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass, field

from question_bank.config import RetryConfig
from question_bank.llm_layer import LLMProviderError, ProviderRouter


logger = logging.getLogger(__name__)


# ============================================================================
# Response Objects
# ============================================================================

@dataclass
class LLMResponse:
    """
    Standardized response from any LLM provider.

    All metrics flow through this object for consistency.
    """
    # Content
    content: str

    # Metadata
    provider_used: str
    model_name: str
    request_id: str

    # Metrics
    latency: float  # Seconds
    tokens: Dict[str, int] = field(default_factory=dict)  # prompt, completion, total

    # Status
    success: bool = True
    error: Optional[Exception] = None

    # Raw response (for debugging)
    raw_response: Optional[Dict[str, Any]] = None

    def __str__(self) -> str:
        status = "ok" if self.success else "failed"
        tokens_str = f"{self.tokens.get('total_tokens', 0)} tokens" if self.tokens else "unknown tokens"
        return (
            f"LLMResponse({status} {self.provider_used}/{self.model_name}, "
            f"{self.latency:.2f}s, {tokens_str})"
        )


# ============================================================================
# Main Abstraction Layer
# ============================================================================

class LLMClient:
    """
    Provider-agnostic LLM client.

    Usage:
        llm = LLMClient(ProviderRouter(APP_CONFIG.providers),
                        APP_CONFIG.llm_profiles, APP_CONFIG.retry)

        # Full control
        response = llm.generate(
            messages=[{"role": "user", "content": "Hello"}],
            profile="deepseek",
        )

        # What the question fetcher uses
        text = llm.complete(system_prompt, user_prompt, profile="deepseek")
    """

    def __init__(
        self,
        router: ProviderRouter,
        profiles: Dict[str, Dict[str, Any]],
        retry: Optional[RetryConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
        debug: bool = False,
    ):
        self.router = router
        self.profiles = dict(profiles)
        self.retry = retry or RetryConfig()
        self.sleep = sleep
        self.debug = debug
        logger.info("LLM abstraction layer initialized")

    def generate(
        self,
        messages: List[Dict[str, str]],
        provider: Optional[str] = None,
        model: Optional[str] = None,
        profile: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        retry: bool = True,
        max_retries: Optional[int] = None,
        timeout: Optional[float] = None,
        **kwargs
    ) -> LLMResponse:
        """
        Generate text using specified provider.

        Args:
            messages: OpenAI-format messages list
            provider: Provider name ("openrouter", "openai")
            model: Model name (provider-specific)
            profile: Named profile from config (fills provider/model)
            temperature: Sampling temperature
            max_tokens: Max tokens to generate
            retry: Enable retry logic
            max_retries: Max attempts (defaults to the retry policy)
            timeout: Request timeout in seconds
            **kwargs: Provider-specific options (passed through)

        Returns:
            LLMResponse with content and metrics

        Raises:
            ValueError: Invalid input
            LLMProviderError: Provider error after retries exhausted
        """
        self._validate_messages(messages)

        if profile:
            profile_config = self._get_profile(profile)
            provider = provider or profile_config.get("provider")
            model = model or profile_config.get("model")
            temperature = profile_config.get("temperature", temperature)
            max_tokens = profile_config.get("max_tokens", max_tokens)
            timeout = timeout or profile_config.get("timeout")

        if not provider:
            raise ValueError("Must specify 'provider' or 'profile'")
        if not model:
            raise ValueError("Must specify 'model' or 'profile'")

        timeout = timeout or self.retry.timeout_s

        self._log_request(provider, model, messages, temperature)

        attempts = (max_retries or self.retry.attempts) if retry else 1
        return self._generate_with_retry(
            messages=messages,
            provider=provider,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
            max_retries=attempts,
            **kwargs
        )

    def generate_simple(
        self,
        prompt: str,
        system: str = "",
        provider: Optional[str] = None,
        model: Optional[str] = None,
        profile: Optional[str] = None,
        temperature: float = 0.7,
        **kwargs
    ) -> LLMResponse:
        """Simplified interface: prompt/system converted to OpenAI messages."""
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        return self.generate(
            messages=messages,
            provider=provider,
            model=model,
            profile=profile,
            temperature=temperature,
            **kwargs
        )

    def complete(self, system_prompt: str, user_prompt: str, profile: Optional[str] = None, **kwargs) -> str:
        """
        Return the raw completion text.

        Raises:
            LLMProviderError: every attempt failed
        """
        return self.generate_simple(prompt=user_prompt, system=system_prompt, profile=profile, **kwargs).content

    def _generate_once(
        self,
        messages: List[Dict],
        provider: str,
        model: str,
        temperature: float,
        max_tokens: Optional[int],
        timeout: Optional[float],
        **kwargs
    ) -> LLMResponse:
        """
        Single generation attempt.

        Delegates to llm_layer for provider-specific implementation.
        """
        request_id = self._generate_request_id()
        start_time = time.time()

        try:
            result = self.router.call(
                provider=provider,
                messages=messages,
                model=model,
                temperature=temperature,
                max_tokens=max_tokens,
                timeout=timeout,
                **kwargs
            )

            latency = time.time() - start_time

            response = LLMResponse(
                content=result["content"],
                provider_used=provider,
                model_name=model,
                request_id=request_id,
                latency=latency,
                tokens=result.get("tokens", {}),
                success=True,
                raw_response=result
            )

            logger.info(f"LLM call succeeded: {response}")

            return response

        except LLMProviderError as e:
            latency = time.time() - start_time

            logger.error(f"LLM call failed: {provider}/{model} - {str(e)}")

            return LLMResponse(
                content="",
                provider_used=provider,
                model_name=model,
                request_id=request_id,
                latency=latency,
                success=False,
                error=e
            )

    def _generate_with_retry(
        self,
        messages: List[Dict],
        provider: str,
        model: str,
        temperature: float,
        max_tokens: Optional[int],
        timeout: Optional[float],
        max_retries: int,
        **kwargs
    ) -> LLMResponse:
        """Generate with a fixed delay between attempts."""
        last_error = None

        for attempt in range(max_retries):
            response = self._generate_once(
                messages=messages,
                provider=provider,
                model=model,
                temperature=temperature,
                max_tokens=max_tokens,
                timeout=timeout,
                **kwargs
            )

            if response.success:
                if attempt > 0:
                    logger.info(f"Retry succeeded on attempt {attempt + 1}")
                return response

            last_error = response.error

            if attempt < max_retries - 1:
                logger.warning(
                    f"Attempt {attempt + 1}/{max_retries} failed, "
                    f"waiting {self.retry.delay_s}s: {str(last_error)}"
                )
                self.sleep(self.retry.delay_s)

        logger.error(f"All {max_retries} attempts exhausted")
        raise last_error or LLMProviderError("Unknown error after retries")

    def _validate_messages(self, messages: List[Dict]) -> None:
        """Validate OpenAI message format."""
        if not messages:
            raise ValueError("Messages list cannot be empty")

        for i, msg in enumerate(messages):
            if not isinstance(msg, dict):
                raise ValueError(f"Message {i} must be a dict, got {type(msg)}")

            if "role" not in msg:
                raise ValueError(f"Message {i} missing 'role' field")

            if "content" not in msg:
                raise ValueError(f"Message {i} missing 'content' field")

            if msg["role"] not in ("system", "user", "assistant"):
                raise ValueError(
                    f"Message {i} has invalid role '{msg['role']}', "
                    f"must be system/user/assistant"
                )

    def _get_profile(self, profile_name: str) -> Dict[str, Any]:
        if profile_name not in self.profiles:
            available = list(self.profiles.keys())
            raise ValueError(
                f"Profile '{profile_name}' not found. "
                f"Available profiles: {available}"
            )
        return self.profiles[profile_name]

    def _log_request(
        self,
        provider: str,
        model: str,
        messages: List[Dict],
        temperature: float
    ) -> None:
        """Log LLM request details."""
        if not self.debug:
            return

        total_chars = sum(len(msg.get("content", "")) for msg in messages)
        logger.debug(
            f"LLM request: {provider}/{model}, "
            f"temp={temperature}, "
            f"messages={len(messages)}, "
            f"chars={total_chars}"
        )

    def _generate_request_id(self) -> str:
        """Generate unique request ID for tracing."""
        return f"llm_{int(time.time())}_{uuid.uuid4().hex[:8]}"


__all__ = [
    "LLMClient",
    "LLMResponse",
]
