"""
Completion service with LiteLLM integration.

Sends synthesis prompts to the configured provider, with retry and
provider fallback.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

import litellm
from openai import AsyncOpenAI

from ..core.config import Config
from ..core.exceptions import ModelError, ValidationError
from ..core.logging_config import log_model_call

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert QA automation engineer who writes clear, "
    "executable test cases from recorded user sessions."
)


class ModelProvider(Enum):
    """Available completion providers."""

    OPENAI = "openai"
    OLLAMA = "ollama"


@dataclass
class ModelConfig:
    """Configuration for a specific model."""

    provider: ModelProvider
    model_name: str
    base_url: Optional[str] = None
    temperature: float = 0.7
    timeout: int = 60
    max_retries: int = 3

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "provider": self.provider.value,
            "model_name": self.model_name,
            "base_url": self.base_url,
            "temperature": self.temperature,
            "timeout": self.timeout,
            "max_retries": self.max_retries,
        }


@dataclass
class CompletionResponse:
    """Text returned by a provider."""

    content: str
    provider: ModelProvider
    model_name: str
    timestamp: datetime
    usage: Optional[Dict[str, Any]] = None
    fallback_used: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "content_length": len(self.content),
            "provider": self.provider.value,
            "model_name": self.model_name,
            "timestamp": self.timestamp.isoformat(),
            "usage": self.usage,
            "fallback_used": self.fallback_used,
        }


class CompletionService:
    """
    Text completion over OpenAI and local Ollama models.

    Provider selection follows ``config.model_provider``:
    - openai: OpenAI only
    - ollama: Ollama, falling back to OpenAI when a key is configured
    - mixed: Ollama first with OpenAI fallback, the cheaper drafting route
    """

    def __init__(self, config: Config):
        self.config = config
        self.openai_client: Optional[AsyncOpenAI] = None
        self.primary_config: Optional[ModelConfig] = None
        self.fallback_config: Optional[ModelConfig] = None
        self._setup_clients()
        self._setup_routing()

    def _setup_clients(self) -> None:
        """Set up API clients for the configured providers."""
        if self.config.openai_api_key:
            self.openai_client = AsyncOpenAI(api_key=self.config.openai_api_key)
            logger.info("OpenAI client initialized successfully")
        else:
            logger.warning("OpenAI API key not provided, OpenAI models unavailable")

        if self.config.model_provider in ["ollama", "mixed"]:
            litellm.set_verbose = self.config.debug_enabled
            logger.info(f"LiteLLM configured for Ollama at {self.config.ollama_base_url}")

    def _setup_routing(self) -> None:
        openai_config = ModelConfig(
            provider=ModelProvider.OPENAI,
            model_name=self.config.openai_model,
            temperature=0.3,
            timeout=self.config.model_timeout,
            max_retries=self.config.model_max_retries,
        )
        ollama_config = ModelConfig(
            provider=ModelProvider.OLLAMA,
            model_name=self.config.ollama_model,
            base_url=self.config.ollama_base_url,
            temperature=0.7,
            timeout=self.config.model_timeout,
            max_retries=self.config.model_max_retries,
        )
        openai_fallback = openai_config if self.config.openai_api_key else None

        if self.config.model_provider == "openai":
            self.primary_config = openai_config
            self.fallback_config = None
        elif self.config.model_provider == "ollama":
            self.primary_config = ollama_config
            self.fallback_config = openai_fallback
        else:
            self.primary_config = ollama_config
            self.fallback_config = openai_fallback

        logger.info(
            f"Completion routed to {self.primary_config.provider.value}",
            extra={
                "metadata": {
                    "primary": self.primary_config.to_dict(),
                    "fallback": self.fallback_config.to_dict() if self.fallback_config else None,
                }
            },
        )

    async def _call_openai_model(
        self, config: ModelConfig, messages: List[Dict[str, str]], max_tokens: int
    ) -> Dict[str, Any]:
        """Call an OpenAI chat model."""
        if not self.openai_client:
            raise ModelError(
                "OpenAI client not initialized",
                model_name=config.model_name,
                provider=config.provider.value,
            )

        try:
            response = await self.openai_client.chat.completions.create(
                model=config.model_name,
                messages=messages,
                max_tokens=max_tokens,
                temperature=config.temperature,
                timeout=config.timeout,
            )
            return {
                "content": response.choices[0].message.content,
                "usage": {
                    "prompt_tokens": response.usage.prompt_tokens,
                    "completion_tokens": response.usage.completion_tokens,
                    "total_tokens": response.usage.total_tokens,
                } if response.usage else None,
                "model": response.model,
            }
        except Exception as e:
            raise ModelError(
                f"OpenAI model call failed: {e}",
                model_name=config.model_name,
                provider=config.provider.value,
            ) from e

    async def _call_ollama_model(
        self, config: ModelConfig, messages: List[Dict[str, str]], max_tokens: int
    ) -> Dict[str, Any]:
        """Call an Ollama model via LiteLLM."""
        try:
            response = await litellm.acompletion(
                model=f"ollama/{config.model_name}",
                messages=messages,
                max_tokens=max_tokens,
                temperature=config.temperature,
                api_base=config.base_url,
                timeout=config.timeout,
            )
            usage = response.usage
            return {
                "content": response.choices[0].message.content,
                "usage": {
                    "prompt_tokens": usage.prompt_tokens if usage else 0,
                    "completion_tokens": usage.completion_tokens if usage else 0,
                    "total_tokens": usage.total_tokens if usage else 0,
                },
                "model": response.model,
            }
        except Exception as e:
            raise ModelError(
                f"Ollama model call failed: {e}",
                model_name=config.model_name,
                provider=config.provider.value,
            ) from e

    async def _call_model_with_config(
        self, config: ModelConfig, messages: List[Dict[str, str]], max_tokens: int
    ) -> Dict[str, Any]:
        if config.provider == ModelProvider.OPENAI:
            return await self._call_openai_model(config, messages, max_tokens)
        if config.provider == ModelProvider.OLLAMA:
            return await self._call_ollama_model(config, messages, max_tokens)
        raise ModelError(f"Unsupported model provider: {config.provider}")

    async def _call_model_with_retry(
        self, config: ModelConfig, messages: List[Dict[str, str]], max_tokens: int
    ) -> Dict[str, Any]:
        """Call a model, retrying with exponential backoff."""
        last_error: Optional[Exception] = None

        for attempt in range(config.max_retries):
            start = time.monotonic()
            try:
                result = await self._call_model_with_config(config, messages, max_tokens)
            except ModelError as e:
                last_error = e
                log_model_call(
                    logger,
                    config.model_name,
                    config.provider.value,
                    time.monotonic() - start,
                    success=False,
                    attempt=attempt + 1,
                    error=str(e),
                )
                if attempt < config.max_retries - 1:
                    wait_time = 2 ** attempt
                    logger.warning(
                        f"Model call attempt {attempt + 1} failed, retrying in {wait_time}s: {e}"
                    )
                    await asyncio.sleep(wait_time)
                else:
                    logger.error(f"All {config.max_retries} model call attempts failed")
                continue

            log_model_call(
                logger,
                result.get("model") or config.model_name,
                config.provider.value,
                time.monotonic() - start,
                success=True,
                attempt=attempt + 1,
                usage=result.get("usage"),
            )
            return result

        raise ModelError(
            f"Model call failed after {config.max_retries} attempts: {last_error}",
            model_name=config.model_name,
            provider=config.provider.value,
        )

    async def complete_with_details(
        self, prompt: str, max_output_tokens: Optional[int] = None
    ) -> CompletionResponse:
        """
        Complete a prompt, trying the fallback provider if the primary fails.

        Raises:
            ValidationError: If the prompt is empty
            ModelError: If every configured provider fails
        """
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt cannot be empty", validation_type="input")

        max_tokens = max_output_tokens or self.config.max_output_tokens
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

        primary = self.primary_config
        try:
            result = await self._call_model_with_retry(primary, messages, max_tokens)
            return CompletionResponse(
                content=result["content"] or "",
                provider=primary.provider,
                model_name=result.get("model") or primary.model_name,
                timestamp=datetime.now(),
                usage=result.get("usage"),
            )
        except ModelError as e:
            fallback = self.fallback_config
            if fallback is None:
                raise
            logger.warning(
                f"Primary provider {primary.provider.value} failed, "
                f"attempting fallback to {fallback.provider.value}: {e}"
            )
            try:
                result = await self._call_model_with_retry(fallback, messages, max_tokens)
            except ModelError as fallback_error:
                raise ModelError(
                    f"Both primary and fallback models failed. "
                    f"Primary: {e}, Fallback: {fallback_error}",
                    model_name=fallback.model_name,
                    provider=fallback.provider.value,
                ) from fallback_error

            return CompletionResponse(
                content=result["content"] or "",
                provider=fallback.provider,
                model_name=result.get("model") or fallback.model_name,
                timestamp=datetime.now(),
                usage=result.get("usage"),
                fallback_used=True,
            )

    async def complete(self, prompt: str, max_output_tokens: Optional[int] = None) -> str:
        """Complete a prompt and return only the generated text."""
        response = await self.complete_with_details(prompt, max_output_tokens)
        return response.content

    def get_routing_info(self) -> Dict[str, Any]:
        """Current provider routing, for display."""
        return {
            "provider_mode": self.config.model_provider,
            "primary": self.primary_config.to_dict(),
            "fallback": self.fallback_config.to_dict() if self.fallback_config else None,
        }
