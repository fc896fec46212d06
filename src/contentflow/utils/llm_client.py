"""Async LLM client with Instructor integration for structured responses.

Wraps the async OpenAI, Anthropic and Gemini SDKs with Instructor so every
call returns a validated pydantic model, retries with exponential backoff,
and logs prompt hash, token usage and latency per attempt.
"""

import asyncio
import hashlib
import logging
import os
import time
from typing import Optional, Type, TypeVar

import instructor
from anthropic import AsyncAnthropic
from langfuse import observe
from openai import AsyncOpenAI
from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)

logger = logging.getLogger(__name__)


class LLMGenerationError(Exception):
    """All attempts to obtain a structured response failed."""

    def __init__(self, message: str, attempts: int, last_error: Optional[BaseException] = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class TokenUsage(BaseModel):
    """Token usage statistics."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cached_tokens: int = 0
    reasoning_tokens: int = 0


class LLMClient:
    """Instructor-wrapped async LLM client.

    Features:
    - Structured response generation with Pydantic model validation
    - Retries with exponential backoff (non-blocking asyncio.sleep)
    - Token usage tracking
    - Request/response logging (prompt hash, tokens, latency)
    - Langfuse tracing for observability
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        enable_langfuse: bool = True,
    ):
        """Initialize LLM client with Instructor.

        Args:
            api_key: API key for the provider (if None, uses provider-specific env var)
            model: Model to use (if None, uses LLM_MODEL env var or defaults to gpt-4o-mini)
                   Supports: gpt-*, o*, claude-*, gemini-*
            max_retries: Maximum number of attempts (default: 3)
            base_delay: Base delay for exponential backoff in seconds (default: 1.0)
            max_delay: Maximum delay between retries in seconds (default: 60.0)
            enable_langfuse: Enable Langfuse tracing (requires LANGFUSE_* env vars)
        """
        self.model = model or os.getenv("LLM_MODEL", "gpt-4o-mini")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.enable_langfuse = enable_langfuse

        self.total_usage = TokenUsage()
        self.provider = self._detect_provider(self.model)

        if self.provider == "openai":
            if enable_langfuse:
                from langfuse.openai import AsyncOpenAI as TracedAsyncOpenAI

                client = TracedAsyncOpenAI(api_key=api_key or os.getenv("OPENAI_API_KEY"))
                logger.info("Langfuse tracing enabled for OpenAI")
            else:
                client = AsyncOpenAI(api_key=api_key or os.getenv("OPENAI_API_KEY"))
            self.client = instructor.from_openai(client)

        elif self.provider == "anthropic":
            client = AsyncAnthropic(api_key=api_key or os.getenv("ANTHROPIC_API_KEY"))
            self.client = instructor.from_anthropic(client, mode=instructor.Mode.ANTHROPIC_TOOLS)

        elif self.provider == "gemini":
            import google.generativeai as genai

            api_key_to_use = api_key or os.getenv("GOOGLE_GENERATIVE_AI_API_KEY")
            if not api_key_to_use:
                raise ValueError("GOOGLE_GENERATIVE_AI_API_KEY environment variable is not set")
            genai.configure(api_key=api_key_to_use)
            client = genai.GenerativeModel(model_name=self.model)
            self.client = instructor.from_gemini(
                client=client, mode=instructor.Mode.GEMINI_JSON, use_async=True
            )
        else:
            raise ValueError(f"Unsupported model: {self.model}")

        logger.info(
            f"LLMClient initialized with provider={self.provider}, model={self.model}, "
            f"max_retries={max_retries}"
        )

    def _detect_provider(self, model: str) -> str:
        """Detect LLM provider from model name.

        Returns:
            Provider name: 'openai', 'anthropic', or 'gemini'
        """
        model_lower = model.lower()
        if model_lower.startswith("claude"):
            return "anthropic"
        elif model_lower.startswith("gemini"):
            return "gemini"
        elif model_lower.startswith(("gpt", "o1", "o3", "o4")):
            return "openai"
        else:
            logger.warning(f"Unknown model prefix '{model}', defaulting to OpenAI provider")
            return "openai"

    async def _create(
        self,
        messages: list,
        response_model: Type[T],
        temperature: float,
        max_tokens: int,
        system_prompt: Optional[str],
    ) -> T:
        api_params = {"response_model": response_model}

        if self.provider == "openai":
            api_params["model"] = self.model
            api_params["messages"] = messages
            api_params["temperature"] = temperature

            # Reasoning models take max_completion_tokens and only the default temperature
            if self.model.startswith("gpt-5") or self.model.startswith("o"):
                api_params["max_completion_tokens"] = max_tokens
                api_params["temperature"] = 1.0
                api_params["reasoning_effort"] = "low"
            else:
                api_params["max_tokens"] = max_tokens
            return await self.client.chat.completions.create(**api_params)

        if self.provider == "anthropic":
            api_params["model"] = self.model
            api_params["max_tokens"] = max_tokens
            api_params["temperature"] = temperature
            if system_prompt:
                api_params["system"] = system_prompt
            api_params["messages"] = [msg for msg in messages if msg["role"] != "system"]
            return await self.client.messages.create(**api_params)

        return await self.client.chat.completions.create(messages=messages, **api_params)

    @observe(as_type="generation")
    async def generate(
        self,
        prompt: str,
        response_model: Type[T],
        temperature: float = 0.7,
        max_tokens: int = 2048,
        system_prompt: Optional[str] = None,
    ) -> T:
        """Generate structured response using Pydantic model validation.

        Args:
            prompt: User prompt/instruction
            response_model: Pydantic model class for structured output
            temperature: Sampling temperature (0.0 - 2.0, default: 0.7)
            max_tokens: Maximum tokens to generate (default: 2048)
            system_prompt: Optional system prompt for context

        Returns:
            Validated Pydantic model instance

        Raises:
            LLMGenerationError: If all retry attempts fail
        """
        prompt_hash = self._hash_prompt(prompt)
        logger.info(
            f"Generating structured response: model={self.model}, "
            f"response_model={response_model.__name__}, "
            f"prompt_hash={prompt_hash}, "
            f"temperature={temperature}"
        )

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        last_exception = None
        for attempt in range(1, self.max_retries + 1):
            start_time = time.time()
            try:
                response = await self._create(
                    messages, response_model, temperature, max_tokens, system_prompt
                )
                latency_ms = (time.time() - start_time) * 1000

                usage = self._extract_usage(response)
                self._update_total_usage(usage)
                self._log_response(
                    prompt_hash=prompt_hash,
                    response_model=response_model.__name__,
                    latency_ms=latency_ms,
                    attempt=attempt,
                    success=True,
                    usage=usage,
                )
                return response

            except Exception as e:
                last_exception = e
                latency_ms = (time.time() - start_time) * 1000

                logger.warning(f"Attempt {attempt}/{self.max_retries} failed: {str(e)[:200]}")
                self._log_response(
                    prompt_hash=prompt_hash,
                    response_model=response_model.__name__,
                    latency_ms=latency_ms,
                    attempt=attempt,
                    success=False,
                    error=str(e)[:200],
                )

                if attempt < self.max_retries:
                    delay = self._calculate_backoff_delay(attempt)
                    logger.info(f"Retrying in {delay:.2f} seconds...")
                    await asyncio.sleep(delay)
                else:
                    logger.error(f"All {self.max_retries} attempts failed for prompt_hash={prompt_hash}")

        raise LLMGenerationError(
            f"Failed to generate structured response after {self.max_retries} attempts. "
            f"Last error: {last_exception}",
            attempts=self.max_retries,
            last_error=last_exception,
        )

    def _extract_usage(self, response: BaseModel) -> TokenUsage:
        """Extract token usage from the raw provider response Instructor keeps."""
        usage = TokenUsage()
        raw_usage = getattr(getattr(response, "_raw_response", None), "usage", None)
        if raw_usage is None:
            return usage

        if self.provider == "openai":
            usage.prompt_tokens = getattr(raw_usage, "prompt_tokens", 0) or 0
            usage.completion_tokens = getattr(raw_usage, "completion_tokens", 0) or 0
            usage.total_tokens = getattr(raw_usage, "total_tokens", 0) or 0
            details = getattr(raw_usage, "prompt_tokens_details", None)
            usage.cached_tokens = getattr(details, "cached_tokens", 0) or 0
            details = getattr(raw_usage, "completion_tokens_details", None)
            usage.reasoning_tokens = getattr(details, "reasoning_tokens", 0) or 0

        elif self.provider == "anthropic":
            usage.prompt_tokens = getattr(raw_usage, "input_tokens", 0) or 0
            usage.completion_tokens = getattr(raw_usage, "output_tokens", 0) or 0
            usage.total_tokens = usage.prompt_tokens + usage.completion_tokens
            usage.cached_tokens = getattr(raw_usage, "cache_read_input_tokens", 0) or 0

        elif self.provider == "gemini":
            usage.prompt_tokens = getattr(raw_usage, "prompt_token_count", 0) or 0
            usage.completion_tokens = getattr(raw_usage, "candidates_token_count", 0) or 0
            usage.total_tokens = getattr(
                raw_usage, "total_token_count", usage.prompt_tokens + usage.completion_tokens
            ) or 0
            usage.cached_tokens = getattr(raw_usage, "cached_content_token_count", 0) or 0

        return usage

    def _update_total_usage(self, usage: TokenUsage) -> None:
        self.total_usage.prompt_tokens += usage.prompt_tokens
        self.total_usage.completion_tokens += usage.completion_tokens
        self.total_usage.total_tokens += usage.total_tokens
        self.total_usage.cached_tokens += usage.cached_tokens
        self.total_usage.reasoning_tokens += usage.reasoning_tokens

    def get_usage_summary(self) -> dict:
        """Get summary of total token usage."""
        return {
            "model": self.model,
            "prompt_tokens": self.total_usage.prompt_tokens,
            "completion_tokens": self.total_usage.completion_tokens,
            "total_tokens": self.total_usage.total_tokens,
            "cached_tokens": self.total_usage.cached_tokens,
            "reasoning_tokens": self.total_usage.reasoning_tokens,
            "cache_hit_rate": (
                f"{self.total_usage.cached_tokens / self.total_usage.prompt_tokens * 100:.1f}%"
                if self.total_usage.prompt_tokens > 0
                else "0.0%"
            ),
        }

    def reset_usage(self) -> None:
        """Reset token usage counters."""
        self.total_usage = TokenUsage()

    def _hash_prompt(self, prompt: str) -> str:
        """First 16 characters of the prompt's SHA256, used in logs instead of the prompt."""
        return hashlib.sha256(prompt.encode()).hexdigest()[:16]

    def _calculate_backoff_delay(self, attempt: int) -> float:
        """Exponential backoff delay for 1-indexed ``attempt``, capped at max_delay."""
        delay = self.base_delay * (2 ** (attempt - 1))
        return min(delay, self.max_delay)

    def _log_response(
        self,
        prompt_hash: str,
        response_model: str,
        latency_ms: float,
        attempt: int,
        success: bool,
        usage: Optional[TokenUsage] = None,
        error: Optional[str] = None,
    ) -> None:
        log_data = {
            "prompt_hash": prompt_hash,
            "response_model": response_model,
            "model": self.model,
            "latency_ms": round(latency_ms, 2),
            "attempt": attempt,
            "success": success,
        }

        if usage:
            log_data["tokens"] = {
                "prompt": usage.prompt_tokens,
                "completion": usage.completion_tokens,
                "total": usage.total_tokens,
                "cached": usage.cached_tokens,
                "reasoning": usage.reasoning_tokens,
            }

        if error:
            log_data["error"] = error

        if success:
            logger.info(f"LLM response: {log_data}")
        else:
            logger.warning(f"LLM response failed: {log_data}")
