"""
LLM access for the classifier.

Providers wrap a vendor SDK behind one blocking call,
``generate(system_prompt, user_prompt) -> LLMResponse``. Each request has a
client-level timeout; rate limits, timeouts and dropped connections are
retried here with exponential backoff (SDK-level retries are disabled so the
two never stack). The queue runs these calls in worker threads.

The second half of the module turns raw model output into a JSON object or
an explicit parse error.
"""

import json
import os
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Dict, Optional, TypeVar

from loguru import logger

# Retry configuration
MAX_RETRIES = 5
BASE_DELAY = 1.0
DEFAULT_TIMEOUT = 60.0
DEFAULT_MAX_TOKENS = 512

T = TypeVar("T")


def _retry_with_backoff(
    operation: Callable[[], T],
    retryable_exceptions: tuple[type[Exception], ...],
    error_message: str,
    max_retries: int = MAX_RETRIES,
    base_delay: float = BASE_DELAY,
) -> T:
    """
    Run operation, retrying transient failures with exponential backoff.

    Args:
        operation: Zero-argument callable performing one API request
        retryable_exceptions: Exception types worth another attempt
        error_message: Log prefix for retries (e.g., "Rate limit hit")
        max_retries: Total attempts; the last exception propagates
        base_delay: First retry delay in seconds, doubled per attempt
    """
    for attempt in range(1, max_retries + 1):
        try:
            return operation()
        except retryable_exceptions as e:
            if attempt == max_retries:
                raise
            delay = base_delay * 2 ** (attempt - 1)
            logger.warning(
                f"[llm] {error_message} ({type(e).__name__}), "
                f"retry {attempt}/{max_retries - 1} in {delay:.1f}s"
            )
            time.sleep(delay)


def _require_api_key(env_var: str) -> str:
    api_key = os.getenv(env_var)
    if not api_key:
        raise ValueError(f"{env_var} environment variable not set")
    return api_key


@dataclass
class LLMResponse:
    """One completion and its token usage."""

    content: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0


class LLMProvider(ABC):
    """
    Base class for vendor providers.

    Subclasses set ``default_model`` and ``retry_message``, build their client
    and ``retryable`` exception tuple in __init__, and implement _call_api().
    """

    default_model: str
    retry_message: str = "Transient API error"
    retryable: tuple[type[Exception], ...] = ()

    def __init__(self, model: Optional[str], timeout: float, max_tokens: int):
        self.model = model or self.default_model
        self.timeout = timeout
        self.max_tokens = max_tokens

    @property
    def name(self) -> str:
        return f"{type(self).__name__}/{self.model}"

    @abstractmethod
    def _call_api(self, system_prompt: str, user_prompt: str) -> LLMResponse:
        """One request, no retries."""

    def generate(self, system_prompt: str, user_prompt: str) -> LLMResponse:
        return _retry_with_backoff(
            partial(self._call_api, system_prompt, user_prompt),
            self.retryable,
            self.retry_message,
        )


class AnthropicProvider(LLMProvider):
    default_model = "claude-sonnet-4-20250514"
    retry_message = "Anthropic API overloaded"

    def __init__(
        self,
        model: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ):
        # SDK imported on first use so only the configured vendor is loaded
        import anthropic

        super().__init__(model, timeout, max_tokens)
        self.client = anthropic.Anthropic(
            api_key=_require_api_key("ANTHROPIC_API_KEY"), timeout=timeout, max_retries=0
        )
        self.retryable = (
            anthropic.RateLimitError,
            anthropic.InternalServerError,
            anthropic.APITimeoutError,
            anthropic.APIConnectionError,
        )

    def _call_api(self, system_prompt: str, user_prompt: str) -> LLMResponse:
        response = self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=0,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
        )
        text = "".join(block.text for block in response.content if block.type == "text")
        return LLMResponse(
            content=text,
            model=self.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )


class OpenAIProvider(LLMProvider):
    default_model = "gpt-4o-mini"
    retry_message = "OpenAI rate limit hit"

    def __init__(
        self,
        model: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ):
        import openai

        super().__init__(model, timeout, max_tokens)
        self.client = openai.OpenAI(
            api_key=_require_api_key("OPENAI_API_KEY"), timeout=timeout, max_retries=0
        )
        self.retryable = (
            openai.RateLimitError,
            openai.APITimeoutError,
            openai.APIConnectionError,
        )

    def _call_api(self, system_prompt: str, user_prompt: str) -> LLMResponse:
        # json_object mode: the model must answer with a single JSON object
        response = self.client.chat.completions.create(
            model=self.model,
            temperature=0,
            max_tokens=self.max_tokens,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        )
        usage = response.usage
        return LLMResponse(
            content=response.choices[0].message.content or "",
            model=self.model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )


PROVIDERS: Dict[str, type[LLMProvider]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
}


def get_provider(
    provider_name: Optional[str] = None,
    model: Optional[str] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> LLMProvider:
    """
    Build the configured provider.

    Args:
        provider_name: "openai" or "anthropic" (default: LLM_PROVIDER, then "openai")
        model: Model name (default: the provider's default_model)
        timeout: Per-request timeout in seconds

    Raises:
        ValueError: For an unknown provider or a missing API key
    """
    provider_name = (provider_name or os.getenv("LLM_PROVIDER") or "openai").lower()
    provider_cls = PROVIDERS.get(provider_name)
    if provider_cls is None:
        raise ValueError(f"Unknown provider: {provider_name}. Use one of {sorted(PROVIDERS)}")
    return provider_cls(model=model, timeout=timeout)


# --- Response Parsing Utilities ---


@dataclass(frozen=True)
class ParsedResponse:
    """
    Result of parsing an LLM response as a JSON object.

    Exactly one of ``data`` / ``error`` is set.
    """

    data: Optional[dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def extract_json_object(text: str) -> Optional[str]:
    """
    Return the first balanced ``{...}`` substring of text, or None.

    Braces inside JSON string literals are ignored, so reasons such as
    "uses {curly} braces" do not end the object early.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start : i + 1]
        # Unbalanced from this brace; try the next opening brace
        start = text.find("{", start + 1)
    return None


def parse_json_object(text: str) -> ParsedResponse:
    """
    Parse a JSON object from an LLM response.

    Tries a strict parse first, then strips markdown code fences, then falls
    back to the first balanced JSON object embedded in the text.
    """
    text = (text or "").strip()
    if not text:
        return ParsedResponse(error="Empty response")

    candidates = [text]

    # Strip markdown code blocks
    unfenced = re.sub(r"^```(?:json)?\s*", "", text)
    unfenced = re.sub(r"\s*```$", "", unfenced)
    if unfenced != text:
        candidates.append(unfenced)

    embedded = extract_json_object(text)
    if embedded is not None:
        candidates.append(embedded)

    for candidate in candidates:
        try:
            result = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(result, dict):
            return ParsedResponse(data=result)

    return ParsedResponse(error=f"LLM output was not a JSON object: {text[:200]!r}")
