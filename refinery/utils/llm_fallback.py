"""
Reasoning-collaborator clients.

The gateway only needs something with an async `generate(prompt, *, json_mode,
response_schema) -> str`; these are the two real providers behind that capability.
"""

import logging
import os
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple

import google.generativeai as genai
from openai import AsyncOpenAI

from refinery.utils.retries import is_retryable_error
from refinery.utils.settings import RefinerySettings

logger = logging.getLogger(__name__)

JSON_SYSTEM_PROMPT = "You are a precise data assistant. Reply with raw JSON only, no markdown and no commentary."
TEXT_SYSTEM_PROMPT = "You are a precise data assistant."


class ReasoningClient(Protocol):
    async def generate(
        self,
        prompt: str,
        *,
        json_mode: bool = True,
        response_schema: Optional[Dict[str, Any]] = None,
    ) -> str:
        ...


def _coerce_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (list, tuple)):
        parts = [_coerce_text(item) for item in value]
        return "\n".join(part for part in parts if part).strip()
    if isinstance(value, dict):
        for key in ("text", "content", "output_text", "value"):
            text = _coerce_text(value.get(key))
            if text:
                return text
        return ""
    for attr in ("text", "content", "output_text", "value"):
        if hasattr(value, attr):
            text = _coerce_text(getattr(value, attr))
            if text:
                return text
    return ""


def extract_response_text(response: Any) -> str:
    if response is None:
        return ""
    choices = getattr(response, "choices", None)
    if not choices:
        return ""
    msg = getattr(choices[0], "message", None)
    if msg is None:
        return ""
    return _coerce_text(getattr(msg, "content", None))


def _empty_completion_detail(response: Any) -> str:
    choices = getattr(response, "choices", None) or []
    finish_reason = getattr(choices[0], "finish_reason", None) if choices else None
    usage = getattr(response, "usage", None)
    completion_tokens = getattr(usage, "completion_tokens", None) if usage is not None else None
    prompt_tokens = getattr(usage, "prompt_tokens", None) if usage is not None else None
    return f"finish_reason={finish_reason} completion_tokens={completion_tokens} prompt_tokens={prompt_tokens}"


class EmptyCompletionError(ValueError):
    """Every model in the chain answered, but none produced any text."""


async def call_chat_with_fallback(
    llm_client: Any,
    messages: List[Dict[str, str]],
    model_chain: Iterable[str],
    *,
    call_kwargs: Dict[str, Any],
    context_tag: str,
) -> Tuple[Any, str]:
    last_exc: Exception | None = None
    last_empty: EmptyCompletionError | None = None
    for model in model_chain:
        if not model:
            continue
        try:
            response = await llm_client.chat.completions.create(
                model=model,
                messages=messages,
                **(call_kwargs or {}),
            )
            if not extract_response_text(response):
                raise EmptyCompletionError(f"EMPTY_COMPLETION {_empty_completion_detail(response)}")
            return response, model
        except EmptyCompletionError as exc:
            last_empty = exc
            logger.warning("LLM_FALLBACK_WARNING context=%s model=%s %s", context_tag, model, exc)
        except Exception as exc:
            last_exc = exc
            logger.warning(
                "LLM_FALLBACK_WARNING context=%s model=%s error=%s message=%s",
                context_tag,
                model,
                type(exc).__name__,
                str(exc)[:200],
            )
    # Transport failures outrank empty answers.
    if last_exc is not None:
        raise last_exc
    if last_empty is not None:
        raise last_empty
    raise ValueError("No models provided for fallback.")


def _coerce_gemini_text(response: Any) -> str:
    # response.text raises ValueError when the candidate was blocked or is empty.
    try:
        text = response.text
    except (ValueError, AttributeError):
        return ""
    return (text or "").strip()


class GeminiReasoningClient:
    def __init__(
        self,
        api_key: str,
        model_name: str = "gemini-2.5-flash",
        temperature: float = 0.2,
        use_response_schema: bool = True,
    ):
        if not api_key:
            raise ValueError("Google API Key is required.")
        genai.configure(api_key=api_key)
        self.model_name = model_name
        self.use_response_schema = use_response_schema
        self.model = genai.GenerativeModel(
            model_name=model_name,
            generation_config={"temperature": temperature},
        )

    async def generate(
        self,
        prompt: str,
        *,
        json_mode: bool = True,
        response_schema: Optional[Dict[str, Any]] = None,
    ) -> str:
        config: Dict[str, Any] = {}
        if json_mode:
            config["response_mime_type"] = "application/json"
            if response_schema and self.use_response_schema:
                config["response_schema"] = response_schema
        try:
            response = await self.model.generate_content_async(prompt, generation_config=config or None)
        except Exception as err:
            if "response_schema" not in config or is_retryable_error(err):
                raise
            # Some models reject structured schemas; the JSON mime type alone still applies.
            logger.warning("Gemini rejected response_schema (%s); retrying without it.", str(err)[:200])
            config.pop("response_schema", None)
            response = await self.model.generate_content_async(prompt, generation_config=config)
        return _coerce_gemini_text(response)


class OpenRouterReasoningClient:
    def __init__(
        self,
        api_key: str,
        model_chain: List[str],
        temperature: float = 0.2,
        timeout_seconds: float = 120.0,
        client: Any = None,
    ):
        if not api_key:
            raise ValueError("OpenRouter API Key is required.")
        self.model_chain = [m for m in model_chain if m]
        self.temperature = temperature
        if client is None:
            headers = {}
            referer = os.getenv("OPENROUTER_HTTP_REFERER")
            if referer:
                headers["HTTP-Referer"] = referer
            title = os.getenv("OPENROUTER_X_TITLE")
            if title:
                headers["X-Title"] = title
            client_kwargs: Dict[str, Any] = {
                "api_key": api_key,
                "base_url": "https://openrouter.ai/api/v1",
                "timeout": timeout_seconds,
            }
            if headers:
                client_kwargs["default_headers"] = headers
            client = AsyncOpenAI(**client_kwargs)
        self.client = client

    async def generate(
        self,
        prompt: str,
        *,
        json_mode: bool = True,
        response_schema: Optional[Dict[str, Any]] = None,
    ) -> str:
        messages = [
            {"role": "system", "content": JSON_SYSTEM_PROMPT if json_mode else TEXT_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]
        try:
            response, _model = await call_chat_with_fallback(
                self.client,
                messages,
                self.model_chain,
                call_kwargs={"temperature": self.temperature},
                context_tag="json" if json_mode else "text",
            )
        except EmptyCompletionError:
            # No text from any model is an empty payload, not a failure.
            return ""
        return extract_response_text(response)


def build_reasoning_client(settings: RefinerySettings) -> ReasoningClient:
    if settings.provider == "openrouter":
        return OpenRouterReasoningClient(
            api_key=settings.api_key,
            model_chain=[settings.model_name, *settings.fallback_models],
            temperature=settings.temperature,
            timeout_seconds=settings.timeout_seconds,
        )
    return GeminiReasoningClient(
        api_key=settings.api_key,
        model_name=settings.model_name,
        temperature=settings.temperature,
        use_response_schema=settings.use_response_schema,
    )
