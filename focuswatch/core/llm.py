"""
FocusWatch — LLM Provider Abstraction.

Single public function `complete()` that routes to the configured provider.
Two callers with different needs:
  * batch domain classification: JSON output, temperature 0
  * end-of-day insight: free text, a little temperature
Supports: anthropic (default), gemini, openai, cohere.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Prompt:
    system: str
    user_message: str
    max_tokens: int = 256
    temperature: float = 0.0
    json_output: bool = False


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    model: str
    api_key: str


_ProviderFn = Callable[[ProviderConfig, Prompt], Awaitable[str]]

# ---------------------------------------------------------------------------
# Provider implementations
# ---------------------------------------------------------------------------


async def _complete_gemini(cfg: ProviderConfig, prompt: Prompt) -> str:
    import google.generativeai as genai

    genai.configure(api_key=cfg.api_key)
    gm = genai.GenerativeModel(model_name=cfg.model, system_instruction=prompt.system)
    response = await gm.generate_content_async(
        prompt.user_message,
        generation_config=genai.types.GenerationConfig(
            max_output_tokens=prompt.max_tokens,
            temperature=prompt.temperature,
            response_mime_type="application/json" if prompt.json_output else "text/plain",
        ),
    )
    return response.text


async def _complete_anthropic(cfg: ProviderConfig, prompt: Prompt) -> str:
    import anthropic

    client = anthropic.AsyncAnthropic(api_key=cfg.api_key)
    response = await client.messages.create(
        model=cfg.model,
        max_tokens=prompt.max_tokens,
        temperature=prompt.temperature,
        system=prompt.system,
        messages=[{"role": "user", "content": prompt.user_message}],
    )
    return "".join(block.text for block in response.content if block.type == "text")


async def _complete_openai(cfg: ProviderConfig, prompt: Prompt) -> str:
    from openai import AsyncOpenAI

    client = AsyncOpenAI(api_key=cfg.api_key)
    extra = {"response_format": {"type": "json_object"}} if prompt.json_output else {}
    response = await client.chat.completions.create(
        model=cfg.model,
        max_tokens=prompt.max_tokens,
        temperature=prompt.temperature,
        messages=[
            {"role": "system", "content": prompt.system},
            {"role": "user", "content": prompt.user_message},
        ],
        **extra,
    )
    return response.choices[0].message.content or ""


async def _complete_cohere(cfg: ProviderConfig, prompt: Prompt) -> str:
    import cohere

    client = cohere.AsyncClientV2(api_key=cfg.api_key)
    extra = {"response_format": {"type": "json_object"}} if prompt.json_output else {}
    response = await client.chat(
        model=cfg.model,
        max_tokens=prompt.max_tokens,
        temperature=prompt.temperature,
        messages=[
            {"role": "system", "content": prompt.system},
            {"role": "user", "content": prompt.user_message},
        ],
        **extra,
    )
    return response.message.content[0].text


# ---------------------------------------------------------------------------
# Provider selection (runs once at first call)
# ---------------------------------------------------------------------------

_PROVIDERS: dict[str, tuple[_ProviderFn, str]] = {
    "gemini":    (_complete_gemini,    "gemini-2.0-flash"),
    "anthropic": (_complete_anthropic, "claude-haiku-4-5-20251001"),
    "openai":    (_complete_openai,    "gpt-4o-mini"),
    "cohere":    (_complete_cohere,    "command-a-03-2025"),
}


def _select_provider() -> tuple[_ProviderFn, ProviderConfig]:
    from focuswatch.config import settings

    name = settings.LLM_PROVIDER.lower()
    if name not in _PROVIDERS:
        raise ValueError(
            f"Unknown LLM_PROVIDER={name!r}. "
            f"Supported: {', '.join(_PROVIDERS)}"
        )
    if not settings.LLM_API_KEY:
        raise ValueError("LLM_API_KEY is not set")

    fn, default_model = _PROVIDERS[name]
    cfg = ProviderConfig(name=name, model=settings.LLM_MODEL or default_model, api_key=settings.LLM_API_KEY)
    logger.info("LLM provider: %s, model: %s", cfg.name, cfg.model)
    return fn, cfg


# Lazy singleton, populated on first call to complete()
_selected: tuple[_ProviderFn, ProviderConfig] | None = None


def reset_provider() -> None:
    """Forget the selected provider so the next call re-reads settings."""
    global _selected
    _selected = None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def complete(
    system: str,
    user_message: str,
    max_tokens: int = 256,
    temperature: float = 0.0,
    json_output: bool = False,
) -> str:
    """Send a prompt to the configured LLM provider and return the response text.

    Raises on API errors and on an empty answer — callers wrap them as FetchError.
    """
    global _selected

    if _selected is None:
        _selected = _select_provider()
    fn, cfg = _selected

    text = await fn(cfg, Prompt(system, user_message, max_tokens, temperature, json_output))
    if not text or not text.strip():
        raise ValueError(f"{cfg.name} returned an empty response")
    return text
