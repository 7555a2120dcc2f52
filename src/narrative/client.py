"""Claude API client for compliance narratives.

Wraps the Anthropic SDK for text calls. Isolated so the rest of the
codebase does not import ``anthropic`` directly.

Environment variables:
    ANTHROPIC_API_KEY: Required for narrative calls.
    NARRATIVE_MODEL: Override model (default: claude-sonnet-4-20250514).
    NARRATIVE_TIMEOUT_SECS: Transport timeout (default: 20).
"""

import logging
import os
import time
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_MAX_TOKENS = 600
DEFAULT_TEMPERATURE = 0.3
NARRATIVE_TIMEOUT_SECS = float(os.environ.get("NARRATIVE_TIMEOUT_SECS", "20"))


@dataclass
class NarrativeResult:
    """Result of a single text generation call."""

    success: bool
    text: str  # Raw text response
    error: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    duration_ms: int = 0


def is_narrative_available() -> bool:
    """Check if ANTHROPIC_API_KEY is configured."""
    return bool(os.environ.get("ANTHROPIC_API_KEY"))


async def generate_text(
    prompt: str,
    system_prompt: str | None = None,
    model: str | None = None,
    max_tokens: int = DEFAULT_MAX_TOKENS,
    temperature: float = DEFAULT_TEMPERATURE,
    timeout: float | None = None,
) -> NarrativeResult:
    """Send one prompt to Claude and return the raw text.

    Never raises. Missing key, transport errors, non-2xx responses and
    timeouts all come back as ``success=False`` with ``error`` set. No
    retries: callers fall back instead.
    """
    api_key = os.environ.get("ANTHROPIC_API_KEY")
    if not api_key:
        return NarrativeResult(
            success=False,
            text="",
            error="ANTHROPIC_API_KEY not configured",
        )

    effective_timeout = timeout if timeout is not None else NARRATIVE_TIMEOUT_SECS
    model_name = model or os.environ.get("NARRATIVE_MODEL", DEFAULT_MODEL)

    try:
        import anthropic

        client = anthropic.AsyncAnthropic(api_key=api_key)

        kwargs: dict = {
            "model": model_name,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        t0 = time.perf_counter()
        response = await client.messages.create(timeout=effective_timeout, **kwargs)
        duration_ms = int((time.perf_counter() - t0) * 1000)
        logger.info(
            "[narrative] model=%s duration_ms=%d in_tok=%d out_tok=%d",
            model_name,
            duration_ms,
            response.usage.input_tokens,
            response.usage.output_tokens,
        )

        text = response.content[0].text if response.content else ""
        return NarrativeResult(
            success=True,
            text=text,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            duration_ms=duration_ms,
        )
    except Exception as e:
        error_str = str(e)
        is_timeout = any(kw in error_str.lower() for kw in ("timeout", "timed out", "deadline"))
        if is_timeout:
            logger.warning("[narrative] timeout after %.0fs", effective_timeout)
            return NarrativeResult(success=False, text="", error="Narrative API timeout")
        logger.error("[narrative] call failed: %s", e)
        return NarrativeResult(success=False, text="", error=error_str)
