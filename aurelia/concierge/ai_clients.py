# concierge/ai_clients.py
"""
Copywriting for Atelier blocks.

The default provider is the ``generate-site-content`` backend function; the
app can instead talk to OpenAI or Anthropic directly (CONTENT_AI_PROVIDER).
"""
from typing import Optional

import anthropic
from flask import current_app
from openai import OpenAI

from concierge.errors import FunctionInvokeError, ValidationError
from concierge.functions_client import get_functions_client

TONES = ("prestigious", "warm", "inspiring", "understated", "formal")
LANGUAGES = {
    "en": "English",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "es": "Spanish",
}


def _copy_prompt(prompt: str, tone: str, language: str, block_type: Optional[str]) -> str:
    section = f" for the '{block_type}' section" if block_type else ""
    return (
        f"Write website copy{section} of a private member's personal site. "
        f"Tone: {tone}. Language: {LANGUAGES.get(language, 'English')}. "
        "Return only the copy, no headings or commentary.\n\n"
        f"Brief: {prompt}"
    )


def chatgpt_copy(prompt: str) -> str:
    """Call OpenAI Chat Completions API (OpenAI Python >= 1.x)."""
    api_key = current_app.config.get("OPENAI_API_KEY")
    if not api_key:
        raise FunctionInvokeError("openai", "OpenAI API key not configured")

    client = OpenAI(api_key=api_key)
    try:
        resp = client.chat.completions.create(
            model=current_app.config.get("OPENAI_MODEL", "gpt-4o-mini"),
            messages=[{"role": "user", "content": prompt}],
            temperature=0.6,
        )
    except Exception as e:
        current_app.logger.exception("OpenAI copy generation failed")
        raise FunctionInvokeError("openai", str(e)) from e
    return (resp.choices[0].message.content or "").strip()


def claude_copy(prompt: str) -> str:
    """Call Anthropic Messages API."""
    api_key = current_app.config.get("ANTHROPIC_API_KEY")
    if not api_key:
        raise FunctionInvokeError("anthropic", "Anthropic API key not configured")

    client = anthropic.Anthropic(api_key=api_key)
    try:
        resp = client.messages.create(
            model=current_app.config.get("CLAUDE_MODEL", "claude-3-haiku-20240307"),
            max_tokens=1200,
            temperature=0.6,
            messages=[{"role": "user", "content": prompt}],
        )
    except Exception as e:
        current_app.logger.exception("Anthropic copy generation failed")
        raise FunctionInvokeError("anthropic", str(e)) from e

    parts = []
    for block in getattr(resp, "content", []):
        text = getattr(block, "text", None)
        if text:
            parts.append(text)
    return "\n".join(parts).strip()


def generate_block_copy(prompt: str, tone: str = "prestigious", language: str = "en",
                        block_type: Optional[str] = None) -> str:
    """
    Generate copy for one site block.

    Args:
        prompt: what the member wants written
        tone: one of TONES (unknown values fall back to "prestigious")
        language: ISO code from LANGUAGES (unknown values fall back to "en")
        block_type: the block the copy is for, if any

    Returns:
        The generated text.

    Raises:
        ValidationError: empty prompt
        FunctionInvokeError: the provider failed
    """
    prompt = (prompt or "").strip()
    if not prompt:
        raise ValidationError("Please describe what you'd like to write")
    if tone not in TONES:
        tone = "prestigious"
    if language not in LANGUAGES:
        language = "en"

    provider = (current_app.config.get("CONTENT_AI_PROVIDER") or "functions").lower()
    if provider == "openai":
        text = chatgpt_copy(_copy_prompt(prompt, tone, language, block_type))
    elif provider == "anthropic":
        text = claude_copy(_copy_prompt(prompt, tone, language, block_type))
    else:
        text = get_functions_client().generate_site_content(prompt, tone, language, block_type)

    if not text:
        raise FunctionInvokeError(provider, "no content generated")
    return text
