"""Async chat-completion client for OpenRouter (OpenAI-compatible API)."""

from __future__ import annotations

import logging
from typing import Any

from openai import AsyncOpenAI

from src.config import settings

logger = logging.getLogger(__name__)

EMPTY_COMPLETION_REPLY = "Sorry, I could not generate a response."
KNOWLEDGE_BASE_ACK = (
    "I understand the knowledge base. I will use this information to answer questions accurately."
)

_client: AsyncOpenAI | None = None


def _get_client() -> AsyncOpenAI:
    """Lazily initialize the OpenRouter client."""
    global _client  # noqa: PLW0603
    if _client is None:
        headers = {"X-Title": "Instagram DM Assistant"}
        if settings.public_url:
            headers["HTTP-Referer"] = settings.public_url
        _client = AsyncOpenAI(
            api_key=settings.openrouter_api_key,
            base_url=settings.openrouter_base_url,
            default_headers=headers,
        )
    return _client


def build_messages(
    history: list[dict[str, str]],
    system_prompt: str,
    knowledge_base: str | None = None,
) -> list[dict[str, Any]]:
    """Assemble the request: instructions, knowledge base, then the ledger."""
    messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    if knowledge_base:
        messages.append({"role": "user", "content": f"KNOWLEDGE BASE:\n{knowledge_base}"})
        messages.append({"role": "assistant", "content": KNOWLEDGE_BASE_ACK})
    messages.extend(history)
    return messages


async def complete_chat(
    history: list[dict[str, str]],
    system_prompt: str,
    knowledge_base: str | None = None,
    *,
    model: str | None = None,
) -> str:
    """Generate the assistant's next reply for a conversation.

    Args:
        history: Conversation ledger as ``{role, content}`` pairs, oldest first.
        system_prompt: Persona and behaviour instructions.
        knowledge_base: Reference facts the reply should draw on.
        model: Override for ``settings.chat_model``.

    Returns:
        The reply text, or a fixed apology when the model returns nothing.
    """
    client = _get_client()
    response = await client.chat.completions.create(
        model=model or settings.chat_model,
        messages=build_messages(history, system_prompt, knowledge_base),
        max_tokens=settings.completion_max_tokens,
        temperature=settings.completion_temperature,
    )
    if not response.choices:
        logger.warning("Completion returned no choices")
        return EMPTY_COMPLETION_REPLY
    content = response.choices[0].message.content
    return content or EMPTY_COMPLETION_REPLY
