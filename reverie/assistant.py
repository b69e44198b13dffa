"""
Journaling assistant: writing prompts, reflections, summaries and chat.

The PromptService boundary is a plain chat completion. Two providers
ship here:

- ScriptedPromptService answers from canned text (the default; no
  network, no API key)
- ChatCompletionService calls an OpenAI-compatible /chat/completions
  endpoint over httpx

The Assistant never lets a service failure reach the caller: every
operation falls back to a fixed string.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Sequence
from urllib.parse import urlparse

import httpx

from .errors import ServiceError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

SYSTEM = "system"
USER = "user"
ASSISTANT = "assistant"


@dataclass(frozen=True)
class ChatMessage:
    """A single role-tagged message in a conversation."""
    role: str  # "system", "user" or "assistant"
    content: str


# -----------------------------------------------------------------------------
# Prompts and fallbacks
# -----------------------------------------------------------------------------

PROMPT_SYSTEM_PROMPT = (
    "You are a thoughtful journaling assistant. Generate a single, creative "
    "journaling prompt that helps with self-reflection and personal growth. "
    "Keep it concise (under 100 characters) and thought-provoking."
)

REFLECT_SYSTEM_PROMPT = (
    "You are an empathetic and insightful journaling assistant. Provide a brief, "
    "thoughtful reflection (2-3 sentences) on the user's journal entry. Focus on "
    "highlighting themes, offering gentle perspective, or asking a follow-up "
    "question. Be supportive and avoid being judgmental."
)

SUMMARIZE_SYSTEM_PROMPT = (
    "You are a concise summarization assistant. Summarize the following journal "
    "entry in 1-2 sentences, capturing the key themes and emotions."
)

CHAT_SYSTEM_PROMPT = (
    "You are a helpful, empathetic journaling assistant. Your goal is to help the "
    "user reflect, process emotions, and grow through journaling. Keep responses "
    "concise, supportive, and thoughtful."
)

PROMPT_FALLBACK = "What's something you're grateful for today?"
REFLECT_FALLBACK = (
    "Thank you for sharing your thoughts. Reflection is a powerful practice "
    "for personal growth."
)
SUMMARY_FALLBACK = "Journal entry summary not available."
CHAT_FALLBACK = "I'm having trouble responding right now. Please try again later."

WELCOME_MESSAGE = (
    "Hi, I'm your journaling assistant. I can help you with writing prompts, "
    "reflect on your entries, or just chat about your day. How can I assist you today?"
)

SUGGESTIONS = (
    "Give me a writing prompt for today",
    "What should I write about my work day?",
    "How can I reflect on my feelings?",
    "Summarize my recent journal entries",
)


# -----------------------------------------------------------------------------
# Providers
# -----------------------------------------------------------------------------

class ScriptedPromptService:
    """Canned responses keyed on the system prompt. No network."""

    PROMPT = "What would your 10-year-old self think about your life today?"
    REFLECTION = (
        "I notice themes of growth and challenge in your entry. How might this "
        "experience shape your approach to similar situations in the future?"
    )
    SUMMARY = (
        "The entry expresses mixed feelings about a challenging work situation, "
        "highlighting both frustration and determination to overcome obstacles."
    )
    REPLY = "Thank you for sharing. Your journey of self-reflection is valuable."

    def __init__(self, delay: float = 0.0):
        self._delay = delay

    async def complete(self, messages: Sequence[ChatMessage]) -> str:
        if not messages:
            raise ServiceError("Conversation is empty")
        if self._delay:
            await asyncio.sleep(self._delay)

        first = messages[0]
        if first.role == SYSTEM:
            text = first.content.lower()
            if "journaling prompt" in text:
                return self.PROMPT
            if "reflection" in text:
                return self.REFLECTION
            if "summariz" in text:
                return self.SUMMARY
        return self.REPLY

    async def close(self) -> None:
        pass


class ChatCompletionService:
    """Client for an OpenAI-compatible chat completion API."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        max_tokens: int = 150,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not api_key:
            raise ValueError("Chat completion API key is required")
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._max_tokens = max_tokens

        # Refuse non-HTTPS for remote APIs (bearer token would be sent in cleartext)
        if not self._base_url.startswith("https://"):
            host = urlparse(self._base_url).hostname or ""
            if host not in ("localhost", "127.0.0.1", "::1"):
                raise ValueError(
                    f"Chat API URL must use HTTPS (got {self._base_url}). "
                    "Use HTTPS to protect API credentials, or use localhost for local development."
                )

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def complete(self, messages: Sequence[ChatMessage]) -> str:
        """POST /chat/completions -> first choice's message content."""
        payload = {
            "model": self._model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "max_tokens": self._max_tokens,
        }
        logger.debug("Sending %d messages to %s", len(messages), self._model)
        try:
            resp = await self._client.post("/chat/completions", json=payload)
            resp.raise_for_status()
            data = resp.json()
            return data["choices"][0]["message"]["content"].strip()
        except httpx.HTTPStatusError as e:
            raise ServiceError(
                f"Chat completion rejected: {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise ServiceError(f"Chat completion failed: {e}") from e
        except (KeyError, IndexError, TypeError, AttributeError, ValueError) as e:
            raise ServiceError(f"Malformed chat completion response: {e}") from e

    async def close(self) -> None:
        await self._client.aclose()


# -----------------------------------------------------------------------------
# Assistant
# -----------------------------------------------------------------------------

def build_conversation(
    history: Sequence[ChatMessage],
    message: str,
    *,
    system: str = CHAT_SYSTEM_PROMPT,
) -> list[ChatMessage]:
    """System message, then user/assistant history, then the new user message."""
    conversation = [ChatMessage(SYSTEM, system)]
    conversation.extend(m for m in history if m.role in (USER, ASSISTANT))
    conversation.append(ChatMessage(USER, message))
    return conversation


class Assistant:
    """Journaling helpers over a PromptService, with fixed fallbacks."""

    def __init__(self, service):
        self._service = service

    async def _ask(self, messages: list[ChatMessage], fallback: str, label: str) -> str:
        try:
            reply = await self._service.complete(messages)
        except ServiceError as e:
            logger.warning("Assistant %s unavailable: %s", label, e)
            return fallback
        except Exception:
            logger.warning("Assistant %s failed", label, exc_info=True)
            return fallback
        return reply or fallback

    async def generate_prompt(self) -> str:
        return await self._ask(
            [ChatMessage(SYSTEM, PROMPT_SYSTEM_PROMPT)],
            PROMPT_FALLBACK,
            "prompt",
        )

    async def reflect(self, entry_text: str) -> str:
        return await self._ask(
            [
                ChatMessage(SYSTEM, REFLECT_SYSTEM_PROMPT),
                ChatMessage(USER, f"Here's my journal entry: {entry_text}"),
            ],
            REFLECT_FALLBACK,
            "reflection",
        )

    async def summarize(self, entry_text: str) -> str:
        return await self._ask(
            [
                ChatMessage(SYSTEM, SUMMARIZE_SYSTEM_PROMPT),
                ChatMessage(USER, entry_text),
            ],
            SUMMARY_FALLBACK,
            "summary",
        )

    async def chat(self, history: Sequence[ChatMessage], message: str) -> str:
        return await self._ask(build_conversation(history, message), CHAT_FALLBACK, "chat")


class Conversation:
    """
    A multi-turn chat with the assistant.

    Every exchange appends the user's message and the reply to the
    history, so later turns see the whole conversation.
    """

    welcome = WELCOME_MESSAGE
    suggestions = SUGGESTIONS

    def __init__(self, assistant: Assistant):
        self._assistant = assistant
        self._history: list[ChatMessage] = []

    @property
    def history(self) -> tuple[ChatMessage, ...]:
        return tuple(self._history)

    async def send(self, message: str) -> str:
        reply = await self._assistant.chat(self._history, message)
        self._history.append(ChatMessage(USER, message))
        self._history.append(ChatMessage(ASSISTANT, reply))
        return reply
