"""Tests for the journaling assistant and its prompt services."""

import json

import httpx
import pytest

from reverie.assistant import (
    ASSISTANT,
    CHAT_FALLBACK,
    CHAT_SYSTEM_PROMPT,
    PROMPT_FALLBACK,
    REFLECT_FALLBACK,
    SUMMARY_FALLBACK,
    SYSTEM,
    USER,
    Assistant,
    ChatCompletionService,
    ChatMessage,
    Conversation,
    ScriptedPromptService,
    build_conversation,
)
from reverie.errors import ServiceError


class FailingService:
    def __init__(self, error=None, reply=None):
        self.error = error
        self.reply = reply
        self.calls = []

    async def complete(self, messages):
        self.calls.append(list(messages))
        if self.error is not None:
            raise self.error
        return self.reply

    async def close(self):
        pass


class TestScripted:

    @pytest.mark.asyncio
    async def test_operations_use_matching_responses(self):
        assistant = Assistant(ScriptedPromptService())

        assert await assistant.generate_prompt() == ScriptedPromptService.PROMPT
        assert await assistant.reflect("A long day") == ScriptedPromptService.REFLECTION
        assert await assistant.summarize("A long day") == ScriptedPromptService.SUMMARY
        assert await assistant.chat([], "hi") == ScriptedPromptService.REPLY

    @pytest.mark.asyncio
    async def test_empty_conversation(self):
        with pytest.raises(ServiceError):
            await ScriptedPromptService().complete([])


class TestFallbacks:

    @pytest.mark.asyncio
    async def test_service_error_never_escapes(self):
        assistant = Assistant(FailingService(error=ServiceError("quota exceeded")))

        assert await assistant.generate_prompt() == PROMPT_FALLBACK
        assert await assistant.reflect("x") == REFLECT_FALLBACK
        assert await assistant.summarize("x") == SUMMARY_FALLBACK
        assert await assistant.chat([], "x") == CHAT_FALLBACK

    @pytest.mark.asyncio
    async def test_unexpected_failure_uses_fallback(self):
        assistant = Assistant(FailingService(error=RuntimeError("provider crashed")))

        assert await assistant.generate_prompt() == PROMPT_FALLBACK
        assert await assistant.chat([], "x") == CHAT_FALLBACK

    @pytest.mark.asyncio
    async def test_closed_client_uses_fallback(self):
        service = ChatCompletionService(
            "sk-test", transport=httpx.MockTransport(lambda request: httpx.Response(200)),
        )
        await service.close()

        assert await Assistant(service).summarize("x") == SUMMARY_FALLBACK

    @pytest.mark.asyncio
    async def test_empty_reply_uses_fallback(self):
        assistant = Assistant(FailingService(reply=""))
        assert await assistant.generate_prompt() == PROMPT_FALLBACK

    @pytest.mark.asyncio
    async def test_reflect_wraps_entry(self):
        service = FailingService(reply="ok")
        await Assistant(service).reflect("I walked")
        messages = service.calls[0]
        assert messages[0].role == SYSTEM
        assert messages[1] == ChatMessage(USER, "Here's my journal entry: I walked")


class TestConversation:

    def test_order(self):
        history = [
            ChatMessage(USER, "hello"),
            ChatMessage(ASSISTANT, "hi there"),
            ChatMessage(SYSTEM, "stray"),
        ]
        conversation = build_conversation(history, "how was my week?")

        assert conversation[0] == ChatMessage(SYSTEM, CHAT_SYSTEM_PROMPT)
        assert [m.content for m in conversation[1:]] == ["hello", "hi there", "how was my week?"]
        assert conversation[-1].role == USER

    @pytest.mark.asyncio
    async def test_history_grows_each_turn(self):
        service = FailingService(reply="noted")
        conversation = Conversation(Assistant(service))

        assert await conversation.send("first") == "noted"
        assert await conversation.send("second") == "noted"

        assert conversation.history == (
            ChatMessage(USER, "first"),
            ChatMessage(ASSISTANT, "noted"),
            ChatMessage(USER, "second"),
            ChatMessage(ASSISTANT, "noted"),
        )
        # The second request carries the first exchange
        assert [m.content for m in service.calls[1][1:]] == ["first", "noted", "second"]

    @pytest.mark.asyncio
    async def test_failed_turn_keeps_fallback_in_history(self):
        conversation = Conversation(Assistant(FailingService(error=ServiceError("down"))))

        assert await conversation.send("hello") == CHAT_FALLBACK
        assert conversation.history[-1] == ChatMessage(ASSISTANT, CHAT_FALLBACK)


class TestChatCompletionService:

    @pytest.mark.asyncio
    async def test_request_and_reply(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={
                "choices": [{"message": {"role": "assistant", "content": "  Breathe.  "}}],
            })

        service = ChatCompletionService(
            "sk-test", model="m1", max_tokens=42,
            transport=httpx.MockTransport(handler),
        )
        reply = await service.complete([ChatMessage(USER, "hi")])

        assert reply == "Breathe."
        req = seen[0]
        assert req.url == "https://api.openai.com/v1/chat/completions"
        assert req.headers["authorization"] == "Bearer sk-test"
        body = json.loads(req.content)
        assert body == {
            "model": "m1",
            "messages": [{"role": "user", "content": "hi"}],
            "max_tokens": 42,
        }
        await service.close()

    @pytest.mark.asyncio
    async def test_http_error_is_service_error(self):
        service = ChatCompletionService(
            "sk-test",
            transport=httpx.MockTransport(lambda r: httpx.Response(429, json={})),
        )
        with pytest.raises(ServiceError, match="429"):
            await service.complete([ChatMessage(USER, "hi")])
        await service.close()

    @pytest.mark.asyncio
    async def test_malformed_response(self):
        service = ChatCompletionService(
            "sk-test",
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"choices": []})),
        )
        with pytest.raises(ServiceError, match="Malformed"):
            await service.complete([ChatMessage(USER, "hi")])
        await service.close()

    def test_requires_key(self):
        with pytest.raises(ValueError):
            ChatCompletionService("")

    def test_requires_https(self):
        with pytest.raises(ValueError, match="HTTPS"):
            ChatCompletionService("sk-test", base_url="http://llm.example.com/v1")
