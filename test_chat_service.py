#!/usr/bin/env python3
"""
Tests for ChatService turn handling against a scripted streaming client.
"""

import asyncio

import pytest

from desktop_chat.chat_service import ChatService, TurnOutcome
from desktop_chat.exceptions import ApiError
from desktop_chat.history.store import JsonFileStore
from desktop_chat.llm.base import StreamingClientBase
from desktop_chat.llm.streaming.models import StreamEvent


class ScriptedClient(StreamingClientBase):
    """Yields canned deltas; optionally fails or waits on a gate between them."""

    def __init__(self, fragments=(), error=None, gate=None, stream_error=None):
        super().__init__("claude-test")
        self.fragments = list(fragments)
        self.error = error
        self.gate = gate
        self.stream_error = stream_error
        self.requests = []

    async def _generate(self, messages, handle, log):
        self.requests.append([m.model_dump() for m in messages])
        if self.error is not None:
            raise self.error

        for index, text in enumerate(self.fragments):
            if self.gate is not None and index > 0:
                await handle.race(self.gate.wait())
            yield StreamEvent.model_validate({
                "type": "content_block_delta", "index": 0, "delta": {"text": text}
            })
        if self.stream_error is not None:
            yield StreamEvent.model_validate({"type": "error", "error": self.stream_error})
            return
        yield StreamEvent.model_validate({
            "type": "message_delta",
            "delta": {"stop_reason": "end_turn"},
            "usage": {"output_tokens": len(self.fragments)},
        })


class GatedStore:
    """Wraps a store so the Nth upsert waits until released."""

    def __init__(self, inner, block_on_call):
        self.inner = inner
        self.block_on_call = block_on_call
        self.calls = 0
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def list_conversations(self):
        return await self.inner.list_conversations()

    async def get_conversation(self, conversation_id):
        return await self.inner.get_conversation(conversation_id)

    async def upsert_conversation(self, conversation):
        self.calls += 1
        if self.calls == self.block_on_call:
            self.entered.set()
            await self.release.wait()
        return await self.inner.upsert_conversation(conversation)


@pytest.fixture
def store(tmp_path):
    return JsonFileStore(str(tmp_path / "store.json"), fsync_enabled=False)


class TestSendMessage:
    """A full turn from user input to stored reply."""

    @pytest.mark.asyncio
    async def test_completed_turn(self, store):
        client = ScriptedClient(["Hi", " there"])
        service = ChatService(client, store)
        deltas = []

        result = await service.send_message("  Hello\nworld  ", on_delta=deltas.append)

        assert result.outcome is TurnOutcome.COMPLETED
        assert result.error is None
        assert result.stop_reason == "end_turn"
        assert result.usage.output_tokens == 2
        assert deltas == ["Hi", " there"]

        messages = service.conversation.messages
        assert [(m.role, m.content) for m in messages] == [
            ("user", "Hello\nworld"), ("assistant", "Hi there")
        ]
        assert result.message is messages[-1]
        assert client.requests == [[{"role": "user", "content": "Hello\nworld"}]]
        assert not service.is_generating

        stored = await store.get_conversation(service.conversation.id)
        assert stored.title == "Hello"
        assert stored.messages[-1].content == "Hi there"

    @pytest.mark.asyncio
    async def test_blank_input_is_ignored(self, store):
        client = ScriptedClient(["unused"])
        service = ChatService(client, store)

        assert await service.send_message("   \n ") is None
        assert service.conversation.messages == []
        assert client.requests == []
        assert await store.list_conversations() == []

    @pytest.mark.asyncio
    async def test_history_sent_on_later_turns(self, store):
        client = ScriptedClient(["ok"])
        service = ChatService(client, store)

        await service.send_message("first")
        await service.send_message("second")

        assert client.requests[1] == [
            {"role": "user", "content": "first"},
            {"role": "assistant", "content": "ok"},
            {"role": "user", "content": "second"},
        ]
        stored = await store.get_conversation(service.conversation.id)
        assert stored.title == "first"
        assert len(stored.messages) == 4

    @pytest.mark.asyncio
    async def test_long_first_message_title(self, store):
        service = ChatService(ScriptedClient(["ok"]), store, title_max_length=10)

        await service.send_message("abcdefghijklmnop")

        assert service.conversation.title == "abcdefghij..."


class TestTurnFailures:
    """Failed and cancelled turns."""

    @pytest.mark.asyncio
    async def test_failed_turn_keeps_empty_reply(self, store):
        client = ScriptedClient(error=ApiError("rate limited", status_code=429))
        service = ChatService(client, store)

        result = await service.send_message("hello")

        assert result.outcome is TurnOutcome.FAILED
        assert str(result.error) == "rate limited"
        assert [(m.role, m.content) for m in service.conversation.messages] == [
            ("user", "hello"), ("assistant", "")
        ]
        assert not service.is_generating

    @pytest.mark.asyncio
    async def test_empty_replies_left_out_of_next_request(self, store):
        client = ScriptedClient(error=ApiError("overloaded", status_code=529))
        service = ChatService(client, store)
        await service.send_message("hello")

        client.error = None
        client.fragments = ["back"]
        result = await service.send_message("again")

        assert result.outcome is TurnOutcome.COMPLETED
        assert client.requests[1] == [
            {"role": "user", "content": "hello"},
            {"role": "user", "content": "again"},
        ]

    @pytest.mark.asyncio
    async def test_stop_cancels_and_keeps_partial_reply(self, store):
        gate = asyncio.Event()
        client = ScriptedClient(["partial", " never"], gate=gate)
        service = ChatService(client, store)
        first_delta = asyncio.Event()

        task = asyncio.create_task(
            service.send_message("hello", on_delta=lambda _: first_delta.set())
        )
        await asyncio.wait_for(first_delta.wait(), 1)
        assert service.is_generating

        service.stop()
        result = await asyncio.wait_for(task, 1)

        assert result.outcome is TurnOutcome.CANCELLED
        assert result.message.content == "partial"
        stored = await store.get_conversation(service.conversation.id)
        assert stored.messages[-1].content == "partial"

    @pytest.mark.asyncio
    async def test_stop_when_idle_is_noop(self, store):
        service = ChatService(ScriptedClient(["ok"]), store)
        service.stop()

        result = await service.send_message("hello")

        assert result.outcome is TurnOutcome.COMPLETED

    @pytest.mark.asyncio
    async def test_stop_during_first_save_skips_request(self, store):
        gated = GatedStore(store, block_on_call=1)
        client = ScriptedClient(["a", "b", "c"])
        service = ChatService(client, gated)

        task = asyncio.create_task(service.send_message("hello"))
        await asyncio.wait_for(gated.entered.wait(), 1)
        service.stop()
        gated.release.set()
        result = await asyncio.wait_for(task, 1)

        assert result.outcome is TurnOutcome.CANCELLED
        assert result.message.content == ""
        assert client.requests == []
        stored = await store.get_conversation(service.conversation.id)
        assert [(m.role, m.content) for m in stored.messages] == [
            ("user", "hello"), ("assistant", "")
        ]

    @pytest.mark.asyncio
    async def test_stop_after_reply_finished_is_completed(self, store):
        gated = GatedStore(store, block_on_call=2)
        client = ScriptedClient(["a", "b", "c"])
        service = ChatService(client, gated)

        task = asyncio.create_task(service.send_message("hello"))
        await asyncio.wait_for(gated.entered.wait(), 1)
        service.stop()
        gated.release.set()
        result = await asyncio.wait_for(task, 1)

        assert result.outcome is TurnOutcome.COMPLETED
        assert result.message.content == "abc"
        assert not client.last_request_cancelled

    @pytest.mark.asyncio
    async def test_in_stream_error_fails_turn(self, store):
        client = ScriptedClient(
            ["par"],
            stream_error={"type": "overloaded_error", "message": "Overloaded"},
        )
        service = ChatService(client, store)

        result = await service.send_message("hello")

        assert result.outcome is TurnOutcome.FAILED
        assert isinstance(result.error, ApiError)
        assert str(result.error) == "Overloaded"
        assert result.message.content == "par"


class TestSessionState:
    """Switching conversations and guarding concurrent turns."""

    @pytest.mark.asyncio
    async def test_concurrent_send_rejected(self, store):
        gate = asyncio.Event()
        service = ChatService(ScriptedClient(["a", "b"], gate=gate), store)
        first_delta = asyncio.Event()

        task = asyncio.create_task(
            service.send_message("one", on_delta=lambda _: first_delta.set())
        )
        await asyncio.wait_for(first_delta.wait(), 1)

        with pytest.raises(RuntimeError):
            await service.send_message("two")
        with pytest.raises(RuntimeError):
            service.new_conversation()
        with pytest.raises(RuntimeError):
            await service.load_conversation("anything")

        gate.set()
        result = await asyncio.wait_for(task, 1)
        assert result.message.content == "ab"

    @pytest.mark.asyncio
    async def test_new_and_load_conversation(self, store):
        service = ChatService(ScriptedClient(["ok"]), store)
        await service.send_message("remember this")
        saved_id = service.conversation.id

        fresh = service.new_conversation()
        assert fresh.id != saved_id
        assert fresh.messages == []
        assert fresh.title == "New conversation"

        loaded = await service.load_conversation(saved_id)
        assert service.conversation is loaded
        assert [m.content for m in loaded.messages] == ["remember this", "ok"]

        with pytest.raises(KeyError):
            await service.load_conversation("missing")
