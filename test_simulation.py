#!/usr/bin/env python3
"""
Tests for the simulated streaming path and client routing.
"""

import asyncio
import random

import pytest

from desktop_chat.config import Configuration
from desktop_chat.history.models import Settings
from desktop_chat.llm.client import StreamingClient
from desktop_chat.llm.models import normalize_messages
from desktop_chat.llm.router import create_streaming_client
from desktop_chat.llm.simulation import SimulatedStreamingClient
from desktop_chat.llm.streaming.models import StreamEventType
from desktop_chat.llm.streaming.parser import StreamAccumulator

ALT_ENDPOINT = "https://proxy.internal.test"


def make_simulated(interval_ms=0, seed=7) -> SimulatedStreamingClient:
    return SimulatedStreamingClient(
        endpoint=ALT_ENDPOINT,
        model="claude-test",
        interval_ms=interval_ms,
        rng=random.Random(seed),
    )


class TestSimulatedStreaming:
    """Locally manufactured event streams."""

    @pytest.mark.asyncio
    async def test_event_sequence_and_chunk_sizes(self):
        client = make_simulated()
        messages = [{"role": "user", "content": "ping"}]

        events = [event async for event in client.stream(messages)]

        kinds = [e.kind for e in events]
        assert kinds[:2] == [
            StreamEventType.MESSAGE_START, StreamEventType.CONTENT_BLOCK_START
        ]
        assert kinds[-3:] == [
            StreamEventType.CONTENT_BLOCK_STOP,
            StreamEventType.MESSAGE_DELTA,
            StreamEventType.MESSAGE_STOP,
        ]

        chunks = [e.text for e in events if e.text is not None]
        assert all(1 <= len(chunk) <= 3 for chunk in chunks)
        assert "".join(chunks) == client.compose_reply(normalize_messages(messages))

    @pytest.mark.asyncio
    async def test_reply_echoes_latest_user_message(self):
        client = make_simulated()
        accumulator = StreamAccumulator()
        messages = [
            {"role": "user", "content": "first"},
            {"role": "assistant", "content": "reply"},
            {"role": "user", "content": "second"},
        ]

        async for event in client.stream(messages):
            accumulator.apply(event)

        assert ALT_ENDPOINT in accumulator.content
        assert accumulator.content.endswith("You said: second")
        assert accumulator.stop_reason == "end_turn"
        assert accumulator.message_id == "msg_sim_000001"

    @pytest.mark.asyncio
    async def test_abort_stops_delivery(self):
        client = make_simulated()
        events = []
        completed = []

        def on_event(event):
            events.append(event)
            if len(events) == 4:
                client.abort()

        await client.send(
            [{"role": "user", "content": "a long enough message to chunk"}],
            on_event, lambda: completed.append(True), pytest.fail,
        )

        assert len(events) == 4
        assert completed == [True]
        assert not client.is_streaming

    @pytest.mark.asyncio
    async def test_abort_during_delay(self):
        client = make_simulated(interval_ms=10_000)
        events = []
        completed = []

        task = asyncio.create_task(client.send(
            [{"role": "user", "content": "hi"}],
            events.append, lambda: completed.append(True), pytest.fail,
        ))
        while len(events) < 2:
            await asyncio.sleep(0)

        client.abort()
        await asyncio.wait_for(task, 1)

        assert [e.kind for e in events] == [
            StreamEventType.MESSAGE_START, StreamEventType.CONTENT_BLOCK_START
        ]
        assert completed == [True]

    def test_invalid_chunk_sizes_rejected(self):
        with pytest.raises(ValueError):
            SimulatedStreamingClient(
                endpoint=ALT_ENDPOINT, model="m", chunk_min_chars=0
            )
        with pytest.raises(ValueError):
            SimulatedStreamingClient(
                endpoint=ALT_ENDPOINT, model="m",
                chunk_min_chars=3, chunk_max_chars=2,
            )


class TestRouter:
    """Choosing the client from settings."""

    @pytest.mark.asyncio
    async def test_alternate_endpoint_selects_simulation(self):
        settings = Settings(alternate_endpoint=ALT_ENDPOINT, model="claude-test")

        async with create_streaming_client(settings, Configuration()) as client:
            assert isinstance(client, SimulatedStreamingClient)
            assert client.endpoint == ALT_ENDPOINT
            assert client.model == "claude-test"

    @pytest.mark.asyncio
    async def test_default_selects_direct_client(self):
        settings = Settings(credential="sk-test", endpoint="https://api.test")

        async with create_streaming_client(settings, Configuration()) as client:
            assert isinstance(client, StreamingClient)
            assert client.endpoint == "https://api.test"
            assert client.client.headers["x-api-key"] == "sk-test"
