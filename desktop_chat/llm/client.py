"""
Direct HTTP streaming client for the Messages API.
"""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator
from typing import Any

import httpx

from ..exceptions import ApiError, TransportError
from ..logging_utils import ContextualLogger
from .base import StreamingClientBase
from .cancellation import CancellationHandle
from .models import ApiMessage, MessagesRequest
from .streaming.models import StreamEvent
from .streaming.parser import FrameParser


class StreamingClient(StreamingClientBase):
    """
    Streams one chat completion at a time from `{endpoint}/v1/messages`.

    Settings are read once here; build a new client to pick up changes.
    """

    def __init__(
        self,
        *,
        credential: str,
        endpoint: str,
        model: str,
        api_config: dict[str, Any],
        http_config: dict[str, Any] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(model)
        self.endpoint = endpoint.rstrip("/")
        self.api_config = api_config
        self.messages_path = api_config["messages_path"]

        http_config = http_config or {}
        timeout = httpx.Timeout(
            connect=http_config.get("connect_timeout"),
            read=http_config.get("read_timeout"),
            write=http_config.get("write_timeout"),
            pool=http_config.get("pool_timeout"),
        )
        self.client: httpx.AsyncClient = httpx.AsyncClient(
            base_url=self.endpoint,
            headers={
                "Content-Type": "application/json",
                "x-api-key": credential,
                "anthropic-version": api_config["anthropic_version"],
                "anthropic-beta": api_config["anthropic_beta"],
            },
            timeout=timeout,
            transport=transport,
        )

    def build_request(self, messages: list[ApiMessage]) -> MessagesRequest:
        return MessagesRequest(
            model=self.model,
            messages=messages,
            max_tokens=self.api_config["max_tokens"],
            system=self.api_config.get("system"),
            temperature=self.api_config.get("temperature"),
            top_p=self.api_config.get("top_p"),
        )

    async def _generate(
        self,
        messages: list[ApiMessage],
        handle: CancellationHandle,
        log: ContextualLogger,
    ) -> AsyncGenerator[StreamEvent]:
        payload = self.build_request(messages).to_payload()
        request = self.client.build_request("POST", self.messages_path, json=payload)

        try:
            response = await handle.race(self.client.send(request, stream=True))
        except httpx.HTTPError as e:
            raise TransportError(
                f"HTTP error: {e!s}", model=self.model
            ) from e

        try:
            if not response.is_success:
                raise await self._api_error(response)

            parser = FrameParser()
            chunks = response.aiter_bytes()
            while True:
                try:
                    chunk = await handle.race(anext(chunks, None))
                except httpx.HTTPError as e:
                    raise TransportError(
                        f"HTTP error during streaming: {e!s}", model=self.model
                    ) from e

                if chunk is None:
                    break
                for event in parser.feed(chunk):
                    yield event

            for event in parser.flush():
                yield event

            stats = parser.get_stats()
            if stats["bytes_received"] == 0:
                log.debug("Response body was empty", status_code=response.status_code)
            log.debug("Stream finished", **stats)
        finally:
            await response.aclose()

    async def _api_error(self, response: httpx.Response) -> ApiError:
        """Build an ApiError from a non-2xx response body."""
        status = response.status_code
        try:
            body = await response.aread()
        except httpx.HTTPError:
            body = b""

        data: dict[str, Any] = {}
        message = f"API error: {status}"
        try:
            parsed = json.loads(body)
        except ValueError:
            parsed = None

        if isinstance(parsed, dict):
            data = parsed
            error = parsed.get("error")
            if isinstance(error, dict) and error.get("message"):
                message = str(error["message"])

        return ApiError(
            message, model=self.model, status_code=status, response_data=data
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
