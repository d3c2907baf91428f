"""Pick the direct API client or the simulated one from settings."""

from __future__ import annotations

import httpx

from ..config import Configuration
from ..history.models import Settings
from .base import StreamingClientBase
from .client import StreamingClient
from .simulation import SimulatedStreamingClient


def create_streaming_client(
    settings: Settings,
    config: Configuration,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> StreamingClientBase:
    """
    Build the client for the current settings.

    A configured alternate endpoint routes every request to the simulated
    stream; otherwise requests go to `settings.endpoint`.
    """
    if settings.alternate_endpoint:
        sim_config = config.get_simulation_config()
        return SimulatedStreamingClient(
            endpoint=settings.alternate_endpoint,
            model=settings.model,
            chunk_min_chars=sim_config["chunk_min_chars"],
            chunk_max_chars=sim_config["chunk_max_chars"],
            interval_ms=sim_config["interval_ms"],
        )

    return StreamingClient(
        credential=settings.credential,
        endpoint=settings.endpoint,
        model=settings.model,
        api_config=config.get_api_config(),
        http_config=config.get_http_client_config(),
        transport=transport,
    )
