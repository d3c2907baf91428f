"""
Terminal entry point wiring configuration, storage, client and session.

Commands: /new, /history [term], /open <id>, /delete <id>, /quit.
Ctrl-C stops the reply being generated; at the prompt it exits.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import threading

from .chat_service import ChatService, TurnOutcome
from .config import Configuration
from .history.models import Settings
from .history.store import JsonFileStore
from .llm.router import create_streaming_client
from .logging_utils import configure_logging


def create_store(config: Configuration) -> JsonFileStore:
    storage_config = config.get_storage_config()
    return JsonFileStore(
        storage_config["path"],
        default_settings=Settings(**config.get_default_settings()),
        lock_timeout=storage_config["lock_timeout"],
        fsync_enabled=storage_config["fsync_enabled"],
    )


async def load_settings(config: Configuration, store: JsonFileStore) -> Settings:
    """Stored settings, falling back to ANTHROPIC_API_KEY for the credential."""
    settings = await store.get_settings()
    if not settings.credential and not settings.alternate_endpoint:
        try:
            settings = settings.model_copy(update={"credential": config.llm_api_key})
        except ValueError as e:
            logging.warning(f"{e}; requests will be rejected by the API")
    return settings


async def read_line(prompt: str) -> str | None:
    """Read stdin on a daemon thread so Ctrl-C at the prompt can exit."""
    loop = asyncio.get_running_loop()
    future: asyncio.Future[str | None] = loop.create_future()

    def reader() -> None:
        try:
            line: str | None = input(prompt)
        except EOFError:
            line = None
        loop.call_soon_threadsafe(
            lambda: future.done() or future.set_result(line)
        )

    threading.Thread(target=reader, daemon=True).start()
    return await future


async def handle_command(line: str, service: ChatService) -> bool:
    """Run a slash command. Returns False when the REPL should exit."""
    command, _, argument = line.partition(" ")
    argument = argument.strip()

    if command == "/quit":
        return False
    if command == "/new":
        service.new_conversation()
        print("Started a new conversation.")
    elif command == "/history":
        for conversation in await service.store.search_conversations(argument):
            print(f"{conversation.id}  {conversation.title}")
    elif command == "/open":
        try:
            conversation = await service.load_conversation(argument)
        except KeyError:
            print(f"No conversation {argument!r}")
        else:
            for message in conversation.messages:
                print(f"{message.role}: {message.content}")
    elif command == "/delete":
        deleted = await service.store.delete_conversation(argument)
        print("Deleted." if deleted else f"No conversation {argument!r}")
    else:
        print(f"Unknown command {command}")
    return True


async def main() -> None:
    """Main entry point - interactive terminal chat."""
    config = Configuration()
    configure_logging(config.get_logging_config())

    store = create_store(config)
    settings = await load_settings(config, store)
    chat_config = config.get_chat_config()

    async with create_streaming_client(settings, config) as client:
        service = ChatService(
            client,
            store,
            default_title=chat_config["default_title"],
            title_max_length=chat_config["title_max_length"],
        )

        loop = asyncio.get_running_loop()
        catch_interrupt = sys.platform != "win32"

        print(f"Model: {settings.model}. Type /quit to exit.")
        while True:
            line = await read_line("> ")
            if line is None:
                break
            if line.startswith("/"):
                if not await handle_command(line, service):
                    break
                continue

            # Ctrl-C stops the reply instead of exiting while it streams
            if catch_interrupt:
                loop.add_signal_handler(signal.SIGINT, service.stop)
            try:
                result = await service.send_message(
                    line, on_delta=lambda text: print(text, end="", flush=True)
                )
            finally:
                if catch_interrupt:
                    loop.remove_signal_handler(signal.SIGINT)
            if result is None:
                continue
            print()
            if result.outcome is TurnOutcome.FAILED:
                print(f"API error: {result.error}")
            elif result.outcome is TurnOutcome.CANCELLED:
                print("(stopped)")

    logging.info("Application shutdown complete")


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logging.info("Keyboard interrupt received, shutting down...")


if __name__ == "__main__":
    run()
