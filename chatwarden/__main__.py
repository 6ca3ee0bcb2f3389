"""Process entry point: python -m chatwarden [--config PATH]."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from pathlib import Path

from loguru import logger

from chatwarden import __version__
from chatwarden.agent.loop import AgentLoop
from chatwarden.bus.queue import MessageBus
from chatwarden.channels.registry import AccountRegistry
from chatwarden.channels.whatsapp import WhatsAppChannel
from chatwarden.config import Config, ConfigError, load_config
from chatwarden.profiles.store import SqliteProfileStore
from chatwarden.providers.litellm_provider import LiteLLMProvider
from chatwarden.utils.logging import setup_logging


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="chatwarden", description="Chat moderation and conversation bot")
    parser.add_argument("--config", type=Path, default=None, help="path to config.json")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


async def run(config: Config) -> None:
    bus = MessageBus()
    accounts = AccountRegistry()
    for index, account in enumerate(config.transport.accounts):
        accounts.register(WhatsAppChannel(config.transport, bus, account=account), default=index == 0)

    profiles = SqliteProfileStore(Path(config.profiles.db_path).expanduser())
    agent = AgentLoop(config, bus, accounts, LiteLLMProvider(config.ai), profiles)

    stop_event = asyncio.Event()

    def _signal_handler(*_):
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            signal.signal(sig, lambda *_: stop_event.set())

    channel_tasks = await accounts.start_all()
    agent_task = asyncio.create_task(agent.run(), name="agent-loop")
    logger.info(f"chatwarden {__version__} running on accounts: {', '.join(accounts.accounts)}")

    await stop_event.wait()
    logger.info("Shutting down")

    await agent.stop()
    agent_task.cancel()
    await accounts.stop_all()
    for task in channel_tasks:
        task.cancel()
    for task in (*channel_tasks, agent_task):
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"Task {task.get_name()} ended with error: {e}")
    profiles.close()


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error(str(e))
        sys.exit(2)
    setup_logging(config.logging)
    asyncio.run(run(config))


if __name__ == "__main__":
    main()
