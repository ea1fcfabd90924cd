"""Watches crawl task progress on the push channel and logs it."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import getpass
import logging
import os
import sys
from pathlib import Path

LOGGER = logging.getLogger("crawldash.watcher")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--username", help="Log in with this user before watching")
    parser.add_argument(
        "--password",
        default=os.getenv("CRAWLDASH_PASSWORD"),
        help="Password for --username (defaults to $CRAWLDASH_PASSWORD, else prompted)",
    )
    parser.add_argument(
        "--task",
        dest="tasks",
        type=int,
        action="append",
        default=[],
        help="Task id to watch; repeatable. Without it all tasks are watched.",
    )
    return parser.parse_args(argv)


async def _watch(args: argparse.Namespace) -> None:
    from crawldash.client import CrawlDashClient
    from crawldash.config import get_settings
    from crawldash.events import ChannelOffline, ConnectionStateChanged, SessionEnded, TaskEvent

    client = CrawlDashClient(get_settings())
    done = asyncio.Event()

    def _on_task(event: TaskEvent) -> None:
        LOGGER.info("[%s] task=%s %s", event.message.kind, event.task_id, event.data)

    def _on_state(event: ConnectionStateChanged) -> None:
        LOGGER.info("Channel %s", event.state.status.value)

    def _on_offline(event: ChannelOffline) -> None:
        LOGGER.error("Channel offline after %s attempts: %s", event.attempts, event.error)
        done.set()

    def _on_ended(event: SessionEnded) -> None:
        LOGGER.error("Session ended (%s)", event.reason)
        done.set()

    client.bus.subscribe(TaskEvent, _on_task)
    client.bus.subscribe(ConnectionStateChanged, _on_state)
    client.bus.subscribe(ChannelOffline, _on_offline)
    client.bus.subscribe(SessionEnded, _on_ended)

    async with client:
        for task_id in args.tasks:
            await client.connection.subscribe_task(task_id)
        if not args.tasks:
            await client.connection.subscribe_all_tasks()
        if args.username:
            password = args.password or getpass.getpass("Password: ")
            await client.auth.login(args.username, password)
        elif not client.auth.is_authenticated():
            LOGGER.error("No persisted session; pass --username to log in")
            return
        await done.wait()


def main(argv: list[str] | None = None) -> None:
    repo_root = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(repo_root))

    from crawldash.config import get_settings  # type: ignore

    args = _parse_args(argv)
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(_watch(args))


if __name__ == "__main__":
    main()
