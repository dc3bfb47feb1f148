"""Entry point: python -m cronbox"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

from cronbox.infrastructure.logger import logger


async def serve() -> None:
    from cronbox.app import Orchestrator

    orchestrator = Orchestrator()

    # Handle graceful shutdown
    shutdown_event = asyncio.Event()

    def signal_handler() -> None:
        logger.info("Received shutdown signal")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await orchestrator.start()
        await shutdown_event.wait()
    finally:
        await orchestrator.shutdown()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cronbox", description="Scheduled agent runs in isolated containers")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("run", help="Run the scheduler until interrupted (default)")

    add = sub.add_parser("add", help="Schedule a new task")
    add.add_argument("--group", required=True, help="Target group folder")
    add.add_argument("--chat", required=True, help="Target chat JID")
    add.add_argument("--type", dest="schedule_type", required=True, choices=["cron", "interval", "once"])
    add.add_argument("--value", dest="schedule_value", required=True, help="Cron expression, interval ms, or ISO timestamp")
    add.add_argument("--context-mode", default="isolated", choices=["group", "isolated"])
    add.add_argument("prompt")

    sub.add_parser("list", help="List all tasks")

    for name, help_text in (("pause", "Pause a task"), ("resume", "Resume a paused task")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("task_id")

    history = sub.add_parser("history", help="Show recent runs of a task")
    history.add_argument("task_id")
    history.add_argument("--limit", type=int, default=20)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    command = args.command or "run"

    if command == "run":
        asyncio.run(serve())
        return 0

    from cronbox.app import Orchestrator

    orchestrator = Orchestrator()
    orchestrator.init()
    manager = orchestrator.task_manager

    try:
        if command == "add":
            task_id = manager.create(
                args.group, args.chat, args.prompt, args.schedule_type, args.schedule_value, args.context_mode
            )
            print(task_id)
        elif command == "list":
            for t in manager.get_all():
                print(f"{t.id}\t{t.status}\t{t.schedule_type}={t.schedule_value}\tnext={t.next_run or '-'}\t{t.group_folder}")
        elif command == "pause":
            manager.pause(args.task_id)
        elif command == "resume":
            manager.resume(args.task_id)
        elif command == "history":
            for log in manager.history(args.task_id, args.limit):
                print(f"{log.run_at}\t{log.status}\t{log.duration_ms}ms\t{log.error or (log.result or '')[:80]}")
    except (ValueError, LookupError) as err:
        print(f"error: {err}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
