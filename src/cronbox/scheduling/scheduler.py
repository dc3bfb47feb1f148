"""Task scheduler: polls for due tasks and runs them in containers under a concurrency cap."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Awaitable, Callable

from cronbox.execution.container_runner import ContainerInput, ContainerRunner, ExecutionInfrastructureError
from cronbox.execution.output_parser import GENERIC_FAILURE
from cronbox.infrastructure.config import MAX_CONCURRENT_TASKS, SCHEDULER_POLL_INTERVAL, TASK_TIMEOUT, TIMEZONE
from cronbox.infrastructure.logger import logger
from cronbox.infrastructure.poll_loop import PollLoop
from cronbox.scheduling.repository import TaskRepository
from cronbox.scheduling.run_log_writer import write_run_log
from cronbox.scheduling.schedule import compute_next_run, format_timestamp, utc_now
from cronbox.scheduling.types import RunStatus, ScheduledTask, TaskRunLog

TIMEOUT_ERROR = "Task execution timed out"
RESULT_SUMMARY_LIMIT = 200


def format_duration(duration_ms: int) -> str:
    if duration_ms < 1000:
        return f"{duration_ms}ms"
    if duration_ms < 60_000:
        return f"{duration_ms // 1000}s"
    return f"{duration_ms // 60_000}m"


class SchedulerDependencies:
    def __init__(
        self,
        task_repo: TaskRepository,
        container_runner: ContainerRunner,
        send_message: Callable[[str, str], Awaitable[None]] | None = None,
    ) -> None:
        self.task_repo = task_repo
        self.container_runner = container_runner
        self.send_message = send_message


class TaskScheduler:
    """Owns the poll timer and the concurrency slots for one scheduler instance.

    Idle -> Polling -> Dispatching -> Idle, until stop(). Stopping never
    cancels dispatched runs; it waits for the current batch to drain.
    """

    def __init__(
        self,
        deps: SchedulerDependencies,
        poll_interval_s: float = SCHEDULER_POLL_INTERVAL,
        task_timeout_s: float = TASK_TIMEOUT,
        max_concurrent: int = MAX_CONCURRENT_TASKS,
        tz: str = TIMEZONE,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._deps = deps
        self._task_timeout = task_timeout_s
        self._max_concurrent = max(1, max_concurrent)
        self._slots = asyncio.Semaphore(self._max_concurrent)
        self._tz = tz
        self._clock = clock
        self._poll_loop = PollLoop("Scheduler", poll_interval_s, self.poll_once)

    @property
    def running(self) -> bool:
        return self._poll_loop.running

    def start(self) -> None:
        """Start polling. The first poll happens one full interval from now."""
        logger.info(
            "Task scheduler starting",
            max_concurrent=self._max_concurrent,
            task_timeout_s=self._task_timeout,
            timezone=self._tz,
        )
        self._poll_loop.start()

    async def stop(self) -> None:
        """Stop polling and wait for in-flight runs to finish or time out."""
        logger.info("Task scheduler shutting down")
        await self._poll_loop.stop()

    async def poll_once(self) -> int:
        """One tick: dispatch every due task, earliest first. Returns how many were due."""
        now = format_timestamp(self._clock())
        due_tasks = self._deps.task_repo.list_due_tasks(now)
        if not due_tasks:
            logger.debug("No tasks due for execution")
            return 0

        logger.info("Found due tasks", count=len(due_tasks))

        in_flight: list[asyncio.Task[None]] = []
        for task in due_tasks:
            await self._slots.acquire()
            in_flight.append(asyncio.create_task(self._dispatch(task)))

        await asyncio.gather(*in_flight)
        return len(due_tasks)

    async def _dispatch(self, task: ScheduledTask) -> None:
        try:
            await self.run_task(task)
        except Exception:
            logger.exception("Unexpected error running task", task_id=task.id)
            try:
                self._deps.task_repo.mark_failed(task.id)
            except Exception:
                logger.exception("Failed to mark task failed", task_id=task.id)
        finally:
            self._slots.release()

    async def run_task(self, task: ScheduledTask) -> None:
        """Run one due task and record the outcome."""
        repo = self._deps.task_repo

        # May have been paused since it was selected
        current = repo.get_task_by_id(task.id)
        if current is None or current.status != "active":
            logger.info(
                "Task no longer active, skipping",
                task_id=task.id,
                status=current.status if current else None,
            )
            return

        session_id = f"scheduled_{current.id}"
        logger.info("Running scheduled task", task_id=current.id, group=current.group_folder)

        try:
            outcome = await self._deps.container_runner.run(
                ContainerInput(
                    prompt=current.prompt,
                    session_id=session_id,
                    group_folder=current.group_folder,
                    chat_jid=current.chat_jid,
                    is_main=False,
                    is_scheduled_task=True,
                ),
                self._task_timeout,
            )
        except ExecutionInfrastructureError as err:
            logger.error("Task could not be started", task_id=current.id, error=str(err))
            return

        run_at_dt = self._clock()
        run_at = format_timestamp(run_at_dt)
        output = outcome.output

        status: RunStatus
        error: str | None
        if outcome.timed_out:
            status, error = "timeout", TIMEOUT_ERROR
        elif output.status != "success":
            status, error = "error", output.error or GENERIC_FAILURE
        else:
            status, error = "success", None

        repo.append_run_log(TaskRunLog(
            task_id=current.id,
            run_at=run_at,
            duration_ms=outcome.duration_ms,
            status=status,
            result=output.result,
            error=error,
        ))
        summary = output.result if status == "success" else error
        if summary:
            summary = summary[:RESULT_SUMMARY_LIMIT]
        repo.update_last_run(current.id, run_at, summary)

        if status != "success":
            repo.mark_failed(current.id)
            logger.warning("Task failed", task_id=current.id, status=status, error=error)
        elif current.schedule_type == "once":
            repo.mark_completed(current.id)
        else:
            next_run = compute_next_run(current, run_at_dt, self._tz)
            if next_run:
                repo.update_next_run(current.id, next_run)
            else:
                logger.warning("Task not rescheduled", task_id=current.id, schedule_value=current.schedule_value)

        logger.info(
            "Task finished",
            task_id=current.id,
            status=status,
            duration=format_duration(outcome.duration_ms),
        )

        try:
            write_run_log(current.group_folder, session_id, output, run_at_dt)
        except OSError as err:
            logger.warning("Failed to write run log file", task_id=current.id, error=str(err))

        if status == "success" and output.result and self._deps.send_message:
            try:
                await self._deps.send_message(current.chat_jid, output.result)
            except Exception as err:
                logger.warning("Failed to deliver task result", task_id=current.id, chat_jid=current.chat_jid, error=str(err))
