"""Task manager: creation, lifecycle, and history for scheduled tasks."""

from __future__ import annotations

import random
import string
import time
from datetime import datetime
from typing import Callable

from cronbox.infrastructure.config import TIMEZONE
from cronbox.scheduling.repository import TaskRepository
from cronbox.scheduling.schedule import format_timestamp, initial_next_run, utc_now
from cronbox.scheduling.types import ScheduledTask, TaskRunLog


class TaskManager:
    def __init__(
        self,
        task_repo: TaskRepository,
        clock: Callable[[], datetime] = utc_now,
        tz: str = TIMEZONE,
    ) -> None:
        self._task_repo = task_repo
        self._clock = clock
        self._tz = tz

    # --- CRUD ---

    def create(
        self,
        group_folder: str,
        chat_jid: str,
        prompt: str,
        schedule_type: str,
        schedule_value: str,
        context_mode: str = "isolated",
    ) -> str:
        """Validate the schedule and store a new active task. Raises ValueError if invalid."""
        now = self._clock()
        next_run = initial_next_run(schedule_type, schedule_value, now, self._tz)
        rand = "".join(random.choices(string.ascii_lowercase + string.digits, k=8))
        task_id = f"task-{int(time.time())}-{rand}"

        task = ScheduledTask(
            id=task_id,
            group_folder=group_folder,
            chat_jid=chat_jid,
            prompt=prompt,
            schedule_type=schedule_type,  # type: ignore[arg-type]
            schedule_value=schedule_value,
            context_mode=context_mode,  # type: ignore[arg-type]
            next_run=next_run,
            status="active",
            created_at=format_timestamp(now),
        )
        self._task_repo.create_task(task)
        return task_id

    def get_by_id(self, id: str) -> ScheduledTask | None:
        return self._task_repo.get_task_by_id(id)

    def get_all(self) -> list[ScheduledTask]:
        return self._task_repo.get_all_tasks()

    def history(self, id: str, limit: int = 20) -> list[TaskRunLog]:
        self._require(id)
        return self._task_repo.get_run_logs(id, limit)

    # --- Lifecycle ---

    def pause(self, id: str) -> None:
        self._require(id)
        self._task_repo.update_status(id, "paused")

    def resume(self, id: str) -> None:
        self._require(id)
        self._task_repo.update_status(id, "active")

    def _require(self, id: str) -> ScheduledTask:
        task = self._task_repo.get_task_by_id(id)
        if not task:
            raise LookupError(f"Task not found: {id}")
        return task
