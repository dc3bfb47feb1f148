"""Scheduled task persistence and run logging."""

from __future__ import annotations

import sqlite3

from cronbox.scheduling.types import ScheduledTask, TaskRunLog, TaskStatus


class TaskRepository:
    """Row-level access to scheduled_tasks and task_run_logs.

    Every method is a single statement followed by a commit, so each call is
    atomic with respect to the row it touches.
    """

    def __init__(self, db: sqlite3.Connection) -> None:
        self._db = db

    # --- Management ---

    def create_task(self, task: ScheduledTask) -> None:
        self._db.execute(
            """INSERT INTO scheduled_tasks
               (id, group_folder, chat_jid, prompt, schedule_type, schedule_value, context_mode, next_run, status, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                task.id, task.group_folder, task.chat_jid, task.prompt,
                task.schedule_type, task.schedule_value, task.context_mode,
                task.next_run, task.status, task.created_at,
            ),
        )
        self._db.commit()

    def get_all_tasks(self) -> list[ScheduledTask]:
        rows = self._db.execute("SELECT * FROM scheduled_tasks ORDER BY created_at DESC").fetchall()
        return [self._row_to_task(row) for row in rows]

    def update_status(self, id: str, status: TaskStatus) -> None:
        self._db.execute("UPDATE scheduled_tasks SET status = ? WHERE id = ?", (status, id))
        self._db.commit()

    def get_run_logs(self, task_id: str, limit: int = 20) -> list[TaskRunLog]:
        rows = self._db.execute(
            "SELECT * FROM task_run_logs WHERE task_id = ? ORDER BY run_at DESC, id DESC LIMIT ?",
            (task_id, limit),
        ).fetchall()
        return [
            TaskRunLog(
                task_id=row["task_id"],
                run_at=row["run_at"],
                duration_ms=row["duration_ms"],
                status=row["status"],
                result=row["result"],
                error=row["error"],
            )
            for row in rows
        ]

    # --- Scheduler contract ---

    def list_due_tasks(self, now: str) -> list[ScheduledTask]:
        """Active tasks whose next_run is NULL or <= now, earliest first (NULLs first)."""
        rows = self._db.execute(
            """SELECT * FROM scheduled_tasks
               WHERE status = 'active' AND (next_run IS NULL OR next_run <= ?)
               ORDER BY next_run ASC, created_at ASC""",
            (now,),
        ).fetchall()
        return [self._row_to_task(row) for row in rows]

    def get_task_by_id(self, id: str) -> ScheduledTask | None:
        row = self._db.execute("SELECT * FROM scheduled_tasks WHERE id = ?", (id,)).fetchone()
        if not row:
            return None
        return self._row_to_task(row)

    def append_run_log(self, log: TaskRunLog) -> None:
        self._db.execute(
            """INSERT INTO task_run_logs (task_id, run_at, duration_ms, status, result, error)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (log.task_id, log.run_at, log.duration_ms, log.status, log.result, log.error),
        )
        self._db.commit()

    def update_last_run(self, id: str, run_at: str, last_result: str | None) -> None:
        self._db.execute(
            "UPDATE scheduled_tasks SET last_run = ?, last_result = ? WHERE id = ?",
            (run_at, last_result, id),
        )
        self._db.commit()

    def update_next_run(self, id: str, next_run: str) -> None:
        self._db.execute("UPDATE scheduled_tasks SET next_run = ? WHERE id = ?", (next_run, id))
        self._db.commit()

    def mark_completed(self, id: str) -> None:
        self._db.execute("UPDATE scheduled_tasks SET status = 'completed', next_run = NULL WHERE id = ?", (id,))
        self._db.commit()

    def mark_failed(self, id: str) -> None:
        self._db.execute("UPDATE scheduled_tasks SET status = 'failed' WHERE id = ?", (id,))
        self._db.commit()

    def _row_to_task(self, row: sqlite3.Row) -> ScheduledTask:
        return ScheduledTask(
            id=row["id"],
            group_folder=row["group_folder"],
            chat_jid=row["chat_jid"],
            prompt=row["prompt"],
            schedule_type=row["schedule_type"],
            schedule_value=row["schedule_value"],
            context_mode=row["context_mode"] if "context_mode" in row.keys() else "isolated",
            next_run=row["next_run"],
            last_run=row["last_run"],
            last_result=row["last_result"],
            status=row["status"],
            created_at=row["created_at"],
        )
