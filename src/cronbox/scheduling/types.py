"""Scheduling domain types."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

ScheduleType = Literal["cron", "interval", "once"]
TaskStatus = Literal["active", "paused", "completed", "failed"]
RunStatus = Literal["success", "error", "timeout"]


class ScheduledTask(BaseModel):
    id: str
    group_folder: str
    chat_jid: str
    prompt: str
    schedule_type: ScheduleType
    schedule_value: str
    context_mode: Literal["group", "isolated"] = "isolated"
    next_run: str | None = None  # None means due immediately
    last_run: str | None = None
    last_result: str | None = None
    status: TaskStatus = "active"
    created_at: str = ""


class TaskRunLog(BaseModel):
    task_id: str
    run_at: str
    duration_ms: int
    status: RunStatus
    result: str | None = None
    error: str | None = None
