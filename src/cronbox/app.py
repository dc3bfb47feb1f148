"""Orchestrator class: composes services, wires subsystems."""

from __future__ import annotations

from typing import Awaitable, Callable

from cronbox.execution.container_runner import ContainerRunner
from cronbox.groups.paths import GroupPaths
from cronbox.infrastructure.config import DATA_DIR, GROUPS_DIR, STORE_DIR
from cronbox.infrastructure.database import AppDatabase
from cronbox.infrastructure.logger import logger
from cronbox.scheduling.scheduler import SchedulerDependencies, TaskScheduler
from cronbox.scheduling.task_service import TaskManager


def ensure_directories() -> None:
    for directory in (STORE_DIR, GROUPS_DIR, DATA_DIR, GroupPaths.temp_dir()):
        directory.mkdir(parents=True, exist_ok=True)


class Orchestrator:
    """Composes the database, container runner, and scheduler, and manages their lifecycle."""

    def __init__(
        self,
        db: AppDatabase | None = None,
        container_runner: ContainerRunner | None = None,
        send_message: Callable[[str, str], Awaitable[None]] | None = None,
    ) -> None:
        self._db = db or AppDatabase()
        self._container_runner = container_runner
        self._send_message = send_message
        self._scheduler: TaskScheduler | None = None

    @property
    def task_manager(self) -> TaskManager:
        assert self._db.task_repo is not None
        return TaskManager(self._db.task_repo)

    def init(self) -> None:
        ensure_directories()
        self._db.init()

    async def start(self) -> None:
        """Initialize storage and start the scheduler loop."""
        logger.info("Starting cronbox...")
        self.init()
        assert self._db.task_repo is not None

        self._scheduler = TaskScheduler(
            SchedulerDependencies(
                task_repo=self._db.task_repo,
                container_runner=self._container_runner or ContainerRunner(),
                send_message=self._send_message,
            )
        )
        self._scheduler.start()
        logger.info("cronbox started", tasks=len(self._db.task_repo.get_all_tasks()))

    async def shutdown(self) -> None:
        """Stop polling, let in-flight runs drain, then close the database."""
        logger.info("Shutting down cronbox...")
        if self._scheduler:
            await self._scheduler.stop()
            self._scheduler = None
        self._db.close()
        logger.info("cronbox shut down complete")
