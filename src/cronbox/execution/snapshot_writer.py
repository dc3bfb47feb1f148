"""Writes the handoff bundle a container reads to discover its task and group context."""

from __future__ import annotations

import json
import shutil
from datetime import datetime, timezone
from pathlib import Path

from cronbox.groups.paths import GroupPaths
from cronbox.infrastructure.logger import logger

TASKS_FILE = "current_tasks.json"
GROUPS_FILE = "available_groups.json"


class SnapshotWriter:
    """Writes JSON snapshot files into data/ipc/{group_folder}/{run_key} before a container starts.

    Each run gets its own bundle directory, so concurrent runs for one group
    never see each other's files. A bundle is written once and never touched
    while its container is running.
    """

    def write_tasks(self, bundle_dir: Path, task_id: str | None, prompt: str, is_scheduled: bool) -> Path:
        """current_tasks.json: the single task this run is executing."""
        tasks_file = bundle_dir / TASKS_FILE
        payload = {
            "tasks": [
                {
                    "id": task_id or "interactive",
                    "prompt": prompt,
                    "is_scheduled": is_scheduled,
                }
            ]
        }
        tasks_file.write_text(json.dumps(payload, indent=2))
        return tasks_file

    def write_groups(self, bundle_dir: Path, group_folder: str) -> Path:
        """available_groups.json: the target group, as registered."""
        groups_file = bundle_dir / GROUPS_FILE
        payload = {
            "groups": {group_folder: {"name": group_folder, "registered": True}},
            "lastSync": datetime.now(timezone.utc).isoformat(),
        }
        groups_file.write_text(json.dumps(payload, indent=2))
        return groups_file

    def prepare_for_execution(
        self, group_folder: str, run_key: str, task_id: str | None, prompt: str, is_scheduled: bool
    ) -> Path:
        """Write the whole bundle for one run. Returns the bundle directory."""
        bundle_dir = GroupPaths.bundle_dir(group_folder, run_key)
        bundle_dir.mkdir(parents=True, exist_ok=True)
        self.write_tasks(bundle_dir, task_id, prompt, is_scheduled)
        self.write_groups(bundle_dir, group_folder)
        return bundle_dir

    def remove(self, bundle_dir: Path) -> None:
        try:
            shutil.rmtree(bundle_dir)
        except FileNotFoundError:
            pass
        except OSError as err:
            logger.debug("Failed to remove handoff bundle", path=str(bundle_dir), error=str(err))
