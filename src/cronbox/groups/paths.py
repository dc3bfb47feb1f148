"""Centralized path construction for group-related directories and files."""

from __future__ import annotations

from pathlib import Path

from cronbox.infrastructure.config import DATA_DIR, GROUPS_DIR


class GroupPaths:
    """Centralized path construction for group-related directories."""

    @staticmethod
    def group_dir(folder: str) -> Path:
        """Sandbox working directory for a group: groups/{folder}"""
        return GROUPS_DIR / folder

    @staticmethod
    def logs_dir(folder: str) -> Path:
        """Run logs directory: groups/{folder}/logs"""
        return GROUPS_DIR / folder / "logs"

    @staticmethod
    def ipc_dir(folder: str) -> Path:
        """Handoff bundles for a group: data/ipc/{folder}"""
        return DATA_DIR / "ipc" / folder

    @staticmethod
    def bundle_dir(folder: str, run_key: str) -> Path:
        """Handoff bundle for one run: data/ipc/{folder}/{run_key}"""
        return GroupPaths.ipc_dir(folder) / run_key

    @staticmethod
    def temp_dir() -> Path:
        """Transient per-run artifacts: data/temp"""
        return DATA_DIR / "temp"

    @staticmethod
    def input_file(run_key: str) -> Path:
        """Serialized request for one run: data/temp/input_{run_key}.json"""
        return DATA_DIR / "temp" / f"input_{run_key}.json"
