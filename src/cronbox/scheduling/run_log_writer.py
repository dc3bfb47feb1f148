"""Per-run JSON log files under groups/{folder}/logs."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

from cronbox.execution.output_parser import ContainerOutput
from cronbox.groups.paths import GroupPaths


def write_run_log(group_folder: str, session_id: str, output: ContainerOutput, run_at: datetime) -> Path:
    log_dir = GroupPaths.logs_dir(group_folder)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"container_{session_id}_{run_at.strftime('%Y%m%d_%H%M%S')}.log"
    log_path.write_text(
        json.dumps(
            {
                "timestamp": run_at.isoformat(),
                "group_folder": group_folder,
                "session_id": session_id,
                "status": output.status,
                "result": output.result,
                "error": output.error,
                "new_session_id": output.new_session_id,
            },
            indent=2,
        )
    )
    return log_path
