"""ContainerRunner: spawns an isolated agent container and parses its output."""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from pathlib import Path

from cronbox.execution.container_runtime import ContainerRuntime, LaunchSpec, default_runtime
from cronbox.execution.output_parser import ContainerOutput, parse_container_output
from cronbox.execution.snapshot_writer import SnapshotWriter
from cronbox.groups.paths import GroupPaths
from cronbox.infrastructure.config import (
    CONTAINER_MAX_OUTPUT_SIZE,
    CONTAINER_TIMEOUT,
    SECRET_KEYS,
    read_env_file,
)
from cronbox.infrastructure.logger import logger

TRUNCATION_MARKER = "\n[OUTPUT TRUNCATED - exceeded max size]"
_READ_CHUNK = 64 * 1024


class ExecutionInfrastructureError(Exception):
    """The run never started: sandbox, serialization, or spawn failed."""


@dataclass
class ContainerInput:
    prompt: str
    session_id: str | None
    group_folder: str
    chat_jid: str
    is_main: bool
    is_scheduled_task: bool = False

    def to_json(self) -> dict:
        return {
            "prompt": self.prompt,
            "sessionId": self.session_id,
            "groupFolder": self.group_folder,
            "chatJid": self.chat_jid,
            "isMain": self.is_main,
            "isScheduledTask": self.is_scheduled_task,
        }


@dataclass
class RunOutcome:
    output: ContainerOutput
    duration_ms: int
    timed_out: bool = False


class ContainerRunner:
    """Runs one agent container per call, bounded by a timeout and an output ceiling."""

    def __init__(
        self,
        runtime: ContainerRuntime | None = None,
        snapshot_writer: SnapshotWriter | None = None,
        max_output_size: int = CONTAINER_MAX_OUTPUT_SIZE,
    ) -> None:
        self._runtime = runtime or default_runtime()
        self._snapshot_writer = snapshot_writer or SnapshotWriter()
        self._max_output_size = max_output_size

    async def run(self, input_data: ContainerInput, timeout_s: float | None = None) -> RunOutcome:
        """Run a container and return its parsed output.

        Raises ExecutionInfrastructureError if the container could not be
        started. Timeouts and non-zero exits are reported in the outcome.
        """
        if timeout_s is None:
            timeout_s = CONTAINER_TIMEOUT / 1000
        group_folder = input_data.group_folder
        container_name = f"cronbox-{group_folder}-{int(time.time() * 1000)}"
        run_key = input_data.session_id or container_name

        group_dir = self._prepare_sandbox(group_folder)
        bundle_dir: Path | None = None
        input_file: Path | None = None
        try:
            try:
                bundle_dir = self._snapshot_writer.prepare_for_execution(
                    group_folder, run_key, input_data.session_id, input_data.prompt, input_data.is_scheduled_task
                )
            except OSError as err:
                raise ExecutionInfrastructureError(f"Failed to write handoff bundle: {err}") from err

            input_file, stdin_data = self._serialize_input(input_data, run_key)
            return await self._launch(
                container_name,
                LaunchSpec(
                    name=container_name,
                    group_dir=group_dir,
                    ipc_dir=bundle_dir,
                    input_file=input_file,
                    env={
                        "CRONBOX_GROUP_FOLDER": group_folder,
                        "CRONBOX_CHAT_JID": input_data.chat_jid,
                        "CRONBOX_IS_MAIN": "1" if input_data.is_main else "0",
                    },
                ),
                stdin_data,
                timeout_s,
            )
        finally:
            if input_file is not None:
                try:
                    input_file.unlink(missing_ok=True)
                except OSError as err:
                    logger.debug("Failed to remove input file", path=str(input_file), error=str(err))
            if bundle_dir is not None:
                self._snapshot_writer.remove(bundle_dir)

    def _prepare_sandbox(self, group_folder: str) -> Path:
        group_dir = GroupPaths.group_dir(group_folder)
        try:
            group_dir.mkdir(parents=True, exist_ok=True)
        except OSError as err:
            raise ExecutionInfrastructureError(f"Failed to create group directory: {err}") from err
        return group_dir

    def _serialize_input(self, input_data: ContainerInput, run_key: str) -> tuple[Path, bytes]:
        """Write the request file (no secrets) and build the stdin payload (with secrets)."""
        input_file = GroupPaths.input_file(run_key)
        try:
            request = input_data.to_json()
            stdin_data = json.dumps({**request, "secrets": read_env_file(SECRET_KEYS)}).encode()
            input_file.parent.mkdir(parents=True, exist_ok=True)
            input_file.write_text(json.dumps(request))
        except (TypeError, ValueError) as err:
            raise ExecutionInfrastructureError(f"Failed to serialize input: {err}") from err
        except OSError as err:
            raise ExecutionInfrastructureError(f"Failed to write input file: {err}") from err
        return input_file, stdin_data

    async def _launch(self, container_name: str, spec: LaunchSpec, stdin_data: bytes, timeout_s: float) -> RunOutcome:
        argv = self._runtime.command(spec)
        logger.info("Starting container", name=container_name, group=spec.group_dir.name, bin=argv[0])

        start = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as err:
            raise ExecutionInfrastructureError(f"Failed to spawn container: {err}") from err

        captured = bytearray()
        truncated = False

        async def write_stdin() -> None:
            assert proc.stdin is not None
            try:
                proc.stdin.write(stdin_data)
                await proc.stdin.drain()
            except (BrokenPipeError, ConnectionResetError):
                logger.debug("Container closed stdin early", name=container_name)
            finally:
                proc.stdin.close()

        async def read_stdout() -> None:
            nonlocal truncated
            assert proc.stdout is not None
            while chunk := await proc.stdout.read(_READ_CHUNK):
                if truncated:
                    continue  # keep draining so the container can't block on a full pipe
                room = self._max_output_size - len(captured)
                if len(chunk) > room:
                    captured.extend(chunk[: max(room, 0)])
                    truncated = True
                    logger.warning("Container output truncated", name=container_name, max_bytes=self._max_output_size)
                    continue
                captured.extend(chunk)

        async def read_stderr() -> None:
            assert proc.stderr is not None
            async for raw_line in proc.stderr:
                line = raw_line.decode(errors="replace").rstrip()
                if line:
                    logger.debug("Container stderr", name=container_name, line=line)

        timed_out = False
        try:
            await asyncio.wait_for(
                asyncio.gather(write_stdin(), read_stdout(), read_stderr(), proc.wait()),
                timeout=timeout_s,
            )
        except asyncio.TimeoutError:
            timed_out = True
            logger.warning("Container timeout, killing", name=container_name, timeout_s=timeout_s)
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()

        duration_ms = int((time.monotonic() - start) * 1000)
        text = captured.decode(errors="replace")
        if truncated:
            text += TRUNCATION_MARKER

        success = not timed_out and proc.returncode == 0
        if not timed_out and proc.returncode != 0:
            logger.warning("Container exited with error", name=container_name, code=proc.returncode)

        output = parse_container_output(text, success)
        logger.info("Container finished", name=container_name, status=output.status, duration_ms=duration_ms)
        return RunOutcome(output=output, duration_ms=duration_ms, timed_out=timed_out)
