"""Tests for ContainerRunner, using a python subprocess in place of a container."""

import asyncio
import json
import sys

import pytest

from cronbox.execution.container_runner import (
    TRUNCATION_MARKER,
    ContainerInput,
    ContainerRunner,
    ExecutionInfrastructureError,
)
from cronbox.execution.container_runtime import DockerRuntime, LaunchSpec
from cronbox.execution.output_parser import GENERIC_FAILURE, OUTPUT_END_MARKER, OUTPUT_START_MARKER


class ScriptRuntime:
    """Runs a python snippet instead of a container."""

    def __init__(self, script: str) -> None:
        self.script = script
        self.specs: list[LaunchSpec] = []

    @property
    def bin(self) -> str:
        return sys.executable

    def command(self, spec: LaunchSpec) -> list[str]:
        self.specs.append(spec)
        return [sys.executable, "-c", self.script, str(spec.ipc_dir)]


class MissingBinaryRuntime:
    @property
    def bin(self) -> str:
        return "/nonexistent/cronbox-runtime"

    def command(self, spec: LaunchSpec) -> list[str]:
        return [self.bin]


ECHO_STDIN = f"""
import json, sys
data = json.loads(sys.stdin.read())
print("agent booting")
print({OUTPUT_START_MARKER!r})
print(json.dumps({{"status": "success", "result": "echo: " + data["prompt"], "newSessionId": data["sessionId"]}}))
print({OUTPUT_END_MARKER!r})
print("bye")
"""

READ_BUNDLE = f"""
import json, pathlib, sys, time
sys.stdin.read()
time.sleep(0.5)
bundle = pathlib.Path(sys.argv[1])
tasks = json.loads((bundle / "current_tasks.json").read_text())
groups = json.loads((bundle / "available_groups.json").read_text())
print({OUTPUT_START_MARKER!r})
print(json.dumps({{"status": "success", "result": json.dumps({{"tasks": tasks, "groups": groups["groups"]}})}}))
print({OUTPUT_END_MARKER!r})
"""


def _input(**overrides) -> ContainerInput:
    values = dict(
        prompt="hello",
        session_id="scheduled_task-1",
        group_folder="team",
        chat_jid="chat@g.us",
        is_main=False,
        is_scheduled_task=True,
    )
    values.update(overrides)
    return ContainerInput(**values)


class TestContainerRunner:
    @pytest.mark.asyncio
    async def test_feeds_stdin_and_parses_marked_output(self, sandbox_dirs):
        runner = ContainerRunner(runtime=ScriptRuntime(ECHO_STDIN))
        outcome = await runner.run(_input(), timeout_s=10)
        assert outcome.timed_out is False
        assert outcome.output.status == "success"
        assert outcome.output.result == "echo: hello"
        assert outcome.output.new_session_id == "scheduled_task-1"
        assert outcome.duration_ms >= 0

    @pytest.mark.asyncio
    async def test_creates_sandbox_and_handoff_bundle(self, sandbox_dirs):
        groups_dir, data_dir = sandbox_dirs
        runtime = ScriptRuntime(READ_BUNDLE)
        outcome = await ContainerRunner(runtime=runtime).run(_input(), timeout_s=10)

        assert (groups_dir / "team").is_dir()
        seen = json.loads(outcome.output.result)
        assert seen["tasks"] == {"tasks": [{"id": "scheduled_task-1", "prompt": "hello", "is_scheduled": True}]}
        assert seen["groups"] == {"team": {"name": "team", "registered": True}}

        spec = runtime.specs[0]
        assert spec.group_dir == groups_dir / "team"
        assert spec.ipc_dir == data_dir / "ipc" / "team" / "scheduled_task-1"
        assert spec.env["CRONBOX_GROUP_FOLDER"] == "team"

    @pytest.mark.asyncio
    async def test_removes_handoff_bundle_after_run(self, sandbox_dirs):
        runtime = ScriptRuntime("pass")
        await ContainerRunner(runtime=runtime).run(_input(), timeout_s=10)
        assert not runtime.specs[0].ipc_dir.exists()

    @pytest.mark.asyncio
    async def test_concurrent_runs_in_one_group_see_their_own_task(self, sandbox_dirs):
        runner = ContainerRunner(runtime=ScriptRuntime(READ_BUNDLE))

        async def run_after(delay: float, session_id: str):
            await asyncio.sleep(delay)
            return await runner.run(_input(session_id=session_id, prompt=session_id), timeout_s=10)

        first, second = await asyncio.gather(run_after(0, "scheduled_A"), run_after(0.1, "scheduled_B"))

        for outcome, session_id in ((first, "scheduled_A"), (second, "scheduled_B")):
            tasks = json.loads(outcome.output.result)["tasks"]["tasks"]
            assert [t["id"] for t in tasks] == [session_id]

    @pytest.mark.asyncio
    async def test_removes_input_file_after_run(self, sandbox_dirs):
        runtime = ScriptRuntime("pass")
        await ContainerRunner(runtime=runtime).run(_input(), timeout_s=10)
        input_file = runtime.specs[0].input_file
        assert input_file.name == "input_scheduled_task-1.json"
        assert not input_file.exists()

    @pytest.mark.asyncio
    async def test_nonzero_exit_without_record_is_error(self, sandbox_dirs):
        runner = ContainerRunner(runtime=ScriptRuntime("import sys; print('boom'); sys.exit(3)"))
        outcome = await runner.run(_input(), timeout_s=10)
        assert outcome.timed_out is False
        assert outcome.output.status == "error"
        assert outcome.output.error == GENERIC_FAILURE

    @pytest.mark.asyncio
    async def test_plain_output_success(self, sandbox_dirs):
        runner = ContainerRunner(runtime=ScriptRuntime("print('plain answer')"))
        outcome = await runner.run(_input(), timeout_s=10)
        assert outcome.output.status == "success"
        assert outcome.output.result.strip() == "plain answer"

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, sandbox_dirs):
        runner = ContainerRunner(runtime=ScriptRuntime("import time; time.sleep(30)"))
        outcome = await runner.run(_input(), timeout_s=0.5)
        assert outcome.timed_out is True
        assert outcome.output.status == "error"
        assert outcome.duration_ms < 10_000

    @pytest.mark.asyncio
    async def test_timeout_parses_partial_plain_output_as_failure(self, sandbox_dirs):
        script = "import time; print('still thinking', flush=True); time.sleep(30)"
        outcome = await ContainerRunner(runtime=ScriptRuntime(script)).run(_input(), timeout_s=0.5)
        assert outcome.timed_out is True
        assert outcome.output.status == "error"
        assert outcome.output.error == GENERIC_FAILURE
        assert outcome.output.result is None

    @pytest.mark.asyncio
    async def test_timeout_still_parses_record_printed_before_hang(self, sandbox_dirs):
        script = f"""
import json, time
print({OUTPUT_START_MARKER!r})
print(json.dumps({{"status": "success", "result": "partial answer"}}))
print({OUTPUT_END_MARKER!r}, flush=True)
time.sleep(30)
"""
        outcome = await ContainerRunner(runtime=ScriptRuntime(script)).run(_input(), timeout_s=0.5)
        assert outcome.timed_out is True
        assert outcome.output.status == "success"
        assert outcome.output.result == "partial answer"

    @pytest.mark.asyncio
    async def test_truncates_output_over_ceiling(self, sandbox_dirs):
        runner = ContainerRunner(runtime=ScriptRuntime("print('x' * 5000)"), max_output_size=100)
        outcome = await runner.run(_input(), timeout_s=10)
        assert outcome.timed_out is False
        assert outcome.output.status == "success"
        assert outcome.output.result == "x" * 100 + TRUNCATION_MARKER

    @pytest.mark.asyncio
    async def test_spawn_failure_is_infrastructure_error(self, sandbox_dirs):
        runner = ContainerRunner(runtime=MissingBinaryRuntime())
        with pytest.raises(ExecutionInfrastructureError, match="spawn"):
            await runner.run(_input(), timeout_s=10)

    @pytest.mark.asyncio
    async def test_sandbox_failure_is_infrastructure_error(self, sandbox_dirs):
        groups_dir, _ = sandbox_dirs
        groups_dir.parent.mkdir(parents=True, exist_ok=True)
        groups_dir.write_text("not a directory")
        runner = ContainerRunner(runtime=ScriptRuntime("pass"))
        with pytest.raises(ExecutionInfrastructureError, match="group directory"):
            await runner.run(_input(), timeout_s=10)


class TestDockerRuntime:
    def test_command_mounts_sandbox_and_bundle(self, tmp_path):
        spec = LaunchSpec(
            name="cronbox-team-1",
            group_dir=tmp_path / "groups" / "team",
            ipc_dir=tmp_path / "data" / "ipc" / "team",
            input_file=tmp_path / "data" / "temp" / "input_x.json",
            env={"CRONBOX_GROUP_FOLDER": "team"},
        )
        argv = DockerRuntime(image="agent:test").command(spec)
        assert argv[1:4] == ["run", "-i", "--rm"]
        assert f"{spec.group_dir}:/workspace/group" in argv
        assert f"{spec.ipc_dir}:/workspace/ipc:ro" in argv
        assert "CRONBOX_GROUP_FOLDER=team" in argv
        assert argv[-1] == "agent:test"
