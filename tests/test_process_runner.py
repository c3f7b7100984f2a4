"""
Tests for the async process runner — streaming, exit status, spawn
failures, kill-on-exit.
"""

from __future__ import annotations

import asyncio
import os
import sys

import pytest

from src.core.services.installer.errors import SpawnError
from src.core.services.installer.execution.process_runner import (
    OutputLine,
    ProcessRunner,
    Termination,
)

from tests.helpers import py


async def _collect(runner: ProcessRunner, argv, **kw) -> list:
    events = []
    async with runner.spawn(argv, **kw) as proc:
        async for event in proc.events():
            events.append(event)
    return events


class TestStreaming:
    @pytest.mark.asyncio
    async def test_stdout_lines_then_termination(self):
        events = await _collect(ProcessRunner(), py("print('one'); print('two')"))
        assert events[:-1] == [OutputLine("stdout", "one"), OutputLine("stdout", "two")]
        assert events[-1] == Termination(exit_code=0)

    @pytest.mark.asyncio
    async def test_stderr_is_tagged(self):
        events = await _collect(
            ProcessRunner(), py("import sys; sys.stderr.write('oops\\n')"),
        )
        assert OutputLine("stderr", "oops") in events

    @pytest.mark.asyncio
    async def test_order_preserved_per_stream(self):
        code = (
            "import sys\n"
            "for i in range(50):\n"
            "    print(f'out{i}', flush=True)\n"
            "    sys.stderr.write(f'err{i}\\n'); sys.stderr.flush()\n"
        )
        events = await _collect(ProcessRunner(), py(code))
        out = [e.text for e in events if isinstance(e, OutputLine) and e.stream == "stdout"]
        err = [e.text for e in events if isinstance(e, OutputLine) and e.stream == "stderr"]
        assert out == [f"out{i}" for i in range(50)]
        assert err == [f"err{i}" for i in range(50)]

    @pytest.mark.asyncio
    async def test_output_arrives_before_exit(self):
        """The first line is visible while the process is still running."""
        runner = ProcessRunner()
        code = "import time; print('ready', flush=True); time.sleep(30)"
        async with runner.spawn(py(code)) as proc:
            events = proc.events()
            first = await asyncio.wait_for(events.__anext__(), timeout=10)
            assert first == OutputLine("stdout", "ready")
            assert proc.running
            await events.aclose()

    @pytest.mark.asyncio
    async def test_events_consumed_once(self):
        runner = ProcessRunner()
        async with runner.spawn(py("pass")) as proc:
            async for _ in proc.events():
                pass
            with pytest.raises(RuntimeError):
                async for _ in proc.events():
                    pass


class TestTermination:
    @pytest.mark.asyncio
    async def test_nonzero_exit_code(self):
        events = await _collect(ProcessRunner(), py("import sys; sys.exit(3)"))
        assert events[-1] == Termination(exit_code=3)
        assert not events[-1].ok

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
    @pytest.mark.asyncio
    async def test_signal_termination(self):
        code = "import os, signal; os.kill(os.getpid(), signal.SIGTERM)"
        events = await _collect(ProcessRunner(), py(code))
        assert events[-1].exit_code is None
        assert events[-1].signal == 15

    def test_from_returncode(self):
        assert Termination.from_returncode(0) == Termination(exit_code=0)
        assert Termination.from_returncode(-9) == Termination(exit_code=None, signal=9)


class TestSpawn:
    @pytest.mark.asyncio
    async def test_missing_program_raises_spawn_error(self):
        runner = ProcessRunner()
        with pytest.raises(SpawnError) as exc:
            async with runner.spawn(["definitely-not-a-real-binary-xyz"]):
                pass
        assert "definitely-not-a-real-binary-xyz" in exc.value.reason
        assert isinstance(exc.value.error, OSError)

    @pytest.mark.asyncio
    async def test_empty_argv(self):
        with pytest.raises(SpawnError):
            async with ProcessRunner().spawn([]):
                pass

    @pytest.mark.asyncio
    async def test_stdin_data_is_delivered(self):
        code = "import sys; print(sys.stdin.readline().strip()[::-1])"
        events = await _collect(ProcessRunner(), py(code), stdin_data=b"secret\n")
        assert OutputLine("stdout", "terces") in events

    @pytest.mark.asyncio
    async def test_env_overrides(self):
        runner = ProcessRunner(env_overrides={"MONGOSETUP_TEST_VAR": "hello"})
        code = "import os; print(os.environ['MONGOSETUP_TEST_VAR'])"
        events = await _collect(runner, py(code))
        assert OutputLine("stdout", "hello") in events


class TestKill:
    @pytest.mark.asyncio
    async def test_leaving_block_kills_process(self):
        runner = ProcessRunner()
        async with runner.spawn(py("import time; time.sleep(60)")) as proc:
            pid = proc.pid
        assert proc.returncode is not None
        if sys.platform != "win32":
            with pytest.raises(ProcessLookupError):
                os.kill(pid, 0)

    @pytest.mark.asyncio
    async def test_cancellation_kills_process(self):
        runner = ProcessRunner()
        handles = []

        async def consume() -> None:
            async with runner.spawn(py("import time; time.sleep(60)")) as proc:
                handles.append(proc)
                async for _ in proc.events():
                    pass

        task = asyncio.create_task(consume())
        while not handles:
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert handles[0].returncode is not None


class TestCapture:
    @pytest.mark.asyncio
    async def test_collects_output(self):
        result = await ProcessRunner().capture(py("print('a'); print('b')"))
        assert result.ok
        assert result.stdout == ["a", "b"]
        assert result.text == "a\nb"

    @pytest.mark.asyncio
    async def test_timeout(self):
        with pytest.raises(TimeoutError):
            await ProcessRunner().capture(py("import time; time.sleep(60)"), timeout=0.5)
