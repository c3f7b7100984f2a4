"""
L4 Execution — async process runner.

The SINGLE PLACE where installer subprocesses are spawned.  A spawned
process is exposed as a live stream of output events::

    async with runner.spawn(["bash", "-c", "apt-get update"]) as proc:
        async for event in proc.events():
            if isinstance(event, OutputLine): ...
            elif isinstance(event, Termination): ...

Lines are delivered as they are produced, never buffered until exit.
Order is preserved within stdout and within stderr; there is no
ordering guarantee across the two streams.

Leaving the ``async with`` block (normally, on error, or on
cancellation) kills the process if it is still running and reaps it,
so a cancelled step never leaves an orphan behind.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Literal

from src.core.services.installer.errors import SpawnError

logger = logging.getLogger(__name__)

# Generous line limit: apt and msiexec can print very long lines
_STREAM_LIMIT = 1024 * 1024


@dataclass(frozen=True)
class OutputLine:
    """One line from stdout or stderr, newline stripped."""

    stream: Literal["stdout", "stderr"]
    text: str


@dataclass(frozen=True)
class Termination:
    """Terminal status of a process: an exit code or a signal."""

    exit_code: int | None
    signal: int | None = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @classmethod
    def from_returncode(cls, returncode: int) -> Termination:
        # asyncio reports death-by-signal as a negative return code
        if returncode < 0:
            return cls(exit_code=None, signal=-returncode)
        return cls(exit_code=returncode)


OutputEvent = OutputLine | Termination


@dataclass
class CommandResult:
    """Collected output of a finished command."""

    termination: Termination
    stdout: list[str] = field(default_factory=list)
    stderr: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.termination.ok

    @property
    def exit_code(self) -> int | None:
        return self.termination.exit_code

    @property
    def text(self) -> str:
        return "\n".join(self.stdout)


class ProcessHandle:
    """A running child process and its output stream."""

    def __init__(self, proc: asyncio.subprocess.Process, argv: Sequence[str]) -> None:
        self._proc = proc
        self._argv = list(argv)
        self._consumed = False

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode

    @property
    def running(self) -> bool:
        return self._proc.returncode is None

    async def events(self) -> AsyncIterator[OutputEvent]:
        """Yield output lines as they arrive, then exactly one ``Termination``."""
        if self._consumed:
            raise RuntimeError("Process output can only be consumed once")
        self._consumed = True

        queue: asyncio.Queue[OutputLine | None] = asyncio.Queue()
        readers = [
            asyncio.create_task(self._pump(self._proc.stdout, "stdout", queue)),
            asyncio.create_task(self._pump(self._proc.stderr, "stderr", queue)),
        ]
        try:
            open_streams = len(readers)
            while open_streams:
                item = await queue.get()
                if item is None:
                    open_streams -= 1
                    continue
                yield item

            returncode = await self._proc.wait()
            yield Termination.from_returncode(returncode)
        finally:
            for reader in readers:
                if not reader.done():
                    reader.cancel()
            await asyncio.gather(*readers, return_exceptions=True)

    async def kill(self) -> None:
        """Forcibly stop the process and reap it."""
        if self._proc.returncode is None:
            logger.info("Killing process %d (%s)", self._proc.pid, self._argv[0])
            try:
                self._proc.kill()
            except ProcessLookupError:
                pass
        await self._proc.wait()

    @staticmethod
    async def _pump(
        stream: asyncio.StreamReader | None,
        name: Literal["stdout", "stderr"],
        queue: asyncio.Queue[OutputLine | None],
    ) -> None:
        try:
            if stream is None:
                return
            while True:
                try:
                    raw = await stream.readline()
                except ValueError:
                    # Line longer than the stream limit: take what is buffered
                    raw = await stream.read(_STREAM_LIMIT)
                if not raw:
                    return
                text = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                await queue.put(OutputLine(stream=name, text=text))
        finally:
            await queue.put(None)


class ProcessRunner:
    """Spawns installer commands as asyncio subprocesses."""

    def __init__(self, *, env_overrides: Mapping[str, str] | None = None) -> None:
        self._env_overrides = dict(env_overrides or {})

    def _environment(self, extra: Mapping[str, str] | None) -> dict[str, str] | None:
        if not self._env_overrides and not extra:
            return None
        env = os.environ.copy()
        env.update(self._env_overrides)
        if extra:
            env.update(extra)
        return env

    @asynccontextmanager
    async def spawn(
        self,
        argv: Sequence[str],
        *,
        stdin_data: bytes | None = None,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
    ) -> AsyncIterator[ProcessHandle]:
        """Start ``argv`` and yield its handle.

        Args:
            argv: Program and arguments (no shell interpretation).
            stdin_data: Bytes written to stdin, which is then closed.
                Used for ``sudo -S``; never logged.
            env: Extra environment variables.
            cwd: Working directory.

        Raises:
            SpawnError: The process could not be started.
        """
        if not argv:
            raise SpawnError(argv, OSError("empty command"))

        logger.debug("Spawning: %s", argv[0])
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE if stdin_data is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self._environment(env),
                cwd=cwd,
                limit=_STREAM_LIMIT,
            )
        except OSError as e:
            logger.warning("Failed to spawn %s: %s", argv[0], e)
            raise SpawnError(argv, e) from e

        handle = ProcessHandle(proc, argv)
        try:
            if stdin_data is not None and proc.stdin is not None:
                try:
                    proc.stdin.write(stdin_data)
                    await proc.stdin.drain()
                except (BrokenPipeError, ConnectionResetError):
                    logger.debug("Process %d closed stdin early", proc.pid)
                finally:
                    proc.stdin.close()
            yield handle
        finally:
            await handle.kill()

    async def capture(
        self,
        argv: Sequence[str],
        *,
        timeout: float | None = None,
        stdin_data: bytes | None = None,
    ) -> CommandResult:
        """Run a command to completion and collect its output.

        Raises:
            SpawnError: The process could not be started.
            TimeoutError: It did not finish within ``timeout`` (it is killed).
        """
        async def _collect() -> CommandResult:
            stdout: list[str] = []
            stderr: list[str] = []
            async with self.spawn(argv, stdin_data=stdin_data) as proc:
                async for event in proc.events():
                    if isinstance(event, Termination):
                        return CommandResult(termination=event, stdout=stdout, stderr=stderr)
                    (stdout if event.stream == "stdout" else stderr).append(event.text)
            raise RuntimeError("process ended without a termination event")

        return await asyncio.wait_for(_collect(), timeout=timeout)
