"""
L5 Orchestration — background event loop for synchronous callers.

Flask handlers run on worker threads; the installer is asyncio.  The
runtime owns one daemon thread running one event loop, and every
service call is marshalled onto it::

    runtime = InstallerRuntime(service).start()
    runtime.is_installed()                 # blocks for the verdict
    runtime.start_install()                # returns a concurrent Future
    runtime.deliver_credential(token, pw)  # thread-safe
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

from src.core.models.installation import InstallationVerdict, PipelineOutcome
from src.core.services.installer.orchestration.service import InstallationService

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CALL_TIMEOUT_S = 30.0


class InstallerRuntime:
    """A dedicated loop thread hosting one ``InstallationService``."""

    def __init__(self, service: InstallationService) -> None:
        self._service = service
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._ready = threading.Event()
        self._lock = threading.Lock()

    @property
    def service(self) -> InstallationService:
        return self._service

    @property
    def alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> InstallerRuntime:
        """Start the loop thread (idempotent)."""
        with self._lock:
            if self.alive:
                return self
            self._ready.clear()
            self._thread = threading.Thread(
                target=self._main, name="mongosetup-installer", daemon=True,
            )
            self._thread.start()
        self._ready.wait()
        return self

    def stop(self, timeout: float = 5.0) -> None:
        """Cancel any run and stop the loop."""
        with self._lock:
            loop, thread = self._loop, self._thread
            if loop is None or thread is None:
                return
            if self._service.running:
                loop.call_soon_threadsafe(self._service.cancel)
            loop.call_soon_threadsafe(loop.stop)
            thread.join(timeout)
            self._loop = None
            self._thread = None

    # ── Marshalling ─────────────────────────────────────────────

    def submit(self, coro: Coroutine[Any, Any, T]) -> concurrent.futures.Future[T]:
        """Schedule ``coro`` on the loop thread."""
        try:
            loop = self._require_loop()
        except RuntimeError:
            coro.close()
            raise
        return asyncio.run_coroutine_threadsafe(coro, loop)

    def call(self, fn: Callable[..., T], *args: Any, timeout: float = _CALL_TIMEOUT_S) -> T:
        """Run a plain callable on the loop thread and return its result."""
        async def _invoke() -> T:
            return fn(*args)

        return self.submit(_invoke()).result(timeout)

    # ── Service operations ──────────────────────────────────────

    def is_installed(self, timeout: float = _CALL_TIMEOUT_S * 2) -> InstallationVerdict:
        return self.submit(self._service.is_installed()).result(timeout)

    def start_install(self) -> concurrent.futures.Future[PipelineOutcome]:
        """Begin a run; the future resolves to its outcome.

        Raises:
            InstallInProgress: A run is already active.
        """
        task = self.call(self._service.start)

        async def _outcome() -> PipelineOutcome:
            return await task

        return self.submit(_outcome())

    def cancel(self) -> bool:
        return self.call(self._service.cancel)

    def deliver_credential(self, token: str, secret: str | None) -> bool:
        return self.call(self._service.deliver_credential, token, secret)

    def status(self) -> dict:
        return self.call(self._service.status)

    # ── Internal ────────────────────────────────────────────────

    def _require_loop(self) -> asyncio.AbstractEventLoop:
        loop = self._loop
        if loop is None or not self.alive:
            raise RuntimeError("InstallerRuntime is not running")
        return loop

    def _main(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        self._ready.set()
        logger.debug("Installer loop started")
        try:
            loop.run_forever()
        finally:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()
            logger.debug("Installer loop stopped")
