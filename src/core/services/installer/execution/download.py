"""
L4 Execution — crash-safe download with progress and retry.

Flow for one download::

    total = HEAD Content-Length            (best effort, else 500 MiB)
    for attempt in 1..max_attempts:
        stream GET → <dest>.tmp             (download-progress events)
        verify <dest>.tmp exists, size > 0
        promote <dest>.tmp → <dest>         (rename, else staged copy + rename)
        return
        sleep backoff(attempt)
    raise DownloadFailure

The final path only ever holds a fully transferred, verified file.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from collections.abc import Awaitable, Callable
from pathlib import Path

import httpx

from src.core.reliability.backoff import BackoffPolicy
from src.core.services.installer.errors import DownloadFailure
from src.core.services.installer.progress import ProgressEmitter

logger = logging.getLogger(__name__)

FALLBACK_TOTAL_BYTES = 500 * 1024 * 1024
_CHUNK_SIZE = 64 * 1024
# Emit a progress event roughly every half percent
_PROGRESS_STEP = 0.5
_USER_AGENT = "mongosetup/0.1"

Sleep = Callable[[float], Awaitable[None]]


def partial_path(dest: Path) -> Path:
    """Where an in-flight transfer for ``dest`` is written."""
    return dest.with_name(dest.name + ".tmp")


def staging_path(dest: Path) -> Path:
    """Sibling of ``dest`` a cross-filesystem copy is staged in."""
    return dest.with_name(dest.name + ".promote")


def promote(tmp: Path, dest: Path) -> None:
    """Move a verified temporary file onto its final path.

    Falls back to copying into a sibling of ``dest`` and renaming that
    into place when a direct rename is not possible (e.g. across
    filesystems).  A failed copy never touches ``dest``.
    """
    try:
        os.replace(tmp, dest)
        return
    except OSError as e:
        logger.debug("Rename %s → %s failed (%s), copying instead", tmp, dest, e)
    staged = staging_path(dest)
    try:
        shutil.copyfile(tmp, staged)
        os.replace(staged, dest)
    except BaseException:
        staged.unlink(missing_ok=True)
        raise
    tmp.unlink()


class DownloadOrchestrator:
    """Downloads one large file with progress reporting and bounded retry."""

    def __init__(
        self,
        emitter: ProgressEmitter,
        *,
        policy: BackoffPolicy | None = None,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
        sleep: Sleep = asyncio.sleep,
        fallback_total: int = FALLBACK_TOTAL_BYTES,
        timeout: float = 60.0,
    ) -> None:
        self._emitter = emitter
        self._policy = policy or BackoffPolicy()
        self._client_factory = client_factory or (
            lambda: httpx.AsyncClient(
                follow_redirects=True,
                timeout=timeout,
                headers={"User-Agent": _USER_AGENT},
            )
        )
        self._sleep = sleep
        self._fallback_total = fallback_total

    @property
    def policy(self) -> BackoffPolicy:
        return self._policy

    async def download(self, url: str, dest: Path) -> int:
        """Fetch ``url`` into ``dest`` and return the final size in bytes.

        Raises:
            DownloadFailure: Every attempt failed or produced an empty file.
        """
        dest = Path(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        tmp = partial_path(dest)
        last_error = "no attempt made"

        async with self._client_factory() as client:
            total = await self.probe_size(client, url)
            self._emitter.log(f"Downloading {url} ({total / (1024 * 1024):.1f} MB)")

            for attempt in range(1, self._policy.max_attempts + 1):
                try:
                    await self._transfer(client, url, tmp, total)
                    size = self._verify(tmp)
                    promote(tmp, dest)
                except (httpx.HTTPError, OSError, _EmptyDownload) as e:
                    last_error = str(e) or type(e).__name__
                    self._discard(tmp)
                    logger.warning(
                        "Download attempt %d/%d failed: %s",
                        attempt, self._policy.max_attempts, last_error,
                    )
                    if self._policy.exhausted(attempt):
                        break
                    delay = self._policy.delay_for(attempt)
                    self._emitter.error(
                        f"Download attempt {attempt} failed: {last_error}. "
                        f"Retrying in {delay:g}s..."
                    )
                    await self._sleep(delay)
                    continue
                except BaseException:
                    self._discard(tmp)
                    raise

                self._emitter.download(size, size)
                self._emitter.log(f"Download complete: {dest} ({size} bytes)")
                logger.info("Downloaded %s → %s (%d bytes, attempt %d)", url, dest, size, attempt)
                return size

        raise DownloadFailure(url, self._policy.max_attempts, last_error)

    async def probe_size(self, client: httpx.AsyncClient, url: str) -> int:
        """Expected size from a HEAD request, or the fallback estimate."""
        try:
            resp = await client.head(url)
            resp.raise_for_status()
            length = int(resp.headers.get("content-length", "0"))
        except (httpx.HTTPError, ValueError) as e:
            logger.debug("Size probe for %s failed: %s", url, e)
            length = 0
        if length <= 0:
            logger.info("Size of %s unknown, estimating %d bytes", url, self._fallback_total)
            return self._fallback_total
        return length

    async def _transfer(
        self, client: httpx.AsyncClient, url: str, tmp: Path, total: int,
    ) -> int:
        received = 0
        last_pct = -_PROGRESS_STEP
        self._emitter.download(0, total)
        async with client.stream("GET", url) as resp:
            resp.raise_for_status()
            with open(tmp, "wb") as fh:
                async for chunk in resp.aiter_bytes(_CHUNK_SIZE):
                    # Disk writes stay off the installer loop
                    await asyncio.to_thread(fh.write, chunk)
                    received += len(chunk)
                    # Server-reported size can be missing or wrong
                    shown_total = max(total, received)
                    pct = received / shown_total * 100 if shown_total else 0.0
                    if pct - last_pct >= _PROGRESS_STEP:
                        last_pct = pct
                        self._emitter.download(received, shown_total)
        return received

    @staticmethod
    def _verify(tmp: Path) -> int:
        if not tmp.is_file():
            raise _EmptyDownload(f"{tmp.name} is missing after transfer")
        size = tmp.stat().st_size
        if size == 0:
            raise _EmptyDownload(f"{tmp.name} is empty after transfer")
        return size

    @staticmethod
    def _discard(tmp: Path) -> None:
        try:
            tmp.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove partial download %s: %s", tmp, e)


class _EmptyDownload(Exception):
    """The transfer reported completion but left no usable file."""
