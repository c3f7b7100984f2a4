"""
Tests for the download orchestrator — retry/backoff, size probe
fallback, verification, atomic promotion.
"""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest

import src.core.services.installer.execution.download as download_mod
from src.core.reliability.backoff import BackoffPolicy
from src.core.services.installer.errors import DownloadFailure
from src.core.services.installer.execution.download import (
    FALLBACK_TOTAL_BYTES,
    DownloadOrchestrator,
    partial_path,
    promote,
    staging_path,
)
from src.core.services.installer.progress import DOWNLOAD_PROGRESS, INSTALL_ERROR, ProgressEmitter

from tests.helpers import payloads

URL = "https://downloads.example.test/mongodb.msi"
BODY = b"MSI" * 10_000


class FlakyServer:
    """MockTransport handler failing the first ``failures`` GETs."""

    def __init__(self, failures: int = 0, *, body: bytes = BODY, head_length: bool = True) -> None:
        self.failures = failures
        self.body = body
        self.head_length = head_length
        self.gets = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "HEAD":
            if not self.head_length:
                return httpx.Response(405, request=request)
            return httpx.Response(
                200, request=request, headers={"content-length": str(len(self.body))},
            )
        self.gets += 1
        if self.gets <= self.failures:
            raise httpx.ConnectError("connection reset", request=request)
        return httpx.Response(200, request=request, content=self.body)


def _orchestrator(bus, server: FlakyServer, sleeps: list[float]) -> DownloadOrchestrator:
    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    return DownloadOrchestrator(
        ProgressEmitter(bus),
        client_factory=lambda: httpx.AsyncClient(transport=httpx.MockTransport(server)),
        sleep=fake_sleep,
    )


class TestRetry:
    @pytest.mark.asyncio
    async def test_succeeds_on_third_attempt(self, bus, tmp_path: Path):
        server = FlakyServer(failures=2)
        sleeps: list[float] = []
        dest = tmp_path / "mongodb.msi"

        size = await _orchestrator(bus, server, sleeps).download(URL, dest)

        assert size == len(BODY)
        assert dest.read_bytes() == BODY
        assert not partial_path(dest).exists()
        assert server.gets == 3
        assert sleeps == [2.0, 4.0]
        assert len(payloads(bus, INSTALL_ERROR)) == 2

    @pytest.mark.asyncio
    async def test_all_attempts_fail(self, bus, tmp_path: Path):
        server = FlakyServer(failures=99)
        sleeps: list[float] = []
        dest = tmp_path / "mongodb.msi"

        with pytest.raises(DownloadFailure) as exc:
            await _orchestrator(bus, server, sleeps).download(URL, dest)

        assert exc.value.attempts == 5
        assert "connection reset" in exc.value.reason
        assert server.gets == 5
        assert sleeps == [2.0, 4.0, 8.0, 16.0]
        assert not dest.exists()
        assert not partial_path(dest).exists()

    @pytest.mark.asyncio
    async def test_empty_body_is_retried(self, bus, tmp_path: Path):
        class EmptyThenFull(FlakyServer):
            def __call__(self, request):  # type: ignore[no-untyped-def]
                if request.method == "GET" and self.gets == 0:
                    self.gets += 1
                    return httpx.Response(200, request=request, content=b"")
                return super().__call__(request)

        server = EmptyThenFull()
        sleeps: list[float] = []
        dest = tmp_path / "mongodb.msi"
        await _orchestrator(bus, server, sleeps).download(URL, dest)
        assert dest.read_bytes() == BODY
        assert sleeps == [2.0]

    @pytest.mark.asyncio
    async def test_http_error_status_is_retried(self, bus, tmp_path: Path):
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "HEAD":
                return httpx.Response(200, request=request)
            calls["n"] += 1
            if calls["n"] == 1:
                return httpx.Response(503, request=request)
            return httpx.Response(200, request=request, content=BODY)

        sleeps: list[float] = []

        async def fake_sleep(delay: float) -> None:
            sleeps.append(delay)

        orch = DownloadOrchestrator(
            ProgressEmitter(bus),
            client_factory=lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            sleep=fake_sleep,
        )
        await orch.download(URL, tmp_path / "f.msi")
        assert sleeps == [2.0]

    @pytest.mark.asyncio
    async def test_custom_policy(self, bus, tmp_path: Path):
        sleeps: list[float] = []

        async def fake_sleep(delay: float) -> None:
            sleeps.append(delay)

        orch = DownloadOrchestrator(
            ProgressEmitter(bus),
            policy=BackoffPolicy(max_attempts=2),
            client_factory=lambda: httpx.AsyncClient(
                transport=httpx.MockTransport(FlakyServer(failures=99)),
            ),
            sleep=fake_sleep,
        )
        with pytest.raises(DownloadFailure) as exc:
            await orch.download(URL, tmp_path / "f.msi")
        assert exc.value.attempts == 2
        assert sleeps == [2.0]


class TestProgress:
    @pytest.mark.asyncio
    async def test_progress_is_clamped_and_ends_at_100(self, bus, tmp_path: Path):
        await _orchestrator(bus, FlakyServer(), []).download(URL, tmp_path / "f.msi")
        events = payloads(bus, DOWNLOAD_PROGRESS)
        assert events[0]["bytesDownloaded"] == 0
        assert events[-1] == {
            "bytesDownloaded": len(BODY),
            "totalBytes": len(BODY),
            "percentage": 100.0,
        }
        assert all(0.0 <= e["percentage"] <= 100.0 for e in events)

    @pytest.mark.asyncio
    async def test_size_probe_fallback(self, bus, tmp_path: Path):
        server = FlakyServer(head_length=False)
        await _orchestrator(bus, server, []).download(URL, tmp_path / "f.msi")
        first = payloads(bus, DOWNLOAD_PROGRESS)[0]
        assert first["totalBytes"] == FALLBACK_TOTAL_BYTES


class TestPromote:
    def test_rename(self, tmp_path: Path):
        tmp = tmp_path / "a.tmp"
        tmp.write_bytes(b"data")
        dest = tmp_path / "a"
        promote(tmp, dest)
        assert dest.read_bytes() == b"data"
        assert not tmp.exists()

    def test_copy_fallback(self, tmp_path: Path, monkeypatch):
        _no_rename_from_partial(monkeypatch)
        tmp = tmp_path / "b.tmp"
        tmp.write_bytes(b"data")
        dest = tmp_path / "b"
        promote(tmp, dest)
        assert dest.read_bytes() == b"data"
        assert not tmp.exists()
        assert not staging_path(dest).exists()

    def test_failed_copy_leaves_no_final_file(self, tmp_path: Path, monkeypatch):
        _no_rename_from_partial(monkeypatch)
        _disk_full_copy(monkeypatch)
        tmp = tmp_path / "c.tmp"
        tmp.write_bytes(b"data" * 100)
        dest = tmp_path / "c"
        with pytest.raises(OSError, match="No space left"):
            promote(tmp, dest)
        assert not dest.exists()
        assert not staging_path(dest).exists()
        assert tmp.exists()

    @pytest.mark.asyncio
    async def test_download_with_failing_copy_never_creates_dest(
        self, bus, tmp_path: Path, monkeypatch,
    ):
        _no_rename_from_partial(monkeypatch)
        _disk_full_copy(monkeypatch)

        async def fake_sleep(delay: float) -> None:
            pass

        orch = DownloadOrchestrator(
            ProgressEmitter(bus),
            policy=BackoffPolicy(max_attempts=2),
            client_factory=lambda: httpx.AsyncClient(
                transport=httpx.MockTransport(FlakyServer()),
            ),
            sleep=fake_sleep,
        )
        dest = tmp_path / "mongodb.msi"
        with pytest.raises(DownloadFailure, match="No space left"):
            await orch.download(URL, dest)
        assert not dest.exists()
        assert not partial_path(dest).exists()
        assert not staging_path(dest).exists()


def _no_rename_from_partial(monkeypatch) -> None:  # type: ignore[no-untyped-def]
    """Make renames out of ``*.tmp`` fail as they would across filesystems."""
    real_replace = download_mod.os.replace

    def cross_device_replace(src, dst):  # type: ignore[no-untyped-def]
        if str(src).endswith(".tmp"):
            raise OSError("cross-device link")
        real_replace(src, dst)

    monkeypatch.setattr(download_mod.os, "replace", cross_device_replace)


def _disk_full_copy(monkeypatch) -> None:  # type: ignore[no-untyped-def]
    """Copies write a few bytes to the target and then run out of space."""

    def truncated_copy(src, dst):  # type: ignore[no-untyped-def]
        Path(dst).write_bytes(b"0123456789")
        raise OSError("No space left on device")

    monkeypatch.setattr(download_mod.shutil, "copyfile", truncated_copy)
