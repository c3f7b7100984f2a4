"""
Tests for installation detection — majority vote, soft-failing probes,
concrete probe helpers.
"""

from __future__ import annotations

import asyncio
import sys

import pytest

from src.core.services.installer.detection.probes import (
    InstallationDetector,
    Probe,
    binary_on_path_probe,
    majority,
    path_exists_probe,
    tcp_port_probe,
    version_query_probe,
)
from src.core.services.installer.errors import ProbeError
from src.core.services.installer.execution.process_runner import ProcessRunner

from tests.helpers import const_probe, failing_probe


def _detector(*values) -> InstallationDetector:
    probes = []
    for i, v in enumerate(values):
        name = f"p{i}"
        probes.append(failing_probe(name) if v == "error" else const_probe(name, v))
    return InstallationDetector(probes)


class TestMajority:
    @pytest.mark.parametrize("votes, expected", [
        ((True, True, False), True),
        ((True, False, False), False),
        ((False, True, True), True),
        ((True, True, True), True),
        ((False, False, False), False),
        ((True,), True),
        ((True, False, True, False, True), True),
    ])
    def test_strict_majority(self, votes, expected):
        assert majority(votes) is expected

    @pytest.mark.parametrize("votes", [(), (True, False)])
    def test_needs_odd_nonempty(self, votes):
        with pytest.raises(ValueError):
            majority(votes)


class TestDetector:
    @pytest.mark.asyncio
    async def test_two_of_three_is_installed(self):
        verdict = await _detector(True, True, False).detect()
        assert verdict.installed
        assert verdict.passed == 2
        assert verdict.votes == {"p0": True, "p1": True, "p2": False}

    @pytest.mark.asyncio
    async def test_one_of_three_is_not_installed(self):
        assert not (await _detector(True, False, False).detect()).installed

    @pytest.mark.asyncio
    async def test_error_counts_as_false(self):
        verdict = await _detector("error", True, True).detect()
        assert verdict.installed
        assert verdict.votes["p0"] is False

    @pytest.mark.asyncio
    async def test_probe_error_is_absorbed(self):
        detector = InstallationDetector([
            failing_probe("a", ProbeError("no systemd")),
            failing_probe("b"),
            const_probe("c", True),
        ])
        verdict = await detector.detect()
        assert not verdict.installed

    @pytest.mark.asyncio
    async def test_slow_probe_times_out_as_false(self):
        async def hang() -> bool:
            await asyncio.sleep(60)
            return True

        detector = InstallationDetector(
            [Probe("slow", hang), const_probe("b", True), const_probe("c", False)],
            timeout=0.05,
        )
        verdict = await detector.detect()
        assert verdict.votes["slow"] is False
        assert not verdict.installed

    @pytest.mark.asyncio
    async def test_idempotent(self):
        detector = _detector(True, "error", True)
        first = await detector.detect()
        second = await detector.detect()
        assert first.installed == second.installed
        assert first.votes == second.votes

    def test_even_probe_count_rejected(self):
        with pytest.raises(ValueError):
            InstallationDetector([const_probe("a", True), const_probe("b", True)])

    def test_duplicate_names_rejected(self):
        with pytest.raises(ValueError):
            InstallationDetector([const_probe("a", True)] * 3)


class TestConcreteProbes:
    @pytest.mark.asyncio
    async def test_binary_on_path(self):
        assert await binary_on_path_probe("definitely-not-installed-xyz").vote() is False

    @pytest.mark.asyncio
    async def test_path_exists(self, tmp_path):
        assert await path_exists_probe(str(tmp_path)).vote() is True
        assert await path_exists_probe(str(tmp_path / "missing")).vote() is False

    @pytest.mark.asyncio
    async def test_version_query_reads_first_line(self):
        probe = version_query_probe(ProcessRunner(), sys.executable)
        assert await probe.vote() is True

    @pytest.mark.asyncio
    async def test_version_query_missing_binary(self):
        probe = version_query_probe(ProcessRunner(), "definitely-not-installed-xyz")
        assert await probe.vote() is False

    @pytest.mark.asyncio
    async def test_tcp_port(self):
        server = await asyncio.start_server(lambda r, w: w.close(), "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            assert await tcp_port_probe("127.0.0.1", port).vote() is True
        finally:
            server.close()
            await server.wait_closed()
        assert await tcp_port_probe("127.0.0.1", port, timeout=0.5).vote() is False
