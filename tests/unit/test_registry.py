"""Unit tests for SessionRegistry."""

import asyncio
import logging
import threading

import pytest

from fadersync.errors import NativeAudioError, ScanFailedError
from fadersync.registry import RegistryState, SessionRegistry
from tests.conftest import FakeEnumerator, FakeTarget


class TestRegistryResolve:
    """Test lookups and rebuilds."""

    @pytest.mark.asyncio
    async def test_first_resolve_scans(
        self, registry: SessionRegistry, enumerator: FakeEnumerator, chrome: FakeTarget
    ) -> None:
        """Test an empty registry scans before the lookup."""
        assert registry.state is RegistryState.EMPTY

        assert await registry.resolve("chrome") is chrome
        assert registry.state is RegistryState.FRESH
        assert registry.generation == 1
        assert enumerator.scan_count == 1

    @pytest.mark.asyncio
    async def test_fresh_resolve_does_not_scan(
        self, registry: SessionRegistry, enumerator: FakeEnumerator
    ) -> None:
        """Test a fresh registry serves lookups from its cache."""
        await registry.resolve("chrome")
        await registry.resolve("chrome")
        assert await registry.resolve("spotify") is None
        assert enumerator.scan_count == 1

    @pytest.mark.asyncio
    async def test_pseudo_targets_present(self, registry: SessionRegistry) -> None:
        """Test master and system resolve even with no process sessions."""
        assert await registry.resolve("master") is not None
        assert await registry.resolve("system") is not None

    @pytest.mark.asyncio
    async def test_invalidate_then_concurrent_resolves(self) -> None:
        """Test N concurrent resolves after invalidate trigger one scan."""
        enumerator = FakeEnumerator(lambda: [FakeTarget("chrome")])
        registry = SessionRegistry(enumerator)
        await registry.resolve("chrome")
        registry.invalidate()
        enumerator.gate = asyncio.Event()

        tasks = [asyncio.create_task(registry.resolve("chrome")) for _ in range(10)]
        await asyncio.sleep(0)
        assert registry.state is RegistryState.REBUILD_IN_FLIGHT
        enumerator.gate.set()
        results = await asyncio.gather(*tasks)

        assert enumerator.scan_count == 2
        assert len({id(r) for r in results}) == 1
        assert registry.generation == 2


class TestRegistryRebuild:
    """Test set replacement."""

    @pytest.mark.asyncio
    async def test_rebuild_releases_previous_set(self) -> None:
        """Test every prior target is released once the new set is in."""
        scans: list[list[FakeTarget]] = []

        def _factory() -> list[FakeTarget]:
            scans.append([FakeTarget("chrome"), FakeTarget("spotify")])
            return scans[-1]

        registry = SessionRegistry(FakeEnumerator(_factory))
        await registry.resolve("chrome")
        first = scans[0]

        registry.invalidate()
        assert all(t.release_count == 0 for t in first)
        new_chrome = await registry.resolve("chrome")

        assert new_chrome is scans[1][0]
        assert all(t.release_count == 1 for t in first)
        assert all(t.release_count == 0 for t in scans[1])

    @pytest.mark.asyncio
    async def test_refresh_returns_generation(self, registry: SessionRegistry) -> None:
        """Test a forced refresh always rescans."""
        assert await registry.refresh() == 1
        assert await registry.refresh() == 2
        assert registry.state is RegistryState.FRESH

    @pytest.mark.asyncio
    async def test_invalidate_during_rebuild(self) -> None:
        """Test an invalidate landing mid-scan forces another scan."""
        enumerator = FakeEnumerator(lambda: [FakeTarget("chrome")])
        registry = SessionRegistry(enumerator)
        enumerator.gate = asyncio.Event()

        task = asyncio.create_task(registry.resolve("chrome"))
        await asyncio.sleep(0)
        registry.invalidate()
        enumerator.gate.set()
        assert await task is not None

        assert registry.state is RegistryState.EMPTY
        await registry.resolve("chrome")
        assert enumerator.scan_count == 2

    @pytest.mark.asyncio
    async def test_invalidate_from_other_thread(
        self, registry: SessionRegistry
    ) -> None:
        """Test invalidate is callable off the event loop."""
        await registry.resolve("chrome")
        thread = threading.Thread(target=registry.invalidate)
        thread.start()
        thread.join()
        assert registry.state is RegistryState.EMPTY


class TestRegistryScanFailure:
    """Test failed rebuilds."""

    @pytest.mark.asyncio
    async def test_first_scan_failure_propagates(self) -> None:
        """Test a failure with nothing installed reaches the caller."""
        enumerator = FakeEnumerator()
        enumerator.error = NativeAudioError("enumerate failed")
        registry = SessionRegistry(enumerator)

        with pytest.raises(ScanFailedError):
            await registry.resolve("chrome")
        assert registry.state is RegistryState.EMPTY
        assert registry.generation == 0

    @pytest.mark.asyncio
    async def test_failed_rebuild_keeps_set(
        self,
        registry: SessionRegistry,
        enumerator: FakeEnumerator,
        chrome: FakeTarget,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test a failed rebuild leaves the installed set unchanged."""
        await registry.resolve("chrome")
        before = {t.key: t for t in registry.targets()}
        registry.invalidate()
        enumerator.error = NativeAudioError("enumerate failed")

        with caplog.at_level(logging.WARNING):
            assert await registry.resolve("chrome") is chrome

        assert {t.key: t for t in registry.targets()} == before
        assert chrome.release_count == 0
        assert registry.generation == 1
        assert registry.state is RegistryState.EMPTY
        assert "keeping 3 sessions" in caplog.text

    @pytest.mark.asyncio
    async def test_retries_after_failure(self, enumerator: FakeEnumerator) -> None:
        """Test the next resolve after a failed rebuild scans again."""
        registry = SessionRegistry(enumerator, retry_interval=0.0)
        await registry.resolve("chrome")
        registry.invalidate()
        enumerator.error = NativeAudioError("enumerate failed")
        await registry.resolve("chrome")

        enumerator.error = None
        await registry.resolve("chrome")

        assert enumerator.scan_count == 3
        assert registry.state is RegistryState.FRESH
        assert registry.generation == 2

    @pytest.mark.asyncio
    async def test_backs_off_after_failure(
        self,
        registry: SessionRegistry,
        enumerator: FakeEnumerator,
        chrome: FakeTarget,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test lookups after a failed rebuild reuse the kept set for a while."""
        await registry.resolve("chrome")
        registry.invalidate()
        enumerator.error = NativeAudioError("enumerate failed")

        with caplog.at_level(logging.WARNING):
            for name in ("chrome", "chrome.exe", "chrome", "master"):
                await registry.resolve(name)

        assert enumerator.scan_count == 2
        assert len(caplog.records) == 1
        assert await registry.resolve("chrome") is chrome

    @pytest.mark.asyncio
    async def test_refresh_ignores_back_off(
        self, registry: SessionRegistry, enumerator: FakeEnumerator
    ) -> None:
        """Test an explicit refresh scans even while backing off."""
        await registry.resolve("chrome")
        registry.invalidate()
        enumerator.error = NativeAudioError("enumerate failed")
        await registry.resolve("chrome")

        enumerator.error = None
        assert await registry.refresh() == 2
        assert enumerator.scan_count == 3
        assert registry.state is RegistryState.FRESH


class TestRegistryClose:
    """Test shutdown."""

    @pytest.mark.asyncio
    async def test_close_releases_everything(
        self, registry: SessionRegistry, enumerator: FakeEnumerator, chrome: FakeTarget
    ) -> None:
        """Test close releases targets and the enumerator."""
        await registry.resolve("chrome")
        await registry.close()

        assert chrome.release_count == 1
        assert registry.targets() == []
        assert registry.state is RegistryState.EMPTY
        assert enumerator.closed

    def test_executable_suffix(self) -> None:
        """Test the suffix comes from the enumerator."""
        assert SessionRegistry(FakeEnumerator(suffix=".exe")).executable_suffix == (
            ".exe"
        )
