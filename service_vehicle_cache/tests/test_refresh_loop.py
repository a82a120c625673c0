"""
Unit tests for the per-track refresh loop.
"""

import asyncio
import json
import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_vehicle_cache.app.documents import (
    EMPTY_FEATURE_COLLECTION,
    PRIMARY_TRACK,
    alternate_track,
)
from service_vehicle_cache.app.refresh.detector import RefreshStatus
from service_vehicle_cache.app.refresh.loop import LoopState, RefreshLoop
from service_vehicle_cache.app.snapshot.store import SnapshotStore
from service_vehicle_cache.app.storage.local_copies import LocalCopyStore
from shared.errors import BootstrapError
from shared.metrics import MetricsCollector
from fakes import InMemoryObjectClient, RecordingSleep, DocumentFactory


class TestRefreshLoop:
    """Test cases for RefreshLoop."""

    @pytest.fixture
    def client(self):
        client = InMemoryObjectClient()
        DocumentFactory.seed(client)
        DocumentFactory.seed(client, prefix="dev_")
        return client

    @pytest.fixture
    def store(self):
        return SnapshotStore()

    @pytest.fixture
    def sleep(self):
        return RecordingSleep()

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("vehicle-cache")

    @pytest.fixture
    def make_loop(self, client, store, sleep, metrics, tmp_path):
        def _make(track=PRIMARY_TRACK, **kwargs):
            kwargs.setdefault("poll_interval", 2.0)
            return RefreshLoop(
                track,
                client,
                LocalCopyStore(tmp_path),
                store,
                metrics=metrics,
                sleep=sleep,
                **kwargs
            )
        return _make

    @pytest.mark.asyncio
    async def test_bootstrap_publishes_shapes(self, make_loop, store):
        """Test that bootstrap loads shapes before polling starts."""
        loop = make_loop()

        await loop.bootstrap()

        assert store.get("shapes.json") == DocumentFactory.shapes()
        assert loop.state is LoopState.POLLING
        assert "vehicles.json" not in store

    @pytest.mark.asyncio
    async def test_bootstrap_failure_is_fatal(self, make_loop, client, store):
        """Test that a missing shapes document raises instead of retrying."""
        client.fail("shapes.json", "access denied")
        loop = make_loop()

        with pytest.raises(BootstrapError) as exc_info:
            await loop.bootstrap()

        assert exc_info.value.code == "BOOTSTRAP_ERROR"
        assert exc_info.value.details["key"] == "shapes.json"
        assert loop.state is LoopState.BOOTSTRAPPING
        assert "shapes.json" not in store
        assert client.stat_calls == ["shapes.json"]

    @pytest.mark.asyncio
    async def test_bootstrap_reuses_unchanged_local_copy(self, make_loop, client, sleep, tmp_path):
        """Test that an unchanged shapes object is published from the local copy."""
        await make_loop().bootstrap()
        other_store = SnapshotStore()
        loop = RefreshLoop(PRIMARY_TRACK, client, LocalCopyStore(tmp_path), other_store, sleep=sleep)

        await loop.bootstrap()

        assert other_store.get("shapes.json") == DocumentFactory.shapes()
        assert client.get_calls == ["shapes.json"]

    @pytest.mark.asyncio
    async def test_poll_publishes_changes(self, make_loop, store):
        """Test that the first poll publishes alerts and vehicles verbatim."""
        loop = make_loop()
        await loop.bootstrap()

        results = await loop.poll()

        assert set(results) == {"alerts", "vehicles"}
        assert all(r.status is RefreshStatus.CHANGED for r in results.values())
        assert store.get("alerts.json") == DocumentFactory.alerts()
        assert store.get("vehicles.json") == DocumentFactory.vehicles()
        assert loop.stale_count == 0

    @pytest.mark.asyncio
    async def test_shapes_is_not_polled(self, make_loop, client):
        """Test that shapes is only loaded at bootstrap."""
        loop = make_loop()
        await loop.bootstrap()
        client.stat_calls.clear()

        await loop.poll()

        assert "shapes.json" not in client.stat_calls

    @pytest.mark.asyncio
    async def test_unchanged_poll_does_not_write(self, make_loop, store):
        """Test that unchanged polls neither rewrite files nor touch the store."""
        loop = make_loop()
        await loop.bootstrap()
        await loop.poll()
        versions = {key: store.version(key) for key in store.keys()}
        mtime = loop.copies.stat("vehicles.json").st_mtime_ns

        results = await loop.poll()

        assert all(r.status is RefreshStatus.UNCHANGED for r in results.values())
        assert {key: store.version(key) for key in store.keys()} == versions
        assert loop.copies.stat("vehicles.json").st_mtime_ns == mtime

    @pytest.mark.asyncio
    async def test_change_visible_after_one_pass(self, make_loop, client, store):
        """Test that a remote update is published within one polling pass."""
        loop = make_loop()
        await loop.bootstrap()
        await loop.poll()
        await loop.poll()
        assert loop.stale_count == 1

        updated = DocumentFactory.vehicles(5)
        client.put("vehicles.json", updated)
        await loop.poll()

        assert store.get("vehicles.json") == updated
        assert loop.stale_count == 0

    @pytest.mark.asyncio
    async def test_alerts_change_resets_staleness(self, make_loop, client):
        """Test that a change to any polled document resets the counter."""
        loop = make_loop()
        await loop.bootstrap()
        await loop.poll()
        await loop.poll()
        await loop.poll()
        assert loop.stale_count == 2

        client.put("alerts.json", DocumentFactory.alerts(4))
        await loop.poll()

        assert loop.stale_count == 0

    @pytest.mark.asyncio
    async def test_changing_alerts_hold_off_placeholder(self, make_loop, client, store, sleep):
        """Test that a stalled vehicles feed is kept while alerts keep changing."""
        loop = make_loop(stale_threshold=3)
        await loop.bootstrap()
        await loop.poll()

        for i in range(5):
            client.put("alerts.json", DocumentFactory.alerts(i + 2))
            await loop.step()

        assert loop.stale_count == 0
        assert store.get("vehicles.json") == DocumentFactory.vehicles()
        assert sleep.calls == [2.0] * 5

    @pytest.mark.asyncio
    async def test_fetch_failure_counts_as_no_change(self, make_loop, client, store):
        """Test that failures keep the last good content and advance staleness."""
        loop = make_loop()
        await loop.bootstrap()
        await loop.poll()
        client.fail("vehicles.json")

        results = await loop.poll()

        assert results["vehicles"].status is RefreshStatus.FETCH_FAILED
        assert store.get("vehicles.json") == DocumentFactory.vehicles()
        assert loop.stale_count == 1

    @pytest.mark.asyncio
    async def test_local_copy_error_does_not_abort_pass(self, client, store, sleep, tmp_path):
        """Test that a filesystem error on one document leaves the rest of the pass intact."""

        class UnreadableAlerts(LocalCopyStore):
            def stat(self, key):
                if key == "alerts.json":
                    raise PermissionError("permission denied")
                return super().stat(key)

        loop = RefreshLoop(PRIMARY_TRACK, client, UnreadableAlerts(tmp_path), store, sleep=sleep)
        await loop.bootstrap()

        results = await loop.poll()

        assert results["alerts"].status is RefreshStatus.FETCH_FAILED
        assert results["vehicles"].status is RefreshStatus.CHANGED
        assert store.get("vehicles.json") == DocumentFactory.vehicles()
        assert "alerts.json" not in store
        assert loop.passes == 1

    @pytest.mark.asyncio
    async def test_step_sleeps_poll_interval(self, make_loop, sleep):
        loop = make_loop(poll_interval=2.0)
        await loop.bootstrap()

        await loop.step()

        assert sleep.calls == [2.0]

    @pytest.mark.asyncio
    async def test_placeholder_after_exactly_sixty_stale_passes(self, make_loop, store, sleep, metrics):
        """Test the stale fallback threshold and the linear backoff."""
        loop = make_loop()
        await loop.bootstrap()
        await loop.step()
        assert store.get("vehicles.json") == DocumentFactory.vehicles()

        for _ in range(59):
            await loop.step()
        assert loop.stale_count == 59
        assert store.get("vehicles.json") == DocumentFactory.vehicles()
        assert 59 not in sleep.calls

        sleep.calls.clear()
        await loop.step()

        assert loop.stale_count == 60
        assert store.get("vehicles.json") == EMPTY_FEATURE_COLLECTION
        assert json.loads(store.get("vehicles.json")) == {"type": "FeatureCollection", "features": []}
        assert sleep.calls == [60, 2.0]
        assert loop.state is LoopState.POLLING
        assert metrics.sample("vc_stale_fallbacks_total", track="live") == 1.0

    @pytest.mark.asyncio
    async def test_backoff_grows_until_real_change(self, make_loop, client, store, sleep):
        """Test that the counter is retained after fallback and reset by a change."""
        loop = make_loop(stale_threshold=3)
        await loop.bootstrap()
        await loop.step()
        for _ in range(3):
            await loop.step()
        sleep.calls.clear()

        await loop.step()
        assert sleep.calls == [4, 2.0]
        assert store.get("vehicles.json") == EMPTY_FEATURE_COLLECTION

        updated = DocumentFactory.vehicles(7)
        client.put("vehicles.json", updated)
        sleep.calls.clear()
        await loop.step()

        assert loop.stale_count == 0
        assert sleep.calls == [2.0]
        assert store.get("vehicles.json") == updated

    @pytest.mark.asyncio
    async def test_tracks_are_isolated(self, make_loop, client, store):
        """Test that each track writes only its own namespaced keys."""
        live = make_loop(PRIMARY_TRACK)
        dev = make_loop(alternate_track("dev_"))
        await live.bootstrap()
        await dev.bootstrap()
        await live.poll()
        await dev.poll()

        dev_vehicles = DocumentFactory.vehicles(9)
        client.put("dev_vehicles.json", dev_vehicles)
        await live.poll()
        await dev.poll()

        assert store.get("dev_vehicles.json") == dev_vehicles
        assert store.get("vehicles.json") == DocumentFactory.vehicles()
        assert live.stale_count == 1
        assert dev.stale_count == 0
        assert live.detector is not dev.detector

    @pytest.mark.asyncio
    async def test_run_survives_unexpected_errors(self, make_loop, sleep):
        """Test that a pass raising unexpectedly does not end the loop."""
        loop = make_loop()
        await loop.bootstrap()
        calls = []

        async def flaky_step():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")
            if len(calls) == 3:
                raise asyncio.CancelledError()

        loop.step = flaky_step

        with pytest.raises(asyncio.CancelledError):
            await loop.run()

        assert len(calls) == 3
        assert sleep.calls == [2.0]

    @pytest.mark.asyncio
    async def test_status(self, make_loop):
        loop = make_loop()
        assert loop.status()["state"] == "bootstrapping"
        await loop.bootstrap()
        await loop.poll()

        status = loop.status()

        assert status["state"] == "polling"
        assert status["stale_passes"] == 0
        assert status["passes"] == 1
        assert set(status["last_change"]) == {"shapes", "alerts", "vehicles"}

    def test_requires_documents(self, client, store, tmp_path):
        with pytest.raises(ValueError):
            RefreshLoop(PRIMARY_TRACK, client, LocalCopyStore(tmp_path), store, documents=())
