"""Tests for the latest-value snapshot stream."""

import pytest

from marketplace_checkout.orchestrator.session import CheckoutPhase
from marketplace_checkout.streaming import SnapshotStream


class TestSnapshotStream:
    async def test_subscriber_receives_current_value_first(self):
        stream = SnapshotStream(0, name="test")
        updates = stream.subscribe()

        assert await updates.__anext__() == 0
        assert stream.subscriber_count == 1

    async def test_slow_subscriber_skips_to_latest(self):
        stream = SnapshotStream(0, name="test")
        updates = stream.subscribe()
        await updates.__anext__()

        stream.publish(1)
        stream.publish(2)
        stream.publish(3)

        assert await updates.__anext__() == 3
        assert stream.value == 3

    async def test_close_ends_iteration(self):
        stream = SnapshotStream("a", name="test")
        updates = stream.subscribe()
        await updates.__anext__()

        stream.close()

        with pytest.raises(StopAsyncIteration):
            await updates.__anext__()
        assert stream.subscriber_count == 0


class TestOrchestratorSnapshots:
    async def test_mutations_publish_snapshots(self, orchestrator, toronto):
        updates = orchestrator.changes.subscribe()
        first = await updates.__anext__()
        assert first.phase == CheckoutPhase.EMPTY

        await orchestrator.initialize()
        latest = await updates.__anext__()

        assert latest.phase == CheckoutPhase.CART_READY
        assert latest.order_summary.total == 130.0

    async def test_published_snapshot_is_detached(self, orchestrator, toronto):
        orchestrator.update_shipping_location(toronto)
        published = orchestrator.changes.value

        published.shipping_location.city = None

        assert orchestrator.snapshot.shipping_location.city is not None

    async def test_reset_publishes_new_generation(self, orchestrator):
        orchestrator.reset()

        assert orchestrator.changes.value.generation == 1
        assert orchestrator.changes.value.phase == CheckoutPhase.EMPTY
