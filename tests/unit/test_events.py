"""Unit tests for songbook_sync.events."""

from __future__ import annotations

from fakes import T0

from songbook_sync.events import CollectionEvents
from songbook_sync.models.cache import CollectionUpdated

EVENT = CollectionUpdated(collection_id="LPMI", item_count=275, fingerprint="xyz", fetched_at=T0)


class TestCollectionEvents:
    async def test_sync_and_async_handlers_both_receive(self) -> None:
        events = CollectionEvents()
        received: list[str] = []

        async def async_handler(event: CollectionUpdated) -> None:
            received.append(f"async:{event.collection_id}")

        events.subscribe(lambda event: received.append(f"sync:{event.collection_id}"))
        events.subscribe(async_handler)

        await events.publish(EVENT)

        assert received == ["sync:LPMI", "async:LPMI"]

    async def test_unsubscribe(self) -> None:
        events = CollectionEvents()
        received: list[CollectionUpdated] = []

        unsubscribe = events.subscribe(received.append)
        unsubscribe()
        unsubscribe()
        await events.publish(EVENT)

        assert received == []
        assert events.subscriber_count == 0

    async def test_failing_handler_does_not_stop_others(self) -> None:
        events = CollectionEvents()
        received: list[CollectionUpdated] = []

        def broken(event: CollectionUpdated) -> None:
            raise RuntimeError("subscriber bug")

        events.subscribe(broken)
        events.subscribe(received.append)

        await events.publish(EVENT)

        assert received == [EVENT]

    async def test_publish_without_subscribers(self) -> None:
        await CollectionEvents().publish(EVENT)
