import asyncio
import threading

import pytest

from campusnet.core.realtime import RealtimeHub, SeenIds, group_topic, merge_by_id


@pytest.mark.asyncio
async def test_publish_reaches_only_topic_subscribers(hub):
    with hub.subscription(group_topic("g1")) as first, hub.subscription(group_topic("g2")) as other:
        delivered = hub.publish(group_topic("g1"), {"id": "m1"})

        assert delivered == 1
        assert (await first.get(timeout=1))["id"] == "m1"
        assert other.pending() == 0


@pytest.mark.asyncio
async def test_subscription_released_when_scope_exits(hub):
    with hub.subscription("room:r1") as subscription:
        assert hub.subscriber_count("room:r1") == 1

    assert hub.subscriber_count("room:r1") == 0
    assert subscription.active is False
    assert hub.publish("room:r1", {"id": "m1"}) == 0
    assert subscription.pending() == 0


@pytest.mark.asyncio
async def test_event_filter(hub):
    with hub.subscription("group:g1", event_filter=lambda e: e.get("sender_id") != "me") as subscription:
        hub.publish("group:g1", {"id": "1", "sender_id": "me"})
        hub.publish("group:g1", {"id": "2", "sender_id": "you"})

        assert (await subscription.get(timeout=1))["id"] == "2"
        assert subscription.pending() == 0


@pytest.mark.asyncio
async def test_full_queue_drops_oldest():
    hub = RealtimeHub(queue_size=2)
    with hub.subscription("group:g1") as subscription:
        for i in range(3):
            hub.publish("group:g1", {"id": str(i)})

        assert [(await subscription.get(timeout=1))["id"] for _ in range(2)] == ["1", "2"]


@pytest.mark.asyncio
async def test_publish_from_worker_thread(hub):
    with hub.subscription("group:g1") as subscription:
        worker = threading.Thread(target=hub.publish, args=("group:g1", {"id": "t1"}))
        worker.start()
        worker.join()

        event = await subscription.get(timeout=1)
    assert event["id"] == "t1"


@pytest.mark.asyncio
async def test_get_times_out(hub):
    with hub.subscription("group:g1") as subscription:
        with pytest.raises(asyncio.TimeoutError):
            await subscription.get(timeout=0.01)


def test_seen_ids_deduplicates_and_is_bounded():
    seen = SeenIds(limit=2)
    assert seen.add("a") is True
    assert seen.add("a") is False
    seen.add("b")
    seen.add("c")
    assert "a" not in seen
    assert "c" in seen
    assert len(seen) == 2


def test_merge_by_id_replaces_duplicates():
    displayed = [{"id": "1", "content": "one"}, {"id": "2", "content": "two"}]
    incoming = [{"id": "2", "content": "two (confirmed)"}, {"id": "3", "content": "three"}]

    merged = merge_by_id(displayed, incoming)

    assert [m["id"] for m in merged] == ["1", "2", "3"]
    assert merged[1]["content"] == "two (confirmed)"
