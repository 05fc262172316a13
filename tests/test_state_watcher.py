import asyncio

from dice_bridge.broadcast_channel import BroadcastChannel, parse_subject
from dice_bridge.models.dc_models import DiceRoll, DiceStyle, DiceType, DieInstance
from dice_bridge.request_registry import RequestRegistry, roll_request_key
from dice_bridge.roll_state_store import RollStateStore
from dice_bridge.state_watcher import ROLL_COMPLETE, ROLL_STARTED, DiceEventEmitter, StateWatcher
from tests import make_redis, wait_until

NAMESPACE = "test-plugin"


def make_roll(roll_id, *instance_ids):
    return DiceRoll(
        roll_id=roll_id,
        dice=[DieInstance(id=i, style=DiceStyle.MYZBASE, type=DiceType.D6) for i in instance_ids],
    )


async def open_watcher(redis):
    store = RollStateStore(redis, NAMESPACE)
    channel = await BroadcastChannel.open(redis, store.channel, parser=parse_subject)
    registry = RequestRegistry()
    events = DiceEventEmitter()
    watcher = StateWatcher(store, channel, registry, events, clock=lambda: 42.0).start()
    return store, channel, registry, events, watcher


def test_completion_resolves_the_pending_roll_once(redis_server):
    async def scenario():
        redis = make_redis(redis_server)
        store, channel, registry, events, watcher = await open_watcher(redis)
        started, completed = [], []
        events.on(ROLL_STARTED, started.append)
        events.on(ROLL_COMPLETE, completed.append)
        future = registry.wait_for(roll_request_key("r-1"), timeout=5.0)

        await store.start_roll("p-1", make_roll("r-1", "a", "b"))
        await store.set_value("p-1", "a", 3)
        await wait_until(lambda: started)
        pending_after_one_die = registry.is_pending(roll_request_key("r-1"))
        await store.set_value("p-1", "b", 5)
        result = await asyncio.wait_for(future, timeout=2.0)
        # repeated notifications for a finished roll change nothing
        await store.notify("p-1")
        await store.notify("p-1")
        await asyncio.sleep(0.1)

        watcher.stop()
        await channel.close()
        await redis.aclose()
        return result, started, completed, pending_after_one_die

    result, started, completed, pending_after_one_die = asyncio.run(scenario())
    assert pending_after_one_die is True
    assert result.player_id == "p-1"
    assert result.individual_results == {"a": 3, "b": 5}
    assert result.final_value == 8
    assert result.dice_roll.roll_id == "r-1"
    assert len(started) == 1
    assert started[0].timestamp == 42.0
    assert completed == [result]


def test_newer_roll_for_the_same_player_is_not_confused(redis_server):
    async def scenario():
        redis = make_redis(redis_server)
        store, channel, registry, events, watcher = await open_watcher(redis)
        first = registry.wait_for(roll_request_key("r-1"), timeout=5.0)
        second = registry.wait_for(roll_request_key("r-2"), timeout=5.0)

        await store.start_roll("p-1", make_roll("r-1", "a"))
        await store.start_roll("p-1", make_roll("r-2", "x", "y"))
        await store.set_value("p-1", "x", 1)
        await store.set_value("p-1", "y", 6)
        result = await asyncio.wait_for(second, timeout=2.0)
        first_done = first.done()

        registry.cancel_all()
        watcher.stop()
        await channel.close()
        await redis.aclose()
        return result, first_done

    result, first_done = asyncio.run(scenario())
    assert result.final_value == 7
    assert first_done is False


def test_roll_without_id_only_raises_events(redis_server):
    async def scenario():
        redis = make_redis(redis_server)
        store, channel, registry, events, watcher = await open_watcher(redis)
        completed = []
        events.on(ROLL_COMPLETE, completed.append)
        await store.start_roll("p-2", make_roll(None, "a"))
        await store.set_value("p-2", "a", 4)
        await wait_until(lambda: completed)

        watcher.stop()
        await channel.close()
        await redis.aclose()
        return completed

    completed = asyncio.run(scenario())
    assert len(completed) == 1
    assert completed[0].player_id == "p-2"
    assert completed[0].final_value == 4


def test_empty_roll_completes_immediately(redis_server):
    async def scenario():
        redis = make_redis(redis_server)
        store, channel, registry, events, watcher = await open_watcher(redis)
        future = registry.wait_for(roll_request_key("empty"), timeout=5.0)
        await store.start_roll("p-1", make_roll("empty"))
        result = await asyncio.wait_for(future, timeout=2.0)

        watcher.stop()
        await channel.close()
        await redis.aclose()
        return result

    result = asyncio.run(scenario())
    assert result.individual_results == {}
    assert result.final_value == 0


def test_refresh_catches_up_without_notifications(redis_server):
    async def scenario():
        redis = make_redis(redis_server)
        writer = RollStateStore(redis, NAMESPACE)
        await writer.start_roll("p-1", make_roll("r-1", "a"))
        await writer.set_value("p-1", "a", 2)
        await writer.start_roll("p-2", make_roll("r-2", "b"))

        store, channel, registry, events, watcher = await open_watcher(redis)
        results = await watcher.refresh()
        again = await watcher.refresh()

        watcher.stop()
        await channel.close()
        await redis.aclose()
        return results, again

    results, again = asyncio.run(scenario())
    assert [(r.player_id, r.final_value) for r in results] == [("p-1", 2)]
    assert again == []


def test_event_listener_errors_are_contained():
    async def scenario():
        events = DiceEventEmitter()
        seen = []

        def explode(data):
            raise RuntimeError("listener bug")

        events.on(ROLL_COMPLETE, explode)
        off = events.on(ROLL_COMPLETE, seen.append)
        await events.emit(ROLL_COMPLETE, "first")
        off()
        off()
        await events.emit(ROLL_COMPLETE, "second")
        return seen

    assert asyncio.run(scenario()) == ["first"]
