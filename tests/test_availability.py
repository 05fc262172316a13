import asyncio
import time

from dice_bridge.availability import AvailabilityProbe, AvailabilityResponder
from dice_bridge.broadcast_channel import BroadcastChannel
from dice_bridge.load_settings import namespaced
from dice_bridge.models.message_models import AvailabilityRequest, AvailabilityResponse
from dice_bridge.request_registry import RequestRegistry
from tests import make_redis, wait_until

CHANNEL = namespaced("integration", "test-plugin")


def test_probe_finds_a_responder(redis_server):
    async def scenario():
        responder_redis, caller_redis = make_redis(redis_server), make_redis(redis_server)
        responder_channel = await BroadcastChannel.open(responder_redis, CHANNEL)
        caller_channel = await BroadcastChannel.open(caller_redis, CHANNEL)
        AvailabilityResponder(responder_channel, "1.0.0").start()
        registry = RequestRegistry()
        probe = AvailabilityProbe(caller_channel, registry, timeout=3.0).start()

        result = await probe.probe()

        await caller_channel.close()
        await responder_channel.close()
        await caller_redis.aclose()
        await responder_redis.aclose()
        return result, len(registry)

    result, pending = asyncio.run(scenario())
    assert result.available is True
    assert result.version == "1.0.0"
    assert pending == 0


def test_probe_without_responder_times_out_as_unavailable(redis_server):
    async def scenario():
        redis = make_redis(redis_server)
        channel = await BroadcastChannel.open(redis, CHANNEL)
        registry = RequestRegistry()
        probe = AvailabilityProbe(channel, registry).start()

        started = time.monotonic()
        result = await probe.probe(timeout=0.2)
        elapsed = time.monotonic() - started

        await channel.close()
        await redis.aclose()
        return result, elapsed, len(registry)

    result, elapsed, pending = asyncio.run(scenario())
    assert result.available is False
    assert result.version is None
    assert 0.19 <= elapsed < 1.0
    assert pending == 0


def test_duplicate_responses_resolve_the_probe_once(redis_server):
    async def scenario():
        redis = make_redis(redis_server)
        channel = await BroadcastChannel.open(redis, CHANNEL)
        registry = RequestRegistry()
        probe = AvailabilityProbe(channel, registry, new_request_id=lambda: "req-1")

        task = asyncio.create_task(probe.probe(timeout=3.0))
        await asyncio.sleep(0)
        probe.on_message(AvailabilityResponse(request_id="req-1", available=True, version="1.0.0"))
        probe.on_message(AvailabilityResponse(request_id="req-1", available=True, version="2.0.0"))
        result = await task

        await channel.close()
        await redis.aclose()
        return result

    result = asyncio.run(scenario())
    assert result.available is True
    assert result.version == "1.0.0"


def test_responder_answers_every_request(redis_server):
    async def scenario():
        redis = make_redis(redis_server)
        channel = await BroadcastChannel.open(redis, CHANNEL)
        responder = AvailabilityResponder(channel, "1.2.3").start()
        answers = []
        channel.subscribe(
            lambda message: answers.append(message) if isinstance(message, AvailabilityResponse) else None
        )

        await channel.publish(AvailabilityRequest(request_id="q-1"))
        await channel.publish(AvailabilityRequest(request_id="q-1"))
        await wait_until(lambda: len(answers) == 2)
        responder.stop()
        responder.stop()

        await channel.close()
        await redis.aclose()
        return answers

    answers = asyncio.run(scenario())
    assert [(a.request_id, a.available, a.version) for a in answers] == [
        ("q-1", True, "1.2.3"),
        ("q-1", True, "1.2.3"),
    ]


def test_probe_on_disabled_channel_reports_unavailable():
    async def scenario():
        channel = await BroadcastChannel.open(None, CHANNEL)
        registry = RequestRegistry()
        return await AvailabilityProbe(channel, registry).start().probe(timeout=5.0), len(registry)

    result, pending = asyncio.run(scenario())
    assert result.available is False
    assert pending == 0


def test_teardown_settles_a_running_probe(redis_server):
    async def scenario():
        redis = make_redis(redis_server)
        channel = await BroadcastChannel.open(redis, CHANNEL)
        registry = RequestRegistry()
        probe = AvailabilityProbe(channel, registry).start()

        task = asyncio.create_task(probe.probe(timeout=30.0))
        await wait_until(lambda: len(registry) == 1)
        registry.cancel_all()
        result = await asyncio.wait_for(task, timeout=1.0)

        await channel.close()
        await redis.aclose()
        return result

    assert asyncio.run(scenario()).available is False
