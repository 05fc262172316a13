import asyncio

import fakeredis


def make_redis(server: fakeredis.FakeServer) -> fakeredis.FakeAsyncRedis:
    """A client on the shared fake medium; one per simulated extension instance"""
    return fakeredis.FakeAsyncRedis(server=server, decode_responses=True)


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.01) -> bool:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()
