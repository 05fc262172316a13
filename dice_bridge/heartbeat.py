import logging
import time
from typing import Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.job import Job
from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from dice_bridge.load_settings import heartbeat_interval, namespaced
from dice_bridge.models.dc_models import Heartbeat

HEARTBEAT_KEY = "metadata"


class HeartbeatPublisher:
    """Writes {timestamp, version} to a shared key on start and every interval."""

    def __init__(
        self,
        redis: Redis,
        version: str,
        interval: int = heartbeat_interval,
        key: Optional[str] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self.redis = redis
        self.version = version
        self.interval = interval
        self.key = key or namespaced(HEARTBEAT_KEY)
        self.owns_scheduler = scheduler is None
        self.scheduler = scheduler or AsyncIOScheduler()
        self.job: Optional[Job] = None

    async def beat(self) -> Optional[Heartbeat]:
        heartbeat = Heartbeat(timestamp=time.time(), version=self.version)
        try:
            await self.redis.set(self.key, heartbeat.model_dump_json(by_alias=True))
        except RedisError as e:
            logging.warning(f"Failed to write heartbeat to {self.key}: {e}")
            return None
        return heartbeat

    async def start(self) -> None:
        if self.job is not None:
            return
        await self.beat()
        self.job = self.scheduler.add_job(self.beat, "interval", seconds=self.interval)
        if self.owns_scheduler and not self.scheduler.running:
            self.scheduler.start()
        logging.info(f"Heartbeat started on {self.key} every {self.interval}s")

    def stop(self) -> None:
        if self.job is None:
            return
        try:
            self.job.remove()
        except JobLookupError:
            pass
        self.job = None
        if self.owns_scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logging.info(f"Heartbeat stopped on {self.key}")

    @property
    def running(self) -> bool:
        return self.job is not None


async def read_heartbeat(redis: Redis, key: Optional[str] = None) -> Optional[Heartbeat]:
    """Read the last heartbeat a responder wrote, if any"""
    try:
        raw = await redis.get(key or namespaced(HEARTBEAT_KEY))
    except RedisError as e:
        logging.warning(f"Failed to read heartbeat: {e}")
        return None
    if raw is None:
        return None
    try:
        return Heartbeat.model_validate_json(raw)
    except ValidationError:
        logging.debug(f"Ignoring malformed heartbeat: {raw}")
        return None


def is_heartbeat_fresh(
    heartbeat: Optional[Heartbeat],
    now: float,
    max_age: Optional[float] = None,
) -> bool:
    """A heartbeat is fresh when it is at most two intervals old by default"""
    if heartbeat is None:
        return False
    if max_age is None:
        max_age = 2 * heartbeat_interval
    return now - heartbeat.timestamp <= max_age
