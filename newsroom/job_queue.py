"""Durable job queue with delayed jobs, capped retries and exponential backoff.

Delivery is at-least-once: a claimed job holds a lease, and a job whose
lease runs out (worker crashed mid-run) is handed out again. Every claim
spends one attempt, so a job that keeps losing its lease is exhausted like
one that keeps raising.
"""

import asyncio
import json
import logging
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, Optional

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


class LeaseExpiredError(Exception):
    """The previous holder of a job let its lease run out on the last attempt."""


@dataclass
class Job:
    """A queued unit of work."""

    id: str
    name: str
    data: dict
    max_attempts: int
    backoff_delay: float
    attempts_made: int = 0
    run_at: float = 0.0
    created_at: float = field(default_factory=time.time)
    last_error: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str) -> "Job":
        return cls(**json.loads(raw))

    @property
    def attempts_left(self) -> int:
        return max(0, self.max_attempts - self.attempts_made)


def backoff_delay(base: float, attempts_made: int) -> float:
    """Delay before the next try after ``attempts_made`` failed attempts."""
    return base * (2 ** max(0, attempts_made - 1))


Handler = Callable[[Job], Awaitable[Any]]
ExhaustedHook = Callable[[Job, BaseException], Awaitable[None]]


class JobQueue(ABC):
    """Retry, backoff and exhaustion semantics over an abstract job store."""

    def __init__(
        self,
        queue_name: str,
        default_attempts: int = 3,
        default_backoff: float = 2.0,
        lease_seconds: float = 300.0,
        clock: Callable[[], float] = time.time,
    ):
        self.queue_name = queue_name
        self.default_attempts = default_attempts
        self.default_backoff = default_backoff
        self.lease_seconds = lease_seconds
        self._clock = clock
        self._handlers: dict[str, Handler] = {}
        self._exhausted_hooks: dict[str, list[ExhaustedHook]] = {}

    # -- producer side ---------------------------------------------------------

    async def enqueue(
        self,
        name: str,
        data: dict,
        delay: float = 0.0,
        attempts: Optional[int] = None,
        job_id: Optional[str] = None,
    ) -> Job:
        """Add a job, optionally delayed, with its own attempt budget."""
        now = self._clock()
        job = Job(
            id=job_id or uuid.uuid4().hex,
            name=name,
            data=data,
            max_attempts=attempts or self.default_attempts,
            backoff_delay=self.default_backoff,
            run_at=now + max(0.0, delay),
            created_at=now,
        )
        await self._store(job)
        logger.debug(f"[{self.queue_name}] queued {name} job {job.id} (delay {delay:.0f}s)")
        return job

    # -- consumer side ---------------------------------------------------------

    def process(self, name: str, handler: Handler) -> None:
        """Register the handler for jobs called ``name``."""
        self._handlers[name] = handler

    def on_exhausted(self, name: str, hook: ExhaustedHook) -> None:
        """Called once when a ``name`` job fails its last attempt."""
        self._exhausted_hooks.setdefault(name, []).append(hook)

    async def run_next(self) -> Optional[Job]:
        """Claim one due job and run it. Returns the job, or None if idle."""
        now = self._clock()
        job = await self._claim(now)
        if job is None:
            return None

        if job.attempts_made > job.max_attempts:
            job.attempts_made = job.max_attempts
            error = LeaseExpiredError(f"lease expired on final attempt of job {job.id}")
            job.last_error = str(error)
            await self._handle_failure(job, error)
            return job

        handler = self._handlers.get(job.name)
        if handler is None:
            logger.error(f"[{self.queue_name}] no handler for job {job.id} ({job.name}), dropping")
            await self._complete(job)
            return job

        try:
            await handler(job)
        except Exception as e:
            job.last_error = str(e)
            await self._handle_failure(job, e)
            return job

        await self._complete(job)
        return job

    async def _handle_failure(self, job: Job, error: Exception) -> None:
        if job.attempts_made >= job.max_attempts:
            logger.error(
                f"[{self.queue_name}] job {job.id} failed after "
                f"{job.attempts_made}/{job.max_attempts} attempts: {error}"
            )
            await self._discard(job)
            for hook in self._exhausted_hooks.get(job.name, []):
                try:
                    await hook(job, error)
                except Exception:
                    logger.exception(f"[{self.queue_name}] exhausted hook failed for job {job.id}")
            return

        delay = backoff_delay(job.backoff_delay, job.attempts_made)
        job.run_at = self._clock() + delay
        logger.warning(
            f"[{self.queue_name}] job {job.id} failed "
            f"(attempt {job.attempts_made}/{job.max_attempts}), retrying in {delay:.0f}s: {error}"
        )
        await self._reschedule(job)

    async def run_forever(
        self,
        poll_interval: float = 1.0,
        stop: Optional[asyncio.Event] = None,
    ) -> None:
        """Consume jobs until ``stop`` is set. Idle polls sleep ``poll_interval``."""
        stop = stop or asyncio.Event()
        logger.info(f"[{self.queue_name}] consumer started")
        while not stop.is_set():
            try:
                job = await self.run_next()
            except Exception:
                logger.exception(f"[{self.queue_name}] queue backend error")
                job = None
                await asyncio.sleep(5)
            if job is None:
                try:
                    await asyncio.wait_for(stop.wait(), timeout=poll_interval)
                except asyncio.TimeoutError:
                    pass
        logger.info(f"[{self.queue_name}] consumer stopped")

    # -- storage primitives ----------------------------------------------------

    @abstractmethod
    async def _store(self, job: Job) -> None: ...
    @abstractmethod
    async def _claim(self, now: float) -> Optional[Job]: ...
    @abstractmethod
    async def _complete(self, job: Job) -> None: ...
    @abstractmethod
    async def _reschedule(self, job: Job) -> None: ...
    @abstractmethod
    async def _discard(self, job: Job) -> None: ...
    @abstractmethod
    async def counts(self) -> dict[str, int]: ...

    async def close(self) -> None:
        pass


# Moves expired leases back to the schedule, then claims the earliest due job.
# The claim itself counts as an attempt, so a job whose worker dies holding
# the lease still spends its budget.
_CLAIM_SCRIPT = """
local now = tonumber(ARGV[1])
local lease = tonumber(ARGV[2])
local expired = redis.call('ZRANGEBYSCORE', KEYS[2], '-inf', now)
for _, id in ipairs(expired) do
    redis.call('ZREM', KEYS[2], id)
    redis.call('ZADD', KEYS[1], now, id)
end
local ids = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', now, 'LIMIT', 0, 1)
if #ids == 0 then
    return nil
end
local id = ids[1]
redis.call('ZREM', KEYS[1], id)
local payload = redis.call('HGET', KEYS[3], id)
if not payload then
    return nil
end
local attempts = redis.call('HINCRBY', KEYS[4], id, 1)
redis.call('ZADD', KEYS[2], now + lease, id)
return {payload, attempts}
"""

FAILED_HISTORY = 500


class RedisJobQueue(JobQueue):
    """Queue stored in Redis, shared by any number of worker processes.

    Keys: ``<prefix>:<queue>:jobs`` (hash id -> job JSON),
    ``:scheduled`` (zset id -> run_at), ``:active`` (zset id -> lease
    deadline), ``:attempts`` (hash id -> claims so far), ``:failed`` (capped
    list of exhausted jobs).
    """

    def __init__(self, client: aioredis.Redis, queue_name: str, prefix: str = "newsroom", **kwargs):
        super().__init__(queue_name, **kwargs)
        self._redis = client
        base = f"{prefix}:{queue_name}"
        self._jobs_key = f"{base}:jobs"
        self._scheduled_key = f"{base}:scheduled"
        self._active_key = f"{base}:active"
        self._attempts_key = f"{base}:attempts"
        self._failed_key = f"{base}:failed"
        self._claim_script = client.register_script(_CLAIM_SCRIPT)

    @classmethod
    def from_url(cls, url: str, queue_name: str, **kwargs) -> "RedisJobQueue":
        client = aioredis.from_url(url, encoding="utf-8", decode_responses=True)
        return cls(client, queue_name, **kwargs)

    async def _store(self, job: Job) -> None:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.hset(self._jobs_key, job.id, job.to_json())
            pipe.hset(self._attempts_key, job.id, job.attempts_made)
            pipe.zadd(self._scheduled_key, {job.id: job.run_at})
            await pipe.execute()

    async def _claim(self, now: float) -> Optional[Job]:
        claimed = await self._claim_script(
            keys=[self._scheduled_key, self._active_key, self._jobs_key, self._attempts_key],
            args=[now, self.lease_seconds],
        )
        if not claimed:
            return None
        payload, attempts = claimed
        job = Job.from_json(payload)
        job.attempts_made = int(attempts)
        return job

    async def _complete(self, job: Job) -> None:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.zrem(self._active_key, job.id)
            pipe.hdel(self._jobs_key, job.id)
            pipe.hdel(self._attempts_key, job.id)
            await pipe.execute()

    async def _reschedule(self, job: Job) -> None:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.hset(self._jobs_key, job.id, job.to_json())
            pipe.hset(self._attempts_key, job.id, job.attempts_made)
            pipe.zrem(self._active_key, job.id)
            pipe.zadd(self._scheduled_key, {job.id: job.run_at})
            await pipe.execute()

    async def _discard(self, job: Job) -> None:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.zrem(self._active_key, job.id)
            pipe.hdel(self._jobs_key, job.id)
            pipe.hdel(self._attempts_key, job.id)
            pipe.lpush(self._failed_key, job.to_json())
            pipe.ltrim(self._failed_key, 0, FAILED_HISTORY - 1)
            await pipe.execute()

    async def counts(self) -> dict[str, int]:
        async with self._redis.pipeline(transaction=False) as pipe:
            pipe.zcard(self._scheduled_key)
            pipe.zcard(self._active_key)
            pipe.llen(self._failed_key)
            scheduled, active, failed = await pipe.execute()
        return {"scheduled": scheduled, "active": active, "failed": failed}

    async def close(self) -> None:
        await self._redis.aclose()


class InMemoryJobQueue(JobQueue):
    """Single-process queue with the same semantics, for local runs and tests."""

    def __init__(self, queue_name: str, **kwargs):
        super().__init__(queue_name, **kwargs)
        self.jobs: dict[str, Job] = {}
        self.scheduled: dict[str, float] = {}
        self.active: dict[str, float] = {}
        self.failed: list[Job] = []

    async def _store(self, job: Job) -> None:
        self.jobs[job.id] = job
        self.scheduled[job.id] = job.run_at

    async def _claim(self, now: float) -> Optional[Job]:
        for job_id, deadline in list(self.active.items()):
            if deadline <= now:
                del self.active[job_id]
                self.scheduled[job_id] = now

        due = [(run_at, job_id) for job_id, run_at in self.scheduled.items() if run_at <= now]
        if not due:
            return None
        _, job_id = min(due)
        del self.scheduled[job_id]
        job = self.jobs.get(job_id)
        if job is None:
            return None
        job.attempts_made += 1
        self.active[job_id] = now + self.lease_seconds
        return Job.from_json(job.to_json())

    async def _complete(self, job: Job) -> None:
        self.active.pop(job.id, None)
        self.jobs.pop(job.id, None)

    async def _reschedule(self, job: Job) -> None:
        self.active.pop(job.id, None)
        self.jobs[job.id] = job
        self.scheduled[job.id] = job.run_at

    async def _discard(self, job: Job) -> None:
        self.active.pop(job.id, None)
        self.jobs.pop(job.id, None)
        self.failed.append(job)

    async def counts(self) -> dict[str, int]:
        return {
            "scheduled": len(self.scheduled),
            "active": len(self.active),
            "failed": len(self.failed),
        }

    def pending_jobs(self) -> list[Job]:
        """Scheduled jobs ordered by run time."""
        return [self.jobs[job_id] for job_id, _ in sorted(self.scheduled.items(), key=lambda i: i[1])]


def create_queue(
    redis_url: Optional[str],
    queue_name: str,
    prefix: str = "newsroom",
    **kwargs,
) -> JobQueue:
    """Redis-backed queue when configured, otherwise in-memory."""
    if redis_url:
        return RedisJobQueue.from_url(redis_url, queue_name, prefix=prefix, **kwargs)
    logger.warning(
        f"Using IN-MEMORY queue for {queue_name}. Jobs are lost on restart and "
        "not shared between processes."
    )
    return InMemoryJobQueue(queue_name, **kwargs)
