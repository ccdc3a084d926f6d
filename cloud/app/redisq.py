from __future__ import annotations

import redis.asyncio as redis
from .settings import KEY_PREFIX, LEASE_SECONDS, QUEUE_NAME, REDIS_URL

# Queue items are job row ids; the trigger itself is rebuilt from the run's
# pipeline when the job is claimed.
r = redis.from_url(REDIS_URL, decode_responses=True)

def lease_lock_key(job_id: str) -> str:
    return f"{KEY_PREFIX}:lease_lock:{job_id}"

async def enqueue_jobs(job_ids: list[str]) -> None:
    # FIFO: push right, in the order the engine released them
    if job_ids:
        await r.rpush(QUEUE_NAME, *job_ids)

async def dequeue_job(timeout_s: int) -> str | None:
    item = await r.blpop(QUEUE_NAME, timeout=timeout_s)  # FIFO: pop left
    if not item:
        return None
    _q, job_id = item
    return job_id

async def requeue_job(job_id: str) -> None:
    await r.lpush(QUEUE_NAME, job_id)

async def take_lease_lock(job_id: str, agent_id: str) -> bool:
    """One agent per job while the lease is alive; expires with the lease."""
    return bool(await r.set(lease_lock_key(job_id), agent_id, nx=True, ex=LEASE_SECONDS))

async def release_lease_lock(job_id: str) -> None:
    await r.delete(lease_lock_key(job_id))
