"""Job store backends.

``InMemoryJobStore`` keeps jobs in a process-local dict. ``RedisJobStore``
keeps one JSON blob per job in a Redis hash. Both honour the same contract:
unknown ids are no-ops, counters are recomputed from the whole log, and
status transitions only move forward.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import redis.asyncio as redis

from procurement_bot.config import Settings, settings as default_settings
from procurement_bot.jobs.models import Job, JobStatus, JobSummary, can_transition
from procurement_bot.metrics import job_store_errors_total, job_transitions_total

logger = logging.getLogger(__name__)


def _coerce_status(status: JobStatus | str) -> Optional[JobStatus]:
    try:
        return JobStatus(status)
    except ValueError:
        return None


class JobStore(ABC):
    """Backend-agnostic job lifecycle contract."""

    @abstractmethod
    async def create_job(self, meta: Optional[dict[str, Any]] = None) -> Job:
        """Allocate a new pending job."""

    @abstractmethod
    async def append_log(self, job_id: str, chunk: str) -> None:
        """Append text to the log and recompute counters."""

    @abstractmethod
    async def set_status(self, job_id: str, status: JobStatus | str, error: Optional[str] = None) -> None:
        """Move a job forward; illegal transitions are ignored."""

    @abstractmethod
    async def get_job(self, job_id: str) -> Optional[Job]:
        pass

    @abstractmethod
    async def list_jobs(self) -> list[JobSummary]:
        pass

    async def close(self) -> None:
        return None

    @staticmethod
    def _apply_status(job: Job, status: JobStatus | str, error: Optional[str]) -> bool:
        """Apply a transition in place; returns False when it was rejected."""
        new_status = _coerce_status(status)
        if new_status is None:
            logger.warning(f"Ignoring unknown status {status!r} for job {job.id}")
            return False
        if job.status.is_terminal:
            logger.warning(f"Job {job.id} is already {job.status.value}, ignoring {new_status.value}")
            return False
        if not can_transition(job.status, new_status):
            logger.warning(
                f"Ignoring transition {job.status.value} -> {new_status.value} for job {job.id}"
            )
            return False
        job.status = new_status
        if error is not None:
            job.error = error
        job.touch()
        job_transitions_total.labels(new_status.value).inc()
        return True


class InMemoryJobStore(JobStore):
    """Process-local store. Holds no external resources."""

    def __init__(self):
        self._jobs: dict[str, Job] = {}

    async def create_job(self, meta: Optional[dict[str, Any]] = None) -> Job:
        job = Job(meta=dict(meta or {}))
        self._jobs[job.id] = job
        job_transitions_total.labels(job.status.value).inc()
        return Job.from_dict(job.to_dict())

    async def append_log(self, job_id: str, chunk: str) -> None:
        job = self._jobs.get(job_id)
        if job is None or not chunk:
            return
        job.append_log(chunk)

    async def set_status(self, job_id: str, status: JobStatus | str, error: Optional[str] = None) -> None:
        job = self._jobs.get(job_id)
        if job is None:
            return
        self._apply_status(job, status, error)

    async def get_job(self, job_id: str) -> Optional[Job]:
        job = self._jobs.get(job_id)
        return Job.from_dict(job.to_dict()) if job is not None else None

    async def list_jobs(self) -> list[JobSummary]:
        return [job.summary() for job in self._jobs.values()]


class RedisJobStore(JobStore):
    """
    Redis hash backend.

    Per-call Redis errors are logged and swallowed: writes become no-ops and
    reads return nothing, so the controller keeps running.
    """

    def __init__(self, redis_url: Optional[str] = None, key: Optional[str] = None):
        self.redis_url = redis_url or default_settings.redis_url
        self.key = key or default_settings.job_store_key
        self._redis: Optional[redis.Redis] = None

    async def _get_redis(self) -> redis.Redis:
        """Get or create Redis connection."""
        if self._redis is None:
            self._redis = await redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._redis

    async def close(self):
        """Close Redis connection."""
        if self._redis:
            await self._redis.close()
            self._redis = None

    async def ping(self) -> bool:
        client = await self._get_redis()
        return bool(await client.ping())

    async def _load(self, client: redis.Redis, job_id: str) -> Optional[Job]:
        raw = await client.hget(self.key, job_id)
        if not raw:
            return None
        return Job.from_dict(json.loads(raw))

    async def _save(self, client: redis.Redis, job: Job) -> None:
        await client.hset(self.key, job.id, json.dumps(job.to_dict()))

    async def create_job(self, meta: Optional[dict[str, Any]] = None) -> Job:
        job = Job(meta=dict(meta or {}))
        try:
            client = await self._get_redis()
            await self._save(client, job)
            job_transitions_total.labels(job.status.value).inc()
        except Exception as e:
            job_store_errors_total.labels("create_job").inc()
            logger.error(f"Redis create_job failed for {job.id}: {e}")
        return job

    async def append_log(self, job_id: str, chunk: str) -> None:
        if not chunk:
            return
        try:
            client = await self._get_redis()
            job = await self._load(client, job_id)
            if job is None:
                return
            job.append_log(chunk)
            await self._save(client, job)
        except Exception as e:
            job_store_errors_total.labels("append_log").inc()
            logger.error(f"Redis append_log failed for {job_id}: {e}")

    async def set_status(self, job_id: str, status: JobStatus | str, error: Optional[str] = None) -> None:
        try:
            client = await self._get_redis()
            job = await self._load(client, job_id)
            if job is None:
                return
            if self._apply_status(job, status, error):
                await self._save(client, job)
        except Exception as e:
            job_store_errors_total.labels("set_status").inc()
            logger.error(f"Redis set_status failed for {job_id}: {e}")

    async def get_job(self, job_id: str) -> Optional[Job]:
        try:
            client = await self._get_redis()
            return await self._load(client, job_id)
        except Exception as e:
            job_store_errors_total.labels("get_job").inc()
            logger.error(f"Redis get_job failed for {job_id}: {e}")
            return None

    async def list_jobs(self) -> list[JobSummary]:
        try:
            client = await self._get_redis()
            raw_jobs = await client.hgetall(self.key)
        except Exception as e:
            job_store_errors_total.labels("list_jobs").inc()
            logger.error(f"Redis list_jobs failed: {e}")
            return []

        summaries = []
        for job_id, raw in raw_jobs.items():
            try:
                summaries.append(Job.from_dict(json.loads(raw)).summary())
            except (json.JSONDecodeError, KeyError, ValueError) as e:
                logger.warning(f"Skipping unreadable job {job_id}: {e}")
        summaries.sort(key=lambda s: s.created_at)
        return summaries


async def create_job_store(config: Optional[Settings] = None) -> JobStore:
    """
    Build the configured store.

    A Redis backend that cannot be reached falls back to memory with a
    warning instead of failing startup.
    """
    config = config or default_settings
    if (config.job_store_backend or "").lower() != "redis":
        logger.info("Using in-memory job store")
        return InMemoryJobStore()

    store = RedisJobStore(redis_url=config.redis_url, key=config.job_store_key)
    try:
        await store.ping()
    except Exception as e:
        logger.warning(f"Redis job store unavailable ({e}), falling back to in-memory store")
        try:
            await store.close()
        except Exception as close_error:
            logger.debug(f"Error closing unused Redis client: {close_error}")
        return InMemoryJobStore()

    logger.info(f"Using Redis job store (hash {config.job_store_key})")
    return store
