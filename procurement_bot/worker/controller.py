"""Worker process controller.

Each job runs in its own child process (``python -m procurement_bot.worker.cli``).
The controller never blocks on a job: it spawns the child, returns the job,
and a background task pipes the child's output into the job log line by line.
"""

import asyncio
import logging
import os
import sys
from typing import Any, Iterable, Mapping, Optional, Sequence

from procurement_bot.config import settings
from procurement_bot.ingest.sources import get_source
from procurement_bot.jobs.models import Job, JobStatus
from procurement_bot.jobs.store import JobStore
from procurement_bot.logging_config import get_logger, sanitize_options

logger = logging.getLogger(__name__)

WORKER_MODULE = "procurement_bot.worker.cli"
STREAM_LIMIT = 1024 * 1024

INVOICE_LOCK_SOURCE = "amazon-invoices"
PENDING_LOCK = "<starting>"


class ProfileBusyError(Exception):
    """A job already owns the (source, profile) pair."""

    def __init__(self, source: str, profile: str, job_id: str):
        self.source = source
        self.profile = profile
        self.job_id = job_id
        super().__init__(f"Profile {profile!r} for {source!r} is busy with job {job_id}")


def options_to_args(options: Optional[Mapping[str, Any]]) -> list[str]:
    """
    Turn an options mapping into CLI flags.

    ``{"max_pages": 3, "only_new": True, "headless": False}`` becomes
    ``["--max-pages", "3", "--only-new", "--no-headless"]``. Lists repeat
    the flag; None values are skipped.
    """
    args: list[str] = []
    for key, value in (options or {}).items():
        if value is None:
            continue
        flag = "--" + key.replace("_", "-")
        if isinstance(value, bool):
            args.append(flag if value else "--no-" + key.replace("_", "-"))
        elif isinstance(value, (list, tuple)):
            for item in value:
                args.extend([flag, str(item)])
        else:
            args.extend([flag, str(value)])
    return args


class JobController:
    """
    Starts worker processes and mirrors their output into a ``JobStore``.

    At most one job may hold a given (source, profile) pair at a time, since
    a persistent browser profile directory cannot be shared.
    """

    def __init__(
        self,
        store: JobStore,
        python: str = sys.executable,
        cwd: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
    ):
        self.store = store
        self.python = python
        self.cwd = cwd
        self.env = dict(env) if env is not None else None
        self._tasks: dict[str, asyncio.Task] = {}
        self._locks: dict[tuple[str, str], str] = {}

    def worker_command(self, *args: str) -> list[str]:
        return [self.python, "-m", WORKER_MODULE, *args]

    async def start_search(self, source: str, options: Optional[Mapping[str, Any]] = None) -> Job:
        profile = get_source(source)
        options = dict(options or {})
        argv = self.worker_command("search", profile.name, *options_to_args(options))
        meta = {"type": f"{profile.name}-search", "source": profile.name, "options": sanitize_options(options)}
        return await self.start_process(argv, meta, lock=(profile.name, profile.profile_name))

    async def start_invoice_download(self, options: Optional[Mapping[str, Any]] = None) -> Job:
        options = dict(options or {})
        argv = self.worker_command("invoices", "download", *options_to_args(options))
        meta = {"type": "amazon-invoices", "options": sanitize_options(options)}
        profile = options.get("profile") or settings.invoice_profile
        return await self.start_process(argv, meta, lock=(INVOICE_LOCK_SOURCE, profile))

    async def start_invoice_extraction(self, options: Optional[Mapping[str, Any]] = None) -> Job:
        options = dict(options or {})
        argv = self.worker_command("invoices", "extract", *options_to_args(options))
        meta = {"type": "amazon-invoices-json", "options": sanitize_options(options)}
        profile = options.get("profile") or settings.invoice_profile
        return await self.start_process(argv, meta, lock=(INVOICE_LOCK_SOURCE, profile))

    async def start_reconciliation(self, options: Optional[Mapping[str, Any]] = None) -> Job:
        options = dict(options or {})
        argv = self.worker_command("reconcile", *options_to_args(options))
        meta = {"type": "reconcile", "options": sanitize_options(options)}
        return await self.start_process(argv, meta)

    async def start_process(
        self,
        argv: Sequence[str],
        meta: Optional[dict[str, Any]] = None,
        lock: Optional[tuple[str, str]] = None,
    ) -> Job:
        """
        Create a job and run ``argv`` as its worker.

        Args:
            argv: Full command line of the child process
            meta: Job metadata
            lock: (source, profile) pair held while the child runs

        Returns:
            The job as stored right after the spawn attempt

        Raises:
            ProfileBusyError: Another running job holds ``lock``
        """
        if lock is not None:
            if lock in self._locks:
                raise ProfileBusyError(lock[0], lock[1], self._locks[lock])
            # Reserved before the first await; replaced by the job id below
            self._locks[lock] = PENDING_LOCK

        try:
            job = await self.store.create_job(meta or {})
        except BaseException:
            self._release(lock, PENDING_LOCK)
            raise
        if lock is not None:
            self._locks[lock] = job.id
        await self.store.set_status(job.id, JobStatus.RUNNING)

        env = dict(self.env if self.env is not None else os.environ)
        env.setdefault("PYTHONUNBUFFERED", "1")

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
                env=env,
                limit=STREAM_LIMIT,
            )
        except Exception as e:
            logger.error(f"Failed to start worker for job {job.id}: {e}")
            self._release(lock, job.id)
            await self.store.set_status(job.id, JobStatus.ERROR, error=str(e))
            return await self.store.get_job(job.id) or job

        logger.info(f"Started job {job.id} (pid {process.pid}): {meta.get('type') if meta else ''}")

        self._tasks[job.id] = asyncio.create_task(self._supervise(job.id, process, lock))
        return await self.store.get_job(job.id) or job

    async def _pump(self, job_id: str, stream: Optional[asyncio.StreamReader]) -> None:
        if stream is None:
            return
        async for line in stream:
            await self.store.append_log(job_id, line.decode("utf-8", errors="replace"))

    async def _supervise(
        self,
        job_id: str,
        process: asyncio.subprocess.Process,
        lock: Optional[tuple[str, str]],
    ) -> None:
        job_logger = get_logger(__name__, job_id=job_id)
        try:
            await asyncio.gather(
                self._pump(job_id, process.stdout),
                self._pump(job_id, process.stderr),
            )
            code = await process.wait()
            if code == 0:
                await self.store.set_status(job_id, JobStatus.FINISHED)
            else:
                await self.store.set_status(job_id, JobStatus.ERROR, error=f"Process exited with code {code}")
            job_logger.info(f"Job {job_id} finished with code {code}")
        except Exception as e:
            job_logger.exception(f"Error supervising job {job_id}")
            await self.store.set_status(job_id, JobStatus.ERROR, error=str(e))
        finally:
            self._release(lock, job_id)
            self._tasks.pop(job_id, None)

    def _release(self, lock: Optional[tuple[str, str]], owner: str) -> None:
        if lock is not None and self._locks.get(lock) == owner:
            del self._locks[lock]

    def running_jobs(self) -> list[str]:
        return list(self._tasks)

    def busy_profiles(self) -> dict[tuple[str, str], str]:
        return dict(self._locks)

    async def wait(self, job_id: str) -> Optional[Job]:
        """Wait for a job's worker to exit and return the final job."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)
        return await self.store.get_job(job_id)

    async def wait_all(self, job_ids: Optional[Iterable[str]] = None) -> None:
        tasks = [self._tasks[j] for j in (job_ids or list(self._tasks)) if j in self._tasks]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
