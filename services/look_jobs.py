# services/look_jobs.py
"""
Look job submission and polling.

submit_look validates a raw style plan, short-circuits on a cached
fingerprint, and otherwise queues a background assembly run.
get_look reports a job's status and its latest (partial or final) result.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from contracts.models import Job, StylePlan, parse_style_plan
from infra.logging import log_event
from integrations.base import ProductAdapter
from integrations.registry import adapters_for_plan
from services.job_store import JobStore, get_job_store, plan_fingerprint
from services.look_worker import LookAssemblyWorker, build_look_response

logger = logging.getLogger(__name__)


class LookJobService:
    """
    Owns background assembly tasks for one process.
    """

    def __init__(
        self,
        store: Optional[JobStore] = None,
        adapters_factory: Callable[[StylePlan], List[ProductAdapter]] = adapters_for_plan,
        worker_options: Optional[Dict[str, Any]] = None
    ):
        self.store = store or get_job_store()
        self.adapters_factory = adapters_factory
        self.worker_options = worker_options or {}
        self._running: Dict[str, asyncio.Task] = {}

    async def submit_look(self, payload) -> Dict[str, Any]:
        """
        Start (or reuse) an assembly job for a style plan.

        Raises:
            PlanValidationError: malformed plan; no job is created
        """
        plan = parse_style_plan(payload)
        fingerprint = plan_fingerprint(plan)

        cached = await self.store.get_cached(fingerprint)
        if cached is not None:
            result = cached.model_copy(update={"look_id": plan.look_id})
            job = await self.store.create_job(fingerprint)
            job.status = result.status
            job.result = result
            await self.store.save_job(job)
            log_event("look_cache_hit", request_id=plan.look_id, job_id=job.id)
            return {"job_id": job.id, "status": job.status, "cached": True}

        existing = await self.store.find_by_fingerprint(fingerprint)
        if existing is not None and existing.id in self._running and not self._running[existing.id].done():
            logger.info(f"[Looks] Reusing in-flight job {existing.id}")
            return {"job_id": existing.id, "status": existing.status, "cached": False}

        job = await self.store.create_job(fingerprint)
        task = asyncio.create_task(self._run(plan, job))
        self._running[job.id] = task
        task.add_done_callback(lambda _t, job_id=job.id: self._running.pop(job_id, None))

        log_event("look_job_queued", request_id=plan.look_id, job_id=job.id)
        return {"job_id": job.id, "status": job.status, "cached": False}

    async def _run(self, plan: StylePlan, job: Job):
        try:
            worker = LookAssemblyWorker(self.adapters_factory(plan), self.store, **self.worker_options)
            await worker.run(plan, job)
        except Exception as e:
            logger.exception(f"[Looks] Job {job.id} crashed: {e}")
            # Callers still get the blueprint, never a bare error
            job.status = "failed"
            job.result = build_look_response(plan, [], list(plan.required_slots), "failed")
            await self.store.save_job(job)
            log_event("look_job_crashed", request_id=plan.look_id, job_id=job.id, error=str(e))

    async def get_look(self, job_id: str) -> Optional[Dict[str, Any]]:
        job = await self.store.get_job(job_id)
        if job is None:
            return None
        return {
            "job_id": job.id,
            "status": job.status,
            "result": job.result.model_dump(mode="json") if job.result else None,
            "progress": {slot: p.model_dump() for slot, p in job.progress.items()},
            "errors": [e.model_dump() for e in job.errors],
            "heartbeat_at": job.heartbeat_at,
        }

    async def wait(self, job_id: str, timeout: Optional[float] = None):
        """Block until a job's background task finishes (tests, CLI)."""
        task = self._running.get(job_id)
        if task is not None:
            await asyncio.wait_for(asyncio.shield(task), timeout)


# Global singleton
_look_service = None


def get_look_service() -> LookJobService:
    """Get or create the process-wide look job service."""
    global _look_service
    if _look_service is None:
        _look_service = LookJobService()
    return _look_service


async def submit_look(payload) -> Dict[str, Any]:
    return await get_look_service().submit_look(payload)


async def get_look(job_id: str) -> Optional[Dict[str, Any]]:
    return await get_look_service().get_look(job_id)
