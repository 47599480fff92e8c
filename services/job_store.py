# services/job_store.py
"""
Job State Store.

Thin layer over a key/value backend (infra.cache) holding:
- job:{id}          -> Job record
- fp:{fingerprint}  -> id of the latest job for that plan fingerprint
- look:{fingerprint} -> cached LookResponse (TTL)

No transactions and no locks: the worker is the only writer for a job id.
Terminal jobs are immutable and the look cache is write-once.
"""
import hashlib
import json
import logging
import time
import uuid
from typing import Any, Dict, Optional

from contracts.models import Job, LookResponse, StylePlan
from infra.cache import MemoryCache, RedisCache

import config

logger = logging.getLogger(__name__)


def _norm_list(values, keep_order: bool = False):
    cleaned = [v.strip().lower() for v in values if isinstance(v, str) and v.strip()]
    return cleaned if keep_order else sorted(set(cleaned))


def normalized_plan(plan: StylePlan) -> Dict[str, Any]:
    """Canonical constraint view of a plan; the look id is not part of it"""
    return {
        "required_slots": list(plan.required_slots),
        "per_slot": sorted(
            (
                {
                    "slot": sp.slot,
                    "category": sp.category.strip().lower(),
                    "keywords": _norm_list(sp.keywords),
                    "allowed_colors": _norm_list(sp.allowed_colors),
                    "banned_materials": _norm_list(sp.banned_materials),
                    "min_price": round(sp.min_price, 2),
                    "max_price": round(sp.max_price, 2),
                }
                for sp in plan.per_slot
            ),
            key=lambda entry: entry["slot"],
        ),
        "budget_total": round(plan.budget_total, 2),
        "currency": plan.currency.strip().upper(),
        "retailer_priority": _norm_list(plan.retailer_priority, keep_order=True),
        "search_queries": sorted(
            {sq.slot: " ".join(sq.query.lower().split()) for sq in plan.search_queries}.items()
        ),
        "preferences": {
            "gender": plan.preferences.gender,
            "country": (plan.preferences.country or "").strip().upper() or None,
            "sizes": {k.lower(): str(v).strip().lower() for k, v in sorted(plan.preferences.sizes.items())},
        },
    }


def plan_fingerprint(plan: StylePlan) -> str:
    canonical = json.dumps(normalized_plan(plan), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class JobStore:
    """
    Job arena + fingerprint index + result cache.
    """

    def __init__(
        self,
        kv=None,
        prefix: Optional[str] = None,
        job_ttl: Optional[int] = None,
        cache_ttl: Optional[int] = None
    ):
        self.kv = kv if kv is not None else MemoryCache()
        self.prefix = config.KEY_PREFIX if prefix is None else prefix
        self.job_ttl = config.JOB_TTL if job_ttl is None else job_ttl
        self.cache_ttl = config.LOOK_CACHE_TTL if cache_ttl is None else cache_ttl

    def _key(self, kind: str, ident: str) -> str:
        return f"{self.prefix}{kind}:{ident}"

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def create_job(self, fingerprint: str, job_id: Optional[str] = None) -> Job:
        job = Job(id=job_id or uuid.uuid4().hex, fingerprint=fingerprint)
        await self.kv.set(self._key("job", job.id), job.model_dump(mode="json"), ttl=self.job_ttl)
        await self.kv.set(self._key("fp", fingerprint), job.id, ttl=self.job_ttl)
        return job

    async def get_job(self, job_id: str) -> Optional[Job]:
        data = await self.kv.get(self._key("job", job_id))
        return Job.model_validate(data) if data else None

    async def save_job(self, job: Job) -> bool:
        """
        Persist a job snapshot.

        Returns:
            False when the stored job is already terminal (write refused)
        """
        stored = await self.get_job(job.id)
        if stored is not None and stored.is_terminal:
            logger.warning(f"[JobStore] Refusing write to terminal job {job.id} ({stored.status})")
            return False
        job.updated_at = time.time()
        await self.kv.set(self._key("job", job.id), job.model_dump(mode="json"), ttl=self.job_ttl)
        return True

    async def find_by_fingerprint(self, fingerprint: str) -> Optional[Job]:
        job_id = await self.kv.get(self._key("fp", fingerprint))
        return await self.get_job(job_id) if job_id else None

    # ------------------------------------------------------------------
    # Result cache
    # ------------------------------------------------------------------

    async def get_cached(self, fingerprint: str) -> Optional[LookResponse]:
        data = await self.kv.get(self._key("look", fingerprint))
        return LookResponse.model_validate(data) if data else None

    async def set_cached(self, fingerprint: str, result: LookResponse) -> bool:
        """Write-once: an existing entry is left untouched"""
        if await self.get_cached(fingerprint) is not None:
            return False
        await self.kv.set(self._key("look", fingerprint), result.model_dump(mode="json"), ttl=self.cache_ttl)
        return True


# Global singleton
_job_store = None


def get_job_store() -> JobStore:
    """Get or create the process-wide job store (Redis when configured)."""
    global _job_store
    if _job_store is None:
        kv = RedisCache(config.REDIS_URL) if config.USE_REDIS_JOB_STORE else MemoryCache()
        _job_store = JobStore(kv)
    return _job_store
