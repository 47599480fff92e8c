# services/look_worker.py
"""
Outfit Assembly Worker.

Runs one style plan to a LookResponse:

1. Slots are attempted sequentially in plan order
2. Within a slot every adapter is raced in parallel, each bounded by the
   per-retailer timeout; the slot as a whole by the per-slot timeout; the
   job by the global timeout
3. A timeout is never an error: it resolves to an empty result exactly
   like "found nothing". The losing call may keep running in the
   background until the run ends; its result is discarded
4. The top-scored candidate fills the slot; partial snapshots are persisted
   as soon as a minimum viable look exists
5. One relaxation pass over the seed catalog fills slots the live sources
   left empty
6. Affiliate links are wrapped with whatever is left of the global budget
"""
import asyncio
import inspect
import logging
import time
from contextlib import suppress
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

import httpx

from contracts.models import (
    AffiliateLinkArgs,
    Job,
    JobError,
    LookResponse,
    Product,
    SearchProductsArgs,
    SlotPlan,
    SlotProgress,
    StylePlan,
)
from infra.logging import log_event
from integrations.base import AdapterContext, ProductAdapter
from integrations.http_fetch import build_client
from integrations.seed_catalog import SeedCatalogAdapter
from services.aggregator import Aggregator, dedupe_products
from services.constraint_relaxation import relax_slot_plan
from services.currency import estimate_total
from services.job_store import JobStore, plan_fingerprint
from services.ranking_engine import RankingEngine, get_ranking_engine
from services.stylist_copy import render_look

import config

logger = logging.getLogger(__name__)

ANCHOR_SLOTS = ("anchor", "outerwear")
FOOTWEAR_SLOTS = ("shoe",)
CORE_SLOTS = ("top", "bottom", "dress")
LOWEST_PRIORITY_SLOT = "accessory"

_CATEGORY_SLOTS = {
    "shoes": "shoe",
    "shoe": "shoe",
    "footwear": "shoe",
    "outerwear": "outerwear",
    "coat": "outerwear",
    "jacket": "outerwear",
    "anchor": "anchor",
    "top": "top",
    "tops": "top",
    "bottom": "bottom",
    "bottoms": "bottom",
    "dress": "dress",
}

TIMED_OUT = object()


def _log_late_outcome(task: asyncio.Task):
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug(f"[Worker] Background call finished with {type(error).__name__}: {error}")


class BackgroundCalls:
    """
    Strong refs to timed-out calls that are still running.

    Owned by one worker run; whatever is still outstanding when the run
    ends is cancelled and forgotten, so nothing outlives its event loop.
    """

    def __init__(self):
        self.tasks: Set[asyncio.Task] = set()

    def detach(self, task: asyncio.Task):
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)

    def cancel_all(self) -> int:
        outstanding = [t for t in self.tasks if not t.done()]
        for task in outstanding:
            task.cancel()
        self.tasks.clear()
        return len(outstanding)


async def with_timeout(
    awaitable,
    seconds: float,
    fallback: Any = None,
    background: Optional[BackgroundCalls] = None
) -> Any:
    """
    Race *awaitable* against a deadline.

    Returns the awaitable's result if it finishes within *seconds*, otherwise
    *fallback*. The underlying call is not cancelled; pass *background* to
    keep track of it until its owner is done. Exceptions raised by a call
    that finished in time propagate to the caller.
    """
    task = asyncio.ensure_future(awaitable)
    if background is not None:
        background.detach(task)
    done, _ = await asyncio.wait({task}, timeout=max(0.0, seconds))
    if task in done:
        return task.result()
    task.add_done_callback(_log_late_outcome)
    return fallback


def _slot_of(product: Product) -> Optional[str]:
    if product.slot:
        return product.slot
    category = (product.fit.category or "").lower()
    return _CATEGORY_SLOTS.get(category)


def is_minimum_viable_look(products: Iterable[Product]) -> bool:
    """An anchor item, a footwear item and a core garment (top, bottom or dress)"""
    slots = {_slot_of(p) for p in products}
    return (
        any(s in slots for s in ANCHOR_SLOTS)
        and any(s in slots for s in FOOTWEAR_SLOTS)
        and any(s in slots for s in CORE_SLOTS)
    )


def build_slot_query(plan: StylePlan, slot_plan: SlotPlan) -> str:
    """Plan query for the slot, else keywords plus category"""
    query = plan.query_for(slot_plan.slot)
    if query:
        return query
    words = [k.strip() for k in slot_plan.keywords if k.strip()]
    if slot_plan.category.lower() not in (w.lower() for w in words):
        words.append(slot_plan.category)
    return " ".join(words)


def build_look_response(
    plan: StylePlan,
    products: List[Product],
    missing: List[str],
    status: str
) -> LookResponse:
    """LookResponse with narration; with no products the message is the blueprint."""
    narration = render_look(plan, products, missing)
    if missing and products:
        note = "Some slots are still open. A wider budget or palette would bring in more options."
    elif products:
        note = "If you want it sharper, tighten the palette by one step."
    else:
        note = "Nothing live matched yet, so here is a blueprint to shop from."
    return LookResponse(
        look_id=plan.look_id,
        status=status,
        message=narration.text,
        slots=products,
        total_price=estimate_total(((p.price, p.currency) for p in products), plan.currency),
        currency=plan.currency,
        missing_slots=missing,
        note=note,
    )


class LookAssemblyWorker:
    """
    Assembles one look per `run` call. The worker is the only writer of
    the job it runs.
    """

    def __init__(
        self,
        adapters: List[ProductAdapter],
        store: JobStore,
        catalog: Optional[ProductAdapter] = None,
        ranking: Optional[RankingEngine] = None,
        client: Optional[httpx.AsyncClient] = None,
        per_retailer_timeout: Optional[float] = None,
        per_slot_timeout: Optional[float] = None,
        global_timeout: Optional[float] = None,
        heartbeat_interval: Optional[float] = None,
        listener: Optional[Callable[[Job], Any]] = None
    ):
        """
        Args:
            adapters: Live sources raced for every slot, in priority order
            store: Job state store (job records + result cache)
            catalog: Fallback source for the relaxation pass
            ranking: Candidate scorer
            client: Shared HTTP client; one is created per run when omitted
            listener: Called with a copy of the job on every status snapshot
        """
        self.adapters = list(adapters)
        self.store = store
        self.catalog = catalog if catalog is not None else SeedCatalogAdapter()
        self.ranking = ranking or get_ranking_engine()
        self.client = client
        self.per_retailer_timeout = config.PER_RETAILER_TIMEOUT if per_retailer_timeout is None else per_retailer_timeout
        self.per_slot_timeout = config.PER_SLOT_TIMEOUT if per_slot_timeout is None else per_slot_timeout
        self.global_timeout = config.GLOBAL_TIMEOUT if global_timeout is None else global_timeout
        self.heartbeat_interval = config.HEARTBEAT_INTERVAL if heartbeat_interval is None else heartbeat_interval
        self.listener = listener
        self._lock: Optional[asyncio.Lock] = None
        self._background = BackgroundCalls()

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def run(self, plan: StylePlan, job: Optional[Job] = None) -> LookResponse:
        self._lock = asyncio.Lock()
        self._background = BackgroundCalls()
        fingerprint = plan_fingerprint(plan)

        cached = await self.store.get_cached(fingerprint)
        if cached is not None:
            result = cached.model_copy(update={"look_id": plan.look_id})
            if job is None:
                job = await self.store.create_job(fingerprint)
            job.status = result.status
            job.result = result
            await self._persist(job)
            log_event("look_cache_hit", request_id=plan.look_id, job_id=job.id, status=result.status)
            return result

        if job is None:
            job = await self.store.create_job(fingerprint)
        job.status = "running"
        job.progress = {slot: SlotProgress() for slot in plan.required_slots}
        job.heartbeat_at = time.time()
        await self._persist(job)
        log_event("look_job_started", request_id=plan.look_id, job_id=job.id, slots=list(plan.required_slots))

        heartbeat = asyncio.create_task(self._heartbeat(job))
        own_client = self.client is None
        client = self.client or build_client()
        started = time.perf_counter()
        try:
            result = await self._assemble(plan, job, client)
        finally:
            heartbeat.cancel()
            with suppress(asyncio.CancelledError):
                await heartbeat
            dropped = self._background.cancel_all()
            if dropped:
                logger.info(f"[Worker] Dropped {dropped} late calls for job {job.id}")
            if own_client:
                await client.aclose()

        job.status = result.status
        job.result = result
        await self._persist(job)
        if result.status != "failed":
            await self.store.set_cached(fingerprint, result)

        log_event(
            "look_job_finished",
            request_id=plan.look_id,
            job_id=job.id,
            status=result.status,
            missing=result.missing_slots,
            errors=len(job.errors),
            elapsed_ms=round((time.perf_counter() - started) * 1000),
        )
        return result

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    async def _assemble(self, plan: StylePlan, job: Job, client: httpx.AsyncClient) -> LookResponse:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.global_timeout
        selected: Dict[str, Product] = {}
        global_hit = False

        for slot in plan.required_slots:
            remaining = deadline - loop.time()
            if remaining <= 0:
                global_hit = True
                logger.info(f"[Worker] Global budget spent before '{slot}'; finalizing")
                break

            slot_plan = plan.slot_plan(slot)
            args = self._search_args(plan, slot_plan, build_slot_query(plan, slot_plan))
            candidates = await self._race_adapters(
                plan, job, slot, args, client, min(self.per_slot_timeout, remaining)
            )
            self._select(plan, job, slot, slot_plan, candidates, selected)

            if is_minimum_viable_look(selected.values()):
                await self._snapshot(plan, job, selected)

        if loop.time() >= deadline:
            global_hit = True

        missing = [s for s in plan.required_slots if s not in selected]
        needs_relaxation = (
            any(s != LOWEST_PRIORITY_SLOT for s in missing)
            or len(selected) < 2
        )

        if missing and needs_relaxation and not global_hit:
            if selected:
                await self._snapshot(plan, job, selected)
            await self._relax(plan, job, missing, client, selected, deadline)
            if loop.time() >= deadline:
                global_hit = True

        products = [selected[s] for s in plan.required_slots if s in selected]
        products = await self._attach_affiliate_links(plan, products, client, deadline)
        missing = [s for s in plan.required_slots if s not in selected]

        if not products:
            status = "failed"
        elif (
            is_minimum_viable_look(products)
            or all(s == LOWEST_PRIORITY_SLOT for s in missing)
            or global_hit
        ):
            status = "complete"
        else:
            status = "partial"

        return build_look_response(plan, products, missing, status)

    def _search_args(self, plan: StylePlan, slot_plan: SlotPlan, query: str) -> SearchProductsArgs:
        return SearchProductsArgs(
            query=query,
            slot=slot_plan.slot,
            category=slot_plan.category,
            country=plan.preferences.country or config.DEFAULT_COUNTRY,
            currency=plan.currency,
            gender=plan.preferences.gender,
            min_price=slot_plan.min_price,
            max_price=slot_plan.max_price,
            limit=config.DEFAULT_RESULT_LIMIT,
        )

    async def _race_adapters(
        self,
        plan: StylePlan,
        job: Job,
        slot: str,
        args: SearchProductsArgs,
        client: httpx.AsyncClient,
        slot_budget: float
    ) -> List[Product]:
        """All adapters in parallel; merged in adapter order so completion order never matters"""
        if not self.adapters:
            return []

        progress = job.progress.setdefault(slot, SlotProgress())
        context = AdapterContext(client=client, slot=slot, request_id=plan.look_id)

        tasks = [
            asyncio.ensure_future(self._query_adapter(adapter, args, context))
            for adapter in self.adapters
        ]
        for task in tasks:
            self._background.detach(task)
        progress.attempts += len(tasks)
        done, pending = await asyncio.wait(tasks, timeout=max(0.0, slot_budget))

        if pending:
            logger.info(f"[Worker] Slot '{slot}' budget reached with {len(pending)} adapters outstanding")

        # Only outcomes collected here touch the job; late finishers are ignored
        batches = []
        for adapter, task in zip(self.adapters, tasks):
            if task not in done:
                progress.timeouts += 1
                continue
            items, error, timed_out = task.result()
            if timed_out:
                progress.timeouts += 1
                log_event("adapter_timeout", request_id=plan.look_id, retailer=adapter.name, slot=slot)
            if error:
                self._record_error(job, adapter.name, slot, error)
            batches.append(items)

        merged = dedupe_products(p for batch in batches for p in batch)
        progress.candidates += len(merged)
        return merged

    async def _query_adapter(
        self,
        adapter: ProductAdapter,
        args: SearchProductsArgs,
        context: AdapterContext
    ):
        """(items, error message, timed out) for one adapter call"""
        try:
            result = await with_timeout(
                adapter.search_products(args, context), self.per_retailer_timeout, TIMED_OUT, self._background
            )
        except Exception as e:
            return [], str(e) or type(e).__name__, False

        if result is TIMED_OUT:
            return [], None, True
        if result is None:
            return [], None, False
        error = result.meta.get("error")
        return list(result.items), str(error) if error else None, False

    def _select(
        self,
        plan: StylePlan,
        job: Job,
        slot: str,
        slot_plan: SlotPlan,
        candidates: List[Product],
        selected: Dict[str, Product]
    ) -> bool:
        if not candidates:
            logger.info(f"[Worker] No candidates for '{slot}'")
            return False
        top = self.ranking.top_candidate(candidates, slot_plan, plan.currency, plan.preferences)
        selected[slot] = top.product.model_copy(update={"slot": slot})
        job.progress[slot].resolved = True
        logger.info(
            f"[Worker] {slot}: {top.product.brand or ''} {top.product.title} "
            f"(score {top.score}, {len(candidates)} candidates)"
        )
        return True

    async def _relax(
        self,
        plan: StylePlan,
        job: Job,
        missing: List[str],
        client: httpx.AsyncClient,
        selected: Dict[str, Product],
        deadline: float
    ):
        """Relaxed constraints against the seed catalog only"""
        loop = asyncio.get_running_loop()
        fallback = Aggregator([self.catalog])
        for slot in missing:
            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.info(f"[Worker] Global budget spent during relaxation at '{slot}'")
                break
            relaxed = relax_slot_plan(plan.slot_plan(slot))
            progress = job.progress.setdefault(slot, SlotProgress())
            progress.relaxed = True
            progress.attempts += 1

            args = self._search_args(plan, relaxed, " ".join(relaxed.keywords))
            context = AdapterContext(client=client, slot=slot, request_id=plan.look_id)
            result = await with_timeout(
                fallback.search(args, context),
                min(self.per_slot_timeout, remaining),
                TIMED_OUT,
                self._background,
            )
            if result is TIMED_OUT:
                progress.timeouts += 1
                continue
            candidates = list(result.items) if result else []
            progress.candidates += len(candidates)
            if self._select(plan, job, slot, relaxed, candidates, selected):
                log_event("slot_relaxed", request_id=plan.look_id, job_id=job.id, slot=slot)

    async def _attach_affiliate_links(
        self,
        plan: StylePlan,
        products: List[Product],
        client: httpx.AsyncClient,
        deadline: float
    ) -> List[Product]:
        """
        Wrap product links in parallel within what is left of the global
        budget. Unwrapped products keep their canonical URL.
        """
        wanted = [i for i, p in enumerate(products) if not p.affiliate_url]
        budget = min(self.per_retailer_timeout, deadline - asyncio.get_running_loop().time())
        links: Dict[int, str] = {}

        if wanted and budget <= 0:
            logger.info("[Worker] Global budget spent; keeping canonical product links")
        elif wanted:
            aggregator = Aggregator(self.adapters)
            context = AdapterContext(client=client, request_id=plan.look_id)
            tasks = {}
            for i in wanted:
                product = products[i]
                args = AffiliateLinkArgs(url=product.url, retailer=product.retailer, country=plan.preferences.country)
                tasks[i] = asyncio.ensure_future(aggregator.affiliate_link(args, context))
                self._background.detach(tasks[i])

            done, pending = await asyncio.wait(tasks.values(), timeout=budget)
            if pending:
                logger.info(f"[Worker] {len(pending)} affiliate links still outstanding at the deadline")
            for i, task in tasks.items():
                if task not in done:
                    task.add_done_callback(_log_late_outcome)
                    continue
                if task.exception() is not None:
                    logger.warning(f"[Worker] Affiliate link failed for {products[i].url}: {task.exception()}")
                    continue
                link = task.result()
                if link is not None:
                    links[i] = link.url

        return [
            p if p.affiliate_url else p.model_copy(update={"affiliate_url": links.get(i, p.url)})
            for i, p in enumerate(products)
        ]

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _snapshot(self, plan: StylePlan, job: Job, selected: Dict[str, Product]):
        products = [selected[s] for s in plan.required_slots if s in selected]
        missing = [s for s in plan.required_slots if s not in selected]
        job.status = "partial"
        job.result = build_look_response(plan, products, missing, "partial")
        await self._persist(job)
        log_event("look_partial", request_id=plan.look_id, job_id=job.id, missing=missing)

    def _record_error(self, job: Job, retailer: str, slot: str, message: str):
        job.errors.append(JobError(retailer=retailer, slot=slot, message=message))
        job.progress.setdefault(slot, SlotProgress()).errors += 1
        logger.warning(f"[Worker] {retailer} failed for '{slot}': {message}")

    async def _persist(self, job: Job, notify: bool = True):
        async with self._lock:
            saved = await self.store.save_job(job)
        if saved and notify and self.listener is not None:
            outcome = self.listener(job.model_copy(deep=True))
            if inspect.isawaitable(outcome):
                await outcome

    async def _heartbeat(self, job: Job):
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            job.heartbeat_at = time.time()
            await self._persist(job, notify=False)
