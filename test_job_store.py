#!/usr/bin/env python3
"""
Tests for the job state store, plan fingerprints and the cache backends.
"""
import asyncio
import time

from redis.exceptions import ConnectionError as RedisConnectionError

from contracts.models import LookResponse
from infra.cache import MemoryCache, RedisCache
from services.job_store import JobStore, plan_fingerprint


def _result(look_id="look-1", status="complete") -> LookResponse:
    return LookResponse(look_id=look_id, status=status, message="The look:", currency="EUR")


def test_fingerprint_ignores_look_id_and_cosmetic_differences(make_plan):
    plan = make_plan()
    variant = plan.model_copy(update={
        "look_id": "another-look",
        "retailer_priority": [" cos "],
        "per_slot": [
            sp.model_copy(update={"keywords": [k.upper() for k in reversed(sp.keywords)]})
            for sp in reversed(plan.per_slot)
        ],
    })
    assert plan_fingerprint(plan) == plan_fingerprint(variant)


def test_fingerprint_tracks_constraints(make_plan):
    plan = make_plan()
    cheaper = plan.model_copy(update={"budget_total": 250})
    reordered = plan.model_copy(update={"required_slots": ["shoe", "top", "bottom"]})
    assert plan_fingerprint(plan) != plan_fingerprint(cheaper)
    assert plan_fingerprint(plan) != plan_fingerprint(reordered)


def test_job_lifecycle_and_fingerprint_index():
    async def run():
        store = JobStore(MemoryCache(), prefix="t:")
        job = await store.create_job("fp1")
        assert (await store.get_job(job.id)).status == "queued"
        assert (await store.find_by_fingerprint("fp1")).id == job.id

        job.status = "running"
        assert await store.save_job(job)
        job.status = "complete"
        assert await store.save_job(job)

        job.status = "partial"
        refused = await store.save_job(job)
        stored = await store.get_job(job.id)
        return refused, stored

    refused, stored = asyncio.run(run())
    assert refused is False
    assert stored.status == "complete"


def test_missing_job():
    store = JobStore(MemoryCache())
    assert asyncio.run(store.get_job("nope")) is None
    assert asyncio.run(store.find_by_fingerprint("nope")) is None


def test_result_cache_is_write_once():
    async def run():
        store = JobStore(MemoryCache())
        first = await store.set_cached("fp", _result(status="partial"))
        second = await store.set_cached("fp", _result(status="complete"))
        return first, second, await store.get_cached("fp")

    first, second, cached = asyncio.run(run())
    assert first is True
    assert second is False
    assert cached.status == "partial"


def test_memory_cache_ttl(monkeypatch):
    cache = MemoryCache()
    asyncio.run(cache.set("k", {"a": 1}, ttl=60))
    asyncio.run(cache.set("forever", 1))
    assert asyncio.run(cache.get("k")) == {"a": 1}

    later = time.time() + 61
    monkeypatch.setattr(time, "time", lambda: later)
    assert asyncio.run(cache.get("k")) is None
    assert asyncio.run(cache.get("forever")) == 1


def test_memory_cache_returns_copies():
    cache = MemoryCache()
    value = {"items": [1]}
    asyncio.run(cache.set("k", value))
    value["items"].append(2)
    assert asyncio.run(cache.get("k")) == {"items": [1]}


class DownRedis:
    async def get(self, key):
        raise RedisConnectionError("connection refused")

    async def set(self, key, value):
        raise RedisConnectionError("connection refused")

    async def setex(self, key, ttl, value):
        raise RedisConnectionError("connection refused")

    async def delete(self, key):
        raise RedisConnectionError("connection refused")


class FakeRedis:
    def __init__(self):
        self.data = {}
        self.ttls = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value):
        self.data[key] = value

    async def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl

    async def delete(self, key):
        self.data.pop(key, None)


def test_redis_outage_behaves_like_a_miss():
    async def run():
        store = JobStore(RedisCache("redis://localhost:6379/0", client=DownRedis()))
        job = await store.create_job("fp")
        return job, await store.get_job(job.id), await store.get_cached("fp")

    job, loaded, cached = asyncio.run(run())
    assert job.status == "queued"
    assert loaded is None
    assert cached is None


def test_redis_cache_round_trip_with_ttl():
    async def run():
        fake = FakeRedis()
        store = JobStore(RedisCache("redis://localhost:6379/0", client=fake), prefix="rt:", cache_ttl=900)
        await store.set_cached("fp", _result())
        return fake, await store.get_cached("fp")

    fake, cached = asyncio.run(run())
    assert cached.look_id == "look-1"
    assert fake.ttls["rt:look:fp"] == 900
