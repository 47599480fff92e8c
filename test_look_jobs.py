#!/usr/bin/env python3
"""
Tests for look job submission and polling.
"""
import asyncio
import json

import pytest

from contracts.models import PlanValidationError
from infra.cache import MemoryCache
from services.job_store import JobStore
from services.look_jobs import LookJobService

OPTIONS = {"per_retailer_timeout": 0.2, "per_slot_timeout": 1.0, "global_timeout": 5.0}


def _service(adapters):
    return LookJobService(
        store=JobStore(MemoryCache()),
        adapters_factory=lambda plan: list(adapters),
        worker_options=OPTIONS,
    )


def _plan_payload(make_plan, look_id="look-1"):
    return make_plan(look_id=look_id).model_dump(mode="json")


def test_submit_then_poll(make_plan, make_product, stub_adapter):
    live = stub_adapter("cos", {
        "top": [make_product("Cream Knit", price=80)],
        "bottom": [make_product("Black Trouser", price=110)],
        "shoe": [make_product("Black Boots", price=140)],
    })
    service = _service([live])

    async def run():
        ticket = await service.submit_look(_plan_payload(make_plan))
        await service.wait(ticket["job_id"], timeout=5)
        return ticket, await service.get_look(ticket["job_id"])

    ticket, look = asyncio.run(run())
    assert ticket["status"] == "queued"
    assert ticket["cached"] is False
    assert look["status"] == "complete"
    assert look["result"]["total_price"] == 330.0
    assert [p["slot"] for p in look["result"]["slots"]] == ["top", "bottom", "shoe"]
    assert look["progress"]["top"]["resolved"] is True
    assert look["errors"] == []
    json.dumps(look)


def test_identical_plan_is_served_from_cache(make_plan, make_product, stub_adapter):
    live = stub_adapter("cos", {"top": [make_product("Cream Knit", price=80)]})
    service = _service([live])

    async def run():
        first = await service.submit_look(_plan_payload(make_plan))
        await service.wait(first["job_id"], timeout=5)
        calls = len(live.calls)
        second = await service.submit_look(_plan_payload(make_plan, look_id="look-2"))
        return calls, second, await service.get_look(second["job_id"])

    calls, second, look = asyncio.run(run())
    assert second["cached"] is True
    assert len(live.calls) == calls
    assert look["result"]["look_id"] == "look-2"
    assert look["status"] == look["result"]["status"]


def test_in_flight_job_is_reused(make_plan, make_product, stub_adapter):
    slow = stub_adapter("slow", {"top": [make_product("Knit", price=80)]}, delays={"top": 0.1})
    service = _service([slow])

    async def run():
        first = await service.submit_look(_plan_payload(make_plan))
        second = await service.submit_look(_plan_payload(make_plan, look_id="look-2"))
        await service.wait(first["job_id"], timeout=5)
        return first, second

    first, second = asyncio.run(run())
    assert second["job_id"] == first["job_id"]
    assert second["cached"] is False


def test_malformed_plan_creates_no_job(make_plan):
    service = _service([])
    payload = _plan_payload(make_plan)
    del payload["per_slot"]

    with pytest.raises(PlanValidationError):
        asyncio.run(service.submit_look(payload))
    assert len(service.store.kv) == 0


def test_unknown_job():
    assert asyncio.run(_service([]).get_look("missing")) is None


def test_crashed_worker_marks_job_failed(make_plan, monkeypatch):
    service = _service([])

    async def explode(self, plan, job=None):
        raise RuntimeError("worker bug")

    monkeypatch.setattr("services.look_jobs.LookAssemblyWorker.run", explode)

    async def run():
        ticket = await service.submit_look(_plan_payload(make_plan))
        await service.wait(ticket["job_id"], timeout=5)
        return await service.get_look(ticket["job_id"])

    look = asyncio.run(run())
    assert look["status"] == "failed"
    assert look["result"]["status"] == "failed"
    assert "blueprint" in look["result"]["message"]


def test_adapter_setup_failure_still_returns_blueprint(make_plan):
    def broken_factory(plan):
        raise RuntimeError("registry misconfigured")

    service = LookJobService(
        store=JobStore(MemoryCache()),
        adapters_factory=broken_factory,
        worker_options=OPTIONS,
    )

    async def run():
        ticket = await service.submit_look(_plan_payload(make_plan))
        await service.wait(ticket["job_id"], timeout=5)
        return ticket, await service.get_look(ticket["job_id"])

    ticket, look = asyncio.run(run())
    assert ticket["status"] == "queued"
    assert look["status"] == "failed"
    result = look["result"]
    assert result["status"] == "failed"
    assert result["slots"] == []
    assert result["missing_slots"] == ["top", "bottom", "shoe"]
    assert "blueprint" in result["message"]
    assert result["note"]
