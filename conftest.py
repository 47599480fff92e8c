# conftest.py
"""
Shared fixtures: style plan / product factories and an in-memory stub adapter.
"""
import asyncio
from typing import Dict, List, Optional

import httpx
import pytest

from contracts.models import Product, SearchResult, StylePlan, parse_style_plan
from integrations.base import AdapterContext, ProductAdapter


class StubAdapter(ProductAdapter):
    """
    Canned per-slot results.

    delays / errors are keyed by slot so one adapter can be slow or broken
    for a single slot only.
    """

    def __init__(
        self,
        name: str,
        items: Optional[Dict[str, List[Product]]] = None,
        delays: Optional[Dict[str, float]] = None,
        errors: Optional[Dict[str, Exception]] = None,
        unavailable: bool = False
    ):
        self.name = name
        self.items = items or {}
        self.delays = delays or {}
        self.errors = errors or {}
        self.unavailable = unavailable
        self.calls = []

    async def _search(self, args, context):
        self.calls.append(args.slot)
        delay = self.delays.get(args.slot, 0)
        if delay:
            await asyncio.sleep(delay)
        if args.slot in self.errors:
            raise self.errors[args.slot]
        if self.unavailable:
            return None
        return SearchResult(items=list(self.items.get(args.slot, [])), source=self.name)


def _product(
    title: str,
    price: Optional[float] = 50.0,
    url: Optional[str] = None,
    currency: Optional[str] = "EUR",
    brand: Optional[str] = None,
    slot: Optional[str] = None,
    **fit
) -> Product:
    slug = title.lower().replace(" ", "-")
    return Product(
        id="",
        title=title,
        brand=brand,
        price=price,
        currency=currency,
        url=url or f"https://shop.example.nl/p/{slug}",
        slot=slot,
        fit=fit,
    )


def _plan(**overrides) -> StylePlan:
    payload = {
        "look_id": "look-1",
        "required_slots": ["top", "bottom", "shoe"],
        "per_slot": [
            {"slot": "top", "category": "top", "keywords": ["knit"], "allowed_colors": ["cream"],
             "banned_materials": ["polyester"], "min_price": 40, "max_price": 120},
            {"slot": "bottom", "category": "bottom", "keywords": ["trouser"], "allowed_colors": ["black"],
             "banned_materials": [], "min_price": 60, "max_price": 160},
            {"slot": "shoe", "category": "shoes", "keywords": ["boots"], "allowed_colors": ["black"],
             "banned_materials": [], "min_price": 80, "max_price": 200},
        ],
        "budget_total": 300,
        "currency": "EUR",
        "retailer_priority": ["COS"],
        "search_queries": [],
        "preferences": {"gender": "female", "country": "NL"},
    }
    payload.update(overrides)
    return parse_style_plan(payload)


@pytest.fixture
def make_product():
    return _product


@pytest.fixture
def make_plan():
    return _plan


@pytest.fixture
def stub_adapter():
    return StubAdapter


@pytest.fixture
def make_context():
    """AdapterContext over an httpx.MockTransport (404 for anything unhandled)"""
    def _make(handler=None, slot=None):
        transport = httpx.MockTransport(handler or (lambda request: httpx.Response(404)))
        client = httpx.AsyncClient(transport=transport, follow_redirects=True)
        return AdapterContext(client=client, slot=slot, request_id="test")
    return _make
