#!/usr/bin/env python3
"""
Tests for slot constraint relaxation.
"""
import pytest

from contracts.models import SlotPlan
from services.constraint_relaxation import relax_slot_plan, widen_price_band

BASE = SlotPlan(
    slot="bottom",
    category="Trousers",
    keywords=["tailored", "wide-leg"],
    allowed_colors=["Black", "charcoal"],
    banned_materials=["polyester"],
    min_price=60,
    max_price=160,
)


def test_widens_band_by_factor():
    relaxed = relax_slot_plan(BASE, factor=0.10)
    assert relaxed.min_price == 54.0
    assert relaxed.max_price == 176.0


@pytest.mark.parametrize("low, high", [(0, 0), (0.5, 0.7), (19.99, 20.01), (33.3, 33.3), (1, 10_000)])
def test_band_never_narrows(low, high):
    new_low, new_high = widen_price_band(low, high, 0.10)
    assert new_low <= low
    assert new_high >= high
    assert new_low >= 0


def test_adds_neutrals_without_duplicates():
    relaxed = relax_slot_plan(BASE, neutral_colors=["black", "white", "beige"])
    assert relaxed.allowed_colors == ["Black", "charcoal", "white", "beige"]


def test_adds_category_slot_and_generic_keywords():
    relaxed = relax_slot_plan(BASE, generic_keywords=["classic", "Tailored"])
    assert relaxed.keywords == ["tailored", "wide-leg", "Trousers", "bottom", "classic"]


def test_input_is_not_mutated():
    before = BASE.model_dump()
    relax_slot_plan(BASE)
    assert BASE.model_dump() == before


def test_relaxation_composes():
    once = relax_slot_plan(BASE)
    twice = relax_slot_plan(once)
    assert twice.min_price <= once.min_price <= BASE.min_price
    assert twice.max_price >= once.max_price >= BASE.max_price
    assert twice.banned_materials == BASE.banned_materials
    assert set(once.allowed_colors) <= set(twice.allowed_colors)
