#!/usr/bin/env python3
"""
Tests for the stylist copy renderer.
"""
from services.stylist_copy import (
    Narration,
    render_blueprint,
    render_look,
    render_missing_tile,
    render_slot_line,
    scrub,
)


def test_scrub_removes_process_vocabulary():
    text = scrub("Hit the time cap, still searching for shoes after a timeout")
    assert "cap" not in text.lower()
    assert "timeout" not in text.lower()
    assert "still searching for" not in text.lower()
    assert "  " not in text


def test_scrub_keeps_words_containing_denylisted_tokens():
    assert scrub("A capsule wardrobe with a flat cap") == "A capsule wardrobe with a flat"


def test_scrub_keeps_line_breaks():
    assert scrub("one\ntwo") == "one\ntwo"


def test_slot_line(make_plan, make_product):
    plan = make_plan()
    product = make_product("Merino Knit Sweater", price=89, brand="COS", slot="top")
    product.retailer = "cos.com"
    line = render_slot_line(product, plan)
    assert line.startswith("Top: COS - Merino Knit Sweater, EUR 89 at cos.com.")
    assert "Reads knit straight away." in line


def test_slot_line_without_price(make_plan, make_product):
    line = render_slot_line(make_product("Loafer", price=None, slot="shoe"), make_plan())
    assert "price on site" in line
    assert line.startswith("Footwear:")


def test_render_look(make_plan, make_product):
    plan = make_plan(preferences={"prompt": "gallery opening."}, aesthetic_read="Quiet tailoring.")
    products = [
        make_product("Black Boots", price=150, slot="shoe"),
        make_product("Knit Top", price=90, slot="top"),
        make_product("Tailored Trouser", price=100, slot="bottom"),
    ]
    narration = render_look(plan, products)

    assert isinstance(narration, Narration)
    assert narration.blueprint is False
    assert narration.opening == "Okay: gallery opening. We're going for quiet tailoring. Let's build it."
    assert narration.lines[0] == "The look:"
    assert [line.split(":")[0] for line in narration.lines[1:]] == ["Top", "Bottom", "Footwear"]
    assert narration.total.startswith("Estimated total: EUR 340.")
    assert "above the EUR 300 budget" in narration.total
    assert narration.tiles == []
    assert narration.text.splitlines()[0] == narration.opening


def test_render_look_lists_missing_slots(make_plan, make_product):
    narration = render_look(make_plan(), [make_product("Knit Top", price=90, slot="top")], ["bottom", "shoe"])
    assert "bottom, footwear" in narration.closing
    assert [tile.slot for tile in narration.tiles] == ["bottom", "shoe"]
    assert narration.tiles[0].title == "No match found"
    assert "budget" not in narration.total


def test_render_look_without_products_is_blueprint(make_plan):
    plan = make_plan(search_queries=[{"slot": "top", "query": "cream merino knit"}])
    narration = render_look(plan, [])
    assert narration.blueprint is True
    assert narration.total is None
    assert any(line.startswith("Try searching: COS cream merino knit") for line in narration.lines)
    assert [tile.slot for tile in narration.tiles] == ["top", "bottom", "shoe"]
    assert narration.text


def test_blueprint_is_scrubbed(make_plan):
    text = render_blueprint(make_plan()).text.lower()
    for phrase in ("timeout", "deployment", "inventory is thin"):
        assert phrase not in text


def test_missing_tile():
    tile = render_missing_tile("bag")
    assert tile.suggestion == "Swap: minimal shoulder bag."
    assert tile.title == "No match found"
