# services/stylist_copy.py
"""
Stylist copy renderer.

Pure formatting downstream of the engine: plan + selected products in,
structured narration out. Every line goes through `scrub` so internal
process vocabulary never reaches the presentation layer.
"""
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from contracts.models import Product, StylePlan
from services.currency import estimate_total

BANNED_PHRASES = [
    "time cap",
    "cap",
    "timeout",
    "deployment",
    "still searching for",
    "want me to loosen",
    "inventory is thin",
    "nothing meets the standard",
]

_BANNED_PATTERNS = [
    re.compile(r"\bcap\b" if phrase == "cap" else re.escape(phrase), re.I)
    for phrase in BANNED_PHRASES
]

SLOT_ORDER = ["anchor", "outerwear", "top", "bottom", "dress", "shoe", "bag", "accessory"]

SLOT_LABELS = {
    "anchor": "Anchor",
    "outerwear": "Outerwear",
    "top": "Top",
    "bottom": "Bottom",
    "dress": "Dress",
    "shoe": "Footwear",
    "bag": "Bag",
    "accessory": "Optional accent",
}

SLOT_RATIONALE = {
    "anchor": "It sets the line for everything else.",
    "outerwear": "Adds structure without fighting the silhouette.",
    "top": "Keeps the proportion clean under the anchor.",
    "bottom": "Gives the look a steady base.",
    "dress": "Does the heavy lifting in one piece.",
    "shoe": "Grounds the look and keeps it wearable.",
    "bag": "Practical, and it finishes the outline.",
    "accessory": "One detail, nothing more.",
}

SLOT_SWAPS = {
    "anchor": "Swap: structured coat or sharp blazer.",
    "outerwear": "Swap: clean trench or tailored jacket.",
    "top": "Swap: clean knit or crisp shirt.",
    "bottom": "Swap: straight-leg trouser.",
    "dress": "Swap: slip dress in matte fabric.",
    "shoe": "Swap: pointed slingback or sleek boot.",
    "bag": "Swap: minimal shoulder bag.",
    "accessory": "Swap: one quiet piece of jewellery.",
}

BLUEPRINT_GUIDANCE = {
    "anchor": "structured coat or sharp blazer with clean shoulders",
    "outerwear": "trench or tailored jacket in a neutral tone",
    "top": "fine knit or crisp shirt",
    "bottom": "straight-leg trouser in matte fabric",
    "dress": "sleek dress in matte fabric",
    "shoe": "pointed boot or sharp slingback with a stable heel",
    "bag": "minimal structured shoulder bag",
    "accessory": "one restrained piece, metal or leather",
}


def scrub(text: str) -> str:
    """Remove denylisted vocabulary and collapse leftover spacing"""
    out = text
    for pattern in _BANNED_PATTERNS:
        out = pattern.sub(" ", out)
    return re.sub(r"[ \t]{2,}", " ", out).strip()


@dataclass
class MissingTile:
    slot: str
    title: str
    suggestion: str


@dataclass
class Narration:
    """Structured look copy; `text` is the presentable rendering"""
    opening: str
    lines: List[str] = field(default_factory=list)
    total: Optional[str] = None
    closing: str = ""
    tiles: List[MissingTile] = field(default_factory=list)
    blueprint: bool = False

    @property
    def text(self) -> str:
        parts = [self.opening, *self.lines]
        if self.total:
            parts.append(self.total)
        if self.closing:
            parts.append(self.closing)
        return "\n".join(p for p in parts if p)

    def to_dict(self) -> Dict:
        return {
            "opening": self.opening,
            "lines": list(self.lines),
            "total": self.total,
            "closing": self.closing,
            "tiles": [tile.__dict__ for tile in self.tiles],
            "blueprint": self.blueprint,
            "text": self.text,
        }


def _format_price(price: Optional[float], currency: Optional[str]) -> str:
    if price is None:
        return "price on site"
    amount = f"{price:.0f}" if float(price).is_integer() else f"{price:.2f}"
    return f"{currency} {amount}" if currency else amount


def _opening(plan: StylePlan) -> str:
    prompt = (plan.preferences.prompt or "").strip().rstrip(".")
    lead = f"Okay: {prompt}." if prompt else "Okay, I've got you."
    direction = f" We're going for {plan.aesthetic_read.strip().rstrip('.').lower()}." if plan.aesthetic_read else ""
    return scrub(f"{lead}{direction} Let's build it.")


def _rationale(product: Product, plan: StylePlan) -> str:
    slot_plan = plan.slot_plan(product.slot) if product.slot else None
    base = SLOT_RATIONALE.get(product.slot or "", "")
    if slot_plan:
        title = product.title.lower()
        hit = next((k for k in slot_plan.keywords if k.strip() and k.lower() in title), None)
        if hit:
            return f"Reads {hit.lower()} straight away. {base}".strip()
        color = next((c for c in slot_plan.allowed_colors if c.strip() and c.lower() in title), None)
        if color:
            return f"The {color.lower()} keeps the palette tight. {base}".strip()
    return base


def render_slot_line(product: Product, plan: StylePlan) -> str:
    label = SLOT_LABELS.get(product.slot or "", (product.slot or "Piece").capitalize())
    brand = product.brand or product.retailer or ""
    who = f"{brand} - " if brand else ""
    retailer = f" at {product.retailer}" if product.retailer else ""
    price = _format_price(product.price, product.currency or plan.currency)
    return scrub(f"{label}: {who}{product.title}, {price}{retailer}. {_rationale(product, plan)}")


def render_missing_tile(slot: str) -> MissingTile:
    return MissingTile(
        slot=slot,
        title=scrub("No match found"),
        suggestion=scrub(SLOT_SWAPS.get(slot, "Swap: minimal shoulder bag.")),
    )


def render_look(
    plan: StylePlan,
    products: List[Product],
    missing_slots: Optional[List[str]] = None
) -> Narration:
    """
    Narration for a resolved look.
    With no products this hands over to the blueprint rendering.
    """
    if not products:
        return render_blueprint(plan)

    ordered = sorted(
        products,
        key=lambda p: SLOT_ORDER.index(p.slot) if p.slot in SLOT_ORDER else len(SLOT_ORDER),
    )
    lines = ["The look:"] + [render_slot_line(p, plan) for p in ordered]

    total = estimate_total(((p.price, p.currency) for p in products), plan.currency)
    total_line = f"Estimated total: {plan.currency} {total:.0f}." if total is not None else None
    if total is not None and plan.budget_total and total > plan.budget_total:
        total_line += f" That is above the {plan.currency} {plan.budget_total:.0f} budget, so the anchor is the place to trade down."

    missing = list(missing_slots or [])
    if missing:
        closing = (
            f"I couldn't pin down the {', '.join(SLOT_LABELS.get(s, s).lower() for s in missing)} yet. "
            "A slightly wider budget or palette opens up more options there."
        )
    else:
        closing = "Keep the accessories restrained and let the cut do the talking."

    return Narration(
        opening=_opening(plan),
        lines=lines,
        total=scrub(total_line) if total_line else None,
        closing=scrub(closing),
        tiles=[render_missing_tile(s) for s in missing],
    )


def render_blueprint(plan: StylePlan) -> Narration:
    """
    Generic category guidance with no live links.
    Used when nothing at all could be sourced.
    """
    lines = ["Here's a clean blueprint so you can shop with confidence."]
    for slot in sorted(plan.required_slots, key=lambda s: SLOT_ORDER.index(s)):
        lines.append(scrub(f"{SLOT_LABELS[slot]}: {BLUEPRINT_GUIDANCE[slot]}."))

    retailers = plan.retailer_priority or ["COS", "Zara", "& Other Stories"]
    searches = []
    for index, slot in enumerate(plan.required_slots[:3]):
        query = plan.query_for(slot) or BLUEPRINT_GUIDANCE[slot].split(" or ")[0]
        searches.append(f"{retailers[index % len(retailers)]} {query}")
    if searches:
        lines.append(scrub("Try searching: " + " · ".join(searches) + "."))

    return Narration(
        opening=_opening(plan),
        lines=lines,
        total=None,
        closing=scrub("Keep the palette tight and let one piece lead."),
        tiles=[render_missing_tile(s) for s in plan.required_slots],
        blueprint=True,
    )
