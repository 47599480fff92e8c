# integrations/seed_catalog.py
"""
Seed catalog adapter.

A small curated in-memory catalog used as the last-resort backstop when
live sources are slow, empty or unconfigured. Every slot has at least
one entry so common categories never come back fully empty.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from contracts.models import FitDescriptor, Product, SearchProductsArgs, SearchResult, StockResult
from integrations.base import AdapterContext, ProductAdapter
from services.url_normalizer import normalize_product_url

logger = logging.getLogger(__name__)


def _image(tag: str) -> str:
    return (
        "https://images.unsplash.com/photo-1541099649105-f69ad21f3246"
        f"?auto=format&fit=crop&w=800&h=1000&q=80&ixid=seed-{tag}"
    )


@dataclass
class SeedItem:
    id: str
    title: str
    brand: str
    slots: Tuple[str, ...]
    category: str
    gender: str
    price: float
    retailer: str
    url: str
    tags: List[str] = field(default_factory=list)
    currency: str = "EUR"
    availability: str = "in_stock"
    sizes: List[str] = field(default_factory=list)

    def to_product(self, slot: Optional[str] = None) -> Product:
        return Product(
            id=self.id,
            title=self.title,
            brand=self.brand,
            retailer=self.retailer,
            price=self.price,
            currency=self.currency,
            url=normalize_product_url(self.url) or self.url,
            image_url=_image(self.id),
            availability=self.availability,
            fit=FitDescriptor(category=self.category, gender=self.gender, sizes=list(self.sizes)),
            slot=slot,
            source="seed",
        )


SEED_ITEMS: List[SeedItem] = [
    # Anchors / outerwear
    SeedItem("zara-trench", "Water-Resistant Beige Trench Coat", "ZARA", ("anchor", "outerwear"),
             "outerwear", "female", 119, "zara.com",
             "https://www.zara.com/nl/en/water-resistant-trench-coat-p123456.html",
             ["minimal", "tailoring", "rain", "neutral", "classic"], sizes=["XS", "S", "M", "L"]),
    SeedItem("cos-blazer", "Sharp Wool Blazer in Navy", "COS", ("anchor", "outerwear"),
             "outerwear", "male", 225, "cos.com",
             "https://www.cos.com/en_eur/men/tailoring/product.sharp-wool-blazer.123456.html",
             ["tailoring", "work", "smart-casual", "classic"], sizes=["46", "48", "50", "52"]),
    SeedItem("arket-wool-coat", "Relaxed Wool Coat in Grey", "Arket", ("anchor", "outerwear"),
             "outerwear", "unisex", 249, "arket.com",
             "https://www.arket.com/en_eur/women/coats/product.relaxed-wool-coat.123456.html",
             ["minimal", "essential", "winter", "neutral"], sizes=["XS", "S", "M", "L", "XL"]),
    SeedItem("mango-leather-jacket", "Black Leather Biker Jacket", "Mango", ("anchor", "outerwear"),
             "outerwear", "female", 169, "mango.com",
             "https://shop.mango.com/nl/women/jackets/leather-biker-jacket_12345678.html",
             ["edgy", "street", "black"], sizes=["XS", "S", "M", "L"]),
    # Tops
    SeedItem("cos-knit", "Fine Merino Knit Sweater in Cream", "COS", ("top",),
             "top", "unisex", 89, "cos.com",
             "https://www.cos.com/en_eur/men/knitwear/product.merino-knit-sweater.123456.html",
             ["capsule", "minimal", "layering", "essential"], sizes=["S", "M", "L"]),
    SeedItem("uniqlo-tee", "U Crew Neck White T-Shirt", "Uniqlo", ("top",),
             "top", "male", 19, "uniqlo.com",
             "https://www.uniqlo.com/eu/en/product/u-crew-neck-t-shirt-123456.html",
             ["minimal", "capsule", "casual", "essential"], sizes=["S", "M", "L", "XL"]),
    SeedItem("stories-silk-blouse", "Silk Blend Blouse in Ivory", "& Other Stories", ("top",),
             "top", "female", 85, "stories.com",
             "https://www.stories.com/en_eur/clothing/blouses/product.silk-blend-blouse.123456.html",
             ["evening", "work", "classic"], sizes=["34", "36", "38", "40"]),
    SeedItem("arket-oxford-shirt", "Oxford Cotton Shirt in Blue", "Arket", ("top",),
             "top", "male", 59, "arket.com",
             "https://www.arket.com/en_eur/men/shirts/product.oxford-shirt.123456.html",
             ["classic", "work", "smart-casual"], sizes=["S", "M", "L", "XL"]),
    # Bottoms
    SeedItem("arket-trouser", "High-Waist Tailored Black Trouser", "Arket", ("bottom",),
             "bottom", "female", 129, "arket.com",
             "https://www.arket.com/en_eur/women/trousers/product.high-waist-tailored-trouser.123456.html",
             ["tailoring", "work", "black", "classic"], sizes=["34", "36", "38", "40"]),
    SeedItem("levi-501", "501 Original Jeans", "Levi's", ("bottom",),
             "bottom", "male", 110, "levi.com",
             "https://www.levi.com/DE/en_DE/clothing/men/jeans/501-original-fit-jeans/p/123456",
             ["denim", "casual", "classic"], sizes=["30", "32", "34", "36"]),
    SeedItem("cos-wide-jeans", "Wide-Leg Jeans in Washed Blue", "COS", ("bottom",),
             "bottom", "female", 95, "cos.com",
             "https://www.cos.com/en_eur/women/jeans/product.wide-leg-jeans.123456.html",
             ["denim", "relaxed", "minimal"], sizes=["25", "26", "27", "28", "29"]),
    SeedItem("mango-midi-skirt", "Pleated Midi Skirt in Beige", "Mango", ("bottom",),
             "bottom", "female", 49.99, "mango.com",
             "https://shop.mango.com/nl/women/skirts/pleated-midi-skirt_12345679.html",
             ["feminine", "office", "neutral"], sizes=["XS", "S", "M", "L"]),
    # Dresses
    SeedItem("cos-slip-dress", "Satin Slip Dress in Black", "COS", ("dress",),
             "dress", "female", 115, "cos.com",
             "https://www.cos.com/en_eur/women/dresses/product.satin-slip-dress.123456.html",
             ["evening", "minimal", "black"], sizes=["XS", "S", "M", "L"]),
    SeedItem("stories-knit-dress", "Ribbed Knit Midi Dress in Camel", "& Other Stories", ("dress",),
             "dress", "female", 99, "stories.com",
             "https://www.stories.com/en_eur/clothing/dresses/product.ribbed-knit-midi-dress.123456.html",
             ["knit", "autumn", "neutral", "classic"], sizes=["XS", "S", "M", "L"]),
    # Shoes
    SeedItem("stories-ankle-boot", "Black Leather Ankle Boots", "& Other Stories", ("shoe",),
             "shoes", "female", 165, "stories.com",
             "https://www.stories.com/en_eur/shoes/boots/product.leather-ankle-boot.123456.html",
             ["minimal", "weather", "heel-low", "black"], sizes=["36", "37", "38", "39", "40"]),
    SeedItem("nike-court", "Court White Sneakers", "Nike", ("shoe",),
             "shoes", "unisex", 99, "nike.com",
             "https://www.nike.com/nl/t/court-sneakers-123456",
             ["street", "casual", "white", "essential"], sizes=["38", "39", "40", "41", "42", "43"]),
    SeedItem("cos-loafer", "Chunky Leather Loafers", "COS", ("shoe",),
             "shoes", "unisex", 150, "cos.com",
             "https://www.cos.com/en_eur/women/shoes/product.chunky-leather-loafers.123456.html",
             ["classic", "work", "minimal"], sizes=["37", "38", "39", "40", "41", "42"]),
    SeedItem("net-sandal", "Metallic Heeled Sandal", "Gianvito Rossi", ("shoe",),
             "shoes", "female", 690, "net-a-porter.com",
             "https://www.net-a-porter.com/en-nl/shop/product/gianvito-rossi/shoes/123456.html",
             ["evening", "glam"], sizes=["36", "37", "38", "39"]),
    # Bags
    SeedItem("mango-shoulder-bag", "Structured Black Shoulder Bag", "Mango", ("bag",),
             "bag", "female", 49, "mango.com",
             "https://shop.mango.com/nl/women/bags/product.structured-shoulder-bag_12345678.html",
             ["event", "minimal", "black"]),
    SeedItem("cos-tote", "Leather Tote Bag in Brown", "COS", ("bag",),
             "bag", "unisex", 79, "cos.com",
             "https://www.cos.com/en_eur/women/bags/product.leather-tote-bag.123456.html",
             ["work", "essential", "classic"]),
    # Accessories
    SeedItem("arket-wool-scarf", "Wool Scarf in Grey Melange", "Arket", ("accessory",),
             "accessory", "unisex", 39, "arket.com",
             "https://www.arket.com/en_eur/women/accessories/product.wool-scarf.123456.html",
             ["winter", "essential", "neutral"]),
    SeedItem("stories-hoops", "Chunky Gold Hoop Earrings", "& Other Stories", ("accessory",),
             "accessory", "female", 25, "stories.com",
             "https://www.stories.com/en_eur/accessories/jewellery/product.chunky-hoop-earrings.123456.html",
             ["evening", "classic", "gold"]),
    SeedItem("cos-belt", "Leather Belt in Black", "COS", ("accessory",),
             "accessory", "unisex", 45, "cos.com",
             "https://www.cos.com/en_eur/men/accessories/product.leather-belt.123456.html",
             ["minimal", "work", "black", "classic"]),
]


def _tokens(text: str) -> List[str]:
    return [t for t in re.split(r"[^a-z0-9&'-]+", (text or "").lower()) if len(t) > 1]


class SeedCatalogAdapter(ProductAdapter):
    """
    In-memory catalog search.

    Items for the requested slot are returned best-first: in-band prices
    before out-of-band, then by query-token hits. Only gender mismatches
    are filtered out so a slot with any seed data is never empty.
    """

    name = "seed"

    def __init__(self, items: Optional[Sequence[SeedItem]] = None):
        self.items = list(SEED_ITEMS if items is None else items)

    def _matches_slot(self, item: SeedItem, args: SearchProductsArgs) -> bool:
        if args.slot:
            return args.slot in item.slots
        if args.category:
            return args.category.lower() in (item.category, *item.slots)
        return True

    @staticmethod
    def _gender_ok(item: SeedItem, gender: Optional[str]) -> bool:
        return not gender or gender == "unisex" or item.gender in ("unisex", gender)

    async def _search(self, args: SearchProductsArgs, context: AdapterContext) -> Optional[SearchResult]:
        tokens = set(_tokens(args.query))
        ranked = []
        for position, item in enumerate(self.items):
            if not self._matches_slot(item, args) or not self._gender_ok(item, args.gender):
                continue
            in_band = (
                (args.min_price is None or item.price >= args.min_price)
                and (args.max_price is None or item.price <= args.max_price)
            )
            haystack = set(_tokens(item.title)) | {t.lower() for t in item.tags}
            hits = len(tokens & haystack)
            ranked.append((0 if in_band else 1, -hits, position, item))

        ranked.sort(key=lambda row: row[:3])
        items = [row[3].to_product(slot=args.slot) for row in ranked[:args.limit]]

        logger.debug(f"[Seed] {len(items)} items for slot={args.slot} query='{args.query}'")
        return SearchResult(items=items, source=self.name, meta={"catalog_size": len(self.items)})

    async def _check_stock(self, context, url=None, product_id=None) -> Optional[StockResult]:
        normalized = normalize_product_url(url) if url else None
        for item in self.items:
            if item.id == product_id or (normalized and normalize_product_url(item.url) == normalized):
                return StockResult(availability=item.availability, source=self.name, url=item.url)
        return None
