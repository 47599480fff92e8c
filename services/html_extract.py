# services/html_extract.py
"""
HTML Product Extraction (No Browser)
====================================

Shared parsing for every scraping adapter:
- JSON-LD Product / Offer / ItemList blocks (schema.org)
- Social-preview meta tags (og:*, product:price:*) as a last resort
- Product-link anchors on search result pages
- Price string, availability and category normalization
"""
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from bs4 import BeautifulSoup

from services.currency import detect_currency, normalize_code
from services.url_normalizer import ensure_absolute_url, normalize_product_url, retailer_from_url

logger = logging.getLogger(__name__)


@dataclass
class ExtractedProduct:
    """Product fields as found on a page, before adapter normalization"""
    title: str
    url: Optional[str] = None
    brand: Optional[str] = None
    retailer: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    image_url: Optional[str] = None
    availability: str = "unknown"
    sku: Optional[str] = None
    category: Optional[str] = None
    color: Optional[str] = None
    sizes: Optional[List[str]] = None
    origin: str = "jsonld"  # jsonld | meta | anchor


def make_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


# ============================================================================
# Value normalization
# ============================================================================

def parse_price(raw: Any) -> Optional[float]:
    """
    Parse a price value into a float.

    Handles numbers, "129.99", "€ 129,99", "$1,299.00", "1.299,00 EUR", "€ 1.299"
    and "129.-". A lone separator followed by exactly three digits is read as
    a thousands separator.
    Returns None for anything unparseable.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return float(raw) if raw >= 0 else None
    if not isinstance(raw, str):
        return None

    text = re.sub(r"[^\d.,]", "", raw.replace(".-", ""))
    if not text or not any(ch.isdigit() for ch in text):
        return None

    if "," in text and "." in text:
        # Whichever separator comes last is the decimal one
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif "," in text:
        head, _, tail = text.rpartition(",")
        if len(tail) == 3 and head:
            text = text.replace(",", "")
        else:
            text = f"{head.replace(',', '')}.{tail}"
    elif "." in text:
        head, _, tail = text.rpartition(".")
        if len(tail) == 3 and head.replace(".", "").strip("0"):
            # European thousands: "1.299", "1.299.000"
            text = text.replace(".", "")
        elif text.count(".") > 1:
            text = f"{head.replace('.', '')}.{tail}"

    try:
        return float(text.strip("."))
    except ValueError:
        return None


def normalize_availability(raw: Any) -> str:
    """Map schema.org availability URLs and free text to in_stock/out_of_stock/preorder/unknown."""
    text = re.sub(r"[\s_-]+", "", str(raw or "").lower())
    if not text:
        return "unknown"
    if "outofstock" in text or "soldout" in text or "discontinued" in text:
        return "out_of_stock"
    if "preorder" in text or "presale" in text:
        return "preorder"
    if "instock" in text or "limitedavailability" in text or "onlineonly" in text:
        return "in_stock"
    return "unknown"


CATEGORY_PATTERNS = [
    ("shoes", re.compile(r"\b(shoe|shoes|sneaker|sneakers|trainer|trainers|boot|boots|loafer|loafers|heel|heels|pump|pumps|sandal|sandals|mule|mules|flat|flats)\b", re.I)),
    ("outerwear", re.compile(r"\b(coat|jacket|trench|blazer|parka|puffer|gilet|overcoat|bomber)\b", re.I)),
    ("dress", re.compile(r"\b(dress|gown|jumpsuit)\b", re.I)),
    ("bottom", re.compile(r"\b(trouser|trousers|pant|pants|jean|jeans|skirt|shorts|chino|chinos|culottes|leggings)\b", re.I)),
    ("bag", re.compile(r"\b(bag|tote|clutch|crossbody|handbag|backpack|shopper)\b", re.I)),
    ("top", re.compile(r"\b(top|tee|t-shirt|shirt|blouse|knit|sweater|jumper|cardigan|hoodie|tank|polo|bodysuit)\b", re.I)),
    ("accessory", re.compile(r"\b(belt|scarf|hat|cap|earring|earrings|necklace|bracelet|sunglasses|watch|ring)\b", re.I)),
]


def guess_category(title: Optional[str]) -> Optional[str]:
    if not title:
        return None
    for category, pattern in CATEGORY_PATTERNS:
        if pattern.search(title):
            return category
    return None


def _first(value: Any) -> Any:
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _name_of(value: Any) -> Optional[str]:
    value = _first(value)
    if isinstance(value, dict):
        return _text(value.get("name"))
    return _text(value)


def _image_of(value: Any) -> Optional[str]:
    value = _first(value)
    if isinstance(value, dict):
        return _text(value.get("url") or value.get("contentUrl"))
    return _text(value)


def _sizes_of(value: Any) -> Optional[List[str]]:
    if isinstance(value, str) and value.strip():
        return [part.strip() for part in re.split(r"[,/|]", value) if part.strip()]
    if isinstance(value, list):
        sizes = [str(v).strip() for v in value if isinstance(v, (str, int, float)) and str(v).strip()]
        return sizes or None
    return None


# ============================================================================
# JSON-LD
# ============================================================================

def _loads_lenient(raw: str) -> Any:
    raw = re.sub(r"<!--[\s\S]*?-->", "", raw).strip()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        pass
    # Trim junk before the first bracket and after the last one
    start = min([i for i in (raw.find("{"), raw.find("[")) if i >= 0], default=-1)
    end = max(raw.rfind("}"), raw.rfind("]"))
    if start < 0 or end <= start:
        return None
    try:
        return json.loads(raw[start:end + 1])
    except json.JSONDecodeError:
        return None


def extract_json_ld_blocks(soup: BeautifulSoup) -> List[Any]:
    """All parseable application/ld+json payloads on the page"""
    blocks = []
    for script in soup.find_all("script", type="application/ld+json"):
        raw = script.string if script.string is not None else script.get_text()
        data = _loads_lenient(raw or "")
        if data is not None:
            blocks.append(data)
    return blocks


def _types_of(node: Dict[str, Any]) -> List[str]:
    value = node.get("@type")
    if isinstance(value, list):
        return [str(v).lower() for v in value]
    return [str(value).lower()] if value else []


def flatten_json_ld(node: Any) -> List[Dict[str, Any]]:
    """
    Flatten @graph, ItemList.itemListElement, mainEntity and Offer.itemOffered
    containers into a flat list of candidate nodes.
    """
    if isinstance(node, list):
        out = []
        for child in node:
            out.extend(flatten_json_ld(child))
        return out
    if not isinstance(node, dict):
        return []

    if "@graph" in node:
        return flatten_json_ld(node["@graph"])

    types = _types_of(node)
    if "itemlist" in types and isinstance(node.get("itemListElement"), list):
        out = []
        for element in node["itemListElement"]:
            if isinstance(element, dict) and isinstance(element.get("item"), dict):
                out.extend(flatten_json_ld(element["item"]))
            else:
                out.extend(flatten_json_ld(element))
        return out

    nodes = [node]
    if isinstance(node.get("mainEntity"), (dict, list)):
        nodes.extend(flatten_json_ld(node["mainEntity"]))
    return nodes


def _pick_offer(offers: Any) -> Optional[Dict[str, Any]]:
    if isinstance(offers, dict) and "offers" in offers and "price" not in offers:
        # AggregateOffer wrapping a list
        inner = _pick_offer(offers["offers"])
        if inner:
            return inner
    candidates = [o for o in (offers if isinstance(offers, list) else [offers]) if isinstance(o, dict)]
    for offer in candidates:
        if normalize_availability(offer.get("availability")) == "in_stock":
            return offer
    return candidates[0] if candidates else None


def _product_from_node(node: Dict[str, Any], page_url: Optional[str]) -> Optional[ExtractedProduct]:
    types = _types_of(node)
    is_product = any("product" in t for t in types)
    is_offer = "offer" in types
    if not is_product and not is_offer:
        return None

    product_node = node
    if not is_product and isinstance(node.get("itemOffered"), dict):
        product_node = node["itemOffered"]

    title = _text(product_node.get("name") or product_node.get("title"))
    if not title:
        return None

    offer = _pick_offer(product_node.get("offers") if "offers" in product_node else node.get("offers"))
    if offer is None and is_offer:
        offer = node
    offer = offer or {}
    price_spec = _first(offer.get("priceSpecification"))
    if not isinstance(price_spec, dict):
        price_spec = {}

    price = parse_price(
        offer.get("price", offer.get("lowPrice", price_spec.get("price", product_node.get("price"))))
    )
    currency = normalize_code(
        offer.get("priceCurrency") or price_spec.get("priceCurrency") or product_node.get("priceCurrency") or ""
    )

    seller = offer.get("seller")
    url = _text(product_node.get("url")) or _text(offer.get("url")) or page_url
    url = normalize_product_url(url, page_url) if url else None

    return ExtractedProduct(
        title=title,
        url=url,
        brand=_name_of(product_node.get("brand")),
        retailer=_name_of(seller) or retailer_from_url(url),
        price=price,
        currency=currency,
        image_url=ensure_absolute_url(_image_of(product_node.get("image")), page_url),
        availability=normalize_availability(offer.get("availability") or product_node.get("availability")),
        sku=_text(str(product_node.get("sku") or product_node.get("mpn") or product_node.get("productID") or "")),
        category=_text(product_node.get("category")) if isinstance(product_node.get("category"), str) else None,
        color=_name_of(product_node.get("color")),
        sizes=_sizes_of(product_node.get("size") or product_node.get("sizes")),
        origin="jsonld",
    )


def extract_json_ld_products(soup: BeautifulSoup, page_url: Optional[str] = None) -> List[ExtractedProduct]:
    products = []
    for block in extract_json_ld_blocks(soup):
        for node in flatten_json_ld(block):
            product = _product_from_node(node, page_url)
            if product:
                products.append(product)
    return products


# ============================================================================
# Meta tags / anchors
# ============================================================================

def _meta(soup: BeautifulSoup, names: Iterable[str]) -> Optional[str]:
    for name in names:
        tag = soup.find("meta", attrs={"property": name}) or soup.find("meta", attrs={"name": name})
        if tag and tag.get("content") and tag["content"].strip():
            return tag["content"].strip()
    return None


def _itemprop(soup: BeautifulSoup, prop: str) -> Optional[str]:
    tag = soup.find(attrs={"itemprop": prop})
    if not tag:
        return None
    value = tag.get("content") or tag.get("href") or tag.get_text(" ", strip=True)
    return value.strip() if value and value.strip() else None


def extract_meta_product(soup: BeautifulSoup, page_url: str) -> Optional[ExtractedProduct]:
    """
    Social-preview fallback for pages without structured data.
    Needs at least a title; everything else is optional.
    """
    title = _meta(soup, ["og:title", "twitter:title"])
    if not title and soup.title and soup.title.string:
        title = soup.title.string.strip()
    if not title:
        h1 = soup.find("h1")
        title = h1.get_text(" ", strip=True) if h1 else None
    if not title:
        return None

    price_text = _meta(soup, ["product:price:amount", "og:price:amount", "price"]) or _itemprop(soup, "price")
    currency = normalize_code(
        _meta(soup, ["product:price:currency", "og:price:currency"]) or _itemprop(soup, "priceCurrency") or ""
    ) or detect_currency(price_text)
    image = _meta(soup, ["og:image", "twitter:image", "twitter:image:src"])
    if not image:
        img = soup.find("img", src=True)
        image = img["src"] if img else None

    retailer = retailer_from_url(page_url)
    brand = _itemprop(soup, "brand") or _meta(soup, ["og:site_name"]) or retailer

    return ExtractedProduct(
        title=title,
        url=normalize_product_url(page_url),
        brand=brand,
        retailer=retailer,
        price=parse_price(price_text),
        currency=currency,
        image_url=ensure_absolute_url(image, page_url),
        availability=normalize_availability(_itemprop(soup, "availability")),
        origin="meta",
    )


def extract_product_anchors(
    soup: BeautifulSoup,
    page_url: str,
    selector: str = "a[href]",
    limit: int = 24
) -> List[ExtractedProduct]:
    """
    Naive tag scraping for search pages without structured data.
    Title comes from the anchor text (or its image alt); price is not known.
    """
    seen = set()
    out = []
    for anchor in soup.select(selector):
        url = normalize_product_url(anchor.get("href"), page_url)
        if not url or url in seen:
            continue
        title = anchor.get("title") or anchor.get("aria-label") or anchor.get_text(" ", strip=True)
        img = anchor.find("img")
        if not title and img is not None:
            title = img.get("alt")
        title = re.sub(r"\s+", " ", title or "").strip()
        if not title:
            continue
        seen.add(url)
        image = None
        if img is not None:
            image = img.get("src") or img.get("data-src")
        out.append(ExtractedProduct(
            title=title,
            url=url,
            retailer=retailer_from_url(url),
            image_url=ensure_absolute_url(image, page_url),
            origin="anchor",
        ))
        if len(out) >= limit:
            break
    return out


def extract_page_product(html: str, page_url: str) -> Optional[ExtractedProduct]:
    """Single product from a product page: JSON-LD first, meta tags last."""
    soup = make_soup(html)
    products = extract_json_ld_products(soup, page_url)
    if products:
        product = products[0]
        if not product.url:
            product.url = normalize_product_url(page_url)
        return product
    return extract_meta_product(soup, page_url)
