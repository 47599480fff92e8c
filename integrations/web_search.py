# integrations/web_search.py
"""
Generic keyless web-search adapter.

Strategy:
1. Search DuckDuckGo's HTML endpoint (Bing HTML when DuckDuckGo is empty)
2. Filter links: optional domain allowlist, optional site restriction
3. Prefer EU-ish retailer hosts for EUR plans
4. Fetch the top pages concurrently and extract one product per page
   (JSON-LD first, social meta tags as a last resort)

Also implements colour palette extraction for product images (Pillow).
"""
import asyncio
import io
import logging
from typing import List, Optional, Tuple
from urllib.parse import parse_qs, quote_plus, urlparse

from PIL import Image

from contracts.models import SearchProductsArgs, SearchResult, StockResult
from integrations.base import AdapterContext, ProductAdapter
from integrations.http_fetch import fetch_bytes, fetch_html, fetch_text
from services.currency import currency_from_country
from services.html_extract import extract_page_product, make_soup
from services.url_normalizer import host_matches, is_http_url, retailer_from_url

import config

logger = logging.getLogger(__name__)

QUERY_SUFFIX = "(price OR € OR $)"
MAX_LINKS = 24

EU_HOST_HINTS = [
    ".eu", ".nl", ".de", ".fr", ".it", ".es", ".ie", ".be", ".se", ".dk", ".fi", ".pl", ".at",
    "zalando.", "zara.com", "mango.com", "hm.com", "cos.com", "arket.com", "stories.com",
    "ssense.com", "mytheresa.com", "farfetch.com", "mrporter.com", "net-a-porter.com",
]

SEARCH_ENGINE_HOSTS = ("duckduckgo.com", "bing.com", "google.com", "r.jina.ai")

NAMED_COLORS: List[Tuple[str, Tuple[int, int, int]]] = [
    ("black", (20, 20, 20)),
    ("white", (245, 245, 245)),
    ("grey", (128, 128, 128)),
    ("cream", (240, 230, 200)),
    ("beige", (215, 195, 160)),
    ("camel", (193, 154, 107)),
    ("brown", (110, 70, 40)),
    ("navy", (25, 35, 80)),
    ("blue", (50, 100, 200)),
    ("green", (50, 140, 70)),
    ("olive", (110, 110, 50)),
    ("red", (200, 30, 40)),
    ("burgundy", (110, 20, 40)),
    ("pink", (235, 160, 180)),
    ("purple", (120, 60, 150)),
    ("yellow", (240, 210, 60)),
    ("orange", (235, 130, 40)),
]


def is_eu_host(url: str) -> bool:
    host = (urlparse(url).netloc or "").lower()
    return any(hint in host for hint in EU_HOST_HINTS)


def region_score(url: str, prefer_eu: bool) -> int:
    eu = is_eu_host(url)
    if prefer_eu:
        return 2 if eu else 0
    return 0 if eu else 2


def allowed_by_allowlist(url: str, allowlist: List[str]) -> bool:
    if not allowlist:
        return True
    host = retailer_from_url(url) or ""
    return any(host == d or host.endswith(f".{d}") or d in host for d in allowlist)


def _unwrap_redirect(href: str) -> Optional[str]:
    """DuckDuckGo wraps results as //duckduckgo.com/l/?uddg=<target>"""
    if href.startswith("//"):
        href = f"https:{href}"
    parsed = urlparse(href)
    if parsed.netloc.endswith("duckduckgo.com") and parsed.path.startswith("/l/"):
        target = parse_qs(parsed.query).get("uddg", [None])[0]
        return target if is_http_url(target) else None
    return href if is_http_url(href) else None


def parse_ddg_links(html: str) -> List[str]:
    links = []
    for anchor in make_soup(html).select("a.result__a"):
        target = _unwrap_redirect(anchor.get("href") or "")
        if target and target not in links:
            links.append(target)
        if len(links) >= MAX_LINKS:
            break
    return links


def parse_bing_links(html: str) -> List[str]:
    links = []
    for item in make_soup(html).select("li.b_algo"):
        anchor = item.select_one("h2 a[href]") or item.select_one("a[href]")
        href = anchor.get("href") if anchor else None
        if is_http_url(href) and href not in links:
            links.append(href)
        if len(links) >= MAX_LINKS:
            break
    return links


def _nearest_color_name(rgb: Tuple[int, int, int]) -> str:
    r, g, b = rgb
    best_name, best_dist = NAMED_COLORS[0][0], None
    for name, (nr, ng, nb) in NAMED_COLORS:
        dist = (r - nr) ** 2 + (g - ng) ** 2 + (b - nb) ** 2
        if best_dist is None or dist < best_dist:
            best_name, best_dist = name, dist
    return best_name


def dominant_colors(image_bytes: bytes, max_colors: int = 5) -> List[str]:
    """Named dominant colours of an image, most frequent first"""
    img = Image.open(io.BytesIO(image_bytes)).convert("RGB")
    img.thumbnail((96, 96))
    quantized = img.quantize(colors=max(2, max_colors * 2))
    palette = quantized.getpalette() or []
    counts = sorted(quantized.getcolors() or [], reverse=True)

    names: List[str] = []
    for _count, index in counts:
        rgb = tuple(palette[index * 3:index * 3 + 3])
        if len(rgb) != 3:
            continue
        name = _nearest_color_name(rgb)
        if name not in names:
            names.append(name)
        if len(names) >= max_colors:
            break
    return names


class WebSearchAdapter(ProductAdapter):
    """
    Keyless web search, optionally restricted to one retailer domain.

    A site-restricted instance discards every page whose host does not
    belong to that retailer.
    """

    def __init__(
        self,
        site_domain: Optional[str] = None,
        retailer_name: Optional[str] = None,
        enabled: Optional[bool] = None,
        allowlist: Optional[List[str]] = None,
        pages: Optional[int] = None
    ):
        self.site_domain = site_domain.lower() if site_domain else None
        self.retailer_name = retailer_name
        self.enabled = config.WEB_SCRAPE_ENABLED if enabled is None else enabled
        self.allowlist = config.WEB_SCRAPE_DOMAINS_ALLOWLIST if allowlist is None else allowlist
        self.pages = pages or config.WEB_PAGES_PER_QUERY
        self.name = f"web:{self.site_domain}" if self.site_domain else "web"

    def build_query(self, query: str) -> str:
        parts = [query.strip(), QUERY_SUFFIX]
        if self.site_domain:
            parts.append(f"site:{self.site_domain}")
        return " ".join(p for p in parts if p)

    async def search_links(self, context: AdapterContext, query: str) -> List[str]:
        """Result links from DuckDuckGo, falling back to Bing"""
        ddg_html = await fetch_text(
            context.client, f"https://html.duckduckgo.com/html/?q={quote_plus(query)}"
        )
        links = parse_ddg_links(ddg_html) if ddg_html else []
        if links:
            return links

        logger.debug(f"[WebSearch] DuckDuckGo empty for '{query}', trying Bing")
        bing_html = await fetch_text(context.client, f"https://www.bing.com/search?q={quote_plus(query)}")
        return parse_bing_links(bing_html) if bing_html else []

    def filter_links(self, links: List[str], prefer_eu: bool) -> List[str]:
        kept = []
        for link in links:
            host = retailer_from_url(link) or ""
            if any(host == h or host.endswith(f".{h}") for h in SEARCH_ENGINE_HOSTS):
                continue
            if not allowed_by_allowlist(link, self.allowlist):
                continue
            if self.site_domain and not host_matches(link, self.site_domain):
                continue
            kept.append(link)
        # sorted() is stable, so engine order survives inside each region bucket
        return sorted(kept, key=lambda u: -region_score(u, prefer_eu))

    async def _search(self, args: SearchProductsArgs, context: AdapterContext) -> Optional[SearchResult]:
        if not self.enabled:
            return None

        country = (args.country or config.DEFAULT_COUNTRY).upper()
        default_currency = currency_from_country(country) or args.currency
        prefer_eu = (args.currency or default_currency or "").upper() == "EUR"

        if args.url:
            links = [args.url] if is_http_url(args.url) else []
            mode = "url"
        else:
            query = (args.query or "").strip()
            if not query:
                return SearchResult(items=[], source=self.name, meta={"reason": "empty query"})
            raw_links = await self.search_links(context, self.build_query(query))
            links = self.filter_links(raw_links, prefer_eu)[:self.pages]
            mode = "search"

        if not links:
            return SearchResult(items=[], source=self.name, meta={"mode": mode, "links": 0})

        semaphore = asyncio.Semaphore(4)

        async def fetch_with_limit(link: str):
            async with semaphore:
                return link, await fetch_html(context.client, link, headers=context.headers or None)

        pages = await asyncio.gather(*(fetch_with_limit(link) for link in links), return_exceptions=True)

        items = []
        for page in pages:
            if isinstance(page, Exception):
                logger.debug(f"[WebSearch] Page fetch raised: {page}")
                continue
            link, html = page
            if not html:
                continue
            extracted = extract_page_product(html, link)
            if not extracted:
                continue
            if self.site_domain and not host_matches(extracted.url or link, self.site_domain):
                continue
            product = self.to_product(extracted, default_currency=default_currency, retailer=self.retailer_name)
            if product:
                items.append(product)
            if len(items) >= args.limit:
                break

        logger.info(f"[WebSearch] {self.name}: {len(items)} items from {len(links)} pages")
        return SearchResult(items=items, source=self.name, meta={"mode": mode, "links": len(links)})

    async def _check_stock(self, context, url=None, product_id=None) -> Optional[StockResult]:
        if not url or not is_http_url(url):
            return None
        if self.site_domain and not host_matches(url, self.site_domain):
            return None
        html = await fetch_html(context.client, url)
        if not html:
            return None
        page = extract_page_product(html, url)
        return StockResult(
            availability=page.availability if page else "unknown",
            source=self.name,
            url=url,
        )

    async def _extract_palette(self, image_url, context, max_colors) -> Optional[List[str]]:
        if not is_http_url(image_url):
            return None
        data = await fetch_bytes(context.client, image_url)
        if not data:
            return None
        return await asyncio.to_thread(dominant_colors, data, max_colors)
