# integrations/structured_page.py
"""
Structured-page retailer adapter.

Fetches a retailer's own search results page and reads the schema.org
Product blocks embedded in it. When a retailer ships no structured data
(or changes it), falls back to scraping product-link anchors.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional
from urllib.parse import urlencode

from contracts.models import SearchProductsArgs, SearchResult, StockResult
from integrations.base import AdapterContext, ProductAdapter
from integrations.http_fetch import fetch_html
from services.currency import currency_from_country
from services.html_extract import (
    extract_json_ld_products,
    extract_page_product,
    extract_product_anchors,
    make_soup,
)
from services.url_normalizer import host_matches

import config

logger = logging.getLogger(__name__)


def _hm_market(country: str) -> str:
    return {
        "US": "en_us",
        "GB": "en_gb",
        "UK": "en_gb",
        "DE": "en_de",
        "FR": "en_fr",
    }.get(country, "en_nl")


def _hyphen_market(country: str) -> str:
    if country in ("GB", "UK"):
        return "en-gb"
    if country == "US":
        return "en-us"
    return f"en-{country.lower()}"


def _path_market(country: str) -> str:
    return f"{'gb' if country == 'UK' else country.lower()}/en"


@dataclass
class RetailerSite:
    """Search page layout of one retailer"""
    name: str
    domain: str
    search_url: str  # format string with {market}
    query_param: str
    market_for: Callable[[str], str]
    product_link_selector: str


RETAILER_SITES: Dict[str, RetailerSite] = {
    "h&m": RetailerSite(
        name="H&M",
        domain="hm.com",
        search_url="https://www2.hm.com/{market}/search-results.html",
        query_param="q",
        market_for=_hm_market,
        product_link_selector="a[href*='/productpage.']",
    ),
    "cos": RetailerSite(
        name="COS",
        domain="cos.com",
        search_url="https://www.cos.com/{market}/search.html",
        query_param="q",
        market_for=_hyphen_market,
        product_link_selector="a[href*='/product']",
    ),
    "arket": RetailerSite(
        name="Arket",
        domain="arket.com",
        search_url="https://www.arket.com/{market}/search.html",
        query_param="q",
        market_for=_hyphen_market,
        product_link_selector="a[href*='/product']",
    ),
    "& other stories": RetailerSite(
        name="& Other Stories",
        domain="stories.com",
        search_url="https://www.stories.com/{market}/search.html",
        query_param="q",
        market_for=_hyphen_market,
        product_link_selector="a[href*='/product']",
    ),
    "zara": RetailerSite(
        name="Zara",
        domain="zara.com",
        search_url="https://www.zara.com/{market}/search",
        query_param="searchTerm",
        market_for=_path_market,
        product_link_selector="a[href*='-p0'], a.product-link",
    ),
    "mango": RetailerSite(
        name="Mango",
        domain="mango.com",
        search_url="https://shop.mango.com/{market}/search",
        query_param="kw",
        market_for=_path_market,
        product_link_selector="a[href*='/p/'], a[href*='_']",
    ),
}

ALIASES = {
    "hm": "h&m",
    "h and m": "h&m",
    "other stories": "& other stories",
    "stories": "& other stories",
    "and other stories": "& other stories",
}


def find_retailer_site(name: str) -> Optional[RetailerSite]:
    key = (name or "").strip().lower()
    key = ALIASES.get(key, key)
    return RETAILER_SITES.get(key)


class StructuredPageAdapter(ProductAdapter):
    """
    One retailer's search results page.

    Only items hosted on the retailer's own domain are kept.
    """

    def __init__(self, site: RetailerSite):
        self.site = site
        self.name = f"page:{site.domain}"

    def search_url(self, query: str, country: str) -> str:
        base = self.site.search_url.format(market=self.site.market_for(country))
        return f"{base}?{urlencode({self.site.query_param: query})}"

    async def _search(self, args: SearchProductsArgs, context: AdapterContext) -> Optional[SearchResult]:
        country = (args.country or config.DEFAULT_COUNTRY).upper()
        currency = currency_from_country(country) or args.currency

        if args.url and host_matches(args.url, self.site.domain):
            html = await fetch_html(context.client, args.url, headers=context.headers or None)
            page = extract_page_product(html, args.url) if html else None
            product = self.to_product(page, default_currency=currency, retailer=self.site.name) if page else None
            return SearchResult(
                items=[product] if product else [],
                source=self.name,
                meta={"url": args.url, "mode": "page"},
            )

        query = (args.query or "").strip()
        if not query:
            return SearchResult(items=[], source=self.name, meta={"reason": "empty query"})

        url = self.search_url(query, country)
        html = await fetch_html(context.client, url, headers=context.headers or None)
        if not html:
            logger.info(f"[{self.site.name}] No search page for '{query}'")
            return SearchResult(items=[], source=self.name, meta={"url": url, "status": "unreachable"})

        soup = make_soup(html)
        extracted = extract_json_ld_products(soup, url)
        mode = "jsonld"
        if not extracted:
            extracted = extract_product_anchors(
                soup, url, selector=self.site.product_link_selector, limit=args.limit * 3
            )
            mode = "anchors"

        items = []
        for candidate in extracted:
            if not candidate.url or not host_matches(candidate.url, self.site.domain):
                continue
            product = self.to_product(candidate, default_currency=currency, retailer=self.site.name)
            if product:
                items.append(product)
            if len(items) >= args.limit:
                break

        logger.info(f"[{self.site.name}] {len(items)} items via {mode} for '{query}'")
        return SearchResult(items=items, source=self.name, meta={"url": url, "mode": mode})

    async def _check_stock(self, context, url=None, product_id=None) -> Optional[StockResult]:
        if not url or not host_matches(url, self.site.domain):
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


def structured_adapters_for(retailers: List[str]) -> List[StructuredPageAdapter]:
    """Adapters for every known retailer in *retailers*, in order, without repeats"""
    adapters = []
    seen = set()
    for name in retailers:
        site = find_retailer_site(name)
        if site and site.domain not in seen:
            seen.add(site.domain)
            adapters.append(StructuredPageAdapter(site))
    return adapters
