# integrations/awin_client.py
"""
AWIN affiliate network adapter.

Docs: https://wiki.awin.com/index.php/Publisher_API

Requires AWIN_API_TOKEN. Without a token every operation returns None,
which callers read as "adapter unavailable" (not "found nothing").
"""
import logging
from typing import Any, Dict, Optional
from urllib.parse import parse_qs, urlparse

import httpx

from contracts.models import (
    AffiliateLinkArgs,
    AffiliateLinkResult,
    FitDescriptor,
    Product,
    SearchProductsArgs,
    SearchResult,
    StockResult,
)
from integrations.base import AdapterContext, ProductAdapter
from services.html_extract import normalize_availability, parse_price
from services.url_normalizer import is_http_url, normalize_product_url, stable_id

import config

logger = logging.getLogger(__name__)


class AwinAPIError(Exception):
    """Non-2xx answer from the AWIN API"""


def _landing_url(deep_link: str) -> str:
    """AWIN deep links carry the retailer landing page in `ued`"""
    params = parse_qs(urlparse(deep_link).query)
    target = (params.get("ued") or [None])[0]
    return target if is_http_url(target) else deep_link


class AwinAdapter(ProductAdapter):
    """
    Product search, stock lookup and deep-link building against AWIN.
    """

    name = "awin"

    def __init__(
        self,
        api_token: Optional[str] = None,
        publisher_id: Optional[str] = None,
        base_url: Optional[str] = None,
        mock_affiliates: Optional[bool] = None
    ):
        self.api_token = config.AWIN_API_TOKEN if api_token is None else api_token
        self.publisher_id = config.AWIN_PUBLISHER_ID if publisher_id is None else publisher_id
        self.base_url = (base_url or config.AWIN_API_URL).rstrip("/")
        self.mock_affiliates = config.MOCK_AFFILIATES if mock_affiliates is None else mock_affiliates
        self.enabled = config.is_valid_api_key(self.api_token, min_length=16)

        if self.enabled:
            logger.info("[AWIN] Adapter enabled")
        else:
            logger.debug("[AWIN] No API token configured; adapter disabled")

    async def _get(self, client: httpx.AsyncClient, path: str, params: Dict[str, Any]) -> Any:
        response = await client.get(
            f"{self.base_url}{path}",
            params={k: v for k, v in params.items() if v not in (None, "")},
            headers={
                "Authorization": f"Bearer {self.api_token}",
                "Accept": "application/json",
            },
        )
        if response.status_code >= 400:
            raise AwinAPIError(f"AWIN {response.status_code}")
        return response.json()

    def map_product(self, row: Dict[str, Any]) -> Optional[Product]:
        """Map one AWIN product row to a Product; None without a link or name"""
        deep_link = row.get("awDeepLink") or row.get("aw_deep_link")
        title = row.get("productName") or row.get("product_name")
        if not deep_link or not title:
            return None

        url = normalize_product_url(_landing_url(deep_link))
        if not url:
            return None

        categories = row.get("categories") or []
        category = row.get("category") or (
            categories[0].get("name") if categories and isinstance(categories[0], dict) else None
        )
        gender = (row.get("gender") or "").lower() or None
        if gender not in ("female", "male", "unisex"):
            gender = None

        merchant = row.get("merchantName") or row.get("merchant_name")
        return Product(
            id=str(row.get("productId") or row.get("aw_product_id") or stable_id(url)),
            title=title,
            brand=row.get("brandName") or merchant,
            retailer=merchant,
            price=parse_price(row.get("price", row.get("search_price"))),
            currency=row.get("currency"),
            url=url,
            image_url=row.get("imgLargeUrl") or row.get("imageUrl") or row.get("imgMediumUrl"),
            availability=normalize_availability(row.get("stockStatus")),
            fit=FitDescriptor(category=category, gender=gender),
            affiliate_url=deep_link,
        )

    async def _search(self, args: SearchProductsArgs, context: AdapterContext) -> Optional[SearchResult]:
        if not self.enabled:
            return None
        query = (args.query or "").strip()
        if not query:
            return SearchResult(items=[], source=self.name, meta={"reason": "empty query"})

        payload = await self._get(context.client, "/products/search", {
            "query": query,
            "pageSize": min(args.limit, 25),
            "sort": "relevance",
            "countryCode": args.country,
            "minPrice": f"{args.min_price:.2f}" if args.min_price else None,
            "maxPrice": f"{args.max_price:.2f}" if args.max_price else None,
            "publisherId": self.publisher_id,
        })

        rows = payload.get("products", []) if isinstance(payload, dict) else []
        items = []
        for row in rows:
            product = self.map_product(row) if isinstance(row, dict) else None
            if product:
                items.append(product)
            if len(items) >= args.limit:
                break

        logger.info(f"[AWIN] {len(items)} items for '{query}'")
        return SearchResult(items=items, source=self.name, meta={"total": len(rows)})

    async def _check_stock(self, context, url=None, product_id=None) -> Optional[StockResult]:
        if not self.enabled or not product_id:
            return None
        payload = await self._get(context.client, f"/products/{product_id}", {})
        if not isinstance(payload, dict):
            return None
        product = self.map_product(payload)
        return StockResult(
            availability=normalize_availability(payload.get("stockStatus")),
            source=self.name,
            url=product.url if product else url,
        )

    async def _affiliate_link(self, args: AffiliateLinkArgs, context) -> Optional[AffiliateLinkResult]:
        if not self.enabled:
            return None
        normalized = normalize_product_url(args.url) or args.url
        if self.mock_affiliates or context is None:
            return AffiliateLinkResult(url=normalized, retailer=args.retailer, source=self.name)

        payload = await self._get(context.client, "/affiliate/link-builder", {
            "url": normalized,
            "publisherId": self.publisher_id,
        })
        click_url = payload.get("clickUrl") if isinstance(payload, dict) else None
        return AffiliateLinkResult(url=click_url or normalized, retailer=args.retailer, source=self.name)
