# integrations/base.py
"""
Source adapter capability interface.

Every product source (retailer pages, web search, affiliate APIs, the seed
catalog) subclasses ProductAdapter and implements the private hooks it
supports. The public methods wrap those hooks so that:

- no exception ever crosses the adapter boundary
- `None` keeps meaning "not configured / not applicable"
- every returned product has a canonical URL, a stable id and a source tag
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

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
from infra.logging import log_error
from services.currency import normalize_code
from services.html_extract import ExtractedProduct, guess_category
from services.url_normalizer import ensure_absolute_url, normalize_product_url, retailer_from_url, stable_id

logger = logging.getLogger(__name__)


@dataclass
class AdapterContext:
    """Per-call context handed to adapters by the aggregator"""
    client: httpx.AsyncClient
    slot: Optional[str] = None
    request_id: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)


class ProductAdapter:
    """
    Base class for all product sources.

    Subclasses override `_search` and optionally `_check_stock`,
    `_affiliate_link` and `_extract_palette`.
    """

    name = "adapter"

    # ------------------------------------------------------------------
    # Public boundary
    # ------------------------------------------------------------------

    async def search_products(
        self,
        args: SearchProductsArgs,
        context: AdapterContext
    ) -> Optional[SearchResult]:
        started = time.perf_counter()
        try:
            result = await self._search(args, context)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.warning(f"[{self.name}] search failed: {message}")
            log_error(
                "adapter_search_failed",
                request_id=context.request_id,
                retailer=self.name,
                slot=context.slot or args.slot,
                message=message,
            )
            return SearchResult(
                items=[],
                source=self.name,
                latency=self._elapsed_ms(started),
                meta={"error": message},
            )

        if result is None:
            return None

        result.items = self._finalize(result.items, args)
        result.source = result.source or self.name
        result.latency = self._elapsed_ms(started)
        return result

    async def check_stock(
        self,
        context: AdapterContext,
        url: Optional[str] = None,
        product_id: Optional[str] = None
    ) -> Optional[StockResult]:
        try:
            return await self._check_stock(context, url=url, product_id=product_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[{self.name}] check_stock failed for {url or product_id}: {e}")
            return None

    async def affiliate_link(
        self,
        args: AffiliateLinkArgs,
        context: Optional[AdapterContext] = None
    ) -> Optional[AffiliateLinkResult]:
        try:
            return await self._affiliate_link(args, context)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[{self.name}] affiliate_link failed for {args.url}: {e}")
            return None

    async def extract_palette(
        self,
        image_url: str,
        context: AdapterContext,
        max_colors: int = 5
    ) -> Optional[List[str]]:
        try:
            return await self._extract_palette(image_url, context, max_colors)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[{self.name}] extract_palette failed for {image_url}: {e}")
            return None

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    async def _search(self, args: SearchProductsArgs, context: AdapterContext) -> Optional[SearchResult]:
        raise NotImplementedError

    async def _check_stock(self, context, url=None, product_id=None) -> Optional[StockResult]:
        return None

    async def _affiliate_link(self, args, context) -> Optional[AffiliateLinkResult]:
        return None

    async def _extract_palette(self, image_url, context, max_colors) -> Optional[List[str]]:
        return None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def to_product(
        self,
        extracted: ExtractedProduct,
        default_currency: Optional[str] = None,
        retailer: Optional[str] = None
    ) -> Optional[Product]:
        """Build a Product from page-extracted fields; None without a usable URL or title"""
        url = normalize_product_url(extracted.url)
        if not url or not extracted.title:
            return None
        return Product(
            id=stable_id(url),
            title=extracted.title,
            brand=extracted.brand or retailer,
            retailer=retailer or extracted.retailer or retailer_from_url(url),
            price=extracted.price,
            currency=extracted.currency or default_currency,
            url=url,
            image_url=extracted.image_url,
            availability=extracted.availability,
            fit=FitDescriptor(
                category=extracted.category or guess_category(extracted.title),
                sizes=extracted.sizes or [],
            ),
        )

    def _finalize(self, items: List[Product], args: SearchProductsArgs) -> List[Product]:
        out = []
        for product in items:
            url = normalize_product_url(product.url)
            if not url or not product.title.strip():
                logger.debug(f"[{self.name}] Dropping item without usable URL/title: {product.url!r}")
                continue
            updates = {
                "url": url,
                "title": product.title.strip(),
                "image_url": ensure_absolute_url(product.image_url, url),
                "currency": normalize_code(product.currency) or product.currency,
                "source": product.source or self.name,
                "retailer": product.retailer or retailer_from_url(url),
            }
            if not product.id:
                updates["id"] = stable_id(url)
            if args.slot and not product.slot:
                updates["slot"] = args.slot
            if not product.fit.category:
                updates["fit"] = product.fit.model_copy(update={"category": guess_category(product.title)})
            out.append(product.model_copy(update=updates))
        return out

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return round((time.perf_counter() - started) * 1000, 1)

    def __repr__(self):
        return f"<{type(self).__name__} {self.name}>"
