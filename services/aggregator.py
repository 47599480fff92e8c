# services/aggregator.py
"""
Aggregator: fans one query out to a priority-ordered adapter list.

- Adapters are called in order; one failing or empty adapter never aborts the run
- Items are deduplicated by normalized URL (brand+title when there is no URL)
- Stops as soon as the requested number of unique items is collected
- Returns None only when no adapter produced any item
"""
import asyncio
import logging
from typing import Iterable, List, Optional

from contracts.models import (
    AffiliateLinkArgs,
    AffiliateLinkResult,
    Product,
    SearchProductsArgs,
    SearchResult,
    StockResult,
)
from integrations.base import AdapterContext, ProductAdapter
from services.url_normalizer import dedupe_key, normalize_product_url

logger = logging.getLogger(__name__)


def product_key(product: Product) -> str:
    return dedupe_key(product.url, product.brand, product.title)


def dedupe_products(products: Iterable[Product], limit: Optional[int] = None) -> List[Product]:
    """First occurrence wins"""
    seen = set()
    unique = []
    for product in products:
        key = product_key(product)
        if key in seen:
            continue
        seen.add(key)
        unique.append(product)
        if limit is not None and len(unique) >= limit:
            break
    return unique


class Aggregator:
    """
    Sequential fan-out over adapters in priority order.
    """

    def __init__(self, adapters: List[ProductAdapter]):
        self.adapters = list(adapters)

    async def search(
        self,
        args: SearchProductsArgs,
        context: AdapterContext,
        limit: Optional[int] = None
    ) -> Optional[SearchResult]:
        limit = limit or args.limit
        collected: List[Product] = []
        seen = set()
        sources = []
        errors = []
        latency = 0.0

        for adapter in self.adapters:
            try:
                result = await adapter.search_products(args, context)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"[Aggregator] {adapter.name} raised: {e}")
                errors.append({"source": adapter.name, "message": str(e) or type(e).__name__})
                continue

            if result is None:
                logger.debug(f"[Aggregator] {adapter.name} unavailable")
                continue
            latency += result.latency
            if result.meta.get("error"):
                errors.append({"source": adapter.name, "message": result.meta["error"]})
            if not result.items:
                logger.debug(f"[Aggregator] {adapter.name} returned nothing")
                continue

            sources.append(adapter.name)
            for product in result.items:
                key = product_key(product)
                if key in seen:
                    continue
                seen.add(key)
                collected.append(product)
                if len(collected) >= limit:
                    break
            if len(collected) >= limit:
                logger.debug(f"[Aggregator] Limit {limit} reached after {adapter.name}")
                break

        if not collected:
            return None

        return SearchResult(
            items=collected,
            source="aggregate",
            latency=round(latency, 1),
            meta={"sources": sources, "errors": errors},
        )

    async def check_stock(
        self,
        context: AdapterContext,
        url: Optional[str] = None,
        product_id: Optional[str] = None
    ) -> Optional[StockResult]:
        """First non-null answer in priority order"""
        for adapter in self.adapters:
            result = await adapter.check_stock(context, url=url, product_id=product_id)
            if result is not None:
                return result
        return None

    async def affiliate_link(
        self,
        args: AffiliateLinkArgs,
        context: Optional[AdapterContext] = None
    ) -> AffiliateLinkResult:
        """First non-null affiliate link; the canonical URL when no adapter wraps it"""
        for adapter in self.adapters:
            result = await adapter.affiliate_link(args, context)
            if result is not None:
                return result
        return AffiliateLinkResult(
            url=normalize_product_url(args.url) or args.url,
            retailer=args.retailer,
            source=None,
        )


async def aggregate_search(
    adapters: List[ProductAdapter],
    args: SearchProductsArgs,
    context: AdapterContext,
    limit: Optional[int] = None
) -> Optional[SearchResult]:
    """Quick function for a one-off aggregated search."""
    return await Aggregator(adapters).search(args, context, limit=limit)
