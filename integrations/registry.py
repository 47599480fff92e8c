# integrations/registry.py
"""
Builds the priority-ordered adapter list raced for every slot.

New sources are added by appending to the list; callers never branch on
adapter type.
"""
import logging
from typing import List, Optional

from contracts.models import StylePlan
from integrations.awin_client import AwinAdapter
from integrations.base import ProductAdapter
from integrations.structured_page import find_retailer_site, structured_adapters_for
from integrations.web_search import WebSearchAdapter

import config

logger = logging.getLogger(__name__)


def retailer_domain(name: str) -> Optional[str]:
    """Domain for a retailer name ("COS" -> "cos.com"); bare domains pass through"""
    site = find_retailer_site(name)
    if site:
        return site.domain
    candidate = (name or "").strip().lower()
    if "." in candidate and " " not in candidate:
        return candidate.removeprefix("www.")
    return None


def build_adapters(retailers: List[str], include_awin: bool = True) -> List[ProductAdapter]:
    """
    Adapter order:
    1. Structured search pages of known retailers
    2. Site-restricted web search per retailer
    3. Affiliate APIs (inactive without credentials)
    """
    adapters: List[ProductAdapter] = list(structured_adapters_for(retailers))

    seen = set()
    for name in retailers:
        domain = retailer_domain(name)
        if not domain or domain in seen:
            continue
        seen.add(domain)
        site = find_retailer_site(name)
        adapters.append(WebSearchAdapter(site_domain=domain, retailer_name=site.name if site else name))

    if include_awin:
        adapters.append(AwinAdapter())

    logger.info(f"[Registry] {len(adapters)} adapters: {[a.name for a in adapters]}")
    return adapters


def adapters_for_plan(plan: StylePlan) -> List[ProductAdapter]:
    retailers = plan.retailer_priority or config.DEFAULT_RETAILER_PRIORITY
    return build_adapters(retailers)
