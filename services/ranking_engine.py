# services/ranking_engine.py
"""
Slot Candidate Ranking Engine.

Scores each candidate against one slot's constraints as a plain sum of
signals and returns candidates best-first. Ties keep input order.
"""
import logging
from typing import Dict, List, Optional

from contracts.models import Preferences, Product, ScoredCandidate, SlotPlan
from services.currency import convert, normalize_code

logger = logging.getLogger(__name__)


class RankingEngine:
    """
    Additive multi-signal slot scorer.
    """

    def __init__(self):
        """Initialize ranking engine with configurable weights."""
        self.weights = {
            "keyword": 2.0,            # per slot keyword found in title/brand
            "color": 1.0,              # any allowed colour in title
            "banned_material": -2.0,   # any denied material in title
            "out_of_band": -1.0,       # converted price outside [min, max]
            "gender_match": 1.0,
            "gender_unisex": 0.25,
            "gender_mismatch": -0.5,
            "size_hit": 0.5,           # per preferred size the product stocks
        }

    def rank(
        self,
        candidates: List[Product],
        slot_plan: SlotPlan,
        currency: str,
        preferences: Optional[Preferences] = None
    ) -> List[ScoredCandidate]:
        """
        Score and sort candidates for one slot.

        Args:
            candidates: Products gathered for the slot
            slot_plan: The slot's constraints
            currency: Plan currency prices are converted into
            preferences: Optional gender / size preferences

        Returns:
            ScoredCandidates sorted by score (descending, stable)
        """
        scored = [
            ScoredCandidate(product=product, score=self.score(product, slot_plan, currency, preferences))
            for product in candidates
        ]
        # list.sort is stable with reverse=True: equal scores keep input order
        scored.sort(key=lambda c: c.score, reverse=True)
        return scored

    def top_candidate(
        self,
        candidates: List[Product],
        slot_plan: SlotPlan,
        currency: str,
        preferences: Optional[Preferences] = None
    ) -> Optional[ScoredCandidate]:
        ranked = self.rank(candidates, slot_plan, currency, preferences)
        return ranked[0] if ranked else None

    def score(
        self,
        product: Product,
        slot_plan: SlotPlan,
        currency: str,
        preferences: Optional[Preferences] = None
    ) -> float:
        """Sum of all signals for one candidate"""
        scores = self.breakdown(product, slot_plan, currency, preferences)
        return round(sum(scores.values()), 3)

    def breakdown(
        self,
        product: Product,
        slot_plan: SlotPlan,
        currency: str,
        preferences: Optional[Preferences] = None
    ) -> Dict[str, float]:
        title = product.title.lower()
        text = f"{product.title} {product.brand or ''}".lower()
        prefs = preferences or Preferences()

        return {
            "keyword": self._score_keywords(text, slot_plan.keywords),
            "color": self._score_color(title, slot_plan.allowed_colors),
            "price": self._score_price(product, slot_plan, currency),
            "banned_material": self._score_banned(title, slot_plan.banned_materials),
            "gender": self._score_gender(product.fit.gender, prefs.gender),
            "size": self._score_sizes(product, slot_plan, prefs.sizes),
        }

    def _score_keywords(self, text: str, keywords: List[str]) -> float:
        hits = sum(1 for k in keywords if k.strip() and k.strip().lower() in text)
        return hits * self.weights["keyword"]

    def _score_color(self, title: str, allowed: List[str]) -> float:
        if any(c.strip() and c.strip().lower() in title for c in allowed):
            return self.weights["color"]
        return 0.0

    def _score_banned(self, title: str, banned: List[str]) -> float:
        if any(m.strip() and m.strip().lower() in title for m in banned):
            return self.weights["banned_material"]
        return 0.0

    def _score_price(self, product: Product, slot_plan: SlotPlan, currency: str) -> float:
        """
        1.0 at the band midpoint, linear to 0 at the edges, fixed penalty outside.
        Missing prices are neutral.
        """
        if product.price is None:
            return 0.0
        source = normalize_code(product.currency) or normalize_code(currency)
        price = convert(product.price, source, currency) if source else product.price

        low, high = slot_plan.min_price, slot_plan.max_price
        if price < low or price > high:
            return self.weights["out_of_band"]
        if high == low:
            return 1.0
        mid = (low + high) / 2
        half_width = (high - low) / 2
        return max(0.0, 1.0 - abs(price - mid) / half_width)

    def _score_gender(self, product_gender: Optional[str], wanted: Optional[str]) -> float:
        if not product_gender or not wanted:
            return 0.0
        if product_gender == wanted:
            return self.weights["gender_match"]
        if "unisex" in (product_gender, wanted):
            return self.weights["gender_unisex"]
        return self.weights["gender_mismatch"]

    def _score_sizes(self, product: Product, slot_plan: SlotPlan, preferred: Dict[str, str]) -> float:
        if not preferred or not product.fit.sizes:
            return 0.0
        keys = {slot_plan.slot, slot_plan.category.lower()}
        if product.fit.category:
            keys.add(product.fit.category.lower())
        relevant = [v for k, v in preferred.items() if k.lower() in keys]
        if not relevant:
            relevant = list(preferred.values())
        stocked = {s.strip().lower() for s in product.fit.sizes}
        hits = sum(1 for size in relevant if str(size).strip().lower() in stocked)
        return hits * self.weights["size_hit"]


# Global singleton
_ranking_engine = None


def get_ranking_engine() -> RankingEngine:
    """Get or create global ranking engine."""
    global _ranking_engine
    if _ranking_engine is None:
        _ranking_engine = RankingEngine()
    return _ranking_engine


# Convenience function
def rank_candidates(
    candidates: List[Product],
    slot_plan: SlotPlan,
    currency: str,
    preferences: Optional[Preferences] = None
) -> List[ScoredCandidate]:
    """Quick function to rank candidates for a slot."""
    return get_ranking_engine().rank(candidates, slot_plan, currency, preferences)
